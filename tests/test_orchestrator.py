"""End-to-end tests for the tick loop."""

import asyncio
import json

import pytest

from conftest import OneHotEmbedder

from townsfolk.activity import ActivityState
from townsfolk.clock import SimulationClock
from townsfolk.environment import EnvironmentGrid, LocationEntry, LocationRegistry
from townsfolk.jobs import JobRunner
from townsfolk.orchestrator import AgentUpdateFailedError, Orchestrator, SimulationHaltedError
from townsfolk.persistence import InMemoryPersistence, PersistenceUnavailableError
from townsfolk.relationships import RelationshipStore
from townsfolk.schemas import ActivityIntent, Agent, ObservationEvent, PlanStep

DAILY_PLAN = json.dumps(
    {
        "daily_goal": "Keep the bakery running",
        "schedule": {"08:00": {"activity": "work", "location": "bakery"}},
        "priority": 5,
    }
)

EVALUATION = json.dumps(
    {
        "performance_evaluation": "Busy morning",
        "strategy_adjustments": [],
        "schedule_modifications": [],
        "importance_score": 7,
    }
)


LUNCH_RUSH = json.dumps(
    {
        "performance_evaluation": "Customers are waiting for food",
        "strategy_adjustments": ["Serve the crowd first"],
        "schedule_modifications": [{"time": "08:00", "activity": "eat", "reason": "lunch rush", "priority": 9}],
        "importance_score": 8,
    }
)


class RoutingGeneration:
    """Answers each cognition stage with a canned response."""

    def __init__(self, evaluation: str = EVALUATION) -> None:
        self.evaluation = evaluation
        self.calls = []

    async def submit(self, prompt: str) -> str:
        if "planning module" in prompt:
            self.calls.append("plan")
            return DAILY_PLAN
        if "self-evaluation module" in prompt:
            self.calls.append("metacognition")
            return self.evaluation
        self.calls.append("reflection")
        return "The town feels restless lately."


class FlakyPersistence(InMemoryPersistence):
    def __init__(self) -> None:
        super().__init__()
        self.down = False
        self.broken = False

    async def get_active_plan(self, agent_id):
        if self.broken:
            raise RuntimeError("corrupt plan row")
        if self.down:
            raise PersistenceUnavailableError(operation="get_active_plan", underlying=ConnectionError("refused"))
        return await super().get_active_plan(agent_id)


def build(start="07:58", persistence=None, agents=None, bakery_capacity=2, generation=None, **kwargs):
    grid = EnvironmentGrid(width=10, height=10)
    locations = LocationRegistry(
        [
            LocationEntry("bakery", (0, 5), tags=frozenset({"work", "business"}), max_capacity=bakery_capacity),
            LocationEntry("cafe", (5, 5), tags=frozenset({"food"}), max_capacity=2),
        ]
    )
    if agents is None:
        agents = [Agent(id="alice", name="Alice", primary_goal="Run the bakery", position=(0, 0))]
    orchestrator = Orchestrator(
        agents=agents,
        grid=grid,
        locations=locations,
        persistence=persistence or InMemoryPersistence(),
        embeddings=OneHotEmbedder(),
        generation=generation or RoutingGeneration(),
        clock=SimulationClock(start_time=start, minutes_per_tick=1),
        jobs=JobRunner(timeout=5, max_attempts=1, backoff_seconds=0),
        persistence_backoff_seconds=0,
        **kwargs,
    )
    return orchestrator


async def run_ticks(orchestrator, count):
    reports = []
    for _ in range(count):
        reports.append(await orchestrator.tick())
        # Let background generation jobs finish before the next tick.
        await asyncio.sleep(0.01)
    return reports


@pytest.mark.asyncio
async def test_plan_is_generated_dispatched_and_walked():
    orchestrator = build()
    reports = await run_ticks(orchestrator, 2)

    assert reports[0].jobs_submitted == ["alice:plan"]
    assert reports[1].jobs_applied == ["alice:plan"]
    assert reports[1].dispatched == {"alice": "work"}
    assert orchestrator.agents["alice"].current_activity == "walking to bakery"

    await run_ticks(orchestrator, 5)

    alice = orchestrator.agents["alice"]
    assert alice.position == (0, 5)
    assert alice.current_activity == "work at bakery"
    stored = await orchestrator.persistence.get_agent("alice")
    assert stored.position == (0, 5)
    assert orchestrator.debug_info()["sessions"]["alice"]["state"] == "performing_action"


@pytest.mark.asyncio
async def test_events_update_memory_relationships_and_urgency():
    orchestrator = build()
    await orchestrator.initialize()
    orchestrator.submit_event(
        ObservationEvent(agent_id="alice", payload={"content": "The mill wheel stopped turning", "importance": 7})
    )
    orchestrator.submit_event(
        ObservationEvent(
            agent_id="alice",
            kind="conversation",
            payload={"counterpart_id": "p1", "summary": "bandits on the north road", "urgency": 8, "sentiment": 4},
        )
    )
    orchestrator.submit_event(ObservationEvent(agent_id="ghost", payload={"content": "boo", "importance": 9}))

    report = (await run_ticks(orchestrator, 1))[0]

    assert report.events_processed == 3
    assert "alice:metacognition" in report.jobs_submitted
    contents = [record.content for record in await orchestrator.persistence.get_memories("alice")]
    assert "The mill wheel stopped turning" in contents
    assert "IMPORTANT CONVERSATION: bandits on the north road" in contents

    relationship = await RelationshipStore(orchestrator.persistence, clock=orchestrator.clock.now).get(
        "alice", "p1", "player"
    )
    assert (relationship.affection, relationship.trust, relationship.interaction_frequency) == (4.0, 2.0, 1)

    report = (await run_ticks(orchestrator, 1))[0]
    assert "alice:metacognition" in report.jobs_applied
    assert orchestrator.agents["alice"].counters.metacognitions_today == 0


@pytest.mark.asyncio
async def test_calm_conversation_is_remembered_with_counterpart():
    orchestrator = build()
    orchestrator.submit_event(
        ObservationEvent(
            agent_id="alice",
            kind="conversation",
            payload={"counterpart_id": "bob", "counterpart_kind": "agent", "summary": "the weather", "urgency": 1},
        )
    )

    await run_ticks(orchestrator, 1)

    records = await orchestrator.persistence.get_memories("alice")
    assert records[0].content == "Had a conversation with bob about: the weather"
    assert records[0].importance == 6
    assert records[0].related_agents == ["bob"]


@pytest.mark.asyncio
async def test_accumulated_observations_trigger_reflection():
    orchestrator = build()
    for index in range(19):
        orchestrator.submit_event(
            ObservationEvent(agent_id="alice", payload={"content": f"event-{index} happened", "importance": 8})
        )

    first = (await run_ticks(orchestrator, 1))[0]
    assert "alice:reflection" in first.jobs_submitted

    second = (await run_ticks(orchestrator, 1))[0]
    assert "alice:reflection" in second.jobs_applied
    reflections = await orchestrator.persistence.get_memories("alice", kinds=["reflection"])
    assert [record.content for record in reflections] == ["The town feels restless lately."]
    assert orchestrator.agents["alice"].counters.reflections_today == 1


@pytest.mark.asyncio
async def test_higher_priority_step_preempts_running_activity():
    orchestrator = build()
    await run_ticks(orchestrator, 2)
    plan = await orchestrator.persistence.get_active_plan("alice")
    urgent = PlanStep(
        time="08:02",
        intent=ActivityIntent(name="eat"),
        priority=9,
        created_at=orchestrator.clock.now(),
        source="metacognition",
    )
    await orchestrator.persistence.add_plan_steps(plan.id, [urgent])

    report = (await run_ticks(orchestrator, 2))[-1]

    assert report.dispatched == {"alice": "eat"}
    assert orchestrator.sessions["alice"].target_location.id == "cafe"
    assert orchestrator.coordination.capacity_usage("bakery") == 0
    assert orchestrator.coordination.capacity_usage("cafe") == 1


@pytest.mark.asyncio
async def test_new_day_resets_counters_and_replans():
    orchestrator = build(start="23:58")
    await orchestrator.initialize()
    orchestrator.agents["alice"].counters.reflections_today = 2

    reports = await run_ticks(orchestrator, 2)

    assert reports[1].day == 2
    assert reports[1].time == "00:00"
    assert "alice:plan" in reports[1].jobs_submitted
    counters = orchestrator.agents["alice"].counters
    assert (counters.day, counters.reflections_today) == (2, 0)
    # Only the day-2 planning key is still guarded.
    assert orchestrator.jobs.seen_count() == 1


@pytest.mark.asyncio
async def test_request_plan_replaces_active_plan():
    orchestrator = build()
    await run_ticks(orchestrator, 2)
    first = await orchestrator.persistence.get_active_plan("alice")

    assert await orchestrator.request_plan("alice") is True
    await run_ticks(orchestrator, 2)

    replacement = await orchestrator.persistence.get_active_plan("alice")
    assert replacement.id != first.id
    statuses = [plan.status for plan in await orchestrator.persistence.get_plans("alice")]
    assert statuses.count("active") == 1


@pytest.mark.asyncio
async def test_store_outage_skips_agents_then_halts():
    store = FlakyPersistence()
    orchestrator = build(persistence=store, failure_limit=2, persistence_retry_attempts=1)
    await orchestrator.initialize()
    store.down = True

    report = (await run_ticks(orchestrator, 1))[0]
    assert report.skipped_agents == ["alice"]

    with pytest.raises(SimulationHaltedError) as excinfo:
        await orchestrator.tick()

    assert excinfo.value.failed_ticks == 2
    assert "Remediation tips" in str(excinfo.value)


@pytest.mark.asyncio
async def test_store_recovery_resets_outage_count():
    store = FlakyPersistence()
    orchestrator = build(persistence=store, failure_limit=2, persistence_retry_attempts=1)
    await orchestrator.initialize()

    store.down = True
    await run_ticks(orchestrator, 1)
    store.down = False
    report = (await run_ticks(orchestrator, 1))[0]
    store.down = True
    await run_ticks(orchestrator, 1)

    assert report.skipped_agents == []


@pytest.mark.asyncio
async def test_unexpected_agent_errors_fail_fast():
    store = FlakyPersistence()
    orchestrator = build(persistence=store)
    await orchestrator.initialize()
    store.broken = True

    with pytest.raises(AgentUpdateFailedError) as excinfo:
        await orchestrator.tick()

    assert "alice: RuntimeError: corrupt plan row" in str(excinfo.value)


@pytest.mark.asyncio
async def test_close_interrupts_sessions_and_cancels_jobs():
    orchestrator = build()
    await run_ticks(orchestrator, 2)
    session = orchestrator.sessions["alice"]
    await orchestrator.request_plan("alice")

    await orchestrator.close()

    assert session.state.value == "interrupted"
    assert orchestrator.jobs.pending_count() == 0
    assert orchestrator.coordination.capacity_usage("bakery") == 0


@pytest.mark.asyncio
async def test_player_moves_one_per_tick_become_one_summary():
    orchestrator = build()
    squares = ["market", "fountain", "bridge", "gate", "well", "mill"]
    for square in squares:
        orchestrator.submit_event(
            ObservationEvent(
                agent_id="alice",
                payload={
                    "content": f"player-9 walked to the {square}",
                    "importance": 5,
                    "location": square,
                    "related_players": ["player-9"],
                },
            )
        )
        await run_ticks(orchestrator, 1)

    await run_ticks(orchestrator, 3)

    observations = await orchestrator.persistence.get_memories("alice", kinds=["observation"])
    assert [record.content for record in observations] == ["player-9 moved through 6 locations over 300 seconds"]
    assert observations[0].location == "mill"
    assert orchestrator.memory.filter_counts["movement"] == 6


class FlakyConsolidation(InMemoryPersistence):
    def __init__(self, failures: int = 1) -> None:
        super().__init__()
        self.failures = failures

    async def mark_consolidated(self, memory_id):
        if self.failures:
            self.failures -= 1
            raise PersistenceUnavailableError(operation="mark_consolidated", underlying=ConnectionError("reset"))
        return await super().mark_consolidated(memory_id)


@pytest.mark.asyncio
async def test_store_hiccup_while_applying_reflection_keeps_one_reflection():
    orchestrator = build(persistence=FlakyConsolidation())
    for index in range(19):
        orchestrator.submit_event(
            ObservationEvent(agent_id="alice", payload={"content": f"event-{index} happened", "importance": 8})
        )

    reports = await run_ticks(orchestrator, 3)

    assert "alice:reflection" in reports[1].jobs_applied
    reflections = await orchestrator.persistence.get_memories("alice", kinds=["reflection"])
    assert len(reflections) == 1
    counters = orchestrator.agents["alice"].counters
    assert (counters.reflections_today, counters.reflection_epoch) == (1, 1)


@pytest.mark.asyncio
async def test_two_agents_contend_for_one_seat_workplace():
    agents = [
        Agent(id="alice", name="Alice", primary_goal="Run the bakery", position=(0, 0)),
        Agent(id="bob", name="Bob", primary_goal="Run the bakery", position=(9, 0)),
    ]
    orchestrator = build(agents=agents, bakery_capacity=1)

    reports = await run_ticks(orchestrator, 2)
    assert reports[1].dispatched == {"alice": "work", "bob": "work"}
    await run_ticks(orchestrator, 1)

    sessions = orchestrator.sessions
    assert sessions["alice"].coordination is sessions["bob"].coordination
    holders = [agent_id for agent_id, session in sessions.items() if session.target_location is not None]
    assert len(holders) == 1
    waiting = sessions["bob" if holders == ["alice"] else "alice"]
    assert waiting.state == ActivityState.PLANNING
    assert waiting.wait_ticks >= 1
    assert orchestrator.coordination.capacity_usage("bakery") == 1
    assert orchestrator.agents["alice"].position != orchestrator.agents["bob"].position


@pytest.mark.asyncio
async def test_urgent_self_evaluation_step_runs_before_standing_step():
    orchestrator = build(start="07:55", generation=RoutingGeneration(evaluation=LUNCH_RUSH))
    await run_ticks(orchestrator, 2)
    assert await orchestrator.persistence.get_active_plan("alice") is not None

    orchestrator.submit_event(
        ObservationEvent(
            agent_id="alice",
            kind="conversation",
            payload={"counterpart_id": "p1", "summary": "a crowd at the cafe", "urgency": 9},
        )
    )
    submitted = (await run_ticks(orchestrator, 1))[0]
    assert "alice:metacognition" in submitted.jobs_submitted
    applied = (await run_ticks(orchestrator, 1))[0]
    assert "alice:metacognition" in applied.jobs_applied

    due = (await run_ticks(orchestrator, 1))[0]

    assert due.time == "08:00"
    assert due.dispatched == {"alice": "eat"}
    assert orchestrator.sessions["alice"].priority == 9
    assert [step.intent.name for step in orchestrator.agendas["alice"].pending()] == ["work"]
