"""Tests for metacognition triggers and schedule rewriting."""

import json
from datetime import datetime, timedelta, timezone

import pytest

from conftest import ScriptedGeneration

from townsfolk.cognition import MetacognitionEngine, MetacognitionTrigger
from townsfolk.cognition.cadence import REASON_HIGH_IMPORTANCE, REASON_SCHEDULED, REASON_URGENCY
from townsfolk.jobs import JobOutcome
from townsfolk.schemas import ActivityIntent, Agent, DayCounters, MemoryRecord, MetacognitionResult, Plan, PlanStep

NOW = datetime(2024, 1, 2, 8, 0, tzinfo=timezone.utc)

EVALUATION = {
    "performance_evaluation": "I neglected the bakery queue",
    "strategy_adjustments": ["Open earlier"],
    "goal_modifications": ["Hire an apprentice"],
    "schedule_modifications": [
        {"time": "12:00", "activity": "work", "reason": "lunch rush", "priority": 9},
    ],
    "self_awareness_notes": "I get distracted by gossip",
    "importance_score": 9,
}


def make_engine(memory, jobs, responses=None):
    generation = ScriptedGeneration(responses, default=json.dumps(EVALUATION))
    return MetacognitionEngine(memory, generation, jobs, trigger=MetacognitionTrigger(), lookback_hours=72), generation


def test_trigger_reasons():
    trigger = MetacognitionTrigger()

    assert trigger.reason(DayCounters(urgency_pending=7, metacognitions_today=1), NOW) == REASON_URGENCY
    assert trigger.reason(DayCounters(high_importance_pending=True, metacognitions_today=1), NOW) is None
    assert trigger.reason(DayCounters(high_importance_pending=True), NOW) == REASON_HIGH_IMPORTANCE
    assert trigger.reason(DayCounters(last_metacognition_at=NOW - timedelta(hours=24)), NOW) == REASON_SCHEDULED
    assert trigger.reason(DayCounters(last_metacognition_at=NOW - timedelta(hours=23)), NOW) is None
    assert trigger.reason(DayCounters(), NOW) is None


def test_signals_from_memories_and_urgency(memory, jobs):
    engine, _ = make_engine(memory, jobs)
    agent = Agent(id="alice", name="Alice")

    def record(kind, importance):
        return MemoryRecord(agent_id="alice", kind=kind, content="x", importance=importance, created_at=NOW)

    engine.note_memory(agent, record("observation", 7))
    engine.note_memory(agent, record("reflection", 9))
    assert agent.counters.high_importance_pending is False

    engine.note_memory(agent, record("observation", 8))
    assert agent.counters.high_importance_pending is True

    engine.note_urgency(agent, 5)
    assert agent.counters.urgency_pending == 0
    engine.note_urgency(agent, 7)
    engine.note_urgency(agent, 6)
    assert agent.counters.urgency_pending == 7


@pytest.mark.asyncio
async def test_evaluation_inserts_steps_into_active_plan(memory, store, jobs, sim_clock):
    engine, generation = make_engine(memory, jobs)
    agent = Agent(id="alice", name="Alice", primary_goal="Run the bakery")
    plan = Plan(
        agent_id="alice",
        goal="Usual day",
        created_at=sim_clock.now(),
        steps=[PlanStep(time="12:00", intent=ActivityIntent(name="eat"), priority=5, created_at=sim_clock.now())],
    )
    await store.activate_plan(plan)
    agent.counters.high_importance_pending = True

    assert engine.maybe_schedule(agent) is True
    assert agent.counters.high_importance_pending is False
    assert agent.counters.metacognition_epoch == 1
    assert agent.counters.last_metacognition_at == sim_clock.now()
    assert engine.maybe_schedule(agent) is False

    outcome = (await jobs.drain())[0]
    assert outcome.context == {"reason": REASON_HIGH_IMPORTANCE}
    result = await engine.apply(agent, outcome)

    assert result.importance_score == 9
    assert "- 12:00: eat" in generation.prompts[0]

    active = await store.get_active_plan("alice")
    assert active.id == plan.id
    added = [step for step in active.steps if step.source == "metacognition"]
    assert len(added) == 1
    assert (added[0].time, added[0].intent.name, added[0].priority) == ("12:00", "work", 9)
    assert active.schedule()["12:00"].name == "work"

    notes = await store.get_memories("alice", kinds=["metacognition"])
    assert len(notes) == 1
    assert notes[0].importance == 9
    assert notes[0].content.startswith("Self-evaluation: I neglected the bakery queue")
    assert agent.secondary_goals == ["Hire an apprentice"]
    assert agent.counters.metacognitions_today == 1


@pytest.mark.asyncio
async def test_evaluation_without_active_plan_activates_new_plan(memory, store, jobs):
    engine, _ = make_engine(memory, jobs)
    agent = Agent(id="alice", name="Alice")
    outcome = JobOutcome(
        key=("alice", "metacognition", 0),
        result=MetacognitionResult.model_validate(EVALUATION),
        context={"reason": REASON_SCHEDULED},
    )

    await engine.apply(agent, outcome)

    active = await store.get_active_plan("alice")
    assert active.source == "metacognition"
    assert active.priority == 9
    assert [step.intent.name for step in active.steps] == ["work"]


@pytest.mark.asyncio
async def test_urgent_evaluation_does_not_use_daily_allowance(memory, jobs):
    engine, _ = make_engine(memory, jobs)
    agent = Agent(id="alice", name="Alice")
    agent.counters.metacognitions_today = 1
    engine.note_urgency(agent, 9)

    assert engine.maybe_schedule(agent) is True
    await engine.apply(agent, (await jobs.drain())[0])

    assert agent.counters.metacognitions_today == 1
    assert agent.counters.urgency_pending == 0


@pytest.mark.asyncio
async def test_dropped_evaluation_changes_nothing(memory, store, jobs):
    engine, _ = make_engine(memory, jobs, responses=["nope", "still nope"])
    agent = Agent(id="alice", name="Alice")
    agent.counters.high_importance_pending = True

    engine.maybe_schedule(agent)
    outcome = (await jobs.drain())[0]

    assert outcome.succeeded is False
    assert await engine.apply(agent, outcome) is None
    assert await store.get_memories("alice") == []
    assert agent.counters.metacognitions_today == 0
    assert agent.counters.high_importance_pending is False


@pytest.mark.asyncio
async def test_secondary_goals_are_bounded(memory, jobs):
    engine, _ = make_engine(memory, jobs)
    agent = Agent(id="alice", name="Alice", secondary_goals=[f"goal-{i}" for i in range(5)])
    result = MetacognitionResult.model_validate({**EVALUATION, "schedule_modifications": []})

    await engine.apply(agent, JobOutcome(key=("alice", "metacognition", 0), result=result))

    assert len(agent.secondary_goals) == 5
    assert agent.secondary_goals[-1] == "Hire an apprentice"
    assert "goal-0" not in agent.secondary_goals
