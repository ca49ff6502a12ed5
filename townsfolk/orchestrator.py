"""
Town simulation orchestrator.

All collaborators are injected; anything omitted gets an in-process default
(in-memory store, hashing embeddings, the configured generation service).

Each tick:
1. Advance the simulated clock (day rollover resets day counters and
   schedules daily planning)
2. Expire stale reservations
3. Drain queued observation/conversation events into memory
4. Close idle movement sessions
5. Apply finished reflection/metacognition/planning jobs
6. Evaluate triggers and submit new jobs (never awaited here)
7. Update every agent in parallel: dispatch due plan steps, advance the
   activity session, persist the agent
"""

from __future__ import annotations

import asyncio
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Dict, Iterable, List, Optional

from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential, wait_none

from .activity import ActivitySession, ActivityState
from .clock import SimulationClock
from .cognition import MetacognitionEngine, PlanningEngine, ReflectionEngine
from .cognition.metacognition import JOB_KIND as METACOGNITION_JOB
from .cognition.planner import JOB_KIND as PLANNING_JOB
from .cognition.reflection import JOB_KIND as REFLECTION_JOB
from .config import Config
from .embeddings import EmbeddingService, HashingEmbeddingService
from .environment import (
    ActivityCatalog,
    CoordinationManager,
    EnvironmentGrid,
    LocationRegistry,
    PathfindingEngine,
    default_activity_catalog,
)
from .generation import GenerationService, build_generation_service
from .jobs import JobOutcome, JobRunner
from .logging_utils import Color, colored, log_deterministic, log_error, log_info, LOG_TAG_ERROR
from .memory import MemoryManager
from .persistence import InMemoryPersistence, PersistenceStrategy, PersistenceUnavailableError
from .relationships import RelationshipStore
from .scheduling import AgentAgenda
from .schemas import Agent, MemoryRecord, ObservationEvent, PlanStep


# =============================
# Module-level Exceptions
# =============================

class SimulationHaltedError(Exception):
    """Raised when the persistence layer stays unreachable for too many ticks."""

    def __init__(self, *, tick: int, failed_ticks: int, underlying: Optional[Exception]) -> None:
        self.tick = tick
        self.failed_ticks = failed_ticks
        self.underlying = underlying
        message = (
            f"Simulation halted at tick {tick}: persistence unavailable for {failed_ticks} consecutive ticks "
            f"({underlying}).\n\n"
            "Remediation tips:\n"
            "  - Check that the database is running and DATABASE_URL is correct\n"
            "  - Inspect database logs for connection limits or crashes\n"
            "  - Raise PERSISTENCE_FAILURE_LIMIT to tolerate longer outages"
        )
        super().__init__(message)


class AgentUpdateFailedError(Exception):
    """Raised when agent updates fail with errors other than store outages."""

    def __init__(self, *, tick: int, errors: Dict[str, Exception]) -> None:
        self.tick = tick
        self.errors = errors
        message_lines = [f"One or more agent updates failed at tick {tick}.", "Agents that failed:"]
        for agent_id, exc in errors.items():
            message_lines.append(f"  - {agent_id}: {type(exc).__name__}: {exc}")
        message_lines.extend(
            [
                "\nRemediation tips:",
                "  - Enable DEBUG_COORDINATION=true to trace reservations",
                "  - Check catalog and location data for the failing agents",
            ]
        )
        super().__init__("\n".join(message_lines))


@dataclass
class TickReport:
    """What happened during one tick."""

    tick: int
    day: int
    time: str
    events_processed: int = 0
    jobs_applied: List[str] = field(default_factory=list)
    jobs_submitted: List[str] = field(default_factory=list)
    dispatched: Dict[str, str] = field(default_factory=dict)
    skipped_agents: List[str] = field(default_factory=list)


class Orchestrator:
    """
    Town simulation orchestrator.

    Owns the agents, the per-agent activity sessions and agendas, and the
    tick loop. Generation work is only ever submitted to the job runner and
    applied when ``poll()`` reports it finished.
    """

    def __init__(
        self,
        *,
        agents: Iterable[Agent],
        grid: EnvironmentGrid,
        locations: LocationRegistry,
        catalog: Optional[ActivityCatalog] = None,
        persistence: Optional[PersistenceStrategy] = None,
        embeddings: Optional[EmbeddingService] = None,
        generation: Optional[GenerationService] = None,
        clock: Optional[SimulationClock] = None,
        jobs: Optional[JobRunner] = None,
        memory: Optional[MemoryManager] = None,
        coordination: Optional[CoordinationManager] = None,
        pathfinder: Optional[PathfindingEngine] = None,
        reflection: Optional[ReflectionEngine] = None,
        metacognition: Optional[MetacognitionEngine] = None,
        planning: Optional[PlanningEngine] = None,
        failure_limit: Optional[int] = None,
        persistence_retry_attempts: int = 2,
        persistence_backoff_seconds: Optional[float] = None,
    ) -> None:
        self.agents: Dict[str, Agent] = {agent.id: agent for agent in agents}
        self.grid = grid
        self.locations = locations
        self.catalog = catalog or default_activity_catalog()
        self.clock = clock or SimulationClock(
            start_time=Config.SIM_START_TIME, minutes_per_tick=Config.SIM_MINUTES_PER_TICK
        )
        self.persistence = persistence or InMemoryPersistence()
        self.embeddings = embeddings or HashingEmbeddingService()
        self.generation = generation or build_generation_service()
        self.jobs = jobs or JobRunner()
        self.memory = memory or MemoryManager(self.persistence, self.embeddings, clock=self.clock.now)
        self.memory.aggregator.align_to_tick(self.clock.minutes_per_tick * 60)
        self.coordination = coordination or CoordinationManager(grid=grid)
        self.pathfinder = pathfinder or PathfindingEngine(grid)
        self.relationships = RelationshipStore(self.persistence, clock=self.clock.now)
        self.reflection = reflection or ReflectionEngine(self.memory, self.generation, self.jobs)
        self.metacognition = metacognition or MetacognitionEngine(self.memory, self.generation, self.jobs)
        self.planning = planning or PlanningEngine(
            self.memory, self.generation, self.jobs, catalog=self.catalog
        )
        self.failure_limit = failure_limit if failure_limit is not None else Config.PERSISTENCE_FAILURE_LIMIT
        self.persistence_retry_attempts = max(1, persistence_retry_attempts)
        self.persistence_backoff_seconds = (
            persistence_backoff_seconds if persistence_backoff_seconds is not None else Config.JOB_BACKOFF_SECONDS
        )

        self.sessions: Dict[str, ActivitySession] = {}
        self.agendas: Dict[str, AgentAgenda] = {
            agent_id: AgentAgenda(agent_id, day=self.clock.day) for agent_id in self.agents
        }
        self._events: Deque[ObservationEvent] = deque()
        self._outcomes: Deque[JobOutcome] = deque()
        self._needs_plan: set = set()
        self._failed_ticks = 0
        self._initialized = False
        self.memory.store_listeners.append(self._on_memory_stored)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initialize(self) -> None:
        """Open the store, restore or register agents and queue first plans."""

        if self._initialized:
            return
        await self.persistence.initialize()
        now = self.clock.now()
        for agent_id, agent in list(self.agents.items()):
            stored = await self.persistence.get_agent(agent_id)
            if stored is not None:
                agent = stored
                self.agents[agent_id] = stored
            if agent.counters.last_metacognition_at is None:
                agent.counters.last_metacognition_at = now
            agent.counters.day = self.clock.day
            self.coordination.update_position(agent.id, agent.position)
            await self.persistence.save_agent(agent)
            self._needs_plan.add(agent_id)
        self._initialized = True
        log_info(f"[Orchestrator] {len(self.agents)} agent(s) ready at day {self.clock.day} {self.clock.time_string()}")

    async def run(self, num_ticks: Optional[int] = None) -> List[TickReport]:
        """Run ``num_ticks`` ticks (default ``Config.DEFAULT_TICK_COUNT``)."""

        await self.initialize()
        total = num_ticks if num_ticks is not None else Config.DEFAULT_TICK_COUNT
        reports = []
        for _ in range(total):
            reports.append(await self.tick())
        return reports

    async def close(self) -> None:
        await self.jobs.cancel_all()
        for session in list(self.sessions.values()):
            session.interrupt("simulation shutting down")
        self.sessions.clear()
        await self.persistence.close()

    # ------------------------------------------------------------------
    # External inputs
    # ------------------------------------------------------------------

    def submit_event(self, event: ObservationEvent) -> None:
        """Queue an observation or conversation event for the next tick."""

        self._events.append(event)

    async def request_plan(self, agent_id: str) -> bool:
        """Replace ``agent_id``'s plan with a freshly generated one."""

        return await self.planning.force_replan(self.agents[agent_id])

    # ------------------------------------------------------------------
    # Tick
    # ------------------------------------------------------------------

    async def tick(self) -> TickReport:
        if not self._initialized:
            await self.initialize()

        if self.clock.advance():
            self._start_day()
        report = TickReport(tick=self.clock.tick, day=self.clock.day, time=self.clock.time_string())
        self.coordination.cleanup_expired()

        try:
            await self._with_persistence_retry(lambda: self._housekeeping(report))
        except PersistenceUnavailableError as exc:
            self._record_outage(report, exc)
            return report

        agent_ids = list(self.agents)
        results = await asyncio.gather(
            *[self._with_persistence_retry(lambda agent_id=agent_id: self._update_agent(agent_id, report)) for agent_id in agent_ids],
            return_exceptions=True,
        )

        failures: Dict[str, Exception] = {}
        outage: Optional[PersistenceUnavailableError] = None
        for agent_id, result in zip(agent_ids, results):
            if isinstance(result, PersistenceUnavailableError):
                outage = result
                report.skipped_agents.append(agent_id)
                log_error(f"[Orchestrator] {agent_id} skipped tick {report.tick}: store unavailable")
            elif isinstance(result, Exception):
                failures[agent_id] = result
        if failures:
            raise AgentUpdateFailedError(tick=report.tick, errors=failures)

        if agent_ids and len(report.skipped_agents) == len(agent_ids):
            self._record_outage(report, outage)
        else:
            self._failed_ticks = 0
        return report

    def _start_day(self) -> None:
        day = self.clock.day
        for agent in self.agents.values():
            agent.counters.reset_for_day(day)
            self.agendas[agent.id].reset_day(day)
            self.planning.forget_before(agent, day)
            self._needs_plan.add(agent.id)
        log_info(f"[Orchestrator] Day {day} begins")

    async def _housekeeping(self, report: TickReport) -> None:
        while self._events:
            event = self._events[0]
            await self._process_event(event)
            self._events.popleft()
            report.events_processed += 1

        await self.memory.flush_movement()

        # Outcomes stay queued until applied so a store outage cannot lose them.
        self._outcomes.extend(self.jobs.poll())
        while self._outcomes:
            outcome = self._outcomes[0]
            await self._apply_outcome(outcome)
            self._outcomes.popleft()
            report.jobs_applied.append(f"{outcome.agent_id}:{outcome.kind}")

        for agent in self.agents.values():
            if agent.id in self._needs_plan:
                if self.planning.schedule_daily(agent):
                    report.jobs_submitted.append(f"{agent.id}:{PLANNING_JOB}")
                self._needs_plan.discard(agent.id)
            if self.reflection.maybe_schedule(agent):
                report.jobs_submitted.append(f"{agent.id}:{REFLECTION_JOB}")
            if self.metacognition.maybe_schedule(agent):
                report.jobs_submitted.append(f"{agent.id}:{METACOGNITION_JOB}")

    async def _with_persistence_retry(self, unit):
        wait = (
            wait_exponential(multiplier=self.persistence_backoff_seconds, max=self.persistence_backoff_seconds * 4)
            if self.persistence_backoff_seconds > 0
            else wait_none()
        )
        async for attempt in AsyncRetrying(
            retry=retry_if_exception_type(PersistenceUnavailableError),
            stop=stop_after_attempt(self.persistence_retry_attempts),
            wait=wait,
            reraise=True,
        ):
            with attempt:
                return await unit()

    def _record_outage(self, report: TickReport, exc: Optional[Exception]) -> None:
        self._failed_ticks += 1
        report.skipped_agents = list(self.agents)
        log_error(
            f"[Orchestrator] persistence unavailable ({self._failed_ticks}/{self.failure_limit} ticks): {exc}"
        )
        if self._failed_ticks >= self.failure_limit:
            print(
                colored(
                    f"{LOG_TAG_ERROR} OPERATOR ALERT: persistence down for {self._failed_ticks} ticks, halting simulation",
                    Color.RED,
                    bold=True,
                )
            )
            raise SimulationHaltedError(tick=report.tick, failed_ticks=self._failed_ticks, underlying=exc)

    # ------------------------------------------------------------------
    # Events and memory signals
    # ------------------------------------------------------------------

    async def _process_event(self, event: ObservationEvent) -> None:
        agent = self.agents.get(event.agent_id)
        if agent is None:
            log_error(f"[Orchestrator] event for unknown agent '{event.agent_id}' ignored")
            return
        payload = event.payload
        if event.kind == "observation":
            await self.memory.store_observation(
                agent.id,
                payload.get("content", ""),
                importance=int(payload.get("importance", 5)),
                location=payload.get("location"),
                related_agents=payload.get("related_agents", ()),
                related_players=payload.get("related_players", ()),
                observed_at=event.timestamp,
            )
            return

        counterpart_id = payload.get("counterpart_id", "someone")
        counterpart_kind = payload.get("counterpart_kind", "player")
        summary = payload.get("summary", "")
        urgency = int(payload.get("urgency", 0))
        sentiment = float(payload.get("sentiment", 0))
        if urgency >= self.metacognition.trigger.urgency_threshold:
            content, importance = f"IMPORTANT CONVERSATION: {summary}", 9
        else:
            content, importance = f"Had a conversation with {counterpart_id} about: {summary}", 6
        related = {"related_players": [counterpart_id]} if counterpart_kind == "player" else {"related_agents": [counterpart_id]}
        await self.memory.store_observation(
            agent.id, content, importance=importance, location=payload.get("location"), observed_at=event.timestamp, **related
        )
        await self.relationships.record_interaction(
            agent.id,
            counterpart_id,
            other_kind=counterpart_kind,
            affection_delta=sentiment,
            trust_delta=sentiment / 2,
        )
        self.metacognition.note_urgency(agent, urgency)

    def _on_memory_stored(self, record: MemoryRecord) -> None:
        agent = self.agents.get(record.agent_id)
        if agent is None:
            return
        self.reflection.note_memory(agent, record)
        self.metacognition.note_memory(agent, record)

    async def _apply_outcome(self, outcome: JobOutcome) -> None:
        agent = self.agents.get(outcome.agent_id)
        if agent is None:
            return
        if outcome.kind == REFLECTION_JOB:
            await self.reflection.apply(agent, outcome)
        elif outcome.kind == METACOGNITION_JOB:
            await self.metacognition.apply(agent, outcome)
        elif outcome.kind == PLANNING_JOB:
            await self.planning.apply(agent, outcome)

    # ------------------------------------------------------------------
    # Per-agent update
    # ------------------------------------------------------------------

    async def _update_agent(self, agent_id: str, report: TickReport) -> None:
        agent = self.agents[agent_id]
        agenda = self.agendas[agent_id]
        plan = await self.persistence.get_active_plan(agent_id)
        agenda.collect_due(plan, self.clock.minute_of_day)

        session = self.sessions.get(agent_id)
        running = session is not None and not session.is_terminal
        step = agenda.next_step(session.priority if running else None)
        if step is not None:
            if running:
                session.interrupt(f"preempted by {step.intent.name} (priority {step.priority})")
            session = self._start_session(agent, step)
            report.dispatched[agent_id] = step.intent.name

        if session is not None and not session.is_terminal:
            session.update(self.clock.minutes_per_tick)
            agent.position = session.position
        if session is not None and session.is_terminal:
            self.sessions.pop(agent_id, None)
            if plan is not None and agenda.is_exhausted(plan):
                await self.persistence.update_plan_status(plan.id, "completed")
                log_deterministic(f"[{agent.name}] finished plan '{plan.goal}'")

        await self.persistence.save_agent(agent)

    def _start_session(self, agent: Agent, step: PlanStep) -> ActivitySession:
        def on_transition(session: ActivitySession, old: ActivityState, new: ActivityState) -> None:
            agent.current_activity = session.display_label()

        session = ActivitySession(
            agent.id,
            step.intent,
            priority=step.priority,
            start_position=agent.position,
            catalog=self.catalog,
            locations=self.locations,
            pathfinder=self.pathfinder,
            coordination=self.coordination,
            on_transition=on_transition,
        )
        self.sessions[agent.id] = session
        agent.current_activity = session.display_label()
        return session

    def debug_info(self) -> dict:
        return {
            "tick": self.clock.tick,
            "day": self.clock.day,
            "time": self.clock.time_string(),
            "sessions": {agent_id: session.debug_info() for agent_id, session in self.sessions.items()},
            "pending_jobs": self.jobs.pending_count(),
            "coordination": self.coordination.debug_info(),
            "memory_filters": dict(self.memory.filter_counts),
        }
