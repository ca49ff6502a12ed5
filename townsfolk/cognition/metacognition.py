"""Metacognition: periodic self-evaluation that can rewrite the schedule.

An evaluation reviews a performance snapshot (recent memories, plan outcomes
and reflections) and returns a ``MetacognitionResult``. Each proposed
``ScheduleModification`` becomes a new plan step with source
``"metacognition"`` and its own priority; the agenda dispatches it ahead of
lower-priority standing steps that fall due at the same time.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta
from typing import List, Optional, Set

from townsfolk.config import Config
from townsfolk.generation import GenerationService
from townsfolk.jobs import JobKey, JobOutcome, JobRunner
from townsfolk.llm_utils import generate_structured
from townsfolk.logging_utils import log_error, log_llm, log_success
from townsfolk.memory import MemoryManager
from townsfolk.schemas import (
    ActivityIntent,
    Agent,
    MemoryRecord,
    MetacognitionResult,
    Plan,
    PlanStep,
    ScheduleModification,
)

from .cadence import REASON_URGENCY, MetacognitionTrigger
from .prompts import DEFAULT_PROMPTS, PromptLibrary, format_agent_profile, format_memories, render_prompt


JOB_KIND = "metacognition"
MAX_SECONDARY_GOALS = 5


@dataclass
class PerformanceSnapshot:
    """Inputs for one self-evaluation."""

    memories: List[MemoryRecord] = field(default_factory=list)
    reflections: List[MemoryRecord] = field(default_factory=list)
    plans: List[Plan] = field(default_factory=list)
    active_plan: Optional[Plan] = None

    @property
    def completed(self) -> int:
        return sum(1 for plan in self.plans if plan.status == "completed")

    @property
    def abandoned(self) -> int:
        return sum(1 for plan in self.plans if plan.status == "abandoned")


def modification_to_step(modification: ScheduleModification, *, created_at) -> PlanStep:
    return PlanStep(
        time=modification.time,
        intent=ActivityIntent(
            name=modification.activity,
            location=modification.location,
            description=modification.description or modification.reason,
        ),
        priority=modification.priority,
        created_at=created_at,
        source="metacognition",
    )


class MetacognitionEngine:
    """Triggers, runs and applies self-evaluations."""

    def __init__(
        self,
        memory: MemoryManager,
        generation: GenerationService,
        jobs: JobRunner,
        *,
        trigger: Optional[MetacognitionTrigger] = None,
        prompts: Optional[PromptLibrary] = None,
        lookback_hours: Optional[float] = None,
        max_attempts: int = 2,
    ) -> None:
        self.memory = memory
        self.generation = generation
        self.jobs = jobs
        self.trigger = trigger or MetacognitionTrigger.from_config()
        self.prompts = prompts or DEFAULT_PROMPTS
        self.lookback_hours = lookback_hours if lookback_hours is not None else Config.METACOGNITION_LOOKBACK_HOURS
        self.max_attempts = max_attempts
        # Outcomes whose memory is written but whose schedule change is not yet applied.
        self._recorded: Set[JobKey] = set()

    # ------------------------------------------------------------------
    # Signals
    # ------------------------------------------------------------------

    def note_memory(self, agent: Agent, record: MemoryRecord) -> None:
        if record.kind == "observation" and record.importance >= self.trigger.importance_trigger:
            agent.counters.high_importance_pending = True

    def note_urgency(self, agent: Agent, urgency: int) -> None:
        if urgency >= self.trigger.urgency_threshold:
            agent.counters.urgency_pending = max(agent.counters.urgency_pending, urgency)

    def maybe_schedule(self, agent: Agent) -> bool:
        counters = agent.counters
        now = self.memory.clock()
        reason = self.trigger.reason(counters, now)
        if reason is None or JOB_KIND in self.jobs.pending_kinds(agent.id):
            return False

        key = (agent.id, JOB_KIND, counters.metacognition_epoch)
        counters.metacognition_epoch += 1
        # Signals are consumed at submission; a dropped job waits for a fresh one.
        counters.high_importance_pending = False
        counters.urgency_pending = 0
        counters.last_metacognition_at = now

        snapshot_agent = agent.model_copy(deep=True)
        submitted = self.jobs.submit(
            key,
            lambda: self.evaluate(snapshot_agent, reason),
            context={"reason": reason},
        )
        if submitted:
            log_llm(f"[Metacognition] {agent.name}: evaluating ({reason})")
        return submitted

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    async def build_snapshot(self, agent: Agent) -> PerformanceSnapshot:
        since = self.memory.clock() - timedelta(hours=self.lookback_hours)
        persistence = self.memory.persistence
        memories = await persistence.get_memories(
            agent.id, since=since, kinds=["observation", "plan", "metacognition"], order="importance", limit=30
        )
        reflections = await persistence.get_memories(agent.id, since=since, kinds=["reflection"], limit=5)
        plans = await persistence.get_plans(agent.id, since=since)
        active = await persistence.get_active_plan(agent.id)
        return PerformanceSnapshot(memories=memories, reflections=reflections, plans=plans, active_plan=active)

    async def evaluate(self, agent: Agent, reason: str) -> MetacognitionResult:
        snapshot = await self.build_snapshot(agent)
        if snapshot.active_plan is not None:
            current_schedule = "\n".join(
                f"- {time}: {intent.name}" for time, intent in snapshot.active_plan.schedule().items()
            )
        else:
            current_schedule = "(no active plan)"
        prompt = render_prompt(
            self.prompts.get("metacognition"),
            {
                "agent_profile": format_agent_profile(agent),
                "trigger_reason": reason,
                "lookback_hours": f"{self.lookback_hours:g}",
                "plans_total": str(len(snapshot.plans)),
                "plans_completed": str(snapshot.completed),
                "plans_abandoned": str(snapshot.abandoned),
                "current_schedule": current_schedule,
                "reflections_text": format_memories(snapshot.reflections),
                "memories_text": format_memories(snapshot.memories),
            },
        )
        return await generate_structured(
            self.generation, prompt, MetacognitionResult, max_attempts=self.max_attempts
        )

    # ------------------------------------------------------------------
    # Application
    # ------------------------------------------------------------------

    async def apply(self, agent: Agent, outcome: JobOutcome) -> Optional[MetacognitionResult]:
        if not outcome.succeeded:
            log_error(f"[Metacognition] {agent.name}: evaluation dropped ({outcome.error})")
            self._forget_closed(agent)
            return None

        result: MetacognitionResult = outcome.result
        if outcome.key not in self._recorded:
            await self.memory.store_metacognition(agent.id, self._summarize(result), importance=result.importance_score)
            self._recorded.add(outcome.key)

        for goal in result.goal_modifications:
            if goal and goal not in agent.secondary_goals:
                agent.secondary_goals.append(goal)
        del agent.secondary_goals[:-MAX_SECONDARY_GOALS]

        steps = [
            modification_to_step(modification, created_at=self.memory.clock())
            for modification in result.schedule_modifications
        ]
        if steps:
            await self._insert_steps(agent, steps)

        self._recorded.discard(outcome.key)
        self._forget_closed(agent)
        if outcome.context.get("reason") != REASON_URGENCY:
            agent.counters.metacognitions_today += 1
        log_success(
            f"[Metacognition] {agent.name}: {len(steps)} schedule change(s); {result.performance_evaluation[:60]}"
        )
        return result

    def _forget_closed(self, agent: Agent) -> None:
        current = agent.counters.metacognition_epoch
        self.jobs.forget(lambda key: key[:2] == (agent.id, JOB_KIND) and key[2] < current)

    async def _insert_steps(self, agent: Agent, steps: List[PlanStep]) -> None:
        persistence = self.memory.persistence
        active = await persistence.get_active_plan(agent.id)
        if active is not None:
            await persistence.add_plan_steps(active.id, steps)
            return
        plan = Plan(
            agent_id=agent.id,
            goal="Adjusted schedule after self-evaluation",
            steps=steps,
            priority=max(step.priority for step in steps),
            plan_day=agent.counters.day,
            source="metacognition",
            created_at=self.memory.clock(),
        )
        await persistence.activate_plan(plan)

    @staticmethod
    def _summarize(result: MetacognitionResult) -> str:
        parts = [f"Self-evaluation: {result.performance_evaluation}"]
        if result.strategy_adjustments:
            parts.append("Adjustments: " + "; ".join(result.strategy_adjustments))
        if result.self_awareness_notes:
            parts.append(f"Notes: {result.self_awareness_notes}")
        return " ".join(parts)
