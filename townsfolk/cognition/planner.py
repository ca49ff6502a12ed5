"""Daily planning.

Once per simulated day (or on demand) each agent asks the generation service
for a full-day plan. A plan that cannot be parsed, or a job that is dropped,
falls back to the agent's static schedule template so the agent always has
something to do.

Activation goes through ``PersistenceStrategy.activate_plan`` which abandons
the previous active plan in the same transaction. A plan whose request is
older than the currently active plan only replaces it with a strictly higher
priority.
"""

from __future__ import annotations

from datetime import datetime
from typing import Dict, Optional

from pydantic import ValidationError

from townsfolk.environment.catalog import ActivityCatalog
from townsfolk.generation import GenerationService
from townsfolk.jobs import JobKey, JobOutcome, JobRunner
from townsfolk.llm_utils import generate_structured
from townsfolk.logging_utils import log_error, log_info, log_llm, log_success
from townsfolk.memory import MemoryManager
from townsfolk.schemas import ActivityIntent, Agent, GeneratedPlan, Plan, PlanStep

from .prompts import DEFAULT_PROMPTS, PromptLibrary, format_agent_profile, format_memories, render_prompt


JOB_KIND = "plan"

DEFAULT_SCHEDULE: Dict[str, str] = {
    "06:00": "wake_up",
    "07:00": "work",
    "12:00": "lunch",
    "13:00": "work",
    "18:00": "dinner",
    "19:00": "personal_time",
    "20:00": "social",
    "22:00": "prepare_for_bed",
}

FALLBACK_PRIORITY = 4


class PlanParseError(ValueError):
    """Raised when generation output cannot be turned into a plan."""

    def __init__(self, *, agent_id: str, underlying: Exception) -> None:
        self.agent_id = agent_id
        self.underlying = underlying
        message = (
            f"Daily plan for {agent_id} could not be parsed: {underlying}\n\n"
            "Remediation tips:\n"
            "  - DEBUG_LLM=true to inspect the planning prompt and raw response\n"
            "  - Check that the model returns JSON with daily_goal and a non-empty schedule\n"
            "  - The agent's static schedule template is used until the next plan succeeds"
        )
        super().__init__(message)


class PlanningEngine:
    """Generates, falls back and activates daily plans."""

    def __init__(
        self,
        memory: MemoryManager,
        generation: GenerationService,
        jobs: JobRunner,
        *,
        catalog: Optional[ActivityCatalog] = None,
        prompts: Optional[PromptLibrary] = None,
        max_attempts: int = 2,
        context_memories: int = 10,
    ) -> None:
        self.memory = memory
        self.generation = generation
        self.jobs = jobs
        self.catalog = catalog
        self.prompts = prompts or DEFAULT_PROMPTS
        self.max_attempts = max_attempts
        self.context_memories = context_memories
        self._replans: Dict[str, int] = {}
        # Fallback plans built for outcomes still being applied.
        self._fallbacks: Dict[JobKey, Plan] = {}

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    def schedule_daily(self, agent: Agent) -> bool:
        """Queue the day's planning job; one per agent per day."""

        return self._submit(agent, (agent.id, JOB_KIND, agent.counters.day))

    async def force_replan(self, agent: Agent) -> bool:
        """Abandon the active plan and regenerate immediately."""

        active = await self.memory.persistence.get_active_plan(agent.id)
        if active is not None:
            await self.memory.persistence.update_plan_status(active.id, "abandoned")
        count = self._replans.get(agent.id, 0) + 1
        self._replans[agent.id] = count
        return self._submit(agent, (agent.id, JOB_KIND, f"{agent.counters.day}-replan-{count}"))

    def forget_before(self, agent: Agent, day: int) -> int:
        """Release planning keys (daily and replan) of days before ``day``."""

        return self.jobs.forget(
            lambda key: key[:2] == (agent.id, JOB_KIND) and int(str(key[2]).split("-", 1)[0]) < day
        )

    def _submit(self, agent: Agent, key) -> bool:
        snapshot = agent.model_copy(deep=True)
        requested_at = self.memory.clock()
        submitted = self.jobs.submit(
            key,
            lambda: self.generate(snapshot, requested_at=requested_at),
            context={"requested_at": requested_at, "day": agent.counters.day},
        )
        if submitted:
            log_llm(f"[Planning] {agent.name}: requesting plan for day {agent.counters.day}")
        return submitted

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    async def generate(self, agent: Agent, *, requested_at: datetime) -> Plan:
        persistence = self.memory.persistence
        memories = await self.memory.get_contextual_memories(
            agent.id, f"{agent.primary_goal} plans for today", limit=self.context_memories
        )
        previous = await persistence.get_plans(agent.id)
        if previous:
            last_schedule = "\n".join(f"- {time}: {intent.name}" for time, intent in previous[0].schedule().items())
        else:
            last_schedule = "\n".join(f"- {time}: {name}" for time, name in self.template_for(agent).items())
        prompt = render_prompt(
            self.prompts.get("daily_plan"),
            {
                "agent_profile": format_agent_profile(agent),
                "day": str(agent.counters.day),
                "last_schedule": last_schedule,
                "memories_text": format_memories(memories),
                "activity_names": ", ".join(self.catalog.names()) if self.catalog else "any",
            },
        )
        try:
            generated = await generate_structured(
                self.generation, prompt, GeneratedPlan, max_attempts=self.max_attempts
            )
        except ValidationError as exc:
            raise PlanParseError(agent_id=agent.id, underlying=exc) from exc
        return self.plan_from_generated(agent, generated, requested_at=requested_at)

    def plan_from_generated(self, agent: Agent, generated: GeneratedPlan, *, requested_at: datetime) -> Plan:
        steps = []
        for time, entry in generated.schedule.items():
            if self.catalog is not None and entry.activity not in self.catalog:
                log_error(f"[Planning] {agent.name}: '{entry.activity}' at {time} is not in the activity catalog")
            steps.append(
                PlanStep(
                    time=time,
                    intent=ActivityIntent(name=entry.activity, location=entry.location, description=entry.description),
                    priority=generated.priority,
                    created_at=requested_at,
                    source="generated",
                )
            )
        return Plan(
            agent_id=agent.id,
            goal=generated.daily_goal,
            steps=steps,
            priority=generated.priority,
            plan_day=agent.counters.day,
            reasoning=generated.reasoning,
            source="generated",
            created_at=requested_at,
        )

    @staticmethod
    def template_for(agent: Agent) -> Dict[str, str]:
        return dict(agent.schedule_template) if agent.schedule_template else dict(DEFAULT_SCHEDULE)

    def fallback_plan(self, agent: Agent, *, requested_at: datetime) -> Plan:
        steps = [
            PlanStep(
                time=time,
                intent=ActivityIntent(name=name),
                priority=FALLBACK_PRIORITY,
                created_at=requested_at,
                source="fallback",
            )
            for time, name in self.template_for(agent).items()
        ]
        return Plan(
            agent_id=agent.id,
            goal=f"Follow {agent.name}'s usual routine",
            steps=steps,
            priority=FALLBACK_PRIORITY,
            plan_day=agent.counters.day,
            source="fallback",
            created_at=requested_at,
        )

    # ------------------------------------------------------------------
    # Application
    # ------------------------------------------------------------------

    async def apply(self, agent: Agent, outcome: JobOutcome) -> Optional[Plan]:
        """Activate the finished plan (or the fallback); returns the plan if activated."""

        requested_at = outcome.context.get("requested_at") or self.memory.clock()
        if outcome.succeeded:
            candidate: Plan = outcome.result
        else:
            candidate = self._fallbacks.get(outcome.key)
            if candidate is None:
                log_error(f"[Planning] {agent.name}: using static schedule ({outcome.error})")
                candidate = self.fallback_plan(agent, requested_at=requested_at)
                self._fallbacks[outcome.key] = candidate
        plan = await self.activate(agent, candidate)
        self._fallbacks.pop(outcome.key, None)
        self.forget_before(agent, agent.counters.day)
        return plan

    async def activate(self, agent: Agent, candidate: Plan) -> Optional[Plan]:
        persistence = self.memory.persistence
        active = await persistence.get_active_plan(agent.id)
        if active is not None and active.id == candidate.id:
            # Activated by an earlier attempt that failed before recording it.
            await self.memory.store_plan_memory(agent.id, candidate.goal)
            return candidate
        if active is not None and not self.supersedes(candidate, active):
            await persistence.save_plan(candidate.model_copy(update={"status": "abandoned"}))
            log_info(
                f"[Planning] {agent.name}: kept newer plan '{active.goal}'; stored late plan '{candidate.goal}' as history"
            )
            return None
        await persistence.activate_plan(candidate)
        await self.memory.store_plan_memory(agent.id, candidate.goal)
        log_success(f"[Planning] {agent.name}: {candidate.goal} ({len(candidate.steps)} steps, {candidate.source})")
        return candidate

    @staticmethod
    def supersedes(candidate: Plan, active: Plan) -> bool:
        """Whether ``candidate`` may replace ``active``.

        A candidate requested no earlier than the active plan always wins. A
        stale candidate wins only on strictly higher priority.
        """

        if candidate.created_at >= active.created_at:
            return True
        return candidate.priority > active.priority
