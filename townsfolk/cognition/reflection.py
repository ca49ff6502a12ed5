"""Reflection: synthesizing insight from accumulated memories.

Every stored observation adds its importance to the agent's counters. Once
the running total crosses the threshold (with enough memories and the daily
cap not yet reached) a reflection job is submitted under the key
``(agent_id, "reflection", reflection_epoch)``. The epoch advances when the
job's outcome is applied, whether it succeeded or was dropped, so one
accumulation window yields at most one reflection.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional
from uuid import UUID

from townsfolk.generation import GenerationService
from townsfolk.jobs import JobKey, JobOutcome, JobRunner
from townsfolk.logging_utils import log_error, log_llm, log_success
from townsfolk.memory import MemoryManager
from townsfolk.schemas import Agent, MemoryRecord
from townsfolk.config import Config

from .cadence import ReflectionTrigger
from .prompts import DEFAULT_PROMPTS, PromptLibrary, format_agent_profile, format_memories, render_prompt


JOB_KIND = "reflection"


@dataclass
class ReflectionDraft:
    """Generated insight awaiting persistence."""

    content: str
    source_ids: List[UUID] = field(default_factory=list)


class ReflectionEngine:
    """Triggers, generates and applies reflections for every agent."""

    def __init__(
        self,
        memory: MemoryManager,
        generation: GenerationService,
        jobs: JobRunner,
        *,
        trigger: Optional[ReflectionTrigger] = None,
        prompts: Optional[PromptLibrary] = None,
        memory_limit: Optional[int] = None,
    ) -> None:
        self.memory = memory
        self.generation = generation
        self.jobs = jobs
        self.trigger = trigger or ReflectionTrigger.from_config()
        self.prompts = prompts or DEFAULT_PROMPTS
        self.memory_limit = memory_limit if memory_limit is not None else Config.REFLECTION_MEMORY_LIMIT
        # Reflections already written for outcomes still being applied.
        self._stored: Dict[JobKey, MemoryRecord] = {}

    def note_memory(self, agent: Agent, record: MemoryRecord) -> None:
        """Accumulate a freshly stored observation into the agent's counters."""

        if record.kind != "observation":
            return
        agent.counters.cumulative_importance += record.importance
        agent.counters.memories_since_reflection += 1

    def job_key(self, agent: Agent) -> JobKey:
        return (agent.id, JOB_KIND, agent.counters.reflection_epoch)

    def maybe_schedule(self, agent: Agent) -> bool:
        """Submit a reflection job when the trigger fires. Returns True if submitted."""

        if not self.trigger.should_reflect(agent.counters):
            return False
        key = self.job_key(agent)
        if self.jobs.is_pending(key):
            return False
        snapshot = agent.model_copy(deep=True)
        since = agent.counters.last_reflection_at
        submitted = self.jobs.submit(key, lambda: self.generate(snapshot, since=since))
        if submitted:
            log_llm(
                f"[Reflection] {agent.name}: importance {agent.counters.cumulative_importance} "
                f"over {agent.counters.memories_since_reflection} memories, reflecting"
            )
        return submitted

    async def generate(self, agent: Agent, *, since: Optional[datetime] = None) -> ReflectionDraft:
        memories = await self.memory.persistence.get_memories(
            agent.id,
            since=since,
            kinds=["observation"],
            order="importance",
            limit=self.memory_limit,
        )
        prompt = render_prompt(
            self.prompts.get("reflection"),
            {
                "agent_profile": format_agent_profile(agent),
                "memories_text": format_memories(memories),
            },
        )
        text = (await self.generation.submit(prompt)).strip()
        if not text:
            raise ValueError("generation service returned an empty reflection")
        return ReflectionDraft(content=text, source_ids=[memory.id for memory in memories])

    async def apply(self, agent: Agent, outcome: JobOutcome) -> Optional[MemoryRecord]:
        """Persist a finished reflection and close its accumulation window.

        Safe to call again with the same outcome after a store outage: the
        reflection record is written once per job key.
        """

        record: Optional[MemoryRecord] = None
        if outcome.succeeded:
            draft: ReflectionDraft = outcome.result
            record = self._stored.get(outcome.key)
            if record is None:
                record = await self.memory.store_reflection(agent.id, draft.content)
                self._stored[outcome.key] = record
                agent.counters.reflections_today += 1
                log_success(f"[Reflection] {agent.name}: {draft.content[:80]}")
            for memory_id in draft.source_ids:
                await self.memory.mark_consolidated(memory_id)
        else:
            log_error(f"[Reflection] {agent.name}: skipped ({outcome.error})")

        epoch = outcome.key[2]
        if epoch == agent.counters.reflection_epoch:
            counters = agent.counters
            counters.cumulative_importance = 0
            counters.memories_since_reflection = 0
            counters.reflection_epoch += 1
            counters.last_reflection_at = self.memory.clock()
        self._stored.pop(outcome.key, None)
        current = agent.counters.reflection_epoch
        self.jobs.forget(lambda key: key[:2] == (agent.id, JOB_KIND) and key[2] < current)
        return record
