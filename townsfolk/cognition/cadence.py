"""Trigger rules deciding when reflection and metacognition run.

Both triggers are pure functions of an agent's day counters (plus the
current simulated time) so the orchestrator can evaluate them every tick
without touching the store.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from townsfolk.config import Config
from townsfolk.schemas import DayCounters


REASON_URGENCY = "urgency"
REASON_HIGH_IMPORTANCE = "high_importance"
REASON_SCHEDULED = "scheduled"


@dataclass(frozen=True)
class ReflectionTrigger:
    """Importance-accumulation trigger with a per-day cap."""

    importance_threshold: int = 150
    daily_limit: int = 3
    min_memories: int = 5

    @classmethod
    def from_config(cls) -> "ReflectionTrigger":
        return cls(
            importance_threshold=Config.REFLECTION_IMPORTANCE_THRESHOLD,
            daily_limit=Config.REFLECTION_DAILY_LIMIT,
            min_memories=Config.REFLECTION_MIN_MEMORIES,
        )

    def should_reflect(self, counters: DayCounters) -> bool:
        return (
            counters.cumulative_importance >= self.importance_threshold
            and counters.reflections_today < self.daily_limit
            and counters.memories_since_reflection >= self.min_memories
        )


@dataclass(frozen=True)
class MetacognitionTrigger:
    """Self-evaluation trigger.

    Three signals fire it: a stored memory with importance at or above
    ``importance_trigger``, ``interval_hours`` of simulated time since the last
    evaluation, or conversational urgency at or above ``urgency_threshold``.
    The daily cap applies to the first two only.
    """

    daily_limit: int = 1
    interval_hours: float = 24.0
    urgency_threshold: int = 6
    importance_trigger: int = 8

    @classmethod
    def from_config(cls) -> "MetacognitionTrigger":
        return cls(
            daily_limit=Config.METACOGNITION_DAILY_LIMIT,
            interval_hours=Config.METACOGNITION_INTERVAL_HOURS,
            urgency_threshold=Config.METACOGNITION_URGENCY_THRESHOLD,
            importance_trigger=Config.METACOGNITION_IMPORTANCE_TRIGGER,
        )

    def reason(self, counters: DayCounters, now: datetime) -> Optional[str]:
        """Return why an evaluation is due, or None."""

        if counters.urgency_pending >= self.urgency_threshold:
            return REASON_URGENCY
        if counters.metacognitions_today >= self.daily_limit:
            return None
        if counters.high_importance_pending:
            return REASON_HIGH_IMPORTANCE
        last = counters.last_metacognition_at
        if last is not None and now - last >= timedelta(hours=self.interval_hours):
            return REASON_SCHEDULED
        return None
