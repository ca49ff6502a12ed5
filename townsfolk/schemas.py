"""
Pydantic schemas for the Townsfolk agent core.

All persisted records and the payloads exchanged with generation services are
defined here. Ephemeral runtime objects (activity sessions, reservations, jobs)
live next to the components that own them.

Design Philosophy:
- Memory records are immutable once stored; only ``consolidated`` may flip
- Relationships are keyed by id pairs, never by object references
- Plans carry their own steps so activation is a single atomic write
"""

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional, Tuple
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator

from townsfolk.clock import parse_time


MemoryKind = Literal["observation", "reflection", "plan", "metacognition"]
PlanStatus = Literal["active", "completed", "abandoned"]
PlanSource = Literal["generated", "fallback", "metacognition"]
Position = Tuple[int, int]


# ============================================================================
# Memory Schemas
# ============================================================================


class MemoryRecord(BaseModel):
    """One stored unit of an agent's experience.

    Records are frozen: content, embedding and created_at never change after
    persistence. Stores flip ``consolidated`` by writing a ``model_copy``.
    """

    model_config = ConfigDict(frozen=True)

    id: UUID = Field(default_factory=uuid4)
    agent_id: str
    kind: MemoryKind
    content: str
    importance: int = Field(..., ge=1, le=10)
    emotional_relevance: int = Field(5, ge=1, le=10)
    tags: List[str] = Field(default_factory=list)
    related_agents: List[str] = Field(default_factory=list)
    related_players: List[str] = Field(default_factory=list)
    location: Optional[str] = None
    created_at: datetime
    embedding: List[float] = Field(default_factory=list)
    consolidated: bool = False

    def mentions(self, counterpart_id: str) -> bool:
        return counterpart_id in self.related_agents or counterpart_id in self.related_players


class MemoryStats(BaseModel):
    """Aggregate view over one agent's memory stream."""

    total: int = 0
    recent: int = Field(0, description="Records created in the last 24 simulated hours")
    by_kind: Dict[str, int] = Field(default_factory=dict)
    average_importance: float = 0.0


# ============================================================================
# Agent Schemas
# ============================================================================


class DayCounters(BaseModel):
    """Day-scoped cognition bookkeeping for one agent."""

    day: int = 1
    cumulative_importance: int = 0
    memories_since_reflection: int = 0
    reflections_today: int = 0
    metacognitions_today: int = 0
    # Incremented whenever a reflection window closes (success or drop) or a
    # metacognition job is submitted, so job keys never collide.
    reflection_epoch: int = 0
    metacognition_epoch: int = 0
    last_reflection_at: Optional[datetime] = None
    last_metacognition_at: Optional[datetime] = None
    # Pending metacognition signals raised since the last evaluation.
    high_importance_pending: bool = False
    urgency_pending: int = 0

    def reset_for_day(self, day: int) -> None:
        self.day = day
        self.reflections_today = 0
        self.metacognitions_today = 0


class Agent(BaseModel):
    """Non-player character state owned by the orchestrator."""

    id: str
    name: str
    persona: str = Field("", description="Free-text constitution/background")
    primary_goal: str = ""
    secondary_goals: List[str] = Field(default_factory=list)
    personality_traits: List[str] = Field(default_factory=list)
    position: Position = (0, 0)
    current_activity: str = "idle"
    energy: int = Field(100, ge=0, le=100)
    mood: str = "neutral"
    # Static "HH:MM" -> activity name schedule used when generation fails.
    schedule_template: Dict[str, str] = Field(default_factory=dict)
    counters: DayCounters = Field(default_factory=DayCounters)


class Relationship(BaseModel):
    """Directed view of an agent↔agent or agent↔player relationship."""

    subject_id: str
    other_id: str
    other_kind: Literal["agent", "player"] = "agent"
    affection: float = Field(0.0, ge=-100.0, le=100.0)
    trust: float = Field(0.0, ge=-100.0, le=100.0)
    interaction_frequency: int = 0
    last_interaction: Optional[datetime] = None


# ============================================================================
# Planning Schemas
# ============================================================================


class ActivityIntent(BaseModel):
    """What an agent intends to do at a scheduled time."""

    name: str
    location: Optional[str] = Field(None, description="Location id hint")
    description: str = ""
    parameters: Dict[str, Any] = Field(default_factory=dict)


class PlanStep(BaseModel):
    """A time-keyed activity intent with its scheduling priority."""

    id: UUID = Field(default_factory=uuid4)
    time: str
    intent: ActivityIntent
    priority: int = Field(5, ge=1, le=10)
    created_at: datetime
    source: PlanSource = "generated"

    @field_validator("time")
    @classmethod
    def _normalize_time(cls, value: str) -> str:
        minutes = parse_time(value)
        return f"{minutes // 60:02d}:{minutes % 60:02d}"

    @property
    def minute_of_day(self) -> int:
        return parse_time(self.time)


class Plan(BaseModel):
    """A full-day plan for one agent."""

    id: UUID = Field(default_factory=uuid4)
    agent_id: str
    goal: str
    steps: List[PlanStep] = Field(default_factory=list)
    status: PlanStatus = "active"
    priority: int = Field(5, ge=1, le=10)
    plan_day: int = 1
    reasoning: str = ""
    source: PlanSource = "generated"
    created_at: datetime

    def ordered_steps(self) -> List[PlanStep]:
        return sorted(self.steps, key=lambda step: (step.minute_of_day, -step.priority, step.created_at))

    def schedule(self) -> Dict[str, ActivityIntent]:
        """Ordered time -> intent view (highest priority wins a shared slot)."""

        view: Dict[str, ActivityIntent] = {}
        for step in self.ordered_steps():
            view.setdefault(step.time, step.intent)
        return view


class ScheduleModification(BaseModel):
    """A schedule change proposed by a self-evaluation."""

    time: str
    activity: str
    description: str = ""
    location: Optional[str] = None
    reason: str = ""
    priority: int = Field(8, ge=1, le=10)

    @field_validator("time")
    @classmethod
    def _check_time(cls, value: str) -> str:
        parse_time(value)
        return value


class MetacognitionResult(BaseModel):
    """Parsed self-evaluation returned by the generation service."""

    performance_evaluation: str
    strategy_adjustments: List[str]
    goal_modifications: List[str] = Field(default_factory=list)
    schedule_modifications: List[ScheduleModification]
    self_awareness_notes: str = ""
    importance_score: int = Field(8, ge=1, le=10)


class GeneratedScheduleEntry(BaseModel):
    activity: str
    description: str = ""
    location: Optional[str] = None


class GeneratedPlan(BaseModel):
    """Daily plan payload returned by the generation service."""

    daily_goal: str
    schedule: Dict[str, GeneratedScheduleEntry]
    reasoning: str = ""
    priority: int = Field(5, ge=1, le=10)

    @field_validator("schedule", mode="before")
    @classmethod
    def _accept_plain_strings(cls, value: Any) -> Any:
        # Models sometimes answer {"7:00": "work"} instead of an object.
        if isinstance(value, dict):
            return {
                key: {"activity": entry} if isinstance(entry, str) else entry
                for key, entry in value.items()
            }
        return value

    @field_validator("schedule")
    @classmethod
    def _check_times(cls, value: Dict[str, GeneratedScheduleEntry]) -> Dict[str, GeneratedScheduleEntry]:
        if not value:
            raise ValueError("schedule must contain at least one entry")
        for key in value:
            parse_time(key)
        return value


# ============================================================================
# Event feed
# ============================================================================


class ObservationEvent(BaseModel):
    """External observation/conversation event pushed into the core.

    ``observation`` payload keys: content, importance, location,
    related_agents, related_players.
    ``conversation`` payload keys: counterpart_id, counterpart_kind, summary,
    urgency (0-10), sentiment (-10..10).
    ``timestamp`` is the simulated time of the event; unset means the tick
    that processes it.
    """

    agent_id: str
    kind: Literal["observation", "conversation"] = "observation"
    payload: Dict[str, Any] = Field(default_factory=dict)
    timestamp: Optional[datetime] = None
