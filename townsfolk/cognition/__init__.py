"""Cognition engines: reflection, metacognition and daily planning."""

from .cadence import (
    REASON_HIGH_IMPORTANCE,
    REASON_SCHEDULED,
    REASON_URGENCY,
    MetacognitionTrigger,
    ReflectionTrigger,
)
from .metacognition import MetacognitionEngine, PerformanceSnapshot, modification_to_step
from .planner import DEFAULT_SCHEDULE, PlanningEngine, PlanParseError
from .prompts import DEFAULT_PROMPTS, PromptLibrary, PromptTemplate, render_prompt
from .reflection import ReflectionDraft, ReflectionEngine

__all__ = [
    "DEFAULT_PROMPTS",
    "DEFAULT_SCHEDULE",
    "MetacognitionEngine",
    "MetacognitionTrigger",
    "PerformanceSnapshot",
    "PlanParseError",
    "PlanningEngine",
    "PromptLibrary",
    "PromptTemplate",
    "REASON_HIGH_IMPORTANCE",
    "REASON_SCHEDULED",
    "REASON_URGENCY",
    "ReflectionDraft",
    "ReflectionEngine",
    "ReflectionTrigger",
    "modification_to_step",
    "render_prompt",
]
