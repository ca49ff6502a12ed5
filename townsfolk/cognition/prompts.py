"""Prompt templates for the cognition stages.

Templates use ``{{double_brace}}`` placeholders so literal JSON braces in
examples need no escaping. ``render_prompt`` does plain string replacement.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, Mapping

from townsfolk.schemas import Agent, MemoryRecord


@dataclass
class PromptTemplate:
    """Represents a templated prompt with placeholders."""

    name: str
    system: str
    user: str
    description: str = ""


class PromptLibrary:
    """Container for named prompt templates per cognition stage."""

    def __init__(self) -> None:
        self.templates: Dict[str, PromptTemplate] = {}

    def register(self, template: PromptTemplate) -> None:
        self.templates[template.name] = template

    def get(self, name: str) -> PromptTemplate:
        return self.templates[name]


def render_prompt(template: PromptTemplate, values: Mapping[str, str]) -> str:
    """Fill ``{{key}}`` placeholders and join system and user text."""

    text = f"{template.system}\n\n{template.user}"
    for key, value in values.items():
        text = text.replace("{{" + key + "}}", str(value))
    return text


def format_agent_profile(agent: Agent) -> str:
    lines = [f"Name: {agent.name} ({agent.id})"]
    if agent.persona:
        lines.append(f"Persona: {agent.persona}")
    if agent.personality_traits:
        lines.append(f"Traits: {', '.join(agent.personality_traits)}")
    lines.append(f"Primary goal: {agent.primary_goal or 'none stated'}")
    if agent.secondary_goals:
        lines.append("Secondary goals: " + "; ".join(agent.secondary_goals))
    lines.append(f"Mood: {agent.mood}, energy: {agent.energy}/100")
    return "\n".join(lines)


def format_memories(memories: Iterable[MemoryRecord]) -> str:
    lines = [
        f"- [{memory.created_at:%Y-%m-%d %H:%M}] ({memory.kind}, importance {memory.importance}) {memory.content}"
        for memory in memories
    ]
    return "\n".join(lines) if lines else "(no memories)"


DEFAULT_PROMPTS = PromptLibrary()

DEFAULT_PROMPTS.register(
    PromptTemplate(
        name="reflection",
        system=(
            "You are the reflection module of a town resident. Read the experiences below and write one "
            "higher-level insight the resident has drawn from them, in the first person."
        ),
        user=(
            "Resident profile:\n{{agent_profile}}\n\n"
            "Recent experiences (most important first):\n{{memories_text}}\n\n"
            "Write two to four sentences. Respond with the insight text only."
        ),
        description="Synthesizes an insight from accumulated memories.",
    )
)

DEFAULT_PROMPTS.register(
    PromptTemplate(
        name="metacognition",
        system=(
            "You are the self-evaluation module of a town resident. Judge how well the resident is progressing "
            "toward their goals and propose schedule changes where they would help. Always follow the JSON "
            "schema shown in the example."
        ),
        user=(
            "Resident profile:\n{{agent_profile}}\n\n"
            "Why this evaluation is happening: {{trigger_reason}}\n\n"
            "Plans in the last {{lookback_hours}} hours: {{plans_total}} total, {{plans_completed}} completed, "
            "{{plans_abandoned}} abandoned.\n"
            "Current schedule:\n{{current_schedule}}\n\n"
            "Recent reflections:\n{{reflections_text}}\n\n"
            "Recent memories:\n{{memories_text}}\n\n"
            "Example output:\n"
            "{\n"
            "  \"performance_evaluation\": \"I keep skipping lunch and my work suffers in the afternoon.\",\n"
            "  \"strategy_adjustments\": [\"Take a proper lunch break\"],\n"
            "  \"goal_modifications\": [],\n"
            "  \"schedule_modifications\": [\n"
            "    {\"time\": \"12:00\", \"activity\": \"eat\", \"location\": null, \"reason\": \"regain energy\", \"priority\": 8}\n"
            "  ],\n"
            "  \"self_awareness_notes\": \"I overcommit in the mornings.\",\n"
            "  \"importance_score\": 8\n"
            "}\n\n"
            "Respond with JSON only."
        ),
        description="Evaluates goal progress and proposes schedule modifications.",
    )
)

DEFAULT_PROMPTS.register(
    PromptTemplate(
        name="daily_plan",
        system=(
            "You are the planning module of a town resident. Produce a full-day plan that serves the resident's "
            "goals. Always follow the JSON schema shown in the example."
        ),
        user=(
            "Resident profile:\n{{agent_profile}}\n\n"
            "Today is day {{day}}.\n"
            "Yesterday's schedule:\n{{last_schedule}}\n\n"
            "Relevant memories:\n{{memories_text}}\n\n"
            "Known activities: {{activity_names}}\n\n"
            "Example output:\n"
            "{\n"
            "  \"daily_goal\": \"Finish the Hendersons' table and catch up with Mara\",\n"
            "  \"schedule\": {\n"
            "    \"06:00\": {\"activity\": \"wake_up\", \"description\": \"start the day\"},\n"
            "    \"07:00\": {\"activity\": \"work\", \"description\": \"sand the table top\", \"location\": \"workshop\"},\n"
            "    \"12:00\": {\"activity\": \"eat\", \"description\": \"lunch at the tavern\"},\n"
            "    \"22:00\": {\"activity\": \"sleep\", \"description\": \"rest for tomorrow\"}\n"
            "  },\n"
            "  \"reasoning\": \"The order is due tomorrow.\",\n"
            "  \"priority\": 5\n"
            "}\n\n"
            "Respond with JSON only."
        ),
        description="Generates the day's time-keyed schedule.",
    )
)
