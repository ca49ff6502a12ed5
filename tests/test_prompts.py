"""Tests for prompt rendering helpers."""

from datetime import datetime, timezone

from townsfolk.cognition.prompts import (
    DEFAULT_PROMPTS,
    PromptTemplate,
    format_agent_profile,
    format_memories,
    render_prompt,
)
from townsfolk.schemas import Agent, MemoryRecord


def test_render_prompt_replaces_placeholders_and_keeps_json_braces():
    template = PromptTemplate(name="t", system="System {{who}}", user='Say {"a": 1} to {{who}}')

    assert render_prompt(template, {"who": "Bob"}) == 'System Bob\n\nSay {"a": 1} to Bob'


def test_default_templates_have_no_unfilled_placeholders():
    agent = Agent(id="alice", name="Alice")
    values = {
        "agent_profile": format_agent_profile(agent),
        "memories_text": "(no memories)",
        "trigger_reason": "scheduled",
        "lookback_hours": "72",
        "plans_total": "0",
        "plans_completed": "0",
        "plans_abandoned": "0",
        "current_schedule": "(no active plan)",
        "reflections_text": "(no memories)",
        "day": "1",
        "last_schedule": "- 06:00: wake_up",
        "activity_names": "eat, work",
    }

    for name in ("reflection", "metacognition", "daily_plan"):
        assert "{{" not in render_prompt(DEFAULT_PROMPTS.get(name), values)


def test_profile_and_memory_formatting():
    agent = Agent(
        id="alice",
        name="Alice",
        persona="Village baker",
        personality_traits=["warm", "stubborn"],
        secondary_goals=["Win the fair"],
    )
    profile = format_agent_profile(agent)

    assert "Name: Alice (alice)" in profile
    assert "Traits: warm, stubborn" in profile
    assert "Primary goal: none stated" in profile
    assert "Secondary goals: Win the fair" in profile

    record = MemoryRecord(
        agent_id="alice",
        kind="observation",
        content="Bread burned",
        importance=6,
        created_at=datetime(2024, 1, 1, 7, 30, tzinfo=timezone.utc),
    )
    assert format_memories([record]) == "- [2024-01-01 07:30] (observation, importance 6) Bread burned"
    assert format_memories([]) == "(no memories)"
