"""Tests for contextual retrieval and memory statistics."""

from datetime import datetime, timedelta, timezone

import pytest

from townsfolk.memory import MemoryManager
from townsfolk.schemas import MemoryRecord


def make_record(agent_id, content, *, importance, created_at, embedding=None, emotional=5, **extra):
    return MemoryRecord(
        agent_id=agent_id,
        kind=extra.pop("kind", "observation"),
        content=content,
        importance=importance,
        emotional_relevance=emotional,
        created_at=created_at,
        embedding=embedding or [],
        **extra,
    )


def test_score_weights_each_component():
    now_record = make_record("a", "x", importance=10, emotional=10, created_at=datetime(2024, 1, 2, tzinfo=timezone.utc))
    score = MemoryManager.score(now_record, 0.0, now_record.created_at)
    assert score == pytest.approx(0.3 * 10 + 0.4 * 10 + 0.2 * 10 + 0.1 * 10)

    ten_days_later = now_record.created_at + timedelta(days=10)
    aged = MemoryManager.score(now_record, 1.0, ten_days_later)
    assert aged == pytest.approx(0.4 * 10 + 0.2 * 10)


@pytest.mark.asyncio
async def test_contextual_memories_blend_pools(memory, store, sim_clock):
    base = sim_clock.now()
    query_vector = await memory.embeddings.embed("the haunted mill")

    await store.save_memory(make_record("alice", "Old festival", importance=10, created_at=base - timedelta(days=9)))
    await store.save_memory(make_record("alice", "Breakfast", importance=4, created_at=base))
    await store.save_memory(
        make_record("alice", "Heard noises at the mill", importance=4, created_at=base - timedelta(days=5), embedding=query_vector)
    )
    for offset in range(6):
        await store.save_memory(
            make_record("alice", f"filler-{offset}", importance=5, created_at=base - timedelta(days=3, hours=offset))
        )

    results = await memory.get_contextual_memories("alice", "the haunted mill", limit=3)
    contents = [record.content for record in results]

    assert len(results) == 3
    assert "Old festival" in contents
    assert "Breakfast" in contents
    assert "Heard noises at the mill" in contents


@pytest.mark.asyncio
async def test_contextual_memories_are_unique_and_bounded(memory, store, sim_clock):
    base = sim_clock.now()
    for offset in range(12):
        await store.save_memory(
            make_record("alice", f"memory-{offset}", importance=4 + offset % 6, created_at=base - timedelta(hours=offset))
        )

    results = await memory.get_contextual_memories("alice", "anything", limit=7)
    ids = [record.id for record in results]

    assert len(ids) == len(set(ids))
    assert len(results) <= 7
    assert await memory.get_contextual_memories("alice", "anything", limit=0) == []


@pytest.mark.asyncio
async def test_conversation_memories_filter_by_counterpart(memory, store, sim_clock):
    base = sim_clock.now()
    await store.save_memory(make_record("alice", "Talked to p1 about bread", importance=5, created_at=base, related_players=["p1"]))
    await store.save_memory(make_record("alice", "p1 shouted at me", importance=9, created_at=base - timedelta(hours=1), related_players=["p1"]))
    await store.save_memory(make_record("alice", "Bob waved", importance=6, created_at=base, related_agents=["bob"]))

    results = await memory.get_conversation_memories("alice", "p1")

    assert [record.content for record in results] == ["p1 shouted at me", "Talked to p1 about bread"]


@pytest.mark.asyncio
async def test_memory_stats_and_consolidation(memory, store, sim_clock):
    base = sim_clock.now()
    old = make_record("alice", "Long ago", importance=4, created_at=base - timedelta(days=3))
    await store.save_memory(old)
    await memory.store_observation("alice", "A quiet morning at the well", importance=6)
    await memory.store_reflection("alice", "I enjoy quiet mornings")

    stats = await memory.get_memory_stats("alice")
    assert stats.total == 3
    assert stats.recent == 2
    assert stats.by_kind == {"observation": 2, "reflection": 1}
    assert stats.average_importance == pytest.approx((4 + 6 + 8) / 3)

    assert await memory.mark_consolidated(old.id) is True
    refreshed = [record for record in await store.get_memories("alice") if record.id == old.id][0]
    assert refreshed.consolidated is True
    assert refreshed.content == "Long ago"


@pytest.mark.asyncio
async def test_derived_records_use_fixed_importance(memory):
    reflection = await memory.store_reflection("alice", "People trust the baker")
    plan = await memory.store_plan_memory("alice", "Bake for the festival")
    meta = await memory.store_metacognition("alice", "I am behind on orders", importance=9)

    assert (reflection.importance, reflection.emotional_relevance) == (8, 7)
    assert plan.importance == 6
    assert plan.content == "Planned my day: Bake for the festival"
    assert meta.importance == 9
    assert meta.kind == "metacognition"
