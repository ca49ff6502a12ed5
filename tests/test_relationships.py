"""Tests for relationship bookkeeping."""

import pytest

from townsfolk.relationships import RelationshipStore, counterpart, relationship_key


def test_agent_pairs_share_one_key():
    assert relationship_key("bob", "alice") == ("alice", "bob")
    assert relationship_key("alice", "bob") == ("alice", "bob")
    assert relationship_key("bob", "p1", "player") == ("bob", "p1")


@pytest.mark.asyncio
async def test_interactions_accumulate_and_clamp(store, sim_clock):
    relationships = RelationshipStore(store, clock=sim_clock.now)

    neutral = await relationships.get("alice", "bob")
    assert (neutral.affection, neutral.trust, neutral.interaction_frequency) == (0.0, 0.0, 0)

    await relationships.record_interaction("bob", "alice", affection_delta=60, trust_delta=10)
    sim_clock.advance(5)
    updated = await relationships.record_interaction("alice", "bob", affection_delta=60, trust_delta=-5)

    assert updated.affection == 100.0
    assert updated.trust == 5.0
    assert updated.interaction_frequency == 2
    assert updated.last_interaction == sim_clock.now()
    assert (await relationships.get("bob", "alice")).affection == 100.0


@pytest.mark.asyncio
async def test_listing_and_strongest(store, sim_clock):
    relationships = RelationshipStore(store, clock=sim_clock.now)
    await relationships.record_interaction("alice", "bob", affection_delta=5)
    await relationships.record_interaction("carol", "alice", affection_delta=-40, trust_delta=-20)
    await relationships.record_interaction("alice", "p1", other_kind="player", affection_delta=10)
    await relationships.record_interaction("dave", "erin", affection_delta=90)

    listed = await relationships.for_agent("alice")
    assert [counterpart(rel, "alice") for rel in listed] == ["bob", "carol", "p1"]

    strongest = await relationships.strongest("alice", limit=2)
    assert [counterpart(rel, "alice") for rel in strongest] == ["carol", "p1"]
    assert counterpart(strongest[0], "zed") is None
