"""Relationship bookkeeping keyed by id pairs.

Agent↔agent relationships are symmetric and stored once under the sorted
pair; agent↔player relationships are directed from the agent's side. Records
never hold references to Agent objects.
"""

from __future__ import annotations

from datetime import datetime
from typing import Callable, List, Literal, Optional, Tuple

from .persistence import PersistenceStrategy
from .schemas import Relationship

RELATIONSHIP_MIN = -100.0
RELATIONSHIP_MAX = 100.0


def _clamp(value: float) -> float:
    return max(RELATIONSHIP_MIN, min(RELATIONSHIP_MAX, value))


def relationship_key(subject_id: str, other_id: str, other_kind: str = "agent") -> Tuple[str, str]:
    """Storage key: unordered for agent pairs, ordered for agent→player."""

    if other_kind == "agent":
        first, second = sorted((subject_id, other_id))
        return first, second
    return subject_id, other_id


class RelationshipStore:
    """Thin domain layer over the persistence strategy's relationship table."""

    def __init__(self, persistence: PersistenceStrategy, *, clock: Callable[[], datetime]) -> None:
        self.persistence = persistence
        self.clock = clock

    async def get(
        self,
        subject_id: str,
        other_id: str,
        other_kind: Literal["agent", "player"] = "agent",
    ) -> Relationship:
        """Return the stored relationship, or a neutral one if none exists yet."""

        first, second = relationship_key(subject_id, other_id, other_kind)
        existing = await self.persistence.get_relationship(first, second)
        if existing is not None:
            return existing
        return Relationship(subject_id=first, other_id=second, other_kind=other_kind)

    async def record_interaction(
        self,
        subject_id: str,
        other_id: str,
        *,
        other_kind: Literal["agent", "player"] = "agent",
        affection_delta: float = 0.0,
        trust_delta: float = 0.0,
    ) -> Relationship:
        current = await self.get(subject_id, other_id, other_kind)
        updated = current.model_copy(
            update={
                "affection": _clamp(current.affection + affection_delta),
                "trust": _clamp(current.trust + trust_delta),
                "interaction_frequency": current.interaction_frequency + 1,
                "last_interaction": self.clock(),
            }
        )
        await self.persistence.save_relationship(updated)
        return updated

    async def for_agent(self, agent_id: str) -> List[Relationship]:
        """Every relationship ``agent_id`` takes part in."""

        relationships = await self.persistence.get_relationships(agent_id)
        return sorted(relationships, key=lambda rel: (rel.other_kind, rel.subject_id, rel.other_id))

    async def strongest(self, agent_id: str, limit: int = 3) -> List[Relationship]:
        relationships = await self.for_agent(agent_id)
        relationships.sort(key=lambda rel: (abs(rel.affection) + abs(rel.trust), rel.interaction_frequency), reverse=True)
        return relationships[:limit]


def counterpart(relationship: Relationship, agent_id: str) -> Optional[str]:
    if relationship.subject_id == agent_id:
        return relationship.other_id
    if relationship.other_id == agent_id:
        return relationship.subject_id
    return None
