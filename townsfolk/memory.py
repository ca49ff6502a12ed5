"""
MemoryManager: filtered storage and contextual retrieval for agent memories.

Every observation passes a pipeline before it is persisted. Stages run in
order and the first rejecting stage wins:

1. Importance gate - importance below the minimum is dropped
2. Temporal dedup - lexical similarity against the agent's recent records
   (5 minute window for movement, 1 hour for everything else)
3. Semantic dedup - embedding distance against the trailing 6 hours
4. Movement aggregation - repeated moves by one entity collapse into a
   single "moved through N locations" summary
5. Persist with the generated embedding

Retrieval blends recency, importance, emotional relevance and similarity
into one composite score (Stanford Generative Agents retrieval).
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple
from uuid import UUID

from .config import Config
from .embeddings import EmbeddingService, cosine_distance
from .logging_utils import debug_enabled, log_deterministic
from .persistence import PersistenceStrategy
from .schemas import MemoryRecord, MemoryStats

Clock = Callable[[], datetime]

FILTER_IMPORTANCE = "importance"
FILTER_TEMPORAL = "temporal"
FILTER_SEMANTIC = "semantic"
FILTER_MOVEMENT = "movement"

_MOVEMENT_PATTERN = re.compile(r"\b(moved|moving|moves|walked|walking|walks|running|ran)\b", re.IGNORECASE)
_DEPARTURE_PATTERN = re.compile(r"\b(left|leaving|departed|departing|exited)\b", re.IGNORECASE)

TAG_PATTERNS: Tuple[Tuple[str, re.Pattern], ...] = (
    ("player", re.compile(r"\bplayer\b", re.IGNORECASE)),
    ("movement", _MOVEMENT_PATTERN),
    ("conversation", re.compile(r"\b(talk(ed|ing)?|conversation|said|asked)\b", re.IGNORECASE)),
    ("location_change", re.compile(r"\b(entered|left|arrived)\b", re.IGNORECASE)),
    ("crafting", re.compile(r"\b(craft(ed|ing)?|build(ing)?|built|forg(ed|ing))\b", re.IGNORECASE)),
    ("farming", re.compile(r"\b(farm(ed|ing)?|plant(ed|ing)?|harvest(ed|ing)?)\b", re.IGNORECASE)),
    ("profession", re.compile(r"\b(blacksmith|merchant|farmer|baker|guard)\b", re.IGNORECASE)),
)

_POSITIVE = re.compile(r"\b(happy|smiled|excited|pleased|enjoyed|laughed)\b", re.IGNORECASE)
_NEGATIVE = re.compile(r"\b(sad|angry|frustrated|upset|worried|afraid)\b", re.IGNORECASE)
_SOCIAL = re.compile(r"\b(talked|conversation|greeted|waved|helped)\b", re.IGNORECASE)
_EVENT = re.compile(r"\b(entered|left|started|finished|completed)\b", re.IGNORECASE)


def extract_tags(content: str) -> List[str]:
    """Return the tag families whose patterns match ``content``."""

    return [name for name, pattern in TAG_PATTERNS if pattern.search(content)]


def estimate_emotional_relevance(content: str) -> int:
    """Cheap lexical estimate of how emotionally charged an observation is (1-10)."""

    score = 5
    if _POSITIVE.search(content):
        score += 2
    if _NEGATIVE.search(content):
        score += 2
    if _SOCIAL.search(content):
        score += 1
    if _EVENT.search(content):
        score += 1
    return max(1, min(10, score))


def is_movement(content: str) -> bool:
    return bool(_MOVEMENT_PATTERN.search(content))


def lexical_similarity(a: str, b: str) -> float:
    """Shared-word ratio: ``|A ∩ B| / |A ∪ B|`` over lowercased whitespace tokens."""

    words_a = set(a.lower().split())
    words_b = set(b.lower().split())
    union = words_a | words_b
    if not union:
        return 1.0
    return len(words_a & words_b) / len(union)


def _default_clock() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class _MovementSession:
    agent_id: str
    entity_id: str
    started_at: datetime
    last_move_at: datetime
    locations: List[str] = field(default_factory=list)
    importance: int = 4
    related_agents: List[str] = field(default_factory=list)
    related_players: List[str] = field(default_factory=list)


@dataclass
class MovementSummary:
    """A closed movement session ready to be persisted as one record."""

    agent_id: str
    entity_id: str
    moves: int
    seconds: float
    locations: List[str]
    importance: int
    related_agents: List[str]
    related_players: List[str]

    @property
    def content(self) -> str:
        return (
            f"{self.entity_id} moved through {self.moves} locations "
            f"over {int(round(self.seconds))} seconds"
        )


class MovementAggregator:
    """Collapses repeated positional observations into movement sessions.

    Sessions are keyed by (observing agent, moving entity). A session closes
    after ``timeout_seconds`` without a new move or when the entity departs;
    sessions with fewer than ``min_moves`` moves are discarded on close.
    """

    def __init__(self, *, timeout_seconds: float = 30.0, min_moves: int = 3) -> None:
        self.timeout = timedelta(seconds=timeout_seconds)
        self.min_moves = min_moves
        self._sessions: Dict[Tuple[str, str], _MovementSession] = {}

    def record_move(
        self,
        *,
        agent_id: str,
        entity_id: str,
        location: Optional[str],
        importance: int,
        related_agents: Sequence[str],
        related_players: Sequence[str],
        now: datetime,
    ) -> List[MovementSummary]:
        """Absorb a move; returns summaries for any session this move closed."""

        closed: List[MovementSummary] = []
        key = (agent_id, entity_id)
        session = self._sessions.get(key)
        if session is not None and now - session.last_move_at > self.timeout:
            summary = self._close(key)
            if summary is not None:
                closed.append(summary)
            session = None

        if session is None:
            session = _MovementSession(
                agent_id=agent_id,
                entity_id=entity_id,
                started_at=now,
                last_move_at=now,
                importance=importance,
                related_agents=list(related_agents),
                related_players=list(related_players),
            )
            self._sessions[key] = session

        session.locations.append(location or "unknown")
        session.last_move_at = now
        session.importance = max(session.importance, importance)
        return closed

    def depart(self, agent_id: str, entity_id: str) -> Optional[MovementSummary]:
        """Close the session for an entity that left the area."""

        return self._close((agent_id, entity_id))

    def flush(self, now: datetime) -> List[MovementSummary]:
        """Close every session idle for longer than the timeout."""

        expired = [
            key for key, session in self._sessions.items() if now - session.last_move_at > self.timeout
        ]
        summaries = []
        for key in expired:
            summary = self._close(key)
            if summary is not None:
                summaries.append(summary)
        return summaries

    def align_to_tick(self, tick_seconds: float) -> None:
        """Keep sessions open across one tick so per-tick moves still chain."""

        self.timeout = max(self.timeout, timedelta(seconds=tick_seconds))

    def active_sessions(self) -> int:
        return len(self._sessions)

    def _close(self, key: Tuple[str, str]) -> Optional[MovementSummary]:
        session = self._sessions.pop(key, None)
        if session is None or len(session.locations) < self.min_moves:
            return None
        return MovementSummary(
            agent_id=session.agent_id,
            entity_id=session.entity_id,
            moves=len(session.locations),
            seconds=(session.last_move_at - session.started_at).total_seconds(),
            locations=list(session.locations),
            importance=session.importance,
            related_agents=session.related_agents,
            related_players=session.related_players,
        )


class MemoryManager:
    """Filtered memory storage plus contextual retrieval.

    Args:
        persistence: Backend holding memory records and answering similarity queries
        embeddings: Service turning text into fixed-length vectors
        clock: Callable returning the current (simulated) datetime
    """

    def __init__(
        self,
        persistence: PersistenceStrategy,
        embeddings: EmbeddingService,
        *,
        clock: Optional[Clock] = None,
        min_importance: Optional[int] = None,
        lexical_threshold: Optional[float] = None,
        movement_window_minutes: Optional[float] = None,
        default_window_minutes: Optional[float] = None,
        semantic_window_hours: Optional[float] = None,
        semantic_threshold: Optional[float] = None,
        aggregator: Optional[MovementAggregator] = None,
    ) -> None:
        self.persistence = persistence
        self.embeddings = embeddings
        self.clock: Clock = clock or _default_clock
        self.min_importance = min_importance if min_importance is not None else Config.MEMORY_MIN_IMPORTANCE
        self.lexical_threshold = lexical_threshold if lexical_threshold is not None else Config.MEMORY_LEXICAL_THRESHOLD
        self.movement_window = timedelta(
            minutes=movement_window_minutes if movement_window_minutes is not None else Config.MEMORY_MOVEMENT_WINDOW_MINUTES
        )
        self.default_window = timedelta(
            minutes=default_window_minutes if default_window_minutes is not None else Config.MEMORY_DEFAULT_WINDOW_MINUTES
        )
        self.semantic_window = timedelta(
            hours=semantic_window_hours if semantic_window_hours is not None else Config.MEMORY_SEMANTIC_WINDOW_HOURS
        )
        similarity = semantic_threshold if semantic_threshold is not None else Config.MEMORY_SEMANTIC_THRESHOLD
        # Similarity above the threshold <=> cosine distance below 1 - threshold.
        self.max_duplicate_distance = 1.0 - similarity
        self.aggregator = aggregator or MovementAggregator(
            timeout_seconds=Config.MOVEMENT_SESSION_TIMEOUT_SECONDS,
            min_moves=Config.MOVEMENT_MIN_MOVES,
        )
        # Called with every persisted observation record (including movement summaries).
        self.store_listeners: List[Callable[[MemoryRecord], None]] = []
        self.filter_counts: Dict[str, int] = {
            FILTER_IMPORTANCE: 0,
            FILTER_TEMPORAL: 0,
            FILTER_SEMANTIC: 0,
            FILTER_MOVEMENT: 0,
        }

    # ------------------------------------------------------------------
    # Storage
    # ------------------------------------------------------------------

    async def store_observation(
        self,
        agent_id: str,
        content: str,
        *,
        importance: int,
        location: Optional[str] = None,
        related_agents: Iterable[str] = (),
        related_players: Iterable[str] = (),
        observed_at: Optional[datetime] = None,
    ) -> Optional[UUID]:
        """Run the filter pipeline and persist the observation.

        ``observed_at`` is the simulated time the event happened; it defaults
        to the clock. Returns the new record id, or None when a filter
        rejected (or the movement aggregator absorbed) the observation.
        """

        related_agents = sorted(set(related_agents))
        related_players = sorted(set(related_players))
        now = observed_at or self.clock()

        if importance < self.min_importance:
            return self._filtered(FILTER_IMPORTANCE, agent_id, content)

        movement = is_movement(content)
        window = self.movement_window if movement else self.default_window
        recent = await self.persistence.get_memories(agent_id, since=now - window)
        for memory in recent:
            if lexical_similarity(content, memory.content) > self.lexical_threshold:
                return self._filtered(FILTER_TEMPORAL, agent_id, content)

        embedding = await self.embeddings.embed(content)
        nearest = await self.persistence.search_similar(
            agent_id, embedding, since=now - self.semantic_window, limit=3
        )
        if nearest and nearest[0][1] < self.max_duplicate_distance:
            return self._filtered(FILTER_SEMANTIC, agent_id, content)

        entity_id = (related_players or related_agents or [None])[0]
        if entity_id is not None:
            if movement:
                summaries = self.aggregator.record_move(
                    agent_id=agent_id,
                    entity_id=entity_id,
                    location=location,
                    importance=importance,
                    related_agents=related_agents,
                    related_players=related_players,
                    now=now,
                )
                await self._persist_summaries(summaries)
                return self._filtered(FILTER_MOVEMENT, agent_id, content)
            if _DEPARTURE_PATTERN.search(content):
                summary = self.aggregator.depart(agent_id, entity_id)
                if summary is not None:
                    await self._persist_summaries([summary])

        record = MemoryRecord(
            agent_id=agent_id,
            kind="observation",
            content=content,
            importance=importance,
            emotional_relevance=estimate_emotional_relevance(content),
            tags=extract_tags(content),
            related_agents=related_agents,
            related_players=related_players,
            location=location,
            created_at=now,
            embedding=embedding,
        )
        await self.persistence.save_memory(record)
        self._notify(record)
        return record.id

    async def flush_movement(self) -> List[MemoryRecord]:
        """Persist summaries for movement sessions that went idle."""

        return await self._persist_summaries(self.aggregator.flush(self.clock()))

    async def store_derived(
        self,
        agent_id: str,
        kind: str,
        content: str,
        *,
        importance: int,
        emotional_relevance: int = 5,
        related_agents: Iterable[str] = (),
        related_players: Iterable[str] = (),
        tags: Iterable[str] = (),
    ) -> MemoryRecord:
        """Persist a reflection/plan/metacognition record without filtering."""

        embedding = await self.embeddings.embed(content)
        record = MemoryRecord(
            agent_id=agent_id,
            kind=kind,
            content=content,
            importance=importance,
            emotional_relevance=emotional_relevance,
            tags=sorted({kind, *tags}),
            related_agents=sorted(set(related_agents)),
            related_players=sorted(set(related_players)),
            created_at=self.clock(),
            embedding=embedding,
        )
        await self.persistence.save_memory(record)
        return record

    async def store_reflection(self, agent_id: str, content: str) -> MemoryRecord:
        return await self.store_derived(agent_id, "reflection", content, importance=8, emotional_relevance=7)

    async def store_plan_memory(self, agent_id: str, goal: str) -> MemoryRecord:
        return await self.store_derived(agent_id, "plan", f"Planned my day: {goal}", importance=6)

    async def store_metacognition(self, agent_id: str, content: str, importance: int = 8) -> MemoryRecord:
        return await self.store_derived(agent_id, "metacognition", content, importance=importance, emotional_relevance=6)

    async def mark_consolidated(self, memory_id: UUID) -> bool:
        return await self.persistence.mark_consolidated(memory_id)

    # ------------------------------------------------------------------
    # Retrieval
    # ------------------------------------------------------------------

    async def get_contextual_memories(
        self,
        agent_id: str,
        query_text: str,
        limit: int = 10,
    ) -> List[MemoryRecord]:
        """Blend recent, important and relevant memories into one ranked list.

        Three pools of ``ceil(limit / 3)`` records each are fetched, merged by
        id and ranked by ``0.3 recency + 0.4 importance + 0.2 emotional +
        0.1 similarity`` with every term on a 0-10 scale.
        """

        if limit <= 0:
            return []
        pool_size = max(1, math.ceil(limit / 3))
        query_embedding = await self.embeddings.embed(query_text)

        recent = await self.persistence.get_memories(agent_id, order="recent", limit=pool_size)
        important = await self.persistence.get_memories(agent_id, order="importance", limit=pool_size)
        relevant = await self.persistence.search_similar(agent_id, query_embedding, limit=pool_size)

        candidates: Dict[UUID, MemoryRecord] = {}
        distances: Dict[UUID, float] = {}
        for memory, distance in relevant:
            candidates[memory.id] = memory
            distances[memory.id] = distance
        for memory in [*recent, *important]:
            candidates.setdefault(memory.id, memory)

        now = self.clock()
        scored: List[Tuple[float, MemoryRecord]] = []
        for memory_id, memory in candidates.items():
            distance = distances.get(memory_id)
            if distance is None:
                distance = cosine_distance(memory.embedding, query_embedding)
            scored.append((self.score(memory, distance, now), memory))

        scored.sort(key=lambda item: (item[0], item[1].created_at), reverse=True)
        return [memory for _, memory in scored[:limit]]

    @staticmethod
    def score(memory: MemoryRecord, distance: float, now: datetime) -> float:
        hours_old = max((now - memory.created_at).total_seconds() / 3600.0, 0.0)
        # Linear decay from 10 to 0 over ten days.
        recency = max(0.0, 10.0 - hours_old / 24.0)
        similarity = max(0.0, min(10.0, (1.0 - distance) * 10.0))
        return (
            0.3 * recency
            + 0.4 * memory.importance
            + 0.2 * memory.emotional_relevance
            + 0.1 * similarity
        )

    async def get_conversation_memories(
        self,
        agent_id: str,
        counterpart_id: str,
        limit: int = 10,
    ) -> List[MemoryRecord]:
        """Memories that involve ``counterpart_id``, by importance then recency."""

        memories = await self.persistence.get_memories(agent_id, order="importance")
        return [memory for memory in memories if memory.mentions(counterpart_id)][:limit]

    async def get_recent_memories(self, agent_id: str, *, hours: float, kinds: Optional[Iterable[str]] = None, limit: Optional[int] = None) -> List[MemoryRecord]:
        since = self.clock() - timedelta(hours=hours)
        return await self.persistence.get_memories(agent_id, since=since, kinds=kinds, limit=limit)

    async def get_memory_stats(self, agent_id: str) -> MemoryStats:
        memories = await self.persistence.get_memories(agent_id)
        if not memories:
            return MemoryStats()
        cutoff = self.clock() - timedelta(hours=24)
        by_kind: Dict[str, int] = {}
        for memory in memories:
            by_kind[memory.kind] = by_kind.get(memory.kind, 0) + 1
        return MemoryStats(
            total=len(memories),
            recent=sum(1 for memory in memories if memory.created_at >= cutoff),
            by_kind=by_kind,
            average_importance=sum(memory.importance for memory in memories) / len(memories),
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _notify(self, record: MemoryRecord) -> None:
        for listener in self.store_listeners:
            listener(record)

    def _filtered(self, stage: str, agent_id: str, content: str) -> None:
        self.filter_counts[stage] += 1
        if debug_enabled("DEBUG_MEMORY"):
            log_deterministic(f"[Memory] {agent_id}: {stage} filter dropped '{content[:60]}'")
        return None

    async def _persist_summaries(self, summaries: List[MovementSummary]) -> List[MemoryRecord]:
        stored = []
        for summary in summaries:
            embedding = await self.embeddings.embed(summary.content)
            record = MemoryRecord(
                agent_id=summary.agent_id,
                kind="observation",
                content=summary.content,
                importance=summary.importance,
                emotional_relevance=estimate_emotional_relevance(summary.content),
                tags=sorted({"movement", *extract_tags(summary.content)}),
                related_agents=summary.related_agents,
                related_players=summary.related_players,
                location=summary.locations[-1],
                created_at=self.clock(),
                embedding=embedding,
            )
            await self.persistence.save_memory(record)
            self._notify(record)
            stored.append(record)
        return stored
