"""
PersistenceStrategy interface for pluggable storage backends.

This module provides the abstract PersistenceStrategy interface and two concrete
implementations for storing agent cognition state:

1. InMemoryPersistence - Dict-based storage, data lost on exit (testing, prototyping)
2. PostgresPersistence - asyncpg + pgvector storage with similarity search (production)

Key responsibilities:
- Store agents (including their day counters) between ticks
- Append memory records and answer similarity queries over their embeddings
- Activate plans atomically (previous active plan -> abandoned in the same step)
- Keep relationship records keyed by id pairs

Usage pattern:
    persistence = InMemoryPersistence()  # or PostgresPersistence()
    await persistence.initialize()
    await persistence.save_memory(record)
    await persistence.close()
"""

import asyncio
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple
from uuid import UUID

from townsfolk.schemas import Agent, MemoryRecord, Plan, PlanStep, Relationship
from .config import Config
from .embeddings import cosine_distance

try:  # Optional dependency (only needed for PostgresPersistence)
    import asyncpg
except ImportError:  # pragma: no cover - asyncpg may not be installed for in-memory usage
    asyncpg = None


class PersistenceUnavailableError(Exception):
    """Raised when the backing store cannot be reached.

    Treated as transient by the orchestrator: the affected agent skips its
    cycle for the tick. Sustained failures halt the simulation.
    """

    def __init__(self, *, operation: str, underlying: Exception) -> None:
        self.operation = operation
        self.underlying = underlying
        message = (
            f"Persistence unavailable during {operation}: {underlying}\n\n"
            "Remediation tips:\n"
            "  - Check DATABASE_URL and that the database is accepting connections\n"
            "  - Verify the pgvector extension is installed (CREATE EXTENSION vector)\n"
            "  - Use InMemoryPersistence for local experiments"
        )
        super().__init__(message)


class PersistenceStrategy(ABC):
    """Abstract base class for agent cognition persistence.

    All methods are async so database backends never block the tick loop.

    Method categories:
    1. Lifecycle: initialize(), close()
    2. Agents: save_agent(), get_agent(), list_agents()
    3. Memories: save_memory(), get_memories(), search_similar(), mark_consolidated()
    4. Plans: activate_plan(), save_plan(), get_active_plan(), get_plans(),
       update_plan_status(), add_plan_steps()
    5. Relationships: save_relationship(), get_relationship(), get_relationships()
    """

    @abstractmethod
    async def initialize(self) -> None:
        """Open connections / create tables. Called once before the first tick."""

    @abstractmethod
    async def close(self) -> None:
        """Release connections. Called once after the simulation stops."""

    # Agents ---------------------------------------------------------------

    @abstractmethod
    async def save_agent(self, agent: Agent) -> None:
        """Insert or replace an agent snapshot."""

    @abstractmethod
    async def get_agent(self, agent_id: str) -> Optional[Agent]:
        """Return the stored agent or None."""

    @abstractmethod
    async def list_agents(self) -> List[Agent]:
        """Return every stored agent."""

    # Memories -------------------------------------------------------------

    @abstractmethod
    async def save_memory(self, memory: MemoryRecord) -> None:
        """Append a memory record. Records are never rewritten except for consolidation."""

    @abstractmethod
    async def get_memories(
        self,
        agent_id: str,
        *,
        since: Optional[datetime] = None,
        kinds: Optional[Iterable[str]] = None,
        order: str = "recent",
        limit: Optional[int] = None,
    ) -> List[MemoryRecord]:
        """
        Return an agent's memories.

        Args:
            agent_id: Owner of the memories
            since: Only records created at or after this instant
            kinds: Restrict to these memory kinds
            order: "recent" (newest first) or "importance" (highest first, then newest)
            limit: Maximum number of records

        Returns:
            Matching MemoryRecord objects in the requested order
        """

    @abstractmethod
    async def search_similar(
        self,
        agent_id: str,
        embedding: List[float],
        *,
        since: Optional[datetime] = None,
        limit: int = 5,
    ) -> List[Tuple[MemoryRecord, float]]:
        """Return ``(record, cosine_distance)`` pairs, nearest first."""

    @abstractmethod
    async def mark_consolidated(self, memory_id: UUID) -> bool:
        """Flip the consolidated flag. Returns False if the record is unknown."""

    # Plans ----------------------------------------------------------------

    @abstractmethod
    async def activate_plan(self, plan: Plan) -> Optional[UUID]:
        """
        Store ``plan`` as the agent's only active plan.

        The previously active plan (if any) is marked abandoned in the same
        atomic step. Returns the id of the abandoned plan.
        """

    @abstractmethod
    async def save_plan(self, plan: Plan) -> None:
        """Insert or replace a non-active plan record (history, stale results)."""

    @abstractmethod
    async def get_active_plan(self, agent_id: str) -> Optional[Plan]:
        """Return the agent's active plan or None."""

    @abstractmethod
    async def get_plans(self, agent_id: str, *, since: Optional[datetime] = None) -> List[Plan]:
        """Return the agent's plans, newest first."""

    @abstractmethod
    async def update_plan_status(self, plan_id: UUID, status: str) -> None:
        """Set a plan's status (completed/abandoned)."""

    @abstractmethod
    async def add_plan_steps(self, plan_id: UUID, steps: List[PlanStep]) -> Optional[Plan]:
        """Append steps to a plan and return the updated plan."""

    # Relationships --------------------------------------------------------

    @abstractmethod
    async def save_relationship(self, relationship: Relationship) -> None:
        """Insert or replace the record for (subject_id, other_id)."""

    @abstractmethod
    async def get_relationship(self, subject_id: str, other_id: str) -> Optional[Relationship]:
        """Return the record keyed by (subject_id, other_id)."""

    @abstractmethod
    async def get_relationships(self, subject_id: str) -> List[Relationship]:
        """Return every record where ``subject_id`` appears on either side of the key."""


def _order_memories(memories: List[MemoryRecord], order: str) -> List[MemoryRecord]:
    if order == "importance":
        return sorted(memories, key=lambda m: (m.importance, m.created_at), reverse=True)
    if order == "recent":
        return sorted(memories, key=lambda m: m.created_at, reverse=True)
    raise ValueError(f"Unknown memory order '{order}' (expected 'recent' or 'importance')")


class InMemoryPersistence(PersistenceStrategy):
    """In-memory persistence using Python dicts (no database, no files).

    Storage structure:
    - agents: Dict[agent_id, Agent]
    - memories: Dict[agent_id, List[MemoryRecord]] in insertion order
    - plans: Dict[plan_id, Plan]
    - relationships: Dict[(subject_id, other_id), Relationship]

    Plan writes go through an asyncio.Lock so activation (abandon old + insert
    new) can never interleave with another activation for the same agent.
    Similarity search is a linear cosine scan, fine for tests and small towns.
    """

    def __init__(self):
        self.agents: Dict[str, Agent] = {}
        self.memories: Dict[str, List[MemoryRecord]] = {}
        self.plans: Dict[UUID, Plan] = {}
        self.relationships: Dict[Tuple[str, str], Relationship] = {}
        self._plan_lock = asyncio.Lock()

    async def initialize(self) -> None:
        pass

    async def close(self) -> None:
        # Data is kept after close so callers can inspect post-run state.
        pass

    async def save_agent(self, agent: Agent) -> None:
        self.agents[agent.id] = agent.model_copy(deep=True)

    async def get_agent(self, agent_id: str) -> Optional[Agent]:
        agent = self.agents.get(agent_id)
        return agent.model_copy(deep=True) if agent is not None else None

    async def list_agents(self) -> List[Agent]:
        return [agent.model_copy(deep=True) for agent in self.agents.values()]

    async def save_memory(self, memory: MemoryRecord) -> None:
        self.memories.setdefault(memory.agent_id, []).append(memory)

    async def get_memories(
        self,
        agent_id: str,
        *,
        since: Optional[datetime] = None,
        kinds: Optional[Iterable[str]] = None,
        order: str = "recent",
        limit: Optional[int] = None,
    ) -> List[MemoryRecord]:
        kind_filter = set(kinds) if kinds is not None else None
        selected = [
            memory
            for memory in self.memories.get(agent_id, [])
            if (since is None or memory.created_at >= since)
            and (kind_filter is None or memory.kind in kind_filter)
        ]
        ordered = _order_memories(selected, order)
        return ordered[:limit] if limit is not None else ordered

    async def search_similar(
        self,
        agent_id: str,
        embedding: List[float],
        *,
        since: Optional[datetime] = None,
        limit: int = 5,
    ) -> List[Tuple[MemoryRecord, float]]:
        scored = [
            (memory, cosine_distance(memory.embedding, embedding))
            for memory in self.memories.get(agent_id, [])
            if since is None or memory.created_at >= since
        ]
        scored.sort(key=lambda item: item[1])
        return scored[:limit]

    async def mark_consolidated(self, memory_id: UUID) -> bool:
        for records in self.memories.values():
            for index, memory in enumerate(records):
                if memory.id == memory_id:
                    records[index] = memory.model_copy(update={"consolidated": True})
                    return True
        return False

    async def activate_plan(self, plan: Plan) -> Optional[UUID]:
        async with self._plan_lock:
            abandoned: Optional[UUID] = None
            for plan_id, existing in self.plans.items():
                if existing.agent_id == plan.agent_id and existing.status == "active":
                    self.plans[plan_id] = existing.model_copy(update={"status": "abandoned"})
                    abandoned = plan_id
            self.plans[plan.id] = plan.model_copy(update={"status": "active"}, deep=True)
            return abandoned

    async def save_plan(self, plan: Plan) -> None:
        if plan.status == "active":
            raise ValueError("Use activate_plan() to store an active plan")
        async with self._plan_lock:
            self.plans[plan.id] = plan.model_copy(deep=True)

    async def get_active_plan(self, agent_id: str) -> Optional[Plan]:
        for plan in self.plans.values():
            if plan.agent_id == agent_id and plan.status == "active":
                return plan.model_copy(deep=True)
        return None

    async def get_plans(self, agent_id: str, *, since: Optional[datetime] = None) -> List[Plan]:
        plans = [
            plan.model_copy(deep=True)
            for plan in self.plans.values()
            if plan.agent_id == agent_id and (since is None or plan.created_at >= since)
        ]
        plans.sort(key=lambda plan: plan.created_at, reverse=True)
        return plans

    async def update_plan_status(self, plan_id: UUID, status: str) -> None:
        async with self._plan_lock:
            if plan_id in self.plans:
                self.plans[plan_id] = self.plans[plan_id].model_copy(update={"status": status})

    async def add_plan_steps(self, plan_id: UUID, steps: List[PlanStep]) -> Optional[Plan]:
        async with self._plan_lock:
            plan = self.plans.get(plan_id)
            if plan is None:
                return None
            updated = plan.model_copy(update={"steps": [*plan.steps, *steps]}, deep=True)
            self.plans[plan_id] = updated
            return updated.model_copy(deep=True)

    async def save_relationship(self, relationship: Relationship) -> None:
        self.relationships[(relationship.subject_id, relationship.other_id)] = relationship.model_copy()

    async def get_relationship(self, subject_id: str, other_id: str) -> Optional[Relationship]:
        relationship = self.relationships.get((subject_id, other_id))
        return relationship.model_copy() if relationship is not None else None

    async def get_relationships(self, subject_id: str) -> List[Relationship]:
        return [
            relationship.model_copy()
            for (subject, other), relationship in self.relationships.items()
            if subject_id in (subject, other)
        ]


POSTGRES_SCHEMA = """
CREATE EXTENSION IF NOT EXISTS vector;

CREATE TABLE IF NOT EXISTS agents (
    id TEXT PRIMARY KEY,
    data JSONB NOT NULL,
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE TABLE IF NOT EXISTS agent_memories (
    id UUID PRIMARY KEY,
    agent_id TEXT NOT NULL,
    kind TEXT NOT NULL,
    content TEXT NOT NULL,
    importance INTEGER NOT NULL CHECK (importance BETWEEN 1 AND 10),
    emotional_relevance INTEGER NOT NULL,
    tags TEXT[] NOT NULL DEFAULT '{}',
    related_agents TEXT[] NOT NULL DEFAULT '{}',
    related_players TEXT[] NOT NULL DEFAULT '{}',
    location TEXT,
    created_at TIMESTAMPTZ NOT NULL,
    embedding vector({dimension}),
    consolidated BOOLEAN NOT NULL DEFAULT FALSE
);
CREATE INDEX IF NOT EXISTS idx_agent_memories_agent_created
    ON agent_memories (agent_id, created_at DESC);

CREATE TABLE IF NOT EXISTS agent_plans (
    id UUID PRIMARY KEY,
    agent_id TEXT NOT NULL,
    status TEXT NOT NULL,
    created_at TIMESTAMPTZ NOT NULL,
    data JSONB NOT NULL
);
CREATE UNIQUE INDEX IF NOT EXISTS idx_agent_plans_one_active
    ON agent_plans (agent_id) WHERE status = 'active';

CREATE TABLE IF NOT EXISTS agent_relationships (
    subject_id TEXT NOT NULL,
    other_id TEXT NOT NULL,
    data JSONB NOT NULL,
    PRIMARY KEY (subject_id, other_id)
);
"""


def _vector_literal(embedding: List[float]) -> str:
    return "[" + ",".join(repr(float(value)) for value in embedding) + "]"


def _parse_vector(raw: Optional[str]) -> List[float]:
    if not raw:
        return []
    return [float(value) for value in raw.strip("[]").split(",") if value]


class PostgresPersistence(PersistenceStrategy):
    """PostgreSQL-backed persistence with pgvector similarity search.

    Database schema (created by initialize() when missing):
    - agents: agent snapshots as JSONB
    - agent_memories: one row per record, ``embedding vector(N)``
    - agent_plans: plan JSONB plus status; a partial unique index enforces
      one active plan per agent
    - agent_relationships: JSONB keyed by (subject_id, other_id)

    Connection failures are re-raised as PersistenceUnavailableError so the
    orchestrator can tell transient outages apart from programming errors.
    """

    def __init__(self, database_url: Optional[str] = None, *, dimension: Optional[int] = None):
        if asyncpg is None:  # pragma: no cover - handled during runtime when dependency missing
            raise ImportError(
                "asyncpg is required for PostgresPersistence. Install with `pip install townsfolk[postgres]`."
            )

        self.database_url = database_url or Config.DATABASE_URL
        self.dimension = dimension or Config.EMBEDDING_DIMENSION
        self.pool: Optional["asyncpg.Pool"] = None

    async def initialize(self) -> None:
        if self.pool is None:
            try:
                self.pool = await asyncpg.create_pool(self.database_url)
            except (OSError, asyncpg.PostgresConnectionError) as exc:
                raise PersistenceUnavailableError(operation="initialize", underlying=exc) from exc
        async with self._connection("initialize") as conn:
            await conn.execute(POSTGRES_SCHEMA.replace("{dimension}", str(self.dimension)))

    async def close(self) -> None:
        if self.pool is not None:
            await self.pool.close()
            self.pool = None

    @asynccontextmanager
    async def _connection(self, operation: str):
        assert self.pool is not None, "Persistence not initialized"
        try:
            async with self.pool.acquire() as conn:
                yield conn
        except (OSError, asyncpg.PostgresConnectionError, asyncpg.InterfaceError) as exc:
            raise PersistenceUnavailableError(operation=operation, underlying=exc) from exc

    # Agents ---------------------------------------------------------------

    async def save_agent(self, agent: Agent) -> None:
        query = """
            INSERT INTO agents (id, data, updated_at)
            VALUES ($1, $2::jsonb, NOW())
            ON CONFLICT (id) DO UPDATE SET data = $2::jsonb, updated_at = NOW()
        """
        async with self._connection("save_agent") as conn:
            await conn.execute(query, agent.id, agent.model_dump_json())

    async def get_agent(self, agent_id: str) -> Optional[Agent]:
        async with self._connection("get_agent") as conn:
            row = await conn.fetchrow("SELECT data FROM agents WHERE id = $1", agent_id)
        if not row:
            return None
        return Agent.model_validate_json(row["data"])

    async def list_agents(self) -> List[Agent]:
        async with self._connection("list_agents") as conn:
            rows = await conn.fetch("SELECT data FROM agents ORDER BY id")
        return [Agent.model_validate_json(row["data"]) for row in rows]

    # Memories -------------------------------------------------------------

    _MEMORY_COLUMNS = (
        "id, agent_id, kind, content, importance, emotional_relevance, tags, "
        "related_agents, related_players, location, created_at, embedding::text AS embedding, consolidated"
    )

    @staticmethod
    def _row_to_memory(row) -> MemoryRecord:
        return MemoryRecord(
            id=row["id"],
            agent_id=row["agent_id"],
            kind=row["kind"],
            content=row["content"],
            importance=row["importance"],
            emotional_relevance=row["emotional_relevance"],
            tags=list(row["tags"] or []),
            related_agents=list(row["related_agents"] or []),
            related_players=list(row["related_players"] or []),
            location=row["location"],
            created_at=row["created_at"],
            embedding=_parse_vector(row["embedding"]),
            consolidated=row["consolidated"],
        )

    async def save_memory(self, memory: MemoryRecord) -> None:
        query = """
            INSERT INTO agent_memories
            (id, agent_id, kind, content, importance, emotional_relevance, tags,
             related_agents, related_players, location, created_at, embedding, consolidated)
            VALUES ($1, $2, $3, $4, $5, $6, $7::text[], $8::text[], $9::text[], $10, $11, $12::vector, $13)
        """
        async with self._connection("save_memory") as conn:
            await conn.execute(
                query,
                memory.id,
                memory.agent_id,
                memory.kind,
                memory.content,
                memory.importance,
                memory.emotional_relevance,
                memory.tags,
                memory.related_agents,
                memory.related_players,
                memory.location,
                memory.created_at,
                _vector_literal(memory.embedding) if memory.embedding else None,
                memory.consolidated,
            )

    async def get_memories(
        self,
        agent_id: str,
        *,
        since: Optional[datetime] = None,
        kinds: Optional[Iterable[str]] = None,
        order: str = "recent",
        limit: Optional[int] = None,
    ) -> List[MemoryRecord]:
        order_sql = {
            "recent": "created_at DESC",
            "importance": "importance DESC, created_at DESC",
        }.get(order)
        if order_sql is None:
            raise ValueError(f"Unknown memory order '{order}' (expected 'recent' or 'importance')")

        query = f"""
            SELECT {self._MEMORY_COLUMNS}
            FROM agent_memories
            WHERE agent_id = $1
              AND ($2::timestamptz IS NULL OR created_at >= $2)
              AND ($3::text[] IS NULL OR kind = ANY($3::text[]))
            ORDER BY {order_sql}
            LIMIT $4
        """
        kind_list = list(kinds) if kinds is not None else None
        async with self._connection("get_memories") as conn:
            rows = await conn.fetch(query, agent_id, since, kind_list, limit)
        return [self._row_to_memory(row) for row in rows]

    async def search_similar(
        self,
        agent_id: str,
        embedding: List[float],
        *,
        since: Optional[datetime] = None,
        limit: int = 5,
    ) -> List[Tuple[MemoryRecord, float]]:
        if not any(embedding):
            return []
        query = f"""
            SELECT {self._MEMORY_COLUMNS}, embedding <=> $2::vector AS distance
            FROM agent_memories
            WHERE agent_id = $1
              AND embedding IS NOT NULL
              AND ($3::timestamptz IS NULL OR created_at >= $3)
            ORDER BY distance
            LIMIT $4
        """
        async with self._connection("search_similar") as conn:
            rows = await conn.fetch(query, agent_id, _vector_literal(embedding), since, limit)
        # pgvector returns NaN for zero-norm rows; treat those as unrelated.
        return [
            (self._row_to_memory(row), float(row["distance"]) if row["distance"] == row["distance"] else 1.0)
            for row in rows
        ]

    async def mark_consolidated(self, memory_id: UUID) -> bool:
        async with self._connection("mark_consolidated") as conn:
            result = await conn.execute(
                "UPDATE agent_memories SET consolidated = TRUE WHERE id = $1", memory_id
            )
        return result.endswith(" 1")

    # Plans ----------------------------------------------------------------

    async def activate_plan(self, plan: Plan) -> Optional[UUID]:
        active = plan.model_copy(update={"status": "active"})
        async with self._connection("activate_plan") as conn:
            async with conn.transaction():
                previous = await conn.fetchrow(
                    """
                    UPDATE agent_plans
                    SET status = 'abandoned', data = jsonb_set(data, '{status}', '"abandoned"')
                    WHERE agent_id = $1 AND status = 'active'
                    RETURNING id
                    """,
                    plan.agent_id,
                )
                await conn.execute(
                    """
                    INSERT INTO agent_plans (id, agent_id, status, created_at, data)
                    VALUES ($1, $2, 'active', $3, $4::jsonb)
                    ON CONFLICT (id) DO UPDATE SET status = 'active', data = $4::jsonb
                    """,
                    active.id,
                    active.agent_id,
                    active.created_at,
                    active.model_dump_json(),
                )
        return previous["id"] if previous else None

    async def save_plan(self, plan: Plan) -> None:
        if plan.status == "active":
            raise ValueError("Use activate_plan() to store an active plan")
        async with self._connection("save_plan") as conn:
            await conn.execute(
                """
                INSERT INTO agent_plans (id, agent_id, status, created_at, data)
                VALUES ($1, $2, $3, $4, $5::jsonb)
                ON CONFLICT (id) DO UPDATE SET status = $3, data = $5::jsonb
                """,
                plan.id,
                plan.agent_id,
                plan.status,
                plan.created_at,
                plan.model_dump_json(),
            )

    async def get_active_plan(self, agent_id: str) -> Optional[Plan]:
        async with self._connection("get_active_plan") as conn:
            row = await conn.fetchrow(
                "SELECT data FROM agent_plans WHERE agent_id = $1 AND status = 'active'", agent_id
            )
        return Plan.model_validate_json(row["data"]) if row else None

    async def get_plans(self, agent_id: str, *, since: Optional[datetime] = None) -> List[Plan]:
        async with self._connection("get_plans") as conn:
            rows = await conn.fetch(
                """
                SELECT data FROM agent_plans
                WHERE agent_id = $1 AND ($2::timestamptz IS NULL OR created_at >= $2)
                ORDER BY created_at DESC
                """,
                agent_id,
                since,
            )
        return [Plan.model_validate_json(row["data"]) for row in rows]

    async def update_plan_status(self, plan_id: UUID, status: str) -> None:
        async with self._connection("update_plan_status") as conn:
            await conn.execute(
                """
                UPDATE agent_plans
                SET status = $2, data = jsonb_set(data, '{status}', to_jsonb($2::text))
                WHERE id = $1
                """,
                plan_id,
                status,
            )

    async def add_plan_steps(self, plan_id: UUID, steps: List[PlanStep]) -> Optional[Plan]:
        async with self._connection("add_plan_steps") as conn:
            async with conn.transaction():
                row = await conn.fetchrow(
                    "SELECT data FROM agent_plans WHERE id = $1 FOR UPDATE", plan_id
                )
                if not row:
                    return None
                plan = Plan.model_validate_json(row["data"])
                updated = plan.model_copy(update={"steps": [*plan.steps, *steps]})
                await conn.execute(
                    "UPDATE agent_plans SET data = $2::jsonb WHERE id = $1",
                    plan_id,
                    updated.model_dump_json(),
                )
        return updated

    # Relationships --------------------------------------------------------

    async def save_relationship(self, relationship: Relationship) -> None:
        async with self._connection("save_relationship") as conn:
            await conn.execute(
                """
                INSERT INTO agent_relationships (subject_id, other_id, data)
                VALUES ($1, $2, $3::jsonb)
                ON CONFLICT (subject_id, other_id) DO UPDATE SET data = $3::jsonb
                """,
                relationship.subject_id,
                relationship.other_id,
                relationship.model_dump_json(),
            )

    async def get_relationship(self, subject_id: str, other_id: str) -> Optional[Relationship]:
        async with self._connection("get_relationship") as conn:
            row = await conn.fetchrow(
                "SELECT data FROM agent_relationships WHERE subject_id = $1 AND other_id = $2",
                subject_id,
                other_id,
            )
        return Relationship.model_validate_json(row["data"]) if row else None

    async def get_relationships(self, subject_id: str) -> List[Relationship]:
        async with self._connection("get_relationships") as conn:
            rows = await conn.fetch(
                "SELECT data FROM agent_relationships WHERE subject_id = $1 OR other_id = $1 ORDER BY subject_id, other_id",
                subject_id,
            )
        return [Relationship.model_validate_json(row["data"]) for row in rows]


__all__ = [
    "PersistenceStrategy",
    "PersistenceUnavailableError",
    "InMemoryPersistence",
    "PostgresPersistence",
    "POSTGRES_SCHEMA",
]
