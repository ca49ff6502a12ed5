"""
Townsfolk - cognition and action orchestration for town NPCs.

Agents remember what they observe, reflect on it, evaluate their own
progress, plan their days and act those plans out on a shared tile grid.

All collaborators (store, embeddings, generation service, catalogs) are
injected. Nothing requires a database or network access by default.
"""

__version__ = "0.1.0"

# Main simulation components
from .orchestrator import AgentUpdateFailedError, Orchestrator, SimulationHaltedError, TickReport
from .clock import SimulationClock

# Core interfaces
from .persistence import (
    PersistenceStrategy,
    InMemoryPersistence,
    PostgresPersistence,
    PersistenceUnavailableError,
)
from .memory import MemoryManager, MovementAggregator
from .embeddings import EmbeddingService, HashingEmbeddingService, OpenAIEmbeddingService
from .generation import GenerationService, LLMGenerationService, OllamaGenerationService
from .jobs import JobRunner, JobOutcome, JobDroppedError
from .activity import ActivitySession, ActivityState
from .scheduling import AgentAgenda
from .relationships import RelationshipStore
from .cognition import (
    ReflectionEngine,
    MetacognitionEngine,
    PlanningEngine,
    PlanParseError,
    PromptLibrary,
    DEFAULT_PROMPTS,
    DEFAULT_SCHEDULE,
)
from .environment import (
    EnvironmentGrid,
    GridTile,
    PathfindingEngine,
    CoordinationManager,
    ActivityCatalog,
    ActivityDefinition,
    LocationEntry,
    LocationRegistry,
    default_activity_catalog,
)

# Core schemas
from .schemas import (
    Agent,
    DayCounters,
    MemoryRecord,
    MemoryStats,
    Relationship,
    ActivityIntent,
    Plan,
    PlanStep,
    ScheduleModification,
    MetacognitionResult,
    ObservationEvent,
)

__all__ = [
    "Orchestrator",
    "SimulationClock",
    "SimulationHaltedError",
    "AgentUpdateFailedError",
    "TickReport",
    "PersistenceStrategy",
    "InMemoryPersistence",
    "PostgresPersistence",
    "PersistenceUnavailableError",
    "MemoryManager",
    "MovementAggregator",
    "EmbeddingService",
    "HashingEmbeddingService",
    "OpenAIEmbeddingService",
    "GenerationService",
    "LLMGenerationService",
    "OllamaGenerationService",
    "JobRunner",
    "JobOutcome",
    "JobDroppedError",
    "ActivitySession",
    "ActivityState",
    "AgentAgenda",
    "RelationshipStore",
    "ReflectionEngine",
    "MetacognitionEngine",
    "PlanningEngine",
    "PlanParseError",
    "PromptLibrary",
    "DEFAULT_PROMPTS",
    "DEFAULT_SCHEDULE",
    "EnvironmentGrid",
    "GridTile",
    "PathfindingEngine",
    "CoordinationManager",
    "ActivityCatalog",
    "ActivityDefinition",
    "LocationEntry",
    "LocationRegistry",
    "default_activity_catalog",
    "Agent",
    "DayCounters",
    "MemoryRecord",
    "MemoryStats",
    "Relationship",
    "ActivityIntent",
    "Plan",
    "PlanStep",
    "ScheduleModification",
    "MetacognitionResult",
    "ObservationEvent",
]
