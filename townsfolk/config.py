"""
Townsfolk Configuration

Loads configuration from environment variables with sensible defaults.
"""

import os
from dotenv import load_dotenv

# Load .env file if it exists
load_dotenv()

DEFAULT_OLLAMA_BASE_URL = "http://127.0.0.1:11434"


def _env_float(name: str, default: str) -> float:
    return float(os.getenv(name, default))


def _env_int(name: str, default: str) -> int:
    return int(os.getenv(name, default))


class Config:
    """Application configuration loaded from environment variables."""

    # LLM Provider Configuration
    LLM_PROVIDER: str = os.getenv("LLM_PROVIDER", "openai")
    LLM_MODEL: str = os.getenv("LLM_MODEL", "gpt-4o-mini")

    # API Keys
    ANTHROPIC_API_KEY: str | None = os.getenv("ANTHROPIC_API_KEY")
    OPENAI_API_KEY: str | None = os.getenv("OPENAI_API_KEY")

    # Local LLM server (Ollama). Only consulted when LLM_PROVIDER=ollama.
    LOCAL_LLM_BASE_URL: str = os.getenv("LOCAL_LLM_BASE_URL") or DEFAULT_OLLAMA_BASE_URL

    # Embeddings ("hashing" works offline, "openai" calls the embeddings API)
    EMBEDDING_PROVIDER: str = os.getenv("EMBEDDING_PROVIDER", "hashing")
    EMBEDDING_MODEL: str = os.getenv("EMBEDDING_MODEL", "text-embedding-3-small")
    EMBEDDING_DIMENSION: int = _env_int("EMBEDDING_DIMENSION", "1536")

    # Database Configuration
    DATABASE_URL: str = os.getenv("DATABASE_URL", "postgresql://localhost/townsfolk")

    # Simulation clock
    SIM_START_TIME: str = os.getenv("SIM_START_TIME", "06:00")
    SIM_MINUTES_PER_TICK: float = _env_float("SIM_MINUTES_PER_TICK", "1")
    DEFAULT_TICK_COUNT: int = _env_int("DEFAULT_TICK_COUNT", "50")

    # Memory filter pipeline
    MEMORY_MIN_IMPORTANCE: int = _env_int("MEMORY_MIN_IMPORTANCE", "4")
    MEMORY_LEXICAL_THRESHOLD: float = _env_float("MEMORY_LEXICAL_THRESHOLD", "0.8")
    MEMORY_MOVEMENT_WINDOW_MINUTES: float = _env_float("MEMORY_MOVEMENT_WINDOW_MINUTES", "5")
    MEMORY_DEFAULT_WINDOW_MINUTES: float = _env_float("MEMORY_DEFAULT_WINDOW_MINUTES", "60")
    MEMORY_SEMANTIC_WINDOW_HOURS: float = _env_float("MEMORY_SEMANTIC_WINDOW_HOURS", "6")
    MEMORY_SEMANTIC_THRESHOLD: float = _env_float("MEMORY_SEMANTIC_THRESHOLD", "0.85")
    MOVEMENT_SESSION_TIMEOUT_SECONDS: float = _env_float("MOVEMENT_SESSION_TIMEOUT_SECONDS", "30")
    MOVEMENT_MIN_MOVES: int = _env_int("MOVEMENT_MIN_MOVES", "3")

    # Reflection
    REFLECTION_IMPORTANCE_THRESHOLD: int = _env_int("REFLECTION_IMPORTANCE_THRESHOLD", "150")
    REFLECTION_DAILY_LIMIT: int = _env_int("REFLECTION_DAILY_LIMIT", "3")
    REFLECTION_MIN_MEMORIES: int = _env_int("REFLECTION_MIN_MEMORIES", "5")
    REFLECTION_MEMORY_LIMIT: int = _env_int("REFLECTION_MEMORY_LIMIT", "50")

    # Metacognition
    METACOGNITION_DAILY_LIMIT: int = _env_int("METACOGNITION_DAILY_LIMIT", "1")
    METACOGNITION_INTERVAL_HOURS: float = _env_float("METACOGNITION_INTERVAL_HOURS", "24")
    METACOGNITION_URGENCY_THRESHOLD: int = _env_int("METACOGNITION_URGENCY_THRESHOLD", "6")
    METACOGNITION_IMPORTANCE_TRIGGER: int = _env_int("METACOGNITION_IMPORTANCE_TRIGGER", "8")
    METACOGNITION_LOOKBACK_HOURS: float = _env_float("METACOGNITION_LOOKBACK_HOURS", "72")

    # Asynchronous generation jobs
    JOB_TIMEOUT_SECONDS: float = _env_float("JOB_TIMEOUT_SECONDS", "120")
    JOB_MAX_ATTEMPTS: int = _env_int("JOB_MAX_ATTEMPTS", "3")
    JOB_BACKOFF_SECONDS: float = _env_float("JOB_BACKOFF_SECONDS", "1")

    # Spatial coordination
    RESERVATION_TTL_SECONDS: float = _env_float("RESERVATION_TTL_SECONDS", "5")
    PATHFINDING_MAX_EXPANSIONS: int = _env_int("PATHFINDING_MAX_EXPANSIONS", "5000")

    # Consecutive ticks with an unreachable store before the loop halts
    PERSISTENCE_FAILURE_LIMIT: int = _env_int("PERSISTENCE_FAILURE_LIMIT", "3")

    @classmethod
    def validate(cls) -> None:
        """Validate configuration and raise errors if required values are missing."""
        if cls.LLM_PROVIDER == "anthropic" and not cls.ANTHROPIC_API_KEY:
            raise ValueError(
                "ANTHROPIC_API_KEY is required when using the 'anthropic' provider"
            )

        if cls.LLM_PROVIDER == "openai" and not cls.OPENAI_API_KEY:
            raise ValueError(
                "OPENAI_API_KEY is required when using the 'openai' provider. "
                f"For local models, set LLM_PROVIDER=ollama (LOCAL_LLM_BASE_URL defaults to {DEFAULT_OLLAMA_BASE_URL})."
            )

        if cls.EMBEDDING_PROVIDER == "openai" and not cls.OPENAI_API_KEY:
            raise ValueError(
                "OPENAI_API_KEY is required for EMBEDDING_PROVIDER=openai. "
                "Use EMBEDDING_PROVIDER=hashing to run without a remote embedding model."
            )

    @classmethod
    def display(cls) -> str:
        """Return a formatted string showing current configuration."""
        lines = [
            "Townsfolk Configuration:",
            f"  LLM Provider: {cls.LLM_PROVIDER}",
            f"  LLM Model: {cls.LLM_MODEL}",
            f"  Embeddings: {cls.EMBEDDING_PROVIDER} ({cls.EMBEDDING_DIMENSION}d)",
            f"  Database: {cls.DATABASE_URL}",
            f"  Clock: starts {cls.SIM_START_TIME}, {cls.SIM_MINUTES_PER_TICK} min/tick",
            f"  Default Ticks: {cls.DEFAULT_TICK_COUNT}",
        ]
        return "\n".join(lines)
