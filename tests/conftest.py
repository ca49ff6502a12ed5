"""Shared fakes for the townsfolk test-suite."""

from collections import deque
from typing import Iterable, List, Optional, Union

import pytest

from townsfolk.clock import SimulationClock
from townsfolk.jobs import JobRunner
from townsfolk.memory import MemoryManager
from townsfolk.persistence import InMemoryPersistence


class OneHotEmbedder:
    """Gives every distinct text its own axis: identical texts match, others never do."""

    dimension = 512

    def __init__(self) -> None:
        self._index: dict[str, int] = {}

    async def embed(self, text: str) -> List[float]:
        slot = self._index.setdefault(text, len(self._index) % self.dimension)
        vector = [0.0] * self.dimension
        vector[slot] = 1.0
        return vector


class ScriptedGeneration:
    """Returns queued responses in order (exceptions are raised), then ``default``."""

    def __init__(self, responses: Optional[Iterable[Union[str, BaseException]]] = None, default: str = "") -> None:
        self.responses = deque(responses or [])
        self.default = default
        self.prompts: List[str] = []

    async def submit(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.responses:
            response = self.responses.popleft()
            if isinstance(response, BaseException):
                raise response
            return response
        return self.default


class ManualTime:
    """Monotonic clock stand-in for reservation TTL tests."""

    def __init__(self, start: float = 100.0) -> None:
        self.value = start

    def __call__(self) -> float:
        return self.value

    def advance(self, seconds: float) -> None:
        self.value += seconds


@pytest.fixture
def sim_clock() -> SimulationClock:
    return SimulationClock(start_time="08:00", minutes_per_tick=1)


@pytest.fixture
def store() -> InMemoryPersistence:
    return InMemoryPersistence()


@pytest.fixture
def memory(store, sim_clock) -> MemoryManager:
    return MemoryManager(store, OneHotEmbedder(), clock=sim_clock.now)


@pytest.fixture
def jobs() -> JobRunner:
    return JobRunner(timeout=5, max_attempts=2, backoff_seconds=0)
