"""Asynchronous generation jobs polled by the orchestrator.

Reflection, metacognition and planning all wait on a slow generation service.
They run here as asyncio tasks so the tick loop never awaits them: each tick
the orchestrator calls ``poll()`` and applies whatever finished since the last
tick.

Each job is keyed by ``(agent_id, kind, epoch)``. A key is accepted once, so
a duplicate or retried trigger for the same accumulation window can never
produce a second result. Engines call ``forget()`` for windows they have
closed; those keys can no longer be produced, so the guard stays bounded.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, Tuple, Type

from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
    wait_none,
)

from .config import Config
from .generation import GenerationTimeoutError
from .logging_utils import log_error, log_llm
from .persistence import PersistenceUnavailableError

JobKey = Tuple[str, str, Any]
JobFactory = Callable[[], Awaitable[Any]]

TRANSIENT_ERRORS: Tuple[Type[BaseException], ...] = (
    GenerationTimeoutError,
    PersistenceUnavailableError,
    ConnectionError,
    TimeoutError,
)


class JobDroppedError(Exception):
    """Describes a job abandoned after its final attempt."""

    def __init__(self, *, key: JobKey, attempts: int, underlying: BaseException) -> None:
        self.key = key
        self.attempts = attempts
        self.underlying = underlying
        agent_id, kind, epoch = key
        super().__init__(
            f"{kind} job for {agent_id} (epoch {epoch}) dropped after {attempts} attempt(s): {underlying}"
        )


@dataclass
class JobOutcome:
    """Result (or failure) of a finished job, handed back by ``poll()``."""

    key: JobKey
    result: Any = None
    error: Optional[JobDroppedError] = None
    attempts: int = 0
    context: Dict[str, Any] = field(default_factory=dict)

    @property
    def agent_id(self) -> str:
        return self.key[0]

    @property
    def kind(self) -> str:
        return self.key[1]

    @property
    def succeeded(self) -> bool:
        return self.error is None


class JobRunner:
    """Runs keyed jobs with a per-attempt timeout and bounded retries.

    Transient failures (timeouts, connection errors, store outages) are
    retried with exponential backoff up to ``max_attempts``. Any other
    exception ends the job immediately. Either way the failure is logged and
    reported through ``poll()``; nothing is retried indefinitely.
    """

    def __init__(
        self,
        *,
        timeout: Optional[float] = None,
        max_attempts: Optional[int] = None,
        backoff_seconds: Optional[float] = None,
        retry_on: Tuple[Type[BaseException], ...] = TRANSIENT_ERRORS,
    ) -> None:
        self.timeout = timeout if timeout is not None else Config.JOB_TIMEOUT_SECONDS
        self.max_attempts = max(1, max_attempts if max_attempts is not None else Config.JOB_MAX_ATTEMPTS)
        self.backoff_seconds = backoff_seconds if backoff_seconds is not None else Config.JOB_BACKOFF_SECONDS
        self.retry_on = retry_on
        self._tasks: Dict[JobKey, asyncio.Task] = {}
        self._seen: Set[JobKey] = set()

    def submit(
        self,
        key: JobKey,
        factory: JobFactory,
        *,
        context: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """Schedule ``factory`` under ``key``. Returns False for duplicate keys."""

        if key in self._seen:
            return False
        self._seen.add(key)
        self._tasks[key] = asyncio.create_task(self._execute(key, factory, dict(context or {})))
        log_llm(f"[Jobs] queued {key[1]} for {key[0]} (epoch {key[2]})")
        return True

    def forget(self, predicate: Callable[[JobKey], bool]) -> int:
        """Drop finished keys matching ``predicate`` from the duplicate guard.

        Only pass keys of closed windows: a forgotten key is accepted again.
        """

        stale = {key for key in self._seen if key not in self._tasks and predicate(key)}
        self._seen -= stale
        return len(stale)

    def seen_count(self) -> int:
        return len(self._seen)

    def is_pending(self, key: JobKey) -> bool:
        return key in self._tasks

    def pending_kinds(self, agent_id: str) -> Set[str]:
        return {kind for (owner, kind, _) in self._tasks if owner == agent_id}

    def pending_count(self) -> int:
        return len(self._tasks)

    def poll(self) -> List[JobOutcome]:
        """Collect every finished job without blocking."""

        finished: List[JobOutcome] = []
        for key, task in list(self._tasks.items()):
            if not task.done():
                continue
            del self._tasks[key]
            if task.cancelled():
                continue
            finished.append(task.result())
        return finished

    async def drain(self) -> List[JobOutcome]:
        """Wait for every pending job, then return all outcomes."""

        if self._tasks:
            await asyncio.gather(*self._tasks.values(), return_exceptions=True)
        return self.poll()

    async def cancel_all(self) -> None:
        for task in self._tasks.values():
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks.values(), return_exceptions=True)
        self._tasks.clear()

    def _wait_strategy(self):
        if self.backoff_seconds <= 0:
            return wait_none()
        return wait_exponential(multiplier=self.backoff_seconds, max=self.backoff_seconds * 8)

    async def _execute(self, key: JobKey, factory: JobFactory, context: Dict[str, Any]) -> JobOutcome:
        attempts = 0
        try:
            async for attempt in AsyncRetrying(
                retry=retry_if_exception_type(self.retry_on),
                stop=stop_after_attempt(self.max_attempts),
                wait=self._wait_strategy(),
                reraise=True,
            ):
                with attempt:
                    attempts += 1
                    if attempts > 1:
                        log_error(f"[Jobs] retry {attempts}/{self.max_attempts} for {key[1]} ({key[0]})")
                    try:
                        result = await asyncio.wait_for(factory(), timeout=self.timeout)
                    except asyncio.TimeoutError as exc:
                        raise GenerationTimeoutError(timeout=self.timeout, provider=key[1]) from exc
            return JobOutcome(key=key, result=result, attempts=attempts, context=context)
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # every failure becomes a reported outcome
            dropped = JobDroppedError(key=key, attempts=attempts, underlying=exc)
            log_error(f"[Jobs] {dropped}")
            return JobOutcome(key=key, error=dropped, attempts=attempts, context=context)
