"""Text generation services used by reflection, metacognition and planning.

The core treats generation as an opaque, swappable service: it submits a
prompt and eventually receives text. Every call is wrapped in a timeout so a
hung provider can never stall a job forever.

Implementations:
- LLMGenerationService: any provider supported by Mirascope (openai, anthropic, ...)
- OllamaGenerationService: a locally hosted Ollama server over HTTP
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, Callable, Optional, Protocol
from urllib import error, request

from mirascope import llm

from .config import DEFAULT_OLLAMA_BASE_URL, Config
from .logging_utils import debug_enabled, log_llm

_CHAT_ENDPOINT = "/api/chat"


class GenerationService(Protocol):
    """Asynchronous prompt -> text contract."""

    async def submit(self, prompt: str) -> str:
        ...


class GenerationTimeoutError(Exception):
    """Raised when a generation call exceeds its timeout."""

    def __init__(self, *, timeout: float, provider: str) -> None:
        self.timeout = timeout
        self.provider = provider
        super().__init__(
            f"Generation via {provider} timed out after {timeout:.0f}s.\n\n"
            "Remediation tips:\n"
            "  - Raise JOB_TIMEOUT_SECONDS for slow providers\n"
            "  - Check provider status / network connectivity\n"
            "  - DEBUG_LLM=true to inspect the prompts being sent"
        )


class LocalLLMError(RuntimeError):
    """Raised when a local LLM invocation fails."""


def _debug_prompt(label: str, prompt: str) -> None:
    if debug_enabled("DEBUG_LLM"):
        print(f"\n{'=' * 80}")
        log_llm(f"[{label}] prompt")
        print(f"{'-' * 80}")
        print(prompt)
        print(f"{'=' * 80}\n")


class LLMGenerationService:
    """Generation through Mirascope's provider-agnostic ``llm.call`` decorator."""

    def __init__(
        self,
        *,
        provider: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self.provider = provider or Config.LLM_PROVIDER
        self.model = model or Config.LLM_MODEL
        self.timeout = timeout if timeout is not None else Config.JOB_TIMEOUT_SECONDS

        @llm.call(provider=self.provider, model=self.model)
        async def _invoke(prompt: str) -> str:
            return prompt

        self._invoke: Callable[[str], Any] = _invoke

    async def submit(self, prompt: str) -> str:
        _debug_prompt(f"{self.provider}/{self.model}", prompt)
        try:
            response = await asyncio.wait_for(self._invoke(prompt), timeout=self.timeout)
        except asyncio.TimeoutError as exc:
            raise GenerationTimeoutError(timeout=self.timeout, provider=self.provider) from exc
        return response.content


def _perform_ollama_request(payload: dict[str, Any], base_url: str, timeout: float) -> str:
    """Execute the blocking HTTP request against the Ollama REST API."""

    url = f"{base_url.rstrip('/')}{_CHAT_ENDPOINT}"
    req = request.Request(
        url,
        data=json.dumps(payload).encode("utf-8"),
        headers={"Content-Type": "application/json"},
        method="POST",
    )

    try:
        with request.urlopen(req, timeout=timeout) as resp:
            raw = resp.read().decode("utf-8")
    except error.HTTPError as exc:
        body = exc.read().decode("utf-8", errors="ignore") if exc.fp else ""
        raise LocalLLMError(
            f"Ollama chat request failed with status {exc.code}: {body or exc.reason}"
        ) from exc
    except error.URLError as exc:
        # Unreachable server is transient from the job runner's point of view.
        raise ConnectionError(f"Could not reach Ollama at {url}: {exc.reason}") from exc

    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise LocalLLMError("Ollama returned non-JSON response.") from exc

    content = (parsed.get("message") or {}).get("content")
    if not content:
        raise LocalLLMError("Ollama response did not include assistant content.")
    return content


class OllamaGenerationService:
    """Generation against a local Ollama server (blocking HTTP in a worker thread)."""

    def __init__(
        self,
        *,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self.model = model or Config.LLM_MODEL
        self.base_url = base_url or Config.LOCAL_LLM_BASE_URL or DEFAULT_OLLAMA_BASE_URL
        self.timeout = timeout if timeout is not None else Config.JOB_TIMEOUT_SECONDS

    async def submit(self, prompt: str) -> str:
        prompt = prompt.strip()
        if not prompt:
            raise LocalLLMError("Cannot call Ollama with an empty prompt.")
        _debug_prompt(f"ollama/{self.model}", prompt)
        payload = {
            "model": self.model,
            "messages": [{"role": "user", "content": prompt}],
            "stream": False,
        }
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(_perform_ollama_request, payload, self.base_url, self.timeout),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as exc:
            raise GenerationTimeoutError(timeout=self.timeout, provider="ollama") from exc


def build_generation_service() -> GenerationService:
    """Construct the generation service selected by ``Config.LLM_PROVIDER``."""

    if Config.LLM_PROVIDER.lower() == "ollama":
        return OllamaGenerationService()
    return LLMGenerationService()
