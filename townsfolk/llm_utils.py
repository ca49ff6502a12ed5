"""Helpers for turning free-form generation output into validated models."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Callable, Sequence, TypeVar

from pydantic import BaseModel, ValidationError
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt

from .generation import GenerationService
from .logging_utils import log_error


ModelT = TypeVar("ModelT", bound=BaseModel)

_FENCE_PATTERN = re.compile(r"^\s*```(?:json)?\s*(.*?)\s*```\s*$", re.DOTALL | re.IGNORECASE)


@dataclass(slots=True)
class ValidationFeedback:
    """Structured feedback for retrying failed schema outputs."""

    llm_text: str
    issues: Sequence[str]


def strip_code_fences(text: str) -> str:
    """Remove a surrounding ```json fence and any prose before the first brace."""

    text = text.strip()
    match = _FENCE_PATTERN.match(text)
    if match:
        text = match.group(1).strip()
    if not text.startswith("{"):
        start, end = text.find("{"), text.rfind("}")
        if start != -1 and end > start:
            text = text[start : end + 1]
    return text


def _truncate_preview(value: Any, *, limit: int = 80) -> str:
    if value is None:
        return "null"
    text = repr(value)
    if len(text) > limit:
        return text[: limit - 3] + "..."
    return text


def inject_validation_feedback(error: ValidationError) -> ValidationFeedback:
    """Produce retry guidance for the model plus structured issues for logging.

    Each pydantic error becomes ``field.path: message [type=...] | received=...``
    so the model can correct exactly the offending fields.
    """

    issues: list[str] = []
    for err in error.errors(include_url=False):
        loc = ".".join(str(part) for part in err.get("loc", [])) or "root"
        details = f"{loc}: {err.get('msg', 'validation error')}"
        if err.get("type"):
            details += f" [type={err['type']}]"
        if "input" in err:
            preview = _truncate_preview(err.get("input"))
            if preview:
                details += f" | received={preview}"
        issues.append(details)

    if not issues:
        issues.append("root: response did not match the expected schema")

    instructions = [
        "Your previous JSON response failed to validate against the required schema.",
        "Produce a corrected response that strictly matches the schema.",
        "Return only valid JSON, without explanations or code fences.",
        "Issues detected:",
    ]
    instructions.extend(f"- {issue}" for issue in issues)
    return ValidationFeedback(llm_text="\n".join(instructions), issues=issues)


async def generate_structured(
    service: GenerationService,
    prompt: str,
    response_model: type[ModelT],
    *,
    max_attempts: int = 2,
    feedback_builder: Callable[[ValidationError], ValidationFeedback] = inject_validation_feedback,
) -> ModelT:
    """Submit ``prompt`` and validate the reply, retrying with validation feedback.

    Only ValidationError triggers a retry here; timeouts and transport errors
    propagate so the job runner can apply its own backoff policy. After
    ``max_attempts`` the final ValidationError is re-raised.
    """

    base_prompt = prompt.strip()
    feedback: ValidationFeedback | None = None
    attempt_number = 0

    async for attempt in AsyncRetrying(
        retry=retry_if_exception_type(ValidationError),
        stop=stop_after_attempt(max_attempts),
        reraise=True,
    ):
        with attempt:
            attempt_number += 1
            final_prompt = base_prompt if feedback is None else f"{base_prompt}\n\n{feedback.llm_text}"
            raw = await service.submit(final_prompt)
            try:
                return response_model.model_validate_json(strip_code_fences(raw))
            except ValidationError as exc:
                feedback = feedback_builder(exc)
                log_error(
                    f"Schema validation failed for {response_model.__name__} "
                    f"(attempt {attempt_number}/{max_attempts})"
                )
                for issue in feedback.issues:
                    print(f"    - {issue}")
                raise

    raise RuntimeError("Generation retry loop exited unexpectedly")
