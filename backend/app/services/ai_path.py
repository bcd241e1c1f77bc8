"""Single AI attempt with a bounded timeout and an explicit outcome type.

Every failure mode of the AI path (not configured, transport error, timeout,
empty body, unparseable output, invalid payload) becomes an ``AIFailure``
carrying a short reason. Callers branch on the outcome and run their
deterministic fallback; nothing here raises to the caller.
"""
from __future__ import annotations

import json
import logging
import time
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FuturesTimeoutError
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Generic, Optional, Protocol, TypeVar, Union

from pydantic import ValidationError

from app.metrics import track_llm_call
from app.services.structured_output import NoStructuredDataFound, extract_structured

logger = logging.getLogger(__name__)

T = TypeVar("T")


class AIError(RuntimeError):
    """Base class for AI capability failures."""


class AIUnavailableError(AIError):
    """The AI capability is not configured or could not be initialised."""


class AITimeoutError(AIError):
    """The AI call did not complete within its time budget."""


class TextGenerator(Protocol):
    """The AI capability: submit a prompt, receive text back."""

    model_name: str

    def generate(self, prompt: str) -> str:  # pragma: no cover - protocol
        ...


@dataclass(frozen=True)
class AISuccess(Generic[T]):
    payload: T
    raw: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class AIFailure:
    reason: str
    kind: str = "error"  # disabled | timeout | error | invalid


AIOutcome = Union[AISuccess[T], AIFailure]


def truncate_reason(reason: str, limit: Optional[int] = None) -> str:
    if limit is None:
        from app.core.config import settings

        limit = settings.FAILURE_REASON_MAX_CHARS
    reason = " ".join(str(reason).split())
    if len(reason) <= limit:
        return reason
    return reason[: max(limit - 3, 0)] + "..."


def _call_with_timeout(generator: TextGenerator, prompt: str, timeout_seconds: float) -> str:
    # The executor is not used as a context manager: exiting it would wait
    # for a hung call and defeat the timeout.
    ex = ThreadPoolExecutor(max_workers=1, thread_name_prefix="ai-call")
    future = ex.submit(generator.generate, prompt)
    try:
        return future.result(timeout=timeout_seconds)
    except FuturesTimeoutError:
        future.cancel()
        raise AITimeoutError(f"AI call timed out after {timeout_seconds:g}s")
    finally:
        ex.shutdown(wait=False, cancel_futures=True)


def run_structured_generation(
    generator: Optional[TextGenerator],
    prompt: str,
    validate: Callable[[Dict[str, Any]], T],
    component: str,
    timeout_seconds: Optional[float] = None,
) -> AIOutcome:
    """Run one AI attempt and validate its structured payload.

    ``validate`` receives the extracted JSON object and returns the typed
    payload, raising ValueError or pydantic ValidationError when the shape
    is wrong. No retries are made.
    """
    if generator is None:
        return AIFailure(reason="AI not configured", kind="disabled")

    if timeout_seconds is None:
        from app.core.config import settings

        timeout_seconds = settings.LLM_TIMEOUT_SECONDS

    model = getattr(generator, "model_name", "unknown")
    start = time.time()
    with track_llm_call(model, component) as ctx:
        try:
            text = _call_with_timeout(generator, prompt, timeout_seconds)
        except AITimeoutError as e:
            ctx["result"] = "timeout"
            return _failed(component, str(e), "timeout", start)
        except Exception as e:
            ctx["result"] = "error"
            return _failed(component, f"{type(e).__name__}: {e}", "error", start)

        if not isinstance(text, str) or not text.strip():
            ctx["result"] = "error"
            return _failed(component, "Empty response from AI", "error", start)

        try:
            data = extract_structured(text)
        except NoStructuredDataFound as e:
            ctx["result"] = "invalid"
            return _failed(component, f"Unparseable AI response: {e}", "invalid", start)

        try:
            payload = validate(data)
        except (ValidationError, ValueError, TypeError, OverflowError) as e:
            ctx["result"] = "invalid"
            return _failed(component, f"Invalid AI payload: {e}", "invalid", start)

        ctx["result"] = "success"

    logger.info(json.dumps({
        "event": "ai_attempt_success",
        "component": component,
        "model": model,
        "duration_ms": int((time.time() - start) * 1000),
    }))
    return AISuccess(payload=payload, raw=data)


def _failed(component: str, reason: str, kind: str, start: float) -> AIFailure:
    reason = truncate_reason(reason)
    logger.warning(json.dumps({
        "event": "ai_attempt_failed",
        "component": component,
        "kind": kind,
        "reason": reason,
        "duration_ms": int((time.time() - start) * 1000),
    }))
    return AIFailure(reason=reason, kind=kind)
