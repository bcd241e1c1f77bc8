"""LLM factory for CrewAI using a local Ollama endpoint.

This module centralizes creation of the CrewAI LLM client behind the engine's
text-generation capability, so scoring and suggestion generation share the
same configuration and can run fully locally without cloud API keys.

Environment variables:
  - MODEL or CREWAI_MODEL: model id, e.g. "ollama/llama3:8b" or
    "ollama/llama3:70b". Defaults to "ollama/llama3".
  - OLLAMA_HOST: Base URL for Ollama, default depends on environment:
      • Inside Docker:  http://host.docker.internal:11434
      • Outside Docker: http://localhost:11434
  - LLM_TEMPERATURE: float (default 0.2)
  - LLM_MAX_TOKENS: int (default 2000)

The capability is only handed out when CREW_AI_ENABLED is true; otherwise
callers receive None and go straight to their heuristic path.
"""
from __future__ import annotations

import os
import logging
from functools import lru_cache
from typing import Optional

from app.services.ai_path import AIUnavailableError, TextGenerator

logger = logging.getLogger(__name__)


def _running_in_docker() -> bool:
    return os.path.exists("/.dockerenv")


def _resolve_base_url(raw: str | None) -> str:
    if raw:
        # Explicit localhost inside Docker is rerouted so it can reach the host.
        if raw.startswith("http://localhost:") and _running_in_docker():
            mapped = raw.replace("http://localhost:", "http://host.docker.internal:")
            logger.info(f"LLM base_url mapped for Docker: {raw} -> {mapped}")
            return mapped
        return raw
    return "http://host.docker.internal:11434" if _running_in_docker() else "http://localhost:11434"


def resolve_model_name() -> str:
    # Prefer MODEL; fall back to CREWAI_MODEL for backward compatibility
    return os.getenv("MODEL") or os.getenv("CREWAI_MODEL") or "ollama/llama3"


@lru_cache(maxsize=1)
def get_llm():
    """Return a configured CrewAI LLM client (singleton).

    Uses a local Ollama endpoint by default, no cloud API keys required.
    """
    from app.core.config import settings

    model = resolve_model_name()
    base_url = _resolve_base_url(os.getenv("OLLAMA_HOST"))
    try:
        temperature = float(os.getenv("LLM_TEMPERATURE", "0.2"))
    except ValueError:
        temperature = 0.2
    try:
        max_tokens = int(os.getenv("LLM_MAX_TOKENS", "2000"))
    except ValueError:
        max_tokens = 2000

    # Late import to avoid hard dependency when not used
    from crewai import LLM  # type: ignore

    logger.info(
        "Initializing LLM: model=%s base_url=%s temperature=%s max_tokens=%s timeout=%s",
        model,
        base_url,
        temperature,
        max_tokens,
        settings.LLM_TIMEOUT_SECONDS,
    )
    return LLM(
        model=model,
        base_url=base_url,
        temperature=temperature,
        max_tokens=max_tokens,
        timeout=settings.LLM_TIMEOUT_SECONDS,
    )


class CrewAIGenerator:
    """TextGenerator backed by the shared CrewAI LLM client."""

    def __init__(self, llm=None, model_name: Optional[str] = None) -> None:
        self._llm = llm
        self.model_name = model_name or resolve_model_name()

    def generate(self, prompt: str) -> str:
        llm = self._llm
        if llm is None:
            try:
                llm = get_llm()
            except Exception as e:
                raise AIUnavailableError(f"LLM not available: {e}") from e
        out = llm.call(prompt)  # type: ignore[attr-defined]
        return "" if out is None else str(out)


def get_text_generator() -> Optional[TextGenerator]:
    """Return the configured AI capability, or None when AI is disabled."""
    from app.core.config import settings

    if not settings.CREW_AI_ENABLED:
        return None
    return CrewAIGenerator()
