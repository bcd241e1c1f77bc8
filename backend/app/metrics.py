"""Prometheus metrics instrumentation for the analysis engine.

Provides:
- AI call counters and latency by component
- Analysis counters by component and path (ai | heuristic)
- Structured-output extraction outcomes
- Coverage score distribution

Usage:
    from app.metrics import (
        track_llm_call,
        track_analysis,
        ANALYSIS_REQUESTS_TOTAL,
    )
"""
from __future__ import annotations

import time
from contextlib import contextmanager
from typing import Generator

from prometheus_client import Counter, Histogram, Info

# ============================
# AI Capability Metrics
# ============================

LLM_REQUESTS = Counter(
    "visibility_llm_requests_total",
    "AI capability requests",
    ["model", "component", "result"],  # result: success | timeout | error | invalid
)

LLM_LATENCY = Histogram(
    "visibility_llm_duration_seconds",
    "AI capability call duration",
    ["model", "component"],
    buckets=(0.5, 1.0, 2.0, 5.0, 10.0, 15.0, 20.0, 30.0),
)

# ============================
# Analysis Metrics
# ============================

ANALYSIS_REQUESTS_TOTAL = Counter(
    "visibility_analysis_requests_total",
    "Analyses by component and the path that produced the result",
    ["component", "path"],  # path: ai | heuristic | rules
)

FALLBACKS_TOTAL = Counter(
    "visibility_fallbacks_total",
    "Heuristic fallbacks by component and failure kind",
    ["component", "kind"],  # kind: disabled | timeout | error | invalid
)

EXTRACTION_TOTAL = Counter(
    "visibility_structured_output_total",
    "Structured-output extraction outcomes by strategy",
    ["strategy", "result"],  # result: hit | miss
)

COVERAGE_SCORE = Histogram(
    "visibility_entity_coverage_score",
    "Entity coverage score distribution",
    buckets=(10, 20, 30, 40, 50, 60, 70, 80, 90, 100),
)

# ============================
# Application Info
# ============================

APP_INFO = Info("visibility_engine_app", "Application version and environment info")


def initialize_app_info(version: str = "0.1.0", environment: str = "local"):
    """Set application info metric."""
    APP_INFO.info({"version": version, "environment": environment})


# ============================
# Tracking Helpers
# ============================


@contextmanager
def track_llm_call(model: str, component: str) -> Generator[dict, None, None]:
    """Track AI call timing and result.

    Usage:
        with track_llm_call("ollama/llama3", "visibility") as ctx:
            text = generator.generate(prompt)
            ctx["result"] = "success"  # or "timeout" | "invalid"
    """
    start = time.time()
    context = {"result": "error"}  # default to error unless explicitly set

    try:
        yield context
    finally:
        duration = time.time() - start
        result = context.get("result", "error")
        LLM_REQUESTS.labels(model=model, component=component, result=result).inc()
        if result != "error":
            LLM_LATENCY.labels(model=model, component=component).observe(duration)


def track_analysis(component: str, path: str, fallback_kind: str | None = None):
    """Count a finished analysis.

    Args:
        component: visibility | suggestions | entity_coverage
        path: ai | heuristic | rules
        fallback_kind: failure kind that forced the heuristic path, if any
    """
    ANALYSIS_REQUESTS_TOTAL.labels(component=component, path=path).inc()
    if fallback_kind:
        FALLBACKS_TOTAL.labels(component=component, kind=fallback_kind).inc()


def track_coverage_score(score: int):
    COVERAGE_SCORE.observe(score)


def track_extraction(strategy: str, result: str):
    EXTRACTION_TOTAL.labels(strategy=strategy, result=result).inc()
