"""Five-factor AI visibility scoring.

One AI attempt is made when a text generator is configured; its JSON payload
is extracted, validated and clamped. Any failure along the way (no
generator, transport error, timeout, unparseable or invalid output) switches
to the deterministic heuristic below. Either way the caller gets a complete
ScoreSet whose ``analysis_method`` records which path produced it.
"""
from __future__ import annotations

import json
import logging
import math
import random
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, StrictFloat, StrictInt, field_validator

from app.metrics import track_analysis
from app.services.ai_path import (
    AIFailure,
    AISuccess,
    TextGenerator,
    run_structured_generation,
    truncate_reason,
)
from app.services.page_signals import PageSignal

logger = logging.getLogger(__name__)

COMPONENT = "visibility"

SCORE_MIN = 1
SCORE_MAX = 100
LONG_CONTENT_CHARS = 1000

SCORE_FIELDS = ("ai_visibility", "schema", "semantic", "citation", "technical_seo")

# Heuristic weights per sub-score. "base" is always added; the other keys are
# added when the corresponding page indicator is present.
HEURISTIC_WEIGHTS: Dict[str, Dict[str, int]] = {
    "ai_visibility": {"base": 30, "structured_data": 20, "title": 15, "description": 15, "long_content": 10},
    "schema": {"base": 20, "structured_data": 50, "title": 5, "description": 5},
    "semantic": {"base": 35, "structured_data": 10, "title": 15, "description": 10, "long_content": 15},
    "citation": {"base": 25, "structured_data": 15, "title": 10, "description": 15, "long_content": 15},
    "technical_seo": {"base": 30, "structured_data": 10, "title": 20, "description": 20, "keywords": 5, "long_content": 5},
}

LABELS = {
    "ai_visibility": "AI Visibility",
    "schema": "Schema Implementation",
    "semantic": "Semantic Structure",
    "citation": "Citation Potential",
    "technical_seo": "Technical SEO",
}


def clamp_score(value: Any) -> int:
    """Coerce anything to an integer score in [1, 100]; non-numeric -> 1."""
    try:
        f = float(value)
    except OverflowError:
        return SCORE_MAX if value > 0 else SCORE_MIN
    except (TypeError, ValueError):
        return SCORE_MIN
    if math.isnan(f):
        return SCORE_MIN
    if math.isinf(f):
        return SCORE_MAX if f > 0 else SCORE_MIN
    return max(SCORE_MIN, min(SCORE_MAX, int(round(f))))


class ScoreSet(BaseModel):
    ai_visibility: int
    schema_score: int = Field(alias="schema")
    semantic: int
    citation: int
    technical_seo: int
    analysis_method: str
    fallback_reason: Optional[str] = None
    analysis: str = ""
    recommendations: List[str] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("ai_visibility", "schema_score", "semantic", "citation", "technical_seo", mode="before")
    @classmethod
    def _clamp(cls, v: Any) -> int:
        return clamp_score(v)

    def scores(self) -> Dict[str, int]:
        return {
            "ai_visibility": self.ai_visibility,
            "schema": self.schema_score,
            "semantic": self.semantic,
            "citation": self.citation,
            "technical_seo": self.technical_seo,
        }

    @property
    def used_ai(self) -> bool:
        return self.fallback_reason is None and self.analysis_method.startswith("AI-powered")


Number = Union[StrictInt, StrictFloat]


class AIScorePayload(BaseModel):
    """Shape the model is asked to return. Extra keys are ignored."""

    ai_visibility_score: Number
    schema_score: Number
    semantic_score: Number
    citation_score: Number
    technical_seo_score: Number
    analysis: Optional[str] = None
    recommendations: List[str] = Field(default_factory=list)

    model_config = ConfigDict(extra="ignore")

    @field_validator(
        "ai_visibility_score", "schema_score", "semantic_score", "citation_score", "technical_seo_score"
    )
    @classmethod
    def _finite(cls, v: float) -> float:
        try:
            finite = math.isfinite(v)
        except OverflowError:
            finite = False
        if not finite:
            raise ValueError("score must be a finite number")
        return v

    @field_validator("analysis", mode="before")
    @classmethod
    def _analysis_text(cls, v: Any) -> Optional[str]:
        return None if v is None else str(v)

    @field_validator("recommendations", mode="before")
    @classmethod
    def _recommendation_strings(cls, v: Any) -> List[str]:
        if not isinstance(v, list):
            return []
        out: List[str] = []
        for item in v:
            if isinstance(item, dict):
                item = item.get("title") or item.get("recommendation") or json.dumps(item)
            text = str(item).strip()
            if text:
                out.append(text)
        return out


def build_prompt(signal: PageSignal, excerpt_chars: Optional[int] = None) -> str:
    if excerpt_chars is None:
        from app.core.config import settings

        excerpt_chars = settings.PROMPT_EXCERPT_CHARS
    excerpt = (signal.text or "")[:excerpt_chars]
    return (
        "You are an expert AI visibility consultant who analyzes websites for how well AI systems "
        "like ChatGPT, Claude, Perplexity and voice assistants can understand and cite them.\n\n"
        f"URL: {signal.url}\n"
        f"Title: {signal.title or 'Not available'!r}\n"
        f"Meta Description: {signal.description or 'Not available'!r}\n"
        f"Meta Keywords: {signal.keywords or 'Not available'!r}\n"
        f"Structured data detected: {'yes' if signal.has_structured_data else 'no'}\n"
        f"Content excerpt: {excerpt!r}\n\n"
        "Score the page from 0 to 100 in these five categories:\n"
        "1. AI Visibility: overall readiness for AI systems to understand and cite this content\n"
        "2. Schema: quality and coverage of structured data markup\n"
        "3. Semantic: content organization, heading structure and semantic clarity\n"
        "4. Citation: likelihood of being cited by AI systems\n"
        "5. Technical SEO: technical factors that affect AI crawling and understanding\n\n"
        "CRITICAL: Return ONLY a JSON object, no markdown and no prose:\n"
        '{"ai_visibility_score": 75, "schema_score": 60, "semantic_score": 80, '
        '"citation_score": 65, "technical_seo_score": 70, '
        '"analysis": "what you observed", "recommendations": ["action 1", "action 2"]}'
    )


def _describe(score: int) -> str:
    if score >= 80:
        return "excellent"
    if score >= 70:
        return "good"
    if score >= 60:
        return "fair"
    if score >= 50:
        return "needs improvement"
    return "poor"


def _indicators(signal: PageSignal) -> Dict[str, bool]:
    return {
        "structured_data": signal.has_structured_data,
        "title": signal.has_title,
        "description": signal.has_description,
        "keywords": signal.has_keywords,
        "long_content": len(signal.text or "") >= LONG_CONTENT_CHARS,
    }


def heuristic_scores(
    signal: PageSignal,
    rng: Optional[random.Random] = None,
    jitter_max: Optional[int] = None,
) -> Dict[str, int]:
    """Deterministic indicator scores plus bounded jitter.

    With ``jitter_max=0`` (or a seeded ``rng``) the result is reproducible.
    """
    if jitter_max is None:
        from app.core.config import settings

        jitter_max = settings.HEURISTIC_JITTER_MAX
    jitter_max = max(0, min(10, jitter_max))
    rng = rng or random.Random()
    flags = _indicators(signal)

    scores: Dict[str, int] = {}
    for name, weights in HEURISTIC_WEIGHTS.items():
        raw = float(weights.get("base", 0))
        for indicator, present in flags.items():
            if present:
                raw += weights.get(indicator, 0)
        jitter = rng.uniform(0, jitter_max) if jitter_max else 0.0
        scores[name] = max(SCORE_MIN, min(SCORE_MAX, math.floor(raw + jitter)))
    return scores


def heuristic_analysis(scores: Dict[str, int], signal: PageSignal, reason: str) -> str:
    lines = [
        f"{LABELS[name]} ({scores[name]}/100): {_describe(scores[name])}."
        for name in SCORE_FIELDS
    ]
    observed = []
    observed.append("structured data present" if signal.has_structured_data else "no structured data found")
    observed.append("title present" if signal.has_title else "missing title")
    observed.append("meta description present" if signal.has_description else "missing meta description")
    lines.append(f"Observed: {', '.join(observed)}.")
    lines.append(f"Scores were estimated from page indicators because {reason}.")
    return "\n".join(lines)


def heuristic_recommendations(scores: Dict[str, int], signal: PageSignal) -> List[str]:
    recs: List[str] = []
    if scores["schema"] < 70:
        recs.append("Implement schema.org structured data (JSON-LD) for the organization and key pages")
    if not signal.has_title:
        recs.append("Add a descriptive, keyword-rich <title> element")
    if not signal.has_description:
        recs.append("Write a meta description that summarizes the page in one or two sentences")
    if scores["semantic"] < 70:
        recs.append("Organize content under clear H1/H2/H3 headings that match user questions")
    if scores["citation"] < 70:
        recs.append("Add an FAQ section with concise, quotable answers to common questions")
    if scores["technical_seo"] < 70:
        recs.append("Review crawlability, page speed and mobile rendering for AI crawlers")
    if not recs:
        recs.append("Expand authoritative content and keep structured data up to date")
    return recs


def _validate_payload(data: Dict[str, Any]) -> AIScorePayload:
    return AIScorePayload.model_validate(data)


def score_visibility(
    signal: PageSignal,
    generator: Optional[TextGenerator] = None,
    rng: Optional[random.Random] = None,
    jitter_max: Optional[int] = None,
    timeout_seconds: Optional[float] = None,
) -> ScoreSet:
    """Score a page; never raises.

    Without a generator the heuristic runs directly and the method label
    says AI is not configured.
    """
    try:
        outcome = run_structured_generation(
            generator,
            build_prompt(signal) if generator is not None else "",
            _validate_payload,
            component=COMPONENT,
            timeout_seconds=timeout_seconds,
        )
    except Exception as e:
        logger.exception("Unexpected error in AI scoring path")
        outcome = AIFailure(reason=truncate_reason(f"{type(e).__name__}: {e}"), kind="error")

    if isinstance(outcome, AISuccess):
        payload: AIScorePayload = outcome.payload
        model = getattr(generator, "model_name", "unknown")
        result = ScoreSet(
            ai_visibility=payload.ai_visibility_score,
            schema=payload.schema_score,
            semantic=payload.semantic_score,
            citation=payload.citation_score,
            technical_seo=payload.technical_seo_score,
            analysis_method=f"AI-powered ({model})",
            analysis=payload.analysis or "",
            recommendations=payload.recommendations,
        )
        track_analysis(COMPONENT, "ai")
    else:
        if outcome.kind == "disabled":
            method = "Heuristic (AI not configured)"
            because = "AI analysis is not configured"
        else:
            method = f"Heuristic (AI failed: {outcome.reason})"
            because = "the AI analysis was unavailable"
        scores = heuristic_scores(signal, rng=rng, jitter_max=jitter_max)
        result = ScoreSet(
            **scores,
            analysis_method=method,
            fallback_reason=outcome.reason,
            analysis=heuristic_analysis(scores, signal, because),
            recommendations=heuristic_recommendations(scores, signal),
        )
        track_analysis(COMPONENT, "heuristic", outcome.kind)

    logger.info(json.dumps({
        "event": "visibility_scored",
        "url": signal.url,
        "method": result.analysis_method,
        "scores": result.scores(),
    }))
    return result
