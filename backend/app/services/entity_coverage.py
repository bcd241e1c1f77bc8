"""Rule-based entity coverage analysis.

Matches the entity catalog (plus a synthetic entity for the site itself)
against page text and metadata. Each entity gets a weighted mention score
that is compared with an expected threshold scaled by importance and content
length; entities below their threshold are flagged as gaps. The aggregate
coverage score blends critical (50%), high (30%) and overall (20%) gap-free
ratios.

Deterministic and non-raising: empty or garbage input still produces a full
report, with every entity flagged as a gap.
"""
from __future__ import annotations

import json
import logging
import re
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence, Tuple
from urllib.parse import urlparse

from pydantic import BaseModel, Field, ValidationError

from app.metrics import track_analysis, track_coverage_score
from app.services.entity_catalog import (
    EntityCatalog,
    EntityDefinition,
    Importance,
    get_catalog,
)
from app.services.page_signals import PageMetadata

logger = logging.getLogger(__name__)

ANALYSIS_METHOD = "Rule-based entity matching"

SITE_ENTITY_TYPE = "Organization"
SITE_ENTITY_WEIGHT = 3

TITLE_BONUS = 3
DESCRIPTION_BONUS = 2
PARTIAL_MATCH_FACTOR = 0.5
RELEVANCE_DISCOUNT = 0.8

TIER_WEIGHTS = {
    "critical": 0.5,
    "high": 0.3,
    "overall": 0.2,
}

_HOST_RE = re.compile(r"^[a-z0-9.-]+$")


class EntityResult(BaseModel):
    site_id: str
    entity_name: str
    entity_type: str
    importance: Importance
    mention_count: float = Field(ge=0)
    expected_mentions: float
    gap: bool
    created_at: datetime


class CoverageMetrics(BaseModel):
    critical_entities: int
    critical_gaps: int
    high_entities: int
    high_gaps: int
    medium_entities: int
    medium_gaps: int
    total_weighted_mentions: float


class CoverageReport(BaseModel):
    entities: List[EntityResult]
    analysis_summary: str
    total_entities: int
    coverage_score: int = Field(ge=0, le=100)
    metrics: CoverageMetrics
    analysis_method: str = ANALYSIS_METHOD


def derive_site_identity(url: str) -> Tuple[str, frozenset]:
    """Return (display name, keywords) for the site behind ``url``.

    "https://www.acme.io/about" -> ("Acme", {"acme", "acme.io", "www.acme.io"}).
    Unparseable URLs give a generic name and no keywords.
    """
    raw = (url or "").strip()
    if raw and "://" not in raw:
        raw = f"http://{raw}"
    try:
        host = (urlparse(raw).hostname or "").lower()
    except ValueError:
        host = ""

    if not host or not _HOST_RE.match(host):
        return "Unknown Site", frozenset()

    bare = host[4:] if host.startswith("www.") else host
    site = bare.split(".")[0]
    if not site:
        return "Unknown Site", frozenset()
    display = site.capitalize()
    keywords = {site, display.lower(), bare, host}
    return display, frozenset(k for k in keywords if k)


def site_entity(url: str) -> EntityDefinition:
    name, keywords = derive_site_identity(url)
    return EntityDefinition(
        name=name,
        type=SITE_ENTITY_TYPE,
        importance=Importance.CRITICAL,
        weight=SITE_ENTITY_WEIGHT,
        keywords=keywords,
    )


def mention_score(
    entity: EntityDefinition, combined: str, title: str, description: str
) -> Tuple[float, int]:
    """Weighted mention score and contextual relevance for one entity.

    All text arguments must already be lowercased. Substring occurrences are
    counted on top of whole-word hits, so a whole-word match also earns the
    partial-match credit.
    """
    score = 0.0
    relevance = 0
    w = entity.weight
    for keyword in sorted(entity.keywords):
        exact = len(re.findall(rf"\b{re.escape(keyword)}\b", combined))
        partial = combined.count(keyword)
        score += exact * w
        score += partial * w * PARTIAL_MATCH_FACTOR
        if keyword in title:
            score += TITLE_BONUS * w
            relevance += 2
        if keyword in description:
            score += DESCRIPTION_BONUS * w
            relevance += 1
    return score, relevance


def expected_mentions(importance: Importance, content_length: int, relevance: int = 0) -> float:
    factor = min(content_length / 1000, 3)
    if importance == Importance.CRITICAL:
        expected = max(5, 3 * factor)
    elif importance == Importance.HIGH:
        expected = max(3, 2 * factor)
    else:
        expected = max(2, 1.5 * factor)
    if relevance > 0:
        expected *= RELEVANCE_DISCOUNT
    return float(expected)


def _covered_ratio(results: Sequence[EntityResult]) -> float:
    covered = sum(1 for r in results if not r.gap)
    return covered / max(len(results), 1)


def coverage_score(results: Sequence[EntityResult]) -> int:
    critical = [r for r in results if r.importance == Importance.CRITICAL]
    high = [r for r in results if r.importance == Importance.HIGH]
    blended = (
        TIER_WEIGHTS["critical"] * _covered_ratio(critical)
        + TIER_WEIGHTS["high"] * _covered_ratio(high)
        + TIER_WEIGHTS["overall"] * _covered_ratio(results)
    )
    return max(0, min(100, int(round(100 * blended))))


def _plural(n: int, singular: str, plural: str) -> str:
    return singular if n == 1 else plural


def build_summary(site_name: str, score: int, metrics: CoverageMetrics, total: int, covered: int) -> str:
    if score >= 80:
        band = "excellent"
    elif score >= 60:
        band = "good"
    else:
        band = "needs improvement"

    parts = [
        f"Entity coverage for {site_name} is {band} ({score}/100).",
        f"{covered} of {total} entities are well covered.",
    ]
    if metrics.critical_gaps:
        n = metrics.critical_gaps
        parts.append(f"{n} critical {_plural(n, 'entity has a', 'entities have')} coverage {_plural(n, 'gap', 'gaps')}.")
    if metrics.high_gaps:
        n = metrics.high_gaps
        parts.append(f"{n} high-importance {_plural(n, 'entity has a', 'entities have')} coverage {_plural(n, 'gap', 'gaps')}.")
    if band == "needs improvement":
        parts.append(
            "Mention critical and high-importance entities more often, including in the title and meta description."
        )
    return " ".join(parts)


def analyze_entity_coverage(
    url: str,
    page_text: str,
    metadata: Optional[PageMetadata | Dict] = None,
    site_id: str = "",
    catalog: Optional[EntityCatalog] = None,
) -> CoverageReport:
    """Analyze entity coverage for one page.

    ``metadata`` carries title, description and keywords. ``catalog``
    defaults to the packaged entity catalog.
    """
    if isinstance(metadata, dict):
        try:
            metadata = PageMetadata.model_validate(metadata)
        except ValidationError as e:
            logger.warning(f"Ignoring malformed page metadata: {e.error_count()} errors")
            metadata = None
    md = metadata or PageMetadata()
    catalog = catalog or get_catalog()

    text = page_text or ""
    title = (md.title or "").lower()
    description = (md.description or "").lower()
    combined = f"{text} {title} {description}".lower()

    site = site_entity(url)
    entities: List[EntityDefinition] = [site, *catalog.entities]

    now = datetime.now(timezone.utc)
    results: List[EntityResult] = []
    total_weighted = 0.0
    for entity in entities:
        score, relevance = mention_score(entity, combined, title, description)
        expected = expected_mentions(entity.importance, len(text), relevance)
        total_weighted += score
        results.append(
            EntityResult(
                site_id=str(site_id),
                entity_name=entity.name,
                entity_type=entity.type,
                importance=entity.importance,
                mention_count=round(score, 1),
                expected_mentions=round(expected, 2),
                gap=score < expected,
                created_at=now,
            )
        )

    def _tier(importance: Importance) -> Tuple[int, int]:
        tier = [r for r in results if r.importance == importance]
        return len(tier), sum(1 for r in tier if r.gap)

    crit_n, crit_gaps = _tier(Importance.CRITICAL)
    high_n, high_gaps = _tier(Importance.HIGH)
    med_n, med_gaps = _tier(Importance.MEDIUM)
    metrics = CoverageMetrics(
        critical_entities=crit_n,
        critical_gaps=crit_gaps,
        high_entities=high_n,
        high_gaps=high_gaps,
        medium_entities=med_n,
        medium_gaps=med_gaps,
        total_weighted_mentions=round(total_weighted, 1),
    )

    score = coverage_score(results)
    covered = sum(1 for r in results if not r.gap)
    summary = build_summary(site.name, score, metrics, len(results), covered)

    logger.info(json.dumps({
        "event": "entity_coverage_complete",
        "site_id": str(site_id),
        "entities": len(results),
        "gaps": len(results) - covered,
        "coverage_score": score,
        "content_length": len(text),
    }))
    track_analysis("entity_coverage", "rules")
    track_coverage_score(score)

    return CoverageReport(
        entities=results,
        analysis_summary=summary,
        total_entities=len(results),
        coverage_score=score,
        metrics=metrics,
    )
