from __future__ import annotations

from typing import Any, Dict, Optional

import anyio
import anyio.to_thread
from fastapi import APIRouter
from pydantic import BaseModel

from app.core.config import settings
from app.services.entity_coverage import CoverageReport, analyze_entity_coverage
from app.services.llm_factory import get_text_generator
from app.services.page_signals import PageMetadata, PageSignal, build_signal, signal_from_html
from app.services.visibility_scorer import ScoreSet, score_visibility

router = APIRouter(prefix="/analysis", tags=["analysis"])


class AnalysisRequest(BaseModel):
    url: str
    site_id: str = ""
    # Either pre-extracted fields or raw html; html wins when both are given
    page_text: str = ""
    title: str = ""
    description: str = ""
    keywords: str = ""
    has_structured_data: bool = False
    html: Optional[str] = None


class AnalysisResponse(BaseModel):
    url: str
    site_id: str
    coverage: CoverageReport
    scores: ScoreSet


def _signal(payload: AnalysisRequest) -> PageSignal:
    if payload.html:
        return signal_from_html(payload.html, payload.url, limit=settings.CONTENT_CHAR_LIMIT)
    metadata = PageMetadata(
        title=payload.title,
        description=payload.description,
        keywords=payload.keywords,
        has_structured_data=payload.has_structured_data,
    )
    return build_signal(payload.url, payload.page_text, metadata, limit=settings.CONTENT_CHAR_LIMIT)


def _coverage(signal: PageSignal, site_id: str) -> CoverageReport:
    metadata = PageMetadata(
        title=signal.title,
        description=signal.description,
        keywords=signal.keywords,
        has_structured_data=signal.has_structured_data,
    )
    return analyze_entity_coverage(signal.url, signal.text, metadata, site_id)


@router.post("/entity-coverage", response_model=CoverageReport)
def entity_coverage(payload: AnalysisRequest) -> CoverageReport:
    return _coverage(_signal(payload), payload.site_id)


@router.post("/visibility", response_model=ScoreSet)
def visibility(payload: AnalysisRequest) -> ScoreSet:
    return score_visibility(_signal(payload), get_text_generator())


@router.post("/", response_model=AnalysisResponse)
async def analyze(payload: AnalysisRequest) -> AnalysisResponse:
    """Run entity coverage and visibility scoring concurrently."""
    signal = _signal(payload)
    generator = get_text_generator()
    results: Dict[str, Any] = {}

    async def _run_coverage() -> None:
        results["coverage"] = await anyio.to_thread.run_sync(_coverage, signal, payload.site_id)

    async def _run_scores() -> None:
        results["scores"] = await anyio.to_thread.run_sync(score_visibility, signal, generator)

    async with anyio.create_task_group() as tg:
        tg.start_soon(_run_coverage)
        tg.start_soon(_run_scores)

    return AnalysisResponse(
        url=payload.url,
        site_id=payload.site_id,
        coverage=results["coverage"],
        scores=results["scores"],
    )
