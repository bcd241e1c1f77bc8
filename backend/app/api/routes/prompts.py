from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from app.services.llm_factory import get_text_generator
from app.services.prompt_suggestions import SuggestionBundle, generate_prompt_suggestions

router = APIRouter(prefix="/prompts", tags=["prompts"])

MIN_CONTENT_CHARS = 10


class SuggestionRequest(BaseModel):
    content: str
    industry: Optional[str] = None
    target_audience: Optional[str] = None
    content_type: Optional[str] = None
    site_url: Optional[str] = None


@router.post("/suggestions", response_model=SuggestionBundle)
def suggestions(payload: SuggestionRequest) -> SuggestionBundle:
    if len((payload.content or "").strip()) < MIN_CONTENT_CHARS:
        raise HTTPException(
            status_code=400,
            detail=f"Content is required and must be at least {MIN_CONTENT_CHARS} characters long",
        )
    return generate_prompt_suggestions(
        payload.content,
        get_text_generator(),
        industry=payload.industry,
        target_audience=payload.target_audience,
        content_type=payload.content_type,
        site_url=payload.site_url,
    )
