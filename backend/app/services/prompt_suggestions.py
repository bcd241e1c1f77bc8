"""Prompt suggestions for voice search, FAQs, headlines and snippets.

Shares the AI-first / template-fallback flow with the visibility scorer: one
AI attempt, validated against the fixed set of categories, otherwise canned
patterns filled with the leading significant words of the content.
"""
from __future__ import annotations

import json
import logging
import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from app.metrics import track_analysis
from app.services.ai_path import (
    AIFailure,
    AISuccess,
    TextGenerator,
    run_structured_generation,
    truncate_reason,
)

logger = logging.getLogger(__name__)

COMPONENT = "suggestions"

CATEGORIES = (
    "voice_search",
    "faq_questions",
    "headlines",
    "featured_snippets",
    "long_tail",
    "comparisons",
    "how_to",
)

MAX_SUGGESTION_CHARS = 200
TOPIC_WORDS = 5

STOP_WORDS = frozenset(
    "the a an and or but in on at to for of with by is are was were be been have has had do does did "
    "will would could should may might can this that these those from your our their about into more "
    "than what when where which while".split()
)


class SuggestionLists(BaseModel):
    voice_search: List[str]
    faq_questions: List[str]
    headlines: List[str]
    featured_snippets: List[str]
    long_tail: List[str]
    comparisons: List[str]
    how_to: List[str]
    analysis_summary: str = ""

    @field_validator(*CATEGORIES, mode="before")
    @classmethod
    def _short_strings(cls, v: Any) -> List[str]:
        if not isinstance(v, list):
            raise ValueError("expected a list of strings")
        out: List[str] = []
        for item in v:
            if isinstance(item, (dict, list)):
                continue
            text = " ".join(str(item).split())
            if text:
                out.append(text[:MAX_SUGGESTION_CHARS])
        return out

    @field_validator("analysis_summary", mode="before")
    @classmethod
    def _summary_text(cls, v: Any) -> str:
        return "" if v is None else str(v).strip()

    def total(self) -> int:
        return sum(len(getattr(self, c)) for c in CATEGORIES)


class SuggestionBundle(BaseModel):
    suggestions: SuggestionLists
    total_suggestions: int
    analysis_method: str
    fallback_reason: Optional[str] = None
    generated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


def key_terms(content: str, limit: int = TOPIC_WORDS) -> List[str]:
    """Leading significant words: lowercase, longer than 3 chars, no stop words."""
    words = re.findall(r"[a-z0-9][a-z0-9'-]*", (content or "").lower())
    terms: List[str] = []
    for w in words:
        w = w.strip("'-")
        if len(w) <= 3 or w in STOP_WORDS:
            continue
        terms.append(w)
        if len(terms) >= limit:
            break
    return terms


def build_prompt(
    content: str,
    industry: Optional[str] = None,
    target_audience: Optional[str] = None,
    content_type: Optional[str] = None,
    site_url: Optional[str] = None,
    excerpt_chars: Optional[int] = None,
) -> str:
    if excerpt_chars is None:
        from app.core.config import settings

        excerpt_chars = settings.PROMPT_EXCERPT_CHARS

    context = "\n".join(
        line
        for line in (
            industry and f"Industry: {industry}",
            target_audience and f"Target Audience: {target_audience}",
            content_type and f"Content Type: {content_type}",
            site_url and f"Website: {site_url}",
        )
        if line
    )
    context_block = f"CONTEXT:\n{context}\n\n" if context else ""
    return (
        "You are an expert in AI visibility optimization and voice search. Generate prompt suggestions "
        "that help this content get picked up by ChatGPT, Perplexity, voice assistants and search engines.\n\n"
        f"CONTENT TO ANALYZE:\n{(content or '')[:excerpt_chars]}\n\n"
        f"{context_block}"
        "Categories:\n"
        "1. voice_search: 5-7 conversational questions for voice assistants\n"
        "2. faq_questions: 5-7 questions that could become an FAQ section\n"
        "3. headlines: 5-7 AI-optimized headlines\n"
        "4. featured_snippets: 5-7 questions likely to trigger featured snippets\n"
        "5. long_tail: 5-7 longer, specific search phrases\n"
        "6. comparisons: 3-5 comparison or 'vs' queries\n"
        "7. how_to: 3-5 step-by-step instructional queries\n\n"
        "Return ONLY valid JSON in this exact format:\n"
        '{"voice_search": ["..."], "faq_questions": ["..."], "headlines": ["..."], '
        '"featured_snippets": ["..."], "long_tail": ["..."], "comparisons": ["..."], '
        '"how_to": ["..."], "analysis_summary": "strategy behind these suggestions"}'
    )


def template_suggestions(
    content: str,
    industry: Optional[str] = None,
    target_audience: Optional[str] = None,
) -> SuggestionLists:
    terms = key_terms(content)
    main = terms[0] if terms else "this topic"
    secondary = terms[1] if len(terms) > 1 else "related services"
    third = terms[2] if len(terms) > 2 else main
    fourth = terms[3] if len(terms) > 3 else secondary
    fifth = terms[4] if len(terms) > 4 else main
    field = industry or "your industry"
    audience = target_audience or "users"

    return SuggestionLists(
        voice_search=[
            f"What is {main} and how does it work?",
            f"How can {main} help {audience}?",
            f"What are the benefits of {main} for {field}?",
            f"How do I get started with {main}?",
            f"What's the difference between {main} and {secondary}?",
            f"How much does {main} cost?",
            f"Is {third} right for my business?",
        ],
        faq_questions=[
            f"What is {main}?",
            f"How does {main} work?",
            f"What are the main benefits of {main}?",
            f"How long does it take to see results with {main}?",
            f"What should I look for when choosing {secondary}?",
            f"How much does {main} typically cost?",
            f"Can {fourth} be customized for my specific needs?",
        ],
        headlines=[
            f"The Complete Guide to {main.title()}",
            f"How {main.title()} Can Transform Your {field.title()} Strategy",
            f"{main.title()} vs {secondary.title()}: Which Is Right for You?",
            f"10 Essential {main.title()} Tips Every {audience.title()} Should Know",
            f"Why {third.title()} Matters for Modern {field.title()}",
            f"Getting Started with {main.title()}: A Step-by-Step Guide",
            f"The Future of {fifth.title()}: Trends and Predictions",
        ],
        featured_snippets=[
            f"What is {main}?",
            f"How to implement {main} step by step?",
            f"{main} benefits and advantages",
            f"{main} cost and pricing guide",
            f"Best practices for {secondary}",
            f"{third} requirements and prerequisites",
            f"Common {main} mistakes to avoid",
        ],
        long_tail=[
            f"best {main} solution for small businesses",
            f"how to choose the right {main} provider",
            f"{main} implementation guide for beginners",
            f"affordable {secondary} options for {audience}",
            f"{main} return on investment",
            f"{fourth} integration with existing systems",
            f"{fifth} success stories and case studies",
        ],
        comparisons=[
            f"{main} vs traditional methods",
            f"{main} vs {secondary} comparison",
            f"in-house {main} vs outsourced solutions",
            f"free vs paid {third} options",
            f"{main} for enterprise vs small business",
        ],
        how_to=[
            f"How to implement {main} effectively",
            f"How to measure {main} success",
            f"How to optimize {secondary} for better results",
            f"How to troubleshoot common {third} issues",
            f"How to scale {main} for growing businesses",
        ],
        analysis_summary=(
            f"The content focuses on {main} within the {field} context. The suggestions target "
            f"{audience} with a mix of informational, commercial and navigational intents, covering "
            f"voice search patterns, FAQ opportunities and featured snippet targets."
        ),
    )


def _validate_payload(data: Dict[str, Any]) -> SuggestionLists:
    nested = data.get("suggestions")
    if isinstance(nested, dict):
        data = nested
    return SuggestionLists.model_validate(data)


def generate_prompt_suggestions(
    content: str,
    generator: Optional[TextGenerator] = None,
    industry: Optional[str] = None,
    target_audience: Optional[str] = None,
    content_type: Optional[str] = None,
    site_url: Optional[str] = None,
    timeout_seconds: Optional[float] = None,
) -> SuggestionBundle:
    """Generate categorized prompt suggestions; never raises."""
    try:
        outcome = run_structured_generation(
            generator,
            build_prompt(content, industry, target_audience, content_type, site_url) if generator is not None else "",
            _validate_payload,
            component=COMPONENT,
            timeout_seconds=timeout_seconds,
        )
    except Exception as e:
        logger.exception("Unexpected error in AI suggestion path")
        outcome = AIFailure(reason=truncate_reason(f"{type(e).__name__}: {e}"), kind="error")

    if isinstance(outcome, AISuccess):
        lists: SuggestionLists = outcome.payload
        model = getattr(generator, "model_name", "unknown")
        method = f"AI-powered ({model})"
        reason = None
        track_analysis(COMPONENT, "ai")
    else:
        lists = template_suggestions(content, industry, target_audience)
        if outcome.kind == "disabled":
            method = "Template-based (AI not configured)"
        else:
            method = f"Template-based (AI failed: {outcome.reason})"
        reason = outcome.reason
        track_analysis(COMPONENT, "heuristic", outcome.kind)

    bundle = SuggestionBundle(
        suggestions=lists,
        total_suggestions=lists.total(),
        analysis_method=method,
        fallback_reason=reason,
    )
    logger.info(json.dumps({
        "event": "prompt_suggestions_generated",
        "method": method,
        "total": bundle.total_suggestions,
    }))
    return bundle
