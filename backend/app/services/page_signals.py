"""Reduce fetched HTML (or pre-extracted fields) to the engine's PageSignal.

Network fetching happens elsewhere; this module only looks at markup it is
handed. Every helper is non-raising: malformed HTML yields an empty signal.
"""
from __future__ import annotations

import logging
import re
from typing import Any, Optional

from bs4 import BeautifulSoup
from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)


class PageSignal(BaseModel):
    url: str = ""
    text: str = ""
    title: str = ""
    description: str = ""
    keywords: str = ""
    has_structured_data: bool = False

    @property
    def has_title(self) -> bool:
        return bool(self.title.strip())

    @property
    def has_description(self) -> bool:
        return bool(self.description.strip())

    @property
    def has_keywords(self) -> bool:
        return bool(self.keywords.strip())


class PageMetadata(BaseModel):
    title: str = ""
    description: str = ""
    keywords: str = ""
    has_structured_data: bool = Field(default=False)

    @field_validator("title", "description", "keywords", mode="before")
    @classmethod
    def _text_or_empty(cls, v: Any) -> str:
        return "" if v is None else str(v)

    @field_validator("has_structured_data", mode="before")
    @classmethod
    def _flag_or_false(cls, v: Any) -> Any:
        return False if v is None else v


def _collapse(text: Optional[str]) -> str:
    return " ".join((text or "").split()).strip()


def _meta_content(soup: BeautifulSoup, name: str) -> str:
    tag = soup.find("meta", attrs={"name": re.compile(f"^{name}$", re.I)})
    if tag and tag.get("content"):
        return _collapse(str(tag.get("content")))
    return ""


def _has_structured_data(soup: BeautifulSoup) -> bool:
    if soup.find("script", attrs={"type": re.compile(r"application/ld\+json", re.I)}):
        return True
    return soup.find(attrs={"itemscope": True}) is not None


def extract_visible_text(soup: BeautifulSoup, limit: int) -> str:
    for tag in soup(["script", "style", "noscript", "template"]):
        tag.decompose()
    body = soup.body or soup
    return _collapse(body.get_text(" "))[:limit]


def signal_from_html(html: str, url: str = "", limit: Optional[int] = None) -> PageSignal:
    """Parse raw HTML into a PageSignal.

    Title falls back to og:title, description to og:description. Text is
    truncated to ``limit`` characters (CONTENT_CHAR_LIMIT by default).
    """
    if limit is None:
        from app.core.config import settings

        limit = settings.CONTENT_CHAR_LIMIT

    if not html:
        return PageSignal(url=url)

    try:
        soup = BeautifulSoup(html, "html.parser")
    except Exception as e:
        logger.warning(f"BeautifulSoup parsing failed: {e}")
        return PageSignal(url=url)

    title = ""
    if soup.title:
        title = _collapse(soup.title.get_text())
    if not title:
        og = soup.find("meta", property="og:title")
        if og and og.get("content"):
            title = _collapse(str(og.get("content")))

    description = _meta_content(soup, "description")
    if not description:
        ogd = soup.find("meta", property="og:description")
        if ogd and ogd.get("content"):
            description = _collapse(str(ogd.get("content")))

    keywords = _meta_content(soup, "keywords")
    structured = _has_structured_data(soup)

    return PageSignal(
        url=url,
        text=extract_visible_text(soup, limit),
        title=title,
        description=description,
        keywords=keywords,
        has_structured_data=structured,
    )


def build_signal(
    url: str,
    text: str = "",
    metadata: Optional[PageMetadata] = None,
    limit: Optional[int] = None,
) -> PageSignal:
    """Assemble a PageSignal from pre-extracted text and metadata."""
    if limit is None:
        from app.core.config import settings

        limit = settings.CONTENT_CHAR_LIMIT
    md = metadata or PageMetadata()
    return PageSignal(
        url=url or "",
        text=(text or "")[:limit],
        title=_collapse(md.title),
        description=_collapse(md.description),
        keywords=_collapse(md.keywords),
        has_structured_data=md.has_structured_data,
    )
