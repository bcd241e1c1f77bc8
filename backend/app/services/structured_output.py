"""Recover a JSON object from free-form model output.

Models wrap JSON in markdown fences, prepend chatter ("Here is the JSON:"),
or return a bare array. ``extract_structured`` tries an ordered list of
strategies and returns the first candidate that parses to a JSON object.
It never invents data: when nothing parses, ``NoStructuredDataFound`` is
raised and the caller picks its own fallback.
"""
from __future__ import annotations

import json
import logging
import re
from typing import Any, Callable, Dict, List, Optional, Tuple

from app.metrics import track_extraction

logger = logging.getLogger(__name__)


class NoStructuredDataFound(ValueError):
    """Raised when no strategy yields a JSON object."""


_PREFIX_PATTERNS = [
    re.compile(r"^here(?:'s| is) the json[^:\n]*:", re.I),
    re.compile(r"^the json[^:\n]*:", re.I),
    re.compile(r"^json\s*:", re.I),
    re.compile(r"^based on[^:\n]*:", re.I),
]

_TAGGED_FENCE = re.compile(r"```[ \t]*[A-Za-z][\w+-]*[ \t]*\r?\n([\s\S]*?)```")
_UNTAGGED_FENCE = re.compile(r"```[ \t]*\r?\n?([\s\S]*?)```")
_OBJECT_SPAN = re.compile(r"\{[\s\S]*\}")
_ARRAY_SPAN = re.compile(r"\[[\s\S]*\]")


def _tagged_fence(text: str) -> Optional[str]:
    m = _TAGGED_FENCE.search(text)
    return m.group(1).strip() if m else None


def _untagged_fence(text: str) -> Optional[str]:
    m = _UNTAGGED_FENCE.search(text)
    return m.group(1).strip() if m else None


def _object_span(text: str) -> Optional[str]:
    m = _OBJECT_SPAN.search(text)
    return m.group(0) if m else None


def _balanced_object(text: str) -> Optional[str]:
    """First brace-balanced ``{...}`` span; braces inside JSON strings are skipped."""
    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for i in range(start, len(text)):
            ch = text[i]
            if in_string:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_string = False
                continue
            if ch == '"':
                in_string = True
            elif ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    return text[start : i + 1]
        start = text.find("{", start + 1)
    return None


def _array_span(text: str) -> Optional[str]:
    m = _ARRAY_SPAN.search(text)
    return m.group(0) if m else None


def _wrap_array(value: Any) -> Any:
    if isinstance(value, list):
        return {"suggestions": value}
    return None


# (name, strategy, post-processing of the parsed value)
Strategy = Tuple[str, Callable[[str], Optional[str]], Optional[Callable[[Any], Any]]]

STRATEGIES: List[Strategy] = [
    ("tagged_fence", _tagged_fence, None),
    ("untagged_fence", _untagged_fence, None),
    ("object_span", _object_span, None),
    ("balanced_object", _balanced_object, None),
    ("array_span", _array_span, _wrap_array),
]


def strip_fences(candidate: str) -> str:
    cleaned = re.sub(r"^\s*```[A-Za-z]*[ \t]*", "", candidate)
    cleaned = re.sub(r"\s*```\s*$", "", cleaned)
    return cleaned.strip()


def _strip_prefixes(text: str) -> str:
    cleaned = text.strip()
    for pattern in _PREFIX_PATTERNS:
        cleaned = pattern.sub("", cleaned, count=1).lstrip()
    return cleaned


def repair_json(candidate: str) -> str:
    """Fix the usual model mistakes: trailing commas, bare keys, single quotes."""
    fixed = re.sub(r",\s*}", "}", candidate)
    fixed = re.sub(r",\s*]", "]", fixed)
    fixed = re.sub(r"([{,]\s*)([A-Za-z_]\w*)\s*:", r'\1"\2":', fixed)
    fixed = re.sub(r":\s*'([^']*)'", r': "\1"', fixed)
    return fixed


def parse_candidate(candidate: str) -> Any:
    """Parse strictly, then once more after ``repair_json``."""
    cleaned = strip_fences(candidate)
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError:
        return json.loads(repair_json(cleaned))


def extract_structured(raw_text: Optional[str]) -> Dict[str, Any]:
    """Return the first JSON object recoverable from ``raw_text``.

    Raises NoStructuredDataFound when every strategy fails.
    """
    if not isinstance(raw_text, str) or not raw_text.strip():
        raise NoStructuredDataFound("empty model output")

    text = _strip_prefixes(raw_text)
    for name, strategy, post in STRATEGIES:
        candidate = strategy(text)
        if not candidate:
            continue
        try:
            value = parse_candidate(candidate)
        except (json.JSONDecodeError, ValueError) as e:
            logger.debug(f"Extraction strategy {name} failed to parse: {e}")
            continue
        if post is not None:
            value = post(value)
        if isinstance(value, dict):
            logger.info(json.dumps({
                "event": "structured_output_extracted",
                "strategy": name,
                "keys": sorted(value.keys())[:20],
            }))
            track_extraction(name, "hit")
            return value

    logger.warning(json.dumps({
        "event": "structured_output_not_found",
        "preview": raw_text[:120],
    }))
    track_extraction("all", "miss")
    raise NoStructuredDataFound("no JSON object could be extracted from model output")
