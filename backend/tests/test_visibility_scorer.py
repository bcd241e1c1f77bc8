import json
import math
import random
import time

import pytest

from app.services.page_signals import PageSignal
from app.services.visibility_scorer import (
    ScoreSet,
    build_prompt,
    clamp_score,
    heuristic_scores,
    score_visibility,
)

FIELDS = ("ai_visibility", "schema", "semantic", "citation", "technical_seo")


def _ai_response(**overrides):
    body = {
        "ai_visibility_score": 70,
        "schema_score": 70,
        "semantic_score": 70,
        "citation_score": 70,
        "technical_seo_score": 70,
        "analysis": "Solid page.",
        "recommendations": ["Add FAQ schema"],
    }
    body.update(overrides)
    return "```json\n" + json.dumps(body) + "\n```"


@pytest.mark.parametrize(
    "value, expected",
    [
        (150, 100),
        (-5, 1),
        (0, 1),
        (49.6, 50),
        ("abc", 1),
        (None, 1),
        (math.nan, 1),
        (math.inf, 100),
        (-math.inf, 1),
    ],
)
def test_clamp_score(value, expected):
    assert clamp_score(value) == expected


def test_no_generator_uses_heuristic(empty_signal):
    result = score_visibility(empty_signal, jitter_max=0)
    assert result.analysis_method == "Heuristic (AI not configured)"
    assert result.fallback_reason == "AI not configured"
    assert not result.used_ai
    assert result.scores() == {
        "ai_visibility": 30,
        "schema": 20,
        "semantic": 35,
        "citation": 25,
        "technical_seo": 30,
    }
    assert result.recommendations
    assert "Schema Implementation (20/100): poor." in result.analysis


def test_heuristic_with_every_indicator(rich_signal):
    assert heuristic_scores(rich_signal, jitter_max=0) == {
        "ai_visibility": 90,
        "schema": 80,
        "semantic": 85,
        "citation": 80,
        "technical_seo": 90,
    }


def test_heuristic_jitter_is_bounded_and_seedable(rich_signal, empty_signal):
    base = heuristic_scores(empty_signal, jitter_max=0)
    for seed in range(20):
        jittered = heuristic_scores(empty_signal, rng=random.Random(seed))
        for name in FIELDS:
            assert base[name] <= jittered[name] <= base[name] + 10
    assert heuristic_scores(rich_signal, rng=random.Random(3)) == heuristic_scores(rich_signal, rng=random.Random(3))


def test_heuristic_never_exceeds_bounds(rich_signal):
    for seed in range(20):
        scores = heuristic_scores(rich_signal, rng=random.Random(seed))
        assert all(1 <= v <= 100 for v in scores.values())


def test_ai_scores_are_clamped(fake_generator, rich_signal):
    gen = fake_generator(response=_ai_response(ai_visibility_score=150, schema_score=-5))
    result = score_visibility(rich_signal, gen, timeout_seconds=2)
    assert result.analysis_method == "AI-powered (fake/model)"
    assert result.used_ai
    assert result.fallback_reason is None
    assert result.scores() == {
        "ai_visibility": 100,
        "schema": 1,
        "semantic": 70,
        "citation": 70,
        "technical_seo": 70,
    }
    assert result.analysis == "Solid page."
    assert result.recommendations == ["Add FAQ schema"]


def test_prompt_carries_page_details(fake_generator, rich_signal):
    gen = fake_generator(response=_ai_response())
    score_visibility(rich_signal, gen, timeout_seconds=2)
    prompt = gen.prompts[0]
    assert "https://www.acme.io" in prompt
    assert "Acme | Cloud Software" in prompt
    assert "ai_visibility_score" in prompt


def test_prompt_excerpt_is_bounded():
    signal = PageSignal(url="u", text="q" * 10_000)
    assert "q" * 3001 not in build_prompt(signal, excerpt_chars=3000)


def test_missing_score_key_falls_back(fake_generator, empty_signal):
    body = json.dumps({
        "ai_visibility_score": 70,
        "schema_score": 70,
        "semantic_score": 70,
        "citation_score": 70,
    })
    result = score_visibility(empty_signal, fake_generator(response=body), jitter_max=0, timeout_seconds=2)
    assert result.analysis_method.startswith("Heuristic (AI failed:")
    assert result.fallback_reason
    assert result.ai_visibility == 30


@pytest.mark.parametrize("bad", ["70", True, None, [70]])
def test_non_numeric_score_falls_back(fake_generator, empty_signal, bad):
    gen = fake_generator(response=_ai_response(citation_score=bad))
    result = score_visibility(empty_signal, gen, jitter_max=0, timeout_seconds=2)
    assert result.analysis_method.startswith("Heuristic (AI failed:")
    assert not result.used_ai


def test_generator_exception_falls_back(fake_generator, empty_signal):
    gen = fake_generator(exc=RuntimeError("model exploded"))
    result = score_visibility(empty_signal, gen, jitter_max=0, timeout_seconds=2)
    assert result.analysis_method == "Heuristic (AI failed: RuntimeError: model exploded)"
    assert result.fallback_reason == "RuntimeError: model exploded"


def test_hung_generator_times_out(fake_generator, empty_signal):
    gen = fake_generator(response=_ai_response(), delay=1.5)
    start = time.time()
    result = score_visibility(empty_signal, gen, jitter_max=0, timeout_seconds=0.1)
    assert time.time() - start < 1.0
    assert "timed out" in result.analysis_method
    assert result.scores()["schema"] == 20


def test_garbage_response_falls_back(fake_generator, empty_signal):
    result = score_visibility(empty_signal, fake_generator(response="no json here"), jitter_max=0, timeout_seconds=2)
    assert result.analysis_method.startswith("Heuristic (AI failed:")
    assert all(1 <= v <= 100 for v in result.scores().values())


def test_score_set_serializes_schema_key():
    s = ScoreSet(ai_visibility=1, schema=2, semantic=3, citation=4, technical_seo=5, analysis_method="x")
    dumped = s.model_dump(by_alias=True)
    assert dumped["schema"] == 2
    assert "schema_score" not in dumped


def test_clamp_score_handles_huge_integers():
    assert clamp_score(10**400) == 100
    assert clamp_score(-(10**400)) == 1


def test_overflowing_ai_score_is_an_invalid_payload(fake_generator, empty_signal):
    gen = fake_generator(response=_ai_response(semantic_score=10**400))
    result = score_visibility(empty_signal, gen, jitter_max=0, timeout_seconds=2)
    assert result.analysis_method.startswith("Heuristic (AI failed: Invalid AI payload")
    assert "OverflowError" not in result.analysis_method
    assert result.scores()["semantic"] == 35
