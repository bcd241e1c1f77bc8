from datetime import datetime, timezone

import pytest

from app.services.entity_catalog import EntityDefinition, Importance
from app.services.entity_coverage import (
    EntityResult,
    analyze_entity_coverage,
    coverage_score,
    derive_site_identity,
    expected_mentions,
    mention_score,
)
from app.services.page_signals import PageMetadata


def _result(importance: Importance, gap: bool) -> EntityResult:
    return EntityResult(
        site_id="s",
        entity_name=f"{importance.value}-{gap}",
        entity_type="T",
        importance=importance,
        mention_count=0,
        expected_mentions=1,
        gap=gap,
        created_at=datetime.now(timezone.utc),
    )


@pytest.mark.parametrize(
    "url, name, keywords",
    [
        ("https://www.acme.io/about", "Acme", {"acme", "acme.io", "www.acme.io"}),
        ("acme.io", "Acme", {"acme", "acme.io"}),
        ("http://shop.example.co.uk", "Shop", {"shop", "shop.example.co.uk"}),
        ("not a url", "Unknown Site", set()),
        ("", "Unknown Site", set()),
    ],
)
def test_derive_site_identity(url, name, keywords):
    got_name, got_keywords = derive_site_identity(url)
    assert got_name == name
    assert set(got_keywords) == keywords


def test_mention_score_counts_whole_words_partials_and_bonuses():
    entity = EntityDefinition(name="Cloud", type="T", importance="high", weight=2, keywords=["cloud"])
    score, relevance = mention_score(entity, "cloud cloudy cloud", "cloud hosting", "")
    # 2 whole-word hits * 2 + 3 substring hits * 2 * 0.5 + title bonus 3 * 2
    assert score == pytest.approx(13)
    assert relevance == 2


def test_description_bonus_and_relevance():
    entity = EntityDefinition(name="Cloud", type="T", importance="medium", weight=1, keywords=["cloud"])
    score, relevance = mention_score(entity, "", "", "we run the cloud")
    assert score == pytest.approx(2)
    assert relevance == 1


def test_expected_mentions_floors_and_scaling():
    assert expected_mentions(Importance.CRITICAL, 0) == 5
    assert expected_mentions(Importance.HIGH, 0) == 3
    assert expected_mentions(Importance.MEDIUM, 0) == 2
    assert expected_mentions(Importance.CRITICAL, 2500) == pytest.approx(7.5)
    assert expected_mentions(Importance.HIGH, 10_000) == pytest.approx(6)
    assert expected_mentions(Importance.MEDIUM, 10_000) == pytest.approx(4.5)
    assert expected_mentions(Importance.CRITICAL, 0, relevance=1) == pytest.approx(4)


def test_empty_content_flags_every_entity():
    report = analyze_entity_coverage("https://acme.io", "", PageMetadata(), "site-1")
    assert report.total_entities == 17
    assert all(e.gap for e in report.entities)
    assert report.coverage_score == 0
    assert report.entities[0].entity_name == "Acme"
    assert report.entities[0].importance == Importance.CRITICAL
    assert all(e.site_id == "site-1" for e in report.entities)
    assert "needs improvement" in report.analysis_summary


def test_garbage_url_still_produces_report():
    report = analyze_entity_coverage("::::", "random words", None, "x")
    assert report.entities[0].entity_name == "Unknown Site"
    assert report.entities[0].gap
    assert 0 <= report.coverage_score <= 100


def test_site_entity_covered_by_title_and_text():
    report = analyze_entity_coverage(
        "https://acme.io",
        "Acme " * 5,
        {"title": "Acme Consulting", "description": ""},
        "s1",
    )
    site = report.entities[0]
    assert site.entity_name == "Acme"
    assert not site.gap
    assert site.expected_mentions == pytest.approx(4.0)


def test_small_catalog_full_coverage(small_catalog):
    text = "cloud support pricing " * 10
    report = analyze_entity_coverage("https://cloudco.com", text, PageMetadata(title="CloudCo"), "s", catalog=small_catalog)
    gaps = {e.entity_name: e.gap for e in report.entities}
    assert gaps == {"Cloudco": False, "Cloud": False, "Support": False, "Pricing": False}
    assert report.coverage_score == 100
    assert "excellent" in report.analysis_summary
    assert report.metrics.critical_entities == 2
    assert report.metrics.high_entities == 1
    assert report.metrics.medium_entities == 1


def test_metrics_and_summary_mention_gaps(small_catalog):
    report = analyze_entity_coverage("https://cloudco.com", "pricing " * 5, None, "s", catalog=small_catalog)
    assert report.metrics.critical_gaps == 2
    assert report.metrics.high_gaps == 1
    assert report.metrics.medium_gaps == 0
    assert "2 critical entities have coverage gaps" in report.analysis_summary
    assert "1 high-importance entity has a coverage gap" in report.analysis_summary
    # only the medium tier is covered: 0.2 * 1/4
    assert report.coverage_score == 5


def test_gap_monotonic_in_mentions():
    entity = EntityDefinition(name="Widget", type="T", importance="medium", weight=1, keywords=["widget"])
    from app.services.entity_catalog import EntityCatalog

    catalog = EntityCatalog(entities=(entity,))
    previous_gap = True
    for n in range(0, 12):
        text = ("widget " * n).ljust(1000, "z")
        report = analyze_entity_coverage("https://x.com", text, None, "s", catalog=catalog)
        gap = report.entities[1].gap
        assert not (previous_gap is False and gap is True)
        previous_gap = gap
    assert previous_gap is False


def test_critical_entities_dominate_score():
    critical_gaps = [_result(Importance.CRITICAL, True)] * 2 + [
        _result(Importance.HIGH, False),
        _result(Importance.MEDIUM, False),
    ]
    no_gaps = [_result(Importance.CRITICAL, False)] * 2 + [
        _result(Importance.HIGH, False),
        _result(Importance.MEDIUM, False),
    ]
    assert coverage_score(critical_gaps) < coverage_score(no_gaps)
    assert coverage_score(no_gaps) == 100


def test_empty_tiers_do_not_divide_by_zero():
    assert coverage_score([]) == 0
    only_medium = [_result(Importance.MEDIUM, False)]
    assert coverage_score(only_medium) == 20


@pytest.mark.parametrize(
    "text",
    ["", "a", "service " * 2000, "🙂" * 300, "<html><body>x</body></html>"],
)
def test_coverage_score_always_in_range(text):
    report = analyze_entity_coverage("https://example.com", text, {"title": text[:50]}, "s")
    assert isinstance(report.coverage_score, int)
    assert 0 <= report.coverage_score <= 100
    assert report.total_entities == len(report.entities)


def test_none_metadata_values_are_treated_as_empty():
    report = analyze_entity_coverage(
        "https://acme.io",
        "Acme text",
        {"title": None, "description": None, "keywords": None, "has_structured_data": None},
        "s",
    )
    assert report.total_entities == 17
    assert 0 <= report.coverage_score <= 100


def test_malformed_metadata_is_ignored():
    report = analyze_entity_coverage("https://acme.io", "Acme " * 5, {"has_structured_data": "maybe"}, "s")
    assert report.total_entities == 17
    assert report.entities[0].entity_name == "Acme"
    assert not report.entities[0].gap
