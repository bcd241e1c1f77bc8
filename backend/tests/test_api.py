import json

import pytest
from fastapi.testclient import TestClient

from app.core.config import settings
from app.main import app

API = settings.API_V1_STR

PAGE = {
    "url": "https://www.acme.io",
    "site_id": "site-42",
    "page_text": "Acme offers professional services and consulting with expert support. " * 20,
    "title": "Acme Consulting",
    "description": "Professional services for growing companies",
    "keywords": "consulting, services",
    "has_structured_data": True,
}


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def no_ai(monkeypatch):
    monkeypatch.setattr("app.api.routes.analysis.get_text_generator", lambda: None)
    monkeypatch.setattr("app.api.routes.prompts.get_text_generator", lambda: None)


def test_health(client):
    r = client.get(f"{API}/health/")
    assert r.status_code == 200
    assert r.json()["status"] == "ok"


def test_llm_health_when_disabled(client, monkeypatch):
    monkeypatch.setattr(settings, "CREW_AI_ENABLED", False)
    r = client.get(f"{API}/health/llm")
    assert r.status_code == 200
    assert r.json()["ok"] is False


def test_catalog(client):
    r = client.get(f"{API}/catalog/")
    assert r.status_code == 200
    body = r.json()
    assert body["count"] == 16
    assert sum(body["by_importance"].values()) == 16
    assert body["by_importance"]["critical"] >= 1


def test_entity_coverage_endpoint(client):
    r = client.post(f"{API}/analysis/entity-coverage", json=PAGE)
    assert r.status_code == 200
    body = r.json()
    assert body["total_entities"] == 17
    assert body["entities"][0]["entity_name"] == "Acme"
    assert body["entities"][0]["gap"] is False
    assert body["entities"][0]["site_id"] == "site-42"
    assert 0 <= body["coverage_score"] <= 100
    assert body["analysis_method"] == "Rule-based entity matching"


def test_entity_coverage_from_html(client):
    html = "<html><head><title>Acme</title></head><body><p>Acme acme acme acme acme</p></body></html>"
    r = client.post(f"{API}/analysis/entity-coverage", json={"url": "https://acme.io", "html": html})
    assert r.status_code == 200
    assert r.json()["entities"][0]["gap"] is False


def test_visibility_endpoint_without_ai(client, no_ai):
    r = client.post(f"{API}/analysis/visibility", json=PAGE)
    assert r.status_code == 200
    body = r.json()
    assert body["analysis_method"] == "Heuristic (AI not configured)"
    assert set(body) >= {"ai_visibility", "schema", "semantic", "citation", "technical_seo"}
    assert all(1 <= body[k] <= 100 for k in ("ai_visibility", "schema", "semantic", "citation", "technical_seo"))


def test_visibility_endpoint_with_ai(client, monkeypatch, fake_generator):
    response = json.dumps({
        "ai_visibility_score": 81,
        "schema_score": 62,
        "semantic_score": 77,
        "citation_score": 58,
        "technical_seo_score": 90,
    })
    monkeypatch.setattr(
        "app.api.routes.analysis.get_text_generator", lambda: fake_generator(response=response)
    )
    r = client.post(f"{API}/analysis/visibility", json=PAGE)
    assert r.status_code == 200
    body = r.json()
    assert body["analysis_method"] == "AI-powered (fake/model)"
    assert body["schema"] == 62
    assert body["fallback_reason"] is None


def test_combined_analysis(client, no_ai):
    r = client.post(f"{API}/analysis/", json=PAGE)
    assert r.status_code == 200
    body = r.json()
    assert body["site_id"] == "site-42"
    assert body["coverage"]["total_entities"] == 17
    assert body["scores"]["analysis_method"] == "Heuristic (AI not configured)"


def test_analysis_requires_url(client):
    r = client.post(f"{API}/analysis/visibility", json={"page_text": "x"})
    assert r.status_code == 422


def test_prompt_suggestions_endpoint(client, no_ai):
    r = client.post(
        f"{API}/prompts/suggestions",
        json={"content": "The best cloud hosting for small teams", "industry": "SaaS"},
    )
    assert r.status_code == 200
    body = r.json()
    assert body["total_suggestions"] == 45
    assert body["analysis_method"] == "Template-based (AI not configured)"
    assert len(body["suggestions"]["comparisons"]) == 5


@pytest.mark.parametrize("content", ["", "   short  "])
def test_prompt_suggestions_rejects_short_content(client, no_ai, content):
    r = client.post(f"{API}/prompts/suggestions", json={"content": content})
    assert r.status_code == 400
