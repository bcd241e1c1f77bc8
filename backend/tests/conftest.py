from __future__ import annotations

import time
from typing import List, Optional

import pytest

from app.services.entity_catalog import EntityCatalog, EntityDefinition, Importance
from app.services.page_signals import PageSignal


class FakeGenerator:
    """Stand-in for the AI capability.

    Returns ``response``, raises ``exc``, or sleeps ``delay`` seconds first.
    """

    model_name = "fake/model"

    def __init__(self, response: Optional[str] = None, exc: Optional[Exception] = None, delay: float = 0.0):
        self.response = response
        self.exc = exc
        self.delay = delay
        self.prompts: List[str] = []

    def generate(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.delay:
            time.sleep(self.delay)
        if self.exc is not None:
            raise self.exc
        return self.response  # type: ignore[return-value]


@pytest.fixture
def fake_generator():
    return FakeGenerator


@pytest.fixture
def empty_signal() -> PageSignal:
    return PageSignal(url="https://example.com")


@pytest.fixture
def rich_signal() -> PageSignal:
    return PageSignal(
        url="https://www.acme.io",
        text="Acme builds cloud software for growing teams. " * 40,
        title="Acme | Cloud Software",
        description="Cloud software and consulting for growing teams.",
        keywords="cloud, software, consulting",
        has_structured_data=True,
    )


@pytest.fixture
def small_catalog() -> EntityCatalog:
    return EntityCatalog(
        entities=(
            EntityDefinition(name="Cloud", type="Technology", importance=Importance.CRITICAL, weight=3, keywords=["cloud"]),
            EntityDefinition(name="Support", type="Service Feature", importance=Importance.HIGH, weight=2, keywords=["support"]),
            EntityDefinition(name="Pricing", type="Concept", importance=Importance.MEDIUM, weight=1, keywords=["pricing"]),
        )
    )
