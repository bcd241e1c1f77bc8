from __future__ import annotations

import threading
from enum import Enum
from pathlib import Path
from typing import FrozenSet, List, Optional, Tuple

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator


class Importance(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"


class EntityDefinition(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    type: str
    importance: Importance
    weight: int = Field(ge=1)
    keywords: FrozenSet[str]

    @field_validator("keywords", mode="before")
    @classmethod
    def normalize_keywords(cls, v):
        if isinstance(v, str):
            v = [v]
        return frozenset(str(k).strip().lower() for k in (v or []) if str(k).strip())


class EntityCatalog(BaseModel):
    model_config = ConfigDict(frozen=True)

    entities: Tuple[EntityDefinition, ...]

    @field_validator("entities")
    @classmethod
    def unique_names(cls, v: Tuple[EntityDefinition, ...]) -> Tuple[EntityDefinition, ...]:
        seen = set()
        for e in v:
            if e.name in seen:
                raise ValueError(f"duplicate entity name: {e.name}")
            seen.add(e.name)
        return v


# Loaded once per process; the catalog is immutable after validation
_lock = threading.Lock()
_cached_catalog: Optional[EntityCatalog] = None
_cached_path: Optional[Path] = None


def _default_catalog_path() -> Path:
    return Path(__file__).resolve().parents[1] / "data" / "entity_catalog.yaml"


def load_catalog(path: Optional[str | Path] = None) -> EntityCatalog:
    p = Path(path) if path else _default_catalog_path()
    if not p.exists():
        raise FileNotFoundError(f"Entity catalog not found at {p}")

    with p.open("r", encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}

    try:
        parsed = EntityCatalog.model_validate(raw)
    except ValidationError as e:
        raise ValueError(f"Invalid entity catalog YAML: {e}") from e

    return parsed


def get_catalog(path: Optional[str | Path] = None) -> EntityCatalog:
    global _cached_catalog, _cached_path

    if path is None:
        from app.core.config import settings

        path = settings.ENTITY_CATALOG_PATH
    p = Path(path) if path else _default_catalog_path()

    with _lock:
        if _cached_catalog is None or _cached_path != p:
            _cached_catalog = load_catalog(p)
            _cached_path = p
        return _cached_catalog


def entities_by_importance(
    entities: List[EntityDefinition] | Tuple[EntityDefinition, ...], importance: Importance
) -> List[EntityDefinition]:
    return [e for e in entities if e.importance == importance]
