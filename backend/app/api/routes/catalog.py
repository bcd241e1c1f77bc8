from __future__ import annotations

from fastapi import APIRouter, HTTPException

from app.services.entity_catalog import Importance, entities_by_importance, get_catalog

router = APIRouter(prefix="/catalog", tags=["catalog"])


@router.get("/")
def get_catalog_status() -> dict:
    try:
        catalog = get_catalog()
    except FileNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=500, detail=f"Failed to load entity catalog: {e}")
    return {
        "count": len(catalog.entities),
        "by_importance": {
            level.value: len(entities_by_importance(catalog.entities, level)) for level in Importance
        },
        "entities": [
            {
                "name": e.name,
                "type": e.type,
                "importance": e.importance.value,
                "weight": e.weight,
                "keywords": sorted(e.keywords),
            }
            for e in catalog.entities
        ],
    }
