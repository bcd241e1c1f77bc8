from fastapi import APIRouter
from app.api.routes import analysis, catalog, health, prompts

api_router = APIRouter()
api_router.include_router(analysis.router)
api_router.include_router(prompts.router)
api_router.include_router(catalog.router)
api_router.include_router(health.router)
