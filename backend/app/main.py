import sentry_sdk
from fastapi import FastAPI
import logging
from fastapi.routing import APIRoute
from starlette.middleware.cors import CORSMiddleware
from typing import Optional

from app.api.main import api_router
from app.core.config import settings


def custom_generate_unique_id(route: APIRoute) -> str:
    """Generate a stable unique operationId for OpenAPI.

    Some programmatically added routes (like /metrics) may have no tags; in that
    case fall back to the route name to avoid IndexError.
    """
    if getattr(route, "tags", None):
        return f"{route.tags[0]}-{route.name}"
    return route.name


if settings.SENTRY_DSN and settings.ENVIRONMENT != "local":
    sentry_sdk.init(dsn=str(settings.SENTRY_DSN), enable_tracing=True)

app = FastAPI(
    title=settings.PROJECT_NAME,
    openapi_url=f"{settings.API_V1_STR}/openapi.json",
    generate_unique_id_function=custom_generate_unique_id,
)

logger = logging.getLogger(__name__)

# Prometheus metrics instrumentation (fully guarded)
instrumentator: Optional[object] = None
try:
    from prometheus_fastapi_instrumentator import Instrumentator

    instrumentator = Instrumentator(
        should_group_status_codes=False,
        should_ignore_untemplated=False,
        should_respect_env_var=True,
        should_instrument_requests_inprogress=True,
        excluded_handlers=["/metrics"],
        env_var_name="ENABLE_METRICS",
        inprogress_name="http_requests_inprogress",
        inprogress_labels=True,
    )
    instrumentator.instrument(app)
except Exception as e:
    # Never block app startup due to metrics issues
    logger.warning(f"Prometheus metrics disabled: {e}")
    instrumentator = None

# Set all CORS enabled origins
if settings.all_cors_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.all_cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

app.include_router(api_router, prefix=settings.API_V1_STR)


@app.on_event("startup")
async def _load_entity_catalog() -> None:
    """Load and validate the entity catalog once; a broken catalog fails startup."""
    from app.services.entity_catalog import get_catalog

    catalog = get_catalog()
    logger.info(f"Entity catalog loaded: {len(catalog.entities)} entities")


@app.on_event("startup")
async def _log_llm_config_on_startup() -> None:
    """Eagerly initialize LLM once to log model/base_url configuration."""
    if not settings.CREW_AI_ENABLED:
        logger.info("AI disabled (CREW_AI_ENABLED=false); heuristic scoring only")
        return
    try:
        from app.services.llm_factory import get_llm

        # Instantiate (no network call) just to emit config logs
        get_llm()
        logger.info("LLM configured and ready (see previous log for model/base_url)")
    except Exception as e:
        logger.warning(f"LLM not initialized at startup: {e}")


@app.on_event("startup")
async def _expose_metrics_endpoint() -> None:
    """Expose Prometheus metrics endpoint and initialize app info."""
    try:
        from app.metrics import initialize_app_info

        initialize_app_info(version="0.1.0", environment=settings.ENVIRONMENT)

        if instrumentator is not None:
            instrumentator.expose(app, endpoint="/metrics", include_in_schema=True)
            logger.info("Prometheus metrics available at /metrics")
    except Exception as e:
        logger.warning(f"Failed to expose metrics: {e}")
