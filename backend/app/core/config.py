from typing import Annotated, Any, Literal

from pydantic import (
    AnyUrl,
    BeforeValidator,
    Field,
    HttpUrl,
    computed_field,
)
from pydantic_settings import BaseSettings, SettingsConfigDict


def parse_cors(v: Any) -> list[str] | str:
    if isinstance(v, str) and not v.startswith("["):
        return [i.strip() for i in v.split(",") if i.strip()]
    elif isinstance(v, list | str):
        return v
    raise ValueError(v)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_ignore_empty=True,
        extra="ignore",
    )
    API_V1_STR: str = "/api/v1"
    PROJECT_NAME: str = "AI Visibility Engine"
    # Optional public frontend URL (e.g., https://app.example.com)
    FRONTEND_HOST: str | None = None
    ENVIRONMENT: Literal["local", "staging", "production"] = "local"

    # Optional comma-separated list or JSON list of extra CORS origins via env
    BACKEND_CORS_ORIGINS: Annotated[
        list[AnyUrl] | str, BeforeValidator(parse_cors)
    ] = []

    @computed_field  # type: ignore[prop-decorator]
    @property
    def all_cors_origins(self) -> list[str]:
        """Return the finalized list of allowed CORS origins.

        Includes FRONTEND_HOST when set and any extra origins from
        BACKEND_CORS_ORIGINS. Trailing slashes are stripped; order is stable.
        """
        extras: set[str] = set()
        for o in (self.BACKEND_CORS_ORIGINS or []):
            extras.add(str(o).rstrip("/"))

        if self.FRONTEND_HOST:
            extras.add(str(self.FRONTEND_HOST).rstrip("/"))

        return sorted(extras)

    SENTRY_DSN: HttpUrl | None = None

    # CrewAI/LLM settings
    CREW_AI_ENABLED: bool = False
    LLM_TIMEOUT_SECONDS: int = Field(default=15, ge=15, le=30)

    # Analysis engine
    CONTENT_CHAR_LIMIT: int = Field(default=5000, ge=100)
    PROMPT_EXCERPT_CHARS: int = Field(default=3000, ge=100)
    HEURISTIC_JITTER_MAX: int = Field(default=10, ge=0, le=10)
    FAILURE_REASON_MAX_CHARS: int = Field(default=200, ge=20)
    ENTITY_CATALOG_PATH: str | None = None


import logging

logging.basicConfig(level=logging.INFO)
_logger = logging.getLogger(__name__)
settings = Settings()  # type: ignore
_logger.info(
    f"Settings loaded. ENVIRONMENT = {settings.ENVIRONMENT}, CREW_AI_ENABLED = {settings.CREW_AI_ENABLED}"
)
