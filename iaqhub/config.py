"""Application configuration powered by Pydantic settings."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Final

from pydantic import AliasChoices, Field, computed_field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_DEFAULT_FALLBACK_MODELS = "gemini-2.5-flash,gemini-2.0-flash,gemini-1.5-flash-latest"
_DEFAULT_FRONTEND_DIR = Path(__file__).resolve().parents[1] / "client" / "dist"


class Settings(BaseSettings):
    """Centralized configuration object with environment fallbacks."""

    model_config = SettingsConfigDict(
        env_prefix="IAQHUB_", env_file=".env", extra="allow", populate_by_name=True
    )

    # App
    app_name: str = "IAQHub"
    host: str = "0.0.0.0"  # noqa: S104
    port: int = Field(default=3000, validation_alias=AliasChoices("IAQHUB_PORT", "PORT"))
    debug: bool = False
    log_level: str = Field(default="info")
    cors_origins: str = Field(default="*")
    frontend_dir: str = Field(default=str(_DEFAULT_FRONTEND_DIR))

    # Database
    db_path: str = Field(default="iaq.db")
    db_url: str | None = Field(default=None)

    # Gemini
    gemini_api_key: str = Field(
        default="", validation_alias=AliasChoices("IAQHUB_GEMINI_API_KEY", "GEMINI_API_KEY")
    )
    gemini_model: str = Field(
        default="gemini-1.5-flash-latest",
        validation_alias=AliasChoices("IAQHUB_GEMINI_MODEL", "GEMINI_MODEL"),
    )
    gemini_base_url: str = Field(default="https://generativelanguage.googleapis.com/v1")
    gemini_fallback_models: str = Field(default=_DEFAULT_FALLBACK_MODELS)
    provider_timeout_s: float = Field(default=30.0, gt=0)

    # Display calibration: added to predicted_iaq on the live/latest/history
    # views only. Stored values and exports stay raw.
    iaq_display_offset: float = Field(default=0.0)

    # Live viewers
    keepalive_interval_s: int = Field(default=25, ge=1)
    viewer_queue_size: int = Field(default=100, ge=1)

    @field_validator("gemini_api_key", mode="before")
    @classmethod
    def _strip_api_key(cls, v: str | None) -> str:
        """Treat a blank key (env var set but empty) as not configured."""
        if v is None:
            return ""
        return str(v).strip()

    @computed_field  # type: ignore[prop-decorator]
    @property
    def database_url(self) -> str:
        """Return a fully qualified async SQLAlchemy database URL."""

        if self.db_url:
            return str(self.db_url)
        return f"sqlite+aiosqlite:///{self.db_path}"

    @computed_field  # type: ignore[prop-decorator]
    @property
    def provider_configured(self) -> bool:
        return bool(self.gemini_api_key)

    @property
    def fallback_models(self) -> list[str]:
        return [m.strip() for m in self.gemini_fallback_models.split(",") if m.strip()]

    @property
    def cors_origin_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]


@lru_cache
def get_settings() -> Settings:
    """Return cached settings instance."""

    return Settings()


SETTINGS: Final[Settings] = get_settings()
