"""Application configuration using pydantic-settings.

Read environment variables through ``settings`` (or ``get_settings()`` as a
FastAPI dependency), never with os.getenv(). Queue policy knobs live here too
so a venue can tune them without a code change.
"""

from functools import lru_cache
from typing import List, Literal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # Ignore extra env vars
    )

    # Database - SQLite for local dev, PostgreSQL in production
    database_url: str = "sqlite:///./waitline.db"
    sql_echo: bool = False

    # CORS - comma-separated origins or "*" for development only
    cors_origins: str = "http://localhost:3000,http://localhost:8000"

    # Server
    debug: bool = True
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    # API
    api_v1_prefix: str = "/api/v1"

    # Rate limiting
    rate_limit_enabled: bool = True
    join_rate_limit: str = "12/minute"

    # Venue timezone, used for hour-of-day / day-of-week bucketing
    timezone: str = "UTC"

    # ==========================================================================
    # Queue policy
    # ==========================================================================
    admission_ceiling: int = Field(8, ge=1)
    confirmation_window_minutes: int = Field(10, ge=1)
    history_sample_limit: int = Field(100, ge=1)

    # No-show sweep is opt-in: nothing expires a notified entry unless enabled
    no_show_sweep_enabled: bool = False
    no_show_sweep_interval_seconds: int = Field(60, ge=1)

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown timezone: {v}") from e
        return v

    @model_validator(mode="after")
    def validate_production_settings(self) -> "Settings":
        """Warn about development-only settings in production mode."""
        import warnings

        if not self.debug:
            localhost_patterns = ["localhost", "127.0.0.1", "0.0.0.0"]
            origins = [o.strip() for o in self.cors_origins.split(",")]
            localhost_origins = [o for o in origins if any(p in o for p in localhost_patterns)]
            if localhost_origins:
                warnings.warn(
                    f"CORS origins contain localhost URLs in production mode: {localhost_origins}. "
                    "Remove localhost origins for production by setting CORS_ORIGINS environment variable.",
                    UserWarning,
                    stacklevel=2,
                )

        return self

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins into a list, filtering localhost in production."""
        if self.cors_origins == "*":
            return ["*"]

        origins = [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

        if not self.debug:
            localhost_patterns = ["localhost", "127.0.0.1", "0.0.0.0"]
            origins = [o for o in origins if not any(p in o for p in localhost_patterns)]

        return origins

    @property
    def venue_tz(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
