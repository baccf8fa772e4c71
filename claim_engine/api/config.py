"""
Application Configuration
Service-level settings for the claim engine API: environment, database,
logging and HTTP surface. Engine behaviour (thresholds, windows) lives in
claim_engine.core.config.
Source: https://docs.pydantic.dev/latest/concepts/pydantic_settings/
"""

import json
from functools import lru_cache
from typing import Annotated, Any, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


# Raw env strings reach the validator undecoded
EnvList = Annotated[list[str], NoDecode]


def _split_list(value: Any) -> Any:
    """Env lists may be a JSON array or a comma-separated string."""
    if not isinstance(value, str):
        return value
    raw = value.strip()
    if raw.startswith("["):
        try:
            decoded = json.loads(raw)
        except json.JSONDecodeError:
            decoded = None
        if isinstance(decoded, list):
            return decoded
    return [part.strip() for part in raw.split(",") if part.strip()]


class Settings(BaseSettings):
    """Claim engine API settings, read from the environment and .env."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ============================================================================
    # Service
    # ============================================================================
    APP_NAME: str = Field(default="Claim Engine API", description="Title shown in docs and on /")
    APP_VERSION: str = Field(default="1.0.0")
    SERVICE_NAME: str = Field(default="claim-engine-api", description="Name reported by health checks")
    ENVIRONMENT: Literal["development", "staging", "production", "testing"] = Field(
        default="development", description="Deployment environment"
    )
    DEBUG: bool = Field(default=False, description="Echo SQL and verbose errors; never in production")

    # ============================================================================
    # Logging
    # ============================================================================
    LOG_LEVEL: str = Field(default="INFO", description="loguru level")
    LOG_FILE: str | None = Field(default=None, description="Rotating log file; stderr only when unset")
    LOG_JSON: bool | None = Field(default=None, description="Serialized logs; defaults to on in production")

    # ============================================================================
    # Database
    # ============================================================================
    DATABASE_URL: str | None = Field(default=None, description="Full SQLAlchemy URL; overrides POSTGRES_*")
    POSTGRES_HOST: str = Field(default="db")
    POSTGRES_PORT: int = Field(default=5432)
    POSTGRES_DB: str = Field(default="claims_db")
    POSTGRES_USER: str = Field(default="claims_user")
    POSTGRES_PASSWORD: str = Field(default="")

    DB_POOL_SIZE: int = Field(default=20, ge=1)
    DB_MAX_OVERFLOW: int = Field(default=10, ge=0)
    DB_POOL_TIMEOUT: int = Field(default=30, ge=1, description="Seconds to wait for a pooled connection")
    AUTO_CREATE_TABLES: bool | None = Field(
        default=None, description="create_all on startup; defaults to on in development"
    )

    # ============================================================================
    # HTTP
    # ============================================================================
    API_PREFIX: str = Field(default="/api/v1", description="Prefix for versioned claim routes")

    CORS_ORIGINS: EnvList = Field(default=["http://localhost:3000"])
    CORS_CREDENTIALS: bool = Field(default=True)
    CORS_METHODS: EnvList = Field(default=["GET", "POST", "PUT", "PATCH", "DELETE"])
    CORS_HEADERS: EnvList = Field(default=["Content-Type", "X-Tenant-ID", "X-User-ID"])

    @field_validator("CORS_ORIGINS", "CORS_METHODS", "CORS_HEADERS", mode="before")
    @classmethod
    def parse_env_list(cls, v: Any) -> Any:
        return _split_list(v)

    # ============================================================================
    # Derived values
    # ============================================================================
    @property
    def database_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    @property
    def database_location(self) -> str:
        """Database URL without credentials, for logs."""
        return self.database_url.rsplit("@", 1)[-1]

    @property
    def is_development(self) -> bool:
        return self.ENVIRONMENT == "development"

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"

    @property
    def is_testing(self) -> bool:
        return self.ENVIRONMENT == "testing"

    @property
    def json_logs(self) -> bool:
        return self.is_production if self.LOG_JSON is None else self.LOG_JSON

    @property
    def create_tables_on_startup(self) -> bool:
        return self.is_development if self.AUTO_CREATE_TABLES is None else self.AUTO_CREATE_TABLES

    @property
    def docs_enabled(self) -> bool:
        return not self.is_production


@lru_cache
def get_settings() -> Settings:
    """Cached settings instance. Source: https://fastapi.tiangolo.com/advanced/settings/"""
    return Settings()


settings = get_settings()
