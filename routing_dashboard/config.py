"""
Configuration settings for the routing dashboard API.
Uses Pydantic Settings for type-safe environment variable loading.
"""
import re
from functools import lru_cache
from typing import List, Literal, Optional

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

load_dotenv()

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]{0,62}$")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ==========================================================================
    # APP
    # ==========================================================================
    APP_NAME: str = "Routing Dashboard API"
    VERSION: str = "1.0.0"
    ENVIRONMENT: str = Field(default="development")
    DEBUG: bool = Field(default=False)
    # None means "follow DEBUG"
    EXPOSE_ERROR_DETAILS: Optional[bool] = Field(default=None)

    # ==========================================================================
    # WAREHOUSE (PostgreSQL)
    # ==========================================================================
    DATABASE_URL: Optional[str] = Field(default=None)
    POSTGRES_HOST: str = Field(default="localhost")
    POSTGRES_PORT: int = Field(default=5432)
    POSTGRES_DB: str = Field(default="lightning")
    POSTGRES_USER: str = Field(default="postgres")
    POSTGRES_PASSWORD: str = Field(default="")
    POSTGRES_SSLMODE: str = Field(default="prefer")

    DB_POOL_SIZE: int = Field(default=10, ge=1, le=100)
    DB_MAX_OVERFLOW: int = Field(default=20, ge=0, le=100)
    DB_POOL_TIMEOUT: int = Field(default=30, ge=1)
    DB_POOL_RECYCLE: int = Field(default=3600, ge=60)

    WAREHOUSE_SCHEMA: str = Field(default="lightning")
    QUERY_TIMEOUT_SECONDS: float = Field(default=30.0, gt=0, le=600)

    # ==========================================================================
    # DASHBOARD
    # ==========================================================================
    OUR_NODE_ID: Optional[str] = Field(default=None, description="Public key of the operated node")
    TOP_NODES_DEFAULT_LIMIT: int = Field(default=3, ge=1)
    TOP_NODES_MAX_LIMIT: int = Field(default=100, ge=1, le=1000)

    CORS_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://localhost:9002",
        "http://localhost",
    ]

    # ==========================================================================
    # LOGGING
    # ==========================================================================
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    LOG_FORMAT: Literal["json", "console"] = "json"

    @field_validator("WAREHOUSE_SCHEMA")
    @classmethod
    def validate_schema_name(cls, v: str) -> str:
        # Interpolated into SQL text as an identifier, so only plain names pass
        if not _IDENTIFIER_RE.match(v):
            raise ValueError(f"Invalid warehouse schema name: {v!r}")
        return v

    @field_validator("LOG_LEVEL", mode="before")
    @classmethod
    def upper_log_level(cls, v):
        return v.upper() if isinstance(v, str) else v

    @property
    def database_url_async(self) -> str:
        """Async database URL for SQLAlchemy asyncpg (no sslmode, see ssl_mode)."""
        if self.DATABASE_URL:
            url = self.DATABASE_URL.split("?", 1)[0]
            for prefix in ("postgres://", "postgresql://", "postgresql+psycopg://"):
                if url.startswith(prefix):
                    return "postgresql+asyncpg://" + url[len(prefix):]
            return url
        password = f":{self.POSTGRES_PASSWORD}" if self.POSTGRES_PASSWORD else ""
        return (
            f"postgresql+asyncpg://{self.POSTGRES_USER}{password}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    @property
    def ssl_mode(self) -> str:
        """sslmode from DATABASE_URL if present, else POSTGRES_SSLMODE."""
        if self.DATABASE_URL and "sslmode=" in self.DATABASE_URL:
            return self.DATABASE_URL.split("sslmode=", 1)[1].split("&", 1)[0]
        return self.POSTGRES_SSLMODE

    @property
    def show_error_details(self) -> bool:
        if self.EXPOSE_ERROR_DETAILS is None:
            return self.DEBUG
        return self.EXPOSE_ERROR_DETAILS

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
