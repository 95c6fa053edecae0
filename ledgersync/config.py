"""Configuration management for the ledgersync service."""

from enum import Enum
from typing import Optional
from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class StoreBackend(str, Enum):
    """Record store implementations."""
    MEMORY = "memory"  # Process-local store, used when no database is configured
    POSTGRES = "postgres"  # asyncpg-backed store


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Database (optional - falls back to the in-memory store)
    database_url: Optional[str] = Field(None, description="PostgreSQL connection string")
    db_pool_min_size: int = Field(1, description="Minimum asyncpg pool size")
    db_pool_max_size: int = Field(10, description="Maximum asyncpg pool size")

    # Audit sink (optional)
    supabase_url: Optional[str] = Field(None, description="Supabase project URL for audit_logs")
    supabase_service_key: Optional[SecretStr] = Field(None, description="Supabase service role key")

    # Sync engine
    sync_max_batch_size: int = Field(500, ge=1, description="Max items accepted in one sync batch")
    change_feed_page_cap: int = Field(1000, ge=1, description="Max records returned by one change feed call")
    change_feed_lag_seconds: float = Field(
        2.0, ge=0, description="Seconds the final change feed watermark trails the server clock"
    )
    default_entity_type: str = Field("supplier", description="Entity type used when a request omits it")

    # Logging
    log_level: str = Field("INFO", description="Log level (DEBUG, INFO, WARNING, ERROR)")
    log_json: bool = Field(False, description="Render logs as JSON")

    # Server Settings
    server_host: str = Field("0.0.0.0", description="Server host")
    server_port: int = Field(8000, description="Server port")
    debug: bool = Field(False, description="Expose exception details in error responses")

    @property
    def store_backend(self) -> StoreBackend:
        """Store implementation selected by the current settings."""
        return StoreBackend.POSTGRES if self.database_url else StoreBackend.MEMORY


def get_settings() -> Settings:
    """Get application settings."""
    return Settings()
