"""Operator configuration, read from SEARCH_OPERATOR_* environment variables."""

from functools import lru_cache
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Operator settings."""

    model_config = SettingsConfigDict(
        env_prefix="SEARCH_OPERATOR_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    log_level: str = "INFO"

    # Controller roles to run; "all" runs every registered role
    roles: List[str] = Field(default_factory=lambda: ["all"])

    # Namespaces to watch; empty means cluster-wide
    namespaces: List[str] = Field(default_factory=list)
    standalone: bool = Field(
        default=True,
        description="Run without kopf peering (single operator replica)",
    )
    liveness_endpoint: Optional[str] = None

    server_timeout_seconds: int = 60
    reconcile_interval_seconds: float = 15.0

    default_image: str = "docker.elastic.co/elasticsearch/elasticsearch"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
