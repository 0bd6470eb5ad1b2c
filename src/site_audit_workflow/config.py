"""Configuration management for the site audit workflow.

Loads settings from environment variables and .env files using pydantic-settings.
Provides a cached singleton via get_config().
"""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class WorkflowConfig(BaseSettings):
    """Application configuration sourced from environment variables."""

    portal_api_url: str = Field(..., alias="PORTAL_API_URL")
    portal_api_token: str = Field("", alias="PORTAL_API_TOKEN")
    portal_timeout: int = Field(30, alias="PORTAL_TIMEOUT")
    portal_max_retries: int = Field(3, alias="PORTAL_MAX_RETRIES")
    audit_storage_path: str = Field(".site-audit", alias="AUDIT_STORAGE_PATH")
    action_timeout_seconds: float = Field(60.0, alias="ACTION_TIMEOUT_SECONDS")
    ingestion_workers: int = Field(2, alias="INGESTION_WORKERS")
    ingestion_row_workers: int = Field(4, alias="INGESTION_ROW_WORKERS")
    mandatory_sections: str = Field(
        "cuarto_tecnologia,energia,seguridad_informatica",
        alias="MANDATORY_SECTIONS",
    )
    log_level: str = Field("INFO", alias="LOG_LEVEL")

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
        populate_by_name=True,
    )

    @property
    def mandatory_section_list(self) -> list[str]:
        """Mandatory onsite document sections as a list."""
        return [s.strip() for s in self.mandatory_sections.split(",") if s.strip()]


@lru_cache(maxsize=1)
def get_config() -> WorkflowConfig:
    """Return a cached singleton of WorkflowConfig."""
    return WorkflowConfig()
