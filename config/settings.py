"""
Settings Configuration
Pydantic-based configuration for the collector and the social-search client.
"""
from functools import lru_cache
from pathlib import Path
from typing import Optional, Set

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class CollectorSettings(BaseSettings):
    """Source collection defaults"""
    http_timeout_ms: int = Field(default=12000, description="Per-fetch timeout (ms)")
    concurrency: int = Field(default=4, description="Maximum simultaneous fetches")
    max_response_bytes: int = Field(default=2 * 1024 * 1024, description="Response size ceiling")
    enable_x: bool = Field(default=True, description="Include the X social-search source")
    user_agent: str = Field(
        default="TodaysInSaitoCollector/0.2 (+https://localhost)",
        description="Default User-Agent for feed requests",
    )
    enabled_source_ids: str = Field(
        default="",
        validation_alias="ENABLED_SOURCE_IDS",
        description="Comma separated allow-list of source ids",
    )

    model_config = SettingsConfigDict(env_prefix="SOURCE_", populate_by_name=True)

    def enabled_id_set(self) -> Optional[Set[str]]:
        """Explicit allow-list, or None when every source is allowed."""
        ids = {item.strip() for item in str(self.enabled_source_ids or "").split(",") if item.strip()}
        return ids or None


class XAISettings(BaseSettings):
    """xAI Responses API (X search) configuration"""
    api_key: Optional[str] = Field(default=None, description="xAI API Key")
    model: str = Field(default="grok-4-1-fast", description="Model used for x_search")
    base_url: str = Field(default="https://api.x.ai/v1", description="API base URL")
    timeout: float = Field(default=90.0, description="Request timeout (seconds)")

    model_config = SettingsConfigDict(env_prefix="XAI_")


class Settings(BaseSettings):
    """Aggregated settings"""

    collector: CollectorSettings = Field(default_factory=CollectorSettings)
    xai: XAISettings = Field(default_factory=XAISettings)

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    @classmethod
    def load_from_env_file(cls, env_path: Optional[Path] = None) -> "Settings":
        """Load settings after applying the given .env file (defaults to config/.env)."""
        if env_path is None:
            env_path = Path(__file__).parent / ".env"

        if env_path.exists():
            from dotenv import load_dotenv
            load_dotenv(env_path)

        return cls(
            collector=CollectorSettings(),
            xai=XAISettings(),
        )


@lru_cache()
def get_settings() -> Settings:
    """Process-wide settings singleton."""
    return Settings.load_from_env_file()


def get_collector_settings() -> CollectorSettings:
    return get_settings().collector


def get_xai_settings() -> XAISettings:
    return get_settings().xai
