"""
Configuration Management

Uses Pydantic Settings for environment-based configuration.
Loads from .env file automatically.
"""

from datetime import timedelta
from typing import Dict, List, Optional
from functools import lru_cache
from pydantic_settings import BaseSettings


class ConfigurationError(ValueError):
    """Invalid configuration. Raised at startup, never mid-run."""


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    # Engine credentials (an engine without a key is skipped)
    PERPLEXITY_API_KEY: Optional[str] = None
    OPENAI_API_KEY: Optional[str] = None
    ANTHROPIC_API_KEY: Optional[str] = None
    SERPAPI_KEY: Optional[str] = None

    # Engine models
    PERPLEXITY_MODEL: str = "sonar"
    OPENAI_MODEL: str = "gpt-4o-search-preview"
    CLAUDE_MODEL: str = "claude-sonnet-4-20250514"

    # Comma-separated engine ids to query
    ENABLED_ENGINES: str = "perplexity,chatgpt,claude,google_ai_overview"

    # Dispatch
    PER_CALL_TIMEOUT: float = 30.0
    BATCH_DEADLINE: float = 120.0
    MAX_RETRIES: int = 1
    RETRY_BASE_DELAY: float = 1.0
    MAX_WORKERS: int = 10
    ENGINE_CONCURRENCY: int = 3

    # Per-engine floor scores, e.g. "claude=5,chatgpt=0"
    ENGINE_FLOORS: str = ""

    # Trend bucketing
    TREND_WINDOW_HOURS: int = 24

    # Application Settings
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"
    DATABASE_URL: Optional[str] = None

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"  # Ignore extra fields in .env file
        case_sensitive = False  # Allow both UPPERCASE and lowercase

    @property
    def enabled_engines(self) -> List[str]:
        return [e.strip().lower() for e in self.ENABLED_ENGINES.split(",") if e.strip()]

    @property
    def trend_window(self) -> timedelta:
        """TREND_WINDOW_HOURS as a bucket width. Buckets must tile a week."""
        hours = self.TREND_WINDOW_HOURS
        if hours <= 0 or (7 * 24) % hours:
            raise ConfigurationError(f"TREND_WINDOW_HOURS must be a positive divisor of 168, got {hours}")
        return timedelta(hours=hours)

    @property
    def engine_floors(self) -> Dict[str, int]:
        """Parse ENGINE_FLOORS into {engine_id: floor}."""
        floors: Dict[str, int] = {}
        for item in self.ENGINE_FLOORS.split(","):
            if not item.strip():
                continue
            if "=" not in item:
                raise ConfigurationError(f"Invalid ENGINE_FLOORS entry: {item!r}")
            engine_id, value = item.split("=", 1)
            try:
                floor = int(value.strip())
            except ValueError:
                raise ConfigurationError(f"Floor for {engine_id.strip()} is not an integer: {value!r}")
            if not 0 <= floor <= 100:
                raise ConfigurationError(f"Floor for {engine_id.strip()} must be within 0-100")
            floors[engine_id.strip().lower()] = floor
        return floors


@lru_cache
def get_settings() -> Settings:
    """Get or create cached settings instance."""
    return Settings()
