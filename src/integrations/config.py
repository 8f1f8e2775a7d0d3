"""
Engine Configuration

Factory functions turning application settings into engine configs and
engine configs into adapters.

Supported engine kinds:
- perplexity: Perplexity chat completions (PERPLEXITY_API_KEY)
- chatgpt: OpenAI chat completions (OPENAI_API_KEY)
- claude: Anthropic messages (ANTHROPIC_API_KEY)
- google_ai_overview: SerpApi Google AI Overview (SERPAPI_KEY)
- bing_answer: SerpApi Bing answer box (SERPAPI_KEY)
"""

import logging
from typing import Dict, List, Optional

import httpx

from src.utils.config import ConfigurationError, Settings, get_settings

from .base import EngineAdapter, EngineConfig
from .claude import ClaudeAdapter
from .openai import OpenAIAdapter
from .perplexity import PerplexityAdapter
from .serpapi import SerpApiAIOverviewAdapter, SerpApiBingAdapter

logger = logging.getLogger(__name__)


HTTP_ADAPTERS = {
    "perplexity": PerplexityAdapter,
    "chatgpt": OpenAIAdapter,
    "openai": OpenAIAdapter,
    "google_ai_overview": SerpApiAIOverviewAdapter,
    "bing_answer": SerpApiBingAdapter,
}

SUPPORTED_KINDS = tuple(HTTP_ADAPTERS) + ("claude",)


def create_adapter(
    config: EngineConfig,
    http_client: Optional[httpx.AsyncClient] = None,
) -> EngineAdapter:
    """
    Build the adapter for an engine config.

    Args:
        config: Engine configuration
        http_client: Optional shared client for HTTP-backed engines

    Returns:
        EngineAdapter for config.kind

    Raises:
        ConfigurationError: Unknown kind
    """
    kind = config.kind.lower()
    if kind == "claude":
        return ClaudeAdapter(config)
    adapter_cls = HTTP_ADAPTERS.get(kind)
    if adapter_cls is None:
        raise ConfigurationError(
            f"Unknown engine kind {config.kind!r}; expected one of {', '.join(SUPPORTED_KINDS)}"
        )
    return adapter_cls(config, http_client=http_client)


def build_engine_configs(settings: Optional[Settings] = None) -> List[EngineConfig]:
    """
    Build engine configs for every enabled engine that has credentials.

    Engines without an API key are skipped with a warning.

    Raises:
        ConfigurationError: No engine left to query
    """
    settings = settings or get_settings()
    floors = settings.engine_floors

    credentials: Dict[str, Optional[str]] = {
        "perplexity": settings.PERPLEXITY_API_KEY,
        "chatgpt": settings.OPENAI_API_KEY,
        "claude": settings.ANTHROPIC_API_KEY,
        "google_ai_overview": settings.SERPAPI_KEY,
        "bing_answer": settings.SERPAPI_KEY,
    }
    models: Dict[str, Optional[str]] = {
        "perplexity": settings.PERPLEXITY_MODEL,
        "chatgpt": settings.OPENAI_MODEL,
        "claude": settings.CLAUDE_MODEL,
    }

    configs: List[EngineConfig] = []
    for engine_id in settings.enabled_engines:
        if engine_id not in credentials:
            raise ConfigurationError(f"Unknown engine in ENABLED_ENGINES: {engine_id!r}")
        api_key = credentials[engine_id]
        if not api_key:
            logger.warning(f"Engine {engine_id} enabled but not configured, skipping")
            continue
        configs.append(EngineConfig(
            engine_id=engine_id,
            kind=engine_id,
            api_key=api_key,
            model=models.get(engine_id),
            per_call_timeout=settings.PER_CALL_TIMEOUT,
            max_retries=settings.MAX_RETRIES,
            floor_score=floors.get(engine_id, 0),
            max_concurrency=settings.ENGINE_CONCURRENCY,
        ))

    if not configs:
        raise ConfigurationError("No answer engines configured; set at least one engine API key")

    logger.info(f"Configured engines: {', '.join(c.engine_id for c in configs)}")
    return configs


def create_adapters(
    configs: List[EngineConfig],
    http_client: Optional[httpx.AsyncClient] = None,
) -> List[EngineAdapter]:
    """Build adapters for a list of configs, rejecting duplicate engine ids."""
    seen = set()
    adapters = []
    for config in configs:
        if config.engine_id in seen:
            raise ConfigurationError(f"Duplicate engine id {config.engine_id!r}")
        seen.add(config.engine_id)
        adapters.append(create_adapter(config, http_client=http_client))
    return adapters
