"""
Answer Engine Integrations

Adapters for the external answer engines whose citations we track:
- Perplexity: Structured citation list
- ChatGPT: URL citation annotations or inline source markers
- Claude: Anthropic SDK, web search citations
- SerpApi: Google AI Overview and Bing answer box
- Config: Settings to engine configs to adapters
"""

from .base import (
    EngineAdapter,
    EngineConfig,
    EngineError,
    HTTPEngineAdapter,
    MalformedEngineResponse,
    classify_status_code,
)
from .claude import ClaudeAdapter
from .openai import OpenAIAdapter
from .perplexity import PerplexityAdapter
from .serpapi import SerpApiAIOverviewAdapter, SerpApiBingAdapter
from .config import (
    SUPPORTED_KINDS,
    build_engine_configs,
    create_adapter,
    create_adapters,
)

__all__ = [
    # Base
    "EngineAdapter",
    "EngineConfig",
    "EngineError",
    "HTTPEngineAdapter",
    "MalformedEngineResponse",
    "classify_status_code",
    # Engines
    "ClaudeAdapter",
    "OpenAIAdapter",
    "PerplexityAdapter",
    "SerpApiAIOverviewAdapter",
    "SerpApiBingAdapter",
    # Config
    "SUPPORTED_KINDS",
    "build_engine_configs",
    "create_adapter",
    "create_adapters",
]
