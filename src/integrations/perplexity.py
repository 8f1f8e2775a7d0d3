"""
Perplexity Engine Adapter

AI-powered search engine with native citation tracking.

Perplexity provides:
- Real-time web search with AI understanding
- A structured `citations` list of source URLs, ranked
- Optional `search_results` with titles and URLs

API: https://docs.perplexity.ai/
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

import httpx

from .base import (
    EngineConfig,
    HTTPEngineAdapter,
    MalformedEngineResponse,
    clean_sources,
    parse_json,
    raise_for_engine_status,
)

logger = logging.getLogger(__name__)


class PerplexityAdapter(HTTPEngineAdapter):
    """
    Async adapter for the Perplexity API.

    Usage:
        config = EngineConfig(engine_id="perplexity", kind="perplexity", api_key="...")
        async with PerplexityAdapter(config) as adapter:
            result = await adapter.query("What is the best CRM for startups?")
            # result.answer_text = "The best CRMs for startups include..."
            # result.sources = ["https://...", ...]
    """

    BASE_URL = "https://api.perplexity.ai"
    DEFAULT_MODEL = "sonar"

    def __init__(
        self,
        config: EngineConfig,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        super().__init__(config, http_client=http_client)
        self.model = config.model or self.DEFAULT_MODEL

    def _build_payload(self, query_text: str) -> Dict[str, Any]:
        params = self.config.params
        messages = []
        if params.get("system_prompt"):
            messages.append({"role": "system", "content": params["system_prompt"]})
        messages.append({"role": "user", "content": query_text})

        payload = {
            "model": self.model,
            "messages": messages,
            "temperature": params.get("temperature", 0.2),
            "max_tokens": params.get("max_tokens", 1024),
        }
        if params.get("search_recency_filter"):
            payload["search_recency_filter"] = params["search_recency_filter"]
        return payload

    async def _fetch(self, query_text: str) -> Tuple[str, Optional[List[str]]]:
        response = await self._client.post("/chat/completions", json=self._build_payload(query_text))
        raise_for_engine_status(response, self.engine_id)
        return self._parse(parse_json(response))

    def _parse(self, data: Dict[str, Any]) -> Tuple[str, Optional[List[str]]]:
        choices = data.get("choices")
        if not isinstance(choices, list) or not choices:
            raise MalformedEngineResponse("Perplexity response has no choices")

        message = choices[0].get("message") if isinstance(choices[0], dict) else None
        answer = message.get("content") if isinstance(message, dict) else None
        if not isinstance(answer, str):
            raise MalformedEngineResponse("Perplexity response has no message content")

        # Perplexity always searches, so an absent list means zero sources
        if "citations" in data:
            sources = clean_sources(data["citations"])
        elif "search_results" in data:
            sources = clean_sources(data["search_results"])
        else:
            sources = []

        usage = data.get("usage") or {}
        logger.debug(f"Perplexity used {usage.get('total_tokens', 0)} tokens, {len(sources)} citations")
        return answer, sources
