"""
OpenAI (ChatGPT) Engine Adapter

Chat completions against search-enabled models. Sources come from, in
order of preference:
1. `message.annotations[].url_citation.url` (search models)
2. `[Source: URL]` markers in the answer text
Otherwise the engine is treated as having no structured source list.
"""

import logging
import re
from typing import Any, Dict, List, Optional, Tuple

import httpx

from .base import (
    EngineConfig,
    HTTPEngineAdapter,
    MalformedEngineResponse,
    parse_json,
    raise_for_engine_status,
)

logger = logging.getLogger(__name__)

SOURCE_MARKER = re.compile(r"\[Source:\s*([^\]\s]+)\s*\]", re.IGNORECASE)


class OpenAIAdapter(HTTPEngineAdapter):
    """Async adapter for the OpenAI chat completions API."""

    BASE_URL = "https://api.openai.com/v1"
    DEFAULT_MODEL = "gpt-4o-search-preview"

    def __init__(
        self,
        config: EngineConfig,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        super().__init__(config, http_client=http_client)
        self.model = config.model or self.DEFAULT_MODEL

    def _build_payload(self, query_text: str) -> Dict[str, Any]:
        params = self.config.params
        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": [{"role": "user", "content": query_text}],
            "max_tokens": params.get("max_tokens", 800),
        }
        # Search models reject temperature
        if "search" not in self.model:
            payload["temperature"] = params.get("temperature", 0.7)
        if params.get("web_search_options") is not None:
            payload["web_search_options"] = params["web_search_options"]
        return payload

    async def _fetch(self, query_text: str) -> Tuple[str, Optional[List[str]]]:
        response = await self._client.post("/chat/completions", json=self._build_payload(query_text))
        raise_for_engine_status(response, self.engine_id)
        return self._parse(parse_json(response))

    def _parse(self, data: Dict[str, Any]) -> Tuple[str, Optional[List[str]]]:
        choices = data.get("choices")
        if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
            raise MalformedEngineResponse("OpenAI response has no choices")

        message = choices[0].get("message")
        if not isinstance(message, dict):
            raise MalformedEngineResponse("OpenAI response has no message")

        answer = message.get("content")
        if answer is None:
            answer = ""
        if not isinstance(answer, str):
            raise MalformedEngineResponse("OpenAI message content is not text")

        annotations = message.get("annotations")
        if isinstance(annotations, list) and annotations:
            sources: List[str] = []
            for annotation in annotations:
                if not isinstance(annotation, dict):
                    continue
                citation = annotation.get("url_citation") or {}
                url = citation.get("url") if isinstance(citation, dict) else None
                if isinstance(url, str) and url not in sources:
                    sources.append(url)
            return answer, sources

        markers = SOURCE_MARKER.findall(answer)
        if markers:
            return answer, list(dict.fromkeys(markers))

        return answer, None
