"""
SerpApi Engine Adapters

AI answer blocks embedded in search result pages:
- Google AI Overview (`engine=google`, `ai_overview.overview` + `sources`)
- Bing answer box (`engine=bing`, `answer_box.answer` + `links`)

A results page without an AI block is a successful call with an empty
answer and zero sources: the engine answered, it just did not cite anyone.
"""

import logging
from abc import abstractmethod
from typing import Any, Dict, List, Optional, Tuple

from .base import (
    HTTPEngineAdapter,
    MalformedEngineResponse,
    clean_sources,
    parse_json,
    raise_for_engine_status,
)

logger = logging.getLogger(__name__)


class SerpApiAdapter(HTTPEngineAdapter):
    """Shared request handling for SerpApi search engines."""

    BASE_URL = "https://serpapi.com"
    SEARCH_ENGINE = "google"

    def _default_headers(self) -> Dict[str, str]:
        # SerpApi authenticates with a query parameter
        return {"Accept": "application/json"}

    def _build_params(self, query_text: str) -> Dict[str, Any]:
        params = {
            "engine": self.SEARCH_ENGINE,
            "q": query_text,
            "api_key": self.config.api_key or "",
        }
        for key in ("gl", "hl", "device", "google_domain", "cc"):
            if key in self.config.params:
                params[key] = self.config.params[key]
        return params

    async def _fetch(self, query_text: str) -> Tuple[str, Optional[List[str]]]:
        response = await self._client.get("/search.json", params=self._build_params(query_text))
        raise_for_engine_status(response, self.engine_id)
        data = parse_json(response)
        if data.get("error"):
            raise MalformedEngineResponse(f"SerpApi error: {data['error']}")
        return self._parse(data)

    @abstractmethod
    def _parse(self, data: Dict[str, Any]) -> Tuple[str, Optional[List[str]]]:
        """Pull (answer text, source URLs) out of a results page."""


class SerpApiAIOverviewAdapter(SerpApiAdapter):
    """Google AI Overview citations."""

    SEARCH_ENGINE = "google"

    def _parse(self, data: Dict[str, Any]) -> Tuple[str, Optional[List[str]]]:
        overview = data.get("ai_overview")
        if not overview:
            logger.debug(f"No AI overview for {data.get('search_parameters', {}).get('q', '')!r}")
            return "", []
        if not isinstance(overview, dict):
            raise MalformedEngineResponse("ai_overview is not an object")

        answer = overview.get("overview")
        if answer is None:
            # Newer payloads split the overview into text blocks
            blocks = overview.get("text_blocks") or []
            answer = " ".join(
                b.get("snippet", "") for b in blocks if isinstance(b, dict)
            )
        if not isinstance(answer, str):
            raise MalformedEngineResponse("ai_overview.overview is not text")

        return answer, clean_sources(overview.get("sources", []))


class SerpApiBingAdapter(SerpApiAdapter):
    """Bing answer box citations."""

    SEARCH_ENGINE = "bing"

    def _parse(self, data: Dict[str, Any]) -> Tuple[str, Optional[List[str]]]:
        answer_box = data.get("answer_box")
        if not answer_box:
            return "", []
        if not isinstance(answer_box, dict):
            raise MalformedEngineResponse("answer_box is not an object")

        answer = answer_box.get("answer") or answer_box.get("snippet") or ""
        if not isinstance(answer, str):
            raise MalformedEngineResponse("answer_box answer is not text")

        links = answer_box.get("links")
        if links is None:
            links = [answer_box["link"]] if answer_box.get("link") else []
        return answer, clean_sources(links)
