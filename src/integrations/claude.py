"""
Claude Engine Adapter

Uses the Anthropic SDK. Text blocks are concatenated into the answer;
URLs carried in block `citations` (web search results) form the
structured source list. Without any citation-bearing blocks the engine
has no structured list and extraction falls back to the answer text.
"""

import logging
from typing import Any, List, Optional, Tuple

import anthropic

from src.models import CallStatus, FailureKind

from .base import EngineAdapter, EngineConfig, MalformedEngineResponse

logger = logging.getLogger(__name__)


class ClaudeAdapter(EngineAdapter):
    """Async adapter for Claude via anthropic.AsyncAnthropic."""

    DEFAULT_MODEL = "claude-sonnet-4-20250514"
    MAX_TOKENS = 1024
    TEMPERATURE = 0.3

    def __init__(
        self,
        config: EngineConfig,
        client: Optional[anthropic.AsyncAnthropic] = None,
    ):
        """
        Initialize Claude adapter.

        Args:
            config: Engine configuration (api_key required unless client given)
            client: Pre-built SDK client, mainly for tests
        """
        super().__init__(config)
        if client is None and not config.api_key:
            raise ValueError("ANTHROPIC_API_KEY not provided")

        self.model = config.model or self.DEFAULT_MODEL
        self._owns_client = client is None
        self.client = client or anthropic.AsyncAnthropic(
            api_key=config.api_key,
            timeout=config.per_call_timeout,
            max_retries=0,
        )

    def _build_kwargs(self, query_text: str) -> dict:
        params = self.config.params
        kwargs = {
            "model": self.model,
            "max_tokens": params.get("max_tokens", self.MAX_TOKENS),
            "temperature": params.get("temperature", self.TEMPERATURE),
            "messages": [{"role": "user", "content": query_text}],
        }
        if params.get("system"):
            kwargs["system"] = params["system"]
        if params.get("tools"):
            kwargs["tools"] = params["tools"]
        return kwargs

    async def _fetch(self, query_text: str) -> Tuple[str, Optional[List[str]]]:
        response = await self.client.messages.create(**self._build_kwargs(query_text))
        return self._parse(response)

    def _parse(self, response: Any) -> Tuple[str, Optional[List[str]]]:
        content = getattr(response, "content", None)
        if not isinstance(content, list):
            raise MalformedEngineResponse("Claude response has no content blocks")

        texts: List[str] = []
        sources: List[str] = []
        saw_citations = False

        for block in content:
            if getattr(block, "type", None) != "text":
                continue
            text = getattr(block, "text", None)
            if not isinstance(text, str):
                raise MalformedEngineResponse("Claude text block has no text")
            texts.append(text)

            citations = getattr(block, "citations", None) or []
            for citation in citations:
                saw_citations = True
                url = getattr(citation, "url", None)
                if isinstance(url, str) and url not in sources:
                    sources.append(url)

        usage = getattr(response, "usage", None)
        if usage is not None:
            logger.debug(
                f"Claude used {getattr(usage, 'input_tokens', 0)} in / "
                f"{getattr(usage, 'output_tokens', 0)} out tokens"
            )

        return "".join(texts), (sources if saw_citations else None)

    def _classify_exception(self, exc: Exception) -> Tuple[CallStatus, FailureKind]:
        if isinstance(exc, anthropic.RateLimitError):
            return CallStatus.RATE_LIMITED, FailureKind.RATE_LIMIT
        if isinstance(exc, (anthropic.AuthenticationError, anthropic.PermissionDeniedError)):
            return CallStatus.ERROR, FailureKind.AUTH
        if isinstance(exc, anthropic.APITimeoutError):
            return CallStatus.TIMEOUT, FailureKind.TIMEOUT
        if isinstance(exc, anthropic.APIConnectionError):
            return CallStatus.ERROR, FailureKind.TRANSPORT
        if isinstance(exc, anthropic.InternalServerError):
            return CallStatus.ERROR, FailureKind.SERVER
        if isinstance(exc, anthropic.APIStatusError):
            return CallStatus.ERROR, FailureKind.CLIENT
        return super()._classify_exception(exc)

    async def close(self):
        if self._owns_client:
            await self.client.close()
