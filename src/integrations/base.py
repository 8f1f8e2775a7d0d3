"""
Engine Adapter Base

Uniform contract for one external answer engine:

    result = await adapter.query("best project management tools")

`query` always returns an EngineResult. Transport, auth, rate-limit,
timeout and malformed-payload failures are captured as a non-OK status
with empty answer text, so the dispatcher can treat partial failure
uniformly. Only programmer errors (empty query text) raise.
"""

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

import httpx

from src.models import CallStatus, EngineResult, FailureKind
from src.utils.config import ConfigurationError

logger = logging.getLogger(__name__)


class EngineError(Exception):
    """Engine call failed in a way the adapter has already classified."""

    def __init__(
        self,
        message: str,
        status: CallStatus = CallStatus.ERROR,
        failure: FailureKind = FailureKind.TRANSPORT,
        status_code: int = None,
    ):
        super().__init__(message)
        self.status = status
        self.failure = failure
        self.status_code = status_code


class MalformedEngineResponse(EngineError):
    """Engine answered but the payload could not be parsed."""

    def __init__(self, message: str):
        super().__init__(message, status=CallStatus.ERROR, failure=FailureKind.MALFORMED)


@dataclass
class EngineConfig:
    """
    Configuration record for one engine, supplied by the host application.

    Endpoint, credentials and model parameters are opaque to the core;
    only the adapter for `kind` interprets them.
    """

    engine_id: str
    kind: str
    api_key: Optional[str] = None
    endpoint: Optional[str] = None
    model: Optional[str] = None
    per_call_timeout: float = 30.0
    max_retries: int = 1
    floor_score: int = 0
    max_concurrency: int = 3
    params: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if not self.engine_id:
            raise ConfigurationError("engine_id must be non-empty")
        if not 0 <= self.floor_score <= 100:
            raise ConfigurationError(f"{self.engine_id} floor_score must be within 0-100, got {self.floor_score}")
        if self.per_call_timeout <= 0:
            raise ConfigurationError(f"{self.engine_id} per_call_timeout must be positive, got {self.per_call_timeout}")
        if self.max_retries < 0:
            raise ConfigurationError(f"{self.engine_id} max_retries must not be negative, got {self.max_retries}")
        if self.max_concurrency < 1:
            raise ConfigurationError(f"{self.engine_id} max_concurrency must be at least 1, got {self.max_concurrency}")


def classify_status_code(status_code: int) -> Tuple[CallStatus, FailureKind]:
    """
    Map an HTTP error status to a call status.

    429 is rate limiting, 401/403 is auth (not retried), 408 and 5xx are
    server-side transient failures (retried), other 4xx are client errors.
    """
    if status_code == 429:
        return CallStatus.RATE_LIMITED, FailureKind.RATE_LIMIT
    if status_code in (401, 403):
        return CallStatus.ERROR, FailureKind.AUTH
    if status_code == 408:
        return CallStatus.TIMEOUT, FailureKind.TIMEOUT
    if status_code >= 500:
        return CallStatus.ERROR, FailureKind.SERVER
    return CallStatus.ERROR, FailureKind.CLIENT


def raise_for_engine_status(response: httpx.Response, engine_id: str) -> None:
    """Raise a classified EngineError for any HTTP error response."""
    if response.status_code < 400:
        return
    status, failure = classify_status_code(response.status_code)
    detail = ""
    try:
        error_data = response.json() if response.content else {}
        error = error_data.get("error") if isinstance(error_data, dict) else None
        if isinstance(error, dict):
            detail = error.get("message", "")
        elif isinstance(error, str):
            detail = error
    except ValueError:
        detail = ""
    raise EngineError(
        f"{engine_id} API error {response.status_code}{': ' + detail if detail else ''}",
        status=status,
        failure=failure,
        status_code=response.status_code,
    )


def parse_json(response: httpx.Response) -> Dict[str, Any]:
    """Decode a JSON object body or raise MalformedEngineResponse."""
    try:
        data = response.json()
    except ValueError as e:
        raise MalformedEngineResponse(f"Response is not JSON: {e}")
    if not isinstance(data, dict):
        raise MalformedEngineResponse(f"Expected JSON object, got {type(data).__name__}")
    return data


def clean_sources(raw: Any) -> List[str]:
    """Keep string URLs from a source list, in order, without duplicates."""
    if not isinstance(raw, list):
        raise MalformedEngineResponse(f"Source list is {type(raw).__name__}, not a list")
    sources: List[str] = []
    for item in raw:
        url = item
        if isinstance(item, dict):
            url = item.get("url") or item.get("link")
        if isinstance(url, str) and url.strip() and url.strip() not in sources:
            sources.append(url.strip())
    return sources


class EngineAdapter(ABC):
    """Base class for engine adapters."""

    def __init__(self, config: EngineConfig):
        self.config = config

    @property
    def engine_id(self) -> str:
        return self.config.engine_id

    @abstractmethod
    async def _fetch(self, query_text: str) -> Tuple[str, Optional[List[str]]]:
        """
        Issue the engine call.

        Returns:
            (answer_text, sources) where sources is None when the engine
            has no structured source list

        Raises:
            EngineError, httpx.HTTPError or engine SDK errors on failure
        """

    def _classify_exception(self, exc: Exception) -> Tuple[CallStatus, FailureKind]:
        """Classify SDK-specific exceptions. Subclasses extend this."""
        if isinstance(exc, EngineError):
            return exc.status, exc.failure
        if isinstance(exc, httpx.TimeoutException):
            return CallStatus.TIMEOUT, FailureKind.TIMEOUT
        if isinstance(exc, httpx.HTTPError):
            return CallStatus.ERROR, FailureKind.TRANSPORT
        return CallStatus.ERROR, FailureKind.TRANSPORT

    async def query(self, query_text: str) -> EngineResult:
        """Query the engine. Never raises for expected failure modes."""
        if not query_text or not query_text.strip():
            raise ValueError("query_text must be non-empty")

        started = time.monotonic()
        try:
            answer, sources = await self._fetch(query_text)
        except Exception as e:
            status, failure = self._classify_exception(e)
            latency_ms = (time.monotonic() - started) * 1000
            logger.warning(
                f"{self.engine_id} call failed ({status.value}/{failure.value}) "
                f"for query {query_text[:60]!r}: {e}"
            )
            return EngineResult(
                engine_id=self.engine_id,
                query=query_text,
                status=status,
                answer_text="",
                sources=None,
                latency_ms=latency_ms,
                failure=failure,
                error_message=str(e),
                captured_at=datetime.now(timezone.utc),
            )

        latency_ms = (time.monotonic() - started) * 1000
        logger.debug(
            f"{self.engine_id} answered in {latency_ms:.0f}ms "
            f"({len(answer)} chars, {len(sources) if sources is not None else 'no'} sources)"
        )
        return EngineResult(
            engine_id=self.engine_id,
            query=query_text,
            status=CallStatus.OK,
            answer_text=answer,
            sources=sources,
            latency_ms=latency_ms,
            captured_at=datetime.now(timezone.utc),
        )

    async def close(self):
        """Release underlying connections."""

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()


class HTTPEngineAdapter(EngineAdapter):
    """Engine adapter backed by a shared httpx.AsyncClient."""

    BASE_URL = ""

    def __init__(
        self,
        config: EngineConfig,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        super().__init__(config)
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            base_url=config.endpoint or self.BASE_URL,
            headers=self._default_headers(),
            timeout=httpx.Timeout(config.per_call_timeout),
        )
        self._closed = False

    def _default_headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.config.api_key:
            headers["Authorization"] = f"Bearer {self.config.api_key}"
        return headers

    async def close(self):
        """Close the HTTP client if this adapter created it."""
        if not self._closed and self._owns_client:
            await self._client.aclose()
        self._closed = True
