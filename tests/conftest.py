"""
Pytest Configuration and Shared Fixtures

Provides common fixtures and configuration for all test modules.
"""

import asyncio
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

import pytest

from src.integrations.base import EngineAdapter, EngineConfig
from src.models import (
    BatchStatus,
    CallStatus,
    CitationEvidence,
    EngineResult,
    EngineScore,
    EvidenceKind,
    FailureKind,
    MatchType,
    Query,
    TrackedDomain,
    VisibilityScore,
)
from src.scoring.visibility import build_run, calculate_query_score


# ============================================================================
# Fake Engine
# ============================================================================

class FakeAdapter(EngineAdapter):
    """
    Scripted engine adapter.

    `responses` maps query text to an outcome: an (answer, sources) tuple,
    an exception to raise, or a list of outcomes consumed one per call
    (the last one repeats).
    """

    def __init__(
        self,
        engine_id: str,
        responses: Optional[Dict[str, Any]] = None,
        default: Any = ("", []),
        delay: float = 0.0,
        per_call_timeout: float = 5.0,
        max_retries: int = 1,
        floor_score: int = 0,
        max_concurrency: int = 3,
    ):
        super().__init__(EngineConfig(
            engine_id=engine_id,
            kind="fake",
            per_call_timeout=per_call_timeout,
            max_retries=max_retries,
            floor_score=floor_score,
            max_concurrency=max_concurrency,
        ))
        self.responses = dict(responses or {})
        self.default = default
        self.delay = delay
        self.calls: List[str] = []
        self.closed = False
        self.in_flight = 0
        self.peak_in_flight = 0

    async def _fetch(self, query_text: str) -> Tuple[str, Optional[List[str]]]:
        self.calls.append(query_text)
        self.in_flight += 1
        self.peak_in_flight = max(self.peak_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            outcome = self.responses.get(query_text, self.default)
            if isinstance(outcome, list):
                outcome = outcome.pop(0) if len(outcome) > 1 else outcome[0]
            if isinstance(outcome, Exception):
                raise outcome
            return outcome
        finally:
            self.in_flight -= 1

    async def close(self):
        self.closed = True


def no_sleep_factory():
    delays: List[float] = []

    async def fake_sleep(delay: float):
        delays.append(delay)

    return fake_sleep, delays


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def fake_adapter():
    """The FakeAdapter class."""
    return FakeAdapter


@pytest.fixture
def no_sleep():
    """(sleep, recorded_delays) pair for dispatcher backoff."""
    return no_sleep_factory()


@pytest.fixture
def now() -> datetime:
    return datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def tracked() -> TrackedDomain:
    return TrackedDomain(domain="example.com")


@pytest.fixture
def query() -> Query:
    return Query(text="best crm for startups", topic="comparison")


@pytest.fixture
def make_result(now):
    """Factory for EngineResult objects."""
    def _make(
        engine_id: str,
        answer: str = "",
        sources: Optional[List[str]] = None,
        status: CallStatus = CallStatus.OK,
        query: str = "best crm for startups",
        failure: Optional[FailureKind] = None,
        captured_at: Optional[datetime] = None,
    ) -> EngineResult:
        return EngineResult(
            engine_id=engine_id,
            query=query,
            status=status,
            answer_text=answer,
            sources=sources,
            failure=failure,
            captured_at=captured_at or now,
        )

    return _make


def _engine_score(engine_id: str, outcome: tuple) -> EngineScore:
    """(score, cited, position[, confidence]) -> EngineScore. score None = failed call."""
    score, cited, position = outcome[:3]
    confidence = outcome[3] if len(outcome) > 3 else 80
    if score is None:
        evidence = CitationEvidence(engine_id=engine_id, kind=EvidenceKind.UNKNOWN)
        return EngineScore(engine_id, None, False, None, CallStatus.TIMEOUT, evidence)
    if cited:
        evidence = CitationEvidence(
            engine_id=engine_id,
            kind=EvidenceKind.CITED,
            cited=True,
            position=position,
            matched_snippet="https://example.com/" if position else "example.com",
            confidence=confidence,
            match_type=MatchType.EXACT_HOST if position else MatchType.TEXT_DOMAIN,
            source_count=10 if position else None,
        )
        return EngineScore(engine_id, score, True, position, CallStatus.OK, evidence)
    evidence = CitationEvidence(engine_id=engine_id, kind=EvidenceKind.NOT_CITED, source_count=5)
    return EngineScore(engine_id, score, False, None, CallStatus.OK, evidence)


@pytest.fixture
def make_run(now):
    """
    Factory for scored VisibilityRun objects.

    `queries` maps query text to {engine_id: (score, cited, position[, confidence])}.
    """
    def _make(
        run_at: Optional[datetime] = None,
        queries: Optional[Dict[str, Dict[str, tuple]]] = None,
        domain: str = "example.com",
        run_id: Optional[str] = None,
        batch_status: BatchStatus = BatchStatus.COMPLETED,
    ):
        run_at = run_at or now
        if queries is None:
            queries = {"best crm for startups": {"perplexity": (86, True, 2)}}

        query_scores = []
        for text, engines in queries.items():
            engine_scores = tuple(
                _engine_score(engine_id, outcome) for engine_id, outcome in sorted(engines.items())
            )
            query_scores.append(VisibilityScore(
                domain=domain,
                query=Query(text=text),
                overall=calculate_query_score(engine_scores),
                engine_scores=engine_scores,
                run_at=run_at,
            ))
        return build_run(domain, query_scores, batch_status, run_at, run_id=run_id)

    return _make


# ============================================================================
# Pytest Configuration
# ============================================================================

def pytest_configure(config):
    """Configure custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests"
    )
