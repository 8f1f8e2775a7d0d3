"""
Citation Visibility - Data Models

Shared data models used across the system. Every model is immutable once
captured; aggregates are rebuilt rather than mutated.
"""

import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple


# =============================================================================
# ENUMS
# =============================================================================

class CallStatus(enum.Enum):
    """Terminal status of one engine call."""
    OK = "ok"
    TIMEOUT = "timeout"
    ERROR = "error"
    RATE_LIMITED = "rate_limited"


class FailureKind(enum.Enum):
    """Why a call did not reach OK. Drives the retry policy."""
    TRANSPORT = "transport"      # Connection reset, DNS, protocol error
    SERVER = "server"            # 5xx from the engine
    TIMEOUT = "timeout"          # Per-call deadline or batch deadline
    RATE_LIMIT = "rate_limit"    # 429
    AUTH = "auth"                # 401/403 - never retried
    MALFORMED = "malformed"      # Unparsable payload - never retried
    CLIENT = "client"            # Other 4xx


RETRYABLE_FAILURES = frozenset({
    FailureKind.TRANSPORT,
    FailureKind.SERVER,
    FailureKind.TIMEOUT,
    FailureKind.RATE_LIMIT,
})


class EvidenceKind(enum.Enum):
    """Outcome of citation extraction for one engine result."""
    CITED = "cited"
    NOT_CITED = "not_cited"
    UNKNOWN = "unknown"          # Engine call did not succeed
    MALFORMED = "malformed"      # Engine said OK but the payload was unusable


class MatchType(enum.Enum):
    """How the tracked domain was located."""
    EXACT_HOST = "exact_host"
    SUBDOMAIN = "subdomain"
    TEXT_DOMAIN = "text_domain"
    TEXT_TITLE = "text_title"


class BatchStatus(enum.Enum):
    """Dispatch batch lifecycle."""
    PENDING = "pending"
    DISPATCHED = "dispatched"
    COMPLETED = "completed"
    PARTIALLY_COMPLETED = "partially_completed"
    FAILED = "failed"


class TrendStatus(enum.Enum):
    """Whether a trend bucket holds a score."""
    NO_DATA = "no_data"                # No runs in the period
    INDETERMINATE = "indeterminate"    # Runs happened, none produced a score
    SCORED = "scored"


class Priority(enum.Enum):
    """Recommendation priority."""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


PRIORITY_ORDER: Dict[Priority, int] = {
    Priority.HIGH: 0,
    Priority.MEDIUM: 1,
    Priority.LOW: 2,
}


class RecommendationType(enum.Enum):
    """Recommendation categories."""
    NOT_CITED = "not_cited"
    IMPROVE_RANKING = "improve_ranking"
    COMPETITIVE_EROSION = "competitive_erosion"
    LOW_OVERALL_VISIBILITY = "low_overall_visibility"


# =============================================================================
# INPUTS
# =============================================================================

@dataclass(frozen=True)
class TrackedDomain:
    """A domain under monitoring. `domain` is already a normalized host."""
    domain: str
    owner_id: Optional[str] = None
    canonical_titles: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "domain": self.domain,
            "owner_id": self.owner_id,
            "canonical_titles": list(self.canonical_titles),
        }


@dataclass(frozen=True)
class Query:
    """One natural-language question to test."""
    text: str
    topic: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"text": self.text, "topic": self.topic}


# =============================================================================
# ENGINE OUTPUT
# =============================================================================

@dataclass(frozen=True)
class EngineResult:
    """
    One engine's answer to one query.

    `sources` is None when the engine has no structured source list at all,
    and an empty list when the engine explicitly returned zero sources.
    """
    engine_id: str
    query: str
    status: CallStatus
    answer_text: str = ""
    sources: Optional[List[str]] = None
    latency_ms: Optional[float] = None
    attempts: int = 1
    failure: Optional[FailureKind] = None
    error_message: Optional[str] = None
    captured_at: Optional[datetime] = None

    @property
    def ok(self) -> bool:
        return self.status == CallStatus.OK

    @property
    def retryable(self) -> bool:
        """Timeouts, rate limits and transport failures are worth one more try."""
        if self.status in (CallStatus.TIMEOUT, CallStatus.RATE_LIMITED):
            return True
        return self.failure in RETRYABLE_FAILURES

    def to_dict(self) -> Dict[str, Any]:
        return {
            "engine_id": self.engine_id,
            "query": self.query,
            "status": self.status.value,
            "answer_text": self.answer_text,
            "sources": list(self.sources) if self.sources is not None else None,
            "latency_ms": self.latency_ms,
            "attempts": self.attempts,
            "failure": self.failure.value if self.failure else None,
            "error_message": self.error_message,
            "captured_at": self.captured_at.isoformat() if self.captured_at else None,
        }


@dataclass(frozen=True)
class CitationEvidence:
    """Structured citation signal derived from one EngineResult."""
    engine_id: str
    kind: EvidenceKind
    cited: bool = False
    position: Optional[int] = None
    matched_snippet: str = ""
    confidence: int = 0
    match_type: Optional[MatchType] = None
    source_count: Optional[int] = None

    @property
    def determinate(self) -> bool:
        """False for unknown/malformed evidence, which scoring must exclude."""
        return self.kind in (EvidenceKind.CITED, EvidenceKind.NOT_CITED)

    @property
    def explicit_zero_sources(self) -> bool:
        return self.source_count == 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "engine_id": self.engine_id,
            "kind": self.kind.value,
            "cited": self.cited,
            "position": self.position,
            "matched_snippet": self.matched_snippet,
            "confidence": self.confidence,
            "match_type": self.match_type.value if self.match_type else None,
            "source_count": self.source_count,
        }


# =============================================================================
# SCORES
# =============================================================================

@dataclass(frozen=True)
class EngineScore:
    """Normalized per-engine outcome. `score` is None when excluded."""
    engine_id: str
    score: Optional[int]
    cited: bool
    position: Optional[int]
    status: CallStatus
    evidence: CitationEvidence

    @property
    def included(self) -> bool:
        return self.score is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "engine_id": self.engine_id,
            "score": self.score,
            "cited": self.cited,
            "position": self.position,
            "status": self.status.value,
            "evidence": self.evidence.to_dict(),
        }


@dataclass(frozen=True)
class VisibilityScore:
    """Aggregate outcome for one (domain, query, run)."""
    domain: str
    query: Query
    overall: Optional[float]
    engine_scores: Tuple[EngineScore, ...]
    run_at: datetime

    @property
    def indeterminate(self) -> bool:
        return self.overall is None

    @property
    def citation_count(self) -> int:
        return sum(1 for s in self.engine_scores if s.cited)

    def get_engine(self, engine_id: str) -> Optional[EngineScore]:
        for engine_score in self.engine_scores:
            if engine_score.engine_id == engine_id:
                return engine_score
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "domain": self.domain,
            "query": self.query.to_dict(),
            "overall": self.overall,
            "indeterminate": self.indeterminate,
            "citation_count": self.citation_count,
            "engine_scores": [s.to_dict() for s in self.engine_scores],
            "run_at": self.run_at.isoformat(),
        }


@dataclass(frozen=True)
class VisibilityRun:
    """All query scores for one domain run."""
    run_id: str
    domain: str
    run_at: datetime
    query_scores: Tuple[VisibilityScore, ...]
    overall: Optional[float]
    batch_status: BatchStatus
    top_queries: Tuple[str, ...] = ()

    @property
    def indeterminate(self) -> bool:
        return self.overall is None

    @property
    def citation_count(self) -> int:
        return sum(s.citation_count for s in self.query_scores)

    @property
    def engine_ids(self) -> List[str]:
        seen: List[str] = []
        for query_score in self.query_scores:
            for engine_score in query_score.engine_scores:
                if engine_score.engine_id not in seen:
                    seen.append(engine_score.engine_id)
        return seen

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "domain": self.domain,
            "run_at": self.run_at.isoformat(),
            "overall": self.overall,
            "indeterminate": self.indeterminate,
            "batch_status": self.batch_status.value,
            "citation_count": self.citation_count,
            "top_queries": list(self.top_queries),
            "query_scores": [s.to_dict() for s in self.query_scores],
        }


# =============================================================================
# TRENDS, COMPETITORS, RECOMMENDATIONS
# =============================================================================

@dataclass(frozen=True)
class TrendPoint:
    """One time-bucketed aggregate for a domain."""
    period_start: datetime
    period_end: datetime
    status: TrendStatus
    run_count: int = 0
    mean_score: Optional[float] = None
    citation_count: int = 0
    engine_breakdown: Dict[str, float] = field(default_factory=dict)

    @property
    def has_score(self) -> bool:
        return self.status == TrendStatus.SCORED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "period_start": self.period_start.isoformat(),
            "period_end": self.period_end.isoformat(),
            "status": self.status.value,
            "run_count": self.run_count,
            "mean_score": round(self.mean_score, 1) if self.mean_score is not None else None,
            "citation_count": self.citation_count,
            "engine_breakdown": {k: round(v, 1) for k, v in self.engine_breakdown.items()},
        }


@dataclass(frozen=True)
class CompetitorSnapshot:
    """A competitor's visibility for the tracked run's query set."""
    domain: str
    score: Optional[float]
    difference: Optional[float]
    rank: Optional[int]
    rank_delta: Optional[int]
    citation_count: int
    share_of_voice: float
    run_at: datetime
    query_texts: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "domain": self.domain,
            "score": round(self.score, 1) if self.score is not None else None,
            "difference": round(self.difference, 1) if self.difference is not None else None,
            "rank": self.rank,
            "rank_delta": self.rank_delta,
            "citation_count": self.citation_count,
            "share_of_voice": round(self.share_of_voice, 1),
            "run_at": self.run_at.isoformat(),
            "query_texts": list(self.query_texts),
        }


@dataclass(frozen=True)
class Recommendation:
    """One suggested action. Regenerated per request, never persisted."""
    type: RecommendationType
    priority: Priority
    title: str
    action: str
    expected_impact: float
    impact_label: str
    target_engine: Optional[str] = None
    rationale: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "priority": self.priority.value,
            "title": self.title,
            "action": self.action,
            "expected_impact": round(self.expected_impact, 1),
            "impact_label": self.impact_label,
            "target_engine": self.target_engine,
            "rationale": self.rationale,
        }
