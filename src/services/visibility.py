"""
Visibility Tracking Service

Orchestrates one tracking run for a domain:
1. Query dispatch across every configured engine
2. Citation extraction and scoring per query
3. Trend folding (single writer per domain)
4. Competitor comparison on the same engine answers
5. Recommendation generation

A run in which no engine answered any query is returned with
`no_data = True` and `overall = None`, never as a zero score.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union

from src.collector.dispatcher import DispatchBatch, DispatchConfig, QueryDispatcher
from src.collector.queries import generate_queries_from_domain
from src.integrations.base import EngineAdapter
from src.models import (
    BatchStatus,
    CompetitorSnapshot,
    Query,
    Recommendation,
    TrackedDomain,
    TrendPoint,
    VisibilityRun,
)
from src.persistence.trend_store import TrendStore
from src.reporter.recommendations import generate_recommendations
from src.scoring.competitor_scoring import CompetitiveComparison, compare_competitors
from src.scoring.visibility import build_run, score_queries
from src.utils.config import ConfigurationError
from src.utils.domain_filter import is_valid_domain, normalize_domain

logger = logging.getLogger(__name__)

TREND_PERIODS = 14

RunRecorder = Callable[[VisibilityRun, List[CompetitorSnapshot]], Any]


@dataclass
class TrackingResult:
    """Everything produced by one tracking run."""
    domain: TrackedDomain
    run: VisibilityRun
    batch: DispatchBatch
    competitors: List[CompetitorSnapshot] = field(default_factory=list)
    comparison: Optional[CompetitiveComparison] = None
    recommendations: List[Recommendation] = field(default_factory=list)
    trend: List[TrendPoint] = field(default_factory=list)

    @property
    def batch_status(self) -> BatchStatus:
        return self.batch.status

    @property
    def no_data(self) -> bool:
        """True when no engine produced a usable answer for any query."""
        return self.run.indeterminate

    @property
    def overall(self) -> Optional[float]:
        return self.run.overall

    def to_dict(self) -> Dict[str, Any]:
        return {
            "domain": self.domain.to_dict(),
            "no_data": self.no_data,
            "overall": round(self.run.overall, 1) if self.run.overall is not None else None,
            "batch_status": self.batch_status.value,
            "calls": {
                "total": self.batch.call_count,
                "ok": self.batch.ok_count,
                "cancelled": self.batch.cancelled_calls,
            },
            "run": self.run.to_dict(),
            "competitors": [c.to_dict() for c in self.competitors],
            "comparison": self.comparison.to_dict() if self.comparison else None,
            "recommendations": [r.to_dict() for r in self.recommendations],
            "trend": [p.to_dict() for p in self.trend],
        }


class VisibilityTracker:
    """
    Service for citation visibility tracking.

    Usage:
        tracker = VisibilityTracker(adapters)
        result = await tracker.track("example.com", ["best crm for startups"])
        print(result.run.overall, [r.title for r in result.recommendations])
        await tracker.close()
    """

    def __init__(
        self,
        adapters: Sequence[EngineAdapter],
        store: Optional[TrendStore] = None,
        dispatch_config: Optional[DispatchConfig] = None,
        run_recorder: Optional[RunRecorder] = None,
        dispatcher: Optional[QueryDispatcher] = None,
        trend_periods: int = TREND_PERIODS,
    ):
        """
        Initialize tracker.

        Args:
            adapters: One adapter per engine
            store: Trend store (a private in-memory store by default)
            dispatch_config: Dispatcher configuration
            run_recorder: Called with every scored run and its competitor
                snapshots before trends are updated (e.g. database save)
            dispatcher: Pre-built dispatcher, mainly for tests
            trend_periods: Trend buckets returned with each result
        """
        self.dispatcher = dispatcher or QueryDispatcher(adapters, dispatch_config)
        self.adapters = list(adapters) or list(self.dispatcher.adapters)
        self.store = store if store is not None else TrendStore()
        self.run_recorder = run_recorder
        self.trend_periods = trend_periods
        self.floors = {a.engine_id: a.config.floor_score for a in self.adapters}

    async def track(
        self,
        domain: Union[str, TrackedDomain],
        queries: Optional[Sequence[Union[str, Query]]] = None,
        competitors: Optional[Sequence[str]] = None,
        deadline: Optional[float] = None,
        now: Optional[datetime] = None,
    ) -> TrackingResult:
        """
        Run a full tracking pass.

        Args:
            domain: Domain, URL or TrackedDomain
            queries: Queries to test (generated from the domain if omitted)
            competitors: Competitor domains to compare against
            deadline: Batch deadline in seconds
            now: Run timestamp (defaults to now, UTC)

        Returns:
            TrackingResult

        Raises:
            ConfigurationError: Invalid domain, empty query set or bad deadline
        """
        tracked = self._tracked_domain(domain)
        if not queries:
            queries = generate_queries_from_domain(tracked.domain)
            logger.info(f"No queries supplied for {tracked.domain}, generated {len(queries)}")

        logger.info(f"Tracking {tracked.domain} across {len(self.adapters)} engines")
        batch = await self.dispatcher.dispatch(queries, deadline=deadline)

        run_at = now or datetime.now(timezone.utc)
        query_scores = score_queries(tracked, batch.queries, batch.all_results, self.floors, run_at)
        run = build_run(tracked.domain, query_scores, batch.status, run_at)

        comparison = None
        snapshots: List[CompetitorSnapshot] = []
        if competitors:
            comparison = compare_competitors(
                run,
                batch.queries,
                batch.all_results,
                competitors,
                tracked.domain,
                floors=self.floors,
            )
            snapshots = comparison.competitors

        # Trends only see runs the recorder accepted
        if self.run_recorder is not None:
            self.run_recorder(run, snapshots)

        self.store.record(run)
        for snapshot in snapshots:
            self.store.record_competitor(tracked.domain, run.run_id, snapshot)

        trend = self.store.last_points(tracked.domain, self.trend_periods, run_at)
        competitor_trend = self.store.competitor_points(
            tracked.domain,
            [s.domain for s in snapshots],
            self.trend_periods,
            run_at,
        )
        recommendations = generate_recommendations(run, trend, competitor_trend)

        if run.indeterminate:
            logger.warning(f"No data for {tracked.domain}: no engine answered any query")
        else:
            logger.info(
                f"{tracked.domain} visibility {run.overall:.1f} "
                f"({run.citation_count} citations, batch {batch.status.value})"
            )

        return TrackingResult(
            domain=tracked,
            run=run,
            batch=batch,
            competitors=snapshots,
            comparison=comparison,
            recommendations=recommendations,
            trend=trend,
        )

    def rebuild_history(
        self,
        domain: str,
        runs: Sequence[VisibilityRun],
        competitor_history: Sequence[Tuple[str, CompetitorSnapshot]] = (),
    ):
        """Replay persisted runs and competitor snapshots into the trend store."""
        host = normalize_domain(domain)
        if competitor_history:
            self.store.rebuild_competitors(host, competitor_history)
        return self.store.rebuild(host, runs)

    def _tracked_domain(self, domain: Union[str, TrackedDomain]) -> TrackedDomain:
        if isinstance(domain, TrackedDomain):
            host = normalize_domain(domain.domain)
            tracked = TrackedDomain(host, domain.owner_id, domain.canonical_titles)
        else:
            host = normalize_domain(domain)
            tracked = TrackedDomain(host)
        if not is_valid_domain(host):
            raise ConfigurationError(f"Invalid domain: {domain!r}")
        return tracked

    async def close(self):
        for adapter in self.adapters:
            await adapter.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
