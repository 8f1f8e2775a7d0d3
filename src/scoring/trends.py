"""
Trend Aggregation

Folds visibility runs into fixed time buckets and answers rolling-window
questions ("score 7 days ago vs today", weekly growth, streaks).

Buckets are anchored at the Unix epoch in UTC, so with the default
one-day window a bucket is exactly one calendar day. Each fold updates
count/sum accumulators and running totals; nothing replays history.

A bucket with no runs is reported as no_data. A bucket whose runs were all
indeterminate is reported as indeterminate. Neither is a zero score.
"""

import enum
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, List, Optional, Set, Tuple, Union

from src.models import TrendPoint, TrendStatus, VisibilityRun

logger = logging.getLogger(__name__)

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
DEFAULT_WINDOW = timedelta(days=1)
WEEK = timedelta(days=7)


class GrowthSentinel(enum.Enum):
    """Non-numeric growth outcomes."""
    NEW_ACTIVITY = "new_activity"


NEW_ACTIVITY = GrowthSentinel.NEW_ACTIVITY

Growth = Union[float, GrowthSentinel]


# ============================================================================
# PURE HELPERS
# ============================================================================

def ensure_utc(ts: datetime) -> datetime:
    """Treat naive timestamps as UTC."""
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def bucket_start(ts: datetime, window: timedelta = DEFAULT_WINDOW) -> datetime:
    """Start of the epoch-anchored bucket containing ts."""
    ts = ensure_utc(ts)
    return EPOCH + ((ts - EPOCH) // window) * window


def calculate_weekly_growth(this_week: int, last_week: int) -> Growth:
    """
    Week-over-week growth percentage.

    Returns:
        (this - last) / last * 100 when last_week > 0,
        0.0 when both weeks are empty,
        NEW_ACTIVITY when activity appears from nothing
    """
    if last_week > 0:
        return (this_week - last_week) / last_week * 100
    if this_week == 0:
        return 0.0
    return NEW_ACTIVITY


def growth_to_json(growth: Growth) -> Union[float, str]:
    if isinstance(growth, GrowthSentinel):
        return growth.value
    return round(growth, 1)


def calculate_streak(flags: Iterable[bool]) -> int:
    """
    Consecutive True flags, most recent first, stopping at the first False.

    Example:
        [True, True, False, True] -> 2
    """
    streak = 0
    for flag in flags:
        if not flag:
            break
        streak += 1
    return streak


# ============================================================================
# SERIES
# ============================================================================

@dataclass
class _Bucket:
    run_count: int = 0
    score_count: int = 0
    score_sum: float = 0.0
    citation_count: int = 0
    engine_sums: Dict[str, float] = field(default_factory=dict)
    engine_counts: Dict[str, int] = field(default_factory=dict)

    @property
    def mean_score(self) -> Optional[float]:
        if not self.score_count:
            return None
        return self.score_sum / self.score_count


class TrendSeries:
    """
    Incrementally maintained time series for one domain.

    Usage:
        series = TrendSeries("example.com")
        series.fold(run)
        points = series.points(start, end)
    """

    def __init__(self, domain: str, window: timedelta = DEFAULT_WINDOW):
        if window <= timedelta(0):
            raise ValueError("Trend window must be positive")
        if WEEK % window:
            raise ValueError(f"Trend window {window} must divide one week evenly")
        self.domain = domain
        self.window = window
        self._buckets: Dict[datetime, _Bucket] = {}
        self._run_ids: Set[str] = set()

        # Running totals
        self.total_runs = 0
        self.scored_runs = 0
        self.score_sum = 0.0
        self.total_citations = 0
        self.first_run_at: Optional[datetime] = None
        self.last_run_at: Optional[datetime] = None

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def fold_score(
        self,
        run_id: str,
        run_at: datetime,
        score: Optional[float],
        citation_count: int,
        engine_scores: Optional[Iterable[Tuple[str, float]]] = None,
    ) -> bool:
        """
        Fold one scored observation.

        Returns:
            False when run_id was already folded
        """
        if run_id in self._run_ids:
            logger.debug(f"Run {run_id} already folded into {self.domain}, skipping")
            return False
        self._run_ids.add(run_id)

        run_at = ensure_utc(run_at)
        bucket = self._buckets.setdefault(bucket_start(run_at, self.window), _Bucket())
        bucket.run_count += 1
        bucket.citation_count += citation_count
        if score is not None:
            bucket.score_count += 1
            bucket.score_sum += score
        for engine_id, engine_score in engine_scores or ():
            bucket.engine_sums[engine_id] = bucket.engine_sums.get(engine_id, 0.0) + engine_score
            bucket.engine_counts[engine_id] = bucket.engine_counts.get(engine_id, 0) + 1

        self.total_runs += 1
        self.total_citations += citation_count
        if score is not None:
            self.scored_runs += 1
            self.score_sum += score
        if self.first_run_at is None or run_at < self.first_run_at:
            self.first_run_at = run_at
        if self.last_run_at is None or run_at > self.last_run_at:
            self.last_run_at = run_at
        return True

    def fold(self, run: VisibilityRun) -> bool:
        """Fold a domain run. Indeterminate runs count as activity only."""
        engine_scores = [
            (engine_score.engine_id, float(engine_score.score))
            for query_score in run.query_scores
            for engine_score in query_score.engine_scores
            if engine_score.score is not None
        ]
        return self.fold_score(
            run.run_id,
            run.run_at,
            run.overall,
            run.citation_count,
            engine_scores,
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @property
    def mean_score(self) -> Optional[float]:
        if not self.scored_runs:
            return None
        return self.score_sum / self.scored_runs

    def _point(self, start: datetime) -> TrendPoint:
        end = start + self.window
        bucket = self._buckets.get(start)
        if bucket is None:
            return TrendPoint(period_start=start, period_end=end, status=TrendStatus.NO_DATA)

        breakdown = {
            engine_id: bucket.engine_sums[engine_id] / bucket.engine_counts[engine_id]
            for engine_id in sorted(bucket.engine_sums)
        }
        return TrendPoint(
            period_start=start,
            period_end=end,
            status=TrendStatus.SCORED if bucket.score_count else TrendStatus.INDETERMINATE,
            run_count=bucket.run_count,
            mean_score=bucket.mean_score,
            citation_count=bucket.citation_count,
            engine_breakdown=breakdown,
        )

    def points(self, start: datetime, end: datetime) -> List[TrendPoint]:
        """Contiguous points covering [start, end], empty buckets included."""
        current = bucket_start(start, self.window)
        last = bucket_start(end, self.window)
        points = []
        while current <= last:
            points.append(self._point(current))
            current += self.window
        return points

    def last_points(self, count: int, now: datetime) -> List[TrendPoint]:
        """The `count` buckets ending with the one containing now."""
        if count <= 0:
            return []
        end = bucket_start(now, self.window)
        return self.points(end - (count - 1) * self.window, end)

    def point_at(self, ts: datetime) -> TrendPoint:
        return self._point(bucket_start(ts, self.window))

    def streak(self, now: datetime) -> int:
        """Consecutive buckets with a citation, walking back from now."""
        def flags():
            current = bucket_start(now, self.window)
            while True:
                bucket = self._buckets.get(current)
                yield bool(bucket and bucket.citation_count > 0)
                current -= self.window

        return calculate_streak(flags())

    def moving_average(self, periods: int, now: datetime) -> Optional[float]:
        """Run-weighted mean score over the last `periods` buckets."""
        count = 0
        total = 0.0
        current = bucket_start(now, self.window)
        for _ in range(max(0, periods)):
            bucket = self._buckets.get(current)
            if bucket is not None:
                count += bucket.score_count
                total += bucket.score_sum
            current -= self.window
        return total / count if count else None

    def score_delta(self, days: int, now: datetime) -> Optional[float]:
        """
        Bucket mean at now minus bucket mean `days` days earlier.

        Returns:
            Delta, or None when either bucket has no score
        """
        current = self.point_at(now).mean_score
        previous = self.point_at(ensure_utc(now) - timedelta(days=days)).mean_score
        if current is None or previous is None:
            return None
        return current - previous

    def weekly_citation_counts(self, now: datetime) -> Tuple[int, int]:
        """
        (this week, last week) citation counts.

        Weeks are whole runs of buckets ending with the bucket containing now.
        """
        now = bucket_start(now, self.window)
        this_week = 0
        last_week = 0
        for start, bucket in self._buckets.items():
            if now - WEEK < start <= now:
                this_week += bucket.citation_count
            elif now - 2 * WEEK < start <= now - WEEK:
                last_week += bucket.citation_count
        return this_week, last_week

    def weekly_growth(self, now: datetime) -> Growth:
        this_week, last_week = self.weekly_citation_counts(now)
        return calculate_weekly_growth(this_week, last_week)

    def to_dict(self, now: datetime, periods: int = 14) -> Dict:
        return {
            "domain": self.domain,
            "window_hours": self.window.total_seconds() / 3600,
            "total_runs": self.total_runs,
            "total_citations": self.total_citations,
            "mean_score": round(self.mean_score, 1) if self.mean_score is not None else None,
            "streak": self.streak(now),
            "weekly_growth": growth_to_json(self.weekly_growth(now)),
            "points": [p.to_dict() for p in self.last_points(periods, now)],
        }


def scored_direction(points: Iterable[TrendPoint]) -> Optional[float]:
    """
    Change between the last two scored points.

    Returns:
        latest - previous, or None with fewer than two scored points
    """
    scored = [p.mean_score for p in points if p.has_score]
    if len(scored) < 2:
        return None
    return scored[-1] - scored[-2]
