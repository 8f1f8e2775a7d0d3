"""
Trend Store

Holds one TrendSeries per key (a tracked domain, or a tracked domain's
competitor). Writes to a key are serialized by a per-key lock so a run
is folded completely or not at all. Reads return deep copies, so a
dashboard never sees a half-applied run.
"""

import copy
import logging
import threading
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional, Tuple

from src.models import CompetitorSnapshot, TrendPoint, VisibilityRun
from src.scoring.trends import DEFAULT_WINDOW, TrendSeries

logger = logging.getLogger(__name__)


def competitor_key(tracked_domain: str, competitor_domain: str) -> str:
    """Series key for a competitor measured against a tracked domain's queries."""
    return f"{tracked_domain}|vs|{competitor_domain}"


class TrendStore:
    """
    In-memory single-writer trend store.

    Usage:
        store = TrendStore()
        store.record(run)
        points = store.points("example.com", start, end)
    """

    def __init__(self, window: timedelta = DEFAULT_WINDOW):
        self.window = window
        self._series: Dict[str, TrendSeries] = {}
        self._locks: Dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    def _lock_for(self, key: str) -> threading.Lock:
        with self._registry_lock:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
            return lock

    def _series_for(self, key: str) -> TrendSeries:
        # Caller holds the key lock
        series = self._series.get(key)
        if series is None:
            series = TrendSeries(key, window=self.window)
            with self._registry_lock:
                self._series[key] = series
        return series

    def record(self, run: VisibilityRun) -> bool:
        """Fold a run into its domain's series. False if already recorded."""
        with self._lock_for(run.domain):
            return self._series_for(run.domain).fold(run)

    def record_competitor(self, tracked_domain: str, run_id: str, snapshot: CompetitorSnapshot) -> bool:
        """Fold a competitor snapshot into the tracked domain's competitor series."""
        key = competitor_key(tracked_domain, snapshot.domain)
        with self._lock_for(key):
            return self._series_for(key).fold_score(
                run_id,
                snapshot.run_at,
                snapshot.score,
                snapshot.citation_count,
            )

    def snapshot(self, key: str) -> TrendSeries:
        """Deep copy of a series (empty when nothing was recorded)."""
        with self._lock_for(key):
            series = self._series.get(key)
            if series is None:
                return TrendSeries(key, window=self.window)
            return copy.deepcopy(series)

    def points(self, key: str, start: datetime, end: datetime) -> List[TrendPoint]:
        return self.snapshot(key).points(start, end)

    def last_points(self, key: str, count: int, now: datetime) -> List[TrendPoint]:
        return self.snapshot(key).last_points(count, now)

    def competitor_points(
        self,
        tracked_domain: str,
        competitors: Iterable[str],
        count: int,
        now: datetime,
    ) -> Dict[str, List[TrendPoint]]:
        return {
            competitor: self.last_points(competitor_key(tracked_domain, competitor), count, now)
            for competitor in competitors
        }

    def rebuild(self, domain: str, runs: Iterable[VisibilityRun]) -> TrendSeries:
        """
        Replace a domain's series by replaying stored runs in time order.

        Returns:
            Copy of the rebuilt series
        """
        series = TrendSeries(domain, window=self.window)
        folded = 0
        for run in sorted(runs, key=lambda r: r.run_at):
            if run.domain != domain:
                logger.warning(f"Skipping run {run.run_id} for {run.domain} while rebuilding {domain}")
                continue
            if series.fold(run):
                folded += 1

        with self._lock_for(domain):
            with self._registry_lock:
                self._series[domain] = series
            logger.info(f"Rebuilt trend series for {domain} from {folded} runs")
            return copy.deepcopy(series)

    def rebuild_competitors(
        self,
        tracked_domain: str,
        history: Iterable[Tuple[str, CompetitorSnapshot]],
    ) -> Dict[str, TrendSeries]:
        """
        Replace a tracked domain's competitor series from stored snapshots.

        Args:
            tracked_domain: Normalized tracked domain
            history: (run_id, snapshot) pairs

        Returns:
            Copy of each rebuilt series, keyed by competitor domain
        """
        rebuilt: Dict[str, TrendSeries] = {}
        for run_id, snapshot in sorted(history, key=lambda item: item[1].run_at):
            series = rebuilt.get(snapshot.domain)
            if series is None:
                series = rebuilt[snapshot.domain] = TrendSeries(
                    competitor_key(tracked_domain, snapshot.domain), window=self.window
                )
            series.fold_score(run_id, snapshot.run_at, snapshot.score, snapshot.citation_count)

        for competitor, series in rebuilt.items():
            key = competitor_key(tracked_domain, competitor)
            with self._lock_for(key):
                with self._registry_lock:
                    self._series[key] = series
        logger.info(f"Rebuilt {len(rebuilt)} competitor series for {tracked_domain}")
        return {competitor: copy.deepcopy(series) for competitor, series in rebuilt.items()}

    def keys(self) -> List[str]:
        with self._registry_lock:
            return sorted(self._series)

    def clear(self, key: Optional[str] = None):
        """Drop one series, or all of them."""
        if key is None:
            with self._registry_lock:
                self._series.clear()
            return
        with self._lock_for(key):
            with self._registry_lock:
                self._series.pop(key, None)
