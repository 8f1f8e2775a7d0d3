"""
Scheduled Citation Monitoring

Re-checks monitored domains on a daily / weekly / monthly cadence and
reports citation status changes.

Usage:
    monitor = CitationMonitor(tracker, on_change=notify)
    report = await monitor.run_due(entries)
    print(report.checked, report.status_changes)
"""

import asyncio
import enum
import inspect
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

from src.scoring.trends import ensure_utc

from .visibility import TrackingResult, VisibilityTracker

logger = logging.getLogger(__name__)


class MonitoringFrequency(enum.Enum):
    """How often an entry is re-checked."""
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


FREQUENCY_HOURS = {
    MonitoringFrequency.DAILY: 24,
    MonitoringFrequency.WEEKLY: 168,
    MonitoringFrequency.MONTHLY: 720,
}


@dataclass
class MonitoringEntry:
    """One monitored domain and its query set."""
    domain: str
    queries: List[str] = field(default_factory=list)
    competitors: List[str] = field(default_factory=list)
    frequency: MonitoringFrequency = MonitoringFrequency.DAILY
    last_checked_at: Optional[datetime] = None
    last_cited: Optional[bool] = None
    alert_on_change: bool = True
    is_active: bool = True
    entry_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "entry_id": self.entry_id,
            "domain": self.domain,
            "queries": list(self.queries),
            "competitors": list(self.competitors),
            "frequency": self.frequency.value,
            "last_checked_at": self.last_checked_at.isoformat() if self.last_checked_at else None,
            "last_cited": self.last_cited,
            "alert_on_change": self.alert_on_change,
            "is_active": self.is_active,
        }


@dataclass
class StatusChange:
    """Citation status flipped between two checks."""
    domain: str
    previous_cited: bool
    current_cited: bool
    overall: Optional[float]
    checked_at: datetime
    entry_id: Optional[str] = None

    @property
    def gained(self) -> bool:
        return self.current_cited and not self.previous_cited

    def to_dict(self) -> Dict[str, Any]:
        return {
            "entry_id": self.entry_id,
            "domain": self.domain,
            "previous_cited": self.previous_cited,
            "current_cited": self.current_cited,
            "overall": round(self.overall, 1) if self.overall is not None else None,
            "checked_at": self.checked_at.isoformat(),
        }


@dataclass
class MonitoringReport:
    """Outcome of one monitoring pass."""
    total: int = 0
    checked: int = 0
    status_changes: int = 0
    changes: List[StatusChange] = field(default_factory=list)
    failures: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "checked": self.checked,
            "status_changes": self.status_changes,
            "changes": [c.to_dict() for c in self.changes],
            "failures": dict(self.failures),
        }


def is_due(entry: MonitoringEntry, now: datetime) -> bool:
    """Whether enough time has passed since the entry's last check."""
    if not entry.is_active:
        return False
    if entry.last_checked_at is None:
        return True
    interval = timedelta(hours=FREQUENCY_HOURS.get(entry.frequency, 24))
    return ensure_utc(now) - ensure_utc(entry.last_checked_at) >= interval


class CitationMonitor:
    """Runs due monitoring entries one at a time through a tracker."""

    def __init__(
        self,
        tracker: VisibilityTracker,
        on_change: Optional[Callable[[StatusChange, TrackingResult], Any]] = None,
        delay_between: float = 0.0,
    ):
        """
        Initialize monitor.

        Args:
            tracker: Tracker used for each check
            on_change: Called (sync or async) for status changes on entries
                with alert_on_change enabled
            delay_between: Pause between entries in seconds
        """
        self.tracker = tracker
        self.on_change = on_change
        self.delay_between = delay_between

    async def check_entry(self, entry: MonitoringEntry, now: datetime) -> Optional[StatusChange]:
        """
        Track one entry and update its state in place.

        Returns:
            StatusChange when the cited status flipped, else None
        """
        result = await self.tracker.track(
            entry.domain,
            queries=entry.queries or None,
            competitors=entry.competitors or None,
            now=now,
        )
        entry.last_checked_at = now

        if result.no_data:
            logger.warning(f"Monitoring check for {entry.domain} returned no data, status unchanged")
            return None

        cited = result.run.citation_count > 0
        previous = entry.last_cited
        entry.last_cited = cited

        if previous is None or previous == cited:
            return None

        change = StatusChange(
            domain=entry.domain,
            previous_cited=previous,
            current_cited=cited,
            overall=result.run.overall,
            checked_at=now,
            entry_id=entry.entry_id,
        )
        logger.info(
            f"Citation status changed for {entry.domain}: "
            f"{'not cited -> cited' if change.gained else 'cited -> not cited'}"
        )

        if entry.alert_on_change and self.on_change is not None:
            outcome = self.on_change(change, result)
            if inspect.isawaitable(outcome):
                await outcome
        return change

    async def run_due(
        self,
        entries: List[MonitoringEntry],
        now: Optional[datetime] = None,
    ) -> MonitoringReport:
        """
        Check every due entry sequentially.

        A failing entry is logged and recorded in the report; the rest
        still run.
        """
        now = now or datetime.now(timezone.utc)
        report = MonitoringReport(total=len(entries))

        due = [entry for entry in entries if is_due(entry, now)]
        logger.info(f"Monitoring pass: {len(due)}/{len(entries)} entries due")

        for index, entry in enumerate(due):
            try:
                change = await self.check_entry(entry, now)
            except Exception as e:
                logger.error(f"Error checking monitoring entry {entry.entry_id or entry.domain}: {e}")
                report.failures[entry.entry_id or entry.domain] = str(e)
                continue

            report.checked += 1
            if change is not None:
                report.status_changes += 1
                report.changes.append(change)

            if self.delay_between and index < len(due) - 1:
                await asyncio.sleep(self.delay_between)

        logger.info(
            f"Monitoring completed: {report.checked} checked, "
            f"{report.status_changes} status changes, {len(report.failures)} failures"
        )
        return report
