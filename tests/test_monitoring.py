"""
Tests for scheduled citation monitoring.
"""

import asyncio
from datetime import timedelta
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.collector.dispatcher import QueryDispatcher
from src.services import (
    CitationMonitor,
    MonitoringEntry,
    MonitoringFrequency,
    VisibilityTracker,
    is_due,
)
from src.utils.config import ConfigurationError


def tracking_result(citations, overall=50.0, no_data=False):
    return SimpleNamespace(
        no_data=no_data,
        run=SimpleNamespace(citation_count=citations, overall=None if no_data else overall),
    )


def stub_tracker(*results):
    tracker = MagicMock()
    tracker.track = AsyncMock(side_effect=list(results))
    return tracker


class TestIsDue:
    """Test check scheduling."""

    def test_never_checked(self, now):
        assert is_due(MonitoringEntry("example.com"), now)

    def test_inactive(self, now):
        assert not is_due(MonitoringEntry("example.com", is_active=False), now)

    def test_daily(self, now):
        entry = MonitoringEntry("example.com", last_checked_at=now - timedelta(hours=23))
        assert not is_due(entry, now)
        entry.last_checked_at = now - timedelta(hours=24)
        assert is_due(entry, now)

    def test_weekly(self, now):
        entry = MonitoringEntry("example.com", frequency=MonitoringFrequency.WEEKLY, last_checked_at=now - timedelta(days=3))
        assert not is_due(entry, now)

    def test_monthly(self, now):
        entry = MonitoringEntry("example.com", frequency=MonitoringFrequency.MONTHLY, last_checked_at=now - timedelta(days=30))
        assert is_due(entry, now)


class TestCheckEntry:
    """Test status change detection."""

    def test_first_check_records_status_without_change(self, now):
        monitor = CitationMonitor(stub_tracker(tracking_result(2)))
        entry = MonitoringEntry("example.com", queries=["best crm"])

        change = asyncio.run(monitor.check_entry(entry, now))

        assert change is None
        assert entry.last_cited is True
        assert entry.last_checked_at == now

    def test_lost_citation_triggers_callback(self, now):
        seen = []
        monitor = CitationMonitor(stub_tracker(tracking_result(0, overall=10.0)), on_change=lambda c, r: seen.append(c))
        entry = MonitoringEntry("example.com", last_cited=True, entry_id="m1")

        change = asyncio.run(monitor.check_entry(entry, now))

        assert change is not None
        assert not change.gained
        assert change.previous_cited and not change.current_cited
        assert change.entry_id == "m1"
        assert seen == [change]
        assert entry.last_cited is False

    def test_async_callback_awaited(self, now):
        callback = AsyncMock()
        monitor = CitationMonitor(stub_tracker(tracking_result(3)), on_change=callback)
        entry = MonitoringEntry("example.com", last_cited=False)

        change = asyncio.run(monitor.check_entry(entry, now))

        assert change.gained
        callback.assert_awaited_once()

    def test_alerts_disabled(self, now):
        callback = MagicMock()
        monitor = CitationMonitor(stub_tracker(tracking_result(3)), on_change=callback)
        entry = MonitoringEntry("example.com", last_cited=False, alert_on_change=False)

        assert asyncio.run(monitor.check_entry(entry, now)) is not None
        callback.assert_not_called()

    def test_no_data_keeps_status(self, now):
        monitor = CitationMonitor(stub_tracker(tracking_result(0, no_data=True)))
        entry = MonitoringEntry("example.com", last_cited=True)

        assert asyncio.run(monitor.check_entry(entry, now)) is None
        assert entry.last_cited is True
        assert entry.last_checked_at == now

    def test_passes_entry_settings_to_tracker(self, now):
        tracker = stub_tracker(tracking_result(1))
        entry = MonitoringEntry("example.com", queries=["best crm"], competitors=["rival.com"])
        asyncio.run(CitationMonitor(tracker).check_entry(entry, now))

        tracker.track.assert_awaited_once_with(
            "example.com", queries=["best crm"], competitors=["rival.com"], now=now,
        )


class TestRunDue:
    """Test monitoring passes."""

    def test_failures_do_not_stop_the_pass(self, now):
        tracker = stub_tracker(
            ConfigurationError("Invalid domain: 'bad'"),
            tracking_result(1),
        )
        entries = [
            MonitoringEntry("bad", entry_id="m1"),
            MonitoringEntry("example.com", entry_id="m2", last_cited=False),
            MonitoringEntry("paused.com", entry_id="m3", is_active=False),
        ]
        report = asyncio.run(CitationMonitor(tracker).run_due(entries, now))

        assert report.total == 3
        assert report.checked == 1
        assert report.status_changes == 1
        assert report.changes[0].entry_id == "m2"
        assert "m1" in report.failures
        assert report.to_dict()["failures"]["m1"].startswith("Invalid domain")

    @pytest.mark.integration
    def test_with_real_tracker(self, fake_adapter, no_sleep, now):
        sleep, _ = no_sleep
        adapter = fake_adapter("perplexity", default=("", ["https://example.com"]))
        tracker = VisibilityTracker([adapter], dispatcher=QueryDispatcher([adapter], sleep=sleep))
        entry = MonitoringEntry("example.com", queries=["best crm"], last_cited=False)

        report = asyncio.run(CitationMonitor(tracker).run_due([entry], now))

        assert report.status_changes == 1
        assert report.changes[0].gained
        assert entry.last_cited is True
