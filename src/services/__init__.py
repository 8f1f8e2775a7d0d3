"""
Citation Visibility Services Layer

Services that orchestrate dispatch, scoring, trend storage and reporting.
"""

from .visibility import TrackingResult, VisibilityTracker
from .monitoring import (
    FREQUENCY_HOURS,
    CitationMonitor,
    MonitoringEntry,
    MonitoringFrequency,
    MonitoringReport,
    StatusChange,
    is_due,
)

__all__ = [
    "TrackingResult",
    "VisibilityTracker",
    "FREQUENCY_HOURS",
    "CitationMonitor",
    "MonitoringEntry",
    "MonitoringFrequency",
    "MonitoringReport",
    "StatusChange",
    "is_due",
]
