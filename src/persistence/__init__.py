"""
Persistence Layer

In-memory trend storage with per-domain single-writer folding.
"""

from .trend_store import TrendStore, competitor_key

__all__ = [
    "TrendStore",
    "competitor_key",
]
