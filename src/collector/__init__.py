"""
Citation Visibility - Query Collection Package

This package handles fan-out of queries to the answer engines:
- Dispatcher: bounded-concurrency calls with retry and batch deadline
- Queries: default question set for a domain
"""

from .dispatcher import (
    DEADLINE_CANCEL_MESSAGE,
    DispatchBatch,
    DispatchConfig,
    QueryDispatcher,
    RetryConfig,
    normalize_queries,
)
from .queries import brand_from_domain, generate_queries_from_domain

__all__ = [
    # Dispatcher
    "DEADLINE_CANCEL_MESSAGE",
    "DispatchBatch",
    "DispatchConfig",
    "QueryDispatcher",
    "RetryConfig",
    "normalize_queries",

    # Queries
    "brand_from_domain",
    "generate_queries_from_domain",
]
