"""
Citation Visibility Database Layer

Optional run history store. The scoring core never needs it; the tracker
accepts a run recorder and the trend store can be rebuilt from loaded runs.

Usage:
    from src.database import init_db, get_db_context, save_run, load_runs

    init_db()
    with get_db_context() as db:
        save_run(db, run, competitors)
        history = load_runs(db, "example.com")
"""

from .models import (
    Base,
    CompetitorSnapshotRecord,
    EngineScoreRecord,
    QueryScoreRecord,
    VisibilityRunRecord,
)
from .session import (
    configure_engine,
    get_database_url,
    get_db_context,
    get_engine,
    get_session_factory,
    init_db,
)
from .repository import (
    get_latest_run,
    load_competitor_history,
    load_runs,
    make_run_recorder,
    save_run,
)

__all__ = [
    # Models
    "Base",
    "CompetitorSnapshotRecord",
    "EngineScoreRecord",
    "QueryScoreRecord",
    "VisibilityRunRecord",

    # Session
    "configure_engine",
    "get_database_url",
    "get_db_context",
    "get_engine",
    "get_session_factory",
    "init_db",

    # Repository
    "get_latest_run",
    "load_competitor_history",
    "load_runs",
    "make_run_recorder",
    "save_run",
]
