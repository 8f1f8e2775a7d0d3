"""
SQLAlchemy Models for Citation Visibility History

Design Principles:
1. One row per domain run, one per query, one per engine answer,
   one per competitor measured on the run
2. Keep the full citation evidence (debugging, rebuilds)
3. Portable types only, so PostgreSQL and SQLite behave the same

Timestamps are stored as naive UTC.
"""

from datetime import datetime
from uuid import uuid4

from sqlalchemy import (
    Column, String, Integer, Float, Boolean, DateTime, Text,
    ForeignKey, Index, JSON,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


def _uuid() -> str:
    return str(uuid4())


# =============================================================================
# RUNS
# =============================================================================

class VisibilityRunRecord(Base):
    """A scored visibility run for one domain"""
    __tablename__ = "visibility_runs"

    id = Column(String(36), primary_key=True, default=_uuid)
    domain = Column(String(255), nullable=False)
    run_at = Column(DateTime, nullable=False)

    # Scores (overall is NULL for an indeterminate run)
    overall = Column(Float, nullable=True)
    batch_status = Column(String(32), nullable=False)
    citation_count = Column(Integer, default=0)
    top_queries = Column(JSON, default=list)

    created_at = Column(DateTime, default=datetime.utcnow)

    query_scores = relationship(
        "QueryScoreRecord",
        back_populates="run",
        cascade="all, delete-orphan",
        order_by="QueryScoreRecord.ordinal",
    )
    competitor_snapshots = relationship(
        "CompetitorSnapshotRecord",
        back_populates="run",
        cascade="all, delete-orphan",
        order_by="CompetitorSnapshotRecord.domain",
    )

    __table_args__ = (
        Index("idx_visibility_runs_domain_run_at", "domain", "run_at"),
    )


class QueryScoreRecord(Base):
    """Per-query visibility within a run"""
    __tablename__ = "query_scores"

    id = Column(Integer, primary_key=True, autoincrement=True)
    run_id = Column(String(36), ForeignKey("visibility_runs.id", ondelete="CASCADE"), nullable=False)
    ordinal = Column(Integer, nullable=False, default=0)

    query_text = Column(Text, nullable=False)
    topic = Column(String(100))
    overall = Column(Float, nullable=True)

    run = relationship("VisibilityRunRecord", back_populates="query_scores")
    engine_scores = relationship(
        "EngineScoreRecord",
        back_populates="query_score",
        cascade="all, delete-orphan",
        order_by="EngineScoreRecord.engine_id",
    )

    __table_args__ = (
        Index("idx_query_scores_run", "run_id"),
    )


class EngineScoreRecord(Base):
    """One engine's answer to one query, scored"""
    __tablename__ = "engine_scores"

    id = Column(Integer, primary_key=True, autoincrement=True)
    query_score_id = Column(Integer, ForeignKey("query_scores.id", ondelete="CASCADE"), nullable=False)

    engine_id = Column(String(64), nullable=False)
    score = Column(Integer, nullable=True)
    cited = Column(Boolean, default=False)
    position = Column(Integer, nullable=True)
    status = Column(String(32), nullable=False)

    # Full CitationEvidence as a dict
    evidence = Column(JSON, default=dict)

    query_score = relationship("QueryScoreRecord", back_populates="engine_scores")

    __table_args__ = (
        Index("idx_engine_scores_engine", "engine_id"),
    )


# =============================================================================
# COMPETITORS
# =============================================================================

class CompetitorSnapshotRecord(Base):
    """A competitor scored on the same engine answers as a tracked run"""
    __tablename__ = "competitor_snapshots"

    id = Column(Integer, primary_key=True, autoincrement=True)
    run_id = Column(String(36), ForeignKey("visibility_runs.id", ondelete="CASCADE"), nullable=False)
    tracked_domain = Column(String(255), nullable=False)
    domain = Column(String(255), nullable=False)
    run_at = Column(DateTime, nullable=False)

    score = Column(Float, nullable=True)
    difference = Column(Float, nullable=True)
    rank = Column(Integer, nullable=True)
    rank_delta = Column(Integer, nullable=True)
    citation_count = Column(Integer, default=0)
    share_of_voice = Column(Float, default=0.0)
    query_texts = Column(JSON, default=list)

    run = relationship("VisibilityRunRecord", back_populates="competitor_snapshots")

    __table_args__ = (
        Index("idx_competitor_snapshots_tracked_run_at", "tracked_domain", "run_at"),
    )
