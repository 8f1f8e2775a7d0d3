"""
Repository Layer - Clean Interface for Run History

Provides simple functions to store and retrieve scored visibility runs.
Handles all SQLAlchemy complexity internally and hands back the same
immutable models the scoring core produces.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from src.models import (
    BatchStatus,
    CallStatus,
    CitationEvidence,
    CompetitorSnapshot,
    EngineScore,
    EvidenceKind,
    MatchType,
    Query,
    VisibilityRun,
    VisibilityScore,
)

from .models import CompetitorSnapshotRecord, EngineScoreRecord, QueryScoreRecord, VisibilityRunRecord
from .session import get_db_context

logger = logging.getLogger(__name__)


# =============================================================================
# CONVERSION HELPERS
# =============================================================================

def _to_db_time(ts: datetime) -> datetime:
    """Naive UTC for storage."""
    if ts.tzinfo is not None:
        ts = ts.astimezone(timezone.utc).replace(tzinfo=None)
    return ts


def _from_db_time(ts: datetime) -> datetime:
    return ts.replace(tzinfo=timezone.utc) if ts.tzinfo is None else ts


def _evidence_from_dict(engine_id: str, data: Dict[str, Any]) -> CitationEvidence:
    match_type = data.get("match_type")
    return CitationEvidence(
        engine_id=engine_id,
        kind=EvidenceKind(data.get("kind", EvidenceKind.UNKNOWN.value)),
        cited=bool(data.get("cited", False)),
        position=data.get("position"),
        matched_snippet=data.get("matched_snippet", ""),
        confidence=int(data.get("confidence", 0)),
        match_type=MatchType(match_type) if match_type else None,
        source_count=data.get("source_count"),
    )


def _record_to_run(record: VisibilityRunRecord) -> VisibilityRun:
    run_at = _from_db_time(record.run_at)
    query_scores = []
    for qs in record.query_scores:
        engine_scores = tuple(
            EngineScore(
                engine_id=es.engine_id,
                score=es.score,
                cited=bool(es.cited),
                position=es.position,
                status=CallStatus(es.status),
                evidence=_evidence_from_dict(es.engine_id, es.evidence or {}),
            )
            for es in qs.engine_scores
        )
        query_scores.append(VisibilityScore(
            domain=record.domain,
            query=Query(text=qs.query_text, topic=qs.topic),
            overall=qs.overall,
            engine_scores=engine_scores,
            run_at=run_at,
        ))

    return VisibilityRun(
        run_id=record.id,
        domain=record.domain,
        run_at=run_at,
        query_scores=tuple(query_scores),
        overall=record.overall,
        batch_status=BatchStatus(record.batch_status),
        top_queries=tuple(record.top_queries or ()),
    )


# =============================================================================
# RUN OPERATIONS
# =============================================================================

def save_run(
    db: Session,
    run: VisibilityRun,
    competitors: Sequence[CompetitorSnapshot] = (),
) -> VisibilityRunRecord:
    """
    Store a scored run with its query and engine scores.

    Args:
        db: Database session (caller commits)
        run: Scored run
        competitors: Competitor snapshots measured on this run

    Returns:
        The new VisibilityRunRecord
    """
    record = VisibilityRunRecord(
        id=run.run_id,
        domain=run.domain,
        run_at=_to_db_time(run.run_at),
        overall=run.overall,
        batch_status=run.batch_status.value,
        citation_count=run.citation_count,
        top_queries=list(run.top_queries),
    )

    for ordinal, query_score in enumerate(run.query_scores):
        qs_record = QueryScoreRecord(
            ordinal=ordinal,
            query_text=query_score.query.text,
            topic=query_score.query.topic,
            overall=query_score.overall,
        )
        for engine_score in query_score.engine_scores:
            qs_record.engine_scores.append(EngineScoreRecord(
                engine_id=engine_score.engine_id,
                score=engine_score.score,
                cited=engine_score.cited,
                position=engine_score.position,
                status=engine_score.status.value,
                evidence=engine_score.evidence.to_dict(),
            ))
        record.query_scores.append(qs_record)

    for snapshot in competitors:
        record.competitor_snapshots.append(CompetitorSnapshotRecord(
            tracked_domain=run.domain,
            domain=snapshot.domain,
            run_at=_to_db_time(snapshot.run_at),
            score=snapshot.score,
            difference=snapshot.difference,
            rank=snapshot.rank,
            rank_delta=snapshot.rank_delta,
            citation_count=snapshot.citation_count,
            share_of_voice=snapshot.share_of_voice,
            query_texts=list(snapshot.query_texts),
        ))

    db.add(record)
    db.flush()
    logger.info(
        f"Stored run {run.run_id} for {run.domain} "
        f"({len(run.query_scores)} queries, {len(competitors)} competitors)"
    )
    return record


def load_runs(
    db: Session,
    domain: str,
    since: Optional[datetime] = None,
) -> List[VisibilityRun]:
    """
    Load a domain's runs, oldest first.

    Args:
        db: Database session
        domain: Normalized domain
        since: Only runs at or after this time
    """
    stmt = (
        select(VisibilityRunRecord)
        .where(VisibilityRunRecord.domain == domain)
        .options(selectinload(VisibilityRunRecord.query_scores).selectinload(QueryScoreRecord.engine_scores))
        .order_by(VisibilityRunRecord.run_at)
    )
    if since is not None:
        stmt = stmt.where(VisibilityRunRecord.run_at >= _to_db_time(since))

    records = db.execute(stmt).scalars().all()
    return [_record_to_run(r) for r in records]


def get_latest_run(db: Session, domain: str) -> Optional[VisibilityRun]:
    """Most recent run for a domain, or None."""
    stmt = (
        select(VisibilityRunRecord)
        .where(VisibilityRunRecord.domain == domain)
        .options(selectinload(VisibilityRunRecord.query_scores).selectinload(QueryScoreRecord.engine_scores))
        .order_by(VisibilityRunRecord.run_at.desc())
        .limit(1)
    )
    record = db.execute(stmt).scalars().first()
    return _record_to_run(record) if record else None


def _record_to_snapshot(record: CompetitorSnapshotRecord) -> CompetitorSnapshot:
    return CompetitorSnapshot(
        domain=record.domain,
        score=record.score,
        difference=record.difference,
        rank=record.rank,
        rank_delta=record.rank_delta,
        citation_count=record.citation_count or 0,
        share_of_voice=record.share_of_voice or 0.0,
        run_at=_from_db_time(record.run_at),
        query_texts=tuple(record.query_texts or ()),
    )


# =============================================================================
# COMPETITOR OPERATIONS
# =============================================================================

def load_competitor_history(
    db: Session,
    tracked_domain: str,
    since: Optional[datetime] = None,
) -> List[Tuple[str, CompetitorSnapshot]]:
    """
    Load competitor snapshots measured for a tracked domain, oldest first.

    Returns:
        (run_id, snapshot) pairs, ready for TrendStore.rebuild_competitors
    """
    stmt = (
        select(CompetitorSnapshotRecord)
        .where(CompetitorSnapshotRecord.tracked_domain == tracked_domain)
        .order_by(CompetitorSnapshotRecord.run_at, CompetitorSnapshotRecord.domain)
    )
    if since is not None:
        stmt = stmt.where(CompetitorSnapshotRecord.run_at >= _to_db_time(since))

    records = db.execute(stmt).scalars().all()
    return [(r.run_id, _record_to_snapshot(r)) for r in records]


def make_run_recorder() -> Callable[..., None]:
    """Tracker callback that saves each run and its competitors in one transaction."""
    def record(run: VisibilityRun, competitors: Sequence[CompetitorSnapshot] = ()) -> None:
        with get_db_context() as db:
            save_run(db, run, competitors)

    return record
