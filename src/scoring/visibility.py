"""
Visibility Score Calculator

Per-engine score:
    not cited  -> engine floor (0 when the engine returned zero sources)
    cited      -> round(0.6 * positionScore + 0.4 * confidence)

Query overall: mean over engines with determinate evidence. Engines whose
call failed (unknown) or whose payload was unusable (malformed) are left
out rather than counted as zero. No determinate engine -> indeterminate.

Run overall: mean of determinate query overalls.

Everything here is a pure function of its inputs. Results are grouped and
ordered by engine id so arrival order never changes a score.
"""

import logging
import uuid
from datetime import datetime
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from src.analyzer.extractor import extract_citation
from src.models import (
    BatchStatus,
    CallStatus,
    CitationEvidence,
    EngineResult,
    EngineScore,
    Query,
    TrackedDomain,
    VisibilityRun,
    VisibilityScore,
)

from .helpers import cited_engine_score, mean_or_none

logger = logging.getLogger(__name__)

TOP_QUERY_LIMIT = 5


def calculate_engine_score(
    evidence: CitationEvidence,
    status: CallStatus = CallStatus.OK,
    floor_score: int = 0,
) -> EngineScore:
    """
    Score one engine's evidence.

    Args:
        evidence: Extracted citation evidence
        status: Call status of the underlying result
        floor_score: Configured floor for a not-cited engine

    Returns:
        EngineScore with score None when evidence is unknown/malformed
    """
    if not evidence.determinate:
        score = None
    elif not evidence.cited:
        score = 0 if evidence.explicit_zero_sources else floor_score
    else:
        score = cited_engine_score(evidence.position, evidence.confidence)

    return EngineScore(
        engine_id=evidence.engine_id,
        score=score,
        cited=evidence.cited,
        position=evidence.position if evidence.cited else None,
        status=status,
        evidence=evidence,
    )


def calculate_query_score(engine_scores: Iterable[EngineScore]) -> Optional[float]:
    """Mean of included engine scores, None when every engine is excluded."""
    return mean_or_none(s.score for s in engine_scores)


def score_query(
    domain: TrackedDomain,
    query: Query,
    results: Sequence[EngineResult],
    floors: Optional[Mapping[str, int]] = None,
    run_at: Optional[datetime] = None,
) -> VisibilityScore:
    """
    Extract and score every engine result for one query.

    Args:
        domain: Domain being evaluated
        query: The query these results answer
        results: One terminal EngineResult per engine
        floors: Per-engine floor scores
        run_at: Run timestamp (defaults to latest capture time)

    Returns:
        VisibilityScore for (domain, query, run)

    Raises:
        ValueError: run_at omitted and no result carries a capture time
    """
    floors = floors or {}
    engine_scores = tuple(
        calculate_engine_score(
            extract_citation(result, domain),
            status=result.status,
            floor_score=floors.get(result.engine_id, 0),
        )
        for result in sorted(results, key=lambda r: r.engine_id)
    )

    if run_at is None:
        captured = [r.captured_at for r in results if r.captured_at is not None]
        if not captured:
            raise ValueError(
                f"run_at is required for query {query.text[:60]!r}: no result carries a capture time"
            )
        run_at = max(captured)

    overall = calculate_query_score(engine_scores)
    if overall is None:
        logger.info(f"Query {query.text[:60]!r} is indeterminate for {domain.domain}: no engine answered")

    return VisibilityScore(
        domain=domain.domain,
        query=query,
        overall=overall,
        engine_scores=engine_scores,
        run_at=run_at,
    )


def _group_results(
    queries: Sequence[Query],
    results: Iterable[EngineResult],
) -> Dict[str, List[EngineResult]]:
    """Bucket results by query text, keeping every query present."""
    grouped: Dict[str, List[EngineResult]] = {q.text: [] for q in queries}
    for result in results:
        if result.query in grouped:
            grouped[result.query].append(result)
        else:
            logger.warning(f"Result for unknown query {result.query[:60]!r} from {result.engine_id}, ignoring")
    return grouped


def score_queries(
    domain: TrackedDomain,
    queries: Sequence[Query],
    results: Iterable[EngineResult],
    floors: Optional[Mapping[str, int]] = None,
    run_at: Optional[datetime] = None,
) -> List[VisibilityScore]:
    """Score a full result set, one VisibilityScore per query in query order."""
    grouped = _group_results(queries, results)
    return [
        score_query(domain, query, grouped[query.text], floors=floors, run_at=run_at)
        for query in queries
    ]


def calculate_run_score(query_scores: Iterable[VisibilityScore]) -> Optional[float]:
    """Mean of determinate query overalls, None when all are indeterminate."""
    return mean_or_none(s.overall for s in query_scores)


def rank_top_queries(
    query_scores: Iterable[VisibilityScore],
    limit: Optional[int] = TOP_QUERY_LIMIT,
) -> List[str]:
    """
    Order queries by score desc, citation count desc, then text.

    Indeterminate queries sort after every scored one.
    """
    ranked = sorted(
        query_scores,
        key=lambda s: (
            s.overall is None,
            -(s.overall or 0.0),
            -s.citation_count,
            s.query.text,
        ),
    )
    texts = [s.query.text for s in ranked]
    return texts[:limit] if limit is not None else texts


def build_run(
    domain: str,
    query_scores: Sequence[VisibilityScore],
    batch_status: BatchStatus,
    run_at: datetime,
    run_id: Optional[str] = None,
) -> VisibilityRun:
    """Assemble a VisibilityRun from scored queries."""
    return VisibilityRun(
        run_id=run_id or str(uuid.uuid4()),
        domain=domain,
        run_at=run_at,
        query_scores=tuple(query_scores),
        overall=calculate_run_score(query_scores),
        batch_status=batch_status,
        top_queries=tuple(rank_top_queries(query_scores)),
    )
