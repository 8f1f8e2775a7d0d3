"""
Competitive Visibility Comparison

Scores competitor domains against the exact engine answers collected for
the tracked domain's run. Reusing those answers keeps every comparison on
the same engines, the same queries and the same time window.

Per competitor:
- score: run overall for the competitor
- difference: competitor score - tracked score (None if either is indeterminate)
- rank: position among all compared domains by score (ties share a rank)
- rank_delta: competitor rank - tracked rank (negative = competitor ahead)
- share_of_voice: the domain's citations as a percentage of all citations
  across tracked and competitor domains
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence

from src.models import (
    CompetitorSnapshot,
    EngineResult,
    Query,
    TrackedDomain,
    VisibilityRun,
)
from src.utils.domain_filter import filter_competitor_domains

from .visibility import calculate_run_score, score_queries

logger = logging.getLogger(__name__)


@dataclass
class CompetitiveComparison:
    """Tracked domain's standing among its competitors for one run."""
    tracked_domain: str
    tracked_score: Optional[float]
    tracked_rank: Optional[int]
    tracked_citations: int
    tracked_share_of_voice: float
    competitors: List[CompetitorSnapshot] = field(default_factory=list)

    @property
    def leaders(self) -> List[CompetitorSnapshot]:
        """Competitors scoring above the tracked domain."""
        return [c for c in self.competitors if c.difference is not None and c.difference > 0]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tracked_domain": self.tracked_domain,
            "tracked_score": round(self.tracked_score, 1) if self.tracked_score is not None else None,
            "tracked_rank": self.tracked_rank,
            "tracked_citations": self.tracked_citations,
            "tracked_share_of_voice": round(self.tracked_share_of_voice, 1),
            "competitors": [c.to_dict() for c in self.competitors],
        }


def assign_ranks(scores: Mapping[str, Optional[float]]) -> Dict[str, Optional[int]]:
    """
    Competition ranking by score desc ("1224"). Indeterminate domains get None.
    """
    scored = sorted(
        ((domain, score) for domain, score in scores.items() if score is not None),
        key=lambda item: (-item[1], item[0]),
    )
    ranks: Dict[str, Optional[int]] = {domain: None for domain in scores}
    previous_score = None
    previous_rank = 0
    for index, (domain, score) in enumerate(scored, start=1):
        rank = previous_rank if score == previous_score else index
        ranks[domain] = rank
        previous_score, previous_rank = score, rank
    return ranks


def calculate_share_of_voice(citations: int, total_citations: int) -> float:
    """Percentage of all citations, 0 when nobody was cited."""
    if total_citations <= 0:
        return 0.0
    return citations / total_citations * 100


def compare_competitors(
    tracked_run: VisibilityRun,
    queries: Sequence[Query],
    results: Sequence[EngineResult],
    competitors: Sequence[str],
    tracked_domain: str,
    floors: Optional[Mapping[str, int]] = None,
) -> CompetitiveComparison:
    """
    Evaluate competitors on the tracked run's engine answers.

    Args:
        tracked_run: Scored run for the tracked domain
        queries: The run's query set
        results: The run's engine results (same engines, same window)
        competitors: Competitor domains (normalized and filtered here)
        tracked_domain: Normalized tracked domain
        floors: Per-engine floor scores

    Returns:
        CompetitiveComparison with one snapshot per valid competitor
    """
    competitor_domains = filter_competitor_domains(competitors, tracked_domain)

    scores: Dict[str, Optional[float]] = {tracked_domain: tracked_run.overall}
    citations: Dict[str, int] = {tracked_domain: tracked_run.citation_count}

    for domain in competitor_domains:
        query_scores = score_queries(
            TrackedDomain(domain=domain),
            queries,
            results,
            floors=floors,
            run_at=tracked_run.run_at,
        )
        scores[domain] = calculate_run_score(query_scores)
        citations[domain] = sum(s.citation_count for s in query_scores)

    ranks = assign_ranks(scores)
    total_citations = sum(citations.values())
    tracked_rank = ranks[tracked_domain]
    query_texts = tuple(q.text for q in queries)

    snapshots = []
    for domain in competitor_domains:
        score = scores[domain]
        difference = None
        if score is not None and tracked_run.overall is not None:
            difference = score - tracked_run.overall
        rank_delta = None
        if ranks[domain] is not None and tracked_rank is not None:
            rank_delta = ranks[domain] - tracked_rank

        snapshots.append(CompetitorSnapshot(
            domain=domain,
            score=score,
            difference=difference,
            rank=ranks[domain],
            rank_delta=rank_delta,
            citation_count=citations[domain],
            share_of_voice=calculate_share_of_voice(citations[domain], total_citations),
            run_at=tracked_run.run_at,
            query_texts=query_texts,
        ))

    if snapshots:
        ahead = sum(1 for s in snapshots if s.difference is not None and s.difference > 0)
        logger.info(f"Compared {tracked_domain} against {len(snapshots)} competitors, {ahead} ahead")

    return CompetitiveComparison(
        tracked_domain=tracked_domain,
        tracked_score=tracked_run.overall,
        tracked_rank=tracked_rank,
        tracked_citations=citations[tracked_domain],
        tracked_share_of_voice=calculate_share_of_voice(citations[tracked_domain], total_citations),
        competitors=snapshots,
    )
