"""
Recommendation Generator

Pure rules over a scored run and optional trend history. Each category
emits at most one recommendation:

- Per engine: not cited anywhere (high), else cited but best rank > 3 (medium)
- Competitive erosion: tracked score fell over its last two scored periods
  while a competitor's rose (high)
- Low overall visibility: run overall below 50 (medium)

Expected impact is an estimate in overall-score points of what closing the
gap each rule targets would add. It is a coarse signal, not a promise.
"""

import logging
from typing import Dict, List, Mapping, Optional, Sequence

from src.models import (
    PRIORITY_ORDER,
    EngineScore,
    Priority,
    Recommendation,
    RecommendationType,
    TrendPoint,
    VisibilityRun,
)
from src.scoring.helpers import (
    LOW_VISIBILITY_THRESHOLD,
    TARGET_CONFIDENCE,
    TARGET_POSITION,
    cited_engine_score,
    get_impact_label,
    mean_or_none,
)
from src.scoring.trends import scored_direction

logger = logging.getLogger(__name__)


# Structural guidance per engine family, keyed by engine id
ENGINE_GUIDANCE: Dict[str, str] = {
    "perplexity": "Publish direct-answer paragraphs under question headings and cite primary data; Perplexity favours pages it can quote verbatim.",
    "chatgpt": "Add concise definition blocks and FAQ sections near the top of key pages so search-enabled ChatGPT can lift an answer with a source link.",
    "claude": "Make key pages crawlable without scripts and state facts in self-contained sentences that survive summarisation.",
    "google_ai_overview": "Target the query with a 40-60 word answer paragraph, FAQ schema and a clear H2 per sub-question for AI Overview inclusion.",
    "bing_answer": "Use concise answer paragraphs, lists and tables with matching headings; Bing answer boxes quote structured snippets.",
}

DEFAULT_GUIDANCE = "Restructure key pages with direct-answer formatting, FAQ blocks and schema markup (Article, FAQ, Organization)."


def _sort_key(rec: Recommendation):
    return (PRIORITY_ORDER[rec.priority], -rec.expected_impact, rec.target_engine or "")


def _engine_scores(run: VisibilityRun) -> Dict[str, List[EngineScore]]:
    """Included (determinate) engine scores per engine, engine ids sorted."""
    grouped: Dict[str, List[EngineScore]] = {}
    for query_score in run.query_scores:
        for engine_score in query_score.engine_scores:
            if engine_score.included:
                grouped.setdefault(engine_score.engine_id, []).append(engine_score)
    return {engine_id: grouped[engine_id] for engine_id in sorted(grouped)}


def _engine_recommendation(
    engine_id: str,
    scores: List[EngineScore],
    engine_count: int,
    domain: str,
) -> Optional[Recommendation]:
    cited = [s for s in scores if s.cited]

    if not cited:
        current = mean_or_none(s.score for s in scores) or 0.0
        target = cited_engine_score(TARGET_POSITION, TARGET_CONFIDENCE)
        impact = max(0.0, target - current) / engine_count
        return Recommendation(
            type=RecommendationType.NOT_CITED,
            priority=Priority.HIGH,
            title=f"{domain} is not cited by {engine_id}",
            action=ENGINE_GUIDANCE.get(engine_id, DEFAULT_GUIDANCE),
            expected_impact=impact,
            impact_label=get_impact_label(impact),
            target_engine=engine_id,
            rationale=f"No citation in {len(scores)} answered queries",
        )

    ranked = [s for s in cited if s.position is not None]
    if ranked:
        best = min(ranked, key=lambda s: (s.position, -(s.score or 0)))
        if best.position <= TARGET_POSITION:
            return None
        rationale = f"Best citation rank is {best.position}"
    else:
        # Only mentioned in answer text, never in a ranked source list
        best = max(cited, key=lambda s: s.score or 0)
        rationale = "Mentioned in answer text but never listed as a ranked source"

    target = cited_engine_score(TARGET_POSITION, best.evidence.confidence)
    impact = max(0.0, target - (best.score or 0)) / engine_count
    return Recommendation(
        type=RecommendationType.IMPROVE_RANKING,
        priority=Priority.MEDIUM,
        title=f"Improve citation rank on {engine_id}",
        action=(
            "Create more authoritative, comprehensive content on these topics "
            "(original data, expert sourcing, topic clusters) to move into the top 3 sources."
        ),
        expected_impact=impact,
        impact_label=get_impact_label(impact),
        target_engine=engine_id,
        rationale=rationale,
    )


def _erosion_recommendation(
    history: Sequence[TrendPoint],
    competitor_history: Mapping[str, Sequence[TrendPoint]],
    domain: str,
) -> Optional[Recommendation]:
    decline = scored_direction(history)
    if decline is None or decline >= 0:
        return None

    rising = sorted(
        competitor
        for competitor, points in competitor_history.items()
        if (scored_direction(points) or 0) > 0
    )
    if not rising:
        return None

    impact = -decline
    return Recommendation(
        type=RecommendationType.COMPETITIVE_EROSION,
        priority=Priority.HIGH,
        title=f"Competitors gaining while {domain} declines",
        action=(
            f"Review what {', '.join(rising)} publish for these queries and close the "
            "content and freshness gap on the pages engines now prefer."
        ),
        expected_impact=impact,
        impact_label=get_impact_label(impact),
        rationale=f"Score fell {impact:.1f} points over the last two scored periods",
    )


def generate_recommendations(
    run: VisibilityRun,
    history: Optional[Sequence[TrendPoint]] = None,
    competitor_history: Optional[Mapping[str, Sequence[TrendPoint]]] = None,
) -> List[Recommendation]:
    """
    Build prioritized recommendations for one run.

    Args:
        run: Scored domain run
        history: Tracked domain trend points, oldest first
        competitor_history: Competitor domain -> trend points, oldest first

    Returns:
        Recommendations sorted by priority, impact desc, engine id
    """
    recommendations: List[Recommendation] = []

    engine_scores = _engine_scores(run)
    engine_count = len(engine_scores)
    for engine_id, scores in engine_scores.items():
        rec = _engine_recommendation(engine_id, scores, engine_count, run.domain)
        if rec:
            recommendations.append(rec)

    if history and competitor_history:
        rec = _erosion_recommendation(history, competitor_history, run.domain)
        if rec:
            recommendations.append(rec)

    if run.overall is not None and run.overall < LOW_VISIBILITY_THRESHOLD:
        impact = LOW_VISIBILITY_THRESHOLD - run.overall
        recommendations.append(Recommendation(
            type=RecommendationType.LOW_OVERALL_VISIBILITY,
            priority=Priority.MEDIUM,
            title="Low overall AI visibility",
            action=(
                "Improve content structure with clear headings and FAQ sections, and implement "
                "schema markup (Article, FAQ, Organization) so engines can parse and cite your pages."
            ),
            expected_impact=impact,
            impact_label=get_impact_label(impact),
            rationale=f"Overall visibility {run.overall:.1f} is below {LOW_VISIBILITY_THRESHOLD}",
        ))

    recommendations.sort(key=_sort_key)
    logger.debug(f"Generated {len(recommendations)} recommendations for {run.domain}")
    return recommendations
