"""
Scoring Module for Citation Visibility

This module provides the core scoring calculations:

1. **Engine / Query / Run Visibility** (0-100)
   Per-engine score from citation rank and confidence, averaged over
   engines that answered, then over queries.

2. **Trends**
   Epoch-anchored time buckets folded one run at a time, with weekly
   growth, streaks, moving averages and score deltas.

3. **Competitive Comparison**
   Competitors scored on the same engine answers as the tracked domain.

Example Usage:
    from src.scoring import score_queries, build_run

    query_scores = score_queries(domain, queries, batch.all_results)
    run = build_run(domain.domain, query_scores, batch.status, run_at)
    print(f"Visibility: {run.overall}")
"""

# Helper utilities and constants
from .helpers import (
    TEXTUAL_POSITION_SCORE,
    TARGET_CONFIDENCE,
    TARGET_POSITION,
    cited_engine_score,
    get_impact_label,
    mean_or_none,
    position_score,
    round_score,
)

# Visibility
from .visibility import (
    build_run,
    calculate_engine_score,
    calculate_query_score,
    calculate_run_score,
    rank_top_queries,
    score_queries,
    score_query,
)

# Trends
from .trends import (
    NEW_ACTIVITY,
    GrowthSentinel,
    TrendSeries,
    bucket_start,
    calculate_streak,
    calculate_weekly_growth,
    growth_to_json,
    scored_direction,
)

# Competitors
from .competitor_scoring import (
    CompetitiveComparison,
    assign_ranks,
    calculate_share_of_voice,
    compare_competitors,
)

__all__ = [
    # Helpers
    "TEXTUAL_POSITION_SCORE",
    "TARGET_CONFIDENCE",
    "TARGET_POSITION",
    "cited_engine_score",
    "get_impact_label",
    "mean_or_none",
    "position_score",
    "round_score",

    # Visibility
    "build_run",
    "calculate_engine_score",
    "calculate_query_score",
    "calculate_run_score",
    "rank_top_queries",
    "score_queries",
    "score_query",

    # Trends
    "NEW_ACTIVITY",
    "GrowthSentinel",
    "TrendSeries",
    "bucket_start",
    "calculate_streak",
    "calculate_weekly_growth",
    "growth_to_json",
    "scored_direction",

    # Competitors
    "CompetitiveComparison",
    "assign_ranks",
    "calculate_share_of_voice",
    "compare_competitors",
]
