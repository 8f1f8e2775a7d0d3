"""
Citation Visibility - Reporting

Turns scored runs into actionable output:
- Prioritized recommendations per engine and overall
- Citation statistics for dashboards (growth, streaks, achievements)
"""

from .recommendations import ENGINE_GUIDANCE, generate_recommendations
from .stats import (
    Achievement,
    CitationStats,
    EngineStat,
    QueryStat,
    build_achievements,
    calculate_level,
    calculate_points,
    compute_citation_stats,
)

__all__ = [
    # Recommendations
    "ENGINE_GUIDANCE",
    "generate_recommendations",

    # Stats
    "Achievement",
    "CitationStats",
    "EngineStat",
    "QueryStat",
    "build_achievements",
    "calculate_level",
    "calculate_points",
    "compute_citation_stats",
]
