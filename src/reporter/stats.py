"""
Citation Statistics

Dashboard statistics over a domain's stored runs: totals, weekly growth,
per-engine breakdown, top queries, streak, points/level and achievements,
plus a 30-day daily citation trend.

Every figure is derived from run history. A citation is one engine citing
the domain for one query in one run.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional

from src.models import VisibilityRun
from src.scoring.trends import (
    WEEK,
    Growth,
    TrendSeries,
    calculate_weekly_growth,
    ensure_utc,
    growth_to_json,
)

logger = logging.getLogger(__name__)

LOOKBACK_DAYS = 30
TOP_QUERY_LIMIT = 5
RECENT_CITATION_LIMIT = 5

POINTS_PER_CITATION = 10
POINTS_PER_WEEKLY_CITATION = 5
POINTS_PER_LEVEL = 100


@dataclass
class Achievement:
    """A milestone with progress toward it."""
    id: str
    title: str
    description: str
    progress: int
    max_progress: int

    @property
    def unlocked(self) -> bool:
        return self.progress >= self.max_progress

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "unlocked": self.unlocked,
            "progress": self.progress,
            "max_progress": self.max_progress,
        }


@dataclass
class QueryStat:
    query: str
    count: int
    trend: str  # up | down | stable

    def to_dict(self) -> Dict[str, Any]:
        return {"query": self.query, "count": self.count, "trend": self.trend}


@dataclass
class EngineStat:
    engine_id: str
    citations: int
    answered: int

    @property
    def citation_rate(self) -> float:
        return self.citations / self.answered * 100 if self.answered else 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "engine_id": self.engine_id,
            "citations": self.citations,
            "answered": self.answered,
            "citation_rate": round(self.citation_rate, 1),
        }


@dataclass
class CitationStats:
    """Aggregated citation statistics for one domain."""
    domain: str
    generated_at: datetime
    total_citations: int = 0
    this_week: int = 0
    last_week: int = 0
    weekly_growth: Growth = 0.0
    engines: List[EngineStat] = field(default_factory=list)
    top_queries: List[QueryStat] = field(default_factory=list)
    recent_citations: List[Dict[str, Any]] = field(default_factory=list)
    streak: int = 0
    points: int = 0
    level: int = 1
    achievements: List[Achievement] = field(default_factory=list)
    citation_trend: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "domain": self.domain,
            "generated_at": self.generated_at.isoformat(),
            "total_citations": self.total_citations,
            "this_week": self.this_week,
            "last_week": self.last_week,
            "weekly_growth": growth_to_json(self.weekly_growth),
            "engines": [e.to_dict() for e in self.engines],
            "top_queries": [q.to_dict() for q in self.top_queries],
            "recent_citations": list(self.recent_citations),
            "streak": self.streak,
            "points": self.points,
            "level": self.level,
            "achievements": [a.to_dict() for a in self.achievements],
            "citation_trend": list(self.citation_trend),
        }


def calculate_points(total_citations: int, this_week: int) -> int:
    return total_citations * POINTS_PER_CITATION + this_week * POINTS_PER_WEEKLY_CITATION


def calculate_level(points: int) -> int:
    return points // POINTS_PER_LEVEL + 1


def build_achievements(citations: int, streak: int, level: int) -> List[Achievement]:
    """The four milestone achievements with capped progress."""
    return [
        Achievement("first_citation", "First Citation", "Get your first AI citation", min(citations, 1), 1),
        Achievement("citation_master", "Citation Master", "Reach 10 citations", min(citations, 10), 10),
        Achievement("streak_warrior", "Streak Warrior", "Maintain a 7-day citation streak", min(streak, 7), 7),
        Achievement("level_up", "Level Up", "Reach level 5", min(level, 5), 5),
    ]


def _trend(this_week: int, last_week: int) -> str:
    if this_week > last_week:
        return "up"
    if this_week < last_week:
        return "down"
    return "stable"


def compute_citation_stats(
    domain: str,
    runs: Iterable[VisibilityRun],
    now: datetime,
    lookback_days: int = LOOKBACK_DAYS,
) -> CitationStats:
    """
    Compute dashboard statistics from run history.

    Args:
        domain: Tracked domain
        runs: Stored runs for the domain (any order)
        now: Reference time
        lookback_days: Runs older than this are ignored

    Returns:
        CitationStats
    """
    now = ensure_utc(now)
    since = now - timedelta(days=lookback_days)
    window = [
        r for r in runs
        if r.domain == domain and since < ensure_utc(r.run_at) <= now
    ]
    window.sort(key=lambda r: r.run_at, reverse=True)

    daily = TrendSeries(domain, window=timedelta(days=1))
    engines: Dict[str, EngineStat] = {}
    query_weeks: Dict[str, List[int]] = {}  # query -> [total, this week, last week]
    recent: List[Dict[str, Any]] = []
    total = this_week = last_week = 0

    for run in window:
        daily.fold(run)
        run_at = ensure_utc(run.run_at)
        in_this_week = run_at > now - WEEK
        in_last_week = not in_this_week and run_at > now - 2 * WEEK

        for query_score in run.query_scores:
            for engine_score in query_score.engine_scores:
                if not engine_score.included:
                    continue
                stat = engines.setdefault(engine_score.engine_id, EngineStat(engine_score.engine_id, 0, 0))
                stat.answered += 1
                if not engine_score.cited:
                    continue

                stat.citations += 1
                total += 1
                counts = query_weeks.setdefault(query_score.query.text, [0, 0, 0])
                counts[0] += 1
                if in_this_week:
                    this_week += 1
                    counts[1] += 1
                elif in_last_week:
                    last_week += 1
                    counts[2] += 1

                if len(recent) < RECENT_CITATION_LIMIT:
                    recent.append({
                        "query": query_score.query.text,
                        "engine_id": engine_score.engine_id,
                        "position": engine_score.position,
                        "score": engine_score.score,
                        "run_at": run_at.isoformat(),
                    })

    top = sorted(query_weeks.items(), key=lambda item: (-item[1][0], item[0]))[:TOP_QUERY_LIMIT]
    top_queries = [QueryStat(query, counts[0], _trend(counts[1], counts[2])) for query, counts in top]

    streak = daily.streak(now)
    points = calculate_points(total, this_week)
    level = calculate_level(points)

    citation_trend = [
        {"date": point.period_start.date().isoformat(), "citations": point.citation_count}
        for point in daily.last_points(LOOKBACK_DAYS, now)
    ]

    logger.debug(f"Citation stats for {domain}: {total} citations over {len(window)} runs")
    return CitationStats(
        domain=domain,
        generated_at=now,
        total_citations=total,
        this_week=this_week,
        last_week=last_week,
        weekly_growth=calculate_weekly_growth(this_week, last_week),
        engines=[engines[e] for e in sorted(engines)],
        top_queries=top_queries,
        recent_citations=recent,
        streak=streak,
        points=points,
        level=level,
        achievements=build_achievements(total, streak, level),
        citation_trend=citation_trend,
    )
