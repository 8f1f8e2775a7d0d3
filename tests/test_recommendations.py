"""
Test Suite for Recommendation Generation

Tests the rule set:
- Not cited by an engine (high)
- Cited below the top 3 or only in answer text (medium)
- Competitive erosion from trend history (high)
- Low overall visibility (medium)
- Ordering and impact labels
"""

from datetime import timedelta

import pytest

from src.models import Priority, RecommendationType, TrendPoint, TrendStatus
from src.reporter.recommendations import ENGINE_GUIDANCE, generate_recommendations

DAY = timedelta(days=1)


def points(now, scores):
    """Daily points ending at now; None entries are no-data buckets."""
    start = now - (len(scores) - 1) * DAY
    result = []
    for i, score in enumerate(scores):
        period_start = start + i * DAY
        result.append(TrendPoint(
            period_start=period_start,
            period_end=period_start + DAY,
            status=TrendStatus.SCORED if score is not None else TrendStatus.NO_DATA,
            run_count=1 if score is not None else 0,
            mean_score=score,
        ))
    return result


class TestEngineRecommendations:
    """Test per-engine rules."""

    def test_rank_five_gives_medium_improve_ranking(self, make_run):
        """Engine A at position 5: improve ranking, never 'not cited'."""
        run = make_run(queries={"q": {"engine_a": (68, True, 5, 80)}})
        recs = generate_recommendations(run)

        assert len(recs) == 1
        rec = recs[0]
        assert rec.type == RecommendationType.IMPROVE_RANKING
        assert rec.priority == Priority.MEDIUM
        assert rec.target_engine == "engine_a"
        assert rec.expected_impact == pytest.approx(12)  # 80 at rank 3 minus 68
        assert rec.impact_label == "medium"
        assert not any(r.type == RecommendationType.NOT_CITED for r in recs)

    def test_top_three_needs_nothing(self, make_run):
        run = make_run(queries={"q": {"perplexity": (86, True, 2)}, "r": {"perplexity": (62, True, 8)}})
        assert generate_recommendations(run) == []

    def test_not_cited_engine(self, make_run):
        run = make_run(queries={"q": {"perplexity": (100, True, 1), "chatgpt": (0, False, None)}})
        recs = generate_recommendations(run)

        assert len(recs) == 1
        rec = recs[0]
        assert rec.type == RecommendationType.NOT_CITED
        assert rec.priority == Priority.HIGH
        assert rec.target_engine == "chatgpt"
        assert rec.action == ENGINE_GUIDANCE["chatgpt"]
        assert rec.expected_impact == pytest.approx(36)  # (72 - 0) / 2 engines
        assert rec.impact_label == "high"

    def test_unknown_engine_gets_default_guidance(self, make_run):
        run = make_run(queries={"q": {"perplexity": (100, True, 1), "you_com": (0, False, None)}})
        rec = generate_recommendations(run)[0]
        assert rec.target_engine == "you_com"
        assert "schema markup" in rec.action

    def test_textual_only_citation(self, make_run):
        run = make_run(queries={"q": {"claude": (60, True, None, 70)}})
        recs = generate_recommendations(run)

        assert [r.type for r in recs] == [RecommendationType.IMPROVE_RANKING]
        assert "answer text" in recs[0].rationale

    def test_failed_engine_gets_no_recommendation(self, make_run):
        run = make_run(queries={"q": {"perplexity": (100, True, 1), "claude": (None, False, None)}})
        assert generate_recommendations(run) == []

    def test_one_recommendation_per_engine(self, make_run):
        run = make_run(queries={
            "q1": {"chatgpt": (0, False, None), "perplexity": (100, True, 1)},
            "q2": {"chatgpt": (0, False, None), "perplexity": (100, True, 1)},
        })
        recs = generate_recommendations(run)
        assert [r.target_engine for r in recs] == ["chatgpt"]


class TestRunRecommendations:
    """Test run-level rules."""

    def test_low_overall_visibility(self, make_run):
        run = make_run(queries={"q": {"perplexity": (30, True, 9, 10)}})
        recs = generate_recommendations(run)

        low = [r for r in recs if r.type == RecommendationType.LOW_OVERALL_VISIBILITY]
        assert len(low) == 1
        assert low[0].priority == Priority.MEDIUM
        assert low[0].expected_impact == pytest.approx(20)
        assert low[0].target_engine is None

    def test_indeterminate_run_has_no_recommendations(self, make_run):
        run = make_run(queries={"q": {"perplexity": (None, False, None)}})
        assert generate_recommendations(run) == []

    def test_competitive_erosion(self, make_run, now):
        run = make_run(queries={"q": {"perplexity": (86, True, 2)}})
        history = points(now, [70, None, 55])
        competitors = {
            "rival.com": points(now, [40, 45, 50]),
            "flat.io": points(now, [60, 60, 60]),
        }
        recs = generate_recommendations(run, history, competitors)

        erosion = [r for r in recs if r.type == RecommendationType.COMPETITIVE_EROSION]
        assert len(erosion) == 1
        assert erosion[0].priority == Priority.HIGH
        assert erosion[0].expected_impact == pytest.approx(15)
        assert "rival.com" in erosion[0].action
        assert "flat.io" not in erosion[0].action

    def test_no_erosion_when_competitors_flat(self, make_run, now):
        run = make_run()
        recs = generate_recommendations(run, points(now, [70, 55]), {"flat.io": points(now, [60, 60])})
        assert recs == []

    def test_no_erosion_when_tracked_rising(self, make_run, now):
        run = make_run()
        recs = generate_recommendations(run, points(now, [50, 55]), {"rival.com": points(now, [40, 50])})
        assert recs == []


class TestOrdering:
    """Test sort order."""

    def test_priority_then_impact(self, make_run, now):
        run = make_run(queries={
            "q": {
                "perplexity": (40, True, 8, 40),
                "chatgpt": (0, False, None),
                "claude": (0, False, None),
            },
        })
        recs = generate_recommendations(run, points(now, [60, 40]), {"rival.com": points(now, [20, 50])})

        priorities = [r.priority for r in recs]
        assert priorities == sorted(priorities, key=lambda p: ["high", "medium", "low"].index(p.value))
        # Not cited: 72 / 3 engines = 24 each; erosion: 60 -> 40 = 20
        assert [r.type for r in recs[:3]] == [
            RecommendationType.NOT_CITED,
            RecommendationType.NOT_CITED,
            RecommendationType.COMPETITIVE_EROSION,
        ]
        assert [r.target_engine for r in recs[:2]] == ["chatgpt", "claude"]
        # Medium: low visibility (50 - 13.3) before perplexity rank (64 - 40) / 3
        assert [r.type for r in recs[3:]] == [
            RecommendationType.LOW_OVERALL_VISIBILITY,
            RecommendationType.IMPROVE_RANKING,
        ]

    def test_to_dict(self, make_run):
        rec = generate_recommendations(make_run(queries={"q": {"engine_a": (68, True, 5, 80)}}))[0]
        data = rec.to_dict()
        assert data["type"] == "improve_ranking"
        assert data["priority"] == "medium"
        assert data["target_engine"] == "engine_a"
