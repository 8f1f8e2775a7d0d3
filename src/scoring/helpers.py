"""
Scoring Helper Functions and Constants

Position curve, score weights, impact thresholds and aggregation helpers
used across visibility, competitor and recommendation calculations.
"""

from typing import Iterable, Optional


# ============================================================================
# POSITION CURVE
# ============================================================================

# Rank 1 -> 100, rank 10 -> 10, rank 11+ -> 0
POSITION_STEP = 10

# Textual citations have no rank; treat them as a mid-list mention
TEXTUAL_POSITION_SCORE = 50


def position_score(position: Optional[int]) -> int:
    """
    Score a 1-based citation rank.

    Args:
        position: Rank in the engine's source list, None for text matches

    Returns:
        Position score (0-100)
    """
    if position is None:
        return TEXTUAL_POSITION_SCORE
    if position < 1:
        return 0
    return max(0, 100 - (position - 1) * POSITION_STEP)


# ============================================================================
# ENGINE SCORE WEIGHTS
# ============================================================================

POSITION_WEIGHT = 0.6
CONFIDENCE_WEIGHT = 0.4


def cited_engine_score(position: Optional[int], confidence: int) -> int:
    """round(0.6 * positionScore + 0.4 * confidence)."""
    return int(round(POSITION_WEIGHT * position_score(position) + CONFIDENCE_WEIGHT * confidence))


# ============================================================================
# IMPACT THRESHOLDS
# ============================================================================

# Recommendations aim to move an engine to this rank/confidence
TARGET_POSITION = 3
TARGET_CONFIDENCE = 60

HIGH_IMPACT_POINTS = 15
MEDIUM_IMPACT_POINTS = 5

# Below this run overall the domain is broadly invisible
LOW_VISIBILITY_THRESHOLD = 50


def get_impact_label(points: float) -> str:
    """
    Classify an expected overall-score gain.

    Returns:
        "high" (>= 15 points), "medium" (>= 5) or "low"
    """
    if points >= HIGH_IMPACT_POINTS:
        return "high"
    if points >= MEDIUM_IMPACT_POINTS:
        return "medium"
    return "low"


# ============================================================================
# AGGREGATION HELPERS
# ============================================================================

def mean_or_none(values: Iterable[Optional[float]]) -> Optional[float]:
    """
    Arithmetic mean of the non-None values.

    Returns:
        Mean, or None when nothing is left to average
    """
    present = [v for v in values if v is not None]
    if not present:
        return None
    return sum(present) / len(present)


def round_score(value: Optional[float], digits: int = 1) -> Optional[float]:
    """Round for display, keeping None."""
    if value is None:
        return None
    return round(value, digits)
