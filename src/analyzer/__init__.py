"""
Citation Analysis

Locates a tracked domain in engine answers and grades the evidence:
- Structured source lists (ranked URLs)
- Answer text (domain mentions, canonical content titles)
"""

from .extractor import (
    calculate_confidence,
    extract_citation,
    find_in_sources,
    find_in_text,
    rank_bonus,
)

__all__ = [
    "calculate_confidence",
    "extract_citation",
    "find_in_sources",
    "find_in_text",
    "rank_bonus",
]
