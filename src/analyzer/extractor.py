"""
Citation Extractor

Turns one EngineResult into CitationEvidence for a tracked domain.

Lookup order:
1. Structured source list: first URL whose host matches the domain
   (exact host beats subdomain). Position is the 1-based rank.
2. Answer text: word-bounded domain mention or a canonical content title.
   Cited with no position, and weaker confidence.

Confidence components (clamped to 0-100):
- Structured citation: +40 (text-only match: +20 base)
- Match quality: exact host / domain mention +20, subdomain +10, title +5
- Rank: 30 * (10 - position) / 9 for ranks 1-10, 0 beyond
- Answer length: +10 for answers of 200+ characters
- Echo penalty: -25 for answers under 60 characters that just repeat the domain

Non-OK results are "unknown" and unusable payloads are "malformed"; both
are excluded from scoring rather than counted as not cited.
"""

import logging
import re
from typing import List, Optional, Tuple

from src.models import (
    CitationEvidence,
    EngineResult,
    EvidenceKind,
    MatchType,
    TrackedDomain,
)
from src.utils.domain_filter import extract_host, host_matches, normalize_domain

logger = logging.getLogger(__name__)


# ============================================================================
# CONFIDENCE CONSTANTS
# ============================================================================

STRUCTURED_CITATION_BONUS = 40
TEXTUAL_CITATION_BASE = 20

MATCH_QUALITY_BONUS = {
    MatchType.EXACT_HOST: 20,
    MatchType.SUBDOMAIN: 10,
    MatchType.TEXT_DOMAIN: 20,
    MatchType.TEXT_TITLE: 5,
}

MAX_RANK_BONUS = 30
RANK_BONUS_CUTOFF = 10

LONG_ANSWER_CHARS = 200
LONG_ANSWER_BONUS = 10

SHORT_ANSWER_CHARS = 60
ECHO_PENALTY = 25

SNIPPET_RADIUS = 80


def rank_bonus(position: Optional[int]) -> float:
    """Linear decay from 30 at rank 1 to 0 at rank 10."""
    if position is None or position < 1 or position > RANK_BONUS_CUTOFF:
        return 0.0
    return MAX_RANK_BONUS * (RANK_BONUS_CUTOFF - position) / (RANK_BONUS_CUTOFF - 1)


def calculate_confidence(
    match_type: MatchType,
    position: Optional[int],
    answer_text: str,
    domain: str,
) -> int:
    """
    Confidence (0-100) that a located match is a real citation.

    Args:
        match_type: How the domain was located
        position: 1-based rank in the structured list, None for text matches
        answer_text: Full answer text
        domain: Normalized tracked domain

    Returns:
        Rounded, clamped confidence
    """
    structured = match_type in (MatchType.EXACT_HOST, MatchType.SUBDOMAIN)
    confidence = STRUCTURED_CITATION_BONUS if structured else TEXTUAL_CITATION_BASE
    confidence += MATCH_QUALITY_BONUS[match_type]
    confidence += rank_bonus(position)

    answer = answer_text.strip()
    if len(answer) >= LONG_ANSWER_CHARS:
        confidence += LONG_ANSWER_BONUS
    elif len(answer) < SHORT_ANSWER_CHARS and domain in answer.lower():
        confidence -= ECHO_PENALTY

    return int(round(max(0.0, min(100.0, confidence))))


# ============================================================================
# MATCHING
# ============================================================================

def _domain_pattern(domain: str) -> "re.Pattern[str]":
    # Not preceded by a label character or dot (so blog.example.com and
    # myexample.com do not count); not followed by more host characters
    return re.compile(
        r"(?<![\w\-.])(?:www\.)?" + re.escape(domain) + r"(?!\.?[\w\-])",
        re.IGNORECASE,
    )


def _snippet(text: str, start: int, end: int) -> str:
    left = max(0, start - SNIPPET_RADIUS)
    right = min(len(text), end + SNIPPET_RADIUS)
    return text[left:right].strip()


def find_in_sources(sources: List[str], domain: str) -> Optional[Tuple[int, str, MatchType]]:
    """
    Locate the domain in a ranked source list.

    Returns:
        (position, url, match_type) for the best match, or None.
        An exact host match anywhere beats an earlier subdomain match.
    """
    first_subdomain = None
    for index, url in enumerate(sources, start=1):
        match = host_matches(extract_host(url), domain)
        if match == "exact":
            return index, url, MatchType.EXACT_HOST
        if match == "subdomain" and first_subdomain is None:
            first_subdomain = (index, url, MatchType.SUBDOMAIN)
    return first_subdomain


def find_in_text(
    answer_text: str,
    domain: str,
    canonical_titles: Tuple[str, ...] = (),
) -> Optional[Tuple[str, MatchType]]:
    """Locate a word-bounded domain mention, then any canonical title."""
    if not answer_text:
        return None

    found = _domain_pattern(domain).search(answer_text)
    if found:
        return _snippet(answer_text, found.start(), found.end()), MatchType.TEXT_DOMAIN

    lowered = answer_text.lower()
    for title in canonical_titles:
        needle = title.strip().lower()
        if not needle:
            continue
        index = lowered.find(needle)
        if index >= 0:
            return _snippet(answer_text, index, index + len(needle)), MatchType.TEXT_TITLE

    return None


# ============================================================================
# EXTRACTION
# ============================================================================

def _is_well_formed(result: EngineResult) -> bool:
    if not isinstance(result.answer_text, str):
        return False
    if result.sources is None:
        return True
    if not isinstance(result.sources, (list, tuple)):
        return False
    return all(isinstance(s, str) for s in result.sources)


def extract_citation(result: EngineResult, domain: TrackedDomain) -> CitationEvidence:
    """
    Decide whether the tracked domain was cited in one engine answer.

    Deterministic: the same result and domain always give the same evidence.

    Args:
        result: Engine answer (any status)
        domain: Tracked domain (host is normalized again defensively)

    Returns:
        CitationEvidence tagged cited / not_cited / unknown / malformed
    """
    if not result.ok:
        return CitationEvidence(engine_id=result.engine_id, kind=EvidenceKind.UNKNOWN)

    if not _is_well_formed(result):
        logger.warning(
            f"Malformed {result.engine_id} result for {result.query[:60]!r}: "
            f"answer={type(result.answer_text).__name__}, sources={type(result.sources).__name__}"
        )
        return CitationEvidence(engine_id=result.engine_id, kind=EvidenceKind.MALFORMED)

    host = normalize_domain(domain.domain)
    sources = list(result.sources) if result.sources is not None else None
    source_count = len(sources) if sources is not None else None

    if sources:
        located = find_in_sources(sources, host)
        if located:
            position, url, match_type = located
            return CitationEvidence(
                engine_id=result.engine_id,
                kind=EvidenceKind.CITED,
                cited=True,
                position=position,
                matched_snippet=url,
                confidence=calculate_confidence(match_type, position, result.answer_text, host),
                match_type=match_type,
                source_count=source_count,
            )

    text_match = find_in_text(result.answer_text, host, domain.canonical_titles)
    if text_match:
        snippet, match_type = text_match
        return CitationEvidence(
            engine_id=result.engine_id,
            kind=EvidenceKind.CITED,
            cited=True,
            position=None,
            matched_snippet=snippet,
            confidence=calculate_confidence(match_type, None, result.answer_text, host),
            match_type=match_type,
            source_count=source_count,
        )

    return CitationEvidence(
        engine_id=result.engine_id,
        kind=EvidenceKind.NOT_CITED,
        source_count=source_count,
    )
