"""
Domain Filtering Utilities

Shared host normalization and matching used by every path that compares a
domain against engine output:
- Tracked domain intake
- Structured source lists (URLs)
- Competitor lists supplied by the caller

`www.` is always stripped and matching is case-insensitive, so
"https://WWW.Example.com/page" and "example.com" are the same site.
"""

import logging
import re
from typing import Iterable, List, Optional
from urllib.parse import urlsplit

logger = logging.getLogger(__name__)


# Hostname: labels of letters/digits/hyphens, at least one dot, alpha TLD
_HOST_PATTERN = re.compile(
    r"^(?=.{1,253}$)(?:[a-z0-9](?:[a-z0-9\-]{0,61}[a-z0-9])?\.)+[a-z]{2,63}$"
)


def normalize_domain(value: Optional[str]) -> str:
    """
    Normalize a domain or URL to a bare lowercase host.

    Examples:
        "https://www.Example.com/path" -> "example.com"
        "Example.com:443" -> "example.com"
        "  blog.example.com. " -> "blog.example.com"

    Returns:
        Normalized host, or "" when nothing usable remains
    """
    if not value:
        return ""

    candidate = value.strip().lower()
    if "://" not in candidate:
        candidate = "//" + candidate

    try:
        host = urlsplit(candidate).hostname or ""
    except ValueError:
        return ""

    host = host.rstrip(".")
    if host.startswith("www."):
        host = host[4:]
    return host


def is_valid_domain(domain: Optional[str]) -> bool:
    """Check that a normalized value looks like a public hostname."""
    return bool(domain) and bool(_HOST_PATTERN.match(domain))


def extract_host(url: Optional[str]) -> str:
    """Host of a source URL, normalized the same way as tracked domains."""
    return normalize_domain(url)


def host_matches(host: str, domain: str) -> Optional[str]:
    """
    Compare a source host against the tracked domain.

    Returns:
        "exact" for the same host, "subdomain" for blog.example.com vs
        example.com, None otherwise
    """
    if not host or not domain:
        return None
    if host == domain:
        return "exact"
    if host.endswith("." + domain):
        return "subdomain"
    return None


def filter_competitor_domains(
    domains: Iterable[str],
    tracked_domain: str,
    source: str = "caller",
) -> List[str]:
    """
    Normalize and filter a competitor list.

    Drops invalid entries, duplicates and anything that resolves to the
    tracked domain itself. Order of first appearance is preserved.

    Args:
        domains: Raw competitor domains or URLs
        tracked_domain: Normalized tracked domain
        source: Description of where these domains came from (for logging)

    Returns:
        Filtered list of normalized domains
    """
    filtered: List[str] = []
    skipped = 0

    for raw in domains:
        domain = normalize_domain(raw)
        if not is_valid_domain(domain):
            skipped += 1
            logger.debug(f"Skipped invalid competitor domain from {source}: {raw!r}")
            continue
        if domain == tracked_domain:
            skipped += 1
            logger.debug(f"Skipped tracked domain listed as competitor from {source}: {raw!r}")
            continue
        if domain in filtered:
            skipped += 1
            continue
        filtered.append(domain)

    if skipped > 0:
        logger.info(f"Filtered {skipped} competitor entries from {source}")

    return filtered
