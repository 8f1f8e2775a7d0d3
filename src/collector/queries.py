"""
Query Generation

Default question set for a domain when the caller supplies none.
Brand-level questions, plus industry questions for domains that look like
software or shop sites.
"""

import logging
from typing import Dict, List, Tuple

from src.models import Query
from src.utils.domain_filter import normalize_domain

logger = logging.getLogger(__name__)


BASE_TEMPLATES: Tuple[Tuple[str, str], ...] = (
    ("what is {brand}", "brand"),
    ("{brand} reviews", "reviews"),
    ("{brand} features", "features"),
    ("how to use {brand}", "usage"),
    ("{brand} vs competitors", "comparison"),
    ("{brand} pricing", "pricing"),
    ("{brand} benefits", "features"),
    ("best {brand} alternative", "comparison"),
    ("{brand} tutorial", "usage"),
    ("{brand} problems", "support"),
)

# Domain substring markers -> extra templates
INDUSTRY_TEMPLATES: Dict[Tuple[str, ...], Tuple[Tuple[str, str], ...]] = {
    ("saas", "software", "app"): (
        ("{brand} integration", "integrations"),
        ("{brand} API", "integrations"),
        ("{brand} security", "security"),
        ("{brand} enterprise", "pricing"),
    ),
    ("ecommerce", "shop", "store"): (
        ("{brand} products", "products"),
        ("{brand} shipping", "support"),
        ("{brand} return policy", "support"),
        ("{brand} deals", "pricing"),
    ),
}


def brand_from_domain(domain: str) -> str:
    """First host label: "www.acme-shop.com" -> "acme-shop"."""
    host = normalize_domain(domain)
    return host.split(".")[0] if host else ""


def generate_queries_from_domain(domain: str) -> List[Query]:
    """
    Build the default query set for a domain.

    Args:
        domain: Domain or URL

    Returns:
        De-duplicated queries, base questions first
    """
    host = normalize_domain(domain)
    brand = brand_from_domain(host)
    if not brand:
        return []

    templates = list(BASE_TEMPLATES)
    for markers, extra in INDUSTRY_TEMPLATES.items():
        if any(marker in host for marker in markers):
            templates.extend(extra)

    queries: List[Query] = []
    seen = set()
    for template, topic in templates:
        text = template.format(brand=brand)
        if text.lower() in seen:
            continue
        seen.add(text.lower())
        queries.append(Query(text=text, topic=topic))

    logger.debug(f"Generated {len(queries)} default queries for {host}")
    return queries
