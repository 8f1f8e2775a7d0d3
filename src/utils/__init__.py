"""Utility modules for the citation visibility engine."""

from .config import ConfigurationError, Settings, get_settings
from .domain_filter import (
    extract_host,
    filter_competitor_domains,
    host_matches,
    is_valid_domain,
    normalize_domain,
)

__all__ = [
    "ConfigurationError",
    "Settings",
    "get_settings",
    # Domains
    "extract_host",
    "filter_competitor_domains",
    "host_matches",
    "is_valid_domain",
    "normalize_domain",
]
