"""Slug and normalization utilities for client and address matching.

This module provides:
- Portal slugs derived from client display names ("Tim Brown" -> "tim-brown")
- Address normalization used to collapse contacts into delivery stops

Examples:
    >>> create_portal_slug("Tim Brown")
    'tim-brown'

    >>> normalize_address("  10 Main St,   Fairfax ")
    '10 main st, fairfax'
"""

import re
import unicodedata
from typing import Optional


def create_portal_slug(name: Optional[str]) -> str:
    """Generate the URL slug used to reach a client's portal.

    Lowercases the name and replaces whitespace runs with single hyphens.
    Accented characters are reduced to ASCII so links stay typeable.

    Args:
        name: Display name or raw client name

    Returns:
        Slug string ('' for empty input)

    Examples:
        >>> create_portal_slug("Tim Brown")
        'tim-brown'

        >>> create_portal_slug("  Ana  Muñoz ")
        'ana-munoz'
    """
    if not name:
        return ""
    normalized = unicodedata.normalize("NFD", name)
    slug = normalized.encode("ascii", "ignore").decode("ascii")
    slug = slug.strip().lower()
    return re.sub(r"\s+", "-", slug)


def normalize_address(address: Optional[str]) -> str:
    """Normalize an address for comparison (lowercase, trimmed, single spaces)."""
    if not address:
        return ""
    return re.sub(r"\s+", " ", address.strip().lower())


def make_stop_key(client_name: str, address: Optional[str]) -> str:
    """Build the stable key of a delivery stop.

    A stop is one client at one normalized address; address-less clients
    get a single key with an empty address part.
    """
    return f"{client_name}|{normalize_address(address)}"
