"""Utilities package for the MealRun application."""

from .slug_utils import create_portal_slug, make_stop_key, normalize_address

__all__ = [
    "create_portal_slug",
    "make_stop_key",
    "normalize_address",
]
