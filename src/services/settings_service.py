"""
Settings Service - shared app settings and device-local cache entries.

Two kinds of keyed JSON documents live in the local cache:
- AppSetting rows are shared with the remote store (blocked dates, the
  admin settings holding the route start address).
- LocalCacheEntry rows never leave the device (sync status, pending queue,
  data mode, opaque documents fetched from the remote store).

Session Management Pattern:
- All public functions accept session=None
- With a session, join the caller's transaction; otherwise open a scope
"""

import logging
from contextlib import nullcontext
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from src.models import AppSetting, LocalCacheEntry
from src.services.database import session_scope
from src.services.deadline_service import parse_date
from src.services.exceptions import PersistenceError
from src.services.logging_utils import get_service_logger, log_operation
from src.utils.constants import (
    SETTING_ADMIN,
    SETTING_BLOCKED_DATES,
    SETTING_ROUTE_START_ADDRESS,
)

logger = get_service_logger(__name__)


# ============================================================================
# Shared settings
# ============================================================================


def get_setting(key: str, default: Any = None, session=None) -> Any:
    """Return a shared setting value, or default when unset."""
    cm = nullcontext(session) if session is not None else session_scope()
    with cm as session:
        row = session.query(AppSetting).filter(AppSetting.key == key).first()
        if row is None or row.value is None:
            return default
        return row.value


def set_setting(key: str, value: Any, session=None) -> None:
    """
    Create or replace a shared setting.

    Raises:
        PersistenceError: If the local cache cannot be written
    """
    cm = nullcontext(session) if session is not None else session_scope()
    with cm as session:
        try:
            row = session.query(AppSetting).filter(AppSetting.key == key).first()
            if row is None:
                session.add(AppSetting(key=key, value=value))
            else:
                row.value = value
            session.flush()
        except SQLAlchemyError as e:
            raise PersistenceError(f"setting '{key}'", e)


def all_settings(session=None) -> Dict[str, Any]:
    """Return every shared setting as a key -> value mapping."""
    cm = nullcontext(session) if session is not None else session_scope()
    with cm as session:
        return {row.key: row.value for row in session.query(AppSetting).order_by(AppSetting.key)}


def get_blocked_dates(session=None) -> List:
    """Return the sorted list of dates the kitchen does not deliver."""
    raw = get_setting(SETTING_BLOCKED_DATES, default=[], session=session)
    return sorted({parse_date(value) for value in raw})


def set_blocked_dates(dates, session=None) -> List:
    """Replace the blocked date list; returns the stored dates."""
    normalized = sorted({parse_date(value) for value in dates})
    set_setting(SETTING_BLOCKED_DATES, [d.isoformat() for d in normalized], session=session)
    log_operation(logger, "set_blocked_dates", "success", count=len(normalized))
    return normalized


def add_blocked_date(value, session=None) -> List:
    cm = nullcontext(session) if session is not None else session_scope()
    with cm as session:
        current = get_blocked_dates(session=session)
        return set_blocked_dates(current + [parse_date(value)], session=session)


def remove_blocked_date(value, session=None) -> List:
    target = parse_date(value)
    cm = nullcontext(session) if session is not None else session_scope()
    with cm as session:
        current = [d for d in get_blocked_dates(session=session) if d != target]
        return set_blocked_dates(current, session=session)


def get_admin_settings(session=None) -> Dict[str, Any]:
    return dict(get_setting(SETTING_ADMIN, default={}, session=session))


def get_route_start_address(session=None) -> Optional[str]:
    """Depot address prepended to navigation links, if configured."""
    address = get_admin_settings(session=session).get(SETTING_ROUTE_START_ADDRESS)
    if address and str(address).strip():
        return str(address).strip()
    return None


def set_route_start_address(address: Optional[str], session=None) -> None:
    cm = nullcontext(session) if session is not None else session_scope()
    with cm as session:
        admin = get_admin_settings(session=session)
        admin[SETTING_ROUTE_START_ADDRESS] = (address or "").strip()
        set_setting(SETTING_ADMIN, admin, session=session)


# ============================================================================
# Device-local cache entries
# ============================================================================


def get_cache_entry(key: str, default: Any = None, session=None) -> Any:
    cm = nullcontext(session) if session is not None else session_scope()
    with cm as session:
        row = session.query(LocalCacheEntry).filter(LocalCacheEntry.key == key).first()
        if row is None or row.value is None:
            return default
        return row.value


def set_cache_entry(key: str, value: Any, session=None) -> None:
    """
    Create or replace a device-local cache entry.

    Raises:
        PersistenceError: If the local cache cannot be written
    """
    cm = nullcontext(session) if session is not None else session_scope()
    with cm as session:
        try:
            row = session.query(LocalCacheEntry).filter(LocalCacheEntry.key == key).first()
            if row is None:
                session.add(LocalCacheEntry(key=key, value=value))
            else:
                row.value = value
            session.flush()
        except SQLAlchemyError as e:
            log_operation(logger, "set_cache_entry", "failed", level=logging.ERROR, key=key, error=str(e))
            raise PersistenceError(f"cache entry '{key}'", e)


def delete_cache_entry(key: str, session=None) -> bool:
    """Delete a cache entry; returns True when a row was removed."""
    cm = nullcontext(session) if session is not None else session_scope()
    with cm as session:
        deleted = session.query(LocalCacheEntry).filter(LocalCacheEntry.key == key).delete()
        return bool(deleted)


def cache_entries_with_prefix(prefix: str, session=None) -> Dict[str, Any]:
    """Return cache entries whose key starts with prefix, keyed without it."""
    cm = nullcontext(session) if session is not None else session_scope()
    with cm as session:
        rows = (
            session.query(LocalCacheEntry)
            .filter(LocalCacheEntry.key.startswith(prefix))
            .order_by(LocalCacheEntry.key)
            .all()
        )
        return {row.key[len(prefix):]: row.value for row in rows}
