"""
Keyed JSON documents.

This module contains:
- AppSetting: Settings shared with the remote store (blocked dates, admin settings)
- LocalCacheEntry: Device-local state (sync status, pending saves, data mode)
"""

from sqlalchemy import Column, String
from sqlalchemy.dialects.sqlite import JSON

from .base import BaseModel


class AppSetting(BaseModel):
    """
    A keyed application setting mirrored to the remote store.

    Attributes:
        key: Setting key (unique)
        value: JSON value
    """

    __tablename__ = "app_settings"

    key = Column(String(100), nullable=False, unique=True, index=True)
    value = Column(JSON, nullable=True)

    def __repr__(self) -> str:
        return f"AppSetting(key='{self.key}')"


class LocalCacheEntry(BaseModel):
    """
    A keyed document that stays on this device.

    Attributes:
        key: Cache key (unique)
        value: JSON value
    """

    __tablename__ = "local_cache_entries"

    key = Column(String(100), nullable=False, unique=True, index=True)
    value = Column(JSON, nullable=True)

    def __repr__(self) -> str:
        return f"LocalCacheEntry(key='{self.key}')"
