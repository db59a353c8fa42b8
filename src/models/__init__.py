"""
Database models package.

This package contains all SQLAlchemy ORM models for the local cache.
"""

from .base import Base, BaseModel
from .enums import OrderStatus, HandoffType, DataMode, ROUTABLE_STATUSES
from .client import Client, ClientContact
from .driver import Driver
from .order import OrderInstance
from .dish_completion import DishCompletion
from .delivery_log import DeliveryLogEntry, BagReminder
from .route import RouteOrder, SavedRoute
from .portal_data import ClientPortalData
from .app_setting import AppSetting, LocalCacheEntry

__all__ = [
    "Base",
    "BaseModel",
    # Enums
    "OrderStatus",
    "HandoffType",
    "DataMode",
    "ROUTABLE_STATUSES",
    # Master data
    "Client",
    "ClientContact",
    "Driver",
    # Order lifecycle
    "OrderInstance",
    "DishCompletion",
    # Delivery
    "DeliveryLogEntry",
    "BagReminder",
    "RouteOrder",
    "SavedRoute",
    # Portal and settings
    "ClientPortalData",
    "AppSetting",
    "LocalCacheEntry",
]
