"""
Constants and enumerations for the MealRun application.

This module defines all system-wide constants including:
- Application metadata
- Calendar and scheduling limits
- Delivery handoff and problem vocabularies
- Sync and cache keys
"""

from typing import Dict, List

# ============================================================================
# Application Metadata
# ============================================================================

APP_NAME = "MealRun"
APP_VERSION = "0.1.0"
APP_AUTHOR = "MealRun Kitchen"
DATABASE_VERSION = "1.0"

DATABASE_FILENAME = "mealrun.db"

# ============================================================================
# Calendar
# ============================================================================

# Python weekday() order (Monday == 0)
WEEKDAY_NAMES: List[str] = [
    "Monday",
    "Tuesday",
    "Wednesday",
    "Thursday",
    "Friday",
    "Saturday",
    "Sunday",
]

WEEKDAY_INDEX: Dict[str, int] = {name.lower(): idx for idx, name in enumerate(WEEKDAY_NAMES)}

# Edit deadline: Saturday before the delivery week, end of day
DEADLINE_WEEKDAY = 5  # Saturday
DEADLINE_HOUR = 23
DEADLINE_MINUTE = 59
DEADLINE_SECOND = 59

# ============================================================================
# Client Subscriptions
# ============================================================================

FREQUENCY_WEEKLY = "weekly"
FREQUENCY_BIWEEKLY = "biweekly"
FREQUENCIES: List[str] = [FREQUENCY_WEEKLY, FREQUENCY_BIWEEKLY]

CLIENT_STATUS_ACTIVE = "active"
CLIENT_STATUS_PAUSED = "paused"
CLIENT_STATUSES: List[str] = [CLIENT_STATUS_ACTIVE, CLIENT_STATUS_PAUSED]

MIN_BIWEEKLY_GAP_DAYS = 14
CANDIDATE_HORIZON_DAYS = 120
RENEWAL_INTERVAL_DAYS = 28

# Client portal date picker: weekdays from tomorrow through this many days out
PORTAL_PICKER_DAYS = 14
PORTAL_CANDIDATE_COUNT = 4

DEFAULT_PORTIONS = 1

# ============================================================================
# Delivery
# ============================================================================

HANDOFF_HAND = "hand"
HANDOFF_PORCH = "porch"
HANDOFF_TYPES: List[str] = [HANDOFF_HAND, HANDOFF_PORCH]

PROBLEM_OTHER = "Other"
DELIVERY_PROBLEMS: List[str] = [
    "No one home",
    "Wrong address",
    "Access issue",
    "Damaged order",
    "Missing items",
    PROBLEM_OTHER,
]

UNASSIGNED_ZONE = "Unassigned"

# Bag follow-up window (days since delivery)
BAG_FOLLOWUP_MIN_DAYS = 3
BAG_FOLLOWUP_MAX_DAYS = 10

# Route time windows: 30-minute slots from 9:00 through 18:00
ROUTE_WINDOW_FIRST_HOUR = 9
ROUTE_WINDOW_LAST_HOUR = 18
ROUTE_TIME_WINDOWS: List[str] = [
    f"{hour}:{minute:02d}"
    for hour in range(ROUTE_WINDOW_FIRST_HOUR, ROUTE_WINDOW_LAST_HOUR + 1)
    for minute in (0, 30)
    if not (hour == ROUTE_WINDOW_LAST_HOUR and minute > 0)
]

MAPS_DIRECTIONS_URL = "https://www.google.com/maps/dir/"

# ============================================================================
# Sync
# ============================================================================

DATA_MODE_LOCAL = "local"
DATA_MODE_REMOTE = "remote"
DATA_MODES: List[str] = [DATA_MODE_LOCAL, DATA_MODE_REMOTE]

PENDING_QUEUE_LIMIT = 10

# Local-only cache keys (never pushed to the remote store)
CACHE_KEY_SYNC_STATUS = "sync_status"
CACHE_KEY_PENDING_SAVES = "pending_saves"
CACHE_KEY_DATA_MODE = "data_mode"
CACHE_KEY_PASSTHROUGH_PREFIX = "remote:"

# Shared app settings keys
SETTING_BLOCKED_DATES = "blockedDates"
SETTING_ADMIN = "adminSettings"
SETTING_ROUTE_START_ADDRESS = "routeStartAddress"

# Remote entity kinds
KIND_CLIENTS = "clients"
KIND_RECIPES = "recipes"
KIND_INGREDIENTS = "ingredients"
KIND_MENUS = "menus"
KIND_WEEKS = "weeks"
KIND_DRIVERS = "drivers"
KIND_PORTAL_DATA = "portalData"
KIND_SETTINGS = "settings"

REMOTE_KINDS: List[str] = [
    KIND_CLIENTS,
    KIND_RECIPES,
    KIND_INGREDIENTS,
    KIND_MENUS,
    KIND_WEEKS,
    KIND_DRIVERS,
    KIND_PORTAL_DATA,
    KIND_SETTINGS,
]

# Admin-curated master data: direct writes only, never through bulk push
MASTER_KINDS: List[str] = [
    KIND_CLIENTS,
    KIND_RECIPES,
    KIND_INGREDIENTS,
    KIND_DRIVERS,
    KIND_MENUS,
    "menuItems",
    "masterIngredients",
]

# Operational collections stored remotely as keyed app settings
SETTINGS_KINDS: List[str] = [
    "orderHistory",
    "readyForDelivery",
    "deliveryLog",
    "bagReminders",
    "savedRoutes",
    "routeOrders",
    "dishCompletions",
    SETTING_BLOCKED_DATES,
    SETTING_ADMIN,
]

# Opaque documents carried through sync without local tables
PASSTHROUGH_KINDS: List[str] = [KIND_RECIPES, KIND_INGREDIENTS, KIND_WEEKS]

# ============================================================================
# Validation
# ============================================================================

MAX_NAME_LENGTH = 200
MAX_NOTES_LENGTH = 2000

ERROR_REQUIRED_FIELD = "This field is required"
