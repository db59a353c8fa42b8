"""
Remote record store adapters.

The remote store is an external collaborator exposing, per entity kind, a
fetch-all and save operations, keyed app settings and a connectivity probe.
Records cross this boundary in the app document shape (camelCase, see
snapshot_service); each adapter converts to its own storage format.

Kinds: clients, recipes, ingredients, menus, weeks, drivers, portalData.
Settings are key/value pairs (orderHistory, deliveryLog, blockedDates, ...).

Adapters:
- InMemoryRemoteStore: process-local store with an online switch, used for
  local development and tests
- SupabaseRemoteStore: supabase-py client over the hosted tables

Every failure to reach or write the store surfaces as ConnectivityError.
"""

import copy
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Optional, Tuple

from postgrest.exceptions import APIError
from supabase import Client, create_client

from src.services.exceptions import ConnectivityError, ValidationError
from src.services.logging_utils import get_service_logger, log_operation
from src.utils.constants import (
    KIND_CLIENTS,
    KIND_DRIVERS,
    KIND_INGREDIENTS,
    KIND_MENUS,
    KIND_PORTAL_DATA,
    KIND_RECIPES,
    KIND_WEEKS,
    KIND_SETTINGS,
    REMOTE_KINDS,
)

logger = get_service_logger(__name__)


def _require_kind(kind: str) -> None:
    if kind not in REMOTE_KINDS or kind == KIND_SETTINGS:
        raise ValidationError([f"Unknown remote kind '{kind}'"])


class RemoteStore(ABC):
    """Interface of the remote record store."""

    @abstractmethod
    def check_connection(self) -> bool:
        """Probe the store; never raises."""

    @abstractmethod
    def fetch_all(self, kind: str) -> List[Dict[str, Any]]:
        """Every record of a kind, in app document shape."""

    @abstractmethod
    def save_one(self, kind: str, record: Dict[str, Any]) -> None:
        """Create or replace one record of a kind."""

    @abstractmethod
    def delete_one(self, kind: str, record: Dict[str, Any]) -> None:
        """Remove the record of a kind matching the natural key of record."""

    def save_many(self, kind: str, records: Iterable[Dict[str, Any]]) -> int:
        """Save records one by one; returns the number written."""
        count = 0
        for record in records:
            self.save_one(kind, record)
            count += 1
        return count

    @abstractmethod
    def fetch_settings(self) -> Dict[str, Any]:
        """Every app setting as a key -> value mapping."""

    @abstractmethod
    def save_setting(self, key: str, value: Any) -> None:
        """Create or replace one app setting."""


# =============================================================================
# In-memory store
# =============================================================================

# Natural key fields per kind; records with the same key replace each other
_NATURAL_KEYS = {
    KIND_CLIENTS: ("name",),
    KIND_DRIVERS: ("name",),
    KIND_MENUS: ("clientName", "date"),
    KIND_PORTAL_DATA: ("clientName",),
    KIND_RECIPES: ("name", "category"),
    KIND_INGREDIENTS: ("name",),
    KIND_WEEKS: ("id",),
}


class InMemoryRemoteStore(RemoteStore):
    """
    Remote store kept in process memory.

    Attributes:
        online: When False every operation fails as unreachable
        fail_writes: Number of upcoming writes that fail as unreachable
        writes: (kind or "settings:<key>", record) log of successful writes
    """

    def __init__(self, online: bool = True):
        self.online = online
        self.fail_writes = 0
        self.writes: List[Tuple[str, Any]] = []
        self._records: Dict[str, Dict[Tuple, Dict[str, Any]]] = {kind: {} for kind in _NATURAL_KEYS}
        self._settings: Dict[str, Any] = {}

    def _ensure_online(self) -> None:
        if not self.online:
            raise ConnectivityError("In-memory remote store is offline")

    def _before_write(self) -> None:
        self._ensure_online()
        if self.fail_writes > 0:
            self.fail_writes -= 1
            raise ConnectivityError("Simulated remote write failure")

    def check_connection(self) -> bool:
        return self.online

    def fetch_all(self, kind: str) -> List[Dict[str, Any]]:
        _require_kind(kind)
        self._ensure_online()
        return [copy.deepcopy(record) for record in self._records[kind].values()]

    def save_one(self, kind: str, record: Dict[str, Any]) -> None:
        _require_kind(kind)
        self._before_write()
        key = tuple(record.get(field_name) for field_name in _NATURAL_KEYS[kind])
        if all(part is None for part in key):
            key = (len(self._records[kind]),)
        self._records[kind][key] = copy.deepcopy(record)
        self.writes.append((kind, copy.deepcopy(record)))

    def delete_one(self, kind: str, record: Dict[str, Any]) -> None:
        _require_kind(kind)
        self._before_write()
        key = tuple(record.get(field_name) for field_name in _NATURAL_KEYS[kind])
        self._records[kind].pop(key, None)
        self.writes.append((f"delete:{kind}", copy.deepcopy(record)))

    def fetch_settings(self) -> Dict[str, Any]:
        self._ensure_online()
        return copy.deepcopy(self._settings)

    def save_setting(self, key: str, value: Any) -> None:
        self._before_write()
        self._settings[key] = copy.deepcopy(value)
        self.writes.append((f"{KIND_SETTINGS}:{key}", copy.deepcopy(value)))


# =============================================================================
# Supabase store
# =============================================================================

_TABLES = {
    KIND_CLIENTS: "clients",
    KIND_RECIPES: "recipes",
    KIND_INGREDIENTS: "ingredients",
    KIND_MENUS: "menus",
    KIND_WEEKS: "weeks",
    KIND_DRIVERS: "drivers",
    KIND_PORTAL_DATA: "client_portal_data",
}

_ON_CONFLICT = {
    KIND_CLIENTS: "name",
    KIND_RECIPES: "name,category",
    KIND_INGREDIENTS: "name",
    KIND_MENUS: "client_name,date",
    KIND_DRIVERS: "name",
    KIND_PORTAL_DATA: "client_name",
}

SETTINGS_TABLE = "app_settings"
CONTACTS_TABLE = "contacts"


def _client_from_row(row: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "name": row.get("name"),
        "displayName": row.get("display_name") or "",
        "deliveryDay": row.get("delivery_day") or "",
        "zone": row.get("zone") or "",
        "frequency": row.get("frequency") or "weekly",
        "portions": row.get("portions"),
        "persons": row.get("persons"),
        "mealsPerWeek": row.get("meals_per_week"),
        "status": row.get("status") or "active",
        "pausedDate": row.get("paused_date") or "",
        "pickup": bool(row.get("pickup")),
        "addressLess": bool(row.get("address_less")),
        "deliveryDates": row.get("delivery_dates") or [],
        "notes": row.get("notes") or "",
        "address": row.get("address") or "",
        "email": row.get("email") or "",
        "phone": row.get("phone") or "",
        "contacts": [
            {
                "fullName": c.get("full_name") or "",
                "displayName": c.get("display_name") or "",
                "email": c.get("email") or "",
                "phone": c.get("phone") or "",
                "address": c.get("address") or "",
            }
            for c in (row.get("contacts") or [])
        ],
    }


def _client_to_row(client: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "name": client["name"],
        "display_name": client.get("displayName") or None,
        "delivery_day": client.get("deliveryDay") or None,
        "zone": client.get("zone") or None,
        "frequency": client.get("frequency") or "weekly",
        "portions": client.get("portions"),
        "meals_per_week": client.get("mealsPerWeek"),
        "status": client.get("status") or "active",
        "paused_date": client.get("pausedDate") or None,
        "pickup": bool(client.get("pickup")),
        "address_less": bool(client.get("addressLess")),
        "delivery_dates": client.get("deliveryDates") or [],
        "notes": client.get("notes") or None,
    }


def _menu_from_row(row: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "clientName": row.get("client_name"),
        "date": row.get("date"),
        "protein": row.get("protein") or "",
        "veg": row.get("veg") or "",
        "starch": row.get("starch") or "",
        "extras": row.get("extras") or [],
        "portions": row.get("portions") or 1,
        "approved": bool(row.get("approved")),
    }


def _menu_to_row(menu: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "client_name": menu["clientName"],
        "date": menu["date"],
        "protein": menu.get("protein") or "",
        "veg": menu.get("veg") or "",
        "starch": menu.get("starch") or "",
        "extras": menu.get("extras") or [],
        "portions": menu.get("portions") or 1,
        "approved": bool(menu.get("approved") or menu.get("status") == "menu_approved"),
    }


def _driver_from_row(row: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "name": row.get("name"),
        "phone": row.get("phone") or "",
        "zone": row.get("zone") or "",
        "accessCode": row.get("access_code") or "",
    }


def _driver_to_row(driver: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "name": driver["name"],
        "phone": driver.get("phone") or "",
        "zone": driver.get("zone") or "",
        "access_code": driver.get("accessCode") or "",
    }


def _portal_from_row(row: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "clientName": row.get("client_name"),
        "selectedDates": row.get("selected_dates") or [],
        "ingredientPicks": row.get("ingredient_picks") or {},
        "notes": row.get("notes") or "",
        "needsDateSelection": bool(row.get("needs_date_selection")),
        "pendingPayment": bool(row.get("pending_payment")),
        "paymentOverdue": bool(row.get("payment_overdue")),
    }


def _portal_to_row(portal: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "client_name": portal["clientName"],
        "selected_dates": portal.get("selectedDates") or [],
        "ingredient_picks": portal.get("ingredientPicks") or {},
        "notes": portal.get("notes") or "",
        "needs_date_selection": bool(portal.get("needsDateSelection")),
        "pending_payment": bool(portal.get("pendingPayment")),
        "payment_overdue": bool(portal.get("paymentOverdue")),
    }


_FROM_ROW = {
    KIND_CLIENTS: _client_from_row,
    KIND_MENUS: _menu_from_row,
    KIND_DRIVERS: _driver_from_row,
    KIND_PORTAL_DATA: _portal_from_row,
}

_TO_ROW = {
    KIND_CLIENTS: _client_to_row,
    KIND_MENUS: _menu_to_row,
    KIND_DRIVERS: _driver_to_row,
    KIND_PORTAL_DATA: _portal_to_row,
}


class SupabaseRemoteStore(RemoteStore):
    """
    Remote store backed by Supabase tables through supabase-py.

    Recipes, ingredients and weeks are opaque documents: rows are passed
    through unchanged in both directions.
    """

    def __init__(self, client: Optional[Client] = None, url: str = "", key: str = ""):
        if client is None:
            if not url or not key:
                raise ConnectivityError("Supabase URL and key are required")
            client = create_client(url, key)
        self.client = client

    @classmethod
    def from_config(cls, config) -> "SupabaseRemoteStore":
        """Build the store from Config credentials."""
        return cls(url=config.remote_url, key=config.remote_key)

    def _execute(self, table: str, query):
        try:
            return query.execute()
        except APIError as e:
            log_operation(logger, "supabase_request", "api_error", level=logging.ERROR, table=table, error=str(e))
            raise ConnectivityError(f"Supabase rejected request on '{table}': {e}")
        except Exception as e:
            log_operation(logger, "supabase_request", "unreachable", level=logging.ERROR, table=table, error=str(e))
            raise ConnectivityError(f"Supabase unreachable ({table}): {e}")

    def check_connection(self) -> bool:
        try:
            self.client.table(SETTINGS_TABLE).select("key").limit(1).execute()
            return True
        except APIError as e:
            # A missing table still proves the service answered
            if "does not exist" in (e.message or ""):
                return True
            log_operation(logger, "check_connection", "api_error", level=logging.WARNING, error=str(e))
            return False
        except Exception as e:
            log_operation(logger, "check_connection", "unreachable", level=logging.WARNING, error=str(e))
            return False

    def fetch_all(self, kind: str) -> List[Dict[str, Any]]:
        _require_kind(kind)
        table = _TABLES[kind]
        if kind == KIND_CLIENTS:
            query = self.client.table(table).select("*, contacts(*)").order("name")
        else:
            query = self.client.table(table).select("*")
        rows = self._execute(table, query).data or []
        convert = _FROM_ROW.get(kind)
        return [convert(row) for row in rows] if convert else list(rows)

    def save_one(self, kind: str, record: Dict[str, Any]) -> None:
        _require_kind(kind)
        table = _TABLES[kind]
        convert = _TO_ROW.get(kind)
        row = convert(record) if convert else dict(record)

        conflict = _ON_CONFLICT.get(kind)
        if conflict:
            query = self.client.table(table).upsert(row, on_conflict=conflict)
        else:
            query = self.client.table(table).upsert(row)
        response = self._execute(table, query)

        if kind == KIND_CLIENTS and record.get("contacts"):
            saved = (response.data or [{}])[0]
            client_id = saved.get("id")
            if client_id is not None:
                self._replace_contacts(client_id, record["contacts"])

    def delete_one(self, kind: str, record: Dict[str, Any]) -> None:
        _require_kind(kind)
        table = _TABLES[kind]
        convert = _TO_ROW.get(kind)
        row = convert(record) if convert else dict(record)

        query = self.client.table(table).delete()
        for column in (_ON_CONFLICT.get(kind) or "id").split(","):
            query = query.eq(column, row.get(column))
        self._execute(table, query)

    def _replace_contacts(self, client_id, contacts: List[Dict[str, Any]]) -> None:
        self._execute(
            CONTACTS_TABLE,
            self.client.table(CONTACTS_TABLE).delete().eq("client_id", client_id),
        )
        rows = [
            {
                "client_id": client_id,
                "full_name": c.get("fullName") or "",
                "display_name": c.get("displayName") or "",
                "email": c.get("email") or "",
                "phone": c.get("phone") or "",
                "address": c.get("address") or "",
                "is_primary": position == 0,
            }
            for position, c in enumerate(contacts)
        ]
        self._execute(CONTACTS_TABLE, self.client.table(CONTACTS_TABLE).insert(rows))

    def fetch_settings(self) -> Dict[str, Any]:
        rows = self._execute(SETTINGS_TABLE, self.client.table(SETTINGS_TABLE).select("key, value")).data or []
        return {row["key"]: row.get("value") for row in rows}

    def save_setting(self, key: str, value: Any) -> None:
        self._execute(
            SETTINGS_TABLE,
            self.client.table(SETTINGS_TABLE).upsert({"key": key, "value": value}, on_conflict="key"),
        )
