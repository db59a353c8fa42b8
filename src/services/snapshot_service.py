"""
Snapshot Service - the local dataset document.

The whole local cache can be expressed as one JSON document, the same shape
the remote store serves and the operations CLI exports:

    {
        "clients": [...], "drivers": [...],
        "menuItems": [...], "readyForDelivery": [...], "orderHistory": [...],
        "deliveryLog": [...], "bagReminders": {...}, "dishCompletions": {...},
        "savedRoutes": {...}, "routeOrders": {...}, "clientPortalData": {...},
        "blockedDates": [...], "adminSettings": {...}, "lastSaved": "..."
    }

This module provides:
- normalize_client_record / normalize_order_record / normalize_log_record:
  the single ingestion boundary for legacy and camelCase record shapes
- export_dataset: build the document from the local cache
- replace_local_dataset: overwrite the local cache from a document in one
  transaction
"""

from contextlib import nullcontext
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from src.models import (
    AppSetting,
    BagReminder,
    Client,
    ClientContact,
    ClientPortalData,
    DeliveryLogEntry,
    DishCompletion,
    Driver,
    OrderInstance,
    OrderStatus,
    RouteOrder,
    SavedRoute,
)
from src.services.database import session_scope
from src.services.exceptions import ValidationError
from src.services.logging_utils import get_service_logger, log_operation
from src.utils.constants import (
    CLIENT_STATUS_ACTIVE,
    DEFAULT_PORTIONS,
    FREQUENCY_WEEKLY,
    SETTING_ADMIN,
    SETTING_BLOCKED_DATES,
    SETTING_ROUTE_START_ADDRESS,
)
from src.utils.datetime_utils import parse_timestamp, to_date, to_naive_utc, utc_now
from src.utils.slug_utils import make_stop_key

logger = get_service_logger(__name__)

# Collections carried by the document, in the order they are written
DATASET_KEYS = (
    "clients",
    "drivers",
    "menuItems",
    "readyForDelivery",
    "orderHistory",
    "deliveryLog",
    "bagReminders",
    "dishCompletions",
    "savedRoutes",
    "routeOrders",
    "clientPortalData",
    SETTING_BLOCKED_DATES,
    SETTING_ADMIN,
)

_STATUS_BY_COLLECTION = {
    "menuItems": None,
    "readyForDelivery": OrderStatus.READY_FOR_DELIVERY,
    "orderHistory": OrderStatus.DELIVERED,
}

# Later collections win when the same (client, date) appears twice
_COLLECTION_PRECEDENCE = ("menuItems", "readyForDelivery", "orderHistory")


# ============================================================================
# Field helpers
# ============================================================================


def _pick(record: Dict, *keys, default=None):
    """Return the first present, non-None value among keys."""
    for key in keys:
        if key in record and record[key] is not None:
            return record[key]
    return default


def _text(value) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _int(value, default: int) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        return default
    return number if number > 0 else default


def _bool(value) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes")
    return bool(value)


def _timestamp(value) -> Optional[datetime]:
    if value in (None, ""):
        return None
    return to_naive_utc(parse_timestamp(value))


def _iso_timestamp(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return to_naive_utc(value).isoformat() + "Z"


def _iso_date(value) -> Optional[str]:
    return value.isoformat() if value is not None else None


def route_key(route_date, zone: str) -> str:
    """Document key of a (date, zone) route entry."""
    return f"{to_date(route_date).isoformat()}|{zone}"


# ============================================================================
# Ingestion normalization
# ============================================================================


def normalize_contact(contact: Dict) -> Dict[str, Optional[str]]:
    return {
        "full_name": _text(_pick(contact, "fullName", "full_name", "name")),
        "display_name": _text(_pick(contact, "displayName", "display_name")),
        "email": _text(_pick(contact, "email")),
        "phone": _text(_pick(contact, "phone")),
        "address": _text(_pick(contact, "address")),
    }


def normalize_client_record(record: Dict) -> Dict[str, Any]:
    """
    Normalize any client shape into one snake_case record.

    Handles:
    - camelCase (app/remote) and snake_case keys; camelCase wins when a
      record carries both
    - a contacts list, or the legacy single top-level address/email/phone
    - "portions", falling back to the legacy "persons" count

    Returns:
        Dict with name, display_name, delivery_day, zone, frequency,
        portions, meals_per_week, status, paused_date, pickup, address_less,
        delivery_dates (ISO strings), notes and contacts

    Raises:
        ValidationError: If the record has no name
    """
    name = _text(record.get("name"))
    if not name:
        raise ValidationError(["Client name is required"])

    contacts = [normalize_contact(c) for c in (record.get("contacts") or [])]
    contacts = [c for c in contacts if any(c.values())]
    if not contacts:
        legacy = {
            "full_name": _text(_pick(record, "displayName", "display_name")) or name,
            "display_name": None,
            "email": _text(record.get("email")),
            "phone": _text(record.get("phone")),
            "address": _text(record.get("address")),
        }
        if legacy["address"] or legacy["email"] or legacy["phone"]:
            contacts = [legacy]

    delivery_dates = sorted(
        {to_date(d).isoformat() for d in (_pick(record, "deliveryDates", "delivery_dates") or []) if d}
    )

    paused = _pick(record, "pausedDate", "paused_date")
    return {
        "name": name,
        "display_name": _text(_pick(record, "displayName", "display_name")),
        "delivery_day": _text(_pick(record, "deliveryDay", "delivery_day")),
        "zone": _text(record.get("zone")),
        "frequency": _text(record.get("frequency")) or FREQUENCY_WEEKLY,
        "portions": _int(_pick(record, "portions", "persons"), DEFAULT_PORTIONS),
        "meals_per_week": _int(_pick(record, "mealsPerWeek", "meals_per_week"), 0),
        "status": _text(record.get("status")) or CLIENT_STATUS_ACTIVE,
        "paused_date": to_date(paused).isoformat() if paused else None,
        "pickup": _bool(record.get("pickup")),
        "address_less": _bool(_pick(record, "addressLess", "address_less")),
        "delivery_dates": delivery_dates,
        "notes": _text(record.get("notes")),
        "contacts": contacts,
    }


def normalize_driver_record(record: Dict) -> Dict[str, Any]:
    name = _text(record.get("name"))
    if not name:
        raise ValidationError(["Driver name is required"])
    return {
        "name": name,
        "phone": _text(record.get("phone")),
        "zone": _text(record.get("zone")),
        "access_code": _text(_pick(record, "accessCode", "access_code")),
    }


def normalize_order_record(record: Dict, collection: str = "menuItems") -> Dict[str, Any]:
    """
    Normalize a menu item, ready order or history record.

    The status comes from the collection the record sits in; menu items use
    their "approved" flag (or an explicit status) to tell pending from
    approved.
    """
    client_name = _text(_pick(record, "clientName", "client_name"))
    raw_date = _pick(record, "date", "deliveryDate", "delivery_date")
    if not client_name or not raw_date:
        raise ValidationError(["Order records need clientName and date"])

    status = _STATUS_BY_COLLECTION.get(collection)
    if status is None:
        explicit = record.get("status")
        if explicit in (OrderStatus.MENU_APPROVED.value, OrderStatus.MENU_PENDING.value):
            status = OrderStatus(explicit)
        else:
            status = OrderStatus.MENU_APPROVED if _bool(record.get("approved")) else OrderStatus.MENU_PENDING

    completed_at = _timestamp(_pick(record, "completedAt", "completed_at"))
    if status is OrderStatus.DELIVERED and completed_at is None:
        completed_at = to_naive_utc(utc_now())

    extras = record.get("extras") or []
    if isinstance(extras, str):
        extras = [extras]

    return {
        "client_name": client_name,
        "delivery_date": to_date(raw_date),
        "protein": _text(record.get("protein")),
        "veg": _text(record.get("veg")),
        "starch": _text(record.get("starch")),
        "extras": [str(e).strip() for e in extras if e and str(e).strip()],
        "portions": _int(record.get("portions"), DEFAULT_PORTIONS),
        "status": status,
        "approved_at": _timestamp(_pick(record, "approvedAt", "approved_at")),
        "ready_at": _timestamp(_pick(record, "readyAt", "ready_at")),
        "completed_at": completed_at if status is OrderStatus.DELIVERED else None,
        "notes": _text(record.get("notes")),
    }


def normalize_log_record(record: Dict) -> Dict[str, Any]:
    """Normalize a delivery log entry record."""
    client_name = _text(_pick(record, "clientName", "client_name"))
    raw_date = _pick(record, "date", "deliveryDate", "delivery_date")
    if not client_name or not raw_date:
        raise ValidationError(["Delivery log records need clientName and date"])

    address = _text(record.get("address"))
    stop_key = _text(_pick(record, "stopKey", "stop_key"))
    if not stop_key:
        stop_key = make_stop_key(client_name, address)

    entry_id = _pick(record, "id", "uuid")
    return {
        "uuid": str(entry_id) if entry_id not in (None, "") else None,
        "delivery_date": to_date(raw_date),
        "client_name": client_name,
        "contact_name": _text(_pick(record, "contactName", "contact_name")),
        "stop_key": stop_key,
        "address": address,
        "zone": _text(record.get("zone")),
        "driver_name": _text(_pick(record, "driverName", "driver_name", "driver")),
        "completed_at": _timestamp(_pick(record, "completedAt", "completed_at"))
        or to_naive_utc(utc_now()),
        "handoff_type": _text(_pick(record, "handoffType", "handoff_type")) or "hand",
        "photo_ref": _text(_pick(record, "photoRef", "photo_ref", "photoData")),
        "bags_returned": _bool(_pick(record, "bagsReturned", "bags_returned")),
        "problem": _text(record.get("problem")),
        "problem_note": _text(_pick(record, "problemNote", "problem_note")),
    }


# ============================================================================
# Serialization (local -> document)
# ============================================================================


def client_to_document(client: Client) -> Dict[str, Any]:
    return {
        "name": client.name,
        "displayName": client.display_name or "",
        "deliveryDay": client.delivery_day or "",
        "zone": client.zone or "",
        "frequency": client.frequency,
        "portions": client.portions,
        "mealsPerWeek": client.meals_per_week,
        "status": client.status,
        "pausedDate": _iso_date(client.paused_date) or "",
        "pickup": bool(client.pickup),
        "addressLess": bool(client.address_less),
        "deliveryDates": list(client.delivery_dates or []),
        "notes": client.notes or "",
        "contacts": [
            {
                "fullName": c.full_name or "",
                "displayName": c.display_name or "",
                "email": c.email or "",
                "phone": c.phone or "",
                "address": c.address or "",
            }
            for c in client.contacts
        ],
    }


def driver_to_document(driver: Driver) -> Dict[str, Any]:
    return {
        "name": driver.name,
        "phone": driver.phone or "",
        "zone": driver.zone or "",
        "accessCode": driver.access_code or "",
    }


def order_to_document(order: OrderInstance) -> Dict[str, Any]:
    doc = {
        "clientName": order.client_name,
        "date": order.delivery_date.isoformat(),
        "protein": order.protein or "",
        "veg": order.veg or "",
        "starch": order.starch or "",
        "extras": list(order.extras or []),
        "portions": order.portions,
        "status": order.status.value,
        "approvedAt": _iso_timestamp(order.approved_at),
        "readyAt": _iso_timestamp(order.ready_at),
        "completedAt": _iso_timestamp(order.completed_at),
    }
    if order.status in (OrderStatus.MENU_PENDING, OrderStatus.MENU_APPROVED):
        doc["approved"] = order.status is OrderStatus.MENU_APPROVED
    return doc


def log_entry_to_document(entry: DeliveryLogEntry) -> Dict[str, Any]:
    return {
        "id": entry.uuid,
        "date": entry.delivery_date.isoformat(),
        "clientName": entry.client_name,
        "contactName": entry.contact_name or "",
        "stopKey": entry.stop_key,
        "address": entry.address or "",
        "zone": entry.zone or "",
        "driverName": entry.driver_name or "",
        "completedAt": _iso_timestamp(entry.completed_at),
        "handoffType": entry.handoff_type,
        "photoRef": entry.photo_ref,
        "bagsReturned": bool(entry.bags_returned),
        "problem": entry.problem,
        "problemNote": entry.problem_note,
    }


def portal_to_document(portal: ClientPortalData) -> Dict[str, Any]:
    return {
        "selectedDates": list(portal.selected_dates or []),
        "ingredientPicks": dict(portal.ingredient_picks or {}),
        "notes": portal.notes or "",
        "needsDateSelection": bool(portal.needs_date_selection),
        "pendingPayment": bool(portal.pending_payment),
        "paymentOverdue": bool(portal.payment_overdue),
    }


def _export_impl(session) -> Dict[str, Any]:
    orders = (
        session.query(OrderInstance)
        .order_by(OrderInstance.delivery_date, OrderInstance.client_name)
        .all()
    )
    settings = {row.key: row.value for row in session.query(AppSetting)}

    return {
        "clients": [client_to_document(c) for c in session.query(Client).order_by(Client.name)],
        "drivers": [driver_to_document(d) for d in session.query(Driver).order_by(Driver.name)],
        "menuItems": [
            order_to_document(o)
            for o in orders
            if o.status in (OrderStatus.MENU_PENDING, OrderStatus.MENU_APPROVED)
        ],
        "readyForDelivery": [
            order_to_document(o) for o in orders if o.status is OrderStatus.READY_FOR_DELIVERY
        ],
        "orderHistory": [order_to_document(o) for o in orders if o.status is OrderStatus.DELIVERED],
        "deliveryLog": [
            log_entry_to_document(e)
            for e in session.query(DeliveryLogEntry).order_by(
                DeliveryLogEntry.completed_at, DeliveryLogEntry.id
            )
        ],
        "bagReminders": {
            r.client_name: {"sent": bool(r.reminder_sent), "sentAt": _iso_timestamp(r.sent_at)}
            for r in session.query(BagReminder).order_by(BagReminder.client_name)
        },
        "dishCompletions": {
            d.dish_name: {"complete": bool(d.is_complete), "completedAt": _iso_timestamp(d.completed_at)}
            for d in session.query(DishCompletion).order_by(DishCompletion.dish_name)
        },
        "savedRoutes": {
            route_key(r.route_date, r.zone): {
                "date": r.route_date.isoformat(),
                "zone": r.zone,
                "savedAt": _iso_timestamp(r.saved_at),
                "stops": list(r.stops or []),
            }
            for r in session.query(SavedRoute).order_by(SavedRoute.route_date, SavedRoute.zone)
        },
        "routeOrders": {
            route_key(r.route_date, r.zone): {
                "date": r.route_date.isoformat(),
                "zone": r.zone,
                "stopKeys": list(r.stop_keys or []),
                "timeWindows": dict(r.time_windows or {}),
            }
            for r in session.query(RouteOrder).order_by(RouteOrder.route_date, RouteOrder.zone)
        },
        "clientPortalData": {
            p.client_name: portal_to_document(p)
            for p in session.query(ClientPortalData).order_by(ClientPortalData.client_name)
        },
        SETTING_BLOCKED_DATES: list(settings.get(SETTING_BLOCKED_DATES) or []),
        SETTING_ADMIN: dict(settings.get(SETTING_ADMIN) or {SETTING_ROUTE_START_ADDRESS: ""}),
        "lastSaved": _iso_timestamp(utc_now()),
    }


def export_dataset(session=None) -> Dict[str, Any]:
    """
    Build the dataset document from the local cache.

    Returns:
        Dict in the snapshot document shape (JSON-serializable)
    """
    cm = nullcontext(session) if session is not None else session_scope()
    with cm as session:
        return _export_impl(session)


def dataset_counts(document: Dict[str, Any]) -> Dict[str, int]:
    """Record counts per collection, for logs and CLI output."""
    return {
        key: len(document.get(key) or [])
        for key in DATASET_KEYS
        if key not in (SETTING_ADMIN,)
    }


# ============================================================================
# Replacement (document -> local)
# ============================================================================


def _clear_local(session) -> None:
    for model in (
        ClientContact,
        Client,
        Driver,
        OrderInstance,
        DeliveryLogEntry,
        BagReminder,
        DishCompletion,
        SavedRoute,
        RouteOrder,
        ClientPortalData,
        AppSetting,
    ):
        session.query(model).delete(synchronize_session=False)
    session.flush()


def _load_clients(session, records: Iterable[Dict]) -> int:
    seen = set()
    for raw in records:
        record = normalize_client_record(raw)
        if record["name"] in seen:
            continue
        seen.add(record["name"])
        client = Client(
            name=record["name"],
            display_name=record["display_name"],
            delivery_day=record["delivery_day"],
            zone=record["zone"],
            frequency=record["frequency"],
            portions=record["portions"],
            meals_per_week=record["meals_per_week"],
            status=record["status"],
            paused_date=to_date(record["paused_date"]) if record["paused_date"] else None,
            pickup=record["pickup"],
            address_less=record["address_less"],
            delivery_dates=record["delivery_dates"],
            notes=record["notes"],
        )
        client.contacts = [
            ClientContact(position=position, **contact)
            for position, contact in enumerate(record["contacts"])
        ]
        session.add(client)
    return len(seen)


def _load_orders(session, document: Dict) -> int:
    by_key = {}
    for collection in _COLLECTION_PRECEDENCE:
        for raw in document.get(collection) or []:
            record = normalize_order_record(raw, collection)
            by_key[(record["client_name"], record["delivery_date"])] = record
    for record in by_key.values():
        session.add(OrderInstance(**record))
    return len(by_key)


def _load_route_entries(document: Dict, key: str) -> List[Dict]:
    entries = document.get(key) or {}
    if isinstance(entries, list):
        return entries
    result = []
    for doc_key, entry in entries.items():
        route_date, _, zone = doc_key.partition("|")
        result.append({**entry, "date": entry.get("date") or route_date, "zone": entry.get("zone") or zone})
    return result


def _replace_impl(document: Dict[str, Any], session) -> Dict[str, int]:
    _clear_local(session)

    client_count = _load_clients(session, document.get("clients") or [])

    drivers = {}
    for raw in document.get("drivers") or []:
        record = normalize_driver_record(raw)
        drivers[record["name"]] = record
    for record in drivers.values():
        session.add(Driver(**record))

    order_count = _load_orders(session, document)

    log_count = 0
    for raw in document.get("deliveryLog") or []:
        record = normalize_log_record(raw)
        if record["uuid"] is None:
            record.pop("uuid")
        session.add(DeliveryLogEntry(**record))
        log_count += 1

    for client_name, reminder in (document.get("bagReminders") or {}).items():
        if isinstance(reminder, dict):
            sent = _bool(reminder.get("sent"))
            sent_at = _timestamp(reminder.get("sentAt"))
        else:
            sent, sent_at = _bool(reminder), None
        session.add(BagReminder(client_name=client_name, reminder_sent=sent, sent_at=sent_at))

    for dish_name, state in (document.get("dishCompletions") or {}).items():
        if isinstance(state, dict):
            complete = _bool(state.get("complete"))
            completed_at = _timestamp(state.get("completedAt"))
        else:
            complete, completed_at = _bool(state), None
        session.add(DishCompletion(dish_name=dish_name, is_complete=complete, completed_at=completed_at))

    for entry in _load_route_entries(document, "savedRoutes"):
        session.add(
            SavedRoute(
                route_date=to_date(entry["date"]),
                zone=entry["zone"],
                stops=list(entry.get("stops") or []),
                saved_at=_timestamp(entry.get("savedAt")) or to_naive_utc(utc_now()),
            )
        )

    for entry in _load_route_entries(document, "routeOrders"):
        session.add(
            RouteOrder(
                route_date=to_date(entry["date"]),
                zone=entry["zone"],
                stop_keys=list(entry.get("stopKeys") or entry.get("stop_keys") or []),
                time_windows=dict(entry.get("timeWindows") or entry.get("time_windows") or {}),
            )
        )

    for client_name, portal in (document.get("clientPortalData") or {}).items():
        session.add(
            ClientPortalData(
                client_name=client_name,
                selected_dates=sorted(
                    {to_date(d).isoformat() for d in (portal.get("selectedDates") or []) if d}
                ),
                ingredient_picks=dict(portal.get("ingredientPicks") or {}),
                notes=_text(portal.get("notes")),
                needs_date_selection=_bool(portal.get("needsDateSelection")),
                pending_payment=_bool(portal.get("pendingPayment")),
                payment_overdue=_bool(portal.get("paymentOverdue")),
            )
        )

    session.add(
        AppSetting(
            key=SETTING_BLOCKED_DATES,
            value=sorted({to_date(d).isoformat() for d in (document.get(SETTING_BLOCKED_DATES) or []) if d}),
        )
    )
    session.add(
        AppSetting(
            key=SETTING_ADMIN,
            value=dict(document.get(SETTING_ADMIN) or {SETTING_ROUTE_START_ADDRESS: ""}),
        )
    )

    session.flush()
    return {
        "clients": client_count,
        "drivers": len(drivers),
        "orders": order_count,
        "deliveryLog": log_count,
    }


def replace_local_dataset(document: Dict[str, Any], session=None) -> Dict[str, int]:
    """
    Overwrite the local cache with a dataset document.

    Runs in one transaction: a malformed record rolls everything back and
    the previous cache survives untouched. Device-local cache entries (sync
    status, pending queue, mode) are not part of the document and are kept.

    Args:
        document: Snapshot document (see module docstring)

    Returns:
        Counts of loaded clients, drivers, orders and log entries

    Raises:
        ValidationError: If a record lacks its key fields
    """
    cm = nullcontext(session) if session is not None else session_scope()
    with cm as session:
        counts = _replace_impl(document, session)
    log_operation(logger, "replace_local_dataset", "success", **counts)
    return counts
