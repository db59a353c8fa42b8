"""
Route Service - per-zone, per-date delivery stop lists.

A route is derived, never stored as such:

    scheduled clients -> one stop per distinct address -> zone bucket
                      -> explicit key order (RouteOrder) -> snapshot (SavedRoute)

A client is scheduled for a date when it is active, not a pickup client, and
any of these holds:
- its weekly delivery day matches the date's weekday name
- the admin-set delivery date list contains the date
- the portal-selected date list contains the date
- an order row exists for the exact (client, date)

Clients without a zone or without any address land in the "Unassigned" zone.

The stored key order tolerates drift: keys of new stops are appended in
discovery order and keys of vanished stops are skipped on read but never
pruned from storage.
"""

import logging
from collections import OrderedDict
from contextlib import nullcontext
from datetime import date
from typing import Dict, List, Optional
from urllib.parse import quote

from sqlalchemy.orm import Session

from src.models import (
    Client,
    ClientPortalData,
    DeliveryLogEntry,
    OrderInstance,
    OrderStatus,
    RouteOrder,
    SavedRoute,
)
from src.services.database import session_scope
from src.services.deadline_service import parse_date
from src.services.dto import DeliveryStop, RouteSaveResult
from src.services.exceptions import StopNotFound, ValidationError
from src.services.logging_utils import get_service_logger, log_operation
from src.services.order_service import client_stops
from src.services.settings_service import get_route_start_address
from src.utils.constants import (
    CLIENT_STATUS_ACTIVE,
    MAPS_DIRECTIONS_URL,
    ROUTE_TIME_WINDOWS,
    UNASSIGNED_ZONE,
)
from src.utils.datetime_utils import day_name, to_naive_utc, utc_now

logger = get_service_logger(__name__)


# =============================================================================
# Stop discovery
# =============================================================================


def _orders_for_date(session: Session, target: date) -> Dict[str, OrderInstance]:
    """Order per client for a date; an open order wins over a delivered one."""
    orders = {}
    rows = (
        session.query(OrderInstance)
        .filter(OrderInstance.delivery_date == target)
        .order_by(OrderInstance.id)
        .all()
    )
    for order in rows:
        current = orders.get(order.client_name)
        if current is None or current.status is OrderStatus.DELIVERED:
            orders[order.client_name] = order
    return orders


def _is_scheduled(
    client: Client,
    target: date,
    portal_dates: Dict[str, List[str]],
    orders: Dict[str, OrderInstance],
) -> bool:
    if client.status != CLIENT_STATUS_ACTIVE or client.pickup:
        return False
    iso = target.isoformat()
    if client.delivery_day and client.delivery_day.lower() == day_name(target).lower():
        return True
    if iso in (client.delivery_dates or []):
        return True
    if iso in portal_dates.get(client.name, []):
        return True
    return client.name in orders


def _zone_for(client: Client, address: str) -> str:
    if not client.zone or not address:
        return UNASSIGNED_ZONE
    return client.zone


def _discover(session: Session, target: date) -> "OrderedDict[str, List[DeliveryStop]]":
    """Every scheduled stop for a date, bucketed by zone in discovery order."""
    orders = _orders_for_date(session, target)
    portal_dates = {
        row.client_name: list(row.selected_dates or [])
        for row in session.query(ClientPortalData)
    }
    completed = {
        stop_key
        for (stop_key,) in session.query(DeliveryLogEntry.stop_key).filter(
            DeliveryLogEntry.delivery_date == target
        )
    }

    buckets: "OrderedDict[str, List[DeliveryStop]]" = OrderedDict()
    for client in session.query(Client).order_by(Client.name):
        if not _is_scheduled(client, target, portal_dates, orders):
            continue
        order = orders.get(client.name)
        for stop_key, address, contact_names in client_stops(client, client.name):
            zone = _zone_for(client, address)
            buckets.setdefault(zone, []).append(
                DeliveryStop(
                    stop_key=stop_key,
                    client_name=client.name,
                    display_name=client.label,
                    address=address,
                    zone=zone,
                    contact_names=contact_names,
                    dishes=order.dish_names if order is not None else [],
                    portions=order.portions if order is not None else 0,
                    status=order.status if order is not None else None,
                    completed=stop_key in completed,
                )
            )
    return buckets


def _route_order(session: Session, zone: str, target: date) -> Optional[RouteOrder]:
    return (
        session.query(RouteOrder)
        .filter(RouteOrder.route_date == target, RouteOrder.zone == zone)
        .first()
    )


def _ensure_route_order(session: Session, zone: str, target: date) -> RouteOrder:
    row = _route_order(session, zone, target)
    if row is None:
        row = RouteOrder(route_date=target, zone=zone, stop_keys=[], time_windows={})
        session.add(row)
    return row


def build_stops(zone: str, delivery_date, session=None) -> List[DeliveryStop]:
    """
    Stops of one zone for a date, in discovery (client name) order.

    Args:
        zone: Zone name, or "Unassigned"
        delivery_date: Date of the route

    Returns:
        List of DeliveryStop, one per client per distinct address
    """
    target = parse_date(delivery_date)
    cm = nullcontext(session) if session is not None else session_scope()
    with cm as session:
        return _discover(session, target).get(zone, [])


def zones_for_date(delivery_date, session=None) -> List[str]:
    """Zones with at least one scheduled stop, "Unassigned" last."""
    target = parse_date(delivery_date)
    cm = nullcontext(session) if session is not None else session_scope()
    with cm as session:
        buckets = _discover(session, target)
        zones = sorted(z for z in buckets if z != UNASSIGNED_ZONE)
        if UNASSIGNED_ZONE in buckets:
            zones.append(UNASSIGNED_ZONE)
        return zones


def _apply_order(stops: List[DeliveryStop], saved_keys: List[str]) -> List[DeliveryStop]:
    by_key = OrderedDict((stop.stop_key, stop) for stop in stops)
    ordered = [by_key.pop(key) for key in saved_keys if key in by_key]
    ordered.extend(by_key.values())
    return ordered


def _ordered_impl(session: Session, zone: str, target: date) -> List[DeliveryStop]:
    stops = _discover(session, target).get(zone, [])
    row = _route_order(session, zone, target)
    if row is None:
        return stops
    ordered = _apply_order(stops, list(row.stop_keys or []))
    windows = row.time_windows or {}
    for stop in ordered:
        stop.time_window = windows.get(stop.stop_key)
    return ordered


def ordered_stops(zone: str, delivery_date, session=None) -> List[DeliveryStop]:
    """
    Stops of a zone in their explicit order.

    Saved keys come first; new stops follow in discovery order. Saved keys
    without a current stop are skipped.
    """
    target = parse_date(delivery_date)
    cm = nullcontext(session) if session is not None else session_scope()
    with cm as session:
        return _ordered_impl(session, zone, target)


# =============================================================================
# Editing the order
# =============================================================================


def move_stop(zone: str, delivery_date, from_key: str, to_key: str, session=None) -> List[str]:
    """
    Move one stop to the position currently held by another.

    The stop at from_key is removed and reinserted at to_key's index. The
    complete resulting key list replaces the stored order.

    Returns:
        The new ordered list of stop keys

    Raises:
        StopNotFound: If either key is not a current stop of the route
    """
    target = parse_date(delivery_date)
    cm = nullcontext(session) if session is not None else session_scope()
    with cm as session:
        keys = [stop.stop_key for stop in _ordered_impl(session, zone, target)]
        for key in (from_key, to_key):
            if key not in keys:
                raise StopNotFound(key)

        to_index = keys.index(to_key)
        keys.remove(from_key)
        keys.insert(to_index, from_key)

        row = _ensure_route_order(session, zone, target)
        stale = [key for key in (row.stop_keys or []) if key not in keys]
        row.stop_keys = keys + stale
        session.flush()

        log_operation(
            logger,
            "move_stop",
            "success",
            zone=zone,
            route_date=target.isoformat(),
            from_key=from_key,
            to_key=to_key,
        )
        return keys


reorder = move_stop


def set_time_window(
    zone: str,
    delivery_date,
    stop_key: str,
    window: Optional[str],
    session=None,
) -> Dict[str, str]:
    """
    Assign (or clear, with None or "") the time window of a stop.

    Returns:
        The route's stop key -> window mapping after the change

    Raises:
        ValidationError: If window is not one of the 30-minute slots
        StopNotFound: If stop_key is not a current stop of the route
    """
    if window and window not in ROUTE_TIME_WINDOWS:
        raise ValidationError([f"Time window must be one of: {', '.join(ROUTE_TIME_WINDOWS)}"])

    target = parse_date(delivery_date)
    cm = nullcontext(session) if session is not None else session_scope()
    with cm as session:
        keys = [stop.stop_key for stop in _ordered_impl(session, zone, target)]
        if stop_key not in keys:
            raise StopNotFound(stop_key)

        row = _ensure_route_order(session, zone, target)
        if not row.stop_keys:
            row.stop_keys = keys
        windows = dict(row.time_windows or {})
        if window:
            windows[stop_key] = window
        else:
            windows.pop(stop_key, None)
        row.time_windows = windows
        session.flush()
        return windows


# =============================================================================
# Snapshots
# =============================================================================


def save_route(zone: str, delivery_date, now=None, session=None) -> RouteSaveResult:
    """Snapshot the routable stops of a zone for drivers.

    Transaction boundary: single write, replacing any earlier snapshot for
    the same (date, zone).

    Routable stops are those whose order is approved, ready or delivered.
    With no routable stop nothing is written and the result carries the
    reason.

    Returns:
        RouteSaveResult
    """
    target = parse_date(delivery_date)
    cm = nullcontext(session) if session is not None else session_scope()
    with cm as session:
        routable = [stop for stop in _ordered_impl(session, zone, target) if stop.routable]
        if not routable:
            reason = (
                f"No approved, ready or delivered orders in zone '{zone}' "
                f"on {target.isoformat()}"
            )
            log_operation(
                logger,
                "save_route",
                "no_routable_stops",
                level=logging.WARNING,
                zone=zone,
                route_date=target.isoformat(),
            )
            return RouteSaveResult(route_date=target, zone=zone, saved=False, reason=reason)

        stamp = to_naive_utc(now or utc_now())
        row = (
            session.query(SavedRoute)
            .filter(SavedRoute.route_date == target, SavedRoute.zone == zone)
            .first()
        )
        if row is None:
            row = SavedRoute(route_date=target, zone=zone)
            session.add(row)
        row.stops = [stop.to_snapshot(sequence) for sequence, stop in enumerate(routable, start=1)]
        row.saved_at = stamp
        session.flush()

        log_operation(
            logger,
            "save_route",
            "success",
            zone=zone,
            route_date=target.isoformat(),
            stop_count=len(routable),
        )
        return RouteSaveResult(
            route_date=target,
            zone=zone,
            saved=True,
            stop_count=len(routable),
            saved_at=stamp,
        )


def get_saved_route(zone: str, delivery_date, session=None) -> Optional[SavedRoute]:
    target = parse_date(delivery_date)
    cm = nullcontext(session) if session is not None else session_scope()
    with cm as session:
        return (
            session.query(SavedRoute)
            .filter(SavedRoute.route_date == target, SavedRoute.zone == zone)
            .first()
        )


def driver_stops(zone: str, delivery_date, session=None) -> List[DeliveryStop]:
    """
    What a driver sees for a zone and date.

    The saved snapshot wins when one exists (in its sequence); otherwise the
    live routable stops are returned in their explicit order. Completion
    flags always reflect the delivery log.
    """
    target = parse_date(delivery_date)
    cm = nullcontext(session) if session is not None else session_scope()
    with cm as session:
        saved = get_saved_route(zone, target, session=session)
        if saved is None or not saved.stops:
            return [stop for stop in _ordered_impl(session, zone, target) if stop.routable]

        completed = {
            stop_key
            for (stop_key,) in session.query(DeliveryLogEntry.stop_key).filter(
                DeliveryLogEntry.delivery_date == target
            )
        }
        orders = _orders_for_date(session, target)
        stops = []
        for snap in sorted(saved.stops, key=lambda s: s.get("sequence", 0)):
            order = orders.get(snap["client_name"])
            stops.append(
                DeliveryStop(
                    stop_key=snap["stop_key"],
                    client_name=snap["client_name"],
                    display_name=snap.get("display_name") or snap["client_name"],
                    address=snap.get("address") or "",
                    zone=zone,
                    contact_names=list(snap.get("contact_names") or []),
                    dishes=list(snap.get("dishes") or []),
                    portions=snap.get("portions") or 0,
                    status=order.status if order is not None else None,
                    time_window=snap.get("time_window"),
                    completed=snap["stop_key"] in completed,
                )
            )
        return stops


# =============================================================================
# Navigation
# =============================================================================


def navigation_link(zone: str, delivery_date, include_depot: bool = True, session=None) -> str:
    """
    Google Maps directions URL visiting the zone's stops in order.

    The depot (admin route start address) is the first waypoint when set
    and include_depot is True.

    Raises:
        ValidationError: If no stop of the route has an address
    """
    target = parse_date(delivery_date)
    cm = nullcontext(session) if session is not None else session_scope()
    with cm as session:
        addresses = []
        for stop in _ordered_impl(session, zone, target):
            if stop.address and stop.address not in addresses:
                addresses.append(stop.address)
        if not addresses:
            raise ValidationError([f"No addresses found for zone '{zone}' on {target.isoformat()}"])

        depot = get_route_start_address(session=session) if include_depot else None
        waypoints = ([depot] if depot else []) + addresses
        return MAPS_DIRECTIONS_URL + "/".join(quote(w, safe="") for w in waypoints)
