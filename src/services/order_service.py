"""Order Service - the order lifecycle state machine.

One OrderInstance exists per (client name, delivery date):

    (none) -> MENU_PENDING -> MENU_APPROVED -> READY_FOR_DELIVERY -> DELIVERED
                                                      ^                  |
                                                      +---- undo --------+

- create_menu_item: deadline-gated; at most one non-terminal order per key
- approve_menu_item: MENU_PENDING -> MENU_APPROVED (then readiness check)
- dish completion (kitchen_service): MENU_APPROVED -> READY_FOR_DELIVERY
- complete_stop: one delivery log entry per stop; the order is delivered
  once every distinct address of the client has been completed
- undo_completion: LIFO per (date, zone); restores a delivered order to ready

Session Management Pattern:
- All public functions accept session=None parameter
- If session provided, use it directly
- If session is None, create a new session via session_scope()

Completion and undo validate every guard before the first write, so a
failed guard leaves the order and the delivery log untouched.
"""

from contextlib import nullcontext
from datetime import date
from typing import Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from src.models import Client, DeliveryLogEntry, OrderInstance, OrderStatus
from src.services import kitchen_service
from src.services.database import session_scope
from src.services.deadline_service import parse_date, require_editable
from src.services.dto import CompletionResult, StopProgress, UndoResult
from src.services.exceptions import (
    ClientNotFound,
    OrderNotFound,
    OrderStateError,
    StopNotFound,
    UndoNotPermitted,
    ValidationError,
)
from src.services.logging_utils import get_service_logger, log_operation
from src.services.settings_service import get_blocked_dates
from src.utils.constants import (
    DELIVERY_PROBLEMS,
    HANDOFF_PORCH,
    HANDOFF_TYPES,
    MAX_NOTES_LENGTH,
    PROBLEM_OTHER,
    UNASSIGNED_ZONE,
)
from src.utils.datetime_utils import to_naive_utc, utc_now
from src.utils.slug_utils import make_stop_key

logger = get_service_logger(__name__)

DISH_FIELDS = ("protein", "veg", "starch", "extras")


# =============================================================================
# Lookups
# =============================================================================


def client_stops(client: Optional[Client], client_name: str) -> List[Tuple[str, str, List[str]]]:
    """
    Expand a client into its delivery stops.

    Returns:
        List of (stop_key, address, contact_names), one per distinct
        normalized address. A client without any address (or no longer on
        file) yields a single stop with an empty address.
    """
    if client is not None:
        stops = []
        for normalized, address, contacts in client.unique_addresses():
            names = [c.display_name or c.full_name for c in contacts if c.display_name or c.full_name]
            stops.append((make_stop_key(client_name, normalized), address, names))
        if stops:
            return stops
    return [(make_stop_key(client_name, None), "", [])]


def _find_open_order(
    session: Session, client_name: str, delivery_date: date
) -> Optional[OrderInstance]:
    return (
        session.query(OrderInstance)
        .filter(
            OrderInstance.client_name == client_name,
            OrderInstance.delivery_date == delivery_date,
            OrderInstance.status != OrderStatus.DELIVERED,
        )
        .first()
    )


def _find_delivered_order(
    session: Session, client_name: str, delivery_date: date
) -> Optional[OrderInstance]:
    return (
        session.query(OrderInstance)
        .filter(
            OrderInstance.client_name == client_name,
            OrderInstance.delivery_date == delivery_date,
            OrderInstance.status == OrderStatus.DELIVERED,
        )
        .order_by(OrderInstance.completed_at.desc(), OrderInstance.id.desc())
        .first()
    )


def _get_order_or_raise(session: Session, client_name: str, delivery_date: date) -> OrderInstance:
    order = _find_open_order(session, client_name, delivery_date)
    if order is None:
        order = _find_delivered_order(session, client_name, delivery_date)
    if order is None:
        raise OrderNotFound(client_name, delivery_date)
    return order


def _completed_keys(session: Session, client_name: str, delivery_date: date) -> List[str]:
    rows = (
        session.query(DeliveryLogEntry.stop_key)
        .filter(
            DeliveryLogEntry.client_name == client_name,
            DeliveryLogEntry.delivery_date == delivery_date,
        )
        .order_by(DeliveryLogEntry.completed_at, DeliveryLogEntry.id)
        .all()
    )
    keys = []
    for (stop_key,) in rows:
        if stop_key not in keys:
            keys.append(stop_key)
    return keys


def get_order(client_name: str, delivery_date, session=None) -> OrderInstance:
    """
    Get the order for a (client, date) key.

    The open (non-delivered) order wins over a delivered one.

    Raises:
        OrderNotFound: If no order exists for the key
    """
    target = parse_date(delivery_date)
    cm = nullcontext(session) if session is not None else session_scope()
    with cm as session:
        return _get_order_or_raise(session, client_name, target)


def list_orders(
    status: Optional[OrderStatus] = None,
    client_name: Optional[str] = None,
    delivery_date=None,
    session=None,
) -> List[OrderInstance]:
    """List orders by date then client, optionally filtered."""
    cm = nullcontext(session) if session is not None else session_scope()
    with cm as session:
        query = session.query(OrderInstance)
        if status is not None:
            query = query.filter(OrderInstance.status == OrderStatus(status))
        if client_name is not None:
            query = query.filter(OrderInstance.client_name == client_name)
        if delivery_date is not None:
            query = query.filter(OrderInstance.delivery_date == parse_date(delivery_date))
        return query.order_by(OrderInstance.delivery_date, OrderInstance.client_name).all()


# =============================================================================
# Menu planning
# =============================================================================


def _dish_values(data: Dict) -> Dict:
    values = {}
    for field_name in ("protein", "veg", "starch"):
        if field_name in data:
            values[field_name] = (data[field_name] or "").strip() or None
    if "extras" in data:
        extras = data["extras"] or []
        if isinstance(extras, str):
            extras = [extras]
        values["extras"] = [e.strip() for e in extras if e and e.strip()]
    return values


def create_menu_item(
    data: Dict,
    now=None,
    enforce_deadline: bool = True,
    session=None,
) -> OrderInstance:
    """
    Plan a menu for one client and date (status MENU_PENDING).

    Args:
        data: clientName/client_name, date, protein, veg, starch, extras and
            optional portions (defaults to the client's portions)
        now: Reference time for the deadline check (defaults to local now)
        enforce_deadline: False lets the admin plan past the deadline

    Returns:
        Created OrderInstance

    Raises:
        ValidationError: Missing client/date/dishes, blocked date, or an open
            order already exists for the key
        DeadlinePassedError: If the date's edit deadline has passed
        ClientNotFound: If the client is not on file
    """
    client_name = (data.get("clientName") or data.get("client_name") or "").strip()
    raw_date = data.get("date") or data.get("delivery_date")
    errors = []
    if not client_name:
        errors.append("Client is required")
    if not raw_date:
        errors.append("Date is required")
    dishes = _dish_values(data)
    if not any(dishes.get(f) for f in DISH_FIELDS):
        errors.append("At least one dish is required")
    if errors:
        raise ValidationError(errors)

    target = parse_date(raw_date)
    if enforce_deadline:
        require_editable(target, now)

    cm = nullcontext(session) if session is not None else session_scope()
    with cm as session:
        client = session.query(Client).filter(Client.name == client_name).first()
        if client is None:
            raise ClientNotFound(client_name)

        if target in get_blocked_dates(session=session):
            raise ValidationError([f"{target.isoformat()} is a blocked date"])

        if _find_open_order(session, client_name, target) is not None:
            raise ValidationError(
                [f"'{client_name}' already has an open order for {target.isoformat()}"]
            )

        portions = data.get("portions") or client.portions
        order = OrderInstance(
            client_name=client_name,
            delivery_date=target,
            protein=dishes.get("protein"),
            veg=dishes.get("veg"),
            starch=dishes.get("starch"),
            extras=dishes.get("extras", []),
            portions=int(portions),
            status=OrderStatus.MENU_PENDING,
            notes=data.get("notes"),
        )
        session.add(order)
        session.flush()

        log_operation(
            logger,
            "create_menu_item",
            "success",
            client_name=client_name,
            delivery_date=target.isoformat(),
        )
        return order


def update_menu_item(
    client_name: str,
    delivery_date,
    changes: Dict,
    now=None,
    enforce_deadline: bool = True,
    session=None,
) -> OrderInstance:
    """
    Edit dishes or portions of a pending menu item.

    Raises:
        OrderNotFound: If no open order exists for the key
        OrderStateError: If the order is no longer MENU_PENDING
        DeadlinePassedError: If the date's edit deadline has passed
    """
    target = parse_date(delivery_date)
    if enforce_deadline:
        require_editable(target, now)

    cm = nullcontext(session) if session is not None else session_scope()
    with cm as session:
        order = _get_order_or_raise(session, client_name, target)
        if order.status is not OrderStatus.MENU_PENDING:
            raise OrderStateError(order.order_key, order.status, "edit menu (must be menu_pending)")

        for field_name, value in _dish_values(changes).items():
            setattr(order, field_name, value)
        if changes.get("portions"):
            order.portions = int(changes["portions"])
        if "notes" in changes:
            order.notes = changes["notes"]

        if not order.dish_names:
            raise ValidationError(["At least one dish is required"])
        session.flush()
        log_operation(
            logger, "update_menu_item", "success", client_name=client_name, delivery_date=target.isoformat()
        )
        return order


def delete_menu_item(
    client_name: str,
    delivery_date,
    now=None,
    enforce_deadline: bool = True,
    session=None,
) -> None:
    """
    Remove a menu item that has not reached the delivery stage.

    Raises:
        OrderNotFound: If no open order exists for the key
        OrderStateError: If the order is ready or delivered
        DeadlinePassedError: If the date's edit deadline has passed
    """
    target = parse_date(delivery_date)
    if enforce_deadline:
        require_editable(target, now)

    cm = nullcontext(session) if session is not None else session_scope()
    with cm as session:
        order = _find_open_order(session, client_name, target)
        if order is None:
            raise OrderNotFound(client_name, target)
        if order.status not in (OrderStatus.MENU_PENDING, OrderStatus.MENU_APPROVED):
            raise OrderStateError(order.order_key, order.status, "delete menu item")
        session.delete(order)
        log_operation(
            logger, "delete_menu_item", "success", client_name=client_name, delivery_date=target.isoformat()
        )


def _approve_impl(client_name: str, target: date, session: Session, now) -> OrderInstance:
    order = _find_open_order(session, client_name, target)
    if order is None:
        raise OrderNotFound(client_name, target)
    if order.status is not OrderStatus.MENU_PENDING:
        raise OrderStateError(order.order_key, order.status, "approve menu (must be menu_pending)")

    order.status = OrderStatus.MENU_APPROVED
    order.approved_at = to_naive_utc(now or utc_now())
    session.flush()

    # Dishes already finished this cycle count toward the new order
    kitchen_service.evaluate_readiness(session, [order], now=now)
    return order


def approve_menu_item(client_name: str, delivery_date, now=None, session=None) -> OrderInstance:
    """
    Approve a pending menu item, moving it into the production cycle.

    Raises:
        OrderNotFound: If no open order exists for the key
        OrderStateError: If the order is not MENU_PENDING
    """
    target = parse_date(delivery_date)
    cm = nullcontext(session) if session is not None else session_scope()
    with cm as session:
        order = _approve_impl(client_name, target, session, now)
        log_operation(
            logger,
            "approve_menu_item",
            "success",
            client_name=client_name,
            delivery_date=target.isoformat(),
            status=order.status.value,
        )
        return order


def approve_all(delivery_date=None, now=None, session=None) -> List[OrderInstance]:
    """Approve every pending menu item, optionally for one date only."""
    cm = nullcontext(session) if session is not None else session_scope()
    with cm as session:
        pending = list_orders(OrderStatus.MENU_PENDING, delivery_date=delivery_date, session=session)
        approved = [
            _approve_impl(order.client_name, order.delivery_date, session, now) for order in pending
        ]
        log_operation(logger, "approve_all", "success", count=len(approved))
        return approved


# =============================================================================
# Delivery completion
# =============================================================================


def _validate_handoff(
    handoff_type: str,
    photo_ref: Optional[str],
    problem: Optional[str],
    problem_note: Optional[str],
) -> None:
    errors = []
    if handoff_type not in HANDOFF_TYPES:
        errors.append(f"Handoff type must be one of: {', '.join(HANDOFF_TYPES)}")
    if problem and problem not in DELIVERY_PROBLEMS:
        errors.append(f"Unknown problem '{problem}'")
    if problem == PROBLEM_OTHER and not (problem_note or "").strip():
        errors.append("A note is required when the problem is 'Other'")
    if problem_note and len(problem_note) > MAX_NOTES_LENGTH:
        errors.append(f"Problem note must be at most {MAX_NOTES_LENGTH} characters")
    if handoff_type == HANDOFF_PORCH and not problem and not photo_ref:
        errors.append("A photo is required for porch drop-offs")
    if errors:
        raise ValidationError(errors)


def order_stop_progress(client_name: str, delivery_date, session=None) -> StopProgress:
    """Completed versus total stops for the order at a (client, date) key."""
    target = parse_date(delivery_date)
    cm = nullcontext(session) if session is not None else session_scope()
    with cm as session:
        order = _get_order_or_raise(session, client_name, target)
        client = session.query(Client).filter(Client.name == client_name).first()
        stops = client_stops(client, client_name)
        current_keys = {s[0] for s in stops}
        return StopProgress(
            order_key=order.order_key,
            status=order.status,
            completed_keys=[k for k in _completed_keys(session, client_name, target) if k in current_keys],
            total_stops=len(stops),
        )


def _complete_impl(
    session: Session,
    client_name: str,
    target: date,
    stop_key: Optional[str],
    handoff_type: str,
    photo_ref: Optional[str],
    problem: Optional[str],
    problem_note: Optional[str],
    driver_name: Optional[str],
    zone: Optional[str],
    bags_returned: bool,
    contact_name: Optional[str],
    now,
) -> CompletionResult:
    client = session.query(Client).filter(Client.name == client_name).first()
    stops = client_stops(client, client_name)
    if stop_key is None:
        if len(stops) != 1:
            raise ValidationError(["A stop key is required for clients with several addresses"])
        stop_key = stops[0][0]
    stop = next((s for s in stops if s[0] == stop_key), None)

    order = _find_open_order(session, client_name, target)
    completed = _completed_keys(session, client_name, target)
    # Keys logged for addresses the client no longer has do not count
    current_keys = {s[0] for s in stops}
    completed_current = [k for k in completed if k in current_keys]

    if order is None:
        delivered = _find_delivered_order(session, client_name, target)
        if delivered is None:
            raise OrderNotFound(client_name, target)
        return CompletionResult(
            order_key=delivered.order_key,
            stop_key=stop_key,
            status=delivered.status,
            completed_stops=len(completed_current),
            total_stops=len(stops),
            no_op=True,
        )

    if stop_key in completed:
        return CompletionResult(
            order_key=order.order_key,
            stop_key=stop_key,
            status=order.status,
            completed_stops=len(completed_current),
            total_stops=len(stops),
            no_op=True,
        )

    if order.status is not OrderStatus.READY_FOR_DELIVERY:
        raise OrderStateError(order.order_key, order.status, "complete delivery (must be ready_for_delivery)")
    if stop is None:
        raise StopNotFound(stop_key)
    _validate_handoff(handoff_type, photo_ref, problem, problem_note)

    # All guards passed; from here on every write happens together
    stamp = to_naive_utc(now or utc_now())
    entry = DeliveryLogEntry(
        delivery_date=target,
        client_name=client_name,
        contact_name=contact_name or (stop[2][0] if stop[2] else None),
        stop_key=stop_key,
        address=stop[1] or None,
        zone=zone or (client.zone if client is not None and client.zone else UNASSIGNED_ZONE),
        driver_name=driver_name,
        completed_at=stamp,
        handoff_type=handoff_type,
        photo_ref=photo_ref,
        bags_returned=bool(bags_returned),
        problem=problem or None,
        problem_note=(problem_note or "").strip() or None,
    )
    session.add(entry)

    completed_count = len(completed_current) + 1
    moved = completed_count >= len(stops)
    if moved:
        order.status = OrderStatus.DELIVERED
        order.completed_at = stamp
    session.flush()

    return CompletionResult(
        order_key=order.order_key,
        stop_key=stop_key,
        status=order.status,
        completed_stops=completed_count,
        total_stops=len(stops),
        moved_to_history=moved,
        entry_id=entry.id,
    )


def complete_stop(
    client_name: str,
    delivery_date,
    stop_key: Optional[str] = None,
    handoff_type: str = "hand",
    photo_ref: Optional[str] = None,
    problem: Optional[str] = None,
    problem_note: Optional[str] = None,
    driver_name: Optional[str] = None,
    zone: Optional[str] = None,
    bags_returned: bool = False,
    contact_name: Optional[str] = None,
    now=None,
    session=None,
) -> CompletionResult:
    """Record delivery of one stop of a ready order.

    Transaction boundary: Multi-step operation (atomic).
    Steps executed atomically:
        1. Validate order state, stop membership and handoff evidence
        2. Append one DeliveryLogEntry
        3. If every distinct address is now completed, mark the order
           DELIVERED and stamp completed_at

    Idempotent per (client, date): an already delivered order, or a stop
    that is already logged, returns a no-op result without writing.

    Args:
        client_name: Client key
        delivery_date: Delivery date
        stop_key: Stop to complete; may be omitted for single-stop clients
        handoff_type: "hand" or "porch"
        photo_ref: Opaque photo reference (required for porch unless a
            problem is reported)
        problem: Problem code from DELIVERY_PROBLEMS
        problem_note: Details; required when problem is "Other"
        driver_name: Driver completing the stop
        zone: Zone of the route (defaults to the client's zone)
        bags_returned: Whether the client handed back their bags
        contact_name: Contact met at the door
        now: Completion timestamp (defaults to current UTC time)
        session: Optional session for transaction sharing

    Returns:
        CompletionResult

    Raises:
        OrderNotFound: If no order exists for the key
        OrderStateError: If the order is not READY_FOR_DELIVERY
        StopNotFound: If stop_key is not one of the client's stops
        ValidationError: If handoff evidence is missing or invalid
    """
    target = parse_date(delivery_date)
    cm = nullcontext(session) if session is not None else session_scope()
    with cm as session:
        result = _complete_impl(
            session,
            client_name,
            target,
            stop_key,
            handoff_type,
            photo_ref,
            problem,
            problem_note,
            driver_name,
            zone,
            bags_returned,
            contact_name,
            now,
        )

    if result.no_op:
        outcome = "no_op"
    elif result.moved_to_history:
        outcome = "delivered"
    else:
        outcome = "stop_completed"
    log_operation(
        logger,
        "complete_stop",
        outcome,
        client_name=client_name,
        delivery_date=target.isoformat(),
        stop_key=result.stop_key,
        completed_stops=result.completed_stops,
        total_stops=result.total_stops,
    )
    return result


def _latest_entry(session: Session, delivery_date: date, zone: Optional[str]) -> Optional[DeliveryLogEntry]:
    query = session.query(DeliveryLogEntry).filter(DeliveryLogEntry.delivery_date == delivery_date)
    if zone is None:
        query = query.filter(DeliveryLogEntry.zone.is_(None))
    else:
        query = query.filter(DeliveryLogEntry.zone == zone)
    return query.order_by(DeliveryLogEntry.completed_at.desc(), DeliveryLogEntry.id.desc()).first()


def _undo_impl(session: Session, entry: DeliveryLogEntry) -> UndoResult:
    latest = _latest_entry(session, entry.delivery_date, entry.zone)
    client_name, target = entry.client_name, entry.delivery_date

    order = _find_open_order(session, client_name, target)
    restored = False
    if order is None:
        order = _find_delivered_order(session, client_name, target)
    if order is None:
        raise OrderNotFound(client_name, target)

    if latest is not None and latest.id != entry.id:
        raise UndoNotPermitted(order.order_key, order.status, latest.stop_key)

    if order.status is OrderStatus.DELIVERED:
        order.status = OrderStatus.READY_FOR_DELIVERY
        order.completed_at = None
        restored = True
    stop_key = entry.stop_key
    session.delete(entry)
    session.flush()

    return UndoResult(
        order_key=order.order_key,
        stop_key=stop_key,
        status=order.status,
        restored_from_history=restored,
    )


def undo_completion(client_name: str, delivery_date, stop_key: str, session=None) -> UndoResult:
    """Reverse the completion of a stop.

    Transaction boundary: Multi-step operation (atomic).
    Only the most recently completed stop of the same date and zone may be
    undone. Undo removes the log entry and, if the order had been
    delivered, returns it to READY_FOR_DELIVERY and clears completed_at.

    Raises:
        StopNotFound: If the stop has no completion logged for the date
        UndoNotPermitted: If a later completion exists in the same route
        OrderNotFound: If the order behind the entry no longer exists
    """
    target = parse_date(delivery_date)
    cm = nullcontext(session) if session is not None else session_scope()
    with cm as session:
        entry = (
            session.query(DeliveryLogEntry)
            .filter(
                DeliveryLogEntry.client_name == client_name,
                DeliveryLogEntry.delivery_date == target,
                DeliveryLogEntry.stop_key == stop_key,
            )
            .order_by(DeliveryLogEntry.completed_at.desc(), DeliveryLogEntry.id.desc())
            .first()
        )
        if entry is None:
            raise StopNotFound(stop_key)
        result = _undo_impl(session, entry)

    log_operation(
        logger,
        "undo_completion",
        "restored" if result.restored_from_history else "success",
        client_name=client_name,
        delivery_date=target.isoformat(),
        stop_key=stop_key,
    )
    return result


def undo_last_completion(delivery_date, zone: Optional[str], session=None) -> UndoResult:
    """
    Undo whatever stop was completed last on a (date, zone) route.

    Raises:
        StopNotFound: If nothing has been completed on the route
    """
    target = parse_date(delivery_date)
    cm = nullcontext(session) if session is not None else session_scope()
    with cm as session:
        latest = _latest_entry(session, target, zone)
        if latest is None:
            raise StopNotFound(f"{target.isoformat()}|{zone}")
        return undo_completion(latest.client_name, target, latest.stop_key, session=session)
