"""
Portal Service - the data contract of the client self-service portal.

Clients reach their portal through a slug derived from their display name
("Tim Brown" -> "tim-brown"), falling back to their raw name. The portal
lets them pick delivery dates (deadline, blocked-date and spacing rules
apply) and tells them where their current order stands.
"""

from contextlib import nullcontext
from datetime import datetime, time, timedelta
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from src.models import Client, ClientPortalData, DeliveryLogEntry, OrderInstance, OrderStatus
from src.services.database import session_scope
from src.services.deadline_service import (
    enumerate_candidates,
    is_editable,
    parse_date,
    require_editable,
    validate_spacing,
)
from src.services.dto import PortalStatus
from src.services.exceptions import ClientNotFound, ValidationError
from src.services.logging_utils import get_service_logger, log_operation
from src.services.settings_service import get_blocked_dates
from src.utils.constants import (
    CANDIDATE_HORIZON_DAYS,
    CLIENT_STATUS_PAUSED,
    PORTAL_CANDIDATE_COUNT,
    PORTAL_PICKER_DAYS,
)
from src.utils.datetime_utils import local_now
from src.utils.slug_utils import create_portal_slug

logger = get_service_logger(__name__)

# Portal status values, in evaluation priority order
STATUS_PAUSED = "paused"
STATUS_OVERDUE = "overdue"
STATUS_NEEDS_PAYMENT = "needs_payment"
STATUS_DELIVERED = "delivered"
STATUS_DELIVERY_DAY = "delivery_day"
STATUS_MENU_READY = "menu_ready"
STATUS_PICK_DATES = "pick_dates"
STATUS_NO_UPCOMING = "no_upcoming"

_PORTAL_FLAGS = ("needs_date_selection", "pending_payment", "payment_overdue")


def _get_client(session: Session, client_name: str) -> Client:
    client = session.query(Client).filter(Client.name == client_name).first()
    if client is None:
        raise ClientNotFound(client_name)
    return client


def _portal_row(session: Session, client_name: str, create: bool = False) -> Optional[ClientPortalData]:
    row = session.query(ClientPortalData).filter(ClientPortalData.client_name == client_name).first()
    if row is None and create:
        row = ClientPortalData(client_name=client_name, selected_dates=[], ingredient_picks={})
        session.add(row)
    return row


def resolve_client(slug: str, session=None) -> Client:
    """
    Find the client behind a portal slug.

    Matching is case-insensitive against the display-name slug first and
    the raw-name slug second, per client; the first client (in creation
    order) that matches either way wins.

    Raises:
        ClientNotFound: If no client matches
    """
    wanted = (slug or "").strip().lower()
    cm = nullcontext(session) if session is not None else session_scope()
    with cm as session:
        if wanted:
            for client in session.query(Client).order_by(Client.id):
                if client.display_name and create_portal_slug(client.display_name) == wanted:
                    return client
                if create_portal_slug(client.name) == wanted:
                    return client
        raise ClientNotFound(slug)


def get_portal_data(client_name: str, session=None) -> Optional[ClientPortalData]:
    cm = nullcontext(session) if session is not None else session_scope()
    with cm as session:
        return _portal_row(session, client_name)


def update_portal_data(client_name: str, data: Dict, session=None) -> ClientPortalData:
    """
    Update the admin flags, notes or ingredient picks of a client's portal.

    Raises:
        ClientNotFound: If the client is not on file
    """
    cm = nullcontext(session) if session is not None else session_scope()
    with cm as session:
        _get_client(session, client_name)
        row = _portal_row(session, client_name, create=True)
        for flag in _PORTAL_FLAGS:
            if flag in data:
                setattr(row, flag, bool(data[flag]))
        if "notes" in data:
            row.notes = data["notes"]
        if "ingredient_picks" in data:
            row.ingredient_picks = dict(data["ingredient_picks"] or {})
        session.flush()
        return row


def candidate_dates(
    client_name: str,
    today=None,
    count: int = PORTAL_CANDIDATE_COUNT,
    now=None,
    session=None,
) -> List:
    """
    Dates the client may pick from in the portal.

    Clients with a delivery day get the next count matching weekdays within
    the candidate horizon. Clients without one get every weekday from
    tomorrow through the next two weeks. Blocked dates and dates whose edit
    deadline has passed (relative to now, or the start of today) are never
    offered.
    """
    today = parse_date(today) if today is not None else local_now().date()
    now = now or datetime.combine(today, time.min)
    tomorrow = today + timedelta(days=1)

    cm = nullcontext(session) if session is not None else session_scope()
    with cm as session:
        client = _get_client(session, client_name)
        blocked = get_blocked_dates(session=session)

        if client.delivery_day:
            found = []
            for candidate in enumerate_candidates(
                tomorrow,
                client.delivery_day,
                exclude=blocked,
                count=CANDIDATE_HORIZON_DAYS,
                horizon_days=CANDIDATE_HORIZON_DAYS,
            ):
                if is_editable(candidate, now):
                    found.append(candidate)
                if len(found) >= count:
                    break
            return found

        days = (tomorrow + timedelta(days=offset) for offset in range(PORTAL_PICKER_DAYS))
        return [
            d
            for d in days
            if d.weekday() < 5 and d not in blocked and is_editable(d, now)
        ]


def select_dates(client_name: str, dates, now=None, session=None) -> List:
    """
    Store the delivery dates a client picked in the portal.

    The selection replaces the previous one and clears the admin's
    needs-date-selection flag.

    Returns:
        The stored dates in ascending order

    Raises:
        ValidationError: Empty selection or a blocked date
        DeadlinePassedError: If any date's edit deadline has passed
        SpacingError: If a biweekly client's dates are under 14 days apart
    """
    picked = [parse_date(d) for d in (dates or [])]
    if not picked:
        raise ValidationError(["Select at least one delivery date"])

    cm = nullcontext(session) if session is not None else session_scope()
    with cm as session:
        client = _get_client(session, client_name)
        blocked = set(get_blocked_dates(session=session))
        errors = [f"{d.isoformat()} is not available" for d in sorted(set(picked)) if d in blocked]
        if errors:
            raise ValidationError(errors)
        for d in picked:
            require_editable(d, now)
        ordered = validate_spacing(picked, client.frequency)

        row = _portal_row(session, client_name, create=True)
        row.selected_dates = [d.isoformat() for d in ordered]
        row.needs_date_selection = False
        session.flush()

        log_operation(logger, "select_dates", "success", client_name=client_name, count=len(ordered))
        return ordered


def portal_status(client_name: str, today=None, session=None) -> PortalStatus:
    """
    What the client's portal should show today.

    Evaluated in order: paused, overdue payment, pending payment, delivered
    today, ready for delivery today, upcoming menu, date selection needed,
    nothing upcoming.
    """
    today = parse_date(today) if today is not None else local_now().date()
    cm = nullcontext(session) if session is not None else session_scope()
    with cm as session:
        client = _get_client(session, client_name)
        portal = _portal_row(session, client_name)
        selected = sorted(
            d for d in (parse_date(s) for s in (portal.selected_dates if portal else [])) if d >= today
        )
        upcoming = (
            session.query(OrderInstance)
            .filter(
                OrderInstance.client_name == client_name,
                OrderInstance.delivery_date >= today,
                OrderInstance.status != OrderStatus.DELIVERED,
            )
            .order_by(OrderInstance.delivery_date)
            .all()
        )
        next_date = upcoming[0].delivery_date if upcoming else (selected[0] if selected else None)

        def result(status: str) -> PortalStatus:
            return PortalStatus(client_name=client_name, status=status, next_date=next_date, dates=selected)

        if client.status == CLIENT_STATUS_PAUSED:
            return result(STATUS_PAUSED)
        if portal is not None and portal.payment_overdue:
            return result(STATUS_OVERDUE)
        if portal is not None and portal.pending_payment:
            return result(STATUS_NEEDS_PAYMENT)

        delivered_today = (
            session.query(DeliveryLogEntry.id)
            .filter(DeliveryLogEntry.client_name == client_name, DeliveryLogEntry.delivery_date == today)
            .first()
        )
        if delivered_today:
            return result(STATUS_DELIVERED)
        if any(
            o.delivery_date == today and o.status is OrderStatus.READY_FOR_DELIVERY for o in upcoming
        ):
            return result(STATUS_DELIVERY_DAY)
        if upcoming:
            return result(STATUS_MENU_READY)
        if portal is not None and portal.needs_date_selection:
            return result(STATUS_PICK_DATES)
        return result(STATUS_NO_UPCOMING)


def client_history(client_name: str, session=None) -> List[OrderInstance]:
    """Delivered orders of a client, most recent first."""
    cm = nullcontext(session) if session is not None else session_scope()
    with cm as session:
        return (
            session.query(OrderInstance)
            .filter(
                OrderInstance.client_name == client_name,
                OrderInstance.status == OrderStatus.DELIVERED,
            )
            .order_by(OrderInstance.delivery_date.desc())
            .all()
        )
