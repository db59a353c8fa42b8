"""
Client Service - subscription customers and their delivery preferences.

This service provides:
- Client CRUD keyed by unique client name
- Pause/resume of subscriptions
- Admin-set delivery dates (spacing-validated for biweekly clients)
- Subscription grouping for the weekly dashboard (paused, delivering this
  week, not this week) and renewals falling due

Incoming records are normalized once through normalize_client_record, so
legacy single-address and "persons" shapes never reach the rest of the code.
"""

from contextlib import nullcontext
from datetime import date, timedelta
from typing import Dict, List, Optional

from sqlalchemy import func

from src.models import Client, ClientContact, DeliveryLogEntry
from src.services.database import session_scope
from src.services.deadline_service import parse_date, validate_spacing, weekday_index
from src.services.exceptions import ClientNotFound, ValidationError
from src.services.logging_utils import get_service_logger, log_operation
from src.services.snapshot_service import normalize_client_record
from src.utils.constants import (
    CLIENT_STATUS_ACTIVE,
    CLIENT_STATUS_PAUSED,
    CLIENT_STATUSES,
    FREQUENCIES,
    FREQUENCY_BIWEEKLY,
    FREQUENCY_WEEKLY,
    MAX_NAME_LENGTH,
    RENEWAL_INTERVAL_DAYS,
)
from src.utils.datetime_utils import local_now, week_bounds

logger = get_service_logger(__name__)

_CLIENT_FIELDS = (
    "display_name",
    "delivery_day",
    "zone",
    "frequency",
    "portions",
    "meals_per_week",
    "status",
    "paused_date",
    "pickup",
    "address_less",
    "delivery_dates",
    "notes",
)


# ============================================================================
# Validation
# ============================================================================


def _validate_client(record: Dict) -> None:
    """Validate a normalized client record, raising ValidationError."""
    errors = []

    name = record.get("name") or ""
    if not name:
        errors.append("Name is required")
    elif len(name) > MAX_NAME_LENGTH:
        errors.append(f"Name must be at most {MAX_NAME_LENGTH} characters")
    elif "|" in name:
        errors.append("Name cannot contain '|'")

    if record.get("frequency") not in FREQUENCIES:
        errors.append(f"Frequency must be one of: {', '.join(FREQUENCIES)}")
    if record.get("status") not in CLIENT_STATUSES:
        errors.append(f"Status must be one of: {', '.join(CLIENT_STATUSES)}")
    if record.get("portions", 0) < 1:
        errors.append("Portions must be at least 1")

    if record.get("delivery_day"):
        try:
            weekday_index(record["delivery_day"])
        except ValidationError as e:
            errors.extend(e.errors)

    has_address = any((c.get("address") or "").strip() for c in record.get("contacts", []))
    if not has_address and not (record.get("pickup") or record.get("address_less")):
        errors.append("At least one contact with an address is required unless the client "
                      "is pickup or address-less")

    if errors:
        raise ValidationError(errors)

    validate_spacing(record.get("delivery_dates", []), record["frequency"])


def _apply_record(client: Client, record: Dict) -> None:
    for field_name in _CLIENT_FIELDS:
        if field_name in record:
            setattr(client, field_name, record[field_name])
    if record.get("paused_date"):
        client.paused_date = parse_date(record["paused_date"])

    client.contacts = [
        ClientContact(
            position=position,
            full_name=contact.get("full_name"),
            display_name=contact.get("display_name"),
            email=contact.get("email"),
            phone=contact.get("phone"),
            address=contact.get("address"),
        )
        for position, contact in enumerate(record.get("contacts", []))
    ]


def _get_client(name: str, session) -> Client:
    client = session.query(Client).filter(Client.name == name).first()
    if client is None:
        raise ClientNotFound(name)
    return client


# ============================================================================
# CRUD
# ============================================================================


def create_client(data: Dict, session=None) -> Client:
    """
    Create a client from an app-format or legacy record.

    Args:
        data: Client record (camelCase or snake_case, with contacts or a
            single top-level address)

    Returns:
        Created Client with contacts loaded

    Raises:
        ValidationError: If the record is invalid or the name is taken
        SpacingError: If biweekly delivery dates are too close together
    """
    record = normalize_client_record(data)
    _validate_client(record)

    cm = nullcontext(session) if session is not None else session_scope()
    with cm as session:
        exists = session.query(Client.id).filter(Client.name == record["name"]).first()
        if exists:
            raise ValidationError([f"Client '{record['name']}' already exists"])

        client = Client(name=record["name"])
        _apply_record(client, record)
        session.add(client)
        session.flush()

        log_operation(logger, "create_client", "success", client_name=client.name)
        return client


def update_client(name: str, data: Dict, session=None) -> Client:
    """
    Update a client; fields absent from data are left unchanged.

    Contacts are replaced wholesale when data carries contacts or a legacy
    top-level address.

    Raises:
        ClientNotFound: If no client has this name
        ValidationError: If the merged record is invalid
    """
    cm = nullcontext(session) if session is not None else session_scope()
    with cm as session:
        client = _get_client(name, session)

        raw = client_record(client)
        if "contacts" in data or "address" in data:
            raw.pop("contacts")
        raw.update(data)
        raw["name"] = name
        merged = normalize_client_record(raw)

        _validate_client(merged)
        _apply_record(client, merged)
        session.flush()

        log_operation(logger, "update_client", "success", client_name=name)
        return client


def client_record(client: Client) -> Dict:
    """Serialize a client and its contacts into the normalized record shape."""
    record = {field_name: getattr(client, field_name) for field_name in _CLIENT_FIELDS}
    record["name"] = client.name
    record["delivery_dates"] = list(client.delivery_dates or [])
    record["paused_date"] = client.paused_date.isoformat() if client.paused_date else None
    record["contacts"] = [
        {
            "full_name": c.full_name,
            "display_name": c.display_name,
            "email": c.email,
            "phone": c.phone,
            "address": c.address,
        }
        for c in client.contacts
    ]
    return record


def get_client(name: str, session=None) -> Client:
    """
    Get a client by name.

    Raises:
        ClientNotFound: If no client has this name
    """
    cm = nullcontext(session) if session is not None else session_scope()
    with cm as session:
        return _get_client(name, session)


def get_client_or_none(name: str, session=None) -> Optional[Client]:
    cm = nullcontext(session) if session is not None else session_scope()
    with cm as session:
        return session.query(Client).filter(Client.name == name).first()


def list_clients(
    status: Optional[str] = None,
    zone: Optional[str] = None,
    session=None,
) -> List[Client]:
    """List clients ordered by name, optionally filtered by status or zone."""
    cm = nullcontext(session) if session is not None else session_scope()
    with cm as session:
        query = session.query(Client)
        if status is not None:
            query = query.filter(Client.status == status)
        if zone is not None:
            query = query.filter(Client.zone == zone)
        return query.order_by(Client.name).all()


def delete_client(name: str, session=None) -> None:
    """
    Delete a client and its contacts.

    Orders and delivery log entries keep the client name as history.

    Raises:
        ClientNotFound: If no client has this name
    """
    cm = nullcontext(session) if session is not None else session_scope()
    with cm as session:
        client = _get_client(name, session)
        session.delete(client)
        session.flush()
        log_operation(logger, "delete_client", "success", client_name=name)


def pause_client(name: str, paused_date=None, session=None) -> Client:
    cm = nullcontext(session) if session is not None else session_scope()
    with cm as session:
        client = _get_client(name, session)
        client.status = CLIENT_STATUS_PAUSED
        client.paused_date = parse_date(paused_date) if paused_date else local_now().date()
        session.flush()
        log_operation(logger, "pause_client", "success", client_name=name)
        return client


def resume_client(name: str, session=None) -> Client:
    cm = nullcontext(session) if session is not None else session_scope()
    with cm as session:
        client = _get_client(name, session)
        client.status = CLIENT_STATUS_ACTIVE
        client.paused_date = None
        session.flush()
        log_operation(logger, "resume_client", "success", client_name=name)
        return client


def set_delivery_dates(name: str, dates, session=None) -> List[date]:
    """
    Replace a client's admin-set delivery dates.

    Returns:
        The stored dates in ascending order

    Raises:
        ClientNotFound: If no client has this name
        SpacingError: If a biweekly client's dates are under 14 days apart
    """
    cm = nullcontext(session) if session is not None else session_scope()
    with cm as session:
        client = _get_client(name, session)
        ordered = validate_spacing(dates, client.frequency)
        client.delivery_dates = [d.isoformat() for d in ordered]
        session.flush()
        log_operation(
            logger, "set_delivery_dates", "success", client_name=name, count=len(ordered)
        )
        return ordered


# ============================================================================
# Subscription dashboard
# ============================================================================


def is_biweekly_on(today: date) -> bool:
    """True when biweekly clients deliver in the week containing today.

    Biweekly weeks alternate on the parity of whole weeks since 1970-01-01.
    """
    return (today - date(1970, 1, 1)).days // 7 % 2 == 0


def group_by_subscription(today=None, session=None) -> Dict[str, List[Client]]:
    """
    Group clients for the weekly subscription dashboard.

    Returns:
        Dict with "paused", "delivering_this_week" and "not_this_week" lists
    """
    today = parse_date(today) if today is not None else local_now().date()
    groups = {"paused": [], "delivering_this_week": [], "not_this_week": []}

    for client in list_clients(session=session):
        if client.status == CLIENT_STATUS_PAUSED:
            groups["paused"].append(client)
        elif client.frequency == FREQUENCY_WEEKLY:
            groups["delivering_this_week"].append(client)
        elif client.frequency == FREQUENCY_BIWEEKLY:
            key = "delivering_this_week" if is_biweekly_on(today) else "not_this_week"
            groups[key].append(client)

    return groups


def renewals_due(today=None, session=None) -> List[Client]:
    """
    Active clients whose renewal falls in the current week.

    A renewal is due 28 days after the client's most recent delivery.
    """
    today = parse_date(today) if today is not None else local_now().date()
    week_start, week_end = week_bounds(today)

    cm = nullcontext(session) if session is not None else session_scope()
    with cm as session:
        last_delivery = dict(
            session.query(DeliveryLogEntry.client_name, func.max(DeliveryLogEntry.delivery_date))
            .group_by(DeliveryLogEntry.client_name)
            .all()
        )
        due = []
        for client in session.query(Client).filter(Client.status == CLIENT_STATUS_ACTIVE).order_by(Client.name):
            last = last_delivery.get(client.name)
            if last is None:
                continue
            renewal = last + timedelta(days=RENEWAL_INTERVAL_DAYS)
            if week_start <= renewal <= week_end:
                due.append(client)
        return due
