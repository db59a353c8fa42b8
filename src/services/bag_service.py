"""
Bag Service - reusable bag deposits attached to delivery completions.

Each delivery log entry carries a bags_returned flag. A client is
outstanding when the single most recent entry in their log (by completion
time) has bags_returned False; older entries never count. The
reminder-sent flag is a manual acknowledgement kept per client and is
independent of bags_returned.
"""

from contextlib import nullcontext
from datetime import timedelta
from typing import Dict, List

from sqlalchemy.orm import Session

from src.models import BagReminder, DeliveryLogEntry
from src.services.database import session_scope
from src.services.deadline_service import parse_date
from src.services.dto import OutstandingBag
from src.services.exceptions import ValidationError
from src.services.logging_utils import get_service_logger, log_operation
from src.utils.constants import BAG_FOLLOWUP_MAX_DAYS, BAG_FOLLOWUP_MIN_DAYS
from src.utils.datetime_utils import local_now, to_naive_utc, utc_now

logger = get_service_logger(__name__)


def _latest_entries(session: Session) -> Dict[str, DeliveryLogEntry]:
    latest = {}
    rows = session.query(DeliveryLogEntry).order_by(
        DeliveryLogEntry.completed_at, DeliveryLogEntry.id
    )
    for entry in rows:
        latest[entry.client_name] = entry
    return latest


def _reminders(session: Session) -> Dict[str, BagReminder]:
    return {row.client_name: row for row in session.query(BagReminder)}


def outstanding_bags(session=None) -> List[OutstandingBag]:
    """
    Clients whose most recent delivery did not return their bags.

    Returns:
        List of OutstandingBag ordered by client name
    """
    cm = nullcontext(session) if session is not None else session_scope()
    with cm as session:
        reminders = _reminders(session)
        outstanding = []
        for client_name, entry in sorted(_latest_entries(session).items()):
            if entry.bags_returned:
                continue
            reminder = reminders.get(client_name)
            outstanding.append(
                OutstandingBag(
                    client_name=client_name,
                    entry_id=entry.id,
                    delivery_date=entry.delivery_date,
                    completed_at=entry.completed_at,
                    reminder_sent=bool(reminder and reminder.reminder_sent),
                )
            )
        return outstanding


def mark_bags_returned(entry_id: int, returned: bool = True, session=None) -> DeliveryLogEntry:
    """
    Set the bags-returned flag of a delivery log entry after the fact.

    Raises:
        ValidationError: If no entry has this id
    """
    cm = nullcontext(session) if session is not None else session_scope()
    with cm as session:
        entry = session.get(DeliveryLogEntry, entry_id)
        if entry is None:
            raise ValidationError([f"Delivery log entry {entry_id} not found"])
        entry.bags_returned = returned
        session.flush()
        log_operation(
            logger,
            "mark_bags_returned",
            "success",
            client_name=entry.client_name,
            entry_id=entry_id,
            returned=returned,
        )
        return entry


def set_reminder_sent(client_name: str, sent: bool = True, now=None, session=None) -> BagReminder:
    """Record (or clear) that a bag reminder was sent to a client."""
    cm = nullcontext(session) if session is not None else session_scope()
    with cm as session:
        row = session.query(BagReminder).filter(BagReminder.client_name == client_name).first()
        if row is None:
            row = BagReminder(client_name=client_name)
            session.add(row)
        row.reminder_sent = sent
        row.sent_at = to_naive_utc(now or utc_now()) if sent else None
        session.flush()
        log_operation(logger, "set_reminder_sent", "success", client_name=client_name, sent=sent)
        return row


def bag_followups(today=None, session=None) -> List[DeliveryLogEntry]:
    """
    Deliveries from 3 to 10 days ago whose bags are still out.

    Unlike outstanding_bags, every entry in the window is considered.
    """
    today = parse_date(today) if today is not None else local_now().date()
    newest = today - timedelta(days=BAG_FOLLOWUP_MIN_DAYS)
    oldest = today - timedelta(days=BAG_FOLLOWUP_MAX_DAYS)

    cm = nullcontext(session) if session is not None else session_scope()
    with cm as session:
        return (
            session.query(DeliveryLogEntry)
            .filter(
                DeliveryLogEntry.delivery_date >= oldest,
                DeliveryLogEntry.delivery_date <= newest,
                DeliveryLogEntry.bags_returned.is_(False),
            )
            .order_by(DeliveryLogEntry.delivery_date, DeliveryLogEntry.client_name)
            .all()
        )
