"""
Delivery Service - read-only reporting over the delivery log.

Problem reports are captured on completion (see order_service.complete_stop);
this module summarizes them per route and per Sunday-Saturday week.
"""

from contextlib import nullcontext
from typing import List, Optional

from src.models import DeliveryLogEntry
from src.services.database import session_scope
from src.services.deadline_service import parse_date
from src.services.dto import DeliverySummary
from src.utils.constants import HANDOFF_HAND, HANDOFF_PORCH
from src.utils.datetime_utils import local_now, week_bounds


def log_entries(delivery_date=None, zone: Optional[str] = None, client_name: Optional[str] = None, session=None):
    """Delivery log entries in completion order, optionally filtered."""
    cm = nullcontext(session) if session is not None else session_scope()
    with cm as session:
        query = session.query(DeliveryLogEntry)
        if delivery_date is not None:
            query = query.filter(DeliveryLogEntry.delivery_date == parse_date(delivery_date))
        if zone is not None:
            query = query.filter(DeliveryLogEntry.zone == zone)
        if client_name is not None:
            query = query.filter(DeliveryLogEntry.client_name == client_name)
        return query.order_by(DeliveryLogEntry.completed_at, DeliveryLogEntry.id).all()


def delivery_summary(delivery_date, zone: Optional[str] = None, session=None) -> DeliverySummary:
    """
    Counters for one delivery date, optionally restricted to a zone.

    Returns:
        DeliverySummary with stop, handoff, bag and problem tallies
    """
    target = parse_date(delivery_date)
    summary = DeliverySummary(delivery_date=target, zone=zone)
    for entry in log_entries(target, zone, session=session):
        summary.stops_completed += 1
        if entry.handoff_type == HANDOFF_HAND:
            summary.hand_offs += 1
        elif entry.handoff_type == HANDOFF_PORCH:
            summary.porch_drops += 1
        if entry.bags_returned:
            summary.bags_returned += 1
        if entry.problem:
            summary.problems.append(
                {
                    "client_name": entry.client_name,
                    "stop_key": entry.stop_key,
                    "problem": entry.problem,
                    "problem_note": entry.problem_note,
                }
            )
    return summary


def problem_entries(week_of=None, session=None) -> List[DeliveryLogEntry]:
    """Entries with a reported problem in the week containing week_of."""
    reference = parse_date(week_of) if week_of is not None else local_now().date()
    start, end = week_bounds(reference)

    cm = nullcontext(session) if session is not None else session_scope()
    with cm as session:
        return (
            session.query(DeliveryLogEntry)
            .filter(
                DeliveryLogEntry.delivery_date >= start,
                DeliveryLogEntry.delivery_date <= end,
                DeliveryLogEntry.problem.isnot(None),
            )
            .order_by(DeliveryLogEntry.delivery_date, DeliveryLogEntry.completed_at)
            .all()
        )
