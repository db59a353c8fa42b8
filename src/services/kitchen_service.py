"""
Kitchen Service - dish completion for the current production cycle.

Completion is tracked per dish name. The dependency map is derived from the
approved orders on every evaluation:

    dish name -> {(client_name, delivery_date), ...}   (MenuApproved orders)

An order becomes ReadyForDelivery once every dish name it references is
flagged complete. Unmarking a dish never demotes an order that is already
ready.

Session Management Pattern:
- All public functions accept session=None
- With a session, join the caller's transaction; otherwise open a scope
"""

from collections import defaultdict
from contextlib import nullcontext
from datetime import date
from typing import Dict, Iterable, List, Optional, Set, Tuple

from sqlalchemy.orm import Session

from src.models import DishCompletion, OrderInstance, OrderStatus
from src.services.database import session_scope
from src.services.dto import DishUpdateResult
from src.services.exceptions import ValidationError
from src.services.logging_utils import get_service_logger, log_operation
from src.utils.datetime_utils import to_date, to_naive_utc, utc_now

logger = get_service_logger(__name__)

OrderKey = Tuple[str, date]


def _approved_orders(session: Session) -> List[OrderInstance]:
    return (
        session.query(OrderInstance)
        .filter(OrderInstance.status == OrderStatus.MENU_APPROVED)
        .order_by(OrderInstance.delivery_date, OrderInstance.client_name)
        .all()
    )


def _completed_dishes(session: Session) -> Set[str]:
    rows = session.query(DishCompletion.dish_name).filter(DishCompletion.is_complete.is_(True))
    return {name for (name,) in rows}


def _set_flag(session: Session, dish_name: str, complete: bool, stamp) -> None:
    row = session.query(DishCompletion).filter(DishCompletion.dish_name == dish_name).first()
    if row is None:
        row = DishCompletion(dish_name=dish_name)
        session.add(row)
    row.is_complete = complete
    row.completed_at = stamp if complete else None


def _clean_dish_names(dish_names: Iterable[str]) -> List[str]:
    names = []
    for name in dish_names:
        cleaned = (name or "").strip()
        if cleaned and cleaned not in names:
            names.append(cleaned)
    if not names:
        raise ValidationError(["At least one dish name is required"])
    return names


def evaluate_readiness(
    session: Session,
    orders: Optional[Iterable[OrderInstance]] = None,
    now=None,
) -> List[OrderKey]:
    """
    Promote approved orders whose every dish is complete.

    Transaction boundary: Inherits session from caller.

    Args:
        session: Database session
        orders: Orders to check (defaults to every MenuApproved order)
        now: Timestamp recorded as ready_at

    Returns:
        Keys of the orders promoted to ReadyForDelivery
    """
    done = _completed_dishes(session)
    stamp = to_naive_utc(now or utc_now())
    candidates = _approved_orders(session) if orders is None else list(orders)

    promoted = []
    for order in candidates:
        if order.status is not OrderStatus.MENU_APPROVED:
            continue
        dishes = order.dish_names
        if dishes and all(dish in done for dish in dishes):
            order.status = OrderStatus.READY_FOR_DELIVERY
            order.ready_at = stamp
            promoted.append(order.order_key)
    session.flush()
    return promoted


def build_dish_dependencies(session=None) -> Dict[str, Set[OrderKey]]:
    """
    Map each dish name to the approved orders waiting on it.

    Returns:
        Dict of dish name -> set of (client_name, delivery_date)
    """
    cm = nullcontext(session) if session is not None else session_scope()
    with cm as session:
        dependencies = defaultdict(set)
        for order in _approved_orders(session):
            for dish in order.dish_names:
                dependencies[dish].add(order.order_key)
        return dict(dependencies)


def pending_dishes(session=None) -> List[str]:
    """Dish names referenced by approved orders and not yet complete."""
    cm = nullcontext(session) if session is not None else session_scope()
    with cm as session:
        done = _completed_dishes(session)
        return sorted(d for d in build_dish_dependencies(session=session) if d not in done)


def _mark_impl(dish_names: List[str], session: Session, now) -> DishUpdateResult:
    stamp = to_naive_utc(now or utc_now())
    for dish in dish_names:
        _set_flag(session, dish, True, stamp)
    session.flush()

    dependents = build_dish_dependencies(session=session)
    affected = {key for dish in dish_names for key in dependents.get(dish, set())}
    orders = [
        order
        for order in _approved_orders(session)
        if order.order_key in affected
    ]
    promoted = evaluate_readiness(session, orders, now=now)
    return DishUpdateResult(dish_names=dish_names, promoted=promoted)


def mark_dish_complete(dish_name: str, now=None, session=None) -> DishUpdateResult:
    """
    Flag a dish complete and re-evaluate the orders that reference it.

    Args:
        dish_name: Dish name shared across orders
        now: Completion timestamp (defaults to current UTC time)

    Returns:
        DishUpdateResult listing orders promoted to ReadyForDelivery
    """
    names = _clean_dish_names([dish_name])
    cm = nullcontext(session) if session is not None else session_scope()
    with cm as session:
        result = _mark_impl(names, session, now)
        log_operation(
            logger,
            "mark_dish_complete",
            "success",
            dish_name=names[0],
            promoted=len(result.promoted),
        )
        return result


def unmark_dish_complete(dish_name: str, session=None) -> None:
    """
    Clear a dish's completion flag.

    Orders already promoted to ReadyForDelivery stay ready.
    """
    names = _clean_dish_names([dish_name])
    cm = nullcontext(session) if session is not None else session_scope()
    with cm as session:
        _set_flag(session, names[0], False, None)
        session.flush()
        log_operation(logger, "unmark_dish_complete", "success", dish_name=names[0])


def complete_all(now=None, session=None) -> DishUpdateResult:
    """
    Flag every pending dish of the production cycle and promote in one batch.

    Returns:
        DishUpdateResult with the flagged dish names and promoted orders
    """
    cm = nullcontext(session) if session is not None else session_scope()
    with cm as session:
        pending = pending_dishes(session=session)
        stamp = to_naive_utc(now or utc_now())
        for dish in pending:
            _set_flag(session, dish, True, stamp)
        session.flush()

        promoted = evaluate_readiness(session, now=now)
        log_operation(
            logger,
            "complete_all",
            "success",
            dishes=len(pending),
            promoted=len(promoted),
        )
        return DishUpdateResult(dish_names=pending, promoted=promoted)


def reset_production_cycle(session=None) -> int:
    """
    Start a new production cycle by clearing every dish flag.

    Returns:
        Number of dish flags removed
    """
    cm = nullcontext(session) if session is not None else session_scope()
    with cm as session:
        removed = session.query(DishCompletion).delete(synchronize_session=False)
        log_operation(logger, "reset_production_cycle", "success", removed=removed)
        return removed


def dish_status(session=None) -> Dict[str, bool]:
    """Completion flag of every dish referenced by approved orders."""
    cm = nullcontext(session) if session is not None else session_scope()
    with cm as session:
        done = _completed_dishes(session)
        return {dish: dish in done for dish in sorted(build_dish_dependencies(session=session))}


def kitchen_view(delivery_date=None, session=None) -> List[Dict]:
    """
    Production sheet: one row per dish with total portions and clients.

    Args:
        delivery_date: Restrict to approved orders for one date

    Returns:
        List of {"dish", "portions", "clients", "complete"} dicts by dish name
    """
    cm = nullcontext(session) if session is not None else session_scope()
    with cm as session:
        done = _completed_dishes(session)
        target = to_date(delivery_date) if delivery_date is not None else None
        rows: Dict[str, Dict] = {}
        for order in _approved_orders(session):
            if target is not None and order.delivery_date != target:
                continue
            for dish in order.dish_names:
                row = rows.setdefault(dish, {"dish": dish, "portions": 0, "clients": [], "complete": dish in done})
                row["portions"] += order.portions or 0
                if order.client_name not in row["clients"]:
                    row["clients"].append(order.client_name)
        return [rows[name] for name in sorted(rows)]
