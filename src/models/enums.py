"""
Enumerations for order, delivery and sync tracking.

This module contains enums used across models and services:
- OrderStatus: Lifecycle state of an order instance
- HandoffType: How a stop was handed over
- DataMode: Which store is authoritative
"""

from enum import Enum


class OrderStatus(str, Enum):
    """
    Lifecycle status of an order instance (one client, one delivery date).

    Values:
        MENU_PENDING: Menu planned, awaiting admin approval
        MENU_APPROVED: Approved and in the kitchen's production cycle
        READY_FOR_DELIVERY: Every referenced dish is complete
        DELIVERED: Every stop of the order has been completed (terminal)
    """

    MENU_PENDING = "menu_pending"
    MENU_APPROVED = "menu_approved"
    READY_FOR_DELIVERY = "ready_for_delivery"
    DELIVERED = "delivered"

    @property
    def is_routable(self) -> bool:
        """True once the order has at least reached kitchen approval."""
        return self in ROUTABLE_STATUSES

    @property
    def is_terminal(self) -> bool:
        return self is OrderStatus.DELIVERED


ROUTABLE_STATUSES = frozenset(
    {
        OrderStatus.MENU_APPROVED,
        OrderStatus.READY_FOR_DELIVERY,
        OrderStatus.DELIVERED,
    }
)


class HandoffType(str, Enum):
    """
    How the driver handed the order over.

    Values:
        HAND: Direct handoff to a person
        PORCH: Unattended drop, photo-evidenced
    """

    HAND = "hand"
    PORCH = "porch"


class DataMode(str, Enum):
    """
    Global data mode.

    Values:
        LOCAL: Local cache is authoritative and always writable
        REMOTE: Remote store is authoritative when reachable
    """

    LOCAL = "local"
    REMOTE = "remote"
