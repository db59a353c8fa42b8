"""
Delivery log models.

This module contains:
- DeliveryLogEntry: Immutable record of one completed delivery stop
- BagReminder: Manual acknowledgement that a bag-return reminder was sent
"""

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Index,
    String,
    Text,
)

from .base import BaseModel


class DeliveryLogEntry(BaseModel):
    """
    Record of a completed delivery stop.

    Entries are only ever appended (completion) or removed (undo); the only
    field edited after the fact is bags_returned.

    Attributes:
        delivery_date: Date of the delivery
        client_name: Client key
        contact_name: Contact at the stop address
        stop_key: Stop identity ("client|normalized address")
        address: Stop address as displayed
        zone: Zone the stop was delivered in
        driver_name: Driver who completed the stop
        completed_at: Completion timestamp (naive UTC)
        handoff_type: "hand" or "porch"
        photo_ref: Opaque reference to the porch photo
        bags_returned: Whether the client returned their bags
        problem: Problem code, if one was reported
        problem_note: Problem details (required for "Other")
    """

    __tablename__ = "delivery_log"

    delivery_date = Column(Date, nullable=False, index=True)
    client_name = Column(String(200), nullable=False, index=True)
    contact_name = Column(String(200), nullable=True)
    stop_key = Column(String(500), nullable=False)
    address = Column(Text, nullable=True)
    zone = Column(String(50), nullable=True)
    driver_name = Column(String(200), nullable=True)
    completed_at = Column(DateTime, nullable=False)
    handoff_type = Column(String(20), nullable=False)
    photo_ref = Column(Text, nullable=True)
    bags_returned = Column(Boolean, nullable=False, default=False)
    problem = Column(String(50), nullable=True)
    problem_note = Column(Text, nullable=True)

    __table_args__ = (
        Index("idx_delivery_client_date", "client_name", "delivery_date"),
        Index("idx_delivery_date_zone", "delivery_date", "zone"),
        Index("idx_delivery_completed_at", "completed_at"),
    )

    def __repr__(self) -> str:
        return (
            f"DeliveryLogEntry(id={self.id}, client_name='{self.client_name}', "
            f"delivery_date={self.delivery_date}, stop_key='{self.stop_key}')"
        )


class BagReminder(BaseModel):
    """
    Reminder-sent acknowledgement for a client's outstanding bags.

    Independent of bags_returned; no reminder is dispatched by the system.

    Attributes:
        client_name: Client key (unique)
        reminder_sent: Whether the admin marked a reminder as sent
        sent_at: When it was marked
    """

    __tablename__ = "bag_reminders"

    client_name = Column(String(200), nullable=False, unique=True, index=True)
    reminder_sent = Column(Boolean, nullable=False, default=False)
    sent_at = Column(DateTime, nullable=True)

    def __repr__(self) -> str:
        return f"BagReminder(client_name='{self.client_name}', reminder_sent={self.reminder_sent})"
