"""
Client models for meal subscription customers.

This module contains:
- Client: A subscription customer with delivery preferences
- ClientContact: A person/address attached to a client
"""

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.dialects.sqlite import JSON
from sqlalchemy.orm import relationship

from .base import BaseModel
from src.utils.constants import (
    CLIENT_STATUS_ACTIVE,
    DEFAULT_PORTIONS,
    FREQUENCY_WEEKLY,
)
from src.utils.slug_utils import create_portal_slug, normalize_address


class Client(BaseModel):
    """
    Client model representing a meal subscription customer.

    Attributes:
        name: Unique client name (the key used by orders and the delivery log)
        display_name: Friendly name shown to drivers and in the portal
        delivery_day: Weekly delivery weekday name ("Monday")
        zone: Delivery zone; empty means unassigned
        frequency: "weekly" or "biweekly"
        portions: Portions per meal
        meals_per_week: Meals delivered per week
        status: "active" or "paused"
        paused_date: Date the subscription was paused
        pickup: Client collects from the kitchen (never routed)
        address_less: Explicitly has no delivery address
        delivery_dates: Admin-set explicit delivery dates (ISO strings)
        notes: Free-form notes
    """

    __tablename__ = "clients"

    name = Column(String(200), nullable=False, unique=True, index=True)
    display_name = Column(String(200), nullable=True)
    delivery_day = Column(String(20), nullable=True)
    zone = Column(String(50), nullable=True, index=True)
    frequency = Column(String(20), nullable=False, default=FREQUENCY_WEEKLY)
    portions = Column(Integer, nullable=False, default=DEFAULT_PORTIONS)
    meals_per_week = Column(Integer, nullable=False, default=0)
    status = Column(String(20), nullable=False, default=CLIENT_STATUS_ACTIVE, index=True)
    paused_date = Column(Date, nullable=True)
    pickup = Column(Boolean, nullable=False, default=False)
    address_less = Column(Boolean, nullable=False, default=False)
    delivery_dates = Column(JSON, nullable=False, default=list)
    notes = Column(Text, nullable=True)

    contacts = relationship(
        "ClientContact",
        back_populates="client",
        cascade="all, delete-orphan",
        order_by="ClientContact.position",
        lazy="selectin",
    )

    __table_args__ = (
        Index("idx_client_zone_day", "zone", "delivery_day"),
    )

    @property
    def portal_slug(self) -> str:
        """Portal slug, derived from the display name when present."""
        return create_portal_slug(self.display_name or self.name)

    @property
    def label(self) -> str:
        """Name shown to drivers: display name, falling back to raw name."""
        return self.display_name or self.name

    @property
    def is_active(self) -> bool:
        return self.status == CLIENT_STATUS_ACTIVE

    def unique_addresses(self):
        """
        Return the client's distinct delivery addresses in contact order.

        Addresses are compared after normalization; the first spelling wins.

        Returns:
            List of (normalized_address, address, [contacts]) tuples
        """
        groups = {}
        order = []
        for contact in self.contacts:
            if not contact.address or not contact.address.strip():
                continue
            key = normalize_address(contact.address)
            if key not in groups:
                groups[key] = (key, contact.address.strip(), [])
                order.append(key)
            groups[key][2].append(contact)
        return [groups[key] for key in order]

    def __repr__(self) -> str:
        """String representation of client."""
        return f"Client(id={self.id}, name='{self.name}', zone='{self.zone}')"

    def to_dict(self, include_relationships: bool = False) -> dict:
        """
        Convert client to dictionary.

        Args:
            include_relationships: If True, include contacts

        Returns:
            Dictionary representation with the derived portal slug
        """
        result = super().to_dict(include_relationships)
        result["portal_slug"] = self.portal_slug
        return result


class ClientContact(BaseModel):
    """
    A person and (optional) physical address attached to a client.

    A client with N distinct addresses yields N delivery stops.

    Attributes:
        client_id: Owning client
        position: Ordering within the client (0 is the primary contact)
        full_name: Contact full name
        display_name: Contact short name
        email: Contact email
        phone: Contact phone
        address: Street address; empty when the contact is not a drop point
    """

    __tablename__ = "client_contacts"

    client_id = Column(
        Integer, ForeignKey("clients.id", ondelete="CASCADE"), nullable=False, index=True
    )
    position = Column(Integer, nullable=False, default=0)
    full_name = Column(String(200), nullable=True)
    display_name = Column(String(200), nullable=True)
    email = Column(String(200), nullable=True)
    phone = Column(String(50), nullable=True)
    address = Column(Text, nullable=True)

    client = relationship("Client", back_populates="contacts")

    def __repr__(self) -> str:
        return f"ClientContact(id={self.id}, client_id={self.client_id}, full_name='{self.full_name}')"
