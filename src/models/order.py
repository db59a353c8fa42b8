"""
OrderInstance model for planned meals.

One order instance exists per (client, delivery date). It moves through the
lifecycle MenuPending -> MenuApproved -> ReadyForDelivery -> Delivered and
is archived into history exactly when every delivery stop is completed.
"""

from sqlalchemy import (
    Column,
    Date,
    DateTime,
    Enum as SQLEnum,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.dialects.sqlite import JSON

from .base import BaseModel
from .enums import OrderStatus
from src.utils.constants import DEFAULT_PORTIONS


class OrderInstance(BaseModel):
    """
    A planned meal order for one client on one delivery date.

    Attributes:
        client_name: Client key (orders survive client renames in history)
        delivery_date: Date the order is delivered
        protein: Protein dish name
        veg: Vegetable dish name
        starch: Starch dish name
        extras: Additional dish names (JSON list)
        portions: Portion count
        status: Lifecycle status
        approved_at: When the admin approved the menu
        ready_at: When every referenced dish became complete
        completed_at: When the last stop was delivered; set iff DELIVERED
        notes: Free-form kitchen notes
    """

    __tablename__ = "order_instances"

    client_name = Column(String(200), nullable=False, index=True)
    delivery_date = Column(Date, nullable=False, index=True)

    protein = Column(String(200), nullable=True)
    veg = Column(String(200), nullable=True)
    starch = Column(String(200), nullable=True)
    extras = Column(JSON, nullable=False, default=list)
    portions = Column(Integer, nullable=False, default=DEFAULT_PORTIONS)

    status = Column(
        SQLEnum(OrderStatus), nullable=False, default=OrderStatus.MENU_PENDING, index=True
    )
    approved_at = Column(DateTime, nullable=True)
    ready_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    notes = Column(Text, nullable=True)

    __table_args__ = (
        Index("idx_order_client_date", "client_name", "delivery_date"),
        Index("idx_order_status_date", "status", "delivery_date"),
    )

    @property
    def order_key(self):
        """(client_name, delivery_date) key of this order."""
        return (self.client_name, self.delivery_date)

    @property
    def dish_names(self) -> list:
        """Referenced dish names, de-duplicated, in menu order."""
        names = [self.protein, self.veg, self.starch] + list(self.extras or [])
        seen = []
        for name in names:
            if name and name.strip() and name.strip() not in seen:
                seen.append(name.strip())
        return seen

    def __repr__(self) -> str:
        """String representation of order."""
        status = self.status.value if self.status else None
        return (
            f"OrderInstance(id={self.id}, client_name='{self.client_name}', "
            f"delivery_date={self.delivery_date}, status={status})"
        )

    def to_dict(self, include_relationships: bool = False) -> dict:
        result = super().to_dict(include_relationships)
        result["status"] = self.status.value if self.status else None
        result["dish_names"] = self.dish_names
        return result
