"""
Route models for per-zone, per-date delivery sequencing.

This module contains:
- RouteOrder: The editable explicit stop order (and time windows)
- SavedRoute: An immutable snapshot of a route at save time
"""

from sqlalchemy import (
    Column,
    Date,
    DateTime,
    Index,
    String,
    UniqueConstraint,
)
from sqlalchemy.dialects.sqlite import JSON

from .base import BaseModel
from src.utils.datetime_utils import utc_now


class RouteOrder(BaseModel):
    """
    Explicit stop ordering for one zone on one date.

    The stored key list is replaced wholesale on every reorder and is never
    pruned automatically; keys of stops that disappeared are ignored on read.

    Attributes:
        route_date: Delivery date
        zone: Zone name (or "Unassigned")
        stop_keys: Ordered list of stop keys
        time_windows: Mapping stop key -> window start ("9:30")
    """

    __tablename__ = "route_orders"

    route_date = Column(Date, nullable=False, index=True)
    zone = Column(String(50), nullable=False)
    stop_keys = Column(JSON, nullable=False, default=list)
    time_windows = Column(JSON, nullable=False, default=dict)

    __table_args__ = (
        UniqueConstraint("route_date", "zone", name="uq_route_order_date_zone"),
    )

    def __repr__(self) -> str:
        return f"RouteOrder(route_date={self.route_date}, zone='{self.zone}', stops={len(self.stop_keys or [])})"


class SavedRoute(BaseModel):
    """
    Snapshot of a route taken when the admin saves it.

    The snapshot does not refresh if the underlying orders change later.

    Attributes:
        route_date: Delivery date
        zone: Zone name
        stops: List of stop snapshots (sequence, stop_key, client_name,
            display_name, address, dishes, portions, time_window)
        saved_at: When the snapshot was taken
    """

    __tablename__ = "saved_routes"

    route_date = Column(Date, nullable=False, index=True)
    zone = Column(String(50), nullable=False)
    stops = Column(JSON, nullable=False, default=list)
    saved_at = Column(DateTime, nullable=False, default=utc_now)

    __table_args__ = (
        UniqueConstraint("route_date", "zone", name="uq_saved_route_date_zone"),
        Index("idx_saved_route_zone", "zone"),
    )

    @property
    def stop_count(self) -> int:
        return len(self.stops or [])

    def __repr__(self) -> str:
        return f"SavedRoute(route_date={self.route_date}, zone='{self.zone}', stops={self.stop_count})"
