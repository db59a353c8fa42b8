"""Data Transfer Objects for the service layer.

Result types returned by order, route, sync and portal operations. They are
plain dataclasses so callers (the CLI, tests, a future UI) never hold on to
detached ORM instances for derived data.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Tuple

from src.models.enums import OrderStatus

OrderKey = Tuple[str, date]


@dataclass
class DeliveryStop:
    """One deliverable unit: one client at one address on one date.

    Attributes:
        stop_key: "client|normalized address"
        client_name: Client key
        display_name: Name shown to the driver
        contact_names: Contacts living at this address
        address: Address as entered (empty for address-less clients)
        zone: Zone the stop belongs to ("Unassigned" when missing)
        dishes: Dish names of the client's order for the date
        portions: Portion count of that order
        status: Order status, None when no order exists yet
        time_window: Chosen window start ("9:30"), if any
        completed: Whether a delivery log entry exists for the stop
    """

    stop_key: str
    client_name: str
    display_name: str
    address: str
    zone: str
    contact_names: List[str] = field(default_factory=list)
    dishes: List[str] = field(default_factory=list)
    portions: int = 0
    status: Optional[OrderStatus] = None
    time_window: Optional[str] = None
    completed: bool = False

    @property
    def routable(self) -> bool:
        return self.status is not None and self.status.is_routable

    def to_snapshot(self, sequence: int) -> Dict[str, Any]:
        """Serialize for a saved route snapshot."""
        return {
            "sequence": sequence,
            "stop_key": self.stop_key,
            "client_name": self.client_name,
            "display_name": self.display_name,
            "contact_names": list(self.contact_names),
            "address": self.address,
            "dishes": list(self.dishes),
            "portions": self.portions,
            "time_window": self.time_window,
        }


@dataclass
class CompletionResult:
    """Outcome of complete_stop.

    no_op is True when the order was already delivered or the stop was
    already logged; nothing was written in that case.
    """

    order_key: OrderKey
    stop_key: str
    status: OrderStatus
    completed_stops: int
    total_stops: int
    moved_to_history: bool = False
    no_op: bool = False
    entry_id: Optional[int] = None


@dataclass
class UndoResult:
    """Outcome of undo_completion."""

    order_key: OrderKey
    stop_key: str
    status: OrderStatus
    restored_from_history: bool


@dataclass
class StopProgress:
    """Completed versus total stops for one order."""

    order_key: OrderKey
    status: OrderStatus
    completed_keys: List[str]
    total_stops: int

    @property
    def completed_stops(self) -> int:
        return len(self.completed_keys)

    @property
    def remaining(self) -> int:
        return max(self.total_stops - self.completed_stops, 0)


@dataclass
class DishUpdateResult:
    """Orders promoted to ready by a dish completion change."""

    dish_names: List[str]
    promoted: List[OrderKey] = field(default_factory=list)


@dataclass
class RouteSaveResult:
    """Outcome of save_route.

    When saved is False, reason explains why and nothing was persisted.
    """

    route_date: date
    zone: str
    saved: bool
    stop_count: int = 0
    reason: str = ""
    saved_at: Optional[datetime] = None


@dataclass
class LoadResult:
    """Outcome of SyncCoordinator.load()."""

    mode: str
    source: str
    writable: bool
    online: bool
    counts: Dict[str, int] = field(default_factory=dict)


@dataclass
class PushResult:
    """Outcome of SyncCoordinator.push()."""

    pushed: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    queued: bool = False
    queue_length: int = 0


@dataclass
class MigrationResult:
    """Outcome of the one-time local-to-remote migration."""

    migrated: bool
    kinds: List[str] = field(default_factory=list)
    reason: str = ""


@dataclass
class OutstandingBag:
    """A client whose most recent delivery has not returned its bags."""

    client_name: str
    entry_id: int
    delivery_date: date
    completed_at: datetime
    reminder_sent: bool = False


@dataclass
class DeliverySummary:
    """Per-date (and optional zone) delivery counters."""

    delivery_date: date
    zone: Optional[str]
    stops_completed: int = 0
    hand_offs: int = 0
    porch_drops: int = 0
    bags_returned: int = 0
    problems: List[Dict[str, Any]] = field(default_factory=list)


@dataclass
class PortalStatus:
    """What a client's portal should show right now."""

    client_name: str
    status: str
    next_date: Optional[date] = None
    dates: List[date] = field(default_factory=list)


@dataclass
class SyncStatus:
    """Device-local record of the last sync and the migration gate."""

    last_synced_at: Optional[str] = None
    migration_complete: bool = False
    is_online: bool = False

    @classmethod
    def from_document(cls, document: Optional[Dict[str, Any]]) -> "SyncStatus":
        document = document or {}
        return cls(
            last_synced_at=document.get("lastSyncedAt"),
            migration_complete=bool(document.get("migrationComplete", False)),
            is_online=bool(document.get("isOnline", False)),
        )

    def to_document(self) -> Dict[str, Any]:
        return {
            "lastSyncedAt": self.last_synced_at,
            "migrationComplete": self.migration_complete,
            "isOnline": self.is_online,
        }
