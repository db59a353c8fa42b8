"""Services package - Business logic layer for MealRun.

This package contains all service modules that provide business logic
and local cache operations for the application.

Architecture:
- Services: Stateless functions organized by domain (clients, orders, routes)
- Transactions: Managed via session_scope() context manager
- Exceptions: Consistent error handling via ServiceError hierarchy
- Validation: Input validation before any cache mutation

Service Modules:
- deadline_service: Edit deadlines, spacing rules and candidate dates
- client_service: Client records, pause/resume and subscription grouping
- driver_service: Driver roster and access-code login
- order_service: Menu items, approval, stop completion and undo
- kitchen_service: Dish completion and order readiness
- route_service: Stops per zone and date, ordering, time windows, snapshots
- bag_service: Outstanding bags and reminder flags
- delivery_service: Delivery log summaries and problem reports
- portal_service: Client portal slugs, date selection and status
- sync_service: Data mode, remote load/push, pending queue and migration

Infrastructure:
- exceptions: Custom exception classes for service layer errors
- database: Session management for the local cache
- settings_service: Shared settings and device-local cache entries
- snapshot_service: Dataset document export/replace and record normalization
- remote_store: Remote record store adapters (in-memory, Supabase)
"""

from . import (
    database,
    deadline_service,
    settings_service,
    snapshot_service,
    client_service,
    driver_service,
    kitchen_service,
    order_service,
    route_service,
    bag_service,
    delivery_service,
    portal_service,
    remote_store,
    sync_service,
)

from .exceptions import (
    ServiceError,
    ValidationError,
    SpacingError,
    DeadlinePassedError,
    ClientNotFound,
    DriverNotFound,
    OrderNotFound,
    StopNotFound,
    OrderStateError,
    UndoNotPermitted,
    ConnectivityError,
    ReadOnlyModeError,
    PersistenceError,
    QueueReplayError,
    DatabaseError,
)

from .remote_store import RemoteStore, InMemoryRemoteStore, SupabaseRemoteStore
from .sync_service import SyncContext, SyncCoordinator

__all__ = [
    # Modules
    "database",
    "deadline_service",
    "settings_service",
    "snapshot_service",
    "client_service",
    "driver_service",
    "kitchen_service",
    "order_service",
    "route_service",
    "bag_service",
    "delivery_service",
    "portal_service",
    "remote_store",
    "sync_service",
    # Exceptions
    "ServiceError",
    "ValidationError",
    "SpacingError",
    "DeadlinePassedError",
    "ClientNotFound",
    "DriverNotFound",
    "OrderNotFound",
    "StopNotFound",
    "OrderStateError",
    "UndoNotPermitted",
    "ConnectivityError",
    "ReadOnlyModeError",
    "PersistenceError",
    "QueueReplayError",
    "DatabaseError",
    # Sync
    "RemoteStore",
    "InMemoryRemoteStore",
    "SupabaseRemoteStore",
    "SyncContext",
    "SyncCoordinator",
]
