"""Service layer exception classes for MealRun.

This module defines all custom exceptions used by the service layer to provide
consistent error handling across the application.

Exception Hierarchy:
    ServiceError (base)
    ├── ValidationError
    │   ├── SpacingError
    │   └── DeadlinePassedError
    ├── ClientNotFound
    ├── DriverNotFound
    ├── OrderNotFound
    ├── StopNotFound
    ├── OrderStateError
    │   └── UndoNotPermitted
    ├── ConnectivityError
    ├── ReadOnlyModeError
    ├── PersistenceError
    ├── QueueReplayError
    └── DatabaseError
"""

from datetime import date
from typing import List, Optional, Sequence, Tuple


class ServiceError(Exception):
    """Base exception for all service layer errors.

    All service-specific exceptions should inherit from this class.
    """

    pass


class ValidationError(ServiceError):
    """Raised when data validation fails.

    Blocks the action; no partial mutation has been applied.
    """

    def __init__(self, errors: list):
        self.errors = list(errors)
        error_msg = "; ".join(str(e) for e in self.errors)
        super().__init__(f"Validation failed: {error_msg}")


class SpacingError(ValidationError):
    """Raised when biweekly delivery dates are closer than the minimum gap.

    Args:
        pairs: Offending adjacent (earlier, later) date pairs
        min_days: Required minimum gap in days

    Example:
        >>> raise SpacingError([(date(2024, 6, 3), date(2024, 6, 16))], 14)
        SpacingError: Validation failed: 2024-06-03 and 2024-06-16 are 13 days apart (minimum 14)
    """

    def __init__(self, pairs: Sequence[Tuple[date, date]], min_days: int):
        self.pairs = list(pairs)
        self.min_days = min_days
        super().__init__(
            [
                f"{a.isoformat()} and {b.isoformat()} are {(b - a).days} days apart "
                f"(minimum {min_days})"
                for a, b in self.pairs
            ]
        )


class DeadlinePassedError(ValidationError):
    """Raised when a date-related edit is attempted after its deadline."""

    def __init__(self, target_date: date, deadline):
        self.target_date = target_date
        self.deadline = deadline
        super().__init__(
            [f"Edits for {target_date.isoformat()} closed at {deadline.isoformat(sep=' ')}"]
        )


class ClientNotFound(ServiceError):
    """Raised when a client cannot be found by name or slug."""

    def __init__(self, identifier: str):
        self.identifier = identifier
        super().__init__(f"Client '{identifier}' not found")


class DriverNotFound(ServiceError):
    """Raised when a driver cannot be found."""

    def __init__(self, identifier):
        self.identifier = identifier
        super().__init__(f"Driver '{identifier}' not found")


class OrderNotFound(ServiceError):
    """Raised when no order exists for a (client, date) key or id."""

    def __init__(self, client_name: str, delivery_date: Optional[date] = None):
        self.client_name = client_name
        self.delivery_date = delivery_date
        if delivery_date is None:
            super().__init__(f"Order {client_name} not found")
        else:
            super().__init__(
                f"No order for '{client_name}' on {delivery_date.isoformat()}"
            )


class StopNotFound(ServiceError):
    """Raised when a stop key does not belong to the order or route."""

    def __init__(self, stop_key: str):
        self.stop_key = stop_key
        super().__init__(f"Stop '{stop_key}' not found")


class OrderStateError(ServiceError):
    """Raised when an order lifecycle transition is not allowed.

    Args:
        order_key: (client_name, delivery_date) of the order
        current_status: Status the order is currently in
        attempted: Description of the attempted transition
    """

    def __init__(self, order_key, current_status, attempted: str):
        self.order_key = order_key
        self.current_status = current_status
        status_value = getattr(current_status, "value", current_status)
        client_name, delivery_date = order_key
        super().__init__(
            f"Cannot {attempted} for '{client_name}' on {delivery_date}: "
            f"order is {status_value}"
        )


class UndoNotPermitted(OrderStateError):
    """Raised when undo targets a stop other than the most recent completion."""

    def __init__(self, order_key, current_status, latest_stop_key: str):
        self.latest_stop_key = latest_stop_key
        super().__init__(
            order_key,
            current_status,
            f"undo this stop (only the latest completion '{latest_stop_key}' may be undone)",
        )


class ConnectivityError(ServiceError):
    """Raised when the remote record store cannot be reached."""

    def __init__(self, message: str = "Remote store not available"):
        super().__init__(message)


class ReadOnlyModeError(ServiceError):
    """Raised when a local write is attempted during read-only fallback."""

    def __init__(self):
        super().__init__(
            "Remote store is unreachable; local data is read-only until the "
            "connection returns"
        )


class PersistenceError(ServiceError):
    """Raised when the local cache cannot be written."""

    def __init__(self, message: str, original_error: Exception = None):
        self.original_error = original_error
        super().__init__(f"Local cache write failed: {message}")


class QueueReplayError(ServiceError):
    """Raised when replaying the pending queue fails for at least one entry.

    The queue is left intact for the next attempt.
    """

    def __init__(self, processed: int, errors: List[str]):
        self.processed = processed
        self.errors = list(errors)
        super().__init__(
            f"Pending queue replay failed ({processed} succeeded, "
            f"{len(self.errors)} failed): {'; '.join(self.errors)}"
        )


class DatabaseError(ServiceError):
    """Raised when a database operation fails."""

    def __init__(self, message: str, original_error: Exception = None):
        self.original_error = original_error
        super().__init__(f"Database error: {message}")
