"""Unit tests for the exception hierarchy.

Validates that every service exception inherits from ServiceError and
carries the attributes callers rely on.
"""

import inspect
from datetime import date, datetime

import pytest

from src.models import OrderStatus
from src.services import exceptions as exc_module
from src.services.exceptions import (
    ClientNotFound,
    DeadlinePassedError,
    OrderNotFound,
    OrderStateError,
    PersistenceError,
    QueueReplayError,
    ServiceError,
    SpacingError,
    UndoNotPermitted,
    ValidationError,
)


def get_all_exception_classes():
    """Discover all exception classes in the exceptions module."""
    return [
        (name, obj)
        for name, obj in inspect.getmembers(exc_module, inspect.isclass)
        if issubclass(obj, Exception) and obj.__module__ == exc_module.__name__
    ]


class TestExceptionHierarchy:
    def test_all_exceptions_inherit_from_service_error(self):
        failures = [
            name
            for name, exc_class in get_all_exception_classes()
            if exc_class is not ServiceError and not issubclass(exc_class, ServiceError)
        ]
        assert not failures, f"Exceptions not inheriting from ServiceError: {failures}"

    @pytest.mark.parametrize(
        "child, parent",
        [
            (SpacingError, ValidationError),
            (DeadlinePassedError, ValidationError),
            (UndoNotPermitted, OrderStateError),
        ],
    )
    def test_specializations(self, child, parent):
        assert issubclass(child, parent)


class TestExceptionAttributes:
    def test_validation_error_joins_messages(self):
        error = ValidationError(["Name is required", "Zone is required"])

        assert error.errors == ["Name is required", "Zone is required"]
        assert str(error) == "Validation failed: Name is required; Zone is required"

    def test_spacing_error_reports_gap(self):
        error = SpacingError([(date(2024, 6, 3), date(2024, 6, 16))], 14)

        assert error.min_days == 14
        assert "13 days apart" in str(error)

    def test_deadline_passed_error(self):
        error = DeadlinePassedError(date(2024, 6, 3), datetime(2024, 6, 1, 23, 59, 59))

        assert error.deadline == datetime(2024, 6, 1, 23, 59, 59)
        assert "2024-06-01 23:59:59" in str(error)

    def test_order_not_found_with_and_without_date(self):
        assert "on 2024-06-03" in str(OrderNotFound("Tim Brown", date(2024, 6, 3)))
        assert str(OrderNotFound("42")) == "Order 42 not found"

    def test_order_state_error_mentions_status(self):
        error = OrderStateError(("Tim Brown", date(2024, 6, 3)), OrderStatus.MENU_PENDING, "complete a stop")

        assert error.current_status is OrderStatus.MENU_PENDING
        assert "menu_pending" in str(error)

    def test_undo_not_permitted_names_latest_stop(self):
        error = UndoNotPermitted(
            ("Tim Brown", date(2024, 6, 3)), OrderStatus.READY_FOR_DELIVERY, "Tim Brown|22 elm rd"
        )

        assert error.latest_stop_key == "Tim Brown|22 elm rd"
        assert "Tim Brown|22 elm rd" in str(error)

    def test_queue_replay_error_counts(self):
        error = QueueReplayError(2, ["entry 3: offline"])

        assert error.processed == 2
        assert "2 succeeded, 1 failed" in str(error)

    def test_persistence_error_keeps_cause(self):
        cause = OSError("disk full")
        assert PersistenceError("setting 'x'", cause).original_error is cause

    def test_client_not_found(self):
        assert ClientNotFound("tim-b").identifier == "tim-b"
