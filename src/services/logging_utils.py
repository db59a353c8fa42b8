"""Service layer logging utilities.

Provides structured logging functions for service operations, enabling
consistent log format and context across order transitions, delivery
completion, routing and sync operations.

Usage:
    from src.services.logging_utils import get_service_logger, log_operation

    logger = get_service_logger(__name__)

    # Log successful operation
    log_operation(
        logger,
        operation="complete_stop",
        outcome="success",
        client_name="Tim Brown",
        delivery_date="2024-06-03",
    )

    # Log a guard failure
    log_operation(
        logger,
        operation="save_route",
        outcome="no_routable_stops",
        level=logging.WARNING,
        zone="1",
    )
"""

import logging
from typing import Any


def get_service_logger(name: str) -> logging.Logger:
    """
    Get a logger configured for service operations.

    Args:
        name: Logger name (typically __name__ of the calling module)

    Returns:
        Configured logger instance with the 'mealrun.services' prefix.

    Example:
        >>> logger = get_service_logger(__name__)
        >>> logger.name
        'mealrun.services.order_service'
    """
    if "." in name:
        name = name.split(".")[-1]
    return logging.getLogger(f"mealrun.services.{name}")


def log_operation(
    logger: logging.Logger,
    operation: str,
    outcome: str,
    level: int = logging.INFO,
    **context: Any,
) -> None:
    """
    Log a service operation with structured context.

    The context is passed via the 'extra' parameter for structured logging.

    Args:
        logger: Logger instance to use
        operation: Operation name (e.g., "approve_menu_item", "replay_pending")
        outcome: Outcome description (e.g., "success", "queued", "no_op")
        level: Log level (default: INFO). Use DEBUG for verbose/frequent logs.
        **context: Additional context fields (order keys, zone, counts, errors)
    """
    extra = {
        "operation": operation,
        "outcome": outcome,
        **context,
    }
    logger.log(level, f"{operation}: {outcome}", extra=extra)
