"""Logging for payment initiation, webhooks and reconciliation.

Separates logging logic from payment business logic.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import loguru
from loguru import logger

if TYPE_CHECKING:
    from orderwise.payments.reconciliation import ReconciliationOutcome


class PaymentLogger:
    """Handles all logging for payment initiation."""

    def __init__(self, logger_instance: loguru.Logger = logger) -> None:
        """Initialize logger.

        Args:
            logger_instance: Logger instance to use (defaults to loguru.logger)
        """
        self._logger = logger_instance

    def initiation_start(self, order_id: str, method: str, amount_cents: int) -> None:
        self._logger.bind(order_id=order_id, method=method, amount_cents=amount_cents).info(
            "Initiating {} payment for order {} (₱{:.2f})",
            method,
            order_id,
            amount_cents / 100,
        )

    def redirect_ready(self, order_id: str, checkout_url: str) -> None:
        self._logger.bind(order_id=order_id).debug(
            "Order {} redirecting to {}", order_id, checkout_url
        )

    def initiation_failed(self, order_id: str, message: str) -> None:
        """Log a payment that could not be started."""
        self._logger.bind(order_id=order_id, error=message).warning(
            "Payment initiation failed for order {}: {}", order_id, message
        )


class WebhookLogger:
    """Handles all logging for gateway webhook events."""

    def __init__(self, logger_instance: loguru.Logger = logger) -> None:
        self._logger = logger_instance

    def event_received(self, event_type: str | None, order_id: str | None) -> None:
        self._logger.bind(event_type=event_type, order_id=order_id).info(
            "Webhook {} for order {}", event_type, order_id
        )

    def event_ignored(self, event_type: str | None, reason: str) -> None:
        self._logger.bind(event_type=event_type, reason=reason).debug(
            "Webhook {} ignored: {}", event_type, reason
        )

    def event_applied(self, order_id: str, status: str, applied: bool) -> None:
        """Log the outcome of a webhook status write."""
        self._logger.bind(order_id=order_id, status=status, applied=applied).info(
            "Webhook write {} for order {}: {}",
            status,
            order_id,
            "applied" if applied else "not applied",
        )


class ReconciliationLogger:
    """Handles all logging for post-redirect reconciliation."""

    def __init__(self, logger_instance: loguru.Logger = logger) -> None:
        self._logger = logger_instance

    def started(self, order_id: str, redirect_status: str) -> None:
        self._logger.bind(order_id=order_id, redirect_status=redirect_status).info(
            "Reconciling order {} (redirect status: {})", order_id, redirect_status
        )

    def attempt(self, order_id: str, attempt: int, delay_seconds: float, status: str) -> None:
        """Log one re-read of the stored status."""
        self._logger.bind(
            order_id=order_id, attempt=attempt, delay=delay_seconds, status=status
        ).debug(
            "Order {} attempt {} after {:.1f}s: {}",
            order_id,
            attempt + 1,
            delay_seconds,
            status,
        )

    def guarded_update(self, order_id: str, applied: bool) -> None:
        self._logger.bind(order_id=order_id, applied=applied).info(
            "Order {} still pending after retries, guarded paid write {}",
            order_id,
            "applied" if applied else "rejected",
        )

    def finished(self, outcome: ReconciliationOutcome) -> None:
        """Log reconciliation summary."""
        self._logger.bind(
            order_id=outcome.order_id,
            result=outcome.result.value,
            status=outcome.order_status,
            attempts=outcome.attempts,
        ).info(
            "Reconciliation for order {} finished: {} after {} attempts",
            outcome.order_id,
            outcome.result.value,
            outcome.attempts,
        )
