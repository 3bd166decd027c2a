"""Logging for checkout and order lifecycle operations.

Keeps log formatting out of pricing and order code.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import loguru
from loguru import logger

if TYPE_CHECKING:
    from orderwise.checkout.pricing import PriceBreakdown
    from orderwise.checkout.stock import StockShortage
    from orderwise.checkout.vouchers import VoucherResult


class CheckoutLogger:
    """Handles all logging for checkout with business logic separated."""

    def __init__(self, logger_instance: loguru.Logger = logger) -> None:
        """Initialize logger.

        Args:
            logger_instance: Logger instance to use (defaults to loguru.logger)
        """
        self._logger = logger_instance

    def quote_computed(self, item_count: int, breakdown: PriceBreakdown) -> None:
        """Log a priced cart."""
        self._logger.bind(
            items=item_count,
            subtotal_cents=breakdown.subtotal_cents,
            shipping_cents=breakdown.shipping_fee_cents,
            discount_cents=breakdown.voucher_discount_cents,
            total_cents=breakdown.total_cents,
        ).debug(
            "Quoted {} lines: total ₱{:.2f}",
            item_count,
            breakdown.total_cents / 100,
        )

    def discount_clamped(self, requested_cents: int, granted_cents: int) -> None:
        self._logger.bind(requested=requested_cents, granted=granted_cents).info(
            "Voucher discount clamped from ₱{:.2f} to ₱{:.2f}",
            requested_cents / 100,
            granted_cents / 100,
        )

    def voucher_rejected(self, result: VoucherResult) -> None:
        """Log a voucher that will not be applied."""
        reason = result.failure.value if result.failure else "unknown"
        self._logger.bind(code=result.code, reason=reason).info(
            "Voucher {} rejected: {}", result.code, reason
        )

    def stock_rejected(self, shortages: list[StockShortage]) -> None:
        self._logger.bind(
            products=[s.product_id for s in shortages],
        ).warning(
            "Checkout rejected, {} products short",
            len(shortages),
        )

    def order_created(
        self, order_id: str, order_number: str, status: str, total_cents: int
    ) -> None:
        """Log a committed order."""
        self._logger.bind(
            order_id=order_id,
            order_number=order_number,
            status=status,
            total_cents=total_cents,
        ).info(
            "Created order {} ({}) with status {}",
            order_number,
            order_id,
            status,
        )

    def transition_applied(
        self, order_id: str, from_status: str, to_status: str, source: str
    ) -> None:
        self._logger.bind(
            order_id=order_id, from_status=from_status, to_status=to_status, source=source
        ).info("Order {}: {} -> {} ({})", order_id, from_status, to_status, source)

    def transition_lost(self, order_id: str, to_status: str, source: str) -> None:
        """Log a guarded write that found the row already moved."""
        self._logger.bind(order_id=order_id, to_status=to_status, source=source).info(
            "Order {}: {} write not applied, status changed concurrently",
            order_id,
            to_status,
        )
