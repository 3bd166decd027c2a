"""Exception hierarchy for checkout, payment and reconciliation failures."""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from orderwise.checkout.status import OrderStatus
    from orderwise.checkout.stock import StockShortage
    from orderwise.checkout.vouchers import VoucherFailureReason


class OrderwiseError(Exception):
    """Base error for the checkout engine."""


class CheckoutValidationError(OrderwiseError):
    """User input is incomplete; raised before any store or network call."""

    def __init__(self, problems: Sequence[str]) -> None:
        self.problems = list(problems)
        super().__init__("; ".join(self.problems))


class InsufficientStockError(OrderwiseError):
    """One or more items cannot be fulfilled. No order was created."""

    def __init__(self, shortages: Sequence[StockShortage]) -> None:
        self.shortages = list(shortages)
        details = ", ".join(s.describe() for s in self.shortages)
        super().__init__(f"Not enough stock for: {details}")


class VoucherError(OrderwiseError):
    """Voucher could not be applied."""

    def __init__(self, reason: VoucherFailureReason, message: str) -> None:
        self.reason = reason
        self.message = message
        super().__init__(message)


class OrderNotFoundError(OrderwiseError):
    """Order id does not exist in the store."""

    def __init__(self, order_id: str) -> None:
        self.order_id = order_id
        super().__init__(f"Order {order_id} not found")


class InvalidTransitionError(OrderwiseError):
    """Requested status change is not a forward transition."""

    def __init__(self, current: OrderStatus | str, target: OrderStatus | str) -> None:
        self.current = current
        self.target = target
        super().__init__(
            f"Cannot move order from {_status_value(current)!r} "
            f"to {_status_value(target)!r}"
        )


class PaymentInitiationError(OrderwiseError):
    """Gateway refused or failed to start a payment.

    The order has already been moved to ``payment_failed`` when this is raised;
    retrying means placing a new order.
    """

    def __init__(self, order_id: str, message: str) -> None:
        self.order_id = order_id
        self.message = message
        super().__init__(message)


def _status_value(status: OrderStatus | str) -> str:
    return status if isinstance(status, str) else status.value
