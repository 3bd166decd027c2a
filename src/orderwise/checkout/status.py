"""Order status enum and the forward-only transition table."""

from __future__ import annotations

import enum

from orderwise.checkout.errors import InvalidTransitionError


class OrderStatus(enum.Enum):
    """Persisted order status."""

    PENDING_PAYMENT = "pending_payment"
    TO_PAY = "to_pay"
    PAID = "paid"
    PAYMENT_FAILED = "payment_failed"
    TO_SHIP = "to_ship"
    TO_RECEIVE = "to_receive"
    COMPLETED = "completed"
    PENDING_CANCELLATION = "pending_cancellation"
    CANCELLED = "cancelled"
    RETURN_REFUND = "return_refund"


class TransitionSource(enum.Enum):
    """Who wrote a status change."""

    CHECKOUT = "checkout"
    GATEWAY = "gateway"
    WEBHOOK = "webhook"
    RECONCILIATION = "reconciliation"
    CUSTOMER = "customer"
    ADMIN = "admin"


# Rows written by older clients use "pending" for the awaiting-payment state.
LEGACY_PENDING = "pending"

PENDING_PAYMENT_VALUES = frozenset({OrderStatus.PENDING_PAYMENT.value, LEGACY_PENDING})

# Completed orders still accept the after-sale return_refund.
TERMINAL_STATUSES = frozenset(
    {
        OrderStatus.COMPLETED,
        OrderStatus.PAYMENT_FAILED,
        OrderStatus.CANCELLED,
        OrderStatus.RETURN_REFUND,
    }
)

ALLOWED_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING_PAYMENT: frozenset(
        {
            OrderStatus.PAID,
            OrderStatus.PAYMENT_FAILED,
            OrderStatus.PENDING_CANCELLATION,
        }
    ),
    OrderStatus.TO_PAY: frozenset(
        {OrderStatus.TO_SHIP, OrderStatus.PENDING_CANCELLATION}
    ),
    OrderStatus.PAID: frozenset({OrderStatus.TO_SHIP, OrderStatus.PENDING_CANCELLATION}),
    OrderStatus.TO_SHIP: frozenset(
        {OrderStatus.TO_RECEIVE, OrderStatus.PENDING_CANCELLATION}
    ),
    OrderStatus.TO_RECEIVE: frozenset(
        {
            OrderStatus.COMPLETED,
            OrderStatus.RETURN_REFUND,
            OrderStatus.PENDING_CANCELLATION,
        }
    ),
    OrderStatus.COMPLETED: frozenset({OrderStatus.RETURN_REFUND}),
    OrderStatus.PENDING_CANCELLATION: frozenset({OrderStatus.CANCELLED}),
    OrderStatus.PAYMENT_FAILED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
    OrderStatus.RETURN_REFUND: frozenset(),
}

# Statuses at which the payment question is settled, as far as the
# reconciliation loop is concerned.
PAYMENT_RESOLVED_STATUSES = frozenset(OrderStatus) - {OrderStatus.PENDING_PAYMENT}


def parse_status(value: str) -> OrderStatus:
    """Map a stored status string to ``OrderStatus``.

    The legacy ``"pending"`` value is read as ``PENDING_PAYMENT``.
    """
    if value == LEGACY_PENDING:
        return OrderStatus.PENDING_PAYMENT
    return OrderStatus(value)


def initial_status_for(payment_method: str) -> OrderStatus:
    """Pay-on-delivery orders are confirmed at once; online ones await payment."""
    if payment_method == "cash_on_delivery":
        return OrderStatus.TO_PAY
    return OrderStatus.PENDING_PAYMENT


def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


def ensure_transition(current: OrderStatus, target: OrderStatus) -> None:
    """Raise ``InvalidTransitionError`` unless ``current -> target`` is allowed."""
    if not can_transition(current, target):
        raise InvalidTransitionError(current, target)


def is_terminal(status: OrderStatus) -> bool:
    return status in TERMINAL_STATUSES
