"""Order creation and the guarded order-status state machine."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
import secrets
import uuid

from orderwise.adapters.db.facade import DB, ConditionalUpdateError
from orderwise.adapters.db.models import Order
from orderwise.checkout.entities import (
    LineItem,
    PaymentSelection,
    ShippingAddress,
)
from orderwise.checkout.errors import (
    InsufficientStockError,
    InvalidTransitionError,
    OrderNotFoundError,
    VoucherError,
)
from orderwise.checkout.logger import CheckoutLogger
from orderwise.checkout.pricing import PriceBreakdown
from orderwise.checkout.status import (
    PENDING_PAYMENT_VALUES,
    OrderStatus,
    TransitionSource,
    ensure_transition,
    initial_status_for,
    parse_status,
)
from orderwise.checkout.stock import StockShortage, StockValidator, requested_quantities
from orderwise.checkout.vouchers import VoucherFailureReason
from orderwise.core.clock import utcnow


def generate_order_number(now: datetime | None = None) -> str:
    """Display number ``ORD<epoch-ms><suffix>``; the primary key is separate."""
    moment = now or utcnow()
    epoch_ms = int((moment - datetime(1970, 1, 1)).total_seconds() * 1000)
    return f"ORD{epoch_ms}{secrets.token_hex(2).upper()}"


@dataclass(frozen=True, slots=True)
class OrderDraft:
    """Frozen priced snapshot handed from checkout to the order store."""

    items: list[LineItem]
    breakdown: PriceBreakdown
    shipping_address: ShippingAddress
    payment: PaymentSelection
    voucher_code: str | None = None
    consume_voucher: bool = False
    notes: str | None = None
    user_id: str | None = None
    order_id: str = field(default_factory=lambda: uuid.uuid4().hex)


class OrderFactory:
    """Persists orders together with their stock and voucher side effects."""

    def __init__(self, db: DB, *, logger: CheckoutLogger | None = None) -> None:
        self._db = db
        self._logger = logger or CheckoutLogger()

    def create(self, draft: OrderDraft) -> Order:
        """Insert the order in one transaction.

        Raises:
            InsufficientStockError: A conditional stock decrement failed
            VoucherError: The voucher hit its usage limit before commit
        """
        payment_method = draft.payment.stored_name()
        status = initial_status_for(payment_method)
        data = {
            "id": draft.order_id,
            "order_number": generate_order_number(),
            "user_id": draft.user_id,
            "items": [item.to_payload() for item in draft.items],
            "total_amount_cents": draft.breakdown.total_cents,
            "shipping_fee_cents": draft.breakdown.shipping_fee_cents,
            "voucher_code": draft.voucher_code,
            "voucher_discount_cents": draft.breakdown.voucher_discount_cents,
            "shipping_address": draft.shipping_address.to_payload(),
            "payment_method": payment_method,
            "notes": draft.notes,
            "status": status.value,
        }
        try:
            order = self._db.create_order(
                data,
                reservations=StockValidator.reservations(draft.items),
                voucher_code=draft.voucher_code if draft.consume_voucher else None,
                source=TransitionSource.CHECKOUT.value,
            )
        except ConditionalUpdateError as e:
            if e.kind == "voucher":
                raise VoucherError(
                    VoucherFailureReason.LIMIT_REACHED,
                    "This voucher has reached its usage limit",
                ) from e
            shortages = self._shortages_for(draft.items, e.keys)
            self._logger.stock_rejected(shortages)
            raise InsufficientStockError(shortages) from e

        self._logger.order_created(
            order.id, order.order_number, order.status, order.total_amount_cents
        )
        return order

    def _shortages_for(
        self, items: list[LineItem], product_ids: list[str]
    ) -> list[StockShortage]:
        requested = requested_quantities(items)
        levels = self._db.fetch_stock_levels(product_ids)
        return [
            StockShortage(
                product_id=product_id,
                name=requested[product_id][0],
                requested=requested[product_id][1],
                available=levels.get(product_id, 0),
            )
            for product_id in product_ids
        ]


class OrderStateMachine:
    """Forward-only status changes, each written as a compare-and-swap."""

    def __init__(self, db: DB, *, logger: CheckoutLogger | None = None) -> None:
        self._db = db
        self._logger = logger or CheckoutLogger()

    def get_order(self, order_id: str) -> Order:
        order = self._db.get_order(order_id)
        if order is None:
            raise OrderNotFoundError(order_id)
        return order

    def status_of(self, order_id: str) -> OrderStatus:
        value = self._db.get_order_status(order_id)
        if value is None:
            raise OrderNotFoundError(order_id)
        return parse_status(value)

    def transition(
        self,
        order_id: str,
        target: OrderStatus,
        source: TransitionSource,
        extra: dict[str, object] | None = None,
    ) -> bool:
        """Move ``order_id`` to ``target`` from whatever it holds now.

        Returns:
            False if another writer changed the status in between

        Raises:
            OrderNotFoundError: Unknown order
            InvalidTransitionError: ``target`` is not reachable from the current status
        """
        current = self.status_of(order_id)
        ensure_transition(current, target)
        return self._swap(order_id, current, target, source, extra)

    def resolve_payment(
        self, order_id: str, target: OrderStatus, source: TransitionSource
    ) -> bool:
        """Guarded ``pending_payment -> paid | payment_failed``.

        Never raises for an order that has already moved on; the write simply
        does not apply.
        """
        if target not in (OrderStatus.PAID, OrderStatus.PAYMENT_FAILED):
            raise InvalidTransitionError(OrderStatus.PENDING_PAYMENT, target)
        return self._swap(order_id, OrderStatus.PENDING_PAYMENT, target, source)

    def revoke_reconciled_payment(
        self, order_id: str, source: TransitionSource = TransitionSource.WEBHOOK
    ) -> bool:
        """Guarded ``paid -> payment_failed`` for a ``paid`` the poller assumed.

        Applies only while the latest status event is the reconciliation
        write. A ``paid`` confirmed by the gateway, or an order that has moved
        on to fulfilment, is left untouched.
        """
        return self._swap(
            order_id,
            OrderStatus.PAID,
            OrderStatus.PAYMENT_FAILED,
            source,
            expected_source=TransitionSource.RECONCILIATION,
        )

    def request_cancellation(
        self,
        order_id: str,
        reason: str,
        details: str | None = None,
        source: TransitionSource = TransitionSource.CUSTOMER,
    ) -> bool:
        current = self.status_of(order_id)
        ensure_transition(current, OrderStatus.PENDING_CANCELLATION)
        return self._swap(
            order_id,
            current,
            OrderStatus.PENDING_CANCELLATION,
            source,
            {
                "status_before_cancellation": current.value,
                "cancellation_reason": reason,
                "cancellation_details": details,
                "cancellation_requested_at": utcnow(),
            },
        )

    def approve_cancellation(self, order_id: str) -> bool:
        return self.transition(
            order_id,
            OrderStatus.CANCELLED,
            TransitionSource.ADMIN,
            {"cancellation_approved_at": utcnow()},
        )

    def deny_cancellation(self, order_id: str) -> bool:
        """Lift the cancellation hold, restoring the status it suspended."""
        order = self.get_order(order_id)
        current = parse_status(order.status)
        if current is not OrderStatus.PENDING_CANCELLATION:
            raise InvalidTransitionError(current, "previous status")
        if not order.status_before_cancellation:
            raise InvalidTransitionError(current, "unknown previous status")
        restored = parse_status(order.status_before_cancellation)
        return self._swap(
            order_id,
            current,
            restored,
            TransitionSource.ADMIN,
            {"status_before_cancellation": None},
        )

    def confirm_delivery(self, order_id: str) -> bool:
        return self.transition(order_id, OrderStatus.COMPLETED, TransitionSource.CUSTOMER)

    def request_return_refund(self, order_id: str) -> bool:
        return self.transition(
            order_id, OrderStatus.RETURN_REFUND, TransitionSource.CUSTOMER
        )

    def advance_fulfillment(self, order_id: str) -> OrderStatus:
        """``to_pay | paid -> to_ship -> to_receive``; returns the new status."""
        current = self.status_of(order_id)
        if current in (OrderStatus.TO_PAY, OrderStatus.PAID):
            target = OrderStatus.TO_SHIP
        elif current is OrderStatus.TO_SHIP:
            target = OrderStatus.TO_RECEIVE
        else:
            raise InvalidTransitionError(current, OrderStatus.TO_SHIP)
        if not self._swap(order_id, current, target, TransitionSource.ADMIN):
            return self.status_of(order_id)
        return target

    def _swap(
        self,
        order_id: str,
        expected: OrderStatus,
        target: OrderStatus,
        source: TransitionSource,
        extra: dict[str, object] | None = None,
        expected_source: TransitionSource | None = None,
    ) -> bool:
        expected_values = (
            PENDING_PAYMENT_VALUES
            if expected is OrderStatus.PENDING_PAYMENT
            else {expected.value}
        )
        applied = self._db.compare_and_set_status(
            order_id,
            expected=expected_values,
            new_status=target.value,
            source=source.value,
            extra=extra,
            expected_source=expected_source.value if expected_source else None,
        )
        if applied:
            self._logger.transition_applied(
                order_id, expected.value, target.value, source.value
            )
        else:
            self._logger.transition_lost(order_id, target.value, source.value)
        return applied
