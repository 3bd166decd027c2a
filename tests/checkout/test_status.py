"""Tests for the order status transition table."""

from __future__ import annotations

import pytest

from orderwise.checkout.errors import InvalidTransitionError
from orderwise.checkout.status import (
    ALLOWED_TRANSITIONS,
    OrderStatus,
    can_transition,
    ensure_transition,
    initial_status_for,
    is_terminal,
    parse_status,
)


class TestParseStatus:
    def test_legacy_pending_maps_to_pending_payment(self) -> None:
        assert parse_status("pending") is OrderStatus.PENDING_PAYMENT

    def test_unknown_value(self) -> None:
        with pytest.raises(ValueError):
            parse_status("shipped")


class TestTransitions:
    @pytest.mark.parametrize(
        ("current", "target"),
        [
            (OrderStatus.PENDING_PAYMENT, OrderStatus.PAID),
            (OrderStatus.PENDING_PAYMENT, OrderStatus.PAYMENT_FAILED),
            (OrderStatus.TO_PAY, OrderStatus.TO_SHIP),
            (OrderStatus.PAID, OrderStatus.TO_SHIP),
            (OrderStatus.TO_SHIP, OrderStatus.TO_RECEIVE),
            (OrderStatus.TO_RECEIVE, OrderStatus.COMPLETED),
            (OrderStatus.COMPLETED, OrderStatus.RETURN_REFUND),
            (OrderStatus.PENDING_CANCELLATION, OrderStatus.CANCELLED),
        ],
    )
    def test_allowed(self, current: OrderStatus, target: OrderStatus) -> None:
        assert can_transition(current, target)

    @pytest.mark.parametrize(
        ("current", "target"),
        [
            (OrderStatus.PAID, OrderStatus.PENDING_PAYMENT),
            (OrderStatus.PAID, OrderStatus.PAYMENT_FAILED),
            (OrderStatus.PAYMENT_FAILED, OrderStatus.PAID),
            (OrderStatus.TO_SHIP, OrderStatus.PAID),
            (OrderStatus.COMPLETED, OrderStatus.PENDING_CANCELLATION),
            (OrderStatus.CANCELLED, OrderStatus.TO_SHIP),
        ],
    )
    def test_rejected(self, current: OrderStatus, target: OrderStatus) -> None:
        with pytest.raises(InvalidTransitionError) as exc_info:
            ensure_transition(current, target)

        assert exc_info.value.current is current

    def test_terminal_statuses_allow_only_return_refund(self) -> None:
        for status, targets in ALLOWED_TRANSITIONS.items():
            if is_terminal(status):
                assert targets <= {OrderStatus.RETURN_REFUND}
            else:
                assert targets

    def test_completed_is_terminal(self) -> None:
        assert is_terminal(OrderStatus.COMPLETED)
        assert can_transition(OrderStatus.COMPLETED, OrderStatus.RETURN_REFUND)

    def test_every_status_has_a_row(self) -> None:
        assert set(ALLOWED_TRANSITIONS) == set(OrderStatus)


class TestInitialStatus:
    def test_cash_on_delivery(self) -> None:
        assert initial_status_for("cash_on_delivery") is OrderStatus.TO_PAY

    @pytest.mark.parametrize("method", ["paymongo_gcash", "bank_transfer_bdo"])
    def test_online_methods(self, method: str) -> None:
        assert initial_status_for(method) is OrderStatus.PENDING_PAYMENT
