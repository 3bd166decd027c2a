"""Tests for post-redirect payment reconciliation."""

from __future__ import annotations

import asyncio
from unittest.mock import MagicMock

from factories import address, create_db, line, seed_products
import pytest

from orderwise.adapters.db.facade import DB
from orderwise.checkout.entities import PaymentChannelKind, PaymentSelection
from orderwise.checkout.errors import OrderNotFoundError
from orderwise.checkout.orders import OrderDraft, OrderFactory, OrderStateMachine
from orderwise.checkout.pricing import compute_breakdown
from orderwise.checkout.status import OrderStatus, TransitionSource
from orderwise.payments.logger import ReconciliationLogger
from orderwise.payments.reconciliation import (
    PollerState,
    ReconciliationPoller,
    ReconciliationResult,
    RedirectStatus,
    parse_redirect,
)


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class WebhookDuringPolling(OrderStateMachine):
    """Lets a webhook land right after the poller's last read of the order."""

    def __init__(self, db: DB, race_on_read: int) -> None:
        super().__init__(db)
        self._reads = 0
        self._race_on_read = race_on_read

    def status_of(self, order_id: str) -> OrderStatus:
        self._reads += 1
        if self._reads == self._race_on_read:
            super().resolve_payment(order_id, OrderStatus.PAID, TransitionSource.WEBHOOK)
            return OrderStatus.PENDING_PAYMENT
        return super().status_of(order_id)


class OnlyPaidOnRead(OrderStateMachine):
    """Webhook arrives while the poller is waiting before read ``n``."""

    def __init__(self, db: DB, paid_on_read: int) -> None:
        super().__init__(db)
        self._reads = 0
        self._paid_on_read = paid_on_read

    def status_of(self, order_id: str) -> OrderStatus:
        self._reads += 1
        if self._reads == self._paid_on_read:
            super().resolve_payment(order_id, OrderStatus.PAID, TransitionSource.WEBHOOK)
        return super().status_of(order_id)


def pending_order(db: DB) -> str:
    seed_products(db)
    return (
        OrderFactory(db)
        .create(
            OrderDraft(
                items=[line("fert", 1)],
                breakdown=compute_breakdown(50000, 5000),
                shipping_address=address(),
                payment=PaymentSelection(PaymentChannelKind.HOSTED_CHECKOUT, "gcash"),
            )
        )
        .id
    )


def poller(
    state_machine: OrderStateMachine, sleep: RecordingSleep, max_attempts: int = 5
) -> ReconciliationPoller:
    return ReconciliationPoller(
        state_machine,
        max_attempts=max_attempts,
        delay_unit_seconds=1.0,
        sleep=sleep,
        logger=MagicMock(spec=ReconciliationLogger),
    )


class TestParseRedirect:
    def test_full_url(self) -> None:
        assert parse_redirect(
            "https://shop.example/payment/result?status=success&order_id=abc"
        ) == (RedirectStatus.SUCCESS, "abc")

    def test_bare_query(self) -> None:
        assert parse_redirect("status=cancelled&order_id=abc") == (
            RedirectStatus.CANCELLED,
            "abc",
        )

    def test_missing_order_id(self) -> None:
        with pytest.raises(ValueError, match="order_id"):
            parse_redirect("status=success")

    def test_unknown_status(self) -> None:
        with pytest.raises(ValueError, match="Unknown redirect status"):
            parse_redirect("status=maybe&order_id=abc")


class TestReconciliationPoller:
    def test_delays_grow_linearly(self) -> None:
        reconciler = poller(OrderStateMachine(create_db()), RecordingSleep())

        assert reconciler.delays() == [0.0, 1.0, 2.0, 3.0, 4.0]
        assert reconciler.max_wait_seconds == 10.0

    def test_rejects_zero_attempts(self) -> None:
        with pytest.raises(ValueError):
            ReconciliationPoller(OrderStateMachine(create_db()), max_attempts=0)

    def test_already_paid_resolves_without_waiting(self) -> None:
        # Setup
        db = create_db()
        order_id = pending_order(db)
        state_machine = OrderStateMachine(db)
        state_machine.resolve_payment(order_id, OrderStatus.PAID, TransitionSource.WEBHOOK)
        sleep = RecordingSleep()

        # Act
        outcome = asyncio.run(
            poller(state_machine, sleep).reconcile(order_id, RedirectStatus.SUCCESS)
        )

        # Assert
        assert outcome.result is ReconciliationResult.SUCCESS
        assert outcome.attempts == 0
        assert outcome.states == (PollerState.CHECKING, PollerState.RESOLVED)
        assert sleep.delays == []

    def test_webhook_during_polling(self) -> None:
        # Setup - paid shows up on the third read (second polling attempt)
        db = create_db()
        order_id = pending_order(db)
        sleep = RecordingSleep()

        # Act
        outcome = asyncio.run(
            poller(OnlyPaidOnRead(db, paid_on_read=3), sleep).reconcile(
                order_id, RedirectStatus.SUCCESS
            )
        )

        # Assert
        assert outcome.result is ReconciliationResult.SUCCESS
        assert outcome.attempts == 2
        assert sleep.delays == [0.0, 1.0]
        assert outcome.guarded_update_applied is None

    def test_exhausted_polling_writes_paid_once(self) -> None:
        # Setup - webhook never arrives
        db = create_db()
        order_id = pending_order(db)
        sleep = RecordingSleep()

        # Act
        outcome = asyncio.run(
            poller(OrderStateMachine(db), sleep).reconcile(order_id, RedirectStatus.SUCCESS)
        )

        # Assert
        assert outcome.result is ReconciliationResult.SUCCESS
        assert outcome.guarded_update_applied is True
        assert outcome.attempts == 5
        assert outcome.states[-1] is PollerState.EXHAUSTED
        assert sum(sleep.delays) == 10.0
        assert db.get_order_status(order_id) == "paid"
        sources = [e.source for e in db.list_status_events(order_id)]
        assert sources == ["checkout", "reconciliation"]

    def test_guarded_write_loses_to_webhook(self) -> None:
        # Setup - webhook lands between the final read and the guarded write
        db = create_db()
        order_id = pending_order(db)
        racing = WebhookDuringPolling(db, race_on_read=3)

        # Act
        outcome = asyncio.run(
            poller(racing, RecordingSleep(), max_attempts=2).reconcile(
                order_id, RedirectStatus.SUCCESS
            )
        )

        # Assert - no false success, and exactly one writer moved the order
        assert outcome.result is ReconciliationResult.PENDING
        assert outcome.guarded_update_applied is False
        assert outcome.order_status == "paid"
        assert not outcome.can_retry
        sources = [e.source for e in db.list_status_events(order_id)]
        assert sources == ["checkout", "webhook"]

    def test_failed_redirect_records_failure(self) -> None:
        db = create_db()
        order_id = pending_order(db)
        sleep = RecordingSleep()

        outcome = asyncio.run(
            poller(OrderStateMachine(db), sleep).reconcile(order_id, RedirectStatus.FAILED)
        )

        assert outcome.result is ReconciliationResult.FAILED
        assert outcome.can_retry
        assert outcome.title == "Payment Failed"
        assert db.get_order_status(order_id) == "payment_failed"
        assert sleep.delays == []

    def test_cancelled_redirect(self) -> None:
        db = create_db()
        order_id = pending_order(db)

        outcome = asyncio.run(
            poller(OrderStateMachine(db), RecordingSleep()).reconcile(
                order_id, RedirectStatus.CANCELLED
            )
        )

        assert outcome.result is ReconciliationResult.CANCELLED
        assert outcome.title == "Payment Cancelled"
        assert db.get_order_status(order_id) == "payment_failed"

    def test_failed_redirect_after_webhook_paid_reports_success(self) -> None:
        db = create_db()
        order_id = pending_order(db)
        racing = WebhookDuringPolling(db, race_on_read=1)

        outcome = asyncio.run(
            poller(racing, RecordingSleep()).reconcile(order_id, RedirectStatus.FAILED)
        )

        assert outcome.result is ReconciliationResult.SUCCESS
        assert outcome.guarded_update_applied is False
        assert db.get_order_status(order_id) == "paid"

    def test_unknown_order(self) -> None:
        with pytest.raises(OrderNotFoundError):
            asyncio.run(
                poller(OrderStateMachine(create_db()), RecordingSleep()).reconcile(
                    "missing", RedirectStatus.SUCCESS
                )
            )
