"""Post-redirect reconciliation of the order status.

After the customer returns from an external payment page, the stored status
is re-read with increasing delays. If the webhook has still not resolved the
payment, one guarded ``pending_payment -> paid`` write is attempted; when that
write loses to a concurrent writer the customer sees "pending", never a
false success.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
import enum
from urllib.parse import parse_qs, urlsplit

from orderwise.checkout.orders import OrderStateMachine
from orderwise.checkout.status import OrderStatus, TransitionSource
from orderwise.payments.logger import ReconciliationLogger

Sleep = Callable[[float], Awaitable[None]]


class RedirectStatus(enum.Enum):
    SUCCESS = "success"
    FAILED = "failed"
    CANCELLED = "cancelled"


class ReconciliationResult(enum.Enum):
    SUCCESS = "success"
    FAILED = "failed"
    PENDING = "pending"
    CANCELLED = "cancelled"


class PollerState(enum.Enum):
    CHECKING = "checking"
    WAITING = "waiting"
    RESOLVED = "resolved"
    EXHAUSTED = "exhausted"


@dataclass(frozen=True, slots=True)
class OutcomeCopy:
    title: str
    message: str
    can_retry: bool


OUTCOME_COPY: dict[ReconciliationResult, OutcomeCopy] = {
    ReconciliationResult.SUCCESS: OutcomeCopy(
        "Order Placed Successfully!",
        "Thank you for your purchase. Your payment has been confirmed.",
        can_retry=False,
    ),
    ReconciliationResult.FAILED: OutcomeCopy(
        "Payment Failed",
        "We could not process your payment. Please try again from your cart.",
        can_retry=True,
    ),
    ReconciliationResult.PENDING: OutcomeCopy(
        "Payment Processing",
        "Your payment is still being processed. Check your orders again shortly.",
        can_retry=False,
    ),
    ReconciliationResult.CANCELLED: OutcomeCopy(
        "Payment Cancelled",
        "Your payment was cancelled. You can return to your cart to try again.",
        can_retry=True,
    ),
}


@dataclass(frozen=True, slots=True)
class ReconciliationOutcome:
    order_id: str
    result: ReconciliationResult
    order_status: str | None
    attempts: int
    states: tuple[PollerState, ...]
    guarded_update_applied: bool | None = None

    @property
    def title(self) -> str:
        return OUTCOME_COPY[self.result].title

    @property
    def message(self) -> str:
        return OUTCOME_COPY[self.result].message

    @property
    def can_retry(self) -> bool:
        """Only failures offer "try again", which returns to the cart."""
        return OUTCOME_COPY[self.result].can_retry


def parse_redirect(url_or_query: str) -> tuple[RedirectStatus, str]:
    """Extract ``(status, order_id)`` from a redirect-back URL or query string.

    Raises:
        ValueError: If either parameter is missing or the status is unknown
    """
    query = urlsplit(url_or_query).query if "?" in url_or_query else url_or_query
    params = parse_qs(query.lstrip("?"))
    status = (params.get("status") or [""])[0]
    order_id = (params.get("order_id") or [""])[0]
    if not order_id:
        raise ValueError("Redirect is missing order_id")
    try:
        return RedirectStatus(status), order_id
    except ValueError as e:
        raise ValueError(f"Unknown redirect status: {status!r}") from e


def result_for_status(status: OrderStatus) -> ReconciliationResult:
    if status is OrderStatus.PENDING_PAYMENT:
        return ReconciliationResult.PENDING
    if status is OrderStatus.PAYMENT_FAILED:
        return ReconciliationResult.FAILED
    if status in (OrderStatus.CANCELLED, OrderStatus.PENDING_CANCELLATION):
        return ReconciliationResult.CANCELLED
    return ReconciliationResult.SUCCESS


class ReconciliationPoller:
    """Bounded re-reads with ``attempt * delay_unit`` waits, then one CAS."""

    def __init__(
        self,
        state_machine: OrderStateMachine,
        *,
        max_attempts: int = 5,
        delay_unit_seconds: float = 1.0,
        sleep: Sleep = asyncio.sleep,
        logger: ReconciliationLogger | None = None,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._state_machine = state_machine
        self._max_attempts = max_attempts
        self._delay_unit_seconds = delay_unit_seconds
        self._sleep = sleep
        self._logger = logger or ReconciliationLogger()

    def delays(self) -> list[float]:
        return [attempt * self._delay_unit_seconds for attempt in range(self._max_attempts)]

    @property
    def max_wait_seconds(self) -> float:
        return sum(self.delays())

    async def reconcile(
        self, order_id: str, redirect_status: RedirectStatus
    ) -> ReconciliationOutcome:
        """Converge the customer's view with the stored order status.

        Raises:
            OrderNotFoundError: If ``order_id`` does not exist
        """
        self._logger.started(order_id, redirect_status.value)
        states: list[PollerState] = [PollerState.CHECKING]
        status = self._state_machine.status_of(order_id)

        if status is not OrderStatus.PENDING_PAYMENT:
            states.append(PollerState.RESOLVED)
            return self._finish(order_id, result_for_status(status), status, 0, states)

        if redirect_status is not RedirectStatus.SUCCESS:
            return self._record_failure(order_id, redirect_status, states)

        for attempt, delay in enumerate(self.delays()):
            states.append(PollerState.WAITING)
            await self._sleep(delay)
            states.append(PollerState.CHECKING)
            status = self._state_machine.status_of(order_id)
            self._logger.attempt(order_id, attempt, delay, status.value)
            if status is not OrderStatus.PENDING_PAYMENT:
                states.append(PollerState.RESOLVED)
                return self._finish(
                    order_id, result_for_status(status), status, attempt + 1, states
                )

        states.append(PollerState.EXHAUSTED)
        applied = self._state_machine.resolve_payment(
            order_id, OrderStatus.PAID, TransitionSource.RECONCILIATION
        )
        self._logger.guarded_update(order_id, applied)
        if applied:
            return self._finish(
                order_id,
                ReconciliationResult.SUCCESS,
                OrderStatus.PAID,
                self._max_attempts,
                states,
                guarded_update_applied=True,
            )
        # Another writer got there first; do not guess which way it went.
        return self._finish(
            order_id,
            ReconciliationResult.PENDING,
            self._state_machine.status_of(order_id),
            self._max_attempts,
            states,
            guarded_update_applied=False,
        )

    def _record_failure(
        self,
        order_id: str,
        redirect_status: RedirectStatus,
        states: list[PollerState],
    ) -> ReconciliationOutcome:
        applied = self._state_machine.resolve_payment(
            order_id, OrderStatus.PAYMENT_FAILED, TransitionSource.RECONCILIATION
        )
        states.append(PollerState.RESOLVED)
        if applied:
            result = (
                ReconciliationResult.CANCELLED
                if redirect_status is RedirectStatus.CANCELLED
                else ReconciliationResult.FAILED
            )
            return self._finish(
                order_id,
                result,
                OrderStatus.PAYMENT_FAILED,
                0,
                states,
                guarded_update_applied=True,
            )
        status = self._state_machine.status_of(order_id)
        return self._finish(
            order_id,
            result_for_status(status),
            status,
            0,
            states,
            guarded_update_applied=False,
        )

    def _finish(
        self,
        order_id: str,
        result: ReconciliationResult,
        status: OrderStatus,
        attempts: int,
        states: list[PollerState],
        *,
        guarded_update_applied: bool | None = None,
    ) -> ReconciliationOutcome:
        outcome = ReconciliationOutcome(
            order_id=order_id,
            result=result,
            order_status=status.value,
            attempts=attempts,
            states=tuple(states),
            guarded_update_applied=guarded_update_applied,
        )
        self._logger.finished(outcome)
        return outcome
