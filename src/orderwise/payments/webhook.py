"""Applies payment gateway webhook events to orders."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ValidationError

from orderwise.checkout.orders import OrderStateMachine
from orderwise.checkout.status import OrderStatus, TransitionSource
from orderwise.payments.logger import WebhookLogger

EVENT_STATUS: dict[str, OrderStatus] = {
    "payment.paid": OrderStatus.PAID,
    "source.chargeable": OrderStatus.PAID,
    "payment.failed": OrderStatus.PAYMENT_FAILED,
}


class _Metadata(BaseModel):
    order_id: str | None = None


class _ResourceAttributes(BaseModel):
    metadata: _Metadata | None = None


class _Resource(BaseModel):
    attributes: _ResourceAttributes | None = None


class _EventAttributes(BaseModel):
    type: str | None = None
    data: _Resource | None = None


class _EventData(BaseModel):
    attributes: _EventAttributes | None = None


class WebhookEvent(BaseModel):
    data: _EventData | None = None

    @classmethod
    def parse(cls, data: Any) -> WebhookEvent:
        return cls.model_validate(data)

    @property
    def event_type(self) -> str | None:
        attrs = self.data.attributes if self.data else None
        return attrs.type if attrs else None

    @property
    def order_id(self) -> str | None:
        attrs = self.data.attributes if self.data else None
        resource = attrs.data if attrs else None
        inner = resource.attributes if resource else None
        metadata = inner.metadata if inner else None
        return metadata.order_id if metadata else None


@dataclass(frozen=True, slots=True)
class WebhookResult:
    event_type: str | None
    order_id: str | None
    applied: bool
    status: OrderStatus | None = None


class WebhookProcessor:
    """Authoritative but forward-only.

    Writes from pending payment. The one backward step is a failure event
    overriding a ``paid`` that reconciliation assumed without confirmation.
    """

    def __init__(
        self, state_machine: OrderStateMachine, *, logger: WebhookLogger | None = None
    ) -> None:
        self._state_machine = state_machine
        self._logger = logger or WebhookLogger()

    def handle(self, payload: Any) -> WebhookResult:
        """Apply one event; malformed or irrelevant events are acknowledged."""
        try:
            event = WebhookEvent.parse(payload)
        except ValidationError:
            self._logger.event_ignored(None, "malformed payload")
            return WebhookResult(event_type=None, order_id=None, applied=False)

        event_type, order_id = event.event_type, event.order_id
        self._logger.event_received(event_type, order_id)

        target = EVENT_STATUS.get(event_type or "")
        if target is None:
            self._logger.event_ignored(event_type, "unhandled event type")
            return WebhookResult(event_type=event_type, order_id=order_id, applied=False)
        if not order_id:
            self._logger.event_ignored(event_type, "missing order id")
            return WebhookResult(event_type=event_type, order_id=None, applied=False)

        applied = self._state_machine.resolve_payment(
            order_id, target, TransitionSource.WEBHOOK
        )
        if not applied and target is OrderStatus.PAYMENT_FAILED:
            applied = self._state_machine.revoke_reconciled_payment(
                order_id, TransitionSource.WEBHOOK
            )
        self._logger.event_applied(order_id, target.value, applied)
        return WebhookResult(
            event_type=event_type, order_id=order_id, applied=applied, status=target
        )
