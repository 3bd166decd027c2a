"""Payment initiation over cash-on-delivery, hosted checkout and bank transfer.

Channels only start payments. Confirmation comes from the webhook or from
the reconciliation loop's guarded write, never from here.
"""

from __future__ import annotations

import abc
from dataclasses import dataclass
import enum
from typing import NoReturn, Protocol

from orderwise.adapters.db.models import Order
from orderwise.checkout.entities import PaymentChannelKind, PaymentSelection
from orderwise.checkout.errors import PaymentInitiationError
from orderwise.checkout.orders import OrderStateMachine
from orderwise.checkout.status import OrderStatus, TransitionSource
from orderwise.infra.clients.payments import (
    CreatePaymentRequest,
    CreatePaymentResponse,
    PaymentGatewayClientError,
)
from orderwise.payments.logger import PaymentLogger

# The function names cards "card"; every other hosted sub-method passes through.
_HOSTED_METHOD_NAMES = {"credit_debit": "card"}


class InitiationKind(enum.Enum):
    IMMEDIATE = "immediate"
    REDIRECT = "redirect"


@dataclass(frozen=True, slots=True)
class PaymentInitiation:
    order_id: str
    kind: InitiationKind
    status: OrderStatus
    checkout_url: str | None = None
    payment_id: str | None = None


class GatewayClient(Protocol):
    def create_payment(self, request: CreatePaymentRequest) -> CreatePaymentResponse: ...


class ChannelRejected(Exception):
    """A channel got an answer it cannot act on."""


class PaymentChannel(Protocol):
    def initiate(self, order: Order, selection: PaymentSelection) -> PaymentInitiation: ...


class CashOnDeliveryChannel:
    """Nothing to call; the order already sits in ``to_pay``."""

    def initiate(self, order: Order, selection: PaymentSelection) -> PaymentInitiation:
        return PaymentInitiation(
            order_id=order.id,
            kind=InitiationKind.IMMEDIATE,
            status=OrderStatus.TO_PAY,
        )


class _RedirectChannel(abc.ABC):
    def __init__(self, client: GatewayClient, redirect_url: str) -> None:
        self._client = client
        self._redirect_url = redirect_url

    @abc.abstractmethod
    def _request(self, order: Order, selection: PaymentSelection) -> CreatePaymentRequest:
        """Build the function call for ``order``."""

    def initiate(self, order: Order, selection: PaymentSelection) -> PaymentInitiation:
        response = self._client.create_payment(self._request(order, selection))
        if response.error:
            raise ChannelRejected(response.error)
        if response.checkout_url:
            return PaymentInitiation(
                order_id=order.id,
                kind=InitiationKind.REDIRECT,
                status=OrderStatus.PENDING_PAYMENT,
                checkout_url=response.checkout_url,
                payment_id=response.payment_id,
            )
        if response.client_key:
            raise ChannelRejected(
                "This payment option needs in-app card entry, which is not "
                "available. Please choose GCash, Maya or bank transfer."
            )
        raise ChannelRejected("Payment provider did not return a checkout URL")


class HostedCheckoutChannel(_RedirectChannel):
    def _request(self, order: Order, selection: PaymentSelection) -> CreatePaymentRequest:
        sub_method = selection.method_code
        return CreatePaymentRequest(
            amount=order.total_amount_cents / 100,
            payment_method=_HOSTED_METHOD_NAMES.get(sub_method, sub_method),
            order_id=order.id,
            description=f"Order {order.order_number}",
            redirect_url=self._redirect_url,
        )


class BankTransferChannel(_RedirectChannel):
    def _request(self, order: Order, selection: PaymentSelection) -> CreatePaymentRequest:
        return CreatePaymentRequest(
            amount=order.total_amount_cents / 100,
            payment_method="bank_transfer",
            bank_code=selection.method_code,
            order_id=order.id,
            description=f"Order {order.order_number}",
            redirect_url=self._redirect_url,
        )


class PaymentGatewayAdapter:
    """Dispatches an order to the channel matching its payment selection."""

    def __init__(
        self,
        state_machine: OrderStateMachine,
        channels: dict[PaymentChannelKind, PaymentChannel],
        *,
        logger: PaymentLogger | None = None,
    ) -> None:
        self._state_machine = state_machine
        self._channels = channels
        self._logger = logger or PaymentLogger()

    @classmethod
    def with_client(
        cls,
        state_machine: OrderStateMachine,
        client: GatewayClient,
        redirect_url: str,
        *,
        logger: PaymentLogger | None = None,
    ) -> PaymentGatewayAdapter:
        return cls(
            state_machine,
            {
                PaymentChannelKind.CASH_ON_DELIVERY: CashOnDeliveryChannel(),
                PaymentChannelKind.HOSTED_CHECKOUT: HostedCheckoutChannel(
                    client, redirect_url
                ),
                PaymentChannelKind.BANK_TRANSFER: BankTransferChannel(
                    client, redirect_url
                ),
            },
            logger=logger,
        )

    def initiate(self, order: Order, selection: PaymentSelection) -> PaymentInitiation:
        """Start payment for a freshly created order.

        Raises:
            PaymentInitiationError: After moving the order to ``payment_failed``
        """
        channel = self._channels.get(selection.channel)
        if channel is None:
            self._fail(order.id, f"Payment channel {selection.channel.value} unavailable")

        self._logger.initiation_start(
            order.id, selection.stored_name(), order.total_amount_cents
        )
        try:
            initiation = channel.initiate(order, selection)
        except (PaymentGatewayClientError, ChannelRejected) as e:
            self._fail(order.id, str(e) or "Failed to initiate payment", cause=e)

        if initiation.checkout_url:
            self._logger.redirect_ready(order.id, initiation.checkout_url)
        return initiation

    def _fail(
        self, order_id: str, message: str, *, cause: Exception | None = None
    ) -> NoReturn:
        self._logger.initiation_failed(order_id, message)
        self._state_machine.resolve_payment(
            order_id, OrderStatus.PAYMENT_FAILED, TransitionSource.GATEWAY
        )
        raise PaymentInitiationError(order_id, message) from cause
