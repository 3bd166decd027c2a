"""Checkout orchestration: quote, validate, commit, then start payment."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime

from orderwise.adapters.db.facade import DB
from orderwise.adapters.db.models import Order
from orderwise.checkout.entities import CheckoutRequest, LineItem, PaymentChannelKind
from orderwise.checkout.errors import CheckoutValidationError, InsufficientStockError
from orderwise.checkout.logger import CheckoutLogger
from orderwise.checkout.offers import OfferEngine, OfferSet
from orderwise.checkout.orders import OrderDraft, OrderFactory, OrderStateMachine
from orderwise.checkout.pricing import PriceBreakdown, PricingCalculator
from orderwise.checkout.stock import StockValidator
from orderwise.checkout.vouchers import PromotionSource, VoucherResolver, VoucherResult
from orderwise.core.clock import utcnow
from orderwise.core.config import EngineConfig
from orderwise.infra.clients.payments import PaymentGatewayClient
from orderwise.payments.gateway import (
    CashOnDeliveryChannel,
    GatewayClient,
    PaymentGatewayAdapter,
    PaymentInitiation,
)


@dataclass(frozen=True, slots=True)
class CheckoutQuote:
    items: list[LineItem]
    offers: OfferSet
    voucher: VoucherResult | None
    breakdown: PriceBreakdown

    @property
    def order_items(self) -> list[LineItem]:
        """Chargeable lines followed by offer-granted free lines."""
        return [*self.items, *self.offers.free_items]


@dataclass(frozen=True, slots=True)
class CheckoutResult:
    order: Order
    quote: CheckoutQuote
    payment: PaymentInitiation

    @property
    def redirect_url(self) -> str | None:
        return self.payment.checkout_url


def validate_request(request: CheckoutRequest) -> None:
    """Reject incomplete input before any store or network call."""
    problems: list[str] = []
    if not request.items:
        problems.append("Your cart is empty")
    for item in request.items:
        if item.quantity <= 0:
            problems.append(f"Quantity for {item.name} must be at least 1")
    if request.shipping_address.missing_fields():
        problems.append("Please fill in all address fields")
    problems.extend(request.payment.validation_problems())
    if problems:
        raise CheckoutValidationError(problems)


class CheckoutService:
    """VoucherResolver + OfferEngine -> pricing -> stock gate -> order -> payment.

    One instance serves one checkout session: the shipping fee and the
    offer rules are read once, when the calculator and engine are built.
    """

    def __init__(
        self,
        db: DB,
        *,
        calculator: PricingCalculator,
        offer_engine: OfferEngine,
        gateway: PaymentGatewayAdapter,
        order_factory: OrderFactory | None = None,
        logger: CheckoutLogger | None = None,
    ) -> None:
        self._db = db
        self._calculator = calculator
        self._offer_engine = offer_engine
        self._gateway = gateway
        self._logger = logger or CheckoutLogger()
        self._voucher_resolver = VoucherResolver(db)
        self._stock_validator = StockValidator(db)
        self._order_factory = order_factory or OrderFactory(db, logger=self._logger)

    def quote(
        self,
        items: Sequence[LineItem],
        voucher_code: str | None = None,
        now: datetime | None = None,
    ) -> CheckoutQuote:
        """Price ``items``. A rejected voucher is reported, not raised."""
        chargeable = [item for item in items if not item.is_free_item]
        offers = self._offer_engine.evaluate(chargeable)
        subtotal = self._calculator.price(chargeable, offers).subtotal_cents

        voucher: VoucherResult | None = None
        discount = 0
        if voucher_code and voucher_code.strip():
            voucher = self._voucher_resolver.resolve(voucher_code, subtotal, now or utcnow())
            if voucher.ok:
                discount = voucher.discount_cents
            else:
                self._logger.voucher_rejected(voucher)

        breakdown = self._calculator.price(chargeable, offers, discount)
        if breakdown.voucher_discount_cents < breakdown.requested_discount_cents:
            self._logger.discount_clamped(
                breakdown.requested_discount_cents, breakdown.voucher_discount_cents
            )
        self._logger.quote_computed(len(chargeable), breakdown)
        return CheckoutQuote(
            items=chargeable, offers=offers, voucher=voucher, breakdown=breakdown
        )

    def place_order(
        self, request: CheckoutRequest, now: datetime | None = None
    ) -> CheckoutResult:
        """Run the full checkout.

        Raises:
            CheckoutValidationError: Incomplete input
            InsufficientStockError: Any line (free lines included) is short
            VoucherError: The voucher ran out between quote and commit
            PaymentInitiationError: The order exists but is now ``payment_failed``
        """
        validate_request(request)
        quote = self.quote(request.items, request.voucher_code, now)

        order_items = quote.order_items
        try:
            self._stock_validator.validate(order_items)
        except InsufficientStockError as e:
            self._logger.stock_rejected(e.shortages)
            raise

        applied_voucher = quote.voucher if quote.voucher and quote.voucher.ok else None
        order = self._order_factory.create(
            OrderDraft(
                items=order_items,
                breakdown=quote.breakdown,
                shipping_address=request.shipping_address,
                payment=request.payment,
                voucher_code=applied_voucher.code if applied_voucher else None,
                consume_voucher=bool(
                    applied_voucher and applied_voucher.source is PromotionSource.VOUCHER
                ),
                notes=request.notes,
                user_id=request.user_id,
            )
        )
        payment = self._gateway.initiate(order, request.payment)
        return CheckoutResult(order=order, quote=quote, payment=payment)


def build_checkout_service(
    db: DB,
    config: EngineConfig,
    *,
    client: GatewayClient | None = None,
) -> CheckoutService:
    """Wire a checkout session from config, reading the shipping fee once.

    Without a client or a configured payment function URL only
    cash-on-delivery can be initiated.
    """
    if client is None and config.payment_function_url:
        client = PaymentGatewayClient(
            function_url=config.payment_function_url,
            access_token=config.payment_access_token,
        )
    state_machine = OrderStateMachine(db)
    if client is None:
        gateway = PaymentGatewayAdapter(
            state_machine, {PaymentChannelKind.CASH_ON_DELIVERY: CashOnDeliveryChannel()}
        )
    else:
        gateway = PaymentGatewayAdapter.with_client(
            state_machine, client, config.redirect_url
        )
    return CheckoutService(
        db,
        calculator=PricingCalculator.from_store(db, config.default_shipping_fee_cents),
        offer_engine=OfferEngine(db),
        gateway=gateway,
    )
