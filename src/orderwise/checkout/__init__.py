"""Pricing, promotions, stock checks and the order state machine."""

from orderwise.checkout.cart import CartStore
from orderwise.checkout.offers import OfferEngine, OfferSet, offer_progress
from orderwise.checkout.orders import OrderDraft, OrderFactory, OrderStateMachine
from orderwise.checkout.pricing import PriceBreakdown, PricingCalculator
from orderwise.checkout.status import OrderStatus, TransitionSource
from orderwise.checkout.stock import StockShortage, StockValidator
from orderwise.checkout.vouchers import (
    VoucherFailureReason,
    VoucherResolver,
    VoucherResult,
    sanitize_voucher_code,
)

__all__ = [
    "CartStore",
    "OfferEngine",
    "OfferSet",
    "OrderDraft",
    "OrderFactory",
    "OrderStateMachine",
    "OrderStatus",
    "PriceBreakdown",
    "PricingCalculator",
    "StockShortage",
    "StockValidator",
    "TransitionSource",
    "VoucherFailureReason",
    "VoucherResolver",
    "VoucherResult",
    "offer_progress",
    "sanitize_voucher_code",
]
