"""Final amount computation."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Protocol

from orderwise.checkout.entities import LineItem, subtotal_cents
from orderwise.checkout.offers import OfferSet

SHIPPING_FEE_TYPE = "shipping"
DEFAULT_SHIPPING_FEE_CENTS = 5000


class FeeStore(Protocol):
    def get_active_fee_cents(self, fee_type: str) -> int | None: ...


@dataclass(frozen=True, slots=True)
class PriceBreakdown:
    subtotal_cents: int
    base_shipping_fee_cents: int
    shipping_fee_cents: int
    requested_discount_cents: int
    voucher_discount_cents: int
    total_cents: int

    @property
    def free_shipping(self) -> bool:
        return self.shipping_fee_cents == 0 and self.base_shipping_fee_cents > 0


def compute_breakdown(
    subtotal: int,
    base_shipping_fee_cents: int,
    *,
    free_shipping: bool = False,
    voucher_discount_cents: int = 0,
) -> PriceBreakdown:
    """``max(0, subtotal + shipping - discount)``.

    The granted discount is clamped to what the order is worth, so
    ``voucher_discount_cents`` always equals what the customer saves.
    """
    shipping = 0 if free_shipping else base_shipping_fee_cents
    requested = max(0, voucher_discount_cents)
    granted = min(requested, subtotal + shipping)
    return PriceBreakdown(
        subtotal_cents=subtotal,
        base_shipping_fee_cents=base_shipping_fee_cents,
        shipping_fee_cents=shipping,
        requested_discount_cents=requested,
        voucher_discount_cents=granted,
        total_cents=subtotal + shipping - granted,
    )


class PricingCalculator:
    """Prices carts against a shipping fee fixed for one checkout session."""

    def __init__(self, base_shipping_fee_cents: int = DEFAULT_SHIPPING_FEE_CENTS) -> None:
        self.base_shipping_fee_cents = base_shipping_fee_cents

    @classmethod
    def from_store(
        cls, store: FeeStore, default_fee_cents: int = DEFAULT_SHIPPING_FEE_CENTS
    ) -> PricingCalculator:
        fee = store.get_active_fee_cents(SHIPPING_FEE_TYPE)
        return cls(default_fee_cents if fee is None else fee)

    def price(
        self,
        items: Sequence[LineItem],
        offers: OfferSet | None = None,
        voucher_discount_cents: int = 0,
    ) -> PriceBreakdown:
        return compute_breakdown(
            subtotal_cents(list(items)),
            self.base_shipping_fee_cents,
            free_shipping=bool(offers and offers.has_free_shipping),
            voucher_discount_cents=voucher_discount_cents,
        )
