"""Checkout domain entities shared by pricing, stock and order creation."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
import enum
from typing import Any


def percent_of(amount_cents: int, percentage: int | float | Decimal) -> int:
    """Return ``percentage`` percent of ``amount_cents``, rounded half-up."""
    raw = Decimal(amount_cents) * Decimal(str(percentage)) / Decimal(100)
    return int(raw.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def format_pesos(amount_cents: int) -> str:
    return f"₱{amount_cents / 100:,.2f}"


@dataclass(frozen=True, slots=True)
class LineItem:
    """One purchasable line; free items are carried at zero price."""

    product_id: str
    name: str
    unit_price_cents: int
    quantity: int
    is_free_item: bool = False

    @property
    def line_total_cents(self) -> int:
        return self.unit_price_cents * self.quantity

    def to_payload(self) -> dict[str, Any]:
        """Shape stored in the order's ``items`` JSON column."""
        return {
            "id": self.product_id,
            "name": self.name,
            "price_cents": self.unit_price_cents,
            "quantity": self.quantity,
            "isFreeItem": self.is_free_item,
        }

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> LineItem:
        return cls(
            product_id=str(data["id"]),
            name=str(data["name"]),
            unit_price_cents=int(data["price_cents"]),
            quantity=int(data["quantity"]),
            is_free_item=bool(data.get("isFreeItem", False)),
        )


def subtotal_cents(items: list[LineItem]) -> int:
    """Sum of chargeable lines; free items contribute nothing."""
    return sum(item.line_total_cents for item in items if not item.is_free_item)


def total_units(items: list[LineItem]) -> int:
    """Unit count across chargeable lines (not distinct SKUs)."""
    return sum(item.quantity for item in items if not item.is_free_item)


@dataclass(frozen=True, slots=True)
class ShippingAddress:
    street_number: str
    barangay: str
    city: str
    phone: str

    def missing_fields(self) -> list[str]:
        return [
            name
            for name in ("street_number", "barangay", "city", "phone")
            if not getattr(self, name).strip()
        ]

    def to_payload(self) -> dict[str, str]:
        return {
            "street_number": self.street_number,
            "barangay": self.barangay,
            "city": self.city,
            "phone": self.phone,
        }


class PaymentChannelKind(enum.Enum):
    CASH_ON_DELIVERY = "cash_on_delivery"
    HOSTED_CHECKOUT = "paymongo"
    BANK_TRANSFER = "bank_transfer"


HOSTED_CHECKOUT_METHODS = frozenset({"qrph", "gcash", "maya", "grab_pay", "credit_debit"})
SUPPORTED_BANKS = frozenset({"bdo", "landbank", "metrobank"})


@dataclass(frozen=True, slots=True)
class PaymentSelection:
    """Payment channel plus sub-method (e-wallet, card or bank)."""

    channel: PaymentChannelKind
    sub_method: str | None = None

    @property
    def method_code(self) -> str:
        """Lowercased sub-method; empty when none was chosen."""
        return (self.sub_method or "").lower()

    def stored_name(self) -> str:
        """Name written to ``orders.payment_method``."""
        if self.channel is PaymentChannelKind.CASH_ON_DELIVERY:
            return self.channel.value
        return f"{self.channel.value}_{self.method_code}"

    def validation_problems(self) -> list[str]:
        if self.channel is PaymentChannelKind.CASH_ON_DELIVERY:
            return []
        if self.channel is PaymentChannelKind.HOSTED_CHECKOUT:
            if not self.sub_method:
                return ["Please select a payment option (GCash, Maya, or Card)"]
            if self.method_code not in HOSTED_CHECKOUT_METHODS:
                return [f"Unsupported payment option: {self.sub_method}"]
            return []
        if not self.sub_method:
            return ["Please select a bank for transfer"]
        if self.method_code not in SUPPORTED_BANKS:
            return ["Invalid bank code. Supported banks: BDO, Landbank, Metrobank"]
        return []


@dataclass(frozen=True, slots=True)
class CheckoutRequest:
    """Everything the customer submits on the checkout screen."""

    items: list[LineItem]
    shipping_address: ShippingAddress
    payment: PaymentSelection
    voucher_code: str | None = None
    notes: str | None = None
    user_id: str | None = None
