"""Builders for test data shared across test modules."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from orderwise.adapters.db.facade import DB
from orderwise.checkout.entities import (
    CheckoutRequest,
    LineItem,
    PaymentChannelKind,
    PaymentSelection,
    ShippingAddress,
)

NOW = datetime(2025, 3, 15, 12, 0, 0)


def create_db() -> DB:
    """Create in-memory database instance with all tables."""
    db = DB("sqlite:///:memory:")
    db.create_all()
    return db


def seed_products(db: DB, **stock: int) -> None:
    """Insert the standard two-product catalog, overriding stock by product id."""
    db.upsert_product(
        product_id="fert",
        name="Fertilizer",
        price_cents=50000,
        stock_quantity=stock.get("fert", 20),
    )
    db.upsert_product(
        product_id="seed",
        name="Rice Seeds",
        price_cents=25000,
        stock_quantity=stock.get("seed", 20),
    )
    db.upsert_product(
        product_id="gloves",
        name="Garden Gloves",
        price_cents=8000,
        stock_quantity=stock.get("gloves", 20),
    )


def line(product_id: str, quantity: int, price_cents: int = 50000, **kw: Any) -> LineItem:
    names = {"fert": "Fertilizer", "seed": "Rice Seeds", "gloves": "Garden Gloves"}
    return LineItem(
        product_id=product_id,
        name=names.get(product_id, product_id),
        unit_price_cents=price_cents,
        quantity=quantity,
        **kw,
    )


def address() -> ShippingAddress:
    return ShippingAddress(
        street_number="12 Mabini St",
        barangay="San Isidro",
        city="Cabanatuan",
        phone="09171234567",
    )


def checkout_request(
    items: list[LineItem],
    payment: PaymentSelection | None = None,
    voucher_code: str | None = None,
) -> CheckoutRequest:
    return CheckoutRequest(
        items=items,
        shipping_address=address(),
        payment=payment or PaymentSelection(PaymentChannelKind.CASH_ON_DELIVERY),
        voucher_code=voucher_code,
    )
