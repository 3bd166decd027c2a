from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import (
    JSON,
    TIMESTAMP,
    Boolean,
    ForeignKey,
    Integer,
    String,
    Text,
    text,
)
from sqlalchemy.orm import (
    DeclarativeBase,
    Mapped,
    mapped_column,
    relationship,
)


class Base(DeclarativeBase):
    """Base class for SQLAlchemy models."""

    pass


class Product(Base):
    """Catalog product and its current stock level."""

    __tablename__ = "products"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    price_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    stock_quantity: Mapped[int] = mapped_column(
        Integer, nullable=False, server_default=text("0")
    )
    low_stock_threshold: Mapped[int] = mapped_column(
        Integer, nullable=False, server_default=text("10")
    )
    active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=text("TRUE")
    )
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP, nullable=False, server_default=text("CURRENT_TIMESTAMP")
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP, nullable=False, server_default=text("CURRENT_TIMESTAMP")
    )


class Voucher(Base):
    """Individually issued voucher code."""

    __tablename__ = "vouchers"

    voucher_id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )
    code: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    discount_type: Mapped[str] = mapped_column(
        String, nullable=False
    )  # "percentage" | "fixed"
    # Percentage points for "percentage", centavos for "fixed"
    discount_value: Mapped[int] = mapped_column(Integer, nullable=False)
    max_discount_cents: Mapped[int | None] = mapped_column(Integer, nullable=True)
    min_purchase_cents: Mapped[int] = mapped_column(
        Integer, nullable=False, server_default=text("0")
    )
    usage_limit: Mapped[int | None] = mapped_column(Integer, nullable=True)
    used_count: Mapped[int] = mapped_column(
        Integer, nullable=False, server_default=text("0")
    )
    valid_from: Mapped[datetime | None] = mapped_column(TIMESTAMP, nullable=True)
    expires_at: Mapped[datetime | None] = mapped_column(TIMESTAMP, nullable=True)
    active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=text("TRUE")
    )
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP, nullable=False, server_default=text("CURRENT_TIMESTAMP")
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP, nullable=False, server_default=text("CURRENT_TIMESTAMP")
    )


class SalesCampaign(Base):
    """Time-boxed sale redeemable with an event code (monthly sale)."""

    __tablename__ = "monthly_sales"

    campaign_id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )
    event_code: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    event_name: Mapped[str] = mapped_column(String, nullable=False)
    discount_percentage: Mapped[int] = mapped_column(Integer, nullable=False)
    valid_date_start: Mapped[datetime] = mapped_column(TIMESTAMP, nullable=False)
    valid_date_end: Mapped[datetime] = mapped_column(TIMESTAMP, nullable=False)
    active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=text("TRUE")
    )
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP, nullable=False, server_default=text("CURRENT_TIMESTAMP")
    )


class DiscountRuleRow(Base):
    """Quantity-threshold promotion evaluated without a code."""

    __tablename__ = "discount_rules"

    rule_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    rule_type: Mapped[str] = mapped_column(
        String, nullable=False
    )  # "free_shipping" | "free_product"
    min_quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    free_product_id: Mapped[str | None] = mapped_column(
        String(64), ForeignKey("products.id"), nullable=True
    )
    free_product_quantity: Mapped[int | None] = mapped_column(Integer, nullable=True)
    priority: Mapped[int] = mapped_column(
        Integer, nullable=False, server_default=text("0")
    )
    active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=text("TRUE")
    )
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP, nullable=False, server_default=text("CURRENT_TIMESTAMP")
    )

    free_product: Mapped[Product | None] = relationship("Product")


class Fee(Base):
    """Configurable fee (the shipping fee lives here)."""

    __tablename__ = "fees"

    fee_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    fee_type: Mapped[str] = mapped_column(String, nullable=False)
    fee_name: Mapped[str] = mapped_column(String, nullable=False)
    fee_value_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=text("TRUE")
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP, nullable=False, server_default=text("CURRENT_TIMESTAMP")
    )


class Order(Base):
    """Order row - priced fields are a frozen snapshot taken at checkout."""

    __tablename__ = "orders"

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    order_number: Mapped[str] = mapped_column(String(40), unique=True, nullable=False)
    user_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    items: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False)
    total_amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    shipping_fee_cents: Mapped[int] = mapped_column(
        Integer, nullable=False, server_default=text("0")
    )
    voucher_code: Mapped[str | None] = mapped_column(String(50), nullable=True)
    voucher_discount_cents: Mapped[int] = mapped_column(
        Integer, nullable=False, server_default=text("0")
    )
    shipping_address: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    payment_method: Mapped[str] = mapped_column(String, nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    status_before_cancellation: Mapped[str | None] = mapped_column(
        String(32), nullable=True
    )
    cancellation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    cancellation_details: Mapped[str | None] = mapped_column(Text, nullable=True)
    cancellation_requested_at: Mapped[datetime | None] = mapped_column(
        TIMESTAMP, nullable=True
    )
    cancellation_approved_at: Mapped[datetime | None] = mapped_column(
        TIMESTAMP, nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP, nullable=False, server_default=text("CURRENT_TIMESTAMP")
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP, nullable=False, server_default=text("CURRENT_TIMESTAMP")
    )

    # Relationships
    status_events: Mapped[list[OrderStatusEvent]] = relationship(
        "OrderStatusEvent",
        back_populates="order",
        order_by="OrderStatusEvent.event_id",
    )


class OrderStatusEvent(Base):
    """Append-only audit of applied status transitions."""

    __tablename__ = "order_status_events"

    event_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_id: Mapped[str] = mapped_column(
        String(32), ForeignKey("orders.id", ondelete="CASCADE"), nullable=False
    )
    from_status: Mapped[str | None] = mapped_column(String(32), nullable=True)
    to_status: Mapped[str] = mapped_column(String(32), nullable=False)
    source: Mapped[str] = mapped_column(String(32), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP, nullable=False, server_default=text("CURRENT_TIMESTAMP")
    )

    order: Mapped[Order] = relationship("Order", back_populates="status_events")
