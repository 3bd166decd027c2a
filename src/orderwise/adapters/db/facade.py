from __future__ import annotations

from collections.abc import Collection, Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy import create_engine, or_, select
from sqlalchemy.orm import Session, sessionmaker

from orderwise.adapters.db.models import (
    Base,
    DiscountRuleRow,
    Fee,
    Order,
    OrderStatusEvent,
    Product,
    SalesCampaign,
    Voucher,
)
from orderwise.core.clock import utcnow


class ConditionalUpdateError(Exception):
    """A guarded write matched no row; the enclosing transaction is rolled back."""

    def __init__(self, kind: str, keys: Sequence[str]) -> None:
        self.kind = kind  # "stock" | "voucher"
        self.keys = list(keys)
        super().__init__(f"Conditional {kind} update failed for: {', '.join(keys)}")


@dataclass(frozen=True, slots=True)
class StockReservation:
    product_id: str
    quantity: int


class DB:
    """Database service layer providing ORM models and helper methods."""

    def __init__(self, url: str) -> None:
        """Initialize database connection.

        Args:
            url: Database URL (e.g., "sqlite:///orderwise.db")
        """
        self._url = url
        self._engine = create_engine(url, echo=False)
        self._session_factory = sessionmaker(bind=self._engine, class_=Session)

    @contextmanager
    def session(self) -> Iterator[Session]:
        """Context manager for database sessions."""
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def create_all(self) -> None:
        """Create all tables that do not exist yet."""
        Base.metadata.create_all(self._engine)

    # Catalog -------------------------------------------------------------

    def upsert_product(
        self,
        *,
        product_id: str,
        name: str,
        price_cents: int,
        stock_quantity: int,
        low_stock_threshold: int = 10,
    ) -> Product:
        """Insert or update a product.

        Args:
            product_id: Product ID (primary key)
            name: Display name
            price_cents: Unit price in centavos
            stock_quantity: Units available
            low_stock_threshold: Restock warning level

        Returns:
            Product instance
        """
        with self.session() as session:  # type: Session
            product = session.get(Product, product_id)
            if product is None:
                product = Product(id=product_id)
                session.add(product)
            product.name = name
            product.price_cents = price_cents
            product.stock_quantity = stock_quantity
            product.low_stock_threshold = low_stock_threshold
            product.updated_at = utcnow()
            session.flush()
            session.refresh(product)
            session.expunge(product)
            return product

    def get_products(self, product_ids: Collection[str]) -> dict[str, Product]:
        """Fetch products by ID.

        Args:
            product_ids: Product IDs to look up

        Returns:
            Mapping of product ID to Product; unknown IDs are absent
        """
        if not product_ids:
            return {}

        with self.session() as session:  # type: Session
            products = (
                session.query(Product).filter(Product.id.in_(list(product_ids))).all()
            )
            for product in products:
                session.expunge(product)
            return {product.id: product for product in products}

    def fetch_stock_levels(self, product_ids: Collection[str]) -> dict[str, int]:
        """Return current stock per product ID; unknown IDs are absent."""
        return {
            product_id: product.stock_quantity
            for product_id, product in self.get_products(product_ids).items()
        }

    def adjust_stock(self, product_id: str, delta: int) -> int:
        """Restock or correct stock by ``delta``, never going below zero.

        Returns:
            The new stock level

        Raises:
            ValueError: If the product does not exist
        """
        with self.session() as session:  # type: Session
            product = session.get(Product, product_id)
            if product is None:
                raise ValueError(f"Product {product_id} not found")
            product.stock_quantity = max(0, product.stock_quantity + delta)
            product.updated_at = utcnow()
            session.flush()
            return product.stock_quantity

    # Promotions ----------------------------------------------------------

    def find_active_sale(self, event_code: str) -> SalesCampaign | None:
        with self.session() as session:  # type: Session
            sale = (
                session.query(SalesCampaign)
                .filter(SalesCampaign.event_code == event_code, SalesCampaign.active)
                .first()
            )
            if sale:
                session.expunge(sale)
            return sale

    def find_active_voucher(self, code: str) -> Voucher | None:
        with self.session() as session:  # type: Session
            voucher = (
                session.query(Voucher)
                .filter(Voucher.code == code, Voucher.active)
                .first()
            )
            if voucher:
                session.expunge(voucher)
            return voucher

    def insert_voucher(self, data: dict[str, Any]) -> Voucher:
        """Insert a voucher.

        Args:
            data: Voucher fields; ``code`` is stored uppercase

        Returns:
            Created Voucher instance
        """
        with self.session() as session:  # type: Session
            voucher = Voucher(**{**data, "code": str(data["code"]).upper()})
            session.add(voucher)
            session.flush()
            session.refresh(voucher)
            session.expunge(voucher)
            return voucher

    def insert_sale(self, data: dict[str, Any]) -> SalesCampaign:
        with self.session() as session:  # type: Session
            sale = SalesCampaign(**{**data, "event_code": str(data["event_code"]).upper()})
            session.add(sale)
            session.flush()
            session.refresh(sale)
            session.expunge(sale)
            return sale

    def insert_discount_rule(self, data: dict[str, Any]) -> DiscountRuleRow:
        with self.session() as session:  # type: Session
            rule = DiscountRuleRow(**data)
            session.add(rule)
            session.flush()
            session.refresh(rule)
            session.expunge(rule)
            return rule

    def fetch_active_discount_rules(self) -> list[DiscountRuleRow]:
        """Active discount rules, highest priority first."""
        with self.session() as session:  # type: Session
            rules = (
                session.query(DiscountRuleRow)
                .filter(DiscountRuleRow.active)
                .order_by(DiscountRuleRow.priority.desc(), DiscountRuleRow.rule_id)
                .all()
            )
            for rule in rules:
                session.expunge(rule)
            return rules

    def get_active_fee_cents(self, fee_type: str) -> int | None:
        with self.session() as session:  # type: Session
            fee = (
                session.query(Fee)
                .filter(Fee.fee_type == fee_type, Fee.active)
                .order_by(Fee.updated_at.desc())
                .first()
            )
            return fee.fee_value_cents if fee else None

    def set_fee(self, *, fee_type: str, fee_name: str, fee_value_cents: int) -> Fee:
        """Set the single active fee of ``fee_type``, deactivating older rows."""
        with self.session() as session:  # type: Session
            session.query(Fee).filter(Fee.fee_type == fee_type).update(
                {"active": False}, synchronize_session=False
            )
            fee = Fee(
                fee_type=fee_type,
                fee_name=fee_name,
                fee_value_cents=fee_value_cents,
                active=True,
                updated_at=utcnow(),
            )
            session.add(fee)
            session.flush()
            session.refresh(fee)
            session.expunge(fee)
            return fee

    # Orders --------------------------------------------------------------

    def create_order(
        self,
        data: dict[str, Any],
        *,
        reservations: Sequence[StockReservation],
        voucher_code: str | None = None,
        source: str = "checkout",
    ) -> Order:
        """Insert an order, reserve its stock and consume its voucher atomically.

        Every stock decrement is conditional on enough stock remaining, and
        the voucher counter only moves while under its usage limit. If any
        guarded write matches no row the whole transaction is rolled back.

        Args:
            data: Order column values (must include ``id`` and ``status``)
            reservations: Units to take from stock, free items included
            voucher_code: Voucher whose ``used_count`` should be incremented
            source: Recorded on the initial status event

        Returns:
            Created Order instance

        Raises:
            ConditionalUpdateError: If stock or the voucher limit ran out
        """
        with self.session() as session:  # type: Session
            short: list[str] = []
            for reservation in _merge_reservations(reservations):
                updated = (
                    session.query(Product)
                    .filter(
                        Product.id == reservation.product_id,
                        Product.stock_quantity >= reservation.quantity,
                    )
                    .update(
                        {
                            "stock_quantity": Product.stock_quantity
                            - reservation.quantity,
                            "updated_at": utcnow(),
                        },
                        synchronize_session=False,
                    )
                )
                if updated == 0:
                    short.append(reservation.product_id)
            if short:
                raise ConditionalUpdateError("stock", short)

            if voucher_code:
                consumed = (
                    session.query(Voucher)
                    .filter(
                        Voucher.code == voucher_code,
                        Voucher.active,
                        or_(
                            Voucher.usage_limit.is_(None),
                            Voucher.used_count < Voucher.usage_limit,
                        ),
                    )
                    .update(
                        {"used_count": Voucher.used_count + 1, "updated_at": utcnow()},
                        synchronize_session=False,
                    )
                )
                if consumed == 0:
                    raise ConditionalUpdateError("voucher", [voucher_code])

            now = utcnow()
            order = Order(**data, created_at=now, updated_at=now)
            session.add(order)
            session.add(
                OrderStatusEvent(
                    order_id=order.id,
                    from_status=None,
                    to_status=order.status,
                    source=source,
                    created_at=now,
                )
            )
            session.flush()
            session.refresh(order)
            session.expunge(order)
            return order

    def get_order(self, order_id: str) -> Order | None:
        with self.session() as session:  # type: Session
            order = session.get(Order, order_id)
            if order:
                session.expunge(order)
            return order

    def get_order_status(self, order_id: str) -> str | None:
        """Read the stored status string, or None for an unknown order."""
        with self.session() as session:  # type: Session
            row = session.query(Order.status).filter(Order.id == order_id).first()
            return row[0] if row else None

    def compare_and_set_status(
        self,
        order_id: str,
        *,
        expected: str | Collection[str],
        new_status: str,
        source: str,
        extra: dict[str, Any] | None = None,
        expected_source: str | None = None,
    ) -> bool:
        """Set ``new_status`` only if the stored status is still ``expected``.

        This is the single synchronization primitive between writers racing
        on an order row (webhook, reconciliation loop, admin tools).

        Args:
            order_id: Order to update
            expected: Status value (or values) the row must currently hold
            new_status: Status to write
            source: Writer recorded on the status event
            extra: Other columns to write in the same statement
            expected_source: If given, the latest status event must also have
                been written by this source

        Returns:
            True if the row was updated, False if it no longer matched
        """
        expected_values = [expected] if isinstance(expected, str) else list(expected)
        with self.session() as session:  # type: Session
            previous = (
                session.query(Order.status).filter(Order.id == order_id).scalar()
            )
            now = utcnow()
            conditions = [Order.id == order_id, Order.status.in_(expected_values)]
            if expected_source is not None:
                latest_source = (
                    select(OrderStatusEvent.source)
                    .where(OrderStatusEvent.order_id == order_id)
                    .order_by(OrderStatusEvent.event_id.desc())
                    .limit(1)
                    .scalar_subquery()
                )
                conditions.append(latest_source == expected_source)
            updated = (
                session.query(Order)
                .filter(*conditions)
                .update(
                    {**(extra or {}), "status": new_status, "updated_at": now},
                    synchronize_session=False,
                )
            )
            if updated == 0:
                return False
            session.add(
                OrderStatusEvent(
                    order_id=order_id,
                    from_status=previous,
                    to_status=new_status,
                    source=source,
                    created_at=now,
                )
            )
            return True

    def list_status_events(self, order_id: str) -> list[OrderStatusEvent]:
        """Status events for an order, oldest first."""
        with self.session() as session:  # type: Session
            events = (
                session.query(OrderStatusEvent)
                .filter(OrderStatusEvent.order_id == order_id)
                .order_by(OrderStatusEvent.event_id)
                .all()
            )
            for event in events:
                session.expunge(event)
            return events

    def count_orders(self) -> int:
        with self.session() as session:  # type: Session
            return session.query(Order).count()

    def list_orders_by_status(self, status: str) -> list[Order]:
        with self.session() as session:  # type: Session
            orders = (
                session.query(Order)
                .filter(Order.status == status)
                .order_by(Order.created_at)
                .all()
            )
            for order in orders:
                session.expunge(order)
            return orders


def _merge_reservations(
    reservations: Sequence[StockReservation],
) -> list[StockReservation]:
    """Sum quantities per product so a bought-and-gifted product is one check."""
    totals: dict[str, int] = {}
    for reservation in reservations:
        totals[reservation.product_id] = (
            totals.get(reservation.product_id, 0) + reservation.quantity
        )
    return [StockReservation(pid, qty) for pid, qty in totals.items()]


def order_timestamp(order: Order) -> datetime:
    return order.updated_at or order.created_at
