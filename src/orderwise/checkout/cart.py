"""Explicit cart object; every mutation re-prices the cart."""

from __future__ import annotations

from collections.abc import Iterable

from orderwise.checkout.entities import LineItem
from orderwise.checkout.offers import OfferEngine, OfferSet
from orderwise.checkout.pricing import PriceBreakdown, PricingCalculator


class CartStore:
    """Cart lines plus the breakdown derived from them.

    ``selected`` narrows checkout to a subset of lines; by default every line
    is selected. The voucher discount is owned by the caller and passed in
    so the breakdown stays consistent with whatever code was last applied.
    """

    def __init__(
        self,
        calculator: PricingCalculator,
        offer_engine: OfferEngine | None = None,
    ) -> None:
        self._calculator = calculator
        self._offer_engine = offer_engine
        self._items: dict[str, LineItem] = {}
        self._selected: set[str] | None = None
        self._voucher_discount_cents = 0
        self.offers = OfferSet()
        self.breakdown: PriceBreakdown = calculator.price([])
        self._recompute()

    @property
    def items(self) -> list[LineItem]:
        return list(self._items.values())

    @property
    def selected_items(self) -> list[LineItem]:
        if self._selected is None:
            return self.items
        return [item for pid, item in self._items.items() if pid in self._selected]

    @property
    def item_count(self) -> int:
        return sum(item.quantity for item in self._items.values())

    def add(self, item: LineItem) -> None:
        """Add ``item``, merging quantities with an existing line."""
        if item.quantity <= 0:
            raise ValueError("Quantity must be positive")
        existing = self._items.get(item.product_id)
        if existing is not None:
            item = LineItem(
                product_id=existing.product_id,
                name=existing.name,
                unit_price_cents=existing.unit_price_cents,
                quantity=existing.quantity + item.quantity,
                is_free_item=existing.is_free_item,
            )
        self._items[item.product_id] = item
        self._recompute()

    def remove(self, product_id: str) -> None:
        self._items.pop(product_id, None)
        if self._selected is not None:
            self._selected.discard(product_id)
        self._recompute()

    def update_quantity(self, product_id: str, quantity: int) -> None:
        """Set a line's quantity; zero or less removes the line."""
        if quantity <= 0:
            self.remove(product_id)
            return
        existing = self._items.get(product_id)
        if existing is None:
            raise KeyError(product_id)
        self._items[product_id] = LineItem(
            product_id=existing.product_id,
            name=existing.name,
            unit_price_cents=existing.unit_price_cents,
            quantity=quantity,
            is_free_item=existing.is_free_item,
        )
        self._recompute()

    def select(self, product_ids: Iterable[str] | None) -> None:
        """Restrict checkout to ``product_ids``; ``None`` selects everything."""
        self._selected = None if product_ids is None else {
            pid for pid in product_ids if pid in self._items
        }
        self._recompute()

    def apply_voucher_discount(self, discount_cents: int) -> None:
        self._voucher_discount_cents = max(0, discount_cents)
        self._recompute()

    def clear(self) -> None:
        self._items.clear()
        self._selected = None
        self._voucher_discount_cents = 0
        self._recompute()

    def _recompute(self) -> None:
        items = self.selected_items
        self.offers = self._offer_engine.evaluate(items) if self._offer_engine else OfferSet()
        self.breakdown = self._calculator.price(
            items, self.offers, self._voucher_discount_cents
        )
