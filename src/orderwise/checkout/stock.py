"""All-or-nothing inventory checks."""

from __future__ import annotations

from collections.abc import Collection, Sequence
from dataclasses import dataclass
from typing import Protocol

from orderwise.adapters.db.facade import StockReservation
from orderwise.checkout.entities import LineItem
from orderwise.checkout.errors import InsufficientStockError


class StockStore(Protocol):
    def fetch_stock_levels(self, product_ids: Collection[str]) -> dict[str, int]: ...


@dataclass(frozen=True, slots=True)
class StockShortage:
    product_id: str
    name: str
    requested: int
    available: int

    def describe(self) -> str:
        return f"{self.name} (requested: {self.requested}, available: {self.available})"


def requested_quantities(items: Sequence[LineItem]) -> dict[str, tuple[str, int]]:
    """Units per product across paid and free lines, keyed by product id."""
    totals: dict[str, tuple[str, int]] = {}
    for item in items:
        name, qty = totals.get(item.product_id, (item.name, 0))
        totals[item.product_id] = (name, qty + item.quantity)
    return totals


class StockValidator:
    def __init__(self, store: StockStore) -> None:
        self._store = store

    def find_shortages(self, items: Sequence[LineItem]) -> list[StockShortage]:
        requested = requested_quantities(items)
        levels = self._store.fetch_stock_levels(list(requested))
        return [
            StockShortage(
                product_id=product_id,
                name=name,
                requested=qty,
                available=levels.get(product_id, 0),
            )
            for product_id, (name, qty) in requested.items()
            if levels.get(product_id, 0) < qty
        ]

    def validate(self, items: Sequence[LineItem]) -> None:
        """Raise ``InsufficientStockError`` naming every short product."""
        shortages = self.find_shortages(items)
        if shortages:
            raise InsufficientStockError(shortages)

    @staticmethod
    def reservations(items: Sequence[LineItem]) -> list[StockReservation]:
        return [
            StockReservation(product_id, qty)
            for product_id, (_, qty) in requested_quantities(items).items()
        ]
