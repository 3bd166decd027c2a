"""Code-free promotions derived from cart composition."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
import enum
from typing import Protocol

from orderwise.adapters.db.models import DiscountRuleRow, Product
from orderwise.checkout.entities import LineItem, total_units


class OfferKind(enum.Enum):
    FREE_SHIPPING = "free_shipping"
    FREE_PRODUCT = "free_product"


@dataclass(frozen=True, slots=True)
class DiscountRule:
    rule_id: int
    name: str
    kind: OfferKind
    min_quantity: int
    priority: int = 0
    description: str | None = None
    free_product_id: str | None = None
    free_product_quantity: int = 1

    @classmethod
    def from_row(cls, row: DiscountRuleRow) -> DiscountRule:
        return cls(
            rule_id=row.rule_id,
            name=row.name,
            kind=OfferKind(row.rule_type),
            min_quantity=row.min_quantity,
            priority=row.priority,
            description=row.description,
            free_product_id=row.free_product_id,
            free_product_quantity=row.free_product_quantity or 1,
        )


@dataclass(frozen=True, slots=True)
class AppliedOffer:
    rule: DiscountRule
    free_item: LineItem | None = None


@dataclass(frozen=True, slots=True)
class OfferSet:
    applied: tuple[AppliedOffer, ...] = ()

    @property
    def has_free_shipping(self) -> bool:
        return any(offer.rule.kind is OfferKind.FREE_SHIPPING for offer in self.applied)

    @property
    def free_items(self) -> list[LineItem]:
        return [offer.free_item for offer in self.applied if offer.free_item]


@dataclass(frozen=True, slots=True)
class OfferProgress:
    rule: DiscountRule
    remaining_units: int
    progress_percent: float


class OfferStore(Protocol):
    def fetch_active_discount_rules(self) -> list[DiscountRuleRow]: ...

    def get_products(self, product_ids: Sequence[str]) -> dict[str, Product]: ...


def sort_rules(rules: Sequence[DiscountRule]) -> list[DiscountRule]:
    return sorted(rules, key=lambda rule: (-rule.priority, rule.rule_id))


def evaluate_offers(
    items: Sequence[LineItem],
    rules: Sequence[DiscountRule],
    products: Mapping[str, Product],
) -> OfferSet:
    """Apply every rule whose threshold the cart's unit count reaches.

    Rules are independent of each other. A free-product rule whose product
    is missing from ``products`` is skipped. Does not touch ``items``.
    """
    units = total_units(list(items))
    applied: list[AppliedOffer] = []
    for rule in sort_rules(rules):
        if units < rule.min_quantity:
            continue
        if rule.kind is OfferKind.FREE_SHIPPING:
            applied.append(AppliedOffer(rule=rule))
            continue
        product = products.get(rule.free_product_id or "")
        if product is None:
            continue
        applied.append(
            AppliedOffer(
                rule=rule,
                free_item=LineItem(
                    product_id=product.id,
                    name=product.name,
                    unit_price_cents=0,
                    quantity=rule.free_product_quantity,
                    is_free_item=True,
                ),
            )
        )
    return OfferSet(applied=tuple(applied))


def offer_progress(total_quantity: int, rules: Sequence[DiscountRule]) -> list[OfferProgress]:
    """Rules not yet unlocked, closest to unlocking first."""
    progress = [
        OfferProgress(
            rule=rule,
            remaining_units=rule.min_quantity - total_quantity,
            progress_percent=min(total_quantity / rule.min_quantity * 100, 100.0),
        )
        for rule in sort_rules(rules)
        if total_quantity < rule.min_quantity
    ]
    return sorted(progress, key=lambda p: p.remaining_units)


class OfferEngine:
    """Loads active rules once and evaluates carts against them."""

    def __init__(self, store: OfferStore) -> None:
        self._store = store
        self._rules: list[DiscountRule] | None = None
        self._products: dict[str, Product] = {}

    @property
    def rules(self) -> list[DiscountRule]:
        if self._rules is None:
            self.refresh()
        return list(self._rules or [])

    def refresh(self) -> None:
        rules = [DiscountRule.from_row(row) for row in self._store.fetch_active_discount_rules()]
        product_ids = [r.free_product_id for r in rules if r.free_product_id]
        self._products = self._store.get_products(product_ids) if product_ids else {}
        self._rules = sort_rules(rules)

    def evaluate(self, items: Sequence[LineItem]) -> OfferSet:
        return evaluate_offers(items, self.rules, self._products)

    def progress(self, items: Sequence[LineItem]) -> list[OfferProgress]:
        return offer_progress(total_units(list(items)), self.rules)
