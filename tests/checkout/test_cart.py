"""Tests for the cart store."""

from __future__ import annotations

from factories import create_db, line, seed_products
import pytest

from orderwise.checkout.cart import CartStore
from orderwise.checkout.offers import OfferEngine
from orderwise.checkout.pricing import PricingCalculator


def cart_with_rules() -> CartStore:
    db = create_db()
    seed_products(db)
    db.insert_discount_rule(
        {"name": "Free shipping on 3+", "rule_type": "free_shipping", "min_quantity": 3}
    )
    return CartStore(PricingCalculator(5000), OfferEngine(db))


class TestCartStore:
    def test_empty_cart_charges_shipping_only(self) -> None:
        cart = CartStore(PricingCalculator(5000))

        assert cart.breakdown.subtotal_cents == 0
        assert cart.breakdown.total_cents == 5000

    def test_add_merges_duplicate_lines(self) -> None:
        cart = CartStore(PricingCalculator(5000))

        cart.add(line("fert", 1))
        cart.add(line("fert", 2))

        assert [(i.product_id, i.quantity) for i in cart.items] == [("fert", 3)]
        assert cart.breakdown.subtotal_cents == 150000

    def test_free_line_stays_free_when_merged_or_resized(self) -> None:
        cart = CartStore(PricingCalculator(5000))
        cart.add(line("gloves", 1, price_cents=0, is_free_item=True))

        cart.add(line("gloves", 1, price_cents=0))
        merged = cart.items[0].is_free_item
        cart.update_quantity("gloves", 5)

        assert merged is True
        assert cart.items[0].is_free_item is True
        assert cart.items[0].quantity == 5

    def test_add_rejects_non_positive_quantity(self) -> None:
        with pytest.raises(ValueError):
            CartStore(PricingCalculator(5000)).add(line("fert", 0))

    def test_update_quantity_reprices(self) -> None:
        cart = CartStore(PricingCalculator(5000))
        cart.add(line("fert", 1))

        cart.update_quantity("fert", 4)

        assert cart.item_count == 4
        assert cart.breakdown.total_cents == 205000

    def test_update_to_zero_removes_line(self) -> None:
        cart = CartStore(PricingCalculator(5000))
        cart.add(line("fert", 1))

        cart.update_quantity("fert", 0)

        assert cart.items == []

    def test_update_unknown_line(self) -> None:
        with pytest.raises(KeyError):
            CartStore(PricingCalculator(5000)).update_quantity("fert", 2)

    def test_offers_follow_mutations(self) -> None:
        # Setup
        cart = cart_with_rules()

        # Act / Assert - threshold crossed then lost again
        cart.add(line("fert", 2))
        assert cart.breakdown.shipping_fee_cents == 5000
        cart.add(line("seed", 1, price_cents=25000))
        assert cart.breakdown.shipping_fee_cents == 0
        cart.remove("seed")
        assert cart.breakdown.shipping_fee_cents == 5000

    def test_selection_limits_priced_lines(self) -> None:
        cart = cart_with_rules()
        cart.add(line("fert", 2))
        cart.add(line("seed", 2, price_cents=25000))

        cart.select(["seed"])

        assert [i.product_id for i in cart.selected_items] == ["seed"]
        assert cart.breakdown.subtotal_cents == 50000
        assert cart.breakdown.shipping_fee_cents == 5000

    def test_voucher_discount_is_clamped(self) -> None:
        cart = CartStore(PricingCalculator(5000))
        cart.add(line("fert", 1))

        cart.apply_voucher_discount(10_000_000)

        assert cart.breakdown.total_cents == 0

    def test_clear_resets_everything(self) -> None:
        cart = CartStore(PricingCalculator(5000))
        cart.add(line("fert", 1))
        cart.apply_voucher_discount(1000)

        cart.clear()

        assert cart.items == []
        assert cart.breakdown.voucher_discount_cents == 0
