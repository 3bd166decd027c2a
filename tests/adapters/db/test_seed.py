"""Tests for YAML catalog seeding."""

from __future__ import annotations

from datetime import timedelta
from pathlib import Path

from factories import NOW, create_db
import pytest

from orderwise.adapters.db.seed import seed_catalog

CATALOG = """
products:
  - id: fert
    name: Fertilizer
    price_cents: 50000
    stock_quantity: 7
fees:
  - fee_type: shipping
    fee_value_cents: 6000
vouchers:
  - code: welcome10
    discount_type: percentage
    discount_value: 10
    expires_in_days: 2
sales:
  - event_code: payday
    event_name: Payday Sale
    discount_percentage: 15
    starts_in_days: -1
    ends_in_days: 3
discount_rules:
  - name: Free shipping on 3+
    rule_type: free_shipping
    min_quantity: 3
"""


class TestSeedCatalog:
    def test_loads_every_section(self, tmp_path: Path) -> None:
        # Setup
        path = tmp_path / "catalog.yaml"
        path.write_text(CATALOG)
        db = create_db()

        # Act
        summary = seed_catalog(db, path, now=NOW)

        # Assert
        assert (summary.products, summary.fees, summary.vouchers) == (1, 1, 1)
        assert (summary.sales, summary.discount_rules) == (1, 1)
        assert db.fetch_stock_levels(["fert"]) == {"fert": 7}
        assert db.get_active_fee_cents("shipping") == 6000
        assert len(db.fetch_active_discount_rules()) == 1

    def test_day_offsets_become_timestamps(self, tmp_path: Path) -> None:
        path = tmp_path / "catalog.yaml"
        path.write_text(CATALOG)
        db = create_db()

        seed_catalog(db, path, now=NOW)

        voucher = db.find_active_voucher("WELCOME10")
        sale = db.find_active_sale("PAYDAY")
        assert voucher is not None and sale is not None
        assert voucher.expires_at == NOW + timedelta(days=2)
        assert voucher.valid_from is None
        assert sale.valid_date_start == NOW - timedelta(days=1)

    def test_empty_document_loads_nothing(self, tmp_path: Path) -> None:
        path = tmp_path / "empty.yaml"
        path.write_text("")

        summary = seed_catalog(create_db(), path, now=NOW)

        assert summary.products == 0

    def test_missing_file_raises(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            seed_catalog(create_db(), tmp_path / "nope.yaml")

    def test_section_must_be_list(self, tmp_path: Path) -> None:
        path = tmp_path / "bad.yaml"
        path.write_text("products: {id: fert}\n")

        with pytest.raises(ValueError, match="'products' must be a list"):
            seed_catalog(create_db(), path)
