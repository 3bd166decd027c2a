"""Load catalog, promotions and fees from a YAML document into the store."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, TypedDict, cast

from yaml import safe_load

from orderwise.adapters.db.facade import DB
from orderwise.core.clock import utcnow


class RawCatalogDoc(TypedDict, total=False):
    products: list[dict[str, Any]]
    fees: list[dict[str, Any]]
    vouchers: list[dict[str, Any]]
    sales: list[dict[str, Any]]
    discount_rules: list[dict[str, Any]]


@dataclass(frozen=True, slots=True)
class SeedSummary:
    products: int = 0
    fees: int = 0
    vouchers: int = 0
    sales: int = 0
    discount_rules: int = 0


def _load_yaml(path: Path) -> RawCatalogDoc:
    if not path.exists():
        raise FileNotFoundError(f"catalog yaml not found at {path}")

    with path.open("r", encoding="utf-8") as handle:
        loaded: object = safe_load(handle)

    if loaded is None:
        return {}

    if not isinstance(loaded, dict):
        raise ValueError("catalog yaml must be a mapping")

    return cast(RawCatalogDoc, loaded)


def _records(raw: RawCatalogDoc, key: str) -> list[dict[str, Any]]:
    records = raw.get(key)  # type: ignore[misc]
    if records is None:
        return []
    if not isinstance(records, list):
        raise ValueError(f"'{key}' must be a list")
    return list(records)


def _offset(now: datetime, days: Any) -> datetime | None:
    """Dates are written as day offsets from load time so demos stay valid."""
    if days is None:
        return None
    return now + timedelta(days=float(days))


def seed_catalog(db: DB, path: Path, now: datetime | None = None) -> SeedSummary:
    """Insert everything in ``path``; products are upserted by id."""
    raw = _load_yaml(path)
    now = now or utcnow()

    products = _records(raw, "products")
    for record in products:
        db.upsert_product(
            product_id=str(record["id"]),
            name=str(record["name"]),
            price_cents=int(record["price_cents"]),
            stock_quantity=int(record.get("stock_quantity", 0)),
            low_stock_threshold=int(record.get("low_stock_threshold", 10)),
        )

    fees = _records(raw, "fees")
    for record in fees:
        db.set_fee(
            fee_type=str(record["fee_type"]),
            fee_name=str(record.get("fee_name", record["fee_type"])),
            fee_value_cents=int(record["fee_value_cents"]),
        )

    vouchers = _records(raw, "vouchers")
    for record in vouchers:
        data = {k: v for k, v in record.items() if not k.endswith("_in_days")}
        data["valid_from"] = _offset(now, record.get("valid_from_in_days"))
        data["expires_at"] = _offset(now, record.get("expires_in_days"))
        db.insert_voucher(data)

    sales = _records(raw, "sales")
    for record in sales:
        data = {k: v for k, v in record.items() if not k.endswith("_in_days")}
        data["valid_date_start"] = _offset(now, record.get("starts_in_days", 0))
        data["valid_date_end"] = _offset(now, record.get("ends_in_days", 30))
        db.insert_sale(data)

    rules = _records(raw, "discount_rules")
    for record in rules:
        db.insert_discount_rule(dict(record))

    return SeedSummary(
        products=len(products),
        fees=len(fees),
        vouchers=len(vouchers),
        sales=len(sales),
        discount_rules=len(rules),
    )
