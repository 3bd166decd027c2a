"""Voucher and monthly-sale code resolution."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
import enum
import re
from typing import Protocol

from orderwise.adapters.db.models import SalesCampaign, Voucher
from orderwise.checkout.entities import format_pesos, percent_of
from orderwise.checkout.errors import VoucherError
from orderwise.core.clock import as_utc_naive

MAX_CODE_LENGTH = 50
_DISALLOWED_CODE_CHARS = re.compile(r"[^a-zA-Z0-9.-]")


class VoucherFailureReason(enum.Enum):
    SALE_NOT_ACTIVE = "sale_not_active"
    NOT_YET_ACTIVE = "not_yet_active"
    EXPIRED = "expired"
    BELOW_MINIMUM = "below_minimum"
    LIMIT_REACHED = "limit_reached"
    INVALID = "invalid"


class DiscountKind(enum.Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


class PromotionSource(enum.Enum):
    MONTHLY_SALE = "monthly_sale"
    VOUCHER = "voucher"


class PromotionStore(Protocol):
    def find_active_sale(self, event_code: str) -> SalesCampaign | None: ...

    def find_active_voucher(self, code: str) -> Voucher | None: ...


@dataclass(frozen=True, slots=True)
class VoucherResult:
    """Outcome of resolving one code against one subtotal."""

    code: str
    discount_cents: int = 0
    source: PromotionSource | None = None
    title: str = ""
    failure: VoucherFailureReason | None = None
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.failure is None

    def raise_for_failure(self) -> None:
        if self.failure is not None:
            raise VoucherError(self.failure, self.message)


def sanitize_voucher_code(raw: str) -> str:
    """Keep letters, digits, ``.`` and ``-``; truncate; uppercase."""
    return _DISALLOWED_CODE_CHARS.sub("", raw or "")[:MAX_CODE_LENGTH].upper()


def _fail(code: str, reason: VoucherFailureReason, message: str) -> VoucherResult:
    return VoucherResult(code=code, failure=reason, message=message)


class VoucherResolver:
    """Validate a code against monthly sales first, then issued vouchers.

    ``resolve`` only reads the store. Whatever discount it returns is
    provisional; the usage counter is consumed when the order is committed.
    """

    def __init__(self, store: PromotionStore) -> None:
        self._store = store

    def resolve(self, raw_code: str, subtotal_cents: int, now: datetime) -> VoucherResult:
        code = sanitize_voucher_code(raw_code)
        if not code:
            return _fail(code, VoucherFailureReason.INVALID, "Invalid voucher code")

        now = as_utc_naive(now)

        sale = self._store.find_active_sale(code)
        if sale is not None:
            return self._resolve_sale(code, sale, subtotal_cents, now)

        voucher = self._store.find_active_voucher(code)
        if voucher is not None:
            return self._resolve_voucher(code, voucher, subtotal_cents, now)

        return _fail(
            code,
            VoucherFailureReason.INVALID,
            "The voucher code you entered is not valid or has expired",
        )

    def _resolve_sale(
        self, code: str, sale: SalesCampaign, subtotal_cents: int, now: datetime
    ) -> VoucherResult:
        if not (sale.valid_date_start <= now <= sale.valid_date_end):
            return _fail(
                code,
                VoucherFailureReason.SALE_NOT_ACTIVE,
                "This monthly sale is not currently active",
            )
        return VoucherResult(
            code=code,
            discount_cents=percent_of(subtotal_cents, sale.discount_percentage),
            source=PromotionSource.MONTHLY_SALE,
            title=f"{sale.event_name} ({sale.discount_percentage}% off)",
            message=f"{sale.discount_percentage}% discount applied",
        )

    def _resolve_voucher(
        self, code: str, voucher: Voucher, subtotal_cents: int, now: datetime
    ) -> VoucherResult:
        if voucher.valid_from is not None and now < voucher.valid_from:
            return _fail(
                code,
                VoucherFailureReason.NOT_YET_ACTIVE,
                "This voucher is not yet active",
            )
        if voucher.expires_at is not None and now > voucher.expires_at:
            return _fail(code, VoucherFailureReason.EXPIRED, "This voucher has expired")
        if subtotal_cents < voucher.min_purchase_cents:
            return _fail(
                code,
                VoucherFailureReason.BELOW_MINIMUM,
                "This voucher requires a minimum purchase of "
                f"{format_pesos(voucher.min_purchase_cents)}",
            )
        if voucher.usage_limit is not None and voucher.used_count >= voucher.usage_limit:
            return _fail(
                code,
                VoucherFailureReason.LIMIT_REACHED,
                "This voucher has reached its usage limit",
            )

        if DiscountKind(voucher.discount_type) is DiscountKind.PERCENTAGE:
            discount = percent_of(subtotal_cents, voucher.discount_value)
            if voucher.max_discount_cents is not None:
                discount = min(discount, voucher.max_discount_cents)
            title = f"{voucher.discount_value}% off"
        else:
            # Not capped by the subtotal here; pricing clamps the total.
            discount = voucher.discount_value
            title = f"{format_pesos(voucher.discount_value)} off"

        return VoucherResult(
            code=code,
            discount_cents=discount,
            source=PromotionSource.VOUCHER,
            title=title,
            message=f"Voucher applied: {title}",
        )
