from __future__ import annotations

from dataclasses import dataclass
import os

DEFAULT_DATABASE_URL = "sqlite:///orderwise.db"
DEFAULT_REDIRECT_URL = "http://localhost:5173/order-success"


@dataclass(frozen=True, slots=True)
class EngineConfig:
    """Checkout engine configuration loaded at process startup."""

    database_url: str = DEFAULT_DATABASE_URL
    payment_function_url: str | None = None
    payment_access_token: str | None = None
    redirect_url: str = DEFAULT_REDIRECT_URL
    reconcile_max_attempts: int = 5
    reconcile_delay_unit_seconds: float = 1.0
    default_shipping_fee_cents: int = 5000

    def require_payment_function_url(self) -> str:
        if not self.payment_function_url:
            raise ValueError(
                "Missing required environment variable: ORDERWISE_PAYMENT_FUNCTION_URL"
            )
        return self.payment_function_url


def _optional_env(name: str) -> str | None:
    value = os.environ.get(name, "").strip()
    return value or None


def _int_env(name: str, default: int, *, minimum: int) -> int:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from e
    if value < minimum:
        raise ValueError(f"{name} must be >= {minimum}")
    return value


def _float_env(name: str, default: float, *, minimum: float) -> float:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be a number, got {raw!r}") from e
    if value < minimum:
        raise ValueError(f"{name} must be >= {minimum}")
    return value


def load_engine_config_from_env() -> EngineConfig:
    """Load engine config from env and validate startup requirements."""
    return EngineConfig(
        database_url=_optional_env("ORDERWISE_DATABASE_URL") or DEFAULT_DATABASE_URL,
        payment_function_url=_optional_env("ORDERWISE_PAYMENT_FUNCTION_URL"),
        payment_access_token=_optional_env("ORDERWISE_PAYMENT_ACCESS_TOKEN"),
        redirect_url=_optional_env("ORDERWISE_REDIRECT_URL") or DEFAULT_REDIRECT_URL,
        reconcile_max_attempts=_int_env(
            "ORDERWISE_RECONCILE_MAX_ATTEMPTS", 5, minimum=1
        ),
        reconcile_delay_unit_seconds=_float_env(
            "ORDERWISE_RECONCILE_DELAY_UNIT_SECONDS", 1.0, minimum=0.0
        ),
        default_shipping_fee_cents=_int_env(
            "ORDERWISE_DEFAULT_SHIPPING_FEE_CENTS", 5000, minimum=0
        ),
    )
