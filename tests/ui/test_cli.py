"""Tests for the orderwise command line."""

from __future__ import annotations

import json
from pathlib import Path

from factories import address, line
import pytest
from typer.testing import CliRunner

from orderwise.adapters.db.facade import DB
from orderwise.checkout.entities import PaymentChannelKind, PaymentSelection
from orderwise.checkout.orders import OrderDraft, OrderFactory
from orderwise.checkout.pricing import compute_breakdown
from orderwise.ui.cli import app

DEMO_CATALOG = Path(__file__).resolve().parents[2] / "configs" / "demo_catalog.yaml"

runner = CliRunner()


@pytest.fixture
def empty_database_url(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> str:
    url = f"sqlite:///{tmp_path / 'orderwise.db'}"
    monkeypatch.setenv("ORDERWISE_DATABASE_URL", url)
    monkeypatch.setenv("ORDERWISE_RECONCILE_MAX_ATTEMPTS", "1")
    monkeypatch.setenv("ORDERWISE_RECONCILE_DELAY_UNIT_SECONDS", "0")
    monkeypatch.delenv("ORDERWISE_PAYMENT_FUNCTION_URL", raising=False)
    return url


@pytest.fixture
def database_url(empty_database_url: str) -> str:
    result = runner.invoke(app, ["seed-demo", "--yaml-path", str(DEMO_CATALOG)])
    assert result.exit_code == 0, result.output
    return empty_database_url


def place_order(url: str, payment: PaymentSelection) -> str:
    order = OrderFactory(DB(url)).create(
        OrderDraft(
            items=[line("fert-14", 1)],
            breakdown=compute_breakdown(50000, 5000),
            shipping_address=address(),
            payment=payment,
        )
    )
    return order.id


class TestSeedDemo:
    def test_reports_loaded_rows(self, empty_database_url: str) -> None:
        result = runner.invoke(app, ["seed-demo", "--yaml-path", str(DEMO_CATALOG)])

        assert result.exit_code == 0
        assert "3 products, 4 vouchers, 1 sales, 2 offers, 1 fees" in result.output

    def test_missing_file(self, empty_database_url: str, tmp_path: Path) -> None:
        result = runner.invoke(
            app, ["seed-demo", "--yaml-path", str(tmp_path / "missing.yaml")]
        )

        assert result.exit_code == 1


class TestQuote:
    def test_prices_cart_with_offer_and_voucher(self, database_url: str) -> None:
        result = runner.invoke(app, ["quote", "fert-14:3", "--voucher", "WELCOME10"])

        assert result.exit_code == 0, result.output
        assert "Offer: Free shipping on 3+ items" in result.output
        assert "Shipping: ₱0.00" in result.output
        assert "Total:    ₱1,350.00" in result.output

    def test_rejected_voucher_still_quotes(self, database_url: str) -> None:
        result = runner.invoke(app, ["quote", "fert-14:1", "--voucher", "EXPIRED1"])

        assert result.exit_code == 0
        assert "Voucher EXPIRED1 rejected: This voucher has expired" in result.output
        assert "Total:    ₱550.00" in result.output

    def test_unknown_product(self, database_url: str) -> None:
        result = runner.invoke(app, ["quote", "nope:1"])

        assert result.exit_code == 1


class TestReconcile:
    def test_exhausted_polling_confirms_payment(self, database_url: str) -> None:
        order_id = place_order(
            database_url, PaymentSelection(PaymentChannelKind.HOSTED_CHECKOUT, "gcash")
        )

        result = runner.invoke(app, ["reconcile", f"status=success&order_id={order_id}"])

        assert result.exit_code == 0, result.output
        assert "Order Placed Successfully!" in result.output
        assert "Order status: paid" in result.output

    def test_cancelled_redirect_offers_retry(self, database_url: str) -> None:
        order_id = place_order(
            database_url, PaymentSelection(PaymentChannelKind.HOSTED_CHECKOUT, "maya")
        )

        result = runner.invoke(
            app,
            ["reconcile", f"https://shop.example/r?status=cancelled&order_id={order_id}"],
        )

        assert "Payment Cancelled" in result.output
        assert "Return to your cart to try again." in result.output

    def test_bad_redirect(self, database_url: str) -> None:
        result = runner.invoke(app, ["reconcile", "status=success"])

        assert result.exit_code == 1


class TestOrderAdministration:
    def test_order_status_lists_history(self, database_url: str) -> None:
        order_id = place_order(
            database_url, PaymentSelection(PaymentChannelKind.CASH_ON_DELIVERY)
        )

        result = runner.invoke(app, ["order-status", order_id])

        assert result.exit_code == 0
        assert "Status: to_pay" in result.output
        assert "- -> to_pay (checkout)" in result.output

    def test_approve_without_request_fails(self, database_url: str) -> None:
        order_id = place_order(
            database_url, PaymentSelection(PaymentChannelKind.CASH_ON_DELIVERY)
        )

        result = runner.invoke(app, ["approve-cancellation", order_id])

        assert result.exit_code == 1

    def test_apply_webhook(self, database_url: str, tmp_path: Path) -> None:
        order_id = place_order(
            database_url, PaymentSelection(PaymentChannelKind.BANK_TRANSFER, "bdo")
        )
        payload = tmp_path / "event.json"
        payload.write_text(
            json.dumps(
                {
                    "data": {
                        "attributes": {
                            "type": "payment.paid",
                            "data": {"attributes": {"metadata": {"order_id": order_id}}},
                        }
                    }
                }
            )
        )

        result = runner.invoke(app, ["apply-webhook", str(payload)])

        assert result.exit_code == 0
        assert f"Order {order_id}: paid" in result.output
