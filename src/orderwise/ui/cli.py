from __future__ import annotations

import asyncio
import json
from pathlib import Path

from dotenv import load_dotenv
import typer

from orderwise.adapters.db.facade import DB
from orderwise.adapters.db.seed import seed_catalog
from orderwise.checkout.entities import LineItem, format_pesos
from orderwise.checkout.errors import InvalidTransitionError, OrderNotFoundError
from orderwise.checkout.orders import OrderStateMachine
from orderwise.core.config import EngineConfig, load_engine_config_from_env
from orderwise.payments.reconciliation import (
    ReconciliationPoller,
    parse_redirect,
)
from orderwise.payments.webhook import WebhookProcessor
from orderwise.services.checkout import build_checkout_service

# Load environment variables from .env
load_dotenv()

app = typer.Typer(
    help="orderwise: order pricing, stock and payment reconciliation CLI.",
    no_args_is_help=True,
)


def _config() -> EngineConfig:
    try:
        return load_engine_config_from_env()
    except ValueError as e:
        typer.echo(f"Configuration error: {e}", err=True)
        raise typer.Exit(1) from None


def _db(url: str | None = None) -> DB:
    return DB(url or _config().database_url)


def _parse_item_specs(db: DB, specs: list[str]) -> list[LineItem]:
    """Turn ``product_id:quantity`` specs into priced line items."""
    quantities: dict[str, int] = {}
    for spec in specs:
        product_id, _, qty = spec.partition(":")
        try:
            quantities[product_id] = quantities.get(product_id, 0) + int(qty or "1")
        except ValueError:
            typer.echo(f"Invalid item spec: {spec!r} (expected id:quantity)", err=True)
            raise typer.Exit(1) from None

    products = db.get_products(list(quantities))
    missing = sorted(set(quantities) - set(products))
    if missing:
        typer.echo(f"Unknown products: {', '.join(missing)}", err=True)
        raise typer.Exit(1)

    return [
        LineItem(
            product_id=product_id,
            name=products[product_id].name,
            unit_price_cents=products[product_id].price_cents,
            quantity=qty,
        )
        for product_id, qty in quantities.items()
    ]


@app.command("init-db")
def init_db(url: str | None = None) -> None:
    """Create all tables."""
    db = _db(url)
    db.create_all()
    typer.echo("Database initialized.")


@app.command("seed-demo")
def seed_demo(
    yaml_path: str = "configs/demo_catalog.yaml", url: str | None = None
) -> None:
    """Load the demo catalog, vouchers, monthly sale, offers and fees."""
    db = _db(url)
    db.create_all()
    try:
        summary = seed_catalog(db, Path(yaml_path))
    except (FileNotFoundError, ValueError) as e:
        typer.echo(f"Could not seed demo data: {e}", err=True)
        raise typer.Exit(1) from None

    typer.echo(
        f"Demo data loaded: {summary.products} products, {summary.vouchers} vouchers, "
        f"{summary.sales} sales, {summary.discount_rules} offers, {summary.fees} fees."
    )


@app.command("quote")
def quote(
    items: list[str] = typer.Argument(  # noqa: B008
        ..., help="Items as product_id:quantity"
    ),
    voucher: str | None = typer.Option(None, help="Voucher or sale code"),
    url: str | None = None,
) -> None:
    """Price a cart without placing an order."""
    config = _config()
    db = DB(url or config.database_url)
    service = build_checkout_service(db, config)
    result = service.quote(_parse_item_specs(db, items), voucher)

    for item in result.order_items:
        label = "FREE" if item.is_free_item else format_pesos(item.line_total_cents)
        typer.echo(f"  {item.quantity} x {item.name}: {label}")
    for offer in result.offers.applied:
        typer.echo(f"  Offer: {offer.rule.name}")
    if result.voucher is not None:
        status = "applied" if result.voucher.ok else "rejected"
        typer.echo(f"  Voucher {result.voucher.code} {status}: {result.voucher.message}")

    breakdown = result.breakdown
    typer.echo(f"Subtotal: {format_pesos(breakdown.subtotal_cents)}")
    typer.echo(f"Shipping: {format_pesos(breakdown.shipping_fee_cents)}")
    typer.echo(f"Discount: -{format_pesos(breakdown.voucher_discount_cents)}")
    typer.echo(f"Total:    {format_pesos(breakdown.total_cents)}")


@app.command("reconcile")
def reconcile(
    redirect: str = typer.Argument(
        ..., help="Redirect-back URL or query string (status=...&order_id=...)"
    ),
    url: str | None = None,
) -> None:
    """Reconcile an order after the customer returns from a payment page."""
    config = _config()
    try:
        redirect_status, order_id = parse_redirect(redirect)
    except ValueError as e:
        typer.echo(str(e), err=True)
        raise typer.Exit(1) from None

    poller = ReconciliationPoller(
        OrderStateMachine(DB(url or config.database_url)),
        max_attempts=config.reconcile_max_attempts,
        delay_unit_seconds=config.reconcile_delay_unit_seconds,
    )
    try:
        outcome = asyncio.run(poller.reconcile(order_id, redirect_status))
    except OrderNotFoundError as e:
        typer.echo(str(e), err=True)
        raise typer.Exit(1) from None

    typer.echo(outcome.title)
    typer.echo(outcome.message)
    typer.echo(f"Order status: {outcome.order_status}")
    if outcome.can_retry:
        typer.echo("Return to your cart to try again.")


@app.command("order-status")
def order_status(order_id: str, url: str | None = None) -> None:
    """Show an order's status and its transition history."""
    db = _db(url)
    order = db.get_order(order_id)
    if order is None:
        typer.echo(f"Order {order_id} not found", err=True)
        raise typer.Exit(1)

    typer.echo(f"Order {order.order_number} ({order.id})")
    typer.echo(f"Status: {order.status}")
    typer.echo(f"Total: {format_pesos(order.total_amount_cents)}")
    for event in db.list_status_events(order_id):
        typer.echo(
            f"  {event.created_at:%Y-%m-%d %H:%M:%S} "
            f"{event.from_status or '-'} -> {event.to_status} ({event.source})"
        )


@app.command("approve-cancellation")
def approve_cancellation(
    order_id: str,
    deny: bool = typer.Option(False, help="Deny the request instead"),
    url: str | None = None,
) -> None:
    """Finalize (or deny) a customer's cancellation request."""
    machine = OrderStateMachine(_db(url))
    try:
        applied = (
            machine.deny_cancellation(order_id)
            if deny
            else machine.approve_cancellation(order_id)
        )
    except (OrderNotFoundError, InvalidTransitionError) as e:
        typer.echo(str(e), err=True)
        raise typer.Exit(1) from None

    if not applied:
        typer.echo("Order changed concurrently; nothing was written.", err=True)
        raise typer.Exit(1)
    typer.echo(f"Order {order_id}: {machine.status_of(order_id).value}")


@app.command("apply-webhook")
def apply_webhook(payload_path: Path, url: str | None = None) -> None:
    """Apply a saved gateway webhook payload (JSON file)."""
    try:
        payload = json.loads(payload_path.read_text())
    except (OSError, json.JSONDecodeError) as e:
        typer.echo(f"Could not read webhook payload: {e}", err=True)
        raise typer.Exit(1) from None

    result = WebhookProcessor(OrderStateMachine(_db(url))).handle(payload)
    if result.applied and result.status is not None:
        typer.echo(f"Order {result.order_id}: {result.status.value}")
    else:
        typer.echo(f"Event {result.event_type or '-'} acknowledged, no change.")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
