"""Management commands for the PharmaLink fulfillment backend."""

from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal
from typing import Optional

import click

from pharmalink.db.session import create_tables, get_engine
from pharmalink.domain.entities import StockEntry
from pharmalink.services.fulfillment_orchestrator import FulfillmentOrchestrator

logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(message)s")


@click.group()
def cli() -> None:
    """Entry point for management commands."""


@cli.command("init-db")
def init_db() -> None:
    """Create every table that does not exist yet."""
    create_tables()
    logging.info("Tables created on %s", get_engine().url.render_as_string(hide_password=True))


@cli.command("seed-stock")
@click.option("--facility", "facility_id", type=int, required=True)
@click.option("--medicine", "medicine_id", type=int, required=True)
@click.option("--quantity", type=click.IntRange(min=0), required=True)
@click.option("--price", type=str, required=True, help="Unit price, e.g. 12.50")
@click.option("--name", "medicine_name", default=None)
@click.option("--discount-price", default=None)
@click.option("--expiry", default=None, help="Expiry date YYYY-MM-DD")
@click.option("--batch", "batch_number", default=None)
def seed_stock(
    facility_id: int,
    medicine_id: int,
    quantity: int,
    price: str,
    medicine_name: Optional[str],
    discount_price: Optional[str],
    expiry: Optional[str],
    batch_number: Optional[str],
) -> None:
    """Add one medicine to a facility's inventory."""
    try:
        entry = StockEntry(
            facility_id=facility_id,
            medicine_id=medicine_id,
            medicine_name=medicine_name,
            quantity=quantity,
            unit_price=Decimal(price),
            discount_price=Decimal(discount_price) if discount_price else None,
            expiry_date=date.fromisoformat(expiry) if expiry else None,
            batch_number=batch_number,
        )
    except (ArithmeticError, ValueError) as e:
        raise click.BadParameter(str(e)) from e

    result = FulfillmentOrchestrator().add_stock_entry(entry)
    if not result.ok:
        raise click.ClickException(result.error.message)
    logging.info(
        "Stocked medicine %s at facility %s with %s units",
        medicine_id,
        facility_id,
        result.value.quantity,
    )


@cli.command("check-consistency")
def check_consistency() -> None:
    """Report orders whose status disagrees with their tracking history."""
    result = FulfillmentOrchestrator().check_consistency()
    if not result.ok:
        raise click.ClickException(result.error.message)
    issues = result.value
    if not issues:
        logging.info("All orders agree with their tracking ledger.")
        return
    for issue in issues:
        logging.error(
            "Order %s: stored status %s, latest tracking %s",
            issue.order_id,
            issue.order_status.value,
            issue.tracking_status.value if issue.tracking_status else "<none>",
        )
    raise SystemExit(1)


if __name__ == "__main__":
    cli()
