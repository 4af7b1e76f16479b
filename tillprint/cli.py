"""Command-line interface for tillprint."""

import asyncio
import logging
import sys

import click

from tillprint import __version__
from tillprint.db.database import SessionLocal
from tillprint.printing.controller import get_printer_controller
from tillprint.printing.errors import PrintingError


def setup_logging(level: str) -> None:
    """Set up logging configuration.

    Args:
        level: Log level string.
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=numeric_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler()],
    )


@click.group()
@click.version_option(version=__version__)
@click.option(
    "--log-level",
    default="WARNING",
    show_default=True,
    help="Log level (DEBUG, INFO, WARNING, ERROR)",
)
def main(log_level: str):
    """tillprint - Receipt printing for point-of-sale terminals.

    Inspect USB printers on this host and manage a tenant's receipt
    printer without going through the web API.
    """
    setup_logging(log_level)


tenant_option = click.option(
    "--tenant", "-t", "tenant_id", required=True, help="Tenant ID owning the printer"
)


@main.command()
def devices():
    """List USB printers granted on this host."""
    db = SessionLocal()
    try:
        controller = get_printer_controller(db, tenant_id="")
        result = asyncio.run(controller.get_devices())
    finally:
        db.close()

    click.echo("\n=== USB Printers ===\n")

    if not result.devices:
        click.echo(result.message or "No USB printers found.")
        return

    for device in result.devices:
        click.echo(
            f"  {device.device_address}  {device.manufacturer} {device.product} "
            f"[{device.vendor_id:04x}:{device.product_id:04x}] serial={device.serial_number}"
        )


@main.command()
@tenant_option
def status(tenant_id: str):
    """Show a tenant's printer configuration and status."""
    db = SessionLocal()
    try:
        controller = get_printer_controller(db, tenant_id)
        result = asyncio.run(controller.get_status())
    finally:
        db.close()

    click.echo("\n=== Printer Status ===\n")

    if result.config is None:
        click.echo("Status: NOT CONFIGURED")
        return

    click.echo(f"Printer: {result.config.printer_name}")
    click.echo(f"Type: {result.config.printer_type.value}")
    click.echo(f"Device: {result.config.device_address}")
    click.echo(f"Status: {result.status}")
    if result.message:
        click.echo(result.message)


@main.command("test-page")
@tenant_option
def test_page(tenant_id: str):
    """Print a sample receipt on a tenant's printer."""
    db = SessionLocal()
    try:
        controller = get_printer_controller(db, tenant_id)
        result = asyncio.run(controller.print_test_page())
    except PrintingError as e:
        click.echo(f"Error: {e.message}")
        sys.exit(1)
    finally:
        db.close()

    click.echo(result.message)
    click.echo("")
    click.echo(result.receipt_text)


@main.command()
@tenant_option
def disconnect(tenant_id: str):
    """Disconnect a tenant's printer."""
    db = SessionLocal()
    try:
        count = get_printer_controller(db, tenant_id).disconnect()
    finally:
        db.close()

    if count:
        click.echo("Printer disconnected.")
    else:
        click.echo("No printer was connected.")


if __name__ == "__main__":
    main()
