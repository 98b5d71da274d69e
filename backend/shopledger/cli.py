# Overview: Flask CLI command groups for bootstrap, inspection, and stock maintenance.

# backend/shopledger/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create any missing tables (idempotent). Prefer `flask db upgrade` in production.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Product inspection/maintenance:
# - python -m flask products list [--deleted]
#   List active (or soft-deleted) products with stock.
# - python -m flask products history 12
#   Print a product's history timeline, newest first.
# - python -m flask products write-off 12 3 --note "Damaged in transit"
#   Reduce stock with a stock_removed history entry.

import click
from flask.cli import with_appcontext

from .extensions import db
from .services import history_service, inventory_service, products_service
from .validation import InsufficientStockError, NotFoundError, ValidationError


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database tables created.")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete.")


@click.group('products')
def products_group():
    """Product inspection and stock maintenance."""


@products_group.command('list')
@click.option('--deleted', is_flag=True, help='List soft-deleted products instead')
@with_appcontext
def list_products_cli(deleted):
    """List products with price and stock."""
    result = products_service.list_products(deleted=deleted)

    if not result["items"]:
        click.echo("No products found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<6} {'Name':<40} {'Price':>10} {'Qty':>8} {'Barcode'}")
    click.echo("="*80)

    for p in result["items"]:
        click.echo(f"{p['id']:<6} {p['name'][:40]:<40} {p['price']:>10} {p['quantity']:>8} {p['barcode'] or '-'}")

    click.echo("="*80 + "\n")


@products_group.command('history')
@click.argument('product_id', type=int)
@with_appcontext
def product_history_cli(product_id):
    """Print a product's history, newest first."""
    try:
        entries = history_service.list_for_product(product_id)
    except NotFoundError as e:
        raise click.ClickException(str(e))

    if not entries:
        click.echo("No history entries.")
        return

    for entry in entries:
        line = f"{entry['created_at']}  {entry['action']:<14}"
        if entry["action"] in history_service.SNAPSHOT_ACTIONS:
            if entry["field_name"]:
                line += f" fields={entry['field_name']}"
        elif entry["old_value"] is not None or entry["new_value"] is not None:
            line += f" {entry['old_value']} -> {entry['new_value']}"
        if entry["note"]:
            line += f"  ({entry['note']})"
        click.echo(line)


@products_group.command('write-off')
@click.argument('product_id', type=int)
@click.argument('quantity', type=int)
@click.option('--note', default=None, help='Reason for the write-off')
@with_appcontext
def write_off_cli(product_id, quantity, note):
    """Reduce a product's stock (damage, shrinkage)."""
    try:
        product = inventory_service.adjust_stock(product_id=product_id, reduce_by=quantity, note=note)
    except (ValidationError, NotFoundError, InsufficientStockError) as e:
        raise click.ClickException(str(e))

    click.echo(f"PASS {product['name']}: {product['quantity']} left in stock.")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(products_group)
