# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/stockledger/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py.
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Idempotent bootstrap: default warehouse and one active series per scope.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Document series:
# - python -m flask series list
# - python -m flask series create --code B2C25 --name "B2C 2025" --scope sale_b2c --year 2025
#
# Stock:
# - python -m flask stock show --location-id 1
#   Balances per sku derived from the movement history.
# - python -m flask stock verify
#   Replay the whole ledger and compare with the SQL aggregate.
#
# Maintenance:
# - python -m flask maintenance purge --target movements --target price_rules --yes
#   DANGER: bulk deletion outside the ledger invariants.

import click
from flask.cli import with_appcontext

from .errors import LedgerError
from .extensions import db
from .models import DocumentSeries, Location
from .models.locations import LOCATION_WAREHOUSE
from .services import maintenance_service, series_service, stock_service
from .services.maintenance_service import PURGE_TARGETS
from .validation import SERIES_SCOPES


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--warehouse', 'warehouse_name', default='Main Warehouse', help='Default warehouse name')
@with_appcontext
def init_system(warehouse_name):
    """
    Initialize the ledger: a default warehouse and a year-less active series
    for every scope that has none.
    """
    click.echo("START Initializing stock ledger...")

    warehouse = db.session.query(Location).filter_by(type=LOCATION_WAREHOUSE).first()
    if not warehouse:
        warehouse = Location(type=LOCATION_WAREHOUSE, name=warehouse_name, is_active=True)
        db.session.add(warehouse)
        db.session.commit()
        click.echo(f"PASS Created warehouse: {warehouse.name} (ID: {warehouse.id})")
    else:
        click.echo(f"PASS Using existing warehouse: {warehouse.name} (ID: {warehouse.id})")

    for scope, code in series_service.DEFAULT_SERIES_CODES.items():
        exists = db.session.query(DocumentSeries).filter_by(scope=scope, is_active=True).first()
        if exists:
            click.echo(f"PASS Series for {scope}: {exists.code}")
            continue
        series = series_service.create_series(code=code, name=f"{code} series", scope=scope, prefix=code)
        click.echo(f"PASS Created series {series.code} for {scope}")

    click.echo("DONE Stock ledger initialized.")


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

    click.echo("PASS Database reset complete. Run 'python -m flask system init' to initialize.")


@click.group('series')
def series_group():
    """Document series commands."""


@series_group.command('list')
@with_appcontext
def list_series():
    """List all document series."""
    rows = series_service.list_series()
    if not rows:
        click.echo("No series found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'Code':<12} {'Scope':<10} {'Prefix':<10} {'Year':<6} {'Next':<10} {'Pad':<5} {'Active'}")
    click.echo("="*80)
    for s in rows:
        active_str = "Yes" if s.is_active else "No"
        click.echo(
            f"{s.code:<12} {s.scope:<10} {s.prefix or '-':<10} {s.year or '-':<6} "
            f"{s.next_number:<10} {s.padding:<5} {active_str}"
        )
    click.echo("="*80 + "\n")


@series_group.command('create')
@click.option('--code', required=True)
@click.option('--name', required=True)
@click.option('--scope', required=True, type=click.Choice(SERIES_SCOPES))
@click.option('--prefix', default=None, help='Defaults to the code')
@click.option('--year', type=int, default=None, help='Year-scoped series only serve that year')
@click.option('--next-number', type=int, default=1, show_default=True)
@click.option('--padding', type=int, default=None)
@with_appcontext
def create_series(code, name, scope, prefix, year, next_number, padding):
    """Create a document series."""
    try:
        series = series_service.create_series(
            code=code, name=name, scope=scope, prefix=prefix or code,
            year=year, next_number=next_number, padding=padding,
        )
    except LedgerError as e:
        db.session.rollback()
        raise click.ClickException(e.message)
    click.echo(f"PASS Created series {series.code} ({series.scope})")


@click.group('stock')
def stock_group():
    """Stock inspection commands."""


@stock_group.command('show')
@click.option('--location-id', type=int, required=True)
@with_appcontext
def show_stock(location_id):
    """Show balances per sku at a location."""
    balances = stock_service.get_balances(location_id)
    if not balances:
        click.echo("No stock at this location.")
        return
    click.echo(f"{'SKU':<30} {'Quantity':>10}")
    for sku, qty in balances.items():
        click.echo(f"{sku:<30} {qty:>10}")


@stock_group.command('verify')
@with_appcontext
def verify_stock():
    """Rebuild the projection from a full scan and compare with SQL balances."""
    mismatches = stock_service.verify_projection()
    if not mismatches:
        click.echo("PASS Projection matches the ledger.")
        return
    for m in mismatches:
        click.echo(f"FAIL location={m['location_id']} sku={m['sku']} sql={m['sql']} replayed={m['replayed']}")
    raise click.ClickException(f"{len(mismatches)} mismatch(es) found")


@click.group('maintenance')
def maintenance_group():
    """Maintenance commands."""


@maintenance_group.command('purge')
@click.option('--target', 'targets', multiple=True, required=True, type=click.Choice(PURGE_TARGETS))
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def purge(targets, yes):
    """
    DANGER: Delete every row of the given targets.

    Run in a maintenance window; locations/customers need --target movements.
    """
    if not yes:
        click.confirm(f"WARN This will DELETE ALL {', '.join(targets)}. Are you sure?", abort=True)
    try:
        counts = maintenance_service.purge_data(targets)
    except LedgerError as e:
        raise click.ClickException(e.message)
    for table, count in counts.items():
        click.echo(f"Deleted {count} row(s) from {table}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(series_group)
    app.cli.add_command(stock_group)
    app.cli.add_command(maintenance_group)
