# backend/stocksync/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask stocksync <command> [options]
#
# Database:
# - python -m flask stocksync init-db
#   Create the document store and cache tables if they don't exist.
# - python -m flask stocksync reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes documents AND cache).
#
# Inspection:
# - python -m flask stocksync cache-show
#   List cache partitions with item counts.
# - python -m flask stocksync cache-show productsCache
#   Print one cache partition as JSON.
# - python -m flask stocksync collections
#   Document counts per collection for the configured tenant.
#
# Numbering:
# - python -m flask stocksync next-number customerCounter --prefix CUS
#   Allocate the next number from a counter (consumes it).
# - python -m flask stocksync next-number salesOrderCounter --prefix SO --periodic
#   Same, with the monthly YYMM period segment.

import json

import click
from flask import current_app
from flask.cli import with_appcontext
from sqlalchemy import func, select

from .container import get_services
from .errors import StockSyncError
from .extensions import db
from .models import StoredDocument
from .services.document_numbers import monthly_period


@click.group('stocksync')
def stocksync_group():
    """Document store, cache and numbering commands."""


@stocksync_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables on both binds."""
    db.create_all()
    click.echo("PASS Tables ready (documents + cache).")


@stocksync_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DOCUMENTS AND THE LOCAL CACHE!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    get_services().close()

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete.")


@stocksync_group.command('cache-show')
@click.argument('partition', required=False)
@with_appcontext
def cache_show(partition):
    """Show cache partitions, or the content of one."""
    cache = get_services().cache
    if partition:
        value = cache.get(partition)
        if value is None:
            click.echo(f"FAIL Cache partition '{partition}' is empty or missing.")
            raise SystemExit(1)
        click.echo(json.dumps(value, indent=2, sort_keys=True, default=str))
        return

    names = cache.partitions()
    if not names:
        click.echo("Cache is empty.")
        return
    click.echo(f"{'Partition':<32} {'Items':>6}")
    click.echo("-" * 40)
    for name in names:
        value = cache.get(name)
        size = len(value) if isinstance(value, (list, dict)) else 1
        click.echo(f"{name:<32} {size:>6}")


@stocksync_group.command('collections')
@with_appcontext
def list_collections():
    """Document counts per collection for the configured tenant."""
    tenant_id = current_app.config["TENANT_ID"]
    rows = db.session.execute(
        select(StoredDocument.collection, func.count(StoredDocument.id))
        .where(StoredDocument.tenant_id == tenant_id)
        .group_by(StoredDocument.collection)
        .order_by(StoredDocument.collection)
    ).all()
    if not rows:
        click.echo(f"No documents for tenant {tenant_id}.")
        return
    click.echo(f"Tenant: {tenant_id}")
    for collection, count in rows:
        click.echo(f"  {collection:<28} {count:>6}")


@stocksync_group.command('next-number')
@click.argument('counter_name')
@click.option('--prefix', required=True, help='Number prefix, e.g. SO, PI, BI, CUS, SUP')
@click.option('--periodic', is_flag=True, help='Include the current YYMM period and reset monthly')
@with_appcontext
def next_number(counter_name, prefix, periodic):
    """Allocate and print the next number from COUNTER_NAME."""
    numbers = get_services().numbers
    try:
        number = numbers.generate(
            counter_name,
            prefix=prefix,
            period_fn=monthly_period if periodic else None,
        )
    except StockSyncError as e:
        click.echo(f"FAIL {e.message}")
        raise SystemExit(1)
    click.echo(f"PASS {number}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(stocksync_group)
