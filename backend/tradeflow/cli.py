# Overview: Flask CLI command groups for bootstrap, business setup and counter maintenance.

# backend/tradeflow/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create any missing tables (idempotent). Use "flask db upgrade" for migrations.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Businesses:
# - python -m flask businesses list
# - python -m flask businesses create --name "Acme Heating" --email office@acme.test
#
# Numbering counters:
# - python -m flask counters list --business-id 1
# - python -m flask counters set --business-id 1 --counter invoice --next-value 1001
#   Continue numbering from a previous system. Refused if it would re-issue a number.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Business
from .services import sequence_service
from .validation import DocumentError


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

    This will DELETE ALL DATA, including issued documents and counters!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete.")


# =============================================================================
# BUSINESSES
# =============================================================================

@click.group('businesses')
def businesses_group():
    """Business (tenant) management commands."""


@businesses_group.command('list')
@with_appcontext
def list_businesses():
    """List all businesses."""
    businesses = db.session.query(Business).order_by(Business.id).all()

    if not businesses:
        click.echo("No businesses found.")
        return

    click.echo("\n" + "="*70)
    click.echo(f"{'ID':<5} {'Name':<35} {'Email':<25} {'Active'}")
    click.echo("="*70)
    for business in businesses:
        active_str = "Yes" if business.is_active else "No"
        click.echo(f"{business.id:<5} {business.name:<35} {business.email or '-':<25} {active_str}")
    click.echo("="*70 + "\n")


@businesses_group.command('create')
@click.option('--name', required=True, help='Business name (printed on documents)')
@click.option('--email', default=None, help='Contact email')
@click.option('--phone', default=None, help='Contact phone')
@click.option('--address', default=None, help='Postal address')
@with_appcontext
def create_business_cli(name, email, phone, address):
    """Create a new business."""
    business = Business(name=name, email=email, phone=phone, address=address, is_active=True)
    db.session.add(business)
    db.session.commit()
    click.echo(f"PASS Created business: {business.name} (ID: {business.id})")


# =============================================================================
# COUNTERS
# =============================================================================

@click.group('counters')
def counters_group():
    """Document numbering counter commands."""


@counters_group.command('list')
@click.option('--business-id', type=int, required=True, help='Business ID')
@with_appcontext
def list_counters_cli(business_id):
    """Show the next value of every counter."""
    if db.session.get(Business, business_id) is None:
        click.echo(f"FAIL Business {business_id} not found")
        return

    click.echo(f"{'Counter':<15} {'Next value':<12} {'Updated'}")
    for counter in sequence_service.list_counters(business_id):
        click.echo(f"{counter['counter_name']:<15} {counter['next_value']:<12} {counter['updated_at'] or '-'}")


@counters_group.command('set')
@click.option('--business-id', type=int, required=True, help='Business ID')
@click.option('--counter', 'counter_name', type=click.Choice(sequence_service.VALID_COUNTERS), required=True)
@click.option('--next-value', type=int, required=True, help='Next number to issue')
@with_appcontext
def set_counter_cli(business_id, counter_name, next_value):
    """Set the next number a counter will issue."""
    if db.session.get(Business, business_id) is None:
        click.echo(f"FAIL Business {business_id} not found")
        return
    try:
        sequence_service.set_next_value(business_id, counter_name, next_value)
    except DocumentError as e:
        db.session.rollback()
        click.echo(f"FAIL {e.message}")
        return
    click.echo(f"PASS {counter_name} counter for business {business_id} will issue {next_value} next")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(businesses_group)
    app.cli.add_command(counters_group)
