# Overview: Flask CLI command groups for bootstrap and ledger maintenance.

# backend/backoffice/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init [--branch "Main Branch"]
#   Idempotent bootstrap: creates tables, a default branch, base units and payment methods.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Ledger inspection:
# - python -m flask ledger verify
#   Compare every inventory row with the sum of its completed movements.
#   Exits with status 1 when any (product, branch) pair has drifted.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Branch, PaymentMethod, Unit
from .services.inventory_service import ledger_drift

DEFAULT_UNITS = (
    ("Unit", "u"),
    ("Kilogram", "kg"),
    ("Liter", "l"),
    ("Box", "box"),
)

# (name, requires_bank_account)
DEFAULT_PAYMENT_METHODS = (
    ("Cash", False),
    ("Card", False),
    ("Bank transfer", True),
    ("Check", True),
)


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--branch', 'branch_name', default='Main Branch', help='Name of the default branch')
@with_appcontext
def init_system(branch_name):
    """
    Initialize the back office: schema, default branch, units and payment methods.

    Safe to run repeatedly; existing rows are left untouched.
    """
    click.echo("START Initializing back office...")
    db.create_all()

    if db.session.query(Branch).count() == 0:
        branch = Branch(name=branch_name, is_active=True)
        db.session.add(branch)
        db.session.commit()
        click.echo(f"PASS Created default branch: {branch.name} (ID: {branch.id})")
    else:
        click.echo("PASS Branches already configured")

    created = 0
    for name, abbreviation in DEFAULT_UNITS:
        if db.session.query(Unit).filter_by(name=name).first() is None:
            db.session.add(Unit(name=name, abbreviation=abbreviation))
            created += 1
    for name, requires_bank_account in DEFAULT_PAYMENT_METHODS:
        if db.session.query(PaymentMethod).filter_by(name=name).first() is None:
            db.session.add(PaymentMethod(name=name, requires_bank_account=requires_bank_account, is_active=True))
            created += 1
    db.session.commit()
    click.echo(f"PASS Seeded {created} unit/payment method rows")
    click.echo("DONE Back office ready.")


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


@click.group('ledger')
def ledger_group():
    """Stock ledger inspection."""


@ledger_group.command('verify')
@with_appcontext
def verify_ledger():
    """Check that stored stock equals the net of completed movements."""
    drift = ledger_drift()
    if not drift:
        click.echo("PASS Inventory matches the movement ledger")
        return

    for row in drift:
        click.echo(
            f"FAIL product={row['product_id']} branch={row['branch_id']} "
            f"stock={row['stock']} expected={row['expected']}"
        )
    raise click.exceptions.Exit(1)


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(ledger_group)
