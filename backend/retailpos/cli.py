# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/retailpos/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Apply migrations first: python -m flask db upgrade
#
# System bootstrap/repair:
# - python -m flask system init
#   Idempotent bootstrap: default category and admin/manager/cashier users.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Users:
# - python -m flask users list
# - python -m flask users create --username admin2 --email admin2@retailpos.local --full-name "Second Admin" --role admin
#   Create a user (prompts if options are omitted).
#
# Inventory:
# - python -m flask inventory reconcile
#   Compare cached stock with the ledger; exits 1 on any mismatch.
#
# Maintenance:
# - python -m flask maintenance cleanup-sessions --days 30
#   Delete expired or revoked session tokens older than the window.

import click
from flask.cli import with_appcontext

from .errors import PosError
from .extensions import db
from .models import Category, User
from .models.auth import ROLES
from .services import inventory_service, session_service
from .services.auth_service import create_user


# Default password meets requirements:
# - Minimum 8 characters
# - Uppercase, lowercase, digit, special char
DEFAULT_PASSWORD = "Password123!"

DEFAULT_USERS = [
    ("admin", "admin@retailpos.local", "System Administrator", "admin"),
    ("manager", "manager@retailpos.local", "Store Manager", "manager"),
    ("cashier", "cashier@retailpos.local", "Front Cashier", "cashier"),
]


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--password', default=DEFAULT_PASSWORD, help='Password for the default users')
@with_appcontext
def init_system(password):
    """
    Initialize RetailPOS: a default category and one user per role.

    Creates:
    - Category: General
    - Users: admin, manager, cashier (all with the given password)

    SECURITY: Change passwords immediately in production!
    """
    click.echo("START Initializing RetailPOS...")

    if not db.session.query(Category).filter_by(name="General", parent_id=None).first():
        db.session.add(Category(name="General", description="Default category"))
        db.session.commit()
        click.echo("PASS Created category: General")
    else:
        click.echo("PASS Using existing category: General")

    click.echo("\nUSERS Creating default users...")
    for username, email, full_name, role in DEFAULT_USERS:
        if db.session.query(User).filter_by(username=username).first():
            click.echo(f"WARN  User '{username}' already exists, skipping...")
            continue
        try:
            create_user(username=username, email=email, password=password, full_name=full_name, role=role)
            click.echo(f"PASS Created user: {username} ({email}) with role '{role}'")
        except PosError as e:
            click.echo(f"FAIL Failed to create user '{username}': {e.message}")

    click.echo("\n" + "=" * 60)
    click.echo("DONE RetailPOS initialized")
    click.echo("=" * 60)
    click.echo("\nSECURITY WARNING: change the default passwords in production!")
    click.echo("   Password requirements: 8+ chars, uppercase, lowercase, digit, special char")


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


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('create')
@click.option('--username', prompt=True, help='Username')
@click.option('--email', prompt=True, help='Email address')
@click.option('--full-name', prompt=True, help='Full name')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(list(ROLES)), prompt=True, help='Role')
@with_appcontext
def create_user_cli(username, email, full_name, password, role):
    """
    Create a new user interactively.

    Password must meet strength requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit
    - At least one special character
    """
    try:
        user = create_user(username=username, email=email, password=password, full_name=full_name, role=role)
    except PosError as e:
        raise click.ClickException(e.message)

    click.echo(f"PASS Created user: {user.username} ({user.email}) with role '{user.role}'")


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users with their roles."""
    users = db.session.query(User).order_by(User.id.asc()).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "=" * 90)
    click.echo(f"{'ID':<5} {'Username':<20} {'Email':<32} {'Role':<10} {'Active'}")
    click.echo("=" * 90)
    for user in users:
        active_str = "Yes" if user.is_active else "No"
        click.echo(f"{user.id:<5} {user.username:<20} {user.email:<32} {user.role:<10} {active_str}")
    click.echo("=" * 90 + "\n")


@click.group('inventory')
def inventory_group():
    """Inventory ledger commands."""


@inventory_group.command('reconcile')
@with_appcontext
def reconcile_inventory_cli():
    """Check current_quantity == sum of ledger changes for every product."""
    report = inventory_service.reconcile_inventory()

    if report["ok"]:
        click.echo(f"PASS {report['checked']} products reconciled, no mismatches")
        return

    for row in report["mismatches"]:
        click.echo(
            f"FAIL product {row['product_id']}: "
            f"cached {row['current_quantity']}, ledger {row['ledger_quantity']}"
        )
    raise click.ClickException(f"{len(report['mismatches'])} of {report['checked']} products do not reconcile")


@click.group('maintenance')
def maintenance_group():
    """Maintenance commands."""


@maintenance_group.command('cleanup-sessions')
@click.option('--days', type=int, default=30, show_default=True)
@with_appcontext
def cleanup_sessions_cli(days):
    """Delete expired or revoked session tokens older than --days."""
    deleted = session_service.cleanup_expired_sessions(days=days)
    click.echo(f"Deleted {deleted} sessions older than {days} days.")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(inventory_group)
    app.cli.add_command(maintenance_group)
