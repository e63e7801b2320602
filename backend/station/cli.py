# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/station/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init [--admin-email admin@station.local --admin-password "Password123" --admin-name "Admin"]
#   Idempotent bootstrap: creates tables and a first admin user if none exists.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# User inspection/bootstrap:
# - python -m flask users list
#   List all users with role and active status.
# - python -m flask users create --name "Jane" --email jane@station.local --password "secret1" --role cashier
#   Create a user (prompts if options are omitted).
#
# Inventory:
# - python -m flask inventory low-stock [--category oil]
#   Print products at or below their low-stock threshold.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import User, USER_ROLES, PRODUCT_CATEGORIES
from .services.auth_service import create_user
from .services.inventory_service import low_stock_products
from .validation import ValidationError, ConflictError


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--admin-email', default='admin@station.local', help='Email of the first admin')
@click.option('--admin-password', default='Password123', help='Password of the first admin')
@click.option('--admin-name', default='Administrator', help='Display name of the first admin')
@with_appcontext
def init_system(admin_email, admin_password, admin_name):
    """
    Create all tables and a first admin account.

    Safe to run repeatedly: the admin is only created when no admin exists.

    SECURITY: Change the default password immediately in production!
    """
    click.echo("START Initializing service station database...")
    db.create_all()
    click.echo("PASS Tables ready")

    existing = db.session.query(User).filter_by(role='admin').first()
    if existing:
        click.echo(f"PASS Using existing admin: {existing.email} (ID: {existing.id})")
        return

    try:
        user = create_user(name=admin_name, email=admin_email, password=admin_password, role='admin')
    except (ValidationError, ConflictError) as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS Created admin: {user.email} (ID: {user.id})")


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
@click.option('--name', prompt=True, help='Display name')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password (min 6 characters)')
@click.option('--role', type=click.Choice(USER_ROLES), prompt=True, help='Role')
@with_appcontext
def create_user_cli(name, email, password, role):
    """Create a new user."""
    try:
        user = create_user(name=name, email=email, password=password, role=role)
    except (ValidationError, ConflictError) as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS Created user {user.email} (ID: {user.id}, role: {user.role})")


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users."""
    users = db.session.query(User).order_by(User.id.asc()).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "=" * 80)
    click.echo(f"{'ID':<5} {'Name':<25} {'Email':<30} {'Role':<18} {'Active'}")
    click.echo("=" * 80)
    for user in users:
        click.echo(f"{user.id:<5} {user.name:<25} {user.email:<30} {user.role:<18} {'yes' if user.is_active else 'no'}")


@click.group('inventory')
def inventory_group():
    """Inventory inspection commands."""


@inventory_group.command('low-stock')
@click.option('--category', type=click.Choice(PRODUCT_CATEGORIES), help='Only this category')
@with_appcontext
def low_stock_cli(category):
    """Print products at or below their low-stock threshold."""
    products = low_stock_products(category)

    if not products:
        click.echo("PASS No low-stock products.")
        return

    click.echo(f"{'ID':<5} {'Name':<30} {'Category':<12} {'Stock':>6} {'Threshold':>10}")
    for p in products:
        click.echo(f"{p.id:<5} {p.name:<30} {p.category:<12} {p.quantity_in_stock:>6} {p.low_stock_threshold:>10}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(inventory_group)
