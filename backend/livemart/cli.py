# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/livemart/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# Schema:
# - python -m flask system init-db
#   Create all tables that do not exist yet.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Users:
# - python -m flask users create-admin --email admin@livemart.local --phone +919800000000 --name Admin --password "Password123!"
#   Create an ADMIN account (admins cannot self-register).
# - python -m flask users list [--role RETAILER] [--inactive]
#   List users with role and active status.
# - python -m flask users deactivate --email someone@example.com
#   Deactivate an account and drop its stored refresh token.
# - python -m flask users award-points --email someone@example.com --points 50
#   Add loyalty points to a customer.
#
# Inventory:
# - python -m flask inventory low-stock --owner-id 2
#   Records at or below their reorder level for one seller.

import click
from flask import current_app
from flask.cli import with_appcontext

from .extensions import db, get_auth_service
from .models import User
from .models.users import USER_ROLES
from .services.auth_service import PasswordValidationError
from .services import inventory_service, user_service
from .validation import ValidationError, ConflictError, NotFoundError


@click.group('system')
def system_group():
    """Schema bootstrap commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database tables created")


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
    db.create_all()
    click.echo("PASS Database reset complete")


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('create-admin')
@click.option('--email', prompt=True, help='Email address')
@click.option('--phone', prompt=True, help='Phone number (E.164)')
@click.option('--name', prompt=True, help='Display name')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@with_appcontext
def create_admin_cli(email, phone, name, password):
    """
    Create an ADMIN account.

    Password must meet strength requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit
    - At least one special character
    """
    try:
        user = get_auth_service().create_user(
            email=email,
            phone=phone,
            name=name,
            password=password,
            role="ADMIN",
            is_verified=True,
        )
    except PasswordValidationError as e:
        click.echo(f"FAIL Password validation failed: {str(e)}")
        click.echo("Requirements: 8+ chars, uppercase, lowercase, digit, special char")
        raise SystemExit(1)
    except (ValidationError, ConflictError) as e:
        click.echo(f"FAIL Failed to create admin: {str(e)}")
        raise SystemExit(1)

    current_app.logger.info("Admin created from CLI: id=%s", user.id)
    click.echo(f"PASS Created admin: {user.name} ({user.email}) id={user.id}")
    click.echo("SECURITY Password securely hashed with bcrypt")


@users_group.command('list')
@click.option('--role', type=click.Choice(USER_ROLES, case_sensitive=False), help='Filter by role')
@click.option('--inactive', is_flag=True, help='Only deactivated accounts')
@with_appcontext
def list_users(role, inactive):
    """List users with their role and active status."""
    users = user_service.list_users(
        role=role.upper() if role else None,
        active=False if inactive else None,
        limit=1000,
    )

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*90)
    click.echo(f"{'ID':<5} {'Role':<12} {'Name':<25} {'Email':<35} {'Active'}")
    click.echo("="*90)

    for user in users:
        active_str = "Yes" if user.is_active else "No"
        click.echo(f"{user.id:<5} {user.role:<12} {user.name[:25]:<25} {user.email:<35} {active_str}")

    click.echo("="*90 + "\n")


@users_group.command('deactivate')
@click.option('--email', required=True, help='Email of the account to deactivate')
@with_appcontext
def deactivate_user_cli(email):
    """Deactivate an account and force it to log in again everywhere."""
    user = db.session.query(User).filter_by(email=email.strip().lower()).first()
    if user is None:
        click.echo(f"FAIL No user with email {email}")
        raise SystemExit(1)

    try:
        get_auth_service().deactivate(user.id)
    except (ConflictError, NotFoundError) as e:
        click.echo(f"FAIL {str(e)}")
        raise SystemExit(1)

    click.echo(f"PASS Deactivated {user.email} (id={user.id})")


@users_group.command('award-points')
@click.option('--email', required=True, help='Email of the customer')
@click.option('--points', type=int, required=True, help='Loyalty points to add')
@with_appcontext
def award_points_cli(email, points):
    """Add loyalty points to a customer account."""
    user = db.session.query(User).filter_by(email=email.strip().lower()).first()
    if user is None:
        click.echo(f"FAIL No user with email {email}")
        raise SystemExit(1)

    try:
        details = user_service.add_loyalty_points(user.id, points)
    except ValidationError as e:
        click.echo(f"FAIL {str(e)}")
        raise SystemExit(1)

    click.echo(f"PASS {user.email} now has {details.loyalty_points} loyalty points")


@click.group('inventory')
def inventory_group():
    """Inventory inspection commands."""


@inventory_group.command('low-stock')
@click.option('--owner-id', type=int, required=True, help='Seller user ID')
@with_appcontext
def low_stock_cli(owner_id):
    """List records at or below their reorder level."""
    records = inventory_service.find_low_stock(owner_id)

    if not records:
        click.echo("No low-stock records.")
        return

    click.echo(f"{'ID':<6} {'Product':<30} {'Stock':>7} {'Reserved':>9} {'Reorder':>8} {'Status'}")
    for record in records:
        click.echo(
            f"{record.id:<6} {record.product.name[:30]:<30} {record.current_stock:>7} "
            f"{record.reserved_stock:>9} {record.reorder_level:>8} {record.stock_status}"
        )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(inventory_group)
