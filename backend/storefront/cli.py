# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/storefront/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Idempotent bootstrap: creates tables and the default admin account.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# User inspection/bootstrap:
# - python -m flask users list
#   List all users with admin and active status.
# - python -m flask users create --name "Jane" --email jane@example.com --password "Password123!"
#   Create a customer account (prompts if options are omitted).
# - python -m flask users create-admin --name "Ops" --email ops@example.com --password "Password123!"
#   Create a back-office administrator.
#
# Keys:
# - python -m flask keys generate
#   Print a fresh Fernet key for TOKEN_ENCRYPTION_KEY.
#
# Maintenance:
# - python -m flask maintenance cleanup-sessions --days 90
#   Delete guest sessions idle longer than the retention window.

import click
from cryptography.fernet import Fernet
from flask import current_app
from flask.cli import with_appcontext

from .extensions import db
from .models import User
from .services.auth_service import register_user, list_users, PasswordValidationError
from .services import session_service
from .validation import ValidationError, ConflictError


DEFAULT_ADMIN_EMAIL = "admin@storefront.local"
DEFAULT_ADMIN_PASSWORD = "Password123!"


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--admin-email', default=DEFAULT_ADMIN_EMAIL, show_default=True, help='Email of the default admin')
@with_appcontext
def init_system(admin_email):
    """
    Create missing tables and a default admin account.

    The default admin password is "Password123!".
    SECURITY: Change it immediately in production!
    """
    click.echo("START Initializing storefront...")

    db.create_all()
    click.echo("PASS Tables ready")

    existing = db.session.query(User).filter_by(email=admin_email.lower()).first()
    if existing:
        click.echo(f"PASS Using existing admin: {existing.email} (ID: {existing.id})")
    else:
        admin = register_user("Administrator", admin_email, DEFAULT_ADMIN_PASSWORD, is_admin=True)
        click.echo(f"PASS Created admin: {admin.email} (ID: {admin.id})")
        click.echo("WARN  Default password in use; change it before going live")

    click.echo("DONE Storefront initialized")


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
    """User management commands."""


def _create_user(name, email, password, mobile=None, is_admin=False):
    try:
        user = register_user(name, email, password, mobile=mobile, is_admin=is_admin)
        kind = "admin" if is_admin else "user"
        click.echo(f"PASS Created {kind}: {user.email} (ID: {user.id})")
        click.echo("SECURITY Password securely hashed with bcrypt")
    except PasswordValidationError as e:
        click.echo(f"FAIL Password validation failed: {str(e)}")
        click.echo("Requirements: 8+ chars, uppercase, lowercase, digit, special char")
    except (ValidationError, ConflictError) as e:
        click.echo(f"FAIL Failed to create user: {str(e)}")


@users_group.command('create')
@click.option('--name', prompt=True, help='Display name')
@click.option('--email', prompt=True, help='Email address')
@click.option('--mobile', default=None, help='Mobile number')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@with_appcontext
def create_user_cli(name, email, mobile, password):
    """Create a customer account."""
    _create_user(name, email, password, mobile=mobile)


@users_group.command('create-admin')
@click.option('--name', prompt=True, help='Display name')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@with_appcontext
def create_admin_cli(name, email, password):
    """Create a back-office administrator (is_admin=True)."""
    _create_user(name, email, password, is_admin=True)


@users_group.command('list')
@with_appcontext
def list_users_cli():
    """List all users."""
    users = list_users()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*90)
    click.echo(f"{'ID':<5} {'Name':<25} {'Email':<35} {'Active':<8} {'Admin'}")
    click.echo("="*90)

    for user in users:
        active_str = "Yes" if user.is_active else "No"
        admin_str = "Yes" if user.is_admin else "No"
        click.echo(f"{user.id:<5} {user.name[:24]:<25} {user.email[:34]:<35} {active_str:<8} {admin_str}")

    click.echo("="*90 + "\n")


@click.group('keys')
def keys_group():
    """Credential key commands."""


@keys_group.command('generate')
def generate_key_cli():
    """Print a new Fernet key; set it as TOKEN_ENCRYPTION_KEY."""
    click.echo(Fernet.generate_key().decode("ascii"))


@click.group('maintenance')
def maintenance_group():
    """Maintenance commands."""


@maintenance_group.command('cleanup-sessions')
@click.option('--days', type=int, default=None, help='Retention in days (default: SESSION_RETENTION_DAYS)')
@with_appcontext
def cleanup_sessions_cli(days):
    """
    Delete guest sessions idle longer than the retention window.

    Sessions that belong to a user are never deleted here.
    """
    if days is None:
        days = current_app.config.get("SESSION_RETENTION_DAYS", session_service.DEFAULT_RETENTION_DAYS)
    if days < 0:
        raise click.BadParameter("days must be >= 0", param_hint="--days")

    deleted = session_service.cleanup_sessions(days_old=days)
    click.echo(f"Deleted {deleted} guest sessions idle for more than {days} days.")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(keys_group)
    app.cli.add_command(maintenance_group)
