# Overview: Flask CLI command groups for bootstrap, users and reports.

# backend/shoppos/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Idempotent bootstrap: creates tables and the default admin.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Users:
# - python -m flask users list
# - python -m flask users create --username anna --password "secret123" --role STAFF
#
# Reports:
# - python -m flask reports send-monthly [--period 2024-05]
#   Send a monthly report now. Without --period, sends last month unless it
#   was already sent.

import re

import click
from flask import current_app
from flask.cli import with_appcontext

from .errors import ShopError
from .extensions import db
from .models import ROLES, User
from .services import auth_service
from .services.reporting_service import previous_month
from .services.scheduler_service import run_monthly_report
from .time_utils import get_timezone, to_local, utcnow


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """
    Create all tables and the default ADMIN account.

    Safe to run repeatedly. Credentials come from ADMIN_USERNAME /
    ADMIN_PASSWORD (defaults: admin / admin12345).

    SECURITY: Change the default password immediately in production!
    """
    click.echo("START Initializing database...")
    db.create_all()

    user, created = auth_service.ensure_default_admin(
        current_app.config["DEFAULT_ADMIN_USERNAME"],
        current_app.config["DEFAULT_ADMIN_PASSWORD"],
    )
    if created:
        click.echo(f"PASS Created admin user: {user.username}")
    else:
        click.echo(f"PASS Admin user already exists: {user.username}")
    click.echo("DONE System initialized.")


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
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(ROLES, case_sensitive=False), default='STAFF', show_default=True)
@click.option('--email', default=None, help='Email address (defaults to <username>@local)')
@with_appcontext
def create_user_cli(username, password, role, email):
    """
    Create a new user.

    Password must be 8+ characters with at least one letter and one digit.
    """
    try:
        user = auth_service.create_user(username, password, role=role, email=email)
    except ShopError as e:
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

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'Username':<20} {'Email':<35} {'Role'}")
    click.echo("="*80)
    for user in users:
        click.echo(f"{user.id:<5} {user.username:<20} {(user.email or ''):<35} {user.role}")
    click.echo("="*80 + "\n")


@click.group('reports')
def reports_group():
    """Report delivery commands."""


@reports_group.command('send-monthly')
@click.option('--period', default=None, help='Month to send as YYYY-MM (defaults to last month)')
@with_appcontext
def send_monthly_cli(period):
    """Send the monthly report through the notifier, at most once per period."""
    if period is None:
        tz = get_timezone(current_app.config.get("BUSINESS_TIMEZONE"))
        year, month = previous_month(to_local(utcnow(), tz).date())
        period = f"{year}-{month:02d}"
    elif not re.fullmatch(r"\d{4}-(0[1-9]|1[0-2])", period):
        raise click.BadParameter("period must look like YYYY-MM", param_hint="--period")

    if run_monthly_report(period):
        click.echo(f"PASS Monthly report for {period} processed")
    else:
        click.echo(f"SKIP Monthly report for {period} was already sent")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(reports_group)
