# Overview: Flask CLI command groups for bootstrap and delivery note maintenance.

# backend/albaranes/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# - python -m flask system init-db
#   Create all tables (use `flask db upgrade` for migrated deployments).
# - python -m flask users create --name "Ana" --email ana@example.com --password "Secret123"
#   Create a user.
# - python -m flask notes publish-pending --limit 100
#   Retry PDF publishing for draft delivery notes that have no PDF yet.

import click
from flask.cli import with_appcontext

from .extensions import db
from .services import auth_service, delivery_note_service
from .validation import ApiError


@click.group('system')
def system_group():
    """Database bootstrap commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    from . import models  # noqa: F401
    db.create_all()
    click.echo("OK Database tables created")


@click.group('users')
def users_group():
    """User bootstrap commands."""


@users_group.command('create')
@click.option('--name', prompt=True, help='Full name')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(['admin', 'user']), default='user', help='Role')
@with_appcontext
def create_user_cli(name, email, password, role):
    try:
        user = auth_service.create_user(name=name, email=email, password=password, role=role)
    except ApiError as e:
        click.echo(f"FAIL {e}")
        raise SystemExit(1)
    click.echo(f"OK Created user {user.email} (id={user.id})")


@click.group('notes')
def notes_group():
    """Delivery note maintenance commands."""


@notes_group.command('publish-pending')
@click.option('--limit', type=int, default=100, show_default=True, help='Maximum notes to process')
@with_appcontext
def publish_pending_cli(limit):
    """Render and store PDFs for drafts whose first attempt failed."""
    published, failed = delivery_note_service.publish_pending_pdfs(limit=limit)
    click.echo(f"OK Published {published} PDF(s), {failed} failed")
    if failed:
        raise SystemExit(1)


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(notes_group)
