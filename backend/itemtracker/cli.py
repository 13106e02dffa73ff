# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/itemtracker/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create any missing tables (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# User inspection/bootstrap:
# - python -m flask users list
#   List all users with active/verified status.
# - python -m flask users create --username admin --email admin@example.com --password "Password123"
#   Create a verified user (prompts if options are omitted).
#
# Snapshots:
# - python -m flask snapshots run
#   Run the daily snapshot batch for every user now (skips if another run holds the lease).
# - python -m flask snapshots user 3 [--manual]
#   Snapshot one user's items for today.
#
# Maintenance:
# - python -m flask maintenance cleanup-sessions
#   Delete expired and revoked session tokens.

import click
from flask import current_app
from flask.cli import with_appcontext

from .extensions import db
from .models import User, SnapshotType
from .services.auth_service import hash_password, PasswordValidationError
from .services import history_service, session_service


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

    This will DELETE ALL DATA!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete.")


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('create')
@click.option('--username', prompt=True, help='Username')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--full-name', default=None, help='Display name')
@with_appcontext
def create_user_cli(username, email, password, full_name):
    """
    Create a new, already verified user.

    Password must meet strength requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit
    """
    existing = db.session.query(User).filter(
        (User.username == username) | (User.email == email.lower())
    ).first()
    if existing:
        click.echo(f"FAIL User '{username}' or email '{email}' already exists")
        return

    try:
        password_hash = hash_password(password)
    except PasswordValidationError as e:
        click.echo(f"FAIL {e}")
        return

    user = User(
        username=username,
        email=email.lower(),
        full_name=full_name,
        password_hash=password_hash,
        is_verified=True,
    )
    db.session.add(user)
    db.session.commit()

    click.echo(f"PASS Created user '{user.username}' (id={user.id})")


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users."""
    users = db.session.query(User).order_by(User.id.asc()).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*90)
    click.echo(f"{'ID':<5} {'Username':<20} {'Email':<35} {'Active':<8} {'Verified'}")
    click.echo("="*90)

    for user in users:
        active_str = "Yes" if user.is_active else "No"
        verified_str = "Yes" if user.is_verified else "No"
        click.echo(f"{user.id:<5} {user.username:<20} {user.email:<35} {active_str:<8} {verified_str}")

    click.echo("="*90 + "\n")


@click.group('snapshots')
def snapshots_group():
    """Inventory snapshot commands."""


@snapshots_group.command('run')
@with_appcontext
def run_snapshots():
    """Run the daily snapshot batch now."""
    scheduler = current_app.extensions["snapshot_scheduler"]
    result = scheduler.run_for_all_users()

    if result.skipped:
        click.echo("SKIP Another snapshot run is in progress.")
        return

    click.echo(f"PASS Snapshotted {result.items} items for {result.users} users.")
    if result.failed_user_ids:
        click.echo(f"FAIL Users with errors: {', '.join(str(i) for i in result.failed_user_ids)}")


@snapshots_group.command('user')
@click.argument('user_id', type=int)
@click.option('--manual', is_flag=True, help='Record as a manual snapshot')
@with_appcontext
def snapshot_user(user_id, manual):
    """Snapshot one user's items for today."""
    user = db.session.get(User, user_id)
    if not user:
        click.echo(f"FAIL User {user_id} not found")
        return

    snapshot_type = SnapshotType.MANUAL if manual else SnapshotType.AUTO
    count = history_service.create_user_snapshots(user.id, snapshot_type)
    click.echo(f"PASS Snapshotted {count} items for '{user.username}'.")


@click.group('maintenance')
def maintenance_group():
    """Housekeeping commands."""


@maintenance_group.command('cleanup-sessions')
@with_appcontext
def cleanup_sessions():
    """Delete expired and revoked session tokens."""
    removed = session_service.cleanup_expired_sessions()
    click.echo(f"PASS Removed {removed} session tokens.")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(snapshots_group)
    app.cli.add_command(maintenance_group)
