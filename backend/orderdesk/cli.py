# Overview: Flask CLI command groups for PIN bootstrap, order inspection, and maintenance.

# backend/orderdesk/cli.py
# Commands Legend:
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to orderdesk (PowerShell: $env:FLASK_APP="orderdesk").
# - Use: python -m flask <group> <command> [options]
#
# PIN credentials:
# - python -m flask pins status
#   Show credential count, capacity and whether web setup is enabled.
# - python -m flask pins list
#   List credentials (slot, id, timestamps; never hashes).
# - python -m flask pins create --scope owner
#   Create a PIN for a slot (prompts for the PIN). Does not need SETUP_SECRET.
# - python -m flask pins reset --scope chef
#   Overwrite a slot's PIN and revoke its sessions.
#
# Orders:
# - python -m flask orders show
#   Print every department's draft order and the validated snapshot.
# - python -m flask orders reset-all --yes
#   Clear every department and the validated snapshot.
#
# Maintenance:
# - python -m flask maintenance cleanup-sessions
#   Delete expired sessions.

import json

import click
from flask.cli import with_appcontext

from .services import auth_service, order_service, session_service, snapshot_service
from .validation import ApiError


def _fail(error: ApiError):
    raise click.ClickException(f"{error.code}: {error.message}")


@click.group('pins')
def pins_group():
    """PIN credential management."""


@pins_group.command('status')
@with_appcontext
def pins_status():
    """Show PIN setup status."""
    status = auth_service.credential_status()
    click.echo(f"Credentials: {status['credentialCount']}/{status['maxCredentials']}")
    click.echo(f"Web setup enabled: {'yes' if status['setupEnabled'] else 'no'}")
    click.echo(f"Setup locked: {'yes' if status['setupLocked'] else 'no'}")


@pins_group.command('list')
@with_appcontext
def pins_list():
    """List credentials in login match order."""
    credentials = auth_service.list_credentials()
    if not credentials:
        click.echo("No PIN credentials.")
        return
    for cred in credentials:
        reset = cred.get("resetAt") or "-"
        click.echo(f"{cred['scope']:<10} {cred['id']}  created {cred['createdAt']}  reset {reset}")


@pins_group.command('create')
@click.option('--scope', help='Slot to fill (defaults to the first free slot)')
@click.option('--pin', prompt=True, hide_input=True, confirmation_prompt=True, help='4-digit PIN')
@with_appcontext
def pins_create(scope, pin):
    """
    Create a PIN credential from the shell.

    Operators with shell access bypass SETUP_SECRET; capacity, slot and
    format rules still apply.
    """
    try:
        created = auth_service.create_credential(scope, pin)
    except ApiError as e:
        _fail(e)
    click.echo(f"PASS Created PIN for slot {created['scope']} (id {created['id']})")


@pins_group.command('reset')
@click.option('--scope', required=True, help='Slot whose PIN is replaced')
@click.option('--pin', prompt=True, hide_input=True, confirmation_prompt=True, help='New 4-digit PIN')
@with_appcontext
def pins_reset(scope, pin):
    """Overwrite a slot's PIN and revoke its sessions."""
    try:
        auth_service.reset_credential_pin(scope, pin)
    except ApiError as e:
        _fail(e)
    click.echo(f"PASS PIN reset for slot {scope}")


@click.group('orders')
def orders_group():
    """Order inspection and reset."""


@orders_group.command('show')
@with_appcontext
def orders_show():
    """Print draft orders and the validated snapshot as JSON."""
    click.echo(json.dumps({
        "commandes": order_service.get_all(),
        "validated": snapshot_service.get_validated(),
    }, ensure_ascii=False, indent=2))


@orders_group.command('reset-all')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def orders_reset_all(yes):
    """Clear every department and the validated snapshot."""
    if not yes:
        click.confirm("This deletes every draft order and the validated snapshot. Continue?", abort=True)
    order_service.reset_all()
    click.echo("PASS All orders cleared.")


@click.group('maintenance')
def maintenance_group():
    """Maintenance commands."""


@maintenance_group.command('cleanup-sessions')
@with_appcontext
def cleanup_sessions_cli():
    """Delete expired sessions."""
    deleted = session_service.cleanup_expired_sessions()
    click.echo(f"Deleted {deleted} expired sessions.")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(pins_group)
    app.cli.add_command(orders_group)
    app.cli.add_command(maintenance_group)
