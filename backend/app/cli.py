# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/app/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create any missing tables (idempotent; prefer `flask db upgrade` in production).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Booking inspection:
# - python -m flask bookings status BK-4K8P0QZD
#   Show a booking, its payment summary and its transactions.
# - python -m flask bookings events BK-4K8P0QZD
#   Show the booking's event trail.
#
# Availability inspection:
# - python -m flask photographers slots 3 --date 2026-11-02 --duration 90 [--step 30]
#   List free windows (or stepped slots) for a photographer on a date.
#
# Permission inspection:
# - python -m flask perms list [--role staff] [--category PAYMENTS]
#   List permissions (optionally filtered by role or category).

import click
from flask.cli import with_appcontext

from .errors import BookingError
from .extensions import db
from .permissions import permissions_for
from .services import availability_service, booking_service, ledger_service
from .services.money import format_cents
from .time_utils import parse_iso_date


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Tables created.")


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


@click.group('bookings')
def bookings_group():
    """Booking inspection commands."""


@bookings_group.command('status')
@click.argument('reference')
@with_appcontext
def booking_status(reference):
    """Show a booking with its payment summary."""
    try:
        booking = booking_service.get_booking_by_reference(reference)
    except BookingError as e:
        click.echo(f"FAIL {e.message}")
        raise SystemExit(1)

    summary = ledger_service.get_payment_status(booking.id)

    click.echo(f"\n{'='*80}")
    click.echo(f"Booking {booking.booking_reference} ({booking.status})")
    click.echo(f"{'='*80}\n")
    click.echo(f"  Date:          {booking.booking_date.isoformat()} {booking.start_time}-{booking.end_time}")
    click.echo(f"  Customer:      {booking.customer_id}")
    click.echo(f"  Photographer:  {booking.photographer_id or '-'}")
    click.echo(f"  Location:      {booking.location}")
    click.echo(f"  Total:         {format_cents(booking.total_amount_cents)}")
    click.echo(f"  Discount:      {format_cents(booking.discount_amount_cents)}")
    click.echo(f"  Final:         {format_cents(booking.final_amount_cents)}")
    click.echo(f"  Paid (net):    {format_cents(summary.amount_paid_cents)}")
    click.echo(f"  Refunded:      {format_cents(summary.total_refunded_cents)}")
    click.echo(f"  Remaining:     {format_cents(summary.remaining_balance_cents)}")
    click.echo(f"  Scenario:      {summary.scenario}")

    if summary.transactions:
        click.echo(f"\n{'Reference':<16} {'Type':<10} {'Method':<12} {'Status':<10} {'Amount':>12}")
        click.echo("-"*80)
        for txn in summary.transactions:
            click.echo(
                f"{txn.transaction_reference:<16} {txn.transaction_type:<10} {txn.payment_method:<12} "
                f"{txn.status:<10} {format_cents(txn.amount_cents):>12}"
            )
    click.echo("")


@bookings_group.command('events')
@click.argument('reference')
@with_appcontext
def booking_events(reference):
    """Show the event trail of a booking."""
    try:
        booking = booking_service.get_booking_by_reference(reference)
    except BookingError as e:
        click.echo(f"FAIL {e.message}")
        raise SystemExit(1)

    for ev in booking_service.list_booking_events(booking.id):
        transition = f"{ev.from_status or '-'} -> {ev.to_status or '-'}"
        click.echo(f"{ev.occurred_at.isoformat()}  {ev.event_type:<18} {transition:<26} {ev.actor_id or '-'}  {ev.note or ''}")


@click.group('photographers')
def photographers_group():
    """Availability inspection commands."""


@photographers_group.command('slots')
@click.argument('photographer_id', type=int)
@click.option('--date', 'date_str', required=True, help='Date (YYYY-MM-DD)')
@click.option('--duration', default=60, show_default=True, help='Session length in minutes')
@click.option('--step', default=None, type=int, help='Cut free windows into slots every N minutes')
@with_appcontext
def photographer_slots(photographer_id, date_str, duration, step):
    """List free windows for a photographer on a date."""
    try:
        target_date = parse_iso_date(date_str)
    except ValueError:
        click.echo("FAIL --date must be YYYY-MM-DD")
        raise SystemExit(1)

    try:
        result = availability_service.get_available_slots(photographer_id, target_date, duration, step_minutes=step)
    except BookingError as e:
        click.echo(f"FAIL {e.message}")
        raise SystemExit(1)

    click.echo(f"Photographer {photographer_id} on {target_date.isoformat()} ({duration} min):")
    if not result.slots:
        click.echo(f"  none - {result.reason}")
        return
    for window in result.slots:
        slot = window.to_dict()
        click.echo(f"  {slot['start']} - {slot['end']}")


@click.group('perms')
def perms_group():
    """Permission inspection commands."""


@perms_group.command('list')
@click.option('--role', help='Filter by role name')
@click.option('--category', help='Filter by category')
def list_permissions_cli(role, category):
    """List all permissions, optionally filtered by role or category."""
    perms = permissions_for(role=role or None, category=category or None)
    if perms is None:
        click.echo(f"FAIL Role '{role}' not found")
        return

    click.echo(f"\n{'Code':<24} {'Name':<24} {'Category'}")
    click.echo("-"*80)
    for code, name, _description, cat in perms:
        click.echo(f"{code:<24} {name:<24} {cat}")
    click.echo(f"\n Total: {len(perms)} permissions\n")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(bookings_group)
    app.cli.add_command(photographers_group)
    app.cli.add_command(perms_group)
