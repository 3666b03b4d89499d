# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/bookmarket/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create any missing tables (prefer `flask db upgrade` for real databases).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Users:
# - python -m flask users create --email a@example.com --username alice --password "Password123!" [--stripe-account-id acct_123]
#   Create an account (prompts if options are omitted).
# - python -m flask users connect-payout alice acct_123
#   Attach a connected payout account so the user can list books.
# - python -m flask users list
#
# Purchases:
# - python -m flask purchases list [--status pending]
# - python -m flask purchases cancel 42
#   Cancel a stuck pending purchase (same transition as an expired checkout).
# - python -m flask purchases deliveries [--outcome REJECTED] [--limit 50]
#   Inspect recorded webhook deliveries and what the reconciler did with them.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Purchase, User, WebhookDelivery
from .models.purchases import PURCHASE_STATUSES
from .models.webhooks import DELIVERY_OUTCOMES
from .services.auth_service import create_user
from .services.purchase_service import cancel_purchase
from .validation import ValidationError


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create any missing tables."""
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
    """User management commands."""


@users_group.command('create')
@click.option('--email', prompt=True, help='Email address')
@click.option('--username', prompt=True, help='Username')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--stripe-account-id', default=None, help='Connected payout account (enables listing books)')
@with_appcontext
def create_user_cli(email, username, password, stripe_account_id):
    """
    Create a new account.

    Password must meet strength requirements: 8+ chars, uppercase,
    lowercase, digit, special char.
    """
    try:
        user = create_user(
            email=email,
            username=username,
            password=password,
            stripe_account_id=stripe_account_id,
        )
    except ValidationError as e:
        click.echo(f"FAIL {e}")
        raise SystemExit(1)

    click.echo(f"PASS Created user: {user.username} ({user.email}) id={user.id}")
    click.echo(f"     Can sell: {'Yes' if user.can_sell else 'No'}")


@users_group.command('connect-payout')
@click.argument('username')
@click.argument('stripe_account_id')
@with_appcontext
def connect_payout_cli(username, stripe_account_id):
    """Attach a connected payout account to a user."""
    user = db.session.query(User).filter_by(username=username).first()
    if not user:
        click.echo(f"FAIL User {username} not found")
        raise SystemExit(1)

    user.stripe_account_id = stripe_account_id.strip()
    db.session.commit()
    click.echo(f"PASS {username} can now list books (account {user.stripe_account_id})")


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users."""
    users = db.session.query(User).order_by(User.id.asc()).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*90)
    click.echo(f"{'ID':<5} {'Username':<20} {'Email':<35} {'Active':<8} {'Seller'}")
    click.echo("="*90)

    for user in users:
        active_str = "Yes" if user.is_active else "No"
        seller_str = "Yes" if user.can_sell else "No"
        click.echo(f"{user.id:<5} {user.username:<20} {user.email:<35} {active_str:<8} {seller_str}")

    click.echo("="*90 + "\n")


@click.group('purchases')
def purchases_group():
    """Purchase inspection and operator follow-up."""


@purchases_group.command('list')
@click.option('--status', type=click.Choice(PURCHASE_STATUSES), help='Filter by status')
@click.option('--limit', type=int, default=50, show_default=True)
@with_appcontext
def list_purchases_cli(status, limit):
    """List recent purchases."""
    query = db.session.query(Purchase)
    if status:
        query = query.filter_by(status=status)
    purchases = query.order_by(Purchase.created_at.desc(), Purchase.id.desc()).limit(limit).all()

    if not purchases:
        click.echo("No purchases found.")
        return

    click.echo("\n" + "="*100)
    click.echo(f"{'ID':<6} {'Book':<6} {'Buyer':<6} {'Seller':<7} {'Amount':>8} {'Fee':>7} {'Status':<10} {'Session'}")
    click.echo("="*100)

    for p in purchases:
        click.echo(
            f"{p.id:<6} {p.book_id:<6} {p.buyer_id:<6} {p.seller_id:<7} "
            f"{p.amount_cents:>8} {p.platform_fee_cents:>7} {p.status:<10} {p.checkout_session_id or '-'}"
        )

    click.echo("="*100 + "\n")


@purchases_group.command('cancel')
@click.argument('purchase_id', type=int)
@with_appcontext
def cancel_purchase_cli(purchase_id):
    """Cancel a pending purchase and release its book."""
    try:
        result = cancel_purchase(purchase_id)
    except ValidationError as e:
        click.echo(f"FAIL {e}")
        raise SystemExit(1)

    if result.changed:
        click.echo(f"PASS Purchase {purchase_id} cancelled.")
    else:
        click.echo(f"SKIP Purchase {purchase_id} was already cancelled.")


@purchases_group.command('deliveries')
@click.option('--outcome', type=click.Choice(DELIVERY_OUTCOMES), help='Filter by reconciler outcome')
@click.option('--limit', type=int, default=50, show_default=True)
@with_appcontext
def list_deliveries_cli(outcome, limit):
    """List recent webhook deliveries."""
    query = db.session.query(WebhookDelivery)
    if outcome:
        query = query.filter_by(outcome=outcome)
    deliveries = query.order_by(WebhookDelivery.received_at.desc(), WebhookDelivery.id.desc()).limit(limit).all()

    if not deliveries:
        click.echo("No webhook deliveries found.")
        return

    click.echo("\n" + "="*110)
    click.echo(f"{'ID':<6} {'Outcome':<10} {'Type':<32} {'Purchase':<9} {'Event':<30} {'Detail'}")
    click.echo("="*110)

    for d in deliveries:
        click.echo(
            f"{d.id:<6} {d.outcome:<10} {d.event_type:<32} {str(d.purchase_id or '-'):<9} "
            f"{d.provider_event_id or '-':<30} {d.detail or ''}"
        )

    click.echo("="*110 + "\n")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(purchases_group)
