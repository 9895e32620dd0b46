# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/deliveryhub/cli.py
# Commands Legend (run from the repository root):
# Prereqs:
# - Activate your virtualenv and `pip install -e .`
# - Use: flask --app deliveryhub <group> <command> [options]
#
# System bootstrap:
# - flask --app deliveryhub system init-db
#   Create all tables (development; production uses `flask db upgrade`).
# - flask --app deliveryhub system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Administrators:
# - flask --app deliveryhub users create-admin --email ops@example.com --password "secret1"
#   Create an identity carrying the admin claim (bootstraps the first admin).
# - flask --app deliveryhub users grant-admin --email owner@example.com
#   Add the admin claim to an existing identity.
# - flask --app deliveryhub users list
#
# Payment plans:
# - flask --app deliveryhub plans set price_123 --name "Pro 500" --credits 500 --bonus 50
# - flask --app deliveryhub plans set price_123 --name "Pro 500" --credits 500 --inactive
# - flask --app deliveryhub plans list
#
# Orders:
# - flask --app deliveryhub orders list --status dispatch_error
#
# Maintenance:
# - flask --app deliveryhub maintenance cleanup-sessions
#   Delete expired and revoked session tokens.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Account, PaymentPlan, User
from .services import auth_service, order_service, plan_service, session_service
from .services.auth_service import AuthError
from .services.permission_service import CLAIM_ADMIN
from .validation import ValidationError


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database tables created")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Confirm destructive reset')
@with_appcontext
def reset_db(yes):
    """DEV/TEST only: drop and recreate all tables."""
    if not yes:
        click.echo("FAIL Refusing to reset without --yes")
        return
    db.drop_all()
    db.create_all()
    click.echo("PASS Database reset")


# =============================================================================
# USER COMMANDS
# =============================================================================

@click.group('users')
def users_group():
    """Identity and administrator commands."""


@users_group.command('create-admin')
@click.option('--email', prompt=True)
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True)
@click.option('--name', 'display_name', default='Administrator')
@with_appcontext
def create_admin(email, password, display_name):
    """Create an identity with the admin claim (no business account)."""
    try:
        user = auth_service.create_identity(email=email, password=password, display_name=display_name)
        auth_service.set_custom_claims(user.id, {CLAIM_ADMIN: True})
    except AuthError as e:
        click.echo(f"FAIL {e}")
        return
    click.echo(f"PASS Created administrator {user.email} (ID: {user.id})")


@users_group.command('grant-admin')
@click.option('--email', required=True)
@with_appcontext
def grant_admin(email):
    """Add the admin claim to an existing identity."""
    user = auth_service.get_identity_by_email(email)
    if not user:
        click.echo(f"FAIL No user with email {email}")
        return
    auth_service.set_custom_claims(user.id, {CLAIM_ADMIN: True})
    click.echo(f"PASS {user.email} is now an administrator")


@users_group.command('list')
@with_appcontext
def list_users():
    """List identities with claims and credit balances."""
    users = db.session.query(User).order_by(User.created_at).all()
    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "=" * 100)
    click.echo(f"{'ID':<34} {'Email':<35} {'Claims':<22} {'Credits'}")
    click.echo("=" * 100)
    for user in users:
        account = db.session.get(Account, user.id)
        credits = account.credits if account else "-"
        click.echo(f"{user.id:<34} {user.email:<35} {str(user.custom_claims or {}):<22} {credits}")
    click.echo("=" * 100 + "\n")


# =============================================================================
# PAYMENT PLAN COMMANDS
# =============================================================================

@click.group('plans')
def plans_group():
    """Payment plan configuration commands."""


@plans_group.command('set')
@click.argument('plan_id')
@click.option('--name', required=True)
@click.option('--credits', type=int, required=True)
@click.option('--bonus', 'bonus_credits', type=int, default=None)
@click.option('--inactive', is_flag=True, help='Hide the plan and stop granting credits for it')
@with_appcontext
def set_plan(plan_id, name, credits, bonus_credits, inactive):
    """Create or update a plan keyed by its Stripe price id."""
    try:
        plan = plan_service.upsert_plan(plan_id, name, credits, bonus_credits, is_active=not inactive)
    except ValueError as e:
        click.echo(f"FAIL {e}")
        return
    click.echo(f"PASS Plan {plan.id}: {plan.name} -> {plan.total_credits} credits ({'active' if plan.is_active else 'inactive'})")


@plans_group.command('list')
@with_appcontext
def list_plans():
    plans = db.session.query(PaymentPlan).order_by(PaymentPlan.credits).all()
    if not plans:
        click.echo("No plans configured.")
        return
    for plan in plans:
        bonus = f" + {plan.bonus_credits} bonus" if plan.bonus_credits else ""
        state = "active" if plan.is_active else "inactive"
        click.echo(f"{plan.id:<32} {plan.name:<24} {plan.credits}{bonus} [{state}]")


# =============================================================================
# ORDER COMMANDS
# =============================================================================

@click.group('orders')
def orders_group():
    """Order inspection commands."""


@orders_group.command('list')
@click.option('--status', default='dispatch_error', show_default=True)
@click.option('--limit', default=50, show_default=True)
@with_appcontext
def list_orders(status, limit):
    try:
        orders = order_service.list_orders_by_status(status, limit=limit)
    except ValidationError as e:
        click.echo(f"FAIL {e}")
        return
    if not orders:
        click.echo(f"No orders with status {status}.")
        return
    for order in orders:
        click.echo(
            f"{order.id}  account={order.account_id}  customer={order.customer_name}  "
            f"created={order.created_at}  error={order.dispatch_error or '-'}"
        )


# =============================================================================
# MAINTENANCE
# =============================================================================

@click.group('maintenance')
def maintenance_group():
    """Maintenance commands."""


@maintenance_group.command('cleanup-sessions')
@with_appcontext
def cleanup_sessions():
    deleted = session_service.cleanup_expired_sessions()
    click.echo(f"PASS Deleted {deleted} expired or revoked sessions")


def register_commands(app):
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(plans_group)
    app.cli.add_command(orders_group)
    app.cli.add_command(maintenance_group)
