# Overview: Flask CLI command groups for bootstrap, tenant management, and scheduled maintenance.

# backend/propartner/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to propartner (PowerShell: $env:FLASK_APP="propartner").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create all tables that do not exist yet (use `flask db upgrade` for migrated databases).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Organization management (MULTI-TENANT):
# - python -m flask orgs list
#   List all organizations.
# - python -m flask orgs create --name "Acme Corp" --code "ACME"
#   Create a new organization (tenant).
#
# Loyalty (schedule expire-points daily, e.g. from cron):
# - python -m flask loyalty expire-points [--org-id 1] [--now 2026-01-01T00:00:00Z]
#   Expire due loyalty points for one or every active organization.
# - python -m flask loyalty verify [--org-id 1] [--repair]
#   Compare cached points balances with the movement log (--repair also re-assigns levels).
#
# Stock:
# - python -m flask stock verify [--org-id 1] [--repair]
#   Compare cached article stock with the movement log.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Article, Client, Organization
from .services import loyalty_service, stock_service
from .time_utils import parse_iso_datetime


def _target_orgs(org_id):
    q = db.session.query(Organization).filter(Organization.is_active.is_(True))
    if org_id is not None:
        q = q.filter(Organization.id == org_id)
    return q.order_by(Organization.id).all()


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create missing tables (idempotent)."""
    db.create_all()
    click.echo("PASS Database schema ready.")


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

    click.echo("PASS Database reset complete. Run 'python -m flask orgs create' to add a tenant.")


@click.group('orgs')
def orgs_group():
    """Organization (tenant) management commands."""


@orgs_group.command('list')
@with_appcontext
def list_orgs():
    """List all organizations."""
    orgs = db.session.query(Organization).order_by(Organization.id).all()

    if not orgs:
        click.echo("No organizations found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'Name':<30} {'Code':<15} {'Active':<8} {'Clients':<8} {'Articles'}")
    click.echo("="*80)

    for org in orgs:
        client_count = db.session.query(Client).filter_by(org_id=org.id).count()
        article_count = db.session.query(Article).filter_by(org_id=org.id).count()
        active_str = "Yes" if org.is_active else "No"

        click.echo(f"{org.id:<5} {org.name:<30} {org.code or '-':<15} {active_str:<8} {client_count:<8} {article_count}")

    click.echo("="*80 + "\n")


@orgs_group.command('create')
@click.option('--name', required=True, help='Organization name')
@click.option('--code', required=True, help='Short code (unique)')
@click.option('--currency', default='EUR', show_default=True, help='ISO 4217 currency code')
@with_appcontext
def create_org_cli(name, code, currency):
    """Create a new organization (tenant)."""
    existing = db.session.query(Organization).filter_by(code=code).first()
    if existing:
        click.echo(f"FAIL Organization with code '{code}' already exists")
        return

    org = Organization(name=name, code=code, currency=currency.upper(), is_active=True)
    db.session.add(org)
    db.session.commit()

    click.echo(f"PASS Created organization: {org.name} (ID: {org.id}, Code: {org.code})")


@click.group('loyalty')
def loyalty_group():
    """Loyalty points maintenance."""


@loyalty_group.command('expire-points')
@click.option('--org-id', type=int, help='Organization ID (all active organizations if omitted)')
@click.option('--now', 'now_raw', help='Cutoff as ISO-8601 (defaults to now)')
@with_appcontext
def expire_points_cli(org_id, now_raw):
    """
    Expire loyalty points whose grant is due.

    Safe to run repeatedly: a second run finds nothing left to expire.
    """
    try:
        now = parse_iso_datetime(now_raw)
    except ValueError:
        raise click.BadParameter("must be an ISO-8601 datetime", param_hint="--now")

    orgs = _target_orgs(org_id)
    if not orgs:
        click.echo("FAIL No matching active organization")
        return

    total_points = 0
    total_clients = 0
    for org in orgs:
        result = loyalty_service.expire_due_points(org_id=org.id, now=now)
        total_points += result["total_points"]
        total_clients += result["clients"]
        click.echo(f"  {org.code or org.id}: {result['total_points']} points expired for {result['clients']} clients")

    click.echo(f"PASS Expired {total_points} points for {total_clients} clients")


@loyalty_group.command('verify')
@click.option('--org-id', type=int, help='Organization ID (all active organizations if omitted)')
@click.option('--repair', is_flag=True, help='Overwrite inconsistent balances with the log total and re-assign levels')
@with_appcontext
def verify_points_cli(org_id, repair):
    """Compare each client's points balance with its movement log."""
    mismatches = 0
    for org in _target_orgs(org_id):
        client_ids = [c.id for c in db.session.query(Client.id).filter_by(org_id=org.id).order_by(Client.id)]
        for client_id in client_ids:
            result = loyalty_service.recompute_points_balance(org_id=org.id, client_id=client_id, repair=repair)
            if not result["consistent"]:
                mismatches += 1
                action = "repaired" if repair else "mismatch"
                click.echo(
                    f"WARN client {client_id} (org {org.id}) {action}: "
                    f"cached {result['cached_balance']}, log {result['ledger_balance']}"
                )
            if repair:
                before = db.session.get(Client, client_id).loyalty_level_id
                customer = loyalty_service.assign_loyalty_level(org_id=org.id, client_id=client_id)
                if customer.loyalty_level_id != before:
                    click.echo(f"WARN client {client_id} (org {org.id}) level {before} -> {customer.loyalty_level_id}")

    if mismatches and not repair:
        click.echo(f"FAIL {mismatches} inconsistent balances")
        raise SystemExit(1)
    click.echo(f"PASS Points balances verified ({mismatches} repaired)" if repair else "PASS Points balances consistent")


@click.group('stock')
def stock_group():
    """Stock ledger maintenance."""


@stock_group.command('verify')
@click.option('--org-id', type=int, help='Organization ID (all active organizations if omitted)')
@click.option('--repair', is_flag=True, help='Realign cached stock with the last movement')
@with_appcontext
def verify_stock_cli(org_id, repair):
    """Compare each tracked article's current stock with its movement log."""
    mismatches = 0
    for org in _target_orgs(org_id):
        article_ids = [
            a.id for a in db.session.query(Article.id)
            .filter_by(org_id=org.id, track_stock=True)
            .order_by(Article.id)
        ]
        for article_id in article_ids:
            result = stock_service.verify_stock(org_id=org.id, article_id=article_id)
            if result["consistent"]:
                continue
            mismatches += 1
            click.echo(
                f"WARN article {result['reference']} (org {org.id}): "
                f"cached {result['current_stock']}, log {result['ledger_stock']}"
            )
            if repair:
                stock_service.repair_stock(org_id=org.id, article_id=article_id)

    if mismatches and not repair:
        click.echo(f"FAIL {mismatches} inconsistent articles")
        raise SystemExit(1)
    click.echo(f"PASS Stock verified ({mismatches} repaired)" if repair else "PASS Stock consistent")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(orgs_group)  # Multi-tenant organization management
    app.cli.add_command(loyalty_group)
    app.cli.add_command(stock_group)
