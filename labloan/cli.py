# Overview: Flask CLI command groups for bootstrap, stock inspection, and maintenance.

# labloan/cli.py
# Commands Legend:
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py.
# - Use: flask <group> <command> [options]
#
# System bootstrap:
# - flask system init-db
#   Create all tables (use `flask db upgrade` once migrations are in use).
# - flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Materials:
# - flask materials add --category liquid --name "Ethanol 96%" --quantity 5000
#   Register a material with its opening stock.
# - flask materials list [--category solid]
#
# Stock:
# - flask stock reconcile [--strict]
#   Compare on-hand stock with the movement ledger; --strict exits 1 on drift.
#
# Sweeps:
# - flask sweeps list
# - flask sweeps run --job expiry|stale|return-reminders|all
#
# Tokens (development only; production tokens come from the identity provider):
# - flask tokens issue --user-id 12 --role student --name "Ana Ruiz"

import click
from flask import current_app
from flask.cli import with_appcontext

from .extensions import db
from .errors import LoanError
from .permissions import ROLES
from .services import stock_ledger
from .services.concurrency import atomic
from .services.identity_service import Identity, SignedTokenResolver, normalize_role


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
    """DEV/TEST only: drop and recreate every table."""
    if not yes:
        click.echo("FAIL Refusing to reset without --yes")
        raise SystemExit(1)
    db.drop_all()
    db.create_all()
    click.echo("PASS Database reset")


@click.group('materials')
def materials_group():
    """Material registration and inspection."""


@materials_group.command('add')
@click.option('--category', required=True, help='liquid, solid, equipment or lab_item')
@click.option('--name', required=True)
@click.option('--quantity', default=0, type=int, help='Opening stock (ml, g or units)')
@with_appcontext
def add_material(category, name, quantity):
    try:
        with atomic(db.session):
            material = stock_ledger.create_material(db.session, category, name, quantity)
            material_id = material.id
    except LoanError as e:
        click.echo(f"FAIL {e.message}")
        raise SystemExit(1)
    click.echo(f"PASS Created {category} material {name!r} (ID: {material_id}) with {quantity}")


@materials_group.command('list')
@click.option('--category', default=None)
@with_appcontext
def list_materials(category):
    try:
        rows = stock_ledger.list_materials(db.session, category)
    except LoanError as e:
        click.echo(f"FAIL {e.message}")
        raise SystemExit(1)
    if not rows:
        click.echo("No materials found")
        return
    for row in rows:
        click.echo(f"{row['category']:<10} {row['id']:>5}  {row['name']:<40} {row['on_hand']:>8} {row['unit']}")


@click.group('stock')
def stock_group():
    """Stock ledger inspection."""


@stock_group.command('reconcile')
@click.option('--strict', is_flag=True, help='Exit with status 1 when any drift is found')
@with_appcontext
def reconcile_stock(strict):
    """Compare on-hand quantities with the sum of ledger movements."""
    report = stock_ledger.reconcile(db.session)
    drifted = [row for row in report if row["drift"] != 0]
    for row in drifted:
        click.echo(
            f"DRIFT {row['category']}#{row['material_id']} {row['name']!r}: "
            f"on_hand={row['on_hand']} ledger={row['ledger_total']} drift={row['drift']}"
        )
    click.echo(f"Checked {len(report)} materials, {len(drifted)} with drift")
    if strict and drifted:
        raise SystemExit(1)


@click.group('sweeps')
def sweeps_group():
    """Expiry and cleanup sweeps."""


@sweeps_group.command('list')
@with_appcontext
def list_sweeps():
    scheduler = current_app.extensions["labloan"]["scheduler"]
    for job in scheduler.jobs.values():
        click.echo(f"{job.name:<18} every {int(job.interval.total_seconds())}s")


@sweeps_group.command('run')
@click.option('--job', 'job_name', default='all', help='expiry, stale, return-reminders or all')
@with_appcontext
def run_sweeps(job_name):
    scheduler = current_app.extensions["labloan"]["scheduler"]
    names = list(scheduler.jobs) if job_name == 'all' else [job_name]
    for name in names:
        if name not in scheduler.jobs:
            click.echo(f"FAIL Unknown sweep {name!r}")
            raise SystemExit(1)
        report = scheduler.run_job(name, session=db.session)
        if report is None:
            click.echo(f"FAIL {name}: see logs")
            continue
        click.echo(f"PASS {name}: {report.count} processed, {len(report.failed)} failed")


@click.group('tokens')
def tokens_group():
    """Development bearer tokens."""


@tokens_group.command('issue')
@click.option('--user-id', required=True, type=int)
@click.option('--role', required=True, help=f"One of: {', '.join(ROLES)} (or role id 1-4)")
@click.option('--name', default=None)
@click.option('--stock-access', is_flag=True, help='Storekeeper may modify stock')
@with_appcontext
def issue_token(user_id, role, name, stock_access):
    try:
        identity = Identity(user_id=user_id, role=normalize_role(role), stock_access=stock_access, name=name)
    except LoanError as e:
        click.echo(f"FAIL {e.message}")
        raise SystemExit(1)
    resolver = current_app.extensions["labloan"]["identity_resolver"]
    if not isinstance(resolver, SignedTokenResolver):
        click.echo("FAIL The configured identity resolver does not issue tokens")
        raise SystemExit(1)
    click.echo(resolver.issue(identity))


def register_commands(app):
    """Register CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(materials_group)
    app.cli.add_command(stock_group)
    app.cli.add_command(sweeps_group)
    app.cli.add_command(tokens_group)
