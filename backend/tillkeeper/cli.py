# Overview: Flask CLI command groups for bootstrap and till inspection.

# backend/tillkeeper/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init [--org "Org Name"] [--org-code DEFAULT]
#   Idempotent bootstrap: creates tables, a default org, a location and an admin operator.
#
# Organizations and locations:
# - python -m flask orgs create --name "Acme Corp" --code "ACME"
# - python -m flask locations create --org-id 1 --name "Kiosk 2" [--mode INVENTORY_COUNT]
# - python -m flask locations list [--org-id 1]
#
# Operators:
# - python -m flask operators create --org-id 1 --location-id 1 --username ana --role manager
#
# Catalog and stock:
# - python -m flask products create --org-id 1 --sku BRIG-01 --name "Brigadeiro" --price-cents 500
# - python -m flask stock receive --location-id 1 --product-id 1 --qty 100
# - python -m flask promotions create --org-id 1 --product-id 1 --name "3 for 12" --trigger-qty 3 --combo-price-cents 1200
#
# Till sessions:
# - python -m flask sessions list [--location-id 1] [--status OPEN] [--limit 20]

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import (
    Organization, Location, Operator, Product, Promotion, CashSession,
    OPERATING_MODES, SESSION_STATUS_OPEN, SESSION_STATUS_CLOSED,
)
from .actor import ROLE_CAPABILITIES
from .services import stock_ledger
from .services.variance import format_cents
from .validation import TillError


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init')
@click.option('--org', 'org_name', default='Default Organization', help='Organization name')
@click.option('--org-code', default='DEFAULT', help='Organization code')
@with_appcontext
def init_system(org_name, org_code):
    """
    Initialize the till backend: tables, organization, location, admin operator.

    Safe to run more than once; existing rows are reused.
    """
    click.echo("START Initializing till backend...")

    db.create_all()

    org = db.session.query(Organization).filter_by(code=org_code).first()
    if not org:
        org = Organization(name=org_name, code=org_code, is_active=True)
        db.session.add(org)
        db.session.commit()
        click.echo(f"PASS Created organization: {org.name} (ID: {org.id}, Code: {org.code})")
    else:
        click.echo(f"PASS Using existing organization: {org.name} (ID: {org.id})")

    location = db.session.query(Location).filter_by(org_id=org.id).first()
    if not location:
        location = Location(org_id=org.id, name="Main Location", is_active=True)
        db.session.add(location)
        db.session.commit()
        click.echo(f"PASS Created location: {location.name} (ID: {location.id})")
    else:
        click.echo(f"PASS Using existing location: {location.name} (ID: {location.id})")

    admin = db.session.query(Operator).filter_by(org_id=org.id, username="admin").first()
    if not admin:
        admin = Operator(org_id=org.id, location_id=location.id, username="admin", role="admin")
        db.session.add(admin)
        db.session.commit()
        click.echo(f"PASS Created operator: admin (ID: {admin.id})")
    else:
        click.echo(f"PASS Using existing operator: admin (ID: {admin.id})")

    click.echo("\nDONE Send X-Operator-Id: %s with API requests." % admin.id)


@click.group('orgs')
def orgs_group():
    """Organization (tenant) management commands."""


@orgs_group.command('create')
@click.option('--name', required=True, help='Organization name')
@click.option('--code', required=True, help='Short code (unique)')
@with_appcontext
def create_org_cli(name, code):
    """Create a new organization (tenant)."""
    existing = db.session.query(Organization).filter_by(code=code).first()
    if existing:
        click.echo(f"FAIL Organization with code '{code}' already exists")
        return

    org = Organization(name=name, code=code, is_active=True)
    db.session.add(org)
    db.session.commit()

    click.echo(f"PASS Created organization: {org.name} (ID: {org.id}, Code: {org.code})")


@click.group('locations')
def locations_group():
    """Location management commands."""


@locations_group.command('create')
@click.option('--org-id', type=int, required=True, help='Organization ID')
@click.option('--name', required=True, help='Location name')
@click.option('--mode', type=click.Choice(list(OPERATING_MODES)), help='Default operating mode')
@with_appcontext
def create_location_cli(org_id, name, mode):
    """Add a location to an organization."""
    org = db.session.query(Organization).filter_by(id=org_id).first()
    if not org:
        click.echo(f"FAIL Organization ID {org_id} not found")
        return

    existing = db.session.query(Location).filter_by(org_id=org_id, name=name).first()
    if existing:
        click.echo(f"FAIL Location '{name}' already exists in this organization")
        return

    location = Location(org_id=org_id, name=name, default_operating_mode=mode, is_active=True)
    db.session.add(location)
    db.session.commit()

    click.echo(f"PASS Created location: {location.name} (ID: {location.id}) in org '{org.name}'")


@locations_group.command('list')
@click.option('--org-id', type=int, help='Filter by organization ID')
@with_appcontext
def list_locations_cli(org_id):
    """List locations with their default mode and open session."""
    query = db.session.query(Location)
    if org_id:
        query = query.filter_by(org_id=org_id)
    locations = query.order_by(Location.id).all()

    if not locations:
        click.echo("No locations found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'Org':<5} {'Name':<30} {'Mode':<16} {'Active':<8} {'Open session'}")
    click.echo("="*80)

    for location in locations:
        open_session = db.session.query(CashSession).filter_by(
            location_id=location.id, status=SESSION_STATUS_OPEN
        ).first()
        active_str = "Yes" if location.is_active else "No"
        click.echo(
            f"{location.id:<5} {location.org_id:<5} {location.name:<30} "
            f"{location.default_operating_mode or '-':<16} {active_str:<8} "
            f"{open_session.id if open_session else '-'}"
        )

    click.echo("="*80 + "\n")


@click.group('operators')
def operators_group():
    """Operator management commands."""


@operators_group.command('create')
@click.option('--org-id', type=int, required=True, help='Organization ID')
@click.option('--location-id', type=int, help='Home location ID')
@click.option('--username', required=True, help='Username')
@click.option('--full-name', help='Full name')
@click.option('--role', type=click.Choice(sorted(ROLE_CAPABILITIES)), default='operator', help='Role')
@with_appcontext
def create_operator_cli(org_id, location_id, username, full_name, role):
    """Create an operator."""
    org = db.session.query(Organization).filter_by(id=org_id).first()
    if not org:
        click.echo(f"FAIL Organization ID {org_id} not found")
        return

    if location_id:
        location = db.session.query(Location).filter_by(id=location_id, org_id=org_id).first()
        if not location:
            click.echo(f"FAIL Location ID {location_id} not found in organization {org_id}")
            return

    if db.session.query(Operator).filter_by(org_id=org_id, username=username).first():
        click.echo(f"FAIL Operator '{username}' already exists in this organization")
        return

    operator = Operator(
        org_id=org_id,
        location_id=location_id,
        username=username,
        full_name=full_name,
        role=role,
        is_active=True,
    )
    db.session.add(operator)
    db.session.commit()

    click.echo(f"PASS Created operator: {operator.username} (ID: {operator.id}, Role: {operator.role})")


@click.group('products')
def products_group():
    """Catalog commands."""


@products_group.command('create')
@click.option('--org-id', type=int, required=True, help='Organization ID')
@click.option('--sku', required=True, help='SKU (unique within org)')
@click.option('--name', required=True, help='Product name')
@click.option('--price-cents', type=int, required=True, help='Sale price in cents')
@click.option('--unit', 'unit_id', default='un', help='Unit of measure')
@with_appcontext
def create_product_cli(org_id, sku, name, price_cents, unit_id):
    """Create a product."""
    if price_cents < 0:
        click.echo("FAIL --price-cents cannot be negative")
        return

    if db.session.query(Product).filter_by(org_id=org_id, sku=sku).first():
        click.echo(f"FAIL Product with SKU '{sku}' already exists in this organization")
        return

    product = Product(org_id=org_id, sku=sku, name=name, price_cents=price_cents, unit_id=unit_id)
    db.session.add(product)
    db.session.commit()

    click.echo(f"PASS Created product: {product.name} (ID: {product.id}, Price: {format_cents(price_cents)})")


@click.group('stock')
def stock_group():
    """Stock commands."""


@stock_group.command('receive')
@click.option('--location-id', type=int, required=True, help='Location ID')
@click.option('--product-id', type=int, required=True, help='Product ID')
@click.option('--qty', type=int, required=True, help='Units received')
@with_appcontext
def receive_stock_cli(location_id, product_id, qty):
    """Add received units to a location's stock."""
    try:
        stock_ledger.receive(location_id, product_id, qty)
        db.session.commit()
    except TillError as e:
        db.session.rollback()
        click.echo(f"FAIL {e.message}")
        return

    on_hand = stock_ledger.get_quantity_on_hand(location_id, product_id)
    click.echo(f"PASS Received {qty} of product {product_id} at location {location_id} (on hand: {on_hand})")


@click.group('promotions')
def promotions_group():
    """Combo promotion commands."""


@promotions_group.command('create')
@click.option('--org-id', type=int, required=True, help='Organization ID')
@click.option('--product-id', type=int, required=True, help='Product the combo applies to')
@click.option('--name', required=True, help='Promotion name')
@click.option('--trigger-qty', type=int, required=True, help='Units per combo')
@click.option('--combo-price-cents', type=int, required=True, help='Price of one combo in cents')
@click.option('--location-id', type=int, help='Restrict to one location')
@with_appcontext
def create_promotion_cli(org_id, product_id, name, trigger_qty, combo_price_cents, location_id):
    """Create an "N units for X" promotion."""
    if trigger_qty <= 0:
        click.echo("FAIL --trigger-qty must be greater than zero")
        return
    if combo_price_cents < 0:
        click.echo("FAIL --combo-price-cents cannot be negative")
        return

    product = db.session.query(Product).filter_by(id=product_id, org_id=org_id).first()
    if not product:
        click.echo(f"FAIL Product ID {product_id} not found in organization {org_id}")
        return

    promo = Promotion(
        org_id=org_id,
        location_id=location_id,
        product_id=product_id,
        name=name,
        trigger_quantity=trigger_qty,
        combo_price_cents=combo_price_cents,
        is_active=True,
    )
    db.session.add(promo)
    db.session.commit()

    regular = (product.price_cents or 0) * trigger_qty
    click.echo(
        f"PASS Created promotion: {promo.name} (ID: {promo.id}) "
        f"saving {format_cents(regular - combo_price_cents)} per combo"
    )


@click.group('sessions')
def sessions_group():
    """Till session inspection commands."""


@sessions_group.command('list')
@click.option('--location-id', type=int, help='Filter by location ID')
@click.option('--status', type=click.Choice([SESSION_STATUS_OPEN, SESSION_STATUS_CLOSED]), help='Filter by status')
@click.option('--limit', type=int, default=20, help='Max sessions to show')
@with_appcontext
def list_sessions_cli(location_id, status, limit):
    """
    List till sessions.

    Example:
        flask sessions list
        flask sessions list --location-id 1
        flask sessions list --status OPEN
    """
    query = db.session.query(CashSession)

    if location_id:
        query = query.filter_by(location_id=location_id)

    if status:
        query = query.filter_by(status=status)

    sessions = query.order_by(CashSession.opened_at.desc(), CashSession.id.desc()).limit(limit).all()

    if not sessions:
        click.echo("No sessions found.")
        return

    click.echo("\n" + "="*120)
    click.echo(f"{'ID':<5} {'Location':<10} {'Mode':<16} {'Status':<8} {'Opened':<20} {'Expected':<12} {'Variance':<12} {'Notes'}")
    click.echo("="*120)

    for session in sessions:
        variance_str = "-"
        if session.variance_cents is not None:
            variance_str = f"{session.variance_cents / 100:+.2f}"

        notes = session.notes[:30] if session.notes else "-"

        click.echo(f"{session.id:<5} {session.location_id:<10} {session.operating_mode:<16} {session.status:<8} "
                   f"{str(session.opened_at)[:19]:<20} {format_cents(session.expected_total_cents):<12} "
                   f"{variance_str:<12} {notes}")

    click.echo("="*120 + "\n")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(orgs_group)
    app.cli.add_command(locations_group)
    app.cli.add_command(operators_group)
    app.cli.add_command(products_group)
    app.cli.add_command(stock_group)
    app.cli.add_command(promotions_group)
    app.cli.add_command(sessions_group)
