# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/grocer/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-roles
#   Create the global roles (SuperAdmin, TenantAdmin, Cashier, Viewer).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Tenants:
# - python -m flask tenants create --name "Corner Grocer"
# - python -m flask tenants list
#
# Users:
# - python -m flask users create --tenant-id 1 --username ana --email ana@corner.local --role Cashier
# - python -m flask users issue-token --username ana
#   Print a bearer token for API calls (SuperAdmin may pass --tenant-id).
#
# Stock:
# - python -m flask stock reconcile [--tenant-id 1]
#   Compare stock_quantity with the ledger; exits 1 when drift is found.
#
# Demo data:
# - python -m flask seed demo

import click
from flask.cli import with_appcontext

from .errors import GrocerError
from .extensions import db
from .models import PaymentMethod, Tenant, User
from .services import products_service, sales_service, session_service, stock_service, tenant_service
from .services.auth_service import CASHIER, TENANT_ADMIN, VIEWER, create_default_roles, create_user


def _fail(exc: GrocerError):
    db.session.rollback()
    click.echo(f"FAIL {exc.message}")
    raise click.exceptions.Exit(1)


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-roles')
@with_appcontext
def init_roles():
    """Create the global roles if missing."""
    created = create_default_roles()
    click.echo(f"PASS Roles ready ({created} created)")


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
    create_default_roles()

    click.echo("PASS Database reset complete.")


@click.group('tenants')
def tenants_group():
    """Tenant management commands."""


@tenants_group.command('create')
@click.option('--name', required=True, help='Tenant name')
@click.option('--email', default=None)
@click.option('--phone', default=None)
@click.option('--address', default=None)
@with_appcontext
def create_tenant_cli(name, email, phone, address):
    """Create a new tenant."""
    try:
        tenant = tenant_service.create_tenant(name, email=email, phone=phone, address=address)
    except GrocerError as e:
        _fail(e)
    click.echo(f"PASS Created tenant: {tenant.name} (ID: {tenant.id})")


@tenants_group.command('list')
@with_appcontext
def list_tenants_cli():
    """List all tenants."""
    tenants = tenant_service.list_tenants()
    if not tenants:
        click.echo("No tenants found.")
        return

    click.echo("\n" + "=" * 60)
    click.echo(f"{'ID':<5} {'Name':<30} {'Active':<8} {'Users'}")
    click.echo("=" * 60)
    for tenant in tenants:
        user_count = db.session.query(User).filter_by(tenant_id=tenant.id).count()
        active_str = "Yes" if tenant.is_active else "No"
        click.echo(f"{tenant.id:<5} {tenant.name:<30} {active_str:<8} {user_count}")
    click.echo("=" * 60 + "\n")


@click.group('users')
def users_group():
    """User bootstrap commands."""


@users_group.command('create')
@click.option('--tenant-id', type=int, default=None, help='Omit only for SuperAdmin')
@click.option('--username', required=True)
@click.option('--email', required=True)
@click.option('--full-name', default=None)
@click.option('--role', 'roles', multiple=True, required=True, help='Repeatable')
@with_appcontext
def create_user_cli(tenant_id, username, email, full_name, roles):
    """Create a user with one or more roles."""
    create_default_roles()
    try:
        user = create_user(username, email, tenant_id=tenant_id, full_name=full_name, roles=list(roles))
    except GrocerError as e:
        _fail(e)
    click.echo(f"PASS Created user: {user.username} (ID: {user.id}, roles: {', '.join(sorted(user.role_names))})")


@users_group.command('issue-token')
@click.option('--username', required=True)
@click.option('--tenant-id', type=int, default=None, help='Tenant to act in (SuperAdmin only)')
@with_appcontext
def issue_token_cli(username, tenant_id):
    """Print a bearer token for the user."""
    user = db.session.query(User).filter_by(username=username).first()
    if not user:
        click.echo(f"FAIL User '{username}' not found")
        raise click.exceptions.Exit(1)
    try:
        session, token = session_service.create_session(user.id, tenant_id=tenant_id)
    except GrocerError as e:
        _fail(e)
    click.echo(f"Token (expires {session.expires_at:%Y-%m-%d %H:%M} UTC):")
    click.echo(token)


@click.group('stock')
def stock_group():
    """Stock ledger inspection commands."""


@stock_group.command('reconcile')
@click.option('--tenant-id', type=int, default=None, help='Defaults to every tenant')
@with_appcontext
def reconcile_cli(tenant_id):
    """Compare each product's stock with its ledger."""
    if tenant_id is not None:
        tenant_ids = [tenant_id]
    else:
        tenant_ids = [t.id for t in db.session.query(Tenant).order_by(Tenant.id).all()]

    drift_found = False
    for tid in tenant_ids:
        report = stock_service.reconcile_tenant(tid)
        if report["consistent"]:
            click.echo(f"PASS tenant {tid}: {report['products_checked']} products consistent")
            continue
        drift_found = True
        click.echo(f"FAIL tenant {tid}: {len(report['drifted'])} products drifted")
        for row in report["drifted"]:
            click.echo(
                f"  {row['sku']:<16} stock={row['stock_quantity']:<6} "
                f"ledger={row['ledger_quantity']:<6} drift={row['drift']}"
            )

    if drift_found:
        raise click.exceptions.Exit(1)


@click.group('seed')
def seed_group():
    """Demo data commands."""


@seed_group.command('demo')
@click.option('--name', default='Demo Grocer', show_default=True)
@with_appcontext
def seed_demo(name):
    """Create a demo tenant with users, products and a couple of sales."""
    create_default_roles()
    if db.session.query(Tenant).filter_by(name=name).first():
        click.echo(f"SKIP Tenant '{name}' already exists")
        return

    try:
        tenant = tenant_service.create_tenant(name)
        slug = name.lower().replace(" ", "")
        admin = create_user(f"{slug}-admin", f"admin@{slug}.local", tenant_id=tenant.id, roles=[TENANT_ADMIN])
        cashier = create_user(f"{slug}-cashier", f"cashier@{slug}.local", tenant_id=tenant.id, roles=[CASHIER])
        create_user(f"{slug}-viewer", f"viewer@{slug}.local", tenant_id=tenant.id, roles=[VIEWER])

        produce = products_service.create_category(tenant.id, "Produce")
        dairy = products_service.create_category(tenant.id, "Dairy")

        catalog = [
            ("Bananas (kg)", "PRD-001", produce.id, 129, 80, 10),
            ("Apples (kg)", "PRD-002", produce.id, 249, 60, 10),
            ("Whole Milk 1L", "DRY-001", dairy.id, 159, 40, 12),
            ("Cheddar 200g", "DRY-002", dairy.id, 399, 8, 10),
        ]
        products = []
        for pname, sku, category_id, price, stock, min_level in catalog:
            products.append(products_service.create_product(
                tenant.id,
                admin.id,
                patch={
                    "name": pname,
                    "sku": sku,
                    "category_id": category_id,
                    "price_cents": price,
                    "min_stock_level": min_level,
                },
                initial_stock=stock,
            ))

        sales_service.create_sale(
            tenant.id,
            cashier.id,
            [
                {"product_id": products[0].id, "quantity": 3, "unit_price_cents": 129},
                {"product_id": products[2].id, "quantity": 2, "unit_price_cents": 159},
            ],
            PaymentMethod.CASH,
        )
        sales_service.create_sale(
            tenant.id,
            cashier.id,
            [{"product_id": products[1].id, "quantity": 5, "unit_price_cents": 249, "discount_amount_cents": 100}],
            PaymentMethod.CARD,
        )
    except GrocerError as e:
        _fail(e)

    click.echo(f"PASS Seeded tenant '{tenant.name}' (ID: {tenant.id}) with {len(products)} products")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(tenants_group)
    app.cli.add_command(users_group)
    app.cli.add_command(stock_group)
    app.cli.add_command(seed_group)
