# Overview: Pytest coverage for the flask CLI command groups.

from sqlalchemy import update

from grocer.extensions import db
from grocer.models import Product, Sale, Tenant, User
from grocer.services import session_service


def test_init_roles(app, db_session):
    runner = app.test_cli_runner()
    result = runner.invoke(args=["system", "init-roles"])
    assert result.exit_code == 0
    assert "4 created" in result.output

    result = runner.invoke(args=["system", "init-roles"])
    assert "0 created" in result.output


def test_tenant_and_user_bootstrap(app, db_session):
    runner = app.test_cli_runner()

    result = runner.invoke(args=["tenants", "create", "--name", "Corner Grocer"])
    assert result.exit_code == 0, result.output
    tenant = db_session.query(Tenant).filter_by(name="Corner Grocer").one()

    result = runner.invoke(args=["tenants", "create", "--name", "corner grocer"])
    assert result.exit_code == 1
    assert "already exists" in result.output

    result = runner.invoke(args=[
        "users", "create", "--tenant-id", str(tenant.id), "--username", "ana",
        "--email", "ana@corner.local", "--role", "Cashier", "--role", "Viewer",
    ])
    assert result.exit_code == 0, result.output
    user = db_session.query(User).filter_by(username="ana").one()
    assert user.role_names == {"Cashier", "Viewer"}

    result = runner.invoke(args=["users", "issue-token", "--username", "ana"])
    assert result.exit_code == 0, result.output
    token = result.output.strip().splitlines()[-1]
    context = session_service.validate_session(token)
    assert context.user.id == user.id
    assert context.tenant_id == tenant.id

    result = runner.invoke(args=["tenants", "list"])
    assert "Corner Grocer" in result.output


def test_user_without_tenant_must_be_super_admin(app, setup_roles):
    runner = app.test_cli_runner()
    result = runner.invoke(args=[
        "users", "create", "--username", "ana", "--email", "ana@corner.local", "--role", "Cashier",
    ])
    assert result.exit_code == 1
    assert "FAIL" in result.output


def test_issue_token_unknown_user(app, db_session):
    result = app.test_cli_runner().invoke(args=["users", "issue-token", "--username", "ghost"])
    assert result.exit_code == 1


def test_seed_demo_and_reconcile(app, db_session):
    runner = app.test_cli_runner()

    result = runner.invoke(args=["seed", "demo"])
    assert result.exit_code == 0, result.output
    assert db_session.query(Sale).count() == 2

    result = runner.invoke(args=["seed", "demo"])
    assert "SKIP" in result.output

    result = runner.invoke(args=["stock", "reconcile"])
    assert result.exit_code == 0, result.output
    assert "PASS" in result.output

    product = db_session.query(Product).filter_by(sku="PRD-001").one()
    db.session.execute(update(Product).where(Product.id == product.id).values(stock_quantity=500))
    db.session.commit()

    result = runner.invoke(args=["stock", "reconcile", "--tenant-id", str(product.tenant_id)])
    assert result.exit_code == 1
    assert "PRD-001" in result.output
