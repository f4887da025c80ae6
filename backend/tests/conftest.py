"""
Pytest fixtures for grocer backend tests.

Provides the application against in-memory SQLite, a per-test table wipe,
two tenants with users of every role, categories and products whose opening
stock is already on the ledger, and bearer-token helpers.
"""

import pytest

from grocer import create_app
from grocer.extensions import db
from grocer.models import Product, StockMovement
from grocer.services import products_service, session_service, tenant_service
from grocer.services.auth_service import (
    CASHIER,
    SUPER_ADMIN,
    TENANT_ADMIN,
    VIEWER,
    create_default_roles,
    create_user,
)


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'STOCK_LOCK_TIMEOUT_SECONDS': 2,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def setup_roles(db_session):
    """Setup the global roles."""
    create_default_roles()


@pytest.fixture(scope='function')
def tenant_a(db_session):
    """Create Tenant A (first tenant)."""
    return tenant_service.create_tenant("Corner Grocer", email="hello@corner.local")


@pytest.fixture(scope='function')
def tenant_b(db_session):
    """Create Tenant B (second tenant)."""
    return tenant_service.create_tenant("Hilltop Market", email="hello@hilltop.local")


@pytest.fixture(scope='function')
def admin_a(tenant_a, setup_roles):
    return create_user("admin_a", "admin@corner.local", tenant_id=tenant_a.id, roles=[TENANT_ADMIN])


@pytest.fixture(scope='function')
def cashier_a(tenant_a, setup_roles):
    return create_user("cashier_a", "cashier@corner.local", tenant_id=tenant_a.id, roles=[CASHIER])


@pytest.fixture(scope='function')
def viewer_a(tenant_a, setup_roles):
    return create_user("viewer_a", "viewer@corner.local", tenant_id=tenant_a.id, roles=[VIEWER])


@pytest.fixture(scope='function')
def admin_b(tenant_b, setup_roles):
    return create_user("admin_b", "admin@hilltop.local", tenant_id=tenant_b.id, roles=[TENANT_ADMIN])


@pytest.fixture(scope='function')
def super_admin(setup_roles):
    return create_user("root", "root@grocer.local", roles=[SUPER_ADMIN])


@pytest.fixture(scope='function')
def category_a(tenant_a):
    return products_service.create_category(tenant_a.id, "Produce")


@pytest.fixture(scope='function')
def category_b(tenant_b):
    return products_service.create_category(tenant_b.id, "Produce")


@pytest.fixture(scope='function')
def make_product():
    """Factory: create a product whose opening stock is recorded on the ledger."""
    def _make(tenant, sku, *, name=None, stock=10, price_cents=250, min_stock_level=2,
              category=None, barcode=None):
        return products_service.create_product(
            tenant.id,
            None,
            patch={
                "name": name or f"Product {sku}",
                "sku": sku,
                "barcode": barcode,
                "category_id": category.id if category is not None else None,
                "price_cents": price_cents,
                "min_stock_level": min_stock_level,
            },
            initial_stock=stock,
        )
    return _make


@pytest.fixture(scope='function')
def apples(tenant_a, category_a, make_product):
    """10 units at 250 cents in Tenant A."""
    return make_product(tenant_a, "APL-001", name="Apples", stock=10, price_cents=250, category=category_a)


@pytest.fixture(scope='function')
def milk(tenant_a, make_product):
    """5 units at 400 cents in Tenant A."""
    return make_product(tenant_a, "MLK-001", name="Whole Milk", stock=5, price_cents=400, min_stock_level=1)


@pytest.fixture(scope='function')
def bread_b(tenant_b, category_b, make_product):
    """Product in Tenant B."""
    return make_product(tenant_b, "BRD-001", name="Sourdough", stock=10, price_cents=500, category=category_b)


def stock_of(product_id: int) -> int:
    """Fresh stock_quantity read, bypassing any cached instance state."""
    return db.session.query(Product.stock_quantity).filter_by(id=product_id).scalar()


def movements_for(product_id: int, **filters) -> list:
    return (
        db.session.query(StockMovement)
        .filter_by(product_id=product_id, **filters)
        .order_by(StockMovement.id)
        .all()
    )


def ledger_sum(product_id: int) -> int:
    return sum(m.effective_quantity for m in movements_for(product_id))


def issue_token(user, tenant_id=None) -> str:
    """Helper to open a session and return its bearer token."""
    _, token = session_service.create_session(user.id, tenant_id=tenant_id)
    return token


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}
