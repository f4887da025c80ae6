# backend/grocer/services/products_service.py
"""
Products Service

All product and category operations are tenant-scoped. Products are never
hard-deleted: deactivation is the lifecycle end so historical sale lines
keep their product reference. Stock is never edited here; opening stock on
creation is written through the ledger like any other change.
"""
from __future__ import annotations

from flask import current_app
from sqlalchemy import or_

from ..errors import CategoryNotFound, ConflictError, ValidationError
from ..extensions import db
from ..models import PRODUCT_ACTIVE, Category, MovementType, Product
from .concurrency import hold_locks, product_key, run_with_retry
from .stock_service import load_product_for_tenant, record_movement
from .tenant_service import ensure_tenant_access

PRODUCT_MUTABLE_FIELDS = {
    "name", "sku", "barcode", "description", "category_id",
    "price_cents", "cost_cents", "min_stock_level",
}


def apply_product_patch(p: Product, patch: dict) -> None:
    for k, v in patch.items():
        if k not in PRODUCT_MUTABLE_FIELDS:
            continue
        setattr(p, k, v)


def create_category(tenant_id: int, name: str, description: str | None = None) -> Category:
    name = (name or "").strip()
    if not name:
        raise ValidationError("Category name is required")
    existing = db.session.query(Category).filter(
        Category.tenant_id == tenant_id,
        db.func.lower(Category.name) == name.lower(),
    ).first()
    if existing:
        raise ConflictError(f'Category "{name}" already exists', {"category_id": existing.id})

    category = Category(tenant_id=tenant_id, name=name, description=description)
    db.session.add(category)
    db.session.commit()
    return category


def list_categories(tenant_id: int) -> list[Category]:
    return (
        db.session.query(Category)
        .filter(Category.tenant_id == tenant_id)
        .order_by(Category.name.asc())
        .all()
    )


def _require_category(tenant_id: int, category_id: int) -> Category:
    category = db.session.get(Category, category_id)
    if category is None:
        raise CategoryNotFound(category_id)
    ensure_tenant_access(category.tenant_id, tenant_id, "category", category_id)
    return category


def _ensure_unique_identifiers(tenant_id: int, patch: dict, exclude_id: int | None = None) -> None:
    sku = patch.get("sku")
    barcode = patch.get("barcode")
    checks = []
    if sku:
        checks.append(Product.sku == sku)
    if barcode:
        checks.append(Product.barcode == barcode)
    if not checks:
        return

    query = db.session.query(Product).filter(Product.tenant_id == tenant_id, or_(*checks))
    if exclude_id is not None:
        query = query.filter(Product.id != exclude_id)
    clash = query.first()
    if clash is None:
        return
    if sku and clash.sku == sku:
        raise ConflictError(f'SKU "{sku}" is already used by another product', {"sku": sku})
    raise ConflictError(f'Barcode "{barcode}" is already used by another product', {"barcode": barcode})


def create_product(
    tenant_id: int,
    user_id: int | None,
    *,
    patch: dict,
    initial_stock: int = 0,
) -> Product:
    """
    Create a product from a validated patch.

    A positive initial_stock is recorded as an ADJUSTMENT ledger row in the
    same transaction, so the projection and ledger agree from the start.
    """
    if initial_stock < 0:
        raise ValidationError("initial_stock must be >= 0")
    if patch.get("category_id") is not None:
        _require_category(tenant_id, patch["category_id"])
    _ensure_unique_identifiers(tenant_id, patch)

    def _op():
        product = Product(tenant_id=tenant_id, status=PRODUCT_ACTIVE, stock_quantity=0)
        apply_product_patch(product, patch)
        db.session.add(product)
        db.session.flush()

        if initial_stock:
            product.increase_stock(initial_stock)
            db.session.flush()
            record_movement(
                product,
                MovementType.ADJUSTMENT,
                initial_stock,
                initial_stock,
                unit_price_cents=product.price_cents,
                user_id=user_id,
                notes="Opening stock",
            )
        db.session.commit()
        return product

    product = run_with_retry(_op)
    current_app.logger.info(
        "Product created: tenant=%s product=%s sku=%s opening_stock=%s",
        tenant_id, product.id, product.sku, initial_stock,
    )
    return product


def update_product(tenant_id: int, product_id: int, *, patch: dict) -> Product:
    """Edit catalog fields. stock_quantity and status are not patchable here."""
    if patch.get("category_id") is not None:
        _require_category(tenant_id, patch["category_id"])

    def _op():
        product = load_product_for_tenant(tenant_id, product_id)
        _ensure_unique_identifiers(tenant_id, patch, exclude_id=product.id)
        apply_product_patch(product, patch)
        db.session.commit()
        return product

    with hold_locks(product_key(product_id)):
        return run_with_retry(_op)


def _set_status(tenant_id: int, product_id: int, active: bool) -> Product:
    def _op():
        product = load_product_for_tenant(tenant_id, product_id)
        if active:
            product.activate()
        else:
            product.deactivate()
        db.session.commit()
        return product

    with hold_locks(product_key(product_id)):
        product = run_with_retry(_op)
    current_app.logger.info(
        "Product %s: tenant=%s product=%s",
        "activated" if active else "deactivated", tenant_id, product_id,
    )
    return product


def deactivate_product(tenant_id: int, product_id: int) -> Product:
    return _set_status(tenant_id, product_id, active=False)


def activate_product(tenant_id: int, product_id: int) -> Product:
    return _set_status(tenant_id, product_id, active=True)


def get_product(tenant_id: int, product_id: int) -> Product:
    return load_product_for_tenant(tenant_id, product_id, lock=False)


def list_products(
    tenant_id: int,
    *,
    include_inactive: bool = False,
    low_stock_only: bool = False,
    category_id: int | None = None,
    search: str | None = None,
    page: int = 1,
    per_page: int = 20,
) -> tuple[list[Product], int]:
    query = db.session.query(Product).filter(Product.tenant_id == tenant_id)
    if not include_inactive:
        query = query.filter(Product.status == PRODUCT_ACTIVE)
    if low_stock_only:
        query = query.filter(Product.stock_quantity <= Product.min_stock_level)
    if category_id is not None:
        _require_category(tenant_id, category_id)
        query = query.filter(Product.category_id == category_id)
    if search:
        like = f"%{search.strip()}%"
        query = query.filter(or_(Product.name.ilike(like), Product.sku.ilike(like), Product.barcode.ilike(like)))

    total = query.count()
    products = (
        query.order_by(Product.name.asc(), Product.id.asc())
        .offset((page - 1) * per_page)
        .limit(per_page)
        .all()
    )
    return products, total
