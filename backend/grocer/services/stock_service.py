# Overview: Service-layer operations for stock; encapsulates business logic and database work.

"""
Stock Ledger & Projection Invariants (authoritative)

Ledger model:
- stock_movements is the ledger; products.stock_quantity is its cached
  projection. Every change to stock_quantity is paired with exactly one
  movement row written in the same DB transaction, and vice versa.
- Every row stores the producer's raw quantity and a signed
  effective_quantity fixed at write time. Readers only sum
  effective_quantity; sign is never re-derived from movement_type.

Sign conventions by producer:
- Sale engine SALE rows:           quantity = -qty,   effective = -qty (sale_id set)
- adjust_stock ADJUSTMENT rows:    quantity = delta,  effective = delta
- Opening stock ADJUSTMENT rows:   quantity = +qty,   effective = +qty
- post_stock_movement PURCHASE/RETURN: effective = +abs(quantity)
- post_stock_movement SALE/ADJUSTMENT: effective = -abs(quantity)

Mutation order for every path:
load product (locked) -> check tenant -> check lifecycle where relevant
-> apply delta -> flush product -> add ledger row -> commit.
Validation failures raise before anything is applied; any later failure
rolls the whole transaction back.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import func

from ..errors import NoOpAdjustment, ProductNotFound, ValidationError
from ..extensions import db
from ..models import PRODUCT_ACTIVE, MovementType, Product, Sale, StockMovement
from ..time_utils import utcnow
from .concurrency import hold_locks, lock_for_update, product_key, run_with_retry
from .tenant_service import ensure_tenant_access


def load_product_for_tenant(tenant_id: int, product_id: int, *, lock: bool = True) -> Product:
    """Load a product row, refusing missing and foreign rows."""
    query = db.session.query(Product).filter_by(id=product_id)
    if lock:
        query = lock_for_update(query)
    product = query.first()
    if product is None:
        raise ProductNotFound(product_id)
    ensure_tenant_access(product.tenant_id, tenant_id, "product", product_id)
    return product


def effective_quantity_for(movement_type: str, quantity: int) -> int:
    """Signed delta for a manually posted movement (polarity by type)."""
    if movement_type in MovementType.INCREASING:
        return abs(quantity)
    return -abs(quantity)


def record_movement(
    product: Product,
    movement_type: str,
    quantity: int,
    effective_quantity: int,
    *,
    unit_price_cents: int,
    user_id: int | None,
    sale_id: int | None = None,
    reference: str | None = None,
    notes: str | None = None,
) -> StockMovement:
    """
    Add one ledger row for a delta that has already been applied to product.

    Does not commit; the caller owns the transaction.
    """
    if quantity == 0 or effective_quantity == 0:
        raise ValidationError("Movement quantity cannot be zero", {"product_id": product.id})
    movement = StockMovement(
        tenant_id=product.tenant_id,
        product_id=product.id,
        movement_type=movement_type,
        quantity=quantity,
        effective_quantity=effective_quantity,
        unit_price_cents=unit_price_cents,
        sale_id=sale_id,
        reference=reference,
        notes=notes,
        created_by_user_id=user_id,
        created_at=utcnow(),
    )
    db.session.add(movement)
    return movement


def apply_delta(product: Product, effective_quantity: int) -> None:
    if effective_quantity > 0:
        product.increase_stock(effective_quantity)
    else:
        product.decrease_stock(-effective_quantity)


def apply_sale_line(product: Product, sale: Sale, quantity: int, unit_price_cents: int,
                    user_id: int | None) -> StockMovement:
    """Decrement stock for one sale line and append its SALE row."""
    product.decrease_stock(quantity)
    db.session.flush()
    return record_movement(
        product,
        MovementType.SALE,
        -quantity,
        -quantity,
        unit_price_cents=unit_price_cents,
        user_id=user_id,
        sale_id=sale.id,
        notes=f"Sale {sale.sale_number}",
    )


def retract_sale_movements(sale: Sale, products: dict[int, Product]) -> int:
    """
    Undo a sale's stock effect: restore each line's quantity and delete the
    SALE rows linked to the sale. Returns the number of rows deleted.
    """
    for item in sale.items:
        products[item.product_id].increase_stock(item.quantity)
    db.session.flush()

    movements = db.session.query(StockMovement).filter_by(sale_id=sale.id).all()
    for movement in movements:
        db.session.delete(movement)
    db.session.flush()
    return len(movements)


def post_stock_movement(
    tenant_id: int,
    user_id: int | None,
    product_id: int,
    movement_type: str,
    quantity: int,
    unit_price_cents: int,
    reference: str | None = None,
    notes: str | None = None,
) -> StockMovement:
    """
    Record a manual PURCHASE / RETURN / SALE / ADJUSTMENT outside the sale flow.

    The effective quantity follows polarity by type. Manual SALE postings
    require an active product; the other types accept inactive products.
    """
    if movement_type not in MovementType.ALL:
        raise ValidationError(
            f"Invalid movement type: {movement_type}",
            {"valid_types": list(MovementType.ALL)},
        )
    if quantity == 0:
        raise ValidationError("Movement quantity cannot be zero")
    if unit_price_cents < 0:
        raise ValidationError("Unit price cannot be negative", {"unit_price_cents": unit_price_cents})

    def _op():
        product = load_product_for_tenant(tenant_id, product_id)
        if movement_type == MovementType.SALE:
            product.ensure_sellable()

        effective = effective_quantity_for(movement_type, quantity)
        apply_delta(product, effective)
        db.session.flush()

        movement = record_movement(
            product,
            movement_type,
            quantity,
            effective,
            unit_price_cents=unit_price_cents,
            user_id=user_id,
            reference=reference,
            notes=notes,
        )
        db.session.commit()
        return movement

    with hold_locks(product_key(product_id)):
        movement = run_with_retry(_op)

    current_app.logger.info(
        "Stock movement posted: tenant=%s product=%s type=%s effective=%s",
        tenant_id, product_id, movement_type, movement.effective_quantity,
    )
    return movement


def adjust_stock(
    tenant_id: int,
    user_id: int | None,
    product_id: int,
    new_quantity: int,
    notes: str | None = None,
) -> dict:
    """
    Set a product's stock to new_quantity and record the signed delta.

    Returns {product_id, old_quantity, new_quantity, adjustment}. A zero
    delta raises NoOpAdjustment unless ALLOW_NOOP_ADJUSTMENTS is set, in
    which case nothing is written.
    """
    if new_quantity < 0:
        raise ValidationError("Stock quantity cannot be negative", {"new_quantity": new_quantity})
    allow_noop = bool(current_app.config.get("ALLOW_NOOP_ADJUSTMENTS"))

    def _op():
        product = load_product_for_tenant(tenant_id, product_id)
        old_quantity = product.stock_quantity
        delta = new_quantity - old_quantity
        result = {
            "product_id": product.id,
            "old_quantity": old_quantity,
            "new_quantity": new_quantity,
            "adjustment": delta,
        }
        if delta == 0:
            if allow_noop:
                return result
            raise NoOpAdjustment(
                "Stock is already at the requested quantity",
                {"product_id": product.id, "quantity": old_quantity},
            )

        product.set_stock(new_quantity)
        db.session.flush()
        record_movement(
            product,
            MovementType.ADJUSTMENT,
            delta,
            delta,
            unit_price_cents=product.price_cents,
            user_id=user_id,
            notes=notes,
        )
        db.session.commit()
        return result

    with hold_locks(product_key(product_id)):
        result = run_with_retry(_op)

    if result["adjustment"]:
        current_app.logger.info(
            "Stock adjusted: tenant=%s product=%s %s -> %s",
            tenant_id, product_id, result["old_quantity"], result["new_quantity"],
        )
    return result


def list_stock_movements(
    tenant_id: int,
    *,
    product_id: int | None = None,
    movement_type: str | None = None,
    page: int = 1,
    per_page: int = 50,
) -> tuple[list[StockMovement], int]:
    """Tenant-scoped movements, newest first. Returns (rows, total)."""
    if product_id is not None:
        load_product_for_tenant(tenant_id, product_id, lock=False)

    query = db.session.query(StockMovement).filter(StockMovement.tenant_id == tenant_id)
    if product_id is not None:
        query = query.filter(StockMovement.product_id == product_id)
    if movement_type:
        query = query.filter(StockMovement.movement_type == movement_type)

    total = query.count()
    rows = (
        query.order_by(StockMovement.created_at.desc(), StockMovement.id.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
        .all()
    )
    return rows, total


def ledger_balance(product_id: int) -> int:
    """Sum of effective_quantity over a product's ledger."""
    q = db.session.query(
        func.coalesce(func.sum(StockMovement.effective_quantity), 0)
    ).filter(StockMovement.product_id == product_id)
    return int(q.scalar() or 0)


def _reconcile_row(product: Product) -> dict:
    ledger_quantity = ledger_balance(product.id)
    drift = product.stock_quantity - ledger_quantity
    return {
        "product_id": product.id,
        "sku": product.sku,
        "name": product.name,
        "stock_quantity": product.stock_quantity,
        "ledger_quantity": ledger_quantity,
        "drift": drift,
        "consistent": drift == 0,
    }


def reconcile_product(tenant_id: int, product_id: int) -> dict:
    product = load_product_for_tenant(tenant_id, product_id, lock=False)
    return _reconcile_row(product)


def reconcile_tenant(tenant_id: int) -> dict:
    """Compare every product's projection with its ledger; report drift only."""
    products = (
        db.session.query(Product)
        .filter(Product.tenant_id == tenant_id)
        .order_by(Product.id)
        .all()
    )
    drifted = [row for row in (_reconcile_row(p) for p in products) if not row["consistent"]]
    if drifted:
        current_app.logger.warning(
            "Ledger drift detected: tenant=%s products=%s",
            tenant_id, [row["product_id"] for row in drifted],
        )
    return {
        "tenant_id": tenant_id,
        "products_checked": len(products),
        "drifted": drifted,
        "consistent": not drifted,
    }


def list_low_stock(tenant_id: int) -> list[Product]:
    """Active products at or below their minimum stock level."""
    return (
        db.session.query(Product)
        .filter(
            Product.tenant_id == tenant_id,
            Product.status == PRODUCT_ACTIVE,
            Product.stock_quantity <= Product.min_stock_level,
        )
        .order_by(Product.stock_quantity, Product.name)
        .all()
    )
