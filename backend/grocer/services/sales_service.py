# Overview: Service-layer operations for sales; encapsulates business logic and database work.

"""
Sale Transaction Engine

A Sale and its SaleItems are one aggregate. Every engine operation keeps
three things consistent inside a single DB transaction: the sale's items
and totals, each product's stock_quantity, and the SALE ledger rows linked
to the sale by sale_id.

create: validate -> number -> persist sale -> decrement + SALE rows
update: validate new items -> restore old quantities + delete SALE rows
        -> check availability -> replace items -> decrement + SALE rows
delete: restore old quantities + delete SALE rows -> delete sale

Serialization: ("sale", id) is taken first for update/delete, then the
("product", id) locks, then ("sale-number", tenant_id) for create.
Per-item checks run in order: ProductNotFound, TenantMismatch,
ProductInactive, InsufficientStock. A product repeated across items is
checked against the summed quantity.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..errors import (
    DuplicateIdentifier,
    EmptySale,
    InsufficientStock,
    InvalidDiscount,
    ProductNotFound,
    SaleNotFound,
    ValidationError,
)
from ..extensions import db
from ..models import PaymentMethod, Product, Sale, SaleItem
from ..time_utils import utcnow
from ..validation import coerce_int
from .concurrency import (
    RetryableConflict,
    hold_locks,
    lock_for_update,
    product_key,
    run_with_retry,
    sale_key,
    sale_number_key,
)
from .sale_number_service import generate_sale_number
from .stock_service import apply_sale_line, retract_sale_movements
from .tenant_service import ensure_tenant_access


@dataclass(frozen=True)
class SaleItemRequest:
    product_id: int
    quantity: int
    unit_price_cents: int
    discount_amount_cents: int = 0

    @classmethod
    def from_dict(cls, data: dict) -> "SaleItemRequest":
        if not isinstance(data, dict):
            raise ValidationError("Each item must be an object")
        for field in ("product_id", "quantity", "unit_price_cents"):
            if data.get(field) is None:
                raise ValidationError(f"Item field {field} is required")
        return cls(
            product_id=coerce_int(data["product_id"], "product_id"),
            quantity=coerce_int(data["quantity"], "quantity"),
            unit_price_cents=coerce_int(data["unit_price_cents"], "unit_price_cents"),
            discount_amount_cents=coerce_int(data.get("discount_amount_cents") or 0, "discount_amount_cents"),
        )

    @property
    def gross_cents(self) -> int:
        return self.quantity * self.unit_price_cents

    def to_item(self) -> SaleItem:
        return SaleItem.build(
            self.product_id,
            self.quantity,
            self.unit_price_cents,
            self.discount_amount_cents,
        )


def _normalize_items(items) -> list[SaleItemRequest]:
    if not items:
        raise EmptySale()
    return [
        item if isinstance(item, SaleItemRequest) else SaleItemRequest.from_dict(item)
        for item in items
    ]


def _validate_request(requests: list[SaleItemRequest], payment_method: str,
                      discount_amount_cents: int) -> None:
    """Pure input checks; nothing is loaded or mutated."""
    if not requests:
        raise EmptySale()
    if payment_method not in PaymentMethod.ALL:
        raise ValidationError(
            f"Invalid payment method: {payment_method}",
            {"valid_methods": list(PaymentMethod.ALL)},
        )

    total = 0
    for req in requests:
        if req.quantity <= 0:
            raise ValidationError("Item quantity must be positive", {"product_id": req.product_id})
        if req.unit_price_cents < 0:
            raise ValidationError("Item unit price cannot be negative", {"product_id": req.product_id})
        SaleItem.check_discount(req.product_id, req.gross_cents, req.discount_amount_cents)
        total += req.gross_cents - req.discount_amount_cents

    if discount_amount_cents < 0:
        raise InvalidDiscount("Discount cannot be negative", {"discount_amount_cents": discount_amount_cents})
    if discount_amount_cents > total:
        raise InvalidDiscount(
            "Discount cannot exceed sale total",
            {"discount_amount_cents": discount_amount_cents, "total_amount_cents": total},
        )


def _lock_products(product_ids) -> dict[int, Product]:
    ids = sorted(set(product_ids))
    if not ids:
        return {}
    rows = lock_for_update(db.session.query(Product).filter(Product.id.in_(ids))).all()
    return {p.id: p for p in rows}


def _check_items(tenant_id: int, requests: list[SaleItemRequest], products: dict[int, Product],
                 *, check_stock: bool) -> None:
    requested: dict[int, int] = {}
    for req in requests:
        product = products.get(req.product_id)
        if product is None:
            raise ProductNotFound(req.product_id)
        ensure_tenant_access(product.tenant_id, tenant_id, "product", req.product_id)
        product.ensure_sellable()

        requested[product.id] = requested.get(product.id, 0) + req.quantity
        if check_stock and requested[product.id] > product.stock_quantity:
            raise InsufficientStock(product.id, product.name, requested[product.id], product.stock_quantity)


def _check_availability(requests: list[SaleItemRequest], products: dict[int, Product]) -> None:
    requested: dict[int, int] = {}
    for req in requests:
        product = products[req.product_id]
        requested[product.id] = requested.get(product.id, 0) + req.quantity
        if requested[product.id] > product.stock_quantity:
            raise InsufficientStock(product.id, product.name, requested[product.id], product.stock_quantity)


def _apply_lines(sale: Sale, requests: list[SaleItemRequest], products: dict[int, Product],
                 user_id: int | None) -> None:
    for req in requests:
        apply_sale_line(products[req.product_id], sale, req.quantity, req.unit_price_cents, user_id)


def _flush_sale() -> None:
    try:
        db.session.flush()
    except IntegrityError as exc:
        if "sale_number" in str(exc.orig):
            raise RetryableConflict("sale number already taken") from exc
        raise


def _run_engine_op(op):
    try:
        return run_with_retry(op)
    except RetryableConflict as exc:
        raise DuplicateIdentifier("Could not generate a unique sale number") from exc


def _load_sale_for_tenant(tenant_id: int, sale_id: int, *, lock: bool = False) -> Sale:
    query = db.session.query(Sale).filter_by(id=sale_id)
    if lock:
        query = lock_for_update(query)
    sale = query.first()
    if sale is None:
        raise SaleNotFound(sale_id)
    ensure_tenant_access(sale.tenant_id, tenant_id, "sale", sale_id)
    return sale


def _sale_product_ids(sale_id: int) -> set[int]:
    rows = db.session.query(SaleItem.product_id).filter(SaleItem.sale_id == sale_id).all()
    return {row.product_id for row in rows}


def create_sale(
    tenant_id: int,
    user_id: int | None,
    items,
    payment_method: str,
    discount_amount_cents: int = 0,
    *,
    now: datetime | None = None,
) -> Sale:
    """
    Create a sale, decrement stock and write one SALE row per item.

    All validation happens before the first mutation; any failure leaves
    products, sales and the ledger untouched.
    """
    requests = _normalize_items(items)
    _validate_request(requests, payment_method, discount_amount_cents)
    product_ids = {req.product_id for req in requests}

    def _op():
        products = _lock_products(product_ids)
        _check_items(tenant_id, requests, products, check_stock=True)

        created_at = now or utcnow()
        sale = Sale(
            tenant_id=tenant_id,
            sale_number=generate_sale_number(tenant_id, now=created_at),
            payment_method=payment_method,
            cashier_id=user_id,
            discount_amount_cents=discount_amount_cents,
            created_at=created_at,
            updated_at=created_at,
        )
        sale.replace_items([req.to_item() for req in requests])
        db.session.add(sale)
        _flush_sale()

        _apply_lines(sale, requests, products, user_id)
        db.session.commit()
        return sale

    keys = [product_key(pid) for pid in product_ids] + [sale_number_key(tenant_id)]
    with hold_locks(*keys):
        sale = _run_engine_op(_op)

    current_app.logger.info(
        "Sale created: tenant=%s sale=%s number=%s final_cents=%s",
        tenant_id, sale.id, sale.sale_number, sale.final_amount_cents,
    )
    return sale


def update_sale(
    tenant_id: int,
    user_id: int | None,
    sale_id: int,
    items,
    payment_method: str,
    discount_amount_cents: int = 0,
) -> Sale:
    """
    Replace a sale's items, payment method and discount.

    Reverse-then-reapply: the old lines' quantities are restored and their
    SALE rows deleted, then the new lines are checked against the restored
    stock and applied. New items are checked for existence, tenant and
    lifecycle before anything is reversed.
    """
    requests = _normalize_items(items)
    _validate_request(requests, payment_method, discount_amount_cents)
    new_ids = {req.product_id for req in requests}

    with hold_locks(sale_key(sale_id)):
        old_ids = _sale_product_ids(sale_id)

        def _op():
            sale = _load_sale_for_tenant(tenant_id, sale_id, lock=True)
            products = _lock_products(old_ids | new_ids)
            _check_items(tenant_id, requests, products, check_stock=False)

            retract_sale_movements(sale, products)
            _check_availability(requests, products)

            sale.payment_method = payment_method
            sale.discount_amount_cents = discount_amount_cents
            sale.replace_items([req.to_item() for req in requests])
            sale.updated_at = utcnow()
            db.session.flush()

            _apply_lines(sale, requests, products, user_id)
            db.session.commit()
            return sale

        with hold_locks(*[product_key(pid) for pid in old_ids | new_ids]):
            sale = _run_engine_op(_op)

    current_app.logger.info(
        "Sale updated: tenant=%s sale=%s number=%s final_cents=%s",
        tenant_id, sale.id, sale.sale_number, sale.final_amount_cents,
    )
    return sale


def delete_sale(tenant_id: int, sale_id: int) -> None:
    """Delete a sale and restore stock exactly as before it was created."""
    with hold_locks(sale_key(sale_id)):
        product_ids = _sale_product_ids(sale_id)

        def _op():
            sale = _load_sale_for_tenant(tenant_id, sale_id, lock=True)
            products = _lock_products(product_ids)
            retract_sale_movements(sale, products)
            sale_number = sale.sale_number
            db.session.delete(sale)
            db.session.commit()
            return sale_number

        with hold_locks(*[product_key(pid) for pid in product_ids]):
            sale_number = _run_engine_op(_op)

    current_app.logger.info("Sale deleted: tenant=%s sale=%s number=%s", tenant_id, sale_id, sale_number)


def get_sale(tenant_id: int, sale_id: int) -> Sale:
    return _load_sale_for_tenant(tenant_id, sale_id)


def list_sales(
    tenant_id: int,
    *,
    start: datetime | None = None,
    end: datetime | None = None,
    cashier_id: int | None = None,
    page: int = 1,
    per_page: int = 20,
) -> tuple[list[Sale], int]:
    """Tenant-scoped sales, newest first. start is inclusive, end exclusive."""
    query = db.session.query(Sale).filter(Sale.tenant_id == tenant_id)
    if start is not None:
        query = query.filter(Sale.created_at >= start)
    if end is not None:
        query = query.filter(Sale.created_at < end)
    if cashier_id is not None:
        query = query.filter(Sale.cashier_id == cashier_id)

    total = query.count()
    sales = (
        query.order_by(Sale.created_at.desc(), Sale.id.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
        .all()
    )
    return sales, total
