from __future__ import annotations

from ..errors import InsufficientStock, ProductInactive, ValidationError
from ..extensions import db
from ..time_utils import to_utc_z


PRODUCT_ACTIVE = "ACTIVE"
PRODUCT_INACTIVE = "INACTIVE"
PRODUCT_STATUSES = (PRODUCT_ACTIVE, PRODUCT_INACTIVE)


class Category(db.Model):
    __tablename__ = "categories"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "name", name="uq_categories_tenant_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    name = db.Column(db.String(128), nullable=False)
    description = db.Column(db.String(500), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "name": self.name,
            "description": self.description,
            "created_at": to_utc_z(self.created_at),
        }


class Product(db.Model):
    """
    Sellable item with a cached stock projection.

    stock_quantity is the projection of the stock_movements ledger: after
    every committed operation it equals the sum of effective_quantity over
    the product's movements (opening stock is itself an ADJUSTMENT row).
    It is only ever changed by the stock service, in the same transaction
    that writes the matching ledger row.

    version_id guards against lost updates between concurrent writers.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "sku", name="uq_products_tenant_sku"),
        db.UniqueConstraint("tenant_id", "barcode", name="uq_products_tenant_barcode"),
        db.CheckConstraint("stock_quantity >= 0", name="ck_products_stock_nonnegative"),
        db.CheckConstraint("min_stock_level >= 0", name="ck_products_min_stock_level_nonnegative"),
        db.CheckConstraint("price_cents >= 0", name="ck_products_price_nonnegative"),
        db.Index("ix_products_tenant_status", "tenant_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=True, index=True)

    name = db.Column(db.String(255), nullable=False)
    sku = db.Column(db.String(64), nullable=False)
    barcode = db.Column(db.String(64), nullable=True)
    description = db.Column(db.Text, nullable=True)

    # Money in cents
    price_cents = db.Column(db.Integer, nullable=False, default=0)
    cost_cents = db.Column(db.Integer, nullable=True)

    stock_quantity = db.Column(db.Integer, nullable=False, default=0)
    min_stock_level = db.Column(db.Integer, nullable=False, default=0)

    status = db.Column(db.String(16), nullable=False, default=PRODUCT_ACTIVE)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )
    version_id = db.Column(db.Integer, nullable=False, default=1)

    category = db.relationship("Category", backref=db.backref("products", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_active(self) -> bool:
        return self.status == PRODUCT_ACTIVE

    @property
    def is_low_stock(self) -> bool:
        return self.stock_quantity <= self.min_stock_level

    def ensure_sellable(self) -> None:
        if not self.is_active:
            raise ProductInactive(self.id, self.name)

    def increase_stock(self, quantity: int) -> None:
        if quantity <= 0:
            raise ValidationError("Quantity must be positive", {"quantity": quantity})
        self.stock_quantity += quantity

    def decrease_stock(self, quantity: int) -> None:
        if quantity <= 0:
            raise ValidationError("Quantity must be positive", {"quantity": quantity})
        if quantity > self.stock_quantity:
            raise InsufficientStock(self.id, self.name, quantity, self.stock_quantity)
        self.stock_quantity -= quantity

    def set_stock(self, quantity: int) -> None:
        if quantity < 0:
            raise ValidationError("Stock quantity cannot be negative", {"quantity": quantity})
        self.stock_quantity = quantity

    def activate(self) -> None:
        self.status = PRODUCT_ACTIVE

    def deactivate(self) -> None:
        self.status = PRODUCT_INACTIVE

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} stock={self.stock_quantity}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "category_id": self.category_id,
            "name": self.name,
            "sku": self.sku,
            "barcode": self.barcode,
            "description": self.description,
            "price_cents": self.price_cents,
            "cost_cents": self.cost_cents,
            "stock_quantity": self.stock_quantity,
            "min_stock_level": self.min_stock_level,
            "status": self.status,
            "is_active": self.is_active,
            "is_low_stock": self.is_low_stock,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
