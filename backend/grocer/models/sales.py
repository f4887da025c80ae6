from __future__ import annotations

from ..errors import EmptySale, InvalidDiscount
from ..extensions import db
from ..time_utils import to_utc_z


class PaymentMethod:
    CASH = "CASH"
    CARD = "CARD"
    MIXED = "MIXED"

    ALL = (CASH, CARD, MIXED)


class Sale(db.Model):
    """
    Sale aggregate root.

    Totals are always derived from items via recalculate_totals(); they are
    never assigned independently. Items are replaced wholesale on update.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "sale_number", name="uq_sales_tenant_sale_number"),
        db.Index("ix_sales_tenant_created", "tenant_id", "created_at"),
        db.CheckConstraint("discount_amount_cents >= 0", name="ck_sales_discount_nonnegative"),
        db.CheckConstraint("discount_amount_cents <= total_amount_cents", name="ck_sales_discount_le_total"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)

    # Human-readable number, e.g. "SALE-20260115-042"
    sale_number = db.Column(db.String(64), nullable=False)

    # Money in cents
    total_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    final_amount_cents = db.Column(db.Integer, nullable=False, default=0)

    payment_method = db.Column(db.String(16), nullable=False)
    cashier_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )
    version_id = db.Column(db.Integer, nullable=False, default=1)

    items = db.relationship(
        "SaleItem",
        back_populates="sale",
        cascade="all, delete-orphan",
        order_by="SaleItem.id",
        lazy="selectin",
    )
    cashier = db.relationship("User", foreign_keys=[cashier_id])
    __mapper_args__ = {"version_id_col": version_id}

    def recalculate_totals(self) -> None:
        if not self.items:
            raise EmptySale()
        total = sum(item.line_total_cents for item in self.items)
        discount = self.discount_amount_cents or 0
        if discount < 0:
            raise InvalidDiscount("Discount cannot be negative", {"discount_amount_cents": discount})
        if discount > total:
            raise InvalidDiscount(
                "Discount cannot exceed sale total",
                {"discount_amount_cents": discount, "total_amount_cents": total},
            )
        self.total_amount_cents = total
        self.final_amount_cents = total - discount

    def replace_items(self, new_items: list["SaleItem"]) -> None:
        if not new_items:
            raise EmptySale()
        self.items = list(new_items)
        self.recalculate_totals()

    def __repr__(self) -> str:
        return f"<Sale id={self.id} sale_number={self.sale_number!r} final={self.final_amount_cents}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "sale_number": self.sale_number,
            "total_amount_cents": self.total_amount_cents,
            "discount_amount_cents": self.discount_amount_cents,
            "final_amount_cents": self.final_amount_cents,
            "payment_method": self.payment_method,
            "cashier_id": self.cashier_id,
            "items": [item.to_dict() for item in self.items],
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class SaleItem(db.Model):
    """Sale line. Owned by its Sale; never patched in place."""
    __tablename__ = "sale_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_sale_items_quantity_positive"),
        db.CheckConstraint("unit_price_cents >= 0", name="ck_sale_items_price_nonnegative"),
        db.CheckConstraint("discount_amount_cents >= 0", name="ck_sale_items_discount_nonnegative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(
        db.Integer, db.ForeignKey("sales.id", ondelete="CASCADE"), nullable=False, index=True
    )
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    discount_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    line_total_cents = db.Column(db.Integer, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    sale = db.relationship("Sale", back_populates="items")
    product = db.relationship("Product", lazy="joined")

    @staticmethod
    def check_discount(product_id: int, gross: int, discount_amount_cents: int) -> None:
        if discount_amount_cents < 0:
            raise InvalidDiscount(
                "Item discount cannot be negative",
                {"product_id": product_id, "discount_amount_cents": discount_amount_cents},
            )
        if discount_amount_cents > gross:
            raise InvalidDiscount(
                "Item discount cannot exceed quantity times unit price",
                {"product_id": product_id, "discount_amount_cents": discount_amount_cents, "gross_cents": gross},
            )

    @classmethod
    def build(cls, product_id: int, quantity: int, unit_price_cents: int,
              discount_amount_cents: int = 0) -> "SaleItem":
        gross = quantity * unit_price_cents
        cls.check_discount(product_id, gross, discount_amount_cents)
        return cls(
            product_id=product_id,
            quantity=quantity,
            unit_price_cents=unit_price_cents,
            discount_amount_cents=discount_amount_cents,
            line_total_cents=gross - discount_amount_cents,
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product is not None else None,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "discount_amount_cents": self.discount_amount_cents,
            "line_total_cents": self.line_total_cents,
        }
