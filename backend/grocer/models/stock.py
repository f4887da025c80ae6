from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class MovementType:
    PURCHASE = "PURCHASE"
    SALE = "SALE"
    ADJUSTMENT = "ADJUSTMENT"
    RETURN = "RETURN"

    ALL = (PURCHASE, SALE, ADJUSTMENT, RETURN)
    INCREASING = (PURCHASE, RETURN)


class StockMovement(db.Model):
    """
    Ledger entry: one stock change for one product.

    APPEND-ONLY: rows are never updated. The only deletion path is the sale
    engine retracting the SALE rows it produced for a sale (by sale_id).

    quantity is the value its producer supplied; effective_quantity is the
    signed delta actually applied to products.stock_quantity, fixed when the
    row is written. Readers sum effective_quantity only.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.Index("ix_stock_movements_product_created", "product_id", "created_at"),
        db.Index("ix_stock_movements_tenant_created", "tenant_id", "created_at"),
        db.CheckConstraint("quantity != 0", name="ck_stock_movements_quantity_nonzero"),
        db.CheckConstraint("effective_quantity != 0", name="ck_stock_movements_effective_nonzero"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    movement_type = db.Column(db.String(16), nullable=False, index=True)  # PURCHASE, SALE, ADJUSTMENT, RETURN
    quantity = db.Column(db.Integer, nullable=False)
    effective_quantity = db.Column(db.Integer, nullable=False)

    # Price per unit at time of movement, in cents
    unit_price_cents = db.Column(db.Integer, nullable=False, default=0)

    # Set only for SALE rows written by the sale engine
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True, index=True)
    # Free-form external document reference for manual postings
    reference = db.Column(db.String(128), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product", backref=db.backref("stock_movements", lazy=True))

    def __repr__(self) -> str:
        return (
            f"<StockMovement id={self.id} product_id={self.product_id} "
            f"type={self.movement_type} effective={self.effective_quantity}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product is not None else None,
            "movement_type": self.movement_type,
            "quantity": self.quantity,
            "effective_quantity": self.effective_quantity,
            "unit_price_cents": self.unit_price_cents,
            "sale_id": self.sale_id,
            "reference": self.reference,
            "notes": self.notes,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }
