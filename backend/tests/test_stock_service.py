# Overview: Pytest coverage for the stock ledger, adjustments and reconciliation.

import logging

import pytest
from sqlalchemy import update

from conftest import ledger_sum, movements_for, stock_of
from grocer.errors import (
    InsufficientStock,
    NoOpAdjustment,
    ProductInactive,
    ProductNotFound,
    TenantMismatch,
    ValidationError,
)
from grocer.extensions import db
from grocer.models import MovementType, Product
from grocer.services import products_service, stock_service


class TestAdjustStock:

    def test_increase(self, tenant_a, admin_a, apples):
        result = stock_service.adjust_stock(tenant_a.id, admin_a.id, apples.id, 15, notes="Recount")

        assert result == {"product_id": apples.id, "old_quantity": 10, "new_quantity": 15, "adjustment": 5}
        assert stock_of(apples.id) == 15

        row = movements_for(apples.id)[-1]
        assert row.movement_type == MovementType.ADJUSTMENT
        assert row.quantity == 5
        assert row.effective_quantity == 5
        assert row.unit_price_cents == 250
        assert row.notes == "Recount"
        assert row.created_by_user_id == admin_a.id
        assert row.sale_id is None

    def test_decrease_records_signed_delta(self, tenant_a, admin_a, apples):
        result = stock_service.adjust_stock(tenant_a.id, admin_a.id, apples.id, 4)
        assert result["adjustment"] == -6

        row = movements_for(apples.id)[-1]
        assert row.quantity == -6
        assert row.effective_quantity == -6
        assert ledger_sum(apples.id) == stock_of(apples.id) == 4

    def test_to_zero(self, tenant_a, admin_a, apples):
        stock_service.adjust_stock(tenant_a.id, admin_a.id, apples.id, 0)
        assert stock_of(apples.id) == 0
        assert ledger_sum(apples.id) == 0

    def test_negative_target_rejected(self, tenant_a, admin_a, apples):
        with pytest.raises(ValidationError):
            stock_service.adjust_stock(tenant_a.id, admin_a.id, apples.id, -1)
        assert stock_of(apples.id) == 10

    def test_noop_rejected_by_default(self, tenant_a, admin_a, apples):
        with pytest.raises(NoOpAdjustment):
            stock_service.adjust_stock(tenant_a.id, admin_a.id, apples.id, 10)
        assert len(movements_for(apples.id)) == 1

    def test_noop_allowed_when_configured(self, app, monkeypatch, tenant_a, admin_a, apples):
        monkeypatch.setitem(app.config, "ALLOW_NOOP_ADJUSTMENTS", True)
        result = stock_service.adjust_stock(tenant_a.id, admin_a.id, apples.id, 10)
        assert result["adjustment"] == 0
        assert len(movements_for(apples.id)) == 1

    def test_inactive_product_can_be_adjusted(self, tenant_a, admin_a, apples):
        products_service.deactivate_product(tenant_a.id, apples.id)
        stock_service.adjust_stock(tenant_a.id, admin_a.id, apples.id, 3)
        assert stock_of(apples.id) == 3

    def test_missing_product(self, tenant_a, admin_a):
        with pytest.raises(ProductNotFound):
            stock_service.adjust_stock(tenant_a.id, admin_a.id, 999999, 3)

    def test_foreign_product(self, tenant_a, admin_a, bread_b):
        with pytest.raises(TenantMismatch):
            stock_service.adjust_stock(tenant_a.id, admin_a.id, bread_b.id, 3)
        assert stock_of(bread_b.id) == 10

    def test_ledger_write_failure_rolls_back_stock(self, monkeypatch, tenant_a, admin_a, apples):
        def failing_record(*args, **kwargs):
            raise RuntimeError("disk I/O error")

        monkeypatch.setattr(stock_service, "record_movement", failing_record)

        with pytest.raises(RuntimeError):
            stock_service.adjust_stock(tenant_a.id, admin_a.id, apples.id, 25)

        assert stock_of(apples.id) == 10
        assert ledger_sum(apples.id) == 10
        assert len(movements_for(apples.id)) == 1


class TestPostStockMovement:

    @pytest.mark.parametrize(
        "movement_type,quantity,effective,expected_stock",
        [
            (MovementType.PURCHASE, 5, 5, 15),
            (MovementType.PURCHASE, -5, 5, 15),
            (MovementType.RETURN, 2, 2, 12),
            (MovementType.SALE, 3, -3, 7),
            (MovementType.SALE, -3, -3, 7),
            (MovementType.ADJUSTMENT, 4, -4, 6),
        ],
    )
    def test_polarity_by_type(self, tenant_a, admin_a, apples, movement_type, quantity, effective, expected_stock):
        movement = stock_service.post_stock_movement(
            tenant_a.id, admin_a.id, apples.id, movement_type, quantity, 199, reference="INV-77",
        )

        assert movement.quantity == quantity
        assert movement.effective_quantity == effective
        assert movement.reference == "INV-77"
        assert movement.sale_id is None
        assert stock_of(apples.id) == expected_stock
        assert ledger_sum(apples.id) == expected_stock

    def test_zero_quantity(self, tenant_a, admin_a, apples):
        with pytest.raises(ValidationError):
            stock_service.post_stock_movement(tenant_a.id, admin_a.id, apples.id, MovementType.PURCHASE, 0, 100)

    def test_unknown_type(self, tenant_a, admin_a, apples):
        with pytest.raises(ValidationError) as exc_info:
            stock_service.post_stock_movement(tenant_a.id, admin_a.id, apples.id, "SHRINK", 1, 100)
        assert "valid_types" in exc_info.value.details

    def test_negative_price(self, tenant_a, admin_a, apples):
        with pytest.raises(ValidationError):
            stock_service.post_stock_movement(tenant_a.id, admin_a.id, apples.id, MovementType.PURCHASE, 1, -5)

    def test_decrement_beyond_stock(self, tenant_a, admin_a, milk):
        with pytest.raises(InsufficientStock):
            stock_service.post_stock_movement(tenant_a.id, admin_a.id, milk.id, MovementType.ADJUSTMENT, 6, 0)
        assert stock_of(milk.id) == 5
        assert len(movements_for(milk.id)) == 1

    def test_sale_on_inactive_product_rejected(self, tenant_a, admin_a, apples):
        products_service.deactivate_product(tenant_a.id, apples.id)
        with pytest.raises(ProductInactive):
            stock_service.post_stock_movement(tenant_a.id, admin_a.id, apples.id, MovementType.SALE, 1, 250)
        assert stock_of(apples.id) == 10

    def test_purchase_on_inactive_product_allowed(self, tenant_a, admin_a, apples):
        products_service.deactivate_product(tenant_a.id, apples.id)
        stock_service.post_stock_movement(tenant_a.id, admin_a.id, apples.id, MovementType.RETURN, 1, 250)
        assert stock_of(apples.id) == 11

    def test_foreign_product(self, tenant_a, admin_a, bread_b):
        with pytest.raises(TenantMismatch):
            stock_service.post_stock_movement(tenant_a.id, admin_a.id, bread_b.id, MovementType.PURCHASE, 1, 100)


class TestListMovements:

    def test_newest_first_with_product_names(self, tenant_a, admin_a, apples, milk):
        stock_service.post_stock_movement(tenant_a.id, admin_a.id, apples.id, MovementType.PURCHASE, 5, 100)

        rows, total = stock_service.list_stock_movements(tenant_a.id)
        assert total == 3
        assert rows[0].movement_type == MovementType.PURCHASE
        assert rows[0].to_dict()["product_name"] == "Apples"

    def test_filters(self, tenant_a, admin_a, apples, milk):
        stock_service.post_stock_movement(tenant_a.id, admin_a.id, apples.id, MovementType.PURCHASE, 5, 100)

        rows, total = stock_service.list_stock_movements(tenant_a.id, product_id=milk.id)
        assert total == 1
        assert rows[0].notes == "Opening stock"

        rows, total = stock_service.list_stock_movements(tenant_a.id, movement_type=MovementType.PURCHASE)
        assert total == 1

    def test_tenant_scoped(self, tenant_a, tenant_b, apples, bread_b):
        rows, total = stock_service.list_stock_movements(tenant_b.id)
        assert total == 1
        assert rows[0].product_id == bread_b.id

        with pytest.raises(TenantMismatch):
            stock_service.list_stock_movements(tenant_b.id, product_id=apples.id)


class TestReconciliation:

    def test_consistent(self, tenant_a, admin_a, apples, milk):
        stock_service.adjust_stock(tenant_a.id, admin_a.id, milk.id, 2)

        row = stock_service.reconcile_product(tenant_a.id, milk.id)
        assert row["stock_quantity"] == row["ledger_quantity"] == 2
        assert row["consistent"] is True
        assert stock_service.reconcile_tenant(tenant_a.id)["drifted"] == []

    def test_drift_reported_not_repaired(self, caplog, tenant_a, apples, milk):
        db.session.execute(update(Product).where(Product.id == apples.id).values(stock_quantity=13))
        db.session.commit()

        with caplog.at_level(logging.WARNING):
            report = stock_service.reconcile_tenant(tenant_a.id)

        assert report["consistent"] is False
        assert [(r["product_id"], r["drift"]) for r in report["drifted"]] == [(apples.id, 3)]
        assert "Ledger drift detected" in caplog.text
        assert stock_of(apples.id) == 13

    def test_low_stock(self, tenant_a, admin_a, apples, milk):
        stock_service.adjust_stock(tenant_a.id, admin_a.id, apples.id, 2)
        stock_service.adjust_stock(tenant_a.id, admin_a.id, milk.id, 1)
        products_service.deactivate_product(tenant_a.id, milk.id)

        low = stock_service.list_low_stock(tenant_a.id)
        assert [p.id for p in low] == [apples.id]
        assert low[0].is_low_stock is True
