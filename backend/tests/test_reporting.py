# Overview: Pytest coverage for sales reports.

from datetime import datetime

import pytest

from grocer.errors import ValidationError
from grocer.models import PaymentMethod
from grocer.services import reporting_service, sales_service


START = datetime(2026, 10, 1)
END = datetime(2026, 10, 8)


@pytest.fixture
def sell(tenant_a, cashier_a):
    def _sell(product, quantity, when):
        return sales_service.create_sale(
            tenant_a.id,
            cashier_a.id,
            [{"product_id": product.id, "quantity": quantity, "unit_price_cents": product.price_cents}],
            PaymentMethod.CASH,
            now=when,
        )
    return _sell


@pytest.fixture
def history(sell, apples, milk):
    sell(apples, 4, datetime(2026, 9, 28, 12, 0))   # previous period
    sell(apples, 2, datetime(2026, 10, 1, 10, 0))
    sell(milk, 1, datetime(2026, 10, 1, 15, 0))
    sell(apples, 1, datetime(2026, 10, 3, 9, 0))
    sell(apples, 1, datetime(2026, 10, 8, 0, 0))    # end is exclusive


class TestSalesSummary:

    def test_totals_and_growth(self, tenant_a, history):
        report = reporting_service.sales_summary(tenant_a.id, START, END)

        assert report["total_sales_cents"] == 1150
        assert report["total_orders"] == 3
        assert report["average_daily_cents"] == 164.29
        assert report["growth_percentage"] == 15.0
        assert report["start"] == "2026-10-01T00:00:00Z"

    def test_daily_breakdown(self, tenant_a, history):
        report = reporting_service.sales_summary(tenant_a.id, START, END)

        assert report["daily_breakdown"] == [
            {"date": "2026-10-01", "sales_cents": 900, "orders": 2, "average_order_cents": 450.0},
            {"date": "2026-10-03", "sales_cents": 250, "orders": 1, "average_order_cents": 250.0},
        ]

    def test_growth_is_zero_without_previous_sales(self, tenant_a, sell, apples):
        sell(apples, 1, datetime(2026, 10, 2, 8, 0))
        report = reporting_service.sales_summary(tenant_a.id, START, END)
        assert report["growth_percentage"] == 0

    def test_negative_growth(self, tenant_a, sell, apples):
        sell(apples, 4, datetime(2026, 9, 25, 8, 0))
        sell(apples, 1, datetime(2026, 10, 2, 8, 0))
        report = reporting_service.sales_summary(tenant_a.id, START, END)
        assert report["growth_percentage"] == -75.0

    def test_discounts_count_at_final_amount(self, tenant_a, cashier_a, apples):
        sales_service.create_sale(
            tenant_a.id,
            cashier_a.id,
            [{"product_id": apples.id, "quantity": 2, "unit_price_cents": 250}],
            PaymentMethod.CARD,
            discount_amount_cents=100,
            now=datetime(2026, 10, 2, 8, 0),
        )
        report = reporting_service.sales_summary(tenant_a.id, START, END)
        assert report["total_sales_cents"] == 400

    def test_other_tenants_are_excluded(self, tenant_b, history):
        report = reporting_service.sales_summary(tenant_b.id, START, END)
        assert report["total_orders"] == 0
        assert report["daily_breakdown"] == []

    @pytest.mark.parametrize("start,end", [(END, START), (START, START), (None, END)])
    def test_invalid_range(self, tenant_a, start, end):
        with pytest.raises(ValidationError):
            reporting_service.sales_summary(tenant_a.id, start, end)


class TestTopProducts:

    def test_ranked_by_revenue(self, tenant_a, history, apples, milk):
        report = reporting_service.top_products(tenant_a.id, START, END)

        assert report["total_revenue_cents"] == 1150
        assert [(p["product_id"], p["quantity"], p["revenue_cents"]) for p in report["products"]] == [
            (apples.id, 3, 750),
            (milk.id, 1, 400),
        ]
        assert [p["percentage_of_total"] for p in report["products"]] == [65.22, 34.78]

    def test_limit(self, tenant_a, history):
        report = reporting_service.top_products(tenant_a.id, START, END, limit=1)
        assert len(report["products"]) == 1
        assert report["total_revenue_cents"] == 1150

    def test_limit_must_be_positive(self, tenant_a):
        with pytest.raises(ValidationError):
            reporting_service.top_products(tenant_a.id, START, END, limit=0)

    def test_empty_range(self, tenant_a):
        report = reporting_service.top_products(tenant_a.id, START, END)
        assert report == {"total_revenue_cents": 0, "products": []}
