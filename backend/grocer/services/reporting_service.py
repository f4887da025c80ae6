# Overview: Service-layer operations for reporting; encapsulates business logic and database work.

from __future__ import annotations

import math
from datetime import datetime

from sqlalchemy import func

from ..errors import ValidationError
from ..extensions import db
from ..models import Product, Sale, SaleItem
from ..time_utils import to_utc_z


def _check_range(start: datetime, end: datetime) -> None:
    if start is None or end is None:
        raise ValidationError("start and end are required")
    if end <= start:
        raise ValidationError("end must be after start")


def _total_final_cents(tenant_id: int, start: datetime, end: datetime) -> int:
    q = db.session.query(func.coalesce(func.sum(Sale.final_amount_cents), 0)).filter(
        Sale.tenant_id == tenant_id,
        Sale.created_at >= start,
        Sale.created_at < end,
    )
    return int(q.scalar() or 0)


def sales_summary(tenant_id: int, start: datetime, end: datetime) -> dict:
    """
    Totals over [start, end) plus a per-day breakdown.

    growth_percentage compares against the previous period of equal length
    and is 0 when that period had no sales.
    """
    _check_range(start, end)

    day_expr = func.strftime("%Y-%m-%d", Sale.created_at)
    rows = (
        db.session.query(
            day_expr.label("day"),
            func.count(Sale.id).label("orders"),
            func.coalesce(func.sum(Sale.final_amount_cents), 0).label("sales_cents"),
        )
        .filter(
            Sale.tenant_id == tenant_id,
            Sale.created_at >= start,
            Sale.created_at < end,
        )
        .group_by("day")
        .order_by("day")
        .all()
    )

    total_sales = sum(int(row.sales_cents) for row in rows)
    total_orders = sum(int(row.orders) for row in rows)
    days = math.ceil((end - start).total_seconds() / 86400)
    average_daily = total_sales / days if days > 0 else 0

    previous_total = _total_final_cents(tenant_id, start - (end - start), start)
    growth = ((total_sales - previous_total) / previous_total) * 100 if previous_total > 0 else 0

    return {
        "start": to_utc_z(start),
        "end": to_utc_z(end),
        "total_sales_cents": total_sales,
        "total_orders": total_orders,
        "average_daily_cents": round(average_daily, 2),
        "growth_percentage": round(growth, 2),
        "daily_breakdown": [
            {
                "date": row.day,
                "sales_cents": int(row.sales_cents),
                "orders": int(row.orders),
                "average_order_cents": round(int(row.sales_cents) / int(row.orders), 2) if row.orders else 0,
            }
            for row in rows
        ],
    }


def top_products(tenant_id: int, start: datetime, end: datetime, limit: int = 10) -> dict:
    """Best sellers by line revenue over [start, end)."""
    _check_range(start, end)
    if limit <= 0:
        raise ValidationError("limit must be positive")

    rows = (
        db.session.query(
            SaleItem.product_id.label("product_id"),
            Product.name.label("product_name"),
            func.coalesce(func.sum(SaleItem.quantity), 0).label("quantity"),
            func.coalesce(func.sum(SaleItem.line_total_cents), 0).label("revenue_cents"),
        )
        .join(Sale, Sale.id == SaleItem.sale_id)
        .join(Product, Product.id == SaleItem.product_id)
        .filter(
            Sale.tenant_id == tenant_id,
            Sale.created_at >= start,
            Sale.created_at < end,
        )
        .group_by(SaleItem.product_id, Product.name)
        .all()
    )

    total_revenue = sum(int(row.revenue_cents) for row in rows)
    ranked = sorted(rows, key=lambda r: (-int(r.revenue_cents), r.product_id))[:limit]

    return {
        "total_revenue_cents": total_revenue,
        "products": [
            {
                "product_id": row.product_id,
                "product_name": row.product_name,
                "quantity": int(row.quantity),
                "revenue_cents": int(row.revenue_cents),
                "percentage_of_total": round(int(row.revenue_cents) / total_revenue * 100, 2) if total_revenue else 0,
            }
            for row in ranked
        ],
    }
