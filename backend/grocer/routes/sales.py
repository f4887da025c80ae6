# Overview: Flask API routes for sales operations; parses input and returns JSON responses.

# backend/grocer/routes/sales.py
"""Sales API routes with role enforcement"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth, require_role
from ..errors import GrocerError
from ..responses import error_response, page_args, pagination_meta
from ..services import sales_service
from ..services.auth_service import ADMIN_ROLES, READ_ROLES, SALES_WRITE_ROLES
from ..services.tenant_service import get_current_tenant_id
from ..validation import coerce_int, optional_int, parse_datetime_arg


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


def _sale_args(data: dict) -> dict:
    return {
        "items": data.get("items") or [],
        "payment_method": data.get("payment_method"),
        "discount_amount_cents": coerce_int(data.get("discount_amount_cents") or 0, "discount_amount_cents"),
    }


@sales_bp.post("")
@require_auth
@require_role(*SALES_WRITE_ROLES)
def create_sale_route():
    """
    Create a sale: decrements stock and writes SALE ledger rows.

    Available to: TenantAdmin, Cashier
    """
    try:
        tenant_id = get_current_tenant_id()
        data = request.get_json() or {}
        sale = sales_service.create_sale(tenant_id, g.current_user.id, **_sale_args(data))
        return jsonify({"sale": sale.to_dict()}), 201
    except GrocerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("")
@require_auth
@require_role(*READ_ROLES)
def list_sales_route():
    try:
        tenant_id = get_current_tenant_id()
        page, per_page = page_args()
        sales, total = sales_service.list_sales(
            tenant_id,
            start=parse_datetime_arg(request.args.get("start"), "start"),
            end=parse_datetime_arg(request.args.get("end"), "end"),
            cashier_id=optional_int(request.args.get("cashier_id"), "cashier_id"),
            page=page,
            per_page=per_page,
        )
        return jsonify({
            "items": [s.to_dict() for s in sales],
            "count": len(sales),
            "pagination": pagination_meta(page, per_page, total),
        }), 200
    except GrocerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list sales")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("/<int:sale_id>")
@require_auth
@require_role(*READ_ROLES)
def get_sale_route(sale_id: int):
    try:
        sale = sales_service.get_sale(get_current_tenant_id(), sale_id)
        return jsonify({"sale": sale.to_dict()}), 200
    except GrocerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to get sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.put("/<int:sale_id>")
@require_auth
@require_role(*SALES_WRITE_ROLES)
def update_sale_route(sale_id: int):
    """
    Replace a sale's items, payment method and discount.

    Available to: TenantAdmin, Cashier
    """
    try:
        tenant_id = get_current_tenant_id()
        data = request.get_json() or {}
        sale = sales_service.update_sale(tenant_id, g.current_user.id, sale_id, **_sale_args(data))
        return jsonify({"sale": sale.to_dict()}), 200
    except GrocerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.delete("/<int:sale_id>")
@require_auth
@require_role(*ADMIN_ROLES)
def delete_sale_route(sale_id: int):
    """
    Delete a sale and restore its stock.

    Available to: TenantAdmin
    """
    try:
        sales_service.delete_sale(get_current_tenant_id(), sale_id)
        return "", 204
    except GrocerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete sale")
        return jsonify({"error": "Internal server error"}), 500
