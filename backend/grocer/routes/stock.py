# Overview: Flask API routes for stock operations; parses input and returns JSON responses.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth, require_role
from ..errors import GrocerError, ValidationError
from ..responses import error_response, page_args, pagination_meta
from ..services import stock_service
from ..services.auth_service import ADMIN_ROLES, READ_ROLES
from ..services.tenant_service import get_current_tenant_id
from ..validation import coerce_int, optional_int


stock_bp = Blueprint("stock", __name__, url_prefix="/api/stock")


@stock_bp.get("/movements")
@require_auth
@require_role(*READ_ROLES)
def list_movements_route():
    try:
        tenant_id = get_current_tenant_id()
        page, per_page = page_args(default_per_page=50, max_per_page=200)
        movements, total = stock_service.list_stock_movements(
            tenant_id,
            product_id=optional_int(request.args.get("product_id"), "product_id"),
            movement_type=request.args.get("movement_type") or None,
            page=page,
            per_page=per_page,
        )
        return jsonify({
            "items": [m.to_dict() for m in movements],
            "count": len(movements),
            "pagination": pagination_meta(page, per_page, total),
        }), 200
    except GrocerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list stock movements")
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.post("/movements")
@require_auth
@require_role(*ADMIN_ROLES)
def post_movement_route():
    """
    Record a manual PURCHASE / RETURN / SALE / ADJUSTMENT.

    Available to: TenantAdmin
    """
    try:
        tenant_id = get_current_tenant_id()
        data = request.get_json() or {}
        for field in ("product_id", "movement_type", "quantity"):
            if data.get(field) is None:
                raise ValidationError(f"{field} is required")

        movement = stock_service.post_stock_movement(
            tenant_id,
            g.current_user.id,
            coerce_int(data["product_id"], "product_id"),
            str(data["movement_type"]).upper(),
            coerce_int(data["quantity"], "quantity"),
            coerce_int(data.get("unit_price_cents") or 0, "unit_price_cents"),
            reference=data.get("reference"),
            notes=data.get("notes"),
        )
        return jsonify({"movement": movement.to_dict()}), 201
    except GrocerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to post stock movement")
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.put("/products/<int:product_id>/adjust")
@require_auth
@require_role(*ADMIN_ROLES)
def adjust_stock_route(product_id: int):
    """
    Set a product's stock to an exact count.

    Available to: TenantAdmin
    """
    try:
        tenant_id = get_current_tenant_id()
        data = request.get_json() or {}
        if data.get("new_quantity") is None:
            raise ValidationError("new_quantity is required")
        result = stock_service.adjust_stock(
            tenant_id,
            g.current_user.id,
            product_id,
            coerce_int(data["new_quantity"], "new_quantity"),
            notes=data.get("notes"),
        )
        return jsonify(result), 200
    except GrocerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to adjust stock")
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.get("/reconcile")
@require_auth
@require_role(*ADMIN_ROLES)
def reconcile_route():
    try:
        tenant_id = get_current_tenant_id()
        product_id = optional_int(request.args.get("product_id"), "product_id")
        if product_id is not None:
            return jsonify(stock_service.reconcile_product(tenant_id, product_id)), 200
        return jsonify(stock_service.reconcile_tenant(tenant_id)), 200
    except GrocerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to reconcile stock")
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.get("/low-stock")
@require_auth
@require_role(*READ_ROLES)
def low_stock_route():
    try:
        products = stock_service.list_low_stock(get_current_tenant_id())
        return jsonify({"items": [p.to_dict() for p in products], "count": len(products)}), 200
    except GrocerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list low stock")
        return jsonify({"error": "Internal server error"}), 500
