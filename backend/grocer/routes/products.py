# Overview: Flask API routes for products and categories; parses input and returns JSON responses.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth, require_role
from ..errors import GrocerError
from ..models import Product
from ..responses import error_response, page_args, pagination_meta
from ..services import products_service
from ..services.auth_service import ADMIN_ROLES, READ_ROLES
from ..services.tenant_service import get_current_tenant_id
from ..validation import (
    PRODUCT_POLICY,
    coerce_int,
    enforce_rules_product,
    optional_int,
    validate_payload,
)


products_bp = Blueprint("products", __name__, url_prefix="/api")


def _truthy(value: str | None) -> bool:
    return (value or "").strip().lower() in {"1", "true", "yes", "on"}


@products_bp.get("/categories")
@require_auth
@require_role(*READ_ROLES)
def list_categories_route():
    try:
        categories = products_service.list_categories(get_current_tenant_id())
        return jsonify({"items": [c.to_dict() for c in categories], "count": len(categories)}), 200
    except GrocerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list categories")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.post("/categories")
@require_auth
@require_role(*ADMIN_ROLES)
def create_category_route():
    try:
        data = request.get_json() or {}
        category = products_service.create_category(
            get_current_tenant_id(), data.get("name"), data.get("description"),
        )
        return jsonify({"category": category.to_dict()}), 201
    except GrocerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create category")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.get("/products")
@require_auth
@require_role(*READ_ROLES)
def list_products_route():
    try:
        tenant_id = get_current_tenant_id()
        page, per_page = page_args()
        products, total = products_service.list_products(
            tenant_id,
            include_inactive=_truthy(request.args.get("include_inactive")),
            low_stock_only=_truthy(request.args.get("low_stock")),
            category_id=optional_int(request.args.get("category_id"), "category_id"),
            search=request.args.get("search") or None,
            page=page,
            per_page=per_page,
        )
        return jsonify({
            "items": [p.to_dict() for p in products],
            "count": len(products),
            "pagination": pagination_meta(page, per_page, total),
        }), 200
    except GrocerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list products")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.post("/products")
@require_auth
@require_role(*ADMIN_ROLES)
def create_product_route():
    """
    Create a product. Optional initial_stock is recorded as opening stock.

    Available to: TenantAdmin
    """
    try:
        tenant_id = get_current_tenant_id()
        data = dict(request.get_json() or {})
        initial_stock = coerce_int(data.pop("initial_stock", 0) or 0, "initial_stock")
        patch = validate_payload(model=Product, payload=data, policy=PRODUCT_POLICY, partial=False)
        enforce_rules_product(patch)
        product = products_service.create_product(
            tenant_id, g.current_user.id, patch=patch, initial_stock=initial_stock,
        )
        return jsonify({"product": product.to_dict()}), 201
    except GrocerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.get("/products/<int:product_id>")
@require_auth
@require_role(*READ_ROLES)
def get_product_route(product_id: int):
    try:
        product = products_service.get_product(get_current_tenant_id(), product_id)
        return jsonify({"product": product.to_dict()}), 200
    except GrocerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to get product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.patch("/products/<int:product_id>")
@require_auth
@require_role(*ADMIN_ROLES)
def update_product_route(product_id: int):
    try:
        tenant_id = get_current_tenant_id()
        patch = validate_payload(
            model=Product, payload=request.get_json() or {}, policy=PRODUCT_POLICY, partial=True,
        )
        enforce_rules_product(patch)
        product = products_service.update_product(tenant_id, product_id, patch=patch)
        return jsonify({"product": product.to_dict()}), 200
    except GrocerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.post("/products/<int:product_id>/deactivate")
@require_auth
@require_role(*ADMIN_ROLES)
def deactivate_product_route(product_id: int):
    try:
        product = products_service.deactivate_product(get_current_tenant_id(), product_id)
        return jsonify({"product": product.to_dict()}), 200
    except GrocerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to deactivate product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.post("/products/<int:product_id>/activate")
@require_auth
@require_role(*ADMIN_ROLES)
def activate_product_route(product_id: int):
    try:
        product = products_service.activate_product(get_current_tenant_id(), product_id)
        return jsonify({"product": product.to_dict()}), 200
    except GrocerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to activate product")
        return jsonify({"error": "Internal server error"}), 500
