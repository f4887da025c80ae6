# Overview: Flask API routes for reports; parses input and returns JSON responses.

from flask import Blueprint, current_app, jsonify, request

from ..decorators import require_auth, require_role
from ..errors import GrocerError
from ..responses import error_response
from ..services import reporting_service
from ..services.auth_service import REPORT_ROLES
from ..services.tenant_service import get_current_tenant_id
from ..validation import optional_int, parse_datetime_arg


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


def _range_args():
    return (
        parse_datetime_arg(request.args.get("start"), "start"),
        parse_datetime_arg(request.args.get("end"), "end"),
    )


@reports_bp.get("/sales-summary")
@require_auth
@require_role(*REPORT_ROLES)
def sales_summary_route():
    try:
        start, end = _range_args()
        report = reporting_service.sales_summary(get_current_tenant_id(), start, end)
        return jsonify(report), 200
    except GrocerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to build sales summary")
        return jsonify({"error": "Internal server error"}), 500


@reports_bp.get("/top-products")
@require_auth
@require_role(*REPORT_ROLES)
def top_products_route():
    try:
        start, end = _range_args()
        limit = optional_int(request.args.get("limit"), "limit") or 10
        report = reporting_service.top_products(get_current_tenant_id(), start, end, limit=limit)
        return jsonify(report), 200
    except GrocerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to build top products report")
        return jsonify({"error": "Internal server error"}), 500
