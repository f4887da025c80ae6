# Overview: Shared JSON response helpers for API routes.

from __future__ import annotations

from flask import g, jsonify, request

from .errors import GrocerError, TenantMismatch
from .extensions import db
from .services.tenant_service import log_cross_tenant_attempt


def error_response(exc: GrocerError):
    """
    Turn a domain error into its JSON response.

    The session is rolled back first; a TenantMismatch is then recorded as a
    security event in its own transaction.
    """
    db.session.rollback()
    if isinstance(exc, TenantMismatch):
        user = getattr(g, "current_user", None)
        log_cross_tenant_attempt(
            exc,
            tenant_id=getattr(g, "tenant_id", None),
            user_id=user.id if user is not None else None,
            resource=request.path,
            action=request.method,
            ip_address=request.remote_addr,
        )
    return jsonify(exc.to_dict()), exc.status_code


def pagination_meta(page: int, per_page: int, total: int) -> dict:
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1
    return {
        "page": page,
        "per_page": per_page,
        "total": total,
        "total_pages": total_pages,
        "has_next": page < total_pages,
        "has_prev": page > 1,
    }


def page_args(default_per_page: int = 20, max_per_page: int = 100) -> tuple[int, int]:
    page = max(request.args.get("page", 1, type=int) or 1, 1)
    per_page = request.args.get("per_page", default_per_page, type=int) or default_per_page
    return page, min(max(per_page, 1), max_per_page)
