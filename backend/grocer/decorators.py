# Overview: Request and role decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .services import session_service, tenant_service
from .services.auth_service import user_has_any_role


def _is_authenticated() -> bool:
    return hasattr(g, "current_user") and hasattr(g, "tenant_id")


def require_auth(f):
    """
    Require a bearer session and establish tenant context.

    Sets on flask.g:
    - g.current_user: the authenticated User
    - g.tenant_id: tenant pinned to the session (None only for SuperAdmin
      sessions issued without a tenant)
    - g.session_context: the full SessionContext

    Returns 401 when the header is missing or the token is invalid,
    expired, revoked, or belongs to a deactivated user or tenant.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_header = request.headers.get("Authorization")
        if not auth_header or not auth_header.startswith("Bearer "):
            return jsonify({"error": "Authentication required"}), 401

        token = auth_header.split(" ", 1)[1]
        context = session_service.validate_session(token)
        if not context:
            return jsonify({"error": "Invalid or expired token"}), 401

        g.current_user = context.user
        g.tenant_id = context.tenant_id
        g.session_context = context

        return f(*args, **kwargs)

    return decorated_function


def require_role(*role_names: str):
    """
    Require any of the given global roles. SuperAdmin always passes.

    Must be stacked under @require_auth. Denials are written to
    security_events.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not _is_authenticated():
                return jsonify({"error": "Authentication required"}), 401

            user = g.current_user
            if not user_has_any_role(user, role_names):
                tenant_service.log_security_event(
                    user_id=user.id,
                    event_type="ROLE_DENIED",
                    success=False,
                    resource=request.path,
                    action=request.method,
                    reason=f"Requires one of: {', '.join(role_names)}",
                    ip_address=request.remote_addr,
                    tenant_id=g.tenant_id,
                )
                return jsonify({
                    "error": "Permission denied",
                    "required_roles": list(role_names),
                }), 403

            return f(*args, **kwargs)

        return decorated_function
    return decorator
