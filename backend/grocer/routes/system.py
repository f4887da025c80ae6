# backend/grocer/routes/system.py
"""System health endpoint."""

import time
from flask import Blueprint, current_app, jsonify

from ..extensions import db
from ..models import Role, Tenant
from ..services.auth_service import DEFAULT_ROLES
from ..time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    start_time = time.time()
    try:
        tenant_count = db.session.query(Tenant).count()
        role_names = {name for (name,) in db.session.query(Role.name).all()}
        elapsed_ms = (time.time() - start_time) * 1000

        missing_roles = sorted(set(DEFAULT_ROLES) - role_names)
        result = {
            "status": "degraded" if missing_roles else "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {"tenants": tenant_count, "roles": len(role_names)},
        }
        if missing_roles:
            result["warning"] = f"Missing roles: {', '.join(missing_roles)}"
        return result
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error",
        }


@system_bp.get("/health")
def health():
    database = check_database_health()
    status_code = 503 if database["status"] == "unhealthy" else 200
    return jsonify({
        "status": database["status"],
        "checked_at": to_utc_z(utcnow()),
        "checks": {"database": database},
    }), status_code
