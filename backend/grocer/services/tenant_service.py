"""
Multi-Tenant Service: Tenant Validation and Scoping Helpers

Every request that touches tenant-owned rows runs with g.tenant_id set by
@require_auth. Services receive tenant_id explicitly and compare it with
the owner of every row they load before reading or mutating it.

SECURITY INVARIANTS:
1. Tenant-scoped operations never run without a tenant id
2. A row owned by another tenant raises TenantMismatch, never NotFound
3. TenantMismatch messages name only the identifier the caller supplied
4. Cross-tenant attempts are written to security_events after rollback
"""

from __future__ import annotations

from flask import current_app, g

from ..errors import ConflictError, NotFound, TenantContextMissing, TenantMismatch, ValidationError
from ..extensions import db
from ..models import SecurityEvent, Tenant
from ..time_utils import utcnow


def get_current_tenant_id() -> int:
    """Tenant id established by @require_auth for this request."""
    tenant_id = getattr(g, "tenant_id", None)
    if tenant_id is None:
        raise TenantContextMissing()
    return tenant_id


def ensure_tenant_access(owner_tenant_id: int, tenant_id: int, resource: str,
                         resource_id: int | None = None) -> None:
    if tenant_id is None:
        raise TenantContextMissing()
    if owner_tenant_id != tenant_id:
        raise TenantMismatch(resource, resource_id)


def log_security_event(
    user_id: int | None,
    event_type: str,
    success: bool,
    resource: str | None = None,
    action: str | None = None,
    reason: str | None = None,
    ip_address: str | None = None,
    tenant_id: int | None = None,
) -> SecurityEvent:
    """
    Append a security event and commit it.

    Must be called outside any failing business transaction; the caller
    rolls back first so the event is the only thing committed.
    """
    event = SecurityEvent(
        user_id=user_id,
        tenant_id=tenant_id,
        event_type=event_type,
        resource=resource,
        action=action,
        success=success,
        reason=reason,
        ip_address=ip_address,
        occurred_at=utcnow(),
    )
    db.session.add(event)
    db.session.commit()
    return event


def log_cross_tenant_attempt(
    exc: TenantMismatch,
    *,
    tenant_id: int | None,
    user_id: int | None,
    resource: str | None = None,
    action: str | None = None,
    ip_address: str | None = None,
) -> SecurityEvent:
    reason = f"{exc.resource} {exc.resource_id} is owned by another tenant"
    current_app.logger.warning(
        "Cross-tenant access denied: tenant=%s user=%s %s id=%s",
        tenant_id, user_id, exc.resource, exc.resource_id,
    )
    return log_security_event(
        user_id=user_id,
        event_type="CROSS_TENANT_ACCESS_DENIED",
        success=False,
        resource=resource,
        action=action,
        reason=reason,
        ip_address=ip_address,
        tenant_id=tenant_id,
    )


def create_tenant(name: str, *, address: str | None = None, phone: str | None = None,
                  email: str | None = None) -> Tenant:
    name = (name or "").strip()
    if not name:
        raise ValidationError("Tenant name is required")
    existing = db.session.query(Tenant).filter(db.func.lower(Tenant.name) == name.lower()).first()
    if existing:
        raise ConflictError(f'Tenant "{name}" already exists', {"tenant_id": existing.id})

    tenant = Tenant(name=name, address=address, phone=phone, email=email, is_active=True)
    db.session.add(tenant)
    db.session.commit()
    current_app.logger.info("Tenant created: id=%s name=%s", tenant.id, tenant.name)
    return tenant


def list_tenants(active_only: bool = False) -> list[Tenant]:
    query = db.session.query(Tenant)
    if active_only:
        query = query.filter_by(is_active=True)
    return query.order_by(Tenant.name).all()


def require_active_tenant(tenant_id: int) -> Tenant:
    tenant = db.session.get(Tenant, tenant_id)
    if not tenant:
        raise NotFound(f"Tenant with ID {tenant_id} not found", {"tenant_id": tenant_id})
    if not tenant.is_active:
        raise ValidationError("Tenant is not active", {"tenant_id": tenant_id})
    return tenant
