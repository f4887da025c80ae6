# Overview: Service-layer operations for users and global roles.

from __future__ import annotations

from flask import current_app

from ..errors import ConflictError, NotFound, ValidationError
from ..extensions import db
from ..models import Role, User
from .tenant_service import require_active_tenant


SUPER_ADMIN = "SuperAdmin"
TENANT_ADMIN = "TenantAdmin"
CASHIER = "Cashier"
VIEWER = "Viewer"

DEFAULT_ROLES = {
    SUPER_ADMIN: "System administrator with full access",
    TENANT_ADMIN: "Tenant administrator with full access to tenant data",
    CASHIER: "Can create and edit sales",
    VIEWER: "Read-only access to tenant data and reports",
}

# Role groups used by route guards
READ_ROLES = (TENANT_ADMIN, CASHIER, VIEWER)
SALES_WRITE_ROLES = (TENANT_ADMIN, CASHIER)
ADMIN_ROLES = (TENANT_ADMIN,)
REPORT_ROLES = (TENANT_ADMIN, VIEWER)


def create_default_roles() -> int:
    """Insert any missing global roles. Returns the number created."""
    created = 0
    for name, description in DEFAULT_ROLES.items():
        if db.session.query(Role).filter_by(name=name).first():
            continue
        db.session.add(Role(name=name, description=description))
        created += 1
    db.session.commit()
    return created


def create_user(
    username: str,
    email: str,
    *,
    tenant_id: int | None = None,
    full_name: str | None = None,
    roles: tuple[str, ...] | list[str] = (),
) -> User:
    username = (username or "").strip()
    email = (email or "").strip().lower()
    if not username or not email:
        raise ValidationError("username and email are required")

    if tenant_id is None and SUPER_ADMIN not in roles:
        raise ValidationError("Only SuperAdmin users may exist without a tenant")
    if tenant_id is not None:
        require_active_tenant(tenant_id)

    if db.session.query(User).filter_by(username=username).first():
        raise ConflictError(f'Username "{username}" is already taken')
    if db.session.query(User).filter_by(email=email).first():
        raise ConflictError(f'Email "{email}" is already registered')

    user = User(username=username, email=email, tenant_id=tenant_id, full_name=full_name, is_active=True)
    db.session.add(user)
    db.session.flush()

    for role_name in roles:
        _attach_role(user, role_name)

    db.session.commit()
    current_app.logger.info("User created: id=%s username=%s tenant=%s", user.id, username, tenant_id)
    return user


def _attach_role(user: User, role_name: str) -> None:
    role = db.session.query(Role).filter_by(name=role_name).first()
    if not role:
        raise ValidationError(f'Unknown role "{role_name}"', {"valid_roles": sorted(DEFAULT_ROLES)})
    if role in user.roles:
        return
    user.roles.append(role)


def assign_role(user_id: int, role_name: str) -> User:
    user = db.session.get(User, user_id)
    if not user:
        raise NotFound(f"User with ID {user_id} not found", {"user_id": user_id})
    _attach_role(user, role_name)
    db.session.commit()
    return user


def user_has_any_role(user: User, role_names) -> bool:
    names = user.role_names
    if SUPER_ADMIN in names:
        return True
    return any(name in names for name in role_names)
