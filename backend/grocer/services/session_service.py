# Overview: Service-layer operations for session; encapsulates business logic and database work.

"""
Session Token Management Service with Tenant Context

Password and JWT login live outside this service. Operators issue opaque
bearer tokens (CLI `users issue-token`); each token pins the tenant the
holder acts for.

SECURITY FEATURES:
- Cryptographically secure random tokens (32 bytes)
- Tokens hashed with SHA-256 before storage
- Absolute timeout from SESSION_TTL_HOURS
- Revocable; revoked when the user or tenant is deactivated
- Tenant context is immutable for the session lifetime
"""

from __future__ import annotations

import hashlib
import secrets
from dataclasses import dataclass
from datetime import timedelta

from flask import current_app

from ..errors import NotFound, ValidationError
from ..extensions import db
from ..models import SessionToken, Tenant, User
from ..time_utils import utcnow
from .tenant_service import require_active_tenant


@dataclass
class SessionContext:
    """Identity plus tenant context returned by validate_session."""
    user: User
    session: SessionToken
    tenant_id: int | None  # None only for SuperAdmin sessions without a tenant


def generate_token() -> str:
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def create_session(user_id: int, tenant_id: int | None = None) -> tuple[SessionToken, str]:
    """
    Create a session token for a user.

    Tenant users always act for their own tenant. A SuperAdmin may be given
    a tenant_id to act inside that tenant; otherwise the session carries no
    tenant and tenant-scoped operations are refused.

    Returns (session_record, plaintext_token).
    """
    user = db.session.get(User, user_id)
    if not user:
        raise NotFound(f"User with ID {user_id} not found", {"user_id": user_id})
    if not user.is_active:
        raise ValidationError("User is not active", {"user_id": user_id})

    if user.tenant_id is not None:
        if tenant_id is not None and tenant_id != user.tenant_id:
            raise ValidationError("Users can only open sessions for their own tenant")
        tenant_id = user.tenant_id
    if tenant_id is not None:
        require_active_tenant(tenant_id)

    plaintext_token = generate_token()
    now = utcnow()
    ttl = timedelta(hours=current_app.config.get("SESSION_TTL_HOURS", 24))

    session = SessionToken(
        user_id=user.id,
        tenant_id=tenant_id,
        token_hash=hash_token(plaintext_token),
        created_at=now,
        last_used_at=now,
        expires_at=now + ttl,
        is_revoked=False,
    )
    db.session.add(session)
    db.session.commit()

    return session, plaintext_token


def _revoke(session: SessionToken) -> None:
    session.is_revoked = True
    session.revoked_at = utcnow()
    db.session.commit()


def validate_session(token: str) -> SessionContext | None:
    """
    Return the SessionContext for a live token, or None.

    Returns None when the token is unknown, expired or revoked, or when the
    user or tenant has been deactivated (the session is revoked as well).
    """
    session = db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False,
    ).first()
    if not session:
        return None

    now = utcnow()
    if session.expires_at < now:
        return None

    user = session.user
    if not user or not user.is_active:
        _revoke(session)
        return None

    if session.tenant_id is not None:
        tenant = db.session.get(Tenant, session.tenant_id)
        if not tenant or not tenant.is_active:
            _revoke(session)
            return None

    session.last_used_at = now
    db.session.commit()

    return SessionContext(user=user, session=session, tenant_id=session.tenant_id)


def revoke_session(token: str) -> bool:
    session = db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False,
    ).first()
    if not session:
        return False
    _revoke(session)
    return True
