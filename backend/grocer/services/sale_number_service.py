# Overview: Service-layer operations for sale numbers; encapsulates business logic and database work.

"""
Sale Number Generation

Format: SALE-<YYYYMMDD>-<NNN>, NNN a zero-padded random number in 0..999.
Uniqueness is per tenant (uq_sales_tenant_sale_number).

Bounded retry: one initial probe plus up to SALE_NUMBER_MAX_ATTEMPTS
re-draws; if every candidate is taken, fall back to an 8-character suffix
from a fresh uuid4. Termination is guaranteed; a collision on the fallback
raises DuplicateIdentifier.

Callers hold the ("sale-number", tenant_id) lock from probe to commit so
two requests in this process cannot draw the same free number.
"""

from __future__ import annotations

import random
import uuid
from datetime import datetime

from flask import current_app

from ..errors import DuplicateIdentifier
from ..extensions import db
from ..models import Sale
from ..time_utils import date_stamp


SALE_NUMBER_PREFIX = "SALE"


def format_sale_number(stamp: str, suffix: str) -> str:
    return f"{SALE_NUMBER_PREFIX}-{stamp}-{suffix}"


def random_suffix(rng=None) -> str:
    rng = rng or random
    return f"{rng.randrange(1000):03d}"


def fallback_suffix() -> str:
    return uuid.uuid4().hex[:8].upper()


def sale_number_exists(tenant_id: int, sale_number: str) -> bool:
    return db.session.query(
        db.session.query(Sale.id).filter_by(tenant_id=tenant_id, sale_number=sale_number).exists()
    ).scalar()


def generate_sale_number(
    tenant_id: int,
    *,
    now: datetime | None = None,
    max_attempts: int | None = None,
    rng=None,
) -> str:
    if max_attempts is None:
        max_attempts = current_app.config.get("SALE_NUMBER_MAX_ATTEMPTS", 10)
    stamp = date_stamp(now)

    candidate = format_sale_number(stamp, random_suffix(rng))
    attempts = 0
    while sale_number_exists(tenant_id, candidate) and attempts < max_attempts:
        candidate = format_sale_number(stamp, random_suffix(rng))
        attempts += 1

    if not sale_number_exists(tenant_id, candidate):
        return candidate

    fallback = format_sale_number(stamp, fallback_suffix())
    current_app.logger.warning(
        "Sale number space exhausted after %s retries: tenant=%s day=%s, using %s",
        attempts, tenant_id, stamp, fallback,
    )
    if sale_number_exists(tenant_id, fallback):
        raise DuplicateIdentifier(
            "Could not generate a unique sale number",
            {"tenant_id": tenant_id, "sale_number": fallback},
        )
    return fallback
