# Overview: Request coercion and column-driven payload validation for catalog writes.

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from sqlalchemy import Boolean, Integer, String, Text

from .errors import ValidationError
from .time_utils import parse_iso_datetime


# Largest accepted price or cost: 999,999,999 cents
MAX_PRICE_CENTS = 999_999_999


@dataclass(frozen=True)
class FieldPolicy:
    """
    Which model columns a client may write, and which must be present on create.

    The allowlist is the security boundary: stock_quantity, status and
    tenant_id are never client-writable, so they are never listed.
    """
    writable: frozenset[str]
    required_on_create: frozenset[str] = field(default_factory=frozenset)


PRODUCT_POLICY = FieldPolicy(
    writable=frozenset({
        "name", "sku", "barcode", "description", "category_id",
        "price_cents", "cost_cents", "min_stock_level",
    }),
    required_on_create=frozenset({"name", "sku", "price_cents"}),
)


def coerce_int(value: Any, field_name: str) -> int:
    """
    Strict integer coercion for request input.

    Accepts ints and plain digit strings; rejects bools, floats, decimals
    and scientific notation.
    """
    if isinstance(value, bool):
        raise ValidationError(f"{field_name} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        raise ValidationError(f"{field_name} must be an integer, not a decimal")
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field_name} must be an integer")

    text = value.strip()
    if "e" in text.lower():
        raise ValidationError(f"{field_name} must be a plain integer (scientific notation not allowed)")
    if "." in text:
        raise ValidationError(f"{field_name} must be an integer (no decimals)")
    try:
        return int(text)
    except ValueError:
        raise ValidationError(f"{field_name} must be an integer")


def optional_int(value: Any, field_name: str) -> int | None:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    return coerce_int(value, field_name)


def parse_datetime_arg(value: str | None, field_name: str) -> datetime | None:
    try:
        return parse_iso_datetime(value)
    except ValueError:
        raise ValidationError(f"{field_name} must be an ISO-8601 date or datetime")


def _normalize(column, value: Any):
    """Coerce one non-null value to the column's type and enforce String length."""
    if isinstance(column.type, Integer):
        return coerce_int(value, column.key)
    if isinstance(column.type, Boolean):
        return value if isinstance(value, bool) else bool(value)
    if not isinstance(column.type, (String, Text)):
        return value

    text = str(value).strip()
    if text == "" and not column.nullable:
        raise ValidationError(f"{column.key} cannot be blank")
    limit = getattr(column.type, "length", None)
    if limit and len(text) > limit:
        raise ValidationError(f"{column.key} exceeds max length {limit}")
    return text


def validate_payload(*, model, payload: dict, policy: FieldPolicy, partial: bool) -> dict:
    """
    Validate incoming JSON against the model's columns and a field policy.

    partial=False applies create semantics (required fields enforced);
    partial=True validates only the keys that were sent. Returns a patch
    dict of normalized values.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    rejected = sorted(k for k in payload if k not in policy.writable)
    if rejected:
        raise ValidationError(f"Field not allowed: {', '.join(rejected)}")

    if not partial:
        missing = sorted(policy.required_on_create - payload.keys())
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    columns = {c.key: c for c in model.__mapper__.columns}
    patch: dict = {}
    for key, raw in payload.items():
        column = columns.get(key)
        if column is None:
            raise ValidationError(f"Unknown field: {key}")
        if raw is None:
            if not column.nullable:
                raise ValidationError(f"{key} cannot be null")
            patch[key] = None
        else:
            patch[key] = _normalize(column, raw)
    return patch


def enforce_rules_product(patch: dict) -> None:
    """Product rules the column metadata cannot express."""
    for name in ("price_cents", "cost_cents"):
        value = patch.get(name)
        if value is None:
            continue
        if value < 0:
            raise ValidationError(f"{name} must be >= 0")
        if value > MAX_PRICE_CENTS:
            raise ValidationError(f"{name} cannot exceed {MAX_PRICE_CENTS} cents")

    if patch.get("min_stock_level") is not None and patch["min_stock_level"] < 0:
        raise ValidationError("min_stock_level must be >= 0")

    # Empty barcodes are stored as NULL so the per-tenant unique index ignores them
    if patch.get("barcode") == "":
        patch["barcode"] = None
