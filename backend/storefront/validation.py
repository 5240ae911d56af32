from __future__ import annotations
from datetime import datetime
from decimal import Decimal
from storefront.time_utils import parse_iso_datetime

from dataclasses import dataclass
from typing import Any

from sqlalchemy import Boolean, Integer, Numeric, String, Text, DateTime

from storefront.money import to_money


# Largest amount a NUMERIC(10, 2) column holds
MAX_AMOUNT = Decimal("99999999.99")


class ValidationError(ValueError):
    """400-level input problem."""


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., duplicate coupon code)."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    """
    writable_fields: frozenset[str]
    required_on_create: frozenset[str] = frozenset()


def _columns_by_key(model) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    # Booleans before Integer: bool is an int subclass
    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        if isinstance(value, str) and value.strip().lower() in ("true", "1", "yes"):
            return True
        if isinstance(value, str) and value.strip().lower() in ("false", "0", "no"):
            return False
        raise ValidationError(f"{col.key} must be a boolean")

    # Integers - reject floats, bools and scientific notation
    if isinstance(coltype, Integer):
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        if isinstance(value, str):
            stripped = value.strip()
            if not stripped or "e" in stripped.lower() or "." in stripped:
                raise ValidationError(f"{col.key} must be a plain integer")
            try:
                return int(stripped)
            except ValueError:
                raise ValidationError(f"{col.key} must be an integer")
        raise ValidationError(f"{col.key} must be an integer")

    # Money - accept numbers and numeric strings, keep 2 decimals
    if isinstance(coltype, Numeric):
        if isinstance(value, bool):
            raise ValidationError(f"{col.key} must be a number")
        try:
            amount = to_money(value)
        except ValueError:
            raise ValidationError(f"{col.key} must be a number")
        if abs(amount) > MAX_AMOUNT:
            raise ValidationError(f"{col.key} cannot exceed {MAX_AMOUNT}")
        return amount

    # Datetimes (accept ISO-8601 strings; normalize to UTC)
    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            if dt is None:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            return dt
        raise ValidationError(f"{col.key} must be a datetime")

    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    return value


def validate_payload(
    *,
    model,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming JSON against:
    - SQLAlchemy column metadata (nullable, type, String length)
    - a policy allowlist (writable_fields)
    - required_on_create (if partial=False)
    Returns a cleaned patch dict with only writable column fields.

    Keys in the allowlist that are not columns (e.g. product_ids) are
    passed through untouched for the caller to handle.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    if not partial:
        missing = sorted(f for f in policy.required_on_create if payload.get(f) in (None, ""))
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)

    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}")

    patch: dict = {}

    for k, raw in payload.items():
        col = cols.get(k)
        if col is None:
            patch[k] = raw
            continue

        if raw is None or (raw == "" and col.nullable and not isinstance(col.type, (String, Text))):
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank")

        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch


def enforce_rules_price_adjustment(patch: dict, current=None) -> None:
    """
    Business rules shared by discounts and coupon codes.

    current is the existing row on update, so cross-field checks see the
    merged values.
    """
    from storefront.models.promotions import ADJUSTMENT_TYPES, TYPE_PERCENTAGE

    def merged(key):
        if key in patch:
            return patch[key]
        return getattr(current, key, None) if current is not None else None

    adj_type = merged("type")
    if adj_type is not None and adj_type not in ADJUSTMENT_TYPES:
        raise ValidationError(f"type must be one of: {', '.join(ADJUSTMENT_TYPES)}")

    value = merged("value")
    if value is not None:
        if value < 0:
            raise ValidationError("value must be >= 0")
        if adj_type == TYPE_PERCENTAGE and value > 100:
            raise ValidationError("percentage value must be between 0 and 100")

    for key in ("min_purchase_amount", "max_discount_amount"):
        amount = patch.get(key)
        if amount is not None and amount < 0:
            raise ValidationError(f"{key} must be >= 0")

    for key in ("usage_limit", "usage_limit_per_user"):
        limit = patch.get(key)
        if limit is not None and limit < 0:
            raise ValidationError(f"{key} must be >= 0")

    start, end = merged("start_date"), merged("end_date")
    if start is not None and end is not None and end < start:
        raise ValidationError("end_date must be on or after start_date")
