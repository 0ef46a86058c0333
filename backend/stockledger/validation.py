from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from sqlalchemy import Boolean, Integer, String, Text, DateTime
from sqlalchemy.orm import DeclarativeMeta

from .errors import ValidationError
from .time_utils import parse_iso_datetime


# Maximum price: 9,999,999.99 (999,999,999 cents)
MAX_PRICE_CENTS = 999_999_999
MAX_BPS = 10_000

PRICE_RULE_TARGETS = ("public", "b2b")
PRICE_RULE_SCOPES = ("all", "category", "supplier")
PRICE_RULE_TYPES = ("percent", "fixed")
SERIES_SCOPES = ("sale_b2c", "sale_b2b", "return", "deposit", "web")
LOCATION_TYPES = ("warehouse", "retail")


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    # Integers - strict validation to reject floats and scientific notation
    if isinstance(coltype, Integer):
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        if isinstance(value, str):
            stripped = value.strip()
            if not stripped:
                raise ValidationError(f"{col.key} must be an integer")
            if 'e' in stripped.lower():
                raise ValidationError(f"{col.key} must be a plain integer (scientific notation not allowed)")
            if '.' in stripped:
                raise ValidationError(f"{col.key} must be an integer (no decimals)")
            try:
                return int(stripped)
            except ValueError:
                raise ValidationError(f"{col.key} must be an integer")
        if isinstance(value, float):
            raise ValidationError(f"{col.key} must be an integer, not a decimal")
        raise ValidationError(f"{col.key} must be an integer")

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        raise ValidationError(f"{col.key} must be a boolean")

    # Datetimes (accept ISO-8601 strings; normalize to UTC)
    if isinstance(coltype, DateTime):
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
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming JSON against:
    - SQLAlchemy column metadata (nullable, type, String length)
    - a policy allowlist (writable_fields)
    - required_on_create (if partial=False)
    Returns a cleaned patch dict with only writable fields.

    partial=False: create semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    required = policy.required_on_create or set()
    if not partial:
        missing = sorted(f for f in required if f not in payload)
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)

    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}")
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}")

    patch: dict = {}

    for k, raw in payload.items():
        col = cols[k]

        if raw is None:
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


def _check_choice(patch: dict, field: str, choices: tuple[str, ...]) -> None:
    if field in patch and patch[field] not in choices:
        raise ValidationError(f"{field} must be one of {', '.join(choices)}")


def enforce_rules_price_rule(patch: dict) -> None:
    _check_choice(patch, "target", PRICE_RULE_TARGETS)
    _check_choice(patch, "scope", PRICE_RULE_SCOPES)
    _check_choice(patch, "type", PRICE_RULE_TYPES)

    value = patch.get("value")
    if value is not None:
        if value < 0:
            raise ValidationError("value must be >= 0")
        if patch.get("type") == "percent" and value > MAX_BPS:
            raise ValidationError("percent value is expressed in basis points (max 10000)")
        if patch.get("type") == "fixed" and value > MAX_PRICE_CENTS:
            raise ValidationError(f"value cannot exceed {MAX_PRICE_CENTS}")


def enforce_rules_series(patch: dict) -> None:
    _check_choice(patch, "scope", SERIES_SCOPES)

    if patch.get("next_number") is not None and patch["next_number"] < 1:
        raise ValidationError("next_number must be >= 1")
    if patch.get("padding") is not None and not 1 <= patch["padding"] <= 12:
        raise ValidationError("padding must be between 1 and 12")
    if patch.get("year") is not None and not 1900 <= patch["year"] <= 9999:
        raise ValidationError("year must be a four digit year")


def enforce_rules_location(patch: dict) -> None:
    _check_choice(patch, "type", LOCATION_TYPES)


def parse_positive_int(value: Any, field: str) -> int:
    """Strict positive integer (bools, floats and numeric strings with decimals rejected)."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{field} must be a positive integer")
    if value <= 0:
        raise ValidationError(f"{field} must be a positive integer")
    return value


def parse_optional_cents(value: Any, field: str) -> int | None:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{field} must be an integer amount in cents")
    if value < 0:
        raise ValidationError(f"{field} must be >= 0")
    if value > MAX_PRICE_CENTS:
        raise ValidationError(f"{field} cannot exceed {MAX_PRICE_CENTS}")
    return value
