from __future__ import annotations
from datetime import datetime
from station.time_utils import parse_iso_datetime

from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import Boolean, Integer, Float, String, Text, DateTime
from sqlalchemy.orm import DeclarativeMeta


# Keeps prices within a sane range for a single catalog item
MAX_PRICE = 9_999_999.99


class ValidationError(ValueError):
    """400-level input problem. Carries every field error found, not just the first."""

    def __init__(self, errors: list[dict] | str, field_name: str | None = None):
        if isinstance(errors, str):
            errors = [{"field": field_name, "message": errors}]
        self.errors = errors
        super().__init__("; ".join(e["message"] for e in errors))

    def to_dict(self) -> dict:
        return {"error": "Validation failed", "errors": self.errors}


class NotFoundError(LookupError):
    """404-level: an id in the path or payload doesn't resolve."""


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., duplicate name, last admin)."""


class BusinessRuleError(ValueError):
    """400-level rule violation detected mid-workflow (inactive service, stock)."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    - choices: enum-like fields and their allowed values
    - minimums: inclusive lower bounds for numeric fields
    """
    writable_fields: set[str]
    required_on_create: set[str] = field(default_factory=set)
    choices: dict[str, tuple] = field(default_factory=dict)
    minimums: dict[str, float] = field(default_factory=dict)


class _FieldError(Exception):
    pass


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    # Integers - strict validation to reject floats and scientific notation
    if isinstance(coltype, Integer):
        # Already an int (but not bool which is a subclass of int)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        # JSON clients often send 3.0 for 3
        if isinstance(value, float) and value.is_integer():
            return int(value)
        if isinstance(value, str):
            stripped = value.strip()
            if not stripped or 'e' in stripped.lower() or '.' in stripped:
                raise _FieldError(f"{col.key} must be an integer")
            try:
                return int(stripped)
            except ValueError:
                raise _FieldError(f"{col.key} must be an integer")
        raise _FieldError(f"{col.key} must be an integer")

    if isinstance(coltype, Float):
        if isinstance(value, bool):
            raise _FieldError(f"{col.key} must be a number")
        if isinstance(value, (int, float)):
            return float(value)
        if isinstance(value, str):
            try:
                return float(value.strip())
            except ValueError:
                raise _FieldError(f"{col.key} must be a number")
        raise _FieldError(f"{col.key} must be a number")

    # Booleans
    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        if isinstance(value, str) and value.strip().lower() in ("true", "false"):
            return value.strip().lower() == "true"
        # fallback: truthiness
        return bool(value)

    # Datetimes (accept ISO-8601 strings; normalize to UTC)
    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                raise _FieldError(f"{col.key} must be an ISO-8601 datetime")
            if dt is None:
                raise _FieldError(f"{col.key} must be an ISO-8601 datetime")
            return dt
        raise _FieldError(f"{col.key} must be a datetime")

    # Strings / Text
    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    # Default: leave as-is
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
    - a policy allowlist (writable_fields), enum choices and minimums
    - required_on_create (if partial=False)
    Returns a cleaned patch dict with only writable fields.

    partial=False: create semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)

    All problems are collected and raised together as one ValidationError.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    errors: list[dict] = []

    def fail(key: str | None, message: str) -> None:
        errors.append({"field": key, "message": message})

    if not partial:
        for f in sorted(policy.required_on_create):
            if payload.get(f) is None or payload.get(f) == "":
                fail(f, f"{f} is required")

    cols = _columns_by_key(model)

    patch: dict = {}

    for k, raw in payload.items():
        # Reject unknown / non-writable fields
        if k not in policy.writable_fields:
            fail(k, f"Field not allowed: {k}")
            continue
        col = cols.get(k)
        if col is None:
            fail(k, f"Unknown field: {k}")
            continue

        # NULL handling
        if raw is None:
            if not col.nullable and not (k in policy.required_on_create and not partial):
                fail(k, f"{k} cannot be null")
            elif col.nullable:
                patch[k] = None
            continue

        try:
            val = _coerce_value(col, raw)
        except _FieldError as exc:
            fail(k, str(exc))
            continue

        # Blank string check for non-nullable text fields
        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                # raw "" was already reported as missing above
                if partial or k not in policy.required_on_create or raw != "":
                    fail(k, f"{k} cannot be blank")
                continue

        # Max length check for String(n)
        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                fail(k, f"{k} exceeds max length {col.type.length}")
                continue

        if k in policy.choices and val not in policy.choices[k]:
            fail(k, f"{k} must be one of: {', '.join(policy.choices[k])}")
            continue

        if k in policy.minimums and isinstance(val, (int, float)) and val < policy.minimums[k]:
            fail(k, f"{k} must be >= {policy.minimums[k]:g}")
            continue

        patch[k] = val

    if errors:
        raise ValidationError(errors)

    return patch


def enforce_rules_price(patch: dict) -> None:
    """Business rules that are not captured by SQLAlchemy metadata alone."""
    if "price" in patch and patch["price"] is not None:
        if patch["price"] > MAX_PRICE:
            raise ValidationError(f"price cannot exceed {MAX_PRICE:,.2f}", field_name="price")


def parse_sort(value: str | None, sortable: dict[str, Any], default: list):
    """
    Turn a `field:asc|desc` query value into ORDER BY clauses.

    `sortable` maps public field names to columns. The column's id is not
    added here; callers append their own tiebreaker.
    """
    if not value:
        return default
    field_name, _, order = value.partition(":")
    field_name = field_name.strip()
    column = sortable.get(field_name)
    if column is None:
        raise ValidationError(
            f"Cannot sort by {field_name!r}; allowed: {', '.join(sorted(sortable))}",
            field_name="sort",
        )
    order = (order or "asc").strip().lower()
    if order not in ("asc", "desc"):
        raise ValidationError("sort order must be asc or desc", field_name="sort")
    return [column.desc() if order == "desc" else column.asc()]


def parse_bool_arg(value: str | None) -> bool | None:
    """Query-string boolean: 'true' / 'false' / absent."""
    if value is None or value == "":
        return None
    lowered = value.strip().lower()
    if lowered in ("true", "1", "yes"):
        return True
    if lowered in ("false", "0", "no"):
        return False
    raise ValidationError(f"Expected true or false, got {value!r}")
