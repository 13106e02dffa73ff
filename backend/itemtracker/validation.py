from __future__ import annotations
from datetime import date, datetime
from itemtracker.time_utils import parse_iso_date, parse_iso_datetime

from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from sqlalchemy import Boolean, Date, DateTime, Enum, Integer, Numeric, String, Text
from sqlalchemy.orm import DeclarativeMeta

from .config import Config
from .models import ItemCategory
from .money import to_decimal


# Maximum price: 99,999,999.99 (Numeric(10, 2))
MAX_PRICE = Decimal("99999999.99")

# Quantities above this are almost certainly input mistakes
MAX_QUANTITY = 1_000_000_000


class ValidationError(ValueError):
    """400-level input problem."""


class NotFoundError(LookupError):
    """404-level: row absent or not owned by the requester."""


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., duplicate item name)."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    - ignored_fields: accepted in the payload but not written to the model
      (control flags such as skipDuplicateCheck)
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore
    ignored_fields: set[str] | None = None


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
        # String input - must be plain digits (with optional leading minus)
        if isinstance(value, str):
            stripped = value.strip()
            if not stripped:
                raise ValidationError(f"{col.key} must be an integer")
            # Reject scientific notation (e.g., "1e15", "1E10")
            if 'e' in stripped.lower():
                raise ValidationError(f"{col.key} must be a plain integer (scientific notation not allowed)")
            # Reject decimal points (e.g., "12.5")
            if '.' in stripped:
                raise ValidationError(f"{col.key} must be an integer (no decimals)")
            try:
                return int(stripped)
            except ValueError:
                raise ValidationError(f"{col.key} must be an integer")
        # Reject floats explicitly
        if isinstance(value, float):
            if value.is_integer():
                return int(value)
            raise ValidationError(f"{col.key} must be an integer, not a decimal")
        # Other types
        raise ValidationError(f"{col.key} must be an integer")

    # Money
    if isinstance(coltype, Numeric):
        try:
            return to_decimal(value)
        except ValueError:
            raise ValidationError(f"{col.key} must be a number")

    # Booleans
    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        # fallback: truthiness
        return bool(value)

    # Calendar dates (YYYY-MM-DD)
    if isinstance(coltype, Date) and not isinstance(coltype, DateTime):
        if isinstance(value, date) and not isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                d = parse_iso_date(value)
            except ValueError:
                raise ValidationError(f"{col.key} must be a date in YYYY-MM-DD format")
            if d is None:
                raise ValidationError(f"{col.key} must be a date in YYYY-MM-DD format")
            return d
        raise ValidationError(f"{col.key} must be a date in YYYY-MM-DD format")

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

    # Enums are set by services, never by clients
    if isinstance(coltype, Enum):
        raise ValidationError(f"{col.key} is read-only")

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

    ignored = policy.ignored_fields or set()
    required = policy.required_on_create or set()
    if not partial:
        missing = [f for f in sorted(required) if f not in payload]
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)

    # Reject unknown / non-writable fields
    for k in payload.keys():
        if k in ignored:
            continue
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}")
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}")

    patch: dict = {}

    for k, raw in payload.items():
        if k in ignored:
            continue
        col = cols[k]

        # NULL handling
        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        # Blank string check for non-nullable text fields
        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank")

        # Optional text: blank means "clear"
        if isinstance(col.type, (String, Text)) and col.nullable and val == "":
            val = None

        # Max length check for String(n)
        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch


def _check_price(field: str, value) -> None:
    if value is None:
        return
    if value < 0:
        raise ValidationError(f"{field} must be >= 0")
    if value > MAX_PRICE:
        raise ValidationError(f"{field} cannot exceed {MAX_PRICE}")


def _check_currency(field: str, value) -> None:
    if value is None:
        return
    value = value.upper()
    if value not in Config.SUPPORTED_CURRENCIES:
        raise ValidationError(
            f"{field} must be one of: {', '.join(Config.SUPPORTED_CURRENCIES)}"
        )


def enforce_rules_item(patch: dict) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    Keep these small and centralized.
    """
    if "quantity" in patch:
        qty = patch["quantity"]
        if qty is None or qty < 0:
            raise ValidationError("quantity must be >= 0")
        if qty > MAX_QUANTITY:
            raise ValidationError(f"quantity cannot exceed {MAX_QUANTITY}")

    _check_price("price_per_unit", patch.get("price_per_unit"))
    _check_price("purchase_price", patch.get("purchase_price"))

    for field in ("currency", "purchase_currency"):
        if patch.get(field) is not None:
            _check_currency(field, patch[field])
            patch[field] = patch[field].upper()

    if patch.get("category") is not None:
        allowed = {c.value for c in ItemCategory}
        if patch["category"] not in allowed:
            raise ValidationError(f"category must be one of: {', '.join(sorted(allowed))}")


def enforce_rules_sale(patch: dict) -> None:
    # quantity_sold > 0, sale_price >= 0
    if "item_id" in patch and patch["item_id"] is None:
        raise ValidationError("item_id is required")

    if "quantity_sold" in patch:
        qty = patch["quantity_sold"]
        if qty is None or qty <= 0:
            raise ValidationError("quantity_sold must be > 0")
        if qty > MAX_QUANTITY:
            raise ValidationError(f"quantity_sold cannot exceed {MAX_QUANTITY}")

    if "sale_price" in patch:
        if patch["sale_price"] is None:
            raise ValidationError("sale_price is required")
        _check_price("sale_price", patch["sale_price"])


def parse_date_param(value: str | None, field: str) -> date:
    """Required YYYY-MM-DD query/path parameter."""
    if value is None or not str(value).strip():
        raise ValidationError(f"{field} is required")
    try:
        return parse_iso_date(value)
    except ValueError:
        raise ValidationError(f"{field} must be a date in YYYY-MM-DD format")
