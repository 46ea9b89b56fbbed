from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from sqlalchemy import Boolean, Integer, String, Text
from sqlalchemy.orm import DeclarativeMeta

from .errors import ValidationError, ConflictError  # noqa: F401  (re-exported for routes)
from .commands import SaleCommand, SaleLineCommand, StockMovementCommand
from .models import StockMovementType


# Maximum price/cost: $9,999,999.99 (999,999,999 cents)
# This prevents database overflow issues and nonsensical amounts
MAX_PRICE_CENTS = 999_999_999


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


def _coerce_int(key: str, value: Any) -> int:
    # Already an int (but not bool which is a subclass of int)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    # String input - must be plain digits (with optional leading minus)
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{key} must be an integer")
        # Reject scientific notation (e.g., "1e15", "1E10")
        if 'e' in stripped.lower():
            raise ValidationError(f"{key} must be a plain integer (scientific notation not allowed)")
        # Reject decimal points (e.g., "12.5")
        if '.' in stripped:
            raise ValidationError(f"{key} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{key} must be an integer")
    if isinstance(value, float):
        raise ValidationError(f"{key} must be an integer, not a decimal")
    raise ValidationError(f"{key} must be an integer")


_TRUE_STRINGS = {"true", "1"}
_FALSE_STRINGS = {"false", "0"}


def _coerce_bool(key: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    # JSON 0/1 and the strings "true"/"false"/"1"/"0"; anything else is an error
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE_STRINGS:
            return True
        if lowered in _FALSE_STRINGS:
            return False
    raise ValidationError(f"{key} must be a boolean")


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    if isinstance(coltype, Integer):
        return _coerce_int(col.key, value)

    if isinstance(coltype, Boolean):
        return _coerce_bool(col.key, value)

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

    required = policy.required_on_create or set()
    if not partial:
        missing = sorted(f for f in required if f not in payload)
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)

    # Reject unknown / non-writable fields
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

        # Blank string check for non-nullable text fields
        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank")

        # Max length check for String(n)
        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch


def _check_cents(key: str, value: int | None) -> None:
    if value is None:
        return
    if value < 0:
        raise ValidationError(f"{key} must be >= 0")
    if value > MAX_PRICE_CENTS:
        raise ValidationError(f"{key} cannot exceed {MAX_PRICE_CENTS} (${MAX_PRICE_CENTS / 100:,.2f})")


def enforce_rules_product(patch: dict) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    Keep these small and centralized.
    """
    _check_cents("price_cents", patch.get("price_cents"))
    _check_cents("cost_cents", patch.get("cost_cents"))
    if patch.get("min_stock_level") is not None and patch["min_stock_level"] < 0:
        raise ValidationError("min_stock_level must be >= 0")


def _require(payload: dict, key: str):
    if key not in payload or payload[key] is None:
        raise ValidationError(f"{key} is required")
    return payload[key]


def _optional_int(payload: dict, key: str, default: int | None = None) -> int | None:
    raw = payload.get(key)
    if raw is None:
        return default
    return _coerce_int(key, raw)


def _reject_unknown(payload: dict, allowed: set[str], where: str = "") -> None:
    for k in payload.keys():
        if k not in allowed:
            raise ValidationError(f"Field not allowed: {where}{k}")


STOCK_MOVEMENT_FIELDS = {"product_id", "warehouse_id", "type", "quantity", "cost_cents", "note"}
SALE_FIELDS = {"customer_id", "warehouse_id", "discount_cents", "notes", "items"}
SALE_LINE_FIELDS = {"product_id", "quantity", "unit_price_cents", "discount_cents"}


def parse_stock_movement(payload: dict, *, user_id: str) -> StockMovementCommand:
    """Build a StockMovementCommand from JSON."""
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    _reject_unknown(payload, STOCK_MOVEMENT_FIELDS)

    try:
        movement_type = StockMovementType.parse(_require(payload, "type"))
    except ValueError as e:
        raise ValidationError(str(e))

    cost_cents = _optional_int(payload, "cost_cents", 0)
    _check_cents("cost_cents", cost_cents)

    note = payload.get("note") or ""
    if len(str(note)) > 255:
        raise ValidationError("note exceeds max length 255")

    return StockMovementCommand(
        product_id=_coerce_int("product_id", _require(payload, "product_id")),
        warehouse_id=_coerce_int("warehouse_id", _require(payload, "warehouse_id")),
        type=movement_type,
        quantity=_coerce_int("quantity", _require(payload, "quantity")),
        cost_cents=cost_cents,
        note=str(note).strip(),
        user_id=user_id,
    )


def parse_sale(payload: dict, *, user_id: str) -> SaleCommand:
    """Build a SaleCommand from JSON. Client-supplied totals are not accepted."""
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    _reject_unknown(payload, SALE_FIELDS)

    raw_items = _require(payload, "items")
    if not isinstance(raw_items, list) or not raw_items:
        raise ValidationError("Sale must have at least one item")

    items = []
    for i, raw in enumerate(raw_items):
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{i}] must be an object")
        _reject_unknown(raw, SALE_LINE_FIELDS, where=f"items[{i}].")
        unit_price = _coerce_int(f"items[{i}].unit_price_cents", _require(raw, "unit_price_cents"))
        discount = _optional_int(raw, "discount_cents", 0)
        _check_cents(f"items[{i}].unit_price_cents", unit_price)
        _check_cents(f"items[{i}].discount_cents", discount)
        try:
            items.append(SaleLineCommand(
                product_id=_coerce_int(f"items[{i}].product_id", _require(raw, "product_id")),
                quantity=_coerce_int(f"items[{i}].quantity", _require(raw, "quantity")),
                unit_price_cents=unit_price,
                discount_cents=discount,
            ))
        except ValidationError as e:
            raise ValidationError(f"items[{i}]: {e}")

    customer_id = _coerce_int("customer_id", _require(payload, "customer_id"))
    if customer_id <= 0:
        raise ValidationError("Customer is required")

    discount_cents = _optional_int(payload, "discount_cents", 0)
    _check_cents("discount_cents", discount_cents)

    notes = payload.get("notes")
    return SaleCommand(
        customer_id=customer_id,
        items=tuple(items),
        user_id=user_id,
        warehouse_id=_optional_int(payload, "warehouse_id"),
        discount_cents=discount_cents,
        notes=str(notes).strip() if notes is not None else None,
    )
