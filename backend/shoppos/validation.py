from __future__ import annotations
from datetime import datetime
from shoppos.time_utils import parse_iso_datetime, parse_range_bound

from dataclasses import dataclass
from typing import Any

from sqlalchemy import Boolean, Integer, String, Text, DateTime
from sqlalchemy.orm import DeclarativeMeta

from .errors import ValidationError


# Maximum amount: 9,999,999.99 in major units
MAX_AMOUNT_CENTS = 999_999_999
MAX_QUANTITY = 1_000_000


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


def coerce_int(key: str, value: Any) -> int:
    """Strict integer coercion; rejects bools, floats, decimals and scientific notation."""
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{key} must be an integer")
        if 'e' in stripped.lower():
            raise ValidationError(f"{key} must be a plain integer (scientific notation not allowed)")
        if '.' in stripped:
            raise ValidationError(f"{key} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{key} must be an integer")
    if isinstance(value, float):
        raise ValidationError(f"{key} must be an integer, not a decimal")
    raise ValidationError(f"{key} must be an integer")


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    if isinstance(coltype, Integer):
        return coerce_int(col.key, value)

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        raise ValidationError(f"{col.key} must be a boolean")

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
        if not isinstance(value, (str, int)) or isinstance(value, bool):
            raise ValidationError(f"{col.key} must be a string")
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


def check_amount(key: str, value: int | None, *, allow_zero: bool = True) -> None:
    if value is None:
        return
    if value < 0 or (value == 0 and not allow_zero):
        raise ValidationError(f"{key} must be {'>= 0' if allow_zero else '> 0'}")
    if value > MAX_AMOUNT_CENTS:
        raise ValidationError(f"{key} cannot exceed {MAX_AMOUNT_CENTS}")


def check_quantity(key: str, value: int | None) -> None:
    if value is None:
        return
    if value <= 0:
        raise ValidationError(f"{key} must be > 0")
    if value > MAX_QUANTITY:
        raise ValidationError(f"{key} cannot exceed {MAX_QUANTITY}")


def enforce_rules_product(patch: dict) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    Composite wiring is checked against the database in catalog_service.
    """
    check_amount("price_cents", patch.get("price_cents"))
    check_amount("cost_price_cents", patch.get("cost_price_cents"))
    if "pack_size" in patch and patch["pack_size"] is not None and patch["pack_size"] < 1:
        raise ValidationError("pack_size must be >= 1")
    if patch.get("sausages_per_unit") is not None and patch["sausages_per_unit"] < 1:
        raise ValidationError("sausages_per_unit must be >= 1")


def enforce_rules_phone(patch: dict) -> None:
    from .models import PHONE_CONDITIONS

    check_amount("purchase_price_cents", patch.get("purchase_price_cents"))
    check_amount("sale_price_cents", patch.get("sale_price_cents"))
    if "condition" in patch and patch["condition"] not in PHONE_CONDITIONS:
        raise ValidationError(f"condition must be one of: {', '.join(PHONE_CONDITIONS)}")


def require_dict(payload: Any) -> dict:
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    return payload


def optional_int(payload: dict, key: str) -> int | None:
    raw = payload.get(key)
    if raw is None:
        return None
    return coerce_int(key, raw)


def required_int(payload: dict, key: str) -> int:
    if payload.get(key) is None:
        raise ValidationError(f"{key} is required")
    return coerce_int(key, payload[key])


def optional_str(payload: dict, key: str, max_length: int = 255) -> str | None:
    raw = payload.get(key)
    if raw is None:
        return None
    if not isinstance(raw, str):
        raise ValidationError(f"{key} must be a string")
    value = raw.strip()
    if len(value) > max_length:
        raise ValidationError(f"{key} exceeds max length {max_length}")
    return value or None


def parse_sale_items(raw_items: Any) -> list[dict]:
    """
    Normalize cart lines to [{product_id, quantity, unit_price_cents|None}].
    unit_price_cents may be omitted; the product's price is used then.
    """
    if not isinstance(raw_items, list) or not raw_items:
        raise ValidationError("items must be a non-empty list")

    lines = []
    for index, raw in enumerate(raw_items):
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{index}] must be an object")
        product_id = required_int(raw, "product_id")
        quantity = required_int(raw, "quantity")
        check_quantity(f"items[{index}].quantity", quantity)
        unit_price = optional_int(raw, "unit_price_cents")
        check_amount(f"items[{index}].unit_price_cents", unit_price)
        lines.append({
            "product_id": product_id,
            "quantity": quantity,
            "unit_price_cents": unit_price,
        })
    return lines


def parse_query_int(raw: str | None, key: str, default: int, *, minimum: int = 1, maximum: int | None = None) -> int:
    if raw is None or raw == "":
        return default
    value = coerce_int(key, raw)
    if value < minimum:
        value = minimum
    if maximum is not None and value > maximum:
        value = maximum
    return value


def parse_query_range(args) -> tuple[datetime | None, datetime | None]:
    """from/to query params; a bare-date 'to' covers the whole day."""
    try:
        start = parse_range_bound(args.get("from"))
        end = parse_range_bound(args.get("to"), end=True)
    except ValueError:
        raise ValidationError("from/to must be ISO-8601 dates or datetimes")
    if start and end and start > end:
        raise ValidationError("from must not be after to")
    return start, end


def parse_query_bool(raw: str | None, key: str) -> bool | None:
    if raw is None or raw == "":
        return None
    value = raw.strip().lower()
    if value in {"1", "true", "yes"}:
        return True
    if value in {"0", "false", "no"}:
        return False
    raise ValidationError(f"{key} must be true or false")
