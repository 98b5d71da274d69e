from __future__ import annotations

import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any
from urllib.parse import urlparse

from sqlalchemy import Integer, Numeric, String, Text
from sqlalchemy.orm import DeclarativeMeta

from .money import money_str


# Product form limits
NAME_MIN = 2
NAME_MAX = 255
PRICE_MAX = Decimal("99999.99")
QUANTITY_MAX = 99999
BARCODE_MAX = 50
DESCRIPTION_MAX = 2000
NOTE_MAX = 500

# Order form limits
PHONE_MIN = 9
PHONE_MAX = 15
ADDRESS_MIN = 5
ADDRESS_MAX = 500
COMMENT_MAX = 1000
ORDER_QUANTITY_MAX = 999
COURIER_PRICE_MAX = Decimal("999.99")

# Georgian mobile numbers: 5XXXXXXXX, optionally prefixed with +995
PHONE_PATTERN = re.compile(r"^(\+995)?5\d{8}$")


class ValidationError(ValueError):
    """400-level input problem."""

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.field = field


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., deleting a product still on orders)."""


class NotFoundError(LookupError):
    """404-level: id missing, or the row is not in the state the operation requires."""


class ProductNotFoundError(NotFoundError):
    """An order references a product that is missing or soft-deleted."""

    def __init__(self, product_id: int):
        super().__init__(f"Product {product_id} not found")
        self.product_id = product_id


class InsufficientStockError(Exception):
    """Requested quantity exceeds what the product has on hand."""

    def __init__(self, *, product_id: int, product_name: str, available: int, requested: int):
        super().__init__(
            f"Insufficient stock for '{product_name}': "
            f"{available} available, {requested} requested"
        )
        self.product_id = product_id
        self.product_name = product_name
        self.available = available
        self.requested = requested

    @property
    def details(self) -> dict:
        return {
            "product_id": self.product_id,
            "product_name": self.product_name,
            "available": self.available,
            "requested": self.requested,
        }


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    """
    writable_fields: frozenset[str]
    required_on_create: frozenset[str] = frozenset()


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def _coerce_integer(key: str, value: Any) -> int:
    # Already an int (but not bool which is a subclass of int)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    # String input - must be plain digits (with optional leading minus)
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{key} must be an integer", field=key)
        # Reject scientific notation (e.g., "1e15", "1E10")
        if 'e' in stripped.lower():
            raise ValidationError(f"{key} must be a plain integer (scientific notation not allowed)", field=key)
        # Reject decimal points (e.g., "12.5")
        if '.' in stripped:
            raise ValidationError(f"{key} must be an integer (no decimals)", field=key)
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{key} must be an integer", field=key)
    if isinstance(value, float):
        raise ValidationError(f"{key} must be an integer, not a decimal", field=key)
    raise ValidationError(f"{key} must be an integer", field=key)


def _coerce_decimal(key: str, value: Any) -> Decimal:
    if isinstance(value, bool):
        raise ValidationError(f"{key} must be a number", field=key)
    if isinstance(value, Decimal):
        amount = value
    elif isinstance(value, (int, float, str)):
        try:
            amount = Decimal(str(value).strip())
        except InvalidOperation:
            raise ValidationError(f"{key} must be a number", field=key)
    else:
        raise ValidationError(f"{key} must be a number", field=key)

    if not amount.is_finite():
        raise ValidationError(f"{key} must be a number", field=key)
    if amount.as_tuple().exponent < -2:
        raise ValidationError(f"{key} must have at most 2 decimal places", field=key)
    return amount


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    # Integers - strict validation to reject floats and scientific notation
    if isinstance(coltype, Integer):
        return _coerce_integer(col.key, value)

    # Money columns
    if isinstance(coltype, Numeric):
        return _coerce_decimal(col.key, value)

    # Strings / Text
    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    # Default: leave as-is
    return value


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value.strip() == "")


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

    Blank values ("", whitespace, null) on nullable columns normalize to None,
    so an empty form field and a missing one mean the same thing.

    partial=False: create/replace semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    cols = _columns_by_key(model)

    # Reject unknown / non-writable fields
    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}", field=k)
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}", field=k)

    if not partial:
        missing = sorted(f for f in policy.required_on_create if _is_blank(payload.get(f)))
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}", field=missing[0])

    patch: dict = {}

    for k, raw in payload.items():
        col = cols[k]

        # NULL / blank handling
        if _is_blank(raw):
            if not col.nullable:
                raise ValidationError(f"{k} cannot be blank", field=k)
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        # Max length check for String(n)
        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}", field=k)

        patch[k] = val

    return patch


def _check_money_range(patch: dict, key: str, maximum: Decimal) -> None:
    amount = patch.get(key)
    if amount is None:
        return
    if amount < 0:
        raise ValidationError(f"{key} cannot be negative", field=key)
    if amount > maximum:
        raise ValidationError(f"{key} cannot exceed {money_str(maximum)}", field=key)


def _check_text_length(patch: dict, key: str, minimum: int | None, maximum: int) -> None:
    value = patch.get(key)
    if value is None:
        return
    if minimum is not None and len(value) < minimum:
        raise ValidationError(f"{key} must be at least {minimum} characters", field=key)
    if len(value) > maximum:
        raise ValidationError(f"{key} must be at most {maximum} characters", field=key)


def enforce_rules_product(patch: dict) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    Keep these small and centralized.
    """
    _check_text_length(patch, "name", NAME_MIN, NAME_MAX)
    _check_money_range(patch, "price", PRICE_MAX)
    _check_money_range(patch, "cost_price", PRICE_MAX)

    price = patch.get("price")
    cost_price = patch.get("cost_price")
    if price is not None and cost_price is not None and cost_price >= price:
        raise ValidationError("cost_price must be less than price", field="cost_price")

    quantity = patch.get("quantity")
    if quantity is not None:
        if quantity < 0:
            raise ValidationError("quantity cannot be negative", field="quantity")
        if quantity > QUANTITY_MAX:
            raise ValidationError(f"quantity cannot exceed {QUANTITY_MAX}", field="quantity")

    _check_text_length(patch, "barcode", None, BARCODE_MAX)
    _check_text_length(patch, "description", None, DESCRIPTION_MAX)

    photo_url = patch.get("photo_url")
    if photo_url is not None:
        parsed = urlparse(photo_url)
        if not parsed.scheme or not parsed.netloc:
            raise ValidationError("photo_url must be a valid URL", field="photo_url")


def normalize_phone(value: str) -> str:
    return re.sub(r"\s", "", value)


def enforce_rules_order_customer(patch: dict) -> None:
    """Customer-facing order fields. Rewrites phone to its whitespace-free form."""
    _check_text_length(patch, "fb_name", NAME_MIN, NAME_MAX)
    _check_text_length(patch, "recipient_name", NAME_MIN, NAME_MAX)
    _check_text_length(patch, "address", ADDRESS_MIN, ADDRESS_MAX)
    _check_text_length(patch, "comment", None, COMMENT_MAX)

    if patch.get("phone") is not None:
        phone = normalize_phone(patch["phone"])
        if len(phone) < PHONE_MIN:
            raise ValidationError(f"phone must be at least {PHONE_MIN} digits", field="phone")
        if len(phone) > PHONE_MAX:
            raise ValidationError(f"phone must be at most {PHONE_MAX} characters", field="phone")
        if not PHONE_PATTERN.match(phone):
            raise ValidationError("phone has an invalid format (expected 5XXXXXXXX)", field="phone")
        patch["phone"] = phone


def enforce_rules_order_item(patch: dict) -> None:
    quantity = patch.get("quantity")
    if quantity is None or quantity < 1 or quantity > ORDER_QUANTITY_MAX:
        raise ValidationError(f"quantity must be between 1 and {ORDER_QUANTITY_MAX}", field="quantity")
    _check_money_range(patch, "unit_price", PRICE_MAX)
    _check_money_range(patch, "courier_price", COURIER_PRICE_MAX)


def validate_stock_reduction(quantity: Any, note: Any) -> tuple[int, str | None]:
    """Validate a manual write-off request; returns (quantity, note)."""
    if _is_blank(quantity):
        raise ValidationError("quantity is required", field="quantity")
    qty = _coerce_integer("quantity", quantity)
    if qty <= 0:
        raise ValidationError("quantity must be a positive integer", field="quantity")
    if qty > QUANTITY_MAX:
        raise ValidationError(f"quantity cannot exceed {QUANTITY_MAX}", field="quantity")

    if _is_blank(note):
        return qty, None
    note = str(note).strip()
    if len(note) > NOTE_MAX:
        raise ValidationError(f"note must be at most {NOTE_MAX} characters", field="note")
    return qty, note


def drop_blank(payload: dict, *keys: str) -> dict:
    """Copy of payload without the given keys when they are blank (column default applies)."""
    return {k: v for k, v in payload.items() if not (k in keys and _is_blank(v))}
