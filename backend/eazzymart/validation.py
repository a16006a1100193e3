# Overview: Payload cleaning for catalog writes; column-driven checks plus product business rules.

from __future__ import annotations

import re
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any

from sqlalchemy import Boolean, Integer, String, Text

from .errors import ValidationError


# 9,999,999.99 in cents
MAX_PRICE_CENTS = 999_999_999

_PLAIN_INT_RE = re.compile(r"^-?\d+$")
_TRUE_WORDS = {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class ModelValidationPolicy:
    """Which columns a client may write, and which must be present on create."""
    writable_fields: frozenset[str]
    required_on_create: frozenset[str] = field(default_factory=frozenset)


def _as_integer(key: str, value: Any) -> int:
    if isinstance(value, bool) or isinstance(value, float):
        raise ValidationError(f"{key} must be a whole number")
    if isinstance(value, int):
        return value
    if isinstance(value, str) and _PLAIN_INT_RE.match(value.strip()):
        return int(value.strip())
    raise ValidationError(f"{key} must be a whole number")


def _as_flag(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in _TRUE_WORDS
    return bool(value)


def _clean_value(column, value: Any):
    if isinstance(column.type, Integer):
        return _as_integer(column.key, value)
    if isinstance(column.type, Boolean):
        return _as_flag(value)
    if isinstance(column.type, (String, Text)):
        text = str(value).strip()
        if not text and not column.nullable:
            raise ValidationError(f"{column.key} cannot be blank")
        limit = getattr(column.type, "length", None)
        if limit and len(text) > limit:
            raise ValidationError(f"{column.key} exceeds max length {limit}")
        return text or None
    return value


def validate_payload(*, model, payload: dict, policy: ModelValidationPolicy, partial: bool) -> dict:
    """
    Turn a JSON body into a patch dict for model.

    Column type, nullability and String length come from the SQLAlchemy
    mapping. partial=True (PUT) only checks the keys that were sent;
    partial=False (POST) also requires policy.required_on_create.
    """
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    if not partial:
        missing = sorted(policy.required_on_create.difference(payload))
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    columns = {c.key: c for c in model.__mapper__.columns}
    patch: dict = {}
    for key, raw in payload.items():
        if key not in policy.writable_fields or key not in columns:
            raise ValidationError(f"Field not allowed: {key}")
        column = columns[key]
        if raw is None:
            if not column.nullable:
                raise ValidationError(f"{key} cannot be null")
            patch[key] = None
            continue
        patch[key] = _clean_value(column, raw)
    return patch


def price_to_cents(value: Any) -> int:
    """Convert a display price ("12.50", 12.5) to integer cents."""
    if isinstance(value, bool) or value is None:
        raise ValidationError("price must be a number")
    try:
        amount = Decimal(str(value).strip())
    except InvalidOperation:
        raise ValidationError("price must be a number") from None
    if not amount.is_finite():
        raise ValidationError("price must be a number")
    cents = amount * 100
    if cents != cents.to_integral_value():
        raise ValidationError("price cannot have more than 2 decimal places")
    return int(cents)


def enforce_rules_product(patch: dict) -> None:
    """Product rules the column metadata cannot express."""
    price = patch.get("price_cents")
    if price is not None and not 0 <= price <= MAX_PRICE_CENTS:
        raise ValidationError(f"price_cents must be between 0 and {MAX_PRICE_CENTS}")
    stock = patch.get("stock")
    if stock is not None and stock < 0:
        raise ValidationError("stock must be >= 0")
