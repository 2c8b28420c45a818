from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Any, Mapping

from .errors import ValidationError
from .time_utils import parse_iso_date


@dataclass(frozen=True)
class PayloadPolicy:
    """
    Central policy layer for JSON bodies:
    - writable_fields: what clients are allowed to send (security boundary)
    - required: fields that must be present and non-null
    """
    writable_fields: set[str]
    required: set[str] = field(default_factory=set)


def validate_payload(payload: Any, policy: PayloadPolicy) -> dict:
    """
    Reject non-object bodies, unknown fields and missing required fields.

    Returns a shallow copy restricted to writable fields.
    """
    if not isinstance(payload, Mapping):
        raise ValidationError("JSON object body required")

    unknown = sorted(set(payload) - policy.writable_fields)
    if unknown:
        raise ValidationError(f"Unknown field(s): {', '.join(unknown)}")

    missing = sorted(k for k in policy.required if payload.get(k) is None)
    if missing:
        raise ValidationError(f"Missing required field(s): {', '.join(missing)}")

    return {k: payload[k] for k in payload if k in policy.writable_fields}


def parse_int(value: Any, field_name: str, *, minimum: int | None = None) -> int:
    """
    Strict integer coercion.

    Accepts ints and plain digit strings; rejects bools, floats, decimals and
    scientific notation.
    """
    if isinstance(value, bool):
        raise ValidationError(f"{field_name} must be an integer")

    if isinstance(value, int):
        result = value
    elif isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field_name} must be an integer")
        if "e" in stripped.lower():
            raise ValidationError(f"{field_name} must be a plain integer (scientific notation not allowed)")
        if "." in stripped:
            raise ValidationError(f"{field_name} must be an integer (no decimals)")
        try:
            result = int(stripped)
        except ValueError:
            raise ValidationError(f"{field_name} must be an integer")
    elif isinstance(value, float):
        raise ValidationError(f"{field_name} must be an integer, not a decimal")
    else:
        raise ValidationError(f"{field_name} must be an integer")

    if minimum is not None and result < minimum:
        raise ValidationError(f"{field_name} must be >= {minimum}")
    return result


def parse_positive_int(value: Any, field_name: str) -> int:
    return parse_int(value, field_name, minimum=1)


def parse_date(value: Any, field_name: str) -> date:
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        raise ValidationError(f"{field_name} must be an ISO-8601 date (YYYY-MM-DD)")
    try:
        parsed = parse_iso_date(value)
    except ValueError:
        raise ValidationError(f"{field_name} must be an ISO-8601 date (YYYY-MM-DD)")
    if parsed is None:
        raise ValidationError(f"{field_name} is required")
    return parsed


def parse_list(value: Any, field_name: str, *, allow_empty: bool = False) -> list:
    if not isinstance(value, list):
        raise ValidationError(f"{field_name} must be a list")
    if not value and not allow_empty:
        raise ValidationError(f"{field_name} must not be empty")
    return value
