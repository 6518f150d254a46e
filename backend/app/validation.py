from __future__ import annotations

from datetime import date
from typing import Any, Optional

from app.errors import ValidationError
from app.time_utils import parse_hhmm, parse_iso_date


# Upper bound for any single amount: 9,999,999.99 in major units
MAX_AMOUNT_CENTS = 999_999_999


class FieldErrors:
    """
    Collects field-level problems so a request is rejected with all of them
    at once instead of one round-trip per mistake.
    """

    def __init__(self):
        self.errors: dict[str, str] = {}

    def add(self, field: str, message: str) -> None:
        # First problem per field wins
        self.errors.setdefault(field, message)

    def __bool__(self) -> bool:
        return bool(self.errors)

    def raise_if_any(self, message: str = "Invalid request") -> None:
        if self.errors:
            raise ValidationError(message, details=dict(self.errors))


def coerce_int(value: Any, field: str) -> int:
    """
    Strict integer coercion: rejects floats, booleans, decimals and
    scientific notation so "12.5" never silently becomes 12.
    """
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer", details={field: "must be an integer"})
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        raise ValidationError(
            f"{field} must be an integer, not a decimal",
            details={field: "must be an integer, not a decimal"},
        )
    if isinstance(value, str):
        stripped = value.strip()
        if stripped and "e" not in stripped.lower() and "." not in stripped:
            try:
                return int(stripped)
            except ValueError:
                pass
    raise ValidationError(f"{field} must be an integer", details={field: "must be an integer"})


def read_int(
    payload: dict,
    field: str,
    errors: FieldErrors,
    *,
    required: bool = False,
    minimum: Optional[int] = None,
    maximum: Optional[int] = None,
) -> Optional[int]:
    raw = payload.get(field)
    if raw is None or raw == "":
        if required:
            errors.add(field, "is required")
        return None
    try:
        value = coerce_int(raw, field)
    except ValidationError as e:
        errors.add(field, e.details.get(field, "must be an integer"))
        return None
    if minimum is not None and value < minimum:
        errors.add(field, f"must be >= {minimum}")
        return None
    if maximum is not None and value > maximum:
        errors.add(field, f"must be <= {maximum}")
        return None
    return value


def read_amount(payload: dict, field: str, errors: FieldErrors, *, required: bool = False,
                positive: bool = False) -> Optional[int]:
    return read_int(
        payload,
        field,
        errors,
        required=required,
        minimum=1 if positive else 0,
        maximum=MAX_AMOUNT_CENTS,
    )


def read_str(
    payload: dict,
    field: str,
    errors: FieldErrors,
    *,
    required: bool = False,
    min_length: Optional[int] = None,
    max_length: Optional[int] = None,
) -> Optional[str]:
    raw = payload.get(field)
    if raw is None:
        if required:
            errors.add(field, "is required")
        return None
    if not isinstance(raw, str):
        errors.add(field, "must be a string")
        return None
    value = raw.strip()
    if not value:
        if required:
            errors.add(field, "cannot be blank")
        return None
    if min_length is not None and len(value) < min_length:
        errors.add(field, f"must be at least {min_length} characters")
        return None
    if max_length is not None and len(value) > max_length:
        errors.add(field, f"cannot exceed {max_length} characters")
        return None
    return value


def read_bool(payload: dict, field: str, errors: FieldErrors, *, default: bool = False) -> bool:
    raw = payload.get(field)
    if raw is None:
        return default
    if not isinstance(raw, bool):
        errors.add(field, "must be true or false")
        return default
    return raw


def read_date(payload: dict, field: str, errors: FieldErrors, *, required: bool = False) -> Optional[date]:
    raw = payload.get(field)
    if raw is None or raw == "":
        if required:
            errors.add(field, "is required")
        return None
    if isinstance(raw, date):
        return raw
    if not isinstance(raw, str):
        errors.add(field, "must be an ISO date (YYYY-MM-DD)")
        return None
    try:
        return parse_iso_date(raw)
    except ValueError:
        errors.add(field, "must be an ISO date (YYYY-MM-DD)")
        return None


def read_time(
    payload: dict,
    field: str,
    errors: FieldErrors,
    *,
    required: bool = False,
    allow_end_of_day: bool = False,
) -> Optional[int]:
    """Read an HH:MM field as minutes since midnight."""
    raw = payload.get(field)
    if raw is None or raw == "":
        if required:
            errors.add(field, "is required")
        return None
    if not isinstance(raw, str):
        errors.add(field, "must be in HH:MM format")
        return None
    try:
        return parse_hhmm(raw, allow_end_of_day=allow_end_of_day)
    except ValueError as e:
        errors.add(field, str(e))
        return None


def require_choice(value: Optional[str], field: str, choices, errors: FieldErrors) -> Optional[str]:
    if value is None:
        return None
    normalized = value.strip().upper()
    if normalized not in choices:
        errors.add(field, f"must be one of: {', '.join(sorted(choices))}")
        return None
    return normalized
