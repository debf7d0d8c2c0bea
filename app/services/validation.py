"""
Input validation helpers shared by the project, key-step and task services.

Each helper appends FieldError entries to a caller-owned list so a request gets
every problem reported at once; the caller raises ValidationError when the list
is non-empty.
"""
from datetime import date, datetime
from typing import Any, Iterable, List, Optional

from app.core.errors import FieldError, ValidationError
from app.models.key_step import KeyStepStatus

KEY_STEP_STATUSES = tuple(s.value for s in KeyStepStatus)
TASK_STATUSES = ("pending", "in-progress", "completed")
TASK_PRIORITIES = ("low", "medium", "high")


def to_iso_date(value: Any) -> Optional[str]:
    """
    Convert a date-like value to YYYY-MM-DD.

    Accepts date/datetime objects and ISO 8601 strings (with or without a time
    part). Returns None for anything that is not a real calendar date.
    """
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        if len(text) == 10:
            return date.fromisoformat(text).isoformat()
        return datetime.fromisoformat(text).date().isoformat()
    except ValueError:
        return None


def is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def require(errors: List[FieldError], field: str, value: Any, message: str) -> None:
    if is_blank(value):
        errors.append(FieldError(field, message))


def date_field(
    errors: List[FieldError], field: str, value: Any, required: bool = False
) -> Optional[str]:
    """Normalize one date field, recording a problem if it is missing or malformed."""
    if is_blank(value):
        if required:
            errors.append(FieldError(field, f"{field} is required"))
        return None
    normalized = to_iso_date(value)
    if normalized is None:
        errors.append(FieldError(field, "Invalid date format", value))
    return normalized


def date_order(errors: List[FieldError], start: Optional[str], end: Optional[str]) -> None:
    # ISO dates compare correctly as strings
    if start and end and start > end:
        errors.append(FieldError("dates", "Start date must be before or equal to end date"))


def choice(
    errors: List[FieldError], field: str, value: Optional[str], allowed: Iterable[str], default: str
) -> str:
    if is_blank(value):
        return default
    lowered = value.strip().lower()
    allowed = tuple(allowed)
    if lowered not in allowed:
        errors.append(FieldError(field, f"{field} must be one of: {', '.join(allowed)}", value))
        return default
    return lowered


def int_in_range(
    errors: List[FieldError],
    field: str,
    value: Any,
    minimum: int,
    maximum: Optional[int] = None,
    message: str = "",
) -> Optional[int]:
    """Parse an integer and check its bounds; bools and fractional numbers are rejected."""
    if isinstance(value, bool):
        number = None
    elif isinstance(value, int):
        number = value
    elif isinstance(value, float) and value.is_integer():
        number = int(value)
    elif isinstance(value, str) and value.strip().lstrip("-").isdigit():
        number = int(value.strip())
    else:
        number = None

    if number is None or number < minimum or (maximum is not None and number > maximum):
        errors.append(FieldError(field, message or f"{field} is out of range", value))
        return None
    return number


def non_blank_items(errors: List[FieldError], field: str, values: Iterable[Any], message: str) -> List[str]:
    items = list(values or [])
    if any(is_blank(v) for v in items):
        errors.append(FieldError(field, message))
    return [str(v).strip() for v in items if not is_blank(v)]


def raise_if_any(errors: List[FieldError]) -> None:
    if errors:
        raise ValidationError(errors)
