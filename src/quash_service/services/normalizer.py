"""Normalization of loosely-typed client input into canonical task values.

Clients send ranges, rewards and deadlines in several shapes (bare numbers,
numeric strings, arrays, objects, JSON-encoded strings from form posts).
Every function here either returns a canonical value, returns ``None`` for an
absent optional value, or raises ``ServiceError("INVALID_FIELD", ...)`` naming
the offending field.
"""

from __future__ import annotations

import json
import math
from datetime import UTC, datetime

from quash_service.core.exceptions import ServiceError

REACH_VALUES = frozenset({"local", "regional", "global"})
DEFAULT_REACH = "local"


def _invalid(field: str, message: str) -> ServiceError:
    return ServiceError("INVALID_FIELD", message, 400, {"field": field})


def _is_absent(value: object) -> bool:
    return value is None or value == ""


def to_number(value: object) -> float | None:
    """Coerce an int, float or numeric string to a finite float.

    Returns None for anything else, including booleans, NaN and infinities.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, int | float):
        try:
            number = float(value)
        except OverflowError:
            return None
    elif isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            return None
        try:
            number = float(stripped)
        except ValueError:
            return None
    else:
        return None
    if not math.isfinite(number):
        return None
    return number


def _decode_json_string(value: str) -> object:
    """Decode a JSON-encoded range sent as a string; leave other strings alone."""
    try:
        return json.loads(value)
    except (json.JSONDecodeError, ValueError):
        return value


def normalize_range(value: object, *, required: bool) -> dict[str, float] | None:
    """
    Normalize a budget range to ``{"min": ..., "max": ...}`` with min <= max.

    Accepted shapes:
    - scalar number or numeric string ``n`` -> ``{min: 0, max: n}``
    - non-empty list -> ``{min: first, max: last}``
    - mapping -> ``min``/``"0"`` (default 0) and ``max``/``"1"`` (default min)
    - a string holding any of the above as JSON

    An inverted pair is swapped rather than rejected.
    """
    if _is_absent(value):
        if required:
            raise _invalid("range", "Range is required")
        return None

    if isinstance(value, str):
        value = _decode_json_string(value)

    low: object
    high: object
    if isinstance(value, bool):
        raise _invalid("range", "Unsupported range format")
    if isinstance(value, int | float | str):
        if to_number(value) is None:
            raise _invalid("range", "Range must be a numeric value")
        low, high = 0, value
    elif isinstance(value, list):
        if len(value) == 0:
            raise _invalid("range", "Range array cannot be empty")
        low, high = value[0], value[-1]
    elif isinstance(value, dict):
        low = value.get("min")
        if low is None:
            low = value.get("0", 0)
        high = value.get("max")
        if high is None:
            high = value.get("1", low)
    else:
        raise _invalid("range", "Unsupported range format")

    range_min = to_number(low)
    range_max = to_number(high)
    if range_min is None or range_max is None:
        raise _invalid("range", "Range must contain valid numbers")

    if range_min > range_max:
        range_min, range_max = range_max, range_min

    return {"min": range_min, "max": range_max}


def parse_reward(value: object, *, required: bool, field: str = "reward") -> float | None:
    """Parse a non-negative finite reward."""
    if _is_absent(value):
        if required:
            raise _invalid(field, f"{field.capitalize()} is required")
        return None
    reward = to_number(value)
    if reward is None:
        raise _invalid(field, f"{field.capitalize()} must be a numeric value")
    if reward < 0:
        raise _invalid(field, f"{field.capitalize()} must not be negative")
    return reward


def parse_amount(value: object, *, required: bool) -> float | None:
    """Parse a strictly positive offer amount."""
    if _is_absent(value):
        if required:
            raise _invalid("amount", "Amount is required")
        return None
    amount = to_number(value)
    if amount is None or amount <= 0:
        raise _invalid("amount", "Amount must be a positive number")
    return amount


def format_instant(moment: datetime) -> str:
    """Render an aware datetime as an ISO 8601 UTC string with Z suffix."""
    return moment.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_deadline(value: object, *, required: bool, field: str = "deadline") -> str | None:
    """
    Parse a deadline into a canonical ISO 8601 UTC string.

    Accepts ISO 8601 dates or datetimes (naive values are taken as UTC) and
    numbers, which are read as epoch milliseconds.
    """
    if _is_absent(value):
        if required:
            raise _invalid(field, f"{field.capitalize()} is required")
        return None

    if isinstance(value, bool):
        raise _invalid(field, f"Invalid {field} date")

    if isinstance(value, int | float):
        try:
            if not math.isfinite(value):
                raise _invalid(field, f"Invalid {field} date")
            moment = datetime.fromtimestamp(value / 1000, tz=UTC)
        except (OverflowError, OSError, ValueError) as exc:
            raise _invalid(field, f"Invalid {field} date") from exc
        return format_instant(moment)

    if not isinstance(value, str):
        raise _invalid(field, f"Invalid {field} date")

    try:
        moment = datetime.fromisoformat(value.strip())
    except ValueError as exc:
        raise _invalid(field, f"Invalid {field} date") from exc

    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=UTC)
    return format_instant(moment)


def sanitize_reach(value: object) -> str | None:
    """Return the reach if it is a known value, otherwise None (never an error)."""
    if isinstance(value, str) and value in REACH_VALUES:
        return value
    return None


def normalize_title(value: object, *, required: bool, max_length: int) -> str | None:
    """Trim a title; it must be a non-empty string when supplied."""
    if value is None:
        if required:
            raise _invalid("title", "Title is required")
        return None
    if not isinstance(value, str) or not value.strip():
        raise _invalid("title", "Title cannot be empty")
    title = value.strip()
    if len(title) > max_length:
        raise _invalid("title", f"Title must not exceed {max_length} characters")
    return title


def normalize_text(value: object, *, field: str, max_length: int) -> str | None:
    """Validate optional free text; None stays None."""
    if value is None:
        return None
    if not isinstance(value, str):
        raise _invalid(field, f"{field.capitalize()} must be a string")
    if len(value) > max_length:
        raise _invalid(field, f"{field.capitalize()} must not exceed {max_length} characters")
    return value


def normalize_attachments(value: object, *, max_items: int) -> list[str]:
    """Collect attachment references, dropping empty entries."""
    if value is None:
        return []
    if not isinstance(value, list):
        raise _invalid("attachments", "Attachments must be a list of references")

    references: list[str] = []
    for item in value:
        if item is None or item == "":
            continue
        if not isinstance(item, str):
            raise _invalid("attachments", "Attachment references must be strings")
        references.append(item)

    if len(references) > max_items:
        raise _invalid("attachments", f"At most {max_items} attachments are allowed")
    return references
