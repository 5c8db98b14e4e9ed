"""Identifier and timestamp helpers shared by the managers."""

from __future__ import annotations

import re
import uuid
from datetime import UTC, datetime

from quash_service.core.exceptions import ServiceError

_UUID_PATTERN = r"[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}"

TASK_PREFIX = "t"
OFFER_PREFIX = "off"
CATEGORY_PREFIX = "cat"
SKILL_PREFIX = "sk"

_ID_PATTERNS = {
    prefix: re.compile(rf"^{prefix}-{_UUID_PATTERN}$", re.IGNORECASE)
    for prefix in (TASK_PREFIX, OFFER_PREFIX, CATEGORY_PREFIX, SKILL_PREFIX)
}


def now_iso() -> str:
    """Return current UTC time as ISO 8601 string with Z suffix."""
    return datetime.now(UTC).isoformat(timespec="microseconds").replace("+00:00", "Z")


def new_id(prefix: str) -> str:
    """Generate a server-assigned identifier such as ``t-<uuid4>``."""
    return f"{prefix}-{uuid.uuid4()}"


def require_id(value: object, prefix: str, error: str, label: str) -> str:
    """Return value if it is a well-formed identifier for prefix, else raise 400."""
    if not isinstance(value, str) or not _ID_PATTERNS[prefix].match(value):
        raise ServiceError(error, f"Invalid {label}", 400, {})
    return value
