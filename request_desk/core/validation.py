import re
from typing import Any, Optional

from request_desk.core.errors import ValidationError

# SQLite INTEGER is a signed 64-bit value.
INT64_MIN = -(2 ** 63)
INT64_MAX = 2 ** 63 - 1
EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
SCRIPT_PATTERN = re.compile(r"<script\b[^<]*(?:(?!</script>)<[^<]*)*</script>", re.IGNORECASE)


def sanitize_string(value: Any) -> Any:
    if not isinstance(value, str):
        return value
    return SCRIPT_PATTERN.sub("", value.strip())


def is_valid_email(value: Any) -> bool:
    return isinstance(value, str) and bool(EMAIL_PATTERN.match(value))


def require_string(fields: dict, key: str, label: str, min_length: int = 1, max_length: int = 255) -> str:
    raw = fields.get(key)
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        raise ValidationError(f"{label} is required")
    if not isinstance(raw, str):
        raise ValidationError(f"Invalid {label.lower()}")

    value = sanitize_string(raw)
    if not (min_length <= len(value) <= max_length):
        raise ValidationError(f"{label} must be {min_length}-{max_length} characters long")
    return value


def optional_string(fields: dict, key: str, max_length: int = 2000) -> Optional[str]:
    raw = fields.get(key)
    if raw is None:
        return None
    if not isinstance(raw, str):
        raise ValidationError(f"Invalid {key}")
    value = sanitize_string(raw)
    if len(value) > max_length:
        raise ValidationError(f"{key} must be at most {max_length} characters long")
    return value or None


def require_email(fields: dict, key: str, label: str) -> str:
    value = require_string(fields, key, label)
    if not is_valid_email(value):
        raise ValidationError("Invalid email format")
    return value


def _as_int(raw: Any, label: str) -> int:
    if isinstance(raw, bool):
        raise ValidationError(f"{label} must be an integer")
    if isinstance(raw, int):
        return raw
    if isinstance(raw, float) and raw.is_integer():
        return int(raw)
    if isinstance(raw, str) and re.fullmatch(r"[+-]?\d+", raw.strip()):
        return int(raw.strip())
    raise ValidationError(f"{label} must be an integer")


def parse_int(raw: Any, label: str) -> int:
    value = _as_int(raw, label)
    if not INT64_MIN <= value <= INT64_MAX:
        raise ValidationError(f"{label} is out of range")
    return value


def parse_bool(raw_value: Any, default: bool = False) -> bool:
    if raw_value is None:
        return default
    if isinstance(raw_value, bool):
        return raw_value
    if isinstance(raw_value, int):
        return raw_value != 0
    return str(raw_value).strip().lower() in {"1", "true", "yes", "on"}
