from __future__ import annotations

import re
from datetime import date, datetime, timedelta
from typing import Any, Iterable

from request_desk.core.errors import ValidationError

DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")
RANGE_SEPARATOR = ":"
MAX_RANGE_DAYS = 366


def parse_iso_date(token: str) -> date:
    value = (token or "").strip()
    if not DATE_PATTERN.match(value):
        raise ValidationError(f"Invalid date format: {token!r} (expected YYYY-MM-DD)")
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError:
        raise ValidationError(f"Invalid calendar date: {token!r}") from None


def expand_date_range(start: str, end: str) -> list[str]:
    """Every date from ``start`` to ``end`` inclusive; ``[]`` when end precedes start.

    Ranges longer than ``MAX_RANGE_DAYS`` are rejected.
    """
    first = parse_iso_date(start)
    last = parse_iso_date(end)
    if last < first:
        return []
    if (last - first).days + 1 > MAX_RANGE_DAYS:
        raise ValidationError(f"Date range {start} to {end} spans more than {MAX_RANGE_DAYS} days")
    return [(first + timedelta(days=offset)).isoformat() for offset in range((last - first).days + 1)]


def _expand_range_checked(start: str, end: str) -> list[str]:
    dates = expand_date_range(start, end)
    if not dates:
        raise ValidationError(f"Start date is after end date in range: {start} to {end}")
    return dates


def _expand_token(token: str) -> list[str]:
    token = token.strip()
    if not token:
        return []
    if RANGE_SEPARATOR in token:
        start, _, end = token.partition(RANGE_SEPARATOR)
        return _expand_range_checked(start, end)
    return [parse_iso_date(token).isoformat()]


def _expand_item(item: Any) -> list[str]:
    if isinstance(item, dict):
        start = item.get("start")
        end = item.get("end")
        if not start or not end:
            raise ValidationError("Date ranges need both a start and an end date")
        return _expand_range_checked(str(start), str(end))
    if isinstance(item, str):
        dates: list[str] = []
        for token in item.split(","):
            dates.extend(_expand_token(token))
        return dates
    raise ValidationError(f"Unsupported request date value: {item!r}")


def normalize_request_dates(value: str | Iterable[Any] | None) -> str:
    """Normalize submitted dates to a comma-joined list of ISO dates.

    Accepts ``"2024-01-01,2024-01-05:2024-01-07"``, a list of such strings,
    or a list of ``{"start": ..., "end": ...}`` mappings. Ranges expand
    inclusively and keep submission order; a reversed range is rejected.
    """
    if value is None:
        raise ValidationError("At least one request date is required")

    if isinstance(value, (str, dict)):
        items = [value]
    elif isinstance(value, (list, tuple)):
        items = list(value)
    else:
        raise ValidationError(f"Unsupported request date value: {value!r}")

    dates: list[str] = []
    for item in items:
        dates.extend(_expand_item(item))

    if not dates:
        raise ValidationError("At least one request date is required")
    return ",".join(dates)
