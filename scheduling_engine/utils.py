"""Shared utilities used across the scheduling engine."""

import re
import secrets
import string
import uuid
from datetime import date, datetime, time, timedelta, tzinfo

from scheduling_engine.errors import ValidationError

_CODE_ALPHABET = string.ascii_lowercase + string.digits


def normalize_phone(value: str) -> str:
    """Normalize a phone number by stripping everything except digits and a leading +.

    Examples:
        >>> normalize_phone("0412 345 678")
        '0412345678'
        >>> normalize_phone("+91 (22) 4567-8901")
        '+912245678901'
    """
    value = value.strip()
    if value.startswith("+"):
        return "+" + re.sub(r"[^\d]", "", value[1:])
    return re.sub(r"[^\d]", "", value)


def generate_id(prefix: str) -> str:
    """Generate a prefixed short UUID, e.g. ``bk_1a2b3c4d``."""
    return f"{prefix}_{uuid.uuid4().hex[:8]}"


def generate_confirmation_code(length: int = 12) -> str:
    """Random lowercase alphanumeric code handed to clients for self-service."""
    return "".join(secrets.choice(_CODE_ALPHABET) for _ in range(length))


def localize(value: datetime, tz: tzinfo) -> datetime:
    """Attach ``tz`` to naive datetimes and convert aware ones into ``tz``."""
    if value.tzinfo is None:
        return value.replace(tzinfo=tz)
    return value.astimezone(tz)


def day_bounds(day: date, tz: tzinfo) -> tuple[datetime, datetime]:
    """Return the half-open ``[00:00, next 00:00)`` interval of ``day`` in ``tz``."""
    start = datetime.combine(day, time.min, tzinfo=tz)
    return start, start + timedelta(days=1)


def iter_days(start: date, end: date):
    """Yield every date from ``start`` up to and including ``end``."""
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)


def parse_date(value) -> date:
    """Accept a ``date`` or an ISO ``YYYY-MM-DD`` string.

    Raises:
        ValidationError: If the string is not a valid ISO date.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip())
    except ValueError:
        raise ValidationError(f"Invalid date: {value!r}. Expected YYYY-MM-DD") from None


def parse_datetime(value, tz: tzinfo) -> datetime:
    """Accept a ``datetime`` or an ISO 8601 string and return it aware in ``tz``."""
    if isinstance(value, datetime):
        return localize(value, tz)
    try:
        parsed = datetime.fromisoformat(str(value).strip())
    except ValueError:
        raise ValidationError(f"Invalid datetime: {value!r}. Expected ISO 8601") from None
    return localize(parsed, tz)
