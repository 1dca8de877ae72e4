"""
Calendar-date and money helpers.

Deadlines are calendar dates with no time-of-day meaning. They are stored
as timestamps at midnight UTC and always read back in UTC, so a deadline
of 2026-02-01 stays 2026-02-01 whatever the server or client time zone.
"""

from __future__ import annotations

import re
from datetime import date, datetime, time, timezone
from decimal import ROUND_HALF_UP, Decimal

ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

_CENTS = Decimal("0.01")


def parse_iso_date(value: str) -> date:
    """Strict YYYY-MM-DD parser; raises ValueError on anything else."""
    if not ISO_DATE_RE.match(value):
        raise ValueError(f"expected YYYY-MM-DD, got {value!r}")
    return date.fromisoformat(value)


def to_utc_midnight(value: date | str | None) -> datetime | None:
    if value is None:
        return None
    if isinstance(value, str):
        value = parse_iso_date(value)
    if isinstance(value, datetime):
        value = value.date()
    return datetime.combine(value, time.min, tzinfo=timezone.utc)


def to_iso_date(value: datetime | None) -> str | None:
    """Calendar date of a stored timestamp, read in UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        # SQLite drops tzinfo; values are always written as UTC
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).date().isoformat()


def quantize_amount(value: Decimal | int | float | str | None) -> Decimal | None:
    if value is None:
        return None
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(_CENTS, rounding=ROUND_HALF_UP)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
