"""Calendar-date helpers for famseries.

All recurrence math works on naive calendar dates in the series' nominal
calendar. Instants and timezones never enter the comparison, which keeps DST
transitions from shifting an occurrence onto a neighbouring day.
"""

from __future__ import annotations

import logging
import os
from datetime import date, datetime, time, timedelta

from dateutil import parser as dateutil_parser

logger = logging.getLogger(__name__)

TEST_DATE_ENV = "FAMSERIES_TEST_DATE"

WEEKDAY_KEYS: tuple[str, ...] = (
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
    "sunday",
)


def today() -> date:
    """Return the current calendar date, honouring FAMSERIES_TEST_DATE.

    Tests and scheduled jobs can pin "today" by exporting the variable with an
    ISO date (or anything dateutil can parse).
    """
    override = os.environ.get(TEST_DATE_ENV)
    if override:
        try:
            return dateutil_parser.parse(override).date()
        except (ValueError, OverflowError) as e:
            logger.warning("Invalid %s=%r ignored: %s", TEST_DATE_ENV, override, e)
    return date.today()


def to_date(value: date | datetime | str) -> date:
    """Coerce a date, datetime or ISO-ish string into a calendar date.

    Raises:
        ValueError: If a string value cannot be parsed
        TypeError: For unsupported input types
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        if not text:
            raise ValueError("empty date string")
        try:
            return date.fromisoformat(text[:10])
        except ValueError:
            return dateutil_parser.parse(text).date()
    raise TypeError(f"cannot interpret {type(value).__name__} as a date")


def day_start(d: date) -> datetime:
    """Naive midnight of ``d``; the anchor used for rrule arithmetic."""
    return datetime.combine(d, time.min)


def weekday_key(d: date) -> str:
    return WEEKDAY_KEYS[d.weekday()]


def weekday_index(key: str) -> int:
    """Map a weekday key ("monday") to Python's weekday number (Monday=0)."""
    try:
        return WEEKDAY_KEYS.index(key.lower())
    except ValueError as e:
        raise ValueError(f"unknown weekday {key!r}") from e


def daterange(start: date, end: date):
    """Yield every date from ``start`` to ``end`` inclusive."""
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)
