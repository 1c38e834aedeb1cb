"""Conversion between RecurrenceRule and RFC 5545 RRULE strings.

The engine builds its occurrence iterators with ``dateutil.rrule`` so the
stored JSON rule, the exported RRULE text and the expansion all agree on one
interpretation of the pattern.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Any, Optional

from dateutil.rrule import DAILY, FR, MO, MONTHLY, SA, SU, TH, TU, WE, WEEKLY, YEARLY, rrule, rrulestr

from .dateutils import WEEKDAY_KEYS, day_start, to_date, weekday_index
from .exceptions import InvalidRuleError
from .models import EndType, Frequency, MonthlyType, Ordinal, RecurrenceRule

logger = logging.getLogger(__name__)

FREQUENCY_TO_RRULE: dict[str, int] = {
    Frequency.DAILY.value: DAILY,
    Frequency.WEEKLY.value: WEEKLY,
    Frequency.MONTHLY.value: MONTHLY,
    Frequency.YEARLY.value: YEARLY,
}

RRULE_FREQ_NAMES: dict[str, str] = {
    "DAILY": Frequency.DAILY.value,
    "WEEKLY": Frequency.WEEKLY.value,
    "MONTHLY": Frequency.MONTHLY.value,
    "YEARLY": Frequency.YEARLY.value,
}

# Indexed by Python weekday number (Monday=0)
RRULE_WEEKDAYS = (MO, TU, WE, TH, FR, SA, SU)
RRULE_DAY_CODES = ("MO", "TU", "WE", "TH", "FR", "SA", "SU")

ORDINAL_TO_NUMBER: dict[str, int] = {
    Ordinal.FIRST.value: 1,
    Ordinal.SECOND.value: 2,
    Ordinal.THIRD.value: 3,
    Ordinal.FOURTH.value: 4,
    Ordinal.LAST.value: -1,
}
NUMBER_TO_ORDINAL: dict[int, str] = {v: k for k, v in ORDINAL_TO_NUMBER.items()}


def _sorted_weekdays(weekdays: list[str]) -> list[str]:
    return sorted(set(weekdays), key=weekday_index)


def build_rrule(rule: RecurrenceRule, series_start: date, week_start: str = "monday") -> rrule:
    """Build a dateutil rrule anchored at midnight of ``series_start``.

    Callers are expected to have validated ``rule`` first; this function only
    maps fields.

    Args:
        rule: Recurrence rule to convert
        series_start: First candidate date (DTSTART)
        week_start: Weekday key that starts a week bucket for weekly rules

    Returns:
        Naive-datetime dateutil rrule
    """
    kwargs: dict[str, Any] = {
        "freq": FREQUENCY_TO_RRULE[rule.frequency],
        "interval": rule.interval,
        "dtstart": day_start(series_start),
        "wkst": weekday_index(week_start),
    }

    if rule.frequency == Frequency.WEEKLY and rule.weekdays:
        kwargs["byweekday"] = [RRULE_WEEKDAYS[weekday_index(d)] for d in _sorted_weekdays(rule.weekdays)]

    if rule.frequency == Frequency.MONTHLY:
        if rule.monthly_type == MonthlyType.ON_DAY and rule.month_day:
            kwargs["bymonthday"] = rule.month_day
        elif rule.monthly_type == MonthlyType.ON_WEEKDAY and rule.weekday_ordinal and rule.weekday_name:
            weekday = RRULE_WEEKDAYS[weekday_index(rule.weekday_name)]
            kwargs["byweekday"] = weekday(ORDINAL_TO_NUMBER[rule.weekday_ordinal])

    if rule.end_type == EndType.ON_DATE and rule.end_date:
        kwargs["until"] = day_start(rule.end_date)
    elif rule.end_type == EndType.AFTER_COUNT and rule.end_count:
        kwargs["count"] = rule.end_count

    return rrule(**kwargs)


def rrule_components(rule: RecurrenceRule) -> dict[str, Any]:
    """Return the RFC 5545 RECUR parts for ``rule`` as a mapping.

    UNTIL is a calendar date; callers that need a DATE-TIME UNTIL convert it.
    """
    parts: dict[str, Any] = {
        "FREQ": str(rule.frequency).upper(),
        "INTERVAL": rule.interval,
    }
    if rule.frequency == Frequency.WEEKLY and rule.weekdays:
        parts["BYDAY"] = [RRULE_DAY_CODES[weekday_index(d)] for d in _sorted_weekdays(rule.weekdays)]
    if rule.frequency == Frequency.MONTHLY:
        if rule.monthly_type == MonthlyType.ON_DAY and rule.month_day:
            parts["BYMONTHDAY"] = rule.month_day
        elif rule.monthly_type == MonthlyType.ON_WEEKDAY and rule.weekday_ordinal and rule.weekday_name:
            n = ORDINAL_TO_NUMBER[rule.weekday_ordinal]
            parts["BYDAY"] = [f"{n}{RRULE_DAY_CODES[weekday_index(rule.weekday_name)]}"]
    if rule.end_type == EndType.ON_DATE and rule.end_date:
        parts["UNTIL"] = rule.end_date
    elif rule.end_type == EndType.AFTER_COUNT and rule.end_count:
        parts["COUNT"] = rule.end_count
    return parts


def to_rrule(rule: RecurrenceRule, series_start: date, include_dtstart: bool = True) -> str:
    """Convert a RecurrenceRule into RRULE text.

    Args:
        rule: Rule to convert
        series_start: Series start used as DTSTART
        include_dtstart: When False, only the ``RRULE:`` line is returned

    Raises:
        InvalidRuleError: If the rule cannot be represented
    """
    try:
        text = str(build_rrule(rule, series_start))
    except (KeyError, ValueError, TypeError) as e:
        raise InvalidRuleError(f"Failed to convert recurrence rule to RRULE: {e}") from e
    if include_dtstart:
        return text
    return "\n".join(line for line in text.splitlines() if not line.startswith("DTSTART"))


def parse_rrule_string(rrule_string: str) -> dict[str, Any]:
    """Split RRULE text into its components.

    Accepts a bare ``FREQ=...`` body, an ``RRULE:`` line or a multi-line block
    with a DTSTART line (which is ignored).

    Raises:
        InvalidRuleError: If the text is empty, malformed or lacks FREQ
    """
    if not rrule_string or not rrule_string.strip():
        raise InvalidRuleError("Empty RRULE string")

    body = ""
    for line in rrule_string.strip().splitlines():
        line = line.strip()
        if line.upper().startswith("DTSTART"):
            continue
        if line.upper().startswith("RRULE:"):
            line = line[len("RRULE:"):]
        body = line
        break

    parsed: dict[str, Any] = {}
    try:
        for part in body.split(";"):
            if "=" not in part:
                continue
            key, value = part.split("=", 1)
            key = key.strip().lower()
            value = value.strip()

            if key == "freq":
                parsed["freq"] = value.upper()
            elif key == "interval":
                parsed["interval"] = int(value)
            elif key == "byday":
                parsed["byday"] = [day.strip().upper() for day in value.split(",") if day.strip()]
            elif key == "bymonthday":
                parsed["bymonthday"] = int(value.split(",")[0])
            elif key == "until":
                parsed["until"] = to_date(value)
            elif key == "count":
                parsed["count"] = int(value)
            else:
                parsed[key] = value
    except (ValueError, TypeError) as e:
        raise InvalidRuleError(f"Invalid RRULE format: {rrule_string}") from e

    if not parsed.get("freq"):
        raise InvalidRuleError("RRULE missing required FREQ parameter")
    if parsed["freq"] not in RRULE_FREQ_NAMES:
        raise InvalidRuleError(f"Unsupported RRULE frequency: {parsed['freq']}")
    return parsed


def _split_byday(token: str) -> tuple[Optional[int], str]:
    code = token[-2:]
    prefix = token[:-2]
    if code not in RRULE_DAY_CODES:
        raise InvalidRuleError(f"Invalid BYDAY value: {token}")
    if not prefix:
        return None, code
    try:
        return int(prefix), code
    except ValueError as e:
        raise InvalidRuleError(f"Invalid BYDAY ordinal: {token}") from e


def from_rrule(rrule_string: str) -> RecurrenceRule:
    """Convert RRULE text back into a RecurrenceRule."""
    parsed = parse_rrule_string(rrule_string)
    data: dict[str, Any] = {
        "frequency": RRULE_FREQ_NAMES[parsed["freq"]],
        "interval": parsed.get("interval", 1),
    }

    bydays = [_split_byday(token) for token in parsed.get("byday", [])]
    plain_days = [RRULE_DAY_CODES.index(code) for n, code in bydays if n is None]
    ordinal_days = [(n, RRULE_DAY_CODES.index(code)) for n, code in bydays if n is not None]

    if plain_days and data["frequency"] == Frequency.WEEKLY.value:
        data["weekdays"] = [WEEKDAY_KEYS[i] for i in plain_days]

    if "bymonthday" in parsed:
        data["monthly_type"] = MonthlyType.ON_DAY.value
        data["month_day"] = parsed["bymonthday"]
    elif ordinal_days:
        n, idx = ordinal_days[0]
        if n not in NUMBER_TO_ORDINAL:
            raise InvalidRuleError(f"Unsupported weekday ordinal: {n}")
        data["monthly_type"] = MonthlyType.ON_WEEKDAY.value
        data["weekday_ordinal"] = NUMBER_TO_ORDINAL[n]
        data["weekday_name"] = WEEKDAY_KEYS[idx]

    if "until" in parsed:
        data["end_type"] = EndType.ON_DATE.value
        data["end_date"] = parsed["until"]
    elif "count" in parsed:
        data["end_type"] = EndType.AFTER_COUNT.value
        data["end_count"] = parsed["count"]
    else:
        data["end_type"] = EndType.NEVER.value

    return RecurrenceRule.model_validate(data)


def validate_rrule(rrule_string: str) -> tuple[bool, Optional[str]]:
    """Check RRULE text for RFC 5545 compliance using dateutil's parser.

    Returns:
        (True, None) when valid, otherwise (False, error message)
    """
    try:
        rrulestr(rrule_string, dtstart=day_start(date(2000, 1, 1)) if "DTSTART" not in rrule_string.upper() else None)
    except (KeyError, ValueError, TypeError) as e:
        return False, str(e) or "Invalid RRULE format"
    return True, None
