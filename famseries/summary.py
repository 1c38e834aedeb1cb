"""Presets, human-readable summaries and previews of recurrence rules."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, time
from enum import Enum
from typing import Any, Optional

from .dateutils import to_date, weekday_index, weekday_key
from .interpreter import first_occurrences
from .models import EndType, Frequency, MonthlyType, RecurrenceRule
from .rrule_converter import from_rrule
from .validation import validate_rule

logger = logging.getLogger(__name__)


class Preset(str, Enum):
    """Quick-pick recurrence patterns offered when creating a series."""

    EVERY_DAY = "every_day"
    SCHOOL_DAYS = "school_days"
    WEEKENDS = "weekends"
    EVERY_WEEK = "every_week"
    EVERY_MONTH = "every_month"
    EVERY_YEAR = "every_year"
    CUSTOM = "custom"


ORDINAL_SUFFIXES = {1: "st", 2: "nd", 3: "rd"}

PRESET_LABELS: dict[str, str] = {
    Preset.EVERY_DAY.value: "Every day",
    Preset.SCHOOL_DAYS.value: "School days (Mon-Fri)",
    Preset.WEEKENDS.value: "Weekends",
    Preset.EVERY_WEEK.value: "Every week",
    Preset.EVERY_MONTH.value: "Every month",
    Preset.EVERY_YEAR.value: "Every year",
    Preset.CUSTOM.value: "Custom",
}


def rule_from_preset(preset: Preset | str, reference: Optional[date] = None) -> RecurrenceRule:
    """Build the rule behind a preset.

    ``every_week`` and ``every_month`` anchor on ``reference`` (its weekday or
    day of month); without one they fall back to Monday and the 1st.
    """
    preset = Preset(preset)
    base: dict[str, Any] = {"frequency": Frequency.DAILY, "interval": 1, "end_type": EndType.NEVER}

    if preset == Preset.SCHOOL_DAYS:
        base.update(frequency=Frequency.WEEKLY, weekdays=["monday", "tuesday", "wednesday", "thursday", "friday"])
    elif preset == Preset.WEEKENDS:
        base.update(frequency=Frequency.WEEKLY, weekdays=["saturday", "sunday"])
    elif preset == Preset.EVERY_WEEK:
        base.update(frequency=Frequency.WEEKLY, weekdays=[weekday_key(reference) if reference else "monday"])
    elif preset == Preset.EVERY_MONTH:
        base.update(
            frequency=Frequency.MONTHLY,
            monthly_type=MonthlyType.ON_DAY,
            month_day=reference.day if reference else 1,
        )
    elif preset == Preset.EVERY_YEAR:
        base.update(frequency=Frequency.YEARLY)

    return RecurrenceRule.model_validate(base)


def _ordinal_suffix(n: int) -> str:
    if 10 <= n % 100 <= 20:
        return f"{n}th"
    return f"{n}{ORDINAL_SUFFIXES.get(n % 10, 'th')}"


def _plural(interval: int, unit: str) -> str:
    return f"every {unit}" if interval == 1 else f"every {interval} {unit}s"


def _short_day(key: str) -> str:
    return key[:3].capitalize()


def _format_time(value: time) -> str:
    hour = value.hour % 12 or 12
    return f"{hour}:{value.minute:02d} {'AM' if value.hour < 12 else 'PM'}"


def summary_text(rule: RecurrenceRule, series_start: Optional[date] = None, at_time: Optional[time] = None) -> str:
    """Describe a rule in plain English, e.g. "every 2 weeks on Mon, Wed, ends after 5 times"."""
    if rule.frequency == Frequency.DAILY:
        text = _plural(rule.interval, "day")
    elif rule.frequency == Frequency.WEEKLY:
        text = _plural(rule.interval, "week")
        if rule.weekdays:
            ordered = sorted(set(rule.weekdays), key=weekday_index)
            text += " on " + ", ".join(_short_day(d) for d in ordered)
    elif rule.frequency == Frequency.MONTHLY:
        text = _plural(rule.interval, "month")
        if rule.monthly_type == MonthlyType.ON_DAY and rule.month_day:
            text += f" on the {_ordinal_suffix(rule.month_day)}"
        elif rule.monthly_type == MonthlyType.ON_WEEKDAY and rule.weekday_ordinal and rule.weekday_name:
            text += f" on the {rule.weekday_ordinal} {str(rule.weekday_name).capitalize()}"
        elif series_start is not None:
            text += f" on the {_ordinal_suffix(series_start.day)}"
    else:
        text = _plural(rule.interval, "year")
        if series_start is not None:
            text += f" on {series_start.strftime('%b')} {series_start.day}"

    if at_time is not None:
        text += f" at {_format_time(at_time)}"

    if rule.end_type == EndType.ON_DATE and rule.end_date:
        text += f", ends {rule.end_date.strftime('%b')} {rule.end_date.day}, {rule.end_date.year}"
    elif rule.end_type == EndType.AFTER_COUNT and rule.end_count:
        text += f", ends after {rule.end_count} {'time' if rule.end_count == 1 else 'times'}"

    return text


def rrule_summary(rrule_string: str) -> str:
    """Summarize RRULE text; a DTSTART line, when present, anchors monthly/yearly wording."""
    rule = from_rrule(rrule_string)
    start: Optional[date] = None
    for line in rrule_string.strip().splitlines():
        if line.upper().startswith("DTSTART"):
            start = to_date(line.split(":", 1)[-1])
            break
    return summary_text(rule, start)


@dataclass
class RecurrencePreview:
    """Summary plus the first few dates of a rule, for confirmation screens."""

    summary: str
    next_occurrences: list[date] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "summary": self.summary,
            "next_occurrences": [d.isoformat() for d in self.next_occurrences],
            "warnings": list(self.warnings),
        }


def preview(
    rule: RecurrenceRule,
    series_start: date,
    count: int = 3,
    at_time: Optional[time] = None,
) -> RecurrencePreview:
    """Return the summary and first ``count`` occurrences of a rule.

    Raises:
        InvalidRuleError: If the rule is structurally invalid
    """
    validate_rule(rule, series_start)
    warnings: list[str] = []

    day = rule.month_day if rule.monthly_type == MonthlyType.ON_DAY else None
    if rule.frequency == Frequency.MONTHLY and rule.monthly_type is None:
        day = series_start.day
    if rule.frequency == Frequency.MONTHLY and day and day > 28:
        warnings.append(f"Some months do not have day {day}; those months are skipped")
    if rule.frequency == Frequency.YEARLY and (series_start.month, series_start.day) == (2, 29):
        warnings.append("February 29 only occurs in leap years; other years are skipped")

    occurrences = first_occurrences(rule, series_start, count)
    if not occurrences:
        warnings.append("This rule produces no occurrences")

    return RecurrencePreview(summary_text(rule, series_start, at_time), occurrences, warnings)
