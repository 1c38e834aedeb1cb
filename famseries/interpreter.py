"""Rule interpreter: expands a recurrence rule into occurrence dates.

Expansion is a pure function of (rule, series_start, window). It holds no
state between calls, so repeated calls with the same inputs return identical
output, and every result is strictly ascending with no duplicates.

Short months are skipped, not clamped: a monthly rule on day 31 produces no
occurrence in February, April, June, September or November, and a yearly
series anchored on Feb 29 only occurs in leap years.
"""

from __future__ import annotations

import itertools
import logging
from collections.abc import Iterator
from datetime import date, timedelta
from typing import TYPE_CHECKING, Optional

from .dateutils import day_start, to_date
from .exceptions import RangeTooLargeError
from .models import EndType, RecurrenceRule
from .rrule_converter import build_rrule
from .validation import validate_rule

if TYPE_CHECKING:
    from .models import BaseSeries

logger = logging.getLogger(__name__)

DEFAULT_MAX_EXPANSION_DAYS = 731


def _window_limit(range_end: Optional[date], series_end: Optional[date]) -> Optional[date]:
    bounds = [d for d in (range_end, series_end) if d is not None]
    return min(bounds) if bounds else None


def _generate(rr, start_at: date, limit: Optional[date]) -> Iterator[date]:
    for occurrence in rr.xafter(day_start(start_at), inc=True):
        current = occurrence.date()
        if limit is not None and current > limit:
            return
        yield current


def iter_occurrences(
    rule: RecurrenceRule,
    series_start: date,
    range_start: Optional[date] = None,
    range_end: Optional[date] = None,
    *,
    series_end: Optional[date] = None,
    week_start: str = "monday",
) -> Iterator[date]:
    """Lazily yield occurrence dates of ``rule`` inside the window.

    The rule is validated before the iterator is returned, so InvalidRuleError
    surfaces at the call site rather than on first ``next()``. Without
    ``range_end``, ``series_end`` or an end condition on the rule the iterator
    is infinite.

    Args:
        rule: Recurrence rule
        series_start: First candidate date; after_count is counted from here
        range_start: Earliest date to yield (defaults to series_start)
        range_end: Latest date to yield, inclusive
        series_end: Hard stop for the series, inclusive
        week_start: First day of a week bucket for weekly intervals

    Raises:
        InvalidRuleError: If the rule fails structural validation
    """
    validate_rule(rule, series_start)
    rr = build_rrule(rule, series_start, week_start)
    start_at = series_start if range_start is None else max(range_start, series_start)
    return _generate(rr, start_at, _window_limit(range_end, series_end))


def expand(
    rule: RecurrenceRule,
    series_start: date,
    range_start: date,
    range_end: date,
    *,
    series_end: Optional[date] = None,
    max_days: int = DEFAULT_MAX_EXPANSION_DAYS,
    week_start: str = "monday",
) -> list[date]:
    """Expand ``rule`` into the ordered list of dates within [range_start, range_end].

    A reversed window yields an empty list. Termination happens at whichever
    comes first of the rule's end date, its occurrence count (counted from
    ``series_start``), ``series_end`` and ``range_end``.

    Raises:
        InvalidRuleError: If the rule fails structural validation
        RangeTooLargeError: If the window spans more than ``max_days`` days
    """
    series_start = to_date(series_start)
    range_start = to_date(range_start)
    range_end = to_date(range_end)
    validate_rule(rule, series_start)

    if range_end < range_start:
        logger.debug("Reversed window %s..%s expands to nothing", range_start, range_end)
        return []

    span = (range_end - range_start).days
    if span > max_days:
        raise RangeTooLargeError(
            f"Requested window of {span} days exceeds the maximum of {max_days} days"
        )

    dates = list(
        iter_occurrences(
            rule,
            series_start,
            range_start,
            range_end,
            series_end=series_end,
            week_start=week_start,
        )
    )
    logger.debug(
        "Expanded %s rule from %s over %s..%s: %d occurrence(s)",
        rule.frequency,
        series_start,
        range_start,
        range_end,
        len(dates),
    )
    return dates


def expand_series(
    series: BaseSeries,
    range_start: date,
    range_end: date,
    *,
    max_days: int = DEFAULT_MAX_EXPANSION_DAYS,
    week_start: str = "monday",
) -> list[date]:
    """Expand a stored series, honouring ``is_active`` and ``series_end``."""
    if not series.is_active:
        return []
    return expand(
        series.recurrence_rule,
        series.series_start,
        range_start,
        range_end,
        series_end=series.series_end,
        max_days=max_days,
        week_start=week_start,
    )


def next_occurrence(
    rule: RecurrenceRule,
    series_start: date,
    after: date,
    *,
    inclusive: bool = False,
    series_end: Optional[date] = None,
    week_start: str = "monday",
) -> Optional[date]:
    """Return the first occurrence after ``after`` (or on it when ``inclusive``)."""
    validate_rule(rule, series_start)
    rr = build_rrule(rule, series_start, week_start)
    found = rr.after(day_start(after), inc=inclusive)
    if found is None:
        return None
    result = found.date()
    if series_end is not None and result > series_end:
        return None
    return result


def is_occurrence(
    rule: RecurrenceRule,
    series_start: date,
    target: date,
    *,
    series_end: Optional[date] = None,
    week_start: str = "monday",
) -> bool:
    """True if ``target`` is one of the series' occurrence dates."""
    if target < series_start:
        return False
    return (
        next_occurrence(
            rule,
            series_start,
            target,
            inclusive=True,
            series_end=series_end,
            week_start=week_start,
        )
        == target
    )


def first_occurrences(
    rule: RecurrenceRule,
    series_start: date,
    count: int,
    *,
    series_end: Optional[date] = None,
    week_start: str = "monday",
) -> list[date]:
    """Return up to ``count`` occurrences starting at the series start."""
    if count <= 0:
        return []
    occurrences = iter_occurrences(rule, series_start, series_end=series_end, week_start=week_start)
    return list(itertools.islice(occurrences, count))


def series_end_date(rule: RecurrenceRule, series_start: date, week_start: str = "monday") -> Optional[date]:
    """Return the last occurrence of a terminating rule, or None if it never ends.

    Also None when a terminating rule produces no occurrence at all.
    """
    validate_rule(rule, series_start)
    if rule.end_type == EndType.NEVER:
        return None
    rr = build_rrule(rule, series_start, week_start)
    if rule.end_type == EndType.ON_DATE:
        last = rr.before(day_start(rule.end_date) + timedelta(days=1))
        return last.date() if last is not None else None
    last = None
    for last in rr:
        pass
    return last.date() if last is not None else None


def count_before(rule: RecurrenceRule, series_start: date, boundary: date, week_start: str = "monday") -> int:
    """Number of occurrences strictly before ``boundary``."""
    if boundary <= series_start:
        return 0
    occurrences = iter_occurrences(
        rule, series_start, range_end=boundary - timedelta(days=1), week_start=week_start
    )
    return sum(1 for _ in occurrences)
