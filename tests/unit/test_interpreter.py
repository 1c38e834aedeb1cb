"""
Unit tests for famseries.interpreter

Covers:
- daily/weekly/monthly/yearly expansion inside a window
- termination by end date, occurrence count and series_end
- short-month and leap-day skipping
- window guard (too large, reversed)
- next_occurrence / is_occurrence / series_end_date helpers
"""

from datetime import date, timedelta

import pytest

from famseries.exceptions import InvalidRuleError, RangeTooLargeError
from famseries.interpreter import (
    count_before,
    expand,
    expand_series,
    first_occurrences,
    is_occurrence,
    iter_occurrences,
    next_occurrence,
    series_end_date,
)

pytestmark = pytest.mark.unit

JAN_1 = date(2024, 1, 1)  # a Monday


def test_daily_interval_two_yields_every_other_day(make_rule) -> None:
    rule = make_rule(frequency="daily", interval=2)

    dates = expand(rule, JAN_1, JAN_1, date(2024, 1, 10))

    assert dates == [date(2024, 1, d) for d in (1, 3, 5, 7, 9)]


def test_weekly_on_mon_wed_fri(make_rule) -> None:
    rule = make_rule(frequency="weekly", weekdays=["friday", "monday", "wednesday"])

    dates = expand(rule, JAN_1, JAN_1, date(2024, 1, 14))

    assert dates == [date(2024, 1, d) for d in (1, 3, 5, 8, 10, 12)]
    assert {d.weekday() for d in dates} == {0, 2, 4}


def test_weekly_interval_two_skips_alternate_weeks(make_rule) -> None:
    rule = make_rule(frequency="weekly", interval=2, weekdays=["monday"])

    dates = expand(rule, JAN_1, JAN_1, date(2024, 1, 31))

    assert dates == [date(2024, 1, 1), date(2024, 1, 15), date(2024, 1, 29)]


def test_week_start_changes_weekly_interval_buckets(make_rule) -> None:
    """Same rule, different week start: Sunday moves into the next bucket."""
    rule = make_rule(frequency="weekly", interval=2, weekdays=["monday", "sunday"])
    end = date(2024, 1, 21)

    monday_weeks = expand(rule, JAN_1, JAN_1, end, week_start="monday")
    sunday_weeks = expand(rule, JAN_1, JAN_1, end, week_start="sunday")

    assert monday_weeks == [date(2024, 1, 1), date(2024, 1, 7), date(2024, 1, 15), date(2024, 1, 21)]
    assert sunday_weeks == [date(2024, 1, 1), date(2024, 1, 14), date(2024, 1, 15)]


def test_monthly_day_31_skips_short_months(make_rule) -> None:
    rule = make_rule(frequency="monthly", monthly_type="on_day", month_day=31)
    start = date(2024, 1, 31)

    dates = expand(rule, start, date(2024, 1, 1), date(2024, 6, 30))

    assert dates == [date(2024, 1, 31), date(2024, 3, 31), date(2024, 5, 31)]
    assert not any(d.month == 2 for d in dates)


@pytest.mark.parametrize(
    "ordinal,weekday,expected",
    [
        ("first", "monday", [date(2024, 1, 1), date(2024, 2, 5), date(2024, 3, 4)]),
        ("second", "tuesday", [date(2024, 1, 9), date(2024, 2, 13), date(2024, 3, 12)]),
        ("last", "friday", [date(2024, 1, 26), date(2024, 2, 23), date(2024, 3, 29)]),
    ],
)
def test_monthly_on_weekday_ordinals(make_rule, ordinal, weekday, expected) -> None:
    rule = make_rule(
        frequency="monthly",
        monthly_type="on_weekday",
        weekday_ordinal=ordinal,
        weekday_name=weekday,
    )

    assert expand(rule, JAN_1, JAN_1, date(2024, 3, 31)) == expected


def test_yearly_from_leap_day_only_hits_leap_years(make_rule) -> None:
    rule = make_rule(frequency="yearly")
    start = date(2024, 2, 29)

    assert expand(rule, start, date(2024, 1, 1), date(2025, 12, 31)) == [start]
    assert first_occurrences(rule, start, 2) == [start, date(2028, 2, 29)]


def test_after_count_stops_after_n_occurrences(make_rule) -> None:
    rule = make_rule(end_type="after_count", end_count=3)

    dates = expand(rule, JAN_1, JAN_1, date(2024, 3, 1))

    assert dates == [date(2024, 1, 1), date(2024, 1, 2), date(2024, 1, 3)]


def test_after_count_is_counted_from_series_start(make_rule) -> None:
    rule = make_rule(end_type="after_count", end_count=5)

    dates = expand(rule, JAN_1, date(2024, 1, 4), date(2024, 1, 31))

    assert dates == [date(2024, 1, 4), date(2024, 1, 5)]


def test_on_date_end_is_inclusive(make_rule) -> None:
    rule = make_rule(end_type="on_date", end_date=date(2024, 1, 5))

    dates = expand(rule, JAN_1, JAN_1, date(2024, 1, 31))

    assert dates[-1] == date(2024, 1, 5)
    assert len(dates) == 5


def test_series_end_truncates_expansion(make_rule) -> None:
    dates = expand(make_rule(), JAN_1, JAN_1, date(2024, 1, 31), series_end=date(2024, 1, 3))

    assert dates == [date(2024, 1, 1), date(2024, 1, 2), date(2024, 1, 3)]


def test_window_before_series_start_begins_at_start(make_rule) -> None:
    start = date(2024, 1, 10)

    dates = expand(make_rule(), start, JAN_1, date(2024, 1, 12))

    assert dates == [date(2024, 1, 10), date(2024, 1, 11), date(2024, 1, 12)]


def test_expansion_is_ascending_unique_and_deterministic(make_rule) -> None:
    rule = make_rule(frequency="weekly", weekdays=["sunday", "monday", "monday", "thursday"])
    end = date(2024, 6, 30)

    first = expand(rule, JAN_1, JAN_1, end)
    second = expand(rule, JAN_1, JAN_1, end)

    assert first == second
    assert first == sorted(set(first))


def test_reversed_window_returns_empty(make_rule) -> None:
    assert expand(make_rule(), JAN_1, date(2024, 2, 1), date(2024, 1, 1)) == []


def test_window_larger_than_limit_raises(make_rule) -> None:
    with pytest.raises(RangeTooLargeError, match="732 days"):
        expand(make_rule(), JAN_1, JAN_1, date(2026, 1, 2))


def test_window_at_limit_is_allowed(make_rule) -> None:
    dates = expand(make_rule(frequency="yearly"), JAN_1, JAN_1, date(2026, 1, 1))

    assert dates == [date(2024, 1, 1), date(2025, 1, 1), date(2026, 1, 1)]


def test_custom_max_days(make_rule) -> None:
    with pytest.raises(RangeTooLargeError):
        expand(make_rule(), JAN_1, JAN_1, date(2024, 1, 11), max_days=7)


def test_invalid_rule_raises_before_expansion(make_rule) -> None:
    with pytest.raises(InvalidRuleError, match="Interval must be at least 1"):
        expand(make_rule(interval=0), JAN_1, JAN_1, date(2024, 1, 10))


def test_iter_occurrences_validates_eagerly(make_rule) -> None:
    with pytest.raises(InvalidRuleError):
        iter_occurrences(make_rule(frequency="weekly", weekdays=[]), JAN_1)


def test_iter_occurrences_is_lazy_for_never_ending_rules(make_rule) -> None:
    occurrences = iter_occurrences(make_rule(), JAN_1)

    assert next(occurrences) == JAN_1
    assert next(occurrences) == JAN_1 + timedelta(days=1)


def test_expand_accepts_iso_strings(make_rule) -> None:
    dates = expand(make_rule(), "2024-01-01", "2024-01-01T00:00:00Z", "2024-01-02")

    assert dates == [date(2024, 1, 1), date(2024, 1, 2)]


def test_expand_series_honours_inactive_flag(make_task_series) -> None:
    series = make_task_series(is_active=False)

    assert expand_series(series, JAN_1, date(2024, 1, 7)) == []


def test_expand_series_honours_series_end(make_task_series) -> None:
    series = make_task_series(series_end=date(2024, 1, 2))

    assert expand_series(series, JAN_1, date(2024, 1, 7)) == [date(2024, 1, 1), date(2024, 1, 2)]


class TestOccurrenceHelpers:
    """next_occurrence, is_occurrence, series_end_date and count_before."""

    def test_next_occurrence_exclusive_and_inclusive(self, make_rule) -> None:
        rule = make_rule(interval=2)

        assert next_occurrence(rule, JAN_1, JAN_1) == date(2024, 1, 3)
        assert next_occurrence(rule, JAN_1, JAN_1, inclusive=True) == JAN_1
        assert next_occurrence(rule, JAN_1, date(2024, 1, 2)) == date(2024, 1, 3)

    def test_next_occurrence_after_end_is_none(self, make_rule) -> None:
        rule = make_rule(end_type="after_count", end_count=2)

        assert next_occurrence(rule, JAN_1, date(2024, 1, 2)) is None
        assert next_occurrence(make_rule(), JAN_1, JAN_1, series_end=JAN_1) is None

    def test_is_occurrence(self, make_rule) -> None:
        rule = make_rule(frequency="weekly", weekdays=["monday", "wednesday"])

        assert is_occurrence(rule, JAN_1, date(2024, 1, 3))
        assert not is_occurrence(rule, JAN_1, date(2024, 1, 2))
        assert not is_occurrence(rule, date(2024, 1, 8), JAN_1)
        assert not is_occurrence(rule, JAN_1, date(2024, 1, 10), series_end=date(2024, 1, 9))

    @pytest.mark.parametrize(
        "rule_kwargs,expected",
        [
            ({}, None),
            ({"end_type": "after_count", "end_count": 3}, date(2024, 1, 3)),
            (
                {"frequency": "weekly", "weekdays": ["monday"], "end_type": "on_date", "end_date": date(2024, 1, 10)},
                date(2024, 1, 8),
            ),
            (
                {"frequency": "weekly", "weekdays": ["friday"], "end_type": "on_date", "end_date": date(2024, 1, 3)},
                None,
            ),
        ],
    )
    def test_series_end_date(self, make_rule, rule_kwargs, expected) -> None:
        assert series_end_date(make_rule(**rule_kwargs), JAN_1) == expected

    def test_count_before(self, make_rule) -> None:
        rule = make_rule(frequency="weekly", weekdays=["monday", "wednesday"])

        assert count_before(rule, JAN_1, date(2024, 1, 8)) == 2
        assert count_before(rule, JAN_1, JAN_1) == 0

    def test_first_occurrences_with_zero_count(self, make_rule) -> None:
        assert first_occurrences(make_rule(), JAN_1, 0) == []
