"""Unit tests for famseries.rrule_converter (RecurrenceRule <-> RRULE text)."""

from datetime import date

import pytest

from famseries.exceptions import InvalidRuleError
from famseries.rrule_converter import (
    build_rrule,
    from_rrule,
    parse_rrule_string,
    rrule_components,
    to_rrule,
    validate_rrule,
)

pytestmark = pytest.mark.unit

JAN_1 = date(2024, 1, 1)


class TestToRRule:
    def test_daily_interval(self, make_rule) -> None:
        text = to_rrule(make_rule(interval=2), JAN_1)

        assert "DTSTART:20240101T000000" in text
        assert "RRULE:FREQ=DAILY;INTERVAL=2" in text

    def test_without_dtstart(self, make_rule) -> None:
        text = to_rrule(make_rule(frequency="weekly", weekdays=["wednesday", "monday"]), JAN_1, include_dtstart=False)

        assert text.startswith("RRULE:FREQ=WEEKLY")
        assert "BYDAY=MO,WE" in text
        assert "DTSTART" not in text

    def test_count_and_until(self, make_rule) -> None:
        assert "COUNT=4" in to_rrule(make_rule(end_type="after_count", end_count=4), JAN_1)
        assert "UNTIL=20240331T000000" in to_rrule(make_rule(end_type="on_date", end_date=date(2024, 3, 31)), JAN_1)

    def test_last_weekday_of_month(self, make_rule) -> None:
        rule = make_rule(frequency="monthly", monthly_type="on_weekday", weekday_ordinal="last", weekday_name="friday")

        assert "BYDAY=-1FR" in to_rrule(rule, JAN_1)


class TestComponents:
    def test_weekly(self, make_rule) -> None:
        parts = rrule_components(make_rule(frequency="weekly", weekdays=["wednesday", "monday"]))

        assert parts == {"FREQ": "WEEKLY", "INTERVAL": 1, "BYDAY": ["MO", "WE"]}

    def test_monthly_ordinal_and_until(self, make_rule) -> None:
        rule = make_rule(
            frequency="monthly",
            monthly_type="on_weekday",
            weekday_ordinal="second",
            weekday_name="tuesday",
            end_type="on_date",
            end_date=date(2024, 6, 30),
        )

        parts = rrule_components(rule)

        assert parts["BYDAY"] == ["2TU"]
        assert parts["UNTIL"] == date(2024, 6, 30)

    def test_monthly_day(self, make_rule) -> None:
        parts = rrule_components(make_rule(frequency="monthly", monthly_type="on_day", month_day=15))

        assert parts["BYMONTHDAY"] == 15


def test_build_rrule_respects_week_start(make_rule) -> None:
    rule = make_rule(frequency="weekly", interval=2, weekdays=["monday", "sunday"])

    rr = build_rrule(rule, JAN_1, week_start="sunday")

    assert [d.date() for d in rr[:3]] == [date(2024, 1, 1), date(2024, 1, 14), date(2024, 1, 15)]


class TestParse:
    def test_parse_components(self) -> None:
        parsed = parse_rrule_string("RRULE:FREQ=WEEKLY;INTERVAL=2;BYDAY=MO,we;COUNT=6")

        assert parsed == {"freq": "WEEKLY", "interval": 2, "byday": ["MO", "WE"], "count": 6}

    def test_dtstart_line_is_skipped(self) -> None:
        parsed = parse_rrule_string("DTSTART:20240101T000000\nRRULE:FREQ=DAILY;UNTIL=20240110T000000")

        assert parsed == {"freq": "DAILY", "until": date(2024, 1, 10)}

    @pytest.mark.parametrize(
        "text,match",
        [
            ("", "Empty RRULE"),
            ("   ", "Empty RRULE"),
            ("INTERVAL=2", "missing required FREQ"),
            ("FREQ=HOURLY", "Unsupported RRULE frequency"),
            ("FREQ=DAILY;INTERVAL=two", "Invalid RRULE format"),
        ],
    )
    def test_parse_errors(self, text, match) -> None:
        with pytest.raises(InvalidRuleError, match=match):
            parse_rrule_string(text)


class TestFromRRule:
    def test_weekly(self) -> None:
        rule = from_rrule("FREQ=WEEKLY;BYDAY=MO,WE")

        assert rule.frequency == "weekly"
        assert rule.weekdays == ["monday", "wednesday"]
        assert rule.end_type == "never"

    def test_monthly_last_friday(self) -> None:
        rule = from_rrule("FREQ=MONTHLY;BYDAY=-1FR")

        assert rule.monthly_type == "on_weekday"
        assert rule.weekday_ordinal == "last"
        assert rule.weekday_name == "friday"

    def test_monthly_day_with_until(self) -> None:
        rule = from_rrule("FREQ=MONTHLY;BYMONTHDAY=15;UNTIL=20240331T235959Z")

        assert rule.monthly_type == "on_day"
        assert rule.month_day == 15
        assert rule.end_type == "on_date"
        assert rule.end_date == date(2024, 3, 31)

    def test_count(self) -> None:
        rule = from_rrule("FREQ=DAILY;INTERVAL=3;COUNT=5")

        assert (rule.interval, rule.end_type, rule.end_count) == (3, "after_count", 5)

    def test_round_trip_keeps_meaning(self, make_rule) -> None:
        original = make_rule(
            frequency="monthly",
            interval=2,
            monthly_type="on_weekday",
            weekday_ordinal="third",
            weekday_name="thursday",
            end_type="after_count",
            end_count=4,
        )

        assert from_rrule(to_rrule(original, JAN_1)) == original

    @pytest.mark.parametrize("text", ["FREQ=WEEKLY;BYDAY=XX", "FREQ=MONTHLY;BYDAY=5MO", "FREQ=MONTHLY;BYDAY=aMO"])
    def test_unsupported_byday(self, text) -> None:
        with pytest.raises(InvalidRuleError):
            from_rrule(text)


@pytest.mark.parametrize(
    "text,valid",
    [
        ("FREQ=DAILY;COUNT=3", True),
        ("DTSTART:20240101T000000\nRRULE:FREQ=WEEKLY;BYDAY=MO", True),
        ("FREQ=SOMETIMES", False),
        ("FREQ=DAILY;BYDAY=XX", False),
    ],
)
def test_validate_rrule(text, valid) -> None:
    ok, error = validate_rrule(text)

    assert ok is valid
    assert (error is None) is valid
