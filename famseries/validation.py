"""Structural validation and diagnostics for recurrence rules."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Any, Optional, Union

from pydantic import ValidationError

from .exceptions import InvalidRuleError
from .models import EndType, Frequency, MonthlyType, RecurrenceRule

logger = logging.getLogger(__name__)


def collect_rule_errors(rule: RecurrenceRule, series_start: Optional[date] = None) -> list[str]:
    """Return every structural problem with ``rule`` as a user-facing message.

    An empty list means the rule can be expanded.
    """
    errors: list[str] = []

    if rule.interval < 1:
        errors.append("Interval must be at least 1")

    if rule.frequency == Frequency.WEEKLY and rule.weekdays is not None and len(rule.weekdays) == 0:
        errors.append("Select at least one weekday for a weekly rule")

    if rule.month_day is not None and not 1 <= rule.month_day <= 31:
        errors.append("Day of month must be between 1 and 31")

    if rule.frequency == Frequency.MONTHLY:
        if rule.monthly_type == MonthlyType.ON_DAY and rule.month_day is None:
            errors.append("Monthly rules on a day need a day of the month")
        elif rule.monthly_type == MonthlyType.ON_WEEKDAY and not (rule.weekday_ordinal and rule.weekday_name):
            errors.append("Monthly rules on a weekday need both an ordinal and a weekday")

    if rule.end_type == EndType.ON_DATE:
        if rule.end_date is None:
            errors.append("End date is required when the rule ends on a date")
        if rule.end_count is not None:
            errors.append("End count must not be set when the rule ends on a date")
    elif rule.end_type == EndType.AFTER_COUNT:
        if rule.end_count is None:
            errors.append("End count is required when the rule ends after a number of occurrences")
        elif rule.end_count < 1:
            errors.append("End count must be at least 1")
        if rule.end_date is not None:
            errors.append("End date must not be set when the rule ends after a number of occurrences")
    elif rule.end_date is not None or rule.end_count is not None:
        errors.append("Rules that never end must not carry an end date or count")

    if series_start is not None and rule.end_date is not None and rule.end_date < series_start:
        errors.append("End date must be on or after the start date")

    return errors


def validate_rule(rule: RecurrenceRule, series_start: Optional[date] = None) -> RecurrenceRule:
    """Raise InvalidRuleError if ``rule`` is structurally invalid.

    Returns the rule unchanged so calls can be chained.
    """
    errors = collect_rule_errors(rule, series_start)
    if errors:
        raise InvalidRuleError(errors[0], errors)
    return rule


def parse_rule(data: Union[RecurrenceRule, dict[str, Any], str]) -> RecurrenceRule:
    """Build a RecurrenceRule from a model, a stored dict or JSON text.

    Type errors from pydantic are reported as InvalidRuleError; structural
    validation is left to ``validate_rule``.
    """
    if isinstance(data, RecurrenceRule):
        return data
    if isinstance(data, str):
        try:
            data = json.loads(data)
        except json.JSONDecodeError as e:
            raise InvalidRuleError(f"Recurrence rule is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise InvalidRuleError("Recurrence rule must be a JSON object")
    try:
        return RecurrenceRule.model_validate(data)
    except ValidationError as e:
        messages = [
            f"{'.'.join(str(part) for part in err['loc']) or 'rule'}: {err['msg']}" for err in e.errors()
        ]
        raise InvalidRuleError(f"Malformed recurrence rule: {messages[0]}", messages) from e


@dataclass
class RuleDiagnostics:
    """Result of running every check against a rule."""

    rrule: Optional[str] = None
    rrule_valid: bool = False
    summary: Optional[str] = None
    instance_count: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    def to_dict(self) -> dict[str, Any]:
        return {
            "rrule": self.rrule,
            "rrule_valid": self.rrule_valid,
            "summary": self.summary,
            "instance_count": self.instance_count,
            "errors": list(self.errors),
            "ok": self.ok,
        }


def diagnose_rule(rule: RecurrenceRule, series_start: date) -> RuleDiagnostics:
    """Check RRULE generation, RRULE validity, summary text and one year of instances.

    Used by the CLI ``preview`` command and by support tooling to explain why a
    stored series renders nothing. Never raises for an invalid rule; problems
    end up in ``errors``.
    """
    from .interpreter import expand
    from .rrule_converter import to_rrule, validate_rrule
    from .summary import summary_text

    report = RuleDiagnostics()
    report.errors.extend(collect_rule_errors(rule, series_start))
    if report.errors:
        logger.debug("Rule diagnostics found %d structural error(s)", len(report.errors))
        return report

    try:
        report.rrule = to_rrule(rule, series_start)
    except InvalidRuleError as e:
        report.errors.append(f"RRULE generation failed: {e}")
        return report

    report.rrule_valid, rrule_error = validate_rrule(report.rrule)
    if not report.rrule_valid:
        report.errors.append(f"Generated RRULE is invalid: {rrule_error}")

    report.summary = summary_text(rule, series_start)

    window_end = series_start + timedelta(days=365)
    report.instance_count = len(expand(rule, series_start, series_start, window_end, max_days=366))
    if report.instance_count == 0:
        report.errors.append("Rule produces no occurrences in the first year")

    return report
