"""Series mutation operations.

Implements the three edit scopes plus single-occurrence skip/restore and
series-level delete/deactivate. Every operation validates its input before
touching the store and runs inside one store transaction, so callers observe
either the complete effect or none of it.

Exceptions are never deleted as a side effect of an edit. After a split, any
exception dated on or after the split stays attached to the parent and simply
stops matching because the parent no longer produces those dates.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Any, Optional, Union
from uuid import uuid4

from pydantic import ValidationError

from .config import Config
from .dateutils import to_date
from .exceptions import (
    InvalidPayloadError,
    OccurrenceNotFoundError,
    SeriesError,
    SplitConflictError,
)
from .interpreter import count_before, is_occurrence
from .logging_config import series_context
from .models import (
    BaseSeries,
    EditScope,
    EndType,
    ExceptionType,
    RecurrenceException,
    RecurrenceRule,
)
from .notifications import ChangeNotifier, SeriesChange
from .store import SeriesStore
from .validation import parse_rule, validate_rule

logger = logging.getLogger(__name__)

RuleInput = Union[RecurrenceRule, dict[str, Any], str, None]


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class EditResult:
    """Outcome of ``SeriesEditor.apply_edit``.

    ``series_id`` is the series the edit was addressed to. ``new_series`` is
    only set by a this-and-following split; ``changed`` is False when the
    edit was a no-op (re-applying an identical override, for example).
    """

    scope: str
    series_type: str
    series_id: str
    occurrence_date: Optional[date] = None
    exception: Optional[RecurrenceException] = None
    updated_series: Optional[BaseSeries] = None
    new_series: Optional[BaseSeries] = None
    changed: bool = True


class SeriesEditor:
    """Applies edits to series stored in a ``SeriesStore``.

    Args:
        store: Storage collaborator
        notifier: Optional change notifier; published to after each commit
        config: Supplies ``week_start`` for occurrence checks
    """

    def __init__(
        self,
        store: SeriesStore,
        notifier: Optional[ChangeNotifier] = None,
        config: Optional[Config] = None,
    ) -> None:
        self.store = store
        self.notifier = notifier
        self.config = config or Config()

    # -- helpers --------------------------------------------------------------

    def _publish(self, change: SeriesChange) -> None:
        if self.notifier is not None:
            self.notifier.publish(change)

    def _is_occurrence(self, series: BaseSeries, occurrence_date: date) -> bool:
        return series.is_active and is_occurrence(
            series.recurrence_rule,
            series.series_start,
            occurrence_date,
            series_end=series.series_end,
            week_start=self.config.week_start,
        )

    def _require_occurrence(self, series: BaseSeries, occurrence_date: date) -> None:
        if not self._is_occurrence(series, occurrence_date):
            raise OccurrenceNotFoundError(
                f"Series {series.id} has no occurrence on {occurrence_date.isoformat()}"
            )

    def _validate_payload(
        self, series: BaseSeries, payload: Optional[dict[str, Any]], required: bool
    ) -> dict[str, Any]:
        """Check ``payload`` against the series kind and return it in stored (JSON) form."""
        if not payload:
            if required:
                raise InvalidPayloadError("Edit payload must not be empty")
            return {}

        unknown = sorted(set(payload) - set(series.PAYLOAD_FIELDS))
        if unknown:
            raise InvalidPayloadError(
                f"Fields not editable on a {series.series_type} series: {', '.join(unknown)}"
            )
        try:
            merged = type(series).model_validate({**series.model_dump(), **payload})
        except ValidationError as e:
            raise InvalidPayloadError(f"Invalid {series.series_type} payload: {e}") from e
        return merged.model_dump(mode="json", include=set(payload))

    @staticmethod
    def _rule_for(rule: RuleInput) -> Optional[RecurrenceRule]:
        if rule is None:
            return None
        return parse_rule(rule)

    # -- edit scopes ----------------------------------------------------------

    def create_series(self, series: BaseSeries) -> BaseSeries:
        """Validate and store a new series.

        Raises:
            InvalidRuleError: If the rule is structurally invalid
        """
        validate_rule(series.recurrence_rule, series.series_start)
        now = _now()
        series = series.model_copy(update={"created_at": series.created_at or now, "updated_at": now})
        self.store.save_series(series)
        logger.info("Created %s series %s starting %s", series.series_type, series.id, series.series_start)
        self._publish(SeriesChange("created", series.series_type, series.id))
        return series

    def apply_edit(
        self,
        scope: Union[EditScope, str],
        series_type: str,
        series_id: str,
        occurrence_date: Optional[Union[date, str]] = None,
        new_payload: Optional[dict[str, Any]] = None,
        *,
        new_rule: RuleInput = None,
        created_by: Optional[str] = None,
    ) -> EditResult:
        """Apply an edit with the given scope.

        Args:
            scope: this_only, this_and_following or all_occurrences
            series_type: "task" or "event"
            series_id: Series being edited
            occurrence_date: The occurrence the user acted on (not needed for all_occurrences)
            new_payload: Partial payload with the new values
            new_rule: Replacement recurrence rule (not allowed for this_only)
            created_by: Profile recorded on written exceptions

        Raises:
            SeriesNotFoundError: If the series does not exist
            OccurrenceNotFoundError: If occurrence_date is not an occurrence
            SplitConflictError: If a split is requested at or before the series start
            InvalidRuleError: If new_rule is invalid
            InvalidPayloadError: If the payload is empty or has unknown or invalid fields
        """
        try:
            scope = EditScope(scope)
        except ValueError as e:
            raise SeriesError(f"Unknown edit scope: {scope!r}") from e

        when = to_date(occurrence_date) if occurrence_date is not None else None
        if scope != EditScope.ALL_OCCURRENCES and when is None:
            raise SeriesError(f"{scope.value} edits require an occurrence date")

        with series_context(series_id):
            if scope == EditScope.THIS_ONLY:
                if new_rule is not None:
                    raise InvalidPayloadError("A single occurrence cannot change the recurrence rule")
                result = self._edit_this_only(series_type, series_id, when, new_payload, created_by)
            elif scope == EditScope.THIS_AND_FOLLOWING:
                result = self._split(series_type, series_id, when, new_payload, self._rule_for(new_rule))
            else:
                result = self._edit_all(series_type, series_id, new_payload, self._rule_for(new_rule))

        if result.changed:
            self._publish(
                SeriesChange(
                    f"edit_{scope.value}",
                    result.series_type,
                    result.series_id,
                    occurrence_date=when,
                    new_series_id=result.new_series.id if result.new_series else None,
                )
            )
        return result

    def _edit_this_only(
        self,
        series_type: str,
        series_id: str,
        when: date,
        payload: Optional[dict[str, Any]],
        created_by: Optional[str],
    ) -> EditResult:
        with self.store.transaction():
            series = self.store.get_series(series_id, series_type)
            self._require_occurrence(series, when)
            override_data = self._validate_payload(series, payload, required=True)

            existing = self.store.get_exception(series.id, series.series_type, when)
            if (
                existing is not None
                and existing.exception_type == ExceptionType.OVERRIDE
                and existing.override_data == override_data
            ):
                logger.debug("Override for %s on %s unchanged", series.id, when)
                return EditResult(
                    EditScope.THIS_ONLY.value, series.series_type, series.id, when, existing, changed=False
                )

            exception = RecurrenceException(
                series_id=series.id,
                series_type=series.series_type,
                exception_date=when,
                exception_type=ExceptionType.OVERRIDE,
                override_data=override_data,
                created_by=created_by,
                created_at=_now(),
            )
            self.store.upsert_exception(exception)

        logger.info("Stored override for %s series %s on %s", series.series_type, series.id, when)
        return EditResult(EditScope.THIS_ONLY.value, series.series_type, series.id, when, exception)

    def _split(
        self,
        series_type: str,
        series_id: str,
        when: date,
        payload: Optional[dict[str, Any]],
        new_rule: Optional[RecurrenceRule],
    ) -> EditResult:
        with self.store.transaction():
            parent = self.store.get_series(series_id, series_type)
            if when <= parent.series_start:
                raise SplitConflictError(
                    f"Cannot split series {parent.id} at {when.isoformat()}: "
                    f"it starts on {parent.series_start.isoformat()}"
                )
            self._require_occurrence(parent, when)
            rule = parent.recurrence_rule
            kept = count_before(rule, parent.series_start, when, week_start=self.config.week_start)
            if kept == 0:
                raise SplitConflictError(
                    f"Cannot split series {parent.id} at {when.isoformat()}: "
                    "it is the first occurrence, so nothing would remain before it"
                )
            changes = self._validate_payload(parent, payload, required=new_rule is None)

            if new_rule is not None:
                child_rule = validate_rule(new_rule, when)
            elif rule.end_type == EndType.AFTER_COUNT:
                child_rule = rule.model_copy(update={"end_count": rule.end_count - kept})
            else:
                child_rule = rule.model_copy()

            now = _now()
            child = type(parent).model_validate(
                {
                    **parent.model_dump(),
                    **changes,
                    "id": uuid4().hex,
                    "series_start": when,
                    "recurrence_rule": child_rule,
                    "original_series_id": parent.id,
                    "is_active": True,
                    "created_at": now,
                    "updated_at": now,
                }
            )

            last_parent_day = when - timedelta(days=1)
            parent_rule = rule.model_copy(
                update={"end_type": EndType.ON_DATE.value, "end_date": last_parent_day, "end_count": None}
            )
            validate_rule(parent_rule, parent.series_start)
            bounded_parent = parent.model_copy(
                update={"recurrence_rule": parent_rule, "series_end": last_parent_day, "updated_at": now}
            )

            self.store.save_series(child)
            self.store.save_series(bounded_parent)

        logger.info(
            "Split %s series %s at %s into new series %s",
            parent.series_type,
            parent.id,
            when,
            child.id,
        )
        return EditResult(
            EditScope.THIS_AND_FOLLOWING.value,
            parent.series_type,
            parent.id,
            when,
            updated_series=bounded_parent,
            new_series=child,
        )

    def _edit_all(
        self,
        series_type: str,
        series_id: str,
        payload: Optional[dict[str, Any]],
        new_rule: Optional[RecurrenceRule],
    ) -> EditResult:
        with self.store.transaction():
            series = self.store.get_series(series_id, series_type)
            changes = self._validate_payload(series, payload, required=new_rule is None)
            if new_rule is not None:
                validate_rule(new_rule, series.series_start)

            updated = type(series).model_validate(
                {
                    **series.model_dump(),
                    **changes,
                    "recurrence_rule": new_rule or series.recurrence_rule,
                }
            )
            if updated.model_dump(exclude={"updated_at"}) == series.model_dump(exclude={"updated_at"}):
                return EditResult(
                    EditScope.ALL_OCCURRENCES.value,
                    series.series_type,
                    series.id,
                    updated_series=series,
                    changed=False,
                )
            updated = updated.model_copy(update={"updated_at": _now()})
            self.store.save_series(updated)

        logger.info("Updated all occurrences of %s series %s", series.series_type, series.id)
        return EditResult(
            EditScope.ALL_OCCURRENCES.value, series.series_type, series.id, updated_series=updated
        )

    # -- single occurrences ---------------------------------------------------

    def skip_occurrence(
        self,
        series_type: str,
        series_id: str,
        occurrence_date: Union[date, str],
        created_by: Optional[str] = None,
    ) -> RecurrenceException:
        """Remove one occurrence by writing a skip exception (replaces an override)."""
        when = to_date(occurrence_date)
        with series_context(series_id), self.store.transaction():
            series = self.store.get_series(series_id, series_type)
            existing = self.store.get_exception(series.id, series.series_type, when)
            if existing is not None and existing.exception_type == ExceptionType.SKIP:
                return existing
            self._require_occurrence(series, when)
            exception = RecurrenceException(
                series_id=series.id,
                series_type=series.series_type,
                exception_date=when,
                exception_type=ExceptionType.SKIP,
                created_by=created_by,
                created_at=_now(),
            )
            self.store.upsert_exception(exception)

        logger.info("Skipped %s series %s on %s", series.series_type, series.id, when)
        self._publish(SeriesChange("skip", series.series_type, series.id, occurrence_date=when))
        return exception

    def restore_occurrence(self, series_type: str, series_id: str, occurrence_date: Union[date, str]) -> bool:
        """Drop any skip or override on one date. Returns True if one was removed."""
        when = to_date(occurrence_date)
        with self.store.transaction():
            series = self.store.get_series(series_id, series_type)
            removed = self.store.delete_exception(series.id, series.series_type, when)
        if removed:
            logger.info("Restored %s series %s on %s", series.series_type, series.id, when)
            self._publish(SeriesChange("restore", series.series_type, series.id, occurrence_date=when))
        return removed

    def count_future_overrides(self, series_type: str, series_id: str, after: Union[date, str]) -> int:
        """Number of override exceptions dated after ``after``.

        Shown before a this-and-following edit, which leaves those overrides
        attached to the parent where they no longer apply.
        """
        when = to_date(after)
        return sum(
            1
            for exc in self.store.list_exceptions(series_id, series_type)
            if exc.exception_type == ExceptionType.OVERRIDE and exc.exception_date > when
        )

    # -- whole series ---------------------------------------------------------

    def delete_series(self, series_type: str, series_id: str) -> int:
        """Delete a series and all of its exceptions. Returns the exception count removed."""
        with self.store.transaction():
            series = self.store.get_series(series_id, series_type)
            self.store.delete_series(series.id)
            removed = self.store.delete_exceptions(series.id)
        logger.info("Deleted %s series %s and %d exception(s)", series.series_type, series.id, removed)
        self._publish(SeriesChange("delete", series.series_type, series.id))
        return removed

    def deactivate_series(self, series_type: str, series_id: str) -> BaseSeries:
        """Soft-disable a series; it keeps its exceptions and expands to nothing."""
        with self.store.transaction():
            series = self.store.get_series(series_id, series_type)
            if not series.is_active:
                return series
            series = series.model_copy(update={"is_active": False, "updated_at": _now()})
            self.store.save_series(series)
        logger.info("Deactivated %s series %s", series.series_type, series.id)
        self._publish(SeriesChange("deactivate", series.series_type, series.id))
        return series
