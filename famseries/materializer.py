"""Virtual instance materialization.

Projects a series' payload, plus any override payload, onto one occurrence
date. Instances are never persisted here and carry deterministic ids so that
repeated calls map the same occurrence to the same id.
"""

from __future__ import annotations

import logging
import math
from datetime import date, datetime, time, timedelta
from typing import Any, Optional, Union, cast

from pydantic import ValidationError

from .dateutils import day_start
from .exceptions import DataIntegrityError
from .models import (
    BaseSeries,
    CompletionRule,
    EventSeries,
    RecurrenceException,
    TaskSeries,
    VirtualEventInstance,
    VirtualTaskInstance,
)
from .reconciler import ReconciledOccurrence

logger = logging.getLogger(__name__)

Annotation = Union[ReconciledOccurrence, RecurrenceException, None]
VirtualInstance = Union[VirtualTaskInstance, VirtualEventInstance]

MINUTES_PER_DAY = 24 * 60


def instance_id(series_id: str, occurrence_date: date, profile_id: Optional[str] = None) -> str:
    """Deterministic instance id: ``<series_id>-<YYYY-MM-DD>[-<profile_id>]``."""
    base = f"{series_id}-{occurrence_date.isoformat()}"
    return f"{base}-{profile_id}" if profile_id else base


def _exception_of(annotation: Annotation) -> Optional[RecurrenceException]:
    if isinstance(annotation, ReconciledOccurrence):
        return annotation.exception
    return annotation


def resolve_payload(series: BaseSeries, override_data: Optional[dict[str, Any]] = None) -> BaseSeries:
    """Return a copy of ``series`` with ``override_data`` shallow-merged over its payload.

    Keys outside the series kind's payload fields are ignored so that unknown
    stored keys never leak into instances.

    Raises:
        DataIntegrityError: If the merged payload does not validate
    """
    if not override_data:
        return series

    allowed = set(series.PAYLOAD_FIELDS)
    applied = {k: v for k, v in override_data.items() if k in allowed}
    ignored = sorted(set(override_data) - allowed)
    if ignored:
        logger.debug("Ignoring non-payload override keys for series %s: %s", series.id, ignored)
    if not applied:
        return series

    try:
        return type(series).model_validate({**series.model_dump(), **applied})
    except ValidationError as e:
        raise DataIntegrityError(f"Stored override for series {series.id} does not validate: {e}") from e


def _event_bounds(series: EventSeries, occurrence_date: date) -> tuple[datetime, datetime]:
    if series.is_all_day:
        days = max(1, math.ceil(series.duration_minutes / MINUTES_PER_DAY))
        start = day_start(occurrence_date)
        return start, start + timedelta(days=days)
    start = datetime.combine(occurrence_date, series.start_time)
    return start, start + timedelta(minutes=series.duration_minutes)


def materialize(series: BaseSeries, occurrence_date: date, annotation: Annotation = None) -> VirtualInstance:
    """Build the virtual instance of ``series`` on ``occurrence_date``.

    Args:
        series: Task or event series supplying the default payload
        occurrence_date: Date the instance falls on
        annotation: Override from the reconciler, if any

    Returns:
        VirtualTaskInstance or VirtualEventInstance
    """
    exc = _exception_of(annotation)
    resolved = resolve_payload(series, exc.override_data if exc else None)
    common: dict[str, Any] = {
        "id": instance_id(series.id, occurrence_date),
        "series_id": series.id,
        "family_id": series.family_id,
        "created_by": series.created_by,
        "occurrence_date": occurrence_date,
        "is_exception": exc is not None,
        "exception_type": exc.exception_type if exc else None,
    }

    if isinstance(resolved, TaskSeries):
        return VirtualTaskInstance(
            **common,
            title=resolved.title,
            description=resolved.description,
            points=resolved.points,
            task_group=resolved.task_group,
            completion_rule=resolved.completion_rule,
            assigned_profiles=list(resolved.assigned_profiles),
            due_date=datetime.combine(occurrence_date, resolved.due_time or time.min),
        )
    if isinstance(resolved, EventSeries):
        start, end = _event_bounds(resolved, occurrence_date)
        return VirtualEventInstance(
            **common,
            title=resolved.title,
            description=resolved.description,
            location=resolved.location,
            start_date=start,
            end_date=end,
            is_all_day=resolved.is_all_day,
            attendee_profiles=list(resolved.attendee_profiles),
        )
    raise TypeError(f"Cannot materialize series of type {type(series).__name__}")


def materialize_task_instances(
    series: TaskSeries,
    occurrence_date: date,
    annotation: Annotation = None,
    split_by_assignee: bool = True,
) -> list[VirtualTaskInstance]:
    """Materialize a task occurrence, one instance per assignee for "everyone" tasks.

    With ``completion_rule == "everyone"`` and more than one assignee each
    profile gets its own instance whose id carries the profile id. Otherwise a
    single shared instance is returned.
    """
    instance = cast(VirtualTaskInstance, materialize(series, occurrence_date, annotation))
    if (
        not split_by_assignee
        or instance.completion_rule != CompletionRule.EVERYONE
        or len(instance.assigned_profiles) < 2
    ):
        return [instance]
    return [
        instance.model_copy(
            update={
                "id": instance_id(series.id, occurrence_date, profile_id),
                "assigned_profiles": [profile_id],
            }
        )
        for profile_id in instance.assigned_profiles
    ]
