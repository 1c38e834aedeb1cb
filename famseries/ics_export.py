"""iCalendar export of task and event series.

Each active series becomes one recurring component (VEVENT for events, VTODO
for tasks) carrying its RRULE. Skips become EXDATE values and overrides are
emitted as extra components with RECURRENCE-ID, so calendar clients render
the same occurrences as the engine.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import date, datetime, time, timedelta
from typing import Optional, Union

from icalendar import Calendar, Event as ICalEvent, Todo as ICalTodo

from .config import Config
from .interpreter import count_before, first_occurrences, is_occurrence
from .materializer import materialize
from .models import (
    BaseSeries,
    EventSeries,
    ExceptionType,
    RecurrenceException,
    TaskSeries,
    VirtualEventInstance,
    VirtualTaskInstance,
)
from .rrule_converter import rrule_components
from .store import SeriesStore

logger = logging.getLogger(__name__)

PRODID = "-//famseries//recurring series export//EN"
UID_DOMAIN = "famseries"


def _uid(series: BaseSeries) -> str:
    return f"{series.id}@{UID_DOMAIN}"


def _anchor(series: BaseSeries, day: date) -> Union[date, datetime]:
    """DTSTART-typed value for ``day``: a DATE for all-day events, otherwise a DATE-TIME."""
    if isinstance(series, EventSeries):
        return day if series.is_all_day else datetime.combine(day, series.start_time)
    if isinstance(series, TaskSeries):
        return datetime.combine(day, series.due_time)
    return day


def _recur(series: BaseSeries, week_start: str) -> dict:
    parts = rrule_components(series.recurrence_rule)
    if week_start != "monday":
        parts["WKST"] = week_start[:2].upper()
    end = series.effective_end
    if end is not None and "COUNT" in parts:
        # series_end may stop a count-terminated rule early
        reached = count_before(
            series.recurrence_rule, series.series_start, end + timedelta(days=1), week_start=week_start
        )
        parts["COUNT"] = min(parts["COUNT"], reached)
    elif end is not None:
        parts["UNTIL"] = end
    if "UNTIL" in parts:
        anchor = _anchor(series, parts["UNTIL"])
        # UNTIL must have the same value type as DTSTART
        parts["UNTIL"] = anchor if not isinstance(anchor, datetime) else datetime.combine(
            parts["UNTIL"], time(23, 59, 59)
        )
    return parts


def _fill_event(component: ICalEvent, instance: VirtualEventInstance) -> None:
    component.add("summary", instance.title)
    if instance.description:
        component.add("description", instance.description)
    if instance.location:
        component.add("location", instance.location)
    if instance.is_all_day:
        component.add("dtstart", instance.start_date.date())
        component.add("dtend", instance.end_date.date())
    else:
        component.add("dtstart", instance.start_date)
        component.add("dtend", instance.end_date)


def _fill_task(component: ICalTodo, instance: VirtualTaskInstance) -> None:
    component.add("summary", instance.title)
    if instance.description:
        component.add("description", instance.description)
    component.add("dtstart", instance.due_date)
    component.add("due", instance.due_date)
    if instance.points:
        component.add("x-famseries-points", str(instance.points))


def series_components(
    series: BaseSeries, exceptions: Iterable[RecurrenceException], week_start: str = "monday"
) -> list[Union[ICalEvent, ICalTodo]]:
    """Build the master component plus one component per override."""
    if not series.is_active:
        return []

    # DTSTART is always an instance in RFC 5545, so anchor on the first real occurrence
    first_dates = first_occurrences(
        series.recurrence_rule, series.series_start, 1, series_end=series.series_end, week_start=week_start
    )
    if not first_dates:
        logger.debug("Series %s has no occurrences; not exported", series.id)
        return []

    component_cls = ICalEvent if isinstance(series, EventSeries) else ICalTodo
    master = component_cls()
    master.add("uid", _uid(series))
    first = materialize(series, first_dates[0])
    if isinstance(series, EventSeries):
        _fill_event(master, first)
    else:
        _fill_task(master, first)
    master.add("rrule", _recur(series, week_start))
    if series.created_at:
        master.add("created", series.created_at)

    overrides: list[RecurrenceException] = []
    exdates: list[Union[date, datetime]] = []
    for exc in sorted(exceptions, key=lambda e: e.exception_date):
        if exc.exception_type == ExceptionType.SKIP:
            exdates.append(_anchor(series, exc.exception_date))
        elif is_occurrence(
            series.recurrence_rule,
            series.series_start,
            exc.exception_date,
            series_end=series.series_end,
            week_start=week_start,
        ):
            overrides.append(exc)
    if exdates:
        master.add("exdate", exdates)

    components: list[Union[ICalEvent, ICalTodo]] = [master]
    for exc in overrides:
        instance = materialize(series, exc.exception_date, exc)
        component = component_cls()
        component.add("uid", _uid(series))
        component.add("recurrence-id", _anchor(series, exc.exception_date))
        if isinstance(series, EventSeries):
            _fill_event(component, instance)
        else:
            _fill_task(component, instance)
        components.append(component)
    return components


def build_calendar(
    series_list: Iterable[BaseSeries],
    exceptions_by_series: dict[str, list[RecurrenceException]],
    week_start: str = "monday",
) -> Calendar:
    cal = Calendar()
    cal.add("prodid", PRODID)
    cal.add("version", "2.0")
    for series in series_list:
        for component in series_components(series, exceptions_by_series.get(series.id, []), week_start):
            cal.add_component(component)
    return cal


def export_calendar(
    store: SeriesStore,
    family_id: str,
    series_type: Optional[str] = None,
    config: Optional[Config] = None,
) -> bytes:
    """Export a family's active series as iCalendar bytes."""
    config = config or Config()
    series_list = store.list_series(family_id, series_type, active_only=True)
    exceptions = {s.id: store.list_exceptions(s.id, s.series_type) for s in series_list}
    cal = build_calendar(series_list, exceptions, config.week_start)
    logger.info("Exported %d series for family %s", len(series_list), family_id)
    return cal.to_ical()

