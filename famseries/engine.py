"""Series engine: expand, reconcile and materialize in one call.

Ties the rule interpreter, exception reconciler and materializer together for
a single series or for every series of a family. Nothing is cached between
calls; instances are re-derived from the store on every request.
"""

from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import Optional

from .config import Config
from .dateutils import to_date
from .exceptions import SeriesError
from .interpreter import expand_series as expand_series_dates
from .logging_config import series_context
from .materializer import VirtualInstance, materialize, materialize_task_instances
from .models import BaseSeries, RecurrenceException, TaskSeries
from .reconciler import ExceptionReconciler
from .store import SeriesStore

logger = logging.getLogger(__name__)


def _instance_sort_key(instance: VirtualInstance) -> tuple:
    moment = getattr(instance, "start_date", None) or getattr(instance, "due_date")
    return (instance.occurrence_date, moment, instance.series_id, instance.id)


class SeriesEngine:
    """Produces virtual instances for series held in a store.

    Args:
        store: Storage collaborator; only needed for the store-backed helpers
        config: Engine limits and defaults
    """

    def __init__(self, store: Optional[SeriesStore] = None, config: Optional[Config] = None) -> None:
        self.store = store
        self.config = config or Config()
        self._reconciler = ExceptionReconciler()

    def _require_store(self) -> SeriesStore:
        if self.store is None:
            raise SeriesError("SeriesEngine was created without a store")
        return self.store

    def _window(self, range_start: date, range_end: Optional[date]) -> tuple[date, date]:
        start = to_date(range_start)
        if range_end is None:
            return start, start + timedelta(days=self.config.default_window_days - 1)
        return start, to_date(range_end)

    def expand_series(
        self,
        series: BaseSeries,
        exceptions: list[RecurrenceException],
        range_start: date,
        range_end: date,
        split_by_assignee: bool = False,
    ) -> list[VirtualInstance]:
        """Expand one series over [range_start, range_end] into virtual instances.

        Args:
            series: Task or event series
            exceptions: Every stored exception for the series
            range_start: First date of the window
            range_end: Last date of the window, inclusive
            split_by_assignee: Give each assignee of an "everyone" task its own instance

        Returns:
            Instances in ascending date order

        Raises:
            InvalidRuleError: If the series' rule is invalid
            RangeTooLargeError: If the window exceeds ``max_expansion_days``
            DataIntegrityError: If two exceptions share a date
        """
        with series_context(series.id):
            dates = expand_series_dates(
                series,
                range_start,
                range_end,
                max_days=self.config.max_expansion_days,
                week_start=self.config.week_start,
            )
            occurrences = self._reconciler.reconcile(dates, exceptions, series.id)

            instances: list[VirtualInstance] = []
            for occurrence in occurrences:
                if split_by_assignee and isinstance(series, TaskSeries):
                    instances.extend(
                        materialize_task_instances(series, occurrence.occurrence_date, occurrence)
                    )
                else:
                    instances.append(materialize(series, occurrence.occurrence_date, occurrence))

            if len(instances) > self.config.max_instances:
                logger.warning(
                    "Series %s produced %d instances; truncating to %d",
                    series.id,
                    len(instances),
                    self.config.max_instances,
                )
                instances = instances[: self.config.max_instances]

            logger.debug(
                "Series %s: %d candidate date(s), %d instance(s) for %s..%s",
                series.id,
                len(dates),
                len(instances),
                range_start,
                range_end,
            )
            return instances

    def instances_for(
        self,
        series_type: str,
        series_id: str,
        range_start: date,
        range_end: Optional[date] = None,
        split_by_assignee: bool = False,
    ) -> list[VirtualInstance]:
        """Load a series and its exceptions from the store and expand it.

        Without ``range_end`` the configured default window is used.
        """
        store = self._require_store()
        start, end = self._window(range_start, range_end)
        series = store.get_series(series_id, series_type)
        exceptions = store.list_exceptions(series_id, series_type)
        return self.expand_series(series, exceptions, start, end, split_by_assignee)

    def family_instances(
        self,
        family_id: str,
        range_start: date,
        range_end: Optional[date] = None,
        series_type: Optional[str] = None,
        split_by_assignee: bool = False,
    ) -> list[VirtualInstance]:
        """Expand every active series of a family, merged and sorted by date."""
        store = self._require_store()
        start, end = self._window(range_start, range_end)
        instances: list[VirtualInstance] = []
        for series in store.list_series(family_id, series_type, active_only=True):
            exceptions = store.list_exceptions(series.id, series.series_type)
            instances.extend(self.expand_series(series, exceptions, start, end, split_by_assignee))
        instances.sort(key=_instance_sort_key)
        return instances

    def occurrence(self, series_type: str, series_id: str, occurrence_date: date) -> Optional[VirtualInstance]:
        """Return the resolved instance on one date, or None if skipped or not an occurrence."""
        store = self._require_store()
        series = store.get_series(series_id, series_type)
        found = self.expand_series(
            series, store.list_exceptions(series_id, series_type), occurrence_date, occurrence_date
        )
        return found[0] if found else None
