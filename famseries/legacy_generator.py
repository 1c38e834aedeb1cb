"""Cache-warming batch job for concrete task rows.

Pre-creates task rows for a family's active task series and rotating tasks
over a window. Series rows are derived from the same virtual instances the
engine serves (so skips and overrides are honoured) and inserts are
idempotent, which makes the rows a cache of the virtual path rather than a
second source of truth. Failures are recorded per series and the run
continues with the next one.
"""

from __future__ import annotations

import logging
import time
from dataclasses import asdict, dataclass, field
from datetime import date, timedelta
from typing import Any, Optional

from .config import Config
from .dateutils import daterange, to_date, today, weekday_key
from .engine import SeriesEngine
from .exceptions import SeriesError
from .logging_config import series_context
from .models import RotatingTask, RotationCadence, SeriesType, TaskRow, TaskSeries, VirtualTaskInstance
from .notifications import ChangeNotifier, SeriesChange
from .store import SeriesStore

logger = logging.getLogger(__name__)


@dataclass
class GenerationReport:
    """Summary of one batch job run."""

    family_id: str
    window_start: date
    window_end: date
    inserted: int = 0
    skipped: int = 0
    errors: list[str] = field(default_factory=list)
    duration_ms: int = 0

    @property
    def ok(self) -> bool:
        return not self.errors

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["window_start"] = self.window_start.isoformat()
        data["window_end"] = self.window_end.isoformat()
        return data


def rotating_occurrences(task: RotatingTask, window_start: date, window_end: date) -> list[date]:
    """Dates in the window on which a rotating task falls due.

    Weekly tasks without days are due every day; monthly tasks without a day
    default to the 1st.
    """
    dates: list[date] = []
    for current in daterange(window_start, window_end):
        if task.cadence == RotationCadence.DAILY:
            dates.append(current)
        elif task.cadence == RotationCadence.WEEKLY:
            if not task.weekly_days or weekday_key(current) in task.weekly_days:
                dates.append(current)
        elif task.cadence == RotationCadence.MONTHLY:
            if current.day == (task.monthly_day or 1):
                dates.append(current)
    return dates


class BatchGenerator:
    """Generates task rows for one family per run.

    Args:
        store: Storage collaborator holding series, rotating tasks and rows
        engine: Engine used to derive series instances (built from store if omitted)
        config: Supplies ``batch_size`` and ``default_window_days``
        notifier: Optional notifier told about series that received rows
    """

    def __init__(
        self,
        store: SeriesStore,
        engine: Optional[SeriesEngine] = None,
        config: Optional[Config] = None,
        notifier: Optional[ChangeNotifier] = None,
    ) -> None:
        self.store = store
        self.config = config or Config()
        self.engine = engine or SeriesEngine(store, self.config)
        self.notifier = notifier

    def run(
        self,
        family_id: str,
        window_start: Optional[date] = None,
        window_end: Optional[date] = None,
    ) -> GenerationReport:
        """Generate rows for ``family_id`` over [window_start, window_end].

        The window defaults to today plus ``default_window_days``.
        """
        start = to_date(window_start) if window_start else today()
        end = to_date(window_end) if window_end else start + timedelta(days=self.config.default_window_days - 1)
        report = GenerationReport(family_id, start, end)
        started = time.monotonic()
        logger.info("Generating task rows for family %s from %s to %s", family_id, start, end)

        for series in self.store.list_series(family_id, SeriesType.TASK.value, active_only=True):
            try:
                with series_context(series.id), self.store.transaction():
                    inserted, skipped = self._generate_series_rows(series, start, end)
            except SeriesError as e:
                logger.warning("Failed to generate rows for series %s: %s", series.id, e)
                report.errors.append(f"Series {getattr(series, 'title', series.id)}: {e}")
                continue
            report.inserted += inserted
            report.skipped += skipped
            if inserted and self.notifier is not None:
                self.notifier.publish(SeriesChange("rows_generated", series.series_type, series.id))

        for task in self.store.list_rotating_tasks(family_id, active_only=True):
            try:
                with series_context(task.id), self.store.transaction():
                    inserted, skipped = self._generate_rotating_rows(task, start, end)
            except SeriesError as e:
                logger.warning("Failed to generate rows for rotating task %s: %s", task.id, e)
                report.errors.append(f"Rotating {task.name}: {e}")
                continue
            report.inserted += inserted
            report.skipped += skipped

        report.duration_ms = int((time.monotonic() - started) * 1000)
        logger.info(
            "Generation complete: %d inserted, %d skipped, %d errors",
            report.inserted,
            report.skipped,
            len(report.errors),
        )
        return report

    def _generate_series_rows(self, series: TaskSeries, start: date, end: date) -> tuple[int, int]:
        exceptions = self.store.list_exceptions(series.id, series.series_type)
        instances = self.engine.expand_series(series, exceptions, start, end, split_by_assignee=True)

        dates = sorted({i.occurrence_date for i in instances})[: self.config.batch_size]
        allowed = set(dates)

        inserted = skipped = 0
        for instance in instances:
            if instance.occurrence_date not in allowed:
                continue
            if self.store.upsert_task_row(self._row_from_instance(series, instance)):
                inserted += 1
            else:
                skipped += 1
        logger.debug("Series %s: %d row(s) inserted, %d already present", series.id, inserted, skipped)
        return inserted, skipped

    @staticmethod
    def _row_from_instance(series: TaskSeries, instance: VirtualTaskInstance) -> TaskRow:
        assignees = instance.assigned_profiles
        return TaskRow(
            source_id=series.id,
            source_kind="series",
            family_id=series.family_id,
            title=instance.title,
            description=instance.description,
            points=instance.points,
            assigned_to=assignees[0] if len(assignees) == 1 else None,
            due_date=instance.occurrence_date,
            task_group=instance.task_group,
            completion_rule=instance.completion_rule,
            created_by=instance.created_by,
        )

    def _generate_rotating_rows(self, task: RotatingTask, start: date, end: date) -> tuple[int, int]:
        if not task.member_order:
            raise SeriesError(f"Rotating task {task.name} has no members")

        existing_dates = {row.due_date for row in self.store.list_task_rows(source_id=task.id)}
        index = task.current_member_index % len(task.member_order)
        inserted = skipped = 0

        for due in rotating_occurrences(task, start, end):
            if due in existing_dates:
                skipped += 1
                continue
            row = TaskRow(
                source_id=task.id,
                source_kind="rotating",
                family_id=task.family_id,
                title=task.name,
                description=task.description,
                points=task.points,
                assigned_to=task.member_order[index],
                due_date=due,
                task_group="rotating",
                created_by=task.created_by,
            )
            self.store.upsert_task_row(row)
            inserted += 1
            index = (index + 1) % len(task.member_order)

        if inserted:
            self.store.save_rotating_task(task.model_copy(update={"current_member_index": index}))
        logger.debug("Rotating task %s: %d row(s) inserted, next member index %d", task.id, inserted, index)
        return inserted, skipped
