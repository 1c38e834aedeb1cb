"""Storage collaborators for series, exceptions, rotating tasks and generated rows.

The recurrence core treats storage as an opaque key-value store keyed by
series id and by (series id, type, date). Two implementations are provided:
an in-memory store for tests and embedding, and a JSON-file store that writes
the whole document atomically (temp file in the same directory, then replace).

Every mutation runs inside ``transaction()``. Nested transactions join the
outermost one; state is snapshotted on entry and restored if the block raises,
and the JSON store writes exactly once when the outermost block commits.
"""

from __future__ import annotations

import contextlib
import copy
import json
import logging
import os
import tempfile
import threading
from collections.abc import Iterator
from datetime import date
from pathlib import Path
from typing import Any, Optional

from pydantic import ValidationError

from .exceptions import SeriesNotFoundError, StoreError
from .models import BaseSeries, RecurrenceException, RotatingTask, TaskRow, kind_key, series_from_dict

logger = logging.getLogger(__name__)

STORE_FORMAT_VERSION = 1


class SeriesStore:
    """In-memory state plus transaction handling shared by all stores."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._depth = 0
        self._series: dict[str, BaseSeries] = {}
        # A list, not a dict: loaded data may hold duplicates the reconciler must see
        self._exceptions: list[RecurrenceException] = []
        self._rotating: dict[str, RotatingTask] = {}
        self._task_rows: dict[tuple[str, str, Optional[str]], TaskRow] = {}

    # -- transactions ---------------------------------------------------------

    def _snapshot(self) -> dict[str, Any]:
        return {
            "series": copy.deepcopy(self._series),
            "exceptions": copy.deepcopy(self._exceptions),
            "rotating": copy.deepcopy(self._rotating),
            "task_rows": copy.deepcopy(self._task_rows),
        }

    def _restore(self, snapshot: dict[str, Any]) -> None:
        self._series = snapshot["series"]
        self._exceptions = snapshot["exceptions"]
        self._rotating = snapshot["rotating"]
        self._task_rows = snapshot["task_rows"]

    def _persist(self) -> None:
        """Write state to durable storage. No-op for the in-memory store."""

    @contextlib.contextmanager
    def transaction(self) -> Iterator[SeriesStore]:
        """Run a block of mutations atomically.

        Holds the store lock for the whole block so concurrent writers
        serialize. If the block raises, or the final persist fails, every
        change made inside the block is rolled back.
        """
        with self._lock:
            outermost = self._depth == 0
            snapshot = self._snapshot() if outermost else None
            self._depth += 1
            try:
                yield self
                if outermost:
                    self._persist()
            except BaseException:
                if snapshot is not None:
                    self._restore(snapshot)
                    logger.debug("Store transaction rolled back")
                raise
            finally:
                self._depth -= 1

    # -- series ---------------------------------------------------------------

    def find_series(self, series_id: str) -> Optional[BaseSeries]:
        with self._lock:
            series = self._series.get(series_id)
            return series.model_copy(deep=True) if series is not None else None

    def get_series(self, series_id: str, series_type: Optional[str] = None) -> BaseSeries:
        """Return a copy of the series.

        Raises:
            SeriesNotFoundError: If no series with that id (and type) exists
        """
        series = self.find_series(series_id)
        if series is None or (series_type is not None and series.series_type != kind_key(series_type)):
            kind = f"{series_type} " if series_type else ""
            raise SeriesNotFoundError(f"No {kind}series with id {series_id}")
        return series

    def list_series(
        self,
        family_id: Optional[str] = None,
        series_type: Optional[str] = None,
        active_only: bool = False,
    ) -> list[BaseSeries]:
        with self._lock:
            found = [
                s.model_copy(deep=True)
                for s in self._series.values()
                if (family_id is None or s.family_id == family_id)
                and (series_type is None or s.series_type == kind_key(series_type))
                and (not active_only or s.is_active)
            ]
        return sorted(found, key=lambda s: (s.series_start, s.id))

    def save_series(self, series: BaseSeries) -> BaseSeries:
        with self.transaction():
            self._series[series.id] = series.model_copy(deep=True)
        return series

    def delete_series(self, series_id: str) -> bool:
        with self.transaction():
            return self._series.pop(series_id, None) is not None

    # -- exceptions -----------------------------------------------------------

    def list_exceptions(self, series_id: str, series_type: Optional[str] = None) -> list[RecurrenceException]:
        with self._lock:
            found = [
                e.model_copy(deep=True)
                for e in self._exceptions
                if e.series_id == series_id and (series_type is None or e.series_type == kind_key(series_type))
            ]
        return sorted(found, key=lambda e: e.exception_date)

    def get_exception(
        self, series_id: str, series_type: str, exception_date: date
    ) -> Optional[RecurrenceException]:
        key = (series_id, kind_key(series_type), exception_date)
        with self._lock:
            for exc in self._exceptions:
                if exc.key == key:
                    return exc.model_copy(deep=True)
        return None

    def upsert_exception(self, exception: RecurrenceException) -> RecurrenceException:
        """Insert an exception, replacing any exception with the same key."""
        with self.transaction():
            self._exceptions = [e for e in self._exceptions if e.key != exception.key]
            self._exceptions.append(exception.model_copy(deep=True))
        return exception

    def delete_exception(self, series_id: str, series_type: str, exception_date: date) -> bool:
        key = (series_id, kind_key(series_type), exception_date)
        with self.transaction():
            before = len(self._exceptions)
            self._exceptions = [e for e in self._exceptions if e.key != key]
            return len(self._exceptions) != before

    def delete_exceptions(self, series_id: str) -> int:
        """Remove every exception of a series. Returns how many were removed."""
        with self.transaction():
            before = len(self._exceptions)
            self._exceptions = [e for e in self._exceptions if e.series_id != series_id]
            return before - len(self._exceptions)

    # -- rotating tasks -------------------------------------------------------

    def list_rotating_tasks(self, family_id: Optional[str] = None, active_only: bool = False) -> list[RotatingTask]:
        with self._lock:
            found = [
                t.model_copy(deep=True)
                for t in self._rotating.values()
                if (family_id is None or t.family_id == family_id)
                and (not active_only or (t.is_active and not t.is_paused))
            ]
        return sorted(found, key=lambda t: (t.name, t.id))

    def get_rotating_task(self, task_id: str) -> Optional[RotatingTask]:
        with self._lock:
            task = self._rotating.get(task_id)
            return task.model_copy(deep=True) if task is not None else None

    def save_rotating_task(self, task: RotatingTask) -> RotatingTask:
        with self.transaction():
            self._rotating[task.id] = task.model_copy(deep=True)
        return task

    # -- generated task rows --------------------------------------------------

    def has_task_row(self, key: tuple[str, str, Optional[str]]) -> bool:
        with self._lock:
            return key in self._task_rows

    def upsert_task_row(self, row: TaskRow) -> bool:
        """Insert a generated row unless one with the same key exists.

        Returns:
            True if the row was inserted, False if it already existed
        """
        with self.transaction():
            if row.key in self._task_rows:
                return False
            self._task_rows[row.key] = row.model_copy(deep=True)
            return True

    def list_task_rows(self, family_id: Optional[str] = None, source_id: Optional[str] = None) -> list[TaskRow]:
        with self._lock:
            found = [
                r.model_copy(deep=True)
                for r in self._task_rows.values()
                if (family_id is None or r.family_id == family_id)
                and (source_id is None or r.source_id == source_id)
            ]
        return sorted(found, key=lambda r: (r.due_date, r.source_id, r.assigned_to or ""))

    # -- serialization --------------------------------------------------------

    def to_document(self) -> dict[str, Any]:
        with self._lock:
            return {
                "version": STORE_FORMAT_VERSION,
                "series": [
                    {"series_type": s.series_type, **s.model_dump(mode="json")} for s in self._series.values()
                ],
                "exceptions": [e.model_dump(mode="json") for e in self._exceptions],
                "rotating_tasks": [t.model_dump(mode="json") for t in self._rotating.values()],
                "task_rows": [r.model_dump(mode="json") for r in self._task_rows.values()],
            }

    def load_document(self, data: dict[str, Any]) -> None:
        """Replace in-memory state with the contents of a store document.

        Raises:
            StoreError: If any record fails validation
        """
        try:
            series: dict[str, BaseSeries] = {}
            for raw in data.get("series", []):
                raw = dict(raw)
                item = series_from_dict(raw.pop("series_type", "task"), raw)
                series[item.id] = item
            exceptions = [RecurrenceException.model_validate(raw) for raw in data.get("exceptions", [])]
            rotating = {
                t.id: t for t in (RotatingTask.model_validate(raw) for raw in data.get("rotating_tasks", []))
            }
            rows = {r.key: r for r in (TaskRow.model_validate(raw) for raw in data.get("task_rows", []))}
        except (ValidationError, ValueError, TypeError, AttributeError) as e:
            raise StoreError(f"Store document contains an invalid record: {e}") from e

        with self._lock:
            self._series = series
            self._exceptions = exceptions
            self._rotating = rotating
            self._task_rows = rows


class InMemorySeriesStore(SeriesStore):
    """Volatile store; state lives only as long as the object."""


class JsonSeriesStore(SeriesStore):
    """Store persisted to a single JSON document.

    The on-disk format is ``{"version": 1, "series": [...], "exceptions": [...],
    "rotating_tasks": [...], "task_rows": [...]}``. A missing file starts
    empty; an unreadable file raises StoreError instead of being overwritten.
    """

    def __init__(self, path: str | os.PathLike[str]) -> None:
        super().__init__()
        self._path = Path(path)
        self.load()

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> None:
        """Load the document from disk. Safe to call repeatedly."""
        with self._lock:
            if not self._path.exists():
                logger.debug("Series store file not found; starting empty: %s", self._path)
                return
            try:
                with self._path.open("r", encoding="utf-8") as fh:
                    data = json.load(fh)
            except (OSError, json.JSONDecodeError) as e:
                raise StoreError(f"Failed to read series store {self._path}: {e}") from e
            if not isinstance(data, dict):
                raise StoreError(f"Series store {self._path} must contain a JSON object")
            self.load_document(data)
            logger.debug(
                "Loaded series store %s (%d series, %d exceptions)",
                self._path,
                len(self._series),
                len(self._exceptions),
            )

    def _persist(self) -> None:
        """Write the document atomically: temp file in the same directory, then replace."""
        document = self.to_document()
        tmp_path: Optional[Path] = None
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w", dir=self._path.parent, delete=False, encoding="utf-8", suffix=".tmp"
            ) as tf:
                tmp_path = Path(tf.name)
                json.dump(document, tf, ensure_ascii=False, indent=2)
                tf.flush()
                os.fsync(tf.fileno())
            os.replace(tmp_path, self._path)
        except OSError as e:
            if tmp_path is not None:
                with contextlib.suppress(OSError):
                    tmp_path.unlink()
            raise StoreError(f"Failed to persist series store to {self._path}: {e}") from e
