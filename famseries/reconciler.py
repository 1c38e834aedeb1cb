"""Exception reconciliation for expanded series occurrences.

Merges candidate dates from the rule interpreter with the per-date skip and
override exceptions stored for a series.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date
from typing import Any, Optional

from .exceptions import DataIntegrityError
from .models import ExceptionType, RecurrenceException

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReconciledOccurrence:
    """A surviving occurrence date plus the override that applies to it, if any."""

    occurrence_date: date
    exception: Optional[RecurrenceException] = None

    @property
    def is_exception(self) -> bool:
        return self.exception is not None

    @property
    def exception_type(self) -> Optional[str]:
        return str(self.exception.exception_type) if self.exception else None

    @property
    def override_data(self) -> Optional[dict[str, Any]]:
        return self.exception.override_data if self.exception else None


class ExceptionReconciler:
    """Applies skip/override exceptions to candidate dates."""

    def index_exceptions(
        self, exceptions: Iterable[RecurrenceException], series_id: Optional[str] = None
    ) -> dict[date, RecurrenceException]:
        """Index exceptions by date, refusing duplicates.

        Args:
            exceptions: Exceptions for one series
            series_id: When given, exceptions belonging to other series are ignored

        Raises:
            DataIntegrityError: If two exceptions share a date
        """
        by_date: dict[date, RecurrenceException] = {}
        for exc in exceptions:
            if series_id is not None and exc.series_id != series_id:
                continue
            existing = by_date.get(exc.exception_date)
            if existing is not None:
                raise DataIntegrityError(
                    f"Duplicate exceptions for series {exc.series_id} on {exc.exception_date.isoformat()}: "
                    f"{existing.id} ({existing.exception_type}) and {exc.id} ({exc.exception_type})"
                )
            by_date[exc.exception_date] = exc
        return by_date

    def reconcile(
        self,
        candidate_dates: Iterable[date],
        exceptions: Iterable[RecurrenceException],
        series_id: Optional[str] = None,
    ) -> list[ReconciledOccurrence]:
        """Filter candidate dates through the exception list.

        Skips drop their date, overrides keep it with the override attached and
        dates without an exception pass through. Exceptions on dates that are
        not candidates are ignored, never deleted.

        Raises:
            DataIntegrityError: If two exceptions share a date
        """
        by_date = self.index_exceptions(exceptions, series_id)

        result: list[ReconciledOccurrence] = []
        skipped = 0
        for candidate in candidate_dates:
            exc = by_date.get(candidate)
            if exc is None:
                result.append(ReconciledOccurrence(candidate))
            elif exc.exception_type == ExceptionType.SKIP:
                skipped += 1
            else:
                result.append(ReconciledOccurrence(candidate, exc))

        if skipped:
            logger.debug(f"Reconciler dropped {skipped} skipped occurrence(s)")
        return result


_default_reconciler = ExceptionReconciler()


def index_exceptions(
    exceptions: Iterable[RecurrenceException], series_id: Optional[str] = None
) -> dict[date, RecurrenceException]:
    return _default_reconciler.index_exceptions(exceptions, series_id)


def reconcile(
    candidate_dates: Iterable[date],
    exceptions: Iterable[RecurrenceException],
    series_id: Optional[str] = None,
) -> list[ReconciledOccurrence]:
    """Module-level shortcut for ``ExceptionReconciler().reconcile``."""
    return _default_reconciler.reconcile(candidate_dates, exceptions, series_id)
