"""Exception hierarchy for the famseries recurrence engine.

Every error raised deliberately by this package derives from SeriesError so
callers can catch the whole family at the request boundary and still map the
individual types to distinct, actionable messages.
"""

from __future__ import annotations


class SeriesError(Exception):
    """Base exception for all recurrence/series errors."""


class InvalidRuleError(SeriesError):
    """A recurrence rule failed structural validation.

    Raised when:
    - interval is not a positive integer
    - weekdays is present but empty for a weekly rule
    - month_day is outside 1-31, or the on_weekday fields are incomplete
    - end_type does not match the presence of end_date / end_count

    Raised before expansion begins; nothing is partially expanded or written.
    """

    def __init__(self, message: str, errors: list[str] | None = None) -> None:
        super().__init__(message)
        self.errors: list[str] = list(errors) if errors else [message]


class DataIntegrityError(SeriesError):
    """Stored data violates an invariant.

    Raised when two exceptions exist for the same series and date. The
    reconciler refuses to pick one because that could hide an upstream bug.
    """


class RangeTooLargeError(SeriesError):
    """The requested expansion window exceeds the configured maximum."""


class SplitConflictError(SeriesError):
    """A this-and-following split was requested at or before the series start."""


class OccurrenceNotFoundError(SeriesError):
    """An edit targeted a date on which the series does not occur."""


class SeriesNotFoundError(SeriesError):
    """No series with the requested id exists in the store."""


class StoreError(SeriesError):
    """The storage collaborator could not read or persist its state."""


class InvalidPayloadError(SeriesError):
    """An edit or override carries fields the series kind does not accept."""
