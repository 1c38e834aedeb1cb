"""famseries - recurrence and series engine for family tasks and events.

Expands recurring task/event series into virtual instances, reconciles them
with per-date skips and overrides, and applies this-only, this-and-following
and all-occurrences edits against a pluggable store.
"""

__version__ = "0.1.0"

from .config import Config, load_config
from .engine import SeriesEngine
from .exceptions import (
    DataIntegrityError,
    InvalidPayloadError,
    InvalidRuleError,
    OccurrenceNotFoundError,
    RangeTooLargeError,
    SeriesError,
    SeriesNotFoundError,
    SplitConflictError,
    StoreError,
)
from .interpreter import expand, iter_occurrences
from .materializer import materialize
from .models import (
    EditScope,
    EventSeries,
    RecurrenceException,
    RecurrenceRule,
    TaskSeries,
    VirtualEventInstance,
    VirtualTaskInstance,
)
from .mutations import EditResult, SeriesEditor
from .reconciler import reconcile
from .store import InMemorySeriesStore, JsonSeriesStore

__all__ = [
    "Config",
    "DataIntegrityError",
    "EditResult",
    "EditScope",
    "EventSeries",
    "InMemorySeriesStore",
    "InvalidPayloadError",
    "InvalidRuleError",
    "JsonSeriesStore",
    "OccurrenceNotFoundError",
    "RangeTooLargeError",
    "RecurrenceException",
    "RecurrenceRule",
    "SeriesEditor",
    "SeriesEngine",
    "SeriesError",
    "SeriesNotFoundError",
    "SplitConflictError",
    "StoreError",
    "TaskSeries",
    "VirtualEventInstance",
    "VirtualTaskInstance",
    "expand",
    "iter_occurrences",
    "load_config",
    "materialize",
    "reconcile",
]
