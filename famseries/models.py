"""Data models for recurring task and event series."""

from datetime import date, datetime, time
from enum import Enum
from typing import Any, ClassVar, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator, model_validator

from .dateutils import to_date


class Frequency(str, Enum):
    """Recurrence frequency units."""

    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class EndType(str, Enum):
    """How a recurrence terminates."""

    NEVER = "never"
    ON_DATE = "on_date"
    AFTER_COUNT = "after_count"


class MonthlyType(str, Enum):
    """Monthly recurrence mode."""

    ON_DAY = "on_day"
    ON_WEEKDAY = "on_weekday"


class Weekday(str, Enum):
    """Weekday keys as stored in recurrence rules."""

    MONDAY = "monday"
    TUESDAY = "tuesday"
    WEDNESDAY = "wednesday"
    THURSDAY = "thursday"
    FRIDAY = "friday"
    SATURDAY = "saturday"
    SUNDAY = "sunday"


class Ordinal(str, Enum):
    """Position of a weekday within a month ("first Monday", "last Friday")."""

    FIRST = "first"
    SECOND = "second"
    THIRD = "third"
    FOURTH = "fourth"
    LAST = "last"


class ExceptionType(str, Enum):
    """Per-date exception kinds."""

    SKIP = "skip"
    OVERRIDE = "override"


class SeriesType(str, Enum):
    """Series payload kinds."""

    TASK = "task"
    EVENT = "event"


class EditScope(str, Enum):
    """Which occurrences an edit applies to."""

    THIS_ONLY = "this_only"
    THIS_AND_FOLLOWING = "this_and_following"
    ALL_OCCURRENCES = "all_occurrences"


class CompletionRule(str, Enum):
    """Who has to complete a task occurrence."""

    EVERYONE = "everyone"
    ANY_ONE = "any_one"


def kind_key(value: Any) -> str:
    """Plain string form of an enum member or string ('task', not 'SeriesType.TASK')."""
    return value.value if isinstance(value, Enum) else str(value)


def _coerce_date(value: Any) -> Any:
    # Stored rows carry full ISO timestamps ("2024-03-01T00:00:00.000Z"); only the calendar day matters.
    if value is None or isinstance(value, date):
        return value
    if isinstance(value, str):
        return to_date(value)
    return value


class RecurrenceRule(BaseModel):
    """Declarative description of a repeating pattern.

    Construction only coerces types. Structural checks (positive interval,
    end-condition consistency, ...) live in ``famseries.validation`` so that a
    bad stored rule can still be loaded and reported.
    """

    frequency: Frequency = Field(..., description="Recurrence unit")
    interval: int = Field(default=1, description="Every N units")
    weekdays: Optional[list[Weekday]] = Field(default=None, description="Weekly weekday set")
    monthly_type: Optional[MonthlyType] = Field(default=None, alias="monthlyType")
    month_day: Optional[int] = Field(default=None, alias="monthDay")
    weekday_ordinal: Optional[Ordinal] = Field(default=None, alias="weekdayOrdinal")
    weekday_name: Optional[Weekday] = Field(default=None, alias="weekdayName")
    end_type: EndType = Field(default=EndType.NEVER, alias="endType")
    end_date: Optional[date] = Field(default=None, alias="endDate")
    end_count: Optional[int] = Field(default=None, alias="endCount")

    model_config = ConfigDict(use_enum_values=True, populate_by_name=True, validate_default=True)

    @field_validator("end_date", mode="before")
    @classmethod
    def _parse_end_date(cls, value: Any) -> Any:
        return _coerce_date(value)

    def to_storage(self) -> dict[str, Any]:
        """Serialize with the camelCase keys used by stored rule JSON."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class BaseSeries(BaseModel):
    """Fields shared by task and event series."""

    SERIES_TYPE: ClassVar[str] = ""
    PAYLOAD_FIELDS: ClassVar[tuple[str, ...]] = ()

    id: str = Field(default_factory=lambda: uuid4().hex, description="Series ID")
    family_id: str = Field(..., description="Owning family")
    created_by: Optional[str] = Field(default=None, description="Profile that created the series")
    recurrence_rule: RecurrenceRule = Field(..., description="Recurrence rule")
    series_start: date = Field(..., description="First candidate date")
    series_end: Optional[date] = Field(default=None, description="Last allowed date")
    original_series_id: Optional[str] = Field(
        default=None, description="Parent series when produced by a split"
    )
    is_active: bool = Field(default=True, description="Soft-disable flag")
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(use_enum_values=True, validate_default=True)

    @field_validator("series_start", "series_end", mode="before")
    @classmethod
    def _parse_series_dates(cls, value: Any) -> Any:
        return _coerce_date(value)

    @property
    def series_type(self) -> str:
        return self.SERIES_TYPE

    @property
    def effective_end(self) -> Optional[date]:
        """Earliest of series_end and the rule's on_date end, if any."""
        candidates = [d for d in (self.series_end, self._rule_end_date()) if d is not None]
        return min(candidates) if candidates else None

    def _rule_end_date(self) -> Optional[date]:
        rule = self.recurrence_rule
        if rule.end_type == EndType.ON_DATE:
            return rule.end_date
        return None

    def payload(self) -> dict[str, Any]:
        """Return the kind-specific payload fields as a plain dict."""
        return {name: getattr(self, name) for name in self.PAYLOAD_FIELDS}

    @field_serializer("created_at", "updated_at", when_used="unless-none")
    def serialize_datetime(self, dt: datetime) -> str:
        """Serialize datetime fields to ISO format."""
        return dt.isoformat()


class TaskSeries(BaseSeries):
    """Recurring task template."""

    SERIES_TYPE: ClassVar[str] = SeriesType.TASK.value
    PAYLOAD_FIELDS: ClassVar[tuple[str, ...]] = (
        "title",
        "description",
        "points",
        "task_group",
        "completion_rule",
        "assigned_profiles",
        "due_time",
    )

    title: str = Field(..., description="Task title")
    description: Optional[str] = None
    points: int = Field(default=0, description="Reward points per completion")
    task_group: str = Field(default="recurring", description="Dashboard grouping")
    completion_rule: CompletionRule = Field(default=CompletionRule.EVERYONE)
    assigned_profiles: list[str] = Field(default_factory=list)
    due_time: time = Field(default=time(0, 0), description="Time-of-day convention for due dates")


class EventSeries(BaseSeries):
    """Recurring calendar event template."""

    SERIES_TYPE: ClassVar[str] = SeriesType.EVENT.value
    PAYLOAD_FIELDS: ClassVar[tuple[str, ...]] = (
        "title",
        "description",
        "location",
        "start_time",
        "duration_minutes",
        "is_all_day",
        "attendee_profiles",
    )

    title: str = Field(..., description="Event title")
    description: Optional[str] = None
    location: Optional[str] = None
    start_time: time = Field(default=time(0, 0), description="Local start time of each occurrence")
    duration_minutes: int = Field(default=60, ge=0)
    is_all_day: bool = False
    attendee_profiles: list[str] = Field(default_factory=list)


SERIES_CLASSES: dict[str, type[BaseSeries]] = {
    SeriesType.TASK.value: TaskSeries,
    SeriesType.EVENT.value: EventSeries,
}


def series_from_dict(series_type: str, data: dict[str, Any]) -> BaseSeries:
    """Build the right series model for ``series_type`` from a stored row."""
    try:
        cls = SERIES_CLASSES[kind_key(series_type)]
    except KeyError as e:
        raise ValueError(f"unknown series type {series_type!r}") from e
    return cls.model_validate(data)


class RecurrenceException(BaseModel):
    """A per-date skip or override attached to a series."""

    id: str = Field(default_factory=lambda: uuid4().hex)
    series_id: str
    series_type: SeriesType = SeriesType.TASK
    exception_date: date
    exception_type: ExceptionType
    override_data: Optional[dict[str, Any]] = None
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(use_enum_values=True, validate_default=True)

    @field_validator("exception_date", mode="before")
    @classmethod
    def _parse_exception_date(cls, value: Any) -> Any:
        return _coerce_date(value)

    @model_validator(mode="after")
    def _check_override_data(self) -> "RecurrenceException":
        if self.exception_type == ExceptionType.OVERRIDE and self.override_data is None:
            raise ValueError("override exceptions require override_data")
        if self.exception_type == ExceptionType.SKIP and self.override_data:
            raise ValueError("skip exceptions must not carry override_data")
        return self

    @property
    def key(self) -> tuple[str, str, date]:
        """Uniqueness key: one exception per series, type and date."""
        return (self.series_id, kind_key(self.series_type), self.exception_date)

    @field_serializer("created_at", when_used="unless-none")
    def serialize_datetime(self, dt: datetime) -> str:
        return dt.isoformat()


class VirtualTaskInstance(BaseModel):
    """Computed, non-persisted projection of a task series onto one date."""

    id: str = Field(..., description="Deterministic id from series id and date")
    series_id: str
    family_id: str
    created_by: Optional[str] = None
    title: str
    description: Optional[str] = None
    points: int = 0
    task_group: str = "recurring"
    completion_rule: CompletionRule = CompletionRule.EVERYONE
    assigned_profiles: list[str] = Field(default_factory=list)
    due_date: datetime
    occurrence_date: date
    is_virtual: bool = True
    is_exception: bool = False
    exception_type: Optional[ExceptionType] = None

    model_config = ConfigDict(use_enum_values=True, validate_default=True)

    @field_serializer("due_date")
    def serialize_due_date(self, dt: datetime) -> str:
        return dt.isoformat()


class VirtualEventInstance(BaseModel):
    """Computed, non-persisted projection of an event series onto one date."""

    id: str = Field(..., description="Deterministic id from series id and date")
    series_id: str
    family_id: str
    created_by: Optional[str] = None
    title: str
    description: Optional[str] = None
    location: Optional[str] = None
    start_date: datetime
    end_date: datetime
    is_all_day: bool = False
    attendee_profiles: list[str] = Field(default_factory=list)
    occurrence_date: date
    is_virtual: bool = True
    is_exception: bool = False
    exception_type: Optional[ExceptionType] = None

    model_config = ConfigDict(use_enum_values=True, validate_default=True)

    @field_serializer("start_date", "end_date")
    def serialize_datetime(self, dt: datetime) -> str:
        return dt.isoformat()


class RotationCadence(str, Enum):
    """Rotating task cadences."""

    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class RotatingTask(BaseModel):
    """A chore that rotates between family members on a fixed cadence."""

    id: str = Field(default_factory=lambda: uuid4().hex)
    family_id: str
    name: str
    cadence: RotationCadence = RotationCadence.WEEKLY
    weekly_days: Optional[list[Weekday]] = None
    monthly_day: Optional[int] = Field(default=None, ge=1, le=31)
    member_order: list[str] = Field(default_factory=list)
    current_member_index: int = Field(default=0, ge=0)
    points: int = 0
    description: Optional[str] = None
    is_active: bool = True
    is_paused: bool = False
    created_by: Optional[str] = None

    model_config = ConfigDict(use_enum_values=True, validate_default=True)


class TaskRow(BaseModel):
    """A concrete task row pre-materialized by the batch job."""

    source_id: str = Field(..., description="Task series or rotating task id")
    source_kind: str = Field(default="series", description="'series' or 'rotating'")
    family_id: str
    title: str
    description: Optional[str] = None
    points: int = 0
    assigned_to: Optional[str] = None
    due_date: date
    task_group: str = "recurring"
    completion_rule: CompletionRule = CompletionRule.EVERYONE
    created_by: Optional[str] = None

    model_config = ConfigDict(use_enum_values=True, validate_default=True)

    @property
    def key(self) -> tuple[str, str, Optional[str]]:
        return (self.source_id, self.due_date.isoformat(), self.assigned_to)
