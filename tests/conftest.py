"""Shared fixtures for famseries tests."""

import logging
from collections.abc import Generator
from datetime import date, time
from typing import Any

import pytest

from famseries.config import Config
from famseries.models import EventSeries, RecurrenceRule, TaskSeries
from famseries.store import InMemorySeriesStore


def pytest_configure(config: Any) -> None:
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Fast unit tests")
    config.addinivalue_line("markers", "integration: Multi-component tests against a store")


@pytest.fixture(autouse=True)
def clean_test_environment(monkeypatch: Any) -> Generator[None, Any, None]:
    """Clear famseries environment overrides before and after each test.

    FAMSERIES_TEST_DATE pins "today" and FAMSERIES_DEBUG / FAMSERIES_LOG_LEVEL
    change logging; none of them may leak between tests.
    """
    for name in ("FAMSERIES_TEST_DATE", "FAMSERIES_DEBUG", "FAMSERIES_LOG_LEVEL", "FAMSERIES_CONFIG"):
        monkeypatch.delenv(name, raising=False)
    yield
    for name in ("FAMSERIES_TEST_DATE", "FAMSERIES_DEBUG", "FAMSERIES_LOG_LEVEL", "FAMSERIES_CONFIG"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def config() -> Config:
    return Config()


@pytest.fixture
def store() -> InMemorySeriesStore:
    return InMemorySeriesStore()


def _build_rule(**kwargs: Any) -> RecurrenceRule:
    """RecurrenceRule with daily/1/never defaults overridden by ``kwargs``."""
    data: dict[str, Any] = {"frequency": "daily", "interval": 1, "end_type": "never"}
    data.update(kwargs)
    return RecurrenceRule.model_validate(data)


def _build_task_series(**kwargs: Any) -> TaskSeries:
    data: dict[str, Any] = {
        "id": "task-1",
        "family_id": "fam-1",
        "created_by": "parent-1",
        "title": "Feed the cat",
        "points": 5,
        "assigned_profiles": ["kid-1"],
        "series_start": date(2024, 1, 1),
        "recurrence_rule": _build_rule(),
    }
    data.update(kwargs)
    return TaskSeries.model_validate(data)


def _build_event_series(**kwargs: Any) -> EventSeries:
    data: dict[str, Any] = {
        "id": "event-1",
        "family_id": "fam-1",
        "created_by": "parent-1",
        "title": "Swim practice",
        "location": "Pool",
        "start_time": time(17, 30),
        "duration_minutes": 90,
        "attendee_profiles": ["kid-1", "kid-2"],
        "series_start": date(2024, 1, 1),
        "recurrence_rule": _build_rule(frequency="weekly", weekdays=["monday", "wednesday"]),
    }
    data.update(kwargs)
    return EventSeries.model_validate(data)


@pytest.fixture
def make_rule() -> Any:
    """Factory fixture: ``make_rule(frequency="weekly", weekdays=[...])``."""
    return _build_rule


@pytest.fixture
def make_task_series() -> Any:
    """Factory fixture for TaskSeries with overridable fields."""
    return _build_task_series


@pytest.fixture
def make_event_series() -> Any:
    """Factory fixture for EventSeries with overridable fields."""
    return _build_event_series


@pytest.fixture
def restore_logging() -> Generator[None, Any, None]:
    """Undo root logger changes made by configure_logging()."""
    root = logging.getLogger()
    level = root.level
    handlers = list(root.handlers)
    filters = {h: list(h.filters) for h in handlers}
    yield
    for handler in list(root.handlers):
        if handler not in handlers:
            root.removeHandler(handler)
    for handler, kept in filters.items():
        handler.filters = kept
    root.setLevel(level)
    for name in logging.root.manager.loggerDict:
        if name.startswith("famseries"):
            logging.getLogger(name).setLevel(logging.NOTSET)
    logging.getLogger("dateutil").setLevel(logging.NOTSET)
