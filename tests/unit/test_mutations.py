"""
Unit tests for famseries.mutations.SeriesEditor

Covers create, this_only and all_occurrences edits, skip/restore, and
series deletion. Split behaviour lives in tests/integration.
"""

from datetime import date

import pytest

from famseries.engine import SeriesEngine
from famseries.exceptions import (
    InvalidPayloadError,
    InvalidRuleError,
    OccurrenceNotFoundError,
    SeriesError,
    SeriesNotFoundError,
)
from famseries.models import EditScope
from famseries.mutations import SeriesEditor
from famseries.notifications import ChangeNotifier

pytestmark = pytest.mark.unit

JAN_1 = date(2024, 1, 1)


@pytest.fixture
def notifier() -> ChangeNotifier:
    return ChangeNotifier()


@pytest.fixture
def changes(notifier) -> list:
    received: list = []
    notifier.subscribe(received.append)
    return received


@pytest.fixture
def editor(store, notifier) -> SeriesEditor:
    return SeriesEditor(store, notifier)


@pytest.fixture
def engine(store) -> SeriesEngine:
    return SeriesEngine(store)


class TestCreate:
    def test_create_stores_and_stamps(self, store, editor, changes, make_task_series) -> None:
        created = editor.create_series(make_task_series())

        assert created.created_at is not None
        assert created.updated_at is not None
        assert store.get_series("task-1").created_at == created.created_at
        assert [c.action for c in changes] == ["created"]

    def test_invalid_rule_is_rejected(self, store, editor, make_rule, make_task_series) -> None:
        series = make_task_series(recurrence_rule=make_rule(end_type="on_date"))

        with pytest.raises(InvalidRuleError, match="End date is required"):
            editor.create_series(series)
        assert store.list_series() == []


class TestThisOnly:
    def test_override_changes_one_instance(self, store, editor, engine, changes, make_event_series) -> None:
        store.save_series(make_event_series())

        result = editor.apply_edit("this_only", "event", "event-1", "2024-01-03", {"location": "Gym"})

        instances = engine.instances_for("event", "event-1", JAN_1, date(2024, 1, 10))
        assert [i.location for i in instances] == ["Pool", "Gym", "Pool", "Pool"]
        assert result.exception.override_data == {"location": "Gym"}
        assert result.changed
        assert changes[-1].action == "edit_this_only"
        assert changes[-1].occurrence_date == date(2024, 1, 3)

    def test_override_is_stored_in_json_form(self, store, editor, make_event_series) -> None:
        store.save_series(make_event_series())

        editor.apply_edit(EditScope.THIS_ONLY, "event", "event-1", date(2024, 1, 3), {"start_time": "18:15"})

        stored = store.get_exception("event-1", "event", date(2024, 1, 3))
        assert stored.override_data == {"start_time": "18:15:00"}

    def test_reapplying_identical_override_is_a_noop(self, store, editor, changes, make_task_series) -> None:
        store.save_series(make_task_series())
        editor.apply_edit("this_only", "task", "task-1", "2024-01-02", {"points": 9})

        again = editor.apply_edit("this_only", "task", "task-1", "2024-01-02", {"points": 9})

        assert again.changed is False
        assert len(changes) == 1

    def test_second_override_replaces_first(self, store, editor, engine, make_task_series) -> None:
        store.save_series(make_task_series())
        editor.apply_edit("this_only", "task", "task-1", "2024-01-02", {"points": 9, "title": "Big feed"})

        editor.apply_edit("this_only", "task", "task-1", "2024-01-02", {"points": 1})

        instance = engine.occurrence("task", "task-1", date(2024, 1, 2))
        assert instance.points == 1
        assert instance.title == "Feed the cat"
        assert len(store.list_exceptions("task-1")) == 1

    def test_non_occurrence_is_rejected(self, store, editor, make_event_series) -> None:
        store.save_series(make_event_series())

        with pytest.raises(OccurrenceNotFoundError, match="2024-01-02"):
            editor.apply_edit("this_only", "event", "event-1", "2024-01-02", {"location": "Gym"})
        assert store.list_exceptions("event-1") == []

    @pytest.mark.parametrize(
        "payload,match",
        [
            ({}, "must not be empty"),
            (None, "must not be empty"),
            ({"colour": "red"}, "not editable"),
            ({"series_start": "2024-02-01"}, "not editable"),
            ({"points": "lots"}, "Invalid task payload"),
        ],
    )
    def test_bad_payloads(self, store, editor, make_task_series, payload, match) -> None:
        store.save_series(make_task_series())

        with pytest.raises(InvalidPayloadError, match=match):
            editor.apply_edit("this_only", "task", "task-1", "2024-01-02", payload)

    def test_rule_change_not_allowed(self, store, editor, make_task_series) -> None:
        store.save_series(make_task_series())

        with pytest.raises(InvalidPayloadError, match="recurrence rule"):
            editor.apply_edit(
                "this_only", "task", "task-1", "2024-01-02", {"points": 1}, new_rule={"frequency": "weekly"}
            )

    def test_date_is_required(self, store, editor, make_task_series) -> None:
        store.save_series(make_task_series())

        with pytest.raises(SeriesError, match="require an occurrence date"):
            editor.apply_edit("this_only", "task", "task-1", None, {"points": 1})


def test_unknown_scope_is_rejected(store, editor, make_task_series) -> None:
    store.save_series(make_task_series())

    with pytest.raises(SeriesError, match="Unknown edit scope"):
        editor.apply_edit("some_occurrences", "task", "task-1", "2024-01-02", {"points": 1})


def test_missing_series_is_reported(editor) -> None:
    with pytest.raises(SeriesNotFoundError):
        editor.apply_edit("all_occurrences", "task", "ghost", new_payload={"points": 1})


class TestAllOccurrences:
    def test_updates_series_in_place(self, store, editor, engine, changes, make_task_series) -> None:
        store.save_series(make_task_series())

        result = editor.apply_edit("all_occurrences", "task", "task-1", new_payload={"title": "Feed both cats"})

        assert result.updated_series.title == "Feed both cats"
        assert result.new_series is None
        assert store.get_series("task-1").updated_at is not None
        assert {i.title for i in engine.instances_for("task", "task-1", JAN_1)} == {"Feed both cats"}
        assert changes[-1].action == "edit_all_occurrences"

    def test_overrides_still_win_after_series_edit(self, store, editor, engine, make_task_series) -> None:
        store.save_series(make_task_series())
        editor.apply_edit("this_only", "task", "task-1", "2024-01-02", {"title": "Vet visit"})

        editor.apply_edit("all_occurrences", "task", "task-1", new_payload={"title": "Feed both cats"})

        assert engine.occurrence("task", "task-1", date(2024, 1, 2)).title == "Vet visit"

    def test_identical_payload_is_a_noop(self, store, editor, changes, make_task_series) -> None:
        store.save_series(make_task_series())

        result = editor.apply_edit("all_occurrences", "task", "task-1", new_payload={"title": "Feed the cat"})

        assert result.changed is False
        assert changes == []

    def test_rule_replacement(self, store, editor, engine, make_task_series) -> None:
        store.save_series(make_task_series())

        editor.apply_edit(
            "all_occurrences",
            "task",
            "task-1",
            new_rule='{"frequency": "weekly", "weekdays": ["saturday"]}',
        )

        dates = [i.occurrence_date for i in engine.instances_for("task", "task-1", JAN_1, date(2024, 1, 14))]
        assert dates == [date(2024, 1, 6), date(2024, 1, 13)]

    def test_invalid_rule_leaves_series_untouched(self, store, editor, make_task_series) -> None:
        store.save_series(make_task_series())

        with pytest.raises(InvalidRuleError):
            editor.apply_edit(
                "all_occurrences", "task", "task-1", new_payload={"points": 8}, new_rule={"frequency": "daily", "interval": 0}
            )
        assert store.get_series("task-1").points == 5


class TestSkipRestore:
    def test_skip_hides_occurrence(self, store, editor, engine, changes, make_task_series) -> None:
        store.save_series(make_task_series())

        editor.skip_occurrence("task", "task-1", "2024-01-02")

        assert engine.occurrence("task", "task-1", date(2024, 1, 2)) is None
        assert changes[-1].action == "skip"

    def test_skip_is_idempotent(self, store, editor, make_task_series) -> None:
        store.save_series(make_task_series())

        first = editor.skip_occurrence("task", "task-1", "2024-01-02")
        second = editor.skip_occurrence("task", "task-1", "2024-01-02")

        assert first.id == second.id
        assert len(store.list_exceptions("task-1")) == 1

    def test_skip_replaces_override(self, store, editor, make_task_series) -> None:
        store.save_series(make_task_series())
        editor.apply_edit("this_only", "task", "task-1", "2024-01-02", {"points": 9})

        editor.skip_occurrence("task", "task-1", "2024-01-02")

        [exc] = store.list_exceptions("task-1")
        assert exc.exception_type == "skip"

    def test_skip_non_occurrence_raises(self, store, editor, make_event_series) -> None:
        store.save_series(make_event_series())

        with pytest.raises(OccurrenceNotFoundError):
            editor.skip_occurrence("event", "event-1", "2024-01-02")

    def test_restore(self, store, editor, engine, make_task_series) -> None:
        store.save_series(make_task_series())
        editor.skip_occurrence("task", "task-1", "2024-01-02")

        assert editor.restore_occurrence("task", "task-1", "2024-01-02") is True
        assert editor.restore_occurrence("task", "task-1", "2024-01-02") is False
        assert engine.occurrence("task", "task-1", date(2024, 1, 2)) is not None


class TestSeriesLifecycle:
    def test_count_future_overrides(self, store, editor, make_task_series) -> None:
        store.save_series(make_task_series())
        for day, points in ((2, 1), (5, 2), (9, 3)):
            editor.apply_edit("this_only", "task", "task-1", date(2024, 1, day), {"points": points})
        editor.skip_occurrence("task", "task-1", "2024-01-07")

        assert editor.count_future_overrides("task", "task-1", "2024-01-05") == 1
        assert editor.count_future_overrides("task", "task-1", "2024-01-01") == 3

    def test_delete_removes_series_and_exceptions(self, store, editor, changes, make_task_series) -> None:
        store.save_series(make_task_series())
        editor.skip_occurrence("task", "task-1", "2024-01-02")
        editor.skip_occurrence("task", "task-1", "2024-01-03")

        assert editor.delete_series("task", "task-1") == 2
        assert store.find_series("task-1") is None
        assert store.list_exceptions("task-1") == []
        assert changes[-1].action == "delete"

    def test_deactivate(self, store, editor, engine, make_task_series) -> None:
        store.save_series(make_task_series())
        editor.skip_occurrence("task", "task-1", "2024-01-02")

        series = editor.deactivate_series("task", "task-1")

        assert series.is_active is False
        assert engine.instances_for("task", "task-1", JAN_1) == []
        assert len(store.list_exceptions("task-1")) == 1

    def test_edits_on_inactive_series_are_rejected(self, store, editor, make_task_series) -> None:
        store.save_series(make_task_series(is_active=False))

        with pytest.raises(OccurrenceNotFoundError):
            editor.apply_edit("this_only", "task", "task-1", "2024-01-02", {"points": 1})
