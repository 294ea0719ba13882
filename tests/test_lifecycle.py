"""Unit tests for taskflow.tasks.lifecycle — the status state machine."""

import itertools
from datetime import datetime, timedelta, timezone

import pytest

from taskflow.engine.errors import TaskflowValidationError
from taskflow.tasks import TASK_STATUSES
from taskflow.tasks.lifecycle import apply_transition
from taskflow.tasks.models import Subtask, Task

T0 = datetime(2026, 1, 5, 9, 0, tzinfo=timezone.utc)


def _task(**fields):
    fields.setdefault("owner_id", "user_1")
    fields.setdefault("title", "Task")
    return Task(**fields)


def _walk(task, steps):
    """Apply (status, minutes_after_T0) steps in order."""
    for status, minutes in steps:
        task = apply_transition(task, status, T0 + timedelta(minutes=minutes)).task
    return task


class TestSideEffects:

    def test_into_doing_starts_tracking(self):
        result = apply_transition(_task(), "doing", T0)
        assert result.changed is True
        assert result.previous_status == "todo"
        assert result.task.status == "doing"
        assert result.task.time_tracking.is_running is True
        assert result.task.last_status_changed_at == T0

    def test_into_hold_finalizes(self):
        task = _walk(_task(), [("doing", 0), ("hold", 10)])
        assert task.time_tracking.is_running is False
        assert task.time_tracking.total_seconds == 600
        assert len(task.time_tracking.sessions) == 1

    def test_into_done(self):
        task = _walk(_task(estimated_minutes=10), [("doing", 0), ("done", 10)])
        assert task.completed_at == T0 + timedelta(minutes=10)
        assert task.time_tracking.is_running is False
        assert task.estimation_result.category == "accurate"
        assert task.done_transition_meta.previous_status == "doing"

    def test_done_without_estimate_has_no_result(self):
        task = _walk(_task(), [("doing", 0), ("done", 10)])
        assert task.estimation_result is None

    def test_reflection_prompt_only_with_subtasks(self):
        plain = apply_transition(_task(), "done", T0)
        assert plain.reflection_prompt is False
        with_subtasks = apply_transition(
            _task(subtasks=[Subtask(title="a", created_at=T0)]), "done", T0
        )
        assert with_subtasks.reflection_prompt is True
        assert with_subtasks.task.done_transition_meta.reflection_prompted is True

    def test_into_archived_from_doing_finalizes(self):
        task = _walk(_task(), [("doing", 0), ("archived", 5)])
        assert task.time_tracking.total_seconds == 300
        assert task.time_tracking.is_running is False

    def test_unknown_status_rejected(self):
        task = _task()
        with pytest.raises(TaskflowValidationError) as exc:
            apply_transition(task, "blocked", T0)
        assert exc.value.field == "status"

    def test_input_task_untouched(self):
        task = _task()
        apply_transition(task, "doing", T0)
        assert task.status == "todo"
        assert task.time_tracking.is_running is False


class TestReopen:

    def test_reopen_counts_and_clears_estimation(self):
        task = _walk(_task(estimated_minutes=5), [("doing", 0), ("done", 5)])
        assert task.estimation_result is not None
        result = apply_transition(task, "todo", T0 + timedelta(minutes=6))
        assert result.reopened is True
        assert result.task.reopen_count == 1
        assert result.task.estimation_result is None
        assert result.task.completed_at is None

    def test_reopen_count_exactly_twice(self):
        task = _walk(_task(status="done", completed_at=T0), [
            ("doing", 1), ("done", 2), ("todo", 3), ("doing", 4), ("done", 5),
        ])
        assert task.reopen_count == 2

    def test_done_to_hold_is_not_reopen(self):
        result = apply_transition(_task(status="done", completed_at=T0), "hold", T0)
        assert result.reopened is False
        assert result.task.reopen_count == 0
        assert result.task.completed_at is None


class TestNoOp:

    @pytest.mark.parametrize("status", TASK_STATUSES)
    def test_same_status_changes_nothing(self, status):
        task = _walk(_task(), [("doing", 0)]) if status == "doing" else _task(status=status)
        before = task.model_copy(deep=True)
        result = apply_transition(task, status, T0 + timedelta(hours=1))
        assert result.changed is False
        assert result.task == before
        assert result.task.last_status_changed_at == before.last_status_changed_at


class TestInvariants:

    @pytest.mark.parametrize("path", list(itertools.product(TASK_STATUSES, repeat=3)))
    def test_running_iff_doing_and_completed_iff_done(self, path):
        task = _task()
        for i, status in enumerate(path):
            task = apply_transition(task, status, T0 + timedelta(minutes=i * 7)).task
            assert task.time_tracking.is_running == (task.status == "doing")
            assert (task.completed_at is not None) == (task.status == "done")

    def test_time_conservation_doing_hold_doing_done(self):
        task = _walk(_task(), [("doing", 0), ("hold", 12), ("doing", 20), ("done", 33)])
        sessions = task.time_tracking.sessions
        assert task.time_tracking.total_seconds == sum(s.duration_seconds for s in sessions)
        assert task.time_tracking.total_seconds == (12 + 13) * 60


class TestScenarios:

    def test_pause_resume_estimation(self):
        """60 min estimate; doing 0-10, hold 10-15, doing 15-45 -> 40 min actual."""
        task = _walk(_task(estimated_minutes=60), [
            ("doing", 0), ("hold", 10), ("doing", 15), ("done", 45),
        ])
        assert task.time_tracking.total_seconds == 2400
        result = task.estimation_result
        assert result.actual_minutes == 40
        assert result.delta_percent == pytest.approx(-33.3)
        assert result.category == "overestimated"

    def test_reopen_to_todo_clears_estimation(self):
        task = _walk(_task(estimated_minutes=60, actual_minutes=60), [("done", 0)])
        assert task.estimation_result is not None
        task = apply_transition(task, "todo", T0 + timedelta(minutes=1)).task
        assert task.estimation_result is None
