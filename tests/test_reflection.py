"""Unit tests for taskflow.tasks.reflection — subtasks, reflections, follow-ups."""

from datetime import datetime, timezone
from zoneinfo import ZoneInfo

import pytest

from taskflow.engine.errors import TaskflowNotFoundError, TaskflowValidationError
from taskflow.tasks.models import Subtask, Task
from taskflow.tasks.reflection import (
    FOLLOWUP_TITLE_PREFIX,
    add_subtask,
    build_followup,
    completion_rate,
    mark_suggestions_accepted,
    remove_subtask,
    save_reflection,
    toggle_subtask,
)

T0 = datetime(2026, 1, 5, 22, 30, tzinfo=timezone.utc)


@pytest.fixture
def task():
    return Task(
        owner_id="user_1",
        title="Launch",
        priority="high",
        tags=["work"],
        subtasks=[
            Subtask(id="s1", title="Draft", created_at=T0, is_done=True, done_at=T0),
            Subtask(id="s2", title="Review", created_at=T0),
            Subtask(id="s3", title="Ship", created_at=T0),
        ],
    )


class TestSubtasks:

    def test_add(self, task):
        updated, subtask = add_subtask(task, "  Announce  ", T0)
        assert subtask.title == "Announce"
        assert updated.subtasks[-1] == subtask
        assert len(task.subtasks) == 3

    def test_add_blank_rejected(self, task):
        with pytest.raises(TaskflowValidationError):
            add_subtask(task, "   ", T0)

    def test_remove(self, task):
        assert [s.id for s in remove_subtask(task, "s2").subtasks] == ["s1", "s3"]

    def test_remove_missing(self, task):
        with pytest.raises(TaskflowNotFoundError) as exc:
            remove_subtask(task, "nope")
        assert exc.value.subtask_id == "nope"

    def test_toggle_sets_done_at(self, task):
        updated = toggle_subtask(task, "s2", True, T0)
        assert updated.find_subtask("s2").is_done is True
        assert updated.find_subtask("s2").done_at == T0
        undone = toggle_subtask(updated, "s2", False, T0)
        assert undone.find_subtask("s2").done_at is None

    def test_toggle_idempotent(self, task):
        assert toggle_subtask(task, "s1", True, T0) is task

    def test_toggle_does_not_touch_status(self, task):
        assert toggle_subtask(task, "s2", True, T0).status == task.status


class TestReflection:

    def test_completion_rate(self, task):
        assert completion_rate(task.subtasks) == 33
        assert completion_rate([]) == 0

    def test_save_creates_then_updates(self, task):
        first = save_reflection(task, "went ok", T0)
        assert first.completion_reflection.completion_rate == 33
        assert first.completion_reflection.notes == "went ok"
        later = datetime(2026, 1, 6, tzinfo=timezone.utc)
        second = save_reflection(toggle_subtask(first, "s2", True, later), "better", later)
        assert second.completion_reflection.completion_rate == 67
        assert second.completion_reflection.created_at == T0
        assert second.completion_reflection.updated_at == later

    def test_notes_too_long(self, task):
        with pytest.raises(TaskflowValidationError):
            save_reflection(task, "x" * 2001, T0)

    def test_mark_accepted(self, task):
        updated = mark_suggestions_accepted(task, T0)
        assert updated.completion_reflection.auto_suggestions_accepted is True


class TestFollowup:

    def test_carries_only_unfinished(self, task):
        followup = build_followup(task, T0, ZoneInfo("UTC"))
        assert followup.title == f"{FOLLOWUP_TITLE_PREFIX}Launch"
        assert followup.status == "todo"
        assert followup.original_task_id == task.id
        assert followup.priority == "high"
        assert followup.tags == ["work"]
        assert [s.title for s in followup.subtasks] == ["Review", "Ship"]
        assert all(not s.is_done for s in followup.subtasks)
        assert {s.id for s in followup.subtasks}.isdisjoint({"s2", "s3"})

    def test_due_next_local_midnight(self, task):
        # 22:30 UTC is already Jan 6 in Tokyo
        followup = build_followup(task, T0, ZoneInfo("Asia/Tokyo"))
        assert followup.due_date == datetime(2026, 1, 7, tzinfo=ZoneInfo("Asia/Tokyo"))

    def test_original_untouched(self, task):
        build_followup(task, T0, ZoneInfo("UTC"))
        assert len(task.subtasks) == 3

    def test_none_when_all_done(self, task):
        done = toggle_subtask(toggle_subtask(task, "s2", True, T0), "s3", True, T0)
        assert build_followup(done, T0, ZoneInfo("UTC")) is None
