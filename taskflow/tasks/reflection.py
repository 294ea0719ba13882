"""
Subtasks, completion reflections and follow-up tasks.

These side operations never touch status or time tracking. Each returns a
modified copy of the task; TaskService persists it under the task lock.
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional, Tuple
from zoneinfo import ZoneInfo

from taskflow.engine.errors import TaskflowNotFoundError, TaskflowValidationError
from taskflow.tasks import MAX_TEXT_LENGTH, MAX_TITLE_LENGTH
from taskflow.tasks.models import CompletionReflection, Subtask, Task
from taskflow.utilities.utils import next_local_midnight, round_half_up

FOLLOWUP_TITLE_PREFIX = "Follow-up: "


def _require_subtask(task: Task, subtask_id: str) -> Subtask:
    subtask = task.find_subtask(subtask_id)
    if subtask is None:
        raise TaskflowNotFoundError(
            f"Subtask {subtask_id} not found",
            task_id=task.id,
            owner_id=task.owner_id,
            subtask_id=subtask_id,
        )
    return subtask


def _validate_title(title: str) -> str:
    title = (title or "").strip()
    if not title or len(title) > MAX_TITLE_LENGTH:
        raise TaskflowValidationError(
            f"Subtask title must be 1-{MAX_TITLE_LENGTH} characters",
            field="title",
        )
    return title


def add_subtask(task: Task, title: str, now: datetime) -> Tuple[Task, Subtask]:
    updated = task.model_copy(deep=True)
    subtask = Subtask(title=_validate_title(title), created_at=now)
    updated.subtasks.append(subtask)
    return updated, subtask


def remove_subtask(task: Task, subtask_id: str) -> Task:
    _require_subtask(task, subtask_id)
    updated = task.model_copy(deep=True)
    updated.subtasks = [s for s in updated.subtasks if s.id != subtask_id]
    return updated


def toggle_subtask(task: Task, subtask_id: str, is_done: bool, now: datetime) -> Task:
    """Set a subtask's done flag. Setting the value it already has changes nothing."""
    current = _require_subtask(task, subtask_id)
    if current.is_done == is_done:
        return task

    updated = task.model_copy(deep=True)
    subtask = updated.find_subtask(subtask_id)
    subtask.is_done = is_done
    subtask.done_at = now if is_done else None
    return updated


def completion_rate(subtasks: List[Subtask]) -> int:
    """Percentage of done subtasks, 0 when there are none."""
    if not subtasks:
        return 0
    done = sum(1 for s in subtasks if s.is_done)
    return round_half_up(done / len(subtasks) * 100)


def save_reflection(task: Task, notes: str, now: datetime) -> Task:
    """Create or update the completion reflection with a fresh completion rate."""
    notes = notes or ""
    if len(notes) > MAX_TEXT_LENGTH:
        raise TaskflowValidationError(
            f"Reflection notes exceed {MAX_TEXT_LENGTH} characters",
            field="notes",
            task_id=task.id,
        )

    updated = task.model_copy(deep=True)
    rate = completion_rate(updated.subtasks)
    existing = updated.completion_reflection
    if existing is None:
        updated.completion_reflection = CompletionReflection(
            completion_rate=rate,
            notes=notes,
            created_at=now,
            updated_at=now,
        )
    else:
        existing.completion_rate = rate
        existing.notes = notes
        existing.updated_at = now
    return updated


def mark_suggestions_accepted(task: Task, now: datetime) -> Task:
    """Flag the reflection as having accepted the follow-up suggestion."""
    updated = task.model_copy(deep=True)
    if updated.completion_reflection is None:
        updated.completion_reflection = CompletionReflection(
            completion_rate=completion_rate(updated.subtasks),
            created_at=now,
            updated_at=now,
            auto_suggestions_accepted=True,
        )
    else:
        updated.completion_reflection.auto_suggestions_accepted = True
        updated.completion_reflection.updated_at = now
    return updated


def build_followup(task: Task, now: datetime, tz: ZoneInfo) -> Optional[Task]:
    """
    New todo task due next local midnight, carrying the unfinished subtasks
    (fresh ids, reset to not-done). None when nothing is unfinished.
    """
    unfinished = [s for s in task.subtasks if not s.is_done]
    if not unfinished:
        return None

    title = f"{FOLLOWUP_TITLE_PREFIX}{task.title}"[:MAX_TITLE_LENGTH]
    return Task(
        owner_id=task.owner_id,
        title=title,
        description=task.description,
        priority=task.priority,
        due_date=next_local_midnight(now, tz),
        tags=list(task.tags),
        subtasks=[Subtask(title=s.title, created_at=now) for s in unfinished],
        original_task_id=task.id,
    )
