"""
Task Lifecycle State Machine — status transitions and their side effects.

Any status may move to any other; what differs is the side effect set:

    into doing     start tracking (if not running), clear completed_at
    into hold      finalize running session
    into done      finalize, completed_at = now, recompute estimation_result,
                   flag a reflection prompt when the task has subtasks
    into todo      finalize if leaving doing, clear completed_at
    into archived  generic "leaving doing finalizes" only

    done -> doing|todo (reopen): reopen_count += 1, estimation_result = None

A transition to the current status is a no-op: nothing changes, not even
last_status_changed_at.

apply_transition() is pure with respect to its input: it works on a deep
copy, so a failure part-way leaves the caller's task untouched and nothing is
persisted. TaskService wraps it in the per-task lock + transaction.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from taskflow.engine.errors import TaskflowValidationError
from taskflow.tasks import TASK_STATUSES
from taskflow.tasks.estimation import compute_estimation_result
from taskflow.tasks.models import DoneTransitionMeta, Task

REOPEN_TARGETS = ("doing", "todo")


@dataclass
class TransitionResult:
    """Outcome of a status change, returned to the caller (UI decides on prompts)."""

    task: Task
    previous_status: str
    changed: bool
    reopened: bool = False
    reflection_prompt: bool = False


def validate_status(status: object) -> str:
    if status not in TASK_STATUSES:
        raise TaskflowValidationError(
            f"Unknown status '{status}'. Expected one of {TASK_STATUSES}",
            field="status",
            value=status,
        )
    return status


def apply_transition(task: Task, new_status: str, now: datetime) -> TransitionResult:
    """Move *task* to *new_status* at *now* and return the updated copy."""
    validate_status(new_status)
    previous = task.status

    if new_status == previous:
        return TransitionResult(task=task, previous_status=previous, changed=False)

    updated = task.model_copy(deep=True)
    tracking = updated.time_tracking

    # Leaving doing (to anything) closes the running session first.
    if new_status != "doing":
        tracking.finalize_session(now)

    reflection_prompt = False
    if new_status == "doing":
        tracking.start_tracking(now)
        updated.completed_at = None
    elif new_status == "done":
        updated.completed_at = now
        updated.estimation_result = compute_estimation_result(
            updated.estimated_minutes,
            updated.actual_minutes,
            tracking.total_seconds,
            now,
        )
        reflection_prompt = len(updated.subtasks) > 0
        updated.done_transition_meta = DoneTransitionMeta(
            previous_status=previous,
            reflection_prompted=reflection_prompt,
            reached_at=now,
        )
    else:
        updated.completed_at = None

    reopened = previous == "done" and new_status in REOPEN_TARGETS
    if reopened:
        updated.reopen_count += 1
        updated.estimation_result = None

    updated.status = new_status
    updated.last_status_changed_at = now

    return TransitionResult(
        task=updated,
        previous_status=previous,
        changed=True,
        reopened=reopened,
        reflection_prompt=reflection_prompt,
    )
