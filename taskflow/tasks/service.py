"""
Taskflow Task Service — owner-scoped task operations.

Every call resolves the owner from the OwnerContext and scopes repository
access by (task_id, owner_id). Mutations of a single task run:

    1. inside TaskLock.run(task_id, ...)  (in-process or Redis lock)
    2. inside repository.update_atomically  (transaction + version column)

Stores without transactions raise TransactionUnsupportedError; the service
then falls back to find_by_id + save. That path is linearizable only per
node (the lock) plus the optimistic version check in save(); a lost race
surfaces as ConcurrencyConflictError for the caller to retry.

All state changes are computed on deep copies, so a failure never leaves a
partially applied task behind.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple, TypeVar, Union

from pydantic import ValidationError

from taskflow.engine.clock import SystemClock
from taskflow.engine.context import OwnerContext, require_owner_context
from taskflow.engine.errors import (
    TaskflowNotFoundError,
    TaskflowValidationError,
    TransactionUnsupportedError,
)
from taskflow.engine.locks import InProcessTaskLock, TaskLock
from taskflow.engine.logging import (
    log,
    log_concurrency_event,
    log_task_operation,
    log_task_transition,
)
from taskflow.tasks import OPEN_STATUSES
from taskflow.tasks.breakdown import BreakdownPart, BreakdownSuggestion, suggest_breakdown
from taskflow.tasks.friction import FrictionScore, score_friction
from taskflow.tasks.lifecycle import TransitionResult, apply_transition, validate_status
from taskflow.tasks.models import Subtask, Task, TaskCreate, TaskQuery, TaskSort, TaskUpdate
from taskflow.tasks.reflection import (
    add_subtask,
    build_followup,
    mark_suggestions_accepted,
    remove_subtask,
    save_reflection,
    toggle_subtask,
)
from taskflow.tasks.repository import TaskRepository
from taskflow.tasks.time_tracking import validate_minutes

logger = logging.getLogger("taskflow.tasks.service")

T = TypeVar("T")

# Task fields a TaskUpdate may not set to null
_REQUIRED_FIELDS = ("title", "description", "priority", "tags", "is_pinned")


@dataclass
class TaskWithFriction:
    task: Task
    friction: FrictionScore


def _validate_payload(model: Any, payload: Any) -> Any:
    """Coerce a dict payload into *model*, mapping pydantic errors to TaskflowValidationError."""
    if isinstance(payload, model):
        return payload
    try:
        return model.model_validate(payload)
    except ValidationError as e:
        raise TaskflowValidationError(
            f"Invalid {model.__name__} payload",
            validation_errors=e.errors(include_url=False),
        ) from e


class TaskService:
    """
    Task CRUD plus the lifecycle, time-tracking and reflection operations.

    Usage:
        service = TaskService(InMemoryTaskRepository())
        with owner_scope("user_1"):
            task = service.create_task({"title": "Write report"})
            service.transition(task.id, "doing")
    """

    def __init__(
        self,
        repository: TaskRepository,
        lock: Optional[TaskLock] = None,
        clock: Any = None,
    ):
        self._repo = repository
        self._lock = lock or InProcessTaskLock()
        self._clock = clock or SystemClock()

    @property
    def repository(self) -> TaskRepository:
        return self._repo

    @property
    def clock(self) -> Any:
        return self._clock

    # -----------------------------------------------------------------------
    # Internals
    # -----------------------------------------------------------------------

    def _require_task(self, task_id: str, owner_id: str) -> Task:
        task = self._repo.find_by_id(task_id, owner_id)
        if task is None:
            raise TaskflowNotFoundError(
                f"Task {task_id} not found",
                task_id=task_id,
                owner_id=owner_id,
            )
        return task

    def _mutate(
        self,
        ctx: OwnerContext,
        task_id: str,
        mutate: Callable[[Task], Tuple[Optional[Task], T]],
    ) -> Tuple[Task, T]:
        """Run a read-modify-write of one task under its lock."""
        now = self._clock.now()

        def stamped(task: Task) -> Tuple[Optional[Task], T]:
            updated, result = mutate(task)
            if updated is not None:
                updated.updated_at = now
            return updated, result

        def run() -> Tuple[Task, T]:
            try:
                return self._repo.update_atomically(task_id, ctx.owner_id, stamped)
            except TransactionUnsupportedError:
                logger.debug("No transactions in %s, using read-modify-write", type(self._repo).__name__)
                log(log_concurrency_event(
                    "transaction_fallback",
                    task_id=task_id,
                    owner_id=ctx.owner_id,
                    execution_id=ctx.execution_id,
                    detail="read-modify-write guarded by task lock and version check",
                    level="INFO",
                ))
                task = self._require_task(task_id, ctx.owner_id)
                updated, result = stamped(task)
                if updated is None:
                    return task, result
                return self._repo.save(updated), result

        return self._lock.run(task_id, run)

    def _log_operation(
        self,
        ctx: OwnerContext,
        operation: str,
        task_id: Optional[str] = None,
        fields_changed: Optional[List[str]] = None,
        started: Optional[float] = None,
    ) -> None:
        duration_ms = round((time.monotonic() - started) * 1000, 2) if started is not None else None
        log(log_task_operation(
            operation,
            owner_id=ctx.owner_id,
            task_id=task_id,
            execution_id=ctx.execution_id,
            fields_changed=fields_changed,
            duration_ms=duration_ms,
        ))

    # -----------------------------------------------------------------------
    # Lifecycle
    # -----------------------------------------------------------------------

    def transition(self, task_id: str, new_status: str) -> TransitionResult:
        """
        Move a task to *new_status* with all lifecycle side effects.

        Re-sending the current status is a no-op and returns changed=False.
        """
        ctx = require_owner_context()
        validate_status(new_status)
        now = self._clock.now()

        def mutate(task: Task) -> Tuple[Optional[Task], TransitionResult]:
            result = apply_transition(task, new_status, now)
            return (result.task if result.changed else None), result

        stored, result = self._mutate(ctx, task_id, mutate)
        result.task = stored

        if result.changed:
            logger.info(
                "Task %s: %s -> %s%s",
                task_id, result.previous_status, new_status, " (reopened)" if result.reopened else "",
            )
            log(log_task_transition(
                task_id,
                ctx.owner_id,
                result.previous_status,
                new_status,
                execution_id=ctx.execution_id,
                reopened=result.reopened,
                reflection_prompt=result.reflection_prompt,
                total_seconds=stored.time_tracking.total_seconds,
            ))
        return result

    def live_tracked_seconds(self, task_id: str) -> int:
        """Tracked seconds including the running session, without persisting it."""
        ctx = require_owner_context()
        task = self._require_task(task_id, ctx.owner_id)
        return task.time_tracking.compute_live_total(self._clock.now())

    def reset_time_tracking(self, task_id: str) -> Task:
        ctx = require_owner_context()

        def mutate(task: Task) -> Tuple[Optional[Task], None]:
            updated = task.model_copy(deep=True)
            updated.time_tracking.reset()
            return updated, None

        stored, _ = self._mutate(ctx, task_id, mutate)
        self._log_operation(ctx, "time_reset", task_id, ["time_tracking"])
        return stored

    def set_tracked_minutes(self, task_id: str, minutes: int) -> Task:
        """Replace the tracked time with *minutes* (manual correction)."""
        ctx = require_owner_context()
        validate_minutes(minutes, field="minutes")

        def mutate(task: Task) -> Tuple[Optional[Task], None]:
            updated = task.model_copy(deep=True)
            updated.time_tracking.set_tracked_minutes(minutes)
            return updated, None

        stored, _ = self._mutate(ctx, task_id, mutate)
        self._log_operation(ctx, "time_set", task_id, ["time_tracking"])
        return stored

    # -----------------------------------------------------------------------
    # Subtasks & reflection
    # -----------------------------------------------------------------------

    def add_subtask(self, task_id: str, title: str) -> Tuple[Task, Subtask]:
        ctx = require_owner_context()
        now = self._clock.now()
        stored, subtask = self._mutate(ctx, task_id, lambda task: add_subtask(task, title, now))
        self._log_operation(ctx, "subtask_added", task_id, ["subtasks"])
        return stored, subtask

    def remove_subtask(self, task_id: str, subtask_id: str) -> Task:
        ctx = require_owner_context()
        stored, _ = self._mutate(ctx, task_id, lambda task: (remove_subtask(task, subtask_id), None))
        self._log_operation(ctx, "subtask_removed", task_id, ["subtasks"])
        return stored

    def toggle_subtask(self, task_id: str, subtask_id: str, is_done: bool) -> Task:
        """Set one subtask's done flag. Idempotent; never touches status."""
        ctx = require_owner_context()
        now = self._clock.now()

        def mutate(task: Task) -> Tuple[Optional[Task], None]:
            updated = toggle_subtask(task, subtask_id, is_done, now)
            return (None if updated is task else updated), None

        stored, _ = self._mutate(ctx, task_id, mutate)
        return stored

    def save_completion_reflection(self, task_id: str, notes: str = "") -> Task:
        ctx = require_owner_context()
        now = self._clock.now()
        stored, _ = self._mutate(ctx, task_id, lambda task: (save_reflection(task, notes, now), None))
        self._log_operation(ctx, "reflection_saved", task_id, ["completion_reflection"])
        return stored

    def create_followup_from_unfinished(self, task_id: str) -> Optional[Task]:
        """
        Spawn a todo task carrying the unfinished subtasks of *task_id*.

        The original keeps its subtasks; only its reflection is marked as having
        accepted the suggestion. The follow-up is created first and removed again
        if marking the original fails. Returns None when every subtask is done.
        """
        ctx = require_owner_context()
        now = self._clock.now()

        followup = build_followup(self._require_task(task_id, ctx.owner_id), now, ctx.tz)
        if followup is None:
            return None

        followup.created_at = now
        followup.updated_at = now
        created = self._repo.create(followup)
        try:
            self._mutate(ctx, task_id, lambda task: (mark_suggestions_accepted(task, now), None))
        except Exception:
            logger.warning("Marking task %s failed, removing follow-up %s", task_id, created.id)
            self._repo.delete_by_id(created.id, ctx.owner_id)
            raise

        logger.info("Follow-up %s created from task %s", created.id, task_id)
        self._log_operation(ctx, "followup_created", created.id, ["original_task_id"])
        return created

    # -----------------------------------------------------------------------
    # CRUD
    # -----------------------------------------------------------------------

    def create_task(self, payload: Union[TaskCreate, Dict[str, Any]]) -> Task:
        ctx = require_owner_context()
        started = time.monotonic()
        data = _validate_payload(TaskCreate, payload)
        now = self._clock.now()

        task = Task(
            owner_id=ctx.owner_id,
            title=data.title,
            description=data.description,
            priority=data.priority,
            due_date=data.due_date,
            start_at=data.start_at,
            estimated_minutes=data.estimated_minutes,
            actual_minutes=data.actual_minutes,
            tags=list(data.tags),
            is_pinned=data.is_pinned,
            subtasks=[Subtask(title=title, created_at=now) for title in data.subtasks],
            created_at=now,
            updated_at=now,
        )
        created = self._repo.create(task)
        self._log_operation(ctx, "created", created.id, started=started)
        return created

    def get_task(self, task_id: str) -> Task:
        ctx = require_owner_context()
        return self._require_task(task_id, ctx.owner_id)

    def list_tasks(self, query: Optional[TaskQuery] = None, sort: TaskSort = "default") -> List[Task]:
        ctx = require_owner_context()
        return self._repo.find_many(ctx.owner_id, query, sort)

    def update_task(self, task_id: str, payload: Union[TaskUpdate, Dict[str, Any]]) -> Task:
        """
        Apply a partial update. A priority change bumps priority_change_count;
        a status change goes through the lifecycle state machine.
        """
        ctx = require_owner_context()
        started = time.monotonic()
        changes = _validate_payload(TaskUpdate, payload).model_dump(exclude_unset=True)
        for name in _REQUIRED_FIELDS:
            if name in changes and changes[name] is None:
                raise TaskflowValidationError(f"{name} cannot be null", field=name, task_id=task_id)
        new_status = changes.pop("status", None)
        now = self._clock.now()

        def mutate(task: Task) -> Tuple[Optional[Task], Optional[TransitionResult]]:
            updated = task.model_copy(deep=True)
            if "priority" in changes and changes["priority"] != task.priority:
                updated.priority_change_count += 1
            for name, value in changes.items():
                setattr(updated, name, value)
            transition = None
            if new_status is not None:
                transition = apply_transition(updated, new_status, now)
                updated = transition.task
            return updated, transition

        stored, transition = self._mutate(ctx, task_id, mutate)

        fields = sorted(changes)
        if transition is not None and transition.changed:
            fields.append("status")
            log(log_task_transition(
                task_id,
                ctx.owner_id,
                transition.previous_status,
                new_status,
                execution_id=ctx.execution_id,
                reopened=transition.reopened,
                reflection_prompt=transition.reflection_prompt,
                total_seconds=stored.time_tracking.total_seconds,
            ))
        self._log_operation(ctx, "updated", task_id, fields, started=started)
        return stored

    def delete_task(self, task_id: str) -> None:
        ctx = require_owner_context()

        def run() -> bool:
            return self._repo.delete_by_id(task_id, ctx.owner_id)

        if not self._lock.run(task_id, run):
            raise TaskflowNotFoundError(
                f"Task {task_id} not found",
                task_id=task_id,
                owner_id=ctx.owner_id,
            )
        self._log_operation(ctx, "deleted", task_id)

    def bulk_update(
        self,
        task_ids: List[str],
        payload: Union[TaskUpdate, Dict[str, Any]],
    ) -> List[Task]:
        """Apply the same update to each task. Ids not found under the owner are skipped."""
        ctx = require_owner_context()
        update = _validate_payload(TaskUpdate, payload)
        updated: List[Task] = []
        for task_id in dict.fromkeys(task_ids):
            try:
                updated.append(self.update_task(task_id, update))
            except TaskflowNotFoundError:
                logger.info("Bulk update skipped missing task %s (owner %s)", task_id, ctx.owner_id)
        return updated

    def bulk_delete(self, task_ids: List[str]) -> int:
        ctx = require_owner_context()
        deleted = 0
        for task_id in dict.fromkeys(task_ids):
            if self._lock.run(task_id, lambda: self._repo.delete_by_id(task_id, ctx.owner_id)):
                deleted += 1
        self._log_operation(ctx, "bulk_deleted", fields_changed=[f"count={deleted}"])
        return deleted

    # -----------------------------------------------------------------------
    # Friction & breakdown
    # -----------------------------------------------------------------------

    def list_tasks_with_friction(self) -> List[TaskWithFriction]:
        """Open tasks with their friction score, highest score first."""
        ctx = require_owner_context()
        now = self._clock.now()
        tasks = self._repo.find_many(ctx.owner_id, TaskQuery(statuses=list(OPEN_STATUSES)))
        scored = [TaskWithFriction(task=t, friction=score_friction(t, now)) for t in tasks]
        scored.sort(key=lambda item: item.friction.score, reverse=True)
        return scored

    def suggest_breakdown(self, task_id: str) -> BreakdownSuggestion:
        ctx = require_owner_context()
        return suggest_breakdown(self._require_task(task_id, ctx.owner_id))

    def accept_breakdown(
        self,
        task_id: str,
        parts: Optional[List[Union[BreakdownPart, Dict[str, Any]]]] = None,
    ) -> List[Task]:
        """
        Create one task per part and archive the original.

        Without explicit parts the suggested split is used. Parts already
        created are removed again when archiving the original fails.
        """
        ctx = require_owner_context()
        original = self._require_task(task_id, ctx.owner_id)
        if parts is None:
            parts = suggest_breakdown(original).parts
        validated = [_validate_payload(BreakdownPart, part) for part in parts]
        if not validated:
            raise TaskflowValidationError(
                "Breakdown needs at least one part",
                field="parts",
                task_id=task_id,
            )

        now = self._clock.now()
        created: List[Task] = []
        try:
            for part in validated:
                created.append(self._repo.create(Task(
                    owner_id=ctx.owner_id,
                    title=part.title,
                    description=part.description,
                    priority=original.priority,
                    due_date=original.due_date,
                    tags=list(original.tags),
                    estimated_minutes=part.estimated_minutes,
                    original_task_id=original.id,
                    created_at=now,
                    updated_at=now,
                )))
            self.transition(task_id, "archived")
        except Exception:
            logger.warning(
                "Breakdown of task %s failed, removing %d created part(s)", task_id, len(created),
            )
            for part_task in created:
                self._repo.delete_by_id(part_task.id, ctx.owner_id)
            raise

        self._log_operation(ctx, "breakdown_accepted", task_id, [p.id for p in created])
        return created
