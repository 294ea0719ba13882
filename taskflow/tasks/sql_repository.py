"""
SQL task repository — SQLAlchemy 2.0 persistence of the Task document.

update_atomically() runs SELECT ... FOR UPDATE and the write in one session,
and the tasks table carries a version_id_col, so a competing writer that slips
past the row lock (SQLite ignores FOR UPDATE) still loses with StaleDataError,
surfaced as ConcurrencyConflictError.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from taskflow.db.models import TaskRow
from taskflow.db.session import session_scope
from taskflow.engine.errors import ConcurrencyConflictError, TaskflowNotFoundError
from taskflow.tasks.models import Task, TaskQuery, TaskSort
from taskflow.tasks.repository import Mutator, T, TaskRepository, sort_tasks
from taskflow.utilities.utils import ensure_utc

logger = logging.getLogger("taskflow.tasks.sql_repository")

_DATETIME_COLUMNS = ("due_date", "start_at", "completed_at", "last_status_changed_at",
                     "created_at", "updated_at")
_JSON_COLUMNS = ("time_tracking", "estimation_result", "subtasks",
                 "completion_reflection", "done_transition_meta")
_SCALAR_COLUMNS = ("owner_id", "title", "description", "status", "priority", "tags",
                   "is_pinned", "estimated_minutes", "actual_minutes", "reopen_count",
                   "priority_change_count", "original_task_id")


def _row_values(task: Task) -> Dict[str, Any]:
    """Column values for *task*. version is left to SQLAlchemy."""
    dumped = task.model_dump(mode="json")
    values: Dict[str, Any] = {name: getattr(task, name) for name in _SCALAR_COLUMNS}
    values["tags"] = list(task.tags)
    for name in _JSON_COLUMNS:
        values[name] = dumped[name]
    for name in _DATETIME_COLUMNS:
        value = ensure_utc(getattr(task, name))
        if value is not None or name not in ("created_at", "updated_at"):
            values[name] = value
    return values


def _to_domain(row: TaskRow) -> Task:
    data: Dict[str, Any] = {"id": row.id, "version": row.version}
    for name in _SCALAR_COLUMNS + _JSON_COLUMNS:
        data[name] = getattr(row, name)
    for name in _DATETIME_COLUMNS:
        data[name] = ensure_utc(getattr(row, name))
    if data["tags"] is None:
        data["tags"] = []
    if data["subtasks"] is None:
        data["subtasks"] = []
    return Task.model_validate(data)


def _apply(row: TaskRow, task: Task) -> None:
    for name, value in _row_values(task).items():
        setattr(row, name, value)


class SqlTaskRepository(TaskRepository):
    """Task store backed by the ``tasks`` table."""

    def __init__(self, session_factory: sessionmaker):
        self._factory = session_factory

    def _select(self, owner_id: str, query: TaskQuery):
        stmt = select(TaskRow).where(TaskRow.owner_id == owner_id)
        if query.ids is not None:
            stmt = stmt.where(TaskRow.id.in_(query.ids))
        if query.statuses is not None:
            stmt = stmt.where(TaskRow.status.in_(query.statuses))
        if query.priority is not None:
            stmt = stmt.where(TaskRow.priority == query.priority)
        if query.due_from is not None:
            stmt = stmt.where(TaskRow.due_date >= ensure_utc(query.due_from))
        if query.due_to is not None:
            stmt = stmt.where(TaskRow.due_date <= ensure_utc(query.due_to))
        if query.due_before is not None:
            stmt = stmt.where(TaskRow.due_date < ensure_utc(query.due_before))
        if query.completed_from is not None:
            stmt = stmt.where(TaskRow.completed_at >= ensure_utc(query.completed_from))
        if query.completed_to is not None:
            stmt = stmt.where(TaskRow.completed_at <= ensure_utc(query.completed_to))
        if query.created_from is not None:
            stmt = stmt.where(TaskRow.created_at >= ensure_utc(query.created_from))
        if query.has_estimate is True:
            stmt = stmt.where(TaskRow.estimated_minutes.is_not(None))
        elif query.has_estimate is False:
            stmt = stmt.where(TaskRow.estimated_minutes.is_(None))
        return stmt

    def find_by_id(self, task_id: str, owner_id: str) -> Optional[Task]:
        with session_scope(self._factory) as session:
            row = session.execute(
                select(TaskRow).where(TaskRow.id == task_id, TaskRow.owner_id == owner_id)
            ).scalar_one_or_none()
            return _to_domain(row) if row is not None else None

    def find_many(
        self,
        owner_id: str,
        query: Optional[TaskQuery] = None,
        sort: TaskSort = "default",
    ) -> List[Task]:
        query = query or TaskQuery()
        with session_scope(self._factory) as session:
            rows = session.execute(self._select(owner_id, query)).scalars().all()
            tasks = [_to_domain(row) for row in rows]
        # start_at window, tags and search are evaluated on the domain model
        tasks = [t for t in tasks if query.matches(t)]
        return sort_tasks(tasks, sort)

    def create(self, task: Task) -> Task:
        row = TaskRow(id=task.id, **_row_values(task))
        try:
            with session_scope(self._factory) as session:
                session.add(row)
                session.flush()
                return _to_domain(row)
        except IntegrityError as e:
            raise ConcurrencyConflictError(
                f"Task {task.id} already exists",
                task_id=task.id,
                owner_id=task.owner_id,
            ) from e

    def save(self, task: Task) -> Task:
        try:
            with session_scope(self._factory) as session:
                row = session.execute(
                    select(TaskRow).where(TaskRow.id == task.id, TaskRow.owner_id == task.owner_id)
                ).scalar_one_or_none()
                if row is None:
                    raise TaskflowNotFoundError(
                        f"Task {task.id} not found",
                        task_id=task.id,
                        owner_id=task.owner_id,
                    )
                if row.version != task.version:
                    raise ConcurrencyConflictError(
                        f"Task {task.id} was modified concurrently",
                        task_id=task.id,
                        owner_id=task.owner_id,
                        expected_version=task.version,
                        actual_version=row.version,
                    )
                _apply(row, task)
                session.flush()
                return _to_domain(row)
        except StaleDataError as e:
            raise ConcurrencyConflictError(
                f"Task {task.id} was modified concurrently",
                task_id=task.id,
                owner_id=task.owner_id,
                expected_version=task.version,
            ) from e

    def delete_by_id(self, task_id: str, owner_id: str) -> bool:
        with session_scope(self._factory) as session:
            row = session.execute(
                select(TaskRow).where(TaskRow.id == task_id, TaskRow.owner_id == owner_id)
            ).scalar_one_or_none()
            if row is None:
                return False
            session.delete(row)
            return True

    def update_atomically(self, task_id: str, owner_id: str, mutate: Mutator) -> Tuple[Task, T]:
        try:
            with session_scope(self._factory) as session:
                row = session.execute(
                    select(TaskRow)
                    .where(TaskRow.id == task_id, TaskRow.owner_id == owner_id)
                    .with_for_update()
                ).scalar_one_or_none()
                if row is None:
                    raise TaskflowNotFoundError(
                        f"Task {task_id} not found",
                        task_id=task_id,
                        owner_id=owner_id,
                    )

                updated, result = mutate(_to_domain(row))
                if updated is not None:
                    _apply(row, updated)
                    session.flush()
                return _to_domain(row), result
        except StaleDataError as e:
            logger.warning("Version conflict on task %s (owner %s)", task_id, owner_id)
            raise ConcurrencyConflictError(
                f"Task {task_id} was modified concurrently",
                task_id=task_id,
                owner_id=owner_id,
            ) from e
