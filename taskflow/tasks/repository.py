"""
Task Repository — the storage seam of the task core.

Every read and write is scoped by (task_id, owner_id); no method ever returns
or touches another owner's task.

Optimistic concurrency: Task.version is the version the caller read. save()
refuses to overwrite a newer version (TaskflowConcurrencyError) and returns
the stored task with its bumped version.

Transactions: update_atomically() runs a read-modify-write inside one
transaction. Stores without transactions raise TransactionUnsupportedError and
callers fall back to find_by_id + save (guarded by the version check only).
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from typing import Callable, Dict, List, Optional, Tuple, TypeVar

from taskflow.engine.errors import (
    TaskflowConcurrencyError,
    TaskflowNotFoundError,
    TransactionUnsupportedError,
)
from taskflow.tasks.models import Task, TaskQuery, TaskSort

T = TypeVar("T")

# mutate(task) -> (updated task or None when nothing changed, result)
Mutator = Callable[[Task], Tuple[Optional[Task], T]]


class TaskRepository(ABC):
    """Abstract task store."""

    @abstractmethod
    def find_by_id(self, task_id: str, owner_id: str) -> Optional[Task]:
        ...

    @abstractmethod
    def find_many(
        self,
        owner_id: str,
        query: Optional[TaskQuery] = None,
        sort: TaskSort = "default",
    ) -> List[Task]:
        ...

    @abstractmethod
    def create(self, task: Task) -> Task:
        ...

    @abstractmethod
    def save(self, task: Task) -> Task:
        ...

    @abstractmethod
    def delete_by_id(self, task_id: str, owner_id: str) -> bool:
        ...

    def update_atomically(self, task_id: str, owner_id: str, mutate: Mutator) -> Tuple[Task, T]:
        """
        Load the task, call mutate(task), persist the updated task (if any) and
        return (stored task, result), all in one transaction.

        Raises TaskflowNotFoundError when the task does not exist under owner_id.
        """
        raise TransactionUnsupportedError(
            f"{type(self).__name__} does not support transactions",
            task_id=task_id,
            owner_id=owner_id,
        )


def sort_tasks(tasks: List[Task], sort: TaskSort = "default") -> List[Task]:
    """
    Order tasks the way listings expect. Stable: equal keys keep input order.

    default   pinned first, then newest first
    due_date  earliest due first (undated last), then newest first
    priority  highest weight first, then newest first
    """
    def created_key(t: Task) -> float:
        return t.created_at.timestamp() if t.created_at else 0.0

    ordered = sorted(tasks, key=created_key, reverse=True)
    if sort == "due_date":
        ordered.sort(key=lambda t: (t.due_date is None, t.due_date.timestamp() if t.due_date else 0.0))
    elif sort == "priority":
        ordered.sort(key=lambda t: t.priority_weight, reverse=True)
    else:
        ordered.sort(key=lambda t: t.is_pinned, reverse=True)
    return ordered


class InMemoryTaskRepository(TaskRepository):
    """
    Dict-backed store for tests and single-process use.

    Has no transactions: callers use the find/save fallback, which the
    version check still protects against lost updates.
    """

    def __init__(self) -> None:
        self._tasks: Dict[str, Task] = {}
        self._guard = threading.Lock()

    def find_by_id(self, task_id: str, owner_id: str) -> Optional[Task]:
        with self._guard:
            task = self._tasks.get(task_id)
            if task is None or task.owner_id != owner_id:
                return None
            return task.model_copy(deep=True)

    def find_many(
        self,
        owner_id: str,
        query: Optional[TaskQuery] = None,
        sort: TaskSort = "default",
    ) -> List[Task]:
        query = query or TaskQuery()
        with self._guard:
            matched = [
                t.model_copy(deep=True)
                for t in self._tasks.values()
                if t.owner_id == owner_id and query.matches(t)
            ]
        return sort_tasks(matched, sort)

    def create(self, task: Task) -> Task:
        with self._guard:
            if task.id in self._tasks:
                raise TaskflowConcurrencyError(
                    f"Task {task.id} already exists",
                    task_id=task.id,
                    owner_id=task.owner_id,
                )
            stored = task.model_copy(deep=True)
            stored.version = 1
            self._tasks[stored.id] = stored
            return stored.model_copy(deep=True)

    def save(self, task: Task) -> Task:
        with self._guard:
            current = self._tasks.get(task.id)
            if current is None or current.owner_id != task.owner_id:
                raise TaskflowNotFoundError(
                    f"Task {task.id} not found",
                    task_id=task.id,
                    owner_id=task.owner_id,
                )
            if current.version != task.version:
                raise TaskflowConcurrencyError(
                    f"Task {task.id} was modified concurrently",
                    task_id=task.id,
                    owner_id=task.owner_id,
                    expected_version=task.version,
                    actual_version=current.version,
                )
            stored = task.model_copy(deep=True)
            stored.version = current.version + 1
            self._tasks[stored.id] = stored
            return stored.model_copy(deep=True)

    def delete_by_id(self, task_id: str, owner_id: str) -> bool:
        with self._guard:
            task = self._tasks.get(task_id)
            if task is None or task.owner_id != owner_id:
                return False
            del self._tasks[task_id]
            return True
