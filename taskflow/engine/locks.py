"""
Taskflow Per-Task Locks — the withTaskLock capability.

A TaskLock serializes read-modify-write cycles on ONE task id. Different task
ids never block each other and no cross-task lock is ever taken.

Backends:
  InProcessTaskLock — one threading.Lock per task id (single-node deployments)
  RedisTaskLock     — redis-py Lock per task id, shared across workers.
                      Falls back to the in-process lock while Redis is down
                      (circuit breaker), narrowing the guarantee to one node.
"""

from __future__ import annotations

import logging
import threading
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Optional, TypeVar

from redis.exceptions import RedisError

from taskflow.engine.errors import TaskflowConcurrencyError

logger = logging.getLogger("taskflow.engine.locks")

T = TypeVar("T")


class TaskLock(ABC):
    """Run fn while holding the lock for task_id."""

    @abstractmethod
    def run(self, task_id: str, fn: Callable[[], T]) -> T:
        ...


class InProcessTaskLock(TaskLock):
    """Mutex per task id, held for the duration of fn.

    Entries are reference counted and dropped once no caller holds or waits
    on them, so the map only ever covers tasks currently being mutated.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.Lock] = {}
        self._refs: Dict[str, int] = {}

    def _acquire_entry(self, task_id: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.setdefault(task_id, threading.Lock())
            self._refs[task_id] = self._refs.get(task_id, 0) + 1
            return lock

    def _release_entry(self, task_id: str) -> None:
        with self._guard:
            self._refs[task_id] -= 1
            if self._refs[task_id] == 0:
                del self._refs[task_id]
                del self._locks[task_id]

    def run(self, task_id: str, fn: Callable[[], T]) -> T:
        lock = self._acquire_entry(task_id)
        try:
            with lock:
                return fn()
        finally:
            self._release_entry(task_id)


class RedisTaskLock(TaskLock):
    """
    Distributed per-task lock using redis-py's Lock (SET NX PX + token release).

    Key format: taskflow:lock:task:{task_id}
    """

    def __init__(
        self,
        redis_url: str = "redis://localhost:6379/0",
        prefix: str = "taskflow:lock:task:",
        timeout_seconds: int = 30,
        blocking_timeout_seconds: int = 10,
        client: Optional[Any] = None,
        fallback: Optional[TaskLock] = None,
    ):
        self._redis_url = redis_url
        self._prefix = prefix
        self._timeout = timeout_seconds
        self._blocking_timeout = blocking_timeout_seconds
        self._client = client
        self._available = client is not None
        self._fallback = fallback or InProcessTaskLock()

        # Circuit breaker state
        self._failure_count = 0
        self._failure_threshold = 5
        self._failure_window = 30  # seconds
        self._first_failure_time = 0.0
        self._circuit_open = False

    def connect(self) -> bool:
        """Initialize the Redis connection."""
        try:
            import redis
            self._client = redis.Redis.from_url(
                self._redis_url,
                socket_timeout=5,
                socket_connect_timeout=5,
                retry_on_timeout=True,
            )
            self._client.ping()
            self._available = True
            self._circuit_open = False
            self._failure_count = 0
            logger.info(f"Redis task locks connected ({self._prefix})")
            return True
        except RedisError as e:
            logger.warning(f"Redis connection failed for task locks: {e}")
            self._available = False
            return False

    def _check_circuit(self) -> bool:
        if self._circuit_open:
            if time.time() - self._first_failure_time > self._failure_window:
                self._circuit_open = False
                self._failure_count = 0
                return self.connect()
            return False
        return self._available

    def _record_failure(self) -> None:
        now = time.time()
        if self._failure_count == 0:
            self._first_failure_time = now

        self._failure_count += 1

        if self._failure_count >= self._failure_threshold:
            elapsed = now - self._first_failure_time
            if elapsed <= self._failure_window:
                self._circuit_open = True
                logger.error(
                    f"Redis lock circuit breaker OPEN: {self._failure_count} failures in {elapsed:.1f}s"
                )

    def _make_key(self, task_id: str) -> str:
        return f"{self._prefix}{task_id}"

    def run(self, task_id: str, fn: Callable[[], T]) -> T:
        if not self._check_circuit():
            return self._fallback.run(task_id, fn)

        lock = self._client.lock(
            self._make_key(task_id),
            timeout=self._timeout,
            blocking_timeout=self._blocking_timeout,
        )
        try:
            acquired = lock.acquire()
        except RedisError as e:
            self._record_failure()
            logger.warning(f"Redis lock unavailable for task {task_id}, using local lock: {e}")
            return self._fallback.run(task_id, fn)

        if not acquired:
            raise TaskflowConcurrencyError(
                f"Timed out waiting for lock on task {task_id}",
                task_id=task_id,
                blocking_timeout=self._blocking_timeout,
            )

        try:
            return fn()
        finally:
            try:
                lock.release()
            except RedisError as e:
                # Expired before release: another worker may already hold it.
                logger.warning(f"Lock release failed for task {task_id}: {e}")

    @property
    def is_available(self) -> bool:
        return self._available and not self._circuit_open

    @property
    def is_circuit_open(self) -> bool:
        return self._circuit_open


def create_task_lock(backend: str = "memory", **kwargs: Any) -> TaskLock:
    """Build the configured lock backend (locks.backend in taskflow.yaml)."""
    if backend == "redis":
        lock = RedisTaskLock(**kwargs)
        lock.connect()
        return lock
    return InProcessTaskLock()
