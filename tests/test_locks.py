"""Unit tests for taskflow.engine.locks — in-process and Redis per-task locks."""

import threading
import time
from unittest.mock import MagicMock, patch

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import LockError

from taskflow.engine.errors import TaskflowConcurrencyError
from taskflow.engine.locks import (
    InProcessTaskLock,
    RedisTaskLock,
    TaskLock,
    create_task_lock,
)


class TestInProcessTaskLock:

    def test_returns_fn_result(self):
        assert InProcessTaskLock().run("t1", lambda: 42) == 42

    def test_same_task_serialized(self):
        lock = InProcessTaskLock()
        active = []
        overlaps = []

        def work():
            active.append(1)
            if len(active) > 1:
                overlaps.append(True)
            time.sleep(0.01)
            active.pop()

        threads = [threading.Thread(target=lock.run, args=("t1", work)) for _ in range(5)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert overlaps == []

    def test_different_tasks_independent(self):
        lock = InProcessTaskLock()
        # Holding t1 must not block t2 from the same thread.
        assert lock.run("t1", lambda: lock.run("t2", lambda: "ok")) == "ok"

    def test_releases_on_error(self):
        lock = InProcessTaskLock()

        def boom():
            raise ValueError("x")

        with pytest.raises(ValueError):
            lock.run("t1", boom)
        assert lock.run("t1", lambda: "again") == "again"

    def test_entries_dropped_after_run(self):
        lock = InProcessTaskLock()
        for i in range(100):
            lock.run(f"t{i}", lambda: None)
        assert lock._locks == {}
        assert lock._refs == {}

    def test_entries_dropped_after_error(self):
        lock = InProcessTaskLock()

        def boom():
            raise ValueError("x")

        with pytest.raises(ValueError):
            lock.run("t1", boom)
        assert lock._locks == {}

    def test_entry_kept_while_held(self):
        lock = InProcessTaskLock()
        seen = lock.run("t1", lambda: dict(lock._refs))
        assert seen == {"t1": 1}
        assert lock._locks == {}

    def test_waiters_share_one_lock(self):
        lock = InProcessTaskLock()
        started = threading.Event()
        release = threading.Event()

        def hold():
            started.set()
            release.wait(2)

        holder = threading.Thread(target=lock.run, args=("t1", hold))
        holder.start()
        started.wait(2)
        waiter = threading.Thread(target=lock.run, args=("t1", lambda: None))
        waiter.start()
        time.sleep(0.05)
        assert lock._refs == {"t1": 2}
        release.set()
        holder.join()
        waiter.join()
        assert lock._locks == {}


class TestTaskLockInterface:

    def test_cannot_instantiate_base(self):
        with pytest.raises(TypeError):
            TaskLock()

    def test_subclass_must_implement_run(self):
        class Partial(TaskLock):
            pass

        with pytest.raises(TypeError):
            Partial()


class TestRedisTaskLock:

    def test_initial_state(self):
        lock = RedisTaskLock()
        assert lock.is_available is False
        assert lock.is_circuit_open is False

    def test_unavailable_uses_fallback(self):
        fallback = MagicMock(spec=TaskLock)
        fallback.run.return_value = "local"
        lock = RedisTaskLock(fallback=fallback)
        assert lock.run("t1", lambda: "remote") == "local"
        fallback.run.assert_called_once()

    def test_acquires_keyed_lock(self, mock_redis):
        lock = RedisTaskLock(client=mock_redis, timeout_seconds=15, blocking_timeout_seconds=3)
        assert lock.run("t1", lambda: "done") == "done"
        mock_redis.lock.assert_called_once_with("taskflow:lock:task:t1", timeout=15, blocking_timeout=3)
        mock_redis.lock.return_value.release.assert_called_once()

    def test_not_acquired_raises(self, mock_redis):
        mock_redis.lock.return_value.acquire.return_value = False
        lock = RedisTaskLock(client=mock_redis)
        with pytest.raises(TaskflowConcurrencyError):
            lock.run("t1", lambda: "never")

    def test_redis_error_falls_back(self, mock_redis):
        mock_redis.lock.return_value.acquire.side_effect = RedisConnectionError("down")
        lock = RedisTaskLock(client=mock_redis)
        assert lock.run("t1", lambda: "local") == "local"

    def test_circuit_opens_after_repeated_failures(self, mock_redis):
        mock_redis.lock.return_value.acquire.side_effect = RedisConnectionError("down")
        lock = RedisTaskLock(client=mock_redis)
        for _ in range(5):
            lock.run("t1", lambda: None)
        assert lock.is_circuit_open is True
        assert lock.is_available is False

    def test_release_error_is_logged_not_raised(self, mock_redis):
        mock_redis.lock.return_value.release.side_effect = LockError("expired")
        lock = RedisTaskLock(client=mock_redis)
        assert lock.run("t1", lambda: "value") == "value"

    def test_connect_failure(self):
        with patch("redis.Redis.from_url") as from_url:
            from_url.return_value.ping.side_effect = RedisConnectionError("refused")
            lock = RedisTaskLock()
            assert lock.connect() is False
            assert lock.is_available is False

    def test_connect_success(self, mock_redis):
        with patch("redis.Redis.from_url", return_value=mock_redis):
            lock = RedisTaskLock()
            assert lock.connect() is True
            assert lock.is_available is True


class TestFactory:

    def test_memory(self):
        assert isinstance(create_task_lock("memory"), InProcessTaskLock)

    def test_redis_connects(self, mock_redis):
        with patch("redis.Redis.from_url", return_value=mock_redis):
            lock = create_task_lock("redis", redis_url="redis://localhost:6379/1")
        assert isinstance(lock, RedisTaskLock)
        assert lock.is_available is True
