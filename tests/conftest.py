"""
Taskflow Test Suite — Shared fixtures and configuration.

Run:  pytest tests/ -v
"""

from __future__ import annotations

from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest


# ---------------------------------------------------------------------------
# Environment setup — avoid touching real Redis / Postgres in unit tests
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _isolate_globals(tmp_path, monkeypatch):
    """Reset global singletons between tests and keep config discovery inside tmp_path."""
    import taskflow.engine.config as cfg_mod
    import taskflow.engine.logging as log_mod
    from taskflow.engine.context import clear_owner_context

    monkeypatch.chdir(tmp_path)
    cfg_mod._config = None
    clear_owner_context()
    yield
    if log_mod._global_queue is not None:
        log_mod.shutdown_logging()
    cfg_mod._config = None
    clear_owner_context()


@pytest.fixture
def clock():
    """Monday 2026-01-05 09:00 UTC."""
    from taskflow.engine.clock import FixedClock

    return FixedClock(datetime(2026, 1, 5, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
def owner():
    """Run the test as owner 'user_1' in UTC."""
    from taskflow.engine.context import owner_scope

    with owner_scope("user_1", "UTC") as ctx:
        yield ctx


@pytest.fixture
def memory_repo():
    from taskflow.tasks.repository import InMemoryTaskRepository

    return InMemoryTaskRepository()


@pytest.fixture
def sql_repo(tmp_path):
    """SqlTaskRepository on a file-backed SQLite database."""
    from taskflow.db.session import close_all_sessions, init_db
    from taskflow.tasks.sql_repository import SqlTaskRepository

    factory = init_db(f"sqlite:///{tmp_path / 'tasks.db'}", create_tables=True)
    yield SqlTaskRepository(factory)
    close_all_sessions()


@pytest.fixture(params=["memory", "sql"])
def repo(request):
    """Both repository implementations."""
    return request.getfixturevalue(f"{request.param}_repo")


@pytest.fixture
def service(repo, clock):
    from taskflow.tasks.service import TaskService

    return TaskService(repo, clock=clock)


@pytest.fixture
def memory_service(memory_repo, clock):
    from taskflow.tasks.service import TaskService

    return TaskService(memory_repo, clock=clock)


@pytest.fixture
def mock_redis():
    """Return a mock Redis client whose locks always acquire."""
    client = MagicMock()
    client.ping.return_value = True
    client.lock.return_value.acquire.return_value = True
    return client


@pytest.fixture
def make_task(clock):
    """Factory for Task documents owned by user_1."""
    from taskflow.tasks.models import Task

    def _make(**fields):
        fields.setdefault("owner_id", "user_1")
        fields.setdefault("title", "Task")
        fields.setdefault("created_at", clock.now())
        return Task(**fields)

    return _make
