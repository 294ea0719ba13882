"""Taskflow Engine — errors, config, structured logging, owner context, clocks, locks."""

from taskflow.engine.clock import FixedClock, SystemClock  # noqa: F401
from taskflow.engine.context import (  # noqa: F401
    OwnerContext,
    owner_scope,
    require_owner_context,
    set_owner_context,
)
from taskflow.engine.locks import InProcessTaskLock, RedisTaskLock, TaskLock  # noqa: F401

__all__ = [
    "FixedClock",
    "SystemClock",
    "OwnerContext",
    "owner_scope",
    "require_owner_context",
    "set_owner_context",
    "InProcessTaskLock",
    "RedisTaskLock",
    "TaskLock",
]
