"""
Taskflow Owner Context — Per-request identity carried in a ContextVar.

The core never runs without a resolved owner: every service method calls
require_owner_context() and scopes repository access by its owner_id.

Usage:
    from taskflow.engine.context import OwnerContext, set_owner_context, require_owner_context
"""

from __future__ import annotations

import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import Any, Dict, Generator, Optional
from zoneinfo import ZoneInfo

from taskflow.engine.errors import TaskflowSecurityError

current_owner_context: ContextVar[Optional["OwnerContext"]] = ContextVar(
    "owner_context", default=None
)


@dataclass
class OwnerContext:
    """
    Identity of the tenant a request acts for. Populated by the auth layer.
    """

    owner_id: str
    timezone: str = "UTC"
    execution_id: str = field(default_factory=lambda: f"exec_{uuid.uuid4().hex[:12]}")
    username: str = ""

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for logging."""
        return {
            "owner_id": self.owner_id,
            "timezone": self.timezone,
            "execution_id": self.execution_id,
            "username": self.username,
        }


def set_owner_context(ctx: OwnerContext) -> None:
    """Set the owner context for the current thread/task."""
    current_owner_context.set(ctx)


def get_owner_context() -> Optional[OwnerContext]:
    """Get the current owner context. Returns None if not set."""
    return current_owner_context.get()


def require_owner_context() -> OwnerContext:
    """Get owner context or raise if not set."""
    ctx = get_owner_context()
    if ctx is None or not ctx.owner_id:
        raise TaskflowSecurityError("No owner context — request not authenticated")
    return ctx


def clear_owner_context() -> None:
    """Clear the owner context (e.g., on request end)."""
    current_owner_context.set(None)


@contextmanager
def owner_scope(owner_id: str, timezone: str = "UTC") -> Generator[OwnerContext, None, None]:
    """
    Run a block as the given owner, restoring the previous context afterwards.

    Usage:
        with owner_scope("user_1", "Europe/Berlin"):
            service.transition(task_id, "doing")
    """
    ctx = OwnerContext(owner_id=owner_id, timezone=timezone)
    token = current_owner_context.set(ctx)
    try:
        yield ctx
    finally:
        current_owner_context.reset(token)
