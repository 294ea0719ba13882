"""
Taskflow Error Hierarchy — Structured exceptions for the task core.

All errors carry the owner_id and task_id they relate to (when known) so a
failure can be traced from the HTTP layer down to the task document.

Hierarchy:
    TaskflowError
    ├── TaskflowNotFoundError         — Task or subtask not found under owner
    ├── TaskflowValidationError       — Input validation failed (nothing mutated)
    ├── TaskflowConcurrencyError      — Lost a race on the same task
    │   └── TransactionUnsupportedError — Store cannot run a transaction
    ├── TaskflowSecurityError         — No resolved owner
    └── TaskflowConfigError           — Invalid taskflow.yaml
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


class TaskflowError(Exception):
    """
    Base error for all task core failures.
    All context is serializable to JSON for the structured event log.
    """

    def __init__(self, message: str, **context: Any):
        self.message = message
        self.execution_id: Optional[str] = context.get("execution_id")
        self.owner_id: Optional[str] = context.get("owner_id")
        self.task_id: Optional[str] = context.get("task_id")
        self.error_type: str = self.__class__.__name__
        self.context: Dict[str, Any] = context
        self.timestamp: str = datetime.now(timezone.utc).isoformat()
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize error to JSON-compatible dict for logging."""
        return {
            "error_type": self.error_type,
            "message": self.message,
            "execution_id": self.execution_id,
            "owner_id": self.owner_id,
            "task_id": self.task_id,
            "timestamp": self.timestamp,
            "context": {
                k: str(v) for k, v in self.context.items()
                if k not in ("execution_id", "owner_id", "task_id")
            },
        }

    def to_json(self) -> str:
        """Serialize to JSON string."""
        return json.dumps(self.to_dict(), default=str)

    def __repr__(self) -> str:
        parts = [f"{self.error_type}: {self.message}"]
        if self.task_id:
            parts.append(f"task_id={self.task_id}")
        if self.owner_id:
            parts.append(f"owner_id={self.owner_id}")
        return " | ".join(parts)


class TaskflowNotFoundError(TaskflowError):
    """Task (or subtask) id not found under the resolved owner. Never retried."""

    def __init__(self, message: str, **context: Any):
        self.subtask_id: Optional[str] = context.get("subtask_id")
        super().__init__(message, **context)

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d["subtask_id"] = self.subtask_id
        return d


class TaskflowValidationError(TaskflowError):
    """
    Malformed input (unknown status, minutes out of range, bad pydantic payload).
    Raised before any mutation is attempted.
    """

    def __init__(self, message: str, **context: Any):
        self.validation_errors: Optional[List[Any]] = context.get("validation_errors")
        self.field: Optional[str] = context.get("field")
        super().__init__(message, **context)

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d["validation_errors"] = self.validation_errors
        d["field"] = self.field
        return d


class TaskflowConcurrencyError(TaskflowError):
    """
    A write lost a race against another write on the same task.
    Safe for the caller to retry: re-sending the same target status
    produces the same side effects modulo timestamps.
    """

    def __init__(self, message: str, **context: Any):
        self.expected_version: Optional[int] = context.get("expected_version")
        self.actual_version: Optional[int] = context.get("actual_version")
        super().__init__(message, **context)

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d["expected_version"] = self.expected_version
        d["actual_version"] = self.actual_version
        return d


ConcurrencyConflictError = TaskflowConcurrencyError


class TransactionUnsupportedError(TaskflowConcurrencyError):
    """The repository cannot run a transactional read-modify-write."""
    pass


class TaskflowSecurityError(TaskflowError):
    """No owner resolved for the current request."""
    pass


class TaskflowConfigError(TaskflowError):
    """Configuration error — invalid taskflow.yaml."""
    pass
