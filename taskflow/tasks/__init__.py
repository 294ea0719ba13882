"""Task core — lifecycle state machine, time tracking, friction, persistence.

Components:
    models.py: Task document and request payloads (pydantic)
    time_tracking.py: Elapsed-time ledger driven by status transitions
    estimation.py: Planned vs. actual time on completion
    lifecycle.py: Status transitions and their side effects
    reflection.py: Subtasks, completion reflection, follow-up tasks
    friction.py: Stateless 0-100 stall/risk score
    breakdown.py: Prepare/Execute/Review split suggestions
    repository.py / sql_repository.py: Task storage
    service.py: Owner-scoped operations with per-task locking
"""

# Valid statuses and priorities
TASK_STATUSES = ("todo", "doing", "hold", "done", "archived")
OPEN_STATUSES = ("todo", "doing", "hold")
PLANNABLE_STATUSES = ("todo", "doing")
TASK_PRIORITIES = ("low", "medium", "high", "urgent")

PRIORITY_WEIGHTS = {
    "urgent": 4,
    "high": 3,
    "medium": 2,
    "low": 1,
}

# Limits
MAX_TITLE_LENGTH = 200
MAX_TEXT_LENGTH = 2000
MAX_MINUTES = 100_000

__all__ = [
    "TASK_STATUSES",
    "OPEN_STATUSES",
    "PLANNABLE_STATUSES",
    "TASK_PRIORITIES",
    "PRIORITY_WEIGHTS",
    "MAX_TITLE_LENGTH",
    "MAX_TEXT_LENGTH",
    "MAX_MINUTES",
]
