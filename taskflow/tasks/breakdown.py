"""Task breakdown — suggest a Prepare / Execute / Review split for large tasks."""

from __future__ import annotations

from typing import List

from pydantic import BaseModel, Field

from taskflow.tasks import MAX_TITLE_LENGTH
from taskflow.tasks.models import Task
from taskflow.utilities.utils import round_half_up

LARGE_TASK_MINUTES = 120
FALLBACK_MINUTES = 60

PHASES = (
    ("Prepare", "Gather resources, plan approach, identify requirements", 0.2),
    ("Execute", "Main work on the task", 0.6),
    ("Review", "Check work, test results, finalize", 0.2),
)


class BreakdownPart(BaseModel):
    title: str = Field(min_length=1, max_length=MAX_TITLE_LENGTH)
    description: str = ""
    estimated_minutes: int = Field(ge=0)


class BreakdownSuggestion(BaseModel):
    task_id: str
    should_breakdown: bool
    parts: List[BreakdownPart] = Field(default_factory=list)


def should_breakdown(task: Task) -> bool:
    """Urgent tasks and estimates over two hours are worth splitting."""
    return task.priority == "urgent" or (task.estimated_minutes or 0) > LARGE_TASK_MINUTES


def suggest_breakdown(task: Task) -> BreakdownSuggestion:
    if not should_breakdown(task):
        return BreakdownSuggestion(task_id=task.id, should_breakdown=False)

    base = task.estimated_minutes or FALLBACK_MINUTES
    parts = [
        BreakdownPart(
            title=f"{phase}: {task.title}"[:MAX_TITLE_LENGTH],
            description=description,
            estimated_minutes=round_half_up(base * share),
        )
        for phase, description, share in PHASES
    ]
    return BreakdownSuggestion(task_id=task.id, should_breakdown=True, parts=parts)
