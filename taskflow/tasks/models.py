"""
Task document and request payloads.

Task is a plain pydantic record: the lifecycle state machine operates on it and
repositories persist it, but neither schema carries transition logic.
Status is never assigned directly outside taskflow.tasks.lifecycle.
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

from taskflow.tasks import MAX_MINUTES, MAX_TEXT_LENGTH, MAX_TITLE_LENGTH, PRIORITY_WEIGHTS
from taskflow.tasks.estimation import EstimationResult
from taskflow.tasks.time_tracking import TimeTracking
from taskflow.utilities.utils import ensure_utc, generate_id

TaskStatus = Literal["todo", "doing", "hold", "done", "archived"]
TaskPriority = Literal["low", "medium", "high", "urgent"]
TaskSort = Literal["default", "due_date", "priority"]


class Subtask(BaseModel):
    id: str = Field(default_factory=generate_id)
    title: str = Field(min_length=1, max_length=MAX_TITLE_LENGTH)
    is_done: bool = False
    created_at: datetime
    done_at: Optional[datetime] = None


class CompletionReflection(BaseModel):
    """Retrospective attached to a completed task."""
    completion_rate: int = Field(ge=0, le=100)
    notes: str = Field(default="", max_length=MAX_TEXT_LENGTH)
    created_at: datetime
    updated_at: datetime
    auto_suggestions_accepted: bool = False


class DoneTransitionMeta(BaseModel):
    """Bookkeeping of the last arrival at done."""
    previous_status: TaskStatus
    reflection_prompted: bool = False
    reached_at: datetime


class Task(BaseModel):
    """
    The central entity.

    Invariants maintained by the lifecycle state machine:
      - time_tracking.is_running only while status == "doing"
      - completed_at is set iff status == "done"
      - reopen_count grows once per done -> doing|todo
      - estimation_result recomputed on entering done, cleared on reopen
    """

    id: str = Field(default_factory=generate_id)
    owner_id: str
    title: str = Field(min_length=1, max_length=MAX_TITLE_LENGTH)
    description: str = Field(default="", max_length=MAX_TEXT_LENGTH)
    status: TaskStatus = "todo"
    priority: TaskPriority = "medium"
    due_date: Optional[datetime] = None
    start_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    tags: List[str] = Field(default_factory=list)
    is_pinned: bool = False

    time_tracking: TimeTracking = Field(default_factory=TimeTracking)
    estimated_minutes: Optional[int] = Field(default=None, ge=0, le=MAX_MINUTES)
    actual_minutes: Optional[int] = Field(default=None, ge=0, le=MAX_MINUTES)
    estimation_result: Optional[EstimationResult] = None

    reopen_count: int = Field(default=0, ge=0)
    priority_change_count: int = Field(default=0, ge=0)
    last_status_changed_at: Optional[datetime] = None

    subtasks: List[Subtask] = Field(default_factory=list)
    completion_reflection: Optional[CompletionReflection] = None
    done_transition_meta: Optional[DoneTransitionMeta] = None
    original_task_id: Optional[str] = None

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    version: int = 0

    @field_validator(
        "due_date", "start_at", "completed_at", "last_status_changed_at", "created_at", "updated_at"
    )
    @classmethod
    def normalize_datetimes(cls, v: Optional[datetime]) -> Optional[datetime]:
        """Naive values (and date-only strings) are taken as UTC."""
        return ensure_utc(v)

    @property
    def priority_weight(self) -> int:
        return PRIORITY_WEIGHTS.get(self.priority, 0)

    def find_subtask(self, subtask_id: str) -> Optional[Subtask]:
        for subtask in self.subtasks:
            if subtask.id == subtask_id:
                return subtask
        return None


# ---------------------------------------------------------------------------
# Request payloads
# ---------------------------------------------------------------------------

class TaskCreate(BaseModel):
    title: str = Field(min_length=1, max_length=MAX_TITLE_LENGTH)
    description: str = Field(default="", max_length=MAX_TEXT_LENGTH)
    priority: TaskPriority = "medium"
    due_date: Optional[datetime] = None
    start_at: Optional[datetime] = None
    estimated_minutes: Optional[int] = Field(default=None, ge=0, le=MAX_MINUTES)
    actual_minutes: Optional[int] = Field(default=None, ge=0, le=MAX_MINUTES)
    tags: List[str] = Field(default_factory=list)
    is_pinned: bool = False
    subtasks: List[str] = Field(default_factory=list, description="Subtask titles")

    @field_validator("title")
    @classmethod
    def strip_title(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("title must not be blank")
        return v

    @field_validator("due_date", "start_at")
    @classmethod
    def normalize_datetimes(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v)


class TaskUpdate(BaseModel):
    """Partial update. Only fields explicitly set are applied."""
    title: Optional[str] = Field(default=None, min_length=1, max_length=MAX_TITLE_LENGTH)
    description: Optional[str] = Field(default=None, max_length=MAX_TEXT_LENGTH)
    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None
    due_date: Optional[datetime] = None
    start_at: Optional[datetime] = None
    estimated_minutes: Optional[int] = Field(default=None, ge=0, le=MAX_MINUTES)
    actual_minutes: Optional[int] = Field(default=None, ge=0, le=MAX_MINUTES)
    tags: Optional[List[str]] = None
    is_pinned: Optional[bool] = None

    @field_validator("due_date", "start_at")
    @classmethod
    def normalize_datetimes(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v)


class TaskQuery(BaseModel):
    """
    Repository filter. Every set field must match.

    start_from / start_before bound start_at; include_unscheduled additionally
    admits tasks whose start_at is unset.
    """
    statuses: Optional[List[TaskStatus]] = None
    priority: Optional[TaskPriority] = None
    tags: Optional[List[str]] = None
    search: Optional[str] = None
    due_from: Optional[datetime] = None
    due_to: Optional[datetime] = None
    due_before: Optional[datetime] = None
    start_from: Optional[datetime] = None
    start_before: Optional[datetime] = None
    include_unscheduled: bool = False
    completed_from: Optional[datetime] = None
    completed_to: Optional[datetime] = None
    created_from: Optional[datetime] = None
    has_estimate: Optional[bool] = None
    ids: Optional[List[str]] = None

    @field_validator(
        "due_from", "due_to", "due_before", "start_from", "start_before",
        "completed_from", "completed_to", "created_from",
    )
    @classmethod
    def normalize_datetimes(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v)

    def matches(self, task: Task) -> bool:
        if self.ids is not None and task.id not in self.ids:
            return False
        if self.statuses is not None and task.status not in self.statuses:
            return False
        if self.priority is not None and task.priority != self.priority:
            return False
        if self.tags and not set(self.tags) & set(task.tags):
            return False
        if self.search:
            needle = self.search.lower()
            if needle not in task.title.lower() and needle not in task.description.lower():
                return False
        if not _within(task.due_date, self.due_from, self.due_to, self.due_before):
            return False
        if self.start_from is not None or self.start_before is not None:
            if task.start_at is None:
                if not self.include_unscheduled:
                    return False
            elif not _within(task.start_at, self.start_from, None, self.start_before):
                return False
        if not _within(task.completed_at, self.completed_from, self.completed_to, None):
            return False
        if not _within(task.created_at, self.created_from, None, None):
            return False
        if self.has_estimate is not None and (task.estimated_minutes is not None) != self.has_estimate:
            return False
        return True


def _within(
    value: Optional[datetime],
    lower: Optional[datetime],
    upper_inclusive: Optional[datetime],
    upper_exclusive: Optional[datetime],
) -> bool:
    if lower is None and upper_inclusive is None and upper_exclusive is None:
        return True
    if value is None:
        return False
    if lower is not None and value < lower:
        return False
    if upper_inclusive is not None and value > upper_inclusive:
        return False
    if upper_exclusive is not None and value >= upper_exclusive:
        return False
    return True
