"""
Weekly Planner — capacity-aware assignment of open tasks to a Monday-Sunday week.

The algorithm is a pure function of its inputs (tasks, capacity, locked days,
week start), so two runs over the same snapshot give the same plan:

    1. Locked tasks (start_at already inside the window) stay on their day and
       their minutes count against it, even past capacity.
    2. Remaining candidates are stably sorted by priority weight desc, then
       due date asc with dated tasks before undated ones.
    3. Each candidate costs estimated_minutes (or the default). It goes to its
       due day when that day is in the window, not locked and still fits;
       otherwise to the first unlocked day that fits; otherwise it stays
       unassigned. Capacity is never exceeded by a new assignment.
"""

from __future__ import annotations

import datetime as dt
from typing import Iterable, List, Optional, Sequence, Tuple
from zoneinfo import ZoneInfo

from pydantic import BaseModel, Field

from taskflow.tasks import PLANNABLE_STATUSES
from taskflow.tasks.models import Task
from taskflow.utilities.utils import local_midnight

DAY_NAMES = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")
DEFAULT_TASK_MINUTES = 30


class PlannedTask(BaseModel):
    task_id: str
    title: str
    priority: str
    status: str
    due_date: Optional[dt.datetime] = None
    minutes: int
    locked: bool = False


class DayPlan(BaseModel):
    day: str
    date: dt.date
    tasks: List[PlannedTask] = Field(default_factory=list)
    total_minutes: int = 0


class WeeklyPlan(BaseModel):
    week_start: dt.date
    daily_capacity: int
    locked_days: List[str] = Field(default_factory=list)
    days: List[DayPlan]
    unassigned: List[PlannedTask] = Field(default_factory=list)

    @property
    def assigned_count(self) -> int:
        return sum(1 for day in self.days for t in day.tasks if not t.locked)

    @property
    def locked_count(self) -> int:
        return sum(1 for day in self.days for t in day.tasks if t.locked)

    def day(self, name: str) -> DayPlan:
        return self.days[DAY_NAMES.index(name)]


def week_window(now: dt.datetime, tz: ZoneInfo) -> Tuple[dt.datetime, dt.datetime]:
    """Local Monday 00:00 of the week containing *now*, and the Monday after."""
    today = now.astimezone(tz).date()
    monday = today - dt.timedelta(days=today.weekday())
    return local_midnight(monday, tz), local_midnight(monday + dt.timedelta(days=7), tz)


def _day_index(value: dt.datetime, week_start: dt.date, tz: ZoneInfo) -> Optional[int]:
    index = (value.astimezone(tz).date() - week_start).days
    return index if 0 <= index < 7 else None


def _planned(task: Task, minutes: int, locked: bool = False) -> PlannedTask:
    return PlannedTask(
        task_id=task.id,
        title=task.title,
        priority=task.priority,
        status=task.status,
        due_date=task.due_date,
        minutes=minutes,
        locked=locked,
    )


def sort_candidates(tasks: Iterable[Task]) -> List[Task]:
    """Priority weight desc, then due date asc (dated first). Stable."""
    def key(task: Task):
        due = task.due_date.timestamp() if task.due_date is not None else 0.0
        return (-task.priority_weight, task.due_date is None, due)

    return sorted(tasks, key=key)


def build_weekly_plan(
    candidates: Sequence[Task],
    locked_tasks: Sequence[Task],
    week_start: dt.date,
    tz: ZoneInfo,
    daily_capacity: int,
    locked_days: Iterable[str] = (),
    default_minutes: int = DEFAULT_TASK_MINUTES,
) -> WeeklyPlan:
    """
    Assign *candidates* to the seven days starting at *week_start*.

    *locked_tasks* are the tasks whose start_at already falls in the window;
    they are placed on their day and never reassigned.
    """
    requested = set(locked_days)
    locked_days = [d for d in DAY_NAMES if d in requested]
    days = [
        DayPlan(day=name, date=week_start + dt.timedelta(days=i))
        for i, name in enumerate(DAY_NAMES)
    ]

    locked_ids = set()
    for task in locked_tasks:
        index = _day_index(task.start_at, week_start, tz) if task.start_at else None
        if index is None:
            continue
        minutes = task.estimated_minutes or default_minutes
        days[index].tasks.append(_planned(task, minutes, locked=True))
        days[index].total_minutes += minutes
        locked_ids.add(task.id)

    def fits(index: int, minutes: int) -> bool:
        return (
            DAY_NAMES[index] not in locked_days
            and days[index].total_minutes + minutes <= daily_capacity
        )

    unassigned: List[PlannedTask] = []
    for task in sort_candidates(t for t in candidates if t.status in PLANNABLE_STATUSES):
        if task.id in locked_ids:
            continue
        minutes = task.estimated_minutes or default_minutes

        target = None
        if task.due_date is not None:
            due_index = _day_index(task.due_date, week_start, tz)
            if due_index is not None and fits(due_index, minutes):
                target = due_index
        if target is None:
            target = next((i for i in range(7) if fits(i, minutes)), None)

        if target is None:
            unassigned.append(_planned(task, minutes))
            continue
        days[target].tasks.append(_planned(task, minutes))
        days[target].total_minutes += minutes

    return WeeklyPlan(
        week_start=week_start,
        daily_capacity=daily_capacity,
        locked_days=locked_days,
        days=days,
        unassigned=unassigned,
    )
