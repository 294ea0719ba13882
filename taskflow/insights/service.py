"""
Taskflow Insights — read-only analytics over an owner's tasks.

    dashboard_stats()       counts, completion rate, due this week
    task_health()           healthy / warning / burnout with recommendations
    estimation_insights()   7/30-day accuracy, category distribution, daily series
    reflection_insights()   completion-rate average and reflection coverage
    completed_per_day()     done tasks per local day

Day buckets use the owner's timezone. All reads are snapshots.
"""

from __future__ import annotations

import datetime as dt
import logging
from collections import defaultdict
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from taskflow.engine.config import get_config
from taskflow.engine.context import require_owner_context
from taskflow.planner.weekly import week_window
from taskflow.tasks import OPEN_STATUSES
from taskflow.tasks.estimation import ACCURATE_THRESHOLD_PERCENT
from taskflow.tasks.models import Task, TaskQuery
from taskflow.tasks.service import TaskService
from taskflow.utilities.utils import local_midnight, round_half_up

logger = logging.getLogger("taskflow.insights.service")

HealthLevel = Literal["healthy", "warning", "burnout"]

MAX_REFLECTION_DAYS = 60


class DashboardStats(BaseModel):
    total_tasks: int
    archived_tasks: int
    completed_tasks: int
    overdue_tasks: int
    completion_rate: int
    due_this_week: int


class TaskHealth(BaseModel):
    health: HealthLevel
    overdue_tasks: int
    urgent_tasks: int
    days_exceeded: int
    recommendations: List[str]


class EstimationDistribution(BaseModel):
    total: int = 0
    underestimated: int = 0
    overestimated: int = 0
    accurate: int = 0
    underestimated_pct: int = 0
    overestimated_pct: int = 0
    accurate_pct: int = 0


class AccuracyPoint(BaseModel):
    date: dt.date
    avg_accuracy: float
    total: int


class EstimationInsights(BaseModel):
    avg_accuracy_7: float
    avg_accuracy_30: float
    distribution_7: EstimationDistribution
    distribution_30: EstimationDistribution
    accuracy_over_time: List[AccuracyPoint] = Field(default_factory=list)


class ReflectionInsights(BaseModel):
    range_days: int
    avg_completion_rate: float
    total_completed_with_subtasks: int
    with_reflection: int
    without_reflection: int


class DayCount(BaseModel):
    date: dt.date
    count: int


def _actual_minutes(task: Task) -> Optional[float]:
    if task.actual_minutes is not None:
        return float(task.actual_minutes)
    if task.time_tracking.total_seconds > 0:
        return task.time_tracking.total_seconds / 60
    return None


def _classify(estimated: float, actual: float) -> str:
    delta = actual - estimated
    if abs(delta) / estimated * 100 <= ACCURATE_THRESHOLD_PERCENT:
        return "accurate"
    return "underestimated" if delta > 0 else "overestimated"


def _accuracy(estimated: float, actual: float) -> float:
    return max(0.0, min(100.0, 100 - abs(actual - estimated) / estimated * 100))


def _pct(part: int, whole: int) -> int:
    return round_half_up(part / whole * 100) if whole > 0 else 0


def _avg(values: List[float]) -> float:
    return round(sum(values) / len(values), 1) if values else 0.0


def _distribution(categories: List[str]) -> EstimationDistribution:
    total = len(categories)
    counts = {c: categories.count(c) for c in ("underestimated", "overestimated", "accurate")}
    return EstimationDistribution(
        total=total,
        underestimated=counts["underestimated"],
        overestimated=counts["overestimated"],
        accurate=counts["accurate"],
        underestimated_pct=_pct(counts["underestimated"], total),
        overestimated_pct=_pct(counts["overestimated"], total),
        accurate_pct=_pct(counts["accurate"], total),
    )


class InsightsService:
    """Analytics for the current owner, computed from repository snapshots."""

    def __init__(self, task_service: TaskService):
        self._tasks = task_service

    def _all_tasks(self, owner_id: str, query: Optional[TaskQuery] = None) -> List[Task]:
        return self._tasks.repository.find_many(owner_id, query)

    def dashboard_stats(self) -> DashboardStats:
        ctx = require_owner_context()
        now = self._tasks.clock.now()
        week_start, week_end = week_window(now, ctx.tz)
        tasks = self._all_tasks(ctx.owner_id)

        active = [t for t in tasks if t.status != "archived"]
        completed = sum(1 for t in tasks if t.status == "done")
        open_tasks = [t for t in tasks if t.status in OPEN_STATUSES and t.due_date is not None]

        return DashboardStats(
            total_tasks=len(active),
            archived_tasks=len(tasks) - len(active),
            completed_tasks=completed,
            overdue_tasks=sum(1 for t in open_tasks if t.due_date < now),
            completion_rate=_pct(completed, len(active)),
            due_this_week=sum(1 for t in open_tasks if week_start <= t.due_date < week_end),
        )

    def task_health(self) -> TaskHealth:
        """
        Burnout heuristic.

        warning:  more than 5 overdue or more than 3 urgent open tasks
        burnout:  more than 10 overdue, more than 5 urgent, or more than 3 days
                  in the last week whose newly created estimates exceed the
                  daily capacity
        """
        ctx = require_owner_context()
        now = self._tasks.clock.now()
        capacity = get_config().insights.daily_capacity

        open_tasks = self._all_tasks(ctx.owner_id, TaskQuery(statuses=list(OPEN_STATUSES)))
        overdue = sum(1 for t in open_tasks if t.due_date is not None and t.due_date < now)
        urgent = sum(1 for t in open_tasks if t.priority == "urgent")

        recent = self._all_tasks(ctx.owner_id, TaskQuery(
            created_from=now - dt.timedelta(days=7),
            has_estimate=True,
        ))
        minutes_per_day: Dict[dt.date, int] = defaultdict(int)
        for task in recent:
            minutes_per_day[task.created_at.astimezone(ctx.tz).date()] += task.estimated_minutes or 0
        days_exceeded = sum(1 for minutes in minutes_per_day.values() if minutes > capacity)

        health: HealthLevel = "healthy"
        recommendations: List[str] = []
        if overdue > 5:
            health = "warning"
            recommendations.append(
                f"You have {overdue} overdue tasks. Consider rescheduling or delegating some."
            )
        if urgent > 3:
            health = "warning"
            recommendations.append(
                f"You have {urgent} urgent tasks. Try breaking them into smaller subtasks."
            )
        if days_exceeded > 3:
            health = "burnout"
            recommendations.append(
                f"Your daily capacity was exceeded {days_exceeded} times this week. "
                "Consider reducing commitments."
            )
        if overdue > 10 or urgent > 5:
            health = "burnout"
        if not recommendations:
            recommendations.append("Great job! Your task load is manageable.")

        if health != "healthy":
            logger.info("Owner %s task health: %s", ctx.owner_id, health)
        return TaskHealth(
            health=health,
            overdue_tasks=overdue,
            urgent_tasks=urgent,
            days_exceeded=days_exceeded,
            recommendations=recommendations,
        )

    def estimation_insights(self) -> EstimationInsights:
        """Accuracy of estimates on tasks completed in the last 7 and 30 local days."""
        ctx = require_owner_context()
        tz = ctx.tz
        today = self._tasks.clock.now().astimezone(tz).date()
        first_day = today - dt.timedelta(days=29)
        start_7 = local_midnight(today - dt.timedelta(days=6), tz)

        done = self._all_tasks(ctx.owner_id, TaskQuery(
            statuses=["done"],
            completed_from=local_midnight(first_day, tz),
            has_estimate=True,
        ))

        rows = []
        for task in done:
            actual = _actual_minutes(task)
            estimated = task.estimated_minutes
            if actual is None or not estimated or task.completed_at is None:
                continue
            rows.append((task.completed_at, _accuracy(estimated, actual), _classify(estimated, actual)))

        rows_7 = [r for r in rows if r[0] >= start_7]
        per_day: Dict[dt.date, List[float]] = defaultdict(list)
        for completed_at, accuracy, _ in rows:
            per_day[completed_at.astimezone(tz).date()].append(accuracy)

        series = []
        for i in range(30):
            day = first_day + dt.timedelta(days=i)
            values = per_day.get(day, [])
            series.append(AccuracyPoint(date=day, avg_accuracy=_avg(values), total=len(values)))

        return EstimationInsights(
            avg_accuracy_7=_avg([r[1] for r in rows_7]),
            avg_accuracy_30=_avg([r[1] for r in rows]),
            distribution_7=_distribution([r[2] for r in rows_7]),
            distribution_30=_distribution([r[2] for r in rows]),
            accuracy_over_time=series,
        )

    def reflection_insights(self, days: int = 7) -> ReflectionInsights:
        """Reflection coverage of done tasks with subtasks over the last *days* days (1-60)."""
        ctx = require_owner_context()
        days = max(1, min(MAX_REFLECTION_DAYS, int(days) if days else 7))
        today = self._tasks.clock.now().astimezone(ctx.tz).date()
        start = local_midnight(today - dt.timedelta(days=days - 1), ctx.tz)

        done = [
            t for t in self._all_tasks(ctx.owner_id, TaskQuery(statuses=["done"], completed_from=start))
            if t.subtasks
        ]
        reflected = [t for t in done if t.completion_reflection is not None]

        return ReflectionInsights(
            range_days=days,
            avg_completion_rate=_avg([float(t.completion_reflection.completion_rate) for t in reflected]),
            total_completed_with_subtasks=len(done),
            with_reflection=len(reflected),
            without_reflection=len(done) - len(reflected),
        )

    def completed_per_day(self, days: int = 14) -> List[DayCount]:
        ctx = require_owner_context()
        today = self._tasks.clock.now().astimezone(ctx.tz).date()
        first_day = today - dt.timedelta(days=days - 1)
        done = self._all_tasks(ctx.owner_id, TaskQuery(
            statuses=["done"],
            completed_from=local_midnight(first_day, ctx.tz),
        ))
        counts: Dict[dt.date, int] = defaultdict(int)
        for task in done:
            counts[task.completed_at.astimezone(ctx.tz).date()] += 1
        return [
            DayCount(date=first_day + dt.timedelta(days=i), count=counts.get(first_day + dt.timedelta(days=i), 0))
            for i in range(days)
        ]
