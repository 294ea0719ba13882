"""Friction scorer — 0-100 heuristic that a task is stalling or mismanaged."""

from __future__ import annotations

from datetime import datetime
from typing import List, Literal

from pydantic import BaseModel

from taskflow.tasks.models import Task
from taskflow.utilities.utils import round_half_up

FrictionLevel = Literal["low", "medium", "high"]
FrictionKind = Literal["overdue", "stuck_in_doing", "reopened", "priority_churn", "estimate_mismatch"]

SECONDS_PER_DAY = 24 * 60 * 60


class FrictionFactor(BaseModel):
    kind: FrictionKind
    magnitude: float
    contribution: float
    label: str


class FrictionScore(BaseModel):
    score: int
    level: FrictionLevel
    factors: List[FrictionFactor]


def _whole_days(later: datetime, earlier: datetime) -> int:
    return int((later - earlier).total_seconds() // SECONDS_PER_DAY)


def _plural(count: int, word: str) -> str:
    return f"{count} {word}" + ("s" if count != 1 else "")


def score_friction(task: Task, now: datetime) -> FrictionScore:
    """
    Sum the independent weighted contributions, clamp to 100.

    Factors are informational only: they explain the score to the UI.
    """
    score = 0.0
    factors: List[FrictionFactor] = []

    if task.due_date is not None and task.due_date < now and task.status != "done":
        overdue_days = _whole_days(now, task.due_date)
        contribution = min(overdue_days * 5, 30)
        score += contribution
        if overdue_days > 0:
            factors.append(FrictionFactor(
                kind="overdue",
                magnitude=overdue_days,
                contribution=contribution,
                label=f"Overdue {_plural(overdue_days, 'day')}",
            ))

    if task.status == "doing" and task.last_status_changed_at is not None:
        doing_days = _whole_days(now, task.last_status_changed_at)
        if doing_days > 2:
            contribution = min(doing_days * 3, 20)
            score += contribution
            factors.append(FrictionFactor(
                kind="stuck_in_doing",
                magnitude=doing_days,
                contribution=contribution,
                label=f"In progress {_plural(doing_days, 'day')}",
            ))

    if task.reopen_count > 0:
        contribution = min(task.reopen_count * 10, 25)
        score += contribution
        factors.append(FrictionFactor(
            kind="reopened",
            magnitude=task.reopen_count,
            contribution=contribution,
            label=f"Reopened {_plural(task.reopen_count, 'time')}",
        ))

    if task.priority_change_count > 0:
        contribution = min(task.priority_change_count * 4, 15)
        score += contribution
        factors.append(FrictionFactor(
            kind="priority_churn",
            magnitude=task.priority_change_count,
            contribution=contribution,
            label=f"Priority changed {_plural(task.priority_change_count, 'time')}",
        ))

    estimated, actual = task.estimated_minutes, task.actual_minutes
    if estimated and actual and estimated > 0:
        mismatch_percent = round_half_up(abs(actual - estimated) / estimated * 100)
        if mismatch_percent > 50:
            contribution = min(mismatch_percent / 5, 10)
            score += contribution
            factors.append(FrictionFactor(
                kind="estimate_mismatch",
                magnitude=mismatch_percent,
                contribution=contribution,
                label=f"Time estimate off by {mismatch_percent}%",
            ))

    final = min(round_half_up(score), 100)

    if final >= 50:
        level = "high"
    elif final >= 25:
        level = "medium"
    else:
        level = "low"

    return FrictionScore(score=final, level=level, factors=factors)
