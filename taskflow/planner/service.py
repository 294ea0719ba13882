"""
Weekly planner service — generate a proposal from a task snapshot, accept it.

The proposal is ephemeral: nothing is stored until accept_weekly_plan() writes
start_at for each newly assigned task. Accept does not re-check that the tasks
are still open; tasks deleted in the meantime are reported as missing.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from taskflow.engine.config import get_config
from taskflow.engine.context import require_owner_context
from taskflow.engine.errors import TaskflowNotFoundError, TaskflowValidationError
from taskflow.engine.logging import log, log_plan_event
from taskflow.planner.weekly import DAY_NAMES, WeeklyPlan, build_weekly_plan, week_window
from taskflow.tasks import PLANNABLE_STATUSES
from taskflow.tasks.models import Task, TaskQuery
from taskflow.tasks.service import TaskService
from taskflow.utilities.utils import local_midnight

logger = logging.getLogger("taskflow.planner.service")

MAX_DAILY_CAPACITY = 24 * 60


@dataclass
class PlanAcceptance:
    updated: List[Task] = field(default_factory=list)
    missing: List[str] = field(default_factory=list)


def validate_plan_inputs(daily_capacity: object, locked_days: Iterable[str]) -> List[str]:
    if isinstance(daily_capacity, bool) or not isinstance(daily_capacity, int):
        raise TaskflowValidationError("daily_capacity must be an integer", field="daily_capacity")
    if not 1 <= daily_capacity <= MAX_DAILY_CAPACITY:
        raise TaskflowValidationError(
            f"daily_capacity must be between 1 and {MAX_DAILY_CAPACITY}",
            field="daily_capacity",
            value=daily_capacity,
        )
    days = list(locked_days)
    unknown = [d for d in days if d not in DAY_NAMES]
    if unknown:
        raise TaskflowValidationError(
            f"Unknown locked days {unknown}. Expected names from {DAY_NAMES}",
            field="locked_days",
            value=unknown,
        )
    return days


class WeeklyPlannerService:
    """Owner-scoped weekly planning on top of a TaskService."""

    def __init__(self, task_service: TaskService):
        self._tasks = task_service

    def generate_weekly_plan(
        self,
        daily_capacity: Optional[int] = None,
        locked_days: Iterable[str] = (),
    ) -> WeeklyPlan:
        """Propose a plan for the current local week. Read failures abort the whole plan."""
        ctx = require_owner_context()
        started = time.monotonic()
        planner_config = get_config().planner
        if daily_capacity is None:
            daily_capacity = planner_config.default_daily_capacity
        days = validate_plan_inputs(daily_capacity, locked_days)

        tz = ctx.tz
        window_start, window_end = week_window(self._tasks.clock.now(), tz)
        repo = self._tasks.repository

        candidates = repo.find_many(ctx.owner_id, TaskQuery(
            statuses=list(PLANNABLE_STATUSES),
            start_from=window_start,
            include_unscheduled=True,
        ))
        locked = repo.find_many(ctx.owner_id, TaskQuery(
            start_from=window_start,
            start_before=window_end,
        ))

        plan = build_weekly_plan(
            candidates,
            locked,
            week_start=window_start.date(),
            tz=tz,
            daily_capacity=daily_capacity,
            locked_days=days,
            default_minutes=planner_config.default_task_minutes,
        )

        duration_ms = round((time.monotonic() - started) * 1000, 2)
        logger.info(
            "Plan for %s week of %s: %d assigned, %d unassigned, %d locked",
            ctx.owner_id, plan.week_start, plan.assigned_count, len(plan.unassigned), plan.locked_count,
        )
        log(log_plan_event(
            "plan_generated",
            ctx.owner_id,
            plan.week_start.isoformat(),
            execution_id=ctx.execution_id,
            assigned=plan.assigned_count,
            unassigned=len(plan.unassigned),
            locked=plan.locked_count,
            duration_ms=duration_ms,
        ))
        return plan

    def accept_weekly_plan(self, plan: WeeklyPlan) -> PlanAcceptance:
        """Persist start_at = bucket date (local midnight) for every newly assigned task."""
        ctx = require_owner_context()
        tz = ctx.tz
        acceptance = PlanAcceptance()

        for day in plan.days:
            start_at = local_midnight(day.date, tz)
            for planned in day.tasks:
                if planned.locked:
                    continue
                try:
                    acceptance.updated.append(
                        self._tasks.update_task(planned.task_id, {"start_at": start_at})
                    )
                except TaskflowNotFoundError:
                    logger.warning("Planned task %s no longer exists", planned.task_id)
                    acceptance.missing.append(planned.task_id)

        log(log_plan_event(
            "plan_accepted",
            ctx.owner_id,
            plan.week_start.isoformat(),
            execution_id=ctx.execution_id,
            assigned=len(acceptance.updated),
            unassigned=len(plan.unassigned),
            locked=plan.locked_count,
            missing=acceptance.missing,
        ))
        return acceptance
