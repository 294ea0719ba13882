"""Estimation accuracy — planned vs. actual minutes, computed on entering done."""

from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel

from taskflow.utilities.utils import round_half_up

EstimationCategory = Literal["accurate", "underestimated", "overestimated"]

# |delta_percent| at or below this counts as accurate
ACCURATE_THRESHOLD_PERCENT = 10.0


class EstimationResult(BaseModel):
    estimated_minutes: int
    actual_minutes: int
    delta_minutes: int
    delta_percent: float
    category: EstimationCategory
    accuracy_score: float
    computed_at: datetime


def resolve_actual_minutes(actual_minutes: Optional[int], total_seconds: int) -> Optional[int]:
    """Manual override wins; otherwise tracked time rounded to minutes, if any."""
    if actual_minutes is not None:
        return actual_minutes
    if total_seconds > 0:
        return round_half_up(total_seconds / 60)
    return None


def compute_estimation_result(
    estimated_minutes: Optional[int],
    actual_minutes: Optional[int],
    total_seconds: int,
    now: datetime,
) -> Optional[EstimationResult]:
    """
    Compare the estimate with the resolved actual time.

    Returns None when there is no positive estimate or no actual value.
    """
    if not estimated_minutes or estimated_minutes <= 0:
        return None
    actual = resolve_actual_minutes(actual_minutes, total_seconds)
    if actual is None:
        return None

    delta = actual - estimated_minutes
    delta_percent = delta / estimated_minutes * 100

    if abs(delta_percent) <= ACCURATE_THRESHOLD_PERCENT:
        category = "accurate"
    elif delta > 0:
        category = "underestimated"
    else:
        category = "overestimated"

    accuracy = max(0.0, min(100.0, 100 - abs(delta_percent)))

    return EstimationResult(
        estimated_minutes=estimated_minutes,
        actual_minutes=actual,
        delta_minutes=delta,
        delta_percent=round(delta_percent, 1),
        category=category,
        accuracy_score=round(accuracy, 1),
        computed_at=now,
    )
