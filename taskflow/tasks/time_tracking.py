"""
Time-Tracking Engine — elapsed-active-time ledger embedded in a task.

Only the lifecycle state machine (and the administrative service calls)
drive these operations. Guarantees:

  - finalize_session() always runs before a new start_tracking(), so
    elapsed time is never double counted across pause/resume cycles.
  - While running, the in-progress delta is computed on read
    (compute_live_total) and never persisted until finalized.
  - Closed TrackingSession records are frozen once appended.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from taskflow.engine.errors import TaskflowValidationError
from taskflow.tasks import MAX_MINUTES


class TrackingSession(BaseModel):
    """One closed doing-interval. Immutable."""

    model_config = ConfigDict(frozen=True)

    started_at: datetime
    ended_at: datetime
    duration_seconds: int = Field(ge=0)


class TimeTracking(BaseModel):
    """Aggregate ledger: total seconds, running flag, closed sessions."""

    total_seconds: int = Field(default=0, ge=0)
    is_running: bool = False
    last_started_at: Optional[datetime] = None
    sessions: Tuple[TrackingSession, ...] = ()

    def start_tracking(self, now: datetime) -> bool:
        """Open a session at *now*. No-op (returns False) if already running."""
        if self.is_running:
            return False
        self.is_running = True
        self.last_started_at = now
        return True

    def finalize_session(self, now: datetime) -> Optional[TrackingSession]:
        """
        Close the running session at *now*, fold it into total_seconds and
        append the closed record. No-op (returns None) if not running.
        """
        if not self.is_running or self.last_started_at is None:
            self.is_running = False
            return None

        elapsed = self._elapsed(now)
        record = TrackingSession(
            started_at=self.last_started_at,
            ended_at=now,
            duration_seconds=elapsed,
        )
        self.total_seconds += elapsed
        self.sessions = self.sessions + (record,)
        self.is_running = False
        self.last_started_at = None
        return record

    def compute_live_total(self, now: datetime) -> int:
        """total_seconds plus the in-progress delta, without mutating state."""
        if self.is_running and self.last_started_at is not None:
            return self.total_seconds + self._elapsed(now)
        return self.total_seconds

    def reset(self) -> None:
        """Hard-clear to the zero state (administrative)."""
        self.total_seconds = 0
        self.is_running = False
        self.last_started_at = None
        self.sessions = ()

    def set_tracked_minutes(self, minutes: int) -> None:
        """Replace the ledger with a single synthetic value (manual correction)."""
        validate_minutes(minutes, field="minutes")
        self.total_seconds = minutes * 60
        self.is_running = False
        self.last_started_at = None
        self.sessions = ()

    def _elapsed(self, now: datetime) -> int:
        return max(0, int((now - self.last_started_at).total_seconds()))


def validate_minutes(value: object, field: str) -> int:
    """Reject non-integer or out-of-range minute values."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise TaskflowValidationError(f"{field} must be an integer", field=field, value=value)
    if value < 0 or value > MAX_MINUTES:
        raise TaskflowValidationError(
            f"{field} must be between 0 and {MAX_MINUTES}",
            field=field,
            value=value,
        )
    return value
