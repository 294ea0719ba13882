"""Unit tests for taskflow.tasks.time_tracking — the elapsed-time ledger."""

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from taskflow.engine.errors import TaskflowValidationError
from taskflow.tasks.time_tracking import TimeTracking, TrackingSession, validate_minutes

T0 = datetime(2026, 1, 5, 9, 0, tzinfo=timezone.utc)


class TestTimeTracking:

    def test_start(self):
        tt = TimeTracking()
        assert tt.start_tracking(T0) is True
        assert tt.is_running is True
        assert tt.last_started_at == T0

    def test_start_when_running_is_noop(self):
        tt = TimeTracking()
        tt.start_tracking(T0)
        assert tt.start_tracking(T0 + timedelta(minutes=5)) is False
        assert tt.last_started_at == T0

    def test_finalize(self):
        tt = TimeTracking()
        tt.start_tracking(T0)
        record = tt.finalize_session(T0 + timedelta(minutes=10))
        assert record.duration_seconds == 600
        assert record.started_at == T0
        assert tt.total_seconds == 600
        assert tt.is_running is False
        assert tt.last_started_at is None
        assert tt.sessions == (record,)

    def test_finalize_when_not_running_is_noop(self):
        tt = TimeTracking(total_seconds=60)
        assert tt.finalize_session(T0) is None
        assert tt.total_seconds == 60
        assert tt.sessions == ()

    def test_negative_elapsed_clamped(self):
        tt = TimeTracking()
        tt.start_tracking(T0)
        record = tt.finalize_session(T0 - timedelta(minutes=1))
        assert record.duration_seconds == 0
        assert tt.total_seconds == 0

    def test_live_total_does_not_mutate(self):
        tt = TimeTracking(total_seconds=100)
        tt.start_tracking(T0)
        assert tt.compute_live_total(T0 + timedelta(seconds=50)) == 150
        assert tt.total_seconds == 100
        assert tt.is_running is True

    def test_live_total_when_stopped(self):
        assert TimeTracking(total_seconds=30).compute_live_total(T0) == 30

    def test_no_double_counting_across_pause_resume(self):
        tt = TimeTracking()
        now = T0
        expected = 0
        for run_minutes, pause_minutes in [(10, 5), (20, 60), (3, 1)]:
            tt.start_tracking(now)
            now += timedelta(minutes=run_minutes)
            tt.finalize_session(now)
            expected += run_minutes * 60
            now += timedelta(minutes=pause_minutes)
        tt.start_tracking(now)
        live = tt.compute_live_total(now + timedelta(seconds=42))
        assert tt.total_seconds == expected == sum(s.duration_seconds for s in tt.sessions)
        assert live == expected + 42

    def test_sessions_are_frozen(self):
        tt = TimeTracking()
        tt.start_tracking(T0)
        record = tt.finalize_session(T0 + timedelta(minutes=1))
        with pytest.raises(ValidationError):
            record.duration_seconds = 5

    def test_reset(self):
        tt = TimeTracking()
        tt.start_tracking(T0)
        tt.finalize_session(T0 + timedelta(minutes=1))
        tt.start_tracking(T0 + timedelta(minutes=2))
        tt.reset()
        assert tt == TimeTracking()

    def test_set_tracked_minutes(self):
        tt = TimeTracking()
        tt.start_tracking(T0)
        tt.set_tracked_minutes(45)
        assert tt.total_seconds == 2700
        assert tt.is_running is False
        assert tt.sessions == ()

    def test_set_tracked_minutes_rejects_out_of_range(self):
        tt = TimeTracking(total_seconds=10)
        with pytest.raises(TaskflowValidationError):
            tt.set_tracked_minutes(-1)
        assert tt.total_seconds == 10


class TestValidateMinutes:

    @pytest.mark.parametrize("value", [0, 1, 100_000])
    def test_valid(self, value):
        assert validate_minutes(value, "minutes") == value

    @pytest.mark.parametrize("value", [-1, 100_001, 1.5, "10", None, True])
    def test_invalid(self, value):
        with pytest.raises(TaskflowValidationError) as exc:
            validate_minutes(value, "minutes")
        assert exc.value.field == "minutes"
