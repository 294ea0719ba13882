"""Unit tests for taskflow.engine.context and taskflow.engine.clock."""

from datetime import datetime, timezone

import pytest

from taskflow.engine.clock import FixedClock, SystemClock
from taskflow.engine.context import (
    OwnerContext,
    clear_owner_context,
    get_owner_context,
    owner_scope,
    require_owner_context,
    set_owner_context,
)
from taskflow.engine.errors import TaskflowSecurityError


class TestOwnerContext:

    def test_defaults(self):
        ctx = OwnerContext(owner_id="user_1")
        assert ctx.timezone == "UTC"
        assert ctx.execution_id.startswith("exec_")
        assert ctx.tz.key == "UTC"

    def test_to_dict(self):
        ctx = OwnerContext(owner_id="user_1", timezone="Europe/Paris", username="ann")
        d = ctx.to_dict()
        assert d["owner_id"] == "user_1"
        assert d["timezone"] == "Europe/Paris"
        assert d["username"] == "ann"

    def test_set_get_clear(self):
        ctx = OwnerContext(owner_id="user_1")
        set_owner_context(ctx)
        assert get_owner_context() is ctx
        assert require_owner_context() is ctx
        clear_owner_context()
        assert get_owner_context() is None

    def test_require_without_owner(self):
        with pytest.raises(TaskflowSecurityError):
            require_owner_context()

    def test_require_rejects_blank_owner(self):
        set_owner_context(OwnerContext(owner_id=""))
        with pytest.raises(TaskflowSecurityError):
            require_owner_context()

    def test_owner_scope_restores_previous(self):
        outer = OwnerContext(owner_id="outer")
        set_owner_context(outer)
        with owner_scope("inner", "Asia/Tokyo") as ctx:
            assert require_owner_context() is ctx
            assert ctx.tz.key == "Asia/Tokyo"
        assert get_owner_context() is outer


class TestClocks:

    def test_system_clock_is_utc(self):
        assert SystemClock().now().tzinfo is timezone.utc

    def test_fixed_clock_default_is_monday(self):
        assert FixedClock().now().weekday() == 0

    def test_fixed_clock_naive_start_gets_utc(self):
        assert FixedClock(datetime(2026, 1, 1)).now().tzinfo is timezone.utc

    def test_advance_and_set(self):
        clock = FixedClock(datetime(2026, 1, 5, tzinfo=timezone.utc))
        assert clock.advance(minutes=90) == datetime(2026, 1, 5, 1, 30, tzinfo=timezone.utc)
        clock.set(datetime(2027, 1, 1, tzinfo=timezone.utc))
        assert clock.now().year == 2027
