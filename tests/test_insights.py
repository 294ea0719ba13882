"""Tests for taskflow.insights.service."""

from datetime import date, datetime, timedelta, timezone

import pytest

from taskflow.insights.service import InsightsService


@pytest.fixture
def insights(service):
    return InsightsService(service)


def done_at(service, clock, task_id, when):
    """Complete a task with the clock moved to *when*."""
    now = clock.now()
    clock.set(when)
    service.transition(task_id, "done")
    clock.set(now)


class TestDashboard:

    def test_counts(self, insights, service, owner, clock):
        now = clock.now()
        service.create_task({"title": "Due Tuesday", "due_date": now + timedelta(days=1)})
        service.create_task({"title": "Overdue", "due_date": now - timedelta(days=4)})
        service.create_task({"title": "Loose"})
        done = service.create_task({"title": "Done", "due_date": now + timedelta(days=2)})
        service.transition(done.id, "done")
        archived = service.create_task({"title": "Archived"})
        service.transition(archived.id, "archived")

        stats = insights.dashboard_stats()

        assert stats.total_tasks == 4
        assert stats.archived_tasks == 1
        assert stats.completed_tasks == 1
        assert stats.overdue_tasks == 1
        assert stats.completion_rate == 25
        assert stats.due_this_week == 1

    def test_empty(self, insights, owner):
        stats = insights.dashboard_stats()
        assert stats.total_tasks == 0
        assert stats.completion_rate == 0


class TestTaskHealth:

    def test_healthy(self, insights, service, owner):
        service.create_task({"title": "One", "priority": "urgent"})
        health = insights.task_health()
        assert health.health == "healthy"
        assert health.recommendations == ["Great job! Your task load is manageable."]

    def test_warning_on_urgent(self, insights, service, owner):
        for i in range(4):
            service.create_task({"title": f"u{i}", "priority": "urgent"})
        health = insights.task_health()
        assert health.health == "warning"
        assert health.urgent_tasks == 4
        assert "4 urgent tasks" in health.recommendations[0]

    def test_burnout_on_many_urgent(self, insights, service, owner):
        for i in range(6):
            service.create_task({"title": f"u{i}", "priority": "urgent"})
        assert insights.task_health().health == "burnout"

    def test_done_tasks_do_not_count(self, insights, service, owner, clock):
        for i in range(8):
            task = service.create_task({"title": f"late{i}", "due_date": clock.now() - timedelta(days=1)})
            service.transition(task.id, "done")
        health = insights.task_health()
        assert health.overdue_tasks == 0
        assert health.health == "healthy"

    def test_burnout_on_capacity(self, insights, service, owner, clock):
        now = clock.now()
        for days_ago in range(1, 5):
            clock.set(now - timedelta(days=days_ago))
            service.create_task({"title": f"big{days_ago}", "estimated_minutes": 150})
        clock.set(now)

        health = insights.task_health()
        assert health.days_exceeded == 4
        assert health.health == "burnout"
        assert any("exceeded 4 times" in r for r in health.recommendations)


class TestEstimationInsights:

    def test_accuracy(self, insights, service, owner, clock):
        now = clock.now()
        exact = service.create_task({"title": "exact", "estimated_minutes": 60, "actual_minutes": 60})
        slow = service.create_task({"title": "slow", "estimated_minutes": 60, "actual_minutes": 90})
        close = service.create_task({"title": "close", "estimated_minutes": 100, "actual_minutes": 95})
        unestimated = service.create_task({"title": "none", "actual_minutes": 20})
        done_at(service, clock, exact.id, now)
        done_at(service, clock, slow.id, now - timedelta(days=10))
        done_at(service, clock, close.id, now - timedelta(days=2))
        done_at(service, clock, unestimated.id, now)

        result = insights.estimation_insights()

        assert result.avg_accuracy_7 == 97.5
        assert result.avg_accuracy_30 == 81.7
        assert result.distribution_7.total == 2
        assert result.distribution_7.accurate_pct == 100
        assert result.distribution_30.underestimated == 1
        assert result.distribution_30.underestimated_pct == 33
        assert result.distribution_30.accurate_pct == 67

        series = result.accuracy_over_time
        assert len(series) == 30
        assert series[0].date == date(2025, 12, 7)
        assert series[-1].date == date(2026, 1, 5)
        assert series[-1].avg_accuracy == 100.0
        assert series[-1].total == 1

    def test_empty(self, insights, owner):
        result = insights.estimation_insights()
        assert result.avg_accuracy_30 == 0.0
        assert result.distribution_30.total == 0


class TestReflectionInsights:

    def test_coverage(self, insights, service, owner):
        reflected = service.create_task({"title": "r", "subtasks": ["a", "b"]})
        service.toggle_subtask(reflected.id, reflected.subtasks[0].id, True)
        service.transition(reflected.id, "done")
        service.save_completion_reflection(reflected.id, "half")

        unreflected = service.create_task({"title": "u", "subtasks": ["a"]})
        service.transition(unreflected.id, "done")
        plain = service.create_task({"title": "p"})
        service.transition(plain.id, "done")

        result = insights.reflection_insights()

        assert result.range_days == 7
        assert result.total_completed_with_subtasks == 2
        assert result.with_reflection == 1
        assert result.without_reflection == 1
        assert result.avg_completion_rate == 50.0

    @pytest.mark.parametrize("days,expected", [(100, 60), (-5, 1), (30, 30)])
    def test_range_clamped(self, insights, owner, days, expected):
        assert insights.reflection_insights(days).range_days == expected


def test_completed_per_day(insights, service, owner, clock):
    now = clock.now()
    for offset in (0, 0, 1):
        task = service.create_task({"title": f"d{offset}"})
        done_at(service, clock, task.id, now - timedelta(days=offset))

    counts = insights.completed_per_day(days=3)

    assert [(c.date, c.count) for c in counts] == [
        (date(2026, 1, 3), 0),
        (date(2026, 1, 4), 1),
        (date(2026, 1, 5), 2),
    ]
