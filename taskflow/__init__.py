"""
Taskflow — task lifecycle, time tracking and weekly planning core.

Packages:
    engine    errors, config, structured logging, owner context, clocks, locks
    db        SQLAlchemy base, sessions and the tasks table
    tasks     lifecycle state machine, time tracking, friction, repositories, service
    planner   weekly capacity-aware planner
    insights  task health, estimation and reflection analytics
"""

__version__ = "0.3.0"
__all__ = ["engine", "db", "tasks", "planner", "insights"]
