"""
Taskflow Tables — SQLAlchemy mapping of the task document.

Nested structures (time tracking ledger, subtasks, reflection, estimation
result, done-transition bookkeeping) are stored as JSON columns; the scalar
fields the repository filters or sorts on are real columns.

Optimistic concurrency: ``version`` is SQLAlchemy's version_id_col, so every
UPDATE carries ``WHERE version = :old`` and raises StaleDataError on a lost race.
"""

from __future__ import annotations

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Index,
    Integer,
    String,
    Text,
)

from taskflow.db.base import AuditMixin, Base


class TaskRow(Base, AuditMixin):
    __tablename__ = "tasks"

    id = Column(String(32), primary_key=True)
    owner_id = Column(String(64), nullable=False, index=True)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=False, default="")
    status = Column(String(20), nullable=False, default="todo")
    priority = Column(String(20), nullable=False, default="medium")
    due_date = Column(DateTime(timezone=True), nullable=True)
    start_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    tags = Column(JSON, nullable=False, default=list)
    is_pinned = Column(Boolean, nullable=False, default=False)

    estimated_minutes = Column(Integer, nullable=True)
    actual_minutes = Column(Integer, nullable=True)
    time_tracking = Column(JSON, nullable=False)
    estimation_result = Column(JSON, nullable=True)

    reopen_count = Column(Integer, nullable=False, default=0)
    priority_change_count = Column(Integer, nullable=False, default=0)
    last_status_changed_at = Column(DateTime(timezone=True), nullable=True)

    subtasks = Column(JSON, nullable=False, default=list)
    completion_reflection = Column(JSON, nullable=True)
    done_transition_meta = Column(JSON, nullable=True)
    original_task_id = Column(String(32), nullable=True)

    version = Column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        CheckConstraint(
            "status IN ('todo', 'doing', 'hold', 'done', 'archived')",
            name="ck_tasks_status",
        ),
        CheckConstraint(
            "priority IN ('low', 'medium', 'high', 'urgent')",
            name="ck_tasks_priority",
        ),
        Index("ix_tasks_owner_status", "owner_id", "status"),
        Index("ix_tasks_owner_due", "owner_id", "due_date"),
        Index("ix_tasks_owner_start", "owner_id", "start_at"),
        Index("ix_tasks_owner_created", "owner_id", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<TaskRow(id={self.id}, owner='{self.owner_id}', status='{self.status}')>"
