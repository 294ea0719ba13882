"""Taskflow persistence — SQLAlchemy base, sessions and the tasks table."""

from taskflow.db.base import Base, engine_registry  # noqa: F401
from taskflow.db.session import close_all_sessions, init_db, session_scope  # noqa: F401

__all__ = ["Base", "engine_registry", "init_db", "session_scope", "close_all_sessions"]
