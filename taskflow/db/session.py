"""
Taskflow Database Session Management.

Single entry point for DB initialisation plus a context manager for
transactional access. Uses the global EngineRegistry.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Generator, Optional

from sqlalchemy.orm import Session, sessionmaker

from taskflow.db.base import Base, engine_registry

DEFAULT_ENGINE = "taskflow"


def init_db(
    db_url: str,
    create_tables: bool = False,
    name: str = DEFAULT_ENGINE,
    pool_size: int = 10,
    max_overflow: int = 20,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
    pool_pre_ping: bool = True,
) -> sessionmaker:
    """
    Register the task database engine and return a session factory.

    Args:
        db_url:        SQLAlchemy URL (postgresql://... in production,
                       sqlite:///... for local runs and tests).
        create_tables: Run Base.metadata.create_all() — for ``taskflow init``
                       and tests only.
        name:          Registry name of the engine.

    Returns:
        A ``sessionmaker`` bound to the engine (expire_on_commit=False).
    """
    from taskflow.db import models  # noqa: F401  registers TaskRow on Base.metadata

    engine = engine_registry.register(
        name, db_url,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_timeout=pool_timeout,
        pool_recycle=pool_recycle,
        pool_pre_ping=pool_pre_ping,
    )

    if create_tables:
        Base.metadata.create_all(engine)

    return sessionmaker(bind=engine, expire_on_commit=False)


@contextmanager
def session_scope(factory: Optional[sessionmaker] = None) -> Generator[Session, None, None]:
    """
    Context manager for DB sessions with auto-commit/rollback.

    Usage:
        with session_scope(factory) as session:
            row = session.get(TaskRow, task_id)
    """
    session = factory() if factory is not None else engine_registry.get_session(DEFAULT_ENGINE)
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def close_all_sessions() -> None:
    """Dispose all engines. Used during shutdown and between tests."""
    engine_registry.dispose()
