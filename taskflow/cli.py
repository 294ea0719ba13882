"""
Taskflow CLI — database bootstrap and operator commands.

Commands:
- taskflow init          — Create the tasks table
- taskflow plan          — Print (and optionally accept) the weekly plan of an owner
- taskflow friction      — Print friction scores of an owner's open tasks
- taskflow health        — Print the task health / burnout assessment of an owner
- taskflow cleanup-logs  — Apply log retention (compress / delete old JSONL files)
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import Optional

logger = logging.getLogger("taskflow.cli")


def main(argv: Optional[list] = None) -> int:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="taskflow",
        description="Taskflow — task lifecycle, weekly planning and friction scoring",
    )
    parser.add_argument(
        "--config", default=None, help="Path to taskflow.yaml (default: auto-discover)"
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # taskflow init
    subparsers.add_parser("init", help="Create database tables")

    # taskflow plan
    plan_parser = subparsers.add_parser("plan", help="Generate the weekly plan for an owner")
    plan_parser.add_argument("owner_id", help="Owner whose tasks are planned")
    plan_parser.add_argument("--timezone", help="Owner timezone (default: config timezone)")
    plan_parser.add_argument("--capacity", type=int, help="Daily capacity in minutes")
    plan_parser.add_argument(
        "--lock-day", action="append", default=[], dest="locked_days",
        help="Day name excluded from new assignments (repeatable)",
    )
    plan_parser.add_argument(
        "--accept", action="store_true", help="Persist start_at for the assigned tasks"
    )

    # taskflow friction
    friction_parser = subparsers.add_parser("friction", help="Friction scores of open tasks")
    friction_parser.add_argument("owner_id", help="Owner whose tasks are scored")

    # taskflow health
    health_parser = subparsers.add_parser("health", help="Task health assessment")
    health_parser.add_argument("owner_id", help="Owner to assess")
    health_parser.add_argument("--timezone", help="Owner timezone (default: config timezone)")

    # taskflow cleanup-logs
    subparsers.add_parser("cleanup-logs", help="Apply log retention")

    args = parser.parse_args(argv)

    commands = {
        "init": cmd_init,
        "plan": cmd_plan,
        "friction": cmd_friction,
        "health": cmd_health,
        "cleanup-logs": cmd_cleanup_logs,
    }
    if args.command not in commands:
        parser.print_help()
        return 0

    from taskflow.engine.logging import shutdown_logging

    try:
        return commands[args.command](args)
    finally:
        shutdown_logging()


def _load(args: argparse.Namespace):
    """Load config, configure stdlib logging and start the structured event log."""
    from taskflow.engine.config import load_config
    from taskflow.engine.logging import init_logging, log, log_system_event

    config = load_config(args.config)
    logging.basicConfig(level=getattr(logging, config.logging.level.upper(), logging.INFO))

    queue = config.logging.async_queue
    init_logging(
        config.logging.directory,
        flush_interval_ms=queue.flush_interval_ms,
        flush_batch_size=queue.flush_batch_size,
        max_queue_size=queue.max_queue_size,
    )
    log(log_system_event("cli_command", details={
        "command": args.command,
        "environment": config.environment,
    }))
    return config


def _build_task_service(config):
    """Wire the SQL repository and the configured lock backend."""
    from taskflow.db.session import init_db
    from taskflow.engine.locks import create_task_lock
    from taskflow.tasks.service import TaskService
    from taskflow.tasks.sql_repository import SqlTaskRepository

    db = config.database
    factory = init_db(
        db.url,
        pool_size=db.pool_size,
        max_overflow=db.max_overflow,
        pool_timeout=db.pool_timeout,
        pool_recycle=db.pool_recycle,
        pool_pre_ping=db.pool_pre_ping,
    )
    lock_kwargs = {}
    if config.locks.backend == "redis":
        lock_kwargs = {
            "redis_url": config.redis.url,
            "prefix": config.locks.prefix,
            "timeout_seconds": config.locks.timeout_seconds,
            "blocking_timeout_seconds": config.locks.blocking_timeout_seconds,
        }
    lock = create_task_lock(config.locks.backend, **lock_kwargs)
    return TaskService(SqlTaskRepository(factory), lock=lock)


def cmd_init(args: argparse.Namespace) -> int:
    """Load config, connect and create the tasks table."""
    from taskflow.engine.errors import TaskflowConfigError

    try:
        config = _load(args)
    except TaskflowConfigError as e:
        print(f"[ERROR] {e.message}")
        return 1
    print(f"[OK] Loaded config ({config.environment})")

    from sqlalchemy.exc import SQLAlchemyError

    from taskflow.db.base import engine_registry
    from taskflow.db.session import DEFAULT_ENGINE, close_all_sessions, init_db

    try:
        init_db(config.database.url, create_tables=True)
    except SQLAlchemyError as e:
        print(f"[ERROR] Failed to create tables: {e}")
        return 1

    healthy = engine_registry.health_check(DEFAULT_ENGINE)
    close_all_sessions()
    if not healthy:
        print("[ERROR] Database health check failed")
        return 1
    print("[OK] Database tables created")
    return 0


def cmd_plan(args: argparse.Namespace) -> int:
    from taskflow.engine.context import owner_scope
    from taskflow.engine.errors import TaskflowError
    from taskflow.planner.service import WeeklyPlannerService

    try:
        config = _load(args)
        service = WeeklyPlannerService(_build_task_service(config))
        with owner_scope(args.owner_id, args.timezone or config.timezone):
            plan = service.generate_weekly_plan(args.capacity, args.locked_days)
            output = {"plan": plan.model_dump(mode="json")}
            if args.accept:
                acceptance = service.accept_weekly_plan(plan)
                output["accepted"] = [t.id for t in acceptance.updated]
                output["missing"] = acceptance.missing
    except TaskflowError as e:
        print(e.to_json(), file=sys.stderr)
        return 1
    print(json.dumps(output, indent=2))
    return 0


def cmd_friction(args: argparse.Namespace) -> int:
    from taskflow.engine.context import owner_scope
    from taskflow.engine.errors import TaskflowError

    try:
        config = _load(args)
        service = _build_task_service(config)
        with owner_scope(args.owner_id, config.timezone):
            scored = service.list_tasks_with_friction()
    except TaskflowError as e:
        print(e.to_json(), file=sys.stderr)
        return 1
    print(json.dumps([
        {"task_id": item.task.id, "title": item.task.title, **item.friction.model_dump()}
        for item in scored
    ], indent=2))
    return 0


def cmd_health(args: argparse.Namespace) -> int:
    from taskflow.engine.context import owner_scope
    from taskflow.engine.errors import TaskflowError
    from taskflow.insights.service import InsightsService

    try:
        config = _load(args)
        insights = InsightsService(_build_task_service(config))
        with owner_scope(args.owner_id, args.timezone or config.timezone):
            health = insights.task_health()
    except TaskflowError as e:
        print(e.to_json(), file=sys.stderr)
        return 1
    print(health.model_dump_json(indent=2))
    return 0


def cmd_cleanup_logs(args: argparse.Namespace) -> int:
    from taskflow.engine.errors import TaskflowConfigError
    from taskflow.engine.logging import LogRetentionManager

    try:
        config = _load(args)
    except TaskflowConfigError as e:
        print(f"[ERROR] {e.message}")
        return 1

    retention = config.logging.retention
    manager = LogRetentionManager(
        log_dir=config.logging.directory,
        retention_days={
            "execution": retention.execution_days,
            "performance": retention.performance_days,
        },
        compress_after_days=retention.compress_after_days,
    )
    result = manager.cleanup()
    print(f"[OK] Deleted {result['deleted']}, compressed {result['compressed']} log file(s)")
    return 0


if __name__ == "__main__":
    sys.exit(main())
