"""Pickup reminder / auto-close sweep job.

Usage:
    python -m fulfillment_orchestrator.jobs.reminder_sweep          # one sweep
    python -m fulfillment_orchestrator.jobs.reminder_sweep --loop   # every sweep_interval_seconds

Cron-style schedulers should call it without ``--loop``. Overlapping
invocations are safe: the Redis lock and the sweep_runs watermark make extra
runs skip.
"""

from __future__ import annotations

import argparse
import asyncio

from redis.exceptions import RedisError

from fulfillment_orchestrator.config import get_settings
from fulfillment_orchestrator.domain.exceptions import SweepFailedError
from fulfillment_orchestrator.infrastructure.database.engine import (
    close_db,
    get_session_factory,
    init_db,
)
from fulfillment_orchestrator.infrastructure.notifications import DatabaseNotificationDispatcher
from fulfillment_orchestrator.infrastructure.redis_client import close_redis, init_redis, sweep_lock
from fulfillment_orchestrator.logging_config import get_logger, setup_logging
from fulfillment_orchestrator.services.reminder_scheduler import ReminderScheduler

logger = get_logger(__name__)


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the pickup reminder sweep.")
    parser.add_argument(
        "--loop",
        action="store_true",
        help="keep running, one sweep every sweep_interval_seconds",
    )
    return parser.parse_args(argv)


async def _build_scheduler() -> ReminderScheduler:
    settings = get_settings()
    lock = None
    try:
        await init_redis()
        lock = sweep_lock()
    except (RedisError, OSError) as exc:
        logger.warning("sweep.lock_unavailable", error=str(exc))

    dispatcher = DatabaseNotificationDispatcher(
        get_session_factory(),
        max_attempts=settings.notification_max_attempts,
    )
    return ReminderScheduler(get_session_factory(), dispatcher, settings=settings, lock=lock)


async def main(argv: list[str] | None = None) -> int:
    """Run the sweep once (or forever with --loop). Returns the exit code."""
    args = _parse_args(argv)
    settings = get_settings()
    setup_logging(log_level=settings.app_log_level, json_logs=not settings.is_development)

    await init_db()
    scheduler = await _build_scheduler()
    exit_code = 0
    try:
        while True:
            try:
                result = await scheduler.sweep()
                logger.info(
                    "sweep.job_finished",
                    closed=result.closed,
                    reminded=result.reminded,
                    failed=result.failed,
                    skipped=result.skipped,
                )
            except SweepFailedError as exc:
                logger.error("sweep.job_failed", error=exc.message)
                exit_code = 1
            if not args.loop:
                break
            await asyncio.sleep(settings.sweep_interval_seconds)
    finally:
        await close_redis()
        await close_db()
    return exit_code


def run() -> None:
    """Console-script entry point."""
    raise SystemExit(asyncio.run(main()))


if __name__ == "__main__":
    run()
