"""Reminder Scheduler — the periodic pickup-reminder / auto-close sweep.

One sweep:
    1. Takes the optional Redis lock and consults the ``sweep_runs``
       watermark; overlapping or too-frequent runs are skipped.
    2. Computes both time windows from a single ``now`` and loads the due
       orders (closing window first, reminder window second).
    3. Processes every order in its own session. A close is committed before
       its notification is handed off, and a closed order counts as closed even
       if that notification fails. Any other failure on one order is logged
       and counted, never propagated.
    4. Records the outcome on the run row. If every attempted order failed
       the sweep raises SweepFailedError.

Reminders carry a dedup key per (order, days_left), so even a sweep that
bypasses the guard cannot remind the same order twice for the same day.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

import structlog

from fulfillment_orchestrator.config import get_settings
from fulfillment_orchestrator.domain.clock import ensure_utc, utcnow
from fulfillment_orchestrator.domain.enums import SweepRunStatus
from fulfillment_orchestrator.domain.exceptions import (
    InvalidStateTransitionError,
    SweepFailedError,
)
from fulfillment_orchestrator.domain.reminder_policy import ReminderPolicy
from fulfillment_orchestrator.infrastructure.database.repositories import (
    NotificationRepository,
    OrderRepository,
    SweepRunRepository,
)
from fulfillment_orchestrator.logging_config import get_logger
from fulfillment_orchestrator.services import notification_messages
from fulfillment_orchestrator.services.order_lifecycle import OrderLifecycleManager

if TYPE_CHECKING:
    import uuid

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from fulfillment_orchestrator.config import Settings
    from fulfillment_orchestrator.domain.notification_protocol import NotificationDispatcher
    from fulfillment_orchestrator.infrastructure.database.repositories import DueOrder
    from fulfillment_orchestrator.infrastructure.redis_client import RedisLock

logger = get_logger(__name__)

# Per-order outcomes
_DONE = "done"
_SKIPPED = "skipped"
_FAILED = "failed"


@dataclass(frozen=True)
class SweepResult:
    closed: int = 0
    reminded: int = 0
    failed: int = 0
    skipped: bool = False
    reason: str | None = None


class ReminderScheduler:
    """Runs pickup-reminder sweeps over orders awaiting pickup."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        dispatcher: NotificationDispatcher,
        policy: ReminderPolicy | None = None,
        settings: Settings | None = None,
        lock: RedisLock | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._dispatcher = dispatcher
        self._settings = settings or get_settings()
        self._policy = policy or ReminderPolicy.from_settings(self._settings)
        self._lock = lock

    @property
    def policy(self) -> ReminderPolicy:
        return self._policy

    async def sweep(self, now: datetime | None = None) -> SweepResult:
        """Run one sweep as of ``now`` (defaults to the current time).

        Raises:
            SweepFailedError: Orders were due and every one of them failed.
        """
        now = ensure_utc(now) if now is not None else utcnow()

        if self._lock is not None and not await self._lock.acquire():
            logger.info("sweep.skipped", reason="locked", lock_key=self._lock.key)
            return SweepResult(skipped=True, reason="locked")
        try:
            return await self._run(now)
        finally:
            if self._lock is not None:
                await self._lock.release()

    # ------------------------------------------------------------------
    # Watermark
    # ------------------------------------------------------------------

    async def _run(self, now: datetime) -> SweepResult:
        run_id, reason = await self._start_run(now)
        if run_id is None:
            logger.info("sweep.skipped", reason=reason)
            return SweepResult(skipped=True, reason=reason)

        with structlog.contextvars.bound_contextvars(sweep_run_id=str(run_id)):
            try:
                closed, reminded, failed = await self._process(now)
            except Exception:
                await self._finish_run(run_id, now, SweepRunStatus.FAILED, 0, 0, 0)
                raise

        attempted = closed + reminded + failed
        if attempted and failed == attempted:
            await self._finish_run(run_id, now, SweepRunStatus.FAILED, closed, reminded, failed)
            logger.error("sweep.failed", failed=failed)
            raise SweepFailedError(failed)

        await self._finish_run(run_id, now, SweepRunStatus.SUCCEEDED, closed, reminded, failed)
        logger.info("sweep.completed", closed=closed, reminded=reminded, failed=failed)
        return SweepResult(closed=closed, reminded=reminded, failed=failed)

    async def _start_run(self, now: datetime) -> tuple[uuid.UUID | None, str | None]:
        """Record a new running sweep, or return the reason it must not start."""
        stale_after = timedelta(seconds=self._settings.sweep_stale_after_seconds)
        min_interval = timedelta(seconds=self._settings.sweep_min_interval_seconds)

        async with self._session_factory() as session:
            repo = SweepRunRepository(session)

            latest = await repo.latest()
            if latest is not None and latest.status == SweepRunStatus.RUNNING.value:
                if now - ensure_utc(latest.started_at) < stale_after:
                    return None, "running"
                latest.status = SweepRunStatus.FAILED.value
                latest.finished_at = now
                logger.warning("sweep.stale_run_abandoned", run_id=str(latest.id))

            last_ok = await repo.latest_succeeded()
            if last_ok is not None and now - ensure_utc(last_ok.started_at) < min_interval:
                await session.commit()
                return None, "too_soon"

            run = await repo.start(now)
            await session.commit()
            return run.id, None

    async def _finish_run(
        self,
        run_id: uuid.UUID,
        now: datetime,
        status: SweepRunStatus,
        closed: int,
        reminded: int,
        failed: int,
    ) -> None:
        async with self._session_factory() as session:
            run = await SweepRunRepository(session).get_by_id(run_id)
            if run is None:
                return
            run.status = status.value
            run.finished_at = max(now, utcnow())
            run.closed = closed
            run.reminded = reminded
            run.failed = failed
            await session.commit()

    # ------------------------------------------------------------------
    # Order processing
    # ------------------------------------------------------------------

    async def _process(self, now: datetime) -> tuple[int, int, int]:
        windows = self._policy.windows(now)
        async with self._session_factory() as session:
            repo = OrderRepository(session)
            due_close = await repo.find_due_for_close(windows.close_before)
            due_remind = await repo.find_due_for_reminder(
                windows.close_before, windows.remind_before
            )

        logger.info(
            "sweep.started",
            due_close=len(due_close),
            due_remind=len(due_remind),
            now=now.isoformat(),
        )

        closed = reminded = failed = 0
        for due in due_close:
            try:
                outcome = await self._close(due)
            except Exception:
                logger.exception("sweep.order_failed", order_id=str(due.id), action="close")
                outcome = _FAILED
            if outcome == _DONE:
                closed += 1
            elif outcome == _FAILED:
                failed += 1

        for due in due_remind:
            try:
                outcome = await self._remind(due, now)
            except Exception:
                logger.exception("sweep.order_failed", order_id=str(due.id), action="remind")
                outcome = _FAILED
            if outcome == _DONE:
                reminded += 1
            elif outcome == _FAILED:
                failed += 1

        return closed, reminded, failed

    async def _close(self, due: DueOrder) -> str:
        note = f"Auto-closed after {self._policy.close_after_days} days"
        async with self._session_factory() as session:
            manager = OrderLifecycleManager(session, settings=self._settings)
            try:
                await manager.expire_order(due.id, note)
            except InvalidStateTransitionError:
                # Picked up or closed since the due list was loaded.
                logger.info("sweep.order_skipped", order_id=str(due.id), action="close")
                return _SKIPPED

        # The close is committed; a lost notification does not undo it.
        try:
            await self._dispatcher.dispatch(
                notification_messages.order_expired(
                    due.id, due.customer_id, self._policy.close_after_days
                )
            )
        except Exception:
            logger.exception(
                "notification.dispatch_failed",
                order_id=str(due.id),
                type="order_expired",
            )
        logger.info("sweep.order_closed", order_id=str(due.id))
        return _DONE

    async def _remind(self, due: DueOrder, now: datetime) -> str:
        days_left = self._policy.days_left(due.updated_at, now)
        message = notification_messages.pickup_reminder(due.id, due.customer_id, days_left)

        async with self._session_factory() as session:
            if await NotificationRepository(session).exists_by_dedup_key(message.dedup_key):
                logger.info(
                    "sweep.reminder_already_sent",
                    order_id=str(due.id),
                    days_left=days_left,
                )
                return _SKIPPED

        await self._dispatcher.dispatch(message)
        logger.info("sweep.order_reminded", order_id=str(due.id), days_left=days_left)
        return _DONE
