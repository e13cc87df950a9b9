"""FastAPI dependency injection providers.

These are used with Depends() in route handlers to inject database sessions,
services, the notification dispatcher, and configuration.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession  # noqa: TC002 - resolved by FastAPI

from fulfillment_orchestrator.config import Settings, get_settings
from fulfillment_orchestrator.domain.notification_protocol import NotificationDispatcher
from fulfillment_orchestrator.infrastructure.database.engine import (
    get_async_session,
    get_session_factory,
)
from fulfillment_orchestrator.infrastructure.notifications import DatabaseNotificationDispatcher
from fulfillment_orchestrator.infrastructure.redis_client import get_redis, sweep_lock
from fulfillment_orchestrator.logging_config import get_logger
from fulfillment_orchestrator.services.draft_store import DraftStore
from fulfillment_orchestrator.services.order_lifecycle import OrderLifecycleManager
from fulfillment_orchestrator.services.reminder_scheduler import ReminderScheduler

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from fulfillment_orchestrator.infrastructure.redis_client import RedisLock

logger = get_logger(__name__)


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield an async database session for a request."""
    async for session in get_async_session():
        yield session


def get_app_settings() -> Settings:
    """Provide the application settings."""
    return get_settings()


def get_dispatcher() -> NotificationDispatcher:
    """Provide the notification dispatcher (writes to the notifications table)."""
    settings = get_settings()
    return DatabaseNotificationDispatcher(
        get_session_factory(),
        max_attempts=settings.notification_max_attempts,
    )


async def get_lifecycle_manager(
    session: AsyncSession = Depends(get_db_session),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> OrderLifecycleManager:
    """Provide an OrderLifecycleManager bound to the current session."""
    return OrderLifecycleManager(session, dispatcher=dispatcher)


def _optional_sweep_lock() -> RedisLock | None:
    try:
        return sweep_lock()
    except RuntimeError:
        logger.warning("sweep.lock_unavailable", reason="redis not initialized")
        return None


def get_reminder_scheduler(
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> ReminderScheduler:
    """Provide a ReminderScheduler guarded by the Redis lock when Redis is up."""
    return ReminderScheduler(
        get_session_factory(),
        dispatcher,
        lock=_optional_sweep_lock(),
    )


def get_draft_store() -> DraftStore:
    """Provide the Redis-backed DraftStore."""
    return DraftStore(get_redis())
