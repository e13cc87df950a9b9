"""Database-backed NotificationDispatcher.

Writing the notification row is the hand-off: the push service picks records
up from the notifications table and owns delivery from there. Each dispatch
commits in its own session so it can never roll back the order transition
that triggered it.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy.exc import OperationalError
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from fulfillment_orchestrator.infrastructure.database.orm_models import Notification
from fulfillment_orchestrator.infrastructure.database.repositories import (
    NotificationRepository,
)
from fulfillment_orchestrator.logging_config import get_logger

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from fulfillment_orchestrator.domain.notification_protocol import NotificationMessage

logger = get_logger(__name__)


class DatabaseNotificationDispatcher:
    """Persists notifications for the external push service."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        max_attempts: int = 3,
    ) -> None:
        self._session_factory = session_factory
        self._max_attempts = max_attempts

    async def dispatch(self, message: NotificationMessage) -> None:
        """Store the notification, retrying transient database errors."""
        retrying = retry(
            retry=retry_if_exception_type(OperationalError),
            stop=stop_after_attempt(self._max_attempts),
            wait=wait_exponential(multiplier=0.5, min=0.5, max=5),
            reraise=True,
        )
        await retrying(self._store)(message)

    async def _store(self, message: NotificationMessage) -> None:
        async with self._session_factory() as session:
            repo = NotificationRepository(session)
            notification = await repo.create(
                Notification(
                    user_id=message.user_id,
                    order_id=message.order_id,
                    title=message.title,
                    body=message.body,
                    type=message.type.value,
                    data=message.data,
                    dedup_key=message.dedup_key,
                )
            )
            await session.commit()

        logger.info(
            "notification.handed_off",
            notification_id=str(notification.id),
            type=message.type.value,
            user_id=str(message.user_id),
        )
