"""Notification Dispatcher Protocol.

Defines the interface the reminder sweep hands notifications to. Delivery to
subscriber endpoints is the push service's job; once ``dispatch`` returns, the
notification is out of the orchestrator's hands.

This is a Protocol (structural subtyping) so dispatchers don't need to inherit
from a base class; they just need to match the shape.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

from fulfillment_orchestrator.domain.enums import NotificationType


@dataclass(frozen=True)
class NotificationMessage:
    """A notification handed to the dispatcher.

    Attributes:
        user_id: Recipient.
        title: Short headline.
        body: Message text.
        type: One of the NotificationType vocabulary.
        data: Structured payload, e.g. ``{"order_id": ..., "days_left": 3}``.
        order_id: The order this is about, if any.
        dedup_key: When set, at most one notification with this key is stored.
    """

    user_id: uuid.UUID
    title: str
    body: str
    type: NotificationType
    data: dict = field(default_factory=dict)
    order_id: uuid.UUID | None = None
    dedup_key: str | None = None


@runtime_checkable
class NotificationDispatcher(Protocol):
    """Protocol that all notification dispatchers must satisfy.

    Concrete implementations:
        - infrastructure/notifications.py (DatabaseNotificationDispatcher)
    """

    async def dispatch(self, message: NotificationMessage) -> None:
        """Hand a notification off for delivery.

        Raises:
            Exception: Any failure; callers log it and carry on.
        """
        ...
