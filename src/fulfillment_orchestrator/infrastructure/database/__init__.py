"""Database infrastructure — engine, ORM models, and repositories."""

from fulfillment_orchestrator.infrastructure.database.engine import (
    close_db,
    get_async_session,
    get_session_factory,
    init_db,
)
from fulfillment_orchestrator.infrastructure.database.orm_models import (
    Base,
    EscrowTransaction,
    Notification,
    Order,
    OrderItem,
    OrderStage,
    SweepRun,
)
from fulfillment_orchestrator.infrastructure.database.repositories import (
    EscrowTransactionRepository,
    NotificationRepository,
    OrderItemRepository,
    OrderRepository,
    StageRepository,
    SweepRunRepository,
)

__all__ = [
    "Base",
    "EscrowTransaction",
    "Notification",
    "Order",
    "OrderItem",
    "OrderStage",
    "SweepRun",
    "EscrowTransactionRepository",
    "NotificationRepository",
    "OrderItemRepository",
    "OrderRepository",
    "StageRepository",
    "SweepRunRepository",
    "get_async_session",
    "get_session_factory",
    "init_db",
    "close_db",
]
