"""Repository classes for database access.

Repositories encapsulate all SQL queries and provide a clean interface
to the service layer. They accept an AsyncSession and never manage
their own transactions (that's the caller's responsibility).
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, NamedTuple

from sqlalchemy import select

from fulfillment_orchestrator.domain.enums import OrderStatus, SweepRunStatus
from fulfillment_orchestrator.infrastructure.database.orm_models import (
    EscrowTransaction,
    Notification,
    Order,
    OrderItem,
    OrderStage,
    SweepRun,
)

if TYPE_CHECKING:
    import uuid

    from sqlalchemy.ext.asyncio import AsyncSession

    from fulfillment_orchestrator.domain.stage_sequencer import StageSpec


class DueOrder(NamedTuple):
    """Snapshot of an order matched by a sweep window."""

    id: uuid.UUID
    customer_id: uuid.UUID
    updated_at: datetime


class OrderRepository:
    """Data access for orders."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, order: Order) -> Order:
        """Insert a new order and flush so its id is available."""
        self._session.add(order)
        await self._session.flush()
        return order

    async def get_by_id(self, order_id: uuid.UUID, *, reload: bool = False) -> Order | None:
        """Fetch an order (items, stages and transactions are eager-loaded).

        ``reload`` overwrites any state already in the identity map, which is
        how freshly written children become visible on the returned object.
        """
        stmt = select(Order).where(Order.id == order_id)
        if reload:
            stmt = stmt.execution_options(populate_existing=True)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_by_customer(self, customer_id: uuid.UUID) -> list[Order]:
        """Fetch all orders of a customer, newest first."""
        result = await self._session.execute(
            select(Order)
            .where(Order.customer_id == customer_id)
            .order_by(Order.created_at.desc())
        )
        return list(result.scalars().all())

    async def find_due_for_close(self, close_before: datetime) -> list[DueOrder]:
        """Completed orders untouched since ``close_before`` (inclusive)."""
        result = await self._session.execute(
            select(Order.id, Order.customer_id, Order.updated_at)
            .where(Order.status == OrderStatus.COMPLETED.value)
            .where(Order.updated_at <= close_before)
            .order_by(Order.updated_at.asc())
        )
        return [DueOrder(*row) for row in result.all()]

    async def find_due_for_reminder(
        self,
        close_before: datetime,
        remind_before: datetime,
    ) -> list[DueOrder]:
        """Completed orders with ``close_before < updated_at <= remind_before``."""
        result = await self._session.execute(
            select(Order.id, Order.customer_id, Order.updated_at)
            .where(Order.status == OrderStatus.COMPLETED.value)
            .where(Order.updated_at > close_before)
            .where(Order.updated_at <= remind_before)
            .order_by(Order.updated_at.asc())
        )
        return [DueOrder(*row) for row in result.all()]

    async def update_status(self, order: Order, new_status: OrderStatus) -> Order:
        """Update the status of an order (call AFTER state machine validation)."""
        order.status = new_status.value
        await self._session.flush()
        return order


class OrderItemRepository:
    """Data access for order line items."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def add_many(self, items: list[OrderItem]) -> list[OrderItem]:
        """Insert line items (already bound to an order_id)."""
        self._session.add_all(items)
        await self._session.flush()
        return items


class StageRepository:
    """Data access for fulfillment stages."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def add_many(self, order_id: uuid.UUID, specs: list[StageSpec]) -> list[OrderStage]:
        """Insert the stages computed by the stage sequencer."""
        stages = [
            OrderStage(
                order_id=order_id,
                stage_type=spec.stage_type.value,
                sequence_no=spec.sequence_no,
                status=spec.status.value,
                lat=spec.location.lat,
                lng=spec.location.lng,
                address_text=spec.location.address_text,
            )
            for spec in specs
        ]
        self._session.add_all(stages)
        await self._session.flush()
        return stages

    async def list_by_order(self, order_id: uuid.UUID) -> list[OrderStage]:
        result = await self._session.execute(
            select(OrderStage)
            .where(OrderStage.order_id == order_id)
            .order_by(OrderStage.sequence_no.asc())
        )
        return list(result.scalars().all())


class EscrowTransactionRepository:
    """Data access for the append-only escrow ledger."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def record(self, transaction: EscrowTransaction) -> EscrowTransaction:
        """Append a ledger entry. This is the ONLY write operation allowed."""
        self._session.add(transaction)
        await self._session.flush()
        return transaction

    async def list_by_order(self, order_id: uuid.UUID) -> list[EscrowTransaction]:
        """Fetch all ledger entries of an order in chronological order."""
        result = await self._session.execute(
            select(EscrowTransaction)
            .where(EscrowTransaction.order_id == order_id)
            .order_by(EscrowTransaction.created_at.asc())
        )
        return list(result.scalars().all())

    async def get_release_for_stage(self, stage_id: uuid.UUID) -> EscrowTransaction | None:
        result = await self._session.execute(
            select(EscrowTransaction)
            .where(EscrowTransaction.stage_id == stage_id)
            .where(EscrowTransaction.transaction_type == "release")
        )
        return result.scalars().first()


class NotificationRepository:
    """Data access for notification records."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, notification: Notification) -> Notification:
        self._session.add(notification)
        await self._session.flush()
        return notification

    async def exists_by_dedup_key(self, dedup_key: str) -> bool:
        result = await self._session.execute(
            select(Notification.id).where(Notification.dedup_key == dedup_key)
        )
        return result.first() is not None

    async def list_by_user(self, user_id: uuid.UUID) -> list[Notification]:
        result = await self._session.execute(
            select(Notification)
            .where(Notification.user_id == user_id)
            .order_by(Notification.created_at.desc())
        )
        return list(result.scalars().all())

    async def list_by_order(self, order_id: uuid.UUID) -> list[Notification]:
        result = await self._session.execute(
            select(Notification)
            .where(Notification.order_id == order_id)
            .order_by(Notification.created_at.asc())
        )
        return list(result.scalars().all())


class SweepRunRepository:
    """Data access for the sweep watermark."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def latest(self) -> SweepRun | None:
        """The most recently started run."""
        result = await self._session.execute(
            select(SweepRun).order_by(SweepRun.started_at.desc()).limit(1)
        )
        return result.scalar_one_or_none()

    async def latest_succeeded(self) -> SweepRun | None:
        result = await self._session.execute(
            select(SweepRun)
            .where(SweepRun.status == SweepRunStatus.SUCCEEDED.value)
            .order_by(SweepRun.started_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def start(self, started_at: datetime) -> SweepRun:
        run = SweepRun(started_at=started_at, status=SweepRunStatus.RUNNING.value)
        self._session.add(run)
        await self._session.flush()
        return run

    async def get_by_id(self, run_id: uuid.UUID) -> SweepRun | None:
        result = await self._session.execute(select(SweepRun).where(SweepRun.id == run_id))
        return result.scalar_one_or_none()
