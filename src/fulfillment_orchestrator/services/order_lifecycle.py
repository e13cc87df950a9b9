"""Order Lifecycle Manager — creation and state changes of the Order aggregate.

This is the application layer that coordinates between:
    - Stage sequencer (which stages an order gets)
    - Domain state machines (transition guards)
    - Escrow ledger (holds, per-stage releases, refunds)
    - Repositories (data access)

Every public operation owns its database transaction: it commits once the
aggregate is consistent and only then hands status notifications to the
dispatcher, so a notification can never announce a change that was rolled
back. Both the REST routes and the reminder sweep call into this service.
"""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy.exc import SQLAlchemyError

from fulfillment_orchestrator.config import get_settings
from fulfillment_orchestrator.domain.clock import utcnow
from fulfillment_orchestrator.domain.enums import (
    INITIAL_ORDER_STATUSES,
    EscrowStatus,
    OrderStatus,
    StageStatus,
)
from fulfillment_orchestrator.domain.exceptions import (
    InvalidStateTransitionError,
    OrchestratorError,
    OrderCreationFailedError,
    OrderNotFoundError,
    OrderValidationError,
    StageNotFoundError,
    StageOutOfSequenceError,
)
from fulfillment_orchestrator.domain.stage_sequencer import (
    Location,
    compute_stages,
    parse_order_type,
)
from fulfillment_orchestrator.domain.state_machine import (
    OrderStateMachine,
    StageStateMachine,
    fire_transition,
)
from fulfillment_orchestrator.infrastructure.database.orm_models import Order, OrderItem
from fulfillment_orchestrator.infrastructure.database.repositories import (
    OrderItemRepository,
    OrderRepository,
    StageRepository,
)
from fulfillment_orchestrator.logging_config import get_logger
from fulfillment_orchestrator.services import notification_messages
from fulfillment_orchestrator.services.escrow_ledger import EscrowLedger

if TYPE_CHECKING:
    import uuid

    from sqlalchemy.ext.asyncio import AsyncSession

    from fulfillment_orchestrator.config import Settings
    from fulfillment_orchestrator.domain.escrow import EscrowBalance
    from fulfillment_orchestrator.domain.notification_protocol import (
        NotificationDispatcher,
        NotificationMessage,
    )
    from fulfillment_orchestrator.infrastructure.database.orm_models import (
        EscrowTransaction,
        OrderStage,
    )
    from fulfillment_orchestrator.schemas.orders import ItemSpec, OrderDraft

logger = get_logger(__name__)

# Events callers may fire directly. ``expire`` belongs to the reminder sweep.
PUBLIC_ORDER_EVENTS = frozenset(OrderStateMachine.EVENTS) - {"expire"}

_OPEN_STAGE_STATUSES = (StageStatus.PENDING.value, StageStatus.IN_PROGRESS.value)


def _location(lat: float | None, lng: float | None, address: str | None) -> Location | None:
    if lat is None and lng is None and address is None:
        return None
    return Location(lat=lat, lng=lng, address_text=address)


class OrderLifecycleManager:
    """Manages the order lifecycle."""

    def __init__(
        self,
        session: AsyncSession,
        dispatcher: NotificationDispatcher | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._session = session
        self._dispatcher = dispatcher
        self._settings = settings or get_settings()
        self._order_repo = OrderRepository(session)
        self._item_repo = OrderItemRepository(session)
        self._stage_repo = StageRepository(session)
        self._ledger = EscrowLedger(session)

    # ------------------------------------------------------------------
    # Order Creation
    # ------------------------------------------------------------------

    async def create_order(
        self,
        customer_id: uuid.UUID,
        draft: OrderDraft,
        items: list[ItemSpec],
    ) -> Order:
        """Create an order with its items, stages and (when due) its escrow hold.

        Validation happens before the first write. The order, items, stages
        and hold are then written in one transaction; on any failure the
        transaction is rolled back and nothing from the attempt persists.

        Raises:
            OrderValidationError: Bad input (no items, unknown order type,
                status that is not a valid starting point).
            OrderCreationFailedError: A write failed; the cause is attached.
        """
        if not items:
            raise OrderValidationError("An order needs at least one item", code="NO_ITEMS")
        if draft.status not in INITIAL_ORDER_STATUSES:
            raise OrderValidationError(
                f"Orders cannot be created in status '{draft.status}'",
                code="INVALID_INITIAL_STATUS",
            )

        order_type = parse_order_type(draft.order_type)
        pickup = _location(draft.pickup_lat, draft.pickup_lng, draft.pickup_address)
        dropoff = _location(draft.dropoff_lat, draft.dropoff_lng, draft.dropoff_address)
        stage_specs = compute_stages(order_type, pickup, dropoff or Location())

        currency = draft.currency or self._settings.default_currency
        hold_amount = None
        if draft.status != OrderStatus.DRAFT and draft.totals is not None:
            hold_amount = draft.totals.holdable_total

        try:
            order = await self._order_repo.create(
                Order(
                    customer_id=customer_id,
                    order_type=order_type.value,
                    status=draft.status.value,
                    escrow_status=EscrowStatus.NONE.value,
                    totals=(
                        draft.totals.model_dump(mode="json", exclude_none=True)
                        if draft.totals is not None
                        else None
                    ),
                    currency=currency,
                    pickup_lat=draft.pickup_lat,
                    pickup_lng=draft.pickup_lng,
                    pickup_address=draft.pickup_address,
                    dropoff_lat=draft.dropoff_lat,
                    dropoff_lng=draft.dropoff_lng,
                    dropoff_address=draft.dropoff_address,
                    notes=draft.notes,
                )
            )
            order_id = order.id

            await self._item_repo.add_many(
                [
                    OrderItem(
                        order_id=order_id,
                        catalog_item_id=item.catalog_item_id,
                        free_text_description=item.free_text_description,
                        quantity=item.quantity,
                        price=item.price,
                        unit=item.unit,
                        notes=item.notes,
                    )
                    for item in items
                ]
            )
            await self._stage_repo.add_many(order_id, stage_specs)

            if hold_amount is not None:
                await self._ledger.place_hold(order_id, hold_amount, currency)
                order.escrow_status = EscrowStatus.HELD.value
                await self._session.flush()

            await self._session.commit()
        except (SQLAlchemyError, OrchestratorError) as err:
            await self._session.rollback()
            logger.error(
                "order.create_failed",
                customer_id=str(customer_id),
                order_type=order_type.value,
                error=str(err),
            )
            raise OrderCreationFailedError(err) from err

        created = await self._order_repo.get_by_id(order_id, reload=True)
        logger.info(
            "order.created",
            order_id=str(order_id),
            order_type=order_type.value,
            status=created.status,
            items=len(items),
            stages=len(stage_specs),
            escrow_status=created.escrow_status,
        )
        return created

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_order(self, order_id: uuid.UUID) -> Order:
        return await self._get_order_or_raise(order_id)

    async def list_orders(self, customer_id: uuid.UUID) -> list[Order]:
        return await self._order_repo.list_by_customer(customer_id)

    async def escrow_summary(
        self, order_id: uuid.UUID
    ) -> tuple[Order, EscrowBalance, list[EscrowTransaction]]:
        """The order with its ledger balance and entries."""
        order = await self._get_order_or_raise(order_id)
        balance = await self._ledger.balance(order_id)
        transactions = await self._ledger.transactions(order_id)
        return order, balance, transactions

    # ------------------------------------------------------------------
    # Order Transitions
    # ------------------------------------------------------------------

    async def transition(self, order_id: uuid.UUID, event: str) -> Order:
        """Fire a lifecycle event on an order.

        ``submit`` places the escrow hold if the order has none and a positive
        total. ``complete`` finishes every open stage first. ``cancel``
        cancels the open stages and refunds what is still held.
        """
        order = await self._get_order_or_raise(order_id)
        if event not in PUBLIC_ORDER_EVENTS:
            raise InvalidStateTransitionError(order.status, event)

        previous = order.status
        new_status = fire_transition(OrderStateMachine, previous, event)

        if event == "submit":
            await self._hold_on_submit(order)
        elif event == "complete":
            for stage in self._open_stages(order):
                if stage.status == StageStatus.PENDING.value:
                    self._apply_stage_event(stage, "begin")
                await self._finish_stage(order, stage)
        elif event == "cancel":
            for stage in self._open_stages(order):
                self._apply_stage_event(stage, "cancel")
            await self._ledger.refund_remaining(order.id, order.currency)
            await self._sync_escrow_status(order)

        await self._order_repo.update_status(order, OrderStatus(new_status))
        await self._session.commit()

        order = await self._order_repo.get_by_id(order_id, reload=True)
        logger.info(
            "order.transitioned",
            order_id=str(order_id),
            lifecycle_event=event,
            old_status=previous,
            new_status=new_status,
        )
        await self._notify(notification_messages.order_status(order, previous))
        return order

    async def expire_order(self, order_id: uuid.UUID, note: str) -> Order:
        """Close an order that was never picked up. Escrow is left untouched.

        ``note`` is appended to the order's notes.
        """
        order = await self._get_order_or_raise(order_id)
        previous = order.status
        new_status = fire_transition(OrderStateMachine, previous, "expire")

        order.notes = f"{order.notes}\n{note}" if order.notes else note
        await self._order_repo.update_status(order, OrderStatus(new_status))
        await self._session.commit()

        logger.info("order.expired", order_id=str(order_id), old_status=previous)
        return order

    # ------------------------------------------------------------------
    # Stage Progress
    # ------------------------------------------------------------------

    async def start_stage(self, order_id: uuid.UUID, stage_id: uuid.UUID) -> Order:
        """Begin a stage. Every earlier stage must already be completed.

        Starting the first stage of a ``paid`` order moves it to ``in_progress``.
        """
        order = await self._get_order_or_raise(order_id)
        stage = self._get_stage_or_raise(order, stage_id)

        previous = order.status
        new_order_status = None
        if previous == OrderStatus.PAID.value:
            new_order_status = fire_transition(OrderStateMachine, previous, "start_fulfillment")
        elif previous != OrderStatus.IN_PROGRESS.value:
            raise InvalidStateTransitionError(previous, "start_stage")

        for earlier in order.stages:
            if earlier.sequence_no >= stage.sequence_no:
                break
            if earlier.status != StageStatus.COMPLETED.value:
                raise StageOutOfSequenceError(str(stage_id), earlier.sequence_no)

        self._apply_stage_event(stage, "begin")
        if new_order_status is not None:
            await self._order_repo.update_status(order, OrderStatus(new_order_status))
        await self._session.flush()
        await self._session.commit()

        logger.info(
            "order.stage_started",
            order_id=str(order_id),
            stage_id=str(stage_id),
            sequence_no=stage.sequence_no,
        )
        order = await self._order_repo.get_by_id(order_id, reload=True)
        stage = self._get_stage_or_raise(order, stage_id)
        await self._notify(notification_messages.stage_update(order, stage))
        if new_order_status is not None:
            await self._notify(notification_messages.order_status(order, previous))
        return order

    async def complete_stage(self, order_id: uuid.UUID, stage_id: uuid.UUID) -> Order:
        """Finish a stage and release its share of the escrow.

        Completing the last open stage moves the order to ``completed``.
        """
        order = await self._get_order_or_raise(order_id)
        stage = self._get_stage_or_raise(order, stage_id)
        if order.status != OrderStatus.IN_PROGRESS.value:
            raise InvalidStateTransitionError(order.status, "complete_stage")

        previous = order.status
        await self._finish_stage(order, stage)

        order_completed = not self._open_stages(order)
        if order_completed:
            new_status = fire_transition(OrderStateMachine, previous, "complete")
            await self._order_repo.update_status(order, OrderStatus(new_status))
        await self._session.commit()

        logger.info(
            "order.stage_completed",
            order_id=str(order_id),
            stage_id=str(stage_id),
            order_completed=order_completed,
        )
        order = await self._order_repo.get_by_id(order_id, reload=True)
        stage = self._get_stage_or_raise(order, stage_id)
        await self._notify(notification_messages.stage_update(order, stage))
        if order_completed:
            await self._notify(notification_messages.order_status(order, previous))
        return order

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _get_order_or_raise(self, order_id: uuid.UUID) -> Order:
        order = await self._order_repo.get_by_id(order_id)
        if order is None:
            raise OrderNotFoundError(str(order_id))
        return order

    @staticmethod
    def _get_stage_or_raise(order: Order, stage_id: uuid.UUID) -> OrderStage:
        for stage in order.stages:
            if stage.id == stage_id:
                return stage
        raise StageNotFoundError(str(order.id), str(stage_id))

    @staticmethod
    def _open_stages(order: Order) -> list[OrderStage]:
        return [s for s in order.stages if s.status in _OPEN_STAGE_STATUSES]

    @staticmethod
    def _apply_stage_event(stage: OrderStage, event: str) -> None:
        stage.status = fire_transition(StageStateMachine, stage.status, event)
        if event == "begin":
            stage.started_at = utcnow()
        elif event == "finish":
            stage.completed_at = utcnow()

    async def _finish_stage(self, order: Order, stage: OrderStage) -> None:
        self._apply_stage_event(stage, "finish")
        await self._session.flush()
        await self._ledger.release_for_stage(order, stage)
        await self._sync_escrow_status(order)

    async def _hold_on_submit(self, order: Order) -> None:
        balance = await self._ledger.balance(order.id)
        if balance.has_hold:
            return
        total = (order.totals or {}).get("total")
        if total is None or Decimal(str(total)) <= 0:
            return
        await self._ledger.place_hold(order.id, Decimal(str(total)), order.currency)
        order.escrow_status = EscrowStatus.HELD.value

    async def _sync_escrow_status(self, order: Order) -> None:
        balance = await self._ledger.balance(order.id)
        order.escrow_status = balance.status().value
        await self._session.flush()

    async def _notify(self, message: NotificationMessage) -> None:
        """Hand a notification off. Failures are logged; the change is already committed."""
        if self._dispatcher is None:
            return
        try:
            await self._dispatcher.dispatch(message)
        except Exception:
            logger.exception(
                "notification.dispatch_failed",
                order_id=str(message.order_id),
                type=message.type.value,
            )
