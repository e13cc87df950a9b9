"""Tests for the order lifecycle manager.

These tests verify that:
    1. create_order persists items, stages and the escrow hold together.
    2. Holds are only placed for non-draft orders with a positive total.
    3. A failed write leaves nothing behind.
    4. Lifecycle events and stage progress keep status and escrow in step.
"""

from __future__ import annotations

import uuid
from decimal import Decimal

import pytest
from conftest import FailingDispatcher, make_draft, make_items
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError

from fulfillment_orchestrator.domain.enums import OrderStatus
from fulfillment_orchestrator.domain.exceptions import (
    InvalidOrderTypeError,
    InvalidStateTransitionError,
    OrderCreationFailedError,
    OrderNotFoundError,
    OrderValidationError,
    StageNotFoundError,
    StageOutOfSequenceError,
)
from fulfillment_orchestrator.infrastructure.database.orm_models import (
    EscrowTransaction,
    Order,
    OrderItem,
    OrderStage,
)
from fulfillment_orchestrator.infrastructure.database.repositories import StageRepository
from fulfillment_orchestrator.services.escrow_ledger import EscrowLedger
from fulfillment_orchestrator.services.order_lifecycle import OrderLifecycleManager


async def _count(session, model) -> int:
    return await session.scalar(select(func.count()).select_from(model))


async def _row_counts(session) -> tuple[int, int, int, int]:
    return (
        await _count(session, Order),
        await _count(session, OrderItem),
        await _count(session, OrderStage),
        await _count(session, EscrowTransaction),
    )


@pytest.fixture
def manager(session, settings, recording_dispatcher) -> OrderLifecycleManager:
    return OrderLifecycleManager(session, dispatcher=recording_dispatcher, settings=settings)


# ---------------------------------------------------------------------------
# Creation
# ---------------------------------------------------------------------------


class TestCreateOrder:
    @pytest.mark.asyncio
    async def test_purchase_deliver_with_two_items(self, manager, customer_id) -> None:
        """Two items, PURCHASE_DELIVER, total 150."""
        order = await manager.create_order(customer_id, make_draft(), make_items(2))

        assert order.customer_id == customer_id
        assert len(order.items) == 2
        assert [(s.stage_type, s.sequence_no) for s in order.stages] == [
            ("purchase", 1),
            ("dropoff", 2),
        ]
        assert [s.status for s in order.stages] == ["pending", "pending"]
        assert len(order.escrow_transactions) == 1
        hold = order.escrow_transactions[0]
        assert hold.transaction_type == "hold"
        assert hold.status == "completed"
        assert hold.amount == Decimal("150.00")
        assert order.escrow_status == "held"

    @pytest.mark.asyncio
    async def test_stage_locations_follow_draft(self, manager, customer_id) -> None:
        order = await manager.create_order(customer_id, make_draft(), make_items(1))

        purchase, dropoff = order.stages
        assert purchase.address_text == "Olaya St, Riyadh"
        assert dropoff.address_text == "King Fahd Rd, Riyadh"

    @pytest.mark.asyncio
    async def test_direct_alias_stored_canonically(self, manager, customer_id) -> None:
        order = await manager.create_order(
            customer_id, make_draft(order_type="DIRECT"), make_items(1)
        )

        assert order.order_type == "DIRECT_DROPOFF"
        assert [s.stage_type for s in order.stages] == ["dropoff"]

    @pytest.mark.asyncio
    async def test_default_currency(self, manager, customer_id, settings) -> None:
        order = await manager.create_order(
            customer_id, make_draft(currency=None), make_items(1)
        )
        assert order.currency == settings.default_currency

    @pytest.mark.asyncio
    async def test_unknown_type_writes_nothing(self, manager, session, customer_id) -> None:
        with pytest.raises(InvalidOrderTypeError):
            await manager.create_order(
                customer_id, make_draft(order_type="TELEPORT"), make_items(1)
            )
        assert await _row_counts(session) == (0, 0, 0, 0)

    @pytest.mark.asyncio
    async def test_items_required(self, manager, customer_id) -> None:
        with pytest.raises(OrderValidationError):
            await manager.create_order(customer_id, make_draft(), [])


class TestHoldRules:
    @pytest.mark.asyncio
    async def test_draft_never_holds(self, manager, customer_id) -> None:
        order = await manager.create_order(
            customer_id, make_draft(status=OrderStatus.DRAFT), make_items(1)
        )
        assert order.escrow_transactions == []
        assert order.escrow_status == "none"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("total", [None, "0.00"])
    async def test_absent_or_zero_total_never_holds(self, manager, customer_id, total) -> None:
        order = await manager.create_order(
            customer_id, make_draft(total=total), make_items(1)
        )
        assert order.escrow_transactions == []
        assert order.escrow_status == "none"

    @pytest.mark.asyncio
    async def test_payment_pending_holds(self, manager, customer_id) -> None:
        order = await manager.create_order(
            customer_id,
            make_draft(status=OrderStatus.PAYMENT_PENDING, total="42.50"),
            make_items(1),
        )
        assert [t.amount for t in order.escrow_transactions] == [Decimal("42.50")]
        assert order.escrow_status == "held"


class TestAtomicity:
    @pytest.mark.asyncio
    async def test_stage_failure_rolls_back_everything(
        self, manager, session, customer_id, monkeypatch
    ) -> None:
        async def _fail(self, order_id, specs):
            raise SQLAlchemyError("stage insert failed")

        monkeypatch.setattr(StageRepository, "add_many", _fail)

        with pytest.raises(OrderCreationFailedError) as exc_info:
            await manager.create_order(customer_id, make_draft(), make_items(2))

        assert isinstance(exc_info.value.cause, SQLAlchemyError)
        assert await _row_counts(session) == (0, 0, 0, 0)

    @pytest.mark.asyncio
    async def test_hold_failure_rolls_back_everything(
        self, manager, session, customer_id, monkeypatch
    ) -> None:
        async def _fail(self, order_id, amount, currency, notes=""):
            raise SQLAlchemyError("ledger unavailable")

        monkeypatch.setattr(EscrowLedger, "place_hold", _fail)

        with pytest.raises(OrderCreationFailedError):
            await manager.create_order(customer_id, make_draft(), make_items(2))

        assert await _row_counts(session) == (0, 0, 0, 0)

    @pytest.mark.asyncio
    async def test_session_usable_after_failure(
        self, manager, session, customer_id, monkeypatch
    ) -> None:
        original = StageRepository.add_many
        calls = {"n": 0}

        async def _fail_once(self, order_id, specs):
            calls["n"] += 1
            if calls["n"] == 1:
                raise SQLAlchemyError("transient")
            return await original(self, order_id, specs)

        monkeypatch.setattr(StageRepository, "add_many", _fail_once)

        with pytest.raises(OrderCreationFailedError):
            await manager.create_order(customer_id, make_draft(), make_items(1))
        order = await manager.create_order(customer_id, make_draft(), make_items(1))

        assert await _row_counts(session) == (1, 1, 2, 1)
        assert order.escrow_status == "held"


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


class TestQueries:
    @pytest.mark.asyncio
    async def test_get_missing_order(self, manager) -> None:
        with pytest.raises(OrderNotFoundError):
            await manager.get_order(uuid.uuid4())

    @pytest.mark.asyncio
    async def test_list_orders_by_customer(self, manager, customer_id) -> None:
        await manager.create_order(customer_id, make_draft(), make_items(1))
        await manager.create_order(customer_id, make_draft(), make_items(1))
        await manager.create_order(uuid.uuid4(), make_draft(), make_items(1))

        orders = await manager.list_orders(customer_id)
        assert len(orders) == 2
        assert all(o.customer_id == customer_id for o in orders)


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------


class TestTransitions:
    @pytest.mark.asyncio
    async def test_submit_places_hold(self, manager, customer_id) -> None:
        order = await manager.create_order(
            customer_id, make_draft(status=OrderStatus.DRAFT), make_items(1)
        )

        order = await manager.transition(order.id, "submit")

        assert order.status == "payment_pending"
        assert order.escrow_status == "held"
        assert [t.amount for t in order.escrow_transactions] == [Decimal("150.00")]

    @pytest.mark.asyncio
    async def test_full_lifecycle_through_events(
        self, manager, session, customer_id, recording_dispatcher
    ) -> None:
        order = await manager.create_order(
            customer_id, make_draft(status=OrderStatus.DRAFT), make_items(1)
        )

        statuses = []
        for event in ("submit", "confirm_payment", "start_fulfillment", "complete"):
            order = await manager.transition(order.id, event)
            statuses.append(order.status)

        assert statuses == ["payment_pending", "paid", "in_progress", "completed"]
        assert [m.data["status"] for m in recording_dispatcher.messages] == statuses
        persisted = await session.scalar(select(Order.status).where(Order.id == order.id))
        assert persisted == "completed"

    @pytest.mark.asyncio
    async def test_confirm_payment_notifies(
        self, manager, customer_id, recording_dispatcher
    ) -> None:
        order = await manager.create_order(
            customer_id, make_draft(status=OrderStatus.PAYMENT_PENDING), make_items(1)
        )

        order = await manager.transition(order.id, "confirm_payment")

        assert order.status == "paid"
        assert len(recording_dispatcher.messages) == 1
        message = recording_dispatcher.messages[0]
        assert message.type == "order_status"
        assert message.user_id == customer_id
        assert message.data["status"] == "paid"
        assert message.data["previous_status"] == "payment_pending"

    @pytest.mark.asyncio
    async def test_cancel_refunds_and_cancels_stages(self, manager, customer_id) -> None:
        order = await manager.create_order(customer_id, make_draft(), make_items(1))

        order = await manager.transition(order.id, "cancel")

        assert order.status == "canceled"
        assert order.escrow_status == "refunded"
        assert {s.status for s in order.stages} == {"canceled"}
        refunds = [t for t in order.escrow_transactions if t.transaction_type == "refund"]
        assert [t.amount for t in refunds] == [Decimal("150.00")]

    @pytest.mark.asyncio
    async def test_illegal_event_rejected(self, manager, customer_id) -> None:
        order = await manager.create_order(customer_id, make_draft(), make_items(1))

        with pytest.raises(InvalidStateTransitionError):
            await manager.transition(order.id, "submit")

    @pytest.mark.asyncio
    async def test_expire_is_not_public(self, manager, session, customer_id) -> None:
        order = await manager.create_order(customer_id, make_draft(), make_items(1))
        order.status = "completed"
        await session.commit()

        with pytest.raises(InvalidStateTransitionError):
            await manager.transition(order.id, "expire")

    @pytest.mark.asyncio
    async def test_complete_finishes_open_stages(self, manager, customer_id) -> None:
        order = await manager.create_order(customer_id, make_draft(), make_items(1))
        await manager.transition(order.id, "start_fulfillment")

        order = await manager.transition(order.id, "complete")

        assert order.status == "completed"
        assert {s.status for s in order.stages} == {"completed"}
        assert order.escrow_status == "released"

    @pytest.mark.asyncio
    async def test_dispatch_failure_keeps_transition(self, session, settings, customer_id) -> None:
        manager = OrderLifecycleManager(session, dispatcher=FailingDispatcher(), settings=settings)
        order = await manager.create_order(
            customer_id, make_draft(status=OrderStatus.PAYMENT_PENDING), make_items(1)
        )

        await manager.transition(order.id, "confirm_payment")

        reloaded = await manager.get_order(order.id)
        assert reloaded.status == "paid"


# ---------------------------------------------------------------------------
# Stages
# ---------------------------------------------------------------------------


class TestStageProgress:
    @pytest.mark.asyncio
    async def test_stages_release_escrow_in_sequence(self, manager, customer_id) -> None:
        order = await manager.create_order(customer_id, make_draft(), make_items(2))
        purchase, dropoff = order.stages

        order = await manager.start_stage(order.id, purchase.id)
        assert order.status == "in_progress"
        assert order.stages[0].status == "in_progress"
        assert order.stages[0].started_at is not None

        order = await manager.complete_stage(order.id, purchase.id)
        assert order.status == "in_progress"
        assert order.escrow_status == "partial"

        await manager.start_stage(order.id, dropoff.id)
        order = await manager.complete_stage(order.id, dropoff.id)

        assert order.status == "completed"
        assert order.escrow_status == "released"
        releases = [t for t in order.escrow_transactions if t.transaction_type == "release"]
        assert [t.amount for t in releases] == [Decimal("75.00"), Decimal("75.00")]
        assert {t.stage_id for t in releases} == {purchase.id, dropoff.id}

    @pytest.mark.asyncio
    async def test_later_stage_cannot_start_first(self, manager, customer_id) -> None:
        order = await manager.create_order(customer_id, make_draft(), make_items(1))
        _, dropoff = order.stages

        with pytest.raises(StageOutOfSequenceError) as exc_info:
            await manager.start_stage(order.id, dropoff.id)
        assert exc_info.value.blocking_sequence_no == 1

    @pytest.mark.asyncio
    async def test_pending_stage_cannot_complete(self, manager, customer_id) -> None:
        order = await manager.create_order(customer_id, make_draft(), make_items(1))
        purchase, dropoff = order.stages
        await manager.start_stage(order.id, purchase.id)

        with pytest.raises(InvalidStateTransitionError):
            await manager.complete_stage(order.id, dropoff.id)

    @pytest.mark.asyncio
    async def test_unpaid_order_cannot_start(self, manager, customer_id) -> None:
        order = await manager.create_order(
            customer_id, make_draft(status=OrderStatus.DRAFT), make_items(1)
        )

        with pytest.raises(InvalidStateTransitionError):
            await manager.start_stage(order.id, order.stages[0].id)

    @pytest.mark.asyncio
    async def test_unknown_stage(self, manager, customer_id) -> None:
        order = await manager.create_order(customer_id, make_draft(), make_items(1))

        with pytest.raises(StageNotFoundError):
            await manager.start_stage(order.id, uuid.uuid4())

    @pytest.mark.asyncio
    async def test_stage_updates_notify(self, manager, customer_id, recording_dispatcher) -> None:
        order = await manager.create_order(
            customer_id, make_draft(order_type="DIRECT_DROPOFF"), make_items(1)
        )
        stage = order.stages[0]

        await manager.start_stage(order.id, stage.id)
        await manager.complete_stage(order.id, stage.id)

        types = [m.type for m in recording_dispatcher.messages]
        assert types == ["stage_update", "order_status", "stage_update", "order_status"]
        assert recording_dispatcher.messages[-1].data["status"] == "completed"
