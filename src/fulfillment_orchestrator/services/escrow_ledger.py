"""Escrow Ledger — fund holds, releases and refunds tied to an order.

Every movement is an append-only EscrowTransaction row. The ledger enforces:
    - amounts are positive,
    - releases/refunds only draw against a completed hold,
    - the held balance never goes negative.

The ledger does not touch the order row; callers set ``escrow_status`` from
the returned balance (see OrderLifecycleManager).
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING

from fulfillment_orchestrator.domain.clock import utcnow
from fulfillment_orchestrator.domain.enums import (
    StageStatus,
    TransactionStatus,
    TransactionType,
)
from fulfillment_orchestrator.domain.escrow import (
    ZERO,
    EscrowBalance,
    stage_share,
    to_money,
)
from fulfillment_orchestrator.domain.exceptions import (
    InvalidAmountError,
    NoActiveHoldError,
    OverReleaseError,
)
from fulfillment_orchestrator.infrastructure.database.orm_models import EscrowTransaction
from fulfillment_orchestrator.infrastructure.database.repositories import (
    EscrowTransactionRepository,
)
from fulfillment_orchestrator.logging_config import get_logger

if TYPE_CHECKING:
    import uuid

    from sqlalchemy.ext.asyncio import AsyncSession

    from fulfillment_orchestrator.infrastructure.database.orm_models import Order, OrderStage

logger = get_logger(__name__)


def _positive_money(amount: Decimal | int | str) -> Decimal:
    try:
        value = to_money(amount)
    except (InvalidOperation, TypeError, ValueError) as err:
        raise InvalidAmountError(amount) from err
    if value <= ZERO:
        raise InvalidAmountError(amount)
    return value


class EscrowLedger:
    """Records escrow movements for orders."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session
        self._tx_repo = EscrowTransactionRepository(session)

    # ------------------------------------------------------------------
    # Hold
    # ------------------------------------------------------------------

    async def place_hold(
        self,
        order_id: uuid.UUID,
        amount: Decimal | int | str,
        currency: str,
        notes: str = "Initial escrow hold on payment",
    ) -> EscrowTransaction:
        """Reserve ``amount`` against the order. The caller marks the order ``held``."""
        value = _positive_money(amount)
        tx = await self._record(order_id, TransactionType.HOLD, value, currency, notes=notes)
        logger.info("escrow.hold_placed", order_id=str(order_id), amount=str(value))
        return tx

    # ------------------------------------------------------------------
    # Release / Refund
    # ------------------------------------------------------------------

    async def release(
        self,
        order_id: uuid.UUID,
        amount: Decimal | int | str,
        currency: str,
        stage_id: uuid.UUID | None = None,
        notes: str = "Stage completion release",
    ) -> EscrowTransaction:
        """Release held funds to the fulfiller."""
        value = await self._checked_draw(order_id, amount)
        tx = await self._record(
            order_id, TransactionType.RELEASE, value, currency, stage_id=stage_id, notes=notes
        )
        logger.info(
            "escrow.released",
            order_id=str(order_id),
            stage_id=str(stage_id) if stage_id else None,
            amount=str(value),
        )
        return tx

    async def refund(
        self,
        order_id: uuid.UUID,
        amount: Decimal | int | str,
        currency: str,
        notes: str = "Refund due to order cancellation",
    ) -> EscrowTransaction:
        """Return held funds to the customer."""
        value = await self._checked_draw(order_id, amount)
        tx = await self._record(order_id, TransactionType.REFUND, value, currency, notes=notes)
        logger.info("escrow.refunded", order_id=str(order_id), amount=str(value))
        return tx

    async def refund_remaining(self, order_id: uuid.UUID, currency: str) -> EscrowTransaction | None:
        """Refund whatever is still held; None when there is nothing to refund."""
        balance = await self.balance(order_id)
        if balance.remaining <= ZERO:
            return None
        return await self.refund(order_id, balance.remaining, currency)

    async def release_for_stage(self, order: Order, stage: OrderStage) -> EscrowTransaction | None:
        """Release the share of the hold that belongs to a completed stage.

        Each stage is released at most once. Returns None when the order has
        no hold or the stage was already released.
        """
        balance = await self.balance(order.id)
        if not balance.has_hold or balance.remaining <= ZERO:
            return None
        if await self._tx_repo.get_release_for_stage(stage.id) is not None:
            logger.info("escrow.stage_already_released", stage_id=str(stage.id))
            return None

        # The stage being completed still counts as open here.
        open_stages = [
            s for s in order.stages
            if s.status not in (StageStatus.COMPLETED.value, StageStatus.CANCELED.value)
            or s.id == stage.id
        ]
        amount = stage_share(balance, len(order.stages), len(open_stages))
        if amount <= ZERO:
            return None
        return await self.release(
            order.id,
            amount,
            order.currency,
            stage_id=stage.id,
            notes=f"Auto-release for {stage.stage_type} stage completion",
        )

    # ------------------------------------------------------------------
    # Read helpers
    # ------------------------------------------------------------------

    async def balance(self, order_id: uuid.UUID) -> EscrowBalance:
        """Sum the completed ledger entries of an order."""
        totals = {tx_type: ZERO for tx_type in TransactionType}
        for tx in await self._tx_repo.list_by_order(order_id):
            if tx.status != TransactionStatus.COMPLETED.value:
                continue
            totals[TransactionType(tx.transaction_type)] += to_money(tx.amount)
        return EscrowBalance(
            held=totals[TransactionType.HOLD],
            released=totals[TransactionType.RELEASE],
            refunded=totals[TransactionType.REFUND],
        )

    async def transactions(self, order_id: uuid.UUID) -> list[EscrowTransaction]:
        return await self._tx_repo.list_by_order(order_id)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _checked_draw(self, order_id: uuid.UUID, amount: Decimal | int | str) -> Decimal:
        value = _positive_money(amount)
        balance = await self.balance(order_id)
        if not balance.has_hold:
            raise NoActiveHoldError(str(order_id))
        if value > balance.remaining:
            raise OverReleaseError(str(order_id), str(value), str(balance.remaining))
        return value

    async def _record(
        self,
        order_id: uuid.UUID,
        tx_type: TransactionType,
        amount: Decimal,
        currency: str,
        stage_id: uuid.UUID | None = None,
        notes: str | None = None,
    ) -> EscrowTransaction:
        return await self._tx_repo.record(
            EscrowTransaction(
                order_id=order_id,
                stage_id=stage_id,
                transaction_type=tx_type.value,
                amount=amount,
                currency=currency,
                status=TransactionStatus.COMPLETED.value,
                completed_at=utcnow(),
                notes=notes,
            )
        )
