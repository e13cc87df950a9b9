"""Escrow balance arithmetic.

Amounts are Decimals quantized to cents. A balance is derived from the
completed ledger entries of one order; it never goes negative because the
ledger refuses any draw larger than ``remaining``.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_DOWN, Decimal

from fulfillment_orchestrator.domain.enums import EscrowStatus

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_money(value: Decimal | int | str) -> Decimal:
    return Decimal(value).quantize(CENT)


@dataclass(frozen=True)
class EscrowBalance:
    held: Decimal = ZERO
    released: Decimal = ZERO
    refunded: Decimal = ZERO

    @property
    def remaining(self) -> Decimal:
        return self.held - self.released - self.refunded

    @property
    def has_hold(self) -> bool:
        return self.held > ZERO

    def status(self) -> EscrowStatus:
        """Summarise the balance as the order's escrow_status."""
        if not self.has_hold:
            return EscrowStatus.NONE
        if self.remaining == self.held:
            return EscrowStatus.HELD
        if self.remaining > ZERO:
            return EscrowStatus.PARTIAL
        if self.refunded > ZERO:
            return EscrowStatus.REFUNDED
        return EscrowStatus.RELEASED


def stage_share(balance: EscrowBalance, stage_count: int, open_stage_count: int) -> Decimal:
    """Amount to release when one more stage completes.

    Each stage releases an equal share of the held amount, rounded down to the
    cent. The last open stage releases whatever is left.
    """
    if stage_count <= 0 or open_stage_count <= 0:
        return ZERO
    if open_stage_count == 1:
        return balance.remaining
    share = (balance.held / stage_count).quantize(CENT, rounding=ROUND_DOWN)
    return min(share, balance.remaining)
