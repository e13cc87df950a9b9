"""Domain enumerations for the Fulfillment Orchestrator.

These enums define the canonical states and types used throughout the system.
They are framework-agnostic (no SQLAlchemy, no FastAPI imports).
"""

from __future__ import annotations

import enum


class OrderType(enum.StrEnum):
    """How an order is fulfilled. Drives the stage list (see stage_sequencer.py)."""

    DIRECT_DROPOFF = "DIRECT_DROPOFF"
    PURCHASE_DELIVER = "PURCHASE_DELIVER"
    CHAIN = "CHAIN"
    ONSITE = "ONSITE"

    @classmethod
    def _missing_(cls, value: object) -> OrderType | None:
        # Older clients send the short form.
        if value == "DIRECT":
            return cls.DIRECT_DROPOFF
        return None

    @property
    def requires_acquisition(self) -> bool:
        """Whether a purchase step precedes delivery."""
        return self in (OrderType.PURCHASE_DELIVER, OrderType.CHAIN)


class OrderStatus(enum.StrEnum):
    """Lifecycle states of an order.

    Transitions are enforced by OrderStateMachine (domain/state_machine.py).
    COMPLETED means fulfillment work is done and the order awaits customer
    pickup; the reminder sweep expires it to CANCELED after the close window.
    """

    DRAFT = "draft"
    PAYMENT_PENDING = "payment_pending"
    PAID = "paid"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELED = "canceled"


INITIAL_ORDER_STATUSES = frozenset(
    {OrderStatus.DRAFT, OrderStatus.PAYMENT_PENDING, OrderStatus.PAID}
)


class EscrowStatus(enum.StrEnum):
    """Escrow state summarised on the order row."""

    NONE = "none"
    HELD = "held"
    PARTIAL = "partial"
    RELEASED = "released"
    REFUNDED = "refunded"


class StageType(enum.StrEnum):
    PURCHASE = "purchase"
    PICKUP = "pickup"
    DROPOFF = "dropoff"
    HANDOVER = "handover"
    ONSITE = "onsite"


class StageStatus(enum.StrEnum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELED = "canceled"


class TransactionType(enum.StrEnum):
    """Escrow ledger entry types. Holds add to the balance, the rest draw it down."""

    HOLD = "hold"
    RELEASE = "release"
    REFUND = "refund"


class TransactionStatus(enum.StrEnum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class NotificationType(enum.StrEnum):
    """Closed vocabulary of notification types handed to the dispatcher."""

    PICKUP_REMINDER = "pickup_reminder"
    ORDER_EXPIRED = "order_expired"
    ORDER_STATUS = "order_status"
    STAGE_UPDATE = "stage_update"


class SweepRunStatus(enum.StrEnum):
    """States of a reminder sweep run recorded in the sweep_runs watermark."""

    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
