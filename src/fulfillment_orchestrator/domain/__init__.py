"""Domain layer — pure business logic with zero framework dependencies."""

from fulfillment_orchestrator.domain.enums import (
    EscrowStatus,
    NotificationType,
    OrderStatus,
    OrderType,
    StageStatus,
    StageType,
    TransactionType,
)
from fulfillment_orchestrator.domain.exceptions import (
    InvalidStateTransitionError,
    OrchestratorError,
    OrderNotFoundError,
)
from fulfillment_orchestrator.domain.notification_protocol import (
    NotificationDispatcher,
    NotificationMessage,
)
from fulfillment_orchestrator.domain.reminder_policy import ReminderPolicy, SweepAction
from fulfillment_orchestrator.domain.stage_sequencer import (
    Location,
    StageSpec,
    compute_stages,
)
from fulfillment_orchestrator.domain.state_machine import (
    OrderStateMachine,
    StageStateMachine,
    fire_transition,
)

__all__ = [
    "EscrowStatus",
    "NotificationType",
    "OrderStatus",
    "OrderType",
    "StageStatus",
    "StageType",
    "TransactionType",
    "InvalidStateTransitionError",
    "OrchestratorError",
    "OrderNotFoundError",
    "NotificationDispatcher",
    "NotificationMessage",
    "ReminderPolicy",
    "SweepAction",
    "Location",
    "StageSpec",
    "compute_stages",
    "OrderStateMachine",
    "StageStateMachine",
    "fire_transition",
]
