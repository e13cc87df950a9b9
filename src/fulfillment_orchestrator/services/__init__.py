"""Application services."""

from fulfillment_orchestrator.services.draft_store import DraftStore
from fulfillment_orchestrator.services.escrow_ledger import EscrowLedger
from fulfillment_orchestrator.services.order_lifecycle import OrderLifecycleManager
from fulfillment_orchestrator.services.reminder_scheduler import ReminderScheduler, SweepResult

__all__ = [
    "DraftStore",
    "EscrowLedger",
    "OrderLifecycleManager",
    "ReminderScheduler",
    "SweepResult",
]
