"""Pydantic API schemas."""

from fulfillment_orchestrator.schemas.drafts import (
    CreateDraftRequest,
    DraftStep,
    DraftStepInput,
    DraftStepItem,
    OrderSession,
    SubmitDraftRequest,
)
from fulfillment_orchestrator.schemas.orders import (
    CreateOrderRequest,
    EscrowBalanceResponse,
    EscrowTransactionResponse,
    HealthResponse,
    ItemSpec,
    OrderDraft,
    OrderItemResponse,
    OrderResponse,
    OrderStageResponse,
    OrderTotals,
    SweepResponse,
    TransitionRequest,
)

__all__ = [
    "CreateDraftRequest",
    "DraftStep",
    "DraftStepInput",
    "DraftStepItem",
    "OrderSession",
    "SubmitDraftRequest",
    "CreateOrderRequest",
    "EscrowBalanceResponse",
    "EscrowTransactionResponse",
    "HealthResponse",
    "ItemSpec",
    "OrderDraft",
    "OrderItemResponse",
    "OrderResponse",
    "OrderStageResponse",
    "OrderTotals",
    "SweepResponse",
    "TransitionRequest",
]
