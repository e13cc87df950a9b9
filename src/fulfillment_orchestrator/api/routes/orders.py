"""Order REST API routes.

Routes:
    POST   /api/v1/orders                                 - Create an order
    GET    /api/v1/orders/{id}                            - Get order details
    GET    /api/v1/customers/{customer_id}/orders         - List a customer's orders
    GET    /api/v1/orders/{id}/escrow                     - Escrow balance and ledger
    POST   /api/v1/orders/{id}/transitions                - Fire a lifecycle event
    POST   /api/v1/orders/{id}/stages/{stage_id}/start    - Begin a stage
    POST   /api/v1/orders/{id}/stages/{stage_id}/complete - Finish a stage
"""

from __future__ import annotations

import uuid  # noqa: TC003 - resolved by FastAPI

from fastapi import APIRouter, Depends

from fulfillment_orchestrator.api.deps import get_lifecycle_manager
from fulfillment_orchestrator.schemas.orders import (
    CreateOrderRequest,
    EscrowBalanceResponse,
    EscrowTransactionResponse,
    OrderResponse,
    TransitionRequest,
)
from fulfillment_orchestrator.services.order_lifecycle import OrderLifecycleManager

router = APIRouter(prefix="/api/v1", tags=["Orders"])


# ---------------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------------


@router.post(
    "/orders",
    response_model=OrderResponse,
    status_code=201,
    summary="Create an order",
)
async def create_order(
    request: CreateOrderRequest,
    manager: OrderLifecycleManager = Depends(get_lifecycle_manager),
) -> OrderResponse:
    """Create an order with its items, stages and escrow hold in one transaction."""
    order = await manager.create_order(request.customer_id, request.order, request.items)
    return OrderResponse.model_validate(order)


# ---------------------------------------------------------------------------
# Read endpoints
# ---------------------------------------------------------------------------


@router.get(
    "/orders/{order_id}",
    response_model=OrderResponse,
    summary="Get order details",
)
async def get_order(
    order_id: uuid.UUID,
    manager: OrderLifecycleManager = Depends(get_lifecycle_manager),
) -> OrderResponse:
    order = await manager.get_order(order_id)
    return OrderResponse.model_validate(order)


@router.get(
    "/customers/{customer_id}/orders",
    response_model=list[OrderResponse],
    summary="List a customer's orders",
)
async def list_orders(
    customer_id: uuid.UUID,
    manager: OrderLifecycleManager = Depends(get_lifecycle_manager),
) -> list[OrderResponse]:
    """Newest first."""
    orders = await manager.list_orders(customer_id)
    return [OrderResponse.model_validate(o) for o in orders]


@router.get(
    "/orders/{order_id}/escrow",
    response_model=EscrowBalanceResponse,
    summary="Get escrow balance and ledger",
)
async def get_escrow(
    order_id: uuid.UUID,
    manager: OrderLifecycleManager = Depends(get_lifecycle_manager),
) -> EscrowBalanceResponse:
    order, balance, transactions = await manager.escrow_summary(order_id)
    return EscrowBalanceResponse(
        order_id=order.id,
        escrow_status=order.escrow_status,
        currency=order.currency,
        held=balance.held,
        released=balance.released,
        refunded=balance.refunded,
        remaining=balance.remaining,
        transactions=[EscrowTransactionResponse.model_validate(t) for t in transactions],
    )


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


@router.post(
    "/orders/{order_id}/transitions",
    response_model=OrderResponse,
    summary="Fire a lifecycle event",
)
async def transition_order(
    order_id: uuid.UUID,
    request: TransitionRequest,
    manager: OrderLifecycleManager = Depends(get_lifecycle_manager),
) -> OrderResponse:
    """Illegal events for the current status are rejected with 409."""
    order = await manager.transition(order_id, request.event)
    return OrderResponse.model_validate(order)


@router.post(
    "/orders/{order_id}/stages/{stage_id}/start",
    response_model=OrderResponse,
    summary="Begin a stage",
)
async def start_stage(
    order_id: uuid.UUID,
    stage_id: uuid.UUID,
    manager: OrderLifecycleManager = Depends(get_lifecycle_manager),
) -> OrderResponse:
    order = await manager.start_stage(order_id, stage_id)
    return OrderResponse.model_validate(order)


@router.post(
    "/orders/{order_id}/stages/{stage_id}/complete",
    response_model=OrderResponse,
    summary="Finish a stage and release its escrow share",
)
async def complete_stage(
    order_id: uuid.UUID,
    stage_id: uuid.UUID,
    manager: OrderLifecycleManager = Depends(get_lifecycle_manager),
) -> OrderResponse:
    order = await manager.complete_stage(order_id, stage_id)
    return OrderResponse.model_validate(order)
