"""Order draft REST API routes.

Routes:
    POST   /api/v1/customers/{customer_id}/drafts                   - Start a draft
    GET    /api/v1/customers/{customer_id}/drafts                   - List drafts
    DELETE /api/v1/customers/{customer_id}/drafts                   - Clear all drafts
    GET    /api/v1/customers/{customer_id}/drafts/{draft_id}        - Get a draft
    DELETE /api/v1/customers/{customer_id}/drafts/{draft_id}        - Delete a draft
    POST   /api/v1/customers/{customer_id}/drafts/{draft_id}/steps  - Add a step
    POST   /api/v1/customers/{customer_id}/drafts/{draft_id}/submit - Turn into an order
"""

from __future__ import annotations

import uuid  # noqa: TC003 - resolved by FastAPI

from fastapi import APIRouter, Depends

from fulfillment_orchestrator.api.deps import get_draft_store, get_lifecycle_manager
from fulfillment_orchestrator.domain.exceptions import OrderValidationError
from fulfillment_orchestrator.logging_config import get_logger
from fulfillment_orchestrator.schemas.drafts import (
    CreateDraftRequest,
    DraftStepInput,
    OrderSession,
    SubmitDraftRequest,
)
from fulfillment_orchestrator.schemas.orders import OrderResponse
from fulfillment_orchestrator.services.draft_store import DraftStore
from fulfillment_orchestrator.services.order_lifecycle import OrderLifecycleManager

router = APIRouter(prefix="/api/v1/customers/{customer_id}/drafts", tags=["Drafts"])
logger = get_logger(__name__)


@router.post("", response_model=OrderSession, status_code=201, summary="Start a draft")
async def create_draft(
    customer_id: uuid.UUID,
    request: CreateDraftRequest,
    store: DraftStore = Depends(get_draft_store),
) -> OrderSession:
    return await store.create(customer_id, title=request.title)


@router.get("", response_model=list[OrderSession], summary="List drafts")
async def list_drafts(
    customer_id: uuid.UUID,
    store: DraftStore = Depends(get_draft_store),
) -> list[OrderSession]:
    """Most recently updated first."""
    return await store.list_drafts(customer_id)


@router.delete("", status_code=204, summary="Clear all drafts")
async def clear_drafts(
    customer_id: uuid.UUID,
    store: DraftStore = Depends(get_draft_store),
) -> None:
    await store.clear(customer_id)


@router.get("/{draft_id}", response_model=OrderSession, summary="Get a draft")
async def get_draft(
    customer_id: uuid.UUID,
    draft_id: uuid.UUID,
    store: DraftStore = Depends(get_draft_store),
) -> OrderSession:
    return await store.get(customer_id, draft_id)


@router.delete("/{draft_id}", status_code=204, summary="Delete a draft")
async def delete_draft(
    customer_id: uuid.UUID,
    draft_id: uuid.UUID,
    store: DraftStore = Depends(get_draft_store),
) -> None:
    await store.delete(customer_id, draft_id)


@router.post("/{draft_id}/steps", response_model=OrderSession, summary="Add a step")
async def add_step(
    customer_id: uuid.UUID,
    draft_id: uuid.UUID,
    request: DraftStepInput,
    store: DraftStore = Depends(get_draft_store),
) -> OrderSession:
    return await store.add_step(customer_id, draft_id, request)


@router.post(
    "/{draft_id}/submit",
    response_model=OrderResponse,
    status_code=201,
    summary="Turn a draft into an order",
)
async def submit_draft(
    customer_id: uuid.UUID,
    draft_id: uuid.UUID,
    request: SubmitDraftRequest,
    store: DraftStore = Depends(get_draft_store),
    manager: OrderLifecycleManager = Depends(get_lifecycle_manager),
) -> OrderResponse:
    """Create an order from every item of the draft's steps, then drop the draft.

    The draft is kept if order creation fails.
    """
    draft = await store.get(customer_id, draft_id)
    items = draft.item_specs()
    if not items:
        raise OrderValidationError("Draft has no items to order", code="EMPTY_DRAFT")

    order = await manager.create_order(customer_id, request.order, items)
    await store.delete(customer_id, draft_id)
    logger.info("draft.submitted", draft_id=str(draft_id), order_id=str(order.id))
    return OrderResponse.model_validate(order)
