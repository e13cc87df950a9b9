"""Pydantic schemas for the Orders API.

These schemas define the request/response shapes for the REST API and the
order draft submission flow. They are separate from the ORM models to
maintain clean boundaries between the API and database layers.
"""

from __future__ import annotations

import uuid  # noqa: TC003 - pydantic resolves annotations at runtime
from datetime import datetime  # noqa: TC003
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from fulfillment_orchestrator.domain.enums import INITIAL_ORDER_STATUSES, OrderStatus

# ---------------------------------------------------------------------------
# Shared value objects
# ---------------------------------------------------------------------------


class OrderTotals(BaseModel):
    """Amount breakdown of an order. Unknown keys are rejected."""

    model_config = ConfigDict(extra="forbid")

    subtotal: Decimal | None = Field(default=None, ge=0, decimal_places=2)
    delivery_fee: Decimal | None = Field(default=None, ge=0, decimal_places=2)
    service_fee: Decimal | None = Field(default=None, ge=0, decimal_places=2)
    discount: Decimal | None = Field(default=None, ge=0, decimal_places=2)
    total: Decimal | None = Field(
        default=None,
        ge=0,
        decimal_places=2,
        description="Amount held in escrow once the order leaves draft",
    )

    @property
    def holdable_total(self) -> Decimal | None:
        """The total when it is present and positive, else None."""
        if self.total is None or self.total <= 0:
            return None
        return self.total


# ---------------------------------------------------------------------------
# Request Schemas
# ---------------------------------------------------------------------------


class ItemSpec(BaseModel):
    """A line item: a catalog reference or a free-text description."""

    catalog_item_id: uuid.UUID | None = None
    free_text_description: str | None = Field(default=None, min_length=1, max_length=2000)
    quantity: int = Field(default=1, ge=1, le=10_000)
    price: Decimal | None = Field(default=None, ge=0, decimal_places=2)
    unit: str | None = Field(default=None, max_length=32)
    notes: str | None = Field(default=None, max_length=2000)

    @model_validator(mode="after")
    def _require_reference(self) -> ItemSpec:
        if self.catalog_item_id is None and not self.free_text_description:
            raise ValueError("an item needs catalog_item_id or free_text_description")
        return self


class OrderDraft(BaseModel):
    """The order half of a creation request.

    ``order_type`` is kept as a raw string here; the stage sequencer owns the
    list of recognized types and rejects unknown ones before anything is
    written.
    """

    order_type: str = Field(
        ...,
        min_length=1,
        max_length=32,
        examples=["PURCHASE_DELIVER"],
    )
    status: OrderStatus = Field(
        default=OrderStatus.DRAFT,
        description="Initial status: draft, payment_pending or paid",
    )
    totals: OrderTotals | None = None
    currency: str | None = Field(
        default=None,
        min_length=3,
        max_length=3,
        description="ISO 4217 code; the service default applies when omitted",
    )
    pickup_lat: float | None = Field(default=None, ge=-90, le=90)
    pickup_lng: float | None = Field(default=None, ge=-180, le=180)
    pickup_address: str | None = Field(default=None, max_length=1000)
    dropoff_lat: float | None = Field(default=None, ge=-90, le=90)
    dropoff_lng: float | None = Field(default=None, ge=-180, le=180)
    dropoff_address: str | None = Field(default=None, max_length=1000)
    notes: str | None = Field(default=None, max_length=5000)

    @field_validator("status")
    @classmethod
    def _initial_status_only(cls, value: OrderStatus) -> OrderStatus:
        if value not in INITIAL_ORDER_STATUSES:
            allowed = ", ".join(sorted(s.value for s in INITIAL_ORDER_STATUSES))
            raise ValueError(f"orders can only be created as one of: {allowed}")
        return value

    @field_validator("currency")
    @classmethod
    def _upper_currency(cls, value: str | None) -> str | None:
        return value.upper() if value else value


class CreateOrderRequest(BaseModel):
    """Request body for creating an order with its line items."""

    customer_id: uuid.UUID
    order: OrderDraft
    items: list[ItemSpec] = Field(..., min_length=1, max_length=200)


class TransitionRequest(BaseModel):
    """Request body for firing a lifecycle event on an order."""

    event: str = Field(
        ...,
        description="submit, confirm_payment, start_fulfillment, complete or cancel",
        examples=["confirm_payment"],
    )


# ---------------------------------------------------------------------------
# Response Schemas
# ---------------------------------------------------------------------------


class OrderItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    catalog_item_id: uuid.UUID | None
    free_text_description: str | None
    quantity: int
    price: Decimal | None
    unit: str | None
    notes: str | None


class OrderStageResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    stage_type: str
    sequence_no: int
    status: str
    lat: float | None
    lng: float | None
    address_text: str | None
    started_at: datetime | None
    completed_at: datetime | None


class EscrowTransactionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    stage_id: uuid.UUID | None
    transaction_type: str
    amount: Decimal
    currency: str
    status: str
    notes: str | None
    created_at: datetime
    completed_at: datetime | None


class OrderResponse(BaseModel):
    """Response schema for an order with its items, stages and ledger entries."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    customer_id: uuid.UUID
    order_type: str
    status: str
    escrow_status: str
    totals: dict | None
    currency: str
    pickup_lat: float | None
    pickup_lng: float | None
    pickup_address: str | None
    dropoff_lat: float | None
    dropoff_lng: float | None
    dropoff_address: str | None
    notes: str | None
    created_at: datetime
    updated_at: datetime
    items: list[OrderItemResponse] = []
    stages: list[OrderStageResponse] = []
    escrow_transactions: list[EscrowTransactionResponse] = []


class EscrowBalanceResponse(BaseModel):
    """Escrow summary of one order."""

    order_id: uuid.UUID
    escrow_status: str
    currency: str
    held: Decimal
    released: Decimal
    refunded: Decimal
    remaining: Decimal
    transactions: list[EscrowTransactionResponse]


class SweepResponse(BaseModel):
    """Counts from one reminder sweep."""

    closed: int
    reminded: int
    failed: int = 0
    skipped: bool = False
    reason: str | None = None


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    version: str = "0.1.0"
    database: str = "unknown"
    redis: str = "unknown"
