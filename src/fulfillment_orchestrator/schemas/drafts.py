"""Pydantic schemas for in-progress order drafts.

An OrderSession collects the steps a customer has confirmed so far (one per
merchant or errand). It is stored in Redis by DraftStore and turned into a
real order on submit, at which point every step item becomes an ItemSpec.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, Field, model_validator

from fulfillment_orchestrator.domain.clock import utcnow
from fulfillment_orchestrator.schemas.orders import ItemSpec, OrderDraft

DEFAULT_DRAFT_TITLE = "Saved order"
_TITLE_PREVIEW_CHARS = 20
_MAX_DESCRIPTION_CHARS = 2000


class DraftStepItem(BaseModel):
    description: str = Field(..., min_length=1, max_length=_MAX_DESCRIPTION_CHARS)
    quantity: int = Field(default=1, ge=1, le=10_000)
    price: Decimal | None = Field(default=None, ge=0, decimal_places=2)
    specification: str | None = Field(default=None, max_length=500)
    notes: str | None = Field(default=None, max_length=2000)
    type: Literal["catalog", "custom"] = "custom"
    catalog_item_id: uuid.UUID | None = None

    @model_validator(mode="after")
    def _fit_combined_description(self) -> DraftStepItem:
        if len(self._combined_description()) > _MAX_DESCRIPTION_CHARS:
            raise ValueError(
                f"description and specification together exceed {_MAX_DESCRIPTION_CHARS} characters"
            )
        return self

    def _combined_description(self) -> str:
        if self.specification:
            return f"{self.description} ({self.specification})"
        return self.description

    def to_item_spec(self) -> ItemSpec:
        return ItemSpec(
            catalog_item_id=self.catalog_item_id if self.type == "catalog" else None,
            free_text_description=self._combined_description(),
            quantity=self.quantity,
            price=self.price,
            notes=self.notes,
        )


class DraftStepInput(BaseModel):
    """Request body for adding a confirmed step to a draft."""

    merchant_name: str = Field(..., min_length=1, max_length=200)
    merchant_id: uuid.UUID | None = None
    branch_id: uuid.UUID | None = None
    items: list[DraftStepItem] = Field(..., min_length=1)
    delivery_type: str = Field(default="standard", max_length=32)
    is_urgent: bool = False
    estimated_low: Decimal | None = Field(default=None, ge=0)
    estimated_high: Decimal | None = Field(default=None, ge=0)


class DraftStep(DraftStepInput):
    id: uuid.UUID = Field(default_factory=uuid.uuid4)


class OrderSession(BaseModel):
    """A customer's in-progress order."""

    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    customer_id: uuid.UUID
    title: str = DEFAULT_DRAFT_TITLE
    steps: list[DraftStep] = []
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    def item_specs(self) -> list[ItemSpec]:
        """Every item of every step, in step order."""
        return [item.to_item_spec() for step in self.steps for item in step.items]

    def refresh_title(self) -> None:
        """Title the draft after its first item unless it was named explicitly."""
        if self.title != DEFAULT_DRAFT_TITLE or not self.steps:
            return
        description = self.steps[0].items[0].description
        preview = description[:_TITLE_PREVIEW_CHARS]
        if len(description) > _TITLE_PREVIEW_CHARS:
            preview += "..."
        self.title = f"{DEFAULT_DRAFT_TITLE} - {preview}"


class CreateDraftRequest(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=200)


class SubmitDraftRequest(BaseModel):
    """Order fields supplied when a draft is turned into an order."""

    order: OrderDraft
