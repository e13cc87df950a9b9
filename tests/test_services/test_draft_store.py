"""Tests for Redis-backed order drafts."""

from __future__ import annotations

import uuid
from decimal import Decimal

import pytest
from pydantic import ValidationError

from fulfillment_orchestrator.domain.exceptions import DraftNotFoundError
from fulfillment_orchestrator.schemas.drafts import DraftStepInput, DraftStepItem
from fulfillment_orchestrator.services.draft_store import DraftStore


@pytest.fixture
def store(fake_redis) -> DraftStore:
    return DraftStore(fake_redis, ttl_seconds=3600, max_drafts=3)


def _step(description: str = "Two boxes of dates", **overrides) -> DraftStepInput:
    fields = {
        "merchant_name": "Al Nakheel Market",
        "items": [DraftStepItem(description=description, quantity=2, price=Decimal("12.50"))],
    }
    fields.update(overrides)
    return DraftStepInput(**fields)


class TestCreateAndRead:
    @pytest.mark.asyncio
    async def test_create_then_get(self, store, customer_id) -> None:
        draft = await store.create(customer_id)

        loaded = await store.get(customer_id, draft.id)

        assert loaded.id == draft.id
        assert loaded.title == "Saved order"
        assert loaded.steps == []

    @pytest.mark.asyncio
    async def test_expiry_is_set(self, store, fake_redis, customer_id) -> None:
        await store.create(customer_id)
        assert fake_redis.ttls[f"drafts:{customer_id}"] == 3600

    @pytest.mark.asyncio
    async def test_missing_draft(self, store, customer_id) -> None:
        with pytest.raises(DraftNotFoundError):
            await store.get(customer_id, uuid.uuid4())

    @pytest.mark.asyncio
    async def test_drafts_are_per_customer(self, store, customer_id) -> None:
        draft = await store.create(customer_id)

        with pytest.raises(DraftNotFoundError):
            await store.get(uuid.uuid4(), draft.id)


class TestSteps:
    @pytest.mark.asyncio
    async def test_first_step_names_the_draft(self, store, customer_id) -> None:
        draft = await store.create(customer_id)

        updated = await store.add_step(customer_id, draft.id, _step("Fresh bread"))

        assert len(updated.steps) == 1
        assert updated.title == "Saved order - Fresh bread"
        assert (await store.get(customer_id, draft.id)).title == updated.title

    @pytest.mark.asyncio
    async def test_long_description_truncated_in_title(self, store, customer_id) -> None:
        draft = await store.create(customer_id)

        updated = await store.add_step(
            customer_id, draft.id, _step("A very long description of groceries")
        )

        assert updated.title == "Saved order - A very long descript..."

    @pytest.mark.asyncio
    async def test_explicit_title_kept(self, store, customer_id) -> None:
        draft = await store.create(customer_id, title="Weekend shopping")

        updated = await store.add_step(customer_id, draft.id, _step())

        assert updated.title == "Weekend shopping"

    @pytest.mark.asyncio
    async def test_items_flatten_in_step_order(self, store, customer_id) -> None:
        draft = await store.create(customer_id)
        await store.add_step(customer_id, draft.id, _step("Dates"))
        updated = await store.add_step(
            customer_id,
            draft.id,
            _step(
                merchant_name="Pharmacy",
                items=[DraftStepItem(description="Vitamins", specification="500mg")],
            ),
        )

        specs = updated.item_specs()

        assert [s.free_text_description for s in specs] == ["Dates", "Vitamins (500mg)"]
        assert specs[0].quantity == 2
        assert specs[0].price == Decimal("12.50")

    def test_description_with_specification_must_fit_an_item(self) -> None:
        longest = DraftStepItem(description="x" * 1990, specification="1kg")
        assert len(longest.to_item_spec().free_text_description) == 1996

        with pytest.raises(ValidationError, match="together exceed 2000"):
            DraftStepItem(description="x" * 2000, specification="1kg")


class TestListingAndCleanup:
    @pytest.mark.asyncio
    async def test_list_newest_first(self, store, customer_id) -> None:
        first = await store.create(customer_id)
        second = await store.create(customer_id)
        await store.add_step(customer_id, first.id, _step())

        drafts = await store.list_drafts(customer_id)

        assert [d.id for d in drafts][0] == first.id
        assert {d.id for d in drafts} == {first.id, second.id}

    @pytest.mark.asyncio
    async def test_capped_per_customer(self, store, customer_id) -> None:
        created = [await store.create(customer_id) for _ in range(5)]

        drafts = await store.list_drafts(customer_id)

        assert len(drafts) == 3
        assert created[-1].id in {d.id for d in drafts}

    @pytest.mark.asyncio
    async def test_delete(self, store, customer_id) -> None:
        draft = await store.create(customer_id)

        await store.delete(customer_id, draft.id)

        with pytest.raises(DraftNotFoundError):
            await store.get(customer_id, draft.id)
        with pytest.raises(DraftNotFoundError):
            await store.delete(customer_id, draft.id)

    @pytest.mark.asyncio
    async def test_clear(self, store, customer_id) -> None:
        await store.create(customer_id)
        await store.create(customer_id)

        await store.clear(customer_id)

        assert await store.list_drafts(customer_id) == []
