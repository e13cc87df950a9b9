"""Draft Store — Redis persistence for in-progress orders.

Each customer has one Redis hash, ``drafts:{customer_id}``, mapping draft id
to the JSON of an OrderSession. The hash expires ``ttl_seconds`` after the
last write, and only the ``max_drafts`` most recently updated drafts are
kept.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from fulfillment_orchestrator.config import get_settings
from fulfillment_orchestrator.domain.clock import utcnow
from fulfillment_orchestrator.domain.exceptions import DraftNotFoundError
from fulfillment_orchestrator.logging_config import get_logger
from fulfillment_orchestrator.schemas.drafts import (
    DEFAULT_DRAFT_TITLE,
    DraftStep,
    OrderSession,
)

if TYPE_CHECKING:
    import uuid

    import redis.asyncio as aioredis

    from fulfillment_orchestrator.schemas.drafts import DraftStepInput

logger = get_logger(__name__)


def _drafts_key(customer_id: uuid.UUID) -> str:
    return f"drafts:{customer_id}"


class DraftStore:
    """Create, read and clear order drafts."""

    def __init__(
        self,
        redis: aioredis.Redis,
        ttl_seconds: int | None = None,
        max_drafts: int | None = None,
    ) -> None:
        settings = get_settings()
        self._redis = redis
        self._ttl_seconds = ttl_seconds or settings.draft_ttl_seconds
        self._max_drafts = max_drafts or settings.max_drafts_per_customer

    async def create(self, customer_id: uuid.UUID, title: str | None = None) -> OrderSession:
        draft = OrderSession(customer_id=customer_id, title=title or DEFAULT_DRAFT_TITLE)
        await self._save(draft)
        logger.info("draft.created", customer_id=str(customer_id), draft_id=str(draft.id))
        return draft

    async def get(self, customer_id: uuid.UUID, draft_id: uuid.UUID) -> OrderSession:
        raw = await self._redis.hget(_drafts_key(customer_id), str(draft_id))
        if raw is None:
            raise DraftNotFoundError(str(draft_id))
        return OrderSession.model_validate_json(raw)

    async def list_drafts(self, customer_id: uuid.UUID) -> list[OrderSession]:
        """All drafts of a customer, most recently updated first."""
        raw = await self._redis.hgetall(_drafts_key(customer_id))
        drafts = [OrderSession.model_validate_json(value) for value in raw.values()]
        drafts.sort(key=lambda d: d.updated_at, reverse=True)
        return drafts

    async def add_step(
        self,
        customer_id: uuid.UUID,
        draft_id: uuid.UUID,
        step: DraftStepInput,
    ) -> OrderSession:
        draft = await self.get(customer_id, draft_id)
        draft.steps.append(DraftStep(**step.model_dump()))
        draft.refresh_title()
        draft.updated_at = utcnow()
        await self._save(draft)
        logger.info(
            "draft.step_added",
            customer_id=str(customer_id),
            draft_id=str(draft_id),
            steps=len(draft.steps),
        )
        return draft

    async def delete(self, customer_id: uuid.UUID, draft_id: uuid.UUID) -> None:
        removed = await self._redis.hdel(_drafts_key(customer_id), str(draft_id))
        if not removed:
            raise DraftNotFoundError(str(draft_id))
        logger.info("draft.deleted", customer_id=str(customer_id), draft_id=str(draft_id))

    async def clear(self, customer_id: uuid.UUID) -> None:
        await self._redis.delete(_drafts_key(customer_id))
        logger.info("draft.cleared", customer_id=str(customer_id))

    async def _save(self, draft: OrderSession) -> None:
        key = _drafts_key(draft.customer_id)
        await self._redis.hset(key, str(draft.id), draft.model_dump_json())
        await self._redis.expire(key, self._ttl_seconds)
        await self._trim(draft)

    async def _trim(self, saved: OrderSession) -> None:
        customer_id = saved.customer_id
        # The draft just written always survives, even on updated_at ties.
        others = [d for d in await self.list_drafts(customer_id) if d.id != saved.id]
        stale = others[self._max_drafts - 1 :]
        if stale:
            await self._redis.hdel(_drafts_key(customer_id), *(str(d.id) for d in stale))
            logger.info("draft.trimmed", customer_id=str(customer_id), removed=len(stale))
