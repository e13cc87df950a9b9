"""Shared test fixtures for the Fulfillment Orchestrator test suite.

Provides:
    - An in-memory SQLite database (aiosqlite) with the full schema
    - Session / session-factory fixtures matching the app's session options
    - Factory helpers for order drafts, items and pre-aged orders
    - Recording / failing notification dispatchers and a minimal fake Redis
    - An httpx AsyncClient against the app with those collaborators injected
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta
from decimal import Decimal
from typing import TYPE_CHECKING

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from fulfillment_orchestrator.api.deps import (
    get_db_session,
    get_dispatcher,
    get_draft_store,
    get_reminder_scheduler,
)
from fulfillment_orchestrator.config import Settings
from fulfillment_orchestrator.domain.clock import utcnow
from fulfillment_orchestrator.domain.enums import OrderStatus
from fulfillment_orchestrator.infrastructure.database.engine import make_session_factory
from fulfillment_orchestrator.infrastructure.database.orm_models import Base, Order
from fulfillment_orchestrator.infrastructure.notifications import DatabaseNotificationDispatcher
from fulfillment_orchestrator.main import create_app
from fulfillment_orchestrator.schemas.orders import ItemSpec, OrderDraft, OrderTotals
from fulfillment_orchestrator.services.draft_store import DraftStore
from fulfillment_orchestrator.services.reminder_scheduler import ReminderScheduler

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from fastapi import FastAPI
    from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

    from fulfillment_orchestrator.domain.notification_protocol import NotificationMessage


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


@pytest.fixture
def settings() -> Settings:
    """Settings with the sweep interval guard disabled."""
    return Settings(
        _env_file=None,
        database_url="sqlite+aiosqlite://",
        sweep_min_interval_seconds=0,
    )


# ---------------------------------------------------------------------------
# Database Fixtures
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    """A fresh in-memory database per test, shared across connections."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return make_session_factory(engine)


@pytest_asyncio.fixture
async def session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


# ---------------------------------------------------------------------------
# Domain Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def customer_id() -> uuid.UUID:
    """Return a deterministic UUID for testing."""
    return uuid.UUID("12345678-1234-5678-1234-567812345678")


def make_draft(
    order_type: str = "PURCHASE_DELIVER",
    status: OrderStatus = OrderStatus.PAID,
    total: Decimal | str | None = "150.00",
    **overrides,
) -> OrderDraft:
    """Build a valid order draft with pickup and dropoff locations."""
    fields = {
        "order_type": order_type,
        "status": status,
        "totals": OrderTotals(total=Decimal(total)) if total is not None else None,
        "currency": "SAR",
        "pickup_lat": 24.7136,
        "pickup_lng": 46.6753,
        "pickup_address": "Olaya St, Riyadh",
        "dropoff_lat": 24.7743,
        "dropoff_lng": 46.7386,
        "dropoff_address": "King Fahd Rd, Riyadh",
    }
    fields.update(overrides)
    return OrderDraft(**fields)


def make_items(count: int = 2) -> list[ItemSpec]:
    return [
        ItemSpec(
            free_text_description=f"Item {n}",
            quantity=n,
            price=Decimal("10.00") * n,
        )
        for n in range(1, count + 1)
    ]


async def seed_completed_order(
    session: AsyncSession,
    customer_id: uuid.UUID,
    age: timedelta,
    now: datetime | None = None,
    notes: str | None = None,
) -> Order:
    """Insert an order that has been awaiting pickup for ``age``."""
    now = now or utcnow()
    order = Order(
        customer_id=customer_id,
        order_type="DIRECT_DROPOFF",
        status=OrderStatus.COMPLETED.value,
        escrow_status="released",
        currency="SAR",
        notes=notes,
        created_at=now - age - timedelta(hours=1),
        updated_at=now - age,
    )
    session.add(order)
    await session.commit()
    return order


# ---------------------------------------------------------------------------
# Collaborator Fakes
# ---------------------------------------------------------------------------


class RecordingDispatcher:
    """Keeps every dispatched message in memory."""

    def __init__(self) -> None:
        self.messages: list[NotificationMessage] = []

    async def dispatch(self, message: NotificationMessage) -> None:
        self.messages.append(message)


class FailingDispatcher:
    """Rejects every message."""

    def __init__(self) -> None:
        self.attempts = 0

    async def dispatch(self, message: NotificationMessage) -> None:
        self.attempts += 1
        raise ConnectionError("push service unreachable")


class FakeRedis:
    """The subset of redis.asyncio.Redis used by DraftStore, RedisLock and the health check."""

    def __init__(self) -> None:
        self.data: dict[str, object] = {}
        self.ttls: dict[str, int] = {}

    async def hset(self, key: str, field: str, value: str) -> int:
        bucket = self.data.setdefault(key, {})
        created = field not in bucket
        bucket[field] = value
        return int(created)

    async def hget(self, key: str, field: str) -> str | None:
        return self.data.get(key, {}).get(field)

    async def hgetall(self, key: str) -> dict[str, str]:
        return dict(self.data.get(key, {}))

    async def hdel(self, key: str, *fields: str) -> int:
        bucket = self.data.get(key, {})
        removed = 0
        for field in fields:
            if bucket.pop(field, None) is not None:
                removed += 1
        return removed

    async def delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            if self.data.pop(key, None) is not None:
                removed += 1
            self.ttls.pop(key, None)
        return removed

    async def expire(self, key: str, seconds: int) -> bool:
        self.ttls[key] = seconds
        return key in self.data

    async def set(self, key: str, value: str, nx: bool = False, px: int | None = None) -> bool | None:
        if nx and key in self.data:
            return None
        self.data[key] = value
        if px is not None:
            self.ttls[key] = px // 1000
        return True

    async def get(self, key: str) -> str | None:
        value = self.data.get(key)
        return value if isinstance(value, str) else None

    async def ping(self) -> bool:
        return True

    async def eval(self, script: str, numkeys: int, key: str, token: str) -> int:
        # Only the lock release script is ever evaluated.
        if self.data.get(key) == token:
            del self.data[key]
            return 1
        return 0


@pytest.fixture
def recording_dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


# ---------------------------------------------------------------------------
# HTTP Fixtures
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def app(
    session_factory: async_sessionmaker[AsyncSession],
    settings: Settings,
    recording_dispatcher: RecordingDispatcher,
    fake_redis: FakeRedis,
) -> FastAPI:
    """The application wired to the test database, dispatcher and fake Redis."""
    app = create_app()

    async def _session() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    def _scheduler() -> ReminderScheduler:
        dispatcher = DatabaseNotificationDispatcher(session_factory, max_attempts=1)
        return ReminderScheduler(session_factory, dispatcher, settings=settings)

    app.dependency_overrides[get_db_session] = _session
    app.dependency_overrides[get_dispatcher] = lambda: recording_dispatcher
    app.dependency_overrides[get_reminder_scheduler] = _scheduler
    app.dependency_overrides[get_draft_store] = lambda: DraftStore(fake_redis, ttl_seconds=3600)
    return app


@pytest_asyncio.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
