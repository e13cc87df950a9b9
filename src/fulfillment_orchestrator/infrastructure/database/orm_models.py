"""SQLAlchemy 2.0 ORM models for the Fulfillment Orchestrator.

Tables:
    1. orders             : The aggregate root.
    2. order_items        : Line items, created atomically with the order.
    3. order_stages       : Ordered fulfillment stages (contiguous sequence_no).
    4. escrow_transactions: Append-only escrow ledger (hold / release / refund).
    5. notifications      : Write-once notification hand-off records.
    6. sweep_runs         : Watermark of reminder sweep executions.

Design decisions:
    - UUIDs as primary keys.
    - Decimal for money (no floating point rounding errors).
    - JSON columns (JSONB on PostgreSQL) for totals and notification payloads.
    - CHECK constraints mirror the domain enums at DB level.
    - Child rows cascade-delete with their order; nothing outlives the aggregate.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from decimal import Decimal  # noqa: TC003 - needed at runtime by SQLAlchemy Mapped[]

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

JSONType = JSON().with_variant(JSONB(), "postgresql")


def _now() -> datetime:
    return datetime.now(UTC)


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


# ---------------------------------------------------------------------------
# 1. orders
# ---------------------------------------------------------------------------
class Order(Base):
    """A customer order: the aggregate root for items, stages and escrow."""

    __tablename__ = "orders"

    # --- Primary Key ---
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    # --- Ownership & Type ---
    customer_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        nullable=False,
        comment="The customer who placed the order",
    )
    order_type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        comment="OrderType enum value; drives the stage list",
    )

    # --- Status ---
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="draft",
        comment="Lifecycle state (guarded by OrderStateMachine)",
    )
    escrow_status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="none",
        comment="Summary of the escrow ledger for this order",
    )

    # --- Financials ---
    totals: Mapped[dict | None] = mapped_column(
        JSONType,
        nullable=True,
        default=None,
        comment='Validated OrderTotals breakdown, e.g. {"total": "150.00"}',
    )
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="SAR")

    # --- Locations ---
    pickup_lat: Mapped[float | None] = mapped_column(Float, nullable=True)
    pickup_lng: Mapped[float | None] = mapped_column(Float, nullable=True)
    pickup_address: Mapped[str | None] = mapped_column(Text, nullable=True)
    dropoff_lat: Mapped[float | None] = mapped_column(Float, nullable=True)
    dropoff_lng: Mapped[float | None] = mapped_column(Float, nullable=True)
    dropoff_address: Mapped[str | None] = mapped_column(Text, nullable=True)

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    # --- Timestamps ---
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_now,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_now,
        onupdate=_now,
        comment="Drives the pickup reminder / auto-close windows",
    )

    # --- Relationships ---
    items: Mapped[list[OrderItem]] = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.created_at.asc()",
        lazy="selectin",
    )
    stages: Mapped[list[OrderStage]] = relationship(
        "OrderStage",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderStage.sequence_no.asc()",
        lazy="selectin",
    )
    escrow_transactions: Mapped[list[EscrowTransaction]] = relationship(
        "EscrowTransaction",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="EscrowTransaction.created_at.asc()",
        lazy="selectin",
    )

    # --- Table Constraints & Indexes ---
    __table_args__ = (
        CheckConstraint(
            "status IN ('draft', 'payment_pending', 'paid', 'in_progress', "
            "'completed', 'canceled')",
            name="ck_order_valid_status",
        ),
        CheckConstraint(
            "escrow_status IN ('none', 'held', 'partial', 'released', 'refunded')",
            name="ck_order_valid_escrow_status",
        ),
        Index("idx_order_customer", "customer_id"),
        Index("idx_order_status_updated", "status", "updated_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<Order id={self.id} type={self.order_type} status={self.status} "
            f"escrow={self.escrow_status}>"
        )


# ---------------------------------------------------------------------------
# 2. order_items
# ---------------------------------------------------------------------------
class OrderItem(Base):
    """A line item of an order (catalog reference or free text)."""

    __tablename__ = "order_items"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    order_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
    )

    catalog_item_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    free_text_description: Mapped[str | None] = mapped_column(Text, nullable=True)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    price: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    unit: Mapped[str | None] = mapped_column(String(32), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_now,
    )

    order: Mapped[Order] = relationship("Order", back_populates="items")

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_item_positive_quantity"),
        CheckConstraint(
            "catalog_item_id IS NOT NULL OR free_text_description IS NOT NULL",
            name="ck_item_has_reference",
        ),
        Index("idx_item_order", "order_id"),
    )

    def __repr__(self) -> str:
        return f"<OrderItem id={self.id} order={self.order_id} qty={self.quantity}>"


# ---------------------------------------------------------------------------
# 3. order_stages
# ---------------------------------------------------------------------------
class OrderStage(Base):
    """One ordered unit of fulfillment work within an order."""

    __tablename__ = "order_stages"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    order_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
    )

    stage_type: Mapped[str] = mapped_column(String(20), nullable=False)
    sequence_no: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        comment="1-based, contiguous within an order",
    )
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")

    lat: Mapped[float | None] = mapped_column(Float, nullable=True)
    lng: Mapped[float | None] = mapped_column(Float, nullable=True)
    address_text: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_now,
    )
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    order: Mapped[Order] = relationship("Order", back_populates="stages")

    __table_args__ = (
        UniqueConstraint("order_id", "sequence_no", name="uq_stage_order_sequence"),
        CheckConstraint("sequence_no >= 1", name="ck_stage_sequence_positive"),
        CheckConstraint(
            "stage_type IN ('purchase', 'pickup', 'dropoff', 'handover', 'onsite')",
            name="ck_stage_valid_type",
        ),
        CheckConstraint(
            "status IN ('pending', 'in_progress', 'completed', 'canceled')",
            name="ck_stage_valid_status",
        ),
        Index("idx_stage_order", "order_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<OrderStage id={self.id} #{self.sequence_no} {self.stage_type} "
            f"status={self.status}>"
        )


# ---------------------------------------------------------------------------
# 4. escrow_transactions (Append-Only Ledger)
# ---------------------------------------------------------------------------
class EscrowTransaction(Base):
    """An escrow ledger entry. Rows are never updated once completed."""

    __tablename__ = "escrow_transactions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    order_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
    )
    stage_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        ForeignKey("order_stages.id", ondelete="SET NULL"),
        nullable=True,
        comment="Stage whose completion triggered a release",
    )

    transaction_type: Mapped[str] = mapped_column(String(10), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    status: Mapped[str] = mapped_column(String(10), nullable=False, default="pending")
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_now,
    )
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    order: Mapped[Order] = relationship("Order", back_populates="escrow_transactions")

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_escrow_tx_positive_amount"),
        CheckConstraint(
            "transaction_type IN ('hold', 'release', 'refund')",
            name="ck_escrow_tx_valid_type",
        ),
        CheckConstraint(
            "status IN ('pending', 'completed', 'failed')",
            name="ck_escrow_tx_valid_status",
        ),
        Index("idx_escrow_tx_order", "order_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<EscrowTransaction id={self.id} {self.transaction_type} "
            f"{self.amount} {self.currency} status={self.status}>"
        )


# ---------------------------------------------------------------------------
# 5. notifications
# ---------------------------------------------------------------------------
class Notification(Base):
    """A notification handed off for delivery. Write-once."""

    __tablename__ = "notifications"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    order_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        nullable=True,
        comment="Denormalized from data.order_id; no FK so history survives the order",
    )

    title: Mapped[str] = mapped_column(String(200), nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False)
    type: Mapped[str] = mapped_column(String(32), nullable=False)
    data: Mapped[dict | None] = mapped_column(JSONType, nullable=True, default=None)
    dedup_key: Mapped[str | None] = mapped_column(
        String(128),
        nullable=True,
        unique=True,
        comment="At most one notification per key (e.g. one reminder per day left)",
    )
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_now,
    )

    __table_args__ = (
        Index("idx_notification_user", "user_id"),
        Index("idx_notification_order", "order_id"),
    )

    def __repr__(self) -> str:
        return f"<Notification id={self.id} type={self.type} user={self.user_id}>"


# ---------------------------------------------------------------------------
# 6. sweep_runs (Sweep Watermark)
# ---------------------------------------------------------------------------
class SweepRun(Base):
    """One execution of the reminder sweep, consulted before the next run starts."""

    __tablename__ = "sweep_runs"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    finished_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    status: Mapped[str] = mapped_column(String(10), nullable=False, default="running")

    closed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    reminded: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    failed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (
        CheckConstraint(
            "status IN ('running', 'succeeded', 'failed')",
            name="ck_sweep_run_valid_status",
        ),
        Index("idx_sweep_run_started_at", "started_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<SweepRun id={self.id} status={self.status} "
            f"closed={self.closed} reminded={self.reminded}>"
        )
