"""Builders for the notifications the orchestrator hands to the dispatcher."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fulfillment_orchestrator.domain.enums import NotificationType, OrderStatus, StageStatus
from fulfillment_orchestrator.domain.notification_protocol import NotificationMessage

if TYPE_CHECKING:
    import uuid

    from fulfillment_orchestrator.infrastructure.database.orm_models import Order, OrderStage

_STATUS_TEXT: dict[str, tuple[str, str]] = {
    OrderStatus.DRAFT: ("Order Created", "Your order has been created and is being prepared."),
    OrderStatus.PAYMENT_PENDING: ("Awaiting Payment", "Please complete your payment to proceed."),
    OrderStatus.PAID: (
        "Payment Confirmed",
        "Your payment was successful. We will start working on your order.",
    ),
    OrderStatus.IN_PROGRESS: ("Order In Progress", "Your order is now being processed."),
    OrderStatus.COMPLETED: (
        "Order Completed",
        "Your order has been completed and is ready for pickup.",
    ),
    OrderStatus.CANCELED: ("Order Canceled", "Your order has been canceled."),
}

_STAGE_LABELS = {
    "purchase": "Purchase",
    "pickup": "Pickup",
    "dropoff": "Delivery",
    "handover": "Handover",
    "onsite": "On-site",
}


def pickup_reminder_dedup_key(order_id: uuid.UUID, days_left: int) -> str:
    return f"{NotificationType.PICKUP_REMINDER}:{order_id}:{days_left}"


def pickup_reminder(order_id: uuid.UUID, customer_id: uuid.UUID, days_left: int) -> NotificationMessage:
    if days_left <= 1:
        body = "Last day to pick up your order. After today it will be closed automatically."
    else:
        body = f"{days_left} days left to pick up your order."
    return NotificationMessage(
        user_id=customer_id,
        title="Your order is still ready for pickup",
        body=body,
        type=NotificationType.PICKUP_REMINDER,
        data={"order_id": str(order_id), "days_left": days_left},
        order_id=order_id,
        dedup_key=pickup_reminder_dedup_key(order_id, days_left),
    )


def order_expired(order_id: uuid.UUID, customer_id: uuid.UUID, close_after_days: int) -> NotificationMessage:
    return NotificationMessage(
        user_id=customer_id,
        title="Your order was closed automatically",
        body=(
            f"More than {close_after_days} days passed without pickup, "
            "so the order was closed automatically."
        ),
        type=NotificationType.ORDER_EXPIRED,
        data={"order_id": str(order_id)},
        order_id=order_id,
        dedup_key=f"{NotificationType.ORDER_EXPIRED}:{order_id}",
    )


def order_status(order: Order, previous_status: str) -> NotificationMessage:
    title, body = _STATUS_TEXT.get(
        order.status, ("Order Update", "Your order status has been updated.")
    )
    return NotificationMessage(
        user_id=order.customer_id,
        title=title,
        body=body,
        type=NotificationType.ORDER_STATUS,
        data={
            "order_id": str(order.id),
            "status": order.status,
            "previous_status": previous_status,
        },
        order_id=order.id,
    )


def stage_update(order: Order, stage: OrderStage) -> NotificationMessage:
    label = _STAGE_LABELS.get(stage.stage_type, stage.stage_type)
    if stage.status == StageStatus.IN_PROGRESS:
        title = f"{label} Stage Started"
        body = f'The "{label}" stage of your order has started (Step {stage.sequence_no})'
    elif stage.status == StageStatus.COMPLETED:
        title = f"{label} Stage Completed"
        body = f'The "{label}" stage has been completed successfully'
    else:
        title = f"Stage Update: {label}"
        body = f'The "{label}" stage status changed to {stage.status}'
    return NotificationMessage(
        user_id=order.customer_id,
        title=title,
        body=body,
        type=NotificationType.STAGE_UPDATE,
        data={
            "order_id": str(order.id),
            "stage_id": str(stage.id),
            "stage_type": stage.stage_type,
            "status": stage.status,
        },
        order_id=order.id,
    )
