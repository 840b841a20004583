"""
Order status state machine as data.

``TRANSITIONS`` maps every allowed ``(from, to)`` pair to the timestamp it
stamps and the side effects it triggers. Anything not in the table is an
invalid transition; CANCELLED is terminal.
"""
import enum
from dataclasses import dataclass
from typing import Optional

from services.notification_service.service import NotificationType
from .models import OrderStatus


class Effect(str, enum.Enum):
    NOTIFY = "NOTIFY"
    RESTORE_STOCK = "RESTORE_STOCK"
    REVIEW_REMINDER = "REVIEW_REMINDER"


@dataclass(frozen=True)
class Transition:
    timestamp_field: str
    notification: NotificationType
    title: str
    message: str  # formatted with order_number, carrier, tracking
    effects: tuple = (Effect.NOTIFY,)


_TARGETS = {
    OrderStatus.CONFIRMED: Transition(
        "confirmed_at",
        NotificationType.ORDER_CONFIRMED,
        "Order confirmed",
        "Your order #{order_number} was confirmed.",
    ),
    OrderStatus.PROCESSING: Transition(
        "processing_at",
        NotificationType.ORDER_PROCESSING,
        "Preparing your order",
        "We are preparing your order #{order_number}.",
    ),
    OrderStatus.READY_FOR_PICKUP: Transition(
        "shipped_at",
        NotificationType.ORDER_READY_FOR_PICKUP,
        "Ready for pickup",
        "Your order #{order_number} is ready for pickup.",
    ),
    OrderStatus.SHIPPED: Transition(
        "shipped_at",
        NotificationType.ORDER_SHIPPED,
        "Order shipped",
        "Your order #{order_number} was shipped with {carrier}. Tracking: {tracking}.",
    ),
    OrderStatus.DELIVERED: Transition(
        "delivered_at",
        NotificationType.ORDER_DELIVERED,
        "Order delivered",
        "Your order #{order_number} was delivered.",
        effects=(Effect.NOTIFY, Effect.REVIEW_REMINDER),
    ),
    OrderStatus.CANCELLED: Transition(
        "cancelled_at",
        NotificationType.ORDER_CANCELLED,
        "Order cancelled",
        "Your order #{order_number} was cancelled.",
        effects=(Effect.NOTIFY, Effect.RESTORE_STOCK),
    ),
}

TERMINAL_STATUSES = frozenset({OrderStatus.CANCELLED})

TRANSITIONS: dict[tuple[OrderStatus, OrderStatus], Transition] = {
    (source, target): transition
    for source in OrderStatus
    if source not in TERMINAL_STATUSES
    for target, transition in _TARGETS.items()
    if source != target
}


def resolve_transition(current: OrderStatus, target: OrderStatus) -> Optional[Transition]:
    """None for a same-status patch; raises KeyError for a pair outside the table."""
    if current == target:
        return None
    return TRANSITIONS[(current, target)]
