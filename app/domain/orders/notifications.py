from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict

from app.domain.money import format_amount
from app.domain.orders.aggregates import OrderAggregate, OrderStatus


class NotificationKind(str, Enum):
    WELCOME = "welcome"
    SHIPPED = "shipped"
    DELIVERED = "delivered"


_STATUS_NOTIFICATIONS: dict[OrderStatus, NotificationKind] = {
    OrderStatus.SHIPPED: NotificationKind.SHIPPED,
    OrderStatus.DELIVERED: NotificationKind.DELIVERED,
}


class NotificationData(BaseModel):
    order_id: int
    customer_name: str
    total_amount: str


class NotificationIntent(BaseModel):
    model_config = ConfigDict(frozen=True, use_enum_values=True)

    to: str
    type: NotificationKind
    data: NotificationData

    @classmethod
    def for_order(cls, kind: NotificationKind, order: OrderAggregate) -> "NotificationIntent":
        if order.order_id is None:
            raise ValueError("order must be persisted before a notification can reference it")
        return cls(
            to=order.customer_email,
            type=kind,
            data=NotificationData(
                order_id=order.order_id,
                customer_name=order.customer_name,
                total_amount=format_amount(order.total_amount),
            ),
        )

    def to_message(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


def creation_notification(order: OrderAggregate) -> NotificationIntent:
    return NotificationIntent.for_order(NotificationKind.WELCOME, order)


def derive_notification(
    old_status: OrderStatus,
    new_status: OrderStatus,
    order: OrderAggregate,
) -> NotificationIntent | None:
    if old_status == new_status:
        return None
    kind = _STATUS_NOTIFICATIONS.get(new_status)
    if kind is None:
        return None
    return NotificationIntent.for_order(kind, order)
