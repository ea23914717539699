"""Subject and plain-text body for each notification type."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable

from app.domain.orders.notifications import NotificationKind

SIGNATURE = "Best regards,\nThe Online Store Team"


class InvalidNotificationMessage(ValueError):
    """The message can never be delivered as-is; retrying will not help."""


class UnknownNotificationType(InvalidNotificationMessage):
    pass


@dataclass(frozen=True)
class RenderedEmail:
    subject: str
    body: str


def _welcome(order_id: Any, customer_name: str, total_amount: str) -> RenderedEmail:
    return RenderedEmail(
        subject="Thank you for your order!",
        body=(
            f"Hello, {customer_name}!\n\n"
            f"Thank you for your order #{order_id}.\n"
            f"Total amount: {total_amount} USD.\n\n"
            "We will process your order shortly.\n\n"
            f"{SIGNATURE}"
        ),
    )


def _shipped(order_id: Any, customer_name: str, total_amount: str) -> RenderedEmail:
    return RenderedEmail(
        subject="Your order has been shipped",
        body=(
            f"Hello, {customer_name}!\n\n"
            f"Your order #{order_id} has been shipped.\n"
            "You will receive it soon.\n\n"
            f"{SIGNATURE}"
        ),
    )


def _delivered(order_id: Any, customer_name: str, total_amount: str) -> RenderedEmail:
    return RenderedEmail(
        subject="Your order has been delivered",
        body=(
            f"Hello, {customer_name}!\n\n"
            f"Your order #{order_id} has been successfully delivered!\n\n"
            "Thank you for choosing our store. We look forward to serving you again!\n\n"
            f"{SIGNATURE}"
        ),
    )


TEMPLATE_REGISTRY: dict[str, Callable[[Any, str, str], RenderedEmail]] = {
    NotificationKind.WELCOME.value: _welcome,
    NotificationKind.SHIPPED.value: _shipped,
    NotificationKind.DELIVERED.value: _delivered,
}


def render_notification(notification_type: str, data: dict[str, Any]) -> RenderedEmail:
    template = TEMPLATE_REGISTRY.get(notification_type)
    if template is None:
        raise UnknownNotificationType(f"no template registered for notification type: {notification_type}")
    return template(
        data.get("order_id", "N/A"),
        data.get("customer_name") or "Dear Customer",
        data.get("total_amount") or "0.00",
    )
