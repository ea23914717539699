from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from app.domain.errors import OrderValidationError
from app.domain.money import ZERO, multiply, sum_amounts
from app.domain.orders.validation import (
    ItemInput,
    check_customer_email,
    check_customer_name,
    check_items,
)


class OrderStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"

    @classmethod
    def values(cls) -> list[str]:
        return [member.value for member in cls]

    @classmethod
    def parse(cls, value: Any) -> "OrderStatus":
        if isinstance(value, cls):
            return value
        if isinstance(value, str) and value in cls.values():
            return cls(value)
        raise ValueError("Invalid status. Allowed values: " + ", ".join(cls.values()))


@dataclass
class OrderItem:
    product_name: str
    quantity: int
    unit_price: Decimal
    item_id: int | None = None

    @property
    def line_total(self) -> Decimal:
        return multiply(self.unit_price, self.quantity)

    @classmethod
    def from_input(cls, item: ItemInput) -> "OrderItem":
        return cls(product_name=item.product_name, quantity=item.quantity, unit_price=item.unit_price)


@dataclass(frozen=True)
class StatusChange:
    previous: OrderStatus
    current: OrderStatus

    @property
    def changed(self) -> bool:
        return self.previous != self.current


@dataclass
class OrderAggregate:
    """An order and the line items it exclusively owns.

    Items are only replaced through :meth:`replace_items` / :meth:`revise`, which
    keep ``total_amount`` equal to the sum of line totals. Every mutating
    operation validates all of its input before touching state.
    """

    customer_name: str
    customer_email: str
    created_at: datetime
    updated_at: datetime
    status: OrderStatus = OrderStatus.PENDING
    items: list[OrderItem] = field(default_factory=list)
    total_amount: Decimal = ZERO
    order_id: int | None = None
    version: int = 1

    @classmethod
    def create(cls, customer_name: Any, customer_email: Any, items: Any, now: datetime) -> "OrderAggregate":
        errors: dict[str, str] = {}
        name, name_error = check_customer_name(customer_name)
        if name_error:
            errors["customer_name"] = name_error
        email, email_error = check_customer_email(customer_email)
        if email_error:
            errors["customer_email"] = email_error
        inputs, item_errors = check_items(items)
        errors.update(item_errors)
        if errors:
            raise OrderValidationError(errors)

        order = cls(
            customer_name=name,
            customer_email=email,
            created_at=now,
            updated_at=now,
            status=OrderStatus.PENDING,
            items=[OrderItem.from_input(item) for item in inputs],
        )
        order.recalculate_total()
        return order

    def recalculate_total(self) -> Decimal:
        self.total_amount = sum_amounts(item.line_total for item in self.items)
        return self.total_amount

    def replace_items(self, items: Any, now: datetime) -> None:
        inputs, errors = check_items(items)
        if errors:
            raise OrderValidationError(errors)
        self._swap_items(inputs, now)

    def update_customer_info(
        self,
        customer_name: Any = None,
        customer_email: Any = None,
        *,
        now: datetime,
    ) -> bool:
        name, email = self._check_customer_update(customer_name, customer_email)
        return self._apply_customer_update(name, email, now)

    def revise(
        self,
        customer_name: Any = None,
        customer_email: Any = None,
        items: Any = None,
        *,
        now: datetime,
    ) -> bool:
        """Apply a full PUT-style update; either every part applies or none does."""
        errors: dict[str, str] = {}
        name = email = None
        try:
            name, email = self._check_customer_update(customer_name, customer_email)
        except OrderValidationError as exc:
            errors.update(exc.errors)

        inputs: list[ItemInput] | None = None
        if items is not None:
            inputs, item_errors = check_items(items)
            errors.update(item_errors)

        if errors:
            raise OrderValidationError(errors)

        changed = self._apply_customer_update(name, email, now)
        if inputs is not None:
            self._swap_items(inputs, now)
            changed = True
        return changed

    def change_status(self, new_status: OrderStatus, now: datetime) -> StatusChange:
        outcome = StatusChange(previous=self.status, current=new_status)
        if outcome.changed:
            self.status = new_status
            self.updated_at = now
        return outcome

    def _check_customer_update(self, customer_name: Any, customer_email: Any) -> tuple[str | None, str | None]:
        errors: dict[str, str] = {}
        name = email = None
        if customer_name is not None:
            name, error = check_customer_name(customer_name)
            if error:
                errors["customer_name"] = error
        if customer_email is not None:
            email, error = check_customer_email(customer_email)
            if error:
                errors["customer_email"] = error
        if errors:
            raise OrderValidationError(errors)
        return name, email

    def _apply_customer_update(self, name: str | None, email: str | None, now: datetime) -> bool:
        changed = False
        if name is not None and name != self.customer_name:
            self.customer_name = name
            changed = True
        if email is not None and email != self.customer_email:
            self.customer_email = email
            changed = True
        if changed:
            self.updated_at = now
        return changed

    def _swap_items(self, inputs: list[ItemInput], now: datetime) -> None:
        self.items = [OrderItem.from_input(item) for item in inputs]
        self.recalculate_total()
        self.updated_at = now
