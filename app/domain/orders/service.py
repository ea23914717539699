from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, TypeVar

from sqlalchemy.orm import Session

from app.api.utils import now_utc
from app.domain.errors import OrderConflictError, OrderNotFoundError, OrderValidationError
from app.domain.orders.aggregates import OrderAggregate, OrderStatus, StatusChange
from app.domain.orders.notifications import (
    NotificationIntent,
    creation_notification,
    derive_notification,
)
from app.domain.orders.query import OrderPage, OrderQuery
from app.notifications.publisher import NotificationPublisher
from app.persistence.order_store import OrderStore

logger = logging.getLogger(__name__)

MAX_WRITE_ATTEMPTS = 3

T = TypeVar("T")


class OrderService:
    """Application-level order use cases.

    Each mutation commits before its notification is published: the queued
    intent must describe committed state, and a failed enqueue must leave the
    committed order untouched.
    """

    def __init__(
        self,
        session: Session,
        publisher: NotificationPublisher | None = None,
        clock: Callable[[], datetime] = now_utc,
    ):
        self.session = session
        self.store = OrderStore(session)
        self.publisher = publisher or NotificationPublisher(clock=clock)
        self.clock = clock

    def _load(self, order_id: int) -> OrderAggregate:
        order = self.store.get(order_id)
        if order is None:
            raise OrderNotFoundError(order_id)
        return order

    def _write(self, order_id: int, mutate: Callable[[OrderAggregate], T]) -> tuple[OrderAggregate, T]:
        """Run load, mutate and commit, reloading when a concurrent write wins the race."""
        for attempt in range(1, MAX_WRITE_ATTEMPTS + 1):
            order = self.store.get_for_update(order_id)
            if order is None:
                raise OrderNotFoundError(order_id)
            try:
                return order, mutate(order)
            except OrderConflictError:
                self.session.rollback()
                if attempt == MAX_WRITE_ATTEMPTS:
                    raise
                logger.warning("order write conflict, reloading: order_id=%s attempt=%s", order_id, attempt)
        raise OrderConflictError(order_id)

    def _notify(self, intent: NotificationIntent | None) -> None:
        if intent is not None:
            self.publisher.publish(intent)

    def get(self, order_id: int) -> OrderAggregate:
        return self._load(order_id)

    def search(self, query: OrderQuery) -> OrderPage:
        return self.store.search(query)

    def create(self, payload: dict[str, Any]) -> OrderAggregate:
        order = OrderAggregate.create(
            customer_name=payload.get("customer_name"),
            customer_email=payload.get("customer_email"),
            items=payload.get("items"),
            now=self.clock(),
        )
        self.store.add(order)
        self.session.commit()
        logger.info("order created: order_id=%s items=%s total=%s", order.order_id, len(order.items), order.total_amount)

        self._notify(creation_notification(order))
        return order

    def update(self, order_id: int, payload: dict[str, Any]) -> OrderAggregate:
        def revise(order: OrderAggregate) -> bool:
            changed = order.revise(
                customer_name=payload.get("customer_name"),
                customer_email=payload.get("customer_email"),
                items=payload.get("items"),
                now=self.clock(),
            )
            if changed:
                self.store.save(order)
                self.session.commit()
            return changed

        order, changed = self._write(order_id, revise)
        if changed:
            logger.info("order updated: order_id=%s total=%s", order.order_id, order.total_amount)
        return order

    def delete(self, order_id: int) -> None:
        if not self.store.delete(order_id):
            raise OrderNotFoundError(order_id)
        self.session.commit()
        logger.info("order deleted: order_id=%s", order_id)

    def change_status(self, order_id: int, payload: dict[str, Any]) -> OrderAggregate:
        def transition(order: OrderAggregate) -> StatusChange:
            raw_status = payload.get("status")
            if raw_status is None:
                raise OrderValidationError({"status": "Status field is required"})
            try:
                new_status = OrderStatus.parse(raw_status)
            except ValueError as exc:
                raise OrderValidationError({"status": str(exc)}) from exc

            outcome = order.change_status(new_status, now=self.clock())
            if outcome.changed:
                self.store.save_status(order)
                self.session.commit()
            return outcome

        order, outcome = self._write(order_id, transition)
        if not outcome.changed:
            return order

        logger.info(
            "order status changed: order_id=%s from=%s to=%s",
            order.order_id,
            outcome.previous.value,
            outcome.current.value,
        )
        self._notify(derive_notification(outcome.previous, outcome.current, order))
        return order
