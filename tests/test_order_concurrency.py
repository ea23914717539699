from __future__ import annotations

from decimal import Decimal

import pytest

import app.persistence.pg as pg
from app.domain.errors import OrderConflictError
from app.domain.orders.aggregates import OrderStatus
from app.domain.orders.service import OrderService
from app.persistence.order_store import OrderStore

LAPTOP = {"product_name": "Laptop", "quantity": 1, "price": "10.00"}
TABLET = {"product_name": "Tablet", "quantity": 3, "price": "5.00"}


def _create(clock, publisher) -> int:
    payload = {"customer_name": "John Doe", "customer_email": "john.doe@example.com", "items": [LAPTOP]}
    with pg.session_scope() as session:
        return OrderService(session, publisher=publisher, clock=clock).create(payload).order_id


def _replace_items(order_id: int, clock, publisher) -> None:
    with pg.session_scope() as session:
        OrderService(session, publisher=publisher, clock=clock).update(order_id, {"items": [TABLET]})


def _stored(order_id: int):
    with pg.session_scope() as session:
        return OrderStore(session).get(order_id)


def test_stale_snapshot_is_rejected(clock, publisher):
    order_id = _create(clock, publisher)
    stale = _stored(order_id)
    _replace_items(order_id, clock, publisher)

    stale.change_status(OrderStatus.SHIPPED, now=clock())
    with pytest.raises(OrderConflictError):
        with pg.session_scope() as session:
            OrderStore(session).save(stale)
    with pytest.raises(OrderConflictError):
        with pg.session_scope() as session:
            OrderStore(session).save_status(stale)

    current = _stored(order_id)
    assert current.status == OrderStatus.PENDING
    assert current.total_amount == Decimal("15.00")
    assert [(item.product_name, item.quantity) for item in current.items] == [("Tablet", 3)]


def test_status_change_reloads_after_concurrent_item_replacement(clock, publisher):
    order_id = _create(clock, publisher)

    with pg.session_scope() as session:
        service = OrderService(session, publisher=publisher, clock=clock)
        load = service.store.get_for_update
        raced = []

        def load_then_race(oid):
            order = load(oid)
            if not raced:
                raced.append(oid)
                _replace_items(oid, clock, publisher)
            return order

        service.store.get_for_update = load_then_race
        shipped = service.change_status(order_id, {"status": "shipped"})

    assert shipped.total_amount == Decimal("15.00")
    assert [intent.type for intent in publisher.published] == ["welcome", "shipped"]
    assert publisher.published[1].data.total_amount == "15.00"

    current = _stored(order_id)
    assert current.status == OrderStatus.SHIPPED
    assert current.total_amount == sum((item.line_total for item in current.items), Decimal("0.00"))
    assert [item.product_name for item in current.items] == ["Tablet"]
    assert current.version == 3


def test_persistent_conflict_returns_409(client, monkeypatch):
    created = client.post("/orders", json={
        "customer_name": "John Doe",
        "customer_email": "john.doe@example.com",
        "items": [LAPTOP],
    }).json()["data"]

    def always_stale(self, order):
        raise OrderConflictError(order.order_id)

    monkeypatch.setattr(OrderStore, "save_status", always_stale)

    resp = client.patch(f"/orders/{created['id']}/status", json={"status": "shipped"})

    assert resp.status_code == 409
    assert client.get(f"/orders/{created['id']}").json()["data"]["status"] == "pending"
