from __future__ import annotations

import re

from sqlalchemy import select

from app.persistence.models import NotificationMessageModel
from app.persistence.order_store import OrderStore

ORDER = {
    "customer_name": "John Doe",
    "customer_email": "john.doe@example.com",
    "items": [
        {"product_name": "Laptop", "quantity": 1, "price": 25000.00},
        {"product_name": "Mouse", "quantity": 2, "price": 500.00},
    ],
}

TIMESTAMP = re.compile(r"^\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2}$")


def _queued(session, kind: str | None = None) -> list[NotificationMessageModel]:
    stmt = select(NotificationMessageModel).order_by(NotificationMessageModel.id.asc())
    if kind:
        stmt = stmt.where(NotificationMessageModel.kind == kind)
    return list(session.scalars(stmt).all())


def test_create_order_returns_totals_and_queues_welcome(client, session):
    resp = client.post("/orders", json=ORDER)
    assert resp.status_code == 201
    data = resp.json()["data"]

    assert data["total_amount"] == "26000.00"
    assert data["status"] == "pending"
    assert len(data["items"]) == 2
    assert data["items"][0]["product_name"] == "Laptop"
    assert data["items"][0]["price"] == "25000.00"
    assert data["items"][1]["total_price"] == "1000.00"
    assert TIMESTAMP.match(data["created_at"])
    assert data["created_at"] == data["updated_at"]

    welcome = _queued(session, "welcome")
    assert len(welcome) == 1
    assert welcome[0].payload == {
        "to": "john.doe@example.com",
        "type": "welcome",
        "data": {"order_id": data["id"], "customer_name": "John Doe", "total_amount": "26000.00"},
    }


def test_create_order_validation_errors(client, session):
    empty = client.post("/orders", json={**ORDER, "items": []})
    assert empty.status_code == 400
    assert empty.json() == {"errors": {"items": "Items must be a non-empty array"}}

    bad_item = client.post(
        "/orders",
        json={**ORDER, "items": [{"product_name": "Pen", "quantity": 1, "price": 0}]},
    )
    assert bad_item.status_code == 400
    assert "items[0].price" in bad_item.json()["errors"]

    bad_json = client.post("/orders", content=b"{not json", headers={"Content-Type": "application/json"})
    assert bad_json.status_code == 400
    assert bad_json.json() == {"error": "Invalid JSON"}

    assert client.get("/orders").json()["pagination"]["total"] == 0
    assert _queued(session) == []


def test_get_order_and_not_found(client):
    created = client.post("/orders", json=ORDER).json()["data"]

    resp = client.get(f"/orders/{created['id']}")
    assert resp.status_code == 200
    assert resp.json()["data"] == created

    missing = client.get("/orders/999999")
    assert missing.status_code == 404
    assert missing.json() == {"error": "Order not found"}


def test_update_replaces_items_and_customer_info(client):
    created = client.post("/orders", json=ORDER).json()["data"]

    resp = client.put(
        f"/orders/{created['id']}",
        json={
            "customer_email": "john@example.org",
            "items": [{"product_name": "Tablet", "quantity": 2, "price": "7999.99"}],
        },
    )
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["customer_email"] == "john@example.org"
    assert data["customer_name"] == "John Doe"
    assert data["total_amount"] == "15999.98"
    assert [item["product_name"] for item in data["items"]] == ["Tablet"]

    fetched = client.get(f"/orders/{created['id']}").json()["data"]
    assert fetched["items"] == data["items"]
    assert fetched["total_amount"] == "15999.98"


def test_invalid_update_changes_nothing(client):
    created = client.post("/orders", json=ORDER).json()["data"]

    resp = client.put(
        f"/orders/{created['id']}",
        json={"customer_name": "Jane", "items": []},
    )
    assert resp.status_code == 400
    assert "items" in resp.json()["errors"]

    fetched = client.get(f"/orders/{created['id']}").json()["data"]
    assert fetched == created


def test_delete_removes_order_and_items(client, session):
    created = client.post("/orders", json=ORDER).json()["data"]

    resp = client.delete(f"/orders/{created['id']}")
    assert resp.status_code == 204

    assert client.get(f"/orders/{created['id']}").status_code == 404
    assert OrderStore(session).count_items(created["id"]) == 0
    assert client.delete(f"/orders/{created['id']}").status_code == 404


def test_status_change_queues_shipped_once(client, session):
    created = client.post("/orders", json=ORDER).json()["data"]
    client.put(f"/orders/{created['id']}", json={"customer_email": "new.address@example.com"})

    shipped = client.patch(f"/orders/{created['id']}/status", json={"status": "shipped"})
    assert shipped.status_code == 200
    assert shipped.json()["data"]["status"] == "shipped"

    again = client.patch(f"/orders/{created['id']}/status", json={"status": "shipped"})
    assert again.status_code == 200
    assert again.json()["data"]["updated_at"] == shipped.json()["data"]["updated_at"]

    messages = _queued(session, "shipped")
    assert len(messages) == 1
    assert messages[0].recipient == "new.address@example.com"
    assert messages[0].payload["data"]["order_id"] == created["id"]


def test_status_change_to_processing_queues_nothing(client, session):
    created = client.post("/orders", json=ORDER).json()["data"]

    resp = client.patch(f"/orders/{created['id']}/status", json={"status": "processing"})

    assert resp.status_code == 200
    assert [m.kind for m in _queued(session)] == ["welcome"]


def test_status_change_validation(client):
    created = client.post("/orders", json=ORDER).json()["data"]

    missing = client.patch(f"/orders/{created['id']}/status", json={})
    assert missing.status_code == 400
    assert missing.json() == {"errors": {"status": "Status field is required"}}

    invalid = client.patch(f"/orders/{created['id']}/status", json={"status": "lost"})
    assert invalid.status_code == 400
    assert invalid.json()["errors"]["status"].startswith("Invalid status")

    not_found = client.patch("/orders/999999/status", json={"status": "shipped"})
    assert not_found.status_code == 404


def test_list_orders_filters_and_pagination(client):
    for i in range(3):
        client.post("/orders", json={**ORDER, "customer_email": f"buyer{i}@example.com"})

    resp = client.get("/orders", params={"page": 1, "limit": 2})
    assert resp.status_code == 200
    body = resp.json()
    assert len(body["data"]) == 2
    assert body["pagination"] == {"page": 1, "limit": 2, "total": 3, "total_pages": 2}

    by_email = client.get("/orders", params={"email": "buyer1"}).json()
    assert [o["customer_email"] for o in by_email["data"]] == ["buyer1@example.com"]

    assert client.get("/orders", params={"status": "bogus"}).status_code == 400
    assert client.get("/orders", params={"limit": 101}).status_code == 400
    assert client.get("/orders", params={"date_from": "yesterday"}).json() == {
        "error": "Invalid date_from format. Use Y-m-d"
    }


def test_out_of_range_integers_are_rejected(client):
    huge = client.post(
        "/orders",
        json={**ORDER, "items": [{"product_name": "Bolt", "quantity": 10**19, "price": "1.00"}]},
    )
    assert huge.status_code == 400
    assert "items[0].quantity" in huge.json()["errors"]

    far_page = client.get("/orders", params={"page": 10**18, "limit": 100})
    assert far_page.status_code == 400
    assert far_page.json() == {"error": "Page is out of range"}

    last_page = client.get("/orders", params={"page": 10**16, "limit": 100})
    assert last_page.status_code == 200
    assert last_page.json()["data"] == []
