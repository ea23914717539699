from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Query, Request, Response
from sqlalchemy.orm import Session

from app.api.utils import format_timestamp
from app.domain.errors import InvalidPayloadError
from app.domain.money import format_amount
from app.domain.orders.aggregates import OrderAggregate
from app.domain.orders.query import DEFAULT_LIMIT, DEFAULT_PAGE, OrderQuery
from app.domain.orders.service import OrderService
from app.persistence.pg import get_session

router = APIRouter(tags=["orders"])


def get_order_service(session: Session = Depends(get_session)) -> OrderService:
    return OrderService(session)


async def read_json_object(request: Request) -> dict[str, Any]:
    try:
        payload = await request.json()
    except ValueError as exc:
        raise InvalidPayloadError("Invalid JSON") from exc
    if not isinstance(payload, dict):
        raise InvalidPayloadError("Request body must be a JSON object")
    return payload


def serialize_order(order: OrderAggregate) -> dict[str, Any]:
    return {
        "id": order.order_id,
        "customer_name": order.customer_name,
        "customer_email": order.customer_email,
        "total_amount": format_amount(order.total_amount),
        "status": order.status.value,
        "created_at": format_timestamp(order.created_at),
        "updated_at": format_timestamp(order.updated_at),
        "items": [
            {
                "id": item.item_id,
                "product_name": item.product_name,
                "quantity": item.quantity,
                "price": format_amount(item.unit_price),
                "total_price": format_amount(item.line_total),
            }
            for item in order.items
        ],
    }


@router.get("/orders")
def list_orders(
    page: int = Query(default=DEFAULT_PAGE),
    limit: int = Query(default=DEFAULT_LIMIT),
    status: str | None = Query(default=None),
    date_from: str | None = Query(default=None),
    date_to: str | None = Query(default=None),
    email: str | None = Query(default=None),
    service: OrderService = Depends(get_order_service),
):
    query = OrderQuery.parse(
        page=page,
        limit=limit,
        status=status,
        date_from=date_from,
        date_to=date_to,
        email=email,
    )
    result = service.search(query)
    return {
        "data": [serialize_order(order) for order in result.orders],
        "pagination": result.pagination(),
    }


@router.get("/orders/{order_id}")
def get_order(order_id: int, service: OrderService = Depends(get_order_service)):
    return {"data": serialize_order(service.get(order_id))}


@router.post("/orders", status_code=201)
def create_order(
    payload: dict[str, Any] = Depends(read_json_object),
    service: OrderService = Depends(get_order_service),
):
    return {"data": serialize_order(service.create(payload))}


@router.put("/orders/{order_id}")
def update_order(
    order_id: int,
    payload: dict[str, Any] = Depends(read_json_object),
    service: OrderService = Depends(get_order_service),
):
    return {"data": serialize_order(service.update(order_id, payload))}


@router.delete("/orders/{order_id}", status_code=204)
def delete_order(order_id: int, service: OrderService = Depends(get_order_service)):
    service.delete(order_id)
    return Response(status_code=204)


@router.patch("/orders/{order_id}/status")
def change_order_status(
    order_id: int,
    payload: dict[str, Any] = Depends(read_json_object),
    service: OrderService = Depends(get_order_service),
):
    return {"data": serialize_order(service.change_status(order_id, payload))}
