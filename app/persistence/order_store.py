from __future__ import annotations

from sqlalchemy import Select, delete, func, select, update
from sqlalchemy.orm import Session, selectinload

from app.api.utils import as_utc
from app.domain.errors import OrderConflictError
from app.domain.money import from_cents, to_cents
from app.domain.orders.aggregates import OrderAggregate, OrderItem, OrderStatus
from app.domain.orders.query import OrderPage, OrderQuery
from app.persistence.models import OrderItemModel, OrderModel


def _to_aggregate(row: OrderModel) -> OrderAggregate:
    return OrderAggregate(
        order_id=row.id,
        customer_name=row.customer_name,
        customer_email=row.customer_email,
        status=OrderStatus(row.status),
        total_amount=from_cents(row.total_amount_cents),
        created_at=as_utc(row.created_at),
        updated_at=as_utc(row.updated_at),
        version=row.version,
        items=[
            OrderItem(
                item_id=item.id,
                product_name=item.product_name,
                quantity=item.quantity,
                unit_price=from_cents(item.unit_price_cents),
            )
            for item in row.items
        ],
    )


def _email_contains(email: str, dialect_name: str):
    if dialect_name == "sqlite":
        # SQLite LIKE ignores ASCII case; the email filter is case-sensitive.
        return func.instr(OrderModel.customer_email, email) > 0
    return OrderModel.customer_email.contains(email, autoescape=True)


def _apply_filters(stmt: Select, query: OrderQuery, dialect_name: str) -> Select:
    if query.status is not None:
        stmt = stmt.where(OrderModel.status == query.status.value)
    start, end = query.created_bounds()
    if start is not None:
        stmt = stmt.where(OrderModel.created_at >= start)
    if end is not None:
        stmt = stmt.where(OrderModel.created_at < end)
    if query.email:
        stmt = stmt.where(_email_contains(query.email, dialect_name))
    return stmt


class OrderStore:
    """Maps :class:`OrderAggregate` onto the ``orders``/``order_items`` tables.

    The store never commits; callers own the transaction boundary.
    """

    def __init__(self, session: Session):
        self.session = session

    def _select_with_items(self) -> Select:
        return (
            select(OrderModel)
            .options(selectinload(OrderModel.items))
            .execution_options(populate_existing=True)
        )

    def get(self, order_id: int) -> OrderAggregate | None:
        row = self.session.scalar(self._select_with_items().where(OrderModel.id == order_id))
        if row is None:
            return None
        return _to_aggregate(row)

    def get_for_update(self, order_id: int) -> OrderAggregate | None:
        """Load an order for a write, row-locked where the backend supports it."""
        row = self.session.scalar(
            self._select_with_items().where(OrderModel.id == order_id).with_for_update(of=OrderModel)
        )
        if row is None:
            return None
        return _to_aggregate(row)

    def add(self, order: OrderAggregate) -> OrderAggregate:
        row = OrderModel(
            customer_name=order.customer_name,
            customer_email=order.customer_email,
            status=order.status.value,
            total_amount_cents=to_cents(order.total_amount),
            created_at=order.created_at,
            updated_at=order.updated_at,
            version=order.version,
        )
        self.session.add(row)
        self.session.flush()
        order.order_id = row.id
        self._insert_items(order)
        return order

    def save(self, order: OrderAggregate) -> OrderAggregate:
        """Write customer fields, total and items; raises OrderConflictError on a stale version."""
        self._write_row(
            order,
            customer_name=order.customer_name,
            customer_email=order.customer_email,
            status=order.status.value,
            total_amount_cents=to_cents(order.total_amount),
        )

        kept_ids = [item.item_id for item in order.items if item.item_id is not None]
        self.session.execute(
            delete(OrderItemModel).where(
                OrderItemModel.order_id == order.order_id,
                OrderItemModel.id.not_in(kept_ids),
            )
        )
        self.session.flush()
        self._insert_items(order)
        return order

    def save_status(self, order: OrderAggregate) -> OrderAggregate:
        self._write_row(order, status=order.status.value)
        return order

    def delete(self, order_id: int) -> bool:
        exists = self.session.scalar(select(OrderModel.id).where(OrderModel.id == order_id).with_for_update())
        if exists is None:
            return False
        self.session.execute(delete(OrderItemModel).where(OrderItemModel.order_id == order_id))
        self.session.execute(delete(OrderModel).where(OrderModel.id == order_id))
        return True

    def count_items(self, order_id: int) -> int:
        stmt = select(func.count(OrderItemModel.id)).where(OrderItemModel.order_id == order_id)
        return int(self.session.scalar(stmt) or 0)

    def search(self, query: OrderQuery) -> OrderPage:
        dialect = self.session.get_bind().dialect.name
        count_stmt = _apply_filters(select(func.count(OrderModel.id)), query, dialect)
        total = int(self.session.scalar(count_stmt) or 0)

        stmt = (
            _apply_filters(self._select_with_items(), query, dialect)
            .order_by(OrderModel.created_at.desc(), OrderModel.id.asc())
            .offset(query.offset)
            .limit(query.limit)
        )
        rows = list(self.session.scalars(stmt).all())
        return OrderPage(
            total=total,
            page=query.page,
            limit=query.limit,
            orders=[_to_aggregate(row) for row in rows],
        )

    def _insert_items(self, order: OrderAggregate) -> None:
        new_items = [item for item in order.items if item.item_id is None]
        if not new_items:
            return
        rows = [
            OrderItemModel(
                order_id=order.order_id,
                product_name=item.product_name,
                quantity=item.quantity,
                unit_price_cents=to_cents(item.unit_price),
            )
            for item in new_items
        ]
        self.session.add_all(rows)
        self.session.flush()
        for item, row in zip(new_items, rows):
            item.item_id = row.id

    def _write_row(self, order: OrderAggregate, **values) -> None:
        if order.order_id is None:
            raise ValueError("cannot save an order that was never added")
        result = self.session.execute(
            update(OrderModel)
            .where(OrderModel.id == order.order_id, OrderModel.version == order.version)
            .values(updated_at=order.updated_at, version=order.version + 1, **values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise OrderConflictError(order.order_id)
        order.version += 1
