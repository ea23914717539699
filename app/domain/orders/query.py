from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone

from app.domain.errors import InvalidFilterError
from app.domain.orders.aggregates import OrderAggregate, OrderStatus

DEFAULT_PAGE = 1
DEFAULT_LIMIT = 10
MAX_LIMIT = 100
# OFFSET is bound as a signed 64-bit integer.
MAX_OFFSET = 2**63 - 1


def _parse_date(value: str | None, name: str) -> date | None:
    if value is None:
        return None
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError as exc:
        raise InvalidFilterError(f"Invalid {name} format. Use Y-m-d") from exc


@dataclass(frozen=True)
class OrderQuery:
    page: int = DEFAULT_PAGE
    limit: int = DEFAULT_LIMIT
    status: OrderStatus | None = None
    date_from: date | None = None
    date_to: date | None = None
    email: str | None = None

    @classmethod
    def parse(
        cls,
        page: int = DEFAULT_PAGE,
        limit: int = DEFAULT_LIMIT,
        status: str | None = None,
        date_from: str | None = None,
        date_to: str | None = None,
        email: str | None = None,
    ) -> "OrderQuery":
        if page < 1:
            raise InvalidFilterError("Page must be greater than 0")
        if limit < 1 or limit > MAX_LIMIT:
            raise InvalidFilterError(f"Limit must be between 1 and {MAX_LIMIT}")
        if (page - 1) * limit > MAX_OFFSET:
            raise InvalidFilterError("Page is out of range")

        parsed_status = None
        if status is not None:
            try:
                parsed_status = OrderStatus.parse(status)
            except ValueError as exc:
                raise InvalidFilterError(str(exc)) from exc

        return cls(
            page=page,
            limit=limit,
            status=parsed_status,
            date_from=_parse_date(date_from, "date_from"),
            date_to=_parse_date(date_to, "date_to"),
            email=email or None,
        )

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit

    def created_bounds(self) -> tuple[datetime | None, datetime | None]:
        """Inclusive start-of-day lower bound and exclusive next-day upper bound, in UTC."""
        start = end = None
        if self.date_from is not None:
            start = datetime.combine(self.date_from, time.min, tzinfo=timezone.utc)
        if self.date_to is not None:
            end = datetime.combine(self.date_to + timedelta(days=1), time.min, tzinfo=timezone.utc)
        return start, end


@dataclass
class OrderPage:
    total: int
    page: int
    limit: int
    orders: list[OrderAggregate] = field(default_factory=list)

    @property
    def total_pages(self) -> int:
        return -(-self.total // self.limit)

    def pagination(self) -> dict:
        return {
            "page": self.page,
            "limit": self.limit,
            "total": self.total,
            "total_pages": self.total_pages,
        }
