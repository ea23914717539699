from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import and_, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.domain.orders.notifications import NotificationIntent
from app.persistence.models import NotificationMessageModel

STATUS_PENDING = "pending"
STATUS_PROCESSING = "processing"
STATUS_SENT = "sent"
STATUS_DEAD = "dead"

MESSAGE_STATUSES = (STATUS_PENDING, STATUS_PROCESSING, STATUS_SENT, STATUS_DEAD)


class EnqueueError(RuntimeError):
    pass


@dataclass
class QueuedNotification:
    """A claimed delivery, detached from the session that claimed it."""

    message_id: int
    to: str
    type: str
    attempts: int
    data: dict[str, Any] = field(default_factory=dict)

    @property
    def order_id(self) -> Any:
        return self.data.get("order_id")

    @classmethod
    def from_row(cls, row: NotificationMessageModel) -> "QueuedNotification":
        payload = row.payload or {}
        return cls(
            message_id=row.id,
            to=payload.get("to", row.recipient),
            type=payload.get("type", row.kind),
            attempts=row.attempts,
            data=dict(payload.get("data") or {}),
        )


def _deliverable(now: datetime):
    return or_(
        and_(
            NotificationMessageModel.status == STATUS_PENDING,
            NotificationMessageModel.available_at <= now,
        ),
        # A worker that died mid-send leaves its claim behind; redeliver once the lease runs out.
        and_(
            NotificationMessageModel.status == STATUS_PROCESSING,
            NotificationMessageModel.locked_until < now,
        ),
    )


class NotificationQueue:
    """Durable notification queue on top of ``notification_messages``.

    Delivery is at-least-once: a message is claimed with a lease, and returns to
    the deliverable set if it is neither acked nor nacked before the lease
    expires. Messages that exhaust their attempts land in the ``dead`` status.
    """

    def __init__(self, session: Session):
        self.session = session

    def enqueue(self, intent: NotificationIntent, now: datetime) -> NotificationMessageModel:
        message = intent.to_message()
        row = NotificationMessageModel(
            recipient=message["to"],
            kind=message["type"],
            payload=message,
            status=STATUS_PENDING,
            attempts=0,
            available_at=now,
            created_at=now,
            updated_at=now,
        )
        try:
            self.session.add(row)
            self.session.flush()
        except SQLAlchemyError as exc:
            raise EnqueueError(f"could not enqueue {message['type']} notification: {exc}") from exc
        return row

    def claim(self, limit: int, now: datetime, lease_seconds: int) -> list[QueuedNotification]:
        candidate_ids = list(
            self.session.scalars(
                select(NotificationMessageModel.id)
                .where(_deliverable(now))
                .order_by(NotificationMessageModel.id.asc())
                .limit(limit)
            ).all()
        )

        claimed_ids: list[int] = []
        locked_until = now + timedelta(seconds=lease_seconds)
        for message_id in candidate_ids:
            # Conditional update: only one concurrent claimer can win a given row.
            result = self.session.execute(
                update(NotificationMessageModel)
                .where(NotificationMessageModel.id == message_id, _deliverable(now))
                .values(
                    status=STATUS_PROCESSING,
                    locked_until=locked_until,
                    attempts=NotificationMessageModel.attempts + 1,
                    updated_at=now,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 1:
                claimed_ids.append(message_id)

        if not claimed_ids:
            return []
        rows = self.session.scalars(
            select(NotificationMessageModel)
            .where(NotificationMessageModel.id.in_(claimed_ids))
            .order_by(NotificationMessageModel.id.asc())
            .execution_options(populate_existing=True)
        ).all()
        return [QueuedNotification.from_row(row) for row in rows]

    def ack(self, message_id: int, now: datetime) -> bool:
        result = self.session.execute(
            update(NotificationMessageModel)
            .where(
                NotificationMessageModel.id == message_id,
                NotificationMessageModel.status == STATUS_PROCESSING,
            )
            .values(
                status=STATUS_SENT,
                sent_at=now,
                locked_until=None,
                last_error=None,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def nack(
        self,
        message_id: int,
        error: str,
        now: datetime,
        max_attempts: int,
        retry_delay_seconds: int,
    ) -> str:
        row = self.get(message_id)
        if row is None:
            raise LookupError(f"notification message not found: {message_id}")
        if row.status == STATUS_SENT:
            return row.status
        row.last_error = error
        row.locked_until = None
        row.updated_at = now
        if row.attempts >= max_attempts:
            row.status = STATUS_DEAD
        else:
            row.status = STATUS_PENDING
            row.available_at = now + timedelta(seconds=retry_delay_seconds)
        self.session.flush()
        return row.status

    def dead_letter(self, message_id: int, error: str, now: datetime) -> None:
        row = self.get(message_id)
        if row is None:
            return
        row.status = STATUS_DEAD
        row.last_error = error
        row.locked_until = None
        row.updated_at = now
        self.session.flush()

    def requeue(self, message_id: int, now: datetime) -> NotificationMessageModel | None:
        row = self.get(message_id)
        if row is None or row.status != STATUS_DEAD:
            return None
        row.status = STATUS_PENDING
        row.attempts = 0
        row.available_at = now
        row.locked_until = None
        row.updated_at = now
        self.session.flush()
        return row

    def get(self, message_id: int) -> NotificationMessageModel | None:
        stmt = (
            select(NotificationMessageModel)
            .where(NotificationMessageModel.id == message_id)
            .execution_options(populate_existing=True)
        )
        return self.session.scalar(stmt)

    def list(self, status: str | None = None, limit: int = 100) -> list[NotificationMessageModel]:
        stmt = select(NotificationMessageModel).order_by(NotificationMessageModel.id.desc()).limit(limit)
        if status:
            stmt = stmt.where(NotificationMessageModel.status == status)
        return list(self.session.scalars(stmt).all())
