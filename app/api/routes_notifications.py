from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from app.api.utils import format_timestamp, now_utc
from app.domain.errors import InvalidFilterError
from app.notifications.queue import MESSAGE_STATUSES, STATUS_DEAD, NotificationQueue
from app.persistence.models import NotificationMessageModel
from app.persistence.pg import get_session

router = APIRouter(tags=["notifications"])


def _serialize_message(row: NotificationMessageModel) -> dict:
    return {
        "id": row.id,
        "to": row.recipient,
        "type": row.kind,
        "status": row.status,
        "attempts": row.attempts,
        "data": (row.payload or {}).get("data", {}),
        "last_error": row.last_error,
        "available_at": format_timestamp(row.available_at),
        "created_at": format_timestamp(row.created_at),
        "sent_at": format_timestamp(row.sent_at) if row.sent_at else None,
    }


@router.get("/notifications")
def list_notifications(
    status: str | None = Query(default=None),
    limit: int = Query(default=100, ge=1, le=1000),
    session: Session = Depends(get_session),
):
    if status is not None and status not in MESSAGE_STATUSES:
        raise InvalidFilterError("Invalid status. Allowed values: " + ", ".join(MESSAGE_STATUSES))
    rows = NotificationQueue(session).list(status=status, limit=limit)
    return {"count": len(rows), "messages": [_serialize_message(row) for row in rows]}


@router.get("/notifications/dead-letters")
def list_dead_letters(
    limit: int = Query(default=100, ge=1, le=1000),
    session: Session = Depends(get_session),
):
    rows = NotificationQueue(session).list(status=STATUS_DEAD, limit=limit)
    return {"count": len(rows), "messages": [_serialize_message(row) for row in rows]}


@router.post("/notifications/{message_id}/requeue")
def requeue_notification(message_id: int, session: Session = Depends(get_session)):
    row = NotificationQueue(session).requeue(message_id, now=now_utc())
    if row is None:
        raise HTTPException(status_code=404, detail="dead-lettered message not found")
    return {"message": _serialize_message(row)}
