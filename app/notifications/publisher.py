from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable

from sqlalchemy.exc import SQLAlchemyError

from app.api.utils import now_utc
from app.domain.orders.notifications import NotificationIntent
from app.notifications.queue import EnqueueError, NotificationQueue
from app.persistence.pg import session_scope

logger = logging.getLogger(__name__)


class NotificationPublisher:
    """Hands notification intents to the queue, best-effort.

    Enqueueing runs in its own transaction so that a queue failure can never
    roll back the order change that triggered it.
    """

    def __init__(self, clock: Callable[[], datetime] = now_utc):
        self.clock = clock

    def publish(self, intent: NotificationIntent) -> bool:
        order_id = intent.data.order_id
        try:
            with session_scope() as session:
                row = NotificationQueue(session).enqueue(intent, now=self.clock())
                message_id = row.id
        except (EnqueueError, SQLAlchemyError) as exc:
            logger.error(
                "failed to enqueue email notification: order_id=%s type=%s error=%s",
                order_id,
                intent.type,
                exc,
            )
            return False
        logger.info(
            "email notification queued: message_id=%s order_id=%s type=%s",
            message_id,
            order_id,
            intent.type,
        )
        return True
