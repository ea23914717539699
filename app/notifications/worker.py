from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from app.api.utils import now_utc
from app.core.config import Settings, get_settings
from app.notifications.mailer import MailDeliveryError, Mailer, get_mailer
from app.notifications.queue import STATUS_DEAD, NotificationQueue, QueuedNotification
from app.notifications.templates import InvalidNotificationMessage, render_notification
from app.persistence.pg import session_scope

logger = logging.getLogger(__name__)

OUTCOME_SENT = "sent"
OUTCOME_RETRY = "retry"
OUTCOME_DEAD = "dead"


@dataclass
class WorkerRunStats:
    claimed: int = 0
    sent: int = 0
    retried: int = 0
    dead_lettered: int = 0

    def as_dict(self) -> dict[str, int]:
        return {
            "claimed": self.claimed,
            "sent": self.sent,
            "retried": self.retried,
            "dead_lettered": self.dead_lettered,
        }


class NotificationWorker:
    def __init__(
        self,
        mailer: Mailer | None = None,
        settings: Settings | None = None,
        clock: Callable[[], datetime] = now_utc,
    ):
        self.settings = settings or get_settings()
        self.mailer = mailer or get_mailer(self.settings)
        self.clock = clock

    def handle(self, message: QueuedNotification) -> None:
        if not message.to:
            raise InvalidNotificationMessage(f"message {message.message_id} has no recipient")
        rendered = render_notification(message.type, message.data)
        try:
            self.mailer.send(message.to, rendered.subject, rendered.body)
        except MailDeliveryError as exc:
            logger.error(
                "failed to send email notification: message_id=%s to=%s type=%s order_id=%s attempt=%s error=%s",
                message.message_id,
                message.to,
                message.type,
                message.order_id,
                message.attempts,
                exc,
            )
            raise
        logger.info(
            "email notification sent: message_id=%s to=%s type=%s subject=%r order_id=%s customer_name=%r",
            message.message_id,
            message.to,
            message.type,
            rendered.subject,
            message.order_id,
            message.data.get("customer_name"),
        )

    def process(self, message: QueuedNotification) -> str:
        try:
            self.handle(message)
        except MailDeliveryError as exc:
            with session_scope() as session:
                status = NotificationQueue(session).nack(
                    message.message_id,
                    error=str(exc),
                    now=self.clock(),
                    max_attempts=self.settings.notification_max_attempts,
                    retry_delay_seconds=self.settings.notification_retry_delay_seconds,
                )
            if status == STATUS_DEAD:
                logger.error(
                    "notification moved to dead letters: message_id=%s order_id=%s attempts=%s",
                    message.message_id,
                    message.order_id,
                    message.attempts,
                )
                return OUTCOME_DEAD
            return OUTCOME_RETRY
        except InvalidNotificationMessage as exc:
            logger.error(
                "undeliverable notification moved to dead letters: message_id=%s type=%s order_id=%s error=%s",
                message.message_id,
                message.type,
                message.order_id,
                exc,
            )
            with session_scope() as session:
                NotificationQueue(session).dead_letter(message.message_id, error=str(exc), now=self.clock())
            return OUTCOME_DEAD

        with session_scope() as session:
            NotificationQueue(session).ack(message.message_id, now=self.clock())
        return OUTCOME_SENT

    def run_once(self) -> WorkerRunStats:
        with session_scope() as session:
            messages = NotificationQueue(session).claim(
                limit=self.settings.worker_batch_size,
                now=self.clock(),
                lease_seconds=self.settings.worker_lease_seconds,
            )

        stats = WorkerRunStats(claimed=len(messages))
        if not messages:
            return stats

        concurrency = min(self.settings.worker_concurrency, len(messages))
        if concurrency > 1:
            with ThreadPoolExecutor(max_workers=concurrency) as pool:
                outcomes = list(pool.map(self.process, messages))
        else:
            outcomes = [self.process(message) for message in messages]

        for outcome in outcomes:
            if outcome == OUTCOME_SENT:
                stats.sent += 1
            elif outcome == OUTCOME_RETRY:
                stats.retried += 1
            else:
                stats.dead_lettered += 1
        logger.info(
            "notification batch done: claimed=%s sent=%s retried=%s dead_lettered=%s",
            stats.claimed,
            stats.sent,
            stats.retried,
            stats.dead_lettered,
        )
        return stats

    def run_forever(self, stop_event: threading.Event | None = None) -> None:
        stop_event = stop_event or threading.Event()
        logger.info(
            "notification worker started: batch_size=%s concurrency=%s poll_interval=%s",
            self.settings.worker_batch_size,
            self.settings.worker_concurrency,
            self.settings.worker_poll_interval_seconds,
        )
        while not stop_event.is_set():
            try:
                stats = self.run_once()
            except Exception:
                # Claimed messages stay leased and are redelivered after the lease expires.
                logger.exception("notification worker iteration failed")
                stats = WorkerRunStats()
            if stats.claimed == 0:
                stop_event.wait(self.settings.worker_poll_interval_seconds)
        logger.info("notification worker stopped")
