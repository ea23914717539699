from __future__ import annotations

import asyncio
import logging
import threading
from email.message import EmailMessage
from uuid import uuid4

import aiosmtplib

from app.core.config import Settings, get_settings

logger = logging.getLogger(__name__)


class MailDeliveryError(RuntimeError):
    """Transient send failure; the queue should redeliver the message."""


class Mailer:
    def send(self, to: str, subject: str, body: str) -> str:
        """Deliver a plain-text message and return a message id."""
        raise NotImplementedError


class SmtpMailer(Mailer):
    def __init__(
        self,
        host: str,
        port: int,
        sender: str,
        username: str | None = None,
        password: str | None = None,
        start_tls: bool = False,
        timeout_seconds: int = 10,
    ):
        self.host = host
        self.port = port
        self.sender = sender
        self.username = username
        self.password = password
        self.start_tls = start_tls
        self.timeout_seconds = timeout_seconds

    @classmethod
    def from_settings(cls, settings: Settings) -> "SmtpMailer":
        return cls(
            host=settings.smtp_host,
            port=settings.smtp_port,
            sender=settings.mail_from,
            username=settings.smtp_username,
            password=settings.smtp_password,
            start_tls=settings.smtp_start_tls,
            timeout_seconds=settings.smtp_timeout_seconds,
        )

    def _build_message(self, to: str, subject: str, body: str) -> EmailMessage:
        message = EmailMessage()
        message["From"] = self.sender
        message["To"] = to
        message["Subject"] = subject
        message["Message-ID"] = f"<{uuid4().hex}@{self.sender.rpartition('@')[2] or 'localhost'}>"
        message.set_content(body)
        return message

    def send(self, to: str, subject: str, body: str) -> str:
        message = self._build_message(to, subject, body)
        try:
            asyncio.run(
                aiosmtplib.send(
                    message,
                    hostname=self.host,
                    port=self.port,
                    username=self.username,
                    password=self.password,
                    start_tls=self.start_tls,
                    timeout=self.timeout_seconds,
                )
            )
        except (aiosmtplib.SMTPException, OSError, asyncio.TimeoutError) as exc:
            raise MailDeliveryError(f"smtp delivery to {to} failed: {exc}") from exc
        return str(message["Message-ID"])


class InMemoryMailer(Mailer):
    """Records messages instead of sending them; used in dev and tests."""

    def __init__(self):
        self.sent: list[dict[str, str]] = []
        self.should_fail = False
        self.failure_reason = "mail delivery failed"
        self._lock = threading.Lock()

    def configure(self, should_fail: bool = False, failure_reason: str = "mail delivery failed") -> None:
        self.should_fail = should_fail
        self.failure_reason = failure_reason

    def send(self, to: str, subject: str, body: str) -> str:
        if self.should_fail:
            raise MailDeliveryError(self.failure_reason)
        message_id = f"mem-{uuid4().hex[:12]}"
        with self._lock:
            self.sent.append({"message_id": message_id, "to": to, "subject": subject, "body": body})
        return message_id

    def reset(self) -> None:
        with self._lock:
            self.sent.clear()
        self.should_fail = False


_mailer_instance: Mailer | None = None


def get_mailer(settings: Settings | None = None) -> Mailer:
    global _mailer_instance
    if _mailer_instance is None:
        settings = settings or get_settings()
        if settings.mail_backend == "memory":
            _mailer_instance = InMemoryMailer()
        elif settings.mail_backend == "smtp":
            _mailer_instance = SmtpMailer.from_settings(settings)
        else:
            raise ValueError(f"unsupported mail_backend: {settings.mail_backend}")
        logger.info("mail backend ready: backend=%s", settings.mail_backend)
    return _mailer_instance


def set_mailer(mailer: Mailer | None) -> None:
    global _mailer_instance
    _mailer_instance = mailer
