"""SMTP mail transport.

One :class:`SmtpMailTransport` is built at startup and shared by every job.
Each send opens its own SMTP session in a worker thread so the event loop
keeps serving other jobs while the message is on the wire. Delivery failures
raise :class:`SendError`; retrying is left to the job queue.

Safety: recipient addresses are never logged.
"""
from __future__ import annotations

import asyncio
import logging
import smtplib
from dataclasses import dataclass, field
from email.mime.application import MIMEApplication
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from functools import lru_cache
from pathlib import Path
from string import Template
from typing import Protocol

from notification_service.core.errors import SendError

logger = logging.getLogger(__name__)

TEMPLATE_DIR = Path(__file__).parent / "templates"


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Attachment:
    filename: str
    content: bytes
    content_type: str = "application/octet-stream"


@dataclass(frozen=True)
class OutgoingMessage:
    from_addr: str
    to: str
    subject: str
    html: str
    attachments: list[Attachment] = field(default_factory=list)


class MailTransport(Protocol):
    async def send(self, message: OutgoingMessage) -> None: ...


# ---------------------------------------------------------------------------
# Template rendering
# ---------------------------------------------------------------------------

@lru_cache(maxsize=None)
def _load_template(name: str) -> str:
    path = TEMPLATE_DIR / name
    if not path.is_file():
        raise FileNotFoundError(f"No email template {name!r} in {TEMPLATE_DIR}")
    return path.read_text(encoding="utf-8")


def render_email(title: str, content: str) -> str:
    """Wrap *content* (already HTML) in the branded email layout."""
    return Template(_load_template("default_email.html")).safe_substitute(
        title=title,
        content=content,
    )


def build_mime(message: OutgoingMessage) -> MIMEMultipart:
    msg = MIMEMultipart("mixed")
    msg["Subject"] = message.subject
    msg["From"] = message.from_addr
    msg["To"] = message.to

    body_part = MIMEMultipart("alternative")
    body_part.attach(MIMEText(message.html, "html", "utf-8"))
    msg.attach(body_part)

    for attachment in message.attachments:
        _, _, subtype = attachment.content_type.partition("/")
        part = MIMEApplication(attachment.content, _subtype=subtype or "octet-stream")
        part.add_header("Content-Disposition", "attachment", filename=attachment.filename)
        msg.attach(part)
    return msg


# ---------------------------------------------------------------------------
# SmtpMailTransport
# ---------------------------------------------------------------------------

class SmtpMailTransport:
    """Send :class:`OutgoingMessage` objects through an SMTP relay."""

    def __init__(
        self,
        smtp_host: str,
        smtp_port: int = 587,
        *,
        username: str = "",
        password: str = "",
        use_tls: bool = True,
        timeout_s: float = 30.0,
    ) -> None:
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.timeout_s = timeout_s

    def _send_sync(self, message: OutgoingMessage) -> None:
        msg = build_mime(message)
        with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=self.timeout_s) as server:
            if self.use_tls:
                server.starttls()
            if self.username:
                server.login(self.username, self.password)
            server.sendmail(message.from_addr, [message.to], msg.as_string())

    async def send(self, message: OutgoingMessage) -> None:
        try:
            await asyncio.to_thread(self._send_sync, message)
        except (smtplib.SMTPException, OSError) as exc:
            raise SendError(f"SMTP delivery failed: {exc}") from exc
        logger.info(
            "Delivered message %r (%d attachment(s))", message.subject, len(message.attachments)
        )
