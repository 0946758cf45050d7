"""
Stage Notification Emails - templates and SMTP delivery.
"""

import asyncio
from dataclasses import dataclass
from email.message import EmailMessage
from typing import Optional, Protocol, Sequence

import aiosmtplib
import structlog

from gong_notifier.core.errors import EmailTransportError
from gong_notifier.core.schemas import StageStateChange
from gong_notifier.core.notifier.transitions import Transition

logger = structlog.get_logger()


@dataclass(frozen=True)
class EmailContent:
    """Rendered notification email."""
    subject: str
    body: str


class EmailTemplates:
    """
    Email template definitions.

    One template per transition that is worth an email.
    """

    def __init__(self, server_url: str):
        self.server_url = server_url.rstrip("/")

    def stage_url(self, event: StageStateChange) -> str:
        return (
            f"{self.server_url}/pipelines/{event.pipeline_name}/{event.pipeline_counter}"
            f"/{event.stage_name}/{event.stage_counter}"
        )

    def _label(self, event: StageStateChange) -> str:
        return f"{event.pipeline_name}/{event.pipeline_counter}/{event.stage_name}/{event.stage_counter}"

    def failed(self, event: StageStateChange) -> EmailContent:
        """Stage failed again, or failed on its first run."""
        return EmailContent(
            subject=f"Stage [{self._label(event)}] failed",
            body=(
                f"Stage {event.stage_name} of pipeline {event.pipeline_name} failed "
                f"in run {event.pipeline_counter}.\n\n"
                f"Details: {self.stage_url(event)}\n"
            ),
        )

    def broken(self, event: StageStateChange) -> EmailContent:
        """Stage passed last time and fails now."""
        return EmailContent(
            subject=f"Stage [{self._label(event)}] is broken",
            body=(
                f"Stage {event.stage_name} of pipeline {event.pipeline_name} was passing "
                f"and is now failing in run {event.pipeline_counter}.\n"
                f"One of the changes in this run probably broke it.\n\n"
                f"Details: {self.stage_url(event)}\n"
            ),
        )

    def fixed(self, event: StageStateChange) -> EmailContent:
        """Stage failed last time and passes now."""
        return EmailContent(
            subject=f"Stage [{self._label(event)}] is fixed",
            body=(
                f"Stage {event.stage_name} of pipeline {event.pipeline_name} is passing "
                f"again in run {event.pipeline_counter}.\n\n"
                f"Details: {self.stage_url(event)}\n"
            ),
        )

    def render(self, transition: Transition, event: StageStateChange) -> Optional[EmailContent]:
        """Render the email for a transition, None when the transition sends no email."""
        templates = {
            Transition.FAILED: self.failed,
            Transition.BROKEN: self.broken,
            Transition.FIXED: self.fixed,
        }
        template = templates.get(transition)
        return template(event) if template else None


class EmailSender(Protocol):
    async def send(self, recipients: Sequence[str], subject: str, body: str) -> None:
        ...


class SmtpEmailSender:
    """
    Email delivery over plain SMTP.

    Every send opens its own connection, so the sender holds no state
    between notifications.
    """

    def __init__(self, host: str, port: int, sender: str, timeout: float = 15.0):
        self.host = host
        self.port = port
        self.sender = sender
        self.timeout = timeout

    def build_message(self, recipients: Sequence[str], subject: str, body: str) -> EmailMessage:
        message = EmailMessage()
        message["From"] = self.sender
        message["To"] = ", ".join(recipients)
        message["Subject"] = subject
        message.set_content(body)
        return message

    async def send(self, recipients: Sequence[str], subject: str, body: str) -> None:
        """
        Send one email.

        Raises:
            EmailTransportError: Connection refused, SMTP error or timeout
        """
        message = self.build_message(recipients, subject, body)
        logger.info("email_sending", subject=subject, recipients=len(recipients), smtp_host=self.host)
        try:
            await aiosmtplib.send(
                message,
                hostname=self.host,
                port=self.port,
                timeout=self.timeout,
            )
        except (aiosmtplib.SMTPException, OSError, asyncio.TimeoutError) as e:
            logger.error("email_send_failed", subject=subject, smtp_host=self.host, error=str(e))
            raise EmailTransportError(f"Sending {subject!r} via {self.host}:{self.port} failed: {e}") from e
