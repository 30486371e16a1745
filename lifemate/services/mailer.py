# lifemate/services/mailer.py
"""
Outbound email over SMTP.

smtplib is blocking, so `send` hands the whole conversation to the default
executor; the SMTP socket timeout bounds how long a request can wait.
"""
import asyncio
import logging
import smtplib
from email.message import EmailMessage
from email.utils import make_msgid
from functools import partial
from typing import Optional

from lifemate.core.config import Settings

logger = logging.getLogger(__name__)


class MailDeliveryError(Exception):
    pass


class MailerAuthError(MailDeliveryError):
    """Credentials are missing or were rejected by the SMTP server."""


class SmtpMailer:
    def __init__(self, settings: Settings):
        self.host = settings.EMAIL_HOST
        self.port = settings.EMAIL_PORT
        self.username = (settings.EMAIL_USER or "").strip()
        # app passwords are often pasted with spaces
        self.password = "".join((settings.EMAIL_PASS or "").split())
        self.sender = f"{settings.EMAIL_FROM_NAME} <{settings.EMAIL_FROM}>"
        self.timeout = settings.SMTP_TIMEOUT_SECONDS

    def _build(self, to: str, subject: str, html: str, text: Optional[str]) -> EmailMessage:
        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = self.sender
        msg["To"] = to
        msg["Message-ID"] = make_msgid(domain=self.sender.rsplit("@", 1)[-1].rstrip(">"))
        msg.set_content(text or "This message requires an HTML capable email client.")
        msg.add_alternative(html, subtype="html")
        return msg

    def _send_blocking(self, msg: EmailMessage) -> None:
        if self.port == 465:
            server = smtplib.SMTP_SSL(self.host, self.port, timeout=self.timeout)
        else:
            server = smtplib.SMTP(self.host, self.port, timeout=self.timeout)
        with server:
            if self.port != 465:
                server.starttls()
            server.login(self.username, self.password)
            server.send_message(msg)

    async def send(self, to: str, subject: str, html: str, text: Optional[str] = None) -> str:
        """Deliver one message; returns its Message-ID."""
        if not self.username or not self.password:
            raise MailerAuthError("EMAIL_USER and EMAIL_PASS must be configured for sending emails.")
        msg = self._build(to, subject, html, text)
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, partial(self._send_blocking, msg))
        except smtplib.SMTPAuthenticationError as exc:
            logger.error("SMTP auth failed for %s", self.username)
            raise MailerAuthError(str(exc)) from exc
        except (smtplib.SMTPException, OSError) as exc:
            logger.error("SMTP delivery to %s failed: %r", to, exc)
            raise MailDeliveryError(str(exc)) from exc
        logger.info("Email %r sent to %s", subject, to)
        return msg["Message-ID"]
