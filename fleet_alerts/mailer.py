"""SMTP delivery for email notifications (blocking; run via asyncio.to_thread)."""

from __future__ import annotations

import logging
import smtplib
from email.mime.text import MIMEText
from email.utils import formataddr

from . import config
from .errors import DeliveryError

logger = logging.getLogger(__name__)


class SmtpMailer:
    def __init__(
        self,
        host: str,
        port: int = 587,
        username: str | None = None,
        password: str | None = None,
        starttls: bool = True,
        sender_address: str = "alerts@localhost",
        sender_name: str = "",
        timeout: float = 10.0,
    ) -> None:
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.starttls = starttls
        self.sender_address = sender_address
        self.sender_name = sender_name
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings: config.Settings) -> "SmtpMailer | None":
        if not settings.SMTP_HOST:
            return None
        return cls(
            host=settings.SMTP_HOST,
            port=settings.SMTP_PORT,
            username=settings.SMTP_USER,
            password=settings.SMTP_PASS,
            starttls=settings.SMTP_STARTTLS,
            sender_address=settings.SMTP_SENDER_ADDRESS,
            sender_name=settings.SMTP_SENDER_NAME,
            timeout=settings.NOTIFY_TIMEOUT_S,
        )

    def build_message(self, to: list[str], subject: str, body: str) -> MIMEText:
        msg = MIMEText(body, "plain", "utf-8")
        msg["Subject"] = subject
        msg["From"] = formataddr((self.sender_name, self.sender_address))
        msg["To"] = ", ".join(to)
        return msg

    def send(self, to: list[str], subject: str, body: str) -> None:
        """Send one message addressed to every recipient."""
        msg = self.build_message(to, subject, body)
        try:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
                if self.starttls:
                    server.starttls()
                if self.username and self.password:
                    server.login(self.username, self.password)
                server.sendmail(self.sender_address, to, msg.as_string())
        except (smtplib.SMTPException, OSError) as exc:
            raise DeliveryError(f"smtp delivery failed: {exc}") from exc
        logger.info("Sent email alert to=%s subject=%s", to, subject)
