# src/services/mailer.py

"""SMTP e-mail delivery for price-drop alerts."""

import logging
import smtplib
from email.mime.text import MIMEText
from typing import Protocol

from src.config.settings import Settings

logger = logging.getLogger("pricepulse.mailer")


class Mailer(Protocol):
    """The e-mail capability consumed by the alert notifier."""

    def send(self, to: str, subject: str, body: str) -> bool: ...


class SmtpMailer:
    """Sends plain-text mail through an authenticated STARTTLS server."""

    def __init__(
        self,
        server: str | None = None,
        port: int | None = None,
        user: str | None = None,
        password: str | None = None,
        sender: str | None = None,
        timeout: float | None = None,
    ) -> None:
        self.server = server or Settings.SMTP_SERVER
        self.port = port or Settings.SMTP_PORT
        self.user = user if user is not None else Settings.EMAIL_USER
        self.password = (
            password if password is not None else Settings.EMAIL_PASSWORD
        )
        self.sender = sender or Settings.EMAIL_FROM or self.user
        self.timeout = timeout or Settings.SMTP_TIMEOUT

        # Align From with Gmail auth to avoid rewrites/blocks.
        if "gmail" in self.server.lower() and self.user:
            self.sender = self.user

    @property
    def configured(self) -> bool:
        """True when credentials and a sender address are set."""
        return bool(self.sender and self.user and self.password)

    def send(self, to: str, subject: str, body: str) -> bool:
        """Send one message. Returns False (and logs) on any failure."""
        if not self.configured:
            logger.error(
                "Email credentials not configured; set EMAIL_USER, "
                "EMAIL_PASSWORD and EMAIL_FROM"
            )
            return False

        msg = MIMEText(body, "plain", "utf-8")
        msg["Subject"] = subject
        msg["From"] = self.sender
        msg["To"] = to

        try:
            with smtplib.SMTP(
                self.server, self.port, timeout=self.timeout,
            ) as smtp:
                smtp.starttls()
                smtp.login(self.user, self.password)
                smtp.sendmail(self.sender, [to], msg.as_string())
        except (smtplib.SMTPException, OSError) as exc:
            logger.error(
                "Failed to send email to %s: %s", to, exc, exc_info=True,
            )
            return False

        logger.info("Email sent to %s: %s", to, subject)
        return True
