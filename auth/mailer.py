"""
auth/mailer.py -- Outbound email for password-reset codes.

SmtpMailer is the notification sink used by AuthService.request_reset. send()
either returns after the relay has accepted the message or raises
DeliveryFailed; there is no background queue and no automatic retry.

When SMTP_HOST is empty:
  - DEBUG=true: the message is written to the log instead of being sent, so a
    developer can complete a reset locally.
  - otherwise: DeliveryFailed, because a reset code nobody receives is a
    silent failure.
"""

from __future__ import annotations

import logging
import smtplib
from email.message import EmailMessage

from auth.errors import DeliveryFailed

logger = logging.getLogger("agentdesk.mail")


class SmtpMailer:
    """Send plain-text mail through an SMTP relay."""

    def __init__(
        self,
        host: str,
        port: int = 587,
        username: str = "",
        password: str = "",
        use_tls: bool = True,
        sender: str = "no-reply@agentdesk.local",
        timeout: float = 10.0,
        debug: bool = False,
    ) -> None:
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.sender = sender
        self.timeout = timeout
        self.debug = debug

    @classmethod
    def from_settings(cls, settings) -> SmtpMailer:
        return cls(
            host=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_username,
            password=settings.smtp_password,
            use_tls=settings.smtp_use_tls,
            sender=settings.mail_from,
            timeout=settings.smtp_timeout_seconds,
            debug=settings.debug,
        )

    def send(self, to: str, subject: str, body: str) -> None:
        """Deliver one message. Raises DeliveryFailed on any relay or network error."""
        if not self.host:
            if self.debug:
                logger.warning("SMTP not configured; mail to %s not sent. Subject: %s\n%s", to, subject, body)
                return
            raise DeliveryFailed("Outbound mail is not configured.")

        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = self.sender
        msg["To"] = to
        msg.set_content(body)

        try:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
                if self.use_tls:
                    server.starttls()
                if self.username:
                    server.login(self.username, self.password)
                server.send_message(msg)
        except (smtplib.SMTPException, OSError) as exc:
            logger.error("Mail delivery to %s failed: %s", to, exc)
            raise DeliveryFailed() from exc
        logger.info("Mail delivered to %s (%s)", to, subject)
