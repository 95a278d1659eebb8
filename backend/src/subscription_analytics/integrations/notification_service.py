"""Email delivery for analytics reports."""
import asyncio
import smtplib
from email.message import EmailMessage
from typing import Optional, Sequence

import structlog

from subscription_analytics.exceptions import ReportDeliveryError

logger = structlog.get_logger(__name__)


class NotificationService:
    """
    Send plaintext email through an SMTP relay.

    The SMTP conversation is blocking and runs in a worker thread; callers
    still wait for it to finish.
    """

    def __init__(
        self,
        host: str,
        port: int = 587,
        username: Optional[str] = None,
        password: Optional[str] = None,
        use_tls: bool = True,
        from_email: str = "analytics@localhost",
        from_name: Optional[str] = None,
        timeout: float = 30.0,
    ):
        """
        Initialize notification service.

        Args:
            host: SMTP relay host
            port: SMTP relay port
            username: Login user (skips login when None)
            password: Login password
            use_tls: Issue STARTTLS before login
            from_email: Sender address
            from_name: Sender display name
            timeout: Socket timeout in seconds
        """
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.from_email = from_email
        self.from_name = from_name
        self.timeout = timeout

    def _build_message(self, to: Sequence[str], subject: str, body: str) -> EmailMessage:
        message = EmailMessage()
        message["Subject"] = subject
        message["From"] = f"{self.from_name} <{self.from_email}>" if self.from_name else self.from_email
        message["To"] = ", ".join(to)
        message.set_content(body, charset="utf-8")
        return message

    def _deliver(self, message: EmailMessage) -> None:
        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as smtp:
            if self.use_tls:
                smtp.starttls()
            if self.username:
                smtp.login(self.username, self.password or "")
            smtp.send_message(message)

    async def send_email(self, to: Sequence[str], subject: str, body: str) -> dict:
        """
        Send a plaintext email.

        Args:
            to: Recipient addresses
            subject: Email subject
            body: Plaintext body

        Returns:
            Dictionary with send status

        Raises:
            ReportDeliveryError: If the relay rejected the message or was unreachable
        """
        message = self._build_message(to, subject, body)

        try:
            await asyncio.to_thread(self._deliver, message)
        except (smtplib.SMTPException, OSError) as e:
            logger.error("email_delivery_failed", to=list(to), subject=subject, error=str(e))
            raise ReportDeliveryError(f"Failed to send email: {e}") from e

        logger.info("email_sent", to=list(to), subject=subject)
        return {
            "status": "sent",
            "to": list(to),
            "subject": subject,
        }
