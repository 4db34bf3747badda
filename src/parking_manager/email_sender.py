"""Outbound email backends for OTP, approval and rejection notifications."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from functools import lru_cache
import logging
import smtplib

from parking_manager.config import Settings, get_settings
from parking_manager.errors import EmailDeliveryFailed

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OutgoingEmail:
    to: str
    subject: str
    html: str
    sent_at: str


def _wrap_html(title: str, body: str) -> str:
    return f"""
    <html>
    <body style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
        <div style="background-color: #1f6feb; color: white; padding: 20px; text-align: center;">
            <h1>{title}</h1>
        </div>
        <div style="padding: 20px; background-color: #f9f9f9;">
            {body}
            <p style="color: #666; font-size: 12px; margin-top: 20px;">
                This is an automated message. Please do not reply to this email.
            </p>
        </div>
    </body>
    </html>
    """


class EmailSender(ABC):
    @abstractmethod
    def deliver(self, to: str, subject: str, html: str) -> None:
        """Send one HTML message or raise EmailDeliveryFailed."""

    def send_otp_email(self, to: str, otp_code: str) -> None:
        body = (
            f"<p>Your verification code is <strong>{otp_code}</strong>.</p>"
            "<p>Enter it in the app to activate your account.</p>"
        )
        self.deliver(to, "Your parking account verification code", _wrap_html("Verify your email", body))

    def send_approval_email(self, to: str, slot_number: str, plate_number: str, location: str | None) -> None:
        body = (
            f"<p>Your parking request for vehicle <strong>{plate_number}</strong> was approved.</p>"
            f"<p><strong>Slot:</strong> {slot_number}</p>"
            f"<p><strong>Location:</strong> {location or 'unknown'}</p>"
        )
        self.deliver(to, f"Parking slot approved - {plate_number}", _wrap_html("Request approved", body))

    def send_rejection_email(self, to: str, plate_number: str, location: str, reason: str) -> None:
        body = (
            f"<p>Your parking request for vehicle <strong>{plate_number}</strong> was rejected.</p>"
            f"<p><strong>Location:</strong> {location}</p>"
            f"<p><strong>Reason:</strong> {reason}</p>"
        )
        self.deliver(to, f"Parking request rejected - {plate_number}", _wrap_html("Request rejected", body))


class SmtpEmailSender(EmailSender):
    def __init__(self, settings: Settings) -> None:
        if not settings.smtp_host:
            raise ValueError("SMTP_HOST is required for the smtp email backend")
        self.settings = settings

    def deliver(self, to: str, subject: str, html: str) -> None:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = self.settings.mail_from
        msg["To"] = to
        msg.attach(MIMEText(html, "html"))

        try:
            with smtplib.SMTP(self.settings.smtp_host, self.settings.smtp_port, timeout=20) as server:
                if self.settings.smtp_use_tls:
                    server.starttls()
                if self.settings.smtp_username:
                    server.login(self.settings.smtp_username, self.settings.smtp_password or "")
                server.send_message(msg)
        except (smtplib.SMTPException, OSError) as exc:
            logger.error("Email to %s failed: %s", to, exc)
            raise EmailDeliveryFailed(details=str(exc)) from exc

        logger.info("Email sent to %s: %s", to, subject)


class InMemoryEmailSender(EmailSender):
    """Collects messages in an outbox instead of sending them."""

    def __init__(self) -> None:
        self.outbox: list[OutgoingEmail] = []
        self.fail_deliveries = False

    def deliver(self, to: str, subject: str, html: str) -> None:
        if self.fail_deliveries:
            logger.error("Email to %s failed: delivery disabled", to)
            raise EmailDeliveryFailed(details="delivery disabled")
        self.outbox.append(
            OutgoingEmail(
                to=to,
                subject=subject,
                html=html,
                sent_at=datetime.now(timezone.utc).isoformat(),
            )
        )
        logger.info("Email queued in memory for %s: %s", to, subject)


IN_MEMORY_EMAIL_SENDER = InMemoryEmailSender()


@lru_cache(maxsize=1)
def get_email_sender() -> EmailSender:
    settings = get_settings()
    if settings.email_backend == "smtp":
        return SmtpEmailSender(settings)
    return IN_MEMORY_EMAIL_SENDER
