"""
Email delivery for verification codes.

The transport is an external collaborator: the registration flow only relies
on ``send_verification_email(pending, is_resend) -> DeliveryResult`` and never
treats a failed delivery as fatal.
"""
import abc
import asyncio
import logging
import smtplib
import socket
import ssl
import time
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import List, Optional, Tuple

from ..config import Settings, settings
from .schemas import DeliveryResult, EmailPreview, PendingVerification

# Set up logging
logger = logging.getLogger(__name__)

# Connection timeout settings
SMTP_TIMEOUT = 30  # 30 seconds timeout
MAX_RETRIES = 3
RETRY_DELAY = 2  # 2 seconds between retries

def build_verification_email(pending: PendingVerification, is_resend: bool = False) -> EmailPreview:
    """
    Render the verification email for a pending registration.

    Args:
        pending: Registration awaiting confirmation
        is_resend: Whether this replaces an earlier code

    Returns:
        EmailPreview with recipient, subject and plain text body
    """
    account = pending.account
    subject = "Screening Access - New verification code" if is_resend else "Screening Access - Email verification"
    lines = [
        f"Hello {account.name},",
        "",
        "Your new verification code is:" if is_resend else "Thank you for registering. Your verification code is:",
        "",
        f"    {pending.code}",
        "",
        f"The code expires at {pending.expires_at.strftime('%H:%M UTC on %B %d, %Y')}.",
        "",
        "Account details:",
        f"  Name: {account.name}",
        f"  Email: {account.email}",
        f"  Specialty: {account.specialty or 'Not specified'}",
        f"  Clinic: {account.clinic or 'Not specified'}",
        f"  Registration date: {account.registered_at.strftime('%d.%m.%Y')}",
        "",
        "If you did not request this code, please ignore this email.",
    ]
    return EmailPreview(to=account.email, subject=subject, body="\n".join(lines))


class EmailTransport(abc.ABC):
    """Interface of a verification email transport."""

    @abc.abstractmethod
    async def send_verification_email(self, pending: PendingVerification, is_resend: bool = False) -> DeliveryResult:
        """Deliver the code for ``pending``; failures are reported, not raised."""


class UnconfiguredEmailTransport(EmailTransport):
    """Used when no SMTP settings are present. Every delivery reports failure."""

    async def send_verification_email(self, pending: PendingVerification, is_resend: bool = False) -> DeliveryResult:
        logger.warning("Email configuration is incomplete, verification email not sent")
        return DeliveryResult(success=False, error="Email configuration is incomplete")


class RecordingEmailTransport(EmailTransport):
    """
    Keeps every message in an outbox instead of sending it.

    Useful for local development and tests; ``fail_with`` makes it report
    a delivery failure.
    """

    def __init__(self, fail_with: Optional[str] = None):
        self.outbox: List[Tuple[EmailPreview, bool]] = []
        self.fail_with = fail_with

    async def send_verification_email(self, pending: PendingVerification, is_resend: bool = False) -> DeliveryResult:
        message = build_verification_email(pending, is_resend)
        if self.fail_with:
            return DeliveryResult(success=False, error=self.fail_with)
        self.outbox.append((message, is_resend))
        return DeliveryResult(success=True)

    @property
    def last_message(self) -> Optional[EmailPreview]:
        return self.outbox[-1][0] if self.outbox else None


class SmtpEmailTransport(EmailTransport):
    """Sends verification emails through SMTP with STARTTLS and retry logic."""

    def __init__(self, config: Settings = settings):
        self.config = config

    async def send_verification_email(self, pending: PendingVerification, is_resend: bool = False) -> DeliveryResult:
        message = build_verification_email(pending, is_resend)
        try:
            await asyncio.to_thread(self._send, message)
        except Exception as e:
            return DeliveryResult(success=False, error=str(e))
        return DeliveryResult(success=True)

    def _send(self, message: EmailPreview) -> None:
        """
        Deliver one message, retrying transient connection failures.

        Raises:
            Exception: If email sending fails after all retries
        """
        msg = MIMEMultipart()
        msg["From"] = self.config.mail_from
        msg["To"] = message.to
        msg["Subject"] = message.subject
        msg.attach(MIMEText(message.body, "plain"))

        last_exception = None

        for attempt in range(1, MAX_RETRIES + 1):
            try:
                logger.info(f"Email send attempt {attempt}/{MAX_RETRIES} to {message.to}")
                context = ssl.create_default_context()

                with smtplib.SMTP(self.config.mail_server, self.config.mail_port, timeout=SMTP_TIMEOUT) as server:
                    server.ehlo()
                    if self.config.mail_starttls:
                        server.starttls(context=context)
                        server.ehlo()
                    if self.config.mail_username:
                        server.login(self.config.mail_username, self.config.mail_password or "")
                    server.send_message(msg)

                logger.info(f"Email sent successfully to {message.to} on attempt {attempt}")
                return

            except smtplib.SMTPAuthenticationError as e:
                logger.error(f"SMTP Authentication failed on attempt {attempt}: {str(e)}")
                last_exception = e
                break  # Don't retry authentication errors

            except smtplib.SMTPRecipientsRefused as e:
                logger.error(f"SMTP Recipients refused on attempt {attempt}: {str(e)}")
                last_exception = e
                break  # Don't retry recipient errors

            except (smtplib.SMTPServerDisconnected, smtplib.SMTPConnectError, socket.timeout, OSError) as e:
                logger.warning(f"SMTP connection error on attempt {attempt}: {str(e)}")
                last_exception = e
                if attempt < MAX_RETRIES:
                    logger.info(f"Retrying in {RETRY_DELAY} seconds...")
                    time.sleep(RETRY_DELAY)

        error_msg = f"Failed to send email after {attempt} attempt(s). Last error: {str(last_exception)}"
        logger.error(error_msg)
        raise Exception(error_msg)


def email_configured(config: Settings = settings) -> bool:
    """
    Validates that the required email configuration variables are set.

    Returns:
        bool: True if all required config is present, False otherwise
    """
    return bool(config.mail_server and config.mail_from)

def build_email_transport(config: Settings = settings) -> EmailTransport:
    """Pick the SMTP transport when mail settings exist, otherwise the fallback one."""
    if email_configured(config):
        return SmtpEmailTransport(config)
    logger.info("Mail server not configured; verification emails fall back to on-screen preview")
    return UnconfiguredEmailTransport()
