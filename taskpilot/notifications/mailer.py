from __future__ import annotations

from dataclasses import dataclass
from email.message import EmailMessage
from html import escape
from typing import Protocol

import aiosmtplib

from taskpilot.core.config import Settings
from taskpilot.core.logging import get_logger

logger = get_logger("taskpilot.notifications")

PASSWORD_RESET_SUBJECT = "Reset Password Notification"


class MailDeliveryError(RuntimeError):
    """Raised when an outgoing message cannot be handed to the mail server."""


@dataclass(frozen=True, slots=True)
class MailMessage:
    to: str
    subject: str
    text_body: str
    html_body: str | None = None


class MailSender(Protocol):
    async def send(self, message: MailMessage) -> None: ...


class LogMailSender:
    """Delivery stand-in used when no SMTP host is configured."""

    async def send(self, message: MailMessage) -> None:
        logger.info(
            "mail.logged",
            to=message.to,
            subject=message.subject,
            body=message.text_body,
        )


class SmtpMailSender:
    def __init__(
        self,
        *,
        hostname: str,
        port: int,
        sender: str,
        username: str | None = None,
        password: str | None = None,
        use_tls: bool = False,
        timeout_s: float = 30.0,
    ) -> None:
        self._hostname = hostname
        self._port = port
        self._sender = sender
        self._username = username
        self._password = password
        self._use_tls = use_tls
        self._timeout_s = timeout_s

    async def send(self, message: MailMessage) -> None:
        email = EmailMessage()
        email["From"] = self._sender
        email["To"] = message.to
        email["Subject"] = message.subject
        email.set_content(message.text_body)
        if message.html_body is not None:
            email.add_alternative(message.html_body, subtype="html")

        try:
            async with aiosmtplib.SMTP(
                hostname=self._hostname,
                port=self._port,
                username=self._username,
                password=self._password,
                use_tls=self._use_tls,
                timeout=self._timeout_s,
            ) as smtp:
                await smtp.send_message(email)
        except aiosmtplib.SMTPException as exc:
            logger.error("mail.send_failed", to=message.to, subject=message.subject)
            raise MailDeliveryError(f"Failed to send email: {exc}") from exc
        logger.info("mail.sent", to=message.to, subject=message.subject)


def create_mail_sender(settings: Settings) -> MailSender:
    if settings.smtp_host is None:
        return LogMailSender()
    return SmtpMailSender(
        hostname=settings.smtp_host,
        port=settings.smtp_port,
        sender=settings.mail_from,
        username=settings.smtp_username,
        password=settings.smtp_password,
        use_tls=settings.smtp_use_tls,
    )


def build_password_reset_message(
    *,
    email: str,
    name: str,
    reset_url: str,
    ttl_minutes: int,
) -> MailMessage:
    text_body = (
        f"Hello {name},\n\n"
        "You are receiving this email because we received a password reset request "
        "for your account.\n\n"
        f"Reset your password: {reset_url}\n\n"
        f"This password reset link will expire in {ttl_minutes} minutes.\n\n"
        "If you did not request a password reset, no further action is required.\n"
    )
    safe_url = escape(reset_url, quote=True)
    html_body = (
        f"<p>Hello {escape(name)},</p>"
        "<p>You are receiving this email because we received a password reset request "
        "for your account.</p>"
        f'<p><a href="{safe_url}">Reset Password</a></p>'
        f"<p>This password reset link will expire in {ttl_minutes} minutes.</p>"
        "<p>If you did not request a password reset, no further action is required.</p>"
    )
    return MailMessage(
        to=email,
        subject=PASSWORD_RESET_SUBJECT,
        text_body=text_body,
        html_body=html_body,
    )
