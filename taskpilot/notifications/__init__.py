from taskpilot.notifications.mailer import (
    LogMailSender,
    MailDeliveryError,
    MailMessage,
    MailSender,
    SmtpMailSender,
    build_password_reset_message,
    create_mail_sender,
)

__all__ = [
    "LogMailSender",
    "MailDeliveryError",
    "MailMessage",
    "MailSender",
    "SmtpMailSender",
    "build_password_reset_message",
    "create_mail_sender",
]
