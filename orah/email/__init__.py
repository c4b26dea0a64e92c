"""Email module for sending notifications via Gmail API."""

from .schemas import EmailMessage, EmailRecipient, SendResult
from .service import EmailService


__all__ = [
    "EmailMessage",
    "EmailRecipient",
    "EmailService",
    "SendResult",
]
