"""Email service using Gmail API with Service Account.

Uses domain-wide delegation to send emails on behalf of a Google Workspace user.
The service account must have domain-wide delegation enabled in Google Admin Console.

Required Google Admin Console setup:
1. Go to Security > Access and data control > API controls > Domain-wide delegation
2. Add the service account client_id with scope: https://www.googleapis.com/auth/gmail.send
"""

import asyncio
import base64
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from pathlib import Path
from typing import TYPE_CHECKING

from google.oauth2 import service_account
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from pydantic import ValidationError

from orah.core.logging import get_logger

from .schemas import EmailMessage, EmailRecipient, SendResult


if TYPE_CHECKING:
    from googleapiclient._apis.gmail.v1 import GmailResource


logger = get_logger(__name__)

# Gmail API scope for sending emails
GMAIL_SCOPES = ["https://www.googleapis.com/auth/gmail.send"]


class EmailService:
    """Service for sending emails via Gmail API.

    Uses a service account with domain-wide delegation to impersonate
    a Google Workspace user (e.g., no-reply@orah.school).
    """

    def __init__(
        self,
        credentials_path: str,
        sender_address: str,
        sender_name: str = "Orah School",
    ):
        """Initialize Gmail API service.

        Args:
            credentials_path: Path to service account JSON file
            sender_address: Email address to send from (must be in Google Workspace)
            sender_name: Display name for sender
        """
        self.credentials_path = credentials_path
        self.sender_address = sender_address
        self.sender_name = sender_name
        self._service: GmailResource | None = None

        if not Path(credentials_path).exists():
            logger.warning(
                "email_credentials_not_found",
                path=credentials_path,
                message="Gmail API will not be available",
            )

    def _get_service(self) -> "GmailResource":
        """Get or create Gmail API service (lazy, impersonating the sender).

        Raises:
            FileNotFoundError: If credentials file doesn't exist
        """
        if self._service is not None:
            return self._service

        credentials_file = Path(self.credentials_path)
        if not credentials_file.exists():
            msg = f"Credentials file not found: {self.credentials_path}"
            raise FileNotFoundError(msg)

        credentials = service_account.Credentials.from_service_account_file(
            str(credentials_file),
            scopes=GMAIL_SCOPES,
        )
        self._service = build(
            "gmail",
            "v1",
            credentials=credentials.with_subject(self.sender_address),
            cache_discovery=False,
        )
        logger.info("gmail_service_initialized", sender=self.sender_address)
        return self._service

    def _create_message(self, email: EmailMessage) -> dict:
        """Create email message in Gmail API format.

        Returns:
            Dict with 'raw' key containing base64url encoded message
        """
        message = MIMEMultipart("alternative")
        message["From"] = f"{self.sender_name} <{self.sender_address}>"
        message["To"] = email.to.formatted()
        message["Subject"] = email.subject

        # Plain text first, then HTML (email clients prefer last)
        if email.body_text:
            message.attach(MIMEText(email.body_text, "plain", "utf-8"))
        message.attach(MIMEText(email.body_html, "html", "utf-8"))

        raw_message = base64.urlsafe_b64encode(message.as_bytes()).decode("utf-8")
        return {"raw": raw_message}

    def _send_blocking(self, message: dict) -> dict:
        service = self._get_service()
        return service.users().messages().send(userId="me", body=message).execute()

    async def send(self, email: EmailMessage) -> SendResult:
        """Send a notification via Gmail API.

        Never raises: failures are logged and reported in the response.
        """
        try:
            message = self._create_message(email)
            # googleapiclient is blocking
            result = await asyncio.to_thread(self._send_blocking, message)

            logger.info(
                "email_sent",
                message_id=result.get("id"),
                thread_id=result.get("threadId"),
                to=email.to.email,
                subject=email.subject[:50],
            )
            return SendResult(
                success=True,
                message_id=result.get("id"),
                thread_id=result.get("threadId"),
            )

        except HttpError as e:
            logger.exception(
                "email_send_failed",
                error=str(e),
                to=email.to.email,
                subject=email.subject[:50],
            )
            return SendResult(success=False, error=f"Gmail API error: {e!s}")

        except FileNotFoundError as e:
            logger.error("email_credentials_missing", error=str(e))
            return SendResult(
                success=False,
                error="Email service not configured: credentials file missing",
            )

        except Exception as e:
            logger.exception("email_send_unexpected_error", error=str(e))
            return SendResult(success=False, error=f"Unexpected error: {e!s}")

    async def send_to(
        self,
        to: str,
        subject: str,
        body_html: str,
        body_text: str | None = None,
        to_name: str | None = None,
    ) -> SendResult:
        """Build and send a notification to one address."""
        try:
            email = EmailMessage(
                to=EmailRecipient(email=to, name=to_name),
                subject=subject,
                body_html=body_html,
                body_text=body_text,
            )
        except ValidationError as e:
            logger.warning("email_request_invalid", to=to, error=str(e))
            return SendResult(success=False, error="Invalid email request")
        return await self.send(email)
