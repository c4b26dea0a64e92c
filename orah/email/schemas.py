"""Pydantic models for outgoing notification email."""

from pydantic import BaseModel, EmailStr, Field


class EmailRecipient(BaseModel):
    """Addressee of a notification."""

    email: EmailStr
    name: str | None = None

    def formatted(self) -> str:
        """RFC 5322 address, with the display name when there is one."""
        if self.name:
            return f"{self.name} <{self.email}>"
        return self.email


class EmailMessage(BaseModel):
    """A rendered notification for one recipient."""

    to: EmailRecipient
    subject: str = Field(..., min_length=1, max_length=998)
    body_html: str = Field(..., min_length=1)
    body_text: str | None = Field(None, description="Plain text alternative")


class SendResult(BaseModel):
    """Outcome of a single Gmail send."""

    success: bool
    message_id: str | None = None
    thread_id: str | None = None
    error: str | None = None
