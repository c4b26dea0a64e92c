"""Notification dispatcher for enrollment events.

Renders and sends the missed-lesson and reminder emails. Every method
returns whether the message was handed to the mail provider; with email
disabled the message is logged and reported as delivered, so outbox tasks
don't pile up in environments without Gmail credentials.
"""

import structlog

from orah.directory.models import UserContact
from orah.email import templates
from orah.email.service import EmailService


logger = structlog.get_logger(__name__)


class NotificationDispatcher:
    """Sends enrollment notifications through the email service."""

    def __init__(self, email_service: EmailService | None, app_url: str):
        self.email_service = email_service
        self.app_url = app_url.rstrip("/")

    async def _send(
        self,
        contact: UserContact,
        subject: str,
        body_html: str,
        body_text: str,
        event: str,
    ) -> bool:
        if not contact.email:
            logger.warning(
                "notification_recipient_without_email",
                notification=event,
                user_id=str(contact.id),
            )
            return False

        if self.email_service is None:
            logger.info(
                "notification_email_disabled",
                notification=event,
                user_id=str(contact.id),
                subject=subject,
            )
            return True

        response = await self.email_service.send_to(
            to=contact.email,
            subject=subject,
            body_html=body_html,
            body_text=body_text,
            to_name=contact.full_name or None,
        )
        if not response.success:
            logger.warning(
                "notification_send_failed",
                notification=event,
                user_id=str(contact.id),
                error=response.error,
            )
        return response.success

    async def notify_student_missed(
        self, contact: UserContact, lesson_title: str, days_overdue: int
    ) -> bool:
        """Tell a student their lesson was marked missed."""
        body_html, body_text = templates.render_student_missed(
            contact.full_name, lesson_title, days_overdue, self.app_url
        )
        return await self._send(
            contact,
            templates.student_missed_subject(lesson_title),
            body_html,
            body_text,
            "student_missed_notification",
        )

    async def notify_instructor_missed(
        self,
        contact: UserContact,
        student_info: UserContact,
        lesson_title: str,
        days_overdue: int,
    ) -> bool:
        """Tell an instructor one of their students missed a lesson."""
        body_html, body_text = templates.render_instructor_missed(
            contact.full_name,
            student_info.full_name,
            student_info.email,
            lesson_title,
            days_overdue,
            self.app_url,
        )
        return await self._send(
            contact,
            templates.instructor_missed_subject(student_info.full_name, lesson_title),
            body_html,
            body_text,
            "instructor_missed_notification",
        )

    async def notify_lesson_reminder(
        self, contact: UserContact, lesson_title: str, progress: int
    ) -> bool:
        """Nudge a student about an unfinished lesson."""
        body_html, body_text = templates.render_lesson_reminder(
            contact.full_name, lesson_title, progress, self.app_url
        )
        return await self._send(
            contact,
            templates.reminder_subject(lesson_title),
            body_html,
            body_text,
            "lesson_reminder_notification",
        )
