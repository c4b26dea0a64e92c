"""Outbox task handlers.

Payloads carry everything needed for delivery (contact details are looked up
when the task is created), so a retry never depends on the directory.
"""

from datetime import date
from typing import Any
from uuid import UUID

from orah.attendance.models import SYSTEM_MARKER, AttendanceStatus
from orah.attendance.service import AttendanceService
from orah.directory.models import UserContact

from .dispatcher import NotificationDispatcher
from .models import TaskKind
from .service import OutboxService


def contact_payload(contact: UserContact) -> dict[str, Any]:
    return {
        "id": contact.id,
        "first_name": contact.first_name,
        "last_name": contact.last_name,
        "email": contact.email,
    }


def contact_from_payload(data: dict[str, Any]) -> UserContact:
    return UserContact(
        id=UUID(str(data["id"])),
        first_name=data.get("first_name", ""),
        last_name=data.get("last_name", ""),
        email=data.get("email", ""),
    )


def register_handlers(
    outbox: OutboxService,
    attendance: AttendanceService,
    dispatcher: NotificationDispatcher,
) -> None:
    """Wire every task kind to its delivery."""

    async def attendance_present(payload: dict[str, Any]) -> bool:
        # created and already_exists both count as delivered
        await attendance.record_attendance(
            student_id=UUID(str(payload["student_id"])),
            lesson_id=UUID(str(payload["lesson_id"])),
            day=date.fromisoformat(payload["date"]),
            status=AttendanceStatus.PRESENT,
            marked_by=payload.get("marked_by", SYSTEM_MARKER),
        )
        return True

    async def student_missed(payload: dict[str, Any]) -> bool:
        return await dispatcher.notify_student_missed(
            contact_from_payload(payload["student"]),
            payload["lesson_title"],
            payload["days_overdue"],
        )

    async def instructor_missed(payload: dict[str, Any]) -> bool:
        return await dispatcher.notify_instructor_missed(
            contact_from_payload(payload["instructor"]),
            contact_from_payload(payload["student"]),
            payload["lesson_title"],
            payload["days_overdue"],
        )

    async def lesson_reminder(payload: dict[str, Any]) -> bool:
        return await dispatcher.notify_lesson_reminder(
            contact_from_payload(payload["student"]),
            payload["lesson_title"],
            payload["progress"],
        )

    outbox.register_handler(TaskKind.ATTENDANCE_PRESENT, attendance_present)
    outbox.register_handler(TaskKind.NOTIFY_STUDENT_MISSED, student_missed)
    outbox.register_handler(TaskKind.NOTIFY_INSTRUCTOR_MISSED, instructor_missed)
    outbox.register_handler(TaskKind.NOTIFY_LESSON_REMINDER, lesson_reminder)
