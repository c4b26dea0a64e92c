"""Weekly reminders for unfinished lessons."""

from dataclasses import asdict, dataclass
from datetime import datetime

import structlog

from orah.directory.service import DirectoryService
from orah.enrollments.models import MAX_PROGRESS, Enrollment
from orah.enrollments.store import EnrollmentStore
from orah.notifications.handlers import contact_payload
from orah.notifications.models import TaskKind
from orah.notifications.service import OutboxService
from orah.utils.dates import utc_now, whole_days_elapsed


logger = structlog.get_logger(__name__)

# Whole days since enrollment before a reminder goes out
NOT_STARTED_AFTER_DAYS = 2
IN_PROGRESS_AFTER_DAYS = 3


@dataclass
class ReminderReport:
    scanned: int = 0
    reminded: int = 0
    errors: int = 0

    def to_dict(self) -> dict[str, int]:
        return asdict(self)


def needs_reminder(enrollment: Enrollment, now: datetime) -> bool:
    """Active and unfinished, and enrolled long enough for its progress."""
    if not enrollment.is_active or enrollment.progress >= MAX_PROGRESS:
        return False

    days = whole_days_elapsed(enrollment.enrolled_at, now)
    if enrollment.progress == 0:
        return days >= NOT_STARTED_AFTER_DAYS
    return days >= IN_PROGRESS_AFTER_DAYS


class ReminderSweep:
    """Queues reminder emails for students with unfinished lessons."""

    def __init__(
        self,
        store: EnrollmentStore,
        directory: DirectoryService,
        outbox: OutboxService,
    ):
        self.store = store
        self.directory = directory
        self.outbox = outbox

    async def run(self, now: datetime | None = None) -> ReminderReport:
        now = now or utc_now()
        report = ReminderReport()

        for enrollment in await self.store.list_all():
            report.scanned += 1
            if not needs_reminder(enrollment, now):
                continue
            try:
                if await self._remind(enrollment):
                    report.reminded += 1
            except Exception:
                report.errors += 1
                logger.exception(
                    "reminder_record_failed", enrollment_id=str(enrollment.id)
                )

        logger.info("reminder_sweep_completed", **report.to_dict())
        return report

    async def _remind(self, enrollment: Enrollment) -> bool:
        student = await self.directory.get_user(enrollment.user_id)
        lesson = await self.directory.get_lesson(enrollment.lesson_id)
        if student is None or lesson is None:
            logger.warning(
                "reminder_skipped",
                enrollment_id=str(enrollment.id),
                student_found=student is not None,
                lesson_found=lesson is not None,
            )
            return False

        await self.outbox.dispatch(
            TaskKind.NOTIFY_LESSON_REMINDER,
            {
                "student": contact_payload(student),
                "lesson_title": lesson.title,
                "progress": enrollment.progress,
            },
        )
        return True
