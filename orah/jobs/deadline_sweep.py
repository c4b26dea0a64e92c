"""Deadline sweep: mark untouched enrollments as missed.

Runs daily. An enrollment is missed when it is still ``active`` with
``progress == 0`` more than ``missed_after_days`` after enrollment. Any
progress at all exempts it for good. Once the status leaves ``active`` the
record no longer matches, so repeated runs are harmless.

The status change is authoritative: notifications are queued afterwards and
their failure never rolls it back.
"""

from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any

import structlog

from orah.directory.service import DirectoryService
from orah.enrollments.models import Enrollment, EnrollmentStatus
from orah.enrollments.store import EnrollmentStore
from orah.notifications.handlers import contact_payload
from orah.notifications.models import TaskKind
from orah.notifications.service import OutboxService
from orah.utils.dates import days_elapsed, utc_now, whole_days_elapsed


logger = structlog.get_logger(__name__)


@dataclass
class SweepReport:
    """Outcome of one sweep run."""

    scanned: int = 0
    missed: int = 0
    skipped: int = 0
    notifications_enqueued: int = 0
    errors: int = 0

    def to_dict(self) -> dict[str, int]:
        return asdict(self)


class DeadlineSweep:
    """Reclassifies stale active enrollments as missed."""

    def __init__(
        self,
        store: EnrollmentStore,
        directory: DirectoryService,
        outbox: OutboxService,
        missed_after_days: int = 3,
    ):
        self.store = store
        self.directory = directory
        self.outbox = outbox
        self.missed_after_days = missed_after_days

    def is_due(self, enrollment: Enrollment, now: datetime) -> bool:
        """Whether an enrollment should be marked missed at ``now``."""
        return (
            enrollment.is_active
            and enrollment.progress == 0
            and days_elapsed(enrollment.enrolled_at, now) > self.missed_after_days
        )

    async def run(self, now: datetime | None = None) -> SweepReport:
        """Sweep every enrollment once. Per-record failures are logged and counted."""
        now = now or utc_now()
        report = SweepReport()

        enrollments = await self.store.list_all()
        logger.info("deadline_sweep_started", total=len(enrollments))

        for enrollment in enrollments:
            report.scanned += 1
            if not self.is_due(enrollment, now):
                continue
            try:
                await self._process(enrollment, now, report)
            except Exception:
                report.errors += 1
                logger.exception(
                    "deadline_sweep_record_failed",
                    enrollment_id=str(enrollment.id),
                )

        logger.info("deadline_sweep_completed", **report.to_dict())
        return report

    async def _process(
        self, enrollment: Enrollment, now: datetime, report: SweepReport
    ) -> None:
        def mark_missed(current: Enrollment) -> dict[str, Any] | None:
            # Progress may have landed since the listing
            if not self.is_due(current, now):
                return None
            return {"status": EnrollmentStatus.MISSED.value, "last_access_date": now}

        applied = await self.store.apply(enrollment.id, mark_missed)
        if applied is None:
            report.skipped += 1
            logger.info(
                "deadline_sweep_record_skipped",
                enrollment_id=str(enrollment.id),
                reason="changed_since_listing",
            )
            return

        report.missed += 1
        days_overdue = whole_days_elapsed(enrollment.enrolled_at, now)
        logger.info(
            "enrollment_marked_missed",
            enrollment_id=str(enrollment.id),
            user_id=str(enrollment.user_id),
            lesson_id=str(enrollment.lesson_id),
            days_overdue=days_overdue,
        )

        await self._notify(enrollment, days_overdue, report)

    async def _notify(
        self, enrollment: Enrollment, days_overdue: int, report: SweepReport
    ) -> None:
        student = await self.directory.get_user(enrollment.user_id)
        lesson = await self.directory.get_lesson(enrollment.lesson_id)
        if student is None or lesson is None:
            logger.warning(
                "deadline_sweep_notification_skipped",
                enrollment_id=str(enrollment.id),
                student_found=student is not None,
                lesson_found=lesson is not None,
            )
            return

        await self._dispatch(
            TaskKind.NOTIFY_STUDENT_MISSED,
            {
                "student": contact_payload(student),
                "lesson_title": lesson.title,
                "days_overdue": days_overdue,
            },
            enrollment,
            report,
        )

        instructor = await self.directory.get_user(lesson.instructor_id)
        if instructor is None:
            logger.warning(
                "deadline_sweep_instructor_not_found",
                enrollment_id=str(enrollment.id),
                instructor_id=str(lesson.instructor_id),
            )
            return

        await self._dispatch(
            TaskKind.NOTIFY_INSTRUCTOR_MISSED,
            {
                "instructor": contact_payload(instructor),
                "student": contact_payload(student),
                "lesson_title": lesson.title,
                "days_overdue": days_overdue,
            },
            enrollment,
            report,
        )

    async def _dispatch(
        self,
        kind: TaskKind,
        payload: dict[str, Any],
        enrollment: Enrollment,
        report: SweepReport,
    ) -> None:
        try:
            await self.outbox.dispatch(kind, payload)
            report.notifications_enqueued += 1
        except Exception:
            logger.exception(
                "deadline_sweep_dispatch_failed",
                enrollment_id=str(enrollment.id),
                kind=kind.value,
            )
