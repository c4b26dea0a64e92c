"""Enrollment service layer.

Business logic for:
- Enrolling and unenrolling students
- Progress updates with derived status and the deadline lock
- Completion side effects (attendance, redo consumption)
- Enrollment queries scoped to the caller
"""

from datetime import datetime
from typing import Any
from uuid import UUID, uuid4

import structlog

from orah.attendance.models import SYSTEM_MARKER
from orah.auth.schemas import Caller
from orah.directory.models import Lesson
from orah.directory.service import DirectoryService
from orah.notifications.models import TaskKind
from orah.notifications.service import OutboxService
from orah.utils.dates import utc_now, utc_today

from .exceptions import (
    EnrollmentNotFoundError,
    ForbiddenError,
    LessonLockedError,
    LessonNotFoundError,
)
from .lock_gate import ensure_unlocked, is_locked
from .models import Enrollment, EnrollmentStatus
from .store import AppliedUpdate, EnrollmentStore
from .updates import apply_updates, build_updates, completes


logger = structlog.get_logger(__name__)


class EnrollmentService:
    """Service for the enrollment lifecycle."""

    def __init__(
        self,
        store: EnrollmentStore,
        directory: DirectoryService,
        outbox: OutboxService,
    ):
        self.store = store
        self.directory = directory
        self.outbox = outbox

    # ==========================================================================
    # Lookups
    # ==========================================================================

    async def _get_enrollment(self, enrollment_id: UUID) -> Enrollment:
        enrollment = await self.store.get_by_id(enrollment_id)
        if enrollment is None:
            raise EnrollmentNotFoundError
        return enrollment

    async def _get_lesson(self, lesson_id: UUID) -> Lesson:
        lesson = await self.directory.get_lesson(lesson_id)
        if lesson is None:
            raise LessonNotFoundError
        return lesson

    # ==========================================================================
    # Enroll / Unenroll
    # ==========================================================================

    async def enroll(
        self, caller: Caller, lesson_id: UUID, user_id: UUID | None = None
    ) -> Enrollment:
        """Enroll a student in a lesson.

        Students can only enroll themselves; admins may enroll anyone.

        Raises:
            ForbiddenError: If enrolling someone else without being admin
            LessonNotFoundError: If the lesson does not exist
            DuplicateEnrollmentError: If already enrolled
        """
        target_user_id = user_id or caller.id
        if target_user_id != caller.id and not caller.is_admin:
            raise ForbiddenError("You can only enroll yourself")

        await self._get_lesson(lesson_id)

        now = utc_now()
        enrollment = Enrollment(
            id=uuid4(),
            lesson_id=lesson_id,
            user_id=target_user_id,
            status=EnrollmentStatus.ACTIVE.value,
            progress=0,
            enrolled_at=now,
            last_access_date=now,
            updated_at=now,
        )
        await self.store.create(enrollment)

        logger.info(
            "enrollment_created",
            enrollment_id=str(enrollment.id),
            user_id=str(target_user_id),
            lesson_id=str(lesson_id),
        )
        return enrollment

    async def unenroll(self, enrollment_id: UUID, caller: Caller) -> None:
        """Delete an enrollment (owner only)."""
        enrollment = await self._get_enrollment(enrollment_id)
        if enrollment.user_id != caller.id:
            raise ForbiddenError("Only the enrolled student can unenroll")

        if not await self.store.delete(enrollment_id):
            raise EnrollmentNotFoundError

        logger.info(
            "enrollment_removed",
            enrollment_id=str(enrollment_id),
            lesson_id=str(enrollment.lesson_id),
        )

    # ==========================================================================
    # Queries
    # ==========================================================================

    async def get(self, enrollment_id: UUID, caller: Caller) -> Enrollment:
        """Get an enrollment visible to the caller.

        Visible to the owner, the lesson's instructor and admins.
        """
        enrollment = await self._get_enrollment(enrollment_id)
        if enrollment.user_id == caller.id or caller.is_admin:
            return enrollment

        lesson = await self.directory.get_lesson(enrollment.lesson_id)
        if lesson is not None and lesson.instructor_id == caller.id:
            return enrollment
        raise ForbiddenError

    async def list_for_user(self, user_id: UUID, caller: Caller) -> list[Enrollment]:
        """List a user's enrollments (self or admin)."""
        if user_id != caller.id and not caller.is_admin:
            raise ForbiddenError("You can only view your own enrollments")
        return await self.store.list_by_user(user_id)

    async def list_for_lesson(
        self, lesson_id: UUID, caller: Caller
    ) -> list[Enrollment]:
        """List a lesson's enrollments (lesson instructor or admin)."""
        lesson = await self._get_lesson(lesson_id)
        if lesson.instructor_id != caller.id and not caller.is_admin:
            raise ForbiddenError("Only the lesson instructor can view enrollments")
        return await self.store.list_by_lesson(lesson_id)

    # ==========================================================================
    # Progress Updates
    # ==========================================================================

    async def update_progress(
        self, enrollment_id: UUID, caller: Caller, payload: dict[str, Any]
    ) -> Enrollment:
        """Apply a progress/status/time update from the owning student.

        Checks run in order: existence, ownership, deadline lock, payload.
        Completion side effects run after the write and never fail the call.

        Raises:
            EnrollmentNotFoundError: Unknown enrollment
            ForbiddenError: Caller is not the owner
            LessonNotFoundError: Lesson vanished
            LessonLockedError: Deadline passed without a granted redo
            InvalidInputError: Empty or invalid payload
        """
        enrollment = await self._get_enrollment(enrollment_id)
        if enrollment.user_id != caller.id:
            raise ForbiddenError("Only the enrolled student can update progress")

        lesson = await self._get_lesson(enrollment.lesson_id)
        now = utc_now()
        ensure_unlocked(enrollment, lesson, caller, now)

        updates = build_updates(payload)

        def mutate(current: Enrollment) -> dict[str, Any]:
            # The redo grant may have changed since the first read
            if is_locked(current, lesson, caller, now):
                raise LessonLockedError
            return apply_updates(current, updates, now)

        applied = await self.store.transform(enrollment_id, mutate)

        logger.info(
            "enrollment_progress_updated",
            enrollment_id=str(enrollment_id),
            progress=applied.after.progress,
            status=applied.after.status,
            version=applied.after.version,
        )

        if completes(updates) and applied.after.is_completed:
            await self._after_completion(applied, now)

        return applied.after

    async def _after_completion(self, applied: AppliedUpdate, now: datetime) -> None:
        """Record attendance and consume a granted redo.

        Both are independent best-effort writes: the progress update is
        already committed and stays authoritative if either fails.
        """
        enrollment = applied.after

        try:
            await self.outbox.dispatch(
                TaskKind.ATTENDANCE_PRESENT,
                {
                    "student_id": enrollment.user_id,
                    "lesson_id": enrollment.lesson_id,
                    "date": utc_today(now),
                    "marked_by": SYSTEM_MARKER,
                },
            )
        except Exception:
            logger.exception(
                "attendance_dispatch_failed",
                enrollment_id=str(enrollment.id),
            )

        if not applied.before.redo_granted:
            return

        def relock(current: Enrollment) -> dict[str, Any] | None:
            # A later write may carry a fresh grant; leave it in place
            if current.version != enrollment.version or not current.redo_granted:
                return None
            return {"redo_granted": False}

        try:
            relocked = await self.store.apply(enrollment.id, relock)
        except Exception:
            logger.exception("redo_relock_failed", enrollment_id=str(enrollment.id))
            return

        if relocked is None:
            logger.info("redo_relock_skipped", enrollment_id=str(enrollment.id))
        else:
            logger.info("redo_consumed", enrollment_id=str(enrollment.id))
