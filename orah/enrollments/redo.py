"""Redo request / grant workflow.

A student whose lesson deadline has passed asks for a redo; the lesson's
instructor (or an admin) grants it, which lifts the deadline lock until the
student completes the lesson again.
"""

from uuid import UUID

import structlog

from orah.auth.schemas import Caller
from orah.directory.service import DirectoryService

from .exceptions import EnrollmentNotFoundError, ForbiddenError, LessonNotFoundError
from .models import Enrollment
from .store import EnrollmentStore


logger = structlog.get_logger(__name__)


class RedoWorkflow:
    """Redo requests and grants on top of the enrollment store."""

    def __init__(self, store: EnrollmentStore, directory: DirectoryService):
        self.store = store
        self.directory = directory

    async def request_redo(self, enrollment_id: UUID, caller: Caller) -> Enrollment:
        """Flag an enrollment as asking for a redo (owner only)."""
        enrollment = await self.store.get_by_id(enrollment_id)
        if enrollment is None:
            raise EnrollmentNotFoundError
        if enrollment.user_id != caller.id:
            raise ForbiddenError("Only the enrolled student can request a redo")

        updated = await self.store.update(enrollment_id, {"redo_requested": True})
        logger.info(
            "redo_requested",
            enrollment_id=str(enrollment_id),
            lesson_id=str(enrollment.lesson_id),
        )
        return updated

    async def grant_redo(self, enrollment_id: UUID, caller: Caller) -> Enrollment:
        """Grant a redo (lesson instructor or admin).

        Granting does not require a pending request.
        """
        enrollment = await self.store.get_by_id(enrollment_id)
        if enrollment is None:
            raise EnrollmentNotFoundError

        lesson = await self.directory.get_lesson(enrollment.lesson_id)
        if lesson is None:
            raise LessonNotFoundError
        if not caller.is_admin and lesson.instructor_id != caller.id:
            raise ForbiddenError("Only the lesson instructor can grant a redo")

        updated = await self.store.update(
            enrollment_id, {"redo_granted": True, "redo_requested": False}
        )
        logger.info(
            "redo_granted",
            enrollment_id=str(enrollment_id),
            granted_by=str(caller.id),
        )
        return updated

    async def list_pending(self, caller: Caller) -> list[Enrollment]:
        """List enrollments with an open redo request.

        Admins see every request, instructors those of their own lessons.
        """
        if caller.is_admin:
            enrollments = await self.store.list_all()
        elif caller.is_instructor:
            enrollments = []
            lesson_ids = await self.directory.list_lesson_ids_by_instructor(caller.id)
            for lesson_id in lesson_ids:
                enrollments.extend(await self.store.list_by_lesson(lesson_id))
        else:
            raise ForbiddenError("Only instructors can review redo requests")

        return [e for e in enrollments if e.redo_requested]
