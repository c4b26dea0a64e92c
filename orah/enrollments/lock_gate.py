"""Deadline lock for student-initiated enrollment changes."""

from datetime import datetime

import structlog

from orah.auth.schemas import Caller
from orah.directory.models import Lesson

from .exceptions import LessonLockedError
from .models import Enrollment


logger = structlog.get_logger(__name__)


def is_locked(
    enrollment: Enrollment, lesson: Lesson, caller: Caller, now: datetime
) -> bool:
    """Whether the lesson deadline blocks this caller.

    Only the owning student is ever blocked, and only while the deadline is
    in the past and no redo has been granted. Instructors and admins always
    pass.
    """
    if not caller.is_student or caller.id != enrollment.user_id:
        return False
    if lesson.deadline is None or enrollment.redo_granted:
        return False
    return now > lesson.deadline


def ensure_unlocked(
    enrollment: Enrollment, lesson: Lesson, caller: Caller, now: datetime
) -> None:
    """Raise ``LessonLockedError`` if the gate blocks the caller."""
    if is_locked(enrollment, lesson, caller, now):
        logger.info(
            "lesson_locked",
            enrollment_id=str(enrollment.id),
            lesson_id=str(lesson.id),
            deadline=lesson.deadline.isoformat() if lesson.deadline else None,
        )
        raise LessonLockedError
