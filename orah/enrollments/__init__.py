"""Lesson enrollments: store, progress updates, deadline lock and redo."""

from .exceptions import (
    ConcurrentUpdateError,
    DuplicateEnrollmentError,
    EnrollmentError,
    EnrollmentNotFoundError,
    ForbiddenError,
    InvalidInputError,
    LessonLockedError,
    LessonNotFoundError,
)
from .models import ENROLLMENTS_TABLES_CQL, Enrollment, EnrollmentStatus
from .redo import RedoWorkflow
from .service import EnrollmentService
from .store import EnrollmentStore


__all__ = [
    "ENROLLMENTS_TABLES_CQL",
    "ConcurrentUpdateError",
    "DuplicateEnrollmentError",
    "Enrollment",
    "EnrollmentError",
    "EnrollmentNotFoundError",
    "EnrollmentService",
    "EnrollmentStatus",
    "EnrollmentStore",
    "ForbiddenError",
    "InvalidInputError",
    "LessonLockedError",
    "LessonNotFoundError",
    "RedoWorkflow",
]
