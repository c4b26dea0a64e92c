"""Enrollment errors.

Each error carries a stable ``code`` that the HTTP layer returns alongside
the message, so clients can branch on it (e.g. offer a redo request when a
lesson is locked).
"""


class EnrollmentError(Exception):
    """Base enrollment error."""

    def __init__(self, message: str, code: str = "enrollment_error"):
        self.message = message
        self.code = code
        super().__init__(message)


class InvalidInputError(EnrollmentError):
    """Malformed or out-of-range update."""

    def __init__(self, message: str = "Invalid enrollment update"):
        super().__init__(message, "invalid_input")


class ForbiddenError(EnrollmentError):
    """Caller does not own the enrollment or lacks the role."""

    def __init__(self, message: str = "Not allowed to act on this enrollment"):
        super().__init__(message, "forbidden")


class EnrollmentNotFoundError(EnrollmentError):
    """Enrollment does not exist."""

    def __init__(self, message: str = "Enrollment not found"):
        super().__init__(message, "enrollment_not_found")


class LessonNotFoundError(EnrollmentError):
    """Lesson referenced by the enrollment does not exist."""

    def __init__(self, message: str = "Lesson not found"):
        super().__init__(message, "lesson_not_found")


class DuplicateEnrollmentError(EnrollmentError):
    """Student already enrolled in the lesson."""

    def __init__(self, message: str = "Already enrolled in this lesson"):
        super().__init__(message, "already_enrolled")


class LessonLockedError(EnrollmentError):
    """Lesson deadline has passed and no redo was granted."""

    def __init__(
        self,
        message: str = "Lesson deadline has passed. Request a redo to continue.",
    ):
        super().__init__(message, "LESSON_LOCKED")


class ConcurrentUpdateError(EnrollmentError):
    """Versioned write kept losing to concurrent writers."""

    def __init__(self, message: str = "Enrollment was modified concurrently"):
        super().__init__(message, "concurrent_update")
