"""Database models for lesson enrollments.

Cassandra table definitions for:
- Enrollments: one record per (lesson, student), keyed by enrollment id
- Lookup tables: by lesson (also the uniqueness claim) and by user

Every write to the main table is a lightweight transaction guarded by the
``version`` column, so concurrent writers never overwrite each other.
"""

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from orah.utils.dates import ensure_utc_aware, utc_now


class EnrollmentStatus(str, Enum):
    """Enrollment lifecycle status."""

    ACTIVE = "active"  # Enrolled, working through the lesson
    COMPLETED = "completed"  # Progress reached 100
    MISSED = "missed"  # No progress before the missed threshold (sweep only)


MAX_PROGRESS = 100
# time_spent_seconds is a BIGINT column
MAX_TIME_SPENT_SECONDS = 2**63 - 1


# ==============================================================================
# CQL Table Definitions
# ==============================================================================

# Enrollment record - partitioned by id for single-key LWT updates
ENROLLMENTS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.enrollments (
    id UUID PRIMARY KEY,
    lesson_id UUID,
    user_id UUID,
    status TEXT,
    progress INT,
    enrolled_at TIMESTAMP,
    last_access_date TIMESTAMP,
    time_spent_seconds BIGINT,
    redo_requested BOOLEAN,
    redo_granted BOOLEAN,
    version INT,
    updated_at TIMESTAMP
)
"""

# Lookup: enrollments by lesson
# Inserted with IF NOT EXISTS before the main row: this is the
# (lesson_id, user_id) uniqueness claim.
ENROLLMENTS_BY_LESSON_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.enrollments_by_lesson (
    lesson_id UUID,
    user_id UUID,
    enrollment_id UUID,
    enrolled_at TIMESTAMP,
    PRIMARY KEY (lesson_id, user_id)
)
"""

# Lookup: enrollments by user
ENROLLMENTS_BY_USER_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.enrollments_by_user (
    user_id UUID,
    lesson_id UUID,
    enrollment_id UUID,
    enrolled_at TIMESTAMP,
    PRIMARY KEY (user_id, lesson_id)
)
"""

ENROLLMENTS_TABLES_CQL = [
    ENROLLMENTS_TABLE_CQL,
    ENROLLMENTS_BY_LESSON_TABLE_CQL,
    ENROLLMENTS_BY_USER_TABLE_CQL,
]

# Columns written by a versioned update, in statement order
MUTABLE_FIELDS = (
    "status",
    "progress",
    "last_access_date",
    "time_spent_seconds",
    "redo_requested",
    "redo_granted",
)


# ==============================================================================
# Entity Classes
# ==============================================================================


class Enrollment:
    """Enrollment of one student in one lesson.

    Attributes:
        id: Enrollment UUID
        lesson_id: Lesson UUID
        user_id: Student UUID (owner)
        status: active, completed or missed
        progress: Integer percentage 0-100
        enrolled_at: Creation timestamp (immutable)
        last_access_date: Most recent recorded interaction
        time_spent_seconds: Cumulative time, only ever increased by deltas
        redo_requested: Student asked to reopen a locked lesson
        redo_granted: Instructor allowed one more completion past the deadline
        version: Revision counter checked and bumped on every write
        updated_at: Timestamp of the last committed write
    """

    def __init__(
        self,
        id: UUID,
        lesson_id: UUID,
        user_id: UUID,
        status: str = EnrollmentStatus.ACTIVE.value,
        progress: int = 0,
        enrolled_at: datetime | None = None,
        last_access_date: datetime | None = None,
        time_spent_seconds: int = 0,
        redo_requested: bool = False,
        redo_granted: bool = False,
        version: int = 1,
        updated_at: datetime | None = None,
    ):
        self.id = id
        self.lesson_id = lesson_id
        self.user_id = user_id
        self.status = status
        self.progress = progress
        self.enrolled_at = ensure_utc_aware(enrolled_at) or utc_now()
        self.last_access_date = ensure_utc_aware(last_access_date) or self.enrolled_at
        self.time_spent_seconds = time_spent_seconds
        self.redo_requested = redo_requested
        self.redo_granted = redo_granted
        self.version = version
        self.updated_at = ensure_utc_aware(updated_at) or self.enrolled_at

    @property
    def is_completed(self) -> bool:
        return self.status == EnrollmentStatus.COMPLETED.value

    @property
    def is_active(self) -> bool:
        return self.status == EnrollmentStatus.ACTIVE.value

    def merged(self, fields: dict[str, Any], now: datetime) -> "Enrollment":
        """Return a copy with ``fields`` applied and bookkeeping bumped.

        ``id``, ``lesson_id``, ``user_id`` and ``enrolled_at`` never change.
        """
        unknown = set(fields) - set(MUTABLE_FIELDS)
        if unknown:
            msg = f"Immutable or unknown enrollment fields: {sorted(unknown)}"
            raise ValueError(msg)

        values = {name: getattr(self, name) for name in MUTABLE_FIELDS}
        values.update(fields)
        return Enrollment(
            id=self.id,
            lesson_id=self.lesson_id,
            user_id=self.user_id,
            enrolled_at=self.enrolled_at,
            version=self.version + 1,
            updated_at=now,
            **values,
        )

    @classmethod
    def from_row(cls, row: Any) -> "Enrollment":
        """Create Enrollment instance from Cassandra row."""
        return cls(
            id=row.id,
            lesson_id=row.lesson_id,
            user_id=row.user_id,
            status=row.status or EnrollmentStatus.ACTIVE.value,
            progress=row.progress or 0,
            enrolled_at=row.enrolled_at,
            last_access_date=row.last_access_date,
            time_spent_seconds=row.time_spent_seconds or 0,
            redo_requested=bool(row.redo_requested),
            redo_granted=bool(row.redo_granted),
            version=row.version or 1,
            updated_at=row.updated_at,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "lesson_id": self.lesson_id,
            "user_id": self.user_id,
            "status": self.status,
            "progress": self.progress,
            "enrolled_at": self.enrolled_at,
            "last_access_date": self.last_access_date,
            "time_spent_seconds": self.time_spent_seconds,
            "redo_requested": self.redo_requested,
            "redo_granted": self.redo_granted,
            "version": self.version,
            "updated_at": self.updated_at,
        }

    def __repr__(self) -> str:
        return (
            f"<Enrollment {self.id} user={self.user_id} lesson={self.lesson_id} "
            f"{self.status} {self.progress}% v{self.version}>"
        )
