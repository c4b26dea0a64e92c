"""Database models for attendance.

Attendance is keyed by (lesson_id, date, student_id): one record per student
per lesson per calendar day. Records are created with ``IF NOT EXISTS`` so
repeated completions on the same day never duplicate them. Instructor marks
overwrite an existing record; a completion never overwrites a mark.
"""

from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any
from uuid import UUID

from orah.utils.dates import ensure_utc_aware


SYSTEM_MARKER = "system"


class AttendanceStatus(str, Enum):
    """Attendance status for a day."""

    PRESENT = "present"
    ABSENT = "absent"


class RecordOutcome(str, Enum):
    """Result of an idempotent attendance write."""

    CREATED = "created"
    ALREADY_EXISTS = "already_exists"
    UPDATED = "updated"


# ==============================================================================
# CQL Table Definitions
# ==============================================================================

ATTENDANCE_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.attendance (
    lesson_id UUID,
    date DATE,
    student_id UUID,
    status TEXT,
    marked_by TEXT,
    created_at TIMESTAMP,
    PRIMARY KEY ((lesson_id), date, student_id)
) WITH CLUSTERING ORDER BY (date DESC, student_id ASC)
"""

ATTENDANCE_TABLES_CQL = [
    ATTENDANCE_TABLE_CQL,
]


# ==============================================================================
# Entity Classes
# ==============================================================================


@dataclass
class AttendanceRecord:
    """Attendance entry for one student, lesson and day."""

    lesson_id: UUID
    date: date
    student_id: UUID
    status: AttendanceStatus
    marked_by: str
    created_at: datetime

    @classmethod
    def from_row(cls, row: Any) -> "AttendanceRecord":
        """Create AttendanceRecord from Cassandra row."""
        # cassandra.util.Date -> datetime.date
        day = row.date.date() if hasattr(row.date, "date") else row.date
        return cls(
            lesson_id=row.lesson_id,
            date=day,
            student_id=row.student_id,
            status=AttendanceStatus(row.status),
            marked_by=row.marked_by or SYSTEM_MARKER,
            created_at=ensure_utc_aware(row.created_at),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "lesson_id": self.lesson_id,
            "date": self.date,
            "student_id": self.student_id,
            "status": self.status.value,
            "marked_by": self.marked_by,
            "created_at": self.created_at,
        }
