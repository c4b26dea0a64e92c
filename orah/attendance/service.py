"""Attendance recording service.

Every write to the ``attendance`` table is a lightweight transaction, so
system records and instructor marks for the same day never interleave.
"""

from datetime import date
from typing import TYPE_CHECKING
from uuid import UUID

import structlog

from orah.utils.dates import utc_now

from .models import AttendanceRecord, AttendanceStatus, RecordOutcome


if TYPE_CHECKING:
    from cassandra.cluster import Session

logger = structlog.get_logger(__name__)


class AttendanceService:
    """Idempotent attendance sink plus instructor marking."""

    def __init__(self, session: "Session", keyspace: str):
        """Initialize with Cassandra session."""
        self.session = session
        self.keyspace = keyspace
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        """Prepare CQL statements for efficient execution."""
        self._insert_if_absent = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.attendance
            (lesson_id, date, student_id, status, marked_by, created_at)
            VALUES (?, ?, ?, ?, ?, ?)
            IF NOT EXISTS
        """)

        self._update_if_exists = self.session.prepare(f"""
            UPDATE {self.keyspace}.attendance
            SET status = ?, marked_by = ?
            WHERE lesson_id = ? AND date = ? AND student_id = ?
            IF EXISTS
        """)

        self._delete_if_exists = self.session.prepare(f"""
            DELETE FROM {self.keyspace}.attendance
            WHERE lesson_id = ? AND date = ? AND student_id = ?
            IF EXISTS
        """)

        self._get_one = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.attendance
            WHERE lesson_id = ? AND date = ? AND student_id = ?
        """)

        self._get_by_lesson = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.attendance WHERE lesson_id = ?
        """)

        self._get_by_lesson_and_date = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.attendance
            WHERE lesson_id = ? AND date = ?
        """)

    # ==========================================================================
    # Writes
    # ==========================================================================

    async def _insert(
        self,
        student_id: UUID,
        lesson_id: UUID,
        day: date,
        status: AttendanceStatus,
        marked_by: str,
    ) -> bool:
        result = await self.session.aexecute(
            self._insert_if_absent,
            [lesson_id, day, student_id, status.value, marked_by, utc_now()],
        )
        return result.was_applied

    async def record_attendance(
        self,
        student_id: UUID,
        lesson_id: UUID,
        day: date,
        status: AttendanceStatus,
        marked_by: str,
    ) -> RecordOutcome:
        """Create the record for (student, lesson, day) unless one exists."""
        created = await self._insert(student_id, lesson_id, day, status, marked_by)

        outcome = RecordOutcome.CREATED if created else RecordOutcome.ALREADY_EXISTS
        logger.info(
            "attendance_recorded",
            student_id=str(student_id),
            lesson_id=str(lesson_id),
            date=day.isoformat(),
            status=status.value,
            outcome=outcome.value,
        )
        return outcome

    async def mark_attendance(
        self,
        student_id: UUID,
        lesson_id: UUID,
        day: date,
        status: AttendanceStatus,
        marked_by: str,
    ) -> RecordOutcome:
        """Set the record for (student, lesson, day), creating it if needed.

        Returns:
            CREATED for a new record, UPDATED when an existing one was
            overwritten
        """
        if await self._insert(student_id, lesson_id, day, status, marked_by):
            outcome = RecordOutcome.CREATED
        elif await self.update_attendance(
            lesson_id, day, student_id, status, marked_by
        ):
            outcome = RecordOutcome.UPDATED
        else:
            # Deleted between the two writes
            created = await self._insert(student_id, lesson_id, day, status, marked_by)
            outcome = RecordOutcome.CREATED if created else RecordOutcome.UPDATED

        logger.info(
            "attendance_marked",
            student_id=str(student_id),
            lesson_id=str(lesson_id),
            date=day.isoformat(),
            status=status.value,
            marked_by=marked_by,
            outcome=outcome.value,
        )
        return outcome

    async def update_attendance(
        self,
        lesson_id: UUID,
        day: date,
        student_id: UUID,
        status: AttendanceStatus,
        marked_by: str,
    ) -> bool:
        """Change the status of an existing record.

        Returns:
            False if there is no record for (student, lesson, day)
        """
        result = await self.session.aexecute(
            self._update_if_exists,
            [status.value, marked_by, lesson_id, day, student_id],
        )
        return result.was_applied

    async def delete_attendance(
        self, lesson_id: UUID, day: date, student_id: UUID
    ) -> bool:
        """Delete a record. Returns False if it did not exist."""
        result = await self.session.aexecute(
            self._delete_if_exists, [lesson_id, day, student_id]
        )
        if result.was_applied:
            logger.info(
                "attendance_deleted",
                student_id=str(student_id),
                lesson_id=str(lesson_id),
                date=day.isoformat(),
            )
        return result.was_applied

    # ==========================================================================
    # Reads
    # ==========================================================================

    async def get_attendance(
        self, lesson_id: UUID, day: date, student_id: UUID
    ) -> AttendanceRecord | None:
        """Get the record for (student, lesson, day)."""
        result = await self.session.aexecute(
            self._get_one, [lesson_id, day, student_id]
        )
        row = result.one()
        return AttendanceRecord.from_row(row) if row else None

    async def list_for_lesson(
        self, lesson_id: UUID, day: date | None = None
    ) -> list[AttendanceRecord]:
        """Get attendance for a lesson, optionally for a single day."""
        if day is None:
            rows = await self.session.aexecute(self._get_by_lesson, [lesson_id])
        else:
            rows = await self.session.aexecute(
                self._get_by_lesson_and_date, [lesson_id, day]
            )
        return [AttendanceRecord.from_row(row) for row in rows]
