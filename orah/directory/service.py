"""Lesson and user lookups used by the enrollment engine."""

from typing import TYPE_CHECKING
from uuid import UUID

import structlog

from .models import Lesson, UserContact


if TYPE_CHECKING:
    from cassandra.cluster import Session

logger = structlog.get_logger(__name__)


class DirectoryService:
    """Read-only access to lessons and users."""

    def __init__(self, session: "Session", keyspace: str):
        """Initialize with Cassandra session."""
        self.session = session
        self.keyspace = keyspace
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        """Prepare CQL statements for efficient execution."""
        self._get_lesson = self.session.prepare(f"""
            SELECT id, instructor_id, title, deadline
            FROM {self.keyspace}.lessons WHERE id = ?
        """)

        self._get_lessons_by_instructor = self.session.prepare(f"""
            SELECT lesson_id FROM {self.keyspace}.lessons_by_instructor
            WHERE instructor_id = ?
        """)

        self._get_user = self.session.prepare(f"""
            SELECT id, first_name, last_name, email, phone, role
            FROM {self.keyspace}.users WHERE id = ?
        """)

    async def get_lesson(self, lesson_id: UUID) -> Lesson | None:
        """Get lesson by ID."""
        result = await self.session.aexecute(self._get_lesson, [lesson_id])
        row = result.one()
        return Lesson.from_row(row) if row else None

    async def get_user(self, user_id: UUID) -> UserContact | None:
        """Get user contact details by ID."""
        result = await self.session.aexecute(self._get_user, [user_id])
        row = result.one()
        return UserContact.from_row(row) if row else None

    async def list_lesson_ids_by_instructor(self, instructor_id: UUID) -> list[UUID]:
        """Get IDs of the lessons an instructor owns."""
        rows = await self.session.aexecute(
            self._get_lessons_by_instructor, [instructor_id]
        )
        return [row.lesson_id for row in rows]
