"""Read-only lesson and user records.

Lessons and users are owned by the course catalogue and the account service.
The enrollment engine only reads the handful of fields it needs: a lesson's
instructor, title and optional deadline, and a user's contact details.
"""

from datetime import datetime
from typing import Any
from uuid import UUID

from orah.auth.permissions import UserRole
from orah.utils.dates import ensure_utc_aware


# ==============================================================================
# CQL Table Definitions
# ==============================================================================

LESSONS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.lessons (
    id UUID PRIMARY KEY,
    instructor_id UUID,
    title TEXT,
    deadline TIMESTAMP,
    created_at TIMESTAMP
)
"""

# Lookup: lessons owned by an instructor (redo review queue)
LESSONS_BY_INSTRUCTOR_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.lessons_by_instructor (
    instructor_id UUID,
    lesson_id UUID,
    PRIMARY KEY (instructor_id, lesson_id)
)
"""

USERS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.users (
    id UUID PRIMARY KEY,
    first_name TEXT,
    last_name TEXT,
    email TEXT,
    phone TEXT,
    role TEXT
)
"""

DIRECTORY_TABLES_CQL = [
    LESSONS_TABLE_CQL,
    LESSONS_BY_INSTRUCTOR_TABLE_CQL,
    USERS_TABLE_CQL,
]


# ==============================================================================
# Entity Classes
# ==============================================================================


class Lesson:
    """Lesson as seen by the enrollment engine.

    Attributes:
        id: Lesson UUID
        instructor_id: Owning instructor UUID
        title: Lesson title (used in notifications)
        deadline: Optional cutoff after which students are locked out
    """

    def __init__(
        self,
        id: UUID,
        instructor_id: UUID,
        title: str,
        deadline: datetime | None = None,
    ):
        self.id = id
        self.instructor_id = instructor_id
        self.title = title
        self.deadline = ensure_utc_aware(deadline)

    @classmethod
    def from_row(cls, row: Any) -> "Lesson":
        """Create Lesson instance from Cassandra row."""
        return cls(
            id=row.id,
            instructor_id=row.instructor_id,
            title=row.title or "",
            deadline=row.deadline,
        )

    def __repr__(self) -> str:
        return f"<Lesson {self.id} {self.title!r} deadline={self.deadline}>"


class UserContact:
    """User identity and contact details."""

    def __init__(
        self,
        id: UUID,
        first_name: str,
        last_name: str,
        email: str,
        phone: str | None = None,
        role: str = UserRole.STUDENT.value,
    ):
        self.id = id
        self.first_name = first_name
        self.last_name = last_name
        self.email = email
        self.phone = phone
        self.role = role

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @classmethod
    def from_row(cls, row: Any) -> "UserContact":
        """Create UserContact instance from Cassandra row."""
        return cls(
            id=row.id,
            first_name=row.first_name or "",
            last_name=row.last_name or "",
            email=row.email or "",
            phone=row.phone,
            role=row.role or UserRole.STUDENT.value,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "email": self.email,
            "phone": self.phone,
        }

    def __repr__(self) -> str:
        return f"<UserContact {self.id} {self.email}>"
