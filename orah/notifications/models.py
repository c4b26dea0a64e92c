"""Database models for the notification outbox.

Side effects of enrollment changes (attendance entries, notification emails)
are written as outbox tasks before delivery is attempted. A task is deleted
once its handler succeeds; failed tasks stay queued for the periodic drain
and are moved to ``outbox_dead_letters`` after too many attempts.

Partitioned by task kind, clustered by a time-based id, so a drain reads the
oldest tasks of each kind first.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID, uuid1

import orjson

from orah.utils.dates import ensure_utc_aware, utc_now


class TaskKind(str, Enum):
    """Kinds of outbox tasks."""

    ATTENDANCE_PRESENT = "attendance.present"
    NOTIFY_STUDENT_MISSED = "notify.student_missed"
    NOTIFY_INSTRUCTOR_MISSED = "notify.instructor_missed"
    NOTIFY_LESSON_REMINDER = "notify.lesson_reminder"


# ==============================================================================
# CQL Table Definitions
# ==============================================================================

OUTBOX_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.outbox_tasks (
    kind TEXT,
    task_id TIMEUUID,
    payload TEXT,
    attempts INT,
    last_error TEXT,
    enqueued_at TIMESTAMP,
    PRIMARY KEY ((kind), task_id)
) WITH CLUSTERING ORDER BY (task_id ASC)
"""

OUTBOX_DEAD_LETTERS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.outbox_dead_letters (
    kind TEXT,
    task_id TIMEUUID,
    payload TEXT,
    attempts INT,
    last_error TEXT,
    enqueued_at TIMESTAMP,
    failed_at TIMESTAMP,
    PRIMARY KEY ((kind), task_id)
)
"""

NOTIFICATIONS_TABLES_CQL = [
    OUTBOX_TABLE_CQL,
    OUTBOX_DEAD_LETTERS_TABLE_CQL,
]


# ==============================================================================
# Entity Classes
# ==============================================================================


def encode_payload(payload: dict[str, Any]) -> str:
    """Serialize a task payload (UUIDs, enums, dates and datetimes become strings)."""
    return orjson.dumps(payload).decode("utf-8")


def decode_payload(raw: str | None) -> dict[str, Any]:
    return orjson.loads(raw) if raw else {}


@dataclass
class OutboxTask:
    """Queued side effect."""

    kind: TaskKind
    payload: dict[str, Any]
    task_id: UUID = field(default_factory=uuid1)
    attempts: int = 0
    last_error: str | None = None
    enqueued_at: datetime = field(default_factory=utc_now)

    @classmethod
    def from_row(cls, row: Any) -> "OutboxTask":
        """Create OutboxTask from Cassandra row."""
        return cls(
            kind=TaskKind(row.kind),
            payload=decode_payload(row.payload),
            task_id=row.task_id,
            attempts=row.attempts or 0,
            last_error=row.last_error,
            enqueued_at=ensure_utc_aware(row.enqueued_at),
        )
