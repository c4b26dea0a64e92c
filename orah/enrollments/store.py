"""Enrollment persistence with per-key optimistic concurrency.

Writes to the ``enrollments`` table are Cassandra lightweight transactions:
- create: the (lesson_id, user_id) claim in ``enrollments_by_lesson`` is
  inserted ``IF NOT EXISTS`` first, so a pair can only be claimed once. A
  claim with no enrollment row behind it (a create or delete that died
  midway) is taken over once it is older than the claim grace period
- update: ``UPDATE ... IF version = ?`` with the version that was read; a
  rejected write re-reads and re-applies the change on the fresh snapshot

Callers never observe a lost update: either their change lands on top of
every earlier committed write, or they get ``ConcurrentUpdateError``.
"""

from collections.abc import Callable
from datetime import timedelta
from typing import TYPE_CHECKING, Any, NamedTuple
from uuid import UUID

import structlog

from orah.utils.dates import ensure_utc_aware, utc_now

from .exceptions import (
    ConcurrentUpdateError,
    DuplicateEnrollmentError,
    EnrollmentNotFoundError,
)
from .models import Enrollment


if TYPE_CHECKING:
    from cassandra.cluster import Session

logger = structlog.get_logger(__name__)

# Mutator: snapshot -> fields to write, or None to leave the record alone
Mutator = Callable[[Enrollment], dict[str, Any] | None]
# Transform: snapshot -> fields to write, always
Transform = Callable[[Enrollment], dict[str, Any]]


class AppliedUpdate(NamedTuple):
    """Snapshot the write committed against, and the committed result."""

    before: Enrollment
    after: Enrollment


class EnrollmentStore:
    """Durable keyed collection of enrollment records."""

    def __init__(
        self,
        session: "Session",
        keyspace: str,
        max_retries: int = 5,
        claim_grace_seconds: int = 30,
    ):
        """Initialize with Cassandra session."""
        self.session = session
        self.keyspace = keyspace
        self.max_retries = max_retries
        self.claim_grace = timedelta(seconds=claim_grace_seconds)
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        """Prepare CQL statements for efficient execution."""
        # Main table
        self._get_by_id = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.enrollments WHERE id = ?
        """)

        self._get_all = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.enrollments
        """)

        self._insert = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.enrollments
            (id, lesson_id, user_id, status, progress, enrolled_at,
             last_access_date, time_spent_seconds, redo_requested, redo_granted,
             version, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            IF NOT EXISTS
        """)

        self._update_versioned = self.session.prepare(f"""
            UPDATE {self.keyspace}.enrollments
            SET status = ?, progress = ?, last_access_date = ?,
                time_spent_seconds = ?, redo_requested = ?, redo_granted = ?,
                version = ?, updated_at = ?
            WHERE id = ?
            IF version = ?
        """)

        self._delete = self.session.prepare(f"""
            DELETE FROM {self.keyspace}.enrollments WHERE id = ? IF EXISTS
        """)

        # By lesson (uniqueness claim)
        self._claim_pair = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.enrollments_by_lesson
            (lesson_id, user_id, enrollment_id, enrolled_at)
            VALUES (?, ?, ?, ?)
            IF NOT EXISTS
        """)

        self._get_pair = self.session.prepare(f"""
            SELECT enrollment_id, enrolled_at
            FROM {self.keyspace}.enrollments_by_lesson
            WHERE lesson_id = ? AND user_id = ?
        """)

        self._get_by_lesson = self.session.prepare(f"""
            SELECT enrollment_id FROM {self.keyspace}.enrollments_by_lesson
            WHERE lesson_id = ?
        """)

        self._release_pair = self.session.prepare(f"""
            DELETE FROM {self.keyspace}.enrollments_by_lesson
            WHERE lesson_id = ? AND user_id = ?
            IF enrollment_id = ?
        """)

        # By user (lookup)
        self._insert_by_user = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.enrollments_by_user
            (user_id, lesson_id, enrollment_id, enrolled_at)
            VALUES (?, ?, ?, ?)
        """)

        self._get_by_user = self.session.prepare(f"""
            SELECT enrollment_id FROM {self.keyspace}.enrollments_by_user
            WHERE user_id = ?
        """)

        self._delete_by_user = self.session.prepare(f"""
            DELETE FROM {self.keyspace}.enrollments_by_user
            WHERE user_id = ? AND lesson_id = ?
        """)

    # ==========================================================================
    # Create
    # ==========================================================================

    async def create(self, enrollment: Enrollment) -> Enrollment:
        """Persist a new enrollment.

        Raises:
            DuplicateEnrollmentError: If the (lesson_id, user_id) pair exists
        """
        if not await self._claim(enrollment):
            if not await self._release_stale_claim(
                enrollment.lesson_id, enrollment.user_id
            ):
                raise DuplicateEnrollmentError
            if not await self._claim(enrollment):
                raise DuplicateEnrollmentError

        try:
            await self.session.aexecute(
                self._insert,
                [
                    enrollment.id,
                    enrollment.lesson_id,
                    enrollment.user_id,
                    enrollment.status,
                    enrollment.progress,
                    enrollment.enrolled_at,
                    enrollment.last_access_date,
                    enrollment.time_spent_seconds,
                    enrollment.redo_requested,
                    enrollment.redo_granted,
                    enrollment.version,
                    enrollment.updated_at,
                ],
            )
            await self.session.aexecute(
                self._insert_by_user,
                [
                    enrollment.user_id,
                    enrollment.lesson_id,
                    enrollment.id,
                    enrollment.enrolled_at,
                ],
            )
        except Exception:
            # Give the pair back so the student can retry
            try:
                await self.session.aexecute(
                    self._release_pair,
                    [enrollment.lesson_id, enrollment.user_id, enrollment.id],
                )
            except Exception:
                # Left for _release_stale_claim once the grace period passes
                logger.exception(
                    "enrollment_claim_release_failed",
                    enrollment_id=str(enrollment.id),
                )
            raise

        logger.info(
            "enrollment_stored",
            enrollment_id=str(enrollment.id),
            lesson_id=str(enrollment.lesson_id),
            user_id=str(enrollment.user_id),
        )
        return enrollment

    async def _claim(self, enrollment: Enrollment) -> bool:
        result = await self.session.aexecute(
            self._claim_pair,
            [
                enrollment.lesson_id,
                enrollment.user_id,
                enrollment.id,
                enrollment.enrolled_at,
            ],
        )
        return result.was_applied

    async def _release_stale_claim(self, lesson_id: UUID, user_id: UUID) -> bool:
        """Drop a pair claim that no enrollment row backs.

        Claims younger than the grace period belong to a create that may
        still be writing its row, and are left alone.

        Returns:
            True if the pair is worth claiming again
        """
        result = await self.session.aexecute(self._get_pair, [lesson_id, user_id])
        row = result.one()
        if not row:
            # Released in between
            return True

        if await self.get_by_id(row.enrollment_id) is not None:
            return False

        claimed_at = ensure_utc_aware(row.enrolled_at)
        if claimed_at is not None and utc_now() - claimed_at < self.claim_grace:
            return False

        released = await self.session.aexecute(
            self._release_pair, [lesson_id, user_id, row.enrollment_id]
        )
        if released.was_applied:
            logger.warning(
                "enrollment_stale_claim_released",
                lesson_id=str(lesson_id),
                user_id=str(user_id),
                enrollment_id=str(row.enrollment_id),
            )
        return True

    # ==========================================================================
    # Read
    # ==========================================================================

    async def get_by_id(self, enrollment_id: UUID) -> Enrollment | None:
        """Get enrollment by ID."""
        result = await self.session.aexecute(self._get_by_id, [enrollment_id])
        row = result.one()
        return Enrollment.from_row(row) if row else None

    async def get_by_lesson_and_user(
        self, lesson_id: UUID, user_id: UUID
    ) -> Enrollment | None:
        """Get a student's enrollment in a lesson."""
        result = await self.session.aexecute(self._get_pair, [lesson_id, user_id])
        row = result.one()
        if not row:
            return None
        return await self.get_by_id(row.enrollment_id)

    async def list_by_lesson(self, lesson_id: UUID) -> list[Enrollment]:
        """Get all enrollments in a lesson."""
        rows = await self.session.aexecute(self._get_by_lesson, [lesson_id])
        return await self._resolve([row.enrollment_id for row in rows])

    async def list_by_user(self, user_id: UUID) -> list[Enrollment]:
        """Get all enrollments of a user."""
        rows = await self.session.aexecute(self._get_by_user, [user_id])
        return await self._resolve([row.enrollment_id for row in rows])

    async def list_all(self) -> list[Enrollment]:
        """Get every enrollment (full scan, used by scheduled jobs)."""
        rows = await self.session.aexecute(self._get_all)
        return [Enrollment.from_row(row) for row in rows]

    async def _resolve(self, enrollment_ids: list[UUID]) -> list[Enrollment]:
        # A claim without a main row is a create in flight (or one that failed)
        enrollments = []
        for enrollment_id in enrollment_ids:
            enrollment = await self.get_by_id(enrollment_id)
            if enrollment is not None:
                enrollments.append(enrollment)
        return enrollments

    # ==========================================================================
    # Update
    # ==========================================================================

    async def update(self, enrollment_id: UUID, fields: dict[str, Any]) -> Enrollment:
        """Merge ``fields`` into the current record.

        Raises:
            EnrollmentNotFoundError: If the enrollment does not exist
            ConcurrentUpdateError: If every retry lost to another writer
        """
        applied = await self.transform(enrollment_id, lambda _current: fields)
        return applied.after

    async def transform(
        self, enrollment_id: UUID, transform: Transform
    ) -> AppliedUpdate:
        """Like ``apply``, for a change that always writes.

        Raises:
            EnrollmentNotFoundError: If the enrollment does not exist
            ConcurrentUpdateError: If every retry lost to another writer
        """
        applied = await self.apply(enrollment_id, transform)
        if applied is None:
            msg = "transform returned no fields to write"
            raise TypeError(msg)
        return applied

    async def apply(
        self, enrollment_id: UUID, mutator: Mutator
    ) -> AppliedUpdate | None:
        """Read-modify-write with optimistic versioning.

        ``mutator`` is called with the latest snapshot on every attempt and
        returns the fields to write, or None to skip the write (in which
        case this returns None).

        Raises:
            EnrollmentNotFoundError: If the enrollment does not exist
            ConcurrentUpdateError: If every retry lost to another writer
        """
        for attempt in range(1, self.max_retries + 1):
            current = await self.get_by_id(enrollment_id)
            if current is None:
                raise EnrollmentNotFoundError

            fields = mutator(current)
            if fields is None:
                return None

            updated = current.merged(fields, utc_now())
            result = await self.session.aexecute(
                self._update_versioned,
                [
                    updated.status,
                    updated.progress,
                    updated.last_access_date,
                    updated.time_spent_seconds,
                    updated.redo_requested,
                    updated.redo_granted,
                    updated.version,
                    updated.updated_at,
                    enrollment_id,
                    current.version,
                ],
            )
            if result.was_applied:
                return AppliedUpdate(before=current, after=updated)

            logger.info(
                "enrollment_write_conflict",
                enrollment_id=str(enrollment_id),
                attempt=attempt,
                read_version=current.version,
            )

        logger.warning(
            "enrollment_write_retries_exhausted",
            enrollment_id=str(enrollment_id),
            max_retries=self.max_retries,
        )
        raise ConcurrentUpdateError

    # ==========================================================================
    # Delete
    # ==========================================================================

    async def delete(self, enrollment_id: UUID) -> bool:
        """Delete an enrollment and its lookup rows.

        The pair claim goes last; if it is left behind, the next ``create``
        for the pair finds it unbacked and takes it over.

        Returns:
            False if the enrollment did not exist
        """
        enrollment = await self.get_by_id(enrollment_id)
        if enrollment is None:
            return False

        result = await self.session.aexecute(self._delete, [enrollment_id])
        if not result.was_applied:
            return False

        await self.session.aexecute(
            self._delete_by_user, [enrollment.user_id, enrollment.lesson_id]
        )
        await self.session.aexecute(
            self._release_pair,
            [enrollment.lesson_id, enrollment.user_id, enrollment.id],
        )

        logger.info("enrollment_deleted", enrollment_id=str(enrollment_id))
        return True
