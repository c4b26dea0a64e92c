"""Shared fixtures: in-memory collaborators, callers and an API client."""

from collections.abc import Callable
from datetime import date, datetime, timedelta
from typing import Any
from uuid import UUID, uuid4

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from jose import jwt

from orah.attendance.models import AttendanceRecord, AttendanceStatus, RecordOutcome
from orah.auth.permissions import UserRole
from orah.auth.schemas import Caller
from orah.config import get_settings
from orah.directory.models import Lesson, UserContact
from orah.enrollments.exceptions import (
    DuplicateEnrollmentError,
    EnrollmentNotFoundError,
)
from orah.enrollments.models import Enrollment
from orah.enrollments.redo import RedoWorkflow
from orah.enrollments.service import EnrollmentService
from orah.enrollments.store import AppliedUpdate, Mutator, Transform
from orah.notifications.dispatcher import NotificationDispatcher
from orah.notifications.handlers import register_handlers
from orah.notifications.models import TaskKind, decode_payload, encode_payload
from orah.utils.dates import utc_now


# ==============================================================================
# In-memory collaborators
# ==============================================================================


class FakeEnrollmentStore:
    """Dict-backed store with the same versioning rules as EnrollmentStore."""

    def __init__(self) -> None:
        self.records: dict[UUID, Enrollment] = {}
        self.pairs: dict[tuple[UUID, UUID], UUID] = {}
        # Called after list_all returns, to simulate concurrent writers
        self.on_list: Callable[[], None] | None = None

    async def create(self, enrollment: Enrollment) -> Enrollment:
        key = (enrollment.lesson_id, enrollment.user_id)
        if key in self.pairs:
            raise DuplicateEnrollmentError
        self.pairs[key] = enrollment.id
        self.records[enrollment.id] = enrollment
        return enrollment

    async def get_by_id(self, enrollment_id: UUID) -> Enrollment | None:
        return self.records.get(enrollment_id)

    async def get_by_lesson_and_user(
        self, lesson_id: UUID, user_id: UUID
    ) -> Enrollment | None:
        enrollment_id = self.pairs.get((lesson_id, user_id))
        return self.records.get(enrollment_id) if enrollment_id else None

    async def list_by_lesson(self, lesson_id: UUID) -> list[Enrollment]:
        return [e for e in self.records.values() if e.lesson_id == lesson_id]

    async def list_by_user(self, user_id: UUID) -> list[Enrollment]:
        return [e for e in self.records.values() if e.user_id == user_id]

    async def list_all(self) -> list[Enrollment]:
        snapshot = list(self.records.values())
        if self.on_list is not None:
            self.on_list()
        return snapshot

    async def update(self, enrollment_id: UUID, fields: dict[str, Any]) -> Enrollment:
        applied = await self.transform(enrollment_id, lambda _current: fields)
        return applied.after

    async def transform(
        self, enrollment_id: UUID, transform: Transform
    ) -> AppliedUpdate:
        applied = await self.apply(enrollment_id, transform)
        assert applied is not None
        return applied

    async def apply(
        self, enrollment_id: UUID, mutator: Mutator
    ) -> AppliedUpdate | None:
        current = self.records.get(enrollment_id)
        if current is None:
            raise EnrollmentNotFoundError
        fields = mutator(current)
        if fields is None:
            return None
        updated = current.merged(fields, utc_now())
        self.records[enrollment_id] = updated
        return AppliedUpdate(before=current, after=updated)

    async def delete(self, enrollment_id: UUID) -> bool:
        enrollment = self.records.pop(enrollment_id, None)
        if enrollment is None:
            return False
        self.pairs.pop((enrollment.lesson_id, enrollment.user_id), None)
        return True

    def seed(self, **kwargs: Any) -> Enrollment:
        """Insert an enrollment directly, bypassing the service."""
        enrollment = Enrollment(id=kwargs.pop("id", uuid4()), **kwargs)
        self.records[enrollment.id] = enrollment
        self.pairs[(enrollment.lesson_id, enrollment.user_id)] = enrollment.id
        return enrollment


class FakeDirectory:
    def __init__(self) -> None:
        self.lessons: dict[UUID, Lesson] = {}
        self.users: dict[UUID, UserContact] = {}

    def add_lesson(
        self,
        instructor_id: UUID,
        deadline: datetime | None = None,
        title: str = "Intro to Fractions",
    ) -> Lesson:
        lesson = Lesson(
            id=uuid4(), instructor_id=instructor_id, title=title, deadline=deadline
        )
        self.lessons[lesson.id] = lesson
        return lesson

    def add_user(self, user_id: UUID, first_name: str, role: str = "student") -> None:
        self.users[user_id] = UserContact(
            id=user_id,
            first_name=first_name,
            last_name="Tester",
            email=f"{first_name.lower()}@example.com",
            role=role,
        )

    async def get_lesson(self, lesson_id: UUID) -> Lesson | None:
        return self.lessons.get(lesson_id)

    async def get_user(self, user_id: UUID) -> UserContact | None:
        return self.users.get(user_id)

    async def list_lesson_ids_by_instructor(self, instructor_id: UUID) -> list[UUID]:
        return [
            lesson.id
            for lesson in self.lessons.values()
            if lesson.instructor_id == instructor_id
        ]


class FakeOutbox:
    """Records dispatched tasks and delivers them to registered handlers."""

    def __init__(self) -> None:
        self.dispatched: list[tuple[TaskKind, dict[str, Any]]] = []
        self.handlers: dict[TaskKind, Any] = {}
        self.fail_kinds: set[TaskKind] = set()

    def register_handler(self, kind: TaskKind, handler: Any) -> None:
        self.handlers[kind] = handler

    async def dispatch(self, kind: TaskKind, payload: dict[str, Any]) -> bool:
        if kind in self.fail_kinds:
            msg = f"outbox unavailable for {kind.value}"
            raise RuntimeError(msg)
        # Same JSON round trip as the real outbox
        payload = decode_payload(encode_payload(payload))
        self.dispatched.append((kind, payload))
        handler = self.handlers.get(kind)
        if handler is None:
            return True
        return await handler(payload)

    def of_kind(self, kind: TaskKind) -> list[dict[str, Any]]:
        return [payload for k, payload in self.dispatched if k == kind]


class FakeAttendance:
    """Dict-backed attendance with the same overwrite rules as AttendanceService."""

    def __init__(self) -> None:
        self.records: dict[tuple[UUID, UUID, date], dict[str, Any]] = {}

    async def record_attendance(
        self,
        student_id: UUID,
        lesson_id: UUID,
        day: date,
        status: AttendanceStatus,
        marked_by: str,
    ) -> RecordOutcome:
        key = (student_id, lesson_id, day)
        if key in self.records:
            return RecordOutcome.ALREADY_EXISTS
        self.records[key] = {
            "status": status,
            "marked_by": marked_by,
            "created_at": utc_now(),
        }
        return RecordOutcome.CREATED

    async def mark_attendance(
        self,
        student_id: UUID,
        lesson_id: UUID,
        day: date,
        status: AttendanceStatus,
        marked_by: str,
    ) -> RecordOutcome:
        updated = await self.update_attendance(
            lesson_id, day, student_id, status, marked_by
        )
        if updated:
            return RecordOutcome.UPDATED
        return await self.record_attendance(
            student_id, lesson_id, day, status, marked_by
        )

    async def update_attendance(
        self,
        lesson_id: UUID,
        day: date,
        student_id: UUID,
        status: AttendanceStatus,
        marked_by: str,
    ) -> bool:
        record = self.records.get((student_id, lesson_id, day))
        if record is None:
            return False
        record.update(status=status, marked_by=marked_by)
        return True

    async def delete_attendance(
        self, lesson_id: UUID, day: date, student_id: UUID
    ) -> bool:
        return self.records.pop((student_id, lesson_id, day), None) is not None

    async def get_attendance(
        self, lesson_id: UUID, day: date, student_id: UUID
    ) -> AttendanceRecord | None:
        record = self.records.get((student_id, lesson_id, day))
        if record is None:
            return None
        return AttendanceRecord(
            lesson_id=lesson_id, date=day, student_id=student_id, **record
        )

    async def list_for_lesson(
        self, lesson_id: UUID, day: date | None = None
    ) -> list[AttendanceRecord]:
        return [
            await self.get_attendance(lesson, record_day, student)
            for student, lesson, record_day in self.records
            if lesson == lesson_id and day in (None, record_day)
        ]


# ==============================================================================
# Fixtures
# ==============================================================================


@pytest.fixture
def store() -> FakeEnrollmentStore:
    return FakeEnrollmentStore()


@pytest.fixture
def directory() -> FakeDirectory:
    return FakeDirectory()


@pytest.fixture
def attendance() -> FakeAttendance:
    return FakeAttendance()


@pytest.fixture
def outbox(attendance: FakeAttendance) -> FakeOutbox:
    """Outbox wired to the real handlers, with email disabled."""
    fake = FakeOutbox()
    register_handlers(fake, attendance, NotificationDispatcher(None, "http://test"))
    return fake


@pytest.fixture
def service(
    store: FakeEnrollmentStore, directory: FakeDirectory, outbox: FakeOutbox
) -> EnrollmentService:
    return EnrollmentService(store=store, directory=directory, outbox=outbox)


@pytest.fixture
def redo(store: FakeEnrollmentStore, directory: FakeDirectory) -> RedoWorkflow:
    return RedoWorkflow(store, directory)


@pytest.fixture
def student() -> Caller:
    return Caller(id=uuid4(), role=UserRole.STUDENT)


@pytest.fixture
def other_student() -> Caller:
    return Caller(id=uuid4(), role=UserRole.STUDENT)


@pytest.fixture
def instructor() -> Caller:
    return Caller(id=uuid4(), role=UserRole.INSTRUCTOR)


@pytest.fixture
def other_instructor() -> Caller:
    return Caller(id=uuid4(), role=UserRole.INSTRUCTOR)


@pytest.fixture
def admin() -> Caller:
    return Caller(id=uuid4(), role=UserRole.ADMIN)


@pytest.fixture
def lesson(directory: FakeDirectory, instructor: Caller) -> Lesson:
    """Lesson without a deadline."""
    return directory.add_lesson(instructor.id)


@pytest.fixture
def past_lesson(directory: FakeDirectory, instructor: Caller) -> Lesson:
    """Lesson whose deadline passed yesterday."""
    return directory.add_lesson(
        instructor.id, deadline=utc_now() - timedelta(days=1), title="Past Due"
    )


# ==============================================================================
# API client
# ==============================================================================


def make_token(caller: Caller) -> str:
    settings = get_settings()
    return jwt.encode(
        {"sub": str(caller.id), "role": caller.role.value, "type": "access"},
        settings.auth_secret_key,
        algorithm=settings.auth_algorithm,
    )


@pytest.fixture
def auth_headers() -> Callable[[Caller], dict[str, str]]:
    """Build Bearer headers for a caller."""

    def build(caller: Caller) -> dict[str, str]:
        return {"Authorization": f"Bearer {make_token(caller)}"}

    return build


@pytest.fixture
def app(
    service: EnrollmentService,
    redo: RedoWorkflow,
    directory: FakeDirectory,
    attendance: FakeAttendance,
) -> FastAPI:
    """Application with in-memory services (lifespan is not run)."""
    from orah.main import create_app

    application = create_app()
    application.state.enrollment_service = service
    application.state.redo_workflow = redo
    application.state.directory_service = directory
    application.state.attendance_service = attendance
    return application


@pytest.fixture
def client(app: FastAPI) -> TestClient:
    return TestClient(app)
