"""Tests for EnrollmentService: enroll, progress updates and completion hooks."""

from uuid import uuid4

import pytest

from orah.auth.schemas import Caller
from orah.directory.models import Lesson
from orah.enrollments.exceptions import (
    DuplicateEnrollmentError,
    EnrollmentNotFoundError,
    ForbiddenError,
    InvalidInputError,
    LessonLockedError,
    LessonNotFoundError,
)
from orah.enrollments.models import MAX_TIME_SPENT_SECONDS
from orah.enrollments.service import EnrollmentService
from orah.notifications.models import TaskKind
from orah.utils.dates import utc_today


# ==============================================================================
# Enroll / Unenroll
# ==============================================================================


class TestEnroll:
    @pytest.mark.asyncio
    async def test_enroll_creates_active_record(
        self, service: EnrollmentService, student: Caller, lesson: Lesson
    ) -> None:
        enrollment = await service.enroll(student, lesson.id)

        assert enrollment.user_id == student.id
        assert enrollment.lesson_id == lesson.id
        assert enrollment.progress == 0
        assert enrollment.status == "active"
        assert enrollment.time_spent_seconds == 0
        assert enrollment.redo_requested is False
        assert enrollment.redo_granted is False
        assert enrollment.last_access_date == enrollment.enrolled_at

    @pytest.mark.asyncio
    async def test_duplicate_enrollment_conflicts(
        self, service: EnrollmentService, store, student: Caller, lesson: Lesson
    ) -> None:
        await service.enroll(student, lesson.id)

        with pytest.raises(DuplicateEnrollmentError):
            await service.enroll(student, lesson.id)

        assert len(await store.list_by_lesson(lesson.id)) == 1

    @pytest.mark.asyncio
    async def test_unknown_lesson(
        self, service: EnrollmentService, student: Caller
    ) -> None:
        with pytest.raises(LessonNotFoundError):
            await service.enroll(student, uuid4())

    @pytest.mark.asyncio
    async def test_student_cannot_enroll_someone_else(
        self,
        service: EnrollmentService,
        student: Caller,
        other_student: Caller,
        lesson: Lesson,
    ) -> None:
        with pytest.raises(ForbiddenError):
            await service.enroll(student, lesson.id, user_id=other_student.id)

    @pytest.mark.asyncio
    async def test_admin_can_enroll_someone_else(
        self,
        service: EnrollmentService,
        admin: Caller,
        student: Caller,
        lesson: Lesson,
    ) -> None:
        enrollment = await service.enroll(admin, lesson.id, user_id=student.id)
        assert enrollment.user_id == student.id


class TestUnenroll:
    @pytest.mark.asyncio
    async def test_owner_unenrolls_and_can_enroll_again(
        self, service: EnrollmentService, store, student: Caller, lesson: Lesson
    ) -> None:
        enrollment = await service.enroll(student, lesson.id)

        await service.unenroll(enrollment.id, student)

        assert await store.get_by_id(enrollment.id) is None
        again = await service.enroll(student, lesson.id)
        assert again.id != enrollment.id

    @pytest.mark.asyncio
    async def test_non_owner_forbidden(
        self,
        service: EnrollmentService,
        student: Caller,
        instructor: Caller,
        lesson: Lesson,
    ) -> None:
        enrollment = await service.enroll(student, lesson.id)
        with pytest.raises(ForbiddenError):
            await service.unenroll(enrollment.id, instructor)

    @pytest.mark.asyncio
    async def test_missing(self, service: EnrollmentService, student: Caller) -> None:
        with pytest.raises(EnrollmentNotFoundError):
            await service.unenroll(uuid4(), student)


# ==============================================================================
# Queries
# ==============================================================================


class TestQueries:
    @pytest.mark.asyncio
    async def test_visibility(
        self,
        service: EnrollmentService,
        student: Caller,
        other_student: Caller,
        instructor: Caller,
        other_instructor: Caller,
        admin: Caller,
        lesson: Lesson,
    ) -> None:
        enrollment = await service.enroll(student, lesson.id)

        for caller in (student, instructor, admin):
            assert (await service.get(enrollment.id, caller)).id == enrollment.id
        for caller in (other_student, other_instructor):
            with pytest.raises(ForbiddenError):
                await service.get(enrollment.id, caller)

    @pytest.mark.asyncio
    async def test_list_for_user_is_self_or_admin(
        self,
        service: EnrollmentService,
        student: Caller,
        other_student: Caller,
        admin: Caller,
        lesson: Lesson,
    ) -> None:
        await service.enroll(student, lesson.id)

        assert len(await service.list_for_user(student.id, student)) == 1
        assert len(await service.list_for_user(student.id, admin)) == 1
        with pytest.raises(ForbiddenError):
            await service.list_for_user(student.id, other_student)

    @pytest.mark.asyncio
    async def test_list_for_lesson_is_instructor_or_admin(
        self,
        service: EnrollmentService,
        student: Caller,
        instructor: Caller,
        other_instructor: Caller,
        lesson: Lesson,
    ) -> None:
        await service.enroll(student, lesson.id)

        assert len(await service.list_for_lesson(lesson.id, instructor)) == 1
        with pytest.raises(ForbiddenError):
            await service.list_for_lesson(lesson.id, other_instructor)
        with pytest.raises(LessonNotFoundError):
            await service.list_for_lesson(uuid4(), instructor)


# ==============================================================================
# Progress Updates
# ==============================================================================


class TestUpdateProgress:
    @pytest.mark.asyncio
    async def test_partial_then_complete(
        self,
        service: EnrollmentService,
        attendance,
        student: Caller,
        lesson: Lesson,
    ) -> None:
        enrollment = await service.enroll(student, lesson.id)

        halfway = await service.update_progress(
            enrollment.id, student, {"progress": 50}
        )
        assert halfway.progress == 50
        assert halfway.status == "active"
        assert attendance.records == {}

        done = await service.update_progress(enrollment.id, student, {"progress": 100})
        assert done.progress == 100
        assert done.status == "completed"

        key = (student.id, lesson.id, utc_today())
        assert list(attendance.records) == [key]
        assert attendance.records[key]["marked_by"] == "system"
        assert attendance.records[key]["status"].value == "present"

    @pytest.mark.asyncio
    async def test_completing_twice_same_day_records_attendance_once(
        self,
        service: EnrollmentService,
        attendance,
        outbox,
        student: Caller,
        lesson: Lesson,
    ) -> None:
        enrollment = await service.enroll(student, lesson.id)

        await service.update_progress(enrollment.id, student, {"progress": 100})
        await service.update_progress(enrollment.id, student, {"progress": 100})

        assert len(outbox.of_kind(TaskKind.ATTENDANCE_PRESENT)) == 2
        assert len(attendance.records) == 1

    @pytest.mark.asyncio
    async def test_time_deltas_accumulate(
        self, service: EnrollmentService, student: Caller, lesson: Lesson
    ) -> None:
        enrollment = await service.enroll(student, lesson.id)

        await service.update_progress(
            enrollment.id, student, {"time_spent_seconds": 10}
        )
        updated = await service.update_progress(
            enrollment.id, student, {"time_spent_seconds": 10}
        )

        assert updated.time_spent_seconds == 20
        assert updated.version == 3

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", ["missed", "paused"])
    async def test_full_progress_completes_whatever_status_is_sent(
        self,
        service: EnrollmentService,
        attendance,
        student: Caller,
        lesson: Lesson,
        status: str,
    ) -> None:
        enrollment = await service.enroll(student, lesson.id)

        done = await service.update_progress(
            enrollment.id, student, {"progress": 100, "status": status}
        )

        assert done.progress == 100
        assert done.status == "completed"
        assert len(attendance.records) == 1

    @pytest.mark.asyncio
    async def test_time_total_beyond_bigint_rejected(
        self, service: EnrollmentService, store, student: Caller, lesson: Lesson
    ) -> None:
        enrollment = store.seed(
            lesson_id=lesson.id,
            user_id=student.id,
            time_spent_seconds=MAX_TIME_SPENT_SECONDS - 5,
        )

        with pytest.raises(InvalidInputError):
            await service.update_progress(
                enrollment.id, student, {"time_spent_seconds": 6}
            )

        assert (await store.get_by_id(enrollment.id)).version == enrollment.version

    @pytest.mark.asyncio
    async def test_out_of_range_progress_rejected(
        self, service: EnrollmentService, store, student: Caller, lesson: Lesson
    ) -> None:
        enrollment = await service.enroll(student, lesson.id)

        with pytest.raises(InvalidInputError):
            await service.update_progress(enrollment.id, student, {"progress": 101})

        assert (await store.get_by_id(enrollment.id)).progress == 0

    @pytest.mark.asyncio
    async def test_empty_payload_rejected(
        self, service: EnrollmentService, student: Caller, lesson: Lesson
    ) -> None:
        enrollment = await service.enroll(student, lesson.id)
        with pytest.raises(InvalidInputError):
            await service.update_progress(enrollment.id, student, {})

    @pytest.mark.asyncio
    async def test_non_owner_forbidden(
        self,
        service: EnrollmentService,
        student: Caller,
        instructor: Caller,
        lesson: Lesson,
    ) -> None:
        enrollment = await service.enroll(student, lesson.id)
        with pytest.raises(ForbiddenError):
            await service.update_progress(enrollment.id, instructor, {"progress": 10})

    @pytest.mark.asyncio
    async def test_unknown_enrollment(
        self, service: EnrollmentService, student: Caller
    ) -> None:
        with pytest.raises(EnrollmentNotFoundError):
            await service.update_progress(uuid4(), student, {"progress": 10})

    @pytest.mark.asyncio
    async def test_locked_after_deadline(
        self, service: EnrollmentService, store, student: Caller, past_lesson: Lesson
    ) -> None:
        enrollment = store.seed(lesson_id=past_lesson.id, user_id=student.id)

        with pytest.raises(LessonLockedError):
            await service.update_progress(enrollment.id, student, {"progress": 10})

    @pytest.mark.asyncio
    async def test_granted_redo_is_consumed_on_completion(
        self,
        service: EnrollmentService,
        store,
        attendance,
        student: Caller,
        past_lesson: Lesson,
    ) -> None:
        enrollment = store.seed(
            lesson_id=past_lesson.id, user_id=student.id, redo_granted=True
        )

        result = await service.update_progress(
            enrollment.id, student, {"progress": 100}
        )

        # The response is the primary write; the relock shows up on re-read
        assert result.status == "completed"
        assert result.redo_granted is True
        reread = await store.get_by_id(enrollment.id)
        assert reread.redo_granted is False
        assert reread.status == "completed"
        assert len(attendance.records) == 1

        with pytest.raises(LessonLockedError):
            await service.update_progress(enrollment.id, student, {"progress": 90})

    @pytest.mark.asyncio
    async def test_partial_progress_keeps_redo(
        self, service: EnrollmentService, store, student: Caller, past_lesson: Lesson
    ) -> None:
        enrollment = store.seed(
            lesson_id=past_lesson.id, user_id=student.id, redo_granted=True
        )

        await service.update_progress(enrollment.id, student, {"progress": 40})

        assert (await store.get_by_id(enrollment.id)).redo_granted is True

    @pytest.mark.asyncio
    async def test_attendance_failure_does_not_fail_update(
        self,
        service: EnrollmentService,
        store,
        outbox,
        student: Caller,
        past_lesson: Lesson,
    ) -> None:
        outbox.fail_kinds.add(TaskKind.ATTENDANCE_PRESENT)
        enrollment = store.seed(
            lesson_id=past_lesson.id, user_id=student.id, redo_granted=True
        )

        result = await service.update_progress(
            enrollment.id, student, {"progress": 100}
        )

        assert result.status == "completed"
        # Relock is independent of the attendance step
        assert (await store.get_by_id(enrollment.id)).redo_granted is False

    @pytest.mark.asyncio
    async def test_relock_failure_does_not_fail_update(
        self,
        service: EnrollmentService,
        store,
        attendance,
        student: Caller,
        past_lesson: Lesson,
    ) -> None:
        enrollment = store.seed(
            lesson_id=past_lesson.id, user_id=student.id, redo_granted=True
        )
        apply = store.apply

        async def fail_relock(enrollment_id, mutator):
            if store.records[enrollment_id].is_completed:
                raise RuntimeError("write timeout")
            return await apply(enrollment_id, mutator)

        store.apply = fail_relock

        result = await service.update_progress(
            enrollment.id, student, {"progress": 100}
        )

        assert result.status == "completed"
        assert result.progress == 100
        committed = await store.get_by_id(enrollment.id)
        assert committed.status == "completed"
        # Grant stays until a later completion consumes it
        assert committed.redo_granted is True
        assert len(attendance.records) == 1

    @pytest.mark.asyncio
    async def test_relock_keeps_grant_issued_after_completion(
        self,
        service: EnrollmentService,
        store,
        student: Caller,
        past_lesson: Lesson,
    ) -> None:
        enrollment = store.seed(
            lesson_id=past_lesson.id, user_id=student.id, redo_granted=True
        )
        apply = store.apply

        async def grant_before_relock(enrollment_id, mutator):
            current = store.records[enrollment_id]
            if current.is_completed:
                # Instructor grants again between the two writes
                await apply(enrollment_id, lambda _c: {"redo_granted": True})
            return await apply(enrollment_id, mutator)

        store.apply = grant_before_relock

        await service.update_progress(enrollment.id, student, {"progress": 100})

        assert (await store.get_by_id(enrollment.id)).redo_granted is True
