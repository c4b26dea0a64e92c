"""Attendance API endpoints (instructor view)."""

from datetime import date
from uuid import UUID

from fastapi import APIRouter, HTTPException, Query, Response, status

from orah.auth.dependencies import InstructorUser
from orah.auth.schemas import Caller
from orah.directory.dependencies import DirectoryServiceDep
from orah.directory.service import DirectoryService
from orah.utils.dates import utc_today

from .dependencies import AttendanceServiceDep
from .schemas import (
    AttendanceListResponse,
    AttendanceMarkResult,
    AttendanceResponse,
    MarkAttendanceRequest,
    MarkAttendanceResponse,
    UpdateAttendanceRequest,
)


router = APIRouter(prefix="/v1/attendance", tags=["attendance"])


async def _ensure_lesson_instructor(
    lesson_id: UUID, user: Caller, directory_service: DirectoryService
) -> None:
    """Only the lesson's instructor or an admin can manage its attendance."""
    lesson = await directory_service.get_lesson(lesson_id)
    if lesson is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Lesson not found",
        )
    if not user.is_admin and lesson.instructor_id != user.id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not the instructor of this lesson",
        )


@router.get(
    "/lesson/{lesson_id}",
    response_model=AttendanceListResponse,
    summary="List attendance for a lesson",
)
async def list_lesson_attendance(
    lesson_id: UUID,
    attendance_service: AttendanceServiceDep,
    directory_service: DirectoryServiceDep,
    user: InstructorUser,
    day: date | None = Query(None, alias="date", description="Filter by day"),
) -> AttendanceListResponse:
    """List attendance records for a lesson."""
    await _ensure_lesson_instructor(lesson_id, user, directory_service)

    records = await attendance_service.list_for_lesson(lesson_id, day)
    return AttendanceListResponse(
        items=[AttendanceResponse.model_validate(r) for r in records],
        total=len(records),
    )


@router.post(
    "/lesson/{lesson_id}",
    response_model=MarkAttendanceResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Mark attendance for students of a lesson",
)
async def mark_lesson_attendance(
    lesson_id: UUID,
    data: MarkAttendanceRequest,
    attendance_service: AttendanceServiceDep,
    directory_service: DirectoryServiceDep,
    user: InstructorUser,
) -> MarkAttendanceResponse:
    """Mark students present or absent.

    Marks overwrite any record already there for the same day, including
    one written when the student completed the lesson.
    """
    await _ensure_lesson_instructor(lesson_id, user, directory_service)

    today = utc_today()
    items = []
    for mark in data.records:
        day = mark.day or today
        outcome = await attendance_service.mark_attendance(
            student_id=mark.student_id,
            lesson_id=lesson_id,
            day=day,
            status=mark.status,
            marked_by=str(user.id),
        )
        items.append(
            AttendanceMarkResult(
                student_id=mark.student_id,
                date=day,
                status=mark.status,
                outcome=outcome,
            )
        )
    return MarkAttendanceResponse(items=items, total=len(items))


@router.patch(
    "/lesson/{lesson_id}/{day}/{student_id}",
    response_model=AttendanceResponse,
    summary="Change an attendance record",
)
async def update_lesson_attendance(
    lesson_id: UUID,
    day: date,
    student_id: UUID,
    data: UpdateAttendanceRequest,
    attendance_service: AttendanceServiceDep,
    directory_service: DirectoryServiceDep,
    user: InstructorUser,
) -> AttendanceResponse:
    """Change the status of an existing record."""
    await _ensure_lesson_instructor(lesson_id, user, directory_service)

    updated = await attendance_service.update_attendance(
        lesson_id, day, student_id, data.status, marked_by=str(user.id)
    )
    record = (
        await attendance_service.get_attendance(lesson_id, day, student_id)
        if updated
        else None
    )
    if record is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Attendance record not found",
        )
    return AttendanceResponse.model_validate(record)


@router.delete(
    "/lesson/{lesson_id}/{day}/{student_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete an attendance record",
)
async def delete_lesson_attendance(
    lesson_id: UUID,
    day: date,
    student_id: UUID,
    attendance_service: AttendanceServiceDep,
    directory_service: DirectoryServiceDep,
    user: InstructorUser,
) -> Response:
    """Delete an attendance record."""
    await _ensure_lesson_instructor(lesson_id, user, directory_service)

    if not await attendance_service.delete_attendance(lesson_id, day, student_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Attendance record not found",
        )
    return Response(status_code=status.HTTP_204_NO_CONTENT)
