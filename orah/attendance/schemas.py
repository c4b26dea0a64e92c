"""Pydantic schemas for attendance."""

from datetime import date, datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from .models import AttendanceStatus, RecordOutcome


class AttendanceResponse(BaseModel):
    """Attendance record response."""

    model_config = ConfigDict(from_attributes=True)

    lesson_id: UUID
    date: date
    student_id: UUID
    status: AttendanceStatus
    marked_by: str
    created_at: datetime


class AttendanceListResponse(BaseModel):
    """Attendance records for a lesson."""

    items: list[AttendanceResponse]
    total: int


class AttendanceMark(BaseModel):
    """One student's attendance as marked by an instructor."""

    student_id: UUID
    status: AttendanceStatus
    day: date | None = Field(
        None, alias="date", description="Day to mark (default: today, UTC)"
    )


class MarkAttendanceRequest(BaseModel):
    """Attendance marks for several students of one lesson."""

    records: list[AttendanceMark] = Field(..., min_length=1, max_length=500)


class AttendanceMarkResult(BaseModel):
    """Outcome of a single mark."""

    student_id: UUID
    date: date
    status: AttendanceStatus
    outcome: RecordOutcome


class MarkAttendanceResponse(BaseModel):
    """Outcomes of a marking request."""

    items: list[AttendanceMarkResult]
    total: int


class UpdateAttendanceRequest(BaseModel):
    """New status for an existing record."""

    status: AttendanceStatus
