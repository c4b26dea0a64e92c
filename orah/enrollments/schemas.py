"""Pydantic schemas for enrollments.

Request/Response models for:
- Enrolling in a lesson
- Progress updates (loosely typed, validated into update variants)
- Enrollment responses and lists
"""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from .models import Enrollment, EnrollmentStatus


# ==============================================================================
# Request Schemas
# ==============================================================================


class EnrollRequest(BaseModel):
    """Request to enroll in a lesson."""

    lesson_id: UUID
    # Admin only: enroll another user
    user_id: UUID | None = None


class ProgressUpdateRequest(BaseModel):
    """Partial progress update.

    Values are accepted loosely here and validated by ``build_updates`` so
    every field error is reported the same way (400 ``invalid_input``).
    """

    model_config = ConfigDict(populate_by_name=True)

    progress: int | float | str | None = Field(
        None, description="Completion percentage, 0-100"
    )
    status: str | None = Field(None, description="active or completed")
    time_spent_seconds: int | float | str | None = Field(
        None,
        alias="timeSpentSeconds",
        description="Seconds to add to the accumulated time",
    )
    last_access_date: datetime | str | None = Field(
        None, alias="lastAccessDate", description="ISO-8601 timestamp"
    )

    def to_payload(self) -> dict[str, Any]:
        """Fields that were supplied, by snake_case name."""
        return self.model_dump(exclude_none=True)


# ==============================================================================
# Response Schemas
# ==============================================================================


class EnrollmentResponse(BaseModel):
    """Enrollment response."""

    id: UUID
    lesson_id: UUID
    user_id: UUID
    status: EnrollmentStatus
    progress: int
    enrolled_at: datetime
    last_access_date: datetime
    time_spent_seconds: int
    redo_requested: bool
    redo_granted: bool
    version: int
    updated_at: datetime

    @classmethod
    def from_entity(cls, enrollment: Enrollment) -> "EnrollmentResponse":
        return cls(**enrollment.to_dict())


class EnrollmentListResponse(BaseModel):
    """List of enrollments."""

    items: list[EnrollmentResponse]
    total: int

    @classmethod
    def from_entities(cls, enrollments: list[Enrollment]) -> "EnrollmentListResponse":
        return cls(
            items=[EnrollmentResponse.from_entity(e) for e in enrollments],
            total=len(enrollments),
        )
