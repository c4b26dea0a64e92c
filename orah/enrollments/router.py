"""Enrollment API endpoints.

Provides routes for:
- Enrolling and unenrolling
- Enrollment queries (own, per user, per lesson)
- Progress updates
- Redo requests and grants

Enrollment errors propagate to the ``EnrollmentError`` handler registered on
the app, which renders the status code and error code.
"""

from uuid import UUID

from fastapi import APIRouter, Response, status

from orah.auth.dependencies import CurrentUser, InstructorUser

from .dependencies import EnrollmentServiceDep, RedoWorkflowDep
from .schemas import (
    EnrollmentListResponse,
    EnrollmentResponse,
    EnrollRequest,
    ProgressUpdateRequest,
)


router = APIRouter(prefix="/v1/enrollments", tags=["enrollments"])


# ==============================================================================
# Enroll
# ==============================================================================


@router.post(
    "",
    response_model=EnrollmentResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Enroll in a lesson",
)
async def enroll(
    data: EnrollRequest,
    service: EnrollmentServiceDep,
    user: CurrentUser,
) -> EnrollmentResponse:
    """Enroll the caller (or, for admins, another user) in a lesson."""
    enrollment = await service.enroll(user, data.lesson_id, data.user_id)
    return EnrollmentResponse.from_entity(enrollment)


# ==============================================================================
# Queries
# ==============================================================================


@router.get(
    "/me",
    response_model=EnrollmentListResponse,
    summary="List my enrollments",
)
async def list_my_enrollments(
    service: EnrollmentServiceDep,
    user: CurrentUser,
) -> EnrollmentListResponse:
    enrollments = await service.list_for_user(user.id, user)
    return EnrollmentListResponse.from_entities(enrollments)


@router.get(
    "/redo-requests",
    response_model=EnrollmentListResponse,
    summary="List pending redo requests",
)
async def list_redo_requests(
    redo: RedoWorkflowDep,
    user: InstructorUser,
) -> EnrollmentListResponse:
    """Pending redo requests on the caller's lessons (all lessons for admins)."""
    enrollments = await redo.list_pending(user)
    return EnrollmentListResponse.from_entities(enrollments)


@router.get(
    "/user/{user_id}",
    response_model=EnrollmentListResponse,
    summary="List a user's enrollments",
)
async def list_user_enrollments(
    user_id: UUID,
    service: EnrollmentServiceDep,
    user: CurrentUser,
) -> EnrollmentListResponse:
    enrollments = await service.list_for_user(user_id, user)
    return EnrollmentListResponse.from_entities(enrollments)


@router.get(
    "/lesson/{lesson_id}",
    response_model=EnrollmentListResponse,
    summary="List a lesson's enrollments",
)
async def list_lesson_enrollments(
    lesson_id: UUID,
    service: EnrollmentServiceDep,
    user: CurrentUser,
) -> EnrollmentListResponse:
    enrollments = await service.list_for_lesson(lesson_id, user)
    return EnrollmentListResponse.from_entities(enrollments)


@router.get(
    "/{enrollment_id}",
    response_model=EnrollmentResponse,
    summary="Get enrollment",
)
async def get_enrollment(
    enrollment_id: UUID,
    service: EnrollmentServiceDep,
    user: CurrentUser,
) -> EnrollmentResponse:
    enrollment = await service.get(enrollment_id, user)
    return EnrollmentResponse.from_entity(enrollment)


# ==============================================================================
# Progress
# ==============================================================================


@router.patch(
    "/{enrollment_id}/progress",
    response_model=EnrollmentResponse,
    summary="Update progress",
)
async def update_progress(
    enrollment_id: UUID,
    data: ProgressUpdateRequest,
    service: EnrollmentServiceDep,
    user: CurrentUser,
) -> EnrollmentResponse:
    """Update progress, status, time spent or last access.

    Completing the lesson records attendance for today. Past the lesson
    deadline, students get 403 with code ``LESSON_LOCKED`` unless a redo
    was granted.
    """
    enrollment = await service.update_progress(
        enrollment_id, user, data.to_payload()
    )
    return EnrollmentResponse.from_entity(enrollment)


# ==============================================================================
# Redo
# ==============================================================================


@router.post(
    "/{enrollment_id}/redo-request",
    response_model=EnrollmentResponse,
    summary="Request a redo",
)
async def request_redo(
    enrollment_id: UUID,
    redo: RedoWorkflowDep,
    user: CurrentUser,
) -> EnrollmentResponse:
    enrollment = await redo.request_redo(enrollment_id, user)
    return EnrollmentResponse.from_entity(enrollment)


@router.post(
    "/{enrollment_id}/redo-grant",
    response_model=EnrollmentResponse,
    summary="Grant a redo",
)
async def grant_redo(
    enrollment_id: UUID,
    redo: RedoWorkflowDep,
    user: CurrentUser,
) -> EnrollmentResponse:
    """Unlock the lesson for one more completion (instructor or admin)."""
    enrollment = await redo.grant_redo(enrollment_id, user)
    return EnrollmentResponse.from_entity(enrollment)


# ==============================================================================
# Unenroll
# ==============================================================================


@router.delete(
    "/{enrollment_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Unenroll",
)
async def unenroll(
    enrollment_id: UUID,
    service: EnrollmentServiceDep,
    user: CurrentUser,
) -> Response:
    await service.unenroll(enrollment_id, user)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
