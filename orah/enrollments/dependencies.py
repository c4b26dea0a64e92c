"""FastAPI dependencies for enrollments.

Provides dependency injection for:
- Enrollment service
- Redo workflow
- Error status mapping
"""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from .exceptions import EnrollmentError
from .redo import RedoWorkflow
from .service import EnrollmentService


async def get_enrollment_service(request: Request) -> EnrollmentService:
    """Get enrollment service from app state."""
    app_state = request.app.state
    if not getattr(app_state, "enrollment_service", None):
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Enrollment service not available",
        )
    return app_state.enrollment_service


async def get_redo_workflow(request: Request) -> RedoWorkflow:
    """Get redo workflow from app state."""
    app_state = request.app.state
    if not getattr(app_state, "redo_workflow", None):
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Enrollment service not available",
        )
    return app_state.redo_workflow


# ==============================================================================
# Error Mapping
# ==============================================================================

ERROR_STATUS_MAP: dict[str, int] = {
    "invalid_input": status.HTTP_400_BAD_REQUEST,
    "forbidden": status.HTTP_403_FORBIDDEN,
    "LESSON_LOCKED": status.HTTP_403_FORBIDDEN,
    "enrollment_not_found": status.HTTP_404_NOT_FOUND,
    "lesson_not_found": status.HTTP_404_NOT_FOUND,
    "already_enrolled": status.HTTP_409_CONFLICT,
    "concurrent_update": status.HTTP_409_CONFLICT,
}


def error_status(error: EnrollmentError) -> int:
    """HTTP status for an enrollment error."""
    return ERROR_STATUS_MAP.get(error.code, status.HTTP_400_BAD_REQUEST)


# ==============================================================================
# Type Aliases
# ==============================================================================

EnrollmentServiceDep = Annotated[EnrollmentService, Depends(get_enrollment_service)]
RedoWorkflowDep = Annotated[RedoWorkflow, Depends(get_redo_workflow)]
