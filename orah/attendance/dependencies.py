"""FastAPI dependencies for attendance."""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from .service import AttendanceService


async def get_attendance_service(request: Request) -> AttendanceService:
    """Get attendance service from app state."""
    app_state = request.app.state
    if not getattr(app_state, "attendance_service", None):
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Attendance service not available",
        )
    return app_state.attendance_service


AttendanceServiceDep = Annotated[AttendanceService, Depends(get_attendance_service)]
