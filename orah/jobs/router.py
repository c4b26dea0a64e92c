"""Admin endpoints for scheduled jobs."""

from fastapi import APIRouter, HTTPException, Request, status

from orah.auth.dependencies import AdminUser
from orah.core.context import JobContext

from .deadline_sweep import DeadlineSweep
from .scheduler import DEADLINE_SWEEP_JOB


router = APIRouter(prefix="/v1/admin/jobs", tags=["admin", "jobs"])


def get_deadline_sweep(request: Request) -> DeadlineSweep:
    sweep = getattr(request.app.state, "deadline_sweep", None)
    if sweep is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Deadline sweep not available",
        )
    return sweep


@router.post("/deadline-sweep", summary="Run the deadline sweep now")
async def run_deadline_sweep(request: Request, user: AdminUser) -> dict[str, int]:
    """Run one deadline sweep synchronously and return its report."""
    sweep = get_deadline_sweep(request)
    with JobContext(DEADLINE_SWEEP_JOB):
        report = await sweep.run()
    return report.to_dict()
