"""FastAPI dependencies for directory lookups."""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from .service import DirectoryService


async def get_directory_service(request: Request) -> DirectoryService:
    """Get directory service from app state."""
    app_state = request.app.state
    if not getattr(app_state, "directory_service", None):
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Directory service not available",
        )
    return app_state.directory_service


DirectoryServiceDep = Annotated[DirectoryService, Depends(get_directory_service)]
