"""Execution context tracking using contextvars.

Every HTTP request gets a request ID (and, once authenticated, a user ID).
Scheduled jobs run outside any request, so they carry a job name and a run ID
instead. Log processors read these values without threading them through
every call.
"""

from contextvars import ContextVar
from typing import Any
from uuid import UUID, uuid4


request_id_var: ContextVar[str] = ContextVar("request_id", default="")
user_id_var: ContextVar[str | None] = ContextVar("user_id", default=None)
job_var: ContextVar[str | None] = ContextVar("job", default=None)


def generate_request_id() -> str:
    """Generate a new unique request ID."""
    return str(uuid4())


def get_request_id() -> str:
    """Get the current request ID."""
    return request_id_var.get()


def set_request_id(request_id: str | None = None) -> str:
    """Set the request ID for the current context.

    Args:
        request_id: Optional request ID. If not provided, generates a new one.

    Returns:
        The request ID that was set.
    """
    rid = request_id or generate_request_id()
    request_id_var.set(rid)
    return rid


def get_user_id() -> str | None:
    """Get the current user ID."""
    return user_id_var.get()


def set_user_id(user_id: str | UUID | None) -> None:
    """Set the user ID for the current context."""
    if user_id is not None:
        user_id_var.set(str(user_id))
    else:
        user_id_var.set(None)


def get_job() -> str | None:
    """Get the name of the scheduled job running in this context."""
    return job_var.get()


def get_context() -> dict[str, Any]:
    """Get all context variables as a dictionary."""
    context: dict[str, Any] = {}

    request_id = get_request_id()
    if request_id:
        context["request_id"] = request_id

    user_id = get_user_id()
    if user_id:
        context["user_id"] = user_id

    job = get_job()
    if job:
        context["job"] = job

    return context


def clear_context() -> None:
    """Clear all context variables.

    Called at the end of each request to prevent context leakage.
    """
    request_id_var.set("")
    user_id_var.set(None)
    job_var.set(None)


class JobContext:
    """Context manager binding a job name and run ID for a scheduled run.

    Usage:
        with JobContext("deadline_sweep"):
            logger.info("deadline_sweep_started")  # includes job + request_id
    """

    def __init__(self, job: str, run_id: str | None = None) -> None:
        self.job = job
        self.run_id = run_id or generate_request_id()
        self._tokens: dict[str, Any] = {}

    def __enter__(self) -> "JobContext":
        self._tokens["job"] = job_var.set(self.job)
        self._tokens["request_id"] = request_id_var.set(self.run_id)
        return self

    def __exit__(self, *_: object) -> None:
        job_var.reset(self._tokens["job"])
        request_id_var.reset(self._tokens["request_id"])
