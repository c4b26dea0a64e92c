# Core infrastructure
from orah.core.context import (
    JobContext,
    clear_context,
    get_context,
    get_job,
    get_request_id,
    get_user_id,
    set_request_id,
    set_user_id,
)
from orah.core.database import init_async_cassandra, shutdown_async_cassandra
from orah.core.logging import configure_structlog, get_logger
from orah.core.middleware import RequestContextMiddleware


__all__ = [
    "JobContext",
    "RequestContextMiddleware",
    "clear_context",
    "configure_structlog",
    "get_context",
    "get_job",
    "get_logger",
    "get_request_id",
    "get_user_id",
    "init_async_cassandra",
    "set_request_id",
    "set_user_id",
    "shutdown_async_cassandra",
]
