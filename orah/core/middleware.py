"""Request middleware: request IDs, access logs and context cleanup."""

import time
from collections.abc import Awaitable, Callable

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from orah.core.context import clear_context, set_request_id


logger = structlog.get_logger(__name__)

# Probes hit these every few seconds
QUIET_PATHS = ("/health",)


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Bind a request ID for the duration of a request and log its outcome.

    The ID is taken from ``X-Request-ID`` when the caller sends one, echoed
    back on the response, and included in every log line and error body.
    The authenticated user is bound later by the auth dependency.
    """

    REQUEST_ID_HEADER = "X-Request-ID"

    def __init__(
        self,
        app: ASGIApp,
        log_requests: bool = True,
        quiet_paths: tuple[str, ...] = QUIET_PATHS,
    ) -> None:
        super().__init__(app)
        self.log_requests = log_requests
        self.quiet_paths = quiet_paths

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        started = time.perf_counter()
        request_id = set_request_id(request.headers.get(self.REQUEST_ID_HEADER))
        request.state.request_id = request_id
        path = request.url.path
        log = self.log_requests and not path.startswith(self.quiet_paths)

        try:
            response = await call_next(request)
        except Exception as e:
            logger.exception(
                "request_failed",
                method=request.method,
                path=path,
                error_type=type(e).__name__,
                duration_ms=self._elapsed_ms(started),
            )
            raise
        else:
            if log:
                # 4xx are expected (locked lessons, duplicates) but worth seeing
                emit = logger.warning if response.status_code >= 400 else logger.info
                emit(
                    "request_completed",
                    method=request.method,
                    path=path,
                    status_code=response.status_code,
                    duration_ms=self._elapsed_ms(started),
                    client_ip=self._client_ip(request),
                )
            response.headers[self.REQUEST_ID_HEADER] = request_id
            return response
        finally:
            clear_context()

    @staticmethod
    def _elapsed_ms(started: float) -> float:
        return round((time.perf_counter() - started) * 1000, 2)

    @staticmethod
    def _client_ip(request: Request) -> str | None:
        forwarded_for = request.headers.get("x-forwarded-for")
        if forwarded_for:
            return forwarded_for.split(",")[0].strip()
        return request.client.host if request.client else None


__all__ = ["RequestContextMiddleware"]
