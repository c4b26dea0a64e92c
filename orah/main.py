"""Orah School API - Main Application."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from orah.attendance.router import router as attendance_router
from orah.attendance.service import AttendanceService
from orah.config import get_settings
from orah.core.context import get_request_id
from orah.core.database import init_async_cassandra, shutdown_async_cassandra
from orah.core.logging import configure_structlog, get_logger
from orah.core.middleware import RequestContextMiddleware
from orah.core.redis import init_redis, shutdown_redis
from orah.directory.service import DirectoryService
from orah.email.service import EmailService
from orah.enrollments.dependencies import error_status
from orah.enrollments.exceptions import EnrollmentError
from orah.enrollments.redo import RedoWorkflow
from orah.enrollments.router import router as enrollments_router
from orah.enrollments.service import EnrollmentService
from orah.enrollments.store import EnrollmentStore
from orah.health import router as health_router
from orah.jobs.deadline_sweep import DeadlineSweep
from orah.jobs.reminders import ReminderSweep
from orah.jobs.router import router as jobs_router
from orah.jobs.scheduler import JobScheduler
from orah.notifications.dispatcher import NotificationDispatcher
from orah.notifications.handlers import register_handlers
from orah.notifications.service import OutboxService


# Configure logging early (before creating logger)
settings = get_settings()
configure_structlog(settings, log_dir=Path(settings.log_dir))

logger = get_logger(__name__)


# Application state for dependency injection
class AppState:
    """Application state container."""

    cassandra_session: Any = None
    enrollment_store: EnrollmentStore | None = None
    directory_service: DirectoryService | None = None
    attendance_service: AttendanceService | None = None
    outbox_service: OutboxService | None = None
    enrollment_service: EnrollmentService | None = None
    redo_workflow: RedoWorkflow | None = None
    deadline_sweep: DeadlineSweep | None = None
    email_service: EmailService | None = None
    job_scheduler: JobScheduler | None = None


app_state = AppState()


def _init_email_service() -> EmailService | None:
    """Create the Gmail sender, or None when email is off or misconfigured."""
    if not settings.email_configured:
        logger.info("email_service_disabled")
        return None
    try:
        email_service = EmailService(
            credentials_path=settings.email_credentials_path,
            sender_address=settings.email_sender_address,
            sender_name=settings.email_sender_name,
        )
    except Exception as e:
        logger.warning(
            "email_service_init_skipped",
            error=str(e),
            message="Running without email service",
        )
        return None
    logger.info("email_service_initialized", sender=settings.email_sender_address)
    return email_service


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    settings = get_settings()
    logger.info(
        "starting_application",
        app_name=settings.app_name,
        version=settings.app_version,
        environment=settings.environment,
    )

    # Initialize Redis (non-critical - jobs run unlocked without it)
    redis_client = None
    try:
        redis_client = await init_redis()
        logger.info("redis_initialized")
    except Exception as e:
        logger.warning(
            "redis_init_skipped",
            error=str(e),
            message="Running without Redis - scheduled jobs run on every worker",
        )

    # Email is independent of the database
    app_state.email_service = _init_email_service()
    app.state.email_service = app_state.email_service

    # Initialize Cassandra (async) and the services built on it
    try:
        session = await init_async_cassandra()
        keyspace = settings.cassandra_keyspace
        app_state.cassandra_session = session
        logger.info("cassandra_initialized")

        app_state.enrollment_store = EnrollmentStore(
            session=session,
            keyspace=keyspace,
            max_retries=settings.store_max_write_retries,
            claim_grace_seconds=settings.store_claim_grace_seconds,
        )
        app_state.directory_service = DirectoryService(session, keyspace)
        app_state.attendance_service = AttendanceService(session, keyspace)
        app_state.outbox_service = OutboxService(
            session=session,
            keyspace=keyspace,
            max_attempts=settings.outbox_max_attempts,
        )

        dispatcher = NotificationDispatcher(app_state.email_service, settings.app_url)
        register_handlers(
            app_state.outbox_service, app_state.attendance_service, dispatcher
        )

        app_state.enrollment_service = EnrollmentService(
            store=app_state.enrollment_store,
            directory=app_state.directory_service,
            outbox=app_state.outbox_service,
        )
        app_state.redo_workflow = RedoWorkflow(
            app_state.enrollment_store, app_state.directory_service
        )
        app_state.deadline_sweep = DeadlineSweep(
            store=app_state.enrollment_store,
            directory=app_state.directory_service,
            outbox=app_state.outbox_service,
            missed_after_days=settings.enrollment_missed_after_days,
        )

        # Set on app.state for dependency injection via request.app.state
        app.state.directory_service = app_state.directory_service
        app.state.attendance_service = app_state.attendance_service
        app.state.enrollment_service = app_state.enrollment_service
        app.state.redo_workflow = app_state.redo_workflow
        app.state.deadline_sweep = app_state.deadline_sweep
        logger.info("enrollment_services_initialized")

        if settings.scheduler_enabled:
            app_state.job_scheduler = JobScheduler(
                settings=settings,
                deadline_sweep=app_state.deadline_sweep,
                reminder_sweep=ReminderSweep(
                    app_state.enrollment_store,
                    app_state.directory_service,
                    app_state.outbox_service,
                ),
                outbox=app_state.outbox_service,
                redis_client=redis_client,
            )
            app_state.job_scheduler.start()
            app.state.job_scheduler = app_state.job_scheduler
    except Exception as e:
        logger.warning(
            "database_init_skipped",
            error=str(e),
            message="Running without database connection",
        )

    yield

    # Shutdown
    logger.info("shutting_down_application")
    if app_state.job_scheduler is not None:
        app_state.job_scheduler.shutdown()
    await shutdown_redis()
    await shutdown_async_cassandra()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    # Starlette's debug mode would put stack traces in responses
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Orah School - Enrollment API",
        debug=False,
        lifespan=lifespan,
        default_response_class=ORJSONResponse,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
        openapi_url="/openapi.json" if settings.is_development else None,
    )

    # Request context middleware (must be added first - outermost)
    app.add_middleware(
        RequestContextMiddleware,
        log_requests=settings.log_requests,
        quiet_paths=tuple(settings.log_quiet_paths),
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=settings.cors_allow_methods,
        allow_headers=settings.cors_allow_headers,
        max_age=settings.cors_max_age,
    )

    def _get_request_id_safe(request: Request) -> str | None:
        """Get request_id from request state or context."""
        if hasattr(request.state, "request_id"):
            return request.state.request_id
        return get_request_id()

    # Global exception handlers (never expose stack traces)
    @app.exception_handler(EnrollmentError)
    async def enrollment_exception_handler(
        request: Request, exc: EnrollmentError
    ) -> ORJSONResponse:
        """Render enrollment errors with their stable error code."""
        status_code = error_status(exc)
        logger.info(
            "enrollment_error",
            code=exc.code,
            status_code=status_code,
            path=request.url.path,
            method=request.method,
        )
        return ORJSONResponse(
            status_code=status_code,
            content={
                "error": True,
                "code": exc.code,
                "message": exc.message,
                "status_code": status_code,
                "request_id": _get_request_id_safe(request),
            },
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(
        request: Request, exc: StarletteHTTPException
    ) -> ORJSONResponse:
        """Handle HTTP exceptions with safe error messages."""
        logger.warning(
            "http_exception",
            status_code=exc.status_code,
            detail=str(exc.detail),
            path=request.url.path,
            method=request.method,
        )

        return ORJSONResponse(
            status_code=exc.status_code,
            content={
                "error": True,
                "message": str(exc.detail)
                if exc.status_code < status.HTTP_500_INTERNAL_SERVER_ERROR
                else "Internal server error",
                "status_code": exc.status_code,
                "request_id": _get_request_id_safe(request),
            },
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> ORJSONResponse:
        """Handle request validation errors (field details are safe to expose)."""
        logger.warning(
            "validation_error",
            errors=exc.errors(),
            path=request.url.path,
            method=request.method,
        )

        return ORJSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={
                "error": True,
                "message": "Validation error",
                "status_code": 422,
                "request_id": _get_request_id_safe(request),
                "details": [
                    {
                        "field": ".".join(str(loc) for loc in err.get("loc", [])),
                        "message": err.get("msg", "Invalid value"),
                    }
                    for err in exc.errors()
                ],
            },
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(
        request: Request, exc: Exception
    ) -> ORJSONResponse:
        """Catch-all handler for unhandled exceptions.

        Details are logged with the stack trace; the caller gets a generic 500.
        """
        logger.exception(
            "unhandled_exception",
            error_type=type(exc).__name__,
            error_message=str(exc),
            path=request.url.path,
            method=request.method,
        )

        return ORJSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": True,
                "message": "An unexpected error occurred. Please try again later.",
                "status_code": 500,
                "request_id": _get_request_id_safe(request),
            },
        )

    # Include routers
    app.include_router(health_router)
    app.include_router(enrollments_router)
    app.include_router(attendance_router)
    app.include_router(jobs_router)

    @app.get("/", include_in_schema=False)
    async def root(request: Request) -> dict[str, str]:
        """Root endpoint."""
        return {
            "message": "Orah School API",
            "version": settings.app_version,
            "docs": f"{request.url}docs",
        }

    return app


app = create_app()
