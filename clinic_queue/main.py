"""
Clinic Queue API - Patient Queue Service

A real-time patient queue for a clinic front desk and waiting-room displays.

This API provides:
- Patient registration with per-day queue numbers
- Automatic serving of emergency and senior patients
- A ranked queue (emergency, senior, then first-come-first-served)
- Server-Sent Events so displays refresh when the queue changes
- Daily statistics for the admin dashboard
"""

import time
from contextlib import asynccontextmanager
from uuid import uuid4

from fastapi import Depends, FastAPI, Header, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from clinic_queue.config.config import Settings, get_settings
from clinic_queue.config.logging_config import (
    bind_admin_context,
    configure_logging,
    get_logger,
    log_request_context,
)
from clinic_queue.database.database import close_patient_store, create_patient_store
from clinic_queue.models.models import (
    DashboardResponse,
    ErrorResponse,
    HealthResponse,
    HealthStatus,
    PatientResponse,
    QueueResponse,
    RegisterPatientRequest,
    RegisterPatientResponse,
    ServedTodayResponse,
    ServePatientResponse,
)
from clinic_queue.services.admin_auth import AdminContext, authenticate_admin
from clinic_queue.services.errors import QueueServiceError
from clinic_queue.services.event_stream import SSE_HEADERS, queue_event_stream
from clinic_queue.services.queue_service import QueueService, get_queue_service

# Configure logging before anything else
configure_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Handles startup and shutdown events with proper logging.
    """
    settings: Settings = app.state.settings
    service: QueueService = app.state.queue_service

    # Startup
    logger.info(
        "Application starting",
        app_name=settings.app_name,
        version=settings.app_version,
        environment=settings.environment,
        store_backend=service.store.backend_name,
        config=settings.get_safe_config_dict(),
    )

    yield

    # Shutdown
    service.bus.close_all()
    service.store.close()
    close_patient_store()
    logger.info("Application shutting down")


# ============================================================================
# Dependencies
# ============================================================================

def get_app_settings(request: Request) -> Settings:
    """Settings the application was created with."""
    return request.app.state.settings


def get_service(request: Request) -> QueueService:
    """Queue service bound to the application."""
    return request.app.state.queue_service


async def require_admin(
    x_admin_token: str | None = Header(default=None, alias="X-Admin-Token"),
    settings: Settings = Depends(get_app_settings),
) -> AdminContext:
    """Build the admin context for this request from its token header."""
    admin = authenticate_admin(x_admin_token, settings)
    bind_admin_context(admin.admin_id, admin.authenticated)
    return admin


def _request_id(request: Request) -> str | None:
    return getattr(request.state, "request_id", None) or request.headers.get("X-Request-ID")


def create_app(
    settings: Settings | None = None,
    service: QueueService | None = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        settings: Optional settings override for testing.
        service: Optional queue service override for testing.

    Returns:
        Configured FastAPI application.
    """
    if service is None:
        if settings is None:
            service = get_queue_service()
        else:
            service = QueueService(store=create_patient_store(settings), settings=settings)
    settings = settings or service.settings

    app = FastAPI(
        title=settings.app_name,
        description=__doc__,
        version=settings.app_version,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
    )
    app.state.settings = settings
    app.state.queue_service = service

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Request logging middleware
    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Log all requests with timing and context."""
        request_id = request.headers.get("X-Request-ID") or str(uuid4())
        request.state.request_id = request_id
        start_time = time.perf_counter()

        # Bind request context for all logs in this request
        log_request_context(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )

        response = await call_next(request)

        processing_time = int((time.perf_counter() - start_time) * 1000)
        response.headers["X-Request-ID"] = request_id
        response.headers["X-Processing-Time-Ms"] = str(processing_time)

        logger.info(
            "Request completed",
            status_code=response.status_code,
            processing_time_ms=processing_time,
        )

        return response

    # Exception handlers
    @app.exception_handler(QueueServiceError)
    async def queue_error_handler(request: Request, exc: QueueServiceError):
        """Map domain errors to their status code."""
        logger.info("Request rejected", error=exc.error_code, message=exc.message)
        return JSONResponse(
            status_code=exc.status_code,
            content=ErrorResponse(
                error=exc.error_code,
                message=exc.message,
                details=exc.details,
                request_id=_request_id(request),
            ).model_dump(mode="json"),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Report every invalid field at once."""
        fields = [
            {
                "field": ".".join(str(part) for part in error["loc"]),
                "message": error["msg"],
                "type": error["type"],
            }
            for error in exc.errors()
        ]
        logger.info("Validation failed", fields=[f["field"] for f in fields])
        return JSONResponse(
            status_code=422,
            content=ErrorResponse(
                error="VALIDATION_ERROR",
                message="Validation failed: " + "; ".join(f["message"] for f in fields),
                details={"fields": fields},
                request_id=_request_id(request),
            ).model_dump(mode="json"),
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        """Handle HTTP exceptions with structured response."""
        return JSONResponse(
            status_code=exc.status_code,
            content=ErrorResponse(
                error=f"HTTP_{exc.status_code}",
                message=str(exc.detail),
                request_id=_request_id(request),
            ).model_dump(mode="json"),
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        """Handle unexpected exceptions."""
        logger.exception("Unhandled exception", error=str(exc))
        return JSONResponse(
            status_code=500,
            content=ErrorResponse(
                error="INTERNAL_ERROR",
                message="An unexpected error occurred",
                request_id=_request_id(request),
            ).model_dump(mode="json"),
        )

    # Register routes
    register_routes(app)

    return app


def register_routes(app: FastAPI) -> None:
    """Register all API routes."""

    @app.get("/", tags=["Root"])
    async def root(settings: Settings = Depends(get_app_settings)):
        """Root endpoint with API information."""
        return {
            "name": settings.app_name,
            "version": settings.app_version,
            "status": "operational",
            "docs": "/docs" if settings.debug else "disabled",
        }

    @app.get("/health", response_model=HealthResponse, tags=["Health"])
    async def health_check(
        settings: Settings = Depends(get_app_settings),
        service: QueueService = Depends(get_service),
    ) -> HealthResponse:
        """
        Health check endpoint for monitoring.

        Returns system health status and component checks.
        """
        checks = {
            "api": True,
            "store": await service.check_store(),
            "notifications_available": service.bus.subscriber_count < service.bus.max_subscribers,
        }

        # Determine overall status
        if all(checks.values()):
            status = HealthStatus.HEALTHY
        elif checks["store"]:
            status = HealthStatus.DEGRADED
        else:
            status = HealthStatus.UNHEALTHY

        return HealthResponse(
            status=status,
            version=settings.app_version,
            environment=settings.environment,
            checks=checks,
        )

    @app.post(
        "/api/v1/patients",
        response_model=RegisterPatientResponse,
        status_code=201,
        tags=["Patients"],
    )
    async def register_patient(
        request: RegisterPatientRequest,
        admin: AdminContext = Depends(require_admin),
        service: QueueService = Depends(get_service),
    ) -> RegisterPatientResponse:
        """
        Register a patient in today's queue.

        Emergency patients and patients aged 65 or over are served
        immediately, as is anyone registered with `serve_immediately`.
        Connected queue displays are notified.
        """
        return await service.register_patient(request, admin)

    @app.get(
        "/api/v1/patients/served-today",
        response_model=ServedTodayResponse,
        tags=["Patients"],
    )
    async def served_today(
        admin: AdminContext = Depends(require_admin),
        service: QueueService = Depends(get_service),
    ) -> ServedTodayResponse:
        """Patients registered today who have been served."""
        return await service.get_served_today()

    @app.get("/api/v1/patients/{patient_id}", response_model=PatientResponse, tags=["Patients"])
    async def get_patient(
        patient_id: str,
        service: QueueService = Depends(get_service),
    ) -> PatientResponse:
        """Registration confirmation for one patient."""
        return await service.get_patient(patient_id)

    @app.post(
        "/api/v1/patients/{patient_id}/serve",
        response_model=ServePatientResponse,
        tags=["Patients"],
    )
    async def serve_patient(
        patient_id: str,
        admin: AdminContext = Depends(require_admin),
        service: QueueService = Depends(get_service),
    ) -> ServePatientResponse:
        """
        Mark a patient as served.

        Serving a patient twice is not an error; the response reports
        `already_served`. Connected queue displays are notified.
        """
        return await service.serve_patient(patient_id, admin)

    @app.get("/api/v1/queue", response_model=QueueResponse, tags=["Queue"])
    async def get_queue(service: QueueService = Depends(get_service)) -> QueueResponse:
        """
        Get the live queue of waiting patients.

        Ordered by priority:
        - Emergency patients first
        - Then senior patients (65+)
        - Then everyone else by queue number

        Only today's registrations are listed by default: a patient from a
        previous day who was never served does not appear. Set
        `QUEUE_SCOPE=all` to list every unserved patient regardless of day.
        """
        return await service.get_queue()

    @app.get("/api/v1/queue/events", tags=["Queue"])
    async def queue_events(
        request: Request,
        settings: Settings = Depends(get_app_settings),
        service: QueueService = Depends(get_service),
    ) -> StreamingResponse:
        """
        Subscribe to queue changes.

        Returns a Server-Sent Events stream. Each `QueueUpdated` event
        means the queue changed and should be re-fetched from
        `/api/v1/queue`; events carry no payload. Comment lines are sent as
        heartbeats.
        """
        subscription = service.bus.subscribe()
        return StreamingResponse(
            queue_event_stream(
                service.bus,
                subscription,
                heartbeat_seconds=settings.sse_heartbeat_seconds,
                is_disconnected=request.is_disconnected,
            ),
            media_type="text/event-stream",
            headers=SSE_HEADERS,
        )

    @app.get("/api/v1/dashboard", response_model=DashboardResponse, tags=["Dashboard"])
    async def dashboard(
        admin: AdminContext = Depends(require_admin),
        service: QueueService = Depends(get_service),
    ) -> DashboardResponse:
        """Today's registration, serving and wait-time statistics."""
        statistics = await service.get_daily_statistics()
        return DashboardResponse(
            statistics=statistics,
            subscribers=service.bus.subscriber_count,
        )


# Create the application instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "clinic_queue.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )
