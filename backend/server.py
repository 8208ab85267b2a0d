from fastapi import FastAPI, APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse
from dotenv import load_dotenv
import time
from pathlib import Path
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional
import traceback

# Load environment variables first
ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

# Import configuration
from config import get_settings, validate_environment

# Import logging and error tracking
from logging_config import setup_logging, get_logger, set_request_context, clear_request_context
from sentry_integration import init_sentry

# Import database, store and reconciliation
from database import init_db, get_session_factory, dispose_engine
from store import DocumentStore, SqlDocumentStore
from reconciliation import (
    ArchiveScheduler,
    BookingArchiveService,
    SeatReconciliationService,
    VehicleChangeDebouncer,
    reconciliation_router,
)

# Get settings
settings = get_settings()

# Configure structured logging
# Use JSON format in production, plain text in development
setup_logging(
    level=settings.LOG_LEVEL,
    json_format=settings.is_production,
    service_name="trip-reconciler"
)
logger = get_logger(__name__)

# Initialize Sentry error tracking
if settings.SENTRY_DSN:
    init_sentry(
        dsn=settings.SENTRY_DSN,
        environment=settings.ENVIRONMENT,
        traces_sample_rate=0.1 if settings.is_production else 0.0,
    )


def create_app(
    document_store: Optional[DocumentStore] = None,
    enable_scheduler: Optional[bool] = None
) -> FastAPI:
    """
    Build the application.

    Args:
        document_store: Store to use instead of PostgreSQL (tests, local runs)
        enable_scheduler: Override ARCHIVE_SCHEDULER_ENABLED
    """
    scheduler_enabled = settings.ARCHIVE_SCHEDULER_ENABLED if enable_scheduler is None else enable_scheduler

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan handler"""
        logger.info("=" * 60)
        logger.info("Starting Trip Seat Reconciler API...")
        logger.info(f"Environment: {settings.ENVIRONMENT}")
        logger.info(f"Debug Mode: {settings.debug_enabled}")
        logger.info("=" * 60)

        store = document_store
        if store is None:
            env_status = validate_environment()
            if not env_status["valid"]:
                for error in env_status["errors"]:
                    logger.error(f"Configuration Error: {error}")
                if settings.is_production:
                    raise RuntimeError("Cannot start in production with invalid configuration")

            for warning in env_status.get("warnings", []):
                logger.warning(f"Configuration Warning: {warning}")

            try:
                await init_db()
                logger.info("PostgreSQL connection established")
            except Exception as e:
                logger.error(f"Failed to initialize database: {e}")
                raise
            store = SqlDocumentStore(get_session_factory())

        app.state.document_store = store

        async def reconcile_changed_vehicle(vehicle_id, snapshot):
            report = await SeatReconciliationService(store).reconcile_vehicle(vehicle_id, snapshot)
            logger.info(f"Vehicle {vehicle_id} reconciled: {report.outcome.value}")
            return report

        app.state.vehicle_debouncer = VehicleChangeDebouncer(
            reconcile_changed_vehicle,
            delay_seconds=settings.SEAT_SETTLING_DELAY_SECONDS
        )

        app.state.archive_scheduler = None
        if scheduler_enabled:
            async def archive_job():
                result = await BookingArchiveService(store).archive_old_bookings()
                logger.info(f"Scheduled archive: {result.summary()}")
                return result

            app.state.archive_scheduler = ArchiveScheduler(
                archive_job,
                interval_hours=settings.ARCHIVE_INTERVAL_HOURS,
                timezone_name=settings.ARCHIVE_TIMEZONE
            )
            app.state.archive_scheduler.start()

        logger.info("Trip Seat Reconciler API started successfully")

        yield

        logger.info("Shutting down Trip Seat Reconciler API...")
        if app.state.archive_scheduler is not None:
            await app.state.archive_scheduler.stop()
        await app.state.vehicle_debouncer.cancel_all()
        if document_store is None:
            await dispose_engine()

    app = FastAPI(
        title=settings.API_TITLE,
        description="""
        Keeps vehicle seat maps and bookings consistent with trips.

        ### Reconciliation (/api/reconciliation)
        - POST /seats/reset - Clear stale booked seats for every trip in Booking status
        - POST /bookings/archive - Archive Active bookings over a month past departure
        - POST /vehicles/{vehicle_id}/changed - Vehicle change notification (debounced)
        - GET /status - Module status
        """,
        version=settings.API_VERSION,
        lifespan=lifespan,
        docs_url="/api/docs" if settings.debug_enabled else None,
        redoc_url="/api/redoc" if settings.debug_enabled else None,
    )

    # Create a router with the /api prefix
    api_router = APIRouter(prefix="/api")

    # ==================== HEALTH CHECK ENDPOINTS ====================

    @api_router.get("/health", tags=["Health"])
    async def health_check(request: Request):
        """
        Health check for load balancers and uptime monitors.

        Returns:
        - 200: Document store reachable
        - 503: Document store unavailable
        """
        health_status = {
            "status": "healthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "version": settings.API_VERSION,
            "environment": settings.ENVIRONMENT,
            "checks": {}
        }

        try:
            await request.app.state.document_store.query("trips", "id", "__health__")
            health_status["checks"]["document_store"] = {
                "status": "connected",
                "type": type(request.app.state.document_store).__name__
            }
        except Exception as e:
            logger.error(f"Document store health check failed: {e}")
            health_status["status"] = "unhealthy"
            health_status["checks"]["document_store"] = {"status": "disconnected"}

        if health_status["status"] == "unhealthy":
            raise HTTPException(status_code=503, detail=health_status)

        return health_status

    @api_router.get("/health/live", tags=["Health"])
    async def liveness_check():
        """
        Liveness check.
        Returns 200 if the process is running (doesn't check dependencies).
        """
        return {"status": "alive", "timestamp": datetime.now(timezone.utc).isoformat()}

    api_router.include_router(reconciliation_router)
    app.include_router(api_router)

    # ==================== MIDDLEWARE ====================

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Log all requests with timing information"""
        start_time = time.time()

        request_id = request.headers.get("X-Request-ID", f"req-{int(start_time * 1000)}")
        set_request_context(request_id)

        if settings.debug_enabled:
            logger.debug(f"[{request_id}] {request.method} {request.url.path}")

        try:
            response = await call_next(request)

            process_time = time.time() - start_time

            response.headers["X-Request-ID"] = request_id
            response.headers["X-Process-Time"] = str(round(process_time * 1000, 2))

            if settings.debug_enabled or response.status_code >= 400:
                logger.info(f"[{request_id}] {request.method} {request.url.path} -> {response.status_code} ({process_time:.3f}s)")

            return response
        except Exception as e:
            logger.error(f"[{request_id}] Request failed: {str(e)}")
            raise
        finally:
            clear_request_context()

    # Global exception handler
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Handle uncaught exceptions"""
        logger.error(f"Unhandled exception: {exc}")
        if settings.debug_enabled:
            logger.error(traceback.format_exc())

        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"}
        )

    return app


app = create_app()
