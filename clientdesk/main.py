from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
import time
import logging

from .api.v1.auth import router as auth_router
from .api.v1.clients import router as clients_router
from .api.v1.appointments import router as appointments_router
from .api.v1.notifications import router as notifications_router
from .api.v1.appointment_actions import router as appointment_actions_router
from .core.config import settings
from .core.database import init_db
from .core.errors import AppointmentError
from .services.scheduler import ReminderScheduler

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# Create FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.VERSION,
    description="Client records, treatment sessions and appointment scheduling for small practices",
    openapi_url="/api/v1/openapi.json",
    docs_url="/docs",
    redoc_url="/redoc"
)

PUBLIC_PREFIX = "/api/public"


class PracticeCORSMiddleware(CORSMiddleware):
    """CORS for the practice API; the public app applies its own policy."""

    async def __call__(self, scope, receive, send):
        if scope["type"] == "http" and scope["path"].startswith(PUBLIC_PREFIX):
            await self.app(scope, receive, send)
            return
        await super().__call__(scope, receive, send)


# Public endpoints live in their own application so they can be opened to
# every origin without loosening CORS for the practice API.
public_app = FastAPI(
    title=f"{settings.APP_NAME} public actions",
    version=settings.VERSION,
    docs_url=None,
    redoc_url=None,
)
# A mounted app resolves dependencies on its own; share the override mapping
# so overrides set on ``app`` also apply under /api/public.
public_app.dependency_overrides = app.dependency_overrides

# Middleware setup
app.add_middleware(
    PracticeCORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

public_app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["POST", "OPTIONS"],
    allow_headers=["authorization", "x-client-info", "apikey", "content-type"],
)

# Only add TrustedHostMiddleware in production, not in testing
if not settings.TESTING:
    app.add_middleware(
        TrustedHostMiddleware,
        allowed_hosts=settings.ALLOWED_HOSTS
    )


# Custom middleware for request logging and timing
@app.middleware("http")
async def add_process_time_header(request: Request, call_next):
    start_time = time.time()
    response = await call_next(request)
    process_time = time.time() - start_time
    response.headers["X-Process-Time"] = str(process_time)

    logger.info(
        f"{request.method} {request.url.path} - "
        f"Status: {response.status_code} - "
        f"Time: {process_time:.4f}s"
    )

    return response


# Exception handlers
async def appointment_error_handler(request: Request, exc: AppointmentError):
    if exc.status_code >= 500:
        logger.error(f"Appointment request failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


async def public_http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


app.add_exception_handler(AppointmentError, appointment_error_handler)
public_app.add_exception_handler(AppointmentError, appointment_error_handler)
public_app.add_exception_handler(StarletteHTTPException, public_http_error_handler)


@app.exception_handler(404)
async def not_found_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=404,
        content={
            "error": "Not Found",
            "detail": exc.detail if isinstance(exc, StarletteHTTPException) else None,
            "path": str(request.url.path)
        }
    )


@app.exception_handler(500)
async def internal_error_handler(request: Request, exc: Exception):
    logger.error(f"Internal server error: {str(exc)}")
    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal Server Error",
            "message": "An unexpected error occurred"
        }
    )


# Include routers
app.include_router(auth_router, prefix="/api/v1")
app.include_router(clients_router, prefix="/api/v1")
app.include_router(appointments_router, prefix="/api/v1")
app.include_router(notifications_router, prefix="/api/v1")
public_app.include_router(appointment_actions_router)
app.mount(PUBLIC_PREFIX, public_app)

reminder_scheduler = ReminderScheduler(settings)


# Startup and shutdown events
@app.on_event("startup")
async def startup_event():
    """Initialize application on startup."""
    logger.info(f"Starting {settings.APP_NAME}...")

    db_url = settings.get_database_url
    db_type = "PostgreSQL" if "postgresql" in db_url else "SQLite" if "sqlite" in db_url else "Unknown"
    logger.info(f"Using {db_type} database")

    try:
        init_db()
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error(f"Failed to initialize database: {str(e)}")
        raise

    if settings.REMINDER_SCHEDULER_ENABLED:
        reminder_scheduler.start()

    logger.info("Application startup complete")


@app.on_event("shutdown")
async def shutdown_event():
    """Cleanup on application shutdown."""
    logger.info(f"Shutting down {settings.APP_NAME}...")
    reminder_scheduler.shutdown()


# Health check endpoint
@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "timestamp": time.time(),
        "version": settings.VERSION
    }


# Root endpoint
@app.get("/")
async def root():
    """Root endpoint with API information."""
    return {
        "message": f"Welcome to {settings.APP_NAME} API",
        "version": settings.VERSION,
        "docs": "/docs",
        "health": "/health"
    }


# API Info endpoint
@app.get("/api/v1/info")
async def api_info():
    """API information endpoint."""
    return {
        "name": settings.APP_NAME,
        "version": settings.VERSION,
        "endpoints": {
            "authentication": "/api/v1/auth",
            "clients": "/api/v1/clients",
            "appointment_mails": "/api/v1/appointment-mails",
            "appointment_reminders": "/api/v1/appointment-reminders",
            "appointment_actions": "/api/public/appointment-actions",
            "docs": "/docs",
            "openapi": "/api/v1/openapi.json"
        }
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "clientdesk.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level="info"
    )
