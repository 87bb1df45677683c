"""
Escalation - Main Application.

FastAPI application hosting the escalation cause picker.
"""

import logging
import sys
import traceback
from contextlib import asynccontextmanager
from uuid import UUID, uuid4

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from escalation import __version__
from escalation.config import get_settings
from escalation.deps import require_metrics
from escalation.exceptions import EscalationException
from escalation.observability import get_metrics_store
from escalation.schemas import ErrorDetail, ErrorResponse, HealthResponse

# Import module routers
from escalation.modules import causes_router

# Configure standard logging
logging.basicConfig(
    level=get_settings().app_log_level.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)
logger = logging.getLogger("escalation")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    settings = get_settings()
    logger.info(
        f"Starting Escalation API v{__version__} "
        f"[env={settings.app_env}] "
        f"[store={settings.causes.store_backend}] "
        f"[features={settings.features.to_dict()}]"
    )
    yield
    logger.info("Shutting down Escalation API")


# Create FastAPI application
app = FastAPI(
    title="Escalation API",
    description="Escalation cause picker: keeps case-to-cause bridge rows in step with the selection.",
    version=__version__,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)


# =============================================================================
# Middleware
# =============================================================================


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log all requests."""
    request_id = getattr(request.state, "request_id", "unknown")
    logger.info(f"[{request_id}] {request.method} {request.url.path}")

    response = await call_next(request)

    logger.info(f"[{request_id}] {request.method} {request.url.path} -> {response.status_code}")

    return response


@app.middleware("http")
async def add_request_id(request: Request, call_next):
    """Add request ID to all requests."""
    request_id = request.headers.get("X-Request-ID") or str(uuid4())
    request.state.request_id = request_id

    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id

    return response


# =============================================================================
# Exception Handlers
# =============================================================================


def _request_uuid(request: Request) -> UUID | None:
    request_id_str = getattr(request.state, "request_id", None)
    if request_id_str:
        try:
            return UUID(request_id_str)
        except (ValueError, TypeError):
            pass
    return None


@app.exception_handler(EscalationException)
async def escalation_exception_handler(request: Request, exc: EscalationException):
    """Handle Escalation custom exceptions."""
    logger.warning(f"EscalationException: {exc.code} - {exc.message}")
    get_metrics_store().record_error(exc.code)

    body = ErrorResponse(
        error=ErrorDetail(
            code=exc.code,
            message=exc.message,
            details=exc.details,
            request_id=_request_uuid(request),
        )
    )
    return JSONResponse(status_code=exc.status_code, content=body.model_dump(mode="json"))


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions."""
    # Log the full traceback
    logger.error(f"Unhandled exception on {request.url.path}")
    logger.error(f"Exception type: {type(exc).__name__}")
    logger.error(f"Exception message: {str(exc)}")
    logger.error(f"Traceback:\n{traceback.format_exc()}")
    get_metrics_store().record_error("INTERNAL_ERROR")

    body = ErrorResponse(
        error=ErrorDetail(
            code="INTERNAL_ERROR",
            message=str(exc) if get_settings().app_debug else "An unexpected error occurred",
            request_id=_request_uuid(request),
        )
    )
    return JSONResponse(status_code=500, content=body.model_dump(mode="json"))


# =============================================================================
# Health Check / Metrics
# =============================================================================


@app.get("/health", response_model=HealthResponse, tags=["health"])
async def health_check():
    """Health check endpoint."""
    settings = get_settings()
    return HealthResponse(
        status="healthy",
        version=__version__,
        features=settings.features.to_dict(),
        app_env=settings.app_env,
        is_production=settings.is_production,
        store_backend=settings.causes.store_backend,
    )


@app.get("/metrics", tags=["health"], dependencies=[require_metrics])
async def metrics():
    """In-process metrics summary."""
    return get_metrics_store().get_summary()


# =============================================================================
# Register Module Routers
# =============================================================================

app.include_router(causes_router)


# =============================================================================
# Root Endpoint
# =============================================================================


@app.get("/", include_in_schema=False)
async def root():
    """Root endpoint redirect to docs."""
    return {"message": "Welcome to Escalation API", "docs": "/docs"}
