"""
FarmPass Dashboard Backend - FastAPI Application

This is the main entry point for the push subscription REST API.

Usage:
    uvicorn farmpass.dashboard.backend.main:app --host 127.0.0.1 --port 8080 --reload

    Or run directly:
    python -m farmpass.dashboard.backend.main
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime

# Load .env file before anything else
from dotenv import load_dotenv
load_dotenv()

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from farmpass import __version__
from farmpass.dashboard.backend.config import dashboard_config, security_config
from farmpass.dashboard.backend.models import ErrorResponse, HealthCheck
from farmpass.dashboard.backend.routes import api_router
from farmpass.logging_config import (
    REQUEST_ID_HEADER,
    bind_request_context,
    clear_request_context,
    setup_logging,
)
from farmpass.push import get_connection
from farmpass.push.errors import ErrorCode, ErrorKind, PushError
from farmpass.push.vapid import has_key_pair


setup_logging()
logger = logging.getLogger(__name__)

# Track startup time for uptime calculation
startup_time: datetime | None = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    global startup_time

    logger.info("Starting FarmPass Dashboard Backend...")
    startup_time = datetime.now()

    # Creates the schema on first use
    conn = get_connection()
    conn.close()
    logger.info("Push database initialized")

    if not has_key_pair():
        logger.warning(
            "VAPID keys not configured. Generate with: python -m farmpass.push.vapid generate-keys"
        )

    yield

    logger.info("Shutting down FarmPass Dashboard Backend...")


# Create FastAPI application
app = FastAPI(
    title="FarmPass Dashboard API",
    description="REST API for FarmPass push notification subscriptions",
    version=__version__,
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json",
    lifespan=lifespan,
)

# Configure CORS
allowed_origins = security_config.get(
    "allowed_origins", ["http://localhost:3000", "http://127.0.0.1:3000"]
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=[REQUEST_ID_HEADER],
)


@app.middleware("http")
async def request_context(request: Request, call_next):
    """Bind a request id to every log record written while handling the request."""
    request_id = bind_request_context(
        request.headers.get(REQUEST_ID_HEADER),
        method=request.method,
        path=request.url.path,
    )
    try:
        response = await call_next(request)
    finally:
        clear_request_context()
    response.headers[REQUEST_ID_HEADER] = request_id
    return response


# =============================================================================
# Health Check Endpoint
# =============================================================================


@app.get("/api/health", response_model=HealthCheck, tags=["health"])
async def health_check():
    """Check the push database and key configuration."""
    services = {}

    try:
        conn = get_connection()
        conn.execute("SELECT 1")
        conn.close()
        services["database"] = "healthy"
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        services["database"] = "unhealthy"

    services["vapid"] = "configured" if has_key_pair() else "not_configured"

    overall = "healthy" if services["database"] == "healthy" else "degraded"
    return HealthCheck(
        status=overall,
        version=__version__,
        timestamp=datetime.now(),
        services=services,
    )


# =============================================================================
# Error Handlers
# =============================================================================


@app.exception_handler(PushError)
async def push_exception_handler(request: Request, exc: PushError):
    """Render push errors as the standard envelope."""
    if exc.code.kind is ErrorKind.CONFIGURATION:
        logger.warning(f"{request.method} {request.url.path}: {exc.code.value} - {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Handle HTTP exceptions, including unknown routes and methods, with consistent format."""
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(error=f"HTTP_{exc.status_code}", message=str(exc.detail)).model_dump(
            exclude_none=True
        ),
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Render request body and query validation failures as the standard envelope."""
    details = [
        f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}" for error in exc.errors()
    ]
    logger.info(f"{request.method} {request.url.path}: invalid request - {details}")
    return JSONResponse(
        status_code=422,
        content=ErrorResponse(
            error=ErrorCode.INVALID_REQUEST.value,
            message="Request is malformed",
            details=details,
        ).model_dump(exclude_none=True),
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions."""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=ErrorResponse(
            error=ErrorCode.INTERNAL_ERROR.value, message="Internal server error"
        ).model_dump(exclude_none=True),
    )


# =============================================================================
# Include Routers
# =============================================================================

app.include_router(api_router)


def get_uptime_seconds() -> int:
    """Get server uptime in seconds."""
    if startup_time is None:
        return 0
    delta = datetime.now() - startup_time
    return int(delta.total_seconds())


app.state.get_uptime = get_uptime_seconds
app.state.config = dashboard_config


# =============================================================================
# Main Entry Point
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    host = dashboard_config.get("host", "127.0.0.1")
    port = dashboard_config.get("api_port", 8080)

    uvicorn.run(
        "farmpass.dashboard.backend.main:app", host=host, port=port, reload=True, log_level="info"
    )
