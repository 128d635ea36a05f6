import logging
from contextlib import asynccontextmanager

import sentry_sdk
from fastapi import FastAPI, Request, status
from fastapi.exceptions import HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.logging import LoggingIntegration
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.api.dependencies import dispose_stores
from app.api.routes import health, leads, reports
from app.config import settings
from app.services.leads.errors import LeadServiceError

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    # Startup
    logger.info(f"Starting {settings.app_name} v{settings.app_version}")

    if settings.sentry_dsn:
        sentry_sdk.init(
            dsn=settings.sentry_dsn,
            integrations=[
                FastApiIntegration(),
                LoggingIntegration(level=logging.INFO),
            ],
            traces_sample_rate=0.1,
            environment=settings.environment,
        )
        logger.info("Sentry initialized")

    logger.info("Application startup complete")

    yield

    # Shutdown
    logger.info("Shutting down application")
    dispose_stores()


# Create FastAPI application
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Instant-form lead ingestion, customer matching and reporting",
    lifespan=lifespan,
    debug=settings.debug,
)

# Add CORS middleware
if settings.cors_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

# Add security middleware
app.add_middleware(
    TrustedHostMiddleware, allowed_hosts=["*"] if settings.debug else ["localhost", "127.0.0.1"]
)


# Request logging middleware
@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log all requests."""
    logger.info(f"{request.method} {request.url.path}")
    response = await call_next(request)
    logger.info(f"Response status: {response.status_code}")
    return response


def _error_response(status_code: int, message: str, detail: str | None = None) -> JSONResponse:
    payload: dict[str, object] = {"success": False, "message": message}
    if detail and not settings.is_production:
        payload["error"] = detail
    return JSONResponse(status_code=status_code, content=payload)


def _map_error_code(code: str) -> int:
    if code.startswith("400_"):
        return status.HTTP_400_BAD_REQUEST
    if code.startswith("404_"):
        return status.HTTP_404_NOT_FOUND
    if code.startswith("503_"):
        return status.HTTP_503_SERVICE_UNAVAILABLE
    return status.HTTP_500_INTERNAL_SERVER_ERROR


@app.exception_handler(LeadServiceError)
async def handle_lead_service_error(request: Request, exc: LeadServiceError) -> JSONResponse:
    status_code = _map_error_code(exc.code)
    logger.error(
        "leads.api_error",
        extra={"path": request.url.path, "code": exc.code, "status_code": status_code},
    )
    return _error_response(status_code, exc.message, exc.detail)


@app.exception_handler(StarletteHTTPException)
async def handle_http_error(request: Request, exc: HTTPException) -> JSONResponse:
    return _error_response(exc.status_code, str(exc.detail))


@app.exception_handler(Exception)
async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("leads.api_unhandled", extra={"path": request.url.path})
    return _error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error", str(exc)
    )


# Include routers
app.include_router(health.router, prefix="/health", tags=["health"])
app.include_router(leads.router, prefix="/api", tags=["leads"])
app.include_router(reports.router, prefix="/api", tags=["reports"])


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": f"Welcome to {settings.app_name}",
        "version": settings.app_version,
        "environment": settings.environment,
    }
