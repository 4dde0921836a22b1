"""FastAPI main application."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse

from leadflow.api.v1 import auth, lead_distribution, leads, two_factor
from leadflow.config import settings
from leadflow.core.database import close_db, init_db
from leadflow.core.logging_config import setup_logging
from leadflow.middleware.error_handler import ErrorHandlerMiddleware
from leadflow.middleware.request_logging import RequestLoggingMiddleware
from leadflow.services.lead_distribution_service import LeadDistributionError
from leadflow.services.two_factor_service import TwoFactorError

logger = logging.getLogger(__name__)

# HTTP status for each expected service failure code
ERROR_STATUS_CODES = {
    "not_found": status.HTTP_404_NOT_FOUND,
    "invalid_code": status.HTTP_400_BAD_REQUEST,
    "already_enabled": status.HTTP_409_CONFLICT,
    "not_enabled": status.HTTP_409_CONFLICT,
    "no_pending_setup": status.HTTP_409_CONFLICT,
    "no_eligible_reps": status.HTTP_409_CONFLICT,
    "conflict": status.HTTP_409_CONFLICT,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    setup_logging()
    logger.info("Starting %s API (%s)", settings.APP_NAME, settings.ENVIRONMENT)

    await init_db()

    yield

    logger.info("Shutting down %s API", settings.APP_NAME)
    await close_db()


# Disable interactive API docs in production to reduce attack surface
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    lifespan=lifespan,
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url="/redoc" if settings.DEBUG else None,
    openapi_url="/openapi.json" if settings.DEBUG else None,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Catch uncaught exceptions with PII redaction
app.add_middleware(ErrorHandlerMiddleware)

if not settings.DEBUG:
    app.add_middleware(TrustedHostMiddleware, allowed_hosts=settings.ALLOWED_HOSTS)

app.add_middleware(GZipMiddleware, minimum_size=1000)
app.add_middleware(RequestLoggingMiddleware)


def _service_error_response(exc) -> JSONResponse:
    return JSONResponse(
        status_code=ERROR_STATUS_CODES.get(exc.code, status.HTTP_400_BAD_REQUEST),
        content={"detail": exc.message, "code": exc.code},
    )


@app.exception_handler(TwoFactorError)
async def two_factor_exception_handler(request: Request, exc: TwoFactorError):
    logger.debug("Two-factor error on %s: %s", request.url.path, exc.code)
    return _service_error_response(exc)


@app.exception_handler(LeadDistributionError)
async def lead_distribution_exception_handler(request: Request, exc: LeadDistributionError):
    logger.debug("Lead distribution error on %s: %s", request.url.path, exc.code)
    return _service_error_response(exc)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.debug("Validation error on %s: %s", request.url, exc.errors())
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": [
            {k: (str(v) if isinstance(v, Exception) else v) for k, v in error.items() if k != "ctx"}
            for error in exc.errors()
        ]},
    )


app.include_router(auth.router, prefix="/api/v1/auth", tags=["Authentication"])
app.include_router(two_factor.router, prefix="/api/v1/two-factor", tags=["Two-Factor"])
app.include_router(
    lead_distribution.router, prefix="/api/v1/lead-distribution", tags=["Lead Distribution"]
)
app.include_router(leads.router, prefix="/api/v1/leads", tags=["Leads"])


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "status": "running",
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}
