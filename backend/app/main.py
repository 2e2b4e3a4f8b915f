"""
TimeTrack Billing - FastAPI Application

Main entry point for the billing backend.
Provides checkout, subscription management and invoice endpoints.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.config.settings import settings
from app.infrastructure.exceptions import (
    TimeTrackError,
    ValidationError,
    NotAuthenticatedError,
    ForbiddenError,
    NotFoundError,
    PaymentProviderError,
)

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown."""
    logger.info(f"TimeTrack Billing starting in {settings.environment} mode...")

    if settings.database_url or settings.supabase_password:
        from app.infrastructure.db.database import init_db
        try:
            await init_db()
            logger.info("Database connection pool initialized")
        except Exception as e:
            logger.warning(f"Database initialization skipped: {e}")

    yield

    from app.infrastructure.db.database import close_db
    await close_db()
    logger.info("TimeTrack Billing shutting down...")


app = FastAPI(
    title="TimeTrack Billing",
    description="Subscription checkout and billing for TimeTrack",
    version="1.0.0",
    lifespan=lifespan,
    debug=settings.debug,
)

# CORS configuration from Settings
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============================================================================
# Exception Handlers
# ============================================================================

@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    """Malformed request bodies use the same error shape as domain errors."""
    return JSONResponse(
        status_code=400,
        content={
            "error": "Invalid request body",
            "code": ValidationError.code,
            "details": {
                "errors": [
                    {"loc": [str(part) for part in error.get("loc", ())], "msg": error.get("msg")}
                    for error in exc.errors()
                ]
            },
        },
    )


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    """Handle validation errors."""
    return JSONResponse(
        status_code=400,
        content=exc.to_dict(),
    )


@app.exception_handler(NotAuthenticatedError)
async def not_authenticated_error_handler(request: Request, exc: NotAuthenticatedError):
    return JSONResponse(
        status_code=401,
        content=exc.to_dict(),
        headers={"WWW-Authenticate": "Bearer"},
    )


@app.exception_handler(ForbiddenError)
async def forbidden_error_handler(request: Request, exc: ForbiddenError):
    return JSONResponse(
        status_code=403,
        content=exc.to_dict(),
    )


@app.exception_handler(NotFoundError)
async def not_found_error_handler(request: Request, exc: NotFoundError):
    """Handle not found errors."""
    return JSONResponse(
        status_code=404,
        content=exc.to_dict(),
    )


@app.exception_handler(PaymentProviderError)
async def payment_provider_error_handler(request: Request, exc: PaymentProviderError):
    """Stripe refused or failed; nothing was written locally."""
    logger.error(f"Payment provider error on {request.url.path}: {exc.message} {exc.details}")
    return JSONResponse(
        status_code=502,
        content=exc.to_dict(),
    )


@app.exception_handler(TimeTrackError)
async def general_error_handler(request: Request, exc: TimeTrackError):
    """Handle all other application errors."""
    logger.error(f"Unhandled application error on {request.url.path}: {exc.message}")
    return JSONResponse(
        status_code=500,
        content=exc.to_dict(),
    )


# ============================================================================
# Health Check
# ============================================================================

@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "service": "timetrack-billing"}


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": "TimeTrack Billing API",
        "version": "1.0.0",
        "docs": "/docs",
    }


# ============================================================================
# Import and register routers
# ============================================================================

from app.api.routes import billing  # noqa: E402

app.include_router(billing.router, prefix="/api", tags=["Billing"])
