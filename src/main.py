"""FastAPI application initialization."""

from contextlib import asynccontextmanager
from uuid import uuid4

from dotenv import load_dotenv

# Load environment variables before anything else
load_dotenv()

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from src.api.auth import router as auth_router
from src.api.middleware import CORRELATION_HEADER, CorrelationIdMiddleware
from src.config import get_settings
from src.errors import AppError
from src.services.logging_service import configure_logging, get_logger


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown events."""
    settings = get_settings()
    configure_logging(settings.log_level, settings.log_format)
    logger = get_logger("main")

    if settings.jwt_secret == "change-me-in-production":
        logger.warning("jwt_secret_default", note="Set JWT_SECRET outside development")

    try:
        from src.database import init_database, run_migrations

        await init_database()
        await run_migrations()
        logger.info("database_initialized")
    except Exception as e:
        logger.warning(
            "database_initialization_failed",
            error=str(e),
            note="Continuing without database - auth requests will fail until it is reachable",
        )

    logger.info("application_started", log_level=settings.log_level)

    yield

    try:
        from src.database import close_database

        await close_database()
    except Exception as e:
        logger.warning("database_close_failed", error=str(e))

    logger.info("application_shutdown")


app = FastAPI(
    title="Progress Tracker - Auth API",
    description="Registration, sessions and password reset for the progress tracker",
    version="0.1.0",
    lifespan=lifespan,
)


def _correlation_id(request: Request) -> str:
    return getattr(request.state, "correlation_id", None) or str(uuid4())


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Return 400 with the first failing field for malformed request bodies."""
    correlation_id = _correlation_id(request)
    logger = structlog.get_logger()

    errors = exc.errors()
    if errors:
        first_error = errors[0]
        field = ".".join(str(loc) for loc in first_error.get("loc", ["unknown"]))
        message = first_error.get("msg", "Validation failed")
        detail = f"Field '{field}': {message}"
    else:
        detail = "Request validation failed"

    logger.warning(
        "validation_error",
        correlation_id=correlation_id,
        detail=detail,
    )

    return JSONResponse(
        status_code=400,
        content={
            "code": "VALIDATION_ERROR",
            "detail": detail,
            "correlation_id": correlation_id,
        },
        headers={CORRELATION_HEADER: correlation_id},
    )


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Map domain errors to their HTTP status with a client-safe message."""
    correlation_id = _correlation_id(request)
    logger = structlog.get_logger()

    log = logger.error if exc.status_code >= 500 else logger.info
    log(
        "request_failed",
        code=exc.code,
        status_code=exc.status_code,
        path=request.url.path,
    )

    headers = {CORRELATION_HEADER: correlation_id}
    if exc.status_code == 401:
        headers["WWW-Authenticate"] = "Bearer"

    content = exc.to_dict()
    content["correlation_id"] = correlation_id
    return JSONResponse(
        status_code=exc.status_code,
        content=content,
        headers=headers,
    )


@app.get("/health")
async def health() -> dict:
    """Report service and database health."""
    from src.database import health_check

    database_ok = await health_check()
    return {
        "status": "healthy" if database_ok else "degraded",
        "database": "connected" if database_ok else "unavailable",
    }


# CORS middleware for the desktop and browser clients
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(CorrelationIdMiddleware)

app.include_router(auth_router)
