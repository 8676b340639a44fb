"""FastAPI application entry point for ResourcePlan.

Organization-scoped allocation routes, health check with DB connectivity,
and the mapping from engine errors to HTTP status codes.
"""

import logging

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from resourceplan.api.allocations import router as allocations_router
from resourceplan.config.settings import get_settings
from resourceplan.db.session import ping_database
from resourceplan.errors import (
    AllocationError,
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    StorageError,
    ValidationError,
)
from resourceplan.services.locks import UserLockRegistry

APP_VERSION = "0.1.0"

settings = get_settings()

_LOG_NAME_TO_LEVEL: dict[str, int] = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}

# --- Structured logging ---
structlog.configure(
    processors=[
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.dev.ConsoleRenderer() if settings.ENVIRONMENT == "dev"
        else structlog.processors.JSONRenderer(),
    ],
    wrapper_class=structlog.make_filtering_bound_logger(
        _LOG_NAME_TO_LEVEL[settings.LOG_LEVEL.value],
    ),
    context_class=dict,
    logger_factory=structlog.PrintLoggerFactory(),
    cache_logger_on_first_use=True,
)

logger: structlog.stdlib.BoundLogger = structlog.get_logger()

# --- FastAPI app ---
app = FastAPI(
    title="ResourcePlan API",
    description="Resource allocation and capacity engine.",
    version=APP_VERSION,
)

# One registry per process; per-request services share it.
app.state.user_locks = UserLockRegistry()

# --- CORS middleware ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.ENVIRONMENT == "dev" else [],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --- Error mapping ---

_STATUS_BY_ERROR: dict[type[AllocationError], int] = {
    PermissionDeniedError: 403,
    NotFoundError: 404,
    ValidationError: 400,
    ConflictError: 409,
    StorageError: 503,
}


@app.exception_handler(AllocationError)
async def allocation_error_handler(request: Request, exc: AllocationError) -> JSONResponse:
    status_code = _STATUS_BY_ERROR.get(type(exc), 500)
    body: dict = {"error": exc.code, "message": exc.message}
    if isinstance(exc, ConflictError):
        body["conflicts"] = [c.model_dump(mode="json") for c in exc.conflicts]
    elif isinstance(exc, ValidationError) and exc.errors:
        body["errors"] = exc.errors
    if status_code >= 500:
        logger.error("request_failed", path=request.url.path, error=exc.code, message=exc.message)
    else:
        logger.info("request_rejected", path=request.url.path, error=exc.code, status=status_code)
    return JSONResponse(status_code=status_code, content=body)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(
    request: Request, exc: RequestValidationError,
) -> JSONResponse:
    errors = [
        {k: v for k, v in err.items() if k in ("type", "loc", "msg")}
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content={"error": ValidationError.code, "message": "Invalid request.", "errors": errors},
    )


# --- Routers ---
app.include_router(allocations_router)


# --- Infrastructure Endpoints (global) ---


@app.get("/health")
async def health_check() -> dict:
    """Liveness probe with component health checks.

    Returns 200 always (degraded status if components are down).
    """
    checks: dict[str, bool] = {"api": True, "database": await ping_database()}
    all_ok = all(checks.values())

    return {
        "status": "ok" if all_ok else "degraded",
        "version": APP_VERSION,
        "environment": settings.ENVIRONMENT.value,
        "checks": checks,
    }


@app.get("/api/version")
async def get_version() -> dict[str, str]:
    """Return application name, version, and environment."""
    return {
        "name": "ResourcePlan",
        "version": APP_VERSION,
        "environment": settings.ENVIRONMENT.value,
    }
