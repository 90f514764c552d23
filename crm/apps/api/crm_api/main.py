"""Relay CRM API - FastAPI Application Entry Point."""

import logging
import os
import time
import uuid

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic.alias_generators import to_camel
from starlette.exceptions import HTTPException as StarletteHTTPException

from crm_api.config.env import get_cors_allowed_origins
from crm_api.context import org_id_var, request_id_var, user_id_var
from crm_api.errors import ApiError, ErrorCodes
from crm_api.routers import auth, companies, deals, health, interactions, people, pipelines, tasks
from crm_api.utils import configure_json_logging

app = FastAPI(
    title="Relay CRM API",
    description="Multi-tenant CRM: people, companies, pipelines, deals, tasks and interactions.",
    version="0.1.0",
    docs_url="/api-docs",
    redoc_url="/redoc",
)

# Structured JSON logging
# Set CRM_JSON_LOGS=false to disable (defaults to true)
if os.getenv("CRM_JSON_LOGS", "true").lower() != "false":
    configure_json_logging(log_level=os.getenv("LOG_LEVEL", "INFO"))

logger = logging.getLogger(__name__)

# Credentials mode: never "*"
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_cors_allowed_origins(),
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
    expose_headers=["X-Request-ID"],
)

_LOCATION_PREFIXES = {"body", "query", "path", "header", "cookie"}

_CODES_BY_STATUS = {
    400: ErrorCodes.VALIDATION_ERROR,
    401: ErrorCodes.UNAUTHORIZED,
    403: ErrorCodes.FORBIDDEN,
    404: ErrorCodes.NOT_FOUND,
    405: ErrorCodes.VALIDATION_ERROR,
    409: ErrorCodes.CONFLICT,
    503: ErrorCodes.SERVICE_UNAVAILABLE,
}


def _error_body(code: str, message: str, details=None) -> dict:
    error = {"code": code, "message": message}
    if details is not None:
        error["details"] = details
    return {"error": error}


def _field_name(loc) -> str:
    """("body", "first_name") -> "firstName"; location prefix dropped."""
    parts = [str(p) for p in loc]
    if parts and parts[0] in _LOCATION_PREFIXES:
        parts = parts[1:]
    if not parts:
        return "body"
    return ".".join(to_camel(p) if "_" in p else p for p in parts)


def _error_message(error: dict) -> str:
    msg = error.get("msg", "Invalid value")
    # pydantic prefixes custom validator messages
    return msg.removeprefix("Value error, ")


# ============================================================================
# HTTP completion logging
# ============================================================================


@app.middleware("http")
async def http_completion_logging_middleware(request: Request, call_next):
    """Log every HTTP request completion.

    Emits "http.request.completed" with method, path, status_code and
    duration_ms (status 500 when the handler raised). Per-request user/org
    contextvars are cleared before and after.
    """
    user_id_var.set("")
    org_id_var.set("")

    start_time = time.perf_counter()
    status_code = 500

    try:
        response = await call_next(request)
        status_code = response.status_code
        return response
    finally:
        duration_ms = (time.perf_counter() - start_time) * 1000
        logger.info(
            "http.request.completed",
            extra={
                "method": request.method,
                "path": request.url.path,
                "status_code": status_code,
                "duration_ms": round(duration_ms, 2),
            },
        )
        user_id_var.set("")
        org_id_var.set("")


# ============================================================================
# Request ID Middleware (MUST BE OUTERMOST)
# ============================================================================


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    """Accept or generate X-Request-ID, expose it to logging, echo it back.

    Registered last so it wraps every other middleware and the request_id
    contextvar is set before they run.
    """
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request_id_var.set(request_id)
    # Read back by the catch-all handler, which runs outside this middleware
    request.state.request_id = request_id

    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


# ============================================================================
# Error envelope handlers: {"error": {"code", "message", "details"?}}
# ============================================================================


@app.exception_handler(ApiError)
async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    """Render ApiError subclasses with their own status and code."""
    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
    if exc.status_code >= 500:
        logger.error(
            "api.error",
            extra={"code": exc.code, "path": request.url.path},
            exc_info=exc,
        )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Framework-raised HTTP errors (unknown route, method not allowed, ...)."""
    code = _CODES_BY_STATUS.get(exc.status_code, ErrorCodes.INTERNAL_ERROR)
    message = exc.detail if isinstance(exc.detail, str) else "Request failed"
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(code, message),
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """400 with field-level details (camelCase field names)."""
    details = [
        {"field": _field_name(error.get("loc", ())), "message": _error_message(error)}
        for error in exc.errors()
    ]
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=_error_body(ErrorCodes.VALIDATION_ERROR, "Validation failed", details),
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """500 with a generic message; the traceback is logged, never returned.

    Starlette serves this from ServerErrorMiddleware, outside
    request_id_middleware, so the X-Request-ID header is set here.
    """
    logger.error(
        "api.unhandled_exception",
        extra={"path": request.url.path, "error_type": type(exc).__name__},
        exc_info=exc,
    )
    request_id = getattr(request.state, "request_id", None) or request.headers.get("X-Request-ID")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=_error_body(ErrorCodes.INTERNAL_ERROR, "An unexpected error occurred"),
        headers={"X-Request-ID": request_id} if request_id else None,
    )


# Include routers
app.include_router(health.router, tags=["health"])
app.include_router(auth.router)
app.include_router(people.router)
app.include_router(companies.router)
app.include_router(pipelines.router)
app.include_router(deals.router)
app.include_router(tasks.router)
app.include_router(interactions.router)


@app.get("/")
async def root() -> dict[str, str]:
    return {"message": "Relay CRM API", "version": app.version, "docs": "/api-docs"}
