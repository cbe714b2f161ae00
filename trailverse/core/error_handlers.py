"""
Global exception handlers.

Every failure leaves the API in the `{"success": false, "error": {...}}`
envelope. Provider and model details from relay errors go into the log
event and the Sentry tags.
"""
import traceback
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from trailverse.core.config import settings
from trailverse.core.error_tracking import error_tracker
from trailverse.core.exceptions import (
    APIError,
    ErrorCode,
    ErrorSeverity,
    ValidationError,
    create_error_response,
)
from trailverse.core.fingerprint import get_client_ip
from trailverse.core.structured_logging import StructuredLogger

logger = StructuredLogger("trailverse.error_handler")

# Fields of APIError.extra that describe the upstream call
RELAY_FIELDS = ("provider", "model", "errorType", "attemptedModels", "retry_after")

HTTP_STATUS_CODES = {
    400: ErrorCode.VALIDATION_ERROR,
    401: ErrorCode.UNAUTHORIZED,
    403: ErrorCode.FORBIDDEN,
    404: ErrorCode.NOT_FOUND,
    429: ErrorCode.RATE_LIMITED,
}


def setup_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(APIError)
    async def api_error_handler(request: Request, exc: APIError) -> JSONResponse:
        return _respond(request, exc)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        # Covers fastapi.HTTPException too: it subclasses the starlette one
        return _respond(request, http_exception_to_api_error(exc))

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        field_errors = [
            {
                "field": " -> ".join(str(part) for part in error["loc"]),
                "message": error["msg"],
                "type": error["type"],
            }
            for error in exc.errors()
        ]
        return _respond(request, ValidationError("Request validation failed", field_errors=field_errors))

    @app.exception_handler(SQLAlchemyError)
    async def database_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
        api_error = APIError(
            error_code=ErrorCode.DATABASE_ERROR,
            message=f"Database error: {exc}",
            status_code=500,
            severity=ErrorSeverity.HIGH,
        )
        return _respond(request, api_error, cause=exc)

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        api_error = APIError(
            error_code=ErrorCode.INTERNAL_SERVER_ERROR,
            message=f"Unexpected error: {exc}" if settings.DEBUG else "Internal server error",
            status_code=500,
            severity=ErrorSeverity.CRITICAL,
        )
        return _respond(request, api_error, cause=exc)


def http_exception_to_api_error(exc: StarletteHTTPException) -> APIError:
    """Wrap a bare HTTPException (e.g. from OAuth2PasswordBearer) in the API envelope."""
    status_code = exc.status_code
    if status_code >= 500:
        severity = ErrorSeverity.HIGH
    elif status_code == 401:
        severity = ErrorSeverity.LOW
    else:
        severity = ErrorSeverity.MEDIUM

    api_error = APIError(
        error_code=HTTP_STATUS_CODES.get(status_code, ErrorCode.INTERNAL_SERVER_ERROR),
        message=str(exc.detail),
        status_code=status_code,
        user_message=str(exc.detail),
        severity=severity,
    )
    api_error.headers = getattr(exc, "headers", None)
    return api_error


def relay_context(error: APIError) -> Dict[str, Any]:
    """Upstream provider details carried by relay errors, empty for everything else."""
    return {key: error.extra[key] for key in RELAY_FIELDS if key in error.extra}


def request_context(request: Request) -> Dict[str, Any]:
    # No headers: they carry bearer tokens
    return {
        "method": request.method,
        "path": request.url.path,
        "client_ip": get_client_ip(request),
        "anonymous": request.url.path.endswith("/chat-anonymous"),
        "request_id": request.headers.get("X-Request-ID"),
    }


def _respond(request: Request, error: APIError, cause: Optional[Exception] = None) -> JSONResponse:
    _report(request, error, cause)
    return create_error_response(error)


def _report(request: Request, error: APIError, cause: Optional[Exception] = None) -> None:
    req = request_context(request)
    relay = relay_context(error)
    severity = error.severity

    logger.log_error(
        error=cause or error,
        context={
            "error_id": error.error_id,
            "error_code": error.error_code,
            "status_code": error.status_code,
            "severity": severity,
            "request": req,
            "relay": relay or None,
            "traceback": traceback.format_exc() if cause else None,
        },
        request_id=req["request_id"],
    )

    if severity in (ErrorSeverity.HIGH, ErrorSeverity.CRITICAL):
        tags = {"error_code": error.error_code.value}
        if "provider" in relay:
            tags["provider"] = relay["provider"]
        error_tracker.capture_exception(
            error=cause or error,
            context={"request": req, "relay": relay},
            extra={"error_id": error.error_id, "status_code": error.status_code},
            tags=tags,
        )
    elif severity == ErrorSeverity.MEDIUM:
        error_tracker.capture_message(
            message=f"{error.error_code.value}: {error.detail}",
            level="warning",
            context={"request": req, "relay": relay, "error": {"error_id": error.error_id}},
        )
