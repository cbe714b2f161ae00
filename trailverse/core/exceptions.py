from typing import Dict, Any, Optional, List
from fastapi import HTTPException
from fastapi.responses import JSONResponse
from trailverse.core.utils import utc_now
import uuid
from enum import Enum

class ErrorCode(str, Enum):
    """Standardized error codes"""

    # General
    INTERNAL_SERVER_ERROR = "INTERNAL_SERVER_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    NOT_FOUND = "NOT_FOUND"

    # Provider / relay
    INVALID_PROVIDER = "INVALID_PROVIDER"
    PROVIDER_UNAVAILABLE = "PROVIDER_UNAVAILABLE"
    ALL_MODELS_UNAVAILABLE = "ALL_MODELS_UNAVAILABLE"
    AUTH_FAILURE = "AUTH_FAILURE"
    RATE_LIMITED = "RATE_LIMITED"
    UPSTREAM_ERROR = "UPSTREAM_ERROR"

    # Usage
    TOKEN_LIMIT_EXCEEDED = "TOKEN_LIMIT_EXCEEDED"

    # Database
    DATABASE_ERROR = "DATABASE_ERROR"

class ErrorSeverity(str, Enum):
    """Error severity"""
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"

class APIError(HTTPException):
    """Standardized API error"""

    def __init__(
        self,
        error_code: ErrorCode,
        message: str,
        status_code: int = 500,
        user_message: Optional[str] = None,
        details: Any = None,
        suggestion: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM
    ):
        super().__init__(status_code=status_code, detail=message)
        self.error_code = error_code
        self.user_message = user_message or self._get_user_friendly_message(error_code)
        self.details = details if details is not None else {}
        self.suggestion = suggestion
        self.extra = extra or {}
        self.severity = severity
        self.error_id = str(uuid.uuid4())
        self.timestamp = utc_now().isoformat()

    def _get_user_friendly_message(self, error_code: ErrorCode) -> str:
        """User-facing message per code"""
        messages = {
            ErrorCode.INTERNAL_SERVER_ERROR: "Something went wrong on our side. Please try again shortly.",
            ErrorCode.VALIDATION_ERROR: "The request is invalid. Please check the input.",
            ErrorCode.UNAUTHORIZED: "Authentication required.",
            ErrorCode.FORBIDDEN: "Access denied.",
            ErrorCode.NOT_FOUND: "The requested resource was not found.",

            ErrorCode.INVALID_PROVIDER: 'Invalid provider. Use "claude" or "openai"',
            ErrorCode.PROVIDER_UNAVAILABLE: "The selected AI provider is not configured.",
            ErrorCode.ALL_MODELS_UNAVAILABLE: "No Claude models available with your API key",
            ErrorCode.AUTH_FAILURE: "API key authentication failed",
            ErrorCode.RATE_LIMITED: "Rate limit exceeded",
            ErrorCode.UPSTREAM_ERROR: "Failed to get AI response",

            ErrorCode.TOKEN_LIMIT_EXCEEDED: "Daily token limit exceeded",

            ErrorCode.DATABASE_ERROR: "A database error occurred.",
        }
        return messages.get(error_code, "An unknown error occurred.")

class ValidationError(APIError):
    """Input validation error"""

    def __init__(self, message: str, field_errors: Optional[List[Dict[str, str]]] = None):
        super().__init__(
            error_code=ErrorCode.VALIDATION_ERROR,
            message=message,
            status_code=400,
            details={"field_errors": field_errors or []},
            severity=ErrorSeverity.LOW
        )

class AuthenticationError(APIError):
    """Caller is not authenticated"""

    def __init__(self, message: str = "Authentication required"):
        super().__init__(
            error_code=ErrorCode.UNAUTHORIZED,
            message=message,
            status_code=401,
            severity=ErrorSeverity.MEDIUM
        )
        self.headers = {"WWW-Authenticate": "Bearer"}

class NotFoundError(APIError):
    """Resource lookup failed"""

    def __init__(self, resource: str, identifier: Optional[str] = None):
        message = f"{resource} not found"
        if identifier:
            message += f": {identifier}"
        super().__init__(
            error_code=ErrorCode.NOT_FOUND,
            message=message,
            status_code=404,
            user_message=message,
            severity=ErrorSeverity.LOW
        )

class InvalidProviderError(APIError):
    def __init__(self, provider: Optional[str]):
        super().__init__(
            error_code=ErrorCode.INVALID_PROVIDER,
            message=f"Unsupported provider: {provider}",
            status_code=400,
            details={"provider": provider},
            severity=ErrorSeverity.LOW
        )

class ProviderUnavailableError(APIError):
    """Provider API key was not configured at process start"""

    def __init__(self, provider: str):
        label = "Claude" if provider == "claude" else "OpenAI"
        super().__init__(
            error_code=ErrorCode.PROVIDER_UNAVAILABLE,
            message=f"{provider} API key not configured",
            status_code=500,
            user_message=f"{label} API key not configured",
            details={"provider": provider},
            severity=ErrorSeverity.HIGH
        )

class AllModelsUnavailableError(APIError):
    """Every candidate in the Claude ladder failed"""

    def __init__(self, attempted_models: List[str], last_error: Optional[str]):
        super().__init__(
            error_code=ErrorCode.ALL_MODELS_UNAVAILABLE,
            message="All Claude models failed",
            status_code=400,
            details=last_error or "Unknown error",
            extra={"attemptedModels": list(attempted_models)},
            severity=ErrorSeverity.HIGH
        )

class UpstreamAuthError(APIError):
    def __init__(self, provider: str, raw_message: str):
        super().__init__(
            error_code=ErrorCode.AUTH_FAILURE,
            message=f"{provider} rejected credentials: {raw_message}",
            status_code=401,
            details="Please check your API key configuration",
            suggestion="Verify the provider API key configured on the server",
            extra={"provider": provider},
            severity=ErrorSeverity.HIGH
        )

class UpstreamRateLimitError(APIError):
    def __init__(self, provider: str, raw_message: str, retry_after: Optional[int] = None):
        extra: Dict[str, Any] = {"provider": provider}
        if retry_after:
            extra["retry_after"] = retry_after
        super().__init__(
            error_code=ErrorCode.RATE_LIMITED,
            message=f"{provider} rate limit: {raw_message}",
            status_code=429,
            details=raw_message,
            suggestion="Please wait a moment before trying again",
            extra=extra,
            severity=ErrorSeverity.MEDIUM
        )

class UpstreamServiceError(APIError):
    """Any other provider failure; the raw message is kept for diagnostics"""

    def __init__(self, provider: str, raw_message: str, model: Optional[str] = None, error_type: Optional[str] = None):
        extra: Dict[str, Any] = {"provider": provider, "errorType": error_type or "unknown"}
        if model:
            extra["model"] = model
        super().__init__(
            error_code=ErrorCode.UPSTREAM_ERROR,
            message=f"{provider} error: {raw_message}",
            status_code=500,
            details=raw_message,
            extra=extra,
            severity=ErrorSeverity.HIGH
        )

class TokenLimitExceededError(APIError):
    """Daily token budget exhausted"""

    def __init__(self, daily_limit: int, tokens_used: int, remaining_tokens: int, reset_time: str):
        super().__init__(
            error_code=ErrorCode.TOKEN_LIMIT_EXCEEDED,
            message=f"Daily token limit exceeded: {tokens_used}/{daily_limit}",
            status_code=429,
            details={
                "dailyLimit": daily_limit,
                "tokensUsed": tokens_used,
                "remainingTokens": remaining_tokens,
                "resetTime": reset_time,
            },
            suggestion="Your daily AI allowance is used up. It resets at midnight.",
            severity=ErrorSeverity.LOW
        )

def create_error_response(error: APIError) -> JSONResponse:
    """Standardized error response"""
    body: Dict[str, Any] = {
        "code": error.error_code,
        "message": error.user_message,
        "details": error.details,
        "error_id": error.error_id,
        "timestamp": error.timestamp,
        "severity": error.severity
    }
    if error.suggestion:
        body["suggestion"] = error.suggestion
    body.update(error.extra)
    return JSONResponse(
        status_code=error.status_code,
        content={"success": False, "error": body},
        headers=getattr(error, "headers", None)
    )
