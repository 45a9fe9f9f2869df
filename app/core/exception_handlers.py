"""Global exception handlers for consistent error responses.

This module provides FastAPI exception handlers that intercept all errors
(domain and unexpected) and return consistent JSON responses with proper
HTTP status codes and traceability.

Design:
- AdmissionRejectedError → 429 with the rate-limit body and headers
- Other AppError subclasses → appropriate HTTP status (400, 500)
- Unexpected Exception → generic 500 (safety net)
"""

import logging
import math

from fastapi import Request
from fastapi.responses import JSONResponse

from app.core.admission import rejection_headers
from app.core.errors import AdmissionRejectedError, AppError, LLMAppError
from app.core.logging import get_request_id

logger = logging.getLogger(__name__)


async def admission_rejected_handler(request: Request, exc: AdmissionRejectedError) -> JSONResponse:
    """Render an admission rejection as HTTP 429.

    The body mirrors the headers so clients without header access can still
    back off: ``{error, message, type, limit, remaining, resetTime}``.

    Args:
        request: FastAPI request object.
        exc: Rejection raised by a route.

    Returns:
        JSONResponse with status 429, X-RateLimit-* and Retry-After headers.
    """
    rejection = exc.rejection
    if rejection is None:
        return JSONResponse(
            status_code=429,
            content={"error": "Rate limit exceeded", "message": exc.message},
        )

    return JSONResponse(
        status_code=429,
        content={
            "error": "Rate limit exceeded",
            "message": rejection.message,
            "type": rejection.type.value,
            "limit": rejection.limit,
            "remaining": rejection.remaining,
            "resetTime": int(math.ceil(rejection.reset_at)),
        },
        headers=rejection_headers(rejection),
    )


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Handle domain application errors with consistent JSON format.

    Routes domain errors to appropriate HTTP status codes:
    - ValidationAppError → 400 Bad Request (client fault)
    - LLMAppError → 500 Internal Server Error (server fault)

    All responses include:
    - error.code: Machine-readable error code
    - error.message: Human-readable message
    - error.request_id: For distributed tracing
    - error.details: Optional structured context

    Args:
        request: FastAPI request object.
        exc: AppError instance (or subclass).

    Returns:
        JSONResponse with appropriate status code and error details.
    """
    status_code = 400
    if isinstance(exc, LLMAppError):
        status_code = 500

    logger.warning(
        "app_error_handled",
        extra={
            "error_code": exc.code,
            "error_message": exc.message,
            "status_code": status_code,
            "has_details": bool(exc.details),
            "request_id": get_request_id(),
        }
    )

    error_content = {
        "code": exc.code,
        "message": exc.message,
        "request_id": get_request_id(),
    }

    if exc.details:
        error_content["details"] = exc.details

    return JSONResponse(
        status_code=status_code,
        content={"error": error_content},
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Fallback handler for unexpected errors (safety net).

    Logs detailed information for debugging while returning a generic
    message, so no stack traces leak to the client.
    """
    logger.error(
        "unhandled_exception",
        extra={
            "error_type": type(exc).__name__,
            "error_msg": str(exc),
            "request_path": request.url.path,
            "request_method": request.method,
            "request_id": get_request_id(),
        }
    )

    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "internal_server_error",
                "message": "An unexpected error occurred. Please try again later.",
                "request_id": get_request_id(),
            }
        },
    )


def setup_exception_handlers(app) -> None:
    """Register all exception handlers with FastAPI app.

    Starlette resolves handlers by walking the exception's MRO, so the
    AdmissionRejectedError handler wins over the generic AppError one.

    Args:
        app: FastAPI application instance.
    """
    app.exception_handler(AdmissionRejectedError)(admission_rejected_handler)
    app.exception_handler(AppError)(app_error_handler)
    app.exception_handler(Exception)(general_exception_handler)
