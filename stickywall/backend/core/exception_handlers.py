"""
Exception Handlers.

FastAPI exception handlers that convert application exceptions
to standardized API responses. All exceptions are logged and
returned in the standard ErrorResponse format.

Usage:
    from stickywall.backend.core.exception_handlers import register_exception_handlers

    app = FastAPI()
    register_exception_handlers(app)
"""

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from stickywall.backend.core.exceptions import (
    ApplicationError,
    AuthenticationError,
    AuthorizationError,
    ConflictError,
    DatabaseError,
    ExternalServiceError,
    NotFoundError,
    OverlapError,
    RateLimitError,
    UploadError,
    ValidationError,
)
from stickywall.backend.core.logging import get_logger
from stickywall.backend.schemas.base import ErrorDetail, ErrorResponse, ResponseMetadata

logger = get_logger(__name__)

EXCEPTION_STATUS_MAP: dict[type[ApplicationError], int] = {
    NotFoundError: 404,
    ValidationError: 400,
    AuthenticationError: 401,
    AuthorizationError: 403,
    ConflictError: 409,
    OverlapError: 409,
    RateLimitError: 429,
    UploadError: 500,
    ExternalServiceError: 502,
    DatabaseError: 503,
}


def _get_request_id(request: Request) -> str | None:
    """Extract request ID from request state or headers."""
    if hasattr(request.state, "request_id"):
        return request.state.request_id
    return request.headers.get("x-request-id")


def status_for(exc: ApplicationError) -> int:
    """Resolve the HTTP status for an exception, walking its class hierarchy."""
    for cls in type(exc).__mro__:
        if cls in EXCEPTION_STATUS_MAP:
            return EXCEPTION_STATUS_MAP[cls]
    return 500


async def application_error_handler(
    request: Request,
    exc: ApplicationError,
) -> JSONResponse:
    """
    Handle all ApplicationError subclasses.

    Converts application exceptions to standardized JSON responses
    with appropriate HTTP status codes.
    """
    status_code = status_for(exc)
    request_id = _get_request_id(request)

    log_extra = {
        "code": exc.code,
        "message": exc.message,
        "status": status_code,
        "path": request.url.path,
        "method": request.method,
    }
    if request_id:
        log_extra["request_id"] = request_id

    if status_code >= 500:
        logger.error("Server error", extra=log_extra)
    else:
        logger.warning("Client error", extra=log_extra)

    error_detail = ErrorDetail(code=exc.code, message=exc.message)
    if exc.details:
        error_detail.details = exc.details

    metadata = ResponseMetadata(request_id=request_id)
    response = ErrorResponse(error=error_detail, metadata=metadata)

    headers: dict[str, str] = {}
    if isinstance(exc, RateLimitError) and exc.time_until_next_post is not None:
        headers["Retry-After"] = str(max(1, exc.time_until_next_post // 1000))

    return JSONResponse(
        status_code=status_code,
        content=response.model_dump(mode="json"),
        headers=headers or None,
    )


async def validation_error_handler(
    request: Request,
    exc: RequestValidationError,
) -> JSONResponse:
    """Handle FastAPI/Pydantic request validation errors."""
    request_id = _get_request_id(request)

    errors = exc.errors()
    details = {
        "validation_errors": [
            {
                "field": ".".join(str(loc) for loc in err.get("loc", [])),
                "message": err.get("msg", "Validation error"),
                "type": err.get("type", "unknown"),
            }
            for err in errors
        ]
    }

    logger.warning(
        "Request validation failed",
        extra={
            "path": request.url.path,
            "method": request.method,
            "error_count": len(errors),
            "request_id": request_id,
        },
    )

    error_detail = ErrorDetail(
        code="VAL_REQUEST_INVALID",
        message="Request validation failed",
        details=details,
    )

    metadata = ResponseMetadata(request_id=request_id)
    response = ErrorResponse(error=error_detail, metadata=metadata)

    return JSONResponse(
        status_code=422,
        content=response.model_dump(mode="json"),
    )


async def unhandled_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """
    Handle unexpected exceptions.

    Internal details are logged but never returned to the client.
    """
    request_id = _get_request_id(request)

    logger.exception(
        "Unhandled exception",
        extra={
            "path": request.url.path,
            "method": request.method,
            "exception_type": type(exc).__name__,
            "request_id": request_id,
        },
    )

    error_detail = ErrorDetail(
        code="SYS_INTERNAL_ERROR",
        message="An unexpected error occurred",
    )

    metadata = ResponseMetadata(request_id=request_id)
    response = ErrorResponse(error=error_detail, metadata=metadata)

    return JSONResponse(
        status_code=500,
        content=response.model_dump(mode="json"),
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers with the FastAPI app."""
    app.add_exception_handler(ApplicationError, application_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    logger.debug("Exception handlers registered")
