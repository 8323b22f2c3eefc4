"""
Request Context Middleware.

Request id, frontend identification, timing, structlog context binding,
and the request body size limit from security.yaml.
"""

import uuid
from datetime import datetime, timezone

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.types import ASGIApp

from stickywall.backend.core.logging import get_logger
from stickywall.backend.schemas.base import ErrorDetail, ErrorResponse, ResponseMetadata

logger = get_logger(__name__)

# Keep aligned with VALID_SOURCES in logging.py
KNOWN_FRONTENDS = {"web", "admin", "api", "internal"}


class RequestContextMiddleware(BaseHTTPMiddleware):
    """
    Adds request context to every request.

    - Generates or propagates the request ID (X-Request-ID header)
    - Tags the calling frontend (X-Frontend-ID header)
    - Rejects bodies declared larger than `max_body_size` with 413
    - Records timing (X-Response-Time header)
    - Binds request context to structlog for automatic inclusion in logs

    Access in endpoints:
        request.state.request_id
        request.state.frontend
        request.state.start_time
    """

    def __init__(self, app: ASGIApp, max_body_size: int | None = None) -> None:
        super().__init__(app)
        self.max_body_size = max_body_size

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())

        frontend = request.headers.get("X-Frontend-ID", "unknown").lower()
        if frontend not in KNOWN_FRONTENDS:
            frontend = "unknown"

        start_time = datetime.now(timezone.utc).replace(tzinfo=None)

        request.state.request_id = request_id
        request.state.frontend = frontend
        request.state.start_time = start_time

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            frontend=frontend,
            method=request.method,
            path=request.url.path,
        )

        try:
            if self._body_too_large(request):
                logger.warning(
                    "Request body too large",
                    extra={"content_length": request.headers.get("content-length")},
                )
                response = _payload_too_large(request_id, self.max_body_size)
            else:
                response = await call_next(request)

            duration_ms = _elapsed_ms(start_time)
            response.headers["X-Request-ID"] = request_id
            response.headers["X-Response-Time"] = f"{duration_ms}ms"

            logger.debug(
                "Request completed",
                extra={
                    "status_code": response.status_code,
                    "duration_ms": duration_ms,
                },
            )
            return response

        except Exception as exc:
            logger.error(
                "Request failed with exception",
                extra={
                    "duration_ms": _elapsed_ms(start_time),
                    "error_type": type(exc).__name__,
                },
            )
            raise

        finally:
            structlog.contextvars.clear_contextvars()

    def _body_too_large(self, request: Request) -> bool:
        if self.max_body_size is None:
            return False
        content_length = request.headers.get("content-length")
        if not content_length or not content_length.isdigit():
            return False
        return int(content_length) > self.max_body_size


def _payload_too_large(request_id: str, limit: int | None) -> JSONResponse:
    body = ErrorResponse(
        error=ErrorDetail(
            code="VAL_PAYLOAD_TOO_LARGE",
            message="Request body too large",
            details={"max_body_size_bytes": limit},
        ),
        metadata=ResponseMetadata(request_id=request_id),
    )
    return JSONResponse(status_code=413, content=body.model_dump(mode="json"))


def _elapsed_ms(start_time: datetime) -> int:
    end_time = datetime.now(timezone.utc).replace(tzinfo=None)
    return int((end_time - start_time).total_seconds() * 1000)
