"""Domain errors and the exception handlers that render them with request_id."""

from typing import Any

from asgi_correlation_id import correlation_id
from fastapi import FastAPI, HTTPException, Request, status
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from src.flowsmith.core.logging import get_logger

logger = get_logger(__name__)


class FlowsmithError(Exception):
    """Base class for errors surfaced at the API boundary."""

    status_code: int = status.HTTP_400_BAD_REQUEST
    code: str = "error"

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context = context


class ValidationError(FlowsmithError):
    """Malformed input; raised before any state mutation."""

    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    code = "validation_error"


class InvalidPayload(ValidationError):
    """Code payload is empty in both single-file and multi-file shapes."""

    code = "invalid_payload"


class InvalidCronExpression(ValidationError):
    code = "invalid_cron_expression"


class ConcurrentModification(FlowsmithError):
    """Stale doc_version; the caller must re-read and retry."""

    status_code = status.HTTP_409_CONFLICT
    code = "concurrent_modification"


class AlreadyRunning(FlowsmithError):
    status_code = status.HTTP_409_CONFLICT
    code = "already_running"


class InvalidStateTransition(FlowsmithError):
    status_code = status.HTTP_409_CONFLICT
    code = "invalid_state_transition"


class NotFound(FlowsmithError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"


class PermissionDenied(FlowsmithError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "permission_denied"


class SyncFailure(FlowsmithError):
    """Raised by VCS clients; recorded on the version, never returned to API callers."""

    status_code = status.HTTP_502_BAD_GATEWAY
    code = "sync_failure"


class ExecutionFailure(FlowsmithError):
    """Raised by runners; recorded on the execution record."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = "execution_failure"


def setup_exception_handlers(app: FastAPI) -> None:
    """Configure exception handlers that include request_id in responses."""

    @app.exception_handler(FlowsmithError)
    async def domain_exception_handler(request: Request, exc: FlowsmithError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error(
                "Domain error",
                code=exc.code,
                error=exc.message,
                path=request.url.path,
            )
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "detail": exc.message,
                "code": exc.code,
                "request_id": correlation_id.get(),
            },
        )

    @app.exception_handler(StarletteHTTPException)
    async def starlette_exception_handler(
        request: Request, exc: StarletteHTTPException
    ) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "detail": exc.detail,
                "request_id": correlation_id.get(),
            },
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "detail": exc.detail,
                "request_id": correlation_id.get(),
            },
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        request_id = correlation_id.get()
        logger.exception(
            "Unhandled exception",
            exc_info=exc,
            request_id=request_id,
            path=request.url.path,
        )
        return JSONResponse(
            status_code=500,
            content={
                "detail": "Internal server error",
                "request_id": request_id,
            },
        )
