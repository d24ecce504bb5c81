"""Structured error response middleware."""
from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
import structlog
from .correlation import get_correlation_id
from ..errors import (
    ModelInvocationError,
    NotFoundError,
    PipelineError,
    ProviderError,
    UploadExhausted,
    ValidationError,
)

log = structlog.get_logger()


def status_for(error: PipelineError) -> int:
    """HTTP status for a pipeline error."""
    if isinstance(error, ValidationError):
        return 400
    if isinstance(error, NotFoundError):
        return 404
    if isinstance(error, (ModelInvocationError, ProviderError, UploadExhausted)):
        return 502
    return 500


def error_response(request: Request, error: PipelineError) -> JSONResponse:
    status_code = status_for(error)
    correlation_id = get_correlation_id()
    log.warning(
        "pipeline.exception",
        status_code=status_code,
        code=error.code,
        message=error.message,
        path=request.url.path,
    )
    return JSONResponse(
        status_code=status_code,
        content={
            **error.to_dict(),
            "status_code": status_code,
            "correlation_id": correlation_id,
            "path": str(request.url.path),
        },
    )


async def pipeline_error_handler(request: Request, exc: PipelineError) -> JSONResponse:
    """Exception handler registered on the app for pipeline errors raised by routes."""
    return error_response(request, exc)


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """Provides structured error responses for all exceptions."""

    async def dispatch(self, request: Request, call_next):
        try:
            return await call_next(request)
        except PipelineError as exc:
            return error_response(request, exc)
        except Exception as exc:
            correlation_id = get_correlation_id()
            log.error(
                "unhandled.exception",
                error=str(exc),
                error_type=exc.__class__.__name__,
                path=request.url.path,
                exc_info=True,
            )
            return JSONResponse(
                status_code=500,
                content={
                    "error": "InternalServerError",
                    "message": "An unexpected error occurred",
                    "correlation_id": correlation_id,
                    "path": str(request.url.path),
                },
            )


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed request bodies and query strings share the 400 validation shape."""
    errors = [{k: v for k, v in e.items() if k in ("loc", "msg", "type")} for e in exc.errors()]
    return error_response(request, ValidationError("Invalid request", details={"errors": errors}))
