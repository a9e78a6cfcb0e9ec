"""Exception handlers turning guard errors into consistent JSON responses."""

from typing import Any

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from submit_guard.exceptions import DuplicateSubmissionError, SubmitGuardError
from submit_guard.logging.config import get_logger

logger = get_logger(__name__)


def create_error_response(
    error_code: str,
    message: str,
    status_code: int,
    details: dict[str, Any] | None = None,
    correlation_id: str | None = None,
) -> JSONResponse:
    """
    Create standardized error response.

    Args:
        error_code: Machine-readable error code
        message: Human-readable error message
        status_code: HTTP status code
        details: Additional error details
        correlation_id: Request correlation ID for tracing

    Returns:
        JSONResponse with error information
    """
    content = {
        "status": "error",
        "error_code": error_code,
        "message": message,
        "details": details or {},
    }

    if correlation_id:
        content["correlation_id"] = correlation_id

    return JSONResponse(status_code=status_code, content=content)


async def submit_guard_exception_handler(
    request: Request, exc: SubmitGuardError
) -> JSONResponse:
    """
    Handle SubmitGuardError and its subclasses.

    Duplicate submissions get a Retry-After header telling the client when
    the same request will be accepted again.
    """
    correlation_id = getattr(request.state, "correlation_id", None)

    response = create_error_response(
        error_code=exc.error_code,
        message=exc.message,
        status_code=exc.status_code,
        details=exc.details,
        correlation_id=correlation_id,
    )

    if isinstance(exc, DuplicateSubmissionError):
        response.headers["Retry-After"] = str(exc.retry_after)

    return response


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """
    Handle Pydantic validation errors from FastAPI.

    Args:
        request: FastAPI request
        exc: RequestValidationError from Pydantic

    Returns:
        JSONResponse with one entry per invalid field
    """
    correlation_id = getattr(request.state, "correlation_id", None)

    details: dict[str, Any] = {"validation_errors": []}
    error_messages = []

    for error in exc.errors():
        # Skip the 'body'/'query' prefix for cleaner field names
        field_parts = [
            str(loc) for loc in error["loc"] if loc not in ("body", "query", "path")
        ]
        field = ".".join(field_parts) if field_parts else "request"

        msg = error["msg"]
        if error["type"] == "missing":
            msg = "Field is required"

        details["validation_errors"].append(
            {"field": field, "message": msg, "type": error["type"]}
        )
        error_messages.append(f"{field}: {msg}")

    summary = error_messages[0] if error_messages else "Invalid request data"
    if len(error_messages) > 1:
        summary += f" (and {len(error_messages) - 1} more errors)"

    return create_error_response(
        error_code="VALIDATION_ERROR",
        message=summary,
        status_code=status.HTTP_400_BAD_REQUEST,
        details=details,
        correlation_id=correlation_id,
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Handle unexpected exceptions raised by protected handlers.

    Logs the full traceback and returns a generic 500 so internals never
    reach the client.
    """
    correlation_id = getattr(request.state, "correlation_id", None)

    logger.error(
        f"Unhandled exception: {type(exc).__name__}: {exc}",
        exc_info=exc,
        extra={
            "correlation_id": correlation_id,
            "context": {
                "exception_type": type(exc).__name__,
                "method": request.method,
                "path": request.url.path,
            },
        },
    )

    return create_error_response(
        error_code="INTERNAL_ERROR",
        message="An internal error occurred. Please contact support with the correlation ID.",
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        correlation_id=correlation_id,
    )
