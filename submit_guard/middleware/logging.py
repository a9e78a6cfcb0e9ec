"""Request logging middleware with correlation ID support."""

import time
import uuid
from collections.abc import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from submit_guard.config import settings
from submit_guard.logging.config import get_logger

logger = get_logger(__name__)


def _get_or_generate_correlation_id(request: Request) -> str:
    """Use the client's X-Request-ID or generate a new one."""
    return request.headers.get("X-Request-ID", str(uuid.uuid4()))


def _request_context(request: Request) -> dict:
    return {
        "method": request.method,
        "path": request.url.path,
        # Presence only; the credential itself is never logged
        "has_token": settings.guard_token_header in request.headers,
    }


class LoggingMiddleware(BaseHTTPMiddleware):
    """
    Log every HTTP request with a correlation ID.

    - Adds X-Request-ID to request state and to the response
    - Logs request start, completion (status, timing) and failures
    - Records whether the repeat submit guard accepted or rejected the call
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        """
        Process the request and add logging.

        Args:
            request: The incoming request
            call_next: The next middleware/handler in the chain

        Returns:
            The response from the handler
        """
        correlation_id = _get_or_generate_correlation_id(request)
        request.state.correlation_id = correlation_id

        start_time = time.time()
        logger.info(
            "Request started",
            extra={
                "correlation_id": correlation_id,
                "context": {
                    **_request_context(request),
                    "query_params": dict(request.query_params),
                    "client_host": request.client.host if request.client else None,
                },
            },
        )

        try:
            response = await call_next(request)
        except Exception as exc:
            elapsed_ms = (time.time() - start_time) * 1000
            logger.error(
                "Request failed with exception",
                exc_info=exc,
                extra={
                    "correlation_id": correlation_id,
                    "context": {
                        **_request_context(request),
                        "response_time_ms": round(elapsed_ms, 2),
                    },
                },
            )
            raise

        elapsed_ms = (time.time() - start_time) * 1000
        logger.info(
            "Request completed",
            extra={
                "correlation_id": correlation_id,
                "context": {
                    **_request_context(request),
                    "status_code": response.status_code,
                    "response_time_ms": round(elapsed_ms, 2),
                    "guard_decision": getattr(request.state, "guard_decision", None),
                },
            },
        )

        response.headers["X-Request-ID"] = correlation_id
        return response
