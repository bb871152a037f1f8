"""Middleware for request logging."""

import logging
import time
import uuid
from typing import Optional, Callable
from contextvars import ContextVar

from fastapi import Request, Response, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)

request_id_context: ContextVar[Optional[str]] = ContextVar("request_id_context", default=None)

# Query parameters worth echoing in the request log
LOGGED_QUERY_PARAMS = ("year",)


def get_current_request_id() -> Optional[str]:
    """Get current request correlation ID from context."""
    return request_id_context.get()


def describe_request(request: Request) -> str:
    """One-line summary of a request: method, path and the report parameters it carries."""
    parts = [f"method={request.method}", f"path={request.url.path}"]
    for name in LOGGED_QUERY_PARAMS:
        value = request.query_params.get(name)
        if value is not None:
            parts.append(f"{name}={value}")
    return " ".join(parts)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log each request with a correlation ID, its report year and its duration.

    Responses get an ``X-Correlation-ID`` header unless an exception handler
    already attached the ID of the error it reported.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        correlation_id = str(uuid.uuid4())
        request_id_context.set(correlation_id)
        summary = describe_request(request)
        started = time.perf_counter()

        logger.info(f"Request started: {summary} correlation_id={correlation_id}")

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                f"Request failed: {summary} duration_ms={self._elapsed_ms(started):.2f} "
                f"correlation_id={correlation_id} error={e}",
                exc_info=True
            )
            return JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content={
                    "error": "An internal server error occurred",
                    "correlation_id": correlation_id
                },
                headers={"X-Correlation-ID": correlation_id}
            )
        finally:
            request_id_context.set(None)

        logger.info(
            f"Request completed: {summary} status={response.status_code} "
            f"duration_ms={self._elapsed_ms(started):.2f} correlation_id={correlation_id}"
        )
        response.headers.setdefault("X-Correlation-ID", correlation_id)
        return response

    @staticmethod
    def _elapsed_ms(started: float) -> float:
        return (time.perf_counter() - started) * 1000
