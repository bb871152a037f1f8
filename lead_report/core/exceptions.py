"""
Custom exception handling for the lead report engine.

This module defines the error taxonomy used by the fetcher, aggregator and
report assembler, plus the FastAPI handlers that turn those errors into
JSON responses with a correlation ID.
"""

import uuid
from typing import Optional, Dict, Any
from fastapi import Request, status
from fastapi.responses import JSONResponse
import logging

logger = logging.getLogger(__name__)


# ============================================================================
# Base Exception Classes
# ============================================================================

class LeadReportException(Exception):
    """Base exception class for all lead report errors."""

    def __init__(
        self,
        message: str,
        user_message: str,
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.user_message = user_message
        self.status_code = status_code
        self.details = details or {}
        self.correlation_id = str(uuid.uuid4())
        super().__init__(message)


# ============================================================================
# Fetch Exceptions
# ============================================================================

class GatewayError(LeadReportException):
    """Raised when the CRM query gateway cannot return a page."""

    def __init__(
        self,
        error_message: str,
        upstream_status: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=f"Query gateway error: {error_message}",
            user_message="The CRM did not respond. Please try again shortly.",
            status_code=status.HTTP_502_BAD_GATEWAY,
            details={**(details or {}), "upstream_status": upstream_status},
        )
        self.upstream_status = upstream_status


class FetchError(LeadReportException):
    """Raised when one retrieval strategy fails outright."""

    def __init__(self, strategy: str, cause: Exception, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=f"{strategy} fetch failed: {cause}",
            user_message="Lead records could not be retrieved.",
            status_code=status.HTTP_502_BAD_GATEWAY,
            details={**(details or {}), "strategy": strategy},
        )
        self.strategy = strategy
        self.cause = cause


class FetchFailedError(LeadReportException):
    """Raised when both the primary and the fallback strategy failed."""

    def __init__(self, primary_error: FetchError, fallback_error: FetchError):
        super().__init__(
            message=(
                f"All fetch strategies failed; "
                f"primary: {primary_error.message}; fallback: {fallback_error.message}"
            ),
            user_message="Lead records could not be retrieved. Please retry.",
            status_code=status.HTTP_502_BAD_GATEWAY,
            details={
                "primary_error": primary_error.message,
                "fallback_error": fallback_error.message,
            },
        )
        self.primary_error = primary_error
        self.fallback_error = fallback_error


class ReportCancelledError(LeadReportException):
    """Raised when a report run is cancelled between page requests."""

    def __init__(self, pages_fetched: int = 0, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=f"Report cancelled after {pages_fetched} page(s)",
            user_message="The report request was cancelled.",
            status_code=499,
            details={**(details or {}), "pages_fetched": pages_fetched},
        )
        self.pages_fetched = pages_fetched


class ReportFailedError(LeadReportException):
    """Raised by the report assembler when no report could be produced."""

    def __init__(self, cause: LeadReportException, target_year: Optional[int] = None):
        super().__init__(
            message=f"Lead report failed: {cause.message}",
            user_message="Error loading report.",
            status_code=status.HTTP_502_BAD_GATEWAY,
            details={**cause.details, "target_year": target_year},
        )
        self.cause = cause
        self.target_year = target_year


# ============================================================================
# Data Exceptions
# ============================================================================

class MalformedRecordError(LeadReportException):
    """Raised for a record whose creation timestamp is missing or unparseable.

    Always recovered by the aggregator: the record is skipped and counted.
    """

    def __init__(self, reason: str, record_id: Optional[str] = None):
        super().__init__(
            message=f"Malformed record {record_id or '<unknown>'}: {reason}",
            user_message="A lead record had an invalid creation time.",
            status_code=422,
            details={"record_id": record_id, "reason": reason},
        )
        self.record_id = record_id
        self.reason = reason


class TruncationWarning(UserWarning):
    """Page cap reached; totals may be undercounts.

    Never raised. Truncation is reported through ``LeadReport.truncated``.
    """


# ============================================================================
# Exception Handlers
# ============================================================================

async def lead_report_exception_handler(request: Request, exc: LeadReportException) -> JSONResponse:
    """
    Generic handler for all LeadReportException instances.

    Logs the error with correlation ID and returns a JSON response with the
    user-facing message.
    """
    logger.error(
        f"[{exc.correlation_id}] {exc.__class__.__name__}: {exc.message}",
        extra={
            "correlation_id": exc.correlation_id,
            "status_code": exc.status_code,
            "details": exc.details,
            "path": request.url.path,
            "method": request.method,
        }
    )

    response_content = {
        "error": exc.__class__.__name__,
        "message": exc.user_message,
        "correlation_id": exc.correlation_id,
    }

    if exc.details:
        response_content["details"] = exc.details

    return JSONResponse(
        status_code=exc.status_code,
        content=response_content,
        headers={"X-Correlation-ID": exc.correlation_id}
    )


async def report_failed_handler(request: Request, exc: ReportFailedError) -> JSONResponse:
    """
    Specialized handler for failed reports.

    Adds the composed failure reason so the renderer can show it.
    """
    logger.error(
        f"[{exc.correlation_id}] Report failed for year {exc.target_year}: {exc.cause.message}",
        extra={
            "correlation_id": exc.correlation_id,
            "target_year": exc.target_year,
            "path": request.url.path,
        }
    )

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": "report_failed",
            "message": exc.user_message,
            "reason": exc.cause.message,
            "correlation_id": exc.correlation_id,
            "details": exc.details,
        },
        headers={"X-Correlation-ID": exc.correlation_id}
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Fallback handler for unhandled exceptions.

    Logs the error and returns a generic error message.
    """
    correlation_id = str(uuid.uuid4())

    logger.exception(
        f"[{correlation_id}] Unhandled exception: {str(exc)}",
        extra={
            "correlation_id": correlation_id,
            "path": request.url.path,
            "method": request.method,
        }
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": "internal_server_error",
            "message": "A server error occurred. Please try again shortly.",
            "correlation_id": correlation_id,
        },
        headers={"X-Correlation-ID": correlation_id}
    )


# ============================================================================
# Exception Handler Registration
# ============================================================================

def register_exception_handlers(app):
    """
    Register all exception handlers with the FastAPI application.

    Args:
        app: FastAPI application instance
    """
    app.add_exception_handler(ReportFailedError, report_failed_handler)
    app.add_exception_handler(LeadReportException, lead_report_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    logger.info("Exception handlers registered successfully")
