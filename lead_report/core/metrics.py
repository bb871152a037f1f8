"""Prometheus metrics for monitoring lead report runs."""

from contextlib import contextmanager
from time import time
from typing import Generator

from fastapi import APIRouter, Response
from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST


# =============================================================================
# Counters
# =============================================================================

reports_generated = Counter(
    "lead_report_reports_total",
    "Total lead report runs",
    ["outcome"],  # success, empty, failed, cancelled
)

pages_fetched = Counter(
    "lead_report_pages_fetched_total",
    "Total pages requested from the query gateway",
    ["strategy"],
)

fallbacks_used = Counter(
    "lead_report_fallbacks_total",
    "Total runs where the primary fetch strategy failed",
)

truncations = Counter(
    "lead_report_truncations_total",
    "Total fetches stopped by the page cap",
    ["strategy"],
)

malformed_records = Counter(
    "lead_report_malformed_records_total",
    "Total records skipped for a missing or invalid creation time",
)


# =============================================================================
# Histograms
# =============================================================================

report_generation_time = Histogram(
    "lead_report_generation_seconds",
    "Report generation duration",
    buckets=(0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0),
)

gateway_latency = Histogram(
    "lead_report_gateway_latency_seconds",
    "Query gateway response time",
    ["operation"],
    buckets=(0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
)


# =============================================================================
# Helper Functions
# =============================================================================

def track_report_outcome(outcome: str) -> None:
    """
    Increment the report runs counter.

    Args:
        outcome: 'success', 'empty', 'failed' or 'cancelled'
    """
    reports_generated.labels(outcome=outcome).inc()


def track_page_fetched(strategy: str) -> None:
    pages_fetched.labels(strategy=strategy).inc()


def track_fallback() -> None:
    fallbacks_used.inc()


def track_truncation(strategy: str) -> None:
    truncations.labels(strategy=strategy).inc()


def track_malformed_records(count: int = 1) -> None:
    malformed_records.inc(count)


@contextmanager
def track_report_generation_time() -> Generator[None, None, None]:
    """
    Context manager to track report generation duration.

    Example:
        with track_report_generation_time():
            # Generate report
            pass
    """
    start_time = time()
    try:
        yield
    finally:
        report_generation_time.observe(time() - start_time)


@contextmanager
def track_gateway_latency(operation: str) -> Generator[None, None, None]:
    """
    Context manager to track query gateway latency.

    Args:
        operation: Gateway operation name ('coql' or 'records')
    """
    start_time = time()
    try:
        yield
    finally:
        gateway_latency.labels(operation=operation).observe(time() - start_time)


# =============================================================================
# FastAPI Endpoint
# =============================================================================

metrics_router = APIRouter()


@metrics_router.get("/metrics")
def get_metrics() -> Response:
    """
    Expose Prometheus metrics.

    Returns:
        Response with Prometheus metrics in text format
    """
    metrics_data = generate_latest()
    return Response(content=metrics_data, media_type=CONTENT_TYPE_LATEST)
