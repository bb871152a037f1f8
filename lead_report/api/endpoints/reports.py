"""Lead report endpoints."""

import asyncio
import logging
import threading

from fastapi import APIRouter, Depends, Request
from starlette.concurrency import run_in_threadpool

from ...schemas.report import LeadReport
from ...services.report_service import ReportService
from ..deps import get_report_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/reports", tags=["reports"])

# How often a running report checks whether the client went away
DISCONNECT_POLL_SECONDS = 0.5


@router.get("/leads", response_model=LeadReport)
async def get_lead_report(
    request: Request,
    report_service: ReportService = Depends(get_report_service)
):
    """
    Generate the lead report for one year.

    The report runs in a worker thread; if the client disconnects, the run
    is told to stop requesting pages.

    Args:
        request: Incoming request
        report_service: ReportService instance

    Returns:
        LeadReport

    Raises:
        ReportFailedError: handled by the registered exception handler
    """
    cancel_event = threading.Event()
    task = asyncio.ensure_future(
        run_in_threadpool(report_service.generate_report, cancel_event=cancel_event)
    )

    while True:
        done, _ = await asyncio.wait({task}, timeout=DISCONNECT_POLL_SECONDS)
        if done:
            break
        if not cancel_event.is_set() and await request.is_disconnected():
            logger.info("Client disconnected; cancelling lead report")
            cancel_event.set()

    return task.result()
