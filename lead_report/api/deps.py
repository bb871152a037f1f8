"""Dependency injection for FastAPI endpoints."""

from typing import Optional

from fastapi import Query

from ..config import settings
from ..schemas.report import FilterCriteria
from ..services.aggregation_service import Aggregator
from ..services.calendar_service import WeekPolicy
from ..services.fetch_service import QueryGateway, RecordFetcher
from ..services.report_service import ReportService
from ..services.zoho_crm_service import ZohoCrmService


def build_report_service(
    app_settings=settings,
    year: Optional[int] = None,
    gateway: Optional[QueryGateway] = None
) -> ReportService:
    """
    Wire a ReportService for one report run.

    Args:
        app_settings: Settings to build from
        year: Target year (defaults to settings, then the current year)
        gateway: Query gateway (defaults to the Zoho CRM REST gateway)

    Returns:
        ReportService instance
    """
    criteria = FilterCriteria.from_settings(app_settings, year=year)
    gateway = gateway or ZohoCrmService.from_settings(app_settings)

    return ReportService(
        fetcher=RecordFetcher.from_settings(gateway, criteria, app_settings),
        aggregator=Aggregator(criteria, week_policy=WeekPolicy(app_settings.week_policy)),
    )


def get_report_service(
    year: Optional[int] = Query(default=None, ge=1, le=9999)
) -> ReportService:
    """
    ReportService dependency; one fresh instance per request.

    Args:
        year: Target year from the query string

    Returns:
        ReportService instance
    """
    return build_report_service(settings, year=year)
