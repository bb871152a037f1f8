"""Pytest configuration and fixtures."""

import os
import pytest
from datetime import datetime, timezone
from typing import Optional

# Set test environment variables BEFORE importing the package
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("ZOHO_ACCESS_TOKEN", "test_zoho_access_token")
os.environ.setdefault("LOG_LEVEL", "DEBUG")

from lead_report.schemas.query import GatewayPage
from lead_report.schemas.report import FilterCriteria


TEST_YEAR = 2026
FIXED_NOW = datetime(2026, 10, 18, 9, 0, tzinfo=timezone.utc)


class ScriptedGateway:
    """Query gateway that replays scripted pages (or raises scripted errors)."""

    def __init__(self, script=None, on_call=None):
        self.script = list(script or [])
        self.on_call = on_call
        self.calls = []

    def query_page(self, entity_type, filter_expression, sort_spec, page_size, page_token):
        self.calls.append({
            "entity_type": entity_type,
            "filter_expression": filter_expression,
            "sort_spec": sort_spec,
            "page_size": page_size,
            "page_token": page_token,
        })
        if self.on_call:
            self.on_call(len(self.calls))
        item = self.script.pop(0) if self.script else GatewayPage(records=[], has_more=False)
        if isinstance(item, Exception):
            raise item
        return item


def make_lead(
    created_time: Optional[str],
    source: Optional[str] = "Zoho CRM",
    service: Optional[str] = "CRM",
    lead_id: str = "1"
) -> dict:
    """Raw lead row as the CRM returns it."""
    return {
        "id": lead_id,
        "Created_Time": created_time,
        "Lead_Source": source,
        "Zoho_Service": service,
    }


def make_page(rows, has_more=None, next_token=None) -> GatewayPage:
    return GatewayPage(records=rows, has_more=has_more, next_token=next_token)


@pytest.fixture
def lead():
    """Factory for raw lead rows."""
    return make_lead


@pytest.fixture
def page():
    """Factory for gateway pages."""
    return make_page


@pytest.fixture
def gateway_factory():
    """Factory for scripted gateways."""
    return ScriptedGateway


@pytest.fixture
def criteria():
    """Criteria for TEST_YEAR accepting the default test lead."""
    return FilterCriteria(
        target_year=TEST_YEAR,
        allowed_values={
            "Lead_Source": frozenset({"Zoho CRM", "Zoho Partner"}),
            "Zoho_Service": frozenset({"CRM", "Bigin"}),
        },
    )


@pytest.fixture
def fixed_clock():
    return lambda: FIXED_NOW


@pytest.fixture
def client():
    """Test client over the application with the report dependency overridable."""
    from fastapi.testclient import TestClient
    from lead_report.main import app

    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
