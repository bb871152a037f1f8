"""Unit tests for the report assembler."""

import threading
from unittest.mock import Mock

import pytest

from lead_report.core.exceptions import (
    FetchFailedError,
    GatewayError,
    ReportCancelledError,
    ReportFailedError,
)
from lead_report.schemas.report import DeltaDirection, LeadReport
from lead_report.services.aggregation_service import Aggregator
from lead_report.services.calendar_service import WeekPolicy
from lead_report.services.fetch_service import RecordFetcher
from lead_report.services.report_service import ReportService


def _service(gateway, criteria, clock, week_policy=WeekPolicy.CALENDAR, **fetch_options):
    options = {"page_size": 50}
    options.update(fetch_options)
    return ReportService(
        fetcher=RecordFetcher(gateway, criteria, **options),
        aggregator=Aggregator(criteria, week_policy=week_policy),
        clock=clock,
    )


class TestReportService:
    """ReportService.generate_report."""

    def test_report_service_initialization(self, gateway_factory, criteria, fixed_clock):
        service = _service(gateway_factory([]), criteria, fixed_clock)
        assert service.fetcher is not None
        assert service.aggregator is not None
        assert service.target_year == 2026

    def test_january_report(self, gateway_factory, criteria, fixed_clock, lead, page):
        rows = [
            lead("2026-01-01T09:00:00Z", lead_id="1"),
            lead("2026-01-02T09:00:00Z", lead_id="2"),
            lead("2026-01-03T09:00:00Z", lead_id="3"),
            lead("2026-01-05T09:00:00Z", lead_id="4"),
            lead("2026-01-09T09:00:00Z", lead_id="5"),
        ]
        gateway = gateway_factory([page(rows, has_more=False)])
        report = _service(gateway, criteria, fixed_clock).generate_report()

        assert isinstance(report, LeadReport)
        assert report.target_year == 2026
        assert report.generated_at == fixed_clock()
        assert report.grand_total == 5
        assert report.retrieved_count == 5
        assert report.filtered_count == 5
        assert report.strategy == "primary"
        assert not report.is_empty
        assert not report.truncated

        january = report.month(0)
        assert january.label == "Jan 2026"
        assert [cell.count for cell in january.weeks] == [3, 2, 0, 0, 0]
        assert january.weeks[0].delta.is_empty
        assert january.weeks[1].delta.label == "-33.3%"
        assert january.weeks[1].delta.direction == DeltaDirection.DECREASE
        assert january.weeks[2].delta.label == "-100.0%"
        assert january.weeks[3].delta.direction == DeltaDirection.FLAT
        assert january.total == 5
        assert january.total_delta.is_empty

        february = report.month(1)
        assert february.total == 0
        assert february.total_delta.label == "-100.0%"
        assert [m.total for m in report.months[2:]] == [0] * 10
        assert report.months[2].total_delta.label == "0.0%"

    def test_week_one_compares_with_last_week_of_previous_month(
        self, gateway_factory, criteria, fixed_clock, lead, page
    ):
        rows = [
            lead("2026-01-30T09:00:00Z", lead_id="1"),    # Jan week 5
            lead("2026-02-02T09:00:00Z", lead_id="2"),    # Feb week 1
            lead("2026-02-03T09:00:00Z", lead_id="3"),    # Feb week 1
            lead("2026-08-31T09:00:00Z", lead_id="4"),    # Aug week 6
        ]
        gateway = gateway_factory([page(rows, has_more=False)])
        report = _service(gateway, criteria, fixed_clock).generate_report()

        assert report.month(1).weeks[0].count == 2
        assert report.month(1).weeks[0].delta.label == "+100.0%"

        september_week_one = report.month(8).weeks[0]
        assert report.month(7).weeks[5].count == 1
        assert september_week_one.delta.label == "-100.0%"

        assert report.month(1).total_delta.label == "+100.0%"
        assert report.max_weeks == 6

    def test_growth_from_zero_week(self, gateway_factory, criteria, fixed_clock, lead, page):
        gateway = gateway_factory([page([lead("2026-01-11T09:00:00Z")], has_more=False)])
        report = _service(gateway, criteria, fixed_clock).generate_report()

        cell = report.month(0).weeks[2]
        assert cell.count == 1
        assert cell.delta.infinite
        assert cell.delta.label == "+∞"

    def test_empty_result_is_marked(self, gateway_factory, criteria, fixed_clock, lead, page):
        rows = [lead("2025-06-01T00:00:00Z")]
        gateway = gateway_factory([page(rows, has_more=False)])
        report = _service(gateway, criteria, fixed_clock).generate_report()

        assert report.is_empty
        assert report.grand_total == 0
        assert report.retrieved_count == 1
        assert report.filtered_count == 0
        assert len(report.months) == 12

    def test_fetch_failure_is_distinct_from_empty(self, gateway_factory, criteria, fixed_clock):
        gateway = gateway_factory([GatewayError("COQL down"), GatewayError("records down")])

        with pytest.raises(ReportFailedError) as exc_info:
            _service(gateway, criteria, fixed_clock).generate_report()

        error = exc_info.value
        assert isinstance(error.cause, FetchFailedError)
        assert error.target_year == 2026
        assert "COQL down" in error.message
        assert "records down" in error.message

    def test_truncation_is_flagged(self, gateway_factory, criteria, fixed_clock, lead, page):
        full = [lead("2026-04-01T00:00:00Z", lead_id=str(i)) for i in range(2)]
        gateway = gateway_factory([page(full, has_more=True, next_token=i) for i in range(5)])
        report = _service(gateway, criteria, fixed_clock, page_size=2, max_pages=3).generate_report()

        assert report.truncated
        assert report.pages_fetched == 3
        assert report.grand_total == 6

    def test_fallback_strategy_is_reported(self, gateway_factory, criteria, fixed_clock, lead, page):
        gateway = gateway_factory([
            GatewayError("COQL down"),
            page([lead("2026-04-01T00:00:00Z"), lead("2026-04-02T00:00:00Z", source="Other")], has_more=False),
        ])
        report = _service(gateway, criteria, fixed_clock).generate_report()

        assert report.strategy == "fallback"
        assert report.retrieved_count == 2
        assert report.grand_total == 1

    def test_malformed_records_are_counted(self, gateway_factory, criteria, fixed_clock, lead, page):
        gateway = gateway_factory([page([lead("bad"), lead("2026-04-01T00:00:00Z")], has_more=False)])
        report = _service(gateway, criteria, fixed_clock).generate_report()

        assert report.grand_total == 1
        assert report.filtered_count == 2
        assert report.skipped_count == 1

    def test_cancellation_propagates(self, gateway_factory, criteria, fixed_clock):
        cancel = threading.Event()
        cancel.set()
        with pytest.raises(ReportCancelledError):
            _service(gateway_factory([]), criteria, fixed_clock).generate_report(cancel_event=cancel)

    def test_fixed_four_week_policy(self, gateway_factory, criteria, fixed_clock, lead, page):
        gateway = gateway_factory([page([lead("2026-01-31T00:00:00Z")], has_more=False)])
        report = _service(gateway, criteria, fixed_clock, week_policy=WeekPolicy.FIXED_FOUR).generate_report()

        assert report.week_policy == "fixed_four"
        assert report.max_weeks == 4
        assert report.month(0).weeks[3].count == 1

    def test_reports_for_different_years_do_not_interfere(self, gateway_factory, criteria, fixed_clock, lead, page):
        criteria_2025 = criteria.model_copy(update={"target_year": 2025})
        rows = [lead("2025-03-01T00:00:00Z"), lead("2026-03-01T00:00:00Z")]

        report_2026 = _service(gateway_factory([page(rows)]), criteria, fixed_clock).generate_report()
        report_2025 = _service(gateway_factory([page(rows)]), criteria_2025, fixed_clock).generate_report()

        assert report_2026.target_year == 2026
        assert report_2025.target_year == 2025
        assert report_2026.grand_total == 1
        assert report_2025.grand_total == 1

    def test_report_is_serializable(self, gateway_factory, criteria, fixed_clock, lead, page):
        gateway = gateway_factory([page([lead("2026-01-11T09:00:00Z")], has_more=False)])
        report = _service(gateway, criteria, fixed_clock).generate_report()

        data = report.model_dump(mode="json")
        assert data["grand_total"] == 1
        assert data["max_weeks"] == 6
        assert data["months"][0]["weeks"][2]["delta"]["direction"] == "increase"
        assert LeadReport.model_validate_json(report.model_dump_json()).grand_total == 1

    def test_uses_injected_collaborators(self, criteria, fixed_clock):
        fetcher = Mock()
        fetcher.criteria = criteria
        fetcher.fetch.side_effect = FetchFailedError(Mock(message="a"), Mock(message="b"))
        service = ReportService(fetcher=fetcher, aggregator=Aggregator(criteria), clock=fixed_clock)

        with pytest.raises(ReportFailedError):
            service.generate_report()
        fetcher.fetch.assert_called_once_with(cancel_event=None)
