"""Lead report generation service."""

import logging
import threading
from datetime import datetime, timezone
from typing import Callable, List, Optional

from ..core.exceptions import FetchFailedError, ReportCancelledError, ReportFailedError
from ..core.metrics import track_report_generation_time, track_report_outcome
from ..schemas.report import FetchResult, LeadReport, MonthSummary, WeekCell
from .aggregation_service import Aggregator, Grid
from .delta_service import annotate_series
from .fetch_service import RecordFetcher

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ReportService:
    """Service for assembling lead reports: fetch, aggregate, annotate."""

    def __init__(
        self,
        fetcher: RecordFetcher,
        aggregator: Aggregator,
        clock: Callable[[], datetime] = _utcnow
    ):
        self.fetcher = fetcher
        self.aggregator = aggregator
        self.clock = clock

    @property
    def target_year(self) -> int:
        return self.fetcher.criteria.target_year

    def generate_report(self, cancel_event: Optional[threading.Event] = None) -> LeadReport:
        """Generate the lead report for the configured year.

        Args:
            cancel_event: Set by the host to abandon the run between pages

        Returns:
            LeadReport; ``is_empty`` is set when the query succeeded with no leads

        Raises:
            ReportFailedError: if no fetch strategy succeeded
            ReportCancelledError: if the run was cancelled
        """
        year = self.target_year
        logger.info(f"Generating lead report for {year}")

        with track_report_generation_time():
            try:
                fetched = self.fetcher.fetch(cancel_event=cancel_event)
            except ReportCancelledError:
                track_report_outcome("cancelled")
                raise
            except FetchFailedError as e:
                logger.error(f"Lead report for {year} failed: {e.message}", exc_info=True)
                track_report_outcome("failed")
                raise ReportFailedError(e, target_year=year) from e

            if not fetched.records:
                logger.info(f"No matching leads found for {year} ({fetched.retrieved_count} retrieved)")
                track_report_outcome("empty")
                return self._assemble(self.aggregator.aggregate([], year), fetched, is_empty=True)

            grid = self.aggregator.aggregate(fetched.records, year)
            report = self._assemble(grid, fetched)

        if report.truncated:
            logger.warning(f"Lead report for {year} is truncated; totals may be undercounts")

        track_report_outcome("success")
        logger.info(
            f"Lead report generated for {year}: grand_total={report.grand_total}, "
            f"retrieved={report.retrieved_count}, strategy={report.strategy}"
        )
        return report

    def _assemble(self, grid: Grid, fetched: FetchResult, is_empty: bool = False) -> LeadReport:
        """Bundle the grid, its deltas and the fetch summary into a report."""
        week_deltas = iter(annotate_series(grid.week_counts_in_order()))
        total_deltas = annotate_series(grid.month_totals())

        months: List[MonthSummary] = []
        for span, total_delta in zip(grid.months, total_deltas):
            weeks = [
                WeekCell(week=week, count=count, delta=next(week_deltas))
                for week, count in sorted(grid.weeks(span.month_index).items())
            ]
            months.append(MonthSummary(
                month_index=span.month_index,
                label=span.label,
                weeks_in_month=span.weeks_in_month,
                weeks=weeks,
                total=grid.month_total(span.month_index),
                total_delta=total_delta,
            ))

        return LeadReport(
            target_year=grid.year,
            generated_at=self.clock(),
            week_policy=self.aggregator.week_policy.value,
            months=months,
            grand_total=grid.grand_total,
            retrieved_count=fetched.retrieved_count,
            filtered_count=len(fetched.records),
            skipped_count=grid.skipped_count,
            strategy=fetched.strategy,
            pages_fetched=fetched.pages_fetched,
            truncated=fetched.truncated,
            is_empty=is_empty,
        )
