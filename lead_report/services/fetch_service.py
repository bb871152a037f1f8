"""Record retrieval with a primary and a fallback strategy.

The primary strategy asks the gateway to filter server-side; the fallback
lists the whole module and filters client-side with a smaller page cap.
Strategies are tried in order and the first one that completes wins.
Both re-filter every row client-side, since gateway filtering may be
partial.
"""

import logging
import threading
from typing import List, NamedTuple, Optional, Protocol

from ..core.exceptions import (
    FetchError,
    FetchFailedError,
    GatewayError,
    MalformedRecordError,
    ReportCancelledError,
)
from ..core.metrics import track_fallback, track_page_fetched, track_truncation
from ..schemas.query import Condition, FilterExpression, GatewayPage, SortSpec
from ..schemas.report import FetchResult, FilterCriteria, Record
from .calendar_service import parse_timestamp

logger = logging.getLogger(__name__)

PRIMARY = "primary"
FALLBACK = "fallback"


class QueryGateway(Protocol):
    def query_page(
        self,
        entity_type: str,
        filter_expression: Optional[FilterExpression],
        sort_spec: Optional[SortSpec],
        page_size: int,
        page_token: Optional[int]
    ) -> GatewayPage:
        ...


class QueryStrategy(NamedTuple):
    name: str
    page_size: int
    max_pages: int
    server_side_filter: bool
    # unfiltered listings read newest first so the cap is spent on the target year
    newest_first: bool = False


class RecordFetcher:
    """Fetch the lead records of one year matching the filter criteria."""

    def __init__(
        self,
        gateway: QueryGateway,
        criteria: FilterCriteria,
        entity_type: str = "Leads",
        created_time_field: str = "Created_Time",
        page_size: int = 200,
        max_pages: int = 50,
        fallback_page_size: int = 200,
        fallback_max_pages: int = 10
    ):
        self.gateway = gateway
        self.criteria = criteria
        self.entity_type = entity_type
        self.created_time_field = created_time_field
        self.strategies = [
            QueryStrategy(PRIMARY, page_size, max_pages, server_side_filter=True),
            QueryStrategy(
                FALLBACK, fallback_page_size, fallback_max_pages,
                server_side_filter=False, newest_first=True,
            ),
        ]

    @classmethod
    def from_settings(cls, gateway: QueryGateway, criteria: FilterCriteria, settings) -> "RecordFetcher":
        return cls(
            gateway=gateway,
            criteria=criteria,
            entity_type=settings.lead_module,
            created_time_field=settings.created_time_field,
            page_size=settings.page_size,
            max_pages=settings.max_pages,
            fallback_page_size=settings.fallback_page_size,
            fallback_max_pages=settings.fallback_max_pages,
        )

    def fetch(self, cancel_event: Optional[threading.Event] = None) -> FetchResult:
        """Run the strategies in order until one completes.

        Args:
            cancel_event: Set by the host to stop issuing further pages

        Returns:
            FetchResult of the first strategy that completed

        Raises:
            FetchFailedError: if every strategy failed
            ReportCancelledError: if cancel_event was set mid-fetch
        """
        errors: List[FetchError] = []

        for strategy in self.strategies:
            if errors:
                logger.warning(f"Falling back to {strategy.name} strategy after: {errors[-1].message}")
                track_fallback()
            try:
                return self._run(strategy, cancel_event)
            except FetchError as e:
                logger.warning(f"{strategy.name} strategy failed: {e.message}")
                errors.append(e)

        raise FetchFailedError(errors[0], errors[-1])

    def filter_expression(self) -> FilterExpression:
        """Server-side filter for the primary strategy."""
        start, end = self.criteria.year_bounds()
        conditions = [
            Condition(field=field, operator="in", values=sorted(values))
            for field, values in sorted(self.criteria.constrained_fields.items())
        ]
        conditions.append(Condition(field=self.created_time_field, operator="between", values=[start, end]))
        return FilterExpression(conditions=conditions)

    def _run(self, strategy: QueryStrategy, cancel_event: Optional[threading.Event]) -> FetchResult:
        filter_expression = self.filter_expression() if strategy.server_side_filter else None
        sort_spec = SortSpec(field=self.created_time_field, ascending=not strategy.newest_first)

        logger.info(
            f"Fetching {self.entity_type} for {self.criteria.target_year} via {strategy.name} strategy "
            f"(page_size={strategy.page_size}, max_pages={strategy.max_pages})"
        )

        rows = []
        page_token = None
        pages = 0
        truncated = False

        while True:
            self._check_cancelled(cancel_event, pages)

            if pages >= strategy.max_pages:
                truncated = True
                logger.warning(
                    f"{strategy.name} strategy stopped at the {strategy.max_pages}-page cap; "
                    f"totals may be undercounted"
                )
                track_truncation(strategy.name)
                break

            try:
                page = self.gateway.query_page(
                    self.entity_type, filter_expression, sort_spec, strategy.page_size, page_token
                )
            except GatewayError as e:
                raise FetchError(strategy.name, e, details={"pages_fetched": pages}) from e

            pages += 1
            track_page_fetched(strategy.name)
            rows.extend(page.records)
            logger.debug(f"{strategy.name} page {pages}: {len(page.records)} row(s), has_more={page.has_more}")

            if self._is_last_page(page, strategy.page_size):
                break
            if strategy.newest_first and self._before_target_year(page):
                logger.debug(f"{strategy.name} page {pages} predates {self.criteria.target_year}; stopping")
                break
            page_token = page.next_token

        self._check_cancelled(cancel_event, pages)

        records = [Record.from_row(row, self.created_time_field) for row in rows]
        matching = [r for r in records if self._matches(r)]

        logger.info(
            f"{strategy.name} strategy retrieved {len(records)} row(s) in {pages} page(s), "
            f"{len(matching)} matching"
        )

        return FetchResult(
            records=matching,
            strategy=strategy.name,
            pages_fetched=pages,
            retrieved_count=len(records),
            truncated=truncated,
        )

    def _matches(self, record: Record) -> bool:
        """Client-side year and categorical check.

        Records with an unparseable creation time are kept so the aggregator
        can count them as malformed.
        """
        if not self.criteria.accepts(record):
            return False
        try:
            created = parse_timestamp(record.created_time, record_id=record.id)
        except MalformedRecordError:
            return True
        return created.year == self.criteria.target_year

    def _before_target_year(self, page: GatewayPage) -> bool:
        """True when every row of the page was created before the target year."""
        for row in page.records:
            try:
                created = parse_timestamp(row.get(self.created_time_field), record_id=row.get("id"))
            except MalformedRecordError:
                return False
            if created.year >= self.criteria.target_year:
                return False
        return True

    @staticmethod
    def _is_last_page(page: GatewayPage, page_size: int) -> bool:
        if not page.records or len(page.records) < page_size:
            return True
        return page.has_more is False

    @staticmethod
    def _check_cancelled(cancel_event: Optional[threading.Event], pages: int) -> None:
        if cancel_event is not None and cancel_event.is_set():
            logger.info(f"Fetch cancelled after {pages} page(s); discarding partial data")
            raise ReportCancelledError(pages_fetched=pages)
