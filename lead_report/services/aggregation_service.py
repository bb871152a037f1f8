"""Bucket lead records into the month x week grid of a year."""

import logging
from typing import Dict, Iterable, List, Optional

from ..core.exceptions import MalformedRecordError
from ..core.metrics import track_malformed_records
from ..schemas.report import FilterCriteria, Record
from .calendar_service import MonthSpan, WeekPolicy, buckets_for_year, parse_timestamp, week_of_month

logger = logging.getLogger(__name__)


class Grid:
    """Per-bucket counts for one year. Read-only once built.

    Month totals and the grand total are summed from the bucket counts on
    read; nothing else is stored.
    """

    def __init__(
        self,
        year: int,
        months: List[MonthSpan],
        counts: Dict[int, Dict[int, int]],
        malformed_count: int = 0,
        discarded_count: int = 0,
    ):
        self.year = year
        self.months = list(months)
        self._counts = {m: dict(weeks) for m, weeks in counts.items()}
        self.malformed_count = malformed_count
        self.discarded_count = discarded_count

    @property
    def skipped_count(self) -> int:
        return self.malformed_count + self.discarded_count

    def count(self, month_index: int, week: int) -> int:
        return self._counts[month_index][week]

    def weeks(self, month_index: int) -> Dict[int, int]:
        """Week -> count for one month (a copy)."""
        return dict(self._counts[month_index])

    def month_total(self, month_index: int) -> int:
        return sum(self._counts[month_index].values())

    def month_totals(self) -> List[int]:
        return [self.month_total(span.month_index) for span in self.months]

    @property
    def grand_total(self) -> int:
        return sum(self.month_totals())

    def week_counts_in_order(self) -> List[int]:
        """Every week cell, January week 1 first, December's last week last."""
        return [
            self._counts[span.month_index][week]
            for span in self.months
            for week in range(1, span.weeks_in_month + 1)
        ]

    def as_dict(self) -> Dict[str, Dict[int, int]]:
        """Month label -> {week: count}."""
        return {span.label: self.weeks(span.month_index) for span in self.months}

    def __eq__(self, other) -> bool:
        if not isinstance(other, Grid):
            return NotImplemented
        return self.year == other.year and self._counts == other._counts

    def __repr__(self) -> str:
        return f"<Grid(year={self.year}, grand_total={self.grand_total})>"


class Aggregator:
    """Builds the count grid from raw records."""

    def __init__(self, criteria: FilterCriteria, week_policy: WeekPolicy = WeekPolicy.CALENDAR):
        self.criteria = criteria
        self.week_policy = WeekPolicy(week_policy)

    def aggregate(self, records: Iterable[Record], year: Optional[int] = None) -> Grid:
        """Count records per (month, week) bucket of a year.

        Records that are malformed, outside the year, or rejected by the
        categorical filters are skipped; they never abort the run.

        Args:
            records: Records to bucket
            year: Target year (defaults to the criteria's year)

        Returns:
            Grid with every bucket of the year present, zero when empty
        """
        year = year if year is not None else self.criteria.target_year
        months = buckets_for_year(year, self.week_policy)
        counts = {span.month_index: {w: 0 for w in range(1, span.weeks_in_month + 1)} for span in months}

        malformed = 0
        discarded = 0

        for record in records:
            try:
                created = parse_timestamp(record.created_time, record_id=record.id)
            except MalformedRecordError as e:
                logger.debug(f"Skipping record: {e.message}")
                malformed += 1
                continue

            if created.year != year or not self.criteria.accepts(record):
                discarded += 1
                continue

            week = week_of_month(created, self.week_policy)
            month_weeks = counts.get(created.month - 1)
            if month_weeks is None or week not in month_weeks:
                discarded += 1
                continue

            month_weeks[week] += 1

        if malformed:
            logger.warning(f"Skipped {malformed} record(s) with a missing or invalid creation time")
            track_malformed_records(malformed)

        grid = Grid(year, months, counts, malformed_count=malformed, discarded_count=discarded)
        logger.info(f"Aggregated {grid.grand_total} lead(s) for {year} ({discarded} discarded)")
        return grid
