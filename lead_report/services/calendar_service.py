"""Calendar bucketing: map timestamps to (year, month, week-of-month) cells.

Weeks are Sunday-aligned. Week 1 runs from the 1st of the month to the
first Saturday, so a month spans ``ceil((first_weekday + days) / 7)`` weeks.
"""

import calendar
import enum
import math
from datetime import date, datetime
from typing import List, NamedTuple, Optional, Union

from ..core.exceptions import MalformedRecordError

MONTH_NAMES = ["Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]


class WeekPolicy(str, enum.Enum):
    """How days are assigned to weeks within a month."""
    CALENDAR = "calendar"      # Sunday-aligned, 4-6 weeks per month
    FIXED_FOUR = "fixed_four"  # ceil(day / 7) clamped to 4


class Bucket(NamedTuple):
    year: int
    month_index: int
    week: int


class MonthSpan(NamedTuple):
    """A month of the report and the number of week buckets it has."""
    year: int
    month_index: int
    weeks_in_month: int

    @property
    def label(self) -> str:
        return month_label(self.year, self.month_index)

    def buckets(self) -> List[Bucket]:
        return [Bucket(self.year, self.month_index, w) for w in range(1, self.weeks_in_month + 1)]


def _check_month(month_index: int) -> None:
    if not 0 <= month_index <= 11:
        raise ValueError(f"Month index out of range: {month_index}")


def month_label(year: int, month_index: int) -> str:
    """Column label such as ``Jan 2026``."""
    _check_month(month_index)
    return f"{MONTH_NAMES[month_index]} {year}"


def first_weekday(year: int, month_index: int) -> int:
    """Weekday of the 1st of the month, 0=Sunday..6=Saturday."""
    _check_month(month_index)
    # calendar counts Monday as 0
    return (calendar.monthrange(year, month_index + 1)[0] + 1) % 7


def days_in_month(year: int, month_index: int) -> int:
    _check_month(month_index)
    return calendar.monthrange(year, month_index + 1)[1]


def weeks_in_month(year: int, month_index: int, policy: WeekPolicy = WeekPolicy.CALENDAR) -> int:
    """Number of week buckets in a month."""
    if policy == WeekPolicy.FIXED_FOUR:
        _check_month(month_index)
        return 4
    return math.ceil((first_weekday(year, month_index) + days_in_month(year, month_index)) / 7)


def week_of_month(value: Union[date, datetime], policy: WeekPolicy = WeekPolicy.CALENDAR) -> int:
    """Week bucket (1-based) of a date within its month."""
    if policy == WeekPolicy.FIXED_FOUR:
        return min(4, max(1, math.ceil(value.day / 7)))
    return math.ceil((value.day + first_weekday(value.year, value.month - 1)) / 7)


def bucket_for(value: Union[date, datetime], policy: WeekPolicy = WeekPolicy.CALENDAR) -> Bucket:
    return Bucket(value.year, value.month - 1, week_of_month(value, policy))


def buckets_for_year(year: int, policy: WeekPolicy = WeekPolicy.CALENDAR) -> List[MonthSpan]:
    """One span per month, January first."""
    return [MonthSpan(year, m, weeks_in_month(year, m, policy)) for m in range(12)]


def parse_timestamp(value: Optional[str], record_id: Optional[str] = None) -> datetime:
    """Parse an ISO-8601 creation time.

    The wall-clock fields are kept in the offset the CRM reported; the value
    is not converted to UTC.

    Raises:
        MalformedRecordError: if the value is missing or not ISO-8601
    """
    if not isinstance(value, str) or not value.strip():
        raise MalformedRecordError("missing creation time", record_id=record_id)

    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"

    try:
        return datetime.fromisoformat(text)
    except ValueError:
        raise MalformedRecordError(f"unparseable creation time {value!r}", record_id=record_id)
