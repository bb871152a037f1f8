"""Report data model: records, filter criteria, delta annotations and the report."""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field


class Record(BaseModel):
    """One lead row as returned by the CRM. Immutable once fetched."""

    model_config = ConfigDict(frozen=True)

    id: Optional[str] = None
    created_time: Optional[str] = None
    attributes: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_row(cls, row: Dict[str, Any], created_time_field: str = "Created_Time") -> "Record":
        """Build a record from a raw API row."""
        attributes = {k: v for k, v in row.items() if k not in ("id", created_time_field)}
        record_id = row.get("id")
        created_time = row.get(created_time_field)
        return cls(
            id=str(record_id) if record_id is not None else None,
            created_time=created_time if isinstance(created_time, str) else None,
            attributes=attributes,
        )


class FilterCriteria(BaseModel):
    """Target year plus the acceptable values per categorical field.

    An empty allow-list leaves its field unconstrained.
    """

    model_config = ConfigDict(frozen=True)

    target_year: int = Field(ge=1, le=9999)
    allowed_values: Dict[str, FrozenSet[str]] = Field(default_factory=dict)

    @classmethod
    def from_settings(cls, settings, year: Optional[int] = None) -> "FilterCriteria":
        """Build criteria from application settings.

        Args:
            settings: Settings instance
            year: Target year; falls back to settings.target_year, then the current year

        Returns:
            FilterCriteria
        """
        target_year = year or settings.target_year or datetime.now().year
        return cls(
            target_year=target_year,
            allowed_values={
                settings.source_field: frozenset(settings.source_allow_list),
                settings.service_field: frozenset(settings.service_allow_list),
            },
        )

    @property
    def constrained_fields(self) -> Dict[str, FrozenSet[str]]:
        """Fields with a non-empty allow-list."""
        return {field: values for field, values in self.allowed_values.items() if values}

    def year_bounds(self) -> tuple:
        """Inclusive ISO-8601 bounds of the target year."""
        return (
            f"{self.target_year:04d}-01-01T00:00:00+00:00",
            f"{self.target_year:04d}-12-31T23:59:59+00:00",
        )

    def accepts(self, record: Record) -> bool:
        """Check the categorical filters (set membership) against a record."""
        for field, allowed in self.constrained_fields.items():
            value = record.attributes.get(field)
            if value is None:
                return False
            # multi-select picklists come back as lists
            if isinstance(value, (list, tuple)):
                if not any(str(v) in allowed for v in value):
                    return False
            elif str(value) not in allowed:
                return False
        return True


class DeltaDirection(str, Enum):
    """Qualitative direction of a percent change."""
    INCREASE = "increase"
    DECREASE = "decrease"
    FLAT = "flat"
    UNDEFINED = "undefined"


class DeltaAnnotation(BaseModel):
    """Percent change of a count against its predecessor."""

    model_config = ConfigDict(frozen=True)

    direction: DeltaDirection
    percent: Optional[float] = None
    label: str = ""
    infinite: bool = False

    @classmethod
    def empty(cls) -> "DeltaAnnotation":
        """Annotation for a cell without a predecessor: renders nothing."""
        return cls(direction=DeltaDirection.UNDEFINED)

    @property
    def is_empty(self) -> bool:
        return self.direction == DeltaDirection.UNDEFINED and not self.label


class WeekCell(BaseModel):
    """Count of one week bucket and its change against the previous week."""

    model_config = ConfigDict(frozen=True)

    week: int
    count: int
    delta: DeltaAnnotation


class MonthSummary(BaseModel):
    """One report column: a month's week cells plus its total."""

    model_config = ConfigDict(frozen=True)

    month_index: int
    label: str
    weeks_in_month: int
    weeks: List[WeekCell]
    total: int
    total_delta: DeltaAnnotation


class FetchResult(BaseModel):
    """Outcome of one successful retrieval strategy."""

    model_config = ConfigDict(frozen=True)

    records: List[Record]
    strategy: str
    pages_fetched: int
    retrieved_count: int
    truncated: bool = False


class LeadReport(BaseModel):
    """Structured lead report handed to the renderer."""

    model_config = ConfigDict(frozen=True)

    target_year: int
    generated_at: datetime
    week_policy: str
    months: List[MonthSummary]
    grand_total: int
    retrieved_count: int
    filtered_count: int
    skipped_count: int = 0
    strategy: Optional[str] = None
    pages_fetched: int = 0
    truncated: bool = False
    is_empty: bool = False

    @computed_field
    @property
    def max_weeks(self) -> int:
        """Number of week rows a renderer needs."""
        return max((m.weeks_in_month for m in self.months), default=0)

    def month(self, month_index: int) -> MonthSummary:
        return self.months[month_index]
