from .report import (
    Record,
    FilterCriteria,
    DeltaDirection,
    DeltaAnnotation,
    WeekCell,
    MonthSummary,
    FetchResult,
    LeadReport,
)
from .query import Condition, FilterExpression, SortSpec, GatewayPage

__all__ = [
    "Record",
    "FilterCriteria",
    "DeltaDirection",
    "DeltaAnnotation",
    "WeekCell",
    "MonthSummary",
    "FetchResult",
    "LeadReport",
    "Condition",
    "FilterExpression",
    "SortSpec",
    "GatewayPage",
]
