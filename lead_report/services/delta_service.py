"""Week-over-week and month-over-month percent change annotations."""

from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional, Sequence

from ..schemas.report import DeltaAnnotation, DeltaDirection

INFINITE_LABEL = "+∞"
_ONE_PLACE = Decimal("0.1")


def _round_percent(current: int, previous: int) -> Decimal:
    """(current - previous) / previous * 100, rounded half-up to one decimal."""
    change = Decimal(current - previous) * 100 / Decimal(previous)
    rounded = change.quantize(_ONE_PLACE, rounding=ROUND_HALF_UP)
    # a change too small to show must not render as "-0.0%"
    return rounded if rounded != 0 else Decimal("0.0")


def percent_change(current: int, previous: Optional[int]) -> DeltaAnnotation:
    """Calculate the percent change of a count against its predecessor.

    Args:
        current: Count of the cell being annotated
        previous: Count of the preceding cell, or None when there is none

    Returns:
        DeltaAnnotation; empty when ``previous`` is None
    """
    if previous is None:
        return DeltaAnnotation.empty()

    if previous == 0:
        if current > 0:
            return DeltaAnnotation(
                direction=DeltaDirection.INCREASE,
                label=INFINITE_LABEL,
                infinite=True,
            )
        return DeltaAnnotation(direction=DeltaDirection.FLAT, percent=0.0, label="0.0%")

    pct = _round_percent(current, previous)

    if pct > 0:
        return DeltaAnnotation(direction=DeltaDirection.INCREASE, percent=float(pct), label=f"+{pct}%")
    if pct < 0:
        return DeltaAnnotation(direction=DeltaDirection.DECREASE, percent=float(pct), label=f"{pct}%")
    return DeltaAnnotation(direction=DeltaDirection.FLAT, percent=0.0, label="0.0%")


def annotate_series(counts: Sequence[int]) -> List[DeltaAnnotation]:
    """Annotate counts given in report order, each against the one before it.

    The first entry has no predecessor and gets an empty annotation.
    """
    annotations = []
    previous = None
    for count in counts:
        annotations.append(percent_change(count, previous))
        previous = count
    return annotations
