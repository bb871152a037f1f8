"""Parameterized query description passed to the query gateway.

Filter values are carried as data, never pre-rendered into a query string;
the gateway is responsible for quoting them.
"""

import re
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

FIELD_NAME_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def validate_identifier(name: str) -> str:
    """Reject anything that is not a bare API name."""
    if not FIELD_NAME_PATTERN.match(name):
        raise ValueError(f"Invalid field name: {name!r}")
    return name


class Condition(BaseModel):
    """A single predicate: ``field IN (...)``, ``field = x`` or ``field BETWEEN a AND b``."""

    model_config = ConfigDict(frozen=True)

    field: str
    operator: str = "in"
    values: List[str] = Field(default_factory=list)

    @field_validator("field")
    @classmethod
    def validate_field(cls, v: str) -> str:
        return validate_identifier(v)

    @field_validator("operator")
    @classmethod
    def validate_operator(cls, v: str) -> str:
        v_lower = v.lower()
        if v_lower not in {"in", "eq", "between"}:
            raise ValueError(f"Unsupported operator: {v}")
        return v_lower


class FilterExpression(BaseModel):
    """Conjunction of conditions."""

    model_config = ConfigDict(frozen=True)

    conditions: List[Condition] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.conditions


class SortSpec(BaseModel):
    model_config = ConfigDict(frozen=True)

    field: str
    ascending: bool = True

    @field_validator("field")
    @classmethod
    def validate_field(cls, v: str) -> str:
        return validate_identifier(v)


class GatewayPage(BaseModel):
    """One page of raw rows.

    ``has_more`` is None when the gateway does not report it; callers then
    fall back to comparing the row count with the page size.
    """

    records: List[Dict[str, Any]] = Field(default_factory=list)
    has_more: Optional[bool] = None
    next_token: Optional[int] = None
