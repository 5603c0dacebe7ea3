"""Query, filter and result types."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Union

from medquery.domains.devicedata.models import parse_timestamp, to_epoch_seconds


class QueryType(str, Enum):
    COUNT = "COUNT"
    SUM = "SUM"
    AVERAGE = "AVERAGE"
    GROUPED_COUNT = "GROUPED_COUNT"
    UNIQUE_COUNT = "UNIQUE_COUNT"
    HISTOGRAM = "HISTOGRAM"
    STD = "STD"
    LINEAR_REGRESSION = "LINEAR_REGRESSION"


# ---------------------------------------------------------------------------
# Filters
# ---------------------------------------------------------------------------

class StringOperator(str, Enum):
    CONTAINS = "CONTAINS"
    STARTS_WITH = "STARTS_WITH"
    ENDS_WITH = "ENDS_WITH"
    EQUALS = "EQUALS"


class IntegerOperator(str, Enum):
    EQUALS = "EQUALS"
    LESS_THAN = "LESS_THAN"
    GREATER_THAN = "GREATER_THAN"
    LESS_THAN_OR_EQUAL = "LESS_THAN_OR_EQUAL"
    GREATER_THAN_OR_EQUAL = "GREATER_THAN_OR_EQUAL"


class TimestampOperator(str, Enum):
    BEFORE = "BEFORE"
    AFTER = "AFTER"
    EQUALS = "EQUALS"


class BoolOperator(str, Enum):
    EQUALS = "EQUALS"


@dataclass(frozen=True)
class StringFilter:
    operator: StringOperator
    value: str


@dataclass(frozen=True)
class IntegerFilter:
    operator: IntegerOperator
    value: int


@dataclass(frozen=True)
class TimestampFilter:
    operator: TimestampOperator
    value: datetime

    @property
    def seconds(self) -> int:
        return to_epoch_seconds(self.value)


@dataclass(frozen=True)
class BoolFilter:
    value: bool
    operator: BoolOperator = BoolOperator.EQUALS


@dataclass(frozen=True)
class EnumFilter:
    """Equality against a symbolic enum member name, e.g. ``"WEARABLE"``."""

    value: str


Comparator = Union[StringFilter, IntegerFilter, TimestampFilter, BoolFilter, EnumFilter]

_COMPARATOR_TYPES: dict[str, type] = {
    "string": StringFilter,
    "integer": IntegerFilter,
    "timestamp": TimestampFilter,
    "bool": BoolFilter,
    "enum": EnumFilter,
}


@dataclass(frozen=True)
class Filter:
    field: str
    comparator: Comparator | None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Filter:
        """Parse ``{"field": ..., "type": "integer", "operator": ..., "value": ...}``."""
        name = data.get("field", "")
        kind = data.get("type")
        if kind is None:
            return cls(field=name, comparator=None)
        if kind not in _COMPARATOR_TYPES:
            raise ValueError(f"Unknown filter type: {kind!r}")

        value = data.get("value")
        operator = data.get("operator", "EQUALS")
        comparator: Comparator
        if kind == "string":
            comparator = StringFilter(StringOperator(operator), str(value))
        elif kind == "integer":
            comparator = IntegerFilter(IntegerOperator(operator), int(value))
        elif kind == "timestamp":
            comparator = TimestampFilter(TimestampOperator(operator), parse_timestamp(value))
        elif kind == "bool":
            if not isinstance(value, bool):
                raise ValueError(f"Bool filter expects true/false, got {value!r}")
            comparator = BoolFilter(value, BoolOperator(operator))
        else:
            comparator = EnumFilter(str(value))
        return cls(field=name, comparator=comparator)


# ---------------------------------------------------------------------------
# Query
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Query:
    """An aggregate query over one target field.

    For ``LINEAR_REGRESSION`` the target field is the dependent variable; the
    independent variable is each record's event timestamp.
    """

    query_type: QueryType
    target_field: str
    filters: tuple[Filter, ...] = ()
    bin_size: int = 0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Query:
        return cls(
            query_type=QueryType(str(data.get("query_type", "")).upper()),
            target_field=data.get("target_field", ""),
            filters=tuple(Filter.from_dict(f) for f in data.get("filters", []) or []),
            bin_size=int(data.get("bin_size", 0) or 0),
        )


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CountResult:
    count: int


@dataclass(frozen=True)
class SumResult:
    value: int


@dataclass(frozen=True)
class AverageResult:
    value: float


@dataclass(frozen=True)
class GroupedCountResult:
    counts: dict[str, int] = field(default_factory=dict)


@dataclass(frozen=True)
class MeanAndStd:
    mean: float
    std: float


@dataclass(frozen=True)
class LinearRegressionResult:
    slope: float
    intercept: float
    r_squared: float


QueryResult = Union[
    CountResult,
    SumResult,
    AverageResult,
    GroupedCountResult,
    MeanAndStd,
    LinearRegressionResult,
]


def result_to_dict(result: QueryResult) -> dict[str, Any]:
    """Serialise a result with a ``kind`` tag for transport."""
    return {"kind": type(result).__name__, **asdict(result)}
