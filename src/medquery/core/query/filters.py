"""Record filtering applied before a query reaches its processor."""

from __future__ import annotations

import logging
from enum import IntEnum
from typing import Any, Sequence

from medquery.core.errors import ConfigurationError, CryptoBackendError
from medquery.core.query.models import (
    BoolFilter,
    EnumFilter,
    Filter,
    IntegerFilter,
    IntegerOperator,
    StringFilter,
    StringOperator,
    TimestampFilter,
    TimestampOperator,
)
from medquery.core.query.processors.base import FieldDecoder
from medquery.domains.devicedata.models import DeviceDataAsset, FieldKind, field_kind

logger = logging.getLogger(__name__)


class FilterService(FieldDecoder):
    """Evaluates filters against records, decrypting with the record's key version.

    A malformed filter (unknown field, comparator not matching the field
    type, bad enum name) evaluates to ``False`` for the record instead of
    aborting the scan. Missing encryption configuration and backend
    failures still propagate.
    """

    def check_filter(self, asset: DeviceDataAsset, query_filter: Filter) -> bool:
        try:
            value = self.decode(asset, query_filter.field)
            if value is None:
                return False
            return _matches(field_kind(query_filter.field), value, query_filter)
        except (ConfigurationError, CryptoBackendError):
            raise
        except Exception as exc:
            logger.warning("Filter on %r failed, treating as no match: %s", query_filter.field, exc)
            return False

    def apply_filters(
        self,
        assets: Sequence[DeviceDataAsset],
        filters: Sequence[Filter],
    ) -> list[DeviceDataAsset]:
        """Keep the records matching every filter."""
        if not filters:
            return list(assets)
        kept = [a for a in assets if all(self.check_filter(a, f) for f in filters)]
        logger.debug("Filters kept %d of %d records", len(kept), len(assets))
        return kept


def _matches(kind: FieldKind, value: Any, query_filter: Filter) -> bool:
    comparator = query_filter.comparator

    if isinstance(comparator, StringFilter):
        _expect(kind, FieldKind.STRING, query_filter)
        text = str(value)
        if comparator.operator == StringOperator.CONTAINS:
            return comparator.value in text
        if comparator.operator == StringOperator.STARTS_WITH:
            return text.startswith(comparator.value)
        if comparator.operator == StringOperator.ENDS_WITH:
            return text.endswith(comparator.value)
        return text == comparator.value

    if isinstance(comparator, IntegerFilter):
        _expect(kind, FieldKind.INTEGER, query_filter)
        return _compare_int(int(value), comparator.operator, comparator.value)

    if isinstance(comparator, TimestampFilter):
        _expect(kind, FieldKind.TIMESTAMP, query_filter)
        if comparator.operator == TimestampOperator.BEFORE:
            return value < comparator.seconds
        if comparator.operator == TimestampOperator.AFTER:
            return value > comparator.seconds
        return value == comparator.seconds

    if isinstance(comparator, BoolFilter):
        _expect(kind, FieldKind.BOOL, query_filter)
        return bool(value) == comparator.value

    if isinstance(comparator, EnumFilter):
        if not isinstance(value, IntEnum):
            raise TypeError(f"Enum filter used on {kind.value} field {query_filter.field!r}")
        return value == type(value)[comparator.value]

    raise ValueError(f"Filter on {query_filter.field!r} has no comparator")


def _compare_int(value: int, operator: IntegerOperator, target: int) -> bool:
    if operator == IntegerOperator.LESS_THAN:
        return value < target
    if operator == IntegerOperator.GREATER_THAN:
        return value > target
    if operator == IntegerOperator.LESS_THAN_OR_EQUAL:
        return value <= target
    if operator == IntegerOperator.GREATER_THAN_OR_EQUAL:
        return value >= target
    return value == target


def _expect(kind: FieldKind, expected: FieldKind, query_filter: Filter) -> None:
    if kind != expected:
        raise TypeError(
            f"{type(query_filter.comparator).__name__} used on {kind.value} field "
            f"{query_filter.field!r}"
        )
