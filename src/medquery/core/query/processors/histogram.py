"""HISTOGRAM over an integer or timestamp field.

Bins are anchored at the observed minimum. Timestamp bin sizes are given in
days and applied in seconds. Each bin is labelled ``"<start>-<end>"`` with an
inclusive end.
"""

from __future__ import annotations

from typing import Sequence

from medquery.core.query.models import GroupedCountResult, Query
from medquery.core.query.processors.base import NUMERIC_KINDS, QueryProcessor, require_kind
from medquery.domains.devicedata.models import DeviceDataAsset, FieldKind

SECONDS_PER_DAY = 86_400


class HistogramProcessor(QueryProcessor):
    def process(self, query: Query, assets: Sequence[DeviceDataAsset]) -> GroupedCountResult:
        kind = require_kind(query, query.target_field, NUMERIC_KINDS)
        if query.bin_size <= 0:
            raise ValueError(f"Histogram bin size must be positive, got {query.bin_size}")
        width = query.bin_size * SECONDS_PER_DAY if kind == FieldKind.TIMESTAMP else query.bin_size

        # Bin membership needs every value, so nothing is batched here.
        values = [
            value
            for value in (self.decode_numeric(asset, query.target_field) for asset in assets)
            if value is not None
        ]
        if not values:
            return GroupedCountResult({})

        low = min(values)
        buckets: dict[int, int] = {}
        for value in values:
            start = bin_start(value, low, width)
            buckets[start] = buckets.get(start, 0) + 1

        return GroupedCountResult(
            {f"{start}-{start + width - 1}": buckets[start] for start in sorted(buckets)}
        )


def bin_start(value: int, low: int, width: int) -> int:
    return (value - low) // width * width + low
