"""AVERAGE over an integer or timestamp field."""

from __future__ import annotations

from typing import Sequence

from medquery.core.query.models import AverageResult, Query
from medquery.core.query.processors.base import NUMERIC_KINDS, QueryProcessor, require_kind
from medquery.domains.devicedata.models import DeviceDataAsset


class AverageProcessor(QueryProcessor):
    """Mean of contributing values; unset fields are left out of the denominator."""

    def process(self, query: Query, assets: Sequence[DeviceDataAsset]) -> AverageResult:
        require_kind(query, query.target_field, NUMERIC_KINDS)
        total, count = self.batched_sum(assets, query.target_field)
        if count == 0:
            return AverageResult(0.0)
        return AverageResult(total / count)
