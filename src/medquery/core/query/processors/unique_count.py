"""UNIQUE_COUNT: number of distinct values of the target field."""

from __future__ import annotations

from typing import Sequence

from medquery.core.query.models import CountResult, Query
from medquery.core.query.processors.base import QueryProcessor
from medquery.domains.devicedata.models import DeviceDataAsset


class UniqueCountProcessor(QueryProcessor):
    def process(self, query: Query, assets: Sequence[DeviceDataAsset]) -> CountResult:
        seen: set[str] = set()
        for asset in assets:
            key = self.decode_key(asset, query.target_field)
            if key is not None:
                seen.add(key)
        return CountResult(len(seen))
