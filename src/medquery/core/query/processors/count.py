"""COUNT: number of records that survived filtering."""

from __future__ import annotations

from typing import Sequence

from medquery.core.query.models import CountResult, Query
from medquery.core.query.processors.base import QueryProcessor
from medquery.domains.devicedata.models import DeviceDataAsset


class CountProcessor(QueryProcessor):
    """Counts records; the target field and encryption are irrelevant."""

    def process(self, query: Query, assets: Sequence[DeviceDataAsset]) -> CountResult:
        return CountResult(len(assets))
