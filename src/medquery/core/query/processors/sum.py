"""SUM over an integer field."""

from __future__ import annotations

import logging
from typing import Sequence

from medquery.core.query.models import Query, SumResult
from medquery.core.query.processors.base import QueryProcessor, require_kind
from medquery.domains.devicedata.models import DeviceDataAsset, FieldKind

logger = logging.getLogger(__name__)

_SUMMABLE = frozenset({FieldKind.INTEGER})


class SumProcessor(QueryProcessor):
    def process(self, query: Query, assets: Sequence[DeviceDataAsset]) -> SumResult:
        require_kind(query, query.target_field, _SUMMABLE)
        total, count = self.batched_sum(assets, query.target_field)
        logger.debug("Sum of %s over %d values: %d", query.target_field, count, total)
        return SumResult(total)
