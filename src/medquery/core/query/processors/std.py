"""STD: population mean and standard deviation of a numeric field."""

from __future__ import annotations

import logging
import math
from typing import Sequence

from medquery.core.query.models import MeanAndStd, Query
from medquery.core.query.processors.base import NUMERIC_KINDS, QueryProcessor, require_kind
from medquery.domains.devicedata.models import DeviceDataAsset

logger = logging.getLogger(__name__)


class StdProcessor(QueryProcessor):
    """Two passes: a batched sum for the mean, then individual decryption.

    The squared deviations need each value, and no scheme here offers
    ciphertext multiplication, so the second pass decrypts record by record.
    """

    def process(self, query: Query, assets: Sequence[DeviceDataAsset]) -> MeanAndStd:
        require_kind(query, query.target_field, NUMERIC_KINDS)
        total, count = self.batched_sum(assets, query.target_field)
        if count == 0:
            return MeanAndStd(0.0, 0.0)
        mean = total / count

        squared = 0.0
        for asset in assets:
            value = self.decode_numeric(asset, query.target_field)
            if value is not None:
                squared += (value - mean) ** 2

        logger.debug("STD of %s over %d values", query.target_field, count)
        return MeanAndStd(mean, math.sqrt(squared / count))
