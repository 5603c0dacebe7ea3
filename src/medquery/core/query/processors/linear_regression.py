"""LINEAR_REGRESSION of a numeric field against the record timestamp."""

from __future__ import annotations

import logging
from typing import Sequence

from medquery.core.query.models import LinearRegressionResult, Query
from medquery.core.query.processors.base import (
    NUMERIC_KINDS,
    QueryProcessor,
    group_by_version,
    require_kind,
)
from medquery.domains.devicedata.models import DeviceDataAsset

logger = logging.getLogger(__name__)


class LinearRegressionProcessor(QueryProcessor):
    """Ordinary least squares per key version, combined by point count.

    x is the record event timestamp in seconds and y the decoded target
    value. Version groups with fewer than two points are skipped.
    """

    def process(self, query: Query, assets: Sequence[DeviceDataAsset]) -> LinearRegressionResult:
        require_kind(query, query.target_field, NUMERIC_KINDS)

        slope = intercept = r_squared = 0.0
        total_points = 0
        for version, group in group_by_version(assets).items():
            points = []
            for asset in group:
                y = self.decode_numeric(asset, query.target_field)
                if y is not None:
                    points.append((float(asset.timestamp_seconds), float(y)))
            if len(points) < 2:
                logger.debug("Skipping version %s with %d points", version, len(points))
                continue

            fit = fit_line(points)
            weight = len(points)
            slope += fit.slope * weight
            intercept += fit.intercept * weight
            r_squared += fit.r_squared * weight
            total_points += weight

        if total_points == 0:
            return LinearRegressionResult(0.0, 0.0, 0.0)
        return LinearRegressionResult(
            slope / total_points,
            intercept / total_points,
            r_squared / total_points,
        )


def fit_line(points: Sequence[tuple[float, float]]) -> LinearRegressionResult:
    n = len(points)
    mean_x = sum(x for x, _ in points) / n
    mean_y = sum(y for _, y in points) / n

    sxx = sum((x - mean_x) ** 2 for x, _ in points)
    sxy = sum((x - mean_x) * (y - mean_y) for x, y in points)
    slope = sxy / sxx if sxx else 0.0
    intercept = mean_y - slope * mean_x

    ss_total = sum((y - mean_y) ** 2 for _, y in points)
    ss_residual = sum((y - (slope * x + intercept)) ** 2 for x, y in points)
    r_squared = 1.0 - ss_residual / ss_total if ss_total else 0.0
    return LinearRegressionResult(slope, intercept, r_squared)
