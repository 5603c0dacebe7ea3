"""Query service: validation, dispatch to processors and differential privacy."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Sequence

from medquery.core.config.platform import PlatformConfig
from medquery.core.encryption.service import EncryptionService, create_encryption_service
from medquery.core.errors import QueryValidationError
from medquery.core.privacy.noise import LaplaceMechanism, create_noise_mechanism
from medquery.core.query.models import (
    AverageResult,
    BoolFilter,
    CountResult,
    EnumFilter,
    GroupedCountResult,
    IntegerFilter,
    LinearRegressionResult,
    MeanAndStd,
    Query,
    QueryResult,
    QueryType,
    StringFilter,
    SumResult,
    TimestampFilter,
)
from medquery.core.query.processors.average import AverageProcessor
from medquery.core.query.processors.base import QueryProcessor
from medquery.core.query.processors.count import CountProcessor
from medquery.core.query.processors.grouped_count import GroupedCountProcessor
from medquery.core.query.processors.histogram import HistogramProcessor
from medquery.core.query.processors.linear_regression import LinearRegressionProcessor
from medquery.core.query.processors.std import StdProcessor
from medquery.core.query.processors.sum import SumProcessor
from medquery.core.query.processors.unique_count import UniqueCountProcessor
from medquery.core.solver.categorical import CategoricalReconstructionSolver
from medquery.domains.devicedata.models import FIELD_KINDS, FieldKind, enum_type

if TYPE_CHECKING:
    from medquery.core.config.settings import Settings

logger = logging.getLogger(__name__)

_COMPARATOR_KINDS: dict[type, frozenset[FieldKind]] = {
    StringFilter: frozenset({FieldKind.STRING}),
    IntegerFilter: frozenset({FieldKind.INTEGER}),
    TimestampFilter: frozenset({FieldKind.TIMESTAMP}),
    BoolFilter: frozenset({FieldKind.BOOL}),
    EnumFilter: frozenset({FieldKind.DEVICE_CATEGORY, FieldKind.MEDICAL_SPECIALITY}),
}


class QueryService:
    """Runs validated queries over already-fetched records.

    Usage::

        service = QueryService(PlatformConfig.defaults(), encryption_service=None)
        service.run(Query(QueryType.SUM, "usage_hours"), assets)

    The service holds no per-query state. Concurrent calls are safe as long
    as the encryption service is.
    """

    def __init__(
        self,
        platform_config: PlatformConfig,
        encryption_service: EncryptionService | None = None,
        noise: LaplaceMechanism | None = None,
        solver: CategoricalReconstructionSolver | None = None,
    ) -> None:
        self.platform_config = platform_config
        self.encryption_service = encryption_service
        self.noise = noise

        self._processors: dict[QueryType, QueryProcessor] = {
            QueryType.COUNT: CountProcessor(encryption_service),
            QueryType.SUM: SumProcessor(encryption_service),
            QueryType.AVERAGE: AverageProcessor(encryption_service),
            QueryType.GROUPED_COUNT: GroupedCountProcessor(encryption_service, solver),
            QueryType.UNIQUE_COUNT: UniqueCountProcessor(encryption_service),
            QueryType.HISTOGRAM: HistogramProcessor(encryption_service),
            QueryType.STD: StdProcessor(encryption_service),
            QueryType.LINEAR_REGRESSION: LinearRegressionProcessor(encryption_service),
        }

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validate_query(self, query: Query) -> QueryValidationError | None:
        """Return the reason ``query`` is rejected, or ``None`` if it is valid."""
        target = query.target_field
        allowed = self.platform_config.allowed_fields(query.query_type)

        if target not in FIELD_KINDS:
            return QueryValidationError(f"unknown target field {target!r}")
        if target not in allowed:
            return QueryValidationError(
                f"target field {target!r} is not allowed for {query.query_type.value}"
            )

        if query.query_type == QueryType.HISTOGRAM and query.bin_size <= 0:
            return QueryValidationError("histogram bin size must be positive")

        for query_filter in query.filters:
            name = query_filter.field
            if name == target:
                return QueryValidationError(f"target field {target!r} cannot be used as a filter")
            if name not in FIELD_KINDS:
                return QueryValidationError(f"unknown filter field {name!r}")
            comparator = query_filter.comparator
            if comparator is None:
                return QueryValidationError(f"filter on {name!r} has no comparator")
            kind = FIELD_KINDS[name]
            if kind not in _COMPARATOR_KINDS[type(comparator)]:
                return QueryValidationError(
                    f"{type(comparator).__name__} does not match {kind.value} field {name!r}"
                )
            if isinstance(comparator, EnumFilter) and comparator.value not in enum_type(kind).__members__:
                return QueryValidationError(
                    f"{comparator.value!r} is not a valid value for {name!r}"
                )
        return None

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def run(self, query: Query, assets: Sequence) -> QueryResult:
        """Validate ``query`` and compute its (noised) result.

        Raises:
            QueryValidationError: The query was rejected.
        """
        error = self.validate_query(query)
        if error is not None:
            logger.info("Rejected %s query: %s", query.query_type.value, error.details)
            raise error

        handlers = {
            QueryType.COUNT: self.count,
            QueryType.SUM: self.sum,
            QueryType.AVERAGE: self.average,
            QueryType.GROUPED_COUNT: self.grouped_count,
            QueryType.UNIQUE_COUNT: self.unique_count,
            QueryType.HISTOGRAM: self.histogram,
            QueryType.STD: self.std,
            QueryType.LINEAR_REGRESSION: self.linear_regression,
        }
        result = handlers[query.query_type](query, assets)
        logger.info(
            "%s on %s over %d records",
            query.query_type.value,
            query.target_field,
            len(assets),
        )
        return result

    def count(self, query: Query, assets: Sequence) -> CountResult:
        result = self._processors[QueryType.COUNT].process(query, assets)
        if self.noise is None:
            return result
        return CountResult(self.noise.noisy_count(result.count))

    def sum(self, query: Query, assets: Sequence) -> SumResult:
        result = self._processors[QueryType.SUM].process(query, assets)
        if self.noise is None:
            return result
        return SumResult(self.noise.noisy_int(result.value))

    def average(self, query: Query, assets: Sequence) -> AverageResult:
        result = self._processors[QueryType.AVERAGE].process(query, assets)
        if self.noise is None:
            return result
        return AverageResult(self.noise.add_noise(result.value))

    def grouped_count(self, query: Query, assets: Sequence) -> GroupedCountResult:
        return self._noisy_buckets(self._processors[QueryType.GROUPED_COUNT].process(query, assets))

    def unique_count(self, query: Query, assets: Sequence) -> CountResult:
        result = self._processors[QueryType.UNIQUE_COUNT].process(query, assets)
        if self.noise is None:
            return result
        return CountResult(self.noise.noisy_count(result.count))

    def histogram(self, query: Query, assets: Sequence) -> GroupedCountResult:
        return self._noisy_buckets(self._processors[QueryType.HISTOGRAM].process(query, assets))

    def std(self, query: Query, assets: Sequence) -> MeanAndStd:
        result = self._processors[QueryType.STD].process(query, assets)
        if self.noise is None:
            return result
        return MeanAndStd(self.noise.add_noise(result.mean), self.noise.add_noise(result.std))

    def linear_regression(self, query: Query, assets: Sequence) -> LinearRegressionResult:
        return self._processors[QueryType.LINEAR_REGRESSION].process(query, assets)

    def _noisy_buckets(self, result: GroupedCountResult) -> GroupedCountResult:
        if self.noise is None:
            return result
        return GroupedCountResult(self.noise.noisy_counts(result.counts))


def create_query_service(
    platform_config: PlatformConfig,
    settings: Settings | None = None,
) -> QueryService:
    """Build a QueryService with the scheme and noise the platform config selects.

    Raises:
        ConfigurationError: Unknown scheme or mechanism, or a bad epsilon.
    """
    if settings is None:
        from medquery.core.config.settings import get_settings

        settings = get_settings()

    return QueryService(
        platform_config,
        encryption_service=create_encryption_service(platform_config, settings),
        noise=create_noise_mechanism(platform_config, seed=settings.dp_noise_seed),
    )
