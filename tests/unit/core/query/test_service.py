"""Tests for QueryService validation, dispatch and differential privacy."""

from __future__ import annotations

import pytest

from medquery.core.config.platform import ConfigKey, PlatformConfig
from medquery.core.config.settings import Settings
from medquery.core.errors import ConfigurationError, QueryValidationError
from medquery.core.privacy.noise import LaplaceMechanism
from medquery.core.query.models import (
    AverageResult,
    CountResult,
    EnumFilter,
    Filter,
    GroupedCountResult,
    IntegerFilter,
    IntegerOperator,
    LinearRegressionResult,
    Query,
    QueryType,
    StringFilter,
    StringOperator,
    SumResult,
)
from medquery.core.query.service import QueryService, create_query_service


@pytest.fixture
def config() -> PlatformConfig:
    return PlatformConfig.defaults()


@pytest.fixture
def service(config) -> QueryService:
    return QueryService(config)


@pytest.fixture
def usage_assets(asset_factory):
    return [asset_factory(usage_hours=v, manufacturer="Philips") for v in (10, 20, 30)]


class TestValidation:
    def test_valid_query(self, service):
        assert service.validate_query(Query(QueryType.SUM, "usage_hours")) is None

    def test_unknown_target(self, service):
        error = service.validate_query(Query(QueryType.COUNT, "colour"))
        assert isinstance(error, QueryValidationError)
        assert "unknown target field" in error.details

    def test_disallowed_target(self, service):
        error = service.validate_query(Query(QueryType.SUM, "battery_level"))
        assert "not allowed for SUM" in error.details

    def test_target_used_as_filter(self, service):
        query = Query(
            QueryType.SUM,
            "usage_hours",
            (Filter("usage_hours", IntegerFilter(IntegerOperator.LESS_THAN, 5)),),
        )
        assert "cannot be used as a filter" in service.validate_query(query).details

    def test_unknown_filter_field(self, service):
        query = Query(QueryType.SUM, "usage_hours", (Filter("colour", EnumFilter("RED")),))
        assert "unknown filter field" in service.validate_query(query).details

    def test_comparator_type_mismatch(self, service):
        query = Query(
            QueryType.SUM,
            "usage_hours",
            (Filter("battery_level", StringFilter(StringOperator.EQUALS, "x")),),
        )
        assert "does not match integer field" in service.validate_query(query).details

    def test_invalid_enum_value(self, service):
        query = Query(QueryType.SUM, "usage_hours", (Filter("category", EnumFilter("TOASTER")),))
        assert "not a valid value" in service.validate_query(query).details

    def test_missing_comparator(self, service):
        query = Query(QueryType.SUM, "usage_hours", (Filter("battery_level", None),))
        assert "no comparator" in service.validate_query(query).details

    @pytest.mark.parametrize("bin_size", [0, -5])
    def test_non_positive_bin_size(self, service, bin_size):
        error = service.validate_query(Query(QueryType.HISTOGRAM, "battery_level", bin_size=bin_size))
        assert "bin size" in error.details

    def test_run_raises_rejection(self, service):
        with pytest.raises(QueryValidationError) as excinfo:
            service.run(Query(QueryType.SUM, "hospital"), [])
        assert excinfo.value.as_dict()["error"] == "invalid_query"


class TestDispatchWithoutNoise:
    def test_end_to_end_scenario(self, service, usage_assets):
        assert service.run(Query(QueryType.SUM, "usage_hours"), usage_assets) == SumResult(60)
        assert service.run(Query(QueryType.AVERAGE, "usage_hours"), usage_assets) == AverageResult(20.0)
        assert service.run(Query(QueryType.COUNT, "manufacturer"), usage_assets) == CountResult(3)
        std = service.run(Query(QueryType.STD, "usage_hours"), usage_assets)
        assert std.mean == pytest.approx(20.0)
        assert std.std == pytest.approx(66.6667 ** 0.5, rel=1e-4)

    def test_unique_and_grouped(self, service, usage_assets):
        assert service.run(Query(QueryType.UNIQUE_COUNT, "manufacturer"), usage_assets) == CountResult(1)
        assert service.run(Query(QueryType.GROUPED_COUNT, "manufacturer"), usage_assets) == GroupedCountResult(
            {"Philips": 3}
        )


class TestNoise:
    @pytest.fixture
    def noisy(self, config, fake_service) -> QueryService:
        return QueryService(config, fake_service, noise=LaplaceMechanism(epsilon=0.5, seed=11))

    def test_count_of_empty_is_non_negative(self, config):
        for seed in range(30):
            noisy = QueryService(config, noise=LaplaceMechanism(epsilon=0.1, seed=seed))
            assert noisy.count(Query(QueryType.COUNT, "hospital"), []).count >= 0

    def test_noise_is_reproducible_with_seed(self, config, usage_assets):
        first = QueryService(config, noise=LaplaceMechanism(epsilon=1.0, seed=5))
        second = QueryService(config, noise=LaplaceMechanism(epsilon=1.0, seed=5))
        query = Query(QueryType.SUM, "usage_hours")
        assert first.run(query, usage_assets) == second.run(query, usage_assets)

    def test_buckets_are_non_negative(self, noisy, asset_factory):
        assets = [asset_factory(battery_level=v) for v in (1, 2, 50)]
        result = noisy.run(Query(QueryType.HISTOGRAM, "battery_level", bin_size=10), assets)
        assert set(result.counts) == {"1-10", "41-50"}
        assert all(v >= 0 for v in result.counts.values())

    def test_regression_is_never_noised(self, config, asset_factory):
        config = config.with_overrides({ConfigKey.QUERY_INTERFACE_LINEAR_REGRESSION_FIELDS_Y: "usage_hours"})
        noisy = QueryService(config, noise=LaplaceMechanism(epsilon=0.01, seed=1))
        assets = [asset_factory(timestamp=i, usage_hours=3 * i) for i in range(4)]
        result = noisy.run(Query(QueryType.LINEAR_REGRESSION, "usage_hours"), assets)
        assert result == LinearRegressionResult(3.0, 0.0, 1.0)

    def test_std_pair_is_noised(self, config, usage_assets):
        noisy = QueryService(config, noise=LaplaceMechanism(epsilon=1.0, seed=2))
        result = noisy.run(Query(QueryType.STD, "usage_hours"), usage_assets)
        assert result.mean != 20.0


class TestCreateQueryService:
    def test_defaults(self, config):
        service = create_query_service(config, Settings(_env_file=None, dp_noise_seed=3))
        assert service.encryption_service is None
        assert isinstance(service.noise, LaplaceMechanism)

    def test_bad_epsilon_fails_eagerly(self, config):
        bad = config.with_overrides({ConfigKey.QUERY_DIFFERENTIAL_PRIVACY_LAPLACE_EPSILON: "abc"})
        with pytest.raises(ConfigurationError):
            create_query_service(bad, Settings(_env_file=None))
