"""Tests for the Laplace mechanism and its configuration."""

from __future__ import annotations

import pytest

from medquery.core.config.platform import ConfigKey, PlatformConfig
from medquery.core.errors import ConfigurationError
from medquery.core.privacy.noise import LaplaceMechanism, create_noise_mechanism


class TestLaplaceMechanism:
    def test_scale_is_sensitivity_over_epsilon(self):
        assert LaplaceMechanism(epsilon=0.5).scale == pytest.approx(2.0)

    def test_seeded_noise_is_reproducible(self):
        first = LaplaceMechanism(epsilon=1.0, seed=42)
        second = LaplaceMechanism(epsilon=1.0, seed=42)
        assert [first.noise() for _ in range(5)] == [second.noise() for _ in range(5)]

    def test_noisy_count_of_zero_is_never_negative(self):
        for seed in range(50):
            mechanism = LaplaceMechanism(epsilon=0.1, seed=seed)
            assert all(mechanism.noisy_count(0) >= 0 for _ in range(20))

    def test_noisy_counts_cover_every_bucket(self):
        mechanism = LaplaceMechanism(epsilon=1.0, seed=3)
        noisy = mechanism.noisy_counts({"a": 0, "b": 5})
        assert set(noisy) == {"a", "b"}
        assert all(v >= 0 for v in noisy.values())

    def test_noisy_int_returns_int(self):
        assert isinstance(LaplaceMechanism(epsilon=1.0, seed=1).noisy_int(60), int)

    @pytest.mark.parametrize("epsilon", [0.0, -1.0, float("nan")])
    def test_invalid_epsilon(self, epsilon):
        with pytest.raises(ValueError):
            LaplaceMechanism(epsilon=epsilon)


class TestCreateNoiseMechanism:
    def test_defaults_select_laplace(self):
        mechanism = create_noise_mechanism(PlatformConfig.defaults(), seed=1)
        assert isinstance(mechanism, LaplaceMechanism)
        assert mechanism.epsilon == 1.0

    def test_none_disables_noise(self):
        config = PlatformConfig.defaults().with_overrides(
            {ConfigKey.QUERY_DIFFERENTIAL_PRIVACY: "none"}
        )
        assert create_noise_mechanism(config) is None

    def test_empty_mechanism_disables_noise(self):
        config = PlatformConfig.defaults().with_overrides({ConfigKey.QUERY_DIFFERENTIAL_PRIVACY: ""})
        assert create_noise_mechanism(config) is None

    def test_unknown_mechanism(self):
        config = PlatformConfig.defaults().with_overrides(
            {ConfigKey.QUERY_DIFFERENTIAL_PRIVACY: "gaussian"}
        )
        with pytest.raises(ConfigurationError, match="Unknown differential privacy"):
            create_noise_mechanism(config)

    def test_missing_epsilon(self):
        config = PlatformConfig.defaults().with_overrides(
            {ConfigKey.QUERY_DIFFERENTIAL_PRIVACY_LAPLACE_EPSILON: ""}
        )
        with pytest.raises(ConfigurationError, match="no epsilon"):
            create_noise_mechanism(config)

    def test_unparseable_epsilon(self):
        config = PlatformConfig.defaults().with_overrides(
            {ConfigKey.QUERY_DIFFERENTIAL_PRIVACY_LAPLACE_EPSILON: "one"}
        )
        with pytest.raises(ConfigurationError, match="Invalid Laplace epsilon"):
            create_noise_mechanism(config)
