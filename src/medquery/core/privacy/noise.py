"""Differential privacy noise for released aggregates."""

from __future__ import annotations

import logging
import math
from enum import Enum

import numpy as np

from medquery.core.config.platform import ConfigKey, PlatformConfig
from medquery.core.errors import ConfigurationError

logger = logging.getLogger(__name__)


class NoiseMechanismKind(str, Enum):
    NONE = "none"
    LAPLACE = "laplace"


class LaplaceMechanism:
    """Laplace noise with scale ``sensitivity / epsilon``.

    Usage::

        mechanism = LaplaceMechanism(epsilon=1.0, seed=7)
        mechanism.noisy_count(0)  # always >= 0
    """

    def __init__(self, epsilon: float, sensitivity: float = 1.0, seed: int | None = None) -> None:
        if not math.isfinite(epsilon) or epsilon <= 0:
            raise ValueError(f"epsilon must be positive, got {epsilon}")
        self.epsilon = epsilon
        self.sensitivity = sensitivity
        self._rng = np.random.default_rng(seed)

    @property
    def scale(self) -> float:
        return self.sensitivity / self.epsilon

    def noise(self) -> float:
        return float(self._rng.laplace(0.0, self.scale))

    def add_noise(self, value: float) -> float:
        return value + self.noise()

    def noisy_int(self, value: int) -> int:
        return int(round(self.add_noise(value)))

    def noisy_count(self, value: int) -> int:
        """Noised count clamped to non-negative by absolute value."""
        return abs(self.noisy_int(value))

    def noisy_counts(self, counts: dict[str, int]) -> dict[str, int]:
        return {key: self.noisy_count(value) for key, value in counts.items()}


def create_noise_mechanism(
    platform_config: PlatformConfig,
    seed: int | None = None,
) -> LaplaceMechanism | None:
    """Build the configured mechanism, or ``None`` when noise is disabled.

    Raises:
        ConfigurationError: Unknown mechanism, or a missing/unparseable epsilon.
    """
    raw = platform_config.get(ConfigKey.QUERY_DIFFERENTIAL_PRIVACY)
    try:
        kind = NoiseMechanismKind((raw or "none").lower())
    except ValueError:
        raise ConfigurationError(f"Unknown differential privacy mechanism: {raw!r}") from None

    if kind == NoiseMechanismKind.NONE:
        return None

    raw_epsilon = platform_config.get(ConfigKey.QUERY_DIFFERENTIAL_PRIVACY_LAPLACE_EPSILON)
    if raw_epsilon is None:
        raise ConfigurationError("Laplace mechanism selected but no epsilon configured")
    try:
        epsilon = float(raw_epsilon)
        mechanism = LaplaceMechanism(epsilon, seed=seed)
    except ValueError as exc:
        raise ConfigurationError(f"Invalid Laplace epsilon {raw_epsilon!r}: {exc}") from exc
    logger.info("Laplace mechanism enabled (epsilon=%s)", epsilon)
    return mechanism
