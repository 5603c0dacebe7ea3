"""Platform configuration table.

The ledger stores platform configuration as a flat key/value table. The
engine reads it once per ``QueryService`` and never mutates it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping

import yaml

from medquery.core.errors import ConfigurationError
from medquery.core.query.models import QueryType

logger = logging.getLogger(__name__)


class ConfigKey(str, Enum):
    QUERY_INTERFACE_COUNT_FIELDS = "query.interface.count.fields"
    QUERY_INTERFACE_GROUPED_COUNT_FIELDS = "query.interface.grouped_count.fields"
    QUERY_INTERFACE_AVERAGE_FIELDS = "query.interface.average.fields"
    QUERY_INTERFACE_SUM_FIELDS = "query.interface.sum.fields"
    QUERY_INTERFACE_UNIQUE_COUNT_FIELDS = "query.interface.unique_count.fields"
    QUERY_INTERFACE_HISTOGRAM_FIELDS = "query.interface.histogram.fields"
    QUERY_INTERFACE_STD_FIELDS = "query.interface.std.fields"
    QUERY_INTERFACE_LINEAR_REGRESSION_FIELDS_X = "query.interface.linear_regression.fields_x"
    QUERY_INTERFACE_LINEAR_REGRESSION_FIELDS_Y = "query.interface.linear_regression.fields_y"

    QUERY_ENCRYPTION_SCHEME = "query.encryption.scheme"
    QUERY_ENCRYPTION_TTP_ADDRESS = "query.encryption.ttp_address"
    QUERY_ENCRYPTION_PAILLIER_BIT_LENGTH = "query.encryption.paillier.bit_length"

    QUERY_DIFFERENTIAL_PRIVACY = "query.differential_privacy"
    QUERY_DIFFERENTIAL_PRIVACY_LAPLACE_EPSILON = "query.differential_privacy.laplace.epsilon"


_FIELDS_BY_QUERY_TYPE: dict[QueryType, tuple[ConfigKey, ...]] = {
    QueryType.COUNT: (ConfigKey.QUERY_INTERFACE_COUNT_FIELDS,),
    QueryType.GROUPED_COUNT: (ConfigKey.QUERY_INTERFACE_GROUPED_COUNT_FIELDS,),
    QueryType.AVERAGE: (ConfigKey.QUERY_INTERFACE_AVERAGE_FIELDS,),
    QueryType.SUM: (ConfigKey.QUERY_INTERFACE_SUM_FIELDS,),
    QueryType.UNIQUE_COUNT: (ConfigKey.QUERY_INTERFACE_UNIQUE_COUNT_FIELDS,),
    QueryType.HISTOGRAM: (ConfigKey.QUERY_INTERFACE_HISTOGRAM_FIELDS,),
    QueryType.STD: (ConfigKey.QUERY_INTERFACE_STD_FIELDS,),
    QueryType.LINEAR_REGRESSION: (
        ConfigKey.QUERY_INTERFACE_LINEAR_REGRESSION_FIELDS_X,
        ConfigKey.QUERY_INTERFACE_LINEAR_REGRESSION_FIELDS_Y,
    ),
}

DEFAULT_TTP_ADDRESS = "ttp.medtechchain.nl:6000"
DEFAULT_PAILLIER_BIT_LENGTH = 2048

_DEFAULTS: dict[ConfigKey, str] = {
    ConfigKey.QUERY_INTERFACE_COUNT_FIELDS: (
        "udi,hospital,manufacturer,model,firmware_version,device_type,category,speciality"
    ),
    ConfigKey.QUERY_INTERFACE_GROUPED_COUNT_FIELDS: (
        "hospital,manufacturer,model,device_type,category,speciality"
    ),
    ConfigKey.QUERY_INTERFACE_AVERAGE_FIELDS: "production_date,warranty_expiry_date,usage_hours",
    ConfigKey.QUERY_INTERFACE_SUM_FIELDS: "usage_hours",
    ConfigKey.QUERY_INTERFACE_UNIQUE_COUNT_FIELDS: (
        "hospital,manufacturer,model,firmware_version,device_type,category,speciality"
    ),
    ConfigKey.QUERY_INTERFACE_HISTOGRAM_FIELDS: (
        "usage_hours,battery_level, production_date, last_service_date,warranty_expiry_date"
    ),
    ConfigKey.QUERY_INTERFACE_STD_FIELDS: "usage_hours,battery_level",
    ConfigKey.QUERY_INTERFACE_LINEAR_REGRESSION_FIELDS_Y: "usage_hours,battery_level",
    ConfigKey.QUERY_DIFFERENTIAL_PRIVACY: "laplace",
    ConfigKey.QUERY_DIFFERENTIAL_PRIVACY_LAPLACE_EPSILON: "1",
    ConfigKey.QUERY_ENCRYPTION_PAILLIER_BIT_LENGTH: str(DEFAULT_PAILLIER_BIT_LENGTH),
    ConfigKey.QUERY_ENCRYPTION_TTP_ADDRESS: DEFAULT_TTP_ADDRESS,
    ConfigKey.QUERY_ENCRYPTION_SCHEME: "none",
}


@dataclass(frozen=True)
class PlatformConfig:
    """Read-only view over the platform key/value table.

    Usage::

        config = PlatformConfig.defaults().with_overrides(
            {ConfigKey.QUERY_ENCRYPTION_SCHEME: "paillier"}
        )
        config.allowed_fields(QueryType.SUM)  # ["usage_hours"]
    """

    entries: Mapping[ConfigKey, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "entries", MappingProxyType(dict(self.entries)))

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def defaults(cls) -> PlatformConfig:
        return cls(_DEFAULTS)

    @classmethod
    def from_mapping(
        cls,
        raw: Mapping[str, Any],
        *,
        base: PlatformConfig | None = None,
    ) -> PlatformConfig:
        """Build a config from string keys, layered over ``base`` (or empty)."""
        entries = dict(base.entries) if base is not None else {}
        for key, value in raw.items():
            try:
                config_key = ConfigKey(key)
            except ValueError:
                raise ConfigurationError(f"Unknown platform config key: {key!r}") from None
            entries[config_key] = _stringify(value)
        return cls(entries)

    @classmethod
    def from_yaml(cls, path: str | Path) -> PlatformConfig:
        """Load a YAML mapping of config keys, merged over the defaults."""
        path = Path(path).expanduser()
        try:
            raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        except (OSError, yaml.YAMLError) as exc:
            raise ConfigurationError(f"Cannot read platform config {path}: {exc}") from exc
        if not isinstance(raw, dict):
            raise ConfigurationError(f"Platform config {path} must be a mapping")
        logger.info("Loaded %d platform config entries from %s", len(raw), path)
        return cls.from_mapping(raw, base=cls.defaults())

    def with_overrides(self, overrides: Mapping[ConfigKey | str, Any]) -> PlatformConfig:
        return PlatformConfig.from_mapping(
            {ConfigKey(k).value: v for k, v in overrides.items()}, base=self
        )

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def get(self, key: ConfigKey) -> str | None:
        value = self.entries.get(key)
        if value is None or not value.strip():
            return None
        return value.strip()

    def get_required(self, key: ConfigKey) -> str:
        value = self.get(key)
        if value is None:
            raise ConfigurationError(f"Missing platform config entry: {key.value}")
        return value

    def allowed_fields(self, query_type: QueryType) -> list[str]:
        """Field names a query type may target, in configuration order."""
        names: list[str] = []
        for key in _FIELDS_BY_QUERY_TYPE[query_type]:
            for name in (self.get(key) or "").split(","):
                name = name.strip()
                if name and name not in names:
                    names.append(name)
        return names


def _stringify(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple)):
        return ",".join(str(v) for v in value)
    return "" if value is None else str(value)
