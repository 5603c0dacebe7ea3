"""Device telemetry record model.

Every sensitive field is a tagged value: ``Plain`` (stored in the clear),
``Encrypted`` (ciphertext produced under the record's ``key_version``) or
``UNSET`` (skipped by every aggregate). A record carries exactly one key
version; all of its encrypted fields were produced under that key.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum, IntEnum
from typing import Any, Union


# ---------------------------------------------------------------------------
# Field values
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Plain:
    """A field value stored in plaintext."""

    value: Any


@dataclass(frozen=True)
class Encrypted:
    """A field value stored as an opaque ciphertext string."""

    ciphertext: str


@dataclass(frozen=True)
class Unset:
    """Marker for a field that carries no value."""

    def __repr__(self) -> str:
        return "UNSET"


UNSET = Unset()

FieldValue = Union[Plain, Encrypted, Unset]


# ---------------------------------------------------------------------------
# Domain enumerations
# ---------------------------------------------------------------------------

class FieldKind(str, Enum):
    STRING = "string"
    INTEGER = "integer"
    TIMESTAMP = "timestamp"
    BOOL = "bool"
    DEVICE_CATEGORY = "device_category"
    MEDICAL_SPECIALITY = "medical_speciality"

    @property
    def is_numeric(self) -> bool:
        return self in (FieldKind.INTEGER, FieldKind.TIMESTAMP)

    @property
    def is_categorical(self) -> bool:
        return self in (
            FieldKind.BOOL,
            FieldKind.DEVICE_CATEGORY,
            FieldKind.MEDICAL_SPECIALITY,
        )


class DeviceCategory(IntEnum):
    DEVICE_CATEGORY_UNSPECIFIED = 0
    PORTABLE = 1
    WEARABLE = 2
    IMPLANTABLE = 3
    STATIONARY = 4


class MedicalSpeciality(IntEnum):
    MEDICAL_SPECIALITY_UNSPECIFIED = 0
    CARDIOLOGY = 1
    DIAGNOSTIC_RADIOLOGY = 2
    NEUROLOGY = 3
    ONCOLOGY = 4
    ORTHOPEDICS = 5
    PULMONOLOGY = 6


_ENUM_TYPES: dict[FieldKind, type[IntEnum]] = {
    FieldKind.DEVICE_CATEGORY: DeviceCategory,
    FieldKind.MEDICAL_SPECIALITY: MedicalSpeciality,
}


def enum_type(kind: FieldKind) -> type[IntEnum]:
    """Return the IntEnum backing an enum-valued field kind."""
    try:
        return _ENUM_TYPES[kind]
    except KeyError:
        raise ValueError(f"{kind.value} is not an enum field kind") from None


def categorical_domain(kind: FieldKind) -> list[tuple[str, int]]:
    """Return the closed ``(label, code)`` domain of a bounded field kind.

    Labels match the grouping keys produced for plaintext values, so solver
    output can be merged straight into a bucket map. Enum domains include
    the unspecified code 0, which decrypts to a real bucket.
    """
    if kind == FieldKind.BOOL:
        return [("false", 0), ("true", 1)]
    return [(m.name, int(m)) for m in enum_type(kind)]


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class DeviceData:
    """Named sensitive fields of a single device telemetry record."""

    udi: FieldValue = UNSET
    hospital: FieldValue = UNSET
    manufacturer: FieldValue = UNSET
    model: FieldValue = UNSET
    firmware_version: FieldValue = UNSET
    device_type: FieldValue = UNSET
    production_date: FieldValue = UNSET
    last_service_date: FieldValue = UNSET
    warranty_expiry_date: FieldValue = UNSET
    last_sync_time: FieldValue = UNSET
    usage_hours: FieldValue = UNSET
    battery_level: FieldValue = UNSET
    sync_frequency_seconds: FieldValue = UNSET
    active_status: FieldValue = UNSET
    speciality: FieldValue = UNSET
    category: FieldValue = UNSET


FIELD_KINDS: dict[str, FieldKind] = {
    "udi": FieldKind.STRING,
    "hospital": FieldKind.STRING,
    "manufacturer": FieldKind.STRING,
    "model": FieldKind.STRING,
    "firmware_version": FieldKind.STRING,
    "device_type": FieldKind.STRING,
    "production_date": FieldKind.TIMESTAMP,
    "last_service_date": FieldKind.TIMESTAMP,
    "warranty_expiry_date": FieldKind.TIMESTAMP,
    "last_sync_time": FieldKind.TIMESTAMP,
    "usage_hours": FieldKind.INTEGER,
    "battery_level": FieldKind.INTEGER,
    "sync_frequency_seconds": FieldKind.INTEGER,
    "active_status": FieldKind.BOOL,
    "speciality": FieldKind.MEDICAL_SPECIALITY,
    "category": FieldKind.DEVICE_CATEGORY,
}


def field_kind(name: str) -> FieldKind:
    """Look up the declared kind of a field; raises KeyError for unknown names."""
    return FIELD_KINDS[name]


def get_field(data: DeviceData, name: str) -> FieldValue:
    """Resolve a field by name through the registry."""
    if name not in FIELD_KINDS:
        raise KeyError(f"Unknown device data field: {name!r}")
    return getattr(data, name)


@dataclass(frozen=True)
class DeviceDataAsset:
    """One immutable telemetry record as supplied by the ledger."""

    device_data: DeviceData
    timestamp: datetime
    key_version: str = ""

    @property
    def timestamp_seconds(self) -> int:
        return to_epoch_seconds(self.timestamp)

    def field(self, name: str) -> FieldValue:
        return get_field(self.device_data, name)

    # ------------------------------------------------------------------
    # JSON shapes
    # ------------------------------------------------------------------

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DeviceDataAsset:
        """Parse the JSON shape used by record files and the query server.

        Each entry of ``device_data`` is ``{"plain": value}``,
        ``{"encrypted": "<ciphertext>"}`` or absent.
        """
        raw_fields = data.get("device_data", {}) or {}
        unknown = set(raw_fields) - set(FIELD_KINDS)
        if unknown:
            raise ValueError(f"Unknown device data fields: {sorted(unknown)}")

        values = {
            name: _parse_field(FIELD_KINDS[name], raw)
            for name, raw in raw_fields.items()
        }
        return cls(
            device_data=DeviceData(**values),
            timestamp=parse_timestamp(data.get("timestamp", 0)),
            key_version=data.get("key_version", "") or "",
        )

    def to_dict(self) -> dict[str, Any]:
        device_data: dict[str, Any] = {}
        for name, kind in FIELD_KINDS.items():
            value = getattr(self.device_data, name)
            if isinstance(value, Encrypted):
                device_data[name] = {"encrypted": value.ciphertext}
            elif isinstance(value, Plain):
                device_data[name] = {"plain": _plain_to_json(kind, value.value)}
        return {
            "device_data": device_data,
            "timestamp": self.timestamp.isoformat(),
            "key_version": self.key_version,
        }


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def to_epoch_seconds(value: datetime | int) -> int:
    """Convert a timestamp to whole seconds since the epoch."""
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return int(value.timestamp())
    return int(value)


def parse_timestamp(value: Any) -> datetime:
    """Accept ISO 8601 strings, epoch seconds or datetimes."""
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(int(value), tz=timezone.utc)
    if isinstance(value, str):
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    raise ValueError(f"Unsupported timestamp value: {value!r}")


def _parse_field(kind: FieldKind, raw: Any) -> FieldValue:
    if raw is None:
        return UNSET
    if not isinstance(raw, dict):
        raise ValueError(f"Field value must be an object, got {type(raw).__name__}")
    if "encrypted" in raw:
        return Encrypted(str(raw["encrypted"]))
    if "plain" not in raw:
        return UNSET

    value = raw["plain"]
    if kind == FieldKind.STRING:
        return Plain(str(value))
    if kind == FieldKind.INTEGER:
        return Plain(int(value))
    if kind == FieldKind.TIMESTAMP:
        return Plain(parse_timestamp(value))
    if kind == FieldKind.BOOL:
        if not isinstance(value, bool):
            raise ValueError(f"Boolean field expects true/false, got {value!r}")
        return Plain(value)
    members = enum_type(kind)
    return Plain(members[value] if isinstance(value, str) else members(int(value)))


def _plain_to_json(kind: FieldKind, value: Any) -> Any:
    if kind == FieldKind.TIMESTAMP:
        return parse_timestamp(value).isoformat()
    if kind in (FieldKind.DEVICE_CATEGORY, FieldKind.MEDICAL_SPECIALITY):
        return value.name
    return value
