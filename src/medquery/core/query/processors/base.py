"""Shared decode and version-grouping machinery for query processors.

Every processor receives the encryption service it should use (or ``None``
when no scheme is configured) and reads fields through the helpers below:

* ``Plain`` values are used directly.
* ``Encrypted`` values need a service; without one the query fails with
  ``ConfigurationError``.
* ``Unset`` values are skipped.

Sum-like reductions batch ciphertexts per key version and decrypt the
homomorphic sum once. Anything that needs per-record identity decrypts
each value individually.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime, timezone
from enum import IntEnum
from typing import Any, Iterator, Sequence

from medquery.core.encryption.service import EncryptionService
from medquery.core.errors import ConfigurationError, CryptoBackendError, UnsupportedOperationError
from medquery.core.query.models import Query, QueryResult
from medquery.domains.devicedata.models import (
    DeviceDataAsset,
    Encrypted,
    FieldKind,
    Plain,
    enum_type,
    field_kind,
    to_epoch_seconds,
)

logger = logging.getLogger(__name__)

NUMERIC_KINDS = frozenset({FieldKind.INTEGER, FieldKind.TIMESTAMP})


class FieldDecoder:
    """Reads record fields through an optional encryption service."""

    def __init__(self, encryption_service: EncryptionService | None = None) -> None:
        self.encryption_service = encryption_service

    # ------------------------------------------------------------------
    # Service access
    # ------------------------------------------------------------------

    def require_service(self) -> EncryptionService:
        if self.encryption_service is None:
            raise ConfigurationError(
                "Encrypted data present but no encryption scheme configured"
            )
        return self.encryption_service

    # ------------------------------------------------------------------
    # Decoding
    # ------------------------------------------------------------------

    def decode(self, asset: DeviceDataAsset, field_name: str) -> Any | None:
        """Resolve one field to its Python value, decrypting individually.

        Integers and timestamps come back as ``int`` (timestamps in epoch
        seconds), booleans as ``bool``, enums as their ``IntEnum`` member.
        Returns ``None`` for unset fields.
        """
        kind = field_kind(field_name)
        value = asset.field(field_name)
        if isinstance(value, Plain):
            return _normalise(kind, value.value)
        if isinstance(value, Encrypted):
            return self.decrypt(kind, value.ciphertext, asset.key_version, field_name)
        return None

    def decode_numeric(self, asset: DeviceDataAsset, field_name: str) -> int | None:
        value = self.decode(asset, field_name)
        return None if value is None else int(value)

    def decode_key(self, asset: DeviceDataAsset, field_name: str) -> str | None:
        """Canonical grouping key of a field value."""
        value = self.decode(asset, field_name)
        if value is None:
            return None
        return value_key(field_kind(field_name), value)

    def decrypt(self, kind: FieldKind, ciphertext: str, version: str, field_name: str) -> Any:
        service = self.require_service()
        with backend_context(field_name):
            if kind == FieldKind.STRING:
                return service.decrypt_string(ciphertext, version)
            if kind == FieldKind.BOOL:
                return service.decrypt_bool(ciphertext, version)
            code = service.decrypt_long(ciphertext, version)
        if kind in NUMERIC_KINDS:
            return code
        return enum_type(kind)(code)

    def batched_sum(
        self,
        assets: Sequence[DeviceDataAsset],
        field_name: str,
    ) -> tuple[int, int]:
        """Sum a numeric field across all version groups.

        Returns ``(total, contributing_count)``. Under a homomorphic scheme
        each version group costs one add call and one decrypt call.
        """
        kind = field_kind(field_name)
        total = 0
        count = 0
        for version, group in group_by_version(assets).items():
            ciphertexts: list[str] = []
            for asset in group:
                value = asset.field(field_name)
                if isinstance(value, Plain):
                    total += int(_normalise(kind, value.value))
                    count += 1
                elif isinstance(value, Encrypted):
                    service = self.require_service()
                    count += 1
                    if service.is_homomorphic():
                        ciphertexts.append(value.ciphertext)
                    else:
                        total += int(self.decrypt(kind, value.ciphertext, version, field_name))
            if ciphertexts:
                service = self.require_service()
                with backend_context(field_name):
                    combined = service.homomorphic_add(ciphertexts, version)
                    total += service.decrypt_long(combined, version)
                logger.debug(
                    "Summed %d ciphertexts of %s for version %s",
                    len(ciphertexts),
                    field_name,
                    version,
                )
        return total, count


class QueryProcessor(FieldDecoder, ABC):
    """Base class for all per-query-type processors."""

    @abstractmethod
    def process(self, query: Query, assets: Sequence[DeviceDataAsset]) -> QueryResult:
        """Compute the raw (un-noised) result of ``query`` over ``assets``."""


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def group_by_version(assets: Sequence[DeviceDataAsset]) -> dict[str, list[DeviceDataAsset]]:
    """Partition records by key version, preserving first-seen order."""
    groups: dict[str, list[DeviceDataAsset]] = {}
    for asset in assets:
        groups.setdefault(asset.key_version, []).append(asset)
    return groups


def require_kind(query: Query, field_name: str, allowed: frozenset[FieldKind]) -> FieldKind:
    kind = field_kind(field_name)
    if kind not in allowed:
        raise UnsupportedOperationError(
            f"{query.query_type.value} is not supported on {kind.value} field {field_name!r}"
        )
    return kind


def value_key(kind: FieldKind, value: Any) -> str:
    if kind == FieldKind.BOOL:
        return "true" if value else "false"
    if isinstance(value, IntEnum):
        return value.name
    if kind == FieldKind.TIMESTAMP:
        return datetime.fromtimestamp(int(value), tz=timezone.utc).isoformat()
    return str(value)


@contextmanager
def backend_context(field_name: str) -> Iterator[None]:
    """Attach the field name to backend errors raised inside the block."""
    try:
        yield
    except CryptoBackendError as exc:
        if exc.field is None:
            exc.field = field_name
        raise


def _normalise(kind: FieldKind, value: Any) -> Any:
    if kind == FieldKind.TIMESTAMP:
        return to_epoch_seconds(value)
    if kind in (FieldKind.DEVICE_CATEGORY, FieldKind.MEDICAL_SPECIALITY) and not isinstance(
        value, IntEnum
    ):
        return enum_type(kind)(int(value))
    return value
