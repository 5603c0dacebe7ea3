"""GROUPED_COUNT: occurrences per distinct value of the target field.

Bounded fields (booleans and the device enums) under a homomorphic scheme
avoid per-record decryption when they can: the codes of each version group
are summed homomorphically, decrypted once, and the per-label counts are
recovered with ``CategoricalReconstructionSolver``. A group falls back to
decrypting each ciphertext when the sum is infeasible or when more than one
count vector explains it. Booleans are always recoverable.
"""

from __future__ import annotations

import logging
from typing import Sequence

from medquery.core.encryption.service import EncryptionService
from medquery.core.query.models import GroupedCountResult, Query
from medquery.core.query.processors.base import (
    QueryProcessor,
    backend_context,
    group_by_version,
)
from medquery.core.solver.categorical import CategoricalReconstructionSolver
from medquery.domains.devicedata.models import (
    DeviceDataAsset,
    Encrypted,
    FieldKind,
    Plain,
    categorical_domain,
    field_kind,
)

logger = logging.getLogger(__name__)


class GroupedCountProcessor(QueryProcessor):
    def __init__(
        self,
        encryption_service: EncryptionService | None = None,
        solver: CategoricalReconstructionSolver | None = None,
    ) -> None:
        super().__init__(encryption_service)
        self.solver = solver or CategoricalReconstructionSolver()

    def process(self, query: Query, assets: Sequence[DeviceDataAsset]) -> GroupedCountResult:
        field_name = query.target_field
        kind = field_kind(field_name)
        counts: dict[str, int] = {}

        reconstruct = (
            kind.is_categorical
            and self.encryption_service is not None
            and self.encryption_service.is_homomorphic()
        )
        for version, group in group_by_version(assets).items():
            if reconstruct:
                self._count_reconstructed(kind, field_name, version, group, counts)
            else:
                self._count_individually(field_name, group, counts)

        return GroupedCountResult({key: value for key, value in counts.items() if value > 0})

    def _count_individually(
        self,
        field_name: str,
        group: Sequence[DeviceDataAsset],
        counts: dict[str, int],
    ) -> None:
        for asset in group:
            key = self.decode_key(asset, field_name)
            if key is not None:
                counts[key] = counts.get(key, 0) + 1

    def _count_reconstructed(
        self,
        kind: FieldKind,
        field_name: str,
        version: str,
        group: Sequence[DeviceDataAsset],
        counts: dict[str, int],
    ) -> None:
        encrypted: list[DeviceDataAsset] = []
        for asset in group:
            value = asset.field(field_name)
            if isinstance(value, Plain):
                key = self.decode_key(asset, field_name)
                counts[key] = counts.get(key, 0) + 1
            elif isinstance(value, Encrypted):
                encrypted.append(asset)
        if not encrypted:
            return

        service = self.require_service()
        ciphertexts = [asset.field(field_name).ciphertext for asset in encrypted]
        with backend_context(field_name):
            total = service.decrypt_long(service.homomorphic_add(ciphertexts, version), version)

        domain = categorical_domain(kind)
        solution = self.solver.solve(domain, total, len(ciphertexts))
        if solution is None:
            logger.warning(
                "Reconstruction infeasible for %s (version=%s, n=%d, sum=%d); decrypting individually",
                field_name,
                version,
                len(ciphertexts),
                total,
            )
            self._count_individually(field_name, encrypted, counts)
            return
        if not self.solver.is_unique(domain, total, len(ciphertexts)):
            logger.debug(
                "Sum %d over %d values of %s is ambiguous (version=%s); decrypting individually",
                total,
                len(ciphertexts),
                field_name,
                version,
            )
            self._count_individually(field_name, encrypted, counts)
            return

        logger.debug("Reconstructed %d values of %s for version %s", len(ciphertexts), field_name, version)
        for label, count in solution.items():
            counts[label] = counts.get(label, 0) + count
