"""BFV scheme: single key held by the TTP, additions local or remote."""

from __future__ import annotations

import logging

from medquery.core.encryption.bfv_cli import BfvCliClient
from medquery.core.encryption.ttp import BfvTTPClient
from medquery.core.errors import UnsupportedOperationError

logger = logging.getLogger(__name__)

BFV_VERSION = "bfv-default"

# bfv_calc ciphertexts grow with every addition; sums are reduced in chunks
_ADD_CHUNK_SIZE = 10


class BfvEncryptionService:
    """Additively homomorphic BFV scheme.

    With a ``BfvCliClient`` additions run locally through ``bfv_calc``;
    otherwise they go to the TTP ``addAll`` endpoint.
    """

    def __init__(self, ttp: BfvTTPClient, *, cli: BfvCliClient | None = None) -> None:
        self._ttp = ttp
        self._cli = cli

    def current_version(self) -> str:
        return BFV_VERSION

    def available_versions(self) -> set[str]:
        return {BFV_VERSION}

    def decrypt_long(self, ciphertext: str, version: str) -> int:
        return self._ttp.decrypt(ciphertext)

    def decrypt_string(self, ciphertext: str, version: str) -> str:
        raise UnsupportedOperationError("BFV cannot decrypt string values")

    def decrypt_bool(self, ciphertext: str, version: str) -> bool:
        raise UnsupportedOperationError("BFV cannot decrypt boolean values")

    def is_homomorphic(self) -> bool:
        return True

    def supports_multiplication(self) -> bool:
        return False

    def homomorphic_add(self, ciphertexts: list[str], version: str) -> str:
        if not ciphertexts:
            raise ValueError("homomorphic_add requires at least one ciphertext")
        if len(ciphertexts) == 1:
            return ciphertexts[0]
        if self._cli is None:
            return self._ttp.add_all(list(ciphertexts))

        pending = list(ciphertexts)
        while len(pending) > 1:
            pending = [
                self._cli.add_many(pending[i:i + _ADD_CHUNK_SIZE])
                if len(pending[i:i + _ADD_CHUNK_SIZE]) > 1
                else pending[i]
                for i in range(0, len(pending), _ADD_CHUNK_SIZE)
            ]
        return pending[0]

    def homomorphic_multiply(self, ciphertext1: str, ciphertext2: str, version: str) -> str:
        raise UnsupportedOperationError("BFV multiplication is not supported")
