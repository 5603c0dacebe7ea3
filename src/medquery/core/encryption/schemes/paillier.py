"""Paillier scheme backed by the TTP.

Ciphertexts are decimal big integers. Adding plaintexts multiplies
ciphertexts; the product is reduced modulo ``n^2`` when the public modulus
of the version is known.
"""

from __future__ import annotations

import logging

from medquery.core.encryption.ttp import PaillierTTPClient
from medquery.core.errors import DecryptionError, UnsupportedOperationError

logger = logging.getLogger(__name__)


class PaillierEncryptionService:
    """Additively homomorphic scheme with versioned keys held by the TTP."""

    def __init__(self, ttp: PaillierTTPClient, *, bit_length: int = 2048) -> None:
        self._ttp = ttp
        self._bit_length = bit_length
        self._moduli: dict[str, int] = {}

    # ------------------------------------------------------------------
    # Versions
    # ------------------------------------------------------------------

    def current_version(self) -> str:
        key = self._ttp.encryption_key(self._bit_length)
        self._moduli[key.version] = key.modulus
        return key.version

    def available_versions(self) -> set[str]:
        self.current_version()
        return set(self._moduli)

    # ------------------------------------------------------------------
    # Decryption
    # ------------------------------------------------------------------

    def decrypt_long(self, ciphertext: str, version: str) -> int:
        plaintext = self._ttp.decrypt(ciphertext, version)
        try:
            return int(plaintext)
        except ValueError:
            raise DecryptionError(
                f"Paillier plaintext is not an integer: {plaintext!r}", version=version
            ) from None

    def decrypt_string(self, ciphertext: str, version: str) -> str:
        value = self.decrypt_long(ciphertext, version)
        raw = value.to_bytes(max(1, (value.bit_length() + 7) // 8), "big")
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError:
            raise DecryptionError("Paillier plaintext is not valid UTF-8", version=version) from None

    def decrypt_bool(self, ciphertext: str, version: str) -> bool:
        return self.decrypt_long(ciphertext, version) == 1

    # ------------------------------------------------------------------
    # Homomorphic operations
    # ------------------------------------------------------------------

    def is_homomorphic(self) -> bool:
        return True

    def supports_multiplication(self) -> bool:
        return False

    def homomorphic_add(self, ciphertexts: list[str], version: str) -> str:
        if not ciphertexts:
            raise ValueError("homomorphic_add requires at least one ciphertext")
        if len(ciphertexts) == 1:
            return ciphertexts[0]

        modulus = self._moduli.get(version)
        n_squared = modulus * modulus if modulus else None
        product = 1
        for ciphertext in ciphertexts:
            try:
                product *= int(ciphertext)
            except ValueError:
                raise DecryptionError(
                    "Paillier ciphertext is not an integer", version=version
                ) from None
            if n_squared is not None:
                product %= n_squared
        logger.debug("Combined %d Paillier ciphertexts (version=%s)", len(ciphertexts), version)
        return str(product)

    def homomorphic_multiply(self, ciphertext1: str, ciphertext2: str, version: str) -> str:
        raise UnsupportedOperationError("Paillier does not support ciphertext multiplication")
