"""Fernet-based field encryption with a versioned key ring.

Useful for deployments that want encryption at rest without a TTP. Fernet
is not homomorphic, so every aggregate decrypts record by record.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from cryptography.fernet import Fernet, InvalidToken

from medquery.core.errors import ConfigurationError, DecryptionError, UnsupportedOperationError

logger = logging.getLogger(__name__)


class FernetEncryptionService:
    """Symmetric encryption of JSON-serialised field values.

    Usage::

        service = FernetEncryptionService({"v1": FernetEncryptionService.generate_key()})
        token = service.encrypt(72)
        service.decrypt_long(token, "v1")  # 72
    """

    def __init__(self, keys: dict[str, str], *, current_version: str | None = None) -> None:
        """Initialize with a ``{version: key}`` ring.

        Args:
            keys: Fernet keys by version. Generate with ``generate_key()``.
            current_version: Version used for new encryptions. Defaults to
                the last entry of ``keys``.

        Raises:
            ConfigurationError: If the ring is empty or a key is invalid.
        """
        if not keys:
            raise ConfigurationError("Fernet scheme requires at least one key")
        self._fernets: dict[str, Fernet] = {}
        for version, key in keys.items():
            try:
                self._fernets[version] = Fernet(key.encode("utf-8"))
            except ValueError as exc:
                raise ConfigurationError(f"Invalid Fernet key for version {version}: {exc}") from exc

        self._current = current_version or list(keys)[-1]
        if self._current not in self._fernets:
            raise ConfigurationError(f"Unknown current Fernet key version: {self._current}")

    def current_version(self) -> str:
        return self._current

    def available_versions(self) -> set[str]:
        return set(self._fernets)

    def encrypt(self, data: Any, version: str | None = None) -> str:
        """Encrypt a JSON-serializable value under ``version`` (or current)."""
        fernet = self._fernet_for(version or self._current)
        plaintext = json.dumps(data, separators=(",", ":")).encode("utf-8")
        return fernet.encrypt(plaintext).decode("utf-8")

    def decrypt_long(self, ciphertext: str, version: str) -> int:
        value = self._decrypt(ciphertext, version)
        if isinstance(value, bool) or not isinstance(value, int):
            raise DecryptionError("Fernet plaintext is not an integer", version=version)
        return value

    def decrypt_string(self, ciphertext: str, version: str) -> str:
        value = self._decrypt(ciphertext, version)
        if not isinstance(value, str):
            raise DecryptionError("Fernet plaintext is not a string", version=version)
        return value

    def decrypt_bool(self, ciphertext: str, version: str) -> bool:
        value = self._decrypt(ciphertext, version)
        if isinstance(value, bool):
            return value
        if isinstance(value, int):
            return value == 1
        raise DecryptionError("Fernet plaintext is not a boolean", version=version)

    def is_homomorphic(self) -> bool:
        return False

    def supports_multiplication(self) -> bool:
        return False

    def homomorphic_add(self, ciphertexts: list[str], version: str) -> str:
        raise UnsupportedOperationError("Fernet is not homomorphic")

    def homomorphic_multiply(self, ciphertext1: str, ciphertext2: str, version: str) -> str:
        raise UnsupportedOperationError("Fernet is not homomorphic")

    @staticmethod
    def generate_key() -> str:
        return Fernet.generate_key().decode("utf-8")

    def _fernet_for(self, version: str) -> Fernet:
        try:
            return self._fernets[version]
        except KeyError:
            raise DecryptionError("Unknown key version", version=version) from None

    def _decrypt(self, ciphertext: str, version: str) -> Any:
        fernet = self._fernet_for(version)
        try:
            return json.loads(fernet.decrypt(ciphertext.encode("utf-8")))
        except InvalidToken as exc:
            raise DecryptionError("Decryption failed: invalid token or wrong key", version=version) from exc
        except ValueError as exc:
            raise DecryptionError(f"Decryption failed: {exc}", version=version) from exc
