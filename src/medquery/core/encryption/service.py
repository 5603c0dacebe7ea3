"""Encryption service protocol and factory."""

from __future__ import annotations

import logging
from enum import Enum
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from medquery.core.config.platform import ConfigKey, PlatformConfig
from medquery.core.errors import ConfigurationError

if TYPE_CHECKING:
    from medquery.core.config.settings import Settings

logger = logging.getLogger(__name__)


@runtime_checkable
class EncryptionService(Protocol):
    """Decryption and homomorphic operations keyed by record key version.

    Implementations perform blocking I/O against their backend. Transport
    failures surface as ``BackendUnavailableError``; rejected ciphertexts or
    versions as ``DecryptionError``.
    """

    def current_version(self) -> str: ...

    def available_versions(self) -> set[str]: ...

    def decrypt_long(self, ciphertext: str, version: str) -> int: ...

    def decrypt_string(self, ciphertext: str, version: str) -> str: ...

    def decrypt_bool(self, ciphertext: str, version: str) -> bool: ...

    def is_homomorphic(self) -> bool: ...

    def supports_multiplication(self) -> bool: ...

    def homomorphic_add(self, ciphertexts: list[str], version: str) -> str:
        """Combine ciphertexts of one version into a ciphertext of their sum.

        Raises ``ValueError`` on empty input and returns a singleton unchanged.
        """
        ...

    def homomorphic_multiply(self, ciphertext1: str, ciphertext2: str, version: str) -> str: ...


class SchemeVariant(str, Enum):
    NONE = "none"
    PAILLIER = "paillier"
    BFV = "bfv"
    FERNET = "fernet"

    @classmethod
    def parse(cls, name: str | None) -> SchemeVariant:
        if name is None or not name.strip():
            return cls.NONE
        normalized = name.strip().lower()
        if normalized == "plaintext":
            return cls.NONE
        try:
            return cls(normalized)
        except ValueError:
            raise ConfigurationError(
                f"Unknown encryption scheme {name!r}; expected one of "
                f"{', '.join(v.value for v in cls)}"
            ) from None


def create_encryption_service(
    platform_config: PlatformConfig,
    settings: Settings | None = None,
) -> EncryptionService | None:
    """Factory building the configured encryption service.

    Args:
        platform_config: Platform table naming the scheme and TTP address.
        settings: Process settings (timeouts, BFV binary, fernet keys).

    Returns:
        An EncryptionService, or ``None`` when the scheme is ``none``.

    Raises:
        ConfigurationError: Unknown scheme or missing scheme parameters.
    """
    if settings is None:
        from medquery.core.config.settings import get_settings

        settings = get_settings()

    variant = SchemeVariant.parse(platform_config.get(ConfigKey.QUERY_ENCRYPTION_SCHEME))

    if variant == SchemeVariant.NONE:
        logger.info("No encryption configured")
        return None

    if variant == SchemeVariant.PAILLIER:
        from medquery.core.encryption.schemes.paillier import PaillierEncryptionService
        from medquery.core.encryption.ttp import PaillierTTPClient

        address = platform_config.get_required(ConfigKey.QUERY_ENCRYPTION_TTP_ADDRESS)
        bit_length = _parse_bit_length(platform_config)
        logger.info("Creating Paillier encryption service with TTP: %s", address)
        return PaillierEncryptionService(
            PaillierTTPClient(address, timeout=settings.backend_timeout_seconds),
            bit_length=bit_length,
        )

    if variant == SchemeVariant.BFV:
        from medquery.core.encryption.bfv_cli import BfvCliClient
        from medquery.core.encryption.schemes.bfv import BfvEncryptionService
        from medquery.core.encryption.ttp import BfvTTPClient

        address = platform_config.get_required(ConfigKey.QUERY_ENCRYPTION_TTP_ADDRESS)
        cli = (
            BfvCliClient(settings.bfv_cli_path, timeout=settings.backend_timeout_seconds)
            if settings.bfv_cli_path
            else None
        )
        logger.info(
            "Creating BFV encryption service with TTP: %s (local add: %s)",
            address,
            settings.bfv_cli_path or "disabled",
        )
        return BfvEncryptionService(
            BfvTTPClient(address, timeout=settings.backend_timeout_seconds), cli=cli
        )

    from medquery.core.encryption.schemes.fernet import FernetEncryptionService

    try:
        key_ring = settings.fernet_key_ring()
    except ValueError as exc:
        raise ConfigurationError(str(exc)) from exc
    logger.info("Creating Fernet encryption service with %d key versions", len(key_ring))
    return FernetEncryptionService(key_ring, current_version=settings.fernet_current_version or None)


def _parse_bit_length(platform_config: PlatformConfig) -> int:
    raw = platform_config.get(ConfigKey.QUERY_ENCRYPTION_PAILLIER_BIT_LENGTH)
    if raw is None:
        from medquery.core.config.platform import DEFAULT_PAILLIER_BIT_LENGTH

        return DEFAULT_PAILLIER_BIT_LENGTH
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"Invalid Paillier bit length: {raw!r}") from None
