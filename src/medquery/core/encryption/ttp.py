"""HTTP clients for the trusted third party (TTP) key-management service.

The TTP holds all private key material. It exposes JSON endpoints for
Paillier (versioned keys) and BFV (single key):

* ``GET  /api/paillier/key?bitLength=N``   -> ``{encryptionKey, version}``
* ``POST /api/paillier/encrypt``           -> ``{ciphertext, version}``
* ``POST /api/paillier/decrypt``           -> ``{plaintext}``
* ``POST /api/bfv/encrypt``                -> ``{ciphertext}``
* ``POST /api/bfv/addAll``                 -> ``{sumCiphertext}``
* ``POST /api/bfv/decrypt``                -> ``{plaintext}``
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import httpx

from medquery.core.errors import BackendUnavailableError, DecryptionError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PaillierKey:
    """Public Paillier key as handed out by the TTP."""

    encryption_key: str
    version: str

    @property
    def modulus(self) -> int:
        return int(self.encryption_key)


@dataclass(frozen=True)
class EncryptedValue:
    ciphertext: str
    version: str


class _TTPClient:
    """Shared request plumbing for the TTP JSON API."""

    def __init__(
        self,
        address: str,
        *,
        timeout: float = 10.0,
        http_client: httpx.Client | None = None,
    ) -> None:
        """Initialise against ``host:port`` (or a full base URL).

        Args:
            address: TTP address, e.g. ``ttp.medtechchain.nl:6000``.
            timeout: Per-request timeout in seconds.
            http_client: Pre-built client (tests inject a MockTransport).
        """
        base_url = address if "://" in address else f"http://{address}"
        self._client = http_client or httpx.Client(base_url=base_url, timeout=timeout)
        if http_client is not None and not str(http_client.base_url):
            self._client.base_url = base_url

    def close(self) -> None:
        self._client.close()

    def _request(
        self,
        method: str,
        path: str,
        *,
        version: str | None = None,
        **kwargs: Any,
    ) -> dict[str, Any]:
        logger.debug("TTP %s %s", method, path)
        try:
            response = self._client.request(method, path, **kwargs)
        except httpx.TimeoutException as exc:
            raise BackendUnavailableError(
                f"TTP request {path} timed out", version=version
            ) from exc
        except httpx.TransportError as exc:
            raise BackendUnavailableError(
                f"TTP request {path} failed: {exc}", version=version
            ) from exc

        if response.status_code >= 500:
            raise BackendUnavailableError(
                f"TTP returned HTTP {response.status_code} for {path}", version=version
            )
        if response.status_code >= 400:
            raise DecryptionError(
                f"TTP rejected {path} with HTTP {response.status_code}: {response.text[:200]}",
                version=version,
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise BackendUnavailableError(
                f"Invalid JSON from TTP {path}: {exc}", version=version
            ) from exc
        if not isinstance(payload, dict):
            raise BackendUnavailableError(
                f"Expected JSON object from TTP {path}, got {type(payload).__name__}",
                version=version,
            )
        return payload


def _require(payload: dict[str, Any], key: str, path: str, version: str | None = None) -> str:
    value = payload.get(key)
    if value is None:
        raise BackendUnavailableError(f"Missing {key!r} in TTP response from {path}", version=version)
    return str(value)


class PaillierTTPClient(_TTPClient):
    """Paillier endpoints of the TTP.

    Usage::

        ttp = PaillierTTPClient("ttp.medtechchain.nl:6000")
        key = ttp.encryption_key(2048)
        encrypted = ttp.encrypt(42, key.encryption_key)
        ttp.decrypt(encrypted.ciphertext, encrypted.version)  # "42"
    """

    def encryption_key(self, bit_length: int) -> PaillierKey:
        path = "/api/paillier/key"
        payload = self._request("GET", path, params={"bitLength": bit_length})
        return PaillierKey(
            encryption_key=_require(payload, "encryptionKey", path),
            version=_require(payload, "version", path),
        )

    def encrypt(self, plaintext: int, encryption_key: str) -> EncryptedValue:
        path = "/api/paillier/encrypt"
        payload = self._request(
            "POST",
            path,
            json={"plaintext": str(plaintext), "encryptionKey": encryption_key},
        )
        return EncryptedValue(
            ciphertext=_require(payload, "ciphertext", path),
            version=_require(payload, "version", path),
        )

    def decrypt(self, ciphertext: str, version: str) -> str:
        """Decrypt under ``version``; the TTP resolves the private key."""
        path = "/api/paillier/decrypt"
        payload = self._request(
            "POST",
            path,
            version=version,
            json={"encryptionKey": None, "ciphertext": ciphertext, "version": version},
        )
        return _require(payload, "plaintext", path, version)


class BfvTTPClient(_TTPClient):
    """BFV endpoints of the TTP."""

    def encrypt(self, plaintext: int) -> str:
        path = "/api/bfv/encrypt"
        payload = self._request("POST", path, json={"plaintext": plaintext})
        return _require(payload, "ciphertext", path)

    def add_all(self, ciphertexts: list[str]) -> str:
        path = "/api/bfv/addAll"
        payload = self._request("POST", path, json={"ciphertexts": ciphertexts})
        return _require(payload, "sumCiphertext", path)

    def decrypt(self, ciphertext: str) -> int:
        path = "/api/bfv/decrypt"
        payload = self._request("POST", path, json={"ciphertext": ciphertext})
        plaintext = _require(payload, "plaintext", path)
        try:
            return int(plaintext)
        except ValueError:
            raise DecryptionError(f"BFV plaintext is not an integer: {plaintext!r}") from None
