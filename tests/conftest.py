"""Shared test fixtures for MedQuery tests."""

from __future__ import annotations

import sys
from collections import Counter
from datetime import datetime, timezone
from enum import IntEnum
from pathlib import Path
from typing import Any, Callable

import pytest

# ---------------------------------------------------------------------------
# Test hermeticity
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _force_hermetic_test_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PLATFORM_CONFIG_PATH", "")
    monkeypatch.setenv("DEVICE_DATA_PATH", "")
    monkeypatch.setenv("FERNET_KEYS", "")
    monkeypatch.setenv("BFV_CLI_PATH", "")

# Allow running tests without `pip install -e .` by making `src/` importable.
_PROJECT_ROOT = Path(__file__).resolve().parent.parent
_SRC_DIR = _PROJECT_ROOT / "src"
if str(_SRC_DIR) not in sys.path:
    sys.path.insert(0, str(_SRC_DIR))

from medquery.core.errors import DecryptionError, UnsupportedOperationError  # noqa: E402
from medquery.domains.devicedata.models import (  # noqa: E402
    DeviceData,
    DeviceDataAsset,
    Encrypted,
    Plain,
    Unset,
)


# ---------------------------------------------------------------------------
# Fake encryption service
# ---------------------------------------------------------------------------

class FakeEncryptionService:
    """Deterministic stand-in for a scheme backend.

    Ciphertexts are the plaintext rendered as a string (integers and enum
    codes as digits, booleans as ``0``/``1``), prefixed with the key version
    so cross-version mixing is detectable. Every backend call is counted in
    ``calls``.
    """

    def __init__(self, homomorphic: bool = True, versions: tuple[str, ...] = ("v1", "v2")) -> None:
        self.homomorphic = homomorphic
        self.versions = versions
        self.calls: Counter[str] = Counter()

    # Test-side helper; not part of the service protocol
    def encrypt(self, value: Any, version: str = "v1") -> Encrypted:
        if isinstance(value, bool):
            body = "1" if value else "0"
        elif isinstance(value, IntEnum):
            body = str(int(value))
        elif isinstance(value, datetime):
            body = str(int(value.timestamp()))
        else:
            body = str(value)
        return Encrypted(f"{version}:{body}")

    def _open(self, ciphertext: str, version: str) -> str:
        if version not in self.versions:
            raise DecryptionError("Unknown key version", version=version)
        prefix, _, body = ciphertext.partition(":")
        if prefix != version:
            raise DecryptionError("Ciphertext belongs to another version", version=version)
        return body

    def current_version(self) -> str:
        return self.versions[-1]

    def available_versions(self) -> set[str]:
        return set(self.versions)

    def decrypt_long(self, ciphertext: str, version: str) -> int:
        self.calls["decrypt_long"] += 1
        return int(self._open(ciphertext, version))

    def decrypt_string(self, ciphertext: str, version: str) -> str:
        self.calls["decrypt_string"] += 1
        return self._open(ciphertext, version)

    def decrypt_bool(self, ciphertext: str, version: str) -> bool:
        self.calls["decrypt_bool"] += 1
        return self._open(ciphertext, version) == "1"

    def is_homomorphic(self) -> bool:
        return self.homomorphic

    def supports_multiplication(self) -> bool:
        return False

    def homomorphic_add(self, ciphertexts: list[str], version: str) -> str:
        if not self.homomorphic:
            raise UnsupportedOperationError("fake scheme is not homomorphic")
        if not ciphertexts:
            raise ValueError("homomorphic_add requires at least one ciphertext")
        self.calls["homomorphic_add"] += 1
        if len(ciphertexts) == 1:
            return ciphertexts[0]
        total = sum(int(self._open(c, version)) for c in ciphertexts)
        return f"{version}:{total}"

    def homomorphic_multiply(self, ciphertext1: str, ciphertext2: str, version: str) -> str:
        raise UnsupportedOperationError("fake scheme cannot multiply")


@pytest.fixture
def fake_service() -> FakeEncryptionService:
    """Homomorphic fake scheme with versions v1 and v2."""
    return FakeEncryptionService()


@pytest.fixture
def non_homomorphic_service() -> FakeEncryptionService:
    """Fake scheme that can only decrypt individually."""
    return FakeEncryptionService(homomorphic=False)


# ---------------------------------------------------------------------------
# Record factory
# ---------------------------------------------------------------------------

_BASE_TIME = datetime(2024, 1, 1, tzinfo=timezone.utc)


def make_asset(
    key_version: str = "",
    timestamp: datetime | int | None = None,
    **fields: Any,
) -> DeviceDataAsset:
    """Build a record; raw field values are wrapped in ``Plain``."""
    values = {
        name: value if isinstance(value, (Plain, Encrypted, Unset)) else Plain(value)
        for name, value in fields.items()
    }
    if timestamp is None:
        ts = _BASE_TIME
    elif isinstance(timestamp, int):
        ts = datetime.fromtimestamp(timestamp, tz=timezone.utc)
    else:
        ts = timestamp
    return DeviceDataAsset(device_data=DeviceData(**values), timestamp=ts, key_version=key_version)


@pytest.fixture
def asset_factory() -> Callable[..., DeviceDataAsset]:
    return make_asset
