"""Process settings loaded from environment variables."""

from __future__ import annotations

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """MedQuery server configuration."""

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    # Server
    # Default to loopback; the query server has no auth layer of its own.
    medquery_host: str = "127.0.0.1"
    medquery_port: int = 8003
    medquery_log_level: str = "info"
    medquery_allow_insecure_bind: bool = False

    # Platform config table (YAML); empty means built-in defaults
    platform_config_path: str = ""

    # Device records (JSON list); stand-in for the ledger read path
    device_data_path: str = ""

    # Encryption backends
    backend_timeout_seconds: float = 10.0
    bfv_cli_path: str = ""
    # Comma-separated "version=key" pairs for the fernet scheme
    fernet_keys: str = ""
    fernet_current_version: str = ""

    # Differential privacy; unset means a fresh OS-seeded generator
    dp_noise_seed: int | None = None

    def fernet_key_ring(self) -> dict[str, str]:
        """Parse ``fernet_keys`` into a ``{version: key}`` mapping."""
        ring: dict[str, str] = {}
        for entry in self.fernet_keys.split(","):
            entry = entry.strip()
            if not entry:
                continue
            version, sep, key = entry.partition("=")
            if not sep or not version.strip() or not key.strip():
                raise ValueError(f"Malformed fernet key entry: {entry.split('=')[0]!r}")
            ring[version.strip()] = key.strip()
        return ring


def get_settings() -> Settings:
    """Create and return a Settings instance."""
    return Settings()
