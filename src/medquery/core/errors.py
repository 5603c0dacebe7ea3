"""Error taxonomy shared by the query engine, encryption schemes and server."""

from __future__ import annotations


class QueryEngineError(Exception):
    """Base exception for all query engine errors."""


class ConfigurationError(QueryEngineError):
    """Platform or process configuration is missing or invalid.

    Raised when encrypted data is present but no scheme is configured, when
    the differential privacy epsilon cannot be parsed, or when a scheme is
    selected without the parameters it needs. Never retried.
    """


class QueryValidationError(QueryEngineError):
    """A query was rejected before any processing started."""

    def __init__(self, details: str) -> None:
        super().__init__(f"Bad query: {details}")
        self.details = details

    def as_dict(self) -> dict[str, str]:
        return {"status": "error", "error": "invalid_query", "details": self.details}


class UnsupportedOperationError(QueryEngineError):
    """An operation the scheme or field type cannot perform was requested."""


class CryptoBackendError(QueryEngineError):
    """Base class for failures reported by an encryption backend.

    ``field`` and ``version`` identify where the failure happened so callers
    can decide whether to retry. The engine never retries internally.
    """

    retryable = False

    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        version: str | None = None,
    ) -> None:
        super().__init__(message)
        self.field = field
        self.version = version

    def __str__(self) -> str:
        message = super().__str__()
        context = []
        if self.field is not None:
            context.append(f"field={self.field}")
        if self.version is not None:
            context.append(f"version={self.version}")
        return f"{message} ({', '.join(context)})" if context else message


class DecryptionError(CryptoBackendError):
    """The backend rejected a ciphertext or key version."""


class BackendUnavailableError(CryptoBackendError):
    """The backend could not be reached or timed out."""

    retryable = True
