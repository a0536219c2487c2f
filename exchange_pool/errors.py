"""Exchange pool error hierarchy.

Every error carries a stable ``code`` and the HTTP status the API layer
responds with. Background paths log these; caller-facing paths surface the
message verbatim.
"""

from __future__ import annotations

from typing import Any


class PoolError(Exception):
    """Base class for all exchange pool errors."""

    code: str = "internal_error"
    status_code: int = 500

    def __init__(self, message: str, *, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": False,
            "error": self.message,
            "code": self.code,
            **self.details,
        }


class ConfigurationError(PoolError):
    """No usable pool configuration; the process must not serve traffic."""

    code = "configuration_error"
    status_code = 500


class InvalidPoolError(PoolError):
    """Unknown or missing pool selector in a request."""

    code = "invalid_pool"
    status_code = 400


class CreationError(PoolError):
    """The item creator failed to produce an exchange."""

    code = "creation_failed"
    status_code = 502


class CreationTimeoutError(CreationError):
    """A creation attempt exceeded its time budget."""

    code = "creation_timeout"


class PersistenceError(PoolError):
    """Writing the pool snapshot to disk failed."""

    code = "persistence_error"
    status_code = 500


class PoolFullError(PoolError):
    """Append attempted on a pool already at its target size."""

    code = "pool_full"
    status_code = 409
