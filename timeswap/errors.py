"""Error taxonomy for TimeSwap.

The core raises these; the HTTP layer maps each class to a status code.
"""

from __future__ import annotations


class TimeSwapError(Exception):
    """Base class for all domain errors."""

    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(TimeSwapError):
    """A request payload is missing required fields or has bad values."""

    status_code = 400

    def __init__(self, errors: list[str] | str) -> None:
        if isinstance(errors, str):
            errors = [errors]
        self.errors = list(errors)
        super().__init__("; ".join(self.errors))


class AuthenticationError(TimeSwapError):
    status_code = 401


class NotFoundError(TimeSwapError):
    status_code = 404


class QuotaExceededError(TimeSwapError):
    """Daily chat quota reached."""

    status_code = 429

    def __init__(self, message: str, limit: int, reset_at: str | None = None) -> None:
        super().__init__(message)
        self.limit = limit
        self.reset_at = reset_at


class StorageError(TimeSwapError):
    """The backing medium failed (permissions, disk full, corrupt file)."""

    status_code = 500


class IntegrationError(TimeSwapError):
    """An external integration is not configured or not connected."""

    status_code = 503
