"""Exception hierarchy for the Veeam REST client and data collector."""

from __future__ import annotations


class CollectorError(Exception):
    """Base exception for all collection errors."""


class ApiConnectionError(CollectorError):
    """The API could not be reached or timed out."""


class ApiAuthError(CollectorError):
    """Token acquisition or refresh was rejected."""


class ApiResponseError(CollectorError):
    """The API answered with an error status or an unreadable body."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
