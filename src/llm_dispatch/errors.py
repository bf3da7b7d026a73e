from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    CONFIGURATION = "configuration"
    TRANSIENT_SERVICE = "transient_service"
    GENERIC = "generic"


class ProviderError(Exception):
    """Base error for dispatch failures."""

    kind: ErrorKind = ErrorKind.GENERIC


class ConfigurationError(ProviderError):
    kind = ErrorKind.CONFIGURATION


class AuthenticationError(ProviderError):
    pass


class UpstreamProtocolError(ProviderError):
    """Unexpected upstream status, transport failure or response shape."""


class TransientServiceError(ProviderError):
    """Provider signalled capacity pressure; eligible for tier escalation."""

    kind = ErrorKind.TRANSIENT_SERVICE

    def __init__(self, message: str, retry_after_seconds: int | None = None):
        super().__init__(message)
        self.retry_after_seconds = retry_after_seconds


class RateLimitError(TransientServiceError):
    def __init__(self, retry_after_seconds: int | None = None, message: str = "Rate limited"):
        super().__init__(message, retry_after_seconds=retry_after_seconds)


class OverloadedError(TransientServiceError):
    def __init__(self, retry_after_seconds: int | None = None, message: str = "Upstream overloaded"):
        super().__init__(message, retry_after_seconds=retry_after_seconds)


class DispatchError(ProviderError):
    """All attempts of one `complete` call failed."""

    def __init__(self, attempts: int, last_error: str, history: tuple | None = None):
        super().__init__(f"Dispatch failed after {attempts} attempts: {last_error}")
        self.attempts = attempts
        self.last_error = last_error
        self.history = history or ()


def classify(exc: ProviderError) -> ErrorKind:
    return exc.kind
