"""Typed errors raised by the API client and surfaced by the cache."""

from __future__ import annotations

_GENERIC_MESSAGE = "Request failed"


class ApiError(Exception):
    """Error carrying an HTTP-like status code and a user-facing message.

    Attributes:
        status: HTTP status code of the failed response, or 0 when no
            response was received (configuration or transport failures).
        message: Message extracted from the response body, or a generic
            fallback.
    """

    def __init__(self, status: int, message: str | None = None):
        self.status = status
        self.message = message or _GENERIC_MESSAGE
        super().__init__(self.message)

    @property
    def is_rate_limited(self) -> bool:
        return self.status == 429

    def __repr__(self) -> str:
        return f"{type(self).__name__}(status={self.status}, message={self.message!r})"


class ConfigurationError(ApiError):
    """A required setting (URL, credential, form key) is missing.

    Raised before any network call is attempted.
    """

    def __init__(self, message: str):
        super().__init__(0, message)


class NetworkError(ApiError):
    """The request never produced a response (DNS, connect, timeout...)."""

    def __init__(self, message: str | None = None):
        super().__init__(0, message or "Network error, please try again")


class ConflictError(ApiError):
    """HTTP 409 from a uniqueness constraint.

    Callers should refresh the conflicting resource and let the user retry
    instead of retrying blindly.
    """

    refresh_and_retry = True

    def __init__(self, message: str | None = None):
        super().__init__(409, message)


__all__ = ["ApiError", "ConfigurationError", "NetworkError", "ConflictError"]
