"""Exception types raised by the universal adapter."""

from typing import Optional


class UniversalAdapterError(Exception):
    """Base class for adapter errors that map to an HTTP status."""

    status_code: int = 500

    def __init__(self, message: str = "", status_code: Optional[int] = None) -> None:
        super().__init__(message)
        if status_code is not None:
            self.status_code = status_code


class BadRequestError(UniversalAdapterError):
    """The provider event cannot be turned into a valid request."""

    status_code = 400


class MalformedHeaderError(BadRequestError):
    """A request header contains characters illegal in HTTP."""


class InvalidResponseError(UniversalAdapterError):
    """The main function returned something that is not a response."""


class PayloadTooLargeError(UniversalAdapterError):
    """The serialized response exceeds the provider's payload ceiling."""

    status_code = 413


class SecretsError(UniversalAdapterError):
    """Secrets could not be loaded from the secret store."""


def status_code_of(error: BaseException) -> int:
    """Return the HTTP status carried by an exception, defaulting to 500."""
    status = getattr(error, "status_code", None)
    if isinstance(status, int) and 100 <= status <= 599:
        return status
    return 500
