from __future__ import annotations

from typing import Any


class PortalClientError(Exception):
    """Base class for every error raised by portalclient."""


class TransportError(PortalClientError):
    """The API could not be reached or answered with a non-2xx status."""

    def __init__(self, message: str, status_code: int | None = None, detail: Any = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.detail = detail


class ResponseValidationError(PortalClientError):
    """A response body did not have the shape the caller expects."""


class NotAuthenticatedError(PortalClientError):
    """An authenticated call was attempted without a valid session."""


class TokenDecodeError(PortalClientError):
    """An access token could not be decoded into claims."""
