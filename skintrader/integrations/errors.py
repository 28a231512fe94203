"""
Error taxonomy shared by marketplace adapters and their callers.
"""

from typing import Optional


class MarketplaceError(Exception):
    """Base class for marketplace related errors."""

    def __init__(self, message: str, endpoint: Optional[str] = None):
        super().__init__(message)
        self.endpoint = endpoint


class TransportError(MarketplaceError):
    """Network failure or timeout before a response was received."""


class RemoteRejectionError(MarketplaceError):
    """The marketplace answered with a non-success status."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        body: Optional[str] = None,
        endpoint: Optional[str] = None,
    ):
        super().__init__(message, endpoint)
        self.status_code = status_code
        self.body = body


class ItemUnavailableError(RemoteRejectionError):
    """The purchase target no longer exists on the marketplace."""


class DecodeError(MarketplaceError):
    """Response body could not be parsed into the expected shape."""


class ConfigurationError(Exception):
    """Missing or malformed configuration; fatal at startup."""
