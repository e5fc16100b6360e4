"""
Exceptions raised by discovery_cache.
"""
from typing import Optional


class DiscoveryError(Exception):
    """Base class for discovery errors."""

    pass


class DiscoveryConfigError(DiscoveryError):
    """Raised when the discovery configuration is missing or invalid."""

    pass


class DiscoveryTransportError(DiscoveryError):
    """Raised when a discovery endpoint cannot be fetched or decoded."""

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        url: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.status = status
        self.url = url


class DiscoveryDataMissingError(DiscoveryError, LookupError):
    """Raised when an operation needs cached discovery data that is absent."""

    pass
