"""
Type definitions for discovery_cache.

Discovery documents are kept as the plain JSON objects the server returns.
The TypedDicts below describe the fields this package and its callers
consume; unknown fields pass through untouched.
"""
import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import (
    Any,
    Callable,
    Dict,
    Generic,
    NotRequired,
    Optional,
    TypedDict,
    TypeVar,
)

T = TypeVar("T")


# Endpoint groups


class InitialDiscoveryApiData(TypedDict):
    """Discovery API defaults from the initial document."""

    defaultExternalUri: str


class ExternalDiscoveryApiData(TypedDict):
    """Discovery API endpoints from the external document."""

    externalUri: str
    """Where the next external discovery round is fetched from."""

    initialUri: str


class InitialDiscoveryAuthApiData(TypedDict):
    authorizationUri: str
    oidcDiscoveryUri: str
    defaultTokenUri: str


class ExternalDiscoveryAuthApiData(TypedDict):
    authorizationUri: str
    oidcDiscoveryUri: str
    baseUri: str
    tokenUri: str


class DiscoveryCoreApiData(TypedDict):
    baseUri: str


class DiscoveryRcvData(TypedDict):
    baseWebUri: str
    baseApiUri: str
    pubnubOrigin: str


class DiscoveryRcmData(TypedDict):
    baseWebUri: str
    sdkDomain: str


class DiscoveryEdcData(TypedDict):
    baseUri: str


class DiscoveryGlipData(TypedDict):
    discovery: str
    entry: str


# Documents


class InitialDiscoveryData(TypedDict):
    """Long-lived bootstrap document. Has no expiry."""

    version: str
    retryCount: int
    retryInterval: int
    discoveryApi: InitialDiscoveryApiData
    authApi: InitialDiscoveryAuthApiData
    coreApi: DiscoveryCoreApiData
    rcm: DiscoveryRcmData
    rcv: DiscoveryRcvData
    edc: NotRequired[DiscoveryEdcData]
    glip: NotRequired[DiscoveryGlipData]


class ExternalDiscoveryData(TypedDict):
    """Short-lived live-endpoint document."""

    version: str
    tag: NotRequired[str]
    """Server-assigned discovery tag, copied from the response header."""

    expiresIn: int
    """Lifetime in seconds, as received."""

    expireTime: NotRequired[float]
    """Absolute expiry in epoch milliseconds, computed when stored."""

    retryCount: int
    retryInterval: int
    retryCycleDelay: int
    discoveryApi: ExternalDiscoveryApiData
    authApi: ExternalDiscoveryAuthApiData
    coreApi: DiscoveryCoreApiData
    rcm: DiscoveryRcmData
    rcv: DiscoveryRcvData
    edc: NotRequired[DiscoveryEdcData]
    glip: NotRequired[DiscoveryGlipData]


class DiscoveryOperation(str, Enum):
    """Single-flight keys for the coordinated discovery operations."""

    BOOTSTRAP = "bootstrap"
    INITIAL_FETCH = "initial-fetch"
    EXTERNAL_FETCH = "external-fetch"
    EXTERNAL_REFRESH = "external-refresh"


# Singleflight


@dataclass
class InFlightRequest(Generic[T]):
    """In-flight operation tracker for singleflight."""

    task: Optional["asyncio.Task[T]"] = None
    """Shared task every caller awaits."""

    subscribers: int = 1
    """Number of callers waiting on this operation."""

    started_at: float = 0
    """When the operation was started (Unix timestamp)."""


class SingleflightStore(ABC):
    """Singleflight store interface for tracking in-flight operations."""

    @abstractmethod
    def get(self, key: str) -> Optional[InFlightRequest]:
        """Get an in-flight operation by key."""
        pass

    @abstractmethod
    def set(self, key: str, request: InFlightRequest) -> None:
        """Register an in-flight operation."""
        pass

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Remove an in-flight operation."""
        pass

    @abstractmethod
    def has(self, key: str) -> bool:
        """Check if an operation is in-flight."""
        pass

    @abstractmethod
    def keys(self) -> list:
        """Get the keys of all in-flight operations."""
        pass

    @abstractmethod
    def size(self) -> int:
        """Get current number of in-flight operations."""
        pass

    @abstractmethod
    def clear(self) -> None:
        """Clear all in-flight operations."""
        pass


@dataclass
class SingleflightResult(Generic[T]):
    """Result of a singleflight operation."""

    value: T
    """The result value."""

    shared: bool
    """Whether this caller joined an operation another caller started."""

    subscribers: int
    """Number of callers that shared this result."""


class SingleflightEventType(str, Enum):
    """Event types for singleflight operations."""

    LEAD = "singleflight:lead"
    JOIN = "singleflight:join"
    COMPLETE = "singleflight:complete"
    ERROR = "singleflight:error"
    CANCEL = "singleflight:cancel"


@dataclass
class SingleflightEvent:
    """Singleflight event."""

    type: SingleflightEventType
    key: str
    timestamp: float
    metadata: Optional[Dict[str, Any]] = None


SingleflightEventListener = Callable[[SingleflightEvent], None]
"""Event listener type."""


# Cache


class DiscoveryCacheStore(ABC):
    """Key-value store holding the cached discovery documents."""

    @abstractmethod
    async def get_item(self, key: str) -> Optional[Any]:
        """Get a stored document by key, or None when absent."""
        pass

    @abstractmethod
    async def set_item(self, key: str, value: Any) -> None:
        """Store a document under a key, replacing any previous value."""
        pass

    @abstractmethod
    async def remove_item(self, key: str) -> None:
        """Remove a stored document."""
        pass

    @abstractmethod
    async def clear(self) -> None:
        """Remove every stored document."""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Close the store and release resources."""
        pass
