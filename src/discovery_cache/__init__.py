"""
Client-side service discovery with cached, coalesced configuration fetches.

Retrieves a long-lived initial discovery document and a short-lived
external document of live endpoint URIs, caches both, and refreshes the
external one on demand with at most one request in flight per operation.
"""
from .types import (
    InitialDiscoveryData,
    ExternalDiscoveryData,
    InitialDiscoveryApiData,
    ExternalDiscoveryApiData,
    InitialDiscoveryAuthApiData,
    ExternalDiscoveryAuthApiData,
    DiscoveryCoreApiData,
    DiscoveryRcvData,
    DiscoveryRcmData,
    DiscoveryEdcData,
    DiscoveryGlipData,
    DiscoveryOperation,
    DiscoveryCacheStore,
    InFlightRequest,
    SingleflightStore,
    SingleflightResult,
    SingleflightEvent,
    SingleflightEventType,
    SingleflightEventListener,
)
from .errors import (
    DiscoveryError,
    DiscoveryConfigError,
    DiscoveryTransportError,
    DiscoveryDataMissingError,
)
from .config import (
    DiscoveryConfig,
    RetryPolicy,
    retry_policy,
    load_discovery_config,
    apply_env_overrides,
    DEFAULT_RENEW_HANDICAP_MS,
    DEFAULT_REFRESH_DELAY_MS,
    DEFAULT_RETRY_COUNT,
    DEFAULT_RETRY_INTERVAL,
)
from .events import DiscoveryEvent, EventChannel
from .singleflight import Singleflight, create_singleflight
from .stores import (
    MemoryDiscoveryStore,
    MemorySingleflightStore,
    FileDiscoveryStore,
    create_memory_discovery_store,
    create_memory_singleflight_store,
    create_file_discovery_store,
)
from .transport import (
    FetchGet,
    FetchOptions,
    DiscoveryResponse,
    HttpxFetchGet,
    HttpxDiscoveryResponse,
)
from .coordinator import (
    DiscoveryCoordinator,
    create_discovery_coordinator,
    DISCOVERY_TAG_HEADER,
)


__all__ = [
    # Types
    "InitialDiscoveryData",
    "ExternalDiscoveryData",
    "InitialDiscoveryApiData",
    "ExternalDiscoveryApiData",
    "InitialDiscoveryAuthApiData",
    "ExternalDiscoveryAuthApiData",
    "DiscoveryCoreApiData",
    "DiscoveryRcvData",
    "DiscoveryRcmData",
    "DiscoveryEdcData",
    "DiscoveryGlipData",
    "DiscoveryOperation",
    "DiscoveryCacheStore",
    "InFlightRequest",
    "SingleflightStore",
    "SingleflightResult",
    "SingleflightEvent",
    "SingleflightEventType",
    "SingleflightEventListener",
    # Errors
    "DiscoveryError",
    "DiscoveryConfigError",
    "DiscoveryTransportError",
    "DiscoveryDataMissingError",
    # Config
    "DiscoveryConfig",
    "RetryPolicy",
    "retry_policy",
    "load_discovery_config",
    "apply_env_overrides",
    "DEFAULT_RENEW_HANDICAP_MS",
    "DEFAULT_REFRESH_DELAY_MS",
    "DEFAULT_RETRY_COUNT",
    "DEFAULT_RETRY_INTERVAL",
    # Events
    "DiscoveryEvent",
    "EventChannel",
    # Singleflight
    "Singleflight",
    "create_singleflight",
    # Stores
    "MemoryDiscoveryStore",
    "MemorySingleflightStore",
    "FileDiscoveryStore",
    "create_memory_discovery_store",
    "create_memory_singleflight_store",
    "create_file_discovery_store",
    # Transport
    "FetchGet",
    "FetchOptions",
    "DiscoveryResponse",
    "HttpxFetchGet",
    "HttpxDiscoveryResponse",
    # Coordinator
    "DiscoveryCoordinator",
    "create_discovery_coordinator",
    "DISCOVERY_TAG_HEADER",
]

__version__ = "0.1.0"
