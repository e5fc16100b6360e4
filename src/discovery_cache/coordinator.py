"""
Discovery coordinator.

Fetches, caches and refreshes the two discovery documents:

- the initial document, a long-lived bootstrap config fetched once;
- the external document, a short-lived config holding the live endpoint
  URIs, the URI of the next discovery round, and an expiry.

Network operations are coalesced per operation with Singleflight, so at
most one fetch of each kind is outstanding at any time.
"""
import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Dict, Optional, cast

from .config import (
    DEFAULT_REFRESH_DELAY_MS,
    DEFAULT_RENEW_HANDICAP_MS,
    DiscoveryConfig,
)
from .errors import DiscoveryConfigError, DiscoveryDataMissingError
from .events import DiscoveryEvent, EventChannel, EventListener, EventName
from .singleflight import Singleflight
from .transport import FetchGet, FetchOptions
from .types import (
    DiscoveryCacheStore,
    DiscoveryOperation,
    ExternalDiscoveryData,
    InitialDiscoveryData,
    SingleflightEvent,
)

logger = logging.getLogger("discovery_cache.coordinator")

DISCOVERY_TAG_HEADER = "discovery-tag"

Clock = Callable[[], float]
Sleep = Callable[[float], Awaitable[Any]]


def _now_ms() -> float:
    return time.time() * 1000


def _mask_sensitive(value: Optional[str], visible_chars: int = 4) -> str:
    """Mask sensitive value for safe logging."""
    if not value:
        return "<empty>"
    if len(value) <= visible_chars:
        return "*" * len(value)
    return value[:visible_chars] + "*" * (len(value) - visible_chars)


class DiscoveryCoordinator:
    """
    Retrieves, caches and refreshes discovery documents.

    Constructing the coordinator inside a running event loop starts the
    bootstrap right away; ``await coordinator.init()`` joins it. Outside a
    running loop nothing happens until ``init()`` is awaited.

    Example:
        async with HttpxFetchGet() as fetch_get:
            discovery = DiscoveryCoordinator(
                cache=MemoryDiscoveryStore(),
                cache_id="my-sdk-discovery",
                initial_endpoint="https://discovery.example.com/initial",
                fetch_get=fetch_get,
                client_id="my-client-id",
            )
            await discovery.init()
            initial = await discovery.initial_data()
            await discovery.fetch_external_data(
                initial["discoveryApi"]["defaultExternalUri"]
            )

            # Before each API call
            if await discovery.external_data_expired():
                await discovery.refresh_external_data()
    """

    events = DiscoveryEvent

    def __init__(
        self,
        cache: DiscoveryCacheStore,
        cache_id: str,
        initial_endpoint: str,
        fetch_get: FetchGet,
        client_id: str,
        refresh_handicap_ms: int = DEFAULT_RENEW_HANDICAP_MS,
        refresh_delay_ms: int = DEFAULT_REFRESH_DELAY_MS,
        *,
        clock: Optional[Clock] = None,
        sleep: Optional[Sleep] = None,
        singleflight: Optional[Singleflight] = None,
        auto_init: bool = True,
    ) -> None:
        self._cache = cache
        self._initial_cache_id = f"{cache_id}-initial"
        self._external_cache_id = f"{cache_id}-external"
        self._initial_endpoint = initial_endpoint
        self._fetch_get = fetch_get
        self._client_id = client_id
        self._refresh_handicap_ms = refresh_handicap_ms
        self._refresh_delay_ms = refresh_delay_ms
        self._clock = clock or _now_ms
        self._sleep = sleep or asyncio.sleep

        self._initialized = False
        self._channel = EventChannel()
        self._singleflight = singleflight or Singleflight()
        self._singleflight.on(self._log_singleflight_event)

        if auto_init:
            self._start_implicit_init()

    @classmethod
    def from_config(
        cls,
        config: DiscoveryConfig,
        cache: DiscoveryCacheStore,
        fetch_get: FetchGet,
        **kwargs: Any,
    ) -> "DiscoveryCoordinator":
        """Build a coordinator from a validated DiscoveryConfig."""
        return cls(
            cache=cache,
            cache_id=config.cache_id,
            initial_endpoint=config.initial_endpoint,
            fetch_get=fetch_get,
            client_id=config.client_id,
            refresh_handicap_ms=config.refresh_handicap_ms,
            refresh_delay_ms=config.refresh_delay_ms,
            **kwargs,
        )

    # === Lifecycle ===

    @property
    def initialized(self) -> bool:
        """True once a bootstrap has succeeded. Never resets."""
        return self._initialized

    def _start_implicit_init(self) -> None:
        if not self._client_id:
            logger.debug("Skipping implicit bootstrap: no client id configured")
            return
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("Skipping implicit bootstrap: no running event loop")
            return

        task = self._singleflight.start(DiscoveryOperation.BOOTSTRAP.value, self._bootstrap)
        task.add_done_callback(self._log_implicit_init_failure)

    @staticmethod
    def _log_implicit_init_failure(task: "asyncio.Task") -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.warning(f"Implicit discovery bootstrap failed: {error!r}")

    async def init(self) -> None:
        """
        Make sure the initial document is available and mark the coordinator ready.

        Concurrent calls share one bootstrap attempt. A failed attempt is
        not remembered; the next call tries again.

        Raises:
            DiscoveryConfigError: no client id is configured
        """
        if not self._client_id:
            raise DiscoveryConfigError("Client Id is required for discovery")
        await self._singleflight.do(DiscoveryOperation.BOOTSTRAP.value, self._bootstrap)

    async def _bootstrap(self) -> None:
        initial_data = await self.initial_data()
        if initial_data:
            logger.debug(f"Initial discovery data found in cache '{self._initial_cache_id}'")
        else:
            initial_data = await self.fetch_initial_data()
        self._initialized = True
        self._channel.emit(DiscoveryEvent.INITIALIZED, initial_data)

    async def close(self) -> None:
        """Cancel in-flight operations and drop all listeners."""
        self._singleflight.close()
        self._channel.remove_all_listeners()

    # === Initial data ===

    async def fetch_initial_data(self) -> InitialDiscoveryData:
        """
        Fetch the initial document from the network and cache it verbatim.

        Concurrent callers share one request and see the same outcome.
        """
        result = await self._singleflight.do(
            DiscoveryOperation.INITIAL_FETCH.value, self._fetch_initial_data
        )
        return result.value

    async def _fetch_initial_data(self) -> InitialDiscoveryData:
        logger.debug(
            f"Fetching initial discovery data from {self._initial_endpoint} "
            f"(clientId={_mask_sensitive(self._client_id)})"
        )
        response = await self._fetch_get(
            self._initial_endpoint,
            {"clientId": self._client_id},
            FetchOptions(skip_auth_check=True),
        )
        initial_data = await response.json()
        await self._cache.set_item(self._initial_cache_id, initial_data)
        return cast(InitialDiscoveryData, initial_data)

    async def initial_data(self) -> Optional[InitialDiscoveryData]:
        """Cached initial document, or None."""
        data = await self._cache.get_item(self._initial_cache_id)
        return data or None

    async def remove_initial_data(self) -> None:
        await self._cache.remove_item(self._initial_cache_id)

    # === External data ===

    async def fetch_external_data(self, external_endpoint: str) -> ExternalDiscoveryData:
        """
        Fetch the external document from ``external_endpoint``, cache it and
        emit EXTERNAL_DATA_UPDATED.

        A call made while another external fetch is in flight joins that
        fetch and receives its document, whatever endpoint it targets.
        """
        key = DiscoveryOperation.EXTERNAL_FETCH.value
        if self._singleflight.is_in_flight(key):
            logger.debug(
                f"External discovery fetch in flight; {external_endpoint} joins it"
            )
        result = await self._singleflight.do(
            key, lambda: self._fetch_external_data(external_endpoint)
        )
        return result.value

    async def _fetch_external_data(self, external_endpoint: str) -> ExternalDiscoveryData:
        logger.debug(f"Fetching external discovery data from {external_endpoint}")
        response = await self._fetch_get(
            external_endpoint,
            None,
            FetchOptions(skip_discovery_check=True),
        )
        external_data = await response.json()
        discovery_tag = response.headers.get(DISCOVERY_TAG_HEADER)
        if discovery_tag:
            external_data["tag"] = discovery_tag

        stored = await self._set_external_data(external_data)
        self._channel.emit(DiscoveryEvent.EXTERNAL_DATA_UPDATED, stored)
        return stored

    async def _set_external_data(self, new_data: Dict[str, Any]) -> ExternalDiscoveryData:
        stored = dict(new_data)
        # expireTime is always derived locally, never taken from the payload
        stored.pop("expireTime", None)
        expires_in = new_data.get("expiresIn")
        if expires_in:
            stored["expireTime"] = self._clock() + expires_in * 1000
        await self._cache.set_item(self._external_cache_id, stored)
        return cast(ExternalDiscoveryData, stored)

    async def refresh_external_data(self) -> ExternalDiscoveryData:
        """
        Re-fetch the external document from the URI the cached one points to.

        Waits the settling delay first. Concurrent refreshes share one run,
        and the fetch itself goes through the same in-flight slot as
        fetch_external_data().

        Raises:
            DiscoveryDataMissingError: no external document is cached yet
        """
        result = await self._singleflight.do(
            DiscoveryOperation.EXTERNAL_REFRESH.value, self._refresh_external_data
        )
        return result.value

    async def _refresh_external_data(self) -> ExternalDiscoveryData:
        await self._sleep(self._refresh_delay_ms / 1000)
        old_external_data = await self.external_data()
        if not old_external_data:
            raise DiscoveryDataMissingError(
                "No cached external discovery data to refresh from; "
                "call fetch_external_data() first"
            )
        try:
            external_endpoint = old_external_data["discoveryApi"]["externalUri"]
        except (KeyError, TypeError) as e:
            raise DiscoveryDataMissingError(
                "Cached external discovery data has no discoveryApi.externalUri"
            ) from e
        return await self.fetch_external_data(external_endpoint)

    async def external_data(self) -> Optional[ExternalDiscoveryData]:
        """Cached external document, or None."""
        data = await self._cache.get_item(self._external_cache_id)
        return data or None

    async def remove_external_data(self) -> None:
        await self._cache.remove_item(self._external_cache_id)

    async def external_data_expired(self) -> bool:
        """
        True when the external document should be refreshed before use.

        That is: nothing is cached, or the current time has reached
        ``expireTime - refresh_handicap_ms``. A document stored without
        ``expiresIn`` has no expireTime and never expires by time.
        """
        data = await self.external_data()
        if not data:
            return True
        expire_time = data.get("expireTime")
        if expire_time is None:
            return False
        expired = self._clock() >= expire_time - self._refresh_handicap_ms
        logger.debug(f"External discovery data expired={expired} (expireTime={expire_time})")
        return expired

    # === Events ===

    def on(self, event: EventName, listener: EventListener) -> Callable[[], None]:
        """Subscribe to a discovery event. Returns an unsubscribe callable."""
        return self._channel.on(event, listener)

    def once(self, event: EventName, listener: EventListener) -> Callable[[], None]:
        return self._channel.once(event, listener)

    def off(self, event: EventName, listener: EventListener) -> None:
        self._channel.off(event, listener)

    def on_initialized(
        self, listener: Callable[[InitialDiscoveryData], None]
    ) -> Callable[[], None]:
        return self._channel.on(DiscoveryEvent.INITIALIZED, listener)

    def on_external_data_updated(
        self, listener: Callable[[ExternalDiscoveryData], None]
    ) -> Callable[[], None]:
        return self._channel.on(DiscoveryEvent.EXTERNAL_DATA_UPDATED, listener)

    @staticmethod
    def _log_singleflight_event(event: SingleflightEvent) -> None:
        logger.debug(f"{event.type.value} key={event.key} metadata={event.metadata}")


def create_discovery_coordinator(
    cache: DiscoveryCacheStore,
    cache_id: str,
    initial_endpoint: str,
    fetch_get: FetchGet,
    client_id: str,
    **kwargs: Any,
) -> DiscoveryCoordinator:
    """Create a discovery coordinator."""
    return DiscoveryCoordinator(
        cache=cache,
        cache_id=cache_id,
        initial_endpoint=initial_endpoint,
        fetch_get=fetch_get,
        client_id=client_id,
        **kwargs,
    )
