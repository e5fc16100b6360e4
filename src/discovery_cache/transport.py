"""
HTTP transport for discovery requests using httpx.
"""
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Protocol, Union

import httpx

from .errors import DiscoveryTransportError

logger = logging.getLogger("discovery_cache.transport")

QueryParams = Mapping[str, Union[str, int, bool, None]]
PreconditionCheck = Callable[[], Awaitable[None]]


@dataclass
class FetchOptions:
    """Per-request switches for the discovery transport."""

    skip_auth_check: bool = False
    """Do not run the auth precondition (the initial document is public)."""

    skip_discovery_check: bool = False
    """Do not run the discovery-freshness precondition (the request is the refresh)."""


class HeaderLookup(Protocol):
    def get(self, name: str, default: Any = None) -> Any:
        ...


class DiscoveryResponse(Protocol):
    """Response returned by a discovery transport."""

    status: int
    headers: HeaderLookup

    async def json(self) -> Any:
        """Decode the JSON body."""
        ...


class FetchGet(Protocol):
    """Callable performing a GET request for discovery documents."""

    async def __call__(
        self,
        url: str,
        query: Optional[QueryParams] = None,
        options: Optional[FetchOptions] = None,
    ) -> DiscoveryResponse:
        ...


class HttpxDiscoveryResponse:
    """DiscoveryResponse over an httpx.Response."""

    def __init__(self, response: httpx.Response) -> None:
        self._response = response

    @property
    def status(self) -> int:
        return self._response.status_code

    @property
    def headers(self) -> httpx.Headers:
        return self._response.headers

    @property
    def url(self) -> str:
        return str(self._response.request.url)

    async def json(self) -> Any:
        try:
            return self._response.json()
        except ValueError as e:
            raise DiscoveryTransportError(
                f"Invalid JSON in discovery response: {e}",
                status=self.status,
                url=self.url,
            ) from e


class HttpxFetchGet:
    """
    Discovery transport backed by httpx.AsyncClient.

    Optional ``auth_check`` and ``discovery_check`` coroutines run before
    every request, unless the request's FetchOptions skip them. Use them to
    make sure a token is valid, or discovery data is fresh, before an API
    call goes out.

    Example:
        async with HttpxFetchGet() as fetch_get:
            coordinator = DiscoveryCoordinator(..., fetch_get=fetch_get)
    """

    def __init__(
        self,
        httpx_client: Optional[httpx.AsyncClient] = None,
        *,
        headers: Optional[Dict[str, str]] = None,
        timeout: float = 30.0,
        auth_check: Optional[PreconditionCheck] = None,
        discovery_check: Optional[PreconditionCheck] = None,
    ) -> None:
        self._owns_client = httpx_client is None
        self._client = httpx_client or httpx.AsyncClient(timeout=timeout)
        self._headers = dict(headers or {})
        self._auth_check = auth_check
        self._discovery_check = discovery_check
        self._closed = False

    async def __call__(
        self,
        url: str,
        query: Optional[QueryParams] = None,
        options: Optional[FetchOptions] = None,
    ) -> HttpxDiscoveryResponse:
        if self._closed:
            raise RuntimeError("Transport has been closed")

        options = options or FetchOptions()
        if self._auth_check is not None and not options.skip_auth_check:
            await self._auth_check()
        if self._discovery_check is not None and not options.skip_discovery_check:
            await self._discovery_check()

        params = {k: v for k, v in (query or {}).items() if v is not None}
        logger.debug(f"HttpxFetchGet: GET {url} params={sorted(params)}")

        try:
            response = await self._client.get(url, params=params, headers=self._headers)
        except httpx.HTTPError as e:
            logger.error(f"HttpxFetchGet: GET {url} failed: {e}")
            raise DiscoveryTransportError(
                f"Discovery request to {url} failed: {e}", url=url
            ) from e

        if not response.is_success:
            logger.error(f"HttpxFetchGet: GET {url} returned {response.status_code}")
            raise DiscoveryTransportError(
                f"Discovery request to {url} returned {response.status_code}",
                status=response.status_code,
                url=url,
            )

        return HttpxDiscoveryResponse(response)

    async def aclose(self) -> None:
        """Close the underlying client if this transport created it."""
        if self._closed:
            return
        self._closed = True
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "HttpxFetchGet":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()
