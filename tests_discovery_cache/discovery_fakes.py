"""
Fakes and sample documents for discovery coordinator tests.
"""
import asyncio
import copy
from typing import Any, Dict, List, Optional, Tuple

import httpx

from discovery_cache import FetchOptions

INITIAL_ENDPOINT = "https://disc.example.com/.well-known/entry-points/initial"
EXTERNAL_ENDPOINT = "https://disc.example.com/.well-known/entry-points/external"
NEXT_EXTERNAL_ENDPOINT = "https://disc2.example.com"
CACHE_ID = "sdk-discovery"
CLIENT_ID = "test-client-id"


def make_initial_document() -> Dict[str, Any]:
    return {
        "version": "1.0",
        "retryCount": 3,
        "retryInterval": 3,
        "discoveryApi": {"defaultExternalUri": EXTERNAL_ENDPOINT},
        "authApi": {
            "authorizationUri": "https://auth.example.com/authorize",
            "oidcDiscoveryUri": "https://auth.example.com/.well-known/openid-configuration",
            "defaultTokenUri": "https://auth.example.com/token",
        },
        "coreApi": {"baseUri": "https://api.example.com"},
        "rcm": {"baseWebUri": "https://meetings.example.com", "sdkDomain": "example.com"},
        "rcv": {
            "baseWebUri": "https://video.example.com",
            "baseApiUri": "https://video-api.example.com",
            "pubnubOrigin": "pubsub.example.com",
        },
    }


def make_external_document(
    external_uri: str = NEXT_EXTERNAL_ENDPOINT,
    expires_in: Optional[int] = 3600,
    base_uri: str = "https://api.example.com",
) -> Dict[str, Any]:
    doc = {
        "version": "1.0",
        "retryCount": 3,
        "retryInterval": 3,
        "retryCycleDelay": 60,
        "discoveryApi": {"externalUri": external_uri, "initialUri": INITIAL_ENDPOINT},
        "authApi": {
            "authorizationUri": "https://auth.example.com/authorize",
            "oidcDiscoveryUri": "https://auth.example.com/.well-known/openid-configuration",
            "baseUri": "https://auth.example.com",
            "tokenUri": "https://auth.example.com/token",
        },
        "coreApi": {"baseUri": base_uri},
        "rcm": {"baseWebUri": "https://meetings.example.com", "sdkDomain": "example.com"},
        "rcv": {
            "baseWebUri": "https://video.example.com",
            "baseApiUri": "https://video-api.example.com",
            "pubnubOrigin": "pubsub.example.com",
        },
    }
    if expires_in is not None:
        doc["expiresIn"] = expires_in
    return doc


class FakeResponse:
    """Minimal DiscoveryResponse."""

    def __init__(self, body: Any, headers: Optional[Dict[str, str]] = None) -> None:
        self.status = 200
        self.headers = httpx.Headers(headers or {})
        self._body = body

    async def json(self) -> Any:
        return copy.deepcopy(self._body)


class FakeFetchGet:
    """
    Recording transport.

    Set ``gate`` to an unset asyncio.Event to hold every request until the
    test releases it.
    """

    def __init__(self) -> None:
        self.calls: List[Tuple[str, Any, Optional[FetchOptions]]] = []
        self.routes: Dict[str, Tuple[Any, Dict[str, str]]] = {}
        self.errors: Dict[str, Exception] = {}
        self.gate: Optional[asyncio.Event] = None

    def add(self, url: str, body: Any, headers: Optional[Dict[str, str]] = None) -> None:
        self.routes[url] = (body, headers or {})

    def fail(self, url: str, error: Exception) -> None:
        self.errors[url] = error

    def count(self, url: str) -> int:
        return sum(1 for call in self.calls if call[0] == url)

    async def __call__(self, url, query=None, options=None):
        self.calls.append((url, query, options))
        if self.gate is not None:
            await self.gate.wait()
        else:
            await asyncio.sleep(0)
        if url in self.errors:
            raise self.errors[url]
        body, headers = self.routes[url]
        return FakeResponse(body, headers)


class FakeClock:
    """Controllable epoch-milliseconds clock."""

    def __init__(self, now: float = 1_700_000_000_000) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


async def release_after_join(gate: asyncio.Event) -> None:
    """Let every pending caller join the in-flight call, then release it."""
    await asyncio.sleep(0.01)
    gate.set()
