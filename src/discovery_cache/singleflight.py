"""
Operation coalescing (Singleflight) implementation.

When the same operation is requested while it is already running, the
new caller joins the running one and receives the same result.
"""
import asyncio
import logging
import time
from typing import Awaitable, Callable, List, Optional, TypeVar

from .types import (
    InFlightRequest,
    SingleflightEvent,
    SingleflightEventListener,
    SingleflightEventType,
    SingleflightResult,
    SingleflightStore,
)
from .stores.memory import MemorySingleflightStore

T = TypeVar("T")

logger = logging.getLogger("discovery_cache.singleflight")


class Singleflight:
    """
    Singleflight - coalescing for concurrent calls of the same operation.

    Each key owns at most one shared task. The first caller starts it,
    later callers join it, and every caller sees the same value or the
    same exception. The key is released inside the task as soon as the
    operation settles, before any waiter resumes, so the next call after
    completion always starts a fresh execution.

    Example:
        sf = Singleflight()

        # These 50 concurrent calls result in only 1 actual fetch
        async def fetch_config():
            return await sf.do("config", lambda: http_client.get("/config"))

        results = await asyncio.gather(*[fetch_config() for _ in range(50)])

        print(results[0].shared)  # False (the leader)
        print(results[1].shared)  # True (joined existing)
    """

    def __init__(self, store: Optional[SingleflightStore] = None) -> None:
        self._store = store or MemorySingleflightStore()
        self._listeners: List[SingleflightEventListener] = []

    def start(
        self,
        key: str,
        fn: Callable[[], Awaitable[T]],
    ) -> "asyncio.Task[T]":
        """
        Acquire-or-join the operation for ``key`` without awaiting it.

        Must be called from inside a running event loop. Registration is
        synchronous, so calls made in the same loop tick share one task.
        """
        existing = self._store.get(key)
        if existing is not None and existing.task is not None:
            existing.subscribers += 1
            self._emit(
                SingleflightEventType.JOIN,
                key,
                {"subscribers": existing.subscribers},
            )
            return existing.task

        in_flight: InFlightRequest = InFlightRequest(
            subscribers=1,
            started_at=time.time(),
        )

        async def execute() -> T:
            try:
                value = await fn()
            except asyncio.CancelledError:
                self._emit(SingleflightEventType.CANCEL, key)
                raise
            except Exception as error:
                self._emit(
                    SingleflightEventType.ERROR,
                    key,
                    {"error": str(error)},
                )
                raise
            else:
                self._emit(
                    SingleflightEventType.COMPLETE,
                    key,
                    {
                        "subscribers": in_flight.subscribers,
                        "duration_seconds": time.time() - in_flight.started_at,
                    },
                )
                return value
            finally:
                if self._store.get(key) is in_flight:
                    self._store.delete(key)

        task = asyncio.get_running_loop().create_task(execute())
        task.add_done_callback(_retrieve_exception)
        in_flight.task = task
        self._store.set(key, in_flight)

        self._emit(SingleflightEventType.LEAD, key)
        return task

    async def do(
        self,
        key: str,
        fn: Callable[[], Awaitable[T]],
    ) -> SingleflightResult[T]:
        """
        Execute ``fn`` with coalescing on ``key``.

        If the operation is already in-flight, wait for it and share the
        result. Cancelling one waiter does not cancel the shared work.
        """
        existing = self._store.get(key)
        shared = existing is not None and existing.task is not None
        task = self.start(key, fn)
        in_flight = self._store.get(key)

        value = await asyncio.shield(task)

        subscribers = in_flight.subscribers if in_flight is not None else 1
        return SingleflightResult(
            value=value,
            shared=shared,
            subscribers=subscribers,
        )

    def cancel(self, key: str) -> bool:
        """Cancel the in-flight operation for ``key``, if any."""
        existing = self._store.get(key)
        if existing is None or existing.task is None:
            return False
        self._store.delete(key)
        return existing.task.cancel()

    def cancel_all(self) -> int:
        """Cancel every in-flight operation. Returns how many were cancelled."""
        return sum(1 for key in self._store.keys() if self.cancel(key))

    def is_in_flight(self, key: str) -> bool:
        """Check if an operation is currently in-flight."""
        return self._store.has(key)

    def get_subscribers(self, key: str) -> int:
        """Get the number of callers sharing an in-flight operation."""
        existing = self._store.get(key)
        return existing.subscribers if existing else 0

    def get_stats(self) -> dict:
        """Get statistics about in-flight operations."""
        return {"in_flight": self._store.size(), "keys": self._store.keys()}

    def on(self, listener: SingleflightEventListener) -> Callable[[], None]:
        """Add event listener."""
        self._listeners.append(listener)
        return lambda: self.off(listener)

    def off(self, listener: SingleflightEventListener) -> None:
        """Remove event listener."""
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _emit(
        self,
        event_type: SingleflightEventType,
        key: str,
        metadata: Optional[dict] = None,
    ) -> None:
        """Emit an event to all listeners."""
        event = SingleflightEvent(
            type=event_type,
            key=key,
            timestamp=time.time(),
            metadata=metadata,
        )
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception(f"Singleflight listener failed on {event_type.value}")

    def close(self) -> None:
        """Cancel in-flight operations and release listeners."""
        self.cancel_all()
        self._listeners.clear()


def _retrieve_exception(task: "asyncio.Task") -> None:
    # Mark the outcome as retrieved when every waiter has gone away.
    if not task.cancelled():
        task.exception()


def create_singleflight(store: Optional[SingleflightStore] = None) -> Singleflight:
    """Create a singleflight instance."""
    return Singleflight(store)
