"""
Publish-subscribe channel for discovery events.
"""
import logging
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Union

logger = logging.getLogger("discovery_cache.events")

EventListener = Callable[[Any], None]


class DiscoveryEvent(str, Enum):
    """Events emitted by the discovery coordinator."""

    INITIALIZED = "initialized"
    """Payload: the initial discovery document."""

    EXTERNAL_DATA_UPDATED = "external-data-updated"
    """Payload: the stored external discovery document."""


EventName = Union[DiscoveryEvent, str]


def _event_key(event: EventName) -> str:
    return event.value if isinstance(event, DiscoveryEvent) else str(event)


class EventChannel:
    """
    Ordered, synchronous event channel.

    Listeners run at emit time in the order they were added. A listener
    that raises is logged and the remaining listeners still run.

    Example:
        channel = EventChannel()
        unsubscribe = channel.on(DiscoveryEvent.INITIALIZED, print)
        channel.emit(DiscoveryEvent.INITIALIZED, {"version": "1.0"})
        unsubscribe()
    """

    def __init__(self) -> None:
        self._listeners: Dict[str, List[EventListener]] = {}

    def on(self, event: EventName, listener: EventListener) -> Callable[[], None]:
        """Add a listener. Returns a callable that removes it."""
        self._listeners.setdefault(_event_key(event), []).append(listener)
        return lambda: self.off(event, listener)

    def once(self, event: EventName, listener: EventListener) -> Callable[[], None]:
        """Add a listener that is removed after its first delivery."""

        def wrapper(payload: Any) -> None:
            self.off(event, wrapper)
            listener(payload)

        return self.on(event, wrapper)

    def off(self, event: EventName, listener: EventListener) -> None:
        """Remove a listener. Unknown listeners are ignored."""
        listeners = self._listeners.get(_event_key(event))
        if listeners and listener in listeners:
            listeners.remove(listener)

    def emit(self, event: EventName, payload: Any = None) -> bool:
        """
        Deliver ``payload`` to every listener of ``event``.

        Returns True if the event had listeners.
        """
        key = _event_key(event)
        listeners = list(self._listeners.get(key, ()))
        for listener in listeners:
            try:
                listener(payload)
            except Exception:
                logger.exception(f"Listener for '{key}' raised")
        return bool(listeners)

    def listener_count(self, event: EventName) -> int:
        return len(self._listeners.get(_event_key(event), ()))

    def remove_all_listeners(self, event: Optional[EventName] = None) -> None:
        if event is None:
            self._listeners.clear()
        else:
            self._listeners.pop(_event_key(event), None)
