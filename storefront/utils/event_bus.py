"""
In-process event bus.

Handlers run synchronously, in subscription order, inside publish(). Used for
the "cart_updated" notification so a cart badge can stay in sync without
sharing the cart object.
"""
from typing import Any, Callable, Dict, List

from storefront.utils.logger import get_logger

logger = get_logger("utils.event_bus")

Handler = Callable[[Dict[str, Any]], None]


class EventBus:
    """Named-event publish/subscribe."""

    def __init__(self) -> None:
        self._subscribers: Dict[str, List[Handler]] = {}

    def subscribe(self, event_name: str, handler: Handler) -> Callable[[], None]:
        """Register ``handler`` for ``event_name``; returns a callable that removes it."""
        self._subscribers.setdefault(event_name, []).append(handler)

        def unsubscribe() -> None:
            handlers = self._subscribers.get(event_name, [])
            if handler in handlers:
                handlers.remove(handler)

        return unsubscribe

    def publish(self, event_name: str, payload: Dict[str, Any]) -> int:
        """Call every handler for ``event_name``; returns how many ran."""
        handlers = list(self._subscribers.get(event_name, []))
        logger.debug(f"Publishing {event_name} to {len(handlers)} handler(s)")
        for handler in handlers:
            handler(payload)
        return len(handlers)
