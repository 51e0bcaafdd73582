"""
Input sources and subscription handles.

An input source is anything that can register and unregister listeners
per event type (``keydown``, ``keyup``, ``pointermove``, ``click``,
``contextmenu``). ``EventSource`` is the in-process implementation used
by the service and the tests; browser bridges only need the same two
methods.

``attach`` returns a ``Subscription`` whose ``release()`` removes every
listener it registered. Releasing twice is a no-op.
"""

import logging
from collections import defaultdict
from typing import Any, Callable, Dict, List, Tuple

logger = logging.getLogger(__name__)

Handler = Callable[[Any], None]

KEYDOWN = "keydown"
KEYUP = "keyup"
POINTERMOVE = "pointermove"
CLICK = "click"
CONTEXTMENU = "contextmenu"


class EventSource:
    """In-process event source with per-type listener lists."""

    def __init__(self) -> None:
        self._listeners: Dict[str, List[Handler]] = defaultdict(list)

    def add_listener(self, event_type: str, handler: Handler) -> None:
        self._listeners[event_type].append(handler)

    def remove_listener(self, event_type: str, handler: Handler) -> None:
        handlers = self._listeners.get(event_type, [])
        if handler in handlers:
            handlers.remove(handler)

    def listener_count(self, event_type: str) -> int:
        return len(self._listeners.get(event_type, []))

    def dispatch(self, event_type: str, event: Any) -> None:
        """Deliver an event synchronously to every listener of its type."""
        for handler in list(self._listeners.get(event_type, [])):
            try:
                handler(event)
            except Exception as exc:
                logger.error(f"Listener for '{event_type}' failed: {exc}")


class Subscription:
    """Handle for listeners registered on one source."""

    def __init__(self, source: Any, bindings: List[Tuple[str, Handler]]) -> None:
        self._source = source
        self._bindings = list(bindings)
        self._released = False

    @property
    def released(self) -> bool:
        return self._released

    def release(self) -> None:
        if self._released:
            return
        for event_type, handler in self._bindings:
            self._source.remove_listener(event_type, handler)
        self._bindings.clear()
        self._released = True

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()


def subscribe(source: Any, bindings: List[Tuple[str, Handler]]) -> Subscription:
    """Register every (event_type, handler) pair and return one handle."""
    for event_type, handler in bindings:
        source.add_listener(event_type, handler)
    return Subscription(source, bindings)
