from collections import (
    defaultdict,
)
from collections.abc import (
    Callable,
)
import logging
from typing import (
    Any,
)

logger = logging.getLogger(__name__)

EventCallback = Callable[..., None]


class EventEmitter:
    """
    Synchronous publish/subscribe helper.

    Callbacks run in registration order, in the task that emits the event.
    A failing callback is logged and does not stop the remaining ones.
    """

    _event_listeners: defaultdict[str, list[EventCallback]]

    def __init__(self) -> None:
        self._event_listeners = defaultdict(list)

    def on(self, event: str, callback: EventCallback) -> None:
        self._event_listeners[event].append(callback)

    def once(self, event: str, callback: EventCallback) -> None:
        def _once(*args: Any) -> None:
            self.remove_listener(event, _once)
            callback(*args)

        self.on(event, _once)

    def remove_listener(self, event: str, callback: EventCallback) -> None:
        callbacks = self._event_listeners.get(event)
        if not callbacks:
            return
        try:
            callbacks.remove(callback)
        except ValueError:
            pass

    def listener_count(self, event: str) -> int:
        return len(self._event_listeners.get(event, []))

    def emit(self, event: str, *args: Any) -> None:
        # Iterate over a copy, `once` callbacks unsubscribe while running.
        for callback in list(self._event_listeners.get(event, [])):
            try:
                callback(*args)
            except Exception as exc:
                logger.debug("Error in %r event listener: %s", event, exc)
