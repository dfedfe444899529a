"""Per-event-kind subscription shared by all analyzers."""

import logging
from typing import Callable, Dict, Iterable, List

logger = logging.getLogger(__name__)

Handler = Callable[..., None]


class EventEmitter:
    """
    Named-event observer registry.

    Each event kind keeps its own ordered handler list, so any number of
    consumers can subscribe without replacing each other. A handler that
    raises is logged and skipped; the remaining handlers still run.
    """

    def __init__(self, events: Iterable[str]):
        self._handlers: Dict[str, List[Handler]] = {name: [] for name in events}

    @property
    def events(self) -> tuple:
        return tuple(self._handlers)

    def _handlers_for(self, event: str) -> List[Handler]:
        try:
            return self._handlers[event]
        except KeyError:
            raise ValueError(
                f"unknown event {event!r}; expected one of {', '.join(self._handlers)}"
            ) from None

    def on(self, event: str, handler: Handler) -> Handler:
        """Subscribe *handler* to *event*; returns the handler for use with off()."""
        self._handlers_for(event).append(handler)
        return handler

    def off(self, event: str, handler: Handler) -> None:
        handlers = self._handlers_for(event)
        if handler in handlers:
            handlers.remove(handler)

    def clear(self) -> None:
        for handlers in self._handlers.values():
            handlers.clear()

    def handler_count(self, event: str) -> int:
        return len(self._handlers_for(event))

    def emit(self, event: str, *args) -> None:
        # copy so handlers may unsubscribe themselves while being called
        for handler in list(self._handlers_for(event)):
            try:
                handler(*args)
            except Exception:
                logger.exception("handler %r failed on %s", handler, event)
