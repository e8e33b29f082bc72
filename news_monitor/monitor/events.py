"""In-process publish/subscribe for monitor read models.

The registry and the fetch state tracker publish an event after every
change; a rendering layer subscribes and re-reads whatever it displays.
Handlers run synchronously in publish order.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

logger = logging.getLogger(__name__)

SOURCES_CHANGED = "sources_changed"
FETCH_STATE_CHANGED = "fetch_state_changed"
SETTINGS_CHANGED = "settings_changed"


@dataclass
class MonitorEvent:
    """A change notification.

    Attributes:
        kind: One of the ``*_CHANGED`` names.
        payload: Event-specific details (e.g. ``source_id``, ``action``).
        emitted_at: When the event was published.
    """

    kind: str
    payload: dict[str, Any] = field(default_factory=dict)
    emitted_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


Handler = Callable[[MonitorEvent], None]


class EventBus:
    """Synchronous fan-out of MonitorEvents to subscribed handlers.

    A handler may subscribe to one kind or, with ``kind=None``, to all
    of them. A failing handler is logged and does not stop delivery to
    the remaining handlers.
    """

    def __init__(self) -> None:
        self._handlers: list[tuple[str | None, Handler]] = []

    def subscribe(self, handler: Handler, kind: str | None = None) -> Callable[[], None]:
        """Register a handler. Returns a callable that unsubscribes it."""
        entry = (kind, handler)
        self._handlers.append(entry)

        def _unsubscribe() -> None:
            if entry in self._handlers:
                self._handlers.remove(entry)

        return _unsubscribe

    def unsubscribe(self, handler: Handler) -> None:
        """Remove every registration of a handler."""
        self._handlers = [(k, h) for k, h in self._handlers if h is not handler]

    def publish(self, kind: str, **payload: Any) -> MonitorEvent:
        """Deliver an event to matching handlers and return it."""
        event = MonitorEvent(kind=kind, payload=payload)
        for wanted, handler in list(self._handlers):
            if wanted is not None and wanted != kind:
                continue
            try:
                handler(event)
            except Exception:
                logger.exception("Event handler failed for %s", kind)
        return event

    @property
    def subscriber_count(self) -> int:
        return len(self._handlers)
