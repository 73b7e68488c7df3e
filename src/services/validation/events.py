"""In-process notification of validation lifecycle events."""

import inspect
from collections import defaultdict, deque
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from typing import Any, Final, Literal

from loguru import logger

type EventName = Literal["validationStarted", "validationCompleted", "validationError"]
type EventHandler = Callable[[str, dict[str, Any]], Awaitable[None] | None]

RECENT_EVENTS_LIMIT: Final[int] = 100


class EventChannel:
    """Delivers validation events to subscribed handlers.

    Handlers may be plain functions or coroutine functions. A failing
    handler is logged and does not stop delivery to the others, nor does it
    fail the validation that emitted the event.
    """

    def __init__(self, history_size: int = RECENT_EVENTS_LIMIT) -> None:
        self._handlers: dict[str, list[EventHandler]] = defaultdict(list)
        self._recent: deque[dict[str, Any]] = deque(maxlen=history_size)

    def subscribe(self, event: EventName, handler: EventHandler) -> None:
        """Register a handler for an event."""
        self._handlers[event].append(handler)

    def unsubscribe(self, event: EventName, handler: EventHandler) -> None:
        """Remove a handler, ignoring handlers that were never registered."""
        if handler in self._handlers[event]:
            self._handlers[event].remove(handler)

    async def emit(self, event: EventName, payload: dict[str, Any]) -> None:
        """Deliver an event to every handler in subscription order."""
        self._recent.append(
            {"event": event, "payload": payload, "emittedAt": datetime.now(UTC)}
        )
        logger.debug("Emitting {}", event, document_id=payload.get("documentId"))

        for handler in list(self._handlers[event]):
            try:
                outcome = handler(event, payload)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception as e:  # noqa: BLE001 - handlers are isolated
                logger.opt(exception=e).warning(
                    "Event handler {} failed for {}",
                    getattr(handler, "__name__", repr(handler)),
                    event,
                )

    def recent(self, event: EventName | None = None) -> list[dict[str, Any]]:
        """Return the most recent events, optionally of one name."""
        return [
            item for item in self._recent if event is None or item["event"] == event
        ]
