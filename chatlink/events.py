"""
Event subscription system for the chatlink client.

Each event kind has a fixed payload model. Handlers receive that model
and may be plain functions or coroutines.
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from enum import Enum
from typing import Any, Callable, ClassVar, Coroutine, Union

from pydantic import BaseModel

from chatlink.objects import Message, MessageSnapshot

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    READY = "ready"
    ERROR = "error"
    CONNECTED = "connected"
    DROPPED = "dropped"
    MESSAGE = "message"
    MESSAGE_UPDATE = "message_update"
    MESSAGE_DELETE = "message_delete"


class _Event(BaseModel):
    kind: ClassVar[EventType]

    model_config = {"frozen": True, "arbitrary_types_allowed": True}


class ReadyEvent(_Event):
    """First successful socket authentication of this client."""

    kind = EventType.READY


class ErrorEvent(_Event):
    """A login, socket or background processing failure."""

    kind = EventType.ERROR
    error: Union[Exception, str]


class ConnectedEvent(_Event):
    kind = EventType.CONNECTED


class DroppedEvent(_Event):
    kind = EventType.DROPPED


class MessageEvent(_Event):
    kind = EventType.MESSAGE
    message: Message


class MessageUpdateEvent(_Event):
    """``previous`` is ``None`` when the message was not seen before."""

    kind = EventType.MESSAGE_UPDATE
    message: Message
    previous: MessageSnapshot | None = None


class MessageDeleteEvent(_Event):
    """``deleted`` is ``None`` when the message was not seen before."""

    kind = EventType.MESSAGE_DELETE
    id: str
    deleted: MessageSnapshot | None = None


ClientEvent = Union[
    ReadyEvent,
    ErrorEvent,
    ConnectedEvent,
    DroppedEvent,
    MessageEvent,
    MessageUpdateEvent,
    MessageDeleteEvent,
]

# Type alias for event handlers
EventHandler = Callable[[Any], Union[Coroutine[Any, Any, None], None]]


class EventBus:
    """Fans client events out to registered handlers."""

    def __init__(self) -> None:
        self._handlers: dict[EventType, list[EventHandler]] = defaultdict(list)
        self._wildcard_handlers: list[EventHandler] = []

    def subscribe(self, event_type: EventType | str, handler: EventHandler) -> Callable[[], None]:
        """Register a handler for a specific event type.

        Returns a callable that removes this registration.
        """
        kind = EventType(event_type)
        self._handlers[kind].append(handler)
        return lambda: self.unsubscribe(kind, handler)

    def subscribe_all(self, handler: EventHandler) -> Callable[[], None]:
        """Register a handler for all event types."""
        self._wildcard_handlers.append(handler)

        def remove() -> None:
            self._wildcard_handlers = [h for h in self._wildcard_handlers if h is not handler]

        return remove

    def unsubscribe(self, event_type: EventType | str, handler: EventHandler | None = None) -> None:
        """Remove a handler (or all handlers) for an event type."""
        kind = EventType(event_type)
        if handler is None:
            self._handlers.pop(kind, None)
        else:
            handlers = self._handlers.get(kind, [])
            self._handlers[kind] = [h for h in handlers if h is not handler]

    def listener_count(self, event_type: EventType | str) -> int:
        return len(self._handlers.get(EventType(event_type), []))

    async def emit(self, event: ClientEvent) -> None:
        """Dispatch an event to all matching handlers, in registration order."""
        handlers = list(self._handlers.get(event.kind, []))
        handlers.extend(self._wildcard_handlers)

        if event.kind is EventType.ERROR and not handlers:
            logger.warning("Unhandled client error: %s", event.error)  # type: ignore[union-attr]

        for handler in handlers:
            try:
                result = handler(event)
                if asyncio.iscoroutine(result):
                    await result
            except Exception:
                logger.exception("Error in event handler for %s", event.kind.value)
