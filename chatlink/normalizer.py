"""
Turns decoded push frames into cache updates and client events.
"""

from __future__ import annotations

import logging

from chatlink.cache import EntityCache
from chatlink.events import EventBus, MessageDeleteEvent, MessageEvent, MessageUpdateEvent
from chatlink.frames import (
    Frame,
    MessageDeleteFrame,
    MessageFrame,
    MessageUpdateFrame,
    UnknownFrame,
)

logger = logging.getLogger(__name__)


class EventNormalizer:
    """Applies message frames to the cache and publishes the results.

    ``authenticate`` frames belong to the session and are not handled here.
    """

    def __init__(self, cache: EntityCache, bus: EventBus) -> None:
        self._cache = cache
        self._bus = bus

    async def handle(self, frame: Frame) -> None:
        if isinstance(frame, MessageFrame):
            await self._on_message(frame)
        elif isinstance(frame, MessageUpdateFrame):
            await self._on_message_update(frame)
        elif isinstance(frame, MessageDeleteFrame):
            await self._on_message_delete(frame)
        elif isinstance(frame, UnknownFrame):
            logger.debug("Ignoring unknown frame type %r", frame.type)
        else:
            logger.debug("No normalizer for frame type %r", frame.type)

    async def _on_message(self, frame: MessageFrame) -> None:
        raw = frame.data
        channel = await self._cache.find_channel(raw.channel)
        message = await self._cache.upsert_message(channel, raw)
        await self._bus.emit(MessageEvent(message=message))

    async def _on_message_update(self, frame: MessageUpdateFrame) -> None:
        raw = frame.data
        channel = await self._cache.find_channel(raw.channel)
        # Snapshot before the next await so it can't observe the update.
        existing = channel.messages.get(raw.id)
        previous = existing.snapshot() if existing is not None else None
        message = await self._cache.upsert_message(channel, raw)
        await self._bus.emit(MessageUpdateEvent(message=message, previous=previous))

    async def _on_message_delete(self, frame: MessageDeleteFrame) -> None:
        ref = frame.data
        channel = await self._cache.find_channel(ref.channel)
        existing = channel.messages.pop(ref.id, None)
        deleted = existing.snapshot() if existing is not None else None
        await self._bus.emit(MessageDeleteEvent(id=ref.id, deleted=deleted))
