"""
In-memory cache of users and channels, keyed by server id.

Lookups resolve from the cache and fall back to the HTTP API on a miss.
Concurrent misses for the same id each fetch on their own unless
``dedupe_fetches`` is set, in which case they share one request.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, TypeVar
from urllib.parse import quote as url_quote

from chatlink.http import HttpGateway
from chatlink.objects import Channel, Message, User
from chatlink.types import RawChannel, RawMessage, RawUser

logger = logging.getLogger(__name__)

T = TypeVar("T")


class EntityCache:
    """Id-keyed store of users and channels seen in this session."""

    def __init__(self, http: HttpGateway, dedupe_fetches: bool = False) -> None:
        self._http = http
        self.dedupe_fetches = dedupe_fetches
        self.users: dict[str, User] = {}
        self.channels: dict[str, Channel] = {}
        self._inflight: dict[tuple[str, str], asyncio.Task[Any]] = {}

    # -- Users ----------------------------------------------------------------

    async def find_user(self, user_id: str) -> User:
        """Return the cached user, fetching ``GET /users/{id}`` on a miss."""
        user = self.users.get(user_id)
        if user is not None:
            return user
        return await self._fetch("user", user_id, self._fetch_user)

    async def _fetch_user(self, user_id: str) -> User:
        data = await self._http.request("GET", f"/users/{url_quote(user_id, safe='')}")
        return self.store_user(RawUser(**data))

    def store_user(self, raw: RawUser) -> User:
        """Insert a user, or refresh the cached one in place."""
        user = self.users.get(raw.id)
        if user is None:
            user = User(raw)
            self.users[raw.id] = user
        else:
            user.update(raw)
        return user

    async def lookup(self, query: dict[str, Any]) -> list[User]:
        """Search users via ``POST /users/lookup``, in server order."""
        data = await self._http.request("POST", "/users/lookup", query)
        return [self.store_user(RawUser(**item)) for item in data]

    # -- Channels -------------------------------------------------------------

    async def find_channel(self, channel_id: str) -> Channel:
        """Return the cached channel, fetching ``GET /channels/{id}`` on a miss."""
        channel = self.channels.get(channel_id)
        if channel is not None:
            return channel
        return await self._fetch("channel", channel_id, self._fetch_channel)

    async def _fetch_channel(self, channel_id: str) -> Channel:
        data = await self._http.request("GET", f"/channels/{url_quote(channel_id, safe='')}")
        return self.store_channel(RawChannel(**data))

    def store_channel(self, raw: RawChannel) -> Channel:
        """Insert a channel, or refresh the cached one in place."""
        channel = self.channels.get(raw.id)
        if channel is None:
            channel = Channel(raw)
            self.channels[raw.id] = channel
        else:
            channel.update(raw)
        return channel

    # -- Messages -------------------------------------------------------------

    async def upsert_message(self, channel: Channel, raw: RawMessage) -> Message:
        """Apply a pushed message to ``channel`` and resolve its author."""
        message = channel.messages.get(raw.id)
        if message is None:
            message = Message(raw, channel)
            channel.messages[raw.id] = message
        else:
            message.update(raw)
        if raw.author and message.author is None:
            message.author = await self.find_user(raw.author)
        return message

    # -- Internal -------------------------------------------------------------

    async def _fetch(self, kind: str, entity_id: str, fetch: Callable[[str], Awaitable[T]]) -> T:
        if not self.dedupe_fetches:
            return await fetch(entity_id)

        key = (kind, entity_id)
        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(fetch(entity_id))
            self._inflight[key] = task
            task.add_done_callback(lambda t: self._inflight.get(key) is t and self._inflight.pop(key))
        else:
            logger.debug("Joining in-flight %s fetch for %s", kind, entity_id)
        return await asyncio.shield(task)
