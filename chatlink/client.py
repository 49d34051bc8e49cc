"""
chatlink client: HTTP and push socket access to the chat service.

Uses ``httpx`` for async HTTP and ``websockets`` for the push socket.

Usage::

    from chatlink import Client, EventType

    client = Client(auto_reconnect=True)

    async def on_message(event):
        print(event.message.content)

    client.on(EventType.MESSAGE, on_message)
    await client.login("me@example.com", "hunter2")
    # ... events arrive while the loop runs
    await client.close()
"""

from __future__ import annotations

import logging
from typing import Any, Callable

from chatlink.cache import EntityCache
from chatlink.events import ErrorEvent, EventBus, EventHandler, EventType
from chatlink.http import HttpGateway
from chatlink.normalizer import EventNormalizer
from chatlink.objects import Channel, User
from chatlink.session import SessionManager, SocketFactory
from chatlink.types import ClientConfig, ConnectionState, LoginRequest, LoginResponse, Session

logger = logging.getLogger(__name__)

LOGIN_FAILED = "Failed to login, unknown error."


class Client:
    """
    The main chatlink client.

    Owns one :class:`~chatlink.types.Session`, the entity cache and the
    event bus. Background failures (login, socket) are reported through
    the ``error`` event; explicit lookups raise to the caller.
    """

    def __init__(
        self,
        config: ClientConfig | None = None,
        *,
        auto_reconnect: bool | None = None,
        socket_factory: SocketFactory | None = None,
    ) -> None:
        self.config = config or ClientConfig()
        if auto_reconnect is not None:
            self.config = self.config.model_copy(update={"auto_reconnect": auto_reconnect})

        self.session = Session(auto_reconnect=self.config.auto_reconnect)
        self._http = HttpGateway(self.config.api_url, self.session, timeout=self.config.request_timeout)
        self._events = EventBus()
        self.cache = EntityCache(self._http, dedupe_fetches=self.config.dedupe_fetches)
        self._sessions = SessionManager(
            self.session,
            self.config,
            self._events,
            EventNormalizer(self.cache, self._events),
            socket_factory=socket_factory,
        )

        self.user: User | None = None

    @property
    def token(self) -> str | None:
        return self.session.token

    @property
    def user_id(self) -> str | None:
        return self.session.user_id

    @property
    def state(self) -> ConnectionState:
        return self.session.state

    @property
    def is_connected(self) -> bool:
        """Whether the socket is open and authenticated."""
        return self.session.state is ConnectionState.AUTHENTICATED

    @property
    def auto_reconnect(self) -> bool:
        return self.session.auto_reconnect

    @auto_reconnect.setter
    def auto_reconnect(self, value: bool) -> None:
        self.session.auto_reconnect = value

    @property
    def users(self) -> dict[str, User]:
        return self.cache.users

    @property
    def channels(self) -> dict[str, Channel]:
        return self.cache.channels

    # ---- Account ----

    async def login(self, email: str, password: str) -> None:
        """Log in, fetch our own profile and open the push socket.

        Never raises: failures are emitted as ``error`` events and leave
        the socket unopened.
        """
        try:
            data = await self._http.request(
                "POST", "/account/login", LoginRequest(email=email, password=password).model_dump()
            )
            result = LoginResponse(**data)

            if not result.success:
                logger.warning("Login rejected for %s: %s", email, result.error)
                await self._events.emit(ErrorEvent(error=result.error or LOGIN_FAILED))
                return

            self.session.token = result.access_token
            self.session.user_id = result.id
            await self._sync()
            logger.info("Logged in as %s", result.id)
            await self.connect()
        except Exception as e:
            logger.warning("Login failed: %s", e)
            await self._events.emit(ErrorEvent(error=e))

    async def logout(self) -> None:
        """Close the socket and forget the token. Cached entities are kept."""
        await self.disconnect()
        self.session.reset()
        self.user = None

    async def _sync(self) -> None:
        self.user = await self.cache.find_user(self.session.user_id or "")

    # ---- Connection ----

    async def connect(self) -> None:
        await self._sessions.connect()

    async def disconnect(self) -> None:
        await self._sessions.disconnect()

    async def close(self) -> None:
        """Tear down the socket and the HTTP client."""
        await self._sessions.disconnect()
        await self._http.close()

    # ---- Lookups ----

    async def lookup(self, query: dict[str, Any]) -> list[User]:
        return await self.cache.lookup(query)

    async def find_user(self, user_id: str) -> User:
        return await self.cache.find_user(user_id)

    async def find_channel(self, channel_id: str) -> Channel:
        return await self.cache.find_channel(channel_id)

    # ---- Event shortcuts ----

    def on(self, event_type: EventType | str, handler: EventHandler) -> Callable[[], None]:
        """Subscribe to a specific event type. Returns an unsubscribe callable."""
        return self._events.subscribe(event_type, handler)

    def on_any(self, handler: EventHandler) -> Callable[[], None]:
        """Subscribe to every event type. Returns an unsubscribe callable."""
        return self._events.subscribe_all(handler)

    def off(self, event_type: EventType | str, handler: EventHandler | None = None) -> None:
        """Unsubscribe from an event type."""
        self._events.unsubscribe(event_type, handler)
