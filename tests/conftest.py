"""
Shared fixtures: an in-memory push socket and a client wired to it.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, Callable

import pytest

from chatlink import Client, ClientConfig, ReconnectConfig


HOST = "chat.test"
API_URL = f"http://{HOST}:5500/api"
WS_URL = f"ws://{HOST}:9999"


class FakeSocket:
    """Stands in for a ``websockets`` client connection."""

    def __init__(self) -> None:
        self.sent: list[dict[str, Any]] = []
        self.closed = False
        self._inbox: asyncio.Queue[str | bytes | Exception | None] = asyncio.Queue()

    async def send(self, data: str) -> None:
        self.sent.append(json.loads(data))

    def push(self, frame: dict[str, Any] | str | bytes) -> None:
        """Deliver a frame from the server."""
        self._inbox.put_nowait(frame if isinstance(frame, (str, bytes)) else json.dumps(frame))

    def drop(self) -> None:
        """Simulate the server closing the connection."""
        self._inbox.put_nowait(None)

    def fail(self, error: Exception) -> None:
        """Make the next read raise ``error``, as a broken connection does."""
        self._inbox.put_nowait(error)

    async def close(self, code: int = 1000) -> None:
        self.closed = True
        self._inbox.put_nowait(None)

    def __aiter__(self) -> FakeSocket:
        return self

    async def __anext__(self) -> str | bytes:
        item = await self._inbox.get()
        if isinstance(item, Exception):
            raise item
        if item is None:
            self.closed = True
            raise StopAsyncIteration
        return item


class FakeSocketFactory:
    """Records connection attempts; optionally fails the next ``fail`` of them."""

    def __init__(self) -> None:
        self.urls: list[str] = []
        self.sockets: list[FakeSocket] = []
        self.fail = 0

    async def __call__(self, url: str) -> FakeSocket:
        self.urls.append(url)
        if self.fail > 0:
            self.fail -= 1
            raise OSError("Connection refused")
        ws = FakeSocket()
        self.sockets.append(ws)
        return ws

    @property
    def last(self) -> FakeSocket:
        return self.sockets[-1]


class Recorder:
    """Collects every event a client emits."""

    def __init__(self) -> None:
        self.events: list[Any] = []

    def __call__(self, event: Any) -> None:
        self.events.append(event)

    def kinds(self) -> list[str]:
        return [e.kind.value for e in self.events]

    def of(self, kind: str) -> list[Any]:
        return [e for e in self.events if e.kind.value == kind]


@pytest.fixture
def sockets() -> FakeSocketFactory:
    return FakeSocketFactory()


@pytest.fixture
def make_client(sockets: FakeSocketFactory) -> Callable[..., tuple[Client, Recorder]]:
    """Build a client on the fake socket with immediate reconnects."""

    def factory(auto_reconnect: bool = False, **overrides: Any) -> tuple[Client, Recorder]:
        values: dict[str, Any] = {
            "host": HOST,
            "auto_reconnect": auto_reconnect,
            "reconnect": ReconnectConfig(initial_delay_ms=0),
        }
        values.update(overrides)
        client = Client(ClientConfig(**values), socket_factory=sockets)
        recorder = Recorder()
        client.on_any(recorder)
        return client, recorder

    return factory


@pytest.fixture
def wait_until() -> Callable[..., Any]:
    """Poll ``predicate`` on the running loop until it holds."""

    async def wait(predicate: Callable[[], bool], timeout: float = 1.0) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not predicate():
            if loop.time() > deadline:
                raise AssertionError("Condition not met before timeout")
            await asyncio.sleep(0.005)

    return wait
