"""
Push socket session: connection, authentication handshake and reconnects.

One :class:`SessionManager` owns at most one live socket. Every call to
:meth:`SessionManager.connect` starts a new connection generation; frames
and close notifications from an older generation are ignored, so a
replaced socket can never move the session's state.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable

import websockets
from pydantic import ValidationError

from chatlink.events import ConnectedEvent, DroppedEvent, ErrorEvent, EventBus, ReadyEvent
from chatlink.frames import AuthenticateFrame, FrameDecodeError, authenticate_frame, decode_frame
from chatlink.normalizer import EventNormalizer
from chatlink.types import ClientConfig, ConnectionState, Session

logger = logging.getLogger(__name__)

SocketFactory = Callable[[str], Awaitable[Any]]

AUTH_FAILED = "Failed to auth with websocket, unknown error."


class SessionManager:
    """Drives the socket through its connection states."""

    def __init__(
        self,
        session: Session,
        config: ClientConfig,
        bus: EventBus,
        normalizer: EventNormalizer,
        socket_factory: SocketFactory | None = None,
    ) -> None:
        self.session = session
        self._config = config
        self._bus = bus
        self._normalizer = normalizer
        self._socket_factory: SocketFactory = socket_factory or websockets.connect

        self._ws: Any | None = None
        self._reader_task: asyncio.Task[None] | None = None
        self._retired_readers: set[asyncio.Task[None]] = set()
        self._reconnect_task: asyncio.Task[None] | None = None
        self._generation = 0
        self._attempt = 0
        self._previously_connected = False

    @property
    def state(self) -> ConnectionState:
        return self.session.state

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect_task is not None and not self._reconnect_task.done()

    # -- Public ---------------------------------------------------------------

    async def connect(self) -> None:
        """Open a fresh socket and send the authenticate frame.

        Any existing socket is closed first. Failures to open are handled
        like a close: ``dropped`` is emitted and, with auto-reconnect on,
        another attempt is scheduled.
        """
        self._cancel_reconnect()
        self._generation += 1
        generation = self._generation
        await self._close_socket()

        url = self._config.ws_url
        self._set_state(ConnectionState.CONNECTING)
        try:
            ws = await self._socket_factory(url)
        except Exception as e:
            logger.warning("WebSocket connection to %s failed: %s", url, e)
            if generation == self._generation:
                await self._on_close(generation)
            return

        if generation != self._generation:
            # Replaced by a newer connect() while this one was opening
            await self._quiet_close(ws)
            return

        self._ws = ws
        self._set_state(ConnectionState.SOCKET_OPEN)
        self._reader_task = asyncio.create_task(self._read_loop(ws, generation))
        try:
            await ws.send(authenticate_frame(self.session.token))
        except Exception as e:
            # The reader sees the closed socket and runs close handling
            logger.warning("Failed to send authenticate frame: %s", e)

    async def disconnect(self) -> None:
        """Close the socket on purpose. Does not reconnect."""
        self._cancel_reconnect()
        self._generation += 1
        was_connected = self.session.state is not ConnectionState.DISCONNECTED
        await self._close_socket()
        if was_connected:
            self._set_state(ConnectionState.DISCONNECTED)
            await self._bus.emit(DroppedEvent())
        logger.info("Disconnected from %s", self._config.ws_url)

    # -- Socket lifecycle -----------------------------------------------------

    async def _read_loop(self, ws: Any, generation: int) -> None:
        try:
            async for raw in ws:
                if generation != self._generation:
                    break
                await self._on_raw(raw)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning("WebSocket connection lost: %s", e)
            await self._quiet_close(ws)

        if generation == self._generation:
            await self._on_close(generation)

    async def _on_raw(self, raw: str | bytes) -> None:
        try:
            frame = decode_frame(raw)
        except (FrameDecodeError, ValidationError) as e:
            logger.warning("Ignoring malformed frame: %s", e)
            return

        if isinstance(frame, AuthenticateFrame):
            await self._on_authenticate(frame)
            return

        if self.session.state is not ConnectionState.AUTHENTICATED:
            logger.debug("Dropping %s frame received while %s", frame.type, self.session.state.value)
            return

        try:
            await self._normalizer.handle(frame)
        except Exception as e:
            logger.warning("Failed to process %s frame: %s", frame.type, e)
            await self._bus.emit(ErrorEvent(error=e))

    async def _on_authenticate(self, frame: AuthenticateFrame) -> None:
        if not frame.success:
            logger.warning("Socket authentication rejected: %s", frame.error)
            await self._bus.emit(ErrorEvent(error=frame.error or AUTH_FAILED))
            return

        self._set_state(ConnectionState.AUTHENTICATED)
        self._attempt = 0
        logger.info("Socket authenticated as %s", self.session.user_id)

        await self._bus.emit(ConnectedEvent())
        if not self._previously_connected:
            self._previously_connected = True
            await self._bus.emit(ReadyEvent())

    async def _on_close(self, generation: int) -> None:
        self._ws = None
        if self._reader_task is asyncio.current_task():
            self._reader_task = None
        self._set_state(ConnectionState.DISCONNECTED)
        await self._bus.emit(DroppedEvent())

        # A dropped handler may already have reconnected by hand
        if generation == self._generation and self.session.auto_reconnect:
            await self._schedule_reconnect()

    async def _schedule_reconnect(self) -> None:
        if self.reconnect_pending:
            return

        policy = self._config.reconnect
        if policy.exhausted(self._attempt):
            logger.warning("Giving up reconnecting after %d attempts", self._attempt)
            await self._bus.emit(ErrorEvent(error=f"Gave up reconnecting after {self._attempt} attempts"))
            return

        delay = policy.delay_for(self._attempt)
        self._attempt += 1
        logger.info("Reconnecting in %.1fs (attempt %d)", delay, self._attempt)
        self._reconnect_task = asyncio.create_task(self._reconnect_after(delay))

    async def _reconnect_after(self, delay: float) -> None:
        await asyncio.sleep(delay)
        self._reconnect_task = None
        await self.connect()

    # -- Internal -------------------------------------------------------------

    def _set_state(self, state: ConnectionState) -> None:
        if self.session.state is not state:
            logger.debug("Session state %s -> %s", self.session.state.value, state.value)
            self.session.state = state

    def _cancel_reconnect(self) -> None:
        task = self._reconnect_task
        self._reconnect_task = None
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()

    async def _close_socket(self) -> None:
        """Close the current socket, leaving its reader to finish the frame in hand.

        The reader is not cancelled, so fetches it started still complete and
        emit. The generation guard in :meth:`_read_loop` keeps it from reading
        further frames or running close handling.
        """
        ws, task = self._ws, self._reader_task
        self._ws = None
        self._reader_task = None

        if task is not None and not task.done():
            self._retired_readers.add(task)
            task.add_done_callback(self._retired_readers.discard)

        if ws is not None:
            await self._quiet_close(ws)

    @staticmethod
    async def _quiet_close(ws: Any) -> None:
        try:
            await ws.close()
        except Exception as e:
            logger.debug("Error closing WebSocket: %s", e)
