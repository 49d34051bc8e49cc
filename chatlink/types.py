"""
Pydantic models for the chatlink client SDK.

Covers client configuration and the raw records exchanged with the
chat service over HTTP and the push socket. Wire names are the
server's; Python attributes use snake_case aliases where they differ.
"""

from __future__ import annotations

import os
import random
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


# ============================================================
#  Configuration
# ============================================================


class ReconnectConfig(BaseModel):
    """WebSocket reconnection settings.

    Delays follow a capped exponential curve. ``initial_delay_ms=0``
    reconnects immediately after every drop.
    """

    max_retries: int | None = None
    initial_delay_ms: int = 1000
    max_delay_ms: int = 30000
    multiplier: float = 2.0
    jitter: float = 0.0

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait before reconnect ``attempt`` (0-based)."""
        delay_ms = min(self.initial_delay_ms * (self.multiplier ** attempt), self.max_delay_ms)
        if self.jitter:
            delay_ms *= 1 - self.jitter + random.random() * 2 * self.jitter
        return max(delay_ms, 0) / 1000.0

    def exhausted(self, attempt: int) -> bool:
        return self.max_retries is not None and attempt >= self.max_retries


class ClientConfig(BaseModel):
    """Configuration for connecting to the chat service."""

    host: str = "localhost"
    api_port: int = 5500
    ws_port: int = 9999
    auto_reconnect: bool = False
    reconnect: ReconnectConfig = Field(default_factory=ReconnectConfig)
    dedupe_fetches: bool = False
    request_timeout: float = 30.0

    @property
    def api_url(self) -> str:
        return f"http://{self.host}:{self.api_port}/api"

    @property
    def ws_url(self) -> str:
        return f"ws://{self.host}:{self.ws_port}"

    @classmethod
    def from_env(cls, **overrides: Any) -> ClientConfig:
        """Build a config from ``CHATLINK_*`` environment variables.

        Keyword arguments win over the environment.
        """
        values: dict[str, Any] = {}
        if "CHATLINK_HOST" in os.environ:
            values["host"] = os.environ["CHATLINK_HOST"]
        if "CHATLINK_API_PORT" in os.environ:
            values["api_port"] = int(os.environ["CHATLINK_API_PORT"])
        if "CHATLINK_WS_PORT" in os.environ:
            values["ws_port"] = int(os.environ["CHATLINK_WS_PORT"])
        if "CHATLINK_AUTO_RECONNECT" in os.environ:
            values["auto_reconnect"] = os.environ["CHATLINK_AUTO_RECONNECT"].lower() in ("1", "true", "yes")
        values.update(overrides)
        return cls(**values)


# ============================================================
#  Connection
# ============================================================


class ConnectionState(str, Enum):
    """Lifecycle of the push socket."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    SOCKET_OPEN = "socket_open"
    AUTHENTICATED = "authenticated"


class Session(BaseModel):
    """Mutable per-client state shared by the HTTP gateway and the socket.

    ``token`` is read on every request and every handshake, so it has a
    single owner.
    """

    token: str | None = None
    user_id: str | None = None
    state: ConnectionState = ConnectionState.DISCONNECTED
    auto_reconnect: bool = False

    def reset(self) -> None:
        self.token = None
        self.user_id = None


# ============================================================
#  Account
# ============================================================


class LoginRequest(BaseModel):
    email: str
    password: str


class LoginResponse(BaseModel):
    """Result of ``POST /account/login``."""

    success: bool
    access_token: str | None = None
    id: str | None = None
    error: str | None = None


# ============================================================
#  Entities
# ============================================================


class RawUser(BaseModel):
    """User record as returned by ``/users``."""

    id: str
    username: str | None = None
    avatar: str | None = None
    status: str | None = None
    relationship: str | None = None


class RawChannel(BaseModel):
    """Channel record as returned by ``/channels``."""

    id: str
    channel_type: str | None = Field(None, alias="type")
    name: str | None = None
    description: str | None = None
    recipients: list[str] = Field(default_factory=list)

    model_config = {"populate_by_name": True}


class RawMessage(BaseModel):
    """Message record as pushed over the socket."""

    id: str
    channel: str
    author: str | None = None
    content: str = ""
    edited: str | None = None
    attachments: list[dict[str, Any]] = Field(default_factory=list)


class MessageRef(BaseModel):
    """Identifies a message within a channel."""

    id: str
    channel: str
