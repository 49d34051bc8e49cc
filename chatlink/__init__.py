"""
chatlink: async client SDK for the chat service.

Talks to the service's HTTP API and keeps an authenticated push socket
open, turning server frames into typed events.

Example::

    from chatlink import Client, EventType

    client = Client(auto_reconnect=True)
    client.on(EventType.READY, lambda event: print("ready"))
    client.on(EventType.MESSAGE, lambda event: print(event.message.content))

    await client.login("me@example.com", "hunter2")
"""

from chatlink.client import Client
from chatlink.events import (
    EventBus,
    EventType,
    ReadyEvent,
    ErrorEvent,
    ConnectedEvent,
    DroppedEvent,
    MessageEvent,
    MessageUpdateEvent,
    MessageDeleteEvent,
)
from chatlink.objects import User, Channel, Message, MessageSnapshot
from chatlink.types import (
    ClientConfig,
    ReconnectConfig,
    ConnectionState,
    Session,
)

__all__ = [
    "Client",
    "ClientConfig",
    "ReconnectConfig",
    "ConnectionState",
    "Session",
    "EventBus",
    "EventType",
    "ReadyEvent",
    "ErrorEvent",
    "ConnectedEvent",
    "DroppedEvent",
    "MessageEvent",
    "MessageUpdateEvent",
    "MessageDeleteEvent",
    "User",
    "Channel",
    "Message",
    "MessageSnapshot",
]

__version__ = "0.1.0"
