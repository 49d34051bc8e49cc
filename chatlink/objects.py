"""
Domain entities kept in the client's cache.

A cached entity is the single live object for its id: fresher data is
applied to it in place, so references handed to event handlers stay
current for the rest of the session.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from chatlink.types import RawChannel, RawMessage, RawUser


class User:
    """A user known to this client."""

    def __init__(self, raw: RawUser) -> None:
        self.id = raw.id
        self.update(raw)

    def update(self, raw: RawUser) -> None:
        self.username = raw.username
        self.avatar = raw.avatar
        self.status = raw.status
        self.relationship = raw.relationship

    def __repr__(self) -> str:
        return f"User(id={self.id!r}, username={self.username!r})"


class MessageSnapshot(BaseModel):
    """Immutable copy of a message's fields taken just before it changed."""

    id: str
    channel_id: str
    author_id: str | None = None
    content: str = ""
    edited: str | None = None
    attachments: list[dict[str, Any]] = Field(default_factory=list)

    model_config = {"frozen": True}


class Message:
    """A message inside a :class:`Channel`."""

    def __init__(self, raw: RawMessage, channel: Channel) -> None:
        self.id = raw.id
        self.channel = channel
        self.author: User | None = None
        self.update(raw)

    def update(self, raw: RawMessage) -> None:
        self.author_id = raw.author
        self.content = raw.content
        self.edited = raw.edited
        self.attachments = [dict(a) for a in raw.attachments]
        if self.author is not None and self.author.id != raw.author:
            self.author = None

    def snapshot(self) -> MessageSnapshot:
        return MessageSnapshot(
            id=self.id,
            channel_id=self.channel.id,
            author_id=self.author_id,
            content=self.content,
            edited=self.edited,
            attachments=[dict(a) for a in self.attachments],
        )

    def __repr__(self) -> str:
        return f"Message(id={self.id!r}, channel={self.channel.id!r}, content={self.content!r})"


class Channel:
    """A channel and the messages observed in it during this session."""

    def __init__(self, raw: RawChannel) -> None:
        self.id = raw.id
        self.messages: dict[str, Message] = {}
        self.update(raw)

    def update(self, raw: RawChannel) -> None:
        self.channel_type = raw.channel_type
        self.name = raw.name
        self.description = raw.description
        self.recipients = list(raw.recipients)

    def __repr__(self) -> str:
        return f"Channel(id={self.id!r}, name={self.name!r})"
