"""
Push socket frames.

Every inbound frame is a JSON object with a ``type`` discriminator.
``authenticate`` is flat; the message frames carry their payload under
``data``. Types this client does not know decode to :class:`UnknownFrame`
so newer servers can add frames without breaking older clients.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Literal, Union

from pydantic import BaseModel, Field

from chatlink.types import MessageRef, RawMessage

logger = logging.getLogger(__name__)


class FrameDecodeError(ValueError):
    """Raised when a socket payload is not a JSON object."""


class AuthenticateFrame(BaseModel):
    type: Literal["authenticate"] = "authenticate"
    success: bool = False
    error: str | None = None


class MessageFrame(BaseModel):
    type: Literal["message"] = "message"
    data: RawMessage


class MessageUpdateFrame(BaseModel):
    type: Literal["message_update"] = "message_update"
    data: RawMessage


class MessageDeleteFrame(BaseModel):
    type: Literal["message_delete"] = "message_delete"
    data: MessageRef


class UnknownFrame(BaseModel):
    type: str
    payload: dict[str, Any] = Field(default_factory=dict)


Frame = Union[AuthenticateFrame, MessageFrame, MessageUpdateFrame, MessageDeleteFrame, UnknownFrame]

_FRAME_TYPES: dict[str, type[BaseModel]] = {
    "authenticate": AuthenticateFrame,
    "message": MessageFrame,
    "message_update": MessageUpdateFrame,
    "message_delete": MessageDeleteFrame,
}


def decode_frame(raw: str | bytes) -> Frame:
    """Decode one socket payload into a typed frame.

    Raises:
        FrameDecodeError: The payload is not UTF-8 text holding a JSON object.
        pydantic.ValidationError: A known frame type has a malformed payload.
    """
    if isinstance(raw, bytes):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise FrameDecodeError(f"Frame is not valid UTF-8: {e}") from e
    try:
        packet = json.loads(raw)
    except json.JSONDecodeError as e:
        raise FrameDecodeError(f"Invalid JSON frame: {e}") from e
    if not isinstance(packet, dict):
        raise FrameDecodeError(f"Expected a JSON object, got {type(packet).__name__}")

    frame_type = packet.get("type")
    model = _FRAME_TYPES.get(frame_type) if isinstance(frame_type, str) else None
    if model is None:
        return UnknownFrame(type=str(frame_type), payload=packet)
    return model.model_validate(packet)  # type: ignore[return-value]


def authenticate_frame(token: str | None) -> str:
    """Encode the outbound authenticate frame."""
    return json.dumps({"type": "authenticate", "token": token})
