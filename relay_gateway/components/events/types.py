"""
Wire message types.

Inbound text frames are parsed into typed events; the session consumes
those instead of raw dictionaries. Outbound frames are built by the
helpers at the bottom so every component emits the same shapes.

Inbound:
    {"event": "joinGroup", "groupId": "<id>"}
    {"event": "sendMessage", "message": <any JSON>}
    {"type": "ping"} / "ping"       client keepalive, answered with pong
    {"type": "pong"} / "pong"       answer to the server's health probe

Outbound:
    {"sender": "<identity>", "message": <any JSON>}
    {"error": "<text>"}
"""

from __future__ import annotations

import json
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator

from relay_gateway.components.core.constants import (
    MSG_PING_PLAIN,
    MSG_PONG_PLAIN,
    WSConstants,
)
from relay_gateway.components.core.errors import ProtocolError

# Event names
EVENT_JOIN_GROUP = "joinGroup"
EVENT_SEND_MESSAGE = "sendMessage"

VALID_EVENT_TYPES = frozenset({EVENT_JOIN_GROUP, EVENT_SEND_MESSAGE})

# Sent to each connection removed from a group, right before it is closed
REMOVAL_NOTICE: dict[str, str] = {"error": "You have been removed from the group"}


class JoinGroup(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    event: Literal["joinGroup"]
    group_id: str = Field(
        alias="groupId",
        min_length=1,
        max_length=WSConstants.MAX_GROUP_ID_LENGTH,
    )

    @field_validator("group_id", mode="before")
    @classmethod
    def _coerce_group_id(cls, value: Any) -> Any:
        # Numeric ids from older clients are accepted as their string form
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        if isinstance(value, str):
            return value.strip()
        return value


class SendMessage(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)

    event: Literal["sendMessage"]
    # Opaque: chat text, call signaling, whiteboard strokes
    message: Any


class Ping(BaseModel):
    """Client keepalive."""

    type: Literal["ping"] = "ping"


class Pong(BaseModel):
    """Answer to the server's health probe."""

    type: Literal["pong"] = "pong"


ClientEvent = Annotated[Union[JoinGroup, SendMessage], Field(discriminator="event")]
InboundEvent = Union[JoinGroup, SendMessage, Ping, Pong]

_client_event_adapter: TypeAdapter[JoinGroup | SendMessage] = TypeAdapter(ClientEvent)


def parse_inbound(text: str) -> InboundEvent:
    """
    Parse one inbound text frame.

    Raises:
        ProtocolError: If the frame is not JSON, not an object, names an
            unknown event, or is missing required fields.
    """
    stripped = text.strip()
    if stripped == MSG_PING_PLAIN:
        return Ping()
    if stripped == MSG_PONG_PLAIN:
        return Pong()

    try:
        data = json.loads(stripped)
    except ValueError:
        raise ProtocolError(detail="invalid_json")

    if not isinstance(data, dict):
        raise ProtocolError(detail="not_an_object")

    if "event" not in data:
        kind = data.get("type")
        if kind == "ping":
            return Ping()
        if kind == "pong":
            return Pong()
        raise ProtocolError(detail="missing_event")

    event_name = data["event"]
    if not isinstance(event_name, str) or event_name not in VALID_EVENT_TYPES:
        raise ProtocolError("Unknown event type", detail="unknown_event")

    try:
        return _client_event_adapter.validate_python(data)
    except ValidationError as e:
        raise ProtocolError(detail=f"invalid_fields:{e.error_count()}")


def delivered_frame(sender: str, message: Any) -> dict[str, Any]:
    """Frame delivered to group members for a sendMessage."""
    return {"sender": sender, "message": message}


def error_frame(text: str) -> dict[str, str]:
    return {"error": text}
