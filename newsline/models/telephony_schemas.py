"""
Pydantic models for the telephony media-stream WebSocket protocol.

Every message on the socket is a JSON object discriminated by its ``event`` field.
Inbound messages are decoded once at the adapter boundary into one of the closed
set of models below; anything outside the recognized vocabulary becomes an
``UnrecognizedTelephonyMessage`` so callers can ignore it without failing the call.
"""

import json
import logging
from typing import Any, Dict, Literal, Optional, Type, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from newsline.config.constants import LOGGER_NAME, TELEPHONY_TRACK_INBOUND

logger = logging.getLogger(LOGGER_NAME)


class TelephonyMessage(BaseModel):
    """Base model for all media-stream messages."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    event: str = Field(..., description="Message type identifier")


# Inbound messages
class ConnectedMessage(TelephonyMessage):
    """First message after the socket opens."""

    event: Literal["connected"]
    protocol: Optional[str] = None
    version: Optional[str] = None


class StreamStart(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    stream_sid: str = Field(..., alias="streamSid")
    call_sid: Optional[str] = Field(None, alias="callSid")
    account_sid: Optional[str] = Field(None, alias="accountSid")
    tracks: list = Field(default_factory=list)
    custom_parameters: Dict[str, Any] = Field(
        default_factory=dict, alias="customParameters"
    )

    @field_validator("stream_sid")
    def validate_stream_sid(cls, v):
        """A stream handle is needed to address every outbound frame."""
        if not v.strip():
            raise ValueError("streamSid cannot be empty")
        return v


class StartMessage(TelephonyMessage):
    """Stream started; carries the handle used to address outbound frames."""

    event: Literal["start"]
    start: StreamStart
    stream_sid: Optional[str] = Field(None, alias="streamSid")


class MediaPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    payload: str = Field(..., description="Base64-encoded u-law audio")
    track: str = TELEPHONY_TRACK_INBOUND
    chunk: Optional[str] = None
    timestamp: Optional[str] = None


class MediaMessage(TelephonyMessage):
    """One inbound audio frame."""

    event: Literal["media"]
    media: MediaPayload
    stream_sid: Optional[str] = Field(None, alias="streamSid")


class StopMessage(TelephonyMessage):
    """Stream stopped by the telephony side."""

    event: Literal["stop"]
    stream_sid: Optional[str] = Field(None, alias="streamSid")


class MarkMessage(TelephonyMessage):
    """Playback marker acknowledgement."""

    event: Literal["mark"]
    mark: Dict[str, Any] = Field(default_factory=dict)


class UnrecognizedTelephonyMessage(TelephonyMessage):
    """Any message outside the recognized vocabulary."""

    raw: Dict[str, Any] = Field(default_factory=dict)


# Outbound messages
class OutboundMediaPayload(BaseModel):
    payload: str


class OutboundMediaMessage(TelephonyMessage):
    """Audio frame for playback to the caller."""

    event: Literal["media"] = "media"
    stream_sid: str = Field(..., serialization_alias="streamSid")
    media: OutboundMediaPayload


class ClearMessage(TelephonyMessage):
    """Discard every frame queued for playback."""

    event: Literal["clear"] = "clear"
    stream_sid: str = Field(..., serialization_alias="streamSid")


IncomingTelephonyMessage = Union[
    ConnectedMessage,
    StartMessage,
    MediaMessage,
    StopMessage,
    MarkMessage,
    UnrecognizedTelephonyMessage,
]

TELEPHONY_MESSAGE_TYPES: Dict[str, Type[TelephonyMessage]] = {
    "connected": ConnectedMessage,
    "start": StartMessage,
    "media": MediaMessage,
    "stop": StopMessage,
    "mark": MarkMessage,
}


def decode_telephony_message(data: str) -> Optional[IncomingTelephonyMessage]:
    """
    Decode one text frame from the media-stream socket.

    Args:
        data: Raw JSON text received from the socket

    Returns:
        The typed message, an UnrecognizedTelephonyMessage for unknown events,
        or None when the frame is not valid JSON or fails validation
    """
    try:
        message_dict = json.loads(data)
    except json.JSONDecodeError:
        logger.warning(f"Received invalid JSON from telephony: {data[:100]}...")
        return None

    if not isinstance(message_dict, dict):
        logger.warning(f"Telephony message is not an object: {data[:100]}...")
        return None

    event = message_dict.get("event")
    model = TELEPHONY_MESSAGE_TYPES.get(event)
    if model is None:
        return UnrecognizedTelephonyMessage(event=str(event), raw=message_dict)

    try:
        return model(**message_dict)
    except ValidationError as e:
        logger.error(f"Telephony message validation error ({event}): {e}")
        return None


def encode_telephony_message(message: TelephonyMessage) -> str:
    """Serialize an outbound message with its wire field names."""
    return message.model_dump_json(by_alias=True, exclude_none=True)
