"""
Pydantic models for the voice-AI realtime WebSocket protocol.

Server events are decoded once at the adapter boundary into a closed set of
models keyed by their ``type``; unknown types decode to ``UnrecognizedEvent``.
Client commands are built from the outgoing models and serialized with
``encode_realtime_command``.
"""

import json
import logging
from typing import Any, Dict, List, Literal, Optional, Type, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from newsline.config.constants import (
    AUDIO_FORMAT_PCMU,
    LOGGER_NAME,
    REALTIME_EVENT_AUDIO_DELTA,
    REALTIME_EVENT_AUDIO_DELTA_LEGACY,
    REALTIME_EVENT_BUFFER_COMMITTED,
    REALTIME_EVENT_CONVERSATION_CREATED,
    REALTIME_EVENT_ERROR,
    REALTIME_EVENT_FUNCTION_ARGS_DELTA,
    REALTIME_EVENT_FUNCTION_ARGS_DONE,
    REALTIME_EVENT_INPUT_TRANSCRIPTION_COMPLETED,
    REALTIME_EVENT_OUTPUT_ITEM_ADDED,
    REALTIME_EVENT_PING,
    REALTIME_EVENT_RESPONSE_CREATED,
    REALTIME_EVENT_RESPONSE_DONE,
    REALTIME_EVENT_SESSION_CREATED,
    REALTIME_EVENT_SESSION_UPDATED,
    REALTIME_EVENT_SPEECH_STARTED,
    REALTIME_EVENT_SPEECH_STOPPED,
    REALTIME_EVENT_TRANSCRIPT_DELTA,
    REALTIME_EVENT_TRANSCRIPT_DELTA_LEGACY,
    REALTIME_EVENT_TRANSCRIPT_DONE,
    REALTIME_EVENT_TRANSCRIPT_DONE_LEGACY,
)

logger = logging.getLogger(LOGGER_NAME)

# Format names older sessions echo back in session.input_audio_format
LEGACY_AUDIO_FORMATS = {
    "g711_ulaw": AUDIO_FORMAT_PCMU,
    "g711_alaw": "audio/pcma",
    "pcm16": "audio/pcm",
}


class RealtimeEvent(BaseModel):
    """Base model for server events."""

    model_config = ConfigDict(extra="ignore")

    type: str
    event_id: Optional[str] = None


# Session lifecycle
class SessionCreatedEvent(RealtimeEvent):
    type: Literal["session.created"]
    session: Dict[str, Any] = Field(default_factory=dict)


class ConversationCreatedEvent(RealtimeEvent):
    type: Literal["conversation.created"]
    conversation: Dict[str, Any] = Field(default_factory=dict)


class SessionUpdatedEvent(RealtimeEvent):
    """Confirmation of a session.update command."""

    type: Literal["session.updated"]
    session: Dict[str, Any] = Field(default_factory=dict)

    @property
    def input_audio_format(self) -> Optional[str]:
        """Input audio format reported by the server, if it reports one."""
        audio = self.session.get("audio") or {}
        fmt = (audio.get("input") or {}).get("format")
        if isinstance(fmt, dict):
            return fmt.get("type")
        if isinstance(fmt, str):
            return fmt
        legacy = self.session.get("input_audio_format")
        if not isinstance(legacy, str):
            return None
        return LEGACY_AUDIO_FORMATS.get(legacy, legacy)


# Responses
class ResponseCreatedEvent(RealtimeEvent):
    type: Literal["response.created"]
    response: Dict[str, Any] = Field(default_factory=dict)


class ResponseDoneEvent(RealtimeEvent):
    type: Literal["response.done"]
    response: Dict[str, Any] = Field(default_factory=dict)


class OutputItemAddedEvent(RealtimeEvent):
    type: Literal["response.output_item.added"]
    item: Dict[str, Any] = Field(default_factory=dict)

    @property
    def is_function_call(self) -> bool:
        return self.item.get("type") == "function_call"


class AudioDeltaEvent(RealtimeEvent):
    """Chunk of assistant audio, base64 u-law."""

    type: Literal["response.output_audio.delta", "response.audio.delta"]
    delta: str = ""
    response_id: Optional[str] = None
    item_id: Optional[str] = None


class TranscriptDeltaEvent(RealtimeEvent):
    type: Literal[
        "response.output_audio_transcript.delta", "response.audio_transcript.delta"
    ]
    delta: str = ""


class TranscriptDoneEvent(RealtimeEvent):
    type: Literal[
        "response.output_audio_transcript.done", "response.audio_transcript.done"
    ]
    transcript: Optional[str] = None


# Tool calls
class FunctionCallArgumentsDeltaEvent(RealtimeEvent):
    type: Literal["response.function_call_arguments.delta"]
    call_id: Optional[str] = None
    delta: str = ""


class FunctionCallArgumentsDoneEvent(RealtimeEvent):
    type: Literal["response.function_call_arguments.done"]
    call_id: str
    name: str
    arguments: Optional[str] = None


# Caller speech
class SpeechStartedEvent(RealtimeEvent):
    """Server VAD detected the caller speaking (barge-in)."""

    type: Literal["input_audio_buffer.speech_started"]
    audio_start_ms: Optional[int] = None
    item_id: Optional[str] = None


class SpeechStoppedEvent(RealtimeEvent):
    type: Literal["input_audio_buffer.speech_stopped"]
    audio_start_ms: Optional[int] = None
    audio_end_ms: Optional[int] = None


class BufferCommittedEvent(RealtimeEvent):
    type: Literal["input_audio_buffer.committed"]
    item_id: Optional[str] = None


class InputTranscriptionCompletedEvent(RealtimeEvent):
    type: Literal["conversation.item.input_audio_transcription.completed"]
    transcript: str = ""
    item_id: Optional[str] = None


# Misc
class ErrorDetail(BaseModel):
    model_config = ConfigDict(extra="ignore")

    type: Optional[str] = None
    code: Optional[str] = None
    message: Optional[str] = None


class ErrorEvent(RealtimeEvent):
    type: Literal["error"]
    error: ErrorDetail = Field(default_factory=ErrorDetail)


class PingEvent(RealtimeEvent):
    type: Literal["ping"]


class UnrecognizedEvent(RealtimeEvent):
    """Any event outside the recognized vocabulary."""

    raw: Dict[str, Any] = Field(default_factory=dict)


IncomingRealtimeEvent = Union[
    SessionCreatedEvent,
    ConversationCreatedEvent,
    SessionUpdatedEvent,
    ResponseCreatedEvent,
    ResponseDoneEvent,
    OutputItemAddedEvent,
    AudioDeltaEvent,
    TranscriptDeltaEvent,
    TranscriptDoneEvent,
    FunctionCallArgumentsDeltaEvent,
    FunctionCallArgumentsDoneEvent,
    SpeechStartedEvent,
    SpeechStoppedEvent,
    BufferCommittedEvent,
    InputTranscriptionCompletedEvent,
    ErrorEvent,
    PingEvent,
    UnrecognizedEvent,
]

REALTIME_EVENT_TYPES: Dict[str, Type[RealtimeEvent]] = {
    REALTIME_EVENT_SESSION_CREATED: SessionCreatedEvent,
    REALTIME_EVENT_CONVERSATION_CREATED: ConversationCreatedEvent,
    REALTIME_EVENT_SESSION_UPDATED: SessionUpdatedEvent,
    REALTIME_EVENT_RESPONSE_CREATED: ResponseCreatedEvent,
    REALTIME_EVENT_RESPONSE_DONE: ResponseDoneEvent,
    REALTIME_EVENT_OUTPUT_ITEM_ADDED: OutputItemAddedEvent,
    REALTIME_EVENT_AUDIO_DELTA: AudioDeltaEvent,
    REALTIME_EVENT_AUDIO_DELTA_LEGACY: AudioDeltaEvent,
    REALTIME_EVENT_TRANSCRIPT_DELTA: TranscriptDeltaEvent,
    REALTIME_EVENT_TRANSCRIPT_DELTA_LEGACY: TranscriptDeltaEvent,
    REALTIME_EVENT_TRANSCRIPT_DONE: TranscriptDoneEvent,
    REALTIME_EVENT_TRANSCRIPT_DONE_LEGACY: TranscriptDoneEvent,
    REALTIME_EVENT_FUNCTION_ARGS_DELTA: FunctionCallArgumentsDeltaEvent,
    REALTIME_EVENT_FUNCTION_ARGS_DONE: FunctionCallArgumentsDoneEvent,
    REALTIME_EVENT_SPEECH_STARTED: SpeechStartedEvent,
    REALTIME_EVENT_SPEECH_STOPPED: SpeechStoppedEvent,
    REALTIME_EVENT_BUFFER_COMMITTED: BufferCommittedEvent,
    REALTIME_EVENT_INPUT_TRANSCRIPTION_COMPLETED: InputTranscriptionCompletedEvent,
    REALTIME_EVENT_ERROR: ErrorEvent,
    REALTIME_EVENT_PING: PingEvent,
}


def decode_realtime_event(data: Union[str, bytes]) -> Optional[IncomingRealtimeEvent]:
    """
    Decode one frame from the voice-AI socket.

    Args:
        data: Raw JSON text (or UTF-8 bytes) received from the socket

    Returns:
        The typed event, an UnrecognizedEvent for unknown types, or None when
        the frame is not a valid JSON object or fails validation
    """
    try:
        message_dict = json.loads(data)
    except (json.JSONDecodeError, UnicodeDecodeError):
        logger.warning(f"Received invalid JSON from realtime API: {data[:100]!r}...")
        return None

    if not isinstance(message_dict, dict):
        logger.warning(f"Realtime message is not an object: {data[:100]!r}...")
        return None

    event_type = message_dict.get("type")
    model = REALTIME_EVENT_TYPES.get(event_type)
    if model is None:
        return UnrecognizedEvent(type=str(event_type), raw=message_dict)

    try:
        return model(**message_dict)
    except ValidationError as e:
        logger.error(f"Realtime event validation error ({event_type}): {e}")
        return None


# Outgoing commands
class RealtimeCommand(BaseModel):
    """Base model for client commands."""

    type: str


class AudioFormat(BaseModel):
    type: str = AUDIO_FORMAT_PCMU


class AudioDirection(BaseModel):
    format: AudioFormat = Field(default_factory=AudioFormat)


class SessionAudio(BaseModel):
    input: AudioDirection = Field(default_factory=AudioDirection)
    output: AudioDirection = Field(default_factory=AudioDirection)


class SessionConfig(BaseModel):
    instructions: str
    voice: str
    audio: SessionAudio = Field(default_factory=SessionAudio)
    turn_detection: Dict[str, Any] = Field(
        default_factory=lambda: {"type": "server_vad"}
    )
    input_audio_transcription: Optional[Dict[str, Any]] = None
    tools: List[Dict[str, Any]] = Field(default_factory=list)
    tool_choice: str = "auto"


class SessionUpdateCommand(RealtimeCommand):
    type: Literal["session.update"] = "session.update"
    session: SessionConfig


class InputTextContent(BaseModel):
    type: Literal["input_text"] = "input_text"
    text: str


class MessageItem(BaseModel):
    type: Literal["message"] = "message"
    role: Literal["user", "assistant", "system"] = "user"
    content: List[InputTextContent]


class FunctionCallOutputItem(BaseModel):
    type: Literal["function_call_output"] = "function_call_output"
    call_id: str
    output: str


class ConversationItemCreateCommand(RealtimeCommand):
    type: Literal["conversation.item.create"] = "conversation.item.create"
    item: Union[MessageItem, FunctionCallOutputItem]


class ResponseCreateCommand(RealtimeCommand):
    type: Literal["response.create"] = "response.create"


class InputAudioAppendCommand(RealtimeCommand):
    type: Literal["input_audio_buffer.append"] = "input_audio_buffer.append"
    audio: str


OutgoingRealtimeCommand = Union[
    SessionUpdateCommand,
    ConversationItemCreateCommand,
    ResponseCreateCommand,
    InputAudioAppendCommand,
]


def encode_realtime_command(command: RealtimeCommand) -> str:
    """Serialize a client command, omitting unset optional fields."""
    return command.model_dump_json(exclude_none=True)
