"""
Constants and configuration values used throughout the application.

This module keeps the wire vocabulary of both sockets in one place so the
schemas, adapters and bridge agree on names.
"""

# Logger name used throughout the application
LOGGER_NAME = "newsline"

# Defaults
DEFAULT_REALTIME_API_URL = "wss://api.x.ai/v1/realtime"
DEFAULT_VOICE = "rex"
DEFAULT_CONNECT_TIMEOUT = 10.0  # seconds
DEFAULT_HANDSHAKE_TIMEOUT = 15.0  # seconds
DEFAULT_TOOL_TIMEOUT = 30.0  # seconds
DEFAULT_HTTP_TIMEOUT = 10.0  # seconds
DEFAULT_ADMISSION_TTL = 60.0  # seconds an admitted call may wait for its media stream

# Both ends exchange 8kHz G.711 u-law
AUDIO_FORMAT_PCMU = "audio/pcmu"

# Call-status values after which no media stream will connect
TERMINAL_CALL_STATUSES = frozenset({"completed", "failed", "busy", "no-answer", "canceled"})

# Telephony media stream events
TELEPHONY_EVENT_CONNECTED = "connected"
TELEPHONY_EVENT_START = "start"
TELEPHONY_EVENT_MEDIA = "media"
TELEPHONY_EVENT_STOP = "stop"
TELEPHONY_EVENT_MARK = "mark"
TELEPHONY_EVENT_CLEAR = "clear"
TELEPHONY_TRACK_INBOUND = "inbound"

# Voice-AI server events
REALTIME_EVENT_ERROR = "error"
REALTIME_EVENT_PING = "ping"
REALTIME_EVENT_SESSION_CREATED = "session.created"
REALTIME_EVENT_SESSION_UPDATED = "session.updated"
REALTIME_EVENT_CONVERSATION_CREATED = "conversation.created"
REALTIME_EVENT_RESPONSE_CREATED = "response.created"
REALTIME_EVENT_RESPONSE_DONE = "response.done"
REALTIME_EVENT_OUTPUT_ITEM_ADDED = "response.output_item.added"
REALTIME_EVENT_AUDIO_DELTA = "response.output_audio.delta"
REALTIME_EVENT_AUDIO_DELTA_LEGACY = "response.audio.delta"
REALTIME_EVENT_TRANSCRIPT_DELTA = "response.output_audio_transcript.delta"
REALTIME_EVENT_TRANSCRIPT_DELTA_LEGACY = "response.audio_transcript.delta"
REALTIME_EVENT_TRANSCRIPT_DONE = "response.output_audio_transcript.done"
REALTIME_EVENT_TRANSCRIPT_DONE_LEGACY = "response.audio_transcript.done"
REALTIME_EVENT_FUNCTION_ARGS_DELTA = "response.function_call_arguments.delta"
REALTIME_EVENT_FUNCTION_ARGS_DONE = "response.function_call_arguments.done"
REALTIME_EVENT_SPEECH_STARTED = "input_audio_buffer.speech_started"
REALTIME_EVENT_SPEECH_STOPPED = "input_audio_buffer.speech_stopped"
REALTIME_EVENT_BUFFER_COMMITTED = "input_audio_buffer.committed"
REALTIME_EVENT_INPUT_TRANSCRIPTION_COMPLETED = (
    "conversation.item.input_audio_transcription.completed"
)

# Voice-AI client commands
REALTIME_COMMAND_SESSION_UPDATE = "session.update"
REALTIME_COMMAND_ITEM_CREATE = "conversation.item.create"
REALTIME_COMMAND_RESPONSE_CREATE = "response.create"
REALTIME_COMMAND_AUDIO_APPEND = "input_audio_buffer.append"

# Event types never logged one by one
AUDIO_EVENT_TYPES = frozenset(
    {
        REALTIME_COMMAND_AUDIO_APPEND,
        REALTIME_EVENT_AUDIO_DELTA,
        REALTIME_EVENT_AUDIO_DELTA_LEGACY,
    }
)
