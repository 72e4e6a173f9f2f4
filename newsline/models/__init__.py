"""
Models module for wire schemas and per-call state.

Key components:
- telephony_schemas: Pydantic models for the telephony media-stream protocol
  (start, media, stop, clear) decoded once at the adapter boundary.
- realtime_schemas: Pydantic models for voice-AI server events and client commands.
- call_session: CallSession state, pending tool calls, caller identity and the
  process-wide CallRegistry.

Usage examples:
```python
from newsline.models.telephony_schemas import decode_telephony_message, StartMessage

message = decode_telephony_message(raw_text)
if isinstance(message, StartMessage):
    print(message.start.stream_sid)

from newsline.models.call_session import CallRegistry

registry = CallRegistry()
call_id = registry.admit("+15551234567")
```
"""

from newsline.models.call_session import (
    CallerIdentity,
    CallRegistry,
    CallSession,
    CallState,
    PendingToolCall,
    generate_call_id,
)
from newsline.models.realtime_schemas import (
    IncomingRealtimeEvent,
    OutgoingRealtimeCommand,
    decode_realtime_event,
    encode_realtime_command,
)
from newsline.models.telephony_schemas import (
    ClearMessage,
    IncomingTelephonyMessage,
    MediaMessage,
    OutboundMediaMessage,
    StartMessage,
    StopMessage,
    decode_telephony_message,
    encode_telephony_message,
)
