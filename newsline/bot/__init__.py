"""
Bot module bridging telephone calls to a realtime voice-AI session.

Key components:
- TwilioMediaStream: adapter for the telephony media-stream WebSocket. Decodes
  inbound ``start``/``media``/``stop`` messages and sends playback frames and
  ``clear`` commands addressed by the stream handle.
- RealtimeSessionClient: adapter for the voice-AI WebSocket. Sends session
  configuration, turns, audio and function outputs; yields typed server events.
- CallSessionBridge: owns both adapters for one call, runs the readiness
  handshake, relays audio both ways, handles barge-in and the tool-call loop.
- persona: the anchor's instructions and the opening-turn prompt.

Usage examples:
```python
from newsline.bot import CallSessionBridge, RealtimeSessionClient, TwilioMediaStream
from newsline.tools import create_dispatcher

async def handle_call(websocket, call_id, settings, x_api, backend, caller_number):
    telephony = TwilioMediaStream(websocket, call_id, settings.connect_timeout)
    realtime = RealtimeSessionClient(
        settings.xai_api_key,
        url=settings.realtime_api_url,
        call_id=call_id,
        connect_timeout=settings.connect_timeout,
    )
    bridge = CallSessionBridge(
        call_id,
        telephony,
        realtime,
        create_dispatcher(x_api, settings.tool_timeout),
        backend=backend,
        caller_number=caller_number,
        settings=settings,
    )
    # Returns once either socket has closed and the call is torn down
    await bridge.run()
```
"""

from newsline.bot.call_bridge import CallSessionBridge
from newsline.bot.realtime_api import RealtimeConnectionError, RealtimeSessionClient
from newsline.bot.twilio_stream import StreamNotStartedError, TwilioMediaStream

__all__ = [
    "CallSessionBridge",
    "RealtimeConnectionError",
    "RealtimeSessionClient",
    "StreamNotStartedError",
    "TwilioMediaStream",
]
