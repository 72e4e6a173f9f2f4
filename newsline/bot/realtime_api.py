import asyncio
import logging
from typing import AsyncIterator, Dict, List, Optional, Any

import websockets
from websockets.exceptions import (
    ConnectionClosed,
    ConnectionClosedError,
    ConnectionClosedOK,
    WebSocketException,
)

from newsline.config.constants import (
    AUDIO_EVENT_TYPES,
    DEFAULT_CONNECT_TIMEOUT,
    DEFAULT_REALTIME_API_URL,
    LOGGER_NAME,
)
from newsline.models.realtime_schemas import (
    ConversationItemCreateCommand,
    FunctionCallOutputItem,
    IncomingRealtimeEvent,
    InputAudioAppendCommand,
    InputTextContent,
    MessageItem,
    RealtimeCommand,
    ResponseCreateCommand,
    SessionConfig,
    SessionUpdateCommand,
    decode_realtime_event,
    encode_realtime_command,
)

logger = logging.getLogger(LOGGER_NAME)

# WebSocket configuration for low latency
WS_MAX_SIZE = 16 * 1024 * 1024  # 16MB - large enough for audio chunks
WS_MAX_QUEUE = 32  # Small queue to prevent buffering
WS_PING_INTERVAL = 5  # 5 seconds between pings
WS_PING_TIMEOUT = 10


class RealtimeConnectionError(ConnectionError):
    """The voice-AI socket could not be opened."""


class RealtimeSessionClient:
    """
    Client for one call's voice-AI realtime session over WebSocket.

    The client makes a single connection attempt; there is no reconnection; a
    dropped socket ends the call. Inbound frames are decoded into typed events
    and yielded in arrival order by ``events()``.
    """
    def __init__(
        self,
        api_key: str,
        url: str = DEFAULT_REALTIME_API_URL,
        call_id: str = "-",
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
    ):
        self.api_key = api_key
        self.url = url
        self.call_id = call_id
        self.connect_timeout = connect_timeout
        self.ws = None
        self._connection_active = False
        self._is_closing = False

    @property
    def is_open(self) -> bool:
        return self._connection_active and self.ws is not None and not self._is_closing

    async def connect(self) -> None:
        """
        Open the voice-AI WebSocket.

        Raises:
            RealtimeConnectionError: If the endpoint refuses or the network fails
            asyncio.TimeoutError: If the connection is not established in time
        """
        if self._is_closing:
            raise RealtimeConnectionError("Cannot connect - client is closing")

        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

        logger.info(f"[{self.call_id}] Connecting to realtime API at {self.url}")
        try:
            self.ws = await asyncio.wait_for(
                websockets.connect(
                    self.url,
                    max_size=WS_MAX_SIZE,
                    max_queue=WS_MAX_QUEUE,
                    ping_interval=WS_PING_INTERVAL,
                    ping_timeout=WS_PING_TIMEOUT,
                    compression=None,  # Disable compression for lower latency
                    additional_headers=headers,
                ),
                timeout=self.connect_timeout,
            )
        except asyncio.TimeoutError:
            logger.error(
                f"[{self.call_id}] Timeout while connecting to realtime API "
                f"(after {self.connect_timeout}s)"
            )
            raise
        except (OSError, WebSocketException) as e:
            logger.error(f"[{self.call_id}] Failed to connect to realtime API: {e}")
            raise RealtimeConnectionError(str(e)) from e

        if self._is_closing:
            # close() ran while the handshake was in progress
            await self.ws.close()
            raise RealtimeConnectionError("Client closed while connecting")

        self._connection_active = True
        logger.info(f"[{self.call_id}] Realtime API WebSocket connected")

    async def events(self) -> AsyncIterator[IncomingRealtimeEvent]:
        """
        Yield decoded server events until the socket closes.

        Frames that fail to decode are logged and skipped.
        """
        if self.ws is None:
            logger.error(f"[{self.call_id}] WebSocket not initialized for receive loop")
            return

        try:
            async for message in self.ws:
                event = decode_realtime_event(message)
                if event is None:
                    continue
                if event.type not in AUDIO_EVENT_TYPES:
                    logger.debug(f"[{self.call_id}] RECV {event.type}")
                yield event
        except ConnectionClosedOK:
            logger.info(f"[{self.call_id}] Realtime WebSocket closed normally")
        except ConnectionClosedError as e:
            logger.warning(f"[{self.call_id}] Realtime WebSocket closed unexpectedly: {e}")
        finally:
            self._connection_active = False
            logger.info(f"[{self.call_id}] Realtime receive loop exited")

    async def send(self, command: RealtimeCommand) -> bool:
        """
        Send one client command.

        Returns:
            bool: True if the command was written to an open socket
        """
        if not self.is_open:
            logger.warning(f"[{self.call_id}] Cannot send {command.type} - realtime socket not open")
            return False

        try:
            await self.ws.send(encode_realtime_command(command))
        except ConnectionClosed as e:
            logger.warning(f"[{self.call_id}] Connection closed while sending {command.type}: {e}")
            self._connection_active = False
            return False

        if command.type not in AUDIO_EVENT_TYPES:
            logger.debug(f"[{self.call_id}] SEND {command.type}")
        return True

    async def update_session(
        self,
        instructions: str,
        voice: str,
        tools: List[Dict[str, Any]],
        input_transcription: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """Configure u-law audio both ways, server VAD and the tool schema."""
        config = SessionConfig(
            instructions=instructions,
            voice=voice,
            tools=tools,
            input_audio_transcription=input_transcription,
        )
        return await self.send(SessionUpdateCommand(session=config))

    async def send_user_text(self, text: str) -> bool:
        item = MessageItem(role="user", content=[InputTextContent(text=text)])
        return await self.send(ConversationItemCreateCommand(item=item))

    async def request_response(self) -> bool:
        return await self.send(ResponseCreateCommand())

    async def append_audio(self, payload: str) -> bool:
        """Forward one base64 u-law frame as received from telephony."""
        return await self.send(InputAudioAppendCommand(audio=payload))

    async def send_function_output(self, tool_call_id: str, output: str) -> bool:
        item = FunctionCallOutputItem(call_id=tool_call_id, output=output)
        return await self.send(ConversationItemCreateCommand(item=item))

    async def close(self) -> None:
        """Close the WebSocket. Safe to call more than once."""
        if self._is_closing:
            return
        self._is_closing = True
        self._connection_active = False

        if self.ws is not None:
            logger.debug(f"[{self.call_id}] Closing realtime WebSocket")
            try:
                await self.ws.close()
            except (OSError, WebSocketException) as e:
                logger.warning(f"[{self.call_id}] Error closing realtime WebSocket: {e}")

        logger.info(f"[{self.call_id}] Realtime client closed")
