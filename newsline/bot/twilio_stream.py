"""
Telephony channel adapter for the media-stream WebSocket.

Wraps the FastAPI WebSocket the telephony provider opens for one call. Inbound
text frames are decoded into typed messages; the stream handle carried by the
``start`` message is recorded before that message is handed on, so an outbound
frame in the same tick is already addressable.
"""

import asyncio
import logging
from typing import AsyncIterator, Optional

from fastapi import WebSocket, WebSocketDisconnect

from newsline.config.constants import DEFAULT_CONNECT_TIMEOUT, LOGGER_NAME
from newsline.models.telephony_schemas import (
    ClearMessage,
    IncomingTelephonyMessage,
    OutboundMediaMessage,
    OutboundMediaPayload,
    StartMessage,
    TelephonyMessage,
    decode_telephony_message,
    encode_telephony_message,
)

logger = logging.getLogger(LOGGER_NAME)


class StreamNotStartedError(RuntimeError):
    """An outbound frame was sent before the stream handle was known."""


class TwilioMediaStream:
    """Typed wrapper around one call's media-stream socket."""

    def __init__(
        self,
        websocket: WebSocket,
        call_id: str,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
    ):
        self.websocket = websocket
        self.call_id = call_id
        self.connect_timeout = connect_timeout
        self._stream_sid: Optional[str] = None
        self._is_open = False

    @property
    def stream_sid(self) -> Optional[str]:
        return self._stream_sid

    @property
    def is_open(self) -> bool:
        return self._is_open

    async def connect(self) -> None:
        """
        Accept the socket.

        Raises:
            asyncio.TimeoutError: If the handshake does not finish in time
        """
        await asyncio.wait_for(self.websocket.accept(), timeout=self.connect_timeout)
        self._is_open = True
        logger.info(f"[{self.call_id}] Telephony media stream connected")

    async def messages(self) -> AsyncIterator[IncomingTelephonyMessage]:
        """Yield decoded messages until the socket disconnects."""
        try:
            while self._is_open:
                data = await self.websocket.receive_text()
                message = decode_telephony_message(data)
                if message is None:
                    continue
                if isinstance(message, StartMessage):
                    self._stream_sid = message.start.stream_sid
                    logger.info(f"[{self.call_id}] Media stream started: {self._stream_sid}")
                yield message
        except WebSocketDisconnect as e:
            logger.info(f"[{self.call_id}] Telephony socket disconnected (code {e.code})")
        except RuntimeError as e:
            # Starlette raises RuntimeError when receiving on a closed socket
            logger.info(f"[{self.call_id}] Telephony socket no longer readable: {e}")
        finally:
            self._is_open = False

    async def _send(self, message: TelephonyMessage) -> None:
        await self.websocket.send_text(encode_telephony_message(message))

    async def send_media(self, payload: str) -> None:
        """
        Queue one base64 u-law frame for playback to the caller.

        Raises:
            StreamNotStartedError: If no ``start`` message has been received yet
        """
        if not self._stream_sid:
            raise StreamNotStartedError("media frame sent before stream start")
        await self._send(
            OutboundMediaMessage(
                stream_sid=self._stream_sid, media=OutboundMediaPayload(payload=payload)
            )
        )

    async def clear(self) -> None:
        """
        Discard any audio queued for playback.

        Raises:
            StreamNotStartedError: If no ``start`` message has been received yet
        """
        if not self._stream_sid:
            raise StreamNotStartedError("clear sent before stream start")
        await self._send(ClearMessage(stream_sid=self._stream_sid))
        logger.debug(f"[{self.call_id}] SEND clear")

    async def close(self) -> None:
        """Close the socket if it is still open."""
        if not self._is_open:
            return
        self._is_open = False
        try:
            await self.websocket.close()
        except RuntimeError as e:
            logger.debug(f"[{self.call_id}] Telephony socket already closed: {e}")
        logger.info(f"[{self.call_id}] Telephony media stream closed")
