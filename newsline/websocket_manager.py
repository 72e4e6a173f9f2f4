"""
Media-stream connection manager.

Routes each media-stream WebSocket the telephony provider opens to a fresh
CallSessionBridge. The manager owns the only process-wide state: the registry of
callers admitted by the call-setup webhook and of calls currently bridged.

Each call gets its own adapters and its own tool dispatcher context; the
provider clients and settings are shared read-only between calls.
"""

import logging
from typing import Callable, Optional

from fastapi import WebSocket

from newsline.bot.call_bridge import CallSessionBridge
from newsline.bot.realtime_api import RealtimeSessionClient
from newsline.bot.twilio_stream import TwilioMediaStream
from newsline.config.constants import LOGGER_NAME
from newsline.config.settings import Settings
from newsline.models.call_session import CallRegistry
from newsline.services.backend_client import BackendClient
from newsline.services.x_api import XApiClient
from newsline.tools.dispatcher import ToolDispatcher, create_dispatcher

logger = logging.getLogger(LOGGER_NAME)

RealtimeFactory = Callable[[str], RealtimeSessionClient]


class MediaStreamManager:
    """Accepts media streams and runs one bridge per call."""

    def __init__(
        self,
        settings: Settings,
        backend: Optional[BackendClient] = None,
        x_api: Optional[XApiClient] = None,
        realtime_factory: Optional[RealtimeFactory] = None,
        registry: Optional[CallRegistry] = None,
    ):
        self.settings = settings
        self.registry = registry or CallRegistry()
        self.backend = backend or BackendClient(settings.backend_url, timeout=settings.http_timeout)
        self.x_api = x_api or XApiClient(
            settings.x_bearer_token, base_url=settings.x_api_base, timeout=settings.http_timeout
        )
        self.dispatcher: ToolDispatcher = create_dispatcher(self.x_api, settings.tool_timeout)
        self._realtime_factory = realtime_factory or self._default_realtime

    def _default_realtime(self, call_id: str) -> RealtimeSessionClient:
        return RealtimeSessionClient(
            self.settings.xai_api_key,
            url=self.settings.realtime_api_url,
            call_id=call_id,
            connect_timeout=self.settings.connect_timeout,
        )

    @property
    def active_calls(self) -> int:
        return len(self.registry)

    def admit_call(self, caller_number: str, call_sid: Optional[str] = None) -> str:
        """Allocate a call id for an inbound call and remember its caller."""
        call_id = self.registry.admit(caller_number, call_sid)
        logger.info(f"[{call_id}] Incoming call from {caller_number} (sid: {call_sid or 'unknown'})")
        return call_id

    def release_admission(self, call_sid: str) -> Optional[str]:
        """Forget an admitted call whose media stream never connected."""
        call_id = self.registry.release_call_sid(call_sid)
        if call_id is not None:
            logger.info(f"[{call_id}] Call {call_sid} ended before its media stream connected")
        return call_id

    async def handle_media_stream(self, websocket: WebSocket, call_id: str) -> None:
        """
        Run one call from media-stream connect to teardown.

        Args:
            websocket: The media-stream socket opened by the telephony provider
            call_id: Identifier from the stream URL

        A call id that was never admitted still gets a bridge, but without a
        caller number the caller is treated as anonymous.
        """
        caller_number = self.registry.claim_caller(call_id)
        if caller_number is None:
            logger.warning(f"[{call_id}] Media stream for unknown call id; caller is anonymous")

        if call_id in self.registry:
            logger.error(f"[{call_id}] Call already bridged - rejecting duplicate media stream")
            await websocket.close(code=1008)
            return

        telephony = TwilioMediaStream(websocket, call_id, self.settings.connect_timeout)
        bridge = CallSessionBridge(
            call_id,
            telephony,
            self._realtime_factory(call_id),
            self.dispatcher,
            backend=self.backend,
            caller_number=caller_number,
            settings=self.settings,
        )

        self.registry.register(call_id, bridge)
        logger.info(f"[{call_id}] Call registered ({self.active_calls} active)")
        try:
            await bridge.run()
        finally:
            if self.registry.remove(call_id):
                logger.info(f"[{call_id}] Call removed ({self.active_calls} active)")
