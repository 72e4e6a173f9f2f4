import asyncio
import json
import logging
from typing import Any, Dict, List, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest

from newsline.bot.realtime_api import RealtimeSessionClient
from newsline.bot.twilio_stream import StreamNotStartedError
from newsline.config.settings import Settings
from newsline.models.realtime_schemas import decode_realtime_event, encode_realtime_command
from newsline.models.telephony_schemas import StartMessage, decode_telephony_message


@pytest.fixture(autouse=True)
def reset_logging():
    """Reset logging configuration before each test"""
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
    logging.basicConfig(level=logging.NOTSET)
    yield


class FakeTelephony:
    """In-memory media stream driven by an asyncio.Queue."""

    def __init__(self, call_id: str = "call_test"):
        self.call_id = call_id
        self.inbox: asyncio.Queue = asyncio.Queue()
        self.sent: List[Dict[str, Any]] = []
        self.sent_after_close: List[Dict[str, Any]] = []
        self.connected = False
        self.closed = False
        self._stream_sid: Optional[str] = None

    @property
    def stream_sid(self) -> Optional[str]:
        return self._stream_sid

    def feed(self, message: Dict[str, Any]) -> None:
        self.inbox.put_nowait(message)

    def hang_up(self) -> None:
        self.inbox.put_nowait(None)

    async def connect(self) -> None:
        self.connected = True

    async def messages(self):
        while True:
            raw = await self.inbox.get()
            if raw is None:
                return
            message = decode_telephony_message(json.dumps(raw))
            if message is None:
                continue
            if isinstance(message, StartMessage):
                self._stream_sid = message.start.stream_sid
            yield message

    async def send_media(self, payload: str) -> None:
        if not self._stream_sid:
            raise StreamNotStartedError("media frame sent before stream start")
        message = {"event": "media", "payload": payload}
        (self.sent_after_close if self.closed else self.sent).append(message)

    async def clear(self) -> None:
        if not self._stream_sid:
            raise StreamNotStartedError("clear sent before stream start")
        (self.sent_after_close if self.closed else self.sent).append({"event": "clear"})

    async def close(self) -> None:
        if not self.closed:
            self.closed = True
            self.inbox.put_nowait(None)

    @property
    def sent_events(self) -> List[str]:
        return [message["event"] for message in self.sent]


class FakeRealtime(RealtimeSessionClient):
    """Voice-AI client whose socket is an asyncio.Queue of server events."""

    def __init__(self, call_id: str = "call_test", connect_error: Optional[BaseException] = None):
        super().__init__("test-key", call_id=call_id)
        self.inbox: asyncio.Queue = asyncio.Queue()
        self.sent: List[Dict[str, Any]] = []
        self.sent_after_close: List[Dict[str, Any]] = []
        self.connect_error = connect_error
        self.closed = False

    def feed(self, event: Dict[str, Any]) -> None:
        self.inbox.put_nowait(event)

    def disconnect(self) -> None:
        self.inbox.put_nowait(None)

    async def connect(self) -> None:
        if self.connect_error is not None:
            raise self.connect_error
        self._connection_active = True

    async def events(self):
        while True:
            raw = await self.inbox.get()
            if raw is None:
                self._connection_active = False
                return
            event = decode_realtime_event(json.dumps(raw))
            if event is not None:
                yield event

    async def send(self, command) -> bool:
        payload = json.loads(encode_realtime_command(command))
        if self.closed:
            self.sent_after_close.append(payload)
            return False
        self.sent.append(payload)
        return True

    async def close(self) -> None:
        if not self.closed:
            self.closed = True
            self._is_closing = True
            self.inbox.put_nowait(None)

    @property
    def sent_types(self) -> List[str]:
        return [command["type"] for command in self.sent]


async def wait_until(predicate, timeout: float = 2.0) -> None:
    """Yield to the event loop until ``predicate()`` holds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.005)


@pytest.fixture
def fake_telephony():
    return FakeTelephony()


@pytest.fixture
def fake_realtime():
    return FakeRealtime()


@pytest.fixture
def mock_dispatcher():
    """Dispatcher double exposing the two methods the bridge uses."""
    dispatcher = MagicMock()
    dispatcher.realtime_schemas.return_value = [{"type": "function", "name": "search_news_topic"}]
    dispatcher.dispatch = AsyncMock(return_value=json.dumps({"success": True, "posts": []}))
    return dispatcher


@pytest.fixture
def test_settings():
    return Settings(xai_api_key="test-key", handshake_timeout=5.0, tool_timeout=5.0)


@pytest.fixture
def until():
    return wait_until
