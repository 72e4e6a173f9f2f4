import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi import WebSocket, WebSocketDisconnect

from conftest import FakeRealtime
from newsline.bot.realtime_api import RealtimeSessionClient
from newsline.config.settings import Settings
from newsline.services.backend_client import BackendClient
from newsline.websocket_manager import MediaStreamManager


@pytest.fixture
def settings():
    return Settings(
        xai_api_key="test-key",
        realtime_api_url="wss://realtime.test/v1",
        connect_timeout=3.0,
        handshake_timeout=5.0,
    )


@pytest.fixture
def backend():
    return MagicMock(spec=BackendClient)


@pytest.fixture
def manager(settings, backend):
    return MediaStreamManager(settings, backend=backend, realtime_factory=FakeRealtime)


@pytest.fixture
def websocket():
    return AsyncMock(spec=WebSocket)


def test_manager_initialization(manager):
    assert manager.active_calls == 0
    assert "search_news_topic" in manager.dispatcher.tool_names


def test_default_realtime_factory_uses_settings(settings, backend):
    manager = MediaStreamManager(settings, backend=backend)
    client = manager._realtime_factory("call_1")
    assert isinstance(client, RealtimeSessionClient)
    assert client.api_key == "test-key"
    assert client.url == "wss://realtime.test/v1"
    assert client.call_id == "call_1"
    assert client.connect_timeout == 3.0


def test_admit_call_remembers_caller(manager):
    call_id = manager.admit_call("+15551234567")
    assert call_id.startswith("call_")
    assert manager.registry.admitted_callers[call_id].caller_number == "+15551234567"


def test_release_admission_forgets_unconnected_call(manager):
    call_id = manager.admit_call("+15551234567", "CA123")
    assert manager.release_admission("CA123") == call_id
    assert call_id not in manager.registry.admitted_callers
    assert manager.release_admission("CA123") is None


@pytest.mark.asyncio
async def test_handle_media_stream_registers_for_call_duration(manager, websocket):
    call_id = manager.admit_call("+15551234567")
    seen = {}

    with patch("newsline.websocket_manager.CallSessionBridge") as bridge_cls:
        async def run():
            seen["registered"] = call_id in manager.registry
        bridge_cls.return_value.run = AsyncMock(side_effect=run)

        await manager.handle_media_stream(websocket, call_id)

    assert seen["registered"] is True
    assert manager.active_calls == 0
    assert bridge_cls.call_args.kwargs["caller_number"] == "+15551234567"
    assert bridge_cls.call_args.kwargs["backend"] is manager.backend


@pytest.mark.asyncio
async def test_unknown_call_id_runs_anonymously(manager, websocket):
    with patch("newsline.websocket_manager.CallSessionBridge") as bridge_cls:
        bridge_cls.return_value.run = AsyncMock()
        await manager.handle_media_stream(websocket, "call_unknown")

    assert bridge_cls.call_args.kwargs["caller_number"] is None
    bridge_cls.return_value.run.assert_awaited_once()


@pytest.mark.asyncio
async def test_duplicate_stream_is_rejected(manager, websocket):
    existing = object()
    manager.registry.register("call_1", existing)

    with patch("newsline.websocket_manager.CallSessionBridge") as bridge_cls:
        await manager.handle_media_stream(websocket, "call_1")

    websocket.close.assert_awaited_once_with(code=1008)
    bridge_cls.assert_not_called()
    assert manager.registry.get("call_1") is existing


@pytest.mark.asyncio
async def test_registry_cleared_when_bridge_fails(manager, websocket):
    with patch("newsline.websocket_manager.CallSessionBridge") as bridge_cls:
        bridge_cls.return_value.run = AsyncMock(side_effect=RuntimeError("boom"))
        with pytest.raises(RuntimeError):
            await manager.handle_media_stream(websocket, "call_1")

    assert "call_1" not in manager.registry


@pytest.mark.asyncio
async def test_caller_hangs_up_immediately(manager, backend, websocket):
    """A media stream that disconnects right away tears the whole call down."""
    websocket.receive_text.side_effect = WebSocketDisconnect(code=1000)

    await asyncio.wait_for(manager.handle_media_stream(websocket, "call_unknown"), timeout=2)

    websocket.accept.assert_awaited_once()
    # The provider already closed the socket
    websocket.close.assert_not_awaited()
    assert manager.active_calls == 0
    # Anonymous call: no identity lookup or transcript storage
    backend.lookup_caller.assert_not_called()
    backend.create_conversation.assert_not_called()
