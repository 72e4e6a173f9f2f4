import re

import pytest
from fastapi.testclient import TestClient
from unittest.mock import AsyncMock, MagicMock, patch

from newsline.config.settings import Settings
from newsline.main import app, build_twiml, manager

client = TestClient(app)


def test_health_check():
    """Test the health check endpoint returns correct response"""
    response = client.get("/health")
    assert response.status_code == 200

    response_json = response.json()
    assert response_json["status"] == "healthy"
    assert isinstance(response_json["realtime_api_key_configured"], bool)
    assert response_json["active_calls"] == 0
    assert "timestamp" in response_json


def test_root_endpoint():
    """Test the root endpoint returns the correct API information"""
    response = client.get("/")
    assert response.status_code == 200

    response_json = response.json()
    assert response_json["name"] == "Realtime Newsline"
    assert "description" in response_json
    assert response_json["version"] == "1.0.0"
    assert "/twiml" in response_json["endpoints"]
    assert "/media-stream/{call_id}" in response_json["endpoints"]
    assert "/health" in response_json["endpoints"]


def test_build_twiml():
    assert build_twiml("wss://example.test/media-stream/call_1") == (
        '<?xml version="1.0" encoding="UTF-8"?>'
        '<Response><Connect><Stream url="wss://example.test/media-stream/call_1"/></Connect></Response>'
    )


def test_twiml_admits_call():
    with patch("newsline.main.settings", Settings(public_hostname="https://example.ngrok.app")):
        response = client.post("/twiml", data={"From": "+15551234567", "To": "+15550000000"})

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/xml")
    match = re.search(r'<Stream url="wss://example\.ngrok\.app/media-stream/(call_[0-9a-f]{32})"/>', response.text)
    assert match is not None
    call_id = match.group(1)
    assert manager.registry.claim_caller(call_id) == "+15551234567"


def test_twiml_allocates_distinct_ids():
    first = client.post("/twiml", data={"From": "+15551234567"}).text
    second = client.post("/twiml", data={"From": "+15551234567"}).text
    assert first != second


def test_twiml_failure_returns_500():
    with patch.object(manager, "admit_call", side_effect=RuntimeError("registry unavailable")):
        response = client.post("/twiml", data={"From": "+15551234567"})
    assert response.status_code == 500


@pytest.mark.parametrize("status", ["ringing", "completed", "error"])
def test_call_status_acknowledged(status):
    response = client.post("/call-status", data={"CallStatus": status, "CallSid": "CA1"})
    assert response.status_code == 200


@pytest.mark.parametrize("status", ["completed", "failed", "busy", "no-answer", "canceled"])
def test_terminal_call_status_releases_unconnected_admission(status):
    response = client.post("/twiml", data={"From": "+15551234567", "CallSid": f"CA-{status}"})
    call_id = re.search(r"media-stream/(call_[0-9a-f]{32})", response.text).group(1)
    assert call_id in manager.registry.admitted_callers

    client.post("/call-status", data={"CallStatus": status, "CallSid": f"CA-{status}"})
    assert call_id not in manager.registry.admitted_callers


def test_in_progress_call_status_keeps_admission():
    response = client.post("/twiml", data={"From": "+15551234567", "CallSid": "CA-ringing"})
    call_id = re.search(r"media-stream/(call_[0-9a-f]{32})", response.text).group(1)

    client.post("/call-status", data={"CallStatus": "ringing", "CallSid": "CA-ringing"})
    assert manager.registry.claim_caller(call_id) == "+15551234567"


@pytest.mark.asyncio
async def test_media_stream_endpoint():
    """Test that the media-stream endpoint hands the socket to the manager"""
    with patch.object(manager, "handle_media_stream", new_callable=AsyncMock) as mock_handle:
        mock_websocket = MagicMock()

        websocket_route = next(route for route in app.routes if route.path == "/media-stream/{call_id}")
        await websocket_route.endpoint(mock_websocket, "call_abc")

        mock_handle.assert_awaited_once_with(mock_websocket, "call_abc")
