"""
Simulate a phone call against a running Realtime Newsline server.

Plays the telephony provider's part: posts the call-setup webhook, connects to
the returned media stream, sends ``connected``/``start``, streams u-law silence
in 20ms frames and finally ``stop``. Assistant audio and ``clear`` commands
coming back are counted and logged.

Usage:
    python simulate_call.py [--server http://localhost:3000] [--from +15551234567] [--seconds 10]
"""

import argparse
import asyncio
import base64
import json
import logging
import re
import secrets
from typing import Any, Dict, Optional

import httpx
import websockets

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("call_simulator")

FRAME_MS = 20
SAMPLE_RATE = 8000
ULAW_SILENCE = b"\xff"

STREAM_URL_PATTERN = re.compile(r'<Stream url="([^"]+)"')


def silence_frame(duration_ms: int = FRAME_MS) -> str:
    """Base64 u-law silence lasting ``duration_ms`` at 8kHz."""
    samples = SAMPLE_RATE * duration_ms // 1000
    return base64.b64encode(ULAW_SILENCE * samples).decode("utf-8")


def extract_call_id(twiml: str) -> Optional[str]:
    """Call id from the stream URL of a call-setup response."""
    match = STREAM_URL_PATTERN.search(twiml)
    if not match:
        return None
    return match.group(1).rstrip("/").rsplit("/", 1)[-1]


def connected_message() -> Dict[str, Any]:
    return {"event": "connected", "protocol": "Call", "version": "1.0.0"}


def start_message(stream_sid: str, call_sid: str) -> Dict[str, Any]:
    return {
        "event": "start",
        "sequenceNumber": "1",
        "streamSid": stream_sid,
        "start": {
            "streamSid": stream_sid,
            "callSid": call_sid,
            "accountSid": "AC" + secrets.token_hex(16),
            "tracks": ["inbound"],
            "customParameters": {},
            "mediaFormat": {"encoding": "audio/x-mulaw", "sampleRate": SAMPLE_RATE, "channels": 1},
        },
    }


def media_message(stream_sid: str, payload: str, chunk: int) -> Dict[str, Any]:
    return {
        "event": "media",
        "streamSid": stream_sid,
        "media": {
            "track": "inbound",
            "chunk": str(chunk),
            "timestamp": str(chunk * FRAME_MS),
            "payload": payload,
        },
    }


def stop_message(stream_sid: str, call_sid: str) -> Dict[str, Any]:
    return {
        "event": "stop",
        "streamSid": stream_sid,
        "stop": {"callSid": call_sid},
    }


async def admit_call(server: str, caller: str) -> str:
    """Post the call-setup webhook and return the allocated call id."""
    async with httpx.AsyncClient(timeout=10.0) as client:
        response = await client.post(
            f"{server.rstrip('/')}/twiml", data={"From": caller, "To": "+15550000000"}
        )
        response.raise_for_status()

    call_id = extract_call_id(response.text)
    if not call_id:
        raise ValueError(f"No stream URL in call-setup response: {response.text[:200]}")
    logger.info(f"Call admitted: {call_id}")
    return call_id


async def receive_playback(websocket, counters: Dict[str, int]) -> None:
    """Count playback frames and clear commands sent back by the server."""
    try:
        async for raw in websocket:
            message = json.loads(raw)
            event = message.get("event")
            counters[event] = counters.get(event, 0) + 1
            if event == "clear":
                logger.info("Received clear (barge-in)")
            elif event == "media" and counters[event] == 1:
                logger.info("First assistant audio frame received")
    except websockets.exceptions.ConnectionClosed:
        logger.info("Server closed the media stream")


async def run_simulated_call(server: str, caller: str, seconds: float) -> Dict[str, int]:
    call_id = await admit_call(server, caller)
    ws_url = re.sub(r"^http", "ws", server.rstrip("/")) + f"/media-stream/{call_id}"
    stream_sid = "MZ" + secrets.token_hex(16)
    call_sid = "CA" + secrets.token_hex(16)
    counters: Dict[str, int] = {}

    async with websockets.connect(ws_url) as websocket:
        logger.info(f"WebSocket connection established to {ws_url}")
        receiver = asyncio.create_task(receive_playback(websocket, counters))

        await websocket.send(json.dumps(connected_message()))
        await websocket.send(json.dumps(start_message(stream_sid, call_sid)))

        frames = int(seconds * 1000 / FRAME_MS)
        payload = silence_frame()
        logger.info(f"Streaming {frames} frames of silence")
        for chunk in range(1, frames + 1):
            await websocket.send(json.dumps(media_message(stream_sid, payload, chunk)))
            await asyncio.sleep(FRAME_MS / 1000)

        await websocket.send(json.dumps(stop_message(stream_sid, call_sid)))
        logger.info("Stop sent")
        try:
            await asyncio.wait_for(receiver, timeout=5.0)
        except asyncio.TimeoutError:
            receiver.cancel()

    logger.info(f"Call finished: {counters}")
    return counters


def parse_args():
    parser = argparse.ArgumentParser(description="Simulate a call against the server")
    parser.add_argument("--server", default="http://localhost:3000", help="Server base URL")
    parser.add_argument("--from", dest="caller", default="+15551234567", help="Caller number")
    parser.add_argument("--seconds", type=float, default=10.0, help="Seconds of audio to stream")
    return parser.parse_args()


if __name__ == "__main__":
    args = parse_args()
    asyncio.run(run_simulated_call(args.server, args.caller, args.seconds))
