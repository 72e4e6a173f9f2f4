"""
FastAPI server for the Realtime Newsline phone service.

This module initializes the FastAPI application the telephony provider talks to:
the call-setup webhook that admits a call and tells the provider where to stream
its audio, the call-status webhook, and the media-stream WebSocket that each call
is bridged through.

The server keeps no call state across restarts; each media stream is bridged by
its own CallSessionBridge for as long as the call lasts.
"""

from datetime import datetime, timezone
from xml.sax.saxutils import quoteattr

from fastapi import FastAPI, Form, HTTPException, Response, WebSocket

from newsline.config.constants import TERMINAL_CALL_STATUSES
from newsline.config.logging_config import configure_logging
from newsline.config.settings import Settings
from newsline.websocket_manager import MediaStreamManager

# Loads .env from the working directory before reading the environment
settings = Settings.from_env()

# Configure logging
logger = configure_logging(settings.log_level)

APP_NAME = "Realtime Newsline"
APP_DESCRIPTION = "Phone news anchor bridging telephony media streams to a realtime voice AI"
APP_VERSION = "1.0.0"

# Create FastAPI application
app = FastAPI(title=APP_NAME, description=APP_DESCRIPTION, version=APP_VERSION)

# Create media-stream manager
manager = MediaStreamManager(settings)


def build_twiml(stream_url: str) -> str:
    """Call-setup instructions connecting the call's audio to our media stream."""
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        "<Response><Connect>"
        f"<Stream url={quoteattr(stream_url)}/>"
        "</Connect></Response>"
    )


@app.post("/twiml")
async def twiml(From: str = Form(""), To: str = Form(""), CallSid: str = Form("")):
    """Call-setup webhook: admit the call and return stream-connect instructions.

    Returns:
        Response: TwiML document (text/xml) pointing at /media-stream/{call_id}
    """
    try:
        call_id = manager.admit_call(From, CallSid)
        stream_url = settings.stream_url(call_id)
    except Exception as e:
        logger.error(f"Error handling incoming call from {From}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Could not set up call")

    logger.info(f"[{call_id}] Call to {To} - streaming to {stream_url}")
    return Response(content=build_twiml(stream_url), media_type="text/xml")


@app.post("/call-status")
async def call_status(
    CallStatus: str = Form(""),
    CallSid: str = Form(""),
    From: str = Form(""),
    To: str = Form(""),
):
    """Call-status webhook; a call that ended before streaming releases its admission."""
    message = f"Call status: {CallStatus} (sid: {CallSid}, from: {From}, to: {To})"
    if CallStatus == "error":
        logger.error(message)
    else:
        logger.info(message)
    if CallStatus in TERMINAL_CALL_STATUSES:
        manager.release_admission(CallSid)
    return Response(status_code=200)


@app.websocket("/media-stream/{call_id}")
async def media_stream(websocket: WebSocket, call_id: str):
    """Media-stream WebSocket for one call.

    The telephony provider connects here with the URL returned by /twiml. The
    socket is bridged to a new voice-AI session until either side closes.
    """
    await manager.handle_media_stream(websocket, call_id)


@app.get("/health")
async def health_check():
    """Health check endpoint for monitoring system status.

    Returns:
        dict: Status information, whether the voice-AI key is configured and
        how many calls are currently bridged
    """
    return {
        "status": "healthy",
        "realtime_api_key_configured": bool(settings.xai_api_key),
        "active_calls": manager.active_calls,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@app.get("/")
async def root():
    """Root endpoint to display basic information about the API.

    Returns:
        dict: Basic information about the API and its endpoints.
    """
    return {
        "name": APP_NAME,
        "description": APP_DESCRIPTION,
        "version": APP_VERSION,
        "endpoints": {
            "/twiml": "Call-setup webhook (POST)",
            "/call-status": "Call-status webhook (POST)",
            "/media-stream/{call_id}": "Media-stream WebSocket for one call",
            "/health": "Health check endpoint",
        },
    }


if __name__ == "__main__":
    import uvicorn

    logger.info(f"Starting server on http://{settings.host}:{settings.port}")
    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        websocket_ping_interval=5,  # Frequent pings to detect dead telephony sockets
        websocket_ping_timeout=20,
        http="h11",
    )
