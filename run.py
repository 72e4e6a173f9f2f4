"""
Run script for starting the Realtime Newsline server.

This script loads configuration, refuses to start without a voice-AI key, and
starts the FastAPI server with WebSocket settings suited to live call audio.

Usage:
    python run.py [--port PORT] [--host HOST] [--log-level LEVEL]
"""

import argparse
import sys

import uvicorn

from newsline.config.logging_config import configure_logging
from newsline.config.settings import Settings


def parse_args(settings: Settings, argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Start the Realtime Newsline server"
    )
    parser.add_argument(
        "--port",
        type=int,
        default=settings.port,
        help="Port to run the server on (default: 3000 or PORT env var)",
    )
    parser.add_argument(
        "--host",
        default=settings.host,
        help="Host to bind the server to (default: 0.0.0.0 or HOST env var)",
    )
    parser.add_argument(
        "--log-level",
        default=settings.log_level,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level (default: INFO or LOG_LEVEL env var)",
    )
    return parser.parse_args(argv)


def main(argv=None):
    """Main entry point for starting the server."""
    settings = Settings.from_env()
    args = parse_args(settings, argv)
    logger = configure_logging(args.log_level)

    if not settings.xai_api_key:
        logger.error("XAI_API_KEY environment variable not set")
        print("Error: XAI_API_KEY environment variable is required")
        print("Set it in your environment or in a .env file")
        sys.exit(1)

    if not settings.x_bearer_token:
        logger.warning("X_BEARER_TOKEN not set - news tools will report provider errors")

    logger.info(f"Starting server on http://{args.host}:{args.port}")
    logger.info(f"Log level: {args.log_level}")
    logger.info(f"Media streams will connect to {settings.stream_url('{call_id}')}")

    uvicorn.run(
        "newsline.main:app",
        host=args.host,
        port=args.port,
        log_level=args.log_level.lower(),
        # Use HTTP/1.1 for lower overhead than HTTP/2
        http="h11",
        # Disable access logs, we have our own logging
        access_log=False,
        websocket_ping_interval=5,
        websocket_ping_timeout=20,
    )


if __name__ == "__main__":
    main()
