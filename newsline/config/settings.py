"""
Environment-driven settings.

Values are read once at startup. A ``.env`` file in the working directory is
loaded first so local development does not need exported variables.
"""

import os
from pathlib import Path
from typing import Optional

import dotenv
from pydantic import BaseModel, Field

from newsline.config.constants import (
    DEFAULT_CONNECT_TIMEOUT,
    DEFAULT_HANDSHAKE_TIMEOUT,
    DEFAULT_HTTP_TIMEOUT,
    DEFAULT_REALTIME_API_URL,
    DEFAULT_TOOL_TIMEOUT,
    DEFAULT_VOICE,
)


class Settings(BaseModel):
    """Runtime configuration shared read-only by every call."""

    xai_api_key: str = Field("", description="Bearer key for the voice-AI socket")
    realtime_api_url: str = DEFAULT_REALTIME_API_URL
    voice: str = DEFAULT_VOICE
    backend_url: str = "http://localhost:8000"
    x_api_base: str = "https://api.x.com"
    x_bearer_token: str = ""
    public_hostname: str = "localhost"
    host: str = "0.0.0.0"
    port: int = 3000
    log_level: str = "INFO"
    connect_timeout: float = Field(DEFAULT_CONNECT_TIMEOUT, gt=0)
    handshake_timeout: float = Field(DEFAULT_HANDSHAKE_TIMEOUT, gt=0)
    tool_timeout: float = Field(DEFAULT_TOOL_TIMEOUT, gt=0)
    http_timeout: float = Field(DEFAULT_HTTP_TIMEOUT, gt=0)

    @property
    def stream_host(self) -> str:
        """Public host name without any scheme prefix."""
        host = self.public_hostname
        for prefix in ("https://", "http://"):
            if host.startswith(prefix):
                host = host[len(prefix):]
        return host.rstrip("/")

    def stream_url(self, call_id: str) -> str:
        """WebSocket URL the telephony provider connects to for a call."""
        return f"wss://{self.stream_host}/media-stream/{call_id}"

    @classmethod
    def from_env(cls, env_file: Optional[Path] = None) -> "Settings":
        """
        Build settings from the process environment.

        Args:
            env_file: Optional .env file loaded before reading (defaults to ./.env)

        Returns:
            Settings: The populated settings
        """
        env_path = env_file or Path(".") / ".env"
        if env_path.exists():
            dotenv.load_dotenv(env_path)

        return cls(
            xai_api_key=os.getenv("XAI_API_KEY", ""),
            realtime_api_url=os.getenv("REALTIME_API_URL", DEFAULT_REALTIME_API_URL),
            voice=os.getenv("REALTIME_VOICE", DEFAULT_VOICE),
            backend_url=os.getenv("BACKEND_URL", "http://localhost:8000"),
            x_api_base=os.getenv("X_API_BASE", "https://api.x.com"),
            x_bearer_token=os.getenv("X_BEARER_TOKEN", ""),
            public_hostname=os.getenv("HOSTNAME", "localhost"),
            host=os.getenv("HOST", "0.0.0.0"),
            port=int(os.getenv("PORT", "3000")),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            connect_timeout=float(os.getenv("CONNECT_TIMEOUT", DEFAULT_CONNECT_TIMEOUT)),
            handshake_timeout=float(os.getenv("HANDSHAKE_TIMEOUT", DEFAULT_HANDSHAKE_TIMEOUT)),
            tool_timeout=float(os.getenv("TOOL_TIMEOUT", DEFAULT_TOOL_TIMEOUT)),
            http_timeout=float(os.getenv("HTTP_TIMEOUT", DEFAULT_HTTP_TIMEOUT)),
        )
