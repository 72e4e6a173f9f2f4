from unittest.mock import patch

import pytest
from pydantic import ValidationError

from newsline.config.settings import Settings


def test_from_env_reads_variables(tmp_path):
    env = {
        "XAI_API_KEY": "xai-key",
        "HOSTNAME": "https://example.ngrok.app/",
        "PORT": "8080",
        "LOG_LEVEL": "debug",
        "TOOL_TIMEOUT": "12.5",
        "REALTIME_VOICE": "ara",
    }
    with patch.dict("os.environ", env, clear=True):
        settings = Settings.from_env(env_file=tmp_path / "missing.env")

    assert settings.xai_api_key == "xai-key"
    assert settings.port == 8080
    assert settings.log_level == "DEBUG"
    assert settings.tool_timeout == 12.5
    assert settings.voice == "ara"
    assert settings.connect_timeout == 10.0
    assert settings.handshake_timeout == 15.0


def test_from_env_defaults(tmp_path):
    with patch.dict("os.environ", {}, clear=True):
        settings = Settings.from_env(env_file=tmp_path / "missing.env")

    assert settings.xai_api_key == ""
    assert settings.host == "0.0.0.0"
    assert settings.port == 3000
    assert settings.realtime_api_url == "wss://api.x.ai/v1/realtime"
    assert settings.voice == "rex"


def test_from_env_loads_dotenv_file(tmp_path):
    env_file = tmp_path / ".env"
    env_file.write_text("XAI_API_KEY=from-file\nBACKEND_URL=http://backend:9000\n")
    with patch.dict("os.environ", {}, clear=True):
        settings = Settings.from_env(env_file=env_file)

    assert settings.xai_api_key == "from-file"
    assert settings.backend_url == "http://backend:9000"


def test_stream_url_strips_scheme():
    settings = Settings(public_hostname="https://example.ngrok.app/")
    assert settings.stream_host == "example.ngrok.app"
    assert settings.stream_url("call_abc") == "wss://example.ngrok.app/media-stream/call_abc"


def test_timeouts_must_be_positive():
    with pytest.raises(ValidationError):
        Settings(tool_timeout=0)
