from unittest.mock import patch

import pytest

import run
from newsline.config.settings import Settings


def test_parse_args_defaults_from_settings():
    args = run.parse_args(Settings(port=4000, host="127.0.0.1", log_level="WARNING"), [])
    assert args.port == 4000
    assert args.host == "127.0.0.1"
    assert args.log_level == "WARNING"


def test_main_requires_voice_ai_key():
    with patch("run.Settings.from_env", return_value=Settings(xai_api_key="")):
        with patch("run.uvicorn.run") as mock_run:
            with pytest.raises(SystemExit) as exc_info:
                run.main([])

    assert exc_info.value.code == 1
    mock_run.assert_not_called()


def test_main_starts_server():
    with patch("run.Settings.from_env", return_value=Settings(xai_api_key="key")):
        with patch("run.uvicorn.run") as mock_run:
            run.main(["--port", "8123", "--log-level", "DEBUG"])

    args, kwargs = mock_run.call_args
    assert args == ("newsline.main:app",)
    assert kwargs["port"] == 8123
    assert kwargs["log_level"] == "debug"
    assert kwargs["http"] == "h11"
