"""Tests for the command line entry point."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from voicemod_websocket.__main__ import build_parser, main
from voicemod_websocket.config import ClientConfig
from voicemod_websocket.errors import VoicemodLookupError
from voicemod_websocket.models import Voice


def fake_client(connect_result: bool = True) -> MagicMock:
    client = MagicMock()
    client.connect = AsyncMock(return_value=connect_result)
    client.disconnect = AsyncMock()
    client.wait_until_ready = AsyncMock()
    client.get_user = AsyncMock(return_value="user-1")
    client.get_user_license = AsyncMock(return_value="pro")
    client.get_current_voice = AsyncMock(return_value=Voice(id="nofx", friendly_name="Clean"))
    return client


def test_parser_defaults_from_config():
    defaults = ClientConfig.from_env({"VOICEMOD_CLIENT_KEY": "env-key", "VOICEMOD_RECONNECT": "1"})
    args = build_parser(defaults).parse_args([])

    assert args.client_key == "env-key"
    assert args.host == "127.0.0.1"
    assert args.reconnect is True
    assert args.max_retries == 5
    assert args.duration is None


def test_missing_client_key(capsys):
    with patch.dict("os.environ", {}, clear=True):
        assert main([]) == 2
    assert "VOICEMOD_CLIENT_KEY" in capsys.readouterr().out


@patch.dict("os.environ", {}, clear=True)
def test_run_prints_state(capsys):
    """Test a short session prints the user and voice, then disconnects."""
    client = fake_client()
    with patch("voicemod_websocket.__main__.VoicemodClient", return_value=client) as cls:
        assert main(["--client-key", "k", "--duration", "0", "--no-reconnect"]) == 0

    config = cls.call_args.args[0]
    assert config.client_key == "k"
    assert config.reconnect.enabled is False
    out = capsys.readouterr().out
    assert "user: user-1 (pro)" in out
    assert "voice: Clean [nofx]" in out
    client.disconnect.assert_awaited_once()


@patch.dict("os.environ", {}, clear=True)
@pytest.mark.parametrize(
    ("client", "expected"),
    [
        (fake_client(connect_result=False), 1),
        (
            MagicMock(
                connect=AsyncMock(return_value=True),
                disconnect=AsyncMock(),
                wait_until_ready=AsyncMock(side_effect=TimeoutError),
            ),
            1,
        ),
    ],
)
def test_run_failures(client, expected):
    with patch("voicemod_websocket.__main__.VoicemodClient", return_value=client):
        assert main(["--client-key", "k", "--duration", "0"]) == expected


@patch.dict("os.environ", {}, clear=True)
def test_lookup_failure_exits_nonzero():
    client = fake_client()
    client.get_current_voice = AsyncMock(side_effect=VoicemodLookupError("nofx not found"))
    with patch("voicemod_websocket.__main__.VoicemodClient", return_value=client):
        assert main(["--client-key", "k", "--duration", "0"]) == 1
    client.disconnect.assert_awaited_once()
