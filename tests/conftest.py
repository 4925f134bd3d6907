"""Pytest configuration and fixtures for voicemod_websocket tests."""

from __future__ import annotations

import asyncio
import json
from collections.abc import Awaitable, Callable
from typing import Any
from unittest.mock import AsyncMock, patch

import pytest

from voicemod_websocket.config import ClientConfig, ReconnectPolicy
from voicemod_websocket.errors import VoicemodConnectionError
from voicemod_websocket.session import VoicemodSession
from voicemod_websocket.transport.ws_client import (
    VoicemodWsMessage,
    VoicemodWsMessageType,
)

PORT = 59129

VOICES = [
    {"id": "nofx", "friendlyName": "Clean", "enabled": True, "favorited": False},
    {"id": "baby", "friendlyName": "Baby", "enabled": True, "favorited": True},
    {"id": "cave", "friendlyName": "Cave", "enabled": False, "isCustom": True},
]

SOUNDBOARDS = [
    {
        "id": "sb-1",
        "name": "Default",
        "isCustom": False,
        "enabled": True,
        "sounds": [{"id": "s-1", "name": "Airhorn"}],
    },
    {"id": "sb-2", "name": "Mine", "isCustom": True, "enabled": True, "sounds": []},
]

MEMES = [
    {"Name": "Airhorn", "FileName": "airhorn.wav", "Type": "PlayRestart", "Image": ""},
]


def make_config(**overrides: Any) -> ClientConfig:
    """Build a config with fast timings for tests."""
    values: dict[str, Any] = {
        "client_key": "test-key",
        "ports": (PORT,),
        "ping_interval": None,
        "request_timeout": 1.0,
        "registration_timeout": 1.0,
    }
    values.update(overrides)
    return ClientConfig(**values)


def retry_config(max_retries: int = 2) -> ClientConfig:
    return make_config(
        reconnect=ReconnectPolicy(enabled=True, interval=0, max_retries=max_retries)
    )


def registration_reply(msg_id: str, code: str = "200") -> dict[str, Any]:
    message = "OK" if code == "200" else "Forbidden"
    return {
        "action": "registerClient",
        "id": msg_id,
        "payload": {"status": {"code": code, "description": message}},
    }


def action_reply(action: str, msg_id: str, action_object: Any) -> dict[str, Any]:
    return {"actionType": action, "id": msg_id, "actionObject": action_object}


class FakeApp:
    """Scripted stand-in for the Voicemod app.

    Replies are keyed by action name. A value is either the ``actionObject``
    to send back or a callable building it from the request payload. Actions
    without a scripted reply are never answered.
    """

    def __init__(
        self,
        replies: dict[str, Any] | None = None,
        *,
        registration_code: str | None = "200",
    ) -> None:
        self.replies: dict[str, Any] = dict(replies or {})
        self.registration_code = registration_code
        self.requests: list[dict[str, Any]] = []

    def __call__(self, frame: dict[str, Any]) -> list[dict[str, Any]]:
        self.requests.append(frame)
        action = frame["action"]
        if action == "registerClient":
            if self.registration_code is None:
                return []
            return [registration_reply(frame["id"], self.registration_code)]
        if action not in self.replies:
            return []
        action_object = self.replies[action]
        if callable(action_object):
            action_object = action_object(frame["payload"])
        return [action_reply(action, frame["id"], action_object)]

    def count(self, action: str) -> int:
        return sum(1 for frame in self.requests if frame["action"] == action)

    def last(self, action: str) -> dict[str, Any]:
        return [frame for frame in self.requests if frame["action"] == action][-1]


class FakeWsClient:
    """In-memory replacement for VoicemodWsClient."""

    def __init__(self, app: FakeApp | None = None) -> None:
        self.app = app
        self.sent: list[dict[str, Any]] = []
        self.closed = False
        self.connect_calls: list[tuple[Any, ...]] = []
        self._queue: asyncio.Queue[VoicemodWsMessage] = asyncio.Queue()

    async def connect(self, host: str, port: int, **kwargs: Any) -> None:
        self.connect_calls.append((host, port, kwargs))

    async def send_json(self, payload: dict[str, Any]) -> None:
        if self.closed:
            raise VoicemodConnectionError("WebSocket send failed")
        self.sent.append(payload)
        if self.app is not None:
            for reply in self.app(payload):
                self.push(reply)

    def push(self, envelope: dict[str, Any] | str) -> None:
        """Deliver an inbound frame."""
        text = envelope if isinstance(envelope, str) else json.dumps(envelope)
        self._queue.put_nowait(VoicemodWsMessage(VoicemodWsMessageType.TEXT, text))

    def drop(self, *, error: bool = False) -> None:
        """Simulate the app going away."""
        msg_type = VoicemodWsMessageType.ERROR if error else VoicemodWsMessageType.CLOSED
        self._queue.put_nowait(VoicemodWsMessage(msg_type))

    async def close(self) -> None:
        if not self.closed:
            self.closed = True
            self.drop()

    def __aiter__(self) -> Any:
        return self._iter_messages()

    async def _iter_messages(self) -> Any:
        while True:
            msg = await self._queue.get()
            yield msg
            if msg.type is not VoicemodWsMessageType.TEXT:
                return


async def settle(rounds: int = 5) -> None:
    """Let queued frames and scheduled tasks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def fake_app() -> FakeApp:
    return FakeApp(
        {
            "getUser": {"userId": "user-1"},
            "getUserLicense": {"licenseType": "pro"},
            "getVoices": {"voices": VOICES, "currentVoice": "nofx"},
            "getCurrentVoice": {"voiceID": "baby"},
            "getAllSoundboard": {"soundboards": SOUNDBOARDS},
            "getActiveSoundboardProfile": {"profileId": "sb-2"},
            "getMemes": {"memes": MEMES},
        }
    )


@pytest.fixture
def open_session() -> Callable[..., Awaitable[tuple[VoicemodSession, FakeWsClient]]]:
    """Return a coroutine that connects a session to a fake app."""

    async def _open(
        app: FakeApp | None = None, config: ClientConfig | None = None
    ) -> tuple[VoicemodSession, FakeWsClient]:
        fake = FakeWsClient(app or FakeApp())
        session = VoicemodSession(config or make_config())
        with (
            patch(
                "voicemod_websocket.session.discover_port",
                AsyncMock(return_value=PORT),
            ),
            patch("voicemod_websocket.session.VoicemodWsClient", return_value=fake),
        ):
            assert await session.connect() is True
        return session, fake

    return _open


async def wait_until(predicate: Callable[[], bool], rounds: int = 200) -> None:
    """Yield to the loop until ``predicate`` holds."""
    for _ in range(rounds):
        if predicate():
            return
        await asyncio.sleep(0)
    raise AssertionError("Condition not reached")
