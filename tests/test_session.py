"""Test VoicemodSession connection lifecycle and request handling."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from conftest import (
    PORT,
    VOICES,
    FakeApp,
    FakeWsClient,
    action_reply,
    make_config,
    registration_reply,
    retry_config,
    settle,
    wait_until,
)

from voicemod_websocket.actions import Action
from voicemod_websocket.cache import CachedProperty
from voicemod_websocket.config import ReconnectPolicy
from voicemod_websocket.errors import (
    VoicemodNotConnectedError,
    VoicemodPortNotFoundError,
    VoicemodProtocolError,
    VoicemodRequestError,
    VoicemodRequestTimeout,
)
from voicemod_websocket.events import VoicemodEvent
from voicemod_websocket.models import Voice
from voicemod_websocket.session import SessionState, VoicemodSession


def record_events(session: VoicemodSession, *events: VoicemodEvent) -> list:
    """Collect (event, args) pairs in emission order."""
    seen: list = []
    for event in events:
        session.subscribe(event, lambda *args, _e=event: seen.append((_e, args)))
    return seen


def patch_transport(*clients: FakeWsClient, discover: AsyncMock | None = None):
    discover = discover or AsyncMock(return_value=PORT)
    return (
        patch("voicemod_websocket.session.discover_port", discover),
        patch("voicemod_websocket.session.VoicemodWsClient", side_effect=list(clients)),
    )


def test_session_creation():
    """Test a new session is idle and not connected."""
    session = VoicemodSession(make_config(host="10.0.0.5"))

    assert session.host == "10.0.0.5"
    assert session.port == 0
    assert session.state is SessionState.IDLE
    assert not session.is_connected
    assert not session.is_ready


class TestConnect:
    """Tests for connect() and registration."""

    @pytest.mark.asyncio
    async def test_connect_registers(self):
        """Test discovery, connect and registration complete in order."""
        fake = FakeWsClient(FakeApp())
        session = VoicemodSession(make_config(connect_timeout=2.0))
        seen = record_events(
            session,
            VoicemodEvent.CONNECTION_OPENED,
            VoicemodEvent.CLIENT_REGISTERED,
            VoicemodEvent.CONNECTED,
        )
        discover_patch, client_patch = patch_transport(fake)

        with discover_patch as discover, client_patch:
            assert await session.connect() is True

        discover.assert_awaited_once_with(
            "127.0.0.1", (PORT,), path="/v1", timeout=1.0, session=None
        )
        assert fake.connect_calls == [
            (
                "127.0.0.1",
                PORT,
                {"path": "/v1", "ping_interval": None, "timeout": 2.0, "session": None},
            )
        ]
        assert fake.sent[0]["action"] == "registerClient"
        assert fake.sent[0]["payload"] == {"clientKey": "test-key"}
        assert [event for event, _ in seen] == [
            VoicemodEvent.CONNECTION_OPENED,
            VoicemodEvent.CLIENT_REGISTERED,
            VoicemodEvent.CONNECTED,
        ]
        assert session.state is SessionState.READY
        assert session.port == PORT
        assert session.is_ready

        await session.disconnect()

    @pytest.mark.asyncio
    async def test_connect_when_ready_is_noop(self, open_session):
        session, fake = await open_session()

        assert await session.connect() is True
        assert len(fake.sent) == 1

        await session.disconnect()

    @pytest.mark.asyncio
    async def test_registration_rejected(self):
        """Test a non-200 status fails registration and drops the transport."""
        fake = FakeWsClient(FakeApp(registration_code="403"))
        session = VoicemodSession(make_config())
        failed = MagicMock()
        connected = MagicMock()
        session.subscribe(VoicemodEvent.CLIENT_REGISTRATION_FAILED, failed)
        session.subscribe(VoicemodEvent.CONNECTED, connected)
        discover_patch, client_patch = patch_transport(fake)

        with discover_patch, client_patch:
            assert await session.connect() is False
            await wait_until(lambda: session.state is SessionState.FAILED)

        reply = failed.call_args.args[0]
        assert reply["payload"]["status"]["code"] == "403"
        connected.assert_not_called()
        assert fake.closed
        assert not session.is_ready
        assert not session.is_connected

    @pytest.mark.asyncio
    async def test_disconnect_during_registration(self):
        """Test a caller disconnect is not reported as a registration failure."""
        fake = FakeWsClient(FakeApp(registration_code=None))
        session = VoicemodSession(make_config(registration_timeout=5.0))
        failed = MagicMock()
        session.subscribe(VoicemodEvent.CLIENT_REGISTRATION_FAILED, failed)
        discover_patch, client_patch = patch_transport(fake)

        with discover_patch, client_patch:
            connecting = asyncio.create_task(session.connect())
            await wait_until(lambda: len(fake.sent) == 1)
            await session.disconnect()
            assert await connecting is False

        failed.assert_not_called()
        assert session.state is SessionState.DISCONNECTED
        assert fake.closed

    @pytest.mark.asyncio
    async def test_pending_registration(self):
        """Test the pending notice is surfaced while the user confirms."""
        fake = FakeWsClient(FakeApp(registration_code=None))
        session = VoicemodSession(make_config())
        pending = MagicMock()
        session.subscribe(VoicemodEvent.CLIENT_REGISTRATION_PENDING, pending)
        discover_patch, client_patch = patch_transport(fake)

        with discover_patch, client_patch:
            task = asyncio.create_task(session.connect())
            await wait_until(lambda: len(fake.sent) == 1)
            fake.push({"msg": "Pending authentication"})
            await settle()
            assert session.state is SessionState.AWAITING_REGISTRATION
            fake.push(registration_reply(fake.sent[0]["id"]))
            assert await task is True

        pending.assert_called_once_with()
        await session.disconnect()

    @pytest.mark.asyncio
    async def test_registration_timeout(self):
        fake = FakeWsClient(FakeApp(registration_code=None))
        session = VoicemodSession(make_config(registration_timeout=0.01))
        failed = MagicMock()
        session.subscribe(VoicemodEvent.CLIENT_REGISTRATION_FAILED, failed)
        discover_patch, client_patch = patch_transport(fake)

        with discover_patch, client_patch:
            assert await session.connect() is False
            await wait_until(lambda: session.state is SessionState.FAILED)

        assert isinstance(failed.call_args.args[0], VoicemodRequestTimeout)

    @pytest.mark.asyncio
    async def test_no_port_without_reconnect(self):
        """Test discovery failure is reported once and the session fails."""
        session = VoicemodSession(make_config())
        errors = MagicMock()
        session.subscribe(VoicemodEvent.CONNECTION_ERROR, errors)
        discover = AsyncMock(side_effect=VoicemodPortNotFoundError("none"))

        with patch("voicemod_websocket.session.discover_port", discover):
            assert await session.connect() is False

        assert session.state is SessionState.FAILED
        errors.assert_called_once()
        assert isinstance(errors.call_args.args[0], VoicemodPortNotFoundError)

    @pytest.mark.asyncio
    async def test_wait_until_ready(self, open_session):
        session, _ = await open_session()
        await session.wait_until_ready(timeout=0.1)
        await session.disconnect()

        with pytest.raises(TimeoutError):
            await session.wait_until_ready(timeout=0.01)


class TestRequests:
    """Tests for send() and request()."""

    @pytest.mark.asyncio
    async def test_request_before_connect(self):
        session = VoicemodSession(make_config())

        with pytest.raises(VoicemodNotConnectedError):
            await session.send(Action.GET_USER)
        with pytest.raises(VoicemodRequestError, match="getUser"):
            await session.request(Action.GET_USER)
        assert len(session._correlator) == 0

    @pytest.mark.asyncio
    async def test_request_round_trip(self, open_session, fake_app):
        session, fake = await open_session(fake_app)

        reply = await session.request(Action.GET_USER)

        assert reply["actionObject"] == {"userId": "user-1"}
        assert fake.sent[-1]["id"] == reply["id"]
        assert session.get_cached(CachedProperty.USER) == "user-1"
        await session.disconnect()

    @pytest.mark.asyncio
    async def test_replies_out_of_order(self, open_session):
        """Test each outstanding request gets its own reply."""
        session, fake = await open_session(FakeApp())

        requests = [
            asyncio.create_task(session.request(Action.GET_USER)) for _ in range(5)
        ]
        await wait_until(lambda: len(fake.sent) == 6)
        frames = fake.sent[1:]
        for index, frame in reversed(list(enumerate(frames))):
            fake.push(action_reply("getUser", frame["id"], {"userId": f"user-{index}"}))

        replies = await asyncio.gather(*requests)

        assert [reply["actionObject"]["userId"] for reply in replies] == [
            f"user-{index}" for index in range(5)
        ]
        assert [reply["id"] for reply in replies] == [frame["id"] for frame in frames]
        assert session.get_cached(CachedProperty.USER) == "user-0"
        await session.disconnect()

    @pytest.mark.asyncio
    async def test_send_returns_id(self, open_session):
        session, fake = await open_session()

        msg_id = await session.send("stopAllMemeSounds")

        assert fake.sent[-1] == {"action": "stopAllMemeSounds", "id": msg_id, "payload": {}}
        await session.disconnect()

    @pytest.mark.asyncio
    async def test_request_timeout(self, open_session):
        """Test an unanswered request times out without hurting the session."""
        session, _ = await open_session()

        with pytest.raises(VoicemodRequestTimeout):
            await session.request(Action.GET_MEMES, timeout=0.01)

        assert session.is_ready
        assert len(session._correlator) == 0
        await session.disconnect()

    @pytest.mark.asyncio
    async def test_fetch_or_cached_shares_round_trip(self, open_session, fake_app):
        """Test concurrent fetches of one property send a single request."""
        session, _ = await open_session(fake_app)

        results = await asyncio.gather(
            session.fetch_or_cached(Action.GET_VOICES),
            session.fetch_or_cached(Action.GET_VOICES),
        )
        again = await session.fetch_or_cached(Action.GET_VOICES)

        assert results[0] == results[1] == again
        assert fake_app.count("getVoices") == 1
        await session.disconnect()

    @pytest.mark.asyncio
    async def test_protocol_error_is_not_fatal(self, open_session, fake_app):
        """Test garbage frames are reported and the session keeps working."""
        session, fake = await open_session(fake_app)
        errors = MagicMock()
        session.subscribe(VoicemodEvent.PROTOCOL_ERROR, errors)

        fake.push("{garbage")
        fake.push({"action": "partyModeEnabledEvent"})
        await settle()

        assert errors.call_count == 2
        assert isinstance(errors.call_args.args[0], VoicemodProtocolError)
        assert session.is_ready
        assert (await session.request(Action.GET_USER))["actionObject"]["userId"] == "user-1"
        await session.disconnect()


class TestDisconnect:
    """Tests for disconnect() and transport loss."""

    @pytest.mark.asyncio
    async def test_disconnect_fails_pending(self, open_session):
        """Test every outstanding request fails when the session closes."""
        session, fake = await open_session()
        seen = record_events(
            session, VoicemodEvent.CONNECTION_CLOSED, VoicemodEvent.DISCONNECTED
        )
        session.set_cached(CachedProperty.USER, "user-1")
        waiters = [
            asyncio.create_task(session.request(Action.GET_USER, timeout=None))
            for _ in range(3)
        ]
        await wait_until(lambda: len(fake.sent) == 4)

        await session.disconnect()
        results = await asyncio.gather(*waiters, return_exceptions=True)

        assert all(isinstance(result, VoicemodRequestError) for result in results)
        assert all("Disconnected" in str(result) for result in results)
        assert [event for event, _ in seen] == [
            VoicemodEvent.CONNECTION_CLOSED,
            VoicemodEvent.DISCONNECTED,
        ]
        assert session.state is SessionState.DISCONNECTED
        assert fake.closed
        assert len(session.cache) == 0

    @pytest.mark.asyncio
    async def test_disconnect_twice(self, open_session):
        session, _ = await open_session()
        disconnected = MagicMock()
        session.subscribe(VoicemodEvent.DISCONNECTED, disconnected)

        await session.disconnect()
        await session.disconnect()

        disconnected.assert_called_once_with()

    @pytest.mark.asyncio
    async def test_transport_lost_without_reconnect(self, open_session):
        """Test a dropped connection fails pending requests and clears state."""
        session, fake = await open_session()
        seen = record_events(
            session,
            VoicemodEvent.CONNECTION_CLOSED,
            VoicemodEvent.CONNECTION_ERROR,
            VoicemodEvent.DISCONNECTED,
        )
        session.set_cached(CachedProperty.MUTE_MIC_STATUS, True)
        waiter = asyncio.create_task(session.request(Action.GET_USER, timeout=None))
        await wait_until(lambda: len(fake.sent) == 2)

        fake.drop()
        with pytest.raises(VoicemodRequestError, match="Connection lost"):
            await waiter
        await wait_until(lambda: session.state is SessionState.FAILED)

        assert [event for event, _ in seen] == [
            VoicemodEvent.CONNECTION_CLOSED,
            VoicemodEvent.DISCONNECTED,
        ]
        assert not session.is_connected
        assert session.get_cached(CachedProperty.MUTE_MIC_STATUS) is None

    @pytest.mark.asyncio
    async def test_transport_error_is_reported(self, open_session):
        session, fake = await open_session()
        errors = MagicMock()
        session.subscribe(VoicemodEvent.CONNECTION_ERROR, errors)

        fake.drop(error=True)
        await wait_until(lambda: session.state is SessionState.FAILED)

        errors.assert_called_once()


class TestReconnect:
    """Tests for the retry policy."""

    @pytest.mark.asyncio
    async def test_reconnects_after_transport_loss(self):
        """Test a dropped session comes back on a fresh transport."""
        first = FakeWsClient(FakeApp())
        second = FakeWsClient(FakeApp())
        session = VoicemodSession(retry_config())
        seen = record_events(
            session, VoicemodEvent.CONNECTION_RETRY, VoicemodEvent.CONNECTED
        )
        discover_patch, client_patch = patch_transport(first, second)

        with discover_patch, client_patch:
            assert await session.connect() is True
            first.drop()
            await wait_until(lambda: len(seen) == 3)

        assert seen == [
            (VoicemodEvent.CONNECTED, ()),
            (VoicemodEvent.CONNECTION_RETRY, (1,)),
            (VoicemodEvent.CONNECTED, ()),
        ]
        assert session.state is SessionState.READY
        assert session.retry_count == 0
        assert second.sent[0]["action"] == "registerClient"
        await session.disconnect()

    @pytest.mark.asyncio
    async def test_retries_after_registration_rejected(self):
        """Test a rejected registration does not stop reconnect attempts."""
        first = FakeWsClient(FakeApp(registration_code="403"))
        second = FakeWsClient(FakeApp())
        session = VoicemodSession(retry_config())
        failed = MagicMock()
        session.subscribe(VoicemodEvent.CLIENT_REGISTRATION_FAILED, failed)
        discover_patch, client_patch = patch_transport(first, second)

        with discover_patch, client_patch:
            assert await session.connect() is False
            await wait_until(lambda: session.state is SessionState.READY)

        failed.assert_called_once()
        assert first.closed
        assert session.retry_count == 0
        assert second.sent[0]["action"] == "registerClient"
        await session.disconnect()

    @pytest.mark.asyncio
    async def test_disconnect_cancels_running_retry(self):
        """Test disconnect stops a retry attempt that is already underway."""
        session = VoicemodSession(retry_config(max_retries=0))
        started = asyncio.Event()
        calls = 0

        async def discover(*args, **kwargs):
            nonlocal calls
            calls += 1
            if calls == 1:
                raise VoicemodPortNotFoundError("none")
            started.set()
            await asyncio.Event().wait()

        with patch("voicemod_websocket.session.discover_port", side_effect=discover):
            assert await session.connect() is False
            await asyncio.wait_for(started.wait(), timeout=1)
            retry_task = session._reconnect_task
            assert retry_task is not None
            await session.disconnect()

        assert retry_task.cancelled()
        assert session._reconnect_task is None
        assert session.state is SessionState.DISCONNECTED
        assert calls == 2

    @pytest.mark.asyncio
    async def test_gives_up_after_max_retries(self):
        """Test the retry budget counts scheduled retries."""
        session = VoicemodSession(retry_config(max_retries=2))
        retries = MagicMock()
        errors = MagicMock()
        session.subscribe(VoicemodEvent.CONNECTION_RETRY, retries)
        session.subscribe(VoicemodEvent.CONNECTION_ERROR, errors)
        discover = AsyncMock(side_effect=VoicemodPortNotFoundError("none"))

        with patch("voicemod_websocket.session.discover_port", discover):
            assert await session.connect() is False
            assert session.state is SessionState.RETRYING
            await wait_until(lambda: session.state is SessionState.FAILED)

        assert discover.await_count == 3
        assert [c.args for c in retries.call_args_list] == [(1,), (2,)]
        errors.assert_called_once()

    @pytest.mark.asyncio
    async def test_disconnect_cancels_retry(self):
        config = make_config(
            reconnect=ReconnectPolicy(enabled=True, interval=30, max_retries=0)
        )
        session = VoicemodSession(config)
        discover = AsyncMock(side_effect=VoicemodPortNotFoundError("none"))

        with patch("voicemod_websocket.session.discover_port", discover):
            assert await session.connect() is False
            assert session.state is SessionState.RETRYING
            await session.disconnect()

        assert session.state is SessionState.DISCONNECTED
        assert session._reconnect_task is None
        assert discover.await_count == 1


class TestVoiceAnnouncements:
    """Tests for VoiceChanged resolution."""

    @pytest.mark.asyncio
    async def test_unknown_voice_is_fetched(self, open_session, fake_app):
        """Test a voice missing from the cache is looked up, then announced."""
        session, fake = await open_session(fake_app)
        changed = MagicMock()
        session.subscribe(VoicemodEvent.VOICE_CHANGED, changed)

        fake.push({"action": "voiceLoadedEvent", "actionObject": {"voiceID": "baby"}})
        await wait_until(lambda: changed.called)

        changed.assert_called_once_with(Voice.from_wire(VOICES[1]))
        assert fake_app.count("getVoices") == 1
        await session.disconnect()

    @pytest.mark.asyncio
    async def test_missing_voice_is_logged(self, open_session, fake_app, caplog):
        session, fake = await open_session(fake_app)
        changed = MagicMock()
        session.subscribe(VoicemodEvent.VOICE_CHANGED, changed)

        fake.push({"action": "voiceLoadedEvent", "actionObject": {"voiceID": "ghost"}})
        await wait_until(lambda: "Cannot resolve voice ghost" in caplog.text)

        changed.assert_not_called()
        await session.disconnect()
