"""Session manager for the Voicemod Control API.

This module owns the protocol session engine. It handles:
- Port discovery and connection management
- Client registration (authentication)
- Request/response correlation
- Routing of pushed app events into the state cache and event hub
- Reconnect/retry logic

Higher level accessors (VoicemodClient) are built on the public API here
and never talk to the transport directly.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from enum import Enum
from typing import Any

import aiohttp

from .actions import Action, describe
from .cache import CachedProperty, StateCache
from .config import ClientConfig
from .correlator import RequestCorrelator
from .discovery import discover_port
from .errors import (
    VoicemodClientError,
    VoicemodConnectionError,
    VoicemodHandshakeError,
    VoicemodLookupError,
    VoicemodNotConnectedError,
    VoicemodPortNotFoundError,
    VoicemodProtocolError,
    VoicemodRequestError,
    VoicemodTimeout,
)
from .events import EventHandler, EventHub, VoicemodEvent
from .models import Soundboard, Voice
from .protocol import build_request, parse_registration_status, is_registration_success
from .router import MessageRouter
from .transport.ws_client import VoicemodWsClient, VoicemodWsMessageType

_LOGGER = logging.getLogger(__name__)

CLOSE_TIMEOUT = 2.0

# Sentinel for "use the configured request timeout".
_DEFAULT_TIMEOUT: Any = object()


class SessionState(Enum):
    """Connection states of a session."""

    IDLE = "idle"
    DISCOVERING = "discovering"
    CONNECTING = "connecting"
    AWAITING_REGISTRATION = "awaiting_registration"
    READY = "ready"
    RETRYING = "retrying"
    FAILED = "failed"
    DISCONNECTED = "disconnected"


class VoicemodSession:
    """Single logical connection to the Voicemod app.

    Usage:
        session = VoicemodSession(ClientConfig(client_key="aaaa-1234"))
        session.subscribe(VoicemodEvent.VOICE_CHANGED, on_voice)
        await session.connect()
        reply = await session.request(Action.GET_USER)
        await session.disconnect()

    The object stays stable across reconnects; only the transport behind it
    is replaced.
    """

    def __init__(
        self,
        config: ClientConfig,
        *,
        http_session: aiohttp.ClientSession | None = None,
    ) -> None:
        """Initialize session.

        Args:
            config: Connection settings
            http_session: Optional aiohttp session to connect through. The
                websockets library is used when omitted.
        """
        self.host = config.host
        self.port = 0

        self._config = config
        self._http_session = http_session

        # Connection state
        self._ws: VoicemodWsClient | None = None
        self._state = SessionState.IDLE
        self._ready = False
        self._ready_event = asyncio.Event()
        self._force_disconnect = False
        self._retry_count = 0
        self._listen_task: asyncio.Task[None] | None = None
        self._reconnect_task: asyncio.Task[None] | None = None
        self._reconnect_waiting = False
        self._connect_lock = asyncio.Lock()

        # Engine
        self._events = EventHub()
        self._cache = StateCache()
        self._correlator = RequestCorrelator()
        self._router = MessageRouter(
            self._events,
            self._cache,
            self._correlator,
            on_voice_unresolved=self._schedule_voice_announce,
        )
        self._inflight: dict[Action, asyncio.Future[dict[str, Any]]] = {}
        self._background_tasks: set[asyncio.Task[Any]] = set()

    # -------------------------------------------------------------------------
    # Public API: Connection Management
    # -------------------------------------------------------------------------

    async def connect(self) -> bool:
        """Discover the app, connect and register.

        Failures are reported as events. With reconnect enabled a failed
        attempt schedules a retry in the background.

        Returns:
            True once the session is ready, False otherwise
        """
        if self._state is SessionState.READY:
            return True

        self._force_disconnect = False
        if self._state in (
            SessionState.IDLE,
            SessionState.FAILED,
            SessionState.DISCONNECTED,
        ):
            self._retry_count = 0
            self._set_state(SessionState.IDLE)

        if self._reconnect_waiting and self._reconnect_task is not None:
            self._reconnect_task.cancel()
            self._reconnect_task = None
            self._reconnect_waiting = False

        return await self._attempt()

    async def disconnect(self) -> None:
        """Close the session and stop reconnecting.

        Every outstanding request is failed before this returns.
        """
        _LOGGER.info("[%s] Disconnecting", self._label)
        self._force_disconnect = True
        self._correlator.fail_all("Disconnected")
        self._ready = False
        self._ready_event.clear()

        reconnect_task, self._reconnect_task = self._reconnect_task, None
        self._reconnect_waiting = False
        if reconnect_task is not None and reconnect_task is not asyncio.current_task():
            reconnect_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await reconnect_task

        self._cancel_background_tasks()

        listen_task = self._listen_task
        self._listen_task = None
        if listen_task is not None and listen_task is not asyncio.current_task():
            listen_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await listen_task

        ws, self._ws = self._ws, None
        if ws is not None:
            await self._close_ws(ws)
            self._events.emit(VoicemodEvent.CONNECTION_CLOSED)

        self._cache.clear()
        if self._state is not SessionState.DISCONNECTED:
            self._set_state(SessionState.DISCONNECTED)
            self._events.emit(VoicemodEvent.DISCONNECTED)

    async def wait_until_ready(self, timeout: float | None = None) -> None:
        """Wait until the session is registered.

        Raises:
            TimeoutError: Not ready within ``timeout`` seconds.
        """
        await asyncio.wait_for(self._ready_event.wait(), timeout)

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        """True while a transport connection exists."""
        return self._ws is not None

    @property
    def is_ready(self) -> bool:
        """True once registration succeeded on the current connection."""
        return self._ready

    @property
    def retry_count(self) -> int:
        return self._retry_count

    @property
    def config(self) -> ClientConfig:
        return self._config

    @property
    def events(self) -> EventHub:
        return self._events

    @property
    def cache(self) -> StateCache:
        return self._cache

    # -------------------------------------------------------------------------
    # Public API: Events and Cache
    # -------------------------------------------------------------------------

    def subscribe(self, event: VoicemodEvent | str, handler: EventHandler) -> Any:
        """Register a handler, returning a callable that removes it."""
        return self._events.subscribe(event, handler)

    def unsubscribe(self, event: VoicemodEvent | str, handler: EventHandler) -> None:
        self._events.unsubscribe(event, handler)

    def subscribe_all(self, handler: EventHandler) -> Any:
        """Receive every inbound envelope."""
        return self._events.subscribe_all(handler)

    def get_cached(self, prop: CachedProperty) -> Any | None:
        return self._cache.get(prop)

    def set_cached(self, prop: CachedProperty, value: Any) -> None:
        """Store a value observed in a reply, announcing voice changes."""
        self._router.store(prop, value)

    # -------------------------------------------------------------------------
    # Public API: Requests
    # -------------------------------------------------------------------------

    async def send(self, action: Action | str, payload: dict[str, Any] | None = None) -> str:
        """Send a request without waiting for its reply.

        Returns:
            The correlation id of the request
        """
        action = Action(action)
        frame = build_request(action=action.value, payload=payload)
        await self._send_frame(action, frame)
        return frame["id"]

    async def request(
        self,
        action: Action | str,
        payload: dict[str, Any] | None = None,
        *,
        timeout: float | None = _DEFAULT_TIMEOUT,
    ) -> dict[str, Any]:
        """Send a request and wait for the matching reply.

        Args:
            action: Action to request
            payload: Request payload
            timeout: Seconds to wait, None waits until the connection drops.
                Defaults to the configured request timeout.

        Returns:
            The full reply envelope

        Raises:
            VoicemodRequestError: Not connected, the send failed, the
                connection dropped or the request timed out.
        """
        action = Action(action)
        if timeout is _DEFAULT_TIMEOUT:
            timeout = self._config.request_timeout

        msg_id = self._correlator.open(action)
        frame = build_request(action=action.value, payload=payload, msg_id=msg_id)
        try:
            await self._send_frame(action, frame)
        except VoicemodClientError as err:
            self._correlator.discard(msg_id)
            raise VoicemodRequestError(action.value, str(err)) from err

        if msg_id not in self._correlator:
            # Failed while the frame was being written
            raise VoicemodRequestError(action.value, "Connection lost")
        return await self._correlator.wait(msg_id, timeout=timeout)

    async def fetch_or_cached(
        self,
        action: Action,
        payload: dict[str, Any] | None = None,
        *,
        refresh: bool = False,
    ) -> Any:
        """Return the value behind ``action``, from cache when possible.

        Cached values are returned without network I/O. Otherwise the request
        is sent; concurrent fetches of the same cacheable action share one
        round trip. The router stores and announces the reply.
        """
        descriptor = describe(action)
        if descriptor.cache is not None and not refresh:
            cached = self._cache.get(descriptor.cache)
            if cached is not None:
                return cached

        if descriptor.cache is None or payload is not None:
            reply = await self.request(action, payload)
            return descriptor.read(reply)

        inflight = self._inflight.get(action)
        if inflight is None:
            inflight = asyncio.ensure_future(self.request(action))
            self._inflight[action] = inflight
            inflight.add_done_callback(lambda _: self._inflight.pop(action, None))
        reply = await asyncio.shield(inflight)
        return descriptor.read(reply)

    async def lookup_voice(self, voice_id: str) -> Voice:
        """Return the full record for ``voice_id`` from the voice list.

        Raises:
            VoicemodLookupError: The id is not in the (refreshed) list.
        """
        return await self._lookup(Action.GET_VOICES, CachedProperty.VOICE_LIST, voice_id)

    async def lookup_soundboard(self, soundboard_id: str) -> Soundboard:
        """Return the soundboard with ``soundboard_id``.

        Raises:
            VoicemodLookupError: The id is not in the (refreshed) list.
        """
        return await self._lookup(
            Action.GET_ALL_SOUNDBOARD, CachedProperty.SOUNDBOARDS, soundboard_id
        )

    # -------------------------------------------------------------------------
    # Internal: Connection State Machine
    # -------------------------------------------------------------------------

    @property
    def _label(self) -> str:
        return f"{self.host}:{self.port}" if self.port else self.host

    def _set_state(self, state: SessionState) -> None:
        if self._state is not state:
            _LOGGER.debug(
                "[%s] State: %s → %s", self._label, self._state.value, state.value
            )
            self._state = state

    async def _attempt(self) -> bool:
        """Run discovery, connect and registration once."""
        async with self._connect_lock:
            if self._state is SessionState.READY:
                return True
            if self._force_disconnect:
                return False

            self._set_state(SessionState.DISCOVERING)
            try:
                port = await discover_port(
                    self.host,
                    self._config.ports,
                    path=self._config.path,
                    timeout=self._config.probe_timeout,
                    session=self._http_session,
                )
            except VoicemodPortNotFoundError as err:
                _LOGGER.warning("[%s] %s", self._label, err)
                self._handle_connection_failure(err)
                return False

            if self._force_disconnect:
                return False

            self.port = port
            self._set_state(SessionState.CONNECTING)
            _LOGGER.info(
                "[%s] Connecting to ws://%s:%s%s (attempt #%d)",
                self._label,
                self.host,
                port,
                self._config.path,
                self._retry_count + 1,
            )

            ws_client = VoicemodWsClient()
            try:
                await ws_client.connect(
                    self.host,
                    port,
                    path=self._config.path,
                    ping_interval=self._config.ping_interval,
                    timeout=self._config.connect_timeout,
                    session=self._http_session,
                )
            except VoicemodTimeout as err:
                _LOGGER.warning("[%s] Connection timeout - app unreachable", self._label)
                self._handle_connection_failure(err)
                return False
            except VoicemodHandshakeError as err:
                _LOGGER.error("[%s] WebSocket handshake failed: %s", self._label, err)
                self._handle_connection_failure(err)
                return False
            except VoicemodConnectionError as err:
                _LOGGER.warning("[%s] Connection failed: %s", self._label, err)
                self._handle_connection_failure(err)
                return False

            if self._force_disconnect:
                await self._close_ws(ws_client)
                return False

            self._ws = ws_client
            self._set_state(SessionState.AWAITING_REGISTRATION)
            self._events.emit(VoicemodEvent.CONNECTION_OPENED)
            self._listen_task = asyncio.create_task(self._listen(ws_client))
            return await self._register(ws_client)

    async def _register(self, ws_client: VoicemodWsClient) -> bool:
        """Authenticate with the client key and wait for the verdict."""
        try:
            reply = await self.request(
                Action.REGISTER_CLIENT,
                {"clientKey": self._config.client_key},
                timeout=self._config.registration_timeout,
            )
        except VoicemodRequestError as err:
            if self._force_disconnect:
                return False
            _LOGGER.error("[%s] Registration failed: %s", self._label, err)
            self._events.emit(VoicemodEvent.CLIENT_REGISTRATION_FAILED, err)
            await self._drop_transport(ws_client)
            return False

        if not is_registration_success(reply):
            code, message = parse_registration_status(reply)
            _LOGGER.error(
                "[%s] Registration rejected (code=%s): %s", self._label, code, message
            )
            self._events.emit(VoicemodEvent.CLIENT_REGISTRATION_FAILED, reply)
            await self._drop_transport(ws_client)
            return False

        if self._ws is not ws_client:
            return False

        self._ready = True
        self._retry_count = 0
        self._set_state(SessionState.READY)
        self._ready_event.set()
        _LOGGER.info("[%s] Client registered", self._label)
        self._events.emit(VoicemodEvent.CLIENT_REGISTERED, reply)
        self._events.emit(VoicemodEvent.CONNECTED)
        return True

    def _handle_connection_failure(
        self, err: VoicemodClientError, *, notify: bool = True
    ) -> None:
        """Schedule a retry, or give up when the policy says so."""
        if self._force_disconnect:
            self._set_state(SessionState.DISCONNECTED)
            return
        if self._reconnect_waiting:
            return

        policy = self._config.reconnect
        if not policy.enabled:
            self._set_state(SessionState.FAILED)
            if notify:
                self._events.emit(VoicemodEvent.CONNECTION_ERROR, err)
            return

        if policy.exhausted(self._retry_count):
            _LOGGER.error(
                "[%s] Giving up after %d retries", self._label, self._retry_count
            )
            self._set_state(SessionState.FAILED)
            self._events.emit(VoicemodEvent.CONNECTION_ERROR, err)
            return

        self._retry_count += 1
        self._set_state(SessionState.RETRYING)
        _LOGGER.info(
            "[%s] Reconnecting in %.1fs (retry %d)",
            self._label,
            policy.interval,
            self._retry_count,
        )
        self._reconnect_waiting = True
        self._reconnect_task = asyncio.create_task(
            self._reconnect_after_delay(policy.interval)
        )

    async def _reconnect_after_delay(self, delay: float) -> None:
        """Reconnect after delay."""
        try:
            await asyncio.sleep(delay)
        except asyncio.CancelledError:
            _LOGGER.debug("[%s] Reconnect cancelled", self._label)
            raise
        finally:
            if self._reconnect_task is asyncio.current_task():
                self._reconnect_waiting = False

        try:
            if self._force_disconnect:
                return
            self._events.emit(VoicemodEvent.CONNECTION_RETRY, self._retry_count)
            await self._attempt()
        finally:
            if self._reconnect_task is asyncio.current_task():
                self._reconnect_task = None

    # -------------------------------------------------------------------------
    # Internal: Message Listener
    # -------------------------------------------------------------------------

    async def _listen(self, ws_client: VoicemodWsClient) -> None:
        """Listen for frames until the transport goes away."""
        message_count = 0
        reconnect_required = False
        error: VoicemodClientError | None = None

        try:
            async for msg in ws_client:
                if msg.type is VoicemodWsMessageType.TEXT:
                    message_count += 1
                    try:
                        self._router.dispatch(msg.data or "")
                    except VoicemodProtocolError as err:
                        self._report_protocol_error(err)

                elif msg.type is VoicemodWsMessageType.CLOSED:
                    _LOGGER.info("[%s] WebSocket closed by app", self._label)
                    reconnect_required = True
                    break

                elif msg.type is VoicemodWsMessageType.ERROR:
                    _LOGGER.error("[%s] WebSocket error", self._label)
                    error = VoicemodConnectionError("WebSocket error")
                    reconnect_required = True
                    break

        except asyncio.CancelledError:
            _LOGGER.debug(
                "[%s] Listener cancelled (%d messages)", self._label, message_count
            )
            raise
        except VoicemodClientError as err:
            _LOGGER.warning("[%s] Client error: %s", self._label, err)
            error = err
            reconnect_required = True
        except Exception as err:
            _LOGGER.exception("[%s] Unexpected error: %s", self._label, err)
            error = VoicemodConnectionError(f"Listener failed: {err}")
            reconnect_required = True
        finally:
            if reconnect_required:
                self._on_transport_lost(ws_client, error)

    def _on_transport_lost(
        self, ws_client: VoicemodWsClient, error: VoicemodClientError | None
    ) -> None:
        """Tear down per-connection state after a close or error."""
        if self._ws is not ws_client:
            return

        self._ws = None
        self._listen_task = None
        self._ready = False
        self._ready_event.clear()
        self._cancel_background_tasks()
        self._correlator.fail_all("Connection lost")
        self._cache.clear()

        if error is not None:
            self._events.emit(VoicemodEvent.CONNECTION_ERROR, error)
        else:
            self._events.emit(VoicemodEvent.CONNECTION_CLOSED)
        self._events.emit(VoicemodEvent.DISCONNECTED)

        self._handle_connection_failure(
            error or VoicemodConnectionError("Connection closed"), notify=False
        )

    def _report_protocol_error(self, err: VoicemodProtocolError) -> None:
        _LOGGER.warning("[%s] Protocol error: %s", self._label, err)
        self._events.emit(VoicemodEvent.PROTOCOL_ERROR, err)

    # -------------------------------------------------------------------------
    # Internal: Helpers
    # -------------------------------------------------------------------------

    async def _send_frame(self, action: Action, frame: dict[str, Any]) -> None:
        if self._ws is None:
            raise VoicemodNotConnectedError("Not connected")
        if not self._ready and action is not Action.REGISTER_CLIENT:
            raise VoicemodNotConnectedError("Client is not registered")
        await self._ws.send_json(frame)
        _LOGGER.debug("[%s] Sent %s id=%s", self._label, action.value, frame["id"])

    async def _drop_transport(self, ws_client: VoicemodWsClient) -> None:
        """Close a transport; the listener reports the loss."""
        if self._ws is ws_client:
            await self._close_ws(ws_client)

    async def _close_ws(self, ws_client: VoicemodWsClient) -> None:
        try:
            await asyncio.wait_for(ws_client.close(), timeout=CLOSE_TIMEOUT)
        except TimeoutError:
            _LOGGER.warning("[%s] WebSocket close timed out", self._label)
        except VoicemodClientError as err:
            _LOGGER.debug("[%s] WebSocket close failed: %s", self._label, err)

    async def _lookup(self, action: Action, prop: CachedProperty, item_id: str) -> Any:
        was_cached = self._cache.has(prop)
        items = await self.fetch_or_cached(action)
        match = _find_by_id(items, item_id)
        if match is None and was_cached:
            items = await self.fetch_or_cached(action, refresh=True)
            match = _find_by_id(items, item_id)
        if match is None:
            raise VoicemodLookupError(f"{item_id} not found in {action.value}")
        return match

    def _schedule_voice_announce(self, voice_id: str) -> None:
        """Resolve a voice id missing from the cache, then announce it."""
        if self._ws is None:
            return
        task = asyncio.get_running_loop().create_task(self._announce_voice(voice_id))
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

    async def _announce_voice(self, voice_id: str) -> None:
        try:
            voice = await self.lookup_voice(voice_id)
        except VoicemodClientError as err:
            _LOGGER.warning("[%s] Cannot resolve voice %s: %s", self._label, voice_id, err)
            return
        if self._cache.get(CachedProperty.CURRENT_VOICE) == voice_id:
            self._events.emit(VoicemodEvent.VOICE_CHANGED, voice)

    def _cancel_background_tasks(self) -> None:
        for task in tuple(self._background_tasks):
            task.cancel()
        self._background_tasks.clear()
        self._inflight.clear()


def _find_by_id(items: Any, item_id: str) -> Any | None:
    for item in items or ():
        if getattr(item, "id", None) == item_id:
            return item
    return None
