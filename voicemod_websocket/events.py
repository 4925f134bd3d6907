"""Publish/subscribe surface for connection and app-state notifications."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from enum import Enum
from typing import Any

_LOGGER = logging.getLogger(__name__)

EventHandler = Callable[..., Any]


class VoicemodEvent(Enum):
    """Every event name a session can emit."""

    # Catch-all: every inbound envelope, before classification
    ALL_EVENTS = "AllEvents"

    # Connection lifecycle
    CONNECTION_OPENED = "ConnectionOpened"
    CONNECTION_CLOSED = "ConnectionClosed"
    CONNECTION_ERROR = "ConnectionError"
    CONNECTION_RETRY = "ConnectionRetry"
    CONNECTED = "Connected"
    DISCONNECTED = "Disconnected"

    # Registration lifecycle
    CLIENT_REGISTERED = "ClientRegistered"
    CLIENT_REGISTRATION_FAILED = "ClientRegistrationFailed"
    CLIENT_REGISTRATION_PENDING = "ClientRegistrationPending"

    # Inbound frame that could not be parsed or classified
    PROTOCOL_ERROR = "ProtocolError"

    # App state
    USER_CHANGED = "UserChanged"
    USER_LICENSE_CHANGED = "UserLicenseChanged"
    VOICE_CHANGED = "VoiceChanged"
    VOICE_LIST_CHANGED = "VoiceListChanged"
    VOICE_PARAMETER_CHANGED = "VoiceParameterChanged"
    VOICE_CHANGER_STATUS_CHANGED = "VoiceChangerStatusChanged"
    HEAR_MYSELF_STATUS_CHANGED = "HearMyselfStatusChanged"
    BACKGROUND_EFFECT_STATUS_CHANGED = "BackgroundEffectStatusChanged"
    MUTE_MIC_STATUS_CHANGED = "MuteMicStatusChanged"
    MUTE_MEME_FOR_ME_STATUS_CHANGED = "MuteMemeForMeStatusChanged"
    BAD_LANGUAGE_STATUS_CHANGED = "BadLanguageStatusChanged"
    SOUNDBOARD_LIST_CHANGED = "SoundboardListChanged"
    MEME_LIST_CHANGED = "MemeListChanged"


class EventHub:
    """Per-session event emitter.

    Handlers are plain callables or coroutine functions. Coroutine handlers
    are scheduled as tasks on the running loop. A failing handler is logged
    and never interrupts delivery to the others.
    """

    def __init__(self) -> None:
        self._handlers: dict[VoicemodEvent, list[EventHandler]] = {}
        self._background_tasks: set[asyncio.Task[Any]] = set()

    def subscribe(
        self, event: VoicemodEvent | str, handler: EventHandler
    ) -> Callable[[], None]:
        """Register ``handler`` for ``event``.

        Returns:
            A callable that removes the subscription.
        """
        name = VoicemodEvent(event)
        self._handlers.setdefault(name, []).append(handler)

        def unsubscribe() -> None:
            self.unsubscribe(name, handler)

        return unsubscribe

    def unsubscribe(self, event: VoicemodEvent | str, handler: EventHandler) -> None:
        """Remove a handler. Unknown handlers are ignored."""
        handlers = self._handlers.get(VoicemodEvent(event), [])
        if handler in handlers:
            handlers.remove(handler)

    def subscribe_all(self, handler: EventHandler) -> Callable[[], None]:
        """Receive every inbound envelope regardless of its classification."""
        return self.subscribe(VoicemodEvent.ALL_EVENTS, handler)

    def unsubscribe_all(self, handler: EventHandler) -> None:
        self.unsubscribe(VoicemodEvent.ALL_EVENTS, handler)

    def handlers(self, event: VoicemodEvent | str) -> tuple[EventHandler, ...]:
        return tuple(self._handlers.get(VoicemodEvent(event), ()))

    def emit(self, event: VoicemodEvent, *args: Any) -> None:
        """Deliver ``args`` to every handler of ``event`` in subscription order."""
        for handler in tuple(self._handlers.get(event, ())):
            try:
                result = handler(*args)
                if asyncio.iscoroutine(result):
                    self._fire_task(result)
            except Exception as err:
                _LOGGER.exception("Handler error for %s: %s", event.value, err)

    async def wait_for(
        self, event: VoicemodEvent | str, timeout: float | None = None
    ) -> tuple[Any, ...]:
        """Wait for the next emission of ``event`` and return its arguments."""
        future: asyncio.Future[tuple[Any, ...]] = (
            asyncio.get_running_loop().create_future()
        )

        def handler(*args: Any) -> None:
            if not future.done():
                future.set_result(args)

        unsubscribe = self.subscribe(event, handler)
        try:
            return await asyncio.wait_for(future, timeout)
        finally:
            unsubscribe()

    def clear(self) -> None:
        """Drop every subscription and cancel pending handler tasks."""
        self._handlers.clear()
        for task in tuple(self._background_tasks):
            task.cancel()

    def _fire_task(self, coro: Any) -> None:
        """Schedule a coroutine handler, keeping a reference until it finishes."""
        task = asyncio.ensure_future(coro)
        self._background_tasks.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task[Any]) -> None:
        self._background_tasks.discard(task)
        if task.cancelled():
            return
        err = task.exception()
        if err is not None:
            _LOGGER.error("Async handler failed: %s", err, exc_info=err)
