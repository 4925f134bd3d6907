"""Inbound frame classification and dispatch."""

from __future__ import annotations

import logging
from collections.abc import Callable
from enum import Enum
from typing import Any

from .actions import (
    LIST_PUSH_ACTIONS,
    TOGGLE_EVENTS,
    Action,
    AppEvent,
    ResponseDescriptor,
    describe,
    lookup_action,
    lookup_app_event,
)
from .cache import CachedProperty, StateCache
from .correlator import RequestCorrelator
from .errors import VoicemodProtocolError
from .events import EventHub, VoicemodEvent
from .models import Voice
from .protocol import (
    EVENT_SUFFIX,
    REGISTRATION_ACTION,
    is_pending_registration_notice,
    message_id,
    parse_frame,
)

_LOGGER = logging.getLogger(__name__)


class FrameKind(Enum):
    """Classification of an inbound envelope, in priority order."""

    PENDING_REGISTRATION = "pending_registration"
    REGISTRATION_REPLY = "registration_reply"
    RESPONSE = "response"
    APP_EVENT = "app_event"
    LIST_UPDATE = "list_update"


def classify(envelope: dict[str, Any]) -> FrameKind:
    """Classify an envelope.

    Raises:
        VoicemodProtocolError: The envelope matches no known shape.
    """
    if is_pending_registration_notice(envelope):
        return FrameKind.PENDING_REGISTRATION

    action = envelope.get("action")
    if action == REGISTRATION_ACTION:
        return FrameKind.REGISTRATION_REPLY
    if message_id(envelope) is not None:
        return FrameKind.RESPONSE
    if isinstance(action, str) and action.endswith(EVENT_SUFFIX):
        return FrameKind.APP_EVENT
    if action is not None:
        return FrameKind.LIST_UPDATE

    raise VoicemodProtocolError("Unrecognized message", envelope)


class MessageRouter:
    """Route inbound frames to the correlator, the cache and the event hub.

    Frames are handled one at a time and every cache write and emission for
    a frame completes before ``dispatch`` returns.
    """

    def __init__(
        self,
        events: EventHub,
        cache: StateCache,
        correlator: RequestCorrelator,
        *,
        on_voice_unresolved: Callable[[str], None] | None = None,
    ) -> None:
        self._events = events
        self._cache = cache
        self._correlator = correlator
        self._on_voice_unresolved = on_voice_unresolved

    def dispatch(self, text: str) -> FrameKind:
        """Handle one inbound text frame.

        Every frame is broadcast on ``AllEvents`` before classification.

        Raises:
            VoicemodProtocolError: The frame is not JSON or cannot be classified.
        """
        try:
            envelope = parse_frame(text)
        except VoicemodProtocolError:
            self._events.emit(VoicemodEvent.ALL_EVENTS, text)
            raise

        self._events.emit(VoicemodEvent.ALL_EVENTS, envelope)

        kind = classify(envelope)
        if kind is FrameKind.PENDING_REGISTRATION:
            _LOGGER.debug("Registration pending user confirmation")
            self._events.emit(VoicemodEvent.CLIENT_REGISTRATION_PENDING)
        elif kind is FrameKind.REGISTRATION_REPLY:
            self._handle_registration_reply(envelope)
        elif kind is FrameKind.RESPONSE:
            self._handle_response(envelope)
        elif kind is FrameKind.APP_EVENT:
            self._handle_app_event(envelope)
        else:
            self._handle_list_update(envelope)
        return kind

    def store(self, prop: CachedProperty, value: Any) -> None:
        """Write a cached property, announcing voice changes."""
        self._cache.set(prop, value)
        if prop is CachedProperty.CURRENT_VOICE and value is not None:
            self._announce_voice(str(value))

    # -------------------------------------------------------------------------
    # Internal: Handlers
    # -------------------------------------------------------------------------

    def _handle_registration_reply(self, envelope: dict[str, Any]) -> None:
        msg_id = message_id(envelope)
        if msg_id is None or not self._correlator.resolve(msg_id, envelope):
            _LOGGER.warning("Registration reply without a pending request")

    def _handle_response(self, envelope: dict[str, Any]) -> None:
        msg_id = message_id(envelope)
        if msg_id is None:
            raise VoicemodProtocolError("Response without an id", envelope)
        action = self._correlator.action_for(msg_id) or lookup_action(
            envelope.get("actionType")
        )

        error: VoicemodProtocolError | None = None
        if action is None:
            _LOGGER.debug(
                "Reply id=%s has unknown actionType %s",
                msg_id,
                envelope.get("actionType"),
            )
        else:
            try:
                self._apply(describe(action), envelope)
            except VoicemodProtocolError as err:
                error = err

        # The waiter gets the full envelope even when it was malformed.
        self._correlator.resolve(msg_id, envelope)
        if error is not None:
            raise error

    def _handle_app_event(self, envelope: dict[str, Any]) -> None:
        name = envelope.get("action")
        app_event = lookup_app_event(name)
        if app_event is None:
            raise VoicemodProtocolError(f"Unknown app event: {name}", envelope)

        if app_event is AppEvent.VOICE_LOADED:
            action_object = envelope.get("actionObject")
            voice_id = (
                action_object.get("voiceID") if isinstance(action_object, dict) else None
            )
            if not voice_id:
                raise VoicemodProtocolError("voiceLoadedEvent without voiceID", envelope)
            self.store(CachedProperty.CURRENT_VOICE, str(voice_id))
            return

        update = TOGGLE_EVENTS[app_event]
        self.store(update.cache, update.value)
        self._events.emit(update.event, update.value)

    def _handle_list_update(self, envelope: dict[str, Any]) -> None:
        name = envelope.get("action")
        action = lookup_action(name)
        if action is None or action not in LIST_PUSH_ACTIONS:
            raise VoicemodProtocolError(f"Unknown list update: {name}", envelope)
        self._apply(describe(action), envelope)

    def _apply(self, descriptor: ResponseDescriptor, envelope: dict[str, Any]) -> None:
        if descriptor.cache is None and descriptor.event is None:
            return
        value = descriptor.read(envelope)
        if descriptor.cache is not None:
            self.store(descriptor.cache, value)
        if descriptor.event is not None:
            self._events.emit(descriptor.event, value)

    def _announce_voice(self, voice_id: str) -> None:
        voices: list[Voice] | None = self._cache.get(CachedProperty.VOICE_LIST)
        for voice in voices or ():
            if voice.id == voice_id:
                self._events.emit(VoicemodEvent.VOICE_CHANGED, voice)
                return

        if self._on_voice_unresolved is not None:
            self._on_voice_unresolved(voice_id)
        else:
            _LOGGER.debug("Voice %s is not in the cached voice list", voice_id)
