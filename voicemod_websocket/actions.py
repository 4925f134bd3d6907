"""Closed tables of Control API actions, app events and reply handling.

Each request action has a ResponseDescriptor saying which field of the
reply's ``actionObject`` holds the value of interest, which cached property
it updates and which event announces it. The router and the generic
fetch-or-cache routine are both driven from these tables.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from .cache import CachedProperty
from .errors import VoicemodProtocolError
from .events import VoicemodEvent
from .models import (
    Bitmap,
    VoiceParameters,
    memes_from_wire,
    soundboards_from_wire,
    voices_from_wire,
)


class Action(Enum):
    """Requests the client can send."""

    REGISTER_CLIENT = "registerClient"
    GET_USER = "getUser"
    GET_USER_LICENSE = "getUserLicense"
    GET_ROTATORY_VOICES_REMAINING_TIME = "getRotatoryVoicesRemainingTime"
    GET_VOICES = "getVoices"
    GET_CURRENT_VOICE = "getCurrentVoice"
    GET_ALL_SOUNDBOARD = "getAllSoundboard"
    GET_ACTIVE_SOUNDBOARD_PROFILE = "getActiveSoundboardProfile"
    GET_MEMES = "getMemes"
    GET_BITMAP = "getBitmap"
    LOAD_VOICE = "loadVoice"
    SELECT_RANDOM_VOICE = "selectRandomVoice"
    GET_HEAR_MYSELF_STATUS = "getHearMyselfStatus"
    TOGGLE_HEAR_MY_VOICE = "toggleHearMyVoice"
    GET_VOICE_CHANGER_STATUS = "getVoiceChangerStatus"
    TOGGLE_VOICE_CHANGER = "toggleVoiceChanger"
    GET_BACKGROUND_EFFECT_STATUS = "getBackgroundEffectStatus"
    TOGGLE_BACKGROUND_EFFECTS = "toggleBackgroundEffects"
    GET_MUTE_MIC_STATUS = "getMuteMicStatus"
    TOGGLE_MUTE_MIC = "toggleMuteMic"
    SET_BEEP_SOUND = "setBeepSound"
    PLAY_MEME = "playMeme"
    STOP_ALL_MEME_SOUNDS = "stopAllMemeSounds"
    GET_MUTE_MEME_FOR_ME_STATUS = "getMuteMemeForMeStatus"
    TOGGLE_MUTE_MEME_FOR_ME = "toggleMuteMemeForMe"
    SET_CURRENT_VOICE_PARAMETER = "setCurrentVoiceParameter"


class AppEvent(Enum):
    """Spontaneous ``*Event`` actions pushed by the app."""

    VOICE_CHANGER_ENABLED = "voiceChangerEnabledEvent"
    VOICE_CHANGER_DISABLED = "voiceChangerDisabledEvent"
    BACKGROUND_EFFECTS_ENABLED = "backgroundEffectsEnabledEvent"
    BACKGROUND_EFFECTS_DISABLED = "backgroundEffectsDisabledEvent"
    HEAR_MYSELF_ENABLED = "hearMySelfEnabledEvent"
    HEAR_MYSELF_DISABLED = "hearMySelfDisabledEvent"
    MUTE_MIC_ENABLED = "muteMicEnabledEvent"
    MUTE_MIC_DISABLED = "muteMicDisabledEvent"
    MUTE_MEME_FOR_ME_ENABLED = "muteMemeForMeEnabledEvent"
    MUTE_MEME_FOR_ME_DISABLED = "muteMemeForMeDisabledEvent"
    BAD_LANGUAGE_ENABLED = "badLanguageEnabledEvent"
    BAD_LANGUAGE_DISABLED = "badLanguageDisabledEvent"
    VOICE_LOADED = "voiceLoadedEvent"


@dataclass(frozen=True, slots=True)
class ToggleUpdate:
    """Cache write and notification carried by a toggle app event."""

    cache: CachedProperty
    event: VoicemodEvent
    value: bool


@dataclass(frozen=True, slots=True)
class ResponseDescriptor:
    """How to turn a reply into a value, a cache write and an event.

    Attributes:
        field: Key inside ``actionObject``; None means the whole object.
        cache: Property the value is stored under, if any.
        event: Event announcing the value, if any.
        parse: Converter applied to the raw value.
    """

    field: str | None = None
    cache: CachedProperty | None = None
    event: VoicemodEvent | None = None
    parse: Callable[[Any], Any] | None = None

    def read(self, envelope: dict[str, Any]) -> Any:
        """Extract the value of interest from a reply envelope."""
        action_object = envelope.get("actionObject")
        if self.field is None:
            raw = action_object
        else:
            if not isinstance(action_object, dict) or self.field not in action_object:
                raise VoicemodProtocolError(
                    f"Reply is missing actionObject.{self.field}", envelope
                )
            raw = action_object[self.field]

        if self.parse is None or raw is None:
            return raw
        try:
            return self.parse(raw)
        except (KeyError, TypeError, ValueError, AttributeError) as err:
            raise VoicemodProtocolError(
                f"Malformed actionObject: {err}", envelope
            ) from err


def _status(cache: CachedProperty, event: VoicemodEvent) -> ResponseDescriptor:
    return ResponseDescriptor(field="value", cache=cache, event=event, parse=bool)


_NO_VALUE = ResponseDescriptor()

RESPONSES: dict[Action, ResponseDescriptor] = {
    Action.REGISTER_CLIENT: _NO_VALUE,
    Action.GET_USER: ResponseDescriptor(
        field="userId",
        cache=CachedProperty.USER,
        event=VoicemodEvent.USER_CHANGED,
    ),
    Action.GET_USER_LICENSE: ResponseDescriptor(
        field="licenseType",
        cache=CachedProperty.USER_LICENSE,
        event=VoicemodEvent.USER_LICENSE_CHANGED,
    ),
    Action.GET_ROTATORY_VOICES_REMAINING_TIME: ResponseDescriptor(
        field="remainingTime"
    ),
    Action.GET_VOICES: ResponseDescriptor(
        field="voices",
        cache=CachedProperty.VOICE_LIST,
        event=VoicemodEvent.VOICE_LIST_CHANGED,
        parse=voices_from_wire,
    ),
    # VoiceChanged needs the full record, the router announces it on store
    Action.GET_CURRENT_VOICE: ResponseDescriptor(
        field="voiceID",
        cache=CachedProperty.CURRENT_VOICE,
        parse=str,
    ),
    Action.GET_ALL_SOUNDBOARD: ResponseDescriptor(
        field="soundboards",
        cache=CachedProperty.SOUNDBOARDS,
        event=VoicemodEvent.SOUNDBOARD_LIST_CHANGED,
        parse=soundboards_from_wire,
    ),
    Action.GET_ACTIVE_SOUNDBOARD_PROFILE: ResponseDescriptor(
        field="profileId",
        cache=CachedProperty.ACTIVE_SOUNDBOARD,
        parse=str,
    ),
    Action.GET_MEMES: ResponseDescriptor(
        field="memes",
        cache=CachedProperty.MEMES,
        event=VoicemodEvent.MEME_LIST_CHANGED,
        parse=memes_from_wire,
    ),
    Action.GET_BITMAP: ResponseDescriptor(parse=Bitmap.from_wire),
    Action.LOAD_VOICE: _NO_VALUE,
    Action.SELECT_RANDOM_VOICE: _NO_VALUE,
    Action.GET_HEAR_MYSELF_STATUS: _status(
        CachedProperty.HEAR_MYSELF_STATUS, VoicemodEvent.HEAR_MYSELF_STATUS_CHANGED
    ),
    Action.TOGGLE_HEAR_MY_VOICE: _status(
        CachedProperty.HEAR_MYSELF_STATUS, VoicemodEvent.HEAR_MYSELF_STATUS_CHANGED
    ),
    Action.GET_VOICE_CHANGER_STATUS: _status(
        CachedProperty.VOICE_CHANGER_STATUS,
        VoicemodEvent.VOICE_CHANGER_STATUS_CHANGED,
    ),
    Action.TOGGLE_VOICE_CHANGER: _status(
        CachedProperty.VOICE_CHANGER_STATUS,
        VoicemodEvent.VOICE_CHANGER_STATUS_CHANGED,
    ),
    Action.GET_BACKGROUND_EFFECT_STATUS: _status(
        CachedProperty.BACKGROUND_EFFECTS_STATUS,
        VoicemodEvent.BACKGROUND_EFFECT_STATUS_CHANGED,
    ),
    Action.TOGGLE_BACKGROUND_EFFECTS: _status(
        CachedProperty.BACKGROUND_EFFECTS_STATUS,
        VoicemodEvent.BACKGROUND_EFFECT_STATUS_CHANGED,
    ),
    Action.GET_MUTE_MIC_STATUS: _status(
        CachedProperty.MUTE_MIC_STATUS, VoicemodEvent.MUTE_MIC_STATUS_CHANGED
    ),
    Action.TOGGLE_MUTE_MIC: _status(
        CachedProperty.MUTE_MIC_STATUS, VoicemodEvent.MUTE_MIC_STATUS_CHANGED
    ),
    Action.SET_BEEP_SOUND: _NO_VALUE,
    Action.PLAY_MEME: _NO_VALUE,
    Action.STOP_ALL_MEME_SOUNDS: _NO_VALUE,
    Action.GET_MUTE_MEME_FOR_ME_STATUS: _status(
        CachedProperty.MUTE_MEME_FOR_ME_STATUS,
        VoicemodEvent.MUTE_MEME_FOR_ME_STATUS_CHANGED,
    ),
    Action.TOGGLE_MUTE_MEME_FOR_ME: _status(
        CachedProperty.MUTE_MEME_FOR_ME_STATUS,
        VoicemodEvent.MUTE_MEME_FOR_ME_STATUS_CHANGED,
    ),
    Action.SET_CURRENT_VOICE_PARAMETER: ResponseDescriptor(
        event=VoicemodEvent.VOICE_PARAMETER_CHANGED,
        parse=VoiceParameters.from_wire,
    ),
}

TOGGLE_EVENTS: dict[AppEvent, ToggleUpdate] = {
    AppEvent.VOICE_CHANGER_ENABLED: ToggleUpdate(
        CachedProperty.VOICE_CHANGER_STATUS,
        VoicemodEvent.VOICE_CHANGER_STATUS_CHANGED,
        True,
    ),
    AppEvent.VOICE_CHANGER_DISABLED: ToggleUpdate(
        CachedProperty.VOICE_CHANGER_STATUS,
        VoicemodEvent.VOICE_CHANGER_STATUS_CHANGED,
        False,
    ),
    AppEvent.BACKGROUND_EFFECTS_ENABLED: ToggleUpdate(
        CachedProperty.BACKGROUND_EFFECTS_STATUS,
        VoicemodEvent.BACKGROUND_EFFECT_STATUS_CHANGED,
        True,
    ),
    AppEvent.BACKGROUND_EFFECTS_DISABLED: ToggleUpdate(
        CachedProperty.BACKGROUND_EFFECTS_STATUS,
        VoicemodEvent.BACKGROUND_EFFECT_STATUS_CHANGED,
        False,
    ),
    AppEvent.HEAR_MYSELF_ENABLED: ToggleUpdate(
        CachedProperty.HEAR_MYSELF_STATUS,
        VoicemodEvent.HEAR_MYSELF_STATUS_CHANGED,
        True,
    ),
    AppEvent.HEAR_MYSELF_DISABLED: ToggleUpdate(
        CachedProperty.HEAR_MYSELF_STATUS,
        VoicemodEvent.HEAR_MYSELF_STATUS_CHANGED,
        False,
    ),
    AppEvent.MUTE_MIC_ENABLED: ToggleUpdate(
        CachedProperty.MUTE_MIC_STATUS, VoicemodEvent.MUTE_MIC_STATUS_CHANGED, True
    ),
    AppEvent.MUTE_MIC_DISABLED: ToggleUpdate(
        CachedProperty.MUTE_MIC_STATUS, VoicemodEvent.MUTE_MIC_STATUS_CHANGED, False
    ),
    AppEvent.MUTE_MEME_FOR_ME_ENABLED: ToggleUpdate(
        CachedProperty.MUTE_MEME_FOR_ME_STATUS,
        VoicemodEvent.MUTE_MEME_FOR_ME_STATUS_CHANGED,
        True,
    ),
    AppEvent.MUTE_MEME_FOR_ME_DISABLED: ToggleUpdate(
        CachedProperty.MUTE_MEME_FOR_ME_STATUS,
        VoicemodEvent.MUTE_MEME_FOR_ME_STATUS_CHANGED,
        False,
    ),
    AppEvent.BAD_LANGUAGE_ENABLED: ToggleUpdate(
        CachedProperty.BAD_LANGUAGE_STATUS,
        VoicemodEvent.BAD_LANGUAGE_STATUS_CHANGED,
        True,
    ),
    AppEvent.BAD_LANGUAGE_DISABLED: ToggleUpdate(
        CachedProperty.BAD_LANGUAGE_STATUS,
        VoicemodEvent.BAD_LANGUAGE_STATUS_CHANGED,
        False,
    ),
}

# List snapshots the app pushes without an id when the user edits them.
LIST_PUSH_ACTIONS: frozenset[Action] = frozenset(
    {Action.GET_ALL_SOUNDBOARD, Action.GET_MEMES, Action.GET_VOICES}
)


def describe(action: Action) -> ResponseDescriptor:
    return RESPONSES[action]


def lookup_action(name: Any) -> Action | None:
    """Map a wire action name to Action, None when it is not one we know."""
    try:
        return Action(name)
    except ValueError:
        return None


def lookup_app_event(name: Any) -> AppEvent | None:
    try:
        return AppEvent(name)
    except ValueError:
        return None
