"""Local mirror of the app state last observed over the wire."""

from __future__ import annotations

from enum import Enum
from typing import Any


class CachedProperty(Enum):
    """App properties mirrored locally."""

    CURRENT_VOICE = "current_voice"
    VOICE_LIST = "voice_list"
    USER = "user"
    USER_LICENSE = "user_license"
    SOUNDBOARDS = "soundboards"
    ACTIVE_SOUNDBOARD = "active_soundboard"
    MEMES = "memes"
    VOICE_CHANGER_STATUS = "voice_changer_status"
    BACKGROUND_EFFECTS_STATUS = "background_effects_status"
    HEAR_MYSELF_STATUS = "hear_myself_status"
    MUTE_MIC_STATUS = "mute_mic_status"
    MUTE_MEME_FOR_ME_STATUS = "mute_meme_for_me_status"
    BAD_LANGUAGE_STATUS = "bad_language_status"


class StateCache:
    """Last known value per CachedProperty.

    A property is unset until a reply or push supplies it. Writes are
    last-write-wins in arrival order.
    """

    def __init__(self) -> None:
        self._values: dict[CachedProperty, Any] = {}

    def get(self, prop: CachedProperty) -> Any | None:
        return self._values.get(prop)

    def has(self, prop: CachedProperty) -> bool:
        return self._values.get(prop) is not None

    def set(self, prop: CachedProperty, value: Any) -> None:
        if value is None:
            self._values.pop(prop, None)
            return
        self._values[prop] = value

    def invalidate(self, prop: CachedProperty) -> None:
        self._values.pop(prop, None)

    def clear(self) -> None:
        self._values.clear()

    def snapshot(self) -> dict[str, Any]:
        """Return a plain dict of the cached values keyed by property name."""
        return {prop.value: value for prop, value in self._values.items()}

    def __contains__(self, prop: object) -> bool:
        return prop in self._values

    def __len__(self) -> int:
        return len(self._values)
