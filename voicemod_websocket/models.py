"""Typed records for app state returned by the Control API.

The API is loose about field presence, so only ids are required and every
other field falls back to a neutral default.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Literal

LicenseType = Literal["free", "pro"]


class SelectVoiceMode(Enum):
    """Pool used by selectRandomVoice."""

    ALL_VOICES = "AllVoices"
    FREE_VOICES = "FreeVoices"
    FAVORITE_VOICES = "FavoriteVoices"
    CUSTOM_VOICES = "CustomVoices"


class BitmapKind(Enum):
    """Item kinds that have an icon."""

    VOICE = "voice"
    MEME = "meme"


@dataclass(frozen=True)
class Voice:
    """A voice available in the app."""

    id: str
    friendly_name: str = ""
    enabled: bool = True
    favorited: bool = False
    is_new: bool = False
    is_custom: bool = False
    bitmap_checksum: str = ""

    @classmethod
    def from_wire(cls, data: dict[str, Any]) -> Voice:
        return cls(
            id=str(data["id"]),
            friendly_name=data.get("friendlyName", ""),
            enabled=bool(data.get("enabled", True)),
            favorited=bool(data.get("favorited", False)),
            is_new=bool(data.get("isNew", False)),
            is_custom=bool(data.get("isCustom", False)),
            bitmap_checksum=data.get("bitmapChecksum", ""),
        )


@dataclass(frozen=True)
class SoundboardSound:
    """One sound inside a soundboard."""

    id: str
    name: str = ""
    is_custom: bool = False
    enabled: bool = True
    playback_mode: str = ""
    loop: bool = False
    mute_other_sounds: bool = False
    mute_voice: bool = False
    stop_other_sounds: bool = False
    show_pro_logo: bool = False
    bitmap_checksum: str = ""

    @classmethod
    def from_wire(cls, data: dict[str, Any]) -> SoundboardSound:
        return cls(
            id=str(data["id"]),
            name=data.get("name", ""),
            is_custom=bool(data.get("isCustom", False)),
            enabled=bool(data.get("enabled", True)),
            playback_mode=data.get("playbackMode", ""),
            loop=bool(data.get("loop", False)),
            mute_other_sounds=bool(data.get("muteOtherSounds", False)),
            mute_voice=bool(data.get("muteVoice", False)),
            stop_other_sounds=bool(data.get("stopOtherSounds", False)),
            show_pro_logo=bool(data.get("showProLogo", False)),
            bitmap_checksum=data.get("bitmapChecksum", ""),
        )


@dataclass(frozen=True)
class Soundboard:
    """A soundboard profile and its sounds."""

    id: str
    name: str = ""
    is_custom: bool = False
    enabled: bool = True
    show_pro_logo: bool = False
    sounds: tuple[SoundboardSound, ...] = field(default_factory=tuple)

    @classmethod
    def from_wire(cls, data: dict[str, Any]) -> Soundboard:
        return cls(
            id=str(data["id"]),
            name=data.get("name", ""),
            is_custom=bool(data.get("isCustom", False)),
            enabled=bool(data.get("enabled", True)),
            show_pro_logo=bool(data.get("showProLogo", False)),
            sounds=tuple(
                SoundboardSound.from_wire(sound) for sound in data.get("sounds") or ()
            ),
        )


@dataclass(frozen=True)
class Meme:
    """A meme sound."""

    name: str
    file_name: str
    type: str = ""
    image: str = ""

    @classmethod
    def from_wire(cls, data: dict[str, Any]) -> Meme:
        return cls(
            name=data.get("Name", ""),
            file_name=str(data["FileName"]),
            type=data.get("Type", ""),
            image=data.get("Image", ""),
        )


@dataclass(frozen=True)
class Bitmap:
    """Icon variants for a voice or meme, base64 encoded."""

    default: str = ""
    selected: str = ""
    transparent: str = ""

    @classmethod
    def from_wire(cls, data: dict[str, Any]) -> Bitmap:
        return cls(
            default=data.get("default", ""),
            selected=data.get("selected", ""),
            transparent=data.get("transparent", ""),
        )


@dataclass(frozen=True)
class VoiceParameters:
    """Parameters of a voice after a parameter change."""

    voice_id: str
    parameters: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_wire(cls, data: dict[str, Any]) -> VoiceParameters:
        parameters = data.get("parameters") or {}
        if isinstance(parameters, list):
            merged: dict[str, Any] = {}
            for entry in parameters:
                merged.update(entry)
            parameters = merged
        return cls(voice_id=str(data.get("voiceID", "")), parameters=parameters)


def voices_from_wire(items: list[dict[str, Any]]) -> list[Voice]:
    return [Voice.from_wire(item) for item in items]


def soundboards_from_wire(items: list[dict[str, Any]]) -> list[Soundboard]:
    return [Soundboard.from_wire(item) for item in items]


def memes_from_wire(items: list[dict[str, Any]]) -> list[Meme]:
    return [Meme.from_wire(item) for item in items]
