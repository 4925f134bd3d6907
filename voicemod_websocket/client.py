"""High level accessors for the Voicemod Control API."""

from __future__ import annotations

import logging
from typing import Any

import aiohttp

from .actions import Action, describe
from .cache import CachedProperty
from .config import ClientConfig, ReconnectPolicy
from .events import EventHandler, VoicemodEvent
from .models import (
    Bitmap,
    BitmapKind,
    LicenseType,
    Meme,
    SelectVoiceMode,
    Soundboard,
    Voice,
    VoiceParameters,
)
from .session import SessionState, VoicemodSession

_LOGGER = logging.getLogger(__name__)


class VoicemodClient:
    """Typed accessors on top of a VoicemodSession.

    Get accessors return cached state when it is known and only hit the app
    on a cache miss. Set and toggle accessors always round-trip; the session
    updates the cache from the reply.

    Usage:
        async with VoicemodClient.create("127.0.0.1", "aaaa-1234") as client:
            voice = await client.get_current_voice()
    """

    def __init__(
        self,
        config: ClientConfig,
        *,
        http_session: aiohttp.ClientSession | None = None,
    ) -> None:
        self._session = VoicemodSession(config, http_session=http_session)

    @classmethod
    def create(
        cls,
        host: str,
        client_key: str,
        *,
        reconnect: bool = False,
        retry_interval: float = 1.0,
        max_retries: int = 5,
    ) -> VoicemodClient:
        return cls(
            ClientConfig(
                client_key=client_key,
                host=host,
                reconnect=ReconnectPolicy(
                    enabled=reconnect, interval=retry_interval, max_retries=max_retries
                ),
            )
        )

    async def __aenter__(self) -> VoicemodClient:
        await self.connect()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.disconnect()

    # -------------------------------------------------------------------------
    # Session pass-throughs
    # -------------------------------------------------------------------------

    @property
    def session(self) -> VoicemodSession:
        return self._session

    @property
    def state(self) -> SessionState:
        return self._session.state

    @property
    def is_ready(self) -> bool:
        return self._session.is_ready

    async def connect(self) -> bool:
        return await self._session.connect()

    async def disconnect(self) -> None:
        await self._session.disconnect()

    async def wait_until_ready(self, timeout: float | None = None) -> None:
        await self._session.wait_until_ready(timeout)

    def subscribe(self, event: VoicemodEvent | str, handler: EventHandler) -> Any:
        return self._session.subscribe(event, handler)

    def unsubscribe(self, event: VoicemodEvent | str, handler: EventHandler) -> None:
        self._session.unsubscribe(event, handler)

    def subscribe_all(self, handler: EventHandler) -> Any:
        return self._session.subscribe_all(handler)

    # -------------------------------------------------------------------------
    # User
    # -------------------------------------------------------------------------

    async def get_user(self) -> str:
        """Return the id of the logged in user."""
        return await self._session.fetch_or_cached(Action.GET_USER)

    async def get_user_license(self) -> LicenseType:
        return await self._session.fetch_or_cached(Action.GET_USER_LICENSE)

    async def get_rotatory_voices_remaining_time(self) -> int:
        """Seconds until the free voice rotation changes."""
        return await self._call(Action.GET_ROTATORY_VOICES_REMAINING_TIME)

    # -------------------------------------------------------------------------
    # Voices
    # -------------------------------------------------------------------------

    async def get_voices(self) -> list[Voice]:
        return await self._session.fetch_or_cached(Action.GET_VOICES)

    async def get_current_voice(self) -> Voice:
        """Return the selected voice.

        Raises:
            VoicemodLookupError: The selected id is not in the voice list.
        """
        voice_id = await self._session.fetch_or_cached(Action.GET_CURRENT_VOICE)
        return await self._session.lookup_voice(voice_id)

    async def load_voice(
        self,
        voice_id: str,
        parameter_name: str | None = None,
        parameter_value: Any = None,
    ) -> Voice:
        """Select a voice, optionally setting one of its parameters.

        Returns:
            The voice the app reports as loaded
        """
        payload: dict[str, Any] = {"voiceID": voice_id}
        if parameter_name is not None and parameter_value is not None:
            payload["parameterName"] = parameter_name
            payload["parameterValue"] = parameter_value

        reply = await self._session.request(Action.LOAD_VOICE, payload)
        action_object = reply.get("actionObject")
        loaded = voice_id
        if isinstance(action_object, dict) and action_object.get("voiceID"):
            loaded = str(action_object["voiceID"])

        # The echo is authoritative even when the id is not in the voice list.
        await self._session.fetch_or_cached(Action.GET_VOICES)
        self._session.set_cached(CachedProperty.CURRENT_VOICE, loaded)
        return await self._session.lookup_voice(loaded)

    set_voice = load_voice

    async def select_random_voice(self, mode: SelectVoiceMode | None = None) -> None:
        await self._call(
            Action.SELECT_RANDOM_VOICE,
            {"mode": mode.value if mode is not None else None},
        )

    async def set_current_voice_parameter(
        self, parameter_name: str, parameter_value: Any
    ) -> VoiceParameters:
        return await self._call(
            Action.SET_CURRENT_VOICE_PARAMETER,
            {"parameterName": parameter_name, "parameterValue": parameter_value},
        )

    async def get_bitmap(self, item_id: str, kind: BitmapKind | str) -> Bitmap:
        """Return the icon of a voice or meme.

        Raises:
            ValueError: ``kind`` is neither voice nor meme.
        """
        kind = BitmapKind(kind)
        key = "voiceID" if kind is BitmapKind.VOICE else "memeID"
        return await self._call(Action.GET_BITMAP, {key: item_id})

    # -------------------------------------------------------------------------
    # Soundboards and memes
    # -------------------------------------------------------------------------

    async def get_all_soundboards(self) -> list[Soundboard]:
        return await self._session.fetch_or_cached(Action.GET_ALL_SOUNDBOARD)

    async def get_active_soundboard_profile(self) -> Soundboard:
        """Return the active soundboard.

        Raises:
            VoicemodLookupError: The active id is not in the soundboard list.
        """
        profile_id = await self._session.fetch_or_cached(
            Action.GET_ACTIVE_SOUNDBOARD_PROFILE
        )
        return await self._session.lookup_soundboard(profile_id)

    async def get_memes(self) -> list[Meme]:
        return await self._session.fetch_or_cached(Action.GET_MEMES)

    async def play_meme(self, file_name: str, is_key_down: bool = True) -> None:
        await self._call(
            Action.PLAY_MEME,
            {"payload": {"filename": file_name, "isKeyDown": is_key_down}},
        )

    async def stop_memes(self) -> None:
        await self._call(Action.STOP_ALL_MEME_SOUNDS)

    async def get_mute_meme_for_me_status(self) -> bool:
        return await self._session.fetch_or_cached(Action.GET_MUTE_MEME_FOR_ME_STATUS)

    async def toggle_mute_meme_for_me(self) -> bool:
        return await self._call(Action.TOGGLE_MUTE_MEME_FOR_ME)

    # -------------------------------------------------------------------------
    # Toggles
    # -------------------------------------------------------------------------

    async def get_hear_myself_status(self) -> bool:
        return await self._session.fetch_or_cached(Action.GET_HEAR_MYSELF_STATUS)

    async def toggle_hear_myself(self, state: bool) -> bool:
        return await self._call(Action.TOGGLE_HEAR_MY_VOICE, {"value": state})

    async def get_voice_changer_status(self) -> bool:
        return await self._session.fetch_or_cached(Action.GET_VOICE_CHANGER_STATUS)

    async def toggle_voice_changer(self, state: bool) -> bool:
        return await self._call(Action.TOGGLE_VOICE_CHANGER, {"value": state})

    async def get_background_effects_status(self) -> bool:
        return await self._session.fetch_or_cached(Action.GET_BACKGROUND_EFFECT_STATUS)

    async def toggle_background_effects(self) -> bool:
        return await self._call(Action.TOGGLE_BACKGROUND_EFFECTS)

    async def get_mute_mic_status(self) -> bool:
        return await self._session.fetch_or_cached(Action.GET_MUTE_MIC_STATUS)

    async def toggle_mute_mic(self) -> bool:
        return await self._call(Action.TOGGLE_MUTE_MIC)

    async def set_beep_sound(self, state: bool) -> None:
        """Turn the censor beep on or off."""
        await self._call(
            Action.SET_BEEP_SOUND, {"payload": {"badLanguage": 1 if state else 0}}
        )

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    async def _call(self, action: Action, payload: dict[str, Any] | None = None) -> Any:
        """Round-trip ``action`` and return the value its reply carries."""
        reply = await self._session.request(action, payload)
        _LOGGER.debug("%s replied", action.value)
        return describe(action).read(reply)
