"""Client error types for Voicemod Control API interactions."""

from __future__ import annotations

from typing import Any


class VoicemodClientError(Exception):
    """Base error for Voicemod client failures."""


class VoicemodTimeout(VoicemodClientError):
    """Timeout while communicating with the app."""


class VoicemodConnectionError(VoicemodClientError):
    """Network connection to the app failed."""


class VoicemodHandshakeError(VoicemodConnectionError):
    """WebSocket handshake failed."""


class VoicemodPortNotFoundError(VoicemodConnectionError):
    """None of the candidate ports accepted a WebSocket handshake."""


class VoicemodNotConnectedError(VoicemodConnectionError):
    """An operation needed a live (or registered) connection."""


class VoicemodRequestError(VoicemodClientError):
    """A request could not be completed."""

    def __init__(self, action: str, message: str) -> None:
        super().__init__(f"{action}: {message}")
        self.action = action


class VoicemodRequestTimeout(VoicemodRequestError, VoicemodTimeout):
    """No response arrived for a request within its timeout."""


class VoicemodProtocolError(VoicemodClientError):
    """An inbound frame could not be parsed or classified."""

    def __init__(self, message: str, frame: Any = None) -> None:
        super().__init__(message)
        self.frame = frame


class VoicemodLookupError(VoicemodClientError, LookupError):
    """An id was not present in the corresponding app list."""
