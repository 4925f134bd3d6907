"""Asyncio client for the Voicemod Control API."""

__version__ = "0.1.0"

from .actions import Action, AppEvent
from .cache import CachedProperty, StateCache
from .client import VoicemodClient
from .config import ClientConfig, ReconnectPolicy
from .correlator import RequestCorrelator
from .discovery import VOICEMOD_PORTS, discover_port, probe_port
from .errors import (
    VoicemodClientError,
    VoicemodConnectionError,
    VoicemodHandshakeError,
    VoicemodLookupError,
    VoicemodNotConnectedError,
    VoicemodPortNotFoundError,
    VoicemodProtocolError,
    VoicemodRequestError,
    VoicemodRequestTimeout,
    VoicemodTimeout,
)
from .events import EventHub, VoicemodEvent
from .models import (
    Bitmap,
    BitmapKind,
    Meme,
    SelectVoiceMode,
    Soundboard,
    SoundboardSound,
    Voice,
    VoiceParameters,
)
from .router import FrameKind, MessageRouter, classify
from .session import SessionState, VoicemodSession

__all__ = [
    "VOICEMOD_PORTS",
    "Action",
    "AppEvent",
    "Bitmap",
    "BitmapKind",
    "CachedProperty",
    "ClientConfig",
    "EventHub",
    "FrameKind",
    "Meme",
    "MessageRouter",
    "ReconnectPolicy",
    "RequestCorrelator",
    "SelectVoiceMode",
    "SessionState",
    "Soundboard",
    "SoundboardSound",
    "StateCache",
    "Voice",
    "VoiceParameters",
    "VoicemodClient",
    "VoicemodClientError",
    "VoicemodConnectionError",
    "VoicemodEvent",
    "VoicemodHandshakeError",
    "VoicemodLookupError",
    "VoicemodNotConnectedError",
    "VoicemodPortNotFoundError",
    "VoicemodProtocolError",
    "VoicemodRequestError",
    "VoicemodRequestTimeout",
    "VoicemodSession",
    "VoicemodTimeout",
    "classify",
    "discover_port",
    "probe_port",
]
