"""Transport layer for the Voicemod client.

Components:
- ws: WebSocket connection helpers (websockets and aiohttp)
- ws_client: WebSocket message iteration
"""

from .ws import connect_aiohttp_websocket, connect_websocket, websocket_url
from .ws_client import VoicemodWsClient, VoicemodWsMessage, VoicemodWsMessageType

__all__ = [
    "VoicemodWsClient",
    "VoicemodWsMessage",
    "VoicemodWsMessageType",
    "connect_aiohttp_websocket",
    "connect_websocket",
    "websocket_url",
]
