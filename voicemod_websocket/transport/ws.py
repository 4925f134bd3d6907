"""WebSocket helpers for the Voicemod Control API transport."""

from __future__ import annotations

import asyncio

import aiohttp
import websockets
from websockets.asyncio.client import ClientConnection
from websockets.exceptions import (
    InvalidHandshake,
    InvalidURI,
    WebSocketException,
)

from ..errors import (
    VoicemodConnectionError,
    VoicemodHandshakeError,
    VoicemodTimeout,
)
from ..protocol import API_PATH


def websocket_url(host: str, port: int, path: str = API_PATH) -> str:
    """Return the Control API endpoint URL for a host and port."""
    return f"ws://{host}:{port}{path}"


async def connect_websocket(
    host: str,
    port: int,
    *,
    path: str = API_PATH,
    ping_interval: int | None = 20,
    timeout: float = 15.0,
) -> ClientConnection:
    """Connect to the Control API WebSocket endpoint.

    Args:
        host: Target host
        port: Target port
        path: WebSocket path (default: /v1)
        ping_interval: Interval for ping frames, None disables keepalive
        timeout: Connection timeout
    """
    ws_url = websocket_url(host, port, path)
    try:
        return await asyncio.wait_for(
            websockets.connect(
                ws_url,
                ping_interval=ping_interval,
                close_timeout=5,
                max_size=None,
            ),
            timeout=timeout,
        )
    except TimeoutError as err:
        raise VoicemodTimeout("WebSocket connection timed out") from err
    except (InvalidHandshake, InvalidURI) as err:
        raise VoicemodHandshakeError("WebSocket handshake failed") from err
    except (OSError, WebSocketException) as err:
        raise VoicemodConnectionError("WebSocket connection failed") from err


async def connect_aiohttp_websocket(
    session: aiohttp.ClientSession,
    host: str,
    port: int,
    *,
    path: str = API_PATH,
    heartbeat: int | None = 20,
    timeout: float = 15.0,
) -> aiohttp.ClientWebSocketResponse:
    """Connect through a caller-owned aiohttp session."""
    ws_url = websocket_url(host, port, path)
    try:
        return await asyncio.wait_for(
            session.ws_connect(ws_url, heartbeat=heartbeat, max_msg_size=0),
            timeout=timeout,
        )
    except TimeoutError as err:
        raise VoicemodTimeout("WebSocket connection timed out") from err
    except aiohttp.WSServerHandshakeError as err:
        raise VoicemodHandshakeError("WebSocket handshake failed") from err
    except (OSError, aiohttp.ClientError) as err:
        raise VoicemodConnectionError("WebSocket connection failed") from err
