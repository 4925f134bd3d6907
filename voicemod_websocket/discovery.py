"""Port discovery for the Voicemod Control API.

The app does not listen on one fixed port. It binds one of a handful of
well-known ports, so the client probes them in priority order and keeps the
first one that completes a WebSocket handshake.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence

import aiohttp

from .errors import VoicemodClientError, VoicemodPortNotFoundError
from .protocol import API_PATH
from .transport.ws import connect_aiohttp_websocket, connect_websocket

_LOGGER = logging.getLogger(__name__)

VOICEMOD_PORTS: tuple[int, ...] = (
    59129,
    20000,
    39273,
    42152,
    43782,
    46667,
    35679,
    37170,
    38501,
    33952,
    30546,
)

PROBE_CLOSE_TIMEOUT = 2.0


async def probe_port(
    host: str,
    port: int,
    *,
    path: str = API_PATH,
    timeout: float = 1.0,
    session: aiohttp.ClientSession | None = None,
) -> bool:
    """Return True when ``host:port`` completes a WebSocket handshake.

    The probe connection is closed before returning so the real connection
    never competes with it.
    """
    try:
        if session is not None:
            ws = await connect_aiohttp_websocket(
                session, host, port, path=path, heartbeat=None, timeout=timeout
            )
        else:
            ws = await connect_websocket(
                host, port, path=path, ping_interval=None, timeout=timeout
            )
    except VoicemodClientError as err:
        _LOGGER.debug("[%s:%s] Probe failed: %s", host, port, err)
        return False

    try:
        await asyncio.wait_for(ws.close(), timeout=PROBE_CLOSE_TIMEOUT)
    except TimeoutError:
        _LOGGER.debug("[%s:%s] Probe close timed out", host, port)
    return True


async def discover_port(
    host: str,
    ports: Sequence[int] = VOICEMOD_PORTS,
    *,
    path: str = API_PATH,
    timeout: float = 1.0,
    session: aiohttp.ClientSession | None = None,
) -> int:
    """Find the port the app is listening on.

    Args:
        host: Host running the app
        ports: Candidate ports, tried strictly in order
        path: WebSocket path used for the handshake
        timeout: Handshake wait per candidate (seconds)
        session: Optional aiohttp session to probe through

    Raises:
        VoicemodPortNotFoundError: No candidate accepted a handshake.
    """
    for port in ports:
        if await probe_port(host, port, path=path, timeout=timeout, session=session):
            _LOGGER.debug("[%s] Found Control API on port %d", host, port)
            return port

    raise VoicemodPortNotFoundError(
        f"No reachable Voicemod port on {host} (tried {len(ports)})"
    )
