"""WebSocket client wrapper for the Voicemod Control API."""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

import aiohttp
from aiohttp import WSMsgType
from websockets.asyncio.client import ClientConnection
from websockets.exceptions import ConnectionClosed

from ..errors import (
    VoicemodConnectionError,
    VoicemodNotConnectedError,
)
from ..protocol import API_PATH
from .ws import connect_aiohttp_websocket, connect_websocket

if TYPE_CHECKING:
    from collections.abc import AsyncIterator


class VoicemodWsMessageType(Enum):
    """Normalized WebSocket message types."""

    TEXT = "text"
    CLOSED = "closed"
    ERROR = "error"


@dataclass(frozen=True)
class VoicemodWsMessage:
    """Normalized WebSocket message payload."""

    type: VoicemodWsMessageType
    data: str | None = None


class VoicemodWsClient:
    """Wrapper around a websockets or aiohttp connection."""

    def __init__(self) -> None:
        self._ws: ClientConnection | aiohttp.ClientWebSocketResponse | None = None

    async def connect(
        self,
        host: str,
        port: int,
        *,
        path: str = API_PATH,
        ping_interval: int | None = 20,
        timeout: float = 15.0,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        """Connect to the app websocket.

        When ``session`` is given the connection is made through aiohttp,
        otherwise through the websockets library.
        """
        if session is not None:
            self._ws = await connect_aiohttp_websocket(
                session,
                host,
                port,
                path=path,
                heartbeat=ping_interval,
                timeout=timeout,
            )
            return

        self._ws = await connect_websocket(
            host,
            port,
            path=path,
            ping_interval=ping_interval,
            timeout=timeout,
        )

    async def close(self) -> None:
        """Close the websocket connection."""
        if self._ws is not None:
            await self._ws.close()

    async def send_json(self, payload: dict[str, Any]) -> None:
        """Send a JSON payload as a text frame."""
        if self._ws is None:
            raise VoicemodNotConnectedError("WebSocket is not connected")
        text = json.dumps(payload)
        try:
            if isinstance(self._ws, aiohttp.ClientWebSocketResponse):
                await self._ws.send_str(text)
            else:
                await self._ws.send(text)
        except (ConnectionClosed, ConnectionError, aiohttp.ClientError) as err:
            raise VoicemodConnectionError("WebSocket send failed") from err

    def __aiter__(self) -> AsyncIterator[VoicemodWsMessage]:
        if self._ws is None:
            raise VoicemodNotConnectedError("WebSocket is not connected")
        return self._iter_messages()

    async def _iter_messages(self) -> AsyncIterator[VoicemodWsMessage]:
        if self._ws is None:
            raise VoicemodNotConnectedError("WebSocket is not connected")

        try:
            async for msg in self._ws:
                normalized = self._normalize_message(msg)
                if normalized is None:
                    continue
                yield normalized
                if normalized.type is not VoicemodWsMessageType.TEXT:
                    return
        except ConnectionClosed:
            yield VoicemodWsMessage(type=VoicemodWsMessageType.CLOSED)
        except Exception:
            yield VoicemodWsMessage(type=VoicemodWsMessageType.ERROR)
        else:
            # Normal iteration completion means the peer closed gracefully.
            yield VoicemodWsMessage(type=VoicemodWsMessageType.CLOSED)

    @staticmethod
    def _normalize_message(msg: Any) -> VoicemodWsMessage | None:
        """Normalize backend-specific frames into VoicemodWsMessage."""
        if isinstance(msg, bytes):
            return None
        if isinstance(msg, str):
            return VoicemodWsMessage(VoicemodWsMessageType.TEXT, msg)

        msg_type = getattr(msg, "type", None)
        if msg_type is None:
            return VoicemodWsMessage(VoicemodWsMessageType.TEXT, str(msg))

        normalized_type = VoicemodWsClient._map_aiohttp_type(msg_type)
        if normalized_type is None:
            return None
        data = getattr(msg, "data", None)
        if normalized_type is VoicemodWsMessageType.TEXT:
            return VoicemodWsMessage(normalized_type, data)
        return VoicemodWsMessage(normalized_type)

    @staticmethod
    def _map_aiohttp_type(msg_type: Any) -> VoicemodWsMessageType | None:
        """Map aiohttp WSMsgType enums to internal message types."""
        if msg_type is WSMsgType.TEXT:
            return VoicemodWsMessageType.TEXT

        if msg_type is WSMsgType.BINARY:
            return None

        if msg_type in {WSMsgType.CLOSE, WSMsgType.CLOSING, WSMsgType.CLOSED}:
            return VoicemodWsMessageType.CLOSED

        if msg_type is WSMsgType.ERROR:
            return VoicemodWsMessageType.ERROR

        return None
