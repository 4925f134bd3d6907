"""Client configuration."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field

from .discovery import VOICEMOD_PORTS
from .protocol import API_PATH

DEFAULT_HOST = "127.0.0.1"
ENV_PREFIX = "VOICEMOD_"

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off", ""}


@dataclass(frozen=True, slots=True)
class ReconnectPolicy:
    """Reconnect behaviour after a failed attempt or a dropped connection.

    Attributes:
        enabled: Retry automatically (default: False)
        interval: Fixed delay between attempts in seconds (default: 1.0)
        max_retries: Retries before giving up, 0 means unlimited (default: 5)
    """

    enabled: bool = False
    interval: float = 1.0
    max_retries: int = 5

    def __post_init__(self) -> None:
        if self.interval < 0:
            raise ValueError("interval must be >= 0")
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")

    def exhausted(self, retries: int) -> bool:
        """True once ``retries`` scheduled retries used up a finite budget."""
        return self.max_retries != 0 and retries >= self.max_retries


@dataclass(frozen=True, slots=True)
class ClientConfig:
    """Connection settings for one Control API client.

    Attributes:
        client_key: API key issued for the Control API
        host: Host running the app
        ports: Candidate ports in priority order
        path: WebSocket path
        reconnect: Reconnect policy
        probe_timeout: Handshake wait per candidate port (seconds)
        connect_timeout: Handshake wait for the live connection (seconds)
        ping_interval: Keepalive ping interval, None disables pings
        request_timeout: Default per-request timeout, None waits forever
        registration_timeout: Wait for the registration reply, which only
            arrives after the user confirms the client in the app
    """

    client_key: str
    host: str = DEFAULT_HOST
    ports: tuple[int, ...] = VOICEMOD_PORTS
    path: str = API_PATH
    reconnect: ReconnectPolicy = field(default_factory=ReconnectPolicy)
    probe_timeout: float = 1.0
    connect_timeout: float = 5.0
    ping_interval: int | None = 20
    request_timeout: float | None = 10.0
    registration_timeout: float | None = 60.0

    def __post_init__(self) -> None:
        if not self.ports:
            raise ValueError("At least one candidate port is required")
        if not self.path.startswith("/"):
            raise ValueError("path must start with '/'")
        for name in ("probe_timeout", "connect_timeout"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be > 0")
        for name in ("request_timeout", "registration_timeout"):
            value = getattr(self, name)
            if value is not None and value <= 0:
                raise ValueError(f"{name} must be > 0 or None")

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> ClientConfig:
        """Build a config from ``VOICEMOD_*`` environment variables.

        Recognized: VOICEMOD_CLIENT_KEY, VOICEMOD_HOST, VOICEMOD_PORTS
        (comma separated), VOICEMOD_RECONNECT, VOICEMOD_RETRY_INTERVAL,
        VOICEMOD_MAX_RETRIES, VOICEMOD_REQUEST_TIMEOUT.
        """
        env = os.environ if environ is None else environ

        def get(name: str) -> str | None:
            value = env.get(ENV_PREFIX + name)
            return value.strip() if value is not None else None

        ports_raw = get("PORTS")
        ports = (
            tuple(int(port) for port in ports_raw.split(",") if port.strip())
            if ports_raw
            else VOICEMOD_PORTS
        )
        timeout_raw = get("REQUEST_TIMEOUT")

        return cls(
            client_key=get("CLIENT_KEY") or "",
            host=get("HOST") or DEFAULT_HOST,
            ports=ports,
            reconnect=ReconnectPolicy(
                enabled=_parse_bool(get("RECONNECT") or "false"),
                interval=float(get("RETRY_INTERVAL") or 1.0),
                max_retries=int(get("MAX_RETRIES") or 5),
            ),
            request_timeout=_parse_timeout(timeout_raw) if timeout_raw else 10.0,
        )


def _parse_bool(value: str) -> bool:
    lowered = value.lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ValueError(f"Invalid boolean value: {value!r}")


def _parse_timeout(value: str) -> float | None:
    if value.lower() in {"none", "off"}:
        return None
    return float(value)
