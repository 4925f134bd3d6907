"""Command line monitor for the Voicemod Control API.

Connects, registers, prints who is logged in and which voice is selected,
then logs every event until interrupted or until --duration elapses.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
from dataclasses import replace
from typing import Any

from .client import VoicemodClient
from .config import ClientConfig, ReconnectPolicy
from .errors import VoicemodClientError
from .events import VoicemodEvent

_LOGGER = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str | None = None) -> None:
    level = (level or os.getenv("LOG_LEVEL") or "INFO").strip().upper()
    logging.basicConfig(level=level, format=LOG_FORMAT)


def build_parser(defaults: ClientConfig) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="voicemod-websocket",
        description="Connect to the Voicemod app and log its events",
    )
    parser.add_argument("--host", default=defaults.host, help="Host running the app")
    parser.add_argument(
        "--client-key",
        default=defaults.client_key,
        help="Control API key (default: VOICEMOD_CLIENT_KEY)",
    )
    parser.add_argument(
        "--reconnect",
        action=argparse.BooleanOptionalAction,
        default=defaults.reconnect.enabled,
        help="Retry after failures and dropped connections",
    )
    parser.add_argument(
        "--retry-interval",
        type=float,
        default=defaults.reconnect.interval,
        help="Seconds between reconnect attempts",
    )
    parser.add_argument(
        "--max-retries",
        type=int,
        default=defaults.reconnect.max_retries,
        help="Retries before giving up, 0 retries forever",
    )
    parser.add_argument(
        "--duration",
        type=float,
        default=None,
        help="Seconds to stay connected (default: until interrupted)",
    )
    parser.add_argument("--log-level", default=None, help="Logging level (default: LOG_LEVEL or INFO)")
    return parser


async def run(config: ClientConfig, duration: float | None) -> int:
    client = VoicemodClient(config)

    def on_event(event: VoicemodEvent) -> Any:
        def handler(*args: Any) -> None:
            _LOGGER.info("%s %s", event.value, args[0] if args else "")

        return handler

    for event in VoicemodEvent:
        if event is not VoicemodEvent.ALL_EVENTS:
            client.subscribe(event, on_event(event))
    client.subscribe_all(lambda envelope: _LOGGER.debug("<- %s", envelope))

    if not await client.connect() and not config.reconnect.enabled:
        _LOGGER.error("Could not connect to the Voicemod app")
        return 1

    try:
        await client.wait_until_ready(config.registration_timeout)
        user = await client.get_user()
        license_type = await client.get_user_license()
        voice = await client.get_current_voice()
        print(f"user: {user} ({license_type})")
        print(f"voice: {voice.friendly_name} [{voice.id}]")

        if duration is None:
            await asyncio.Event().wait()
        else:
            await asyncio.sleep(duration)
    except TimeoutError:
        _LOGGER.error("Client was not registered in time")
        return 1
    except VoicemodClientError as err:
        _LOGGER.error("%s", err)
        return 1
    finally:
        await client.disconnect()
    return 0


def main(argv: list[str] | None = None) -> int:
    defaults = ClientConfig.from_env()
    args = build_parser(defaults).parse_args(argv)
    configure_logging(args.log_level)

    if not args.client_key:
        print("Client key missing: use --client-key or set VOICEMOD_CLIENT_KEY")
        return 2

    config = replace(
        defaults,
        host=args.host,
        client_key=args.client_key,
        reconnect=ReconnectPolicy(
            enabled=args.reconnect,
            interval=args.retry_interval,
            max_retries=args.max_retries,
        ),
    )

    try:
        return asyncio.run(run(config, args.duration))
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    raise SystemExit(main())
