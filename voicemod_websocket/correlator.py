"""Request/response correlation for the Control API."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any

from .actions import Action
from .errors import VoicemodClientError, VoicemodRequestError, VoicemodRequestTimeout
from .protocol import generate_message_id

_LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class _PendingRequest:
    """Track one outstanding request."""

    action: Action
    future: asyncio.Future[dict[str, Any]]
    sent_at: float


class RequestCorrelator:
    """Map correlation ids to single-resolution completions.

    An id stays reserved from ``open`` until its reply arrives, it fails, or
    the waiter gives up, so an id is never reused while outstanding.
    """

    def __init__(self) -> None:
        self._pending: dict[str, _PendingRequest] = {}

    def open(self, action: Action) -> str:
        """Reserve a fresh id for ``action`` and return it."""
        msg_id = generate_message_id()
        while msg_id in self._pending:
            _LOGGER.warning("Correlation id collision on %s, regenerating", msg_id)
            msg_id = generate_message_id()
        self.track(msg_id, action)
        return msg_id

    def track(self, msg_id: str, action: Action) -> None:
        """Register an explicit id. Raises if it is already outstanding."""
        if msg_id in self._pending:
            raise VoicemodClientError(f"Correlation id {msg_id} is already in use")
        future: asyncio.Future[dict[str, Any]] = (
            asyncio.get_running_loop().create_future()
        )
        self._pending[msg_id] = _PendingRequest(
            action=action, future=future, sent_at=time.monotonic()
        )

    def action_for(self, msg_id: str) -> Action | None:
        pending = self._pending.get(msg_id)
        return pending.action if pending else None

    def resolve(self, msg_id: str, envelope: dict[str, Any]) -> bool:
        """Complete the request waiting on ``msg_id``.

        Returns:
            True if a waiting request was completed.
        """
        pending = self._pending.get(msg_id)
        if pending is None or pending.future.done():
            return False
        pending.future.set_result(envelope)
        _LOGGER.debug(
            "Reply for %s id=%s (%.3fs)",
            pending.action.value,
            msg_id,
            time.monotonic() - pending.sent_at,
        )
        return True

    def fail(self, msg_id: str, err: BaseException) -> bool:
        pending = self._pending.pop(msg_id, None)
        if pending is None or pending.future.done():
            return False
        pending.future.set_exception(err)
        return True

    def fail_all(self, reason: str) -> int:
        """Fail every outstanding request and forget it.

        Returns:
            Number of requests that were failed.
        """
        pending, self._pending = self._pending, {}
        failed = 0
        for request in pending.values():
            if request.future.done():
                continue
            request.future.set_exception(
                VoicemodRequestError(request.action.value, reason)
            )
            failed += 1
        if failed:
            _LOGGER.debug("Failed %d pending requests: %s", failed, reason)
        return failed

    def discard(self, msg_id: str) -> None:
        pending = self._pending.pop(msg_id, None)
        if pending is not None and not pending.future.done():
            pending.future.cancel()

    async def wait(self, msg_id: str, *, timeout: float | None = None) -> dict[str, Any]:
        """Wait for the reply to ``msg_id``.

        Raises:
            VoicemodRequestTimeout: No reply within ``timeout`` seconds.
            VoicemodRequestError: The request failed, e.g. the connection dropped.
        """
        pending = self._pending.get(msg_id)
        if pending is None:
            raise VoicemodClientError(f"No pending request with id {msg_id}")

        try:
            return await asyncio.wait_for(pending.future, timeout)
        except TimeoutError as err:
            raise VoicemodRequestTimeout(
                pending.action.value, f"No reply within {timeout}s"
            ) from err
        finally:
            if self._pending.get(msg_id) is pending:
                del self._pending[msg_id]

    def pending_ids(self) -> tuple[str, ...]:
        return tuple(self._pending)

    def __contains__(self, msg_id: object) -> bool:
        return msg_id in self._pending

    def __len__(self) -> int:
        return len(self._pending)
