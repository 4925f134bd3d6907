"""Protocol helpers for Voicemod Control API frames.

Every outbound frame is a request envelope::

    {"action": "getVoices", "id": "<token>", "payload": {}}

Replies echo the token in ``id`` (or ``actionID``) and carry ``actionType``
and ``actionObject``. The registration reply carries
``payload.status.{code,message}`` instead. Spontaneous app events have an
``action`` ending in ``Event`` and no id.
"""

from __future__ import annotations

import json
import secrets
from typing import Any

from .errors import VoicemodProtocolError

API_PATH = "/v1"
REGISTRATION_ACTION = "registerClient"
REGISTRATION_SUCCESS_CODE = "200"
EVENT_SUFFIX = "Event"
PENDING_REGISTRATION_NOTICE = "pending authentication"

MESSAGE_ID_BYTES = 8


def generate_message_id() -> str:
    """Return a random 64-bit correlation token."""
    return secrets.token_hex(MESSAGE_ID_BYTES)


def build_request(
    *,
    action: str,
    payload: dict[str, Any] | None = None,
    msg_id: str | None = None,
) -> dict[str, Any]:
    """Build a request envelope.

    Args:
        action: Action name understood by the app.
        payload: JSON-serializable payload, ``{}`` when omitted.
        msg_id: Correlation id. Generated when omitted.
    """
    return {
        "action": action,
        "id": msg_id or generate_message_id(),
        "payload": payload if payload is not None else {},
    }


def parse_frame(text: str | bytes) -> dict[str, Any]:
    """Decode an inbound text frame into an envelope dict."""
    try:
        data = json.loads(text)
    except (TypeError, ValueError) as err:
        raise VoicemodProtocolError("Frame is not valid JSON", text) from err
    if not isinstance(data, dict):
        raise VoicemodProtocolError("Frame is not a JSON object", text)
    return data


def message_id(envelope: dict[str, Any]) -> str | None:
    """Return the correlation id echoed by a reply, if any."""
    value = envelope.get("id") or envelope.get("actionID")
    return str(value) if value else None


def is_pending_registration_notice(envelope: dict[str, Any]) -> bool:
    """True for the notice the app sends while the user confirms the client."""
    msg = envelope.get("msg")
    return isinstance(msg, str) and msg.lower() == PENDING_REGISTRATION_NOTICE


def parse_registration_status(
    envelope: dict[str, Any],
) -> tuple[str | None, str | None]:
    """Extract ``(code, message)`` from a registration reply."""
    payload = envelope.get("payload")
    if not isinstance(payload, dict):
        return None, None
    status = payload.get("status")
    if not isinstance(status, dict):
        return None, None
    code = status.get("code")
    message = status.get("message")
    return (
        str(code).strip() if code is not None else None,
        str(message) if message is not None else None,
    )


def is_registration_success(envelope: dict[str, Any]) -> bool:
    """True when a registration reply reports status code 200."""
    code, _ = parse_registration_status(envelope)
    return code == REGISTRATION_SUCCESS_CODE
