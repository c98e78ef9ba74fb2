"""
WhatsApp Cloud API Webhook Parser

Turns the provider envelope into flat event objects:

{
  "object": "whatsapp_business_account",
  "entry": [{
    "changes": [{
      "value": {
        "metadata": {...},
        "contacts": [{"wa_id": "555", "profile": {"name": "Ana"}}],
        "messages": [{"id": "wamid.1", "from": "555", "type": "text",
                      "timestamp": "1700000000", "text": {"body": "hi"}}],
        "statuses": [{"id": "wamid.9", "status": "read", "timestamp": "1700000100"}]
      }
    }]
  }]
}

Envelope problems raise UnrecognizedPayloadError. Problems inside a single
message or status entry raise ValueError from the per-entry parse function,
so the caller can isolate them.
"""
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, List, Optional

from app.shared.core.constants import (
    WHATSAPP_WEBHOOK_OBJECT,
    UNSUPPORTED_MESSAGE_BODY,
    UNKNOWN_SENDER_NAME,
)
from app.shared.utils.exceptions import UnrecognizedPayloadError


@dataclass(frozen=True)
class InboundMessageEvent:
    """A message-create entry."""
    external_id: str
    sender_id: str
    sender_name: str
    body: str
    message_type: str
    timestamp: datetime


@dataclass(frozen=True)
class StatusEvent:
    """A status-update entry."""
    correlation_id: str
    status: str
    timestamp: datetime


@dataclass
class ChangeValue:
    """Raw entries of one `changes[].value` block, in payload order."""
    messages: List[Any]
    statuses: List[Any]
    sender_names: Dict[str, str]
    malformed: int = 0  # messages/statuses fields that were not lists


def parse_unix_timestamp(value: Any) -> datetime:
    """Provider timestamps are unix seconds, as a string or a number."""
    if value is None or value == "":
        return datetime.now(timezone.utc)
    try:
        return datetime.fromtimestamp(int(float(value)), tz=timezone.utc)
    except (TypeError, ValueError, OverflowError, OSError):
        raise ValueError(f"Invalid timestamp: {value!r}")


def _require_str(entry: dict, key: str) -> str:
    value = entry.get(key)
    if value is None or str(value).strip() == "":
        raise ValueError(f"Missing '{key}'")
    return str(value).strip()


def _as_list(raw: Any) -> Optional[List[Any]]:
    """None for a field that is present but not a list."""
    if raw is None:
        return []
    return list(raw) if isinstance(raw, list) else None


def _sender_names(value: dict) -> Dict[str, str]:
    names = {}
    for contact in _as_list(value.get("contacts")) or []:
        if not isinstance(contact, dict):
            continue
        profile = contact.get("profile")
        wa_id = contact.get("wa_id")
        name = profile.get("name") if isinstance(profile, dict) else None
        if wa_id and name:
            names[str(wa_id)] = str(name).strip()
    return names


def iter_change_values(payload: Any) -> Iterator[ChangeValue]:
    """
    Walk every entry and change of the envelope.

    Raises:
        UnrecognizedPayloadError: not a WhatsApp Business Account envelope
    """
    if not isinstance(payload, dict):
        raise UnrecognizedPayloadError(None)

    payload_object = payload.get("object")
    if payload_object != WHATSAPP_WEBHOOK_OBJECT:
        raise UnrecognizedPayloadError(payload_object)

    entries = payload.get("entry")
    if not isinstance(entries, list):
        raise UnrecognizedPayloadError(payload_object)

    for entry in entries:
        if not isinstance(entry, dict):
            continue
        for change in _as_list(entry.get("changes")) or []:
            if not isinstance(change, dict):
                continue
            value = change.get("value")
            if not isinstance(value, dict):
                continue
            messages = _as_list(value.get("messages"))
            statuses = _as_list(value.get("statuses"))
            yield ChangeValue(
                messages=messages or [],
                statuses=statuses or [],
                sender_names=_sender_names(value),
                malformed=(messages is None) + (statuses is None),
            )


def parse_inbound_message(entry: Any, sender_names: Optional[Dict[str, str]] = None) -> InboundMessageEvent:
    """
    Parse one `messages[]` entry.

    Non-text messages (and text with an empty body) keep their declared type
    and get a placeholder body.
    """
    if not isinstance(entry, dict):
        raise ValueError("Message entry is not an object")

    external_id = _require_str(entry, "id")
    sender_id = _require_str(entry, "from")
    message_type = str(entry.get("type") or "text").strip().lower()

    body = None
    if message_type == "text":
        body = ((entry.get("text") or {}).get("body") or "").strip() or None

    return InboundMessageEvent(
        external_id=external_id,
        sender_id=sender_id,
        sender_name=(sender_names or {}).get(sender_id) or UNKNOWN_SENDER_NAME,
        body=body or UNSUPPORTED_MESSAGE_BODY,
        message_type=message_type,
        timestamp=parse_unix_timestamp(entry.get("timestamp")),
    )


def parse_status(entry: Any) -> StatusEvent:
    """Parse one `statuses[]` entry. The status string is validated later."""
    if not isinstance(entry, dict):
        raise ValueError("Status entry is not an object")

    return StatusEvent(
        correlation_id=_require_str(entry, "id"),
        status=_require_str(entry, "status").lower(),
        timestamp=parse_unix_timestamp(entry.get("timestamp")),
    )
