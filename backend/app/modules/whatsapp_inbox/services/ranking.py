"""
Conversation Ranker

Pure function: merges contacts with per-conversation message summaries and
returns them in display order. No I/O, no clock.

Order (first rule that differs wins):
1. Pinned before unpinned
2. Contacts with messages before contacts without
3. With messages: most recent last message first
4. Without messages: most recently created contact first
5. wa_id ascending, so the order is total and repeatable
"""
from dataclasses import dataclass
from datetime import datetime, timezone
from functools import cmp_to_key
from typing import Dict, Iterable, List, Optional


@dataclass
class Conversation:
    """A contact together with the derived summary of its messages."""
    contact: dict
    last_message: Optional[str] = None
    last_message_time: Optional[datetime] = None
    unread_count: int = 0
    message_count: int = 0

    @property
    def wa_id(self) -> str:
        return self.contact["wa_id"]

    @property
    def is_pinned(self) -> bool:
        return bool(self.contact.get("is_pinned"))

    @property
    def has_activity(self) -> bool:
        return self.last_message_time is not None

    def to_dict(self) -> dict:
        return {
            **self.contact,
            "last_message": self.last_message,
            "last_message_time": self.last_message_time,
            "unread_count": self.unread_count,
            "message_count": self.message_count,
        }


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes; everything is stored as UTC
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def _compare_desc(a: Optional[datetime], b: Optional[datetime]) -> int:
    """Newer first; a missing time sorts after any present one."""
    a, b = _as_utc(a), _as_utc(b)
    if a == b:
        return 0
    if a is None:
        return 1
    if b is None:
        return -1
    return -1 if a > b else 1


def compare_conversations(a: Conversation, b: Conversation) -> int:
    if a.is_pinned != b.is_pinned:
        return -1 if a.is_pinned else 1

    if a.has_activity != b.has_activity:
        return -1 if a.has_activity else 1

    if a.has_activity:
        result = _compare_desc(a.last_message_time, b.last_message_time)
    else:
        result = _compare_desc(a.contact.get("created_at"), b.contact.get("created_at"))
    if result:
        return result

    if a.wa_id == b.wa_id:
        return 0
    return -1 if a.wa_id < b.wa_id else 1


def rank_conversations(
    contacts: Iterable[dict],
    summaries: Dict[str, dict]
) -> List[Conversation]:
    """
    Build and order the conversation list.

    Args:
        contacts: contact dicts (need wa_id, is_pinned, created_at)
        summaries: {wa_id: {last_message, last_message_time, unread_count, message_count}}
    """
    conversations = []
    for contact in contacts:
        summary = summaries.get(contact["wa_id"]) or {}
        conversations.append(Conversation(
            contact=contact,
            last_message=summary.get("last_message"),
            last_message_time=summary.get("last_message_time"),
            unread_count=int(summary.get("unread_count") or 0),
            message_count=int(summary.get("message_count") or 0),
        ))

    return sorted(conversations, key=cmp_to_key(compare_conversations))
