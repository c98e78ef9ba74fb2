"""
WhatsApp Inbox Constants
Centralized enums for the inbox module.

Enums inherit from str so they can be written to the database and returned
in JSON without .value conversion.
"""
from enum import Enum
from typing import Optional


class MessageStatus(str, Enum):
    """
    Delivery status of a message.

    Status Flow (forward only):
    SENT -> DELIVERED -> READ

    Inbound messages start at DELIVERED (they reached us) and only become
    READ when the conversation is opened.
    """
    SENT = "sent"
    DELIVERED = "delivered"
    READ = "read"

    @property
    def rank(self) -> int:
        """Position in the lifecycle (sent=0, delivered=1, read=2)."""
        return _STATUS_ORDER.index(self)

    @classmethod
    def parse(cls, value) -> Optional["MessageStatus"]:
        """Return the status for a provider string, or None if unknown."""
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return None
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None

    @classmethod
    def is_forward_progress(cls, current: "MessageStatus", new: "MessageStatus") -> bool:
        """True only if `new` is strictly later in the lifecycle than `current`."""
        return cls(new).rank > cls(current).rank

    def predecessors(self) -> list:
        """Statuses a message may hold for a transition to this one to be valid."""
        return [status.value for status in _STATUS_ORDER[:self.rank]]


_STATUS_ORDER = [MessageStatus.SENT, MessageStatus.DELIVERED, MessageStatus.READ]


class MessageDirection(str, Enum):
    """Direction of a message."""
    INBOUND = "inbound"    # Counterparty sent it
    OUTBOUND = "outbound"  # Business account sent it


class ContactPresence(str, Enum):
    """Presence shown next to a contact."""
    ONLINE = "online"
    OFFLINE = "offline"
    LAST_SEEN = "last_seen"

    @classmethod
    def parse(cls, value) -> Optional["ContactPresence"]:
        """Accepts 'last seen' as sent by older clients."""
        if not isinstance(value, str):
            return None
        try:
            return cls(value.strip().lower().replace(" ", "_"))
        except ValueError:
            return None


class ContactToggleAction(str, Enum):
    """Boolean contact flags that can be toggled from the contact menu."""
    ARCHIVE = "archive"
    BLOCK = "block"
    PIN = "pin"
    MUTE = "mute"

    @property
    def column(self) -> str:
        """Contact column backing this action."""
        return {
            ContactToggleAction.ARCHIVE: "is_archived",
            ContactToggleAction.BLOCK: "is_blocked",
            ContactToggleAction.PIN: "is_pinned",
            ContactToggleAction.MUTE: "is_muted",
        }[self]


class StatusUpdateOutcome(str, Enum):
    """Result of applying one status-update event to the store."""
    APPLIED = "applied"        # Forward progress, written
    STALE = "stale"            # Duplicate / out-of-order, discarded
    INVALID = "invalid"        # Unknown status value, rejected
    UNRESOLVED = "unresolved"  # No message with that correlation id


class MessageEventKind(str, Enum):
    """Kinds of change published on the message event bus."""
    CREATED = "created"
    STATUS_CHANGED = "status_changed"
    CONVERSATION_READ = "conversation_read"
    CONVERSATION_DELETED = "conversation_deleted"
    CONTACT_CHANGED = "contact_changed"
