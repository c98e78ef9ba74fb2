"""
WhatsApp Inbox Module

Conversations between the business account and WhatsApp users.
Key features:
- Idempotent ingestion of WhatsApp Cloud API webhook events
- Monotonic delivery status tracking (sent -> delivered -> read)
- Simulated delivery lifecycle for locally sent messages
- Ranked conversation list (pinned, recency, creation time)
"""

from .models.contact import Contact
from .models.message import Message

__all__ = [
    "Contact",
    "Message",
]
