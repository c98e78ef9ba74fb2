"""
WhatsApp Inbox Repositories

Database access layer for the inbox module.
"""

from .contact_repository import ContactRepository
from .message_repository import MessageRepository

__all__ = [
    "ContactRepository",
    "MessageRepository",
]
