"""
WhatsApp Inbox Services

Business logic layer for the inbox module.
"""

from .message_events import MessageEvent, MessageEventBus, message_event_bus
from .status_simulator import StatusSimulator, status_simulator
from .ingestion_service import IngestionService, IngestResult
from .conversation_service import ConversationService
from .contact_service import ContactService
from .ranking import Conversation, rank_conversations

__all__ = [
    "MessageEvent",
    "MessageEventBus",
    "message_event_bus",
    "StatusSimulator",
    "status_simulator",
    "IngestionService",
    "IngestResult",
    "ConversationService",
    "ContactService",
    "Conversation",
    "rank_conversations",
]
