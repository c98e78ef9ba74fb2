"""
WhatsApp Inbox Schemas

Pydantic models for API request/response validation.
"""

from .inbox_schemas import (
    # Request schemas
    CreateContactRequest,
    UpdateContactRequest,
    ToggleContactRequest,
    ContactPresenceRequest,
    SendMessageRequest,
    # Response schemas
    MessageItem,
    ContactDetail,
    ConversationItem,
    StatusUpdateItem,
    StatsResponse,
    DeleteContactResponse,
    WebhookResponse,
)

__all__ = [
    "CreateContactRequest",
    "UpdateContactRequest",
    "ToggleContactRequest",
    "ContactPresenceRequest",
    "SendMessageRequest",
    "MessageItem",
    "ContactDetail",
    "ConversationItem",
    "StatusUpdateItem",
    "StatsResponse",
    "DeleteContactResponse",
    "WebhookResponse",
]
