"""
WhatsApp Inbox - Pydantic Schemas
Request and Response models for API endpoints.

Request fields that are business-required (wa_id, name, text, status) are
Optional here on purpose: the service layer reports them as 400 with a
reason instead of a generic 422.
"""
from typing import Optional, List
from pydantic import BaseModel, ConfigDict, Field, field_validator
from datetime import datetime


# ============================================
# REQUEST MODELS
# ============================================

class CreateContactRequest(BaseModel):
    """Request to create a contact"""
    wa_id: Optional[str] = Field(default=None, description="WhatsApp user id (unique)")
    name: Optional[str] = Field(default=None, description="Display name")
    profile_picture: Optional[str] = Field(default=None, alias="profilePicture")
    notes: Optional[str] = None
    labels: Optional[List[str]] = None

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "wa_id": "919876543210",
                "name": "Ravi Kumar",
                "labels": ["customer"]
            }
        }
    )


class UpdateContactRequest(BaseModel):
    """Request to update a contact. wa_id cannot be changed."""
    name: Optional[str] = None
    profile_picture: Optional[str] = Field(default=None, alias="profilePicture")
    notes: Optional[str] = None
    labels: Optional[List[str]] = None

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class ToggleContactRequest(BaseModel):
    """Body of PATCH /contacts/{wa_id}/toggle/{action}"""
    value: bool = True
    mute_until: Optional[datetime] = Field(default=None, alias="muteUntil")

    model_config = ConfigDict(populate_by_name=True)


class ContactPresenceRequest(BaseModel):
    """Body of PATCH /contacts/{wa_id}/status"""
    status: Optional[str] = Field(default=None, description="online, offline or last_seen")
    last_seen: Optional[datetime] = Field(default=None, alias="lastSeen")

    model_config = ConfigDict(populate_by_name=True)


class SendMessageRequest(BaseModel):
    """Request to send a message through the local (simulated) path"""
    wa_id: Optional[str] = None
    text: Optional[str] = None
    name: Optional[str] = Field(default=None, description="Sender display name, defaults to 'You'")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "wa_id": "919876543210",
                "text": "Hello! Your order has shipped."
            }
        }
    )

    @field_validator("text")
    @classmethod
    def strip_text(cls, v: Optional[str]) -> Optional[str]:
        return v.strip() if isinstance(v, str) else v


# ============================================
# RESPONSE MODELS
# ============================================

class MessageItem(BaseModel):
    """A single message"""
    id: int
    external_id: str
    correlation_id: str
    conversation_key: str
    sender_name: str
    body: str
    message_type: str = "text"
    direction: str
    status: str
    timestamp: datetime
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ContactDetail(BaseModel):
    """Full contact record"""
    id: int
    wa_id: str
    name: str
    initials: str
    profile_picture: Optional[str] = None
    is_placeholder: bool = False
    status: str
    last_seen: Optional[datetime] = None
    is_archived: bool = False
    is_blocked: bool = False
    is_pinned: bool = False
    is_muted: bool = False
    mute_until: Optional[datetime] = None
    notes: str = ""
    labels: List[str] = []
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ConversationItem(ContactDetail):
    """Contact plus the derived summary of its conversation"""
    last_message: Optional[str] = None
    last_message_time: Optional[datetime] = None
    unread_count: int = 0
    message_count: int = 0


class StatusUpdateItem(BaseModel):
    """An outbound message whose status changed"""
    external_id: str
    correlation_id: str
    status: str
    updated_at: Optional[datetime] = None


class StatsResponse(BaseModel):
    total_messages: int = 0
    total_conversations: int = 0
    sent_count: int = 0
    delivered_count: int = 0
    read_count: int = 0


class DeleteContactResponse(BaseModel):
    success: bool = True
    message: str
    deleted_messages: int = 0


class WebhookResponse(BaseModel):
    """Acknowledgement returned to the provider"""
    success: bool = True
    created: int = 0
    duplicates: int = 0
    contacts_created: int = 0
    status_applied: int = 0
    status_stale: int = 0
    status_unresolved: int = 0
    status_invalid: int = 0
    failed: int = 0
