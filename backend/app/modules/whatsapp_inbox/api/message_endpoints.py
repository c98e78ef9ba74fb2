"""
Message API Endpoints
Conversation list, message history, local send, status polling and stats.
"""
import logging
from datetime import datetime, timezone
from typing import List, Optional
from fastapi import APIRouter, HTTPException, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.shared.core.constants import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from app.shared.db.session import get_db
from app.shared.utils.exceptions import EntityNotFoundError, ValidationFailedError
from app.modules.whatsapp_inbox.services.conversation_service import ConversationService
from app.modules.whatsapp_inbox.schemas.inbox_schemas import (
    SendMessageRequest,
    MessageItem,
    ConversationItem,
    StatusUpdateItem,
    StatsResponse,
)

router = APIRouter()
logger = logging.getLogger("message_api")


# ============================================
# CONVERSATIONS
# ============================================

@router.get("/conversations", response_model=List[ConversationItem], summary="Ranked conversation list")
async def get_conversations(
    archived: Optional[bool] = Query(default=None),
    blocked: Optional[bool] = Query(default=None),
    pinned: Optional[bool] = Query(default=None),
    search: Optional[str] = Query(default=None, description="Case-insensitive name search"),
    db: AsyncSession = Depends(get_db)
):
    """
    Pinned conversations first, then by most recent message.
    Conversations without messages come last, newest contact first.
    """
    service = ConversationService(db)
    return await service.list_conversations(
        archived=archived,
        blocked=blocked,
        pinned=pinned,
        search=search
    )


@router.get("/conversation/{wa_id}", response_model=List[MessageItem], summary="Get message history")
async def get_conversation_messages(
    wa_id: str,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    db: AsyncSession = Depends(get_db)
):
    """
    One page of messages in chronological order. Page 1 holds the most
    recent messages.

    Opening a conversation marks its inbound messages as read.
    """
    service = ConversationService(db)
    try:
        return await service.list_messages(wa_id, page=page, page_size=limit)
    except ValidationFailedError as e:
        raise HTTPException(status_code=400, detail=e.message)


# ============================================
# SEND
# ============================================

@router.post("/send", response_model=MessageItem, status_code=201, summary="Send a message")
async def send_message(request: SendMessageRequest, db: AsyncSession = Depends(get_db)):
    """
    Store an outbound message at status 'sent' and simulate its delivery:
    delivered after a short delay, read after a further delay.
    """
    service = ConversationService(db)
    try:
        return await service.send_message(request.wa_id, request.text, request.name)
    except ValidationFailedError as e:
        raise HTTPException(status_code=400, detail=e.message)
    except EntityNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)


# ============================================
# POLLING & STATS
# ============================================

@router.get("/status-updates/{wa_id}", response_model=List[StatusUpdateItem], summary="Poll status changes")
async def get_status_updates(
    wa_id: str,
    last_update: Optional[datetime] = Query(default=None, alias="lastUpdate"),
    db: AsyncSession = Depends(get_db)
):
    """Outbound messages of the conversation whose status changed after lastUpdate."""
    if last_update is not None:
        if last_update.tzinfo is None:
            last_update = last_update.replace(tzinfo=timezone.utc)
        else:
            last_update = last_update.astimezone(timezone.utc)

    service = ConversationService(db)
    return await service.get_status_updates(wa_id, since=last_update)


@router.get("/stats", response_model=StatsResponse, summary="Message statistics")
async def get_stats(db: AsyncSession = Depends(get_db)):
    service = ConversationService(db)
    return StatsResponse(**await service.get_stats())
