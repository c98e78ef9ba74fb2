"""
Contact API Endpoints
Contact CRUD, flag toggles and presence.
"""
import logging
from typing import List, Optional
from fastapi import APIRouter, HTTPException, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.shared.db.session import get_db
from app.shared.utils.exceptions import (
    DuplicateEntityError,
    EntityNotFoundError,
    ValidationFailedError,
)
from app.modules.whatsapp_inbox.services.contact_service import ContactService
from app.modules.whatsapp_inbox.services.conversation_service import ConversationService
from app.modules.whatsapp_inbox.schemas.inbox_schemas import (
    # Request schemas
    CreateContactRequest,
    UpdateContactRequest,
    ToggleContactRequest,
    ContactPresenceRequest,
    # Response schemas
    ContactDetail,
    ConversationItem,
    DeleteContactResponse,
)

router = APIRouter()
logger = logging.getLogger("contact_api")


def _not_found(e: EntityNotFoundError) -> HTTPException:
    return HTTPException(status_code=404, detail=e.message)


# ============================================
# READ
# ============================================

@router.get("", response_model=List[ConversationItem], summary="List contacts with conversation summary")
async def list_contacts(
    archived: Optional[bool] = Query(default=None),
    blocked: Optional[bool] = Query(default=None),
    pinned: Optional[bool] = Query(default=None),
    search: Optional[str] = Query(default=None),
    db: AsyncSession = Depends(get_db)
):
    """Same ranking as the conversation list: pinned first, then most recent activity."""
    service = ConversationService(db)
    return await service.list_conversations(
        archived=archived,
        blocked=blocked,
        pinned=pinned,
        search=search
    )


@router.get("/{wa_id}", response_model=ContactDetail, summary="Get contact")
async def get_contact(wa_id: str, db: AsyncSession = Depends(get_db)):
    service = ContactService(db)
    try:
        return await service.get_contact(wa_id)
    except EntityNotFoundError as e:
        raise _not_found(e)


# ============================================
# CREATE / UPDATE / DELETE
# ============================================

@router.post("", response_model=ContactDetail, status_code=201, summary="Create a contact")
async def create_contact(request: CreateContactRequest, db: AsyncSession = Depends(get_db)):
    """
    Create a contact.

    - 400: wa_id or name missing
    - 409: a contact with this wa_id already exists
    """
    service = ContactService(db)
    try:
        return await service.create_contact(request.model_dump(exclude_none=True))
    except ValidationFailedError as e:
        raise HTTPException(status_code=400, detail=e.message)
    except DuplicateEntityError as e:
        raise HTTPException(status_code=409, detail=e.message)


@router.put("/{wa_id}", response_model=ContactDetail, summary="Update a contact")
async def update_contact(
    wa_id: str,
    request: UpdateContactRequest,
    db: AsyncSession = Depends(get_db)
):
    """Update name, picture, notes or labels. The wa_id itself cannot change."""
    service = ContactService(db)
    try:
        return await service.update_contact(wa_id, request.model_dump(exclude_unset=True))
    except ValidationFailedError as e:
        raise HTTPException(status_code=400, detail=e.message)
    except EntityNotFoundError as e:
        raise _not_found(e)


@router.delete("/{wa_id}", response_model=DeleteContactResponse, summary="Delete a contact")
async def delete_contact(wa_id: str, db: AsyncSession = Depends(get_db)):
    """Delete a contact together with its whole conversation."""
    service = ContactService(db)
    try:
        deleted_messages = await service.delete_contact(wa_id)
    except EntityNotFoundError as e:
        raise _not_found(e)

    return DeleteContactResponse(
        message="Contact and messages deleted successfully",
        deleted_messages=deleted_messages
    )


# ============================================
# FLAGS & PRESENCE
# ============================================

@router.patch("/{wa_id}/toggle/{action}", response_model=ContactDetail, summary="Toggle a contact flag")
async def toggle_contact(
    wa_id: str,
    action: str,
    request: Optional[ToggleContactRequest] = None,
    db: AsyncSession = Depends(get_db)
):
    """action is one of archive, block, pin, mute. muteUntil only applies to mute."""
    request = request or ToggleContactRequest()
    service = ContactService(db)
    try:
        return await service.toggle(wa_id, action, request.value, request.mute_until)
    except ValidationFailedError as e:
        raise HTTPException(status_code=400, detail=e.message)
    except EntityNotFoundError as e:
        raise _not_found(e)


@router.patch("/{wa_id}/status", response_model=ContactDetail, summary="Set contact presence")
async def set_contact_status(
    wa_id: str,
    request: ContactPresenceRequest,
    db: AsyncSession = Depends(get_db)
):
    service = ContactService(db)
    try:
        return await service.set_presence(wa_id, request.status, request.last_seen)
    except ValidationFailedError as e:
        raise HTTPException(status_code=400, detail=e.message)
    except EntityNotFoundError as e:
        raise _not_found(e)


@router.post("/demo/online/{wa_id}", response_model=ContactDetail, summary="Demo: contact comes online")
async def demo_online(wa_id: str, db: AsyncSession = Depends(get_db)):
    service = ContactService(db)
    try:
        return await service.go_online(wa_id)
    except EntityNotFoundError as e:
        raise _not_found(e)


@router.post("/demo/offline/{wa_id}", response_model=ContactDetail, summary="Demo: contact goes offline")
async def demo_offline(wa_id: str, db: AsyncSession = Depends(get_db)):
    """Sets presence to last seen now."""
    service = ContactService(db)
    try:
        return await service.go_offline(wa_id)
    except EntityNotFoundError as e:
        raise _not_found(e)
