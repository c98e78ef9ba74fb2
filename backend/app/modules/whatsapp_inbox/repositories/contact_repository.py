"""
Contact Repository
Database operations for the contacts table.

Key patterns:
- wa_id is the unique key; duplicates raise DuplicateEntityError
- Placeholder contacts are created on demand by ingestion (get-or-create,
  safe against concurrent creation of the same wa_id)
- Deleting a contact deletes its messages in the same transaction
"""
from datetime import datetime
from typing import Optional, List, Tuple

from sqlalchemy import select, delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.modules.whatsapp_inbox.constants import ContactPresence, ContactToggleAction
from app.modules.whatsapp_inbox.models.contact import Contact
from app.modules.whatsapp_inbox.repositories.message_repository import MessageRepository
from app.shared.utils.exceptions import DuplicateEntityError

# Columns callers may change through update_contact (wa_id is immutable)
UPDATABLE_FIELDS = {
    "name",
    "profile_picture",
    "status",
    "last_seen",
    "is_archived",
    "is_blocked",
    "is_pinned",
    "is_muted",
    "mute_until",
    "notes",
    "labels",
}

# NOT NULL columns: a null in update_data leaves them unchanged
REQUIRED_FIELDS = {"name", "status", "is_archived", "is_blocked", "is_pinned", "is_muted"}


def normalize_labels(labels) -> list:
    """Trim, drop empties and de-duplicate while keeping first-seen order."""
    seen = []
    for label in labels or []:
        cleaned = str(label).strip()
        if cleaned and cleaned not in seen:
            seen.append(cleaned)
    return seen


class ContactRepository:
    """Repository for contact CRUD operations."""

    def __init__(self, db_session: AsyncSession):
        self.db = db_session

    @staticmethod
    def _to_dict(contact: Contact) -> dict:
        contact_dict = {k: v for k, v in contact.__dict__.items() if not k.startswith('_')}
        contact_dict["initials"] = contact.initials
        return contact_dict

    async def _load(self, wa_id: str) -> Optional[Contact]:
        query = (
            select(Contact)
            .where(Contact.wa_id == wa_id)
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    # ============================================
    # READ OPERATIONS
    # ============================================

    async def get_by_wa_id(self, wa_id: str) -> Optional[dict]:
        """Fetch a contact by WhatsApp id."""
        contact = await self._load(wa_id)
        return self._to_dict(contact) if contact else None

    async def list_contacts(
        self,
        archived: Optional[bool] = None,
        blocked: Optional[bool] = None,
        pinned: Optional[bool] = None,
        search: Optional[str] = None
    ) -> List[dict]:
        """
        Fetch contacts with optional flag filters and a name search.
        Unordered: ranking happens in the service layer.
        """
        query = select(Contact).execution_options(populate_existing=True)

        if archived is not None:
            query = query.where(Contact.is_archived == archived)
        if blocked is not None:
            query = query.where(Contact.is_blocked == blocked)
        if pinned is not None:
            query = query.where(Contact.is_pinned == pinned)
        if search and search.strip():
            query = query.where(Contact.name.ilike(f"%{search.strip()}%"))

        result = await self.db.execute(query)
        return [self._to_dict(c) for c in result.scalars().all()]

    # ============================================
    # CREATE OPERATIONS
    # ============================================

    async def create_contact(self, contact_data: dict) -> dict:
        """
        Create a contact.

        Raises:
            DuplicateEntityError: a contact with this wa_id already exists
        """
        wa_id = contact_data["wa_id"]
        contact = Contact(
            wa_id=wa_id,
            name=contact_data["name"],
            profile_picture=contact_data.get("profile_picture"),
            notes=contact_data.get("notes") or "",
            labels=normalize_labels(contact_data.get("labels")),
            is_placeholder=contact_data.get("is_placeholder", False),
        )

        try:
            async with self.db.begin_nested():
                self.db.add(contact)
                await self.db.flush()
        except IntegrityError:
            raise DuplicateEntityError("Contact", wa_id)

        await self.db.refresh(contact)
        return self._to_dict(contact)

    async def get_or_create_placeholder(self, wa_id: str, name: str) -> Tuple[dict, bool]:
        """
        Return the contact for wa_id, creating a placeholder if none exists.

        Returns:
            (contact, created)
        """
        existing = await self.get_by_wa_id(wa_id)
        if existing:
            return existing, False

        try:
            created = await self.create_contact({
                "wa_id": wa_id,
                "name": name,
                "is_placeholder": True,
            })
            return created, True
        except DuplicateEntityError:
            # Created concurrently by another delivery
            return await self.get_by_wa_id(wa_id), False

    # ============================================
    # UPDATE OPERATIONS
    # ============================================

    async def update_contact(self, wa_id: str, update_data: dict) -> Optional[dict]:
        """
        Update contact fields. Unknown keys and wa_id are ignored.
        Returns the updated contact, or None if not found.
        """
        contact = await self._load(wa_id)
        if not contact:
            return None

        for field, value in update_data.items():
            if field not in UPDATABLE_FIELDS:
                continue
            if value is None and field in REQUIRED_FIELDS:
                continue
            if field == "notes":
                value = value or ""
            if field == "labels":
                value = normalize_labels(value)
            if field == "status" and value is not None:
                value = ContactPresence(value).value
            setattr(contact, field, value)

        # An edited placeholder becomes a real contact
        if update_data.get("name"):
            contact.is_placeholder = False

        await self.db.flush()
        await self.db.refresh(contact)
        return self._to_dict(contact)

    async def set_flag(
        self,
        wa_id: str,
        action: ContactToggleAction,
        value: bool,
        mute_until: Optional[datetime] = None
    ) -> Optional[dict]:
        """Toggle archive / block / pin / mute. Returns None if not found."""
        update_data = {ContactToggleAction(action).column: bool(value)}

        if action == ContactToggleAction.MUTE:
            if not value:
                update_data["mute_until"] = None
            elif mute_until is not None:
                update_data["mute_until"] = mute_until

        return await self.update_contact(wa_id, update_data)

    async def set_presence(
        self,
        wa_id: str,
        status: ContactPresence,
        last_seen: Optional[datetime] = None
    ) -> Optional[dict]:
        """Update online / offline / last seen. Returns None if not found."""
        update_data = {"status": ContactPresence(status).value}
        if status == ContactPresence.ONLINE:
            update_data["last_seen"] = None
        elif last_seen is not None:
            update_data["last_seen"] = last_seen
        return await self.update_contact(wa_id, update_data)

    # ============================================
    # DELETE OPERATIONS
    # ============================================

    async def delete_contact(self, wa_id: str) -> Optional[int]:
        """
        Delete a contact and all of its messages.

        Returns:
            Number of messages deleted, or None if the contact does not exist.
        """
        contact = await self._load(wa_id)
        if not contact:
            return None

        deleted_messages = await MessageRepository(self.db).delete_for_conversation(wa_id)

        await self.db.execute(
            delete(Contact)
            .where(Contact.wa_id == wa_id)
            .execution_options(synchronize_session=False)
        )
        self.db.expunge(contact)
        return deleted_messages
