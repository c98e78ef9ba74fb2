"""
Contact Service
Contact mutations that touch more than the contacts table.

Every mutation commits, then publishes a message event so the ranked
conversation list is rebuilt. Deleting a contact also deletes its messages
and cancels their pending simulated status transitions.
"""
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.modules.whatsapp_inbox.constants import (
    ContactPresence,
    ContactToggleAction,
    MessageEventKind,
)
from app.modules.whatsapp_inbox.repositories.contact_repository import ContactRepository
from app.modules.whatsapp_inbox.services.message_events import (
    MessageEvent,
    MessageEventBus,
    message_event_bus,
)
from app.modules.whatsapp_inbox.services.status_simulator import StatusSimulator, status_simulator
from app.shared.db.base import utcnow
from app.shared.utils.exceptions import (
    DuplicateEntityError,
    EntityNotFoundError,
    ValidationFailedError,
)

logger = logging.getLogger("contact_service")


class ContactService:
    """Create / update / toggle / delete contacts."""

    def __init__(
        self,
        db: AsyncSession,
        simulator: Optional[StatusSimulator] = None,
        event_bus: Optional[MessageEventBus] = None
    ):
        self.db = db
        self.contact_repo = ContactRepository(db)
        self.simulator = simulator or status_simulator
        self.event_bus = event_bus or message_event_bus

    def _publish(self, kind: MessageEventKind, wa_id: str, count: int = 1) -> None:
        self.event_bus.publish(MessageEvent(kind=kind, conversation_key=wa_id, count=count))

    async def _commit_change(self, contact: Optional[dict], wa_id: str) -> dict:
        if contact is None:
            await self.db.rollback()
            raise EntityNotFoundError("Contact", wa_id)
        await self.db.commit()
        self._publish(MessageEventKind.CONTACT_CHANGED, wa_id)
        return contact

    async def get_contact(self, wa_id: str) -> dict:
        contact = await self.contact_repo.get_by_wa_id(wa_id)
        if contact is None:
            raise EntityNotFoundError("Contact", wa_id)
        return contact

    async def create_contact(self, contact_data: dict) -> dict:
        """
        Raises:
            ValidationFailedError: wa_id or name missing
            DuplicateEntityError: wa_id already registered (nothing written)
        """
        wa_id = (contact_data.get("wa_id") or "").strip()
        name = (contact_data.get("name") or "").strip()
        if not wa_id or not name:
            raise ValidationFailedError("wa_id and name are required")

        if await self.contact_repo.get_by_wa_id(wa_id):
            raise DuplicateEntityError("Contact", wa_id)

        contact = await self.contact_repo.create_contact({**contact_data, "wa_id": wa_id, "name": name})
        await self.db.commit()

        logger.info(f"Contact {wa_id} created")
        self._publish(MessageEventKind.CONTACT_CHANGED, wa_id)
        return contact

    async def update_contact(self, wa_id: str, update_data: dict) -> dict:
        update_data = {k: v for k, v in update_data.items() if k != "wa_id"}
        if "name" in update_data and not (update_data["name"] or "").strip():
            raise ValidationFailedError("name cannot be empty", field="name")

        contact = await self.contact_repo.update_contact(wa_id, update_data)
        return await self._commit_change(contact, wa_id)

    async def toggle(
        self,
        wa_id: str,
        action: str,
        value: bool,
        mute_until: Optional[datetime] = None
    ) -> dict:
        """
        Raises:
            ValidationFailedError: unknown action
            EntityNotFoundError: unknown contact
        """
        try:
            toggle_action = ContactToggleAction(action)
        except ValueError:
            raise ValidationFailedError(f"Invalid action: {action}", field="action")

        contact = await self.contact_repo.set_flag(wa_id, toggle_action, value, mute_until)
        return await self._commit_change(contact, wa_id)

    async def set_presence(
        self,
        wa_id: str,
        status: Optional[str],
        last_seen: Optional[datetime] = None
    ) -> dict:
        if not status:
            raise ValidationFailedError("Status is required", field="status")

        presence = ContactPresence.parse(status)
        if presence is None:
            raise ValidationFailedError(f"Invalid status: {status}", field="status")

        contact = await self.contact_repo.set_presence(wa_id, presence, last_seen)
        return await self._commit_change(contact, wa_id)

    async def go_online(self, wa_id: str) -> dict:
        return await self.set_presence(wa_id, ContactPresence.ONLINE.value)

    async def go_offline(self, wa_id: str) -> dict:
        return await self.set_presence(wa_id, ContactPresence.LAST_SEEN.value, last_seen=utcnow())

    async def delete_contact(self, wa_id: str) -> int:
        """
        Delete a contact and its whole conversation.

        Returns:
            Number of messages deleted
        """
        deleted_messages = await self.contact_repo.delete_contact(wa_id)
        if deleted_messages is None:
            raise EntityNotFoundError("Contact", wa_id)

        await self.db.commit()

        cancelled = self.simulator.cancel_conversation(wa_id)
        logger.info(
            f"Contact {wa_id} deleted with {deleted_messages} message(s), "
            f"{cancelled} pending simulation(s) cancelled"
        )
        self._publish(MessageEventKind.CONVERSATION_DELETED, wa_id, count=deleted_messages)
        return deleted_messages
