"""
Conversation Service
Read path of the inbox plus the local send path.

Orchestrates:
- Paginated message history (opening a conversation marks it read)
- Ranked conversation list (cached, invalidated by message events)
- Local send with simulated delivery lifecycle
- Status polling and statistics
"""
import logging
import secrets
import time
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.modules.whatsapp_inbox.constants import (
    MessageDirection,
    MessageEventKind,
    MessageStatus,
)
from app.modules.whatsapp_inbox.repositories.contact_repository import ContactRepository
from app.modules.whatsapp_inbox.repositories.message_repository import MessageRepository
from app.modules.whatsapp_inbox.services.message_events import (
    MessageEvent,
    MessageEventBus,
    message_event_bus,
)
from app.modules.whatsapp_inbox.services.ranking import rank_conversations
from app.modules.whatsapp_inbox.services.status_simulator import StatusSimulator, status_simulator
from app.shared.core.config import settings
from app.shared.core.constants import (
    DEFAULT_PAGE_SIZE,
    MAX_PAGE_SIZE,
    LOCAL_MESSAGE_ID_PREFIX,
    LOCAL_SENDER_NAME,
)
from app.shared.db.base import utcnow
from app.shared.utils.cache import (
    SimpleCache,
    app_cache,
    CACHE_PATTERN_CONVERSATIONS,
    get_conversations_cache_key,
)
from app.shared.utils.exceptions import EntityNotFoundError, ValidationFailedError

logger = logging.getLogger("conversation_service")


def generate_local_message_id() -> str:
    """
    Id for a locally originated message: local_<epoch ms>_<random>.
    Called separately for external_id and correlation_id.
    """
    return f"{LOCAL_MESSAGE_ID_PREFIX}_{int(time.time() * 1000)}_{secrets.token_hex(5)}"


def invalidate_conversation_cache(event: MessageEvent) -> None:
    """Message event subscriber: any change makes every cached list stale."""
    app_cache.invalidate_pattern(CACHE_PATTERN_CONVERSATIONS)


message_event_bus.subscribe(invalidate_conversation_cache)


class ConversationService:
    """
    High-level service for reading conversations and sending messages.

    Provides:
    - list_messages: one page, oldest first, marks the conversation read
    - list_conversations: ranked contacts with derived summaries
    - send_message: local send + simulated lifecycle
    - get_status_updates / get_stats
    """

    def __init__(
        self,
        db: AsyncSession,
        simulator: Optional[StatusSimulator] = None,
        event_bus: Optional[MessageEventBus] = None,
        cache: Optional[SimpleCache] = None
    ):
        self.db = db
        self.contact_repo = ContactRepository(db)
        self.message_repo = MessageRepository(db)
        self.simulator = simulator or status_simulator
        self.event_bus = event_bus or message_event_bus
        self.cache = cache if cache is not None else app_cache

    # ============================================
    # MESSAGE HISTORY
    # ============================================

    async def list_messages(
        self,
        conversation_key: str,
        page: int = 1,
        page_size: int = DEFAULT_PAGE_SIZE
    ) -> List[dict]:
        """
        Get one page of a conversation in reading order (oldest first).

        Page 1 is the most recent `page_size` messages. Side effect: every
        inbound message of the whole conversation that is not read yet is
        marked read (opening a conversation reads it). The returned page
        already reflects that.

        Unknown conversations return an empty list.
        """
        if page < 1:
            raise ValidationFailedError("page must be >= 1", field="page")
        if not 1 <= page_size <= MAX_PAGE_SIZE:
            raise ValidationFailedError(f"page size must be between 1 and {MAX_PAGE_SIZE}", field="limit")

        marked = await self.message_repo.mark_conversation_read(conversation_key)

        skip = (page - 1) * page_size
        messages = await self.message_repo.list_for_conversation(
            conversation_key,
            skip=skip,
            limit=page_size
        )

        await self.db.commit()

        if marked:
            logger.info(f"Marked {marked} message(s) read in conversation {conversation_key}")
            self.event_bus.publish(MessageEvent(
                kind=MessageEventKind.CONVERSATION_READ,
                conversation_key=conversation_key,
                status=MessageStatus.READ.value,
                count=marked,
            ))

        messages.reverse()
        return messages

    # ============================================
    # CONVERSATION LIST
    # ============================================

    async def list_conversations(
        self,
        archived: Optional[bool] = None,
        blocked: Optional[bool] = None,
        pinned: Optional[bool] = None,
        search: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        """
        Ranked conversation list with last message, last message time and
        unread count per contact.
        """
        cache_key = get_conversations_cache_key(archived, blocked, pinned, search)
        cached = self.cache.get(cache_key)
        if cached is not None:
            return cached

        # Events arriving during the reads below make this result stale
        generation = self.cache.generation

        contacts = await self.contact_repo.list_contacts(
            archived=archived,
            blocked=blocked,
            pinned=pinned,
            search=search
        )
        summaries = await self.message_repo.get_conversation_summaries(
            [contact["wa_id"] for contact in contacts]
        )

        ranked = [conversation.to_dict() for conversation in rank_conversations(contacts, summaries)]

        self.cache.set(
            cache_key,
            ranked,
            ttl_seconds=settings.CONVERSATION_CACHE_TTL_SECONDS,
            generation=generation
        )
        return ranked

    # ============================================
    # SEND (LOCAL PATH)
    # ============================================

    async def send_message(
        self,
        wa_id: Optional[str],
        text: Optional[str],
        sender_name: Optional[str] = None
    ) -> dict:
        """
        Send a message from the business account without a provider.

        TRANSACTION: the message is committed at status=sent before the
        simulator is armed; the call returns without waiting for it.

        Raises:
            ValidationFailedError: wa_id or text missing / blank
            EntityNotFoundError: no contact with this wa_id
        """
        wa_id = (wa_id or "").strip()
        text = (text or "").strip()
        if not wa_id or not text:
            raise ValidationFailedError("wa_id and text are required")

        contact = await self.contact_repo.get_by_wa_id(wa_id)
        if not contact:
            raise EntityNotFoundError("Contact", wa_id)

        message = await self.message_repo.create_message(
            external_id=generate_local_message_id(),
            correlation_id=generate_local_message_id(),
            conversation_key=wa_id,
            sender_name=(sender_name or "").strip() or LOCAL_SENDER_NAME,
            body=text,
            direction=MessageDirection.OUTBOUND,
            status=MessageStatus.SENT,
            timestamp=utcnow(),
        )
        await self.db.commit()

        logger.info(f"Local message {message['external_id']} sent to {wa_id}")

        self.event_bus.publish(MessageEvent(
            kind=MessageEventKind.CREATED,
            conversation_key=wa_id,
            external_id=message["external_id"],
            status=MessageStatus.SENT.value,
        ))
        self.simulator.schedule(message)

        return message

    # ============================================
    # POLLING & STATS
    # ============================================

    async def get_status_updates(
        self,
        conversation_key: str,
        since: Optional[datetime] = None
    ) -> List[dict]:
        """Outbound status changes of a conversation after `since`, newest first."""
        return await self.message_repo.get_status_updates(conversation_key, since)

    async def get_stats(self) -> dict:
        return await self.message_repo.get_stats()
