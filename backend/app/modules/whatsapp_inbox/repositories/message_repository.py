"""
Message Repository
Database operations for the messages table (the Message Store).

Key patterns:
- Unique external_id makes inserts idempotent: a duplicate insert is
  reported as "already exists" instead of raising
- Status changes are a single conditional UPDATE (compare-and-swap), so a
  real provider event and a simulated one can never regress a status
- No commits here: the service layer owns the transaction
"""
from datetime import datetime
from typing import Optional, List, Dict, Iterable

from sqlalchemy import select, update, delete, func, case, and_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.modules.whatsapp_inbox.constants import MessageStatus, MessageDirection
from app.modules.whatsapp_inbox.models.message import Message
from app.shared.core.constants import DEFAULT_PAGE_SIZE
from app.shared.db.base import utcnow


class MessageRepository:
    """Repository for message reads, inserts and status transitions."""

    def __init__(self, db_session: AsyncSession):
        self.db = db_session

    @staticmethod
    def _to_dict(message: Message) -> dict:
        return {k: v for k, v in message.__dict__.items() if not k.startswith('_')}

    # ============================================
    # READ OPERATIONS
    # ============================================

    async def get_by_id(self, message_id: int) -> Optional[dict]:
        """Fetch a single message by internal ID."""
        query = (
            select(Message)
            .where(Message.id == message_id)
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(query)
        message = result.scalar_one_or_none()
        return self._to_dict(message) if message else None

    async def get_by_external_id(self, external_id: str) -> Optional[dict]:
        """Fetch a message by the provider's message id (dedup lookup)."""
        query = (
            select(Message)
            .where(Message.external_id == external_id)
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(query)
        message = result.scalar_one_or_none()
        return self._to_dict(message) if message else None

    async def get_by_correlation_id(self, correlation_id: str) -> Optional[dict]:
        """
        Fetch the message a status-update event refers to.

        correlation_id is not unique by constraint; the most recently ingested
        match wins.
        """
        query = (
            select(Message)
            .where(Message.correlation_id == correlation_id)
            .order_by(Message.created_at.desc(), Message.id.desc())
            .limit(1)
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(query)
        message = result.scalar_one_or_none()
        return self._to_dict(message) if message else None

    async def list_for_conversation(
        self,
        conversation_key: str,
        skip: int = 0,
        limit: int = DEFAULT_PAGE_SIZE
    ) -> List[dict]:
        """
        Get a page of a conversation, most recent first.
        Ties on timestamp are broken by ingestion time, then id.
        """
        query = (
            select(Message)
            .where(Message.conversation_key == conversation_key)
            .order_by(Message.timestamp.desc(), Message.created_at.desc(), Message.id.desc())
            .offset(skip)
            .limit(limit)
            .execution_options(populate_existing=True)
        )

        result = await self.db.execute(query)
        return [self._to_dict(m) for m in result.scalars().all()]

    async def count_for_conversation(self, conversation_key: str) -> int:
        """Total message count for a conversation."""
        query = (
            select(func.count())
            .select_from(Message)
            .where(Message.conversation_key == conversation_key)
        )
        result = await self.db.execute(query)
        return result.scalar() or 0

    async def get_conversation_summaries(
        self,
        conversation_keys: Optional[Iterable[str]] = None
    ) -> Dict[str, dict]:
        """
        Per-conversation summary used by the conversation list.

        Returns:
            {conversation_key: {last_message, last_message_time, unread_count, message_count}}
            Conversations without messages are absent.
        """
        keys = list(conversation_keys) if conversation_keys is not None else None
        if keys is not None and not keys:
            return {}

        # Latest message per conversation via ROW_NUMBER()
        ranked = select(
            Message.conversation_key,
            Message.body,
            Message.timestamp,
            func.row_number().over(
                partition_by=Message.conversation_key,
                order_by=(Message.timestamp.desc(), Message.created_at.desc(), Message.id.desc())
            ).label("rn")
        )
        if keys is not None:
            ranked = ranked.where(Message.conversation_key.in_(keys))
        ranked = ranked.subquery()

        last_query = select(
            ranked.c.conversation_key,
            ranked.c.body,
            ranked.c.timestamp
        ).where(ranked.c.rn == 1)

        unread_expr = case(
            (
                and_(
                    Message.direction == MessageDirection.INBOUND.value,
                    Message.status != MessageStatus.READ.value
                ),
                1
            ),
            else_=0
        )
        counts_query = (
            select(
                Message.conversation_key,
                func.count().label("message_count"),
                func.sum(unread_expr).label("unread_count")
            )
            .group_by(Message.conversation_key)
        )
        if keys is not None:
            counts_query = counts_query.where(Message.conversation_key.in_(keys))

        summaries: Dict[str, dict] = {}

        for row in (await self.db.execute(last_query)).all():
            summaries[row.conversation_key] = {
                "last_message": row.body,
                "last_message_time": row.timestamp,
                "unread_count": 0,
                "message_count": 0,
            }

        for row in (await self.db.execute(counts_query)).all():
            summary = summaries.get(row.conversation_key)
            if summary is not None:
                summary["message_count"] = int(row.message_count or 0)
                summary["unread_count"] = int(row.unread_count or 0)

        return summaries

    async def get_status_updates(
        self,
        conversation_key: str,
        since: Optional[datetime] = None
    ) -> List[dict]:
        """
        Outbound messages of a conversation whose status changed after `since`.
        Newest change first. Used by polling clients.
        """
        query = select(
            Message.external_id,
            Message.correlation_id,
            Message.status,
            Message.updated_at
        ).where(
            Message.conversation_key == conversation_key,
            Message.direction == MessageDirection.OUTBOUND.value
        )

        if since is not None:
            query = query.where(Message.updated_at > since)

        query = query.order_by(Message.updated_at.desc())

        result = await self.db.execute(query)
        return [dict(row._mapping) for row in result.all()]

    async def get_stats(self) -> dict:
        """Totals across all conversations."""
        totals_query = select(
            func.count().label("total_messages"),
            func.count(func.distinct(Message.conversation_key)).label("total_conversations")
        ).select_from(Message)
        totals = (await self.db.execute(totals_query)).one()

        by_status_query = (
            select(Message.status, func.count().label("count"))
            .group_by(Message.status)
        )
        by_status = {row.status: int(row.count) for row in (await self.db.execute(by_status_query)).all()}

        return {
            "total_messages": int(totals.total_messages or 0),
            "total_conversations": int(totals.total_conversations or 0),
            "sent_count": by_status.get(MessageStatus.SENT.value, 0),
            "delivered_count": by_status.get(MessageStatus.DELIVERED.value, 0),
            "read_count": by_status.get(MessageStatus.READ.value, 0),
        }

    # ============================================
    # CREATE OPERATIONS
    # ============================================

    async def create_message(
        self,
        external_id: str,
        correlation_id: str,
        conversation_key: str,
        sender_name: str,
        body: str,
        direction: MessageDirection,
        status: MessageStatus,
        timestamp: datetime,
        message_type: str = "text"
    ) -> Optional[dict]:
        """
        Insert a message.

        Returns:
            The created message, or None if a message with this external_id
            already exists (including one inserted concurrently by another
            delivery of the same webhook event).
        """
        message = Message(
            external_id=external_id,
            correlation_id=correlation_id,
            conversation_key=conversation_key,
            sender_name=sender_name,
            body=body,
            message_type=message_type,
            direction=MessageDirection(direction).value,
            status=MessageStatus(status).value,
            timestamp=timestamp,
        )

        try:
            async with self.db.begin_nested():  # Savepoint: a duplicate must not poison the caller's transaction
                self.db.add(message)
                await self.db.flush()
        except IntegrityError:
            if await self.get_by_external_id(external_id) is not None:
                return None
            raise

        await self.db.refresh(message)
        return self._to_dict(message)

    # ============================================
    # UPDATE OPERATIONS
    # ============================================

    async def advance_status(self, message_id: int, new_status: MessageStatus) -> bool:
        """
        Move a message to `new_status` only if that is forward progress.

        Single conditional UPDATE: the status check and the write happen in
        one statement, so concurrent updaters of the same row serialize on
        the row lock and the loser matches zero rows.

        Returns True if the row changed.
        """
        new_status = MessageStatus(new_status)
        allowed_current = new_status.predecessors()
        if not allowed_current:
            return False

        stmt = (
            update(Message)
            .where(
                Message.id == message_id,
                Message.status.in_(allowed_current)
            )
            .values(
                status=new_status.value,
                version=Message.version + 1,
                updated_at=utcnow()
            )
            .execution_options(synchronize_session=False)
        )

        result = await self.db.execute(stmt)
        return result.rowcount > 0

    async def mark_conversation_read(self, conversation_key: str) -> int:
        """
        Mark every inbound, not-yet-read message of a conversation as read.
        Returns the number of messages changed.
        """
        stmt = (
            update(Message)
            .where(
                Message.conversation_key == conversation_key,
                Message.direction == MessageDirection.INBOUND.value,
                Message.status != MessageStatus.READ.value
            )
            .values(
                status=MessageStatus.READ.value,
                version=Message.version + 1,
                updated_at=utcnow()
            )
            .execution_options(synchronize_session=False)
        )

        result = await self.db.execute(stmt)
        return result.rowcount or 0

    # ============================================
    # DELETE OPERATIONS
    # ============================================

    async def delete_for_conversation(self, conversation_key: str) -> int:
        """Delete every message of a conversation. Returns the count deleted."""
        stmt = (
            delete(Message)
            .where(Message.conversation_key == conversation_key)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        return result.rowcount or 0
