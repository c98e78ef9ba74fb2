"""
Message ORM Model
SQLAlchemy model representing the 'messages' table.

Stores every message of every conversation, inbound (from the counterparty)
and outbound (from the business account).

- external_id: the provider's message id, UNIQUE. It is the idempotency key
  for webhook ingestion (the provider delivers at least once).
- correlation_id: what status-update events reference. Equal to external_id
  for inbound messages and generated separately for local sends.

A message is written once and afterwards only its status (and version /
updated_at) ever changes.
"""
from sqlalchemy import Column, Integer, Text, DateTime, Index, ForeignKey
from app.shared.db.base import Base, TimestampMixin, BigIntegerPK


class Message(Base, TimestampMixin):
    """ORM Model for the messages table."""
    __tablename__ = "messages"

    # Primary Key
    id = Column(BigIntegerPK, primary_key=True)

    # ============================================
    # IDENTIFIERS
    # ============================================
    external_id = Column(Text, unique=True, nullable=False)   # Provider message id (dedup key)
    correlation_id = Column(Text, nullable=False)             # Matched by status-update events

    # ============================================
    # CONVERSATION
    # ============================================
    conversation_key = Column(
        Text,
        ForeignKey('contacts.wa_id', ondelete='CASCADE'),
        nullable=False
    )
    sender_name = Column(Text, nullable=False)

    # ============================================
    # CONTENT
    # ============================================
    body = Column(Text, nullable=False)
    message_type = Column(Text, nullable=False, default="text")  # Declared provider type
    direction = Column(Text, nullable=False)                     # 'inbound' / 'outbound'

    # ============================================
    # DELIVERY STATUS (monotonic: sent -> delivered -> read)
    # ============================================
    status = Column(Text, nullable=False, default="sent")
    version = Column(Integer, nullable=False, default=1)         # Bumped on every status change

    # ============================================
    # TIMESTAMPS
    # ============================================
    timestamp = Column(DateTime(timezone=True), nullable=False)  # Event time
    # created_at (ingestion time, tie-break) and updated_at (status polling) come from TimestampMixin

    # ============================================
    # INDEXES
    # ============================================
    __table_args__ = (
        Index('idx_messages_correlation_id', 'correlation_id'),
        Index('idx_messages_conversation_ts', 'conversation_key', 'timestamp'),
        Index('idx_messages_conversation_unread', 'conversation_key', 'direction', 'status'),
        Index('idx_messages_updated', 'updated_at'),
    )

    def __repr__(self):
        return f"<Message(id={self.id}, external_id='{self.external_id}', direction='{self.direction}', status='{self.status}')>"
