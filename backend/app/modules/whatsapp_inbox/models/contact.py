"""
Contact ORM Model
SQLAlchemy model representing the 'contacts' table.

One row per counterparty. wa_id (the WhatsApp user id) is the unique key and
doubles as the conversation key of every message exchanged with them.
Last message / unread count are NOT stored here: they are derived from the
messages table at read time.
"""
from sqlalchemy import Column, Text, Boolean, DateTime, Index, JSON
from app.shared.db.base import Base, TimestampMixin, BigIntegerPK


class Contact(Base, TimestampMixin):
    """
    ORM Model for the contacts table.

    Created explicitly via the contacts API, or implicitly (is_placeholder=True)
    when a message arrives from a sender we have never seen.
    """
    __tablename__ = "contacts"

    # Primary Key
    id = Column(BigIntegerPK, primary_key=True)

    # ============================================
    # IDENTITY
    # ============================================
    wa_id = Column(Text, unique=True, nullable=False)         # WhatsApp user id, conversation key
    name = Column(Text, nullable=False)
    profile_picture = Column(Text, nullable=True)
    is_placeholder = Column(Boolean, nullable=False, default=False)  # Auto-created by ingestion

    # ============================================
    # PRESENCE
    # ============================================
    status = Column(Text, nullable=False, default="offline")  # online / offline / last_seen
    last_seen = Column(DateTime(timezone=True), nullable=True)

    # ============================================
    # FLAGS
    # ============================================
    is_archived = Column(Boolean, nullable=False, default=False)
    is_blocked = Column(Boolean, nullable=False, default=False)
    is_pinned = Column(Boolean, nullable=False, default=False)
    is_muted = Column(Boolean, nullable=False, default=False)
    mute_until = Column(DateTime(timezone=True), nullable=True)

    # ============================================
    # ANNOTATIONS
    # ============================================
    notes = Column(Text, nullable=False, default="")
    labels = Column(JSON, nullable=False, default=list)

    # ============================================
    # INDEXES
    # ============================================
    __table_args__ = (
        Index('idx_contacts_flags', 'is_archived', 'is_blocked'),
        Index('idx_contacts_pinned', 'is_pinned'),
        Index('idx_contacts_created', 'created_at'),
    )

    @property
    def initials(self) -> str:
        """Up to two initials for the avatar, '?' for an empty name."""
        if not self.name:
            return "?"
        return "".join(word[0] for word in self.name.split() if word)[:2].upper() or "?"

    def __repr__(self):
        return f"<Contact(id={self.id}, wa_id='{self.wa_id}', name='{self.name}')>"
