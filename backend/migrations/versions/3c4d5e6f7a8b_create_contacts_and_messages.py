"""Create contacts and messages tables

Revision ID: 3c4d5e6f7a8b
Revises:
Create Date: 2026-10-19

This migration adds:
- contacts: one row per WhatsApp counterparty (wa_id unique)
- messages: every inbound/outbound message, external_id unique,
  cascading with its contact
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '3c4d5e6f7a8b'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Create contacts table
    op.create_table(
        'contacts',
        sa.Column('id', sa.BigInteger(), primary_key=True),

        # Identity
        sa.Column('wa_id', sa.Text(), nullable=False, unique=True),
        sa.Column('name', sa.Text(), nullable=False),
        sa.Column('profile_picture', sa.Text(), nullable=True),
        sa.Column('is_placeholder', sa.Boolean(), nullable=False, server_default=sa.false()),

        # Presence
        sa.Column('status', sa.Text(), nullable=False, server_default='offline'),
        sa.Column('last_seen', sa.DateTime(timezone=True), nullable=True),

        # Flags
        sa.Column('is_archived', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_blocked', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_pinned', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_muted', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('mute_until', sa.DateTime(timezone=True), nullable=True),

        # Annotations
        sa.Column('notes', sa.Text(), nullable=False, server_default=''),
        sa.Column('labels', sa.JSON(), nullable=False, server_default='[]'),

        # Timestamps
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
    )

    op.create_index('idx_contacts_flags', 'contacts', ['is_archived', 'is_blocked'])
    op.create_index('idx_contacts_pinned', 'contacts', ['is_pinned'])
    op.create_index('idx_contacts_created', 'contacts', ['created_at'])

    # Create messages table
    op.create_table(
        'messages',
        sa.Column('id', sa.BigInteger(), primary_key=True),

        # Identifiers
        sa.Column('external_id', sa.Text(), nullable=False, unique=True),
        sa.Column('correlation_id', sa.Text(), nullable=False),

        # Conversation
        sa.Column('conversation_key', sa.Text(),
                  sa.ForeignKey('contacts.wa_id', ondelete='CASCADE'),
                  nullable=False),
        sa.Column('sender_name', sa.Text(), nullable=False),

        # Content
        sa.Column('body', sa.Text(), nullable=False),
        sa.Column('message_type', sa.Text(), nullable=False, server_default='text'),
        sa.Column('direction', sa.Text(), nullable=False),

        # Delivery status
        sa.Column('status', sa.Text(), nullable=False, server_default='sent'),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),

        # Timestamps
        sa.Column('timestamp', sa.DateTime(timezone=True), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
    )

    op.create_index('idx_messages_correlation_id', 'messages', ['correlation_id'])
    op.create_index('idx_messages_conversation_ts', 'messages', ['conversation_key', 'timestamp'])
    op.create_index('idx_messages_conversation_unread', 'messages', ['conversation_key', 'direction', 'status'])
    op.create_index('idx_messages_updated', 'messages', ['updated_at'])


def downgrade() -> None:
    # Drop indexes first
    op.drop_index('idx_messages_updated', table_name='messages')
    op.drop_index('idx_messages_conversation_unread', table_name='messages')
    op.drop_index('idx_messages_conversation_ts', table_name='messages')
    op.drop_index('idx_messages_correlation_id', table_name='messages')
    op.drop_table('messages')

    op.drop_index('idx_contacts_created', table_name='contacts')
    op.drop_index('idx_contacts_pinned', table_name='contacts')
    op.drop_index('idx_contacts_flags', table_name='contacts')
    op.drop_table('contacts')
