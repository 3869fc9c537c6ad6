"""Initial schema for the renewal SMS engine.

Revision ID: 0001_renewal_sms_schema
Revises:
Create Date: 2026-10-18

Creates the listing, conversation, message log, admin config and phone
lock tables using types that work on both SQLite and PostgreSQL.
"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa

# revision identifiers
revision = '0001_renewal_sms_schema'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    """Create all tables."""

    # =========================================================================
    # Table: listings
    # =========================================================================
    op.create_table(
        'listings',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.String(64), nullable=True),
        sa.Column('listing_type', sa.String(20), nullable=True),
        sa.Column('bedrooms', sa.Integer(), nullable=True),
        sa.Column('location', sa.String(255), nullable=True),
        sa.Column('neighborhood', sa.String(100), nullable=True),
        sa.Column('full_address', sa.String(255), nullable=True),
        sa.Column('price', sa.Numeric(12, 2), nullable=True),
        sa.Column('asking_price', sa.Numeric(14, 2), nullable=True),
        sa.Column('contact_phone', sa.String(30), nullable=True),
        sa.Column('contact_phone_e164', sa.String(20), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        sa.Column('approved', sa.Boolean(), nullable=True),
        sa.Column('deactivated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_published_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('hadirot_conversion', sa.Boolean(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_listings_user_id', 'listings', ['user_id'])
    op.create_index('ix_listings_is_active', 'listings', ['is_active'])
    op.create_index('ix_listings_contact_phone_e164', 'listings', ['contact_phone_e164'])
    op.create_index('ix_listings_phone_active', 'listings', ['contact_phone_e164', 'is_active'])

    # =========================================================================
    # Table: listing_renewal_conversations
    # =========================================================================
    op.create_table(
        'listing_renewal_conversations',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('phone_number', sa.String(20), nullable=False),
        sa.Column('listing_id', sa.Integer(), nullable=True),
        sa.Column('batch_id', sa.String(36), nullable=True),
        sa.Column('listing_index', sa.Integer(), nullable=True),
        sa.Column('total_in_batch', sa.Integer(), nullable=True),
        sa.Column('state', sa.String(40), nullable=False),
        sa.Column('conversation_type', sa.String(20), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.Column('reply_text', sa.Text(), nullable=True),
        sa.Column('action_taken', sa.String(30), nullable=True),
        sa.Column('hadirot_conversion', sa.Boolean(), nullable=True),
        sa.Column('message_sid', sa.String(64), nullable=True),
        sa.Column('message_sent_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('reply_received_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['listing_id'], ['listings.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_listing_renewal_conversations_listing_id', 'listing_renewal_conversations', ['listing_id'])
    op.create_index('ix_renewal_conv_phone_state', 'listing_renewal_conversations', ['phone_number', 'state'])
    op.create_index('ix_renewal_conv_batch', 'listing_renewal_conversations', ['batch_id', 'listing_index'])
    op.create_index('ix_renewal_conv_state_expires', 'listing_renewal_conversations', ['state', 'expires_at'])

    # =========================================================================
    # Table: sms_messages
    # =========================================================================
    op.create_table(
        'sms_messages',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('conversation_id', sa.Integer(), nullable=True),
        sa.Column('listing_id', sa.Integer(), nullable=True),
        sa.Column('direction', sa.String(10), nullable=False),
        sa.Column('phone_number', sa.String(20), nullable=False),
        sa.Column('message_body', sa.Text(), nullable=False),
        sa.Column('message_sid', sa.String(64), nullable=True),
        sa.Column('message_source', sa.String(30), nullable=True),
        sa.Column('status', sa.String(20), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['conversation_id'], ['listing_renewal_conversations.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['listing_id'], ['listings.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_sms_messages_conversation_id', 'sms_messages', ['conversation_id'])
    op.create_index('ix_sms_messages_message_sid', 'sms_messages', ['message_sid'])
    op.create_index('ix_sms_messages_phone_created', 'sms_messages', ['phone_number', 'created_at'])
    op.create_index(
        'ix_sms_messages_source_phone', 'sms_messages', ['message_source', 'phone_number', 'created_at']
    )

    # =========================================================================
    # Table: sms_admin_config
    # =========================================================================
    op.create_table(
        'sms_admin_config',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('admin_email', sa.String(255), nullable=True),
        sa.Column('notify_on_errors', sa.Boolean(), nullable=True),
        sa.Column('notify_on_unrecognized', sa.Boolean(), nullable=True),
        sa.Column('notify_on_timeouts', sa.Boolean(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )

    # =========================================================================
    # Table: phone_lock
    # =========================================================================
    op.create_table(
        'phone_lock',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('lock_name', sa.String(100), nullable=False),
        sa.Column('locked_by', sa.String(64), nullable=False),
        sa.Column('locked_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_phone_lock_lock_name', 'phone_lock', ['lock_name'], unique=True)
    op.create_index('ix_phone_lock_expires_at', 'phone_lock', ['expires_at'])


def downgrade() -> None:
    """Drop all tables."""
    op.drop_table('phone_lock')
    op.drop_table('sms_admin_config')
    op.drop_table('sms_messages')
    op.drop_table('listing_renewal_conversations')
    op.drop_table('listings')
