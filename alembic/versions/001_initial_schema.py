"""Initial schema

Revision ID: 001
Revises:
Create Date: 2026-10-17 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Owner trust configuration
    op.create_table(
        'ghost_configs',
        sa.Column('owner_id', sa.String(255), primary_key=True),
        sa.Column('enabled', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('public_ghost_enabled', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('default_friend_trust', sa.Float(), nullable=False, server_default='0.25'),
        sa.Column('default_public_trust', sa.Float(), nullable=False, server_default='0.0'),
        sa.Column('per_user_trust', sa.JSON(), nullable=False),
        sa.Column('blocked_users', sa.JSON(), nullable=False),
        sa.Column('enforcement_mode', sa.String(20), nullable=False, server_default='query'),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )

    # Escalation tracking
    op.create_table(
        'access_attempts',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('owner_id', sa.String(255), nullable=False),
        sa.Column('accessor_id', sa.String(255), nullable=False),
        sa.Column('memory_id', sa.String(255), nullable=False),
        sa.Column('count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_attempt_at', sa.DateTime(), nullable=False),
        sa.UniqueConstraint('owner_id', 'accessor_id', 'memory_id', name='uq_access_attempts_triple'),
    )
    op.create_table(
        'access_blocks',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('owner_id', sa.String(255), nullable=False),
        sa.Column('accessor_id', sa.String(255), nullable=False),
        sa.Column('memory_id', sa.String(255), nullable=False),
        sa.Column('blocked_at', sa.DateTime(), nullable=False),
        sa.Column('reason', sa.Text(), nullable=False),
        sa.Column('attempt_count', sa.Integer(), nullable=False),
        sa.UniqueConstraint('owner_id', 'accessor_id', 'memory_id', name='uq_access_blocks_triple'),
    )

    # Two-phase publication tokens
    op.create_table(
        'confirmation_requests',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('token_hash', sa.String(64), unique=True, nullable=False),
        sa.Column('user_id', sa.String(255), nullable=False),
        sa.Column('action', sa.String(50), nullable=False),
        sa.Column('target_collection', sa.String(255), nullable=True),
        sa.Column('payload', sa.JSON(), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('confirmed_at', sa.DateTime(), nullable=True),
    )
    op.create_index(
        'idx_confirmation_requests_user_status',
        'confirmation_requests',
        ['user_id', 'status'],
    )

    # Memories and published copies
    op.create_table(
        'memory_documents',
        sa.Column('collection', sa.String(255), primary_key=True),
        sa.Column('id', sa.String(255), primary_key=True),
        sa.Column('user_id', sa.String(255), nullable=False),
        sa.Column('doc_type', sa.String(20), nullable=False),
        sa.Column('content_type', sa.String(50), nullable=True),
        sa.Column('trust', sa.Float(), nullable=False),
        sa.Column('weight', sa.Float(), nullable=False),
        sa.Column('moderation_status', sa.String(20), nullable=True),
        sa.Column('deleted_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('document', sa.JSON(), nullable=False),
    )
    op.create_index(
        'idx_memory_documents_collection_created',
        'memory_documents',
        ['collection', 'created_at'],
    )
    op.create_index('idx_memory_documents_user', 'memory_documents', ['user_id'])

    # Space and group settings, memberships
    op.create_table(
        'space_configs',
        sa.Column('kind', sa.String(10), primary_key=True),
        sa.Column('target_id', sa.String(255), primary_key=True),
        sa.Column('require_moderation', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('default_write_mode', sa.String(20), nullable=False, server_default='owner_only'),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )
    op.create_table(
        'group_memberships',
        sa.Column('user_id', sa.String(255), primary_key=True),
        sa.Column('group_id', sa.String(255), primary_key=True),
        sa.Column('permissions', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )

    # Create audit_events table
    op.create_table(
        'audit_events',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('timestamp', sa.DateTime(), nullable=False),
        sa.Column('event_type', sa.String(50), nullable=False),
        sa.Column('user_id', sa.Text(), nullable=True),
        sa.Column('target_user_id', sa.Text(), nullable=True),
        sa.Column('memory_id', sa.Text(), nullable=True),
        sa.Column('reason_code', sa.String(50), nullable=True),
        sa.Column('meta', sa.JSON(), nullable=True),
    )
    op.create_index(
        'idx_audit_events_user_timestamp',
        'audit_events',
        ['user_id', 'timestamp'],
    )


def downgrade() -> None:
    op.drop_index('idx_audit_events_user_timestamp', table_name='audit_events')
    op.drop_table('audit_events')
    op.drop_table('group_memberships')
    op.drop_table('space_configs')
    op.drop_index('idx_memory_documents_user', table_name='memory_documents')
    op.drop_index('idx_memory_documents_collection_created', table_name='memory_documents')
    op.drop_table('memory_documents')
    op.drop_index('idx_confirmation_requests_user_status', table_name='confirmation_requests')
    op.drop_table('confirmation_requests')
    op.drop_table('access_blocks')
    op.drop_table('access_attempts')
    op.drop_table('ghost_configs')
