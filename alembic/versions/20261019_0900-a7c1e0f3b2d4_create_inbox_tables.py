"""create inbox tables

Revision ID: a7c1e0f3b2d4
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = 'a7c1e0f3b2d4'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    ]


def upgrade() -> None:
    """Upgrade database schema."""
    op.create_table('users',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('first_name', sa.String(length=100), nullable=False),
        sa.Column('last_name', sa.String(length=100), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email')
    )

    op.create_table('customers',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('first_name', sa.String(length=100), nullable=False),
        sa.Column('last_name', sa.String(length=100), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('phone', sa.String(length=100), nullable=True),
        sa.Column('company', sa.String(length=255), nullable=True),
        sa.Column('source', sa.String(length=50), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('assigned_to', sa.UUID(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['assigned_to'], ['users.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_customers_phone_source', 'customers', ['phone', 'source'], unique=False)
    op.create_index('ix_customers_email_source', 'customers', ['email', 'source'], unique=False)

    op.create_table('conversations',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('platform', sa.String(length=20), nullable=False),
        sa.Column('platform_id', sa.String(length=255), nullable=False),
        sa.Column('customer_id', sa.UUID(), nullable=True),
        sa.Column('assigned_to', sa.UUID(), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('priority', sa.String(length=20), nullable=False),
        sa.Column('last_message_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_message_from', sa.String(length=20), nullable=True),
        sa.Column('unread_count', sa.Integer(), nullable=False),
        sa.Column('metadata', postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['assigned_to'], ['users.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        # One thread per platform identity; the resolver's upsert targets this
        sa.UniqueConstraint('platform', 'platform_id', name='uq_conversation_platform_platform_id')
    )
    op.create_index('ix_conversations_last_message_at', 'conversations', ['last_message_at'], unique=False)
    op.create_index('ix_conversations_assigned_to', 'conversations', ['assigned_to'], unique=False)

    op.create_table('messages',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('conversation_id', sa.UUID(), nullable=False),
        sa.Column('sender_id', sa.UUID(), nullable=True),
        sa.Column('sender_type', sa.String(length=20), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('message_type', sa.String(length=20), nullable=False),
        sa.Column('platform_message_id', sa.String(length=255), nullable=True),
        sa.Column('is_read', sa.Boolean(), nullable=False),
        sa.Column('read_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('metadata', postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['conversation_id'], ['conversations.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['sender_id'], ['users.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_messages_conversation_created', 'messages', ['conversation_id', 'created_at'], unique=False)
    op.create_index('ix_messages_platform_message_id', 'messages', ['platform_message_id'], unique=False)

    op.create_table('leads',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('first_name', sa.String(length=100), nullable=False),
        sa.Column('last_name', sa.String(length=100), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('phone', sa.String(length=100), nullable=True),
        sa.Column('company', sa.String(length=255), nullable=True),
        sa.Column('message', sa.Text(), nullable=True),
        sa.Column('source', sa.String(length=50), nullable=False),
        sa.Column('source_details', sa.String(length=255), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('priority', sa.String(length=20), nullable=False),
        sa.Column('assigned_to', sa.UUID(), nullable=True),
        sa.Column('customer_id', sa.UUID(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['assigned_to'], ['users.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id')
    )

    op.create_table('function_traces',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('correlation_id', sa.UUID(), nullable=False),
        sa.Column('sequence_number', sa.Integer(), nullable=False),
        sa.Column('function_name', sa.String(length=255), nullable=False),
        sa.Column('module_path', sa.String(length=255), nullable=False),
        sa.Column('trace_type', sa.String(length=50), nullable=False),
        sa.Column('input_summary', postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column('output_summary', postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column('duration_ms', sa.Integer(), nullable=False),
        sa.Column('platform', sa.String(length=20), nullable=True),
        sa.Column('platform_id', sa.String(length=255), nullable=True),
        sa.Column('is_error', sa.Boolean(), nullable=False),
        sa.Column('error_type', sa.String(length=255), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_function_traces_correlation_id', 'function_traces', ['correlation_id'], unique=False)
    op.create_index('ix_func_trace_corr_seq', 'function_traces', ['correlation_id', 'sequence_number'], unique=False)
    op.create_index('ix_func_trace_created', 'function_traces', ['created_at'], unique=False)
    op.create_index('ix_func_trace_platform', 'function_traces', ['platform', 'platform_id'], unique=False)
    op.create_index('ix_func_trace_error', 'function_traces', ['is_error'], unique=False)


def downgrade() -> None:
    """Downgrade database schema."""
    op.drop_index('ix_func_trace_error', table_name='function_traces')
    op.drop_index('ix_func_trace_platform', table_name='function_traces')
    op.drop_index('ix_func_trace_created', table_name='function_traces')
    op.drop_index('ix_func_trace_corr_seq', table_name='function_traces')
    op.drop_index('ix_function_traces_correlation_id', table_name='function_traces')
    op.drop_table('function_traces')
    op.drop_table('leads')
    op.drop_index('ix_messages_platform_message_id', table_name='messages')
    op.drop_index('ix_messages_conversation_created', table_name='messages')
    op.drop_table('messages')
    op.drop_index('ix_conversations_assigned_to', table_name='conversations')
    op.drop_index('ix_conversations_last_message_at', table_name='conversations')
    op.drop_table('conversations')
    op.drop_index('ix_customers_email_source', table_name='customers')
    op.drop_index('ix_customers_phone_source', table_name='customers')
    op.drop_table('customers')
    op.drop_table('users')
