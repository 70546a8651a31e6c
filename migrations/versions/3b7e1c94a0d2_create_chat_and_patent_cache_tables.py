"""create chat, patent cache and artifact tables

Revision ID: 3b7e1c94a0d2
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '3b7e1c94a0d2'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _audit_columns():
    return [
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        'chat_sessions',
        *_audit_columns(),
        sa.Column('user_id', sa.String(), nullable=True),
        sa.Column('title', sa.String(), nullable=False),
        sa.Column('last_message_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_chat_sessions_user_id', 'chat_sessions', ['user_id'])

    op.create_table(
        'chat_messages',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.Column(
            'session_id',
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey('chat_sessions.id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.Column('role', sa.String(), nullable=False),
        sa.Column('content', postgresql.JSONB(), nullable=False),
        sa.Column('processing_time_ms', sa.Integer(), nullable=True),
    )
    op.create_index('ix_chat_messages_session_id', 'chat_messages', ['session_id'])

    op.create_table(
        'cached_patents',
        *_audit_columns(),
        sa.Column('session_id', sa.String(), nullable=False),
        sa.Column('patent_number', sa.String(), nullable=False),
        sa.Column('patent_index', sa.Integer(), nullable=False),
        sa.Column('title', sa.String(), nullable=True),
        sa.Column('url', sa.String(), nullable=True),
        sa.Column('abstract', sa.Text(), nullable=True),
        sa.Column('full_content', sa.Text(), nullable=False),
        sa.Column('metadata', postgresql.JSONB(), nullable=True),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.UniqueConstraint('session_id', 'patent_number', name='uq_cached_patents_session_number'),
    )
    op.create_index('ix_cached_patents_session_id', 'cached_patents', ['session_id'])
    op.create_index('ix_cached_patents_session_index', 'cached_patents', ['session_id', 'patent_index'])
    op.create_index('ix_cached_patents_expires_at', 'cached_patents', ['expires_at'])

    op.create_table(
        'charts',
        *_audit_columns(),
        sa.Column('session_id', sa.String(), nullable=True),
        sa.Column('user_id', sa.String(), nullable=True),
        sa.Column('anonymous_id', sa.String(), nullable=True),
        sa.Column('chart_data', postgresql.JSONB(), nullable=False),
    )
    op.create_index('ix_charts_session_id', 'charts', ['session_id'])
    op.create_index('ix_charts_user_id', 'charts', ['user_id'])

    op.create_table(
        'csv_tables',
        *_audit_columns(),
        sa.Column('session_id', sa.String(), nullable=True),
        sa.Column('user_id', sa.String(), nullable=True),
        sa.Column('anonymous_id', sa.String(), nullable=True),
        sa.Column('title', sa.String(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('headers', postgresql.JSONB(), nullable=False),
        sa.Column('rows', postgresql.JSONB(), nullable=False),
    )
    op.create_index('ix_csv_tables_session_id', 'csv_tables', ['session_id'])
    op.create_index('ix_csv_tables_user_id', 'csv_tables', ['user_id'])


def downgrade() -> None:
    op.drop_index('ix_csv_tables_user_id', table_name='csv_tables')
    op.drop_index('ix_csv_tables_session_id', table_name='csv_tables')
    op.drop_table('csv_tables')
    op.drop_index('ix_charts_user_id', table_name='charts')
    op.drop_index('ix_charts_session_id', table_name='charts')
    op.drop_table('charts')
    op.drop_index('ix_cached_patents_expires_at', table_name='cached_patents')
    op.drop_index('ix_cached_patents_session_index', table_name='cached_patents')
    op.drop_index('ix_cached_patents_session_id', table_name='cached_patents')
    op.drop_table('cached_patents')
    op.drop_index('ix_chat_messages_session_id', table_name='chat_messages')
    op.drop_table('chat_messages')
    op.drop_index('ix_chat_sessions_user_id', table_name='chat_sessions')
    op.drop_table('chat_sessions')
