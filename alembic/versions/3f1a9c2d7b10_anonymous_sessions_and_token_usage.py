"""users with token usage, anonymous sessions

Revision ID: 3f1a9c2d7b10
Revises:
Create Date: 2025-10-01

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic
revision = '3f1a9c2d7b10'
down_revision = None
branch_labels = None
depends_on = None

def upgrade() -> None:
    user_role = sa.Enum('user', 'admin', name='userrole')

    op.create_table(
        'users',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('email', sa.String(), nullable=False),
        sa.Column('full_name', sa.String(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        sa.Column('role', user_role, nullable=False, server_default='user'),
        sa.Column('daily_tokens_used', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_tokens_used', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_reset_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table(
        'anonymous_sessions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('anonymous_id', sa.String(length=64), nullable=False),
        sa.Column('ip_address', sa.String(length=64), nullable=False),
        sa.Column('user_agent', sa.Text(), nullable=True),
        sa.Column('browser_fingerprint', sa.String(length=64), nullable=True),
        sa.Column('park_name', sa.String(length=255), nullable=False, server_default='General Planning'),
        sa.Column('park_code', sa.String(length=32), nullable=True),
        sa.Column('form_data', sa.JSON(), nullable=True),
        sa.Column('message_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_activity', sa.DateTime(timezone=True), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('is_converted', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('converted_user_id', sa.String(), nullable=True),
        sa.Column('converted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.ForeignKeyConstraint(['converted_user_id'], ['users.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_anonymous_sessions_id', 'anonymous_sessions', ['id'])
    op.create_index('ix_anonymous_sessions_anonymous_id', 'anonymous_sessions', ['anonymous_id'], unique=True)
    op.create_index('ix_anonymous_sessions_expires_at', 'anonymous_sessions', ['expires_at'])

    op.create_table(
        'anonymous_session_messages',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('session_id', sa.Integer(), nullable=False),
        sa.Column('role', sa.String(length=16), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('timestamp', sa.DateTime(timezone=True), nullable=False),
        sa.Column('provider', sa.String(length=32), nullable=True),
        sa.Column('model', sa.String(length=128), nullable=True),
        sa.Column('response_time_ms', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.ForeignKeyConstraint(['session_id'], ['anonymous_sessions.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(
        'ix_anonymous_session_messages_session_role',
        'anonymous_session_messages',
        ['session_id', 'role']
    )

def downgrade() -> None:
    op.drop_index('ix_anonymous_session_messages_session_role', table_name='anonymous_session_messages')
    op.drop_table('anonymous_session_messages')
    op.drop_index('ix_anonymous_sessions_expires_at', table_name='anonymous_sessions')
    op.drop_index('ix_anonymous_sessions_anonymous_id', table_name='anonymous_sessions')
    op.drop_index('ix_anonymous_sessions_id', table_name='anonymous_sessions')
    op.drop_table('anonymous_sessions')
    op.drop_index('ix_users_email', table_name='users')
    op.drop_table('users')
    sa.Enum(name='userrole').drop(op.get_bind(), checkfirst=True)
