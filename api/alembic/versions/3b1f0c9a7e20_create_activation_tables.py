"""create users mirror and activation tables

Revision ID: 3b1f0c9a7e20
Revises:
Create Date: 2026-01-10 09:15:42.118204

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3b1f0c9a7e20'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, comment="Record creation timestamp"),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, comment="Record last update timestamp"),
    ]


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        'users',
        sa.Column('id', sa.Uuid(), primary_key=True, comment="Primary key UUID"),
        sa.Column('email', sa.String(255), nullable=False, comment="Email address"),
        sa.Column('first_name', sa.String(100), nullable=False, comment="First name"),
        sa.Column('last_name', sa.String(100), nullable=False, comment="Last name"),
        sa.Column('role', sa.String(50), nullable=False, comment="User role: admin, supervisor, field_agent"),
        sa.Column('phone', sa.String(50), nullable=True, comment="Phone number"),
        sa.Column('avatar_url', sa.String(500), nullable=True, comment="Avatar reference"),
        sa.Column('is_active', sa.Boolean(), nullable=False, comment="Whether user account is active"),
        sa.Column('last_login', sa.DateTime(timezone=True), nullable=True, comment="Last login timestamp"),
        *_timestamps(),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)
    op.create_index('ix_users_role', 'users', ['role'])
    op.create_index('ix_users_is_active', 'users', ['is_active'])

    op.create_table(
        'activation_whitelist',
        sa.Column('id', sa.Uuid(), primary_key=True, comment="Primary key UUID"),
        sa.Column('identifier', sa.String(255), nullable=False, comment="Normalized identifier"),
        sa.Column('identifier_type', sa.String(20), nullable=False, comment="email | phone | national_id"),
        sa.Column('full_name', sa.String(255), nullable=False),
        sa.Column('assigned_role', sa.String(50), nullable=False),
        sa.Column(
            'assigned_supervisor_id',
            sa.Uuid(),
            sa.ForeignKey('users.id', ondelete='SET NULL'),
            nullable=True,
        ),
        sa.Column('phone', sa.String(50), nullable=True),
        sa.Column('is_activated', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('activated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('activated_user_id', sa.Uuid(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_by', sa.Uuid(), nullable=True, comment="User ID who created this record"),
        *_timestamps(),
    )
    op.create_index('ix_activation_whitelist_identifier', 'activation_whitelist', ['identifier'], unique=True)
    op.create_index('ix_activation_whitelist_assigned_role', 'activation_whitelist', ['assigned_role'])
    op.create_index(
        'ix_activation_whitelist_assigned_supervisor_id', 'activation_whitelist', ['assigned_supervisor_id']
    )
    op.create_index('ix_activation_whitelist_is_activated', 'activation_whitelist', ['is_activated'])

    op.create_table(
        'activation_codes',
        sa.Column('id', sa.Uuid(), primary_key=True, comment="Primary key UUID"),
        sa.Column(
            'whitelist_id',
            sa.Uuid(),
            sa.ForeignKey('activation_whitelist.id', ondelete='RESTRICT'),
            nullable=False,
        ),
        sa.Column('code_hash', sa.String(255), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='active'),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True, comment="NULL means the code never expires"),
        sa.Column('used_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('used_by_ip', sa.String(64), nullable=True),
        sa.Column('used_user_agent', sa.String(500), nullable=True),
        sa.Column('revoked_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('revoked_by', sa.Uuid(), nullable=True),
        sa.Column('revoke_reason', sa.Text(), nullable=True),
        sa.Column('failed_attempts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('max_attempts', sa.Integer(), nullable=False, server_default='5'),
        sa.Column('last_attempt_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_by', sa.Uuid(), nullable=True, comment="User ID who created this record"),
        *_timestamps(),
    )
    op.create_index('ix_activation_codes_whitelist_id', 'activation_codes', ['whitelist_id'])
    op.create_index('ix_activation_codes_status', 'activation_codes', ['status'])
    # At most one active code per whitelist entry
    op.create_index(
        'uq_activation_code_active_entry',
        'activation_codes',
        ['whitelist_id'],
        unique=True,
        postgresql_where=sa.text("status = 'active'"),
        sqlite_where=sa.text("status = 'active'"),
    )

    op.create_table(
        'activation_audit_log',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            'activation_code_id',
            sa.Uuid(),
            sa.ForeignKey('activation_codes.id', ondelete='RESTRICT'),
            nullable=True,
        ),
        sa.Column('whitelist_id', sa.Uuid(), nullable=True),
        sa.Column('event_type', sa.String(30), nullable=False),
        sa.Column('success', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('ip_address', sa.String(64), nullable=True),
        sa.Column('user_agent', sa.String(500), nullable=True),
        sa.Column('identifier_attempted', sa.String(255), nullable=True, comment="Masked identifier"),
        sa.Column('failure_reason', sa.Text(), nullable=True),
        sa.Column('actor_user_id', sa.Uuid(), nullable=True),
        sa.Column('metadata', sa.JSON(), nullable=True),
    )
    op.create_index('ix_activation_audit_log_activation_code_id', 'activation_audit_log', ['activation_code_id'])
    op.create_index('ix_activation_audit_log_whitelist_id', 'activation_audit_log', ['whitelist_id'])
    op.create_index('ix_activation_audit_log_event_type', 'activation_audit_log', ['event_type'])
    op.create_index('ix_activation_audit_log_created_at', 'activation_audit_log', ['created_at'])
    op.create_index('ix_activation_audit_log_ip_address', 'activation_audit_log', ['ip_address'])
    op.create_index('ix_activation_audit_log_actor_user_id', 'activation_audit_log', ['actor_user_id'])
    op.create_index('idx_activation_audit_code_time', 'activation_audit_log', ['activation_code_id', 'created_at'])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table('activation_audit_log')
    op.drop_table('activation_codes')
    op.drop_table('activation_whitelist')
    op.drop_table('users')
