"""initial_schema

Revision ID: 3b6f1c2d9a10
Revises:
Create Date: 2026-10-16 09:12:40.118204

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '3b6f1c2d9a10'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'organizations',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )

    op.create_table(
        'users',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('organization_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('organizations.id', ondelete='CASCADE'), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('password_hash', sa.String(255), nullable=False),
        sa.Column('first_name', sa.String(100)),
        sa.Column('last_name', sa.String(100)),
        sa.Column('role', sa.Enum('admin', 'manager', 'user', name='user_role'),
                  nullable=False, server_default='user'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('last_login_at', sa.DateTime()),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_users_organization_id', 'users', ['organization_id'])
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table(
        'user_two_factor',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('user_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, unique=True),
        sa.Column('is_enabled', sa.Boolean(), nullable=False, server_default=sa.false()),
        # Fernet ciphertext with a "v{n}:" key-version prefix
        sa.Column('secret', sa.Text()),
        sa.Column('backup_codes', postgresql.JSONB()),
        sa.Column('enabled_at', sa.DateTime()),
        sa.Column('backup_codes_regenerated_at', sa.DateTime()),
        sa.Column('last_used_at', sa.DateTime()),
        sa.Column('pending_secret', sa.Text()),
        sa.Column('pending_backup_codes', postgresql.JSONB()),
        sa.Column('setup_initiated_at', sa.DateTime()),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )

    op.create_table(
        'leads',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('organization_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('organizations.id', ondelete='CASCADE'), nullable=False),
        sa.Column('first_name', sa.String(100)),
        sa.Column('last_name', sa.String(100)),
        sa.Column('email', sa.String(255)),
        sa.Column('phone', sa.String(50)),
        sa.Column('company', sa.String(255)),
        sa.Column('source', sa.String(100)),
        sa.Column('status', sa.Enum('new', 'contacted', 'qualified', 'won', 'lost', name='lead_status'),
                  nullable=False, server_default='new'),
        sa.Column('custom_fields', sa.JSON()),
        sa.Column('assigned_to', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('users.id', ondelete='SET NULL')),
        sa.Column('assigned_at', sa.DateTime()),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_leads_org_assigned_to', 'leads', ['organization_id', 'assigned_to'])
    op.create_index('ix_leads_org_created_at', 'leads', ['organization_id', 'created_at'])

    op.create_table(
        'lead_assignment_configs',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('organization_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('organizations.id', ondelete='CASCADE'), nullable=False, unique=True),
        sa.Column('enabled', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('method', sa.Enum('round_robin', 'load_balanced', 'random', name='distribution_method'),
                  nullable=False, server_default='round_robin'),
        sa.Column('eligible_roles', postgresql.JSONB(), nullable=False),
        sa.Column('exclude_user_ids', postgresql.JSONB(), nullable=False),
        sa.Column('max_leads_per_rep', sa.Integer()),
        sa.Column('last_assigned_index', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )


def downgrade() -> None:
    op.drop_table('lead_assignment_configs')
    op.drop_index('ix_leads_org_created_at', table_name='leads')
    op.drop_index('ix_leads_org_assigned_to', table_name='leads')
    op.drop_table('leads')
    op.drop_table('user_two_factor')
    op.drop_index('ix_users_email', table_name='users')
    op.drop_index('ix_users_organization_id', table_name='users')
    op.drop_table('users')
    op.drop_table('organizations')
    sa.Enum(name='distribution_method').drop(op.get_bind(), checkfirst=True)
    sa.Enum(name='lead_status').drop(op.get_bind(), checkfirst=True)
    sa.Enum(name='user_role').drop(op.get_bind(), checkfirst=True)
