"""
Back-office RBAC schema

Revision ID: 000001_backoffice_rbac
Revises: 
Create Date: 2026-10-16 09:00:00
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '000001_backoffice_rbac'
down_revision = None
branch_labels = None
depends_on = None


def _base_columns():
    return [
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    ]


def _soft_delete_columns():
    return [
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('is_deleted', sa.Boolean(), nullable=False, server_default=sa.text('false')),
    ]


def upgrade() -> None:
    # customers (owner FK added once users exists)
    op.create_table(
        'customers',
        *_base_columns(),
        *_soft_delete_columns(),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('email_domain', sa.String(length=255), nullable=True),
        sa.Column('lifecycle_stage', sa.String(length=50), nullable=True),
        sa.Column('owner_id', postgresql.UUID(as_uuid=True), nullable=True),
    )
    op.create_index('ix_customers_name', 'customers', ['name'])
    op.create_index('ix_customers_email_domain', 'customers', ['email_domain'])
    op.create_index('ix_customers_deleted_at', 'customers', ['deleted_at'])
    op.create_index('ix_customers_is_deleted', 'customers', ['is_deleted'])

    # roles
    op.create_table(
        'roles',
        *_base_columns(),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('display_name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('is_system_role', sa.Boolean(), nullable=False, server_default=sa.text('false')),
        sa.Column('permissions', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
    )
    op.create_index('ix_roles_name', 'roles', ['name'], unique=True)

    # permissions
    op.create_table(
        'permissions',
        *_base_columns(),
        sa.Column('name', sa.String(length=150), nullable=False),
        sa.Column('display_name', sa.String(length=255), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
    )
    op.create_index('ix_permissions_name', 'permissions', ['name'], unique=True)

    # users
    op.create_table(
        'users',
        *_base_columns(),
        *_soft_delete_columns(),
        sa.Column('auth_user_id', sa.String(length=255), nullable=True),
        sa.Column('email', sa.String(length=254), nullable=False),
        sa.Column('full_name', sa.String(length=100), nullable=True),
        sa.Column('customer_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('customers.id', ondelete='SET NULL'), nullable=True),
        sa.Column('role_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('roles.id', ondelete='SET NULL'), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='invited'),
        sa.Column('app_metadata', postgresql.JSONB(astext_type=sa.Text()), nullable=False,
                  server_default=sa.text("'{}'::jsonb")),
        sa.Column('last_login_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_users_auth_user_id', 'users', ['auth_user_id'], unique=True)
    op.create_index('ix_users_email', 'users', ['email'], unique=True)
    op.create_index('ix_users_customer_id', 'users', ['customer_id'])
    op.create_index('ix_users_role_id', 'users', ['role_id'])
    op.create_index('ix_users_status', 'users', ['status'])
    op.create_index('ix_users_deleted_at', 'users', ['deleted_at'])
    op.create_index('ix_users_is_deleted', 'users', ['is_deleted'])
    op.create_index('ix_user_customer_status', 'users', ['customer_id', 'status'])

    op.create_foreign_key(
        'fk_customers_owner_id_users', 'customers', 'users',
        ['owner_id'], ['id'], ondelete='SET NULL',
    )

    # role_permissions
    op.create_table(
        'role_permissions',
        *_base_columns(),
        sa.Column('role_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('roles.id', ondelete='CASCADE'), nullable=False),
        sa.Column('permission_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('permissions.id', ondelete='CASCADE'), nullable=False),
        sa.UniqueConstraint('role_id', 'permission_id', name='uq_role_permissions_role_permission'),
    )
    op.create_index('ix_role_permissions_role_id', 'role_permissions', ['role_id'])
    op.create_index('ix_role_permissions_permission_id', 'role_permissions', ['permission_id'])

    # customer_success_owned_customers
    op.create_table(
        'customer_success_owned_customers',
        *_base_columns(),
        sa.Column('user_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('customer_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('customers.id', ondelete='CASCADE'), nullable=False),
        sa.UniqueConstraint('user_id', 'customer_id', name='uq_cs_owned_customers_user_customer'),
    )
    op.create_index('ix_customer_success_owned_customers_user_id', 'customer_success_owned_customers', ['user_id'])
    op.create_index(
        'ix_customer_success_owned_customers_customer_id', 'customer_success_owned_customers', ['customer_id']
    )


def downgrade() -> None:
    op.drop_table('customer_success_owned_customers')
    op.drop_table('role_permissions')
    op.drop_constraint('fk_customers_owner_id_users', 'customers', type_='foreignkey')
    op.drop_table('users')
    op.drop_table('permissions')
    op.drop_table('roles')
    op.drop_table('customers')
