"""initial role tables

Revision ID: 0001_initial_roles
Revises: 
Create Date: 2026-10-19
"""
from __future__ import annotations
from alembic import op
import sqlalchemy as sa

revision = '0001_initial_roles'
down_revision = None
branch_labels = None
depends_on = None

def upgrade():
    op.create_table('roles',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('tenant_id', sa.String(length=64), nullable=False),
        sa.Column('code', sa.String(length=50), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('description', sa.String(length=500), nullable=True),
        sa.Column('base_template', sa.String(length=32), nullable=True),
        sa.Column('resource_grants', sa.JSON(), nullable=False),
        sa.Column('special_permissions', sa.JSON(), nullable=False),
        sa.Column('color', sa.String(length=16), nullable=False, server_default='#6b7280'),
        sa.Column('icon', sa.String(length=64), nullable=True),
        sa.Column('sort_order', sa.Integer(), nullable=False, server_default=sa.text('100')),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('1')),
        sa.Column('is_system', sa.Boolean(), nullable=False, server_default=sa.text('0')),
        sa.Column('created_by', sa.String(length=64), nullable=True),
        sa.Column('modified_by', sa.String(length=64), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint('tenant_id', 'code', name='uq_roles_tenant_code'),
    )
    op.create_index('ix_roles_tenant_id', 'roles', ['tenant_id'])
    op.create_index('ix_roles_tenant_active', 'roles', ['tenant_id', 'is_active'])

    op.create_table('role_assignments',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('tenant_id', sa.String(length=64), nullable=False),
        sa.Column('user_id', sa.String(length=64), nullable=False),
        sa.Column('role_id', sa.Integer(), sa.ForeignKey('roles.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('assigned_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint('tenant_id', 'user_id', name='uq_role_assignment_user'),
    )
    op.create_index('ix_role_assignments_tenant_id', 'role_assignments', ['tenant_id'])
    op.create_index('ix_role_assignments_role_id', 'role_assignments', ['role_id'])

    op.create_table('audit_logs',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('tenant_id', sa.String(length=64), nullable=True),
        sa.Column('actor_user_id', sa.String(length=64), nullable=True),
        sa.Column('actor_role_id', sa.Integer(), nullable=True),
        sa.Column('action', sa.String(length=64), nullable=False),
        sa.Column('entity', sa.String(length=64), nullable=True),
        sa.Column('entity_id', sa.String(length=64), nullable=True),
        sa.Column('meta', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('ix_audit_logs_tenant_id', 'audit_logs', ['tenant_id'])
    op.create_index('ix_audit_logs_actor_user_id', 'audit_logs', ['actor_user_id'])
    op.create_index('ix_audit_logs_action', 'audit_logs', ['action'])


def downgrade():
    op.drop_table('audit_logs')
    op.drop_table('role_assignments')
    op.drop_table('roles')
