"""Create role assignment tables

Revision ID: 001_create_role_assignment_tables
Revises:
Create Date: 2026-10-18

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '001_create_role_assignment_tables'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


ACTIVE_SCOPE_PREDICATE = "is_active = true AND deleted_at IS NULL"
ACTIVE_PRIMARY_PREDICATE = "is_primary = true AND is_active = true AND deleted_at IS NULL"


def upgrade() -> None:
    """Create persons, person_roles and the two permission tables."""

    op.create_table(
        'persons',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('tenant_id', sa.String(length=36), nullable=True),
        sa.Column('company_id', sa.String(length=36), nullable=True),
        sa.Column('department_id', sa.String(length=36), nullable=True),
        sa.Column('first_name', sa.String(length=100), nullable=True),
        sa.Column('last_name', sa.String(length=100), nullable=True),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('password_hash', sa.String(length=255), nullable=True),
        sa.Column('reset_token', sa.String(length=255), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.Column('deleted_at', sa.DateTime(), nullable=True),
    )
    for column in ('tenant_id', 'company_id', 'department_id', 'last_name', 'email', 'deleted_at'):
        op.create_index(f'ix_persons_{column}', 'persons', [column])

    op.create_table(
        'person_roles',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('person_id', sa.String(), sa.ForeignKey('persons.id'), nullable=False),
        sa.Column('role_type', sa.String(length=100), nullable=False),
        sa.Column('company_id', sa.String(length=36), nullable=True),
        sa.Column('tenant_id', sa.String(length=36), nullable=True),
        sa.Column('scope_key', sa.String(length=90), nullable=False, server_default='|'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('is_primary', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('valid_until', sa.DateTime(), nullable=True),
        sa.Column('assigned_by', sa.String(length=36), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.Column('deleted_at', sa.DateTime(), nullable=True),
    )
    for column in ('person_id', 'role_type', 'company_id', 'tenant_id', 'is_active', 'valid_until', 'deleted_at'):
        op.create_index(f'ix_person_roles_{column}', 'person_roles', [column])

    # Storage-level guarantees for concurrent writers
    op.create_index(
        'uq_person_roles_active_scope',
        'person_roles',
        ['person_id', 'role_type', 'scope_key'],
        unique=True,
        sqlite_where=sa.text(ACTIVE_SCOPE_PREDICATE),
        postgresql_where=sa.text(ACTIVE_SCOPE_PREDICATE),
    )
    op.create_index(
        'uq_person_roles_primary',
        'person_roles',
        ['person_id'],
        unique=True,
        sqlite_where=sa.text(ACTIVE_PRIMARY_PREDICATE),
        postgresql_where=sa.text(ACTIVE_PRIMARY_PREDICATE),
    )

    op.create_table(
        'advanced_permissions',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('person_role_id', sa.String(), sa.ForeignKey('person_roles.id'), nullable=False),
        sa.Column('resource', sa.String(length=100), nullable=False),
        sa.Column('action', sa.String(length=50), nullable=False),
        sa.Column('scope', sa.String(length=20), nullable=False, server_default='tenant'),
        sa.Column('allowed_fields', sa.JSON(), nullable=True),
        sa.Column('conditions', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('deleted_at', sa.DateTime(), nullable=True),
    )
    for column in ('person_role_id', 'resource', 'action', 'deleted_at'):
        op.create_index(f'ix_advanced_permissions_{column}', 'advanced_permissions', [column])

    op.create_table(
        'role_permissions',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('person_role_id', sa.String(), sa.ForeignKey('person_roles.id'), nullable=False),
        sa.Column('permission', sa.String(length=100), nullable=False),
        sa.Column('is_granted', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('deleted_at', sa.DateTime(), nullable=True),
    )
    for column in ('person_role_id', 'permission', 'deleted_at'):
        op.create_index(f'ix_role_permissions_{column}', 'role_permissions', [column])


def downgrade() -> None:
    """Drop the role assignment tables, dependents first."""
    op.drop_table('role_permissions')
    op.drop_table('advanced_permissions')
    op.drop_index('uq_person_roles_primary', 'person_roles')
    op.drop_index('uq_person_roles_active_scope', 'person_roles')
    op.drop_table('person_roles')
    op.drop_table('persons')
