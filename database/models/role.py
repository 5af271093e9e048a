import uuid
from datetime import datetime
from sqlmodel import SQLModel, Field
from sqlalchemy import DateTime, Index, text
from typing import Optional

from utils.clock import utcnow


ACTIVE_SCOPE_PREDICATE = "is_active = true AND deleted_at IS NULL"
ACTIVE_PRIMARY_PREDICATE = "is_primary = true AND is_active = true AND deleted_at IS NULL"


def _scope_part(value: Optional[str]) -> str:
    return "" if value is None else f"{len(value)}:{value}"


def build_scope_key(company_id: Optional[str], tenant_id: Optional[str]) -> str:
    """
    Non-null form of the (company, tenant) pair. Unique indexes treat NULLs
    as distinct, so the active-scope constraint is declared over this key.
    Parts are length-prefixed, so distinct pairs never share a key and
    None stays distinct from every string.
    """
    return f"{_scope_part(tenant_id)}|{_scope_part(company_id)}"


class PersonRole(SQLModel, table=True):
    """Association between a Person and a canonical role type."""
    __tablename__ = "person_roles"
    __table_args__ = (
        # At most one active assignment per (person, role type, company, tenant)
        Index(
            "uq_person_roles_active_scope",
            "person_id", "role_type", "scope_key",
            unique=True,
            sqlite_where=text(ACTIVE_SCOPE_PREDICATE),
            postgresql_where=text(ACTIVE_SCOPE_PREDICATE),
        ),
        # At most one active primary assignment per person
        Index(
            "uq_person_roles_primary",
            "person_id",
            unique=True,
            sqlite_where=text(ACTIVE_PRIMARY_PREDICATE),
            postgresql_where=text(ACTIVE_PRIMARY_PREDICATE),
        ),
    )

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    person_id: str = Field(foreign_key="persons.id", index=True)
    role_type: str = Field(index=True, max_length=100)  # canonical, see core.roles
    company_id: Optional[str] = Field(default=None, index=True, max_length=36)
    tenant_id: Optional[str] = Field(default=None, index=True, max_length=36)
    scope_key: str = Field(default="|", max_length=90)
    is_active: bool = Field(default=True, index=True)
    is_primary: bool = Field(default=False)
    # Datetime columns hold naive UTC, see utils.clock
    valid_until: Optional[datetime] = Field(default=None, index=True, sa_type=DateTime)
    assigned_by: Optional[str] = Field(default=None, max_length=36)
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=DateTime)
    deleted_at: Optional[datetime] = Field(default=None, index=True, sa_type=DateTime)
