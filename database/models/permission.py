import uuid
from datetime import datetime
from sqlmodel import SQLModel, Field, Column
from sqlalchemy import JSON, DateTime
from typing import Optional, List

from utils.clock import utcnow


class AdvancedPermission(SQLModel, table=True):
    """Fine-grained (resource, action, scope, fields) grant on a role assignment."""
    __tablename__ = "advanced_permissions"

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    person_role_id: str = Field(foreign_key="person_roles.id", index=True)
    resource: str = Field(index=True, max_length=100)  # e.g., "persons", "companies"
    action: str = Field(index=True, max_length=50)  # e.g., "read", "update"
    scope: str = Field(default="tenant", max_length=20)  # see core.scopes.PermissionScope
    allowed_fields: Optional[List[str]] = Field(default=None, sa_column=Column(JSON))
    # e.g., ["id", "first_name", "last_name"] or ["*"]
    conditions: Optional[dict] = Field(default=None, sa_column=Column(JSON))
    # e.g., {"company_id": "c-1"}
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime)
    deleted_at: Optional[datetime] = Field(default=None, index=True, sa_type=DateTime)


class RolePermission(SQLModel, table=True):
    """Grant/revoke of a catalog permission identifier for a role assignment."""
    __tablename__ = "role_permissions"

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    person_role_id: str = Field(foreign_key="person_roles.id", index=True)
    permission: str = Field(index=True, max_length=100)  # e.g., "users.read", "VIEW_USERS"
    is_granted: bool = Field(default=True)
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime)
    deleted_at: Optional[datetime] = Field(default=None, index=True, sa_type=DateTime)
