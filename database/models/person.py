import uuid
from datetime import datetime
from sqlmodel import SQLModel, Field
from sqlalchemy import DateTime
from typing import Optional

from utils.clock import utcnow


class Person(SQLModel, table=True):
    """Identity the authorization core acts on behalf of. Read-only here."""
    __tablename__ = "persons"

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    tenant_id: Optional[str] = Field(default=None, index=True, max_length=36)
    company_id: Optional[str] = Field(default=None, index=True, max_length=36)
    department_id: Optional[str] = Field(default=None, index=True, max_length=36)
    first_name: Optional[str] = Field(default=None, max_length=100)
    last_name: Optional[str] = Field(default=None, index=True, max_length=100)
    email: Optional[str] = Field(default=None, index=True, max_length=255)
    password_hash: Optional[str] = Field(default=None, max_length=255)
    reset_token: Optional[str] = Field(default=None, max_length=255)
    is_active: bool = Field(default=True)
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=DateTime)
    deleted_at: Optional[datetime] = Field(default=None, index=True, sa_type=DateTime)
