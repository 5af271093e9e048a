"""
Shared read-path predicates.
Every query over a soft-deletable table goes through `not_deleted`.
"""
from datetime import datetime
from typing import Optional

from sqlalchemy import or_

from database.models import PersonRole


def not_deleted(model):
    """Rows whose deletion marker is unset."""
    return model.deleted_at.is_(None)


def active_roles(*extra):
    """Active, not soft-deleted role assignments plus any extra criteria."""
    return (PersonRole.is_active.is_(True), not_deleted(PersonRole), *extra)


def not_expired(now: datetime, model=PersonRole):
    return or_(model.valid_until.is_(None), model.valid_until > now)


def matches_optional(column, value: Optional[str]):
    """Exact match on a nullable column, NULL when value is None."""
    return column.is_(None) if value is None else column == value
