from typing import Optional

from fastapi import Depends, Header, HTTPException, status
from sqlmodel import Session

from database.connection import get_db_session, get_session
from database.models import Person
from services.roles import AuthorizationService, RoleAssignmentStore, RoleStatisticsService


def get_role_store(session: Session = Depends(get_session)) -> RoleAssignmentStore:
    return RoleAssignmentStore(session)


def get_authorization_service(session: Session = Depends(get_session)) -> AuthorizationService:
    return AuthorizationService(session)


def get_statistics_service() -> RoleStatisticsService:
    """Statistics open their own sessions, one per worker thread."""
    return RoleStatisticsService(session_factory=get_db_session)


def get_current_person(
    x_person_id: Optional[str] = Header(default=None),
    store: RoleAssignmentStore = Depends(get_role_store),
) -> Person:
    """
    Resolve the caller from the X-Person-Id header.
    Token verification happens upstream; this only maps the id to a Person.
    """
    if not x_person_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )

    person = store.get_person(x_person_id)
    if not person:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Person not found",
        )

    if not person.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Person account is deactivated",
        )

    return person


class PermissionChecker:
    """Dependency class for checking the caller holds any of the given permissions."""

    def __init__(self, *required_permissions: str):
        self.required_permissions = required_permissions

    def __call__(
        self,
        person: Person = Depends(get_current_person),
        authorization: AuthorizationService = Depends(get_authorization_service),
    ) -> Person:
        permissions = authorization.get_person_permissions(person.id)

        if not any(permission in permissions for permission in self.required_permissions):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Permission denied: {' or '.join(self.required_permissions)} required",
            )

        return person


def require_permission(*permissions: str):
    """Factory function to create permission dependency."""
    return PermissionChecker(*permissions)
