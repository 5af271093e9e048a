"""
Authorization Service
Answers "may this person do <action> on <resource>?" and "which fields of
the record may they see?" from the advanced permissions attached to the
person's effective role assignments.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from config.settings import FIELD_FILTER_DEFAULT
from core.filters import project
from core.permissions import DEFAULT_CATALOG, PermissionCatalog, get_default_permissions, merge_permissions
from core.scopes import AccessContext, check_conditions, check_scope, normalize_scope
from database.models import AdvancedPermission, PersonRole
from services.roles.assignment_service import RoleAssignmentStore
from utils.clock import Clock, utcnow
from utils.logger import get_logger

logger = get_logger(__name__)

ALL_FIELDS = "*"
FIELD_DEFAULTS = ("deny", "allow")

GRANTED = "Granted"
NO_PERMISSION = "No permission found"
OUT_OF_SCOPE = "Out of scope"
PERSON_NOT_FOUND = "Person not found"


@dataclass
class AccessDecision:
    allowed: bool
    reason: str
    scopes: List[str] = field(default_factory=list)
    # None when no permission passed; ["*"] when any passing one allows every field
    allowed_fields: Optional[List[str]] = None


class AuthorizationService:
    """
    Composes the permission catalog, the scope evaluator, the field
    projector and the role assignment store.

    `field_default` decides what filter_allowed_fields returns when the
    person holds no permission at all for the resource and action: "deny"
    gives an empty record, "allow" the whole one. Permissions that exist
    but fail their scope or conditions always give an empty record.
    """

    def __init__(
        self,
        session: Session,
        catalog: PermissionCatalog = DEFAULT_CATALOG,
        field_default: str = FIELD_FILTER_DEFAULT,
        clock: Clock = utcnow,
        store: Optional[RoleAssignmentStore] = None,
    ):
        if field_default not in FIELD_DEFAULTS:
            raise ValueError(f"field_default must be one of {FIELD_DEFAULTS}, got {field_default!r}")
        self.session = session
        self.catalog = catalog
        self.field_default = field_default
        self.clock = clock
        self.store = store or RoleAssignmentStore(session, clock=clock, catalog=catalog)

    # -----------------------------------------------------------------
    # Resolution
    # -----------------------------------------------------------------
    def _caller_context(self, person_id: str) -> Optional[AccessContext]:
        person = self.store.get_person(person_id)
        return AccessContext.for_person(person) if person else None

    def _candidates(self, roles: List[PersonRole], resource: str, action: str) -> List[AdvancedPermission]:
        candidates = []
        for role in roles:
            candidates.extend(self.store.get_advanced_permissions(role.id, resource=resource, action=action))
        return candidates

    def evaluate(
        self,
        person_id: str,
        resource: str,
        action: str,
        resource_context: Optional[AccessContext] = None,
    ) -> AccessDecision:
        """
        Decision for one (person, resource, action).
        Without a resource context the check runs against the caller's own
        tenant, company, department and identity.
        """
        try:
            caller = self._caller_context(person_id)
            if caller is None:
                return AccessDecision(allowed=False, reason=PERSON_NOT_FOUND)

            roles = self.store.get_effective_roles(person_id)
            candidates = self._candidates(roles, resource, action)
        except SQLAlchemyError as e:
            logger.error(
                f"[AUTHORIZATION] Error resolving permissions of {person_id} for {resource}.{action}: {e}",
                exc_info=True,
            )
            raise

        if not candidates:
            return AccessDecision(allowed=False, reason=NO_PERMISSION)

        target = resource_context or caller
        scopes: List[str] = []
        fields: List[str] = []
        for permission in candidates:
            if not check_scope(permission.scope, caller, target):
                continue
            if not check_conditions(permission.conditions, caller, target):
                continue
            scopes.append(permission.scope)
            if permission.allowed_fields is None:
                fields = [ALL_FIELDS]
            elif ALL_FIELDS not in fields:
                fields = merge_permissions(
                    fields, [f for f in permission.allowed_fields if isinstance(f, str)]
                )
            if ALL_FIELDS in fields:
                fields = [ALL_FIELDS]

        if not scopes:
            return AccessDecision(allowed=False, reason=OUT_OF_SCOPE)
        return AccessDecision(
            allowed=True,
            reason=GRANTED,
            scopes=list(dict.fromkeys(scopes)),
            allowed_fields=fields,
        )

    # -----------------------------------------------------------------
    # Consumer operations
    # -----------------------------------------------------------------
    def check_permission(
        self,
        person_id: str,
        resource: str,
        action: str,
        resource_context: Optional[AccessContext] = None,
    ) -> bool:
        return self.evaluate(person_id, resource, action, resource_context).allowed

    def filter_allowed_fields(
        self,
        person_id: str,
        resource: str,
        action: str,
        data: Mapping[str, Any],
        resource_context: Optional[AccessContext] = None,
    ) -> Dict[str, Any]:
        """`data` projected onto the union of fields the passing permissions allow."""
        decision = self.evaluate(person_id, resource, action, resource_context)
        if not decision.allowed:
            if decision.reason == NO_PERMISSION and self.field_default == "allow":
                return dict(data)
            return {}
        if ALL_FIELDS in decision.allowed_fields:
            return dict(data)
        return project(data, decision.allowed_fields)

    def get_person_advanced_permissions(self, person_id: str) -> List[Dict[str, Any]]:
        """Advanced permissions across the person's effective roles, normalized."""
        permissions = []
        for role in self.store.get_effective_roles(person_id):
            try:
                role_permissions = self.store.get_advanced_permissions(role.id)
            except SQLAlchemyError as e:
                logger.warning(f"[AUTHORIZATION] Skipping advanced permissions of role {role.id}: {e}")
                self.session.rollback()
                continue
            for permission in role_permissions:
                permissions.append({
                    "id": permission.id,
                    "role_id": role.id,
                    "role_type": role.role_type,
                    "resource": permission.resource,
                    "action": permission.action,
                    "scope": normalize_scope(permission.scope).value,
                    "allowed_fields": permission.allowed_fields,
                    "conditions": permission.conditions,
                })
        return permissions

    def get_person_permissions(self, person_id: str) -> List[str]:
        """
        Catalog identifiers the person holds: role-type defaults plus
        granted records, minus explicit revocations.
        """
        granted: List[str] = []
        revoked = set()
        for role in self.store.get_effective_roles(person_id):
            granted = merge_permissions(granted, get_default_permissions(role.role_type))
            try:
                records = self.store.get_role_permissions(role.id)
            except SQLAlchemyError as e:
                logger.warning(f"[AUTHORIZATION] Skipping permission grants of role {role.id}: {e}")
                self.session.rollback()
                continue
            for record in records:
                if record.is_granted:
                    granted = merge_permissions(granted, [record.permission])
                else:
                    revoked.add(record.permission)
        return [pid for pid in granted if pid not in revoked and self.catalog.contains(pid)]

    def has_permission(self, person_id: str, permission_id: str) -> bool:
        if not self.catalog.contains(permission_id):
            return False
        return permission_id in self.get_person_permissions(person_id)
