"""
Role Assignment Store
Lifecycle of person <-> role associations: add, deactivate, query,
primary-role designation, transfer between persons and grant records.
"""
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, select

from core.exceptions import AuthorizationCoreError, ConflictError, ValidationError
from core.filters import filter_advanced_permission_data
from core.permissions import DEFAULT_CATALOG, PermissionCatalog, get_default_permissions, permission_ids
from core.roles import get_all_roles, map_role_type
from core.validators import validate_advanced_permission
from database.connection import transaction
from database.models import AdvancedPermission, Person, PersonRole, RolePermission, build_scope_key
from database.soft_delete import active_roles, matches_optional, not_deleted, not_expired
from utils.clock import Clock, utcnow
from utils.logger import get_logger

logger = get_logger(__name__)

DUPLICATE_ROLE_MESSAGE = "Role already exists for this person"

# Columns update_role may touch
UPDATABLE_FIELDS = (
    "role_type", "company_id", "tenant_id", "is_active",
    "is_primary", "valid_until", "assigned_by",
)

# Filters accepted by the inverse lookup and the stats helper
SCOPE_FILTERS = ("company_id", "tenant_id")

RoleTypes = Union[str, Iterable[str]]

# How the active-scope index names itself in constraint violations
DUPLICATE_SIGNATURES = ("uq_person_roles_active_scope", "person_roles.scope_key")


def _mapped_role_types(role_type: RoleTypes) -> List[str]:
    role_types = [role_type] if isinstance(role_type, str) else list(role_type)
    return [mapped for mapped in (map_role_type(rt) for rt in role_types) if mapped]


def _scope_criteria(filters: Optional[Mapping[str, Any]]) -> list:
    criteria = []
    for key in SCOPE_FILTERS:
        if filters and filters.get(key) is not None:
            criteria.append(getattr(PersonRole, key) == filters[key])
    return criteria


def _is_duplicate_assignment(error: IntegrityError) -> bool:
    """True when the violation comes from the active-scope unique index."""
    message = str(error.orig)
    return any(signature in message for signature in DUPLICATE_SIGNATURES)


class RoleAssignmentStore:
    """
    Operations on PersonRole rows bound to one session.

    The two multi-row mutations run inside a single transaction:
    set_primary_role (clear + set) and each role of transfer_roles
    (deactivate + create). Duplicate active assignments are rejected by
    the uq_person_roles_active_scope index as well as by the pre-check.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock = utcnow,
        catalog: PermissionCatalog = DEFAULT_CATALOG,
    ):
        self.session = session
        self.clock = clock
        self.catalog = catalog

    # -----------------------------------------------------------------
    # Lookups
    # -----------------------------------------------------------------
    def get_person(self, person_id: str) -> Optional[Person]:
        """Person by id, None when absent or soft-deleted."""
        return self.session.exec(
            select(Person).where(Person.id == person_id, not_deleted(Person))
        ).first()

    def get_role(self, role_id: str) -> Optional[PersonRole]:
        return self.session.exec(
            select(PersonRole).where(PersonRole.id == role_id, not_deleted(PersonRole))
        ).first()

    def get_person_roles(
        self,
        person_id: str,
        active_only: bool = True,
        include_expired: bool = True,
        offset: int = 0,
        limit: Optional[int] = None,
    ) -> List[PersonRole]:
        """Assignments of a person, primary first, then oldest first."""
        query = select(PersonRole).where(PersonRole.person_id == person_id, not_deleted(PersonRole))
        if active_only:
            query = query.where(PersonRole.is_active.is_(True))
        if not include_expired:
            query = query.where(not_expired(self.clock()))
        query = query.order_by(PersonRole.is_primary.desc(), PersonRole.created_at.asc())
        if offset:
            query = query.offset(offset)
        if limit is not None:
            query = query.limit(limit)

        try:
            return list(self.session.exec(query).all())
        except SQLAlchemyError as e:
            logger.error(f"[ROLE_STORE] Error getting roles of person {person_id}: {e}", exc_info=True)
            raise

    def get_effective_roles(self, person_id: str) -> List[PersonRole]:
        """Active, not expired assignments: the ones that grant anything."""
        return self.get_person_roles(person_id, active_only=True, include_expired=False)

    def get_primary_role(self, person_id: str) -> Optional[PersonRole]:
        return self.session.exec(
            select(PersonRole).where(
                PersonRole.person_id == person_id,
                PersonRole.is_primary.is_(True),
                *active_roles(),
            )
        ).first()

    def has_role(
        self,
        person_id: str,
        role_type: RoleTypes,
        company_id: Optional[str] = None,
        tenant_id: Optional[str] = None,
    ) -> bool:
        """
        True iff an effective assignment exists with one of the role types.
        Scope filters apply only when given, and all of them must match.
        """
        role_types = _mapped_role_types(role_type)
        if not role_types:
            return False

        query = select(PersonRole.id).where(
            PersonRole.person_id == person_id,
            PersonRole.role_type.in_(role_types),
            not_expired(self.clock()),
            *active_roles(),
        )
        if company_id is not None:
            query = query.where(PersonRole.company_id == company_id)
        if tenant_id is not None:
            query = query.where(PersonRole.tenant_id == tenant_id)

        try:
            return self.session.exec(query).first() is not None
        except SQLAlchemyError as e:
            logger.error(f"[ROLE_STORE] Error checking role {role_type} of person {person_id}: {e}", exc_info=True)
            raise

    def _persons_with_role_query(self, role_types: List[str], filters: Optional[Mapping[str, Any]]):
        return (
            select(PersonRole, Person)
            .join(Person, Person.id == PersonRole.person_id)
            .where(
                PersonRole.role_type.in_(role_types),
                not_deleted(Person),
                *active_roles(*_scope_criteria(filters)),
            )
        )

    def get_persons_with_role(
        self,
        role_type: RoleTypes,
        filters: Optional[Mapping[str, Any]] = None,
        offset: int = 0,
        limit: Optional[int] = None,
    ) -> List[Tuple[PersonRole, Person]]:
        """(assignment, person) rows for the role types, by family name."""
        role_types = _mapped_role_types(role_type)
        if not role_types:
            return []

        query = self._persons_with_role_query(role_types, filters).order_by(
            Person.last_name.asc(), Person.first_name.asc(), PersonRole.id.asc()
        )
        if offset:
            query = query.offset(offset)
        if limit is not None:
            query = query.limit(limit)
        try:
            return [(role, person) for role, person in self.session.exec(query).all()]
        except SQLAlchemyError as e:
            logger.error(f"[ROLE_STORE] Error getting persons with role {role_type}: {e}", exc_info=True)
            raise

    def count_persons_with_role(self, role_type: RoleTypes, filters: Optional[Mapping[str, Any]] = None) -> int:
        role_types = _mapped_role_types(role_type)
        if not role_types:
            return 0
        rows = self._persons_with_role_query(role_types, filters).subquery()
        try:
            return self.session.exec(select(func.count()).select_from(rows)).one()
        except SQLAlchemyError as e:
            logger.error(f"[ROLE_STORE] Error counting persons with role {role_type}: {e}", exc_info=True)
            raise

    def get_role_stats(self, filters: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
        """Active assignment counts per role type, zero-filled for canonical roles."""
        query = (
            select(PersonRole.role_type, func.count(PersonRole.id))
            .join(Person, Person.id == PersonRole.person_id)
            .where(not_deleted(Person), *active_roles(*_scope_criteria(filters)))
            .group_by(PersonRole.role_type)
        )
        try:
            rows = self.session.exec(query).all()
        except SQLAlchemyError as e:
            logger.error(f"[ROLE_STORE] Error getting role stats: {e}", exc_info=True)
            raise

        available_roles = get_all_roles()
        by_role = {role: 0 for role in available_roles}
        for role_type, count in rows:
            by_role[role_type] = count

        return {
            "by_role": by_role,
            "total_active_roles": sum(count for _, count in rows),
            "available_roles": available_roles,
            "generated_at": self.clock(),
        }

    # -----------------------------------------------------------------
    # Mutations
    # -----------------------------------------------------------------
    def _find_active(
        self,
        person_id: str,
        role_type: str,
        company_id: Optional[str],
        tenant_id: Optional[str],
    ) -> Optional[PersonRole]:
        return self.session.exec(
            select(PersonRole).where(
                PersonRole.person_id == person_id,
                PersonRole.role_type == role_type,
                matches_optional(PersonRole.company_id, company_id),
                matches_optional(PersonRole.tenant_id, tenant_id),
                *active_roles(),
            )
        ).first()

    def _create_assignment(
        self,
        person_id: str,
        role_type: str,
        company_id: Optional[str],
        tenant_id: Optional[str],
        valid_until=None,
        assigned_by: Optional[str] = None,
    ) -> PersonRole:
        """Insert without committing. Caller owns the transaction."""
        if self._find_active(person_id, role_type, company_id, tenant_id) is not None:
            raise ConflictError(DUPLICATE_ROLE_MESSAGE)

        now = self.clock()
        role = PersonRole(
            person_id=person_id,
            role_type=role_type,
            company_id=company_id,
            tenant_id=tenant_id,
            scope_key=build_scope_key(company_id, tenant_id),
            is_active=True,
            is_primary=False,
            valid_until=valid_until,
            assigned_by=assigned_by,
            created_at=now,
            updated_at=now,
        )
        self.session.add(role)
        # The unique index is the authoritative duplicate check
        self.session.flush()
        return role

    def _deactivate(
        self,
        person_id: str,
        role_type: str,
        company_id: Optional[str],
        tenant_id: Optional[str],
    ) -> int:
        """Deactivate matching active assignments without committing."""
        result = self.session.execute(
            update(PersonRole)
            .where(
                PersonRole.person_id == person_id,
                PersonRole.role_type == role_type,
                matches_optional(PersonRole.company_id, company_id),
                matches_optional(PersonRole.tenant_id, tenant_id),
                *active_roles(),
            )
            .values(is_active=False, is_primary=False, updated_at=self.clock())
        )
        return result.rowcount or 0

    def add_role(
        self,
        person_id: str,
        role_type: str,
        company_id: Optional[str] = None,
        tenant_id: Optional[str] = None,
        valid_until=None,
        assigned_by: Optional[str] = None,
    ) -> PersonRole:
        """Create an active, non-primary assignment. ConflictError on duplicates."""
        mapped_role_type = map_role_type(role_type)
        if not mapped_role_type:
            raise ValidationError("Role type is required and must be a non-empty string")

        if self.get_person(person_id) is None:
            raise ValidationError(f"Person {person_id} not found")

        try:
            with transaction(self.session):
                role = self._create_assignment(
                    person_id, mapped_role_type, company_id, tenant_id,
                    valid_until=valid_until, assigned_by=assigned_by,
                )
        except ConflictError:
            logger.warning(f"[ROLE_STORE] Duplicate role {mapped_role_type} for person {person_id}")
            raise
        except IntegrityError as e:
            if not _is_duplicate_assignment(e):
                logger.error(f"[ROLE_STORE] Error adding role {mapped_role_type} to person {person_id}: {e}", exc_info=True)
                raise
            # Lost the race against a concurrent identical insert
            logger.warning(f"[ROLE_STORE] Duplicate role {mapped_role_type} for person {person_id} rejected by storage")
            raise ConflictError(DUPLICATE_ROLE_MESSAGE) from e
        except SQLAlchemyError as e:
            logger.error(f"[ROLE_STORE] Error adding role {mapped_role_type} to person {person_id}: {e}", exc_info=True)
            raise

        self.session.refresh(role)
        logger.info(f"[ROLE_STORE] Added role {mapped_role_type} to person {person_id}")
        return role

    def remove_role(
        self,
        person_id: str,
        role_type: str,
        company_id: Optional[str] = None,
        tenant_id: Optional[str] = None,
    ) -> int:
        """
        Deactivate the matching assignments; returns how many changed.
        Removing a role that is not active is a no-op. A removed primary
        role leaves the person without a primary one.
        """
        mapped_role_type = map_role_type(role_type)
        try:
            with transaction(self.session):
                count = self._deactivate(person_id, mapped_role_type, company_id, tenant_id)
        except SQLAlchemyError as e:
            logger.error(f"[ROLE_STORE] Error removing role {mapped_role_type} from person {person_id}: {e}", exc_info=True)
            raise
        return count

    def set_primary_role(self, person_id: str, role_id: str) -> Optional[PersonRole]:
        """
        Make `role_id` the only primary assignment of the person.
        Returns None, changing nothing, when it isn't one of the person's
        active assignments.
        """
        try:
            with transaction(self.session):
                target = self.session.exec(
                    select(PersonRole).where(
                        PersonRole.id == role_id,
                        PersonRole.person_id == person_id,
                        *active_roles(),
                    )
                ).first()
                if target is None:
                    return None

                now = self.clock()
                self.session.execute(
                    update(PersonRole)
                    .where(
                        PersonRole.person_id == person_id,
                        PersonRole.is_primary.is_(True),
                        *active_roles(),
                    )
                    .values(is_primary=False, updated_at=now)
                )
                target.is_primary = True
                target.updated_at = now
                self.session.add(target)
                self.session.flush()
        except SQLAlchemyError as e:
            logger.error(f"[ROLE_STORE] Error setting primary role {role_id} for person {person_id}: {e}", exc_info=True)
            raise

        self.session.refresh(target)
        return target

    def transfer_roles(self, from_person_id: str, to_person_id: str) -> Dict[str, Any]:
        """
        Move every active assignment of one person to another.
        Each role moves atomically; failures are collected, not raised.
        """
        snapshot = [
            (role.role_type, role.company_id, role.tenant_id, role.valid_until)
            for role in self.get_person_roles(from_person_id, active_only=True)
        ]

        results: Dict[str, Any] = {"transferred": 0, "errors": []}
        for role_type, company_id, tenant_id, valid_until in snapshot:
            try:
                with transaction(self.session):
                    self._deactivate(from_person_id, role_type, company_id, tenant_id)
                    self._create_assignment(to_person_id, role_type, company_id, tenant_id, valid_until=valid_until)
                results["transferred"] += 1
            except IntegrityError as e:
                logger.warning(f"[ROLE_STORE] Transfer of {role_type} to {to_person_id} rejected by storage")
                error = DUPLICATE_ROLE_MESSAGE if _is_duplicate_assignment(e) else str(e.orig)
                results["errors"].append({"role_type": role_type, "error": error})
            except (AuthorizationCoreError, SQLAlchemyError) as e:
                logger.warning(f"[ROLE_STORE] Transfer of {role_type} from {from_person_id} failed: {e}")
                results["errors"].append({"role_type": role_type, "error": str(e)})

        logger.info(
            f"[ROLE_STORE] Transferred {results['transferred']}/{len(snapshot)} roles "
            f"from {from_person_id} to {to_person_id}"
        )
        return results

    def update_role(self, role_id: str, data: Mapping[str, Any]) -> Optional[PersonRole]:
        """Generic field update stamped with updated_at. None when the role is unknown."""
        unknown = sorted(set(data) - set(UPDATABLE_FIELDS))
        if unknown:
            raise ValidationError(f"Fields cannot be updated: {', '.join(unknown)}")

        try:
            with transaction(self.session):
                role = self.get_role(role_id)
                if role is None:
                    return None
                for key, value in data.items():
                    if key == "role_type":
                        value = map_role_type(value)
                        if not value:
                            raise ValidationError("Role type must be a non-empty string")
                    setattr(role, key, value)
                role.scope_key = build_scope_key(role.company_id, role.tenant_id)
                role.updated_at = self.clock()
                self.session.add(role)
                self.session.flush()
        except IntegrityError as e:
            if not _is_duplicate_assignment(e):
                logger.error(f"[ROLE_STORE] Error updating role {role_id}: {e}", exc_info=True)
                raise
            logger.warning(f"[ROLE_STORE] Update of role {role_id} conflicts with an active assignment")
            raise ConflictError(DUPLICATE_ROLE_MESSAGE) from e
        except SQLAlchemyError as e:
            logger.error(f"[ROLE_STORE] Error updating role {role_id}: {e}", exc_info=True)
            raise

        self.session.refresh(role)
        return role

    def soft_delete_role(self, role_id: str) -> bool:
        try:
            with transaction(self.session):
                role = self.get_role(role_id)
                if role is None:
                    return False
                now = self.clock()
                role.deleted_at = now
                role.is_primary = False
                role.updated_at = now
                self.session.add(role)
        except SQLAlchemyError as e:
            logger.error(f"[ROLE_STORE] Error deleting role {role_id}: {e}", exc_info=True)
            raise
        return True

    def cleanup_expired_roles(self) -> int:
        """Deactivate active assignments whose validity has ended."""
        now = self.clock()
        try:
            with transaction(self.session):
                result = self.session.execute(
                    update(PersonRole)
                    .where(PersonRole.valid_until < now, *active_roles())
                    .values(is_active=False, is_primary=False, updated_at=now)
                )
        except SQLAlchemyError as e:
            logger.error(f"[ROLE_STORE] Error cleaning up expired roles: {e}", exc_info=True)
            raise

        count = result.rowcount or 0
        logger.info(f"[ROLE_STORE] Deactivated {count} expired roles")
        return count

    # -----------------------------------------------------------------
    # Grants
    # -----------------------------------------------------------------
    def get_role_permissions(self, role_id: str) -> List[RolePermission]:
        return list(self.session.exec(
            select(RolePermission).where(
                RolePermission.person_role_id == role_id,
                not_deleted(RolePermission),
            ).order_by(RolePermission.permission)
        ).all())

    def update_role_permissions(self, role_id: str, items: Any) -> Optional[List[str]]:
        """
        Replace the grants of an assignment with the catalog-valid subset
        of `items` (bare ids or {"permissionId": ...} records).
        """
        granted = permission_ids(items, self.catalog)
        try:
            with transaction(self.session):
                if self.get_role(role_id) is None:
                    return None
                now = self.clock()
                self.session.execute(
                    update(RolePermission)
                    .where(RolePermission.person_role_id == role_id, not_deleted(RolePermission))
                    .values(deleted_at=now)
                )
                for permission in granted:
                    self.session.add(RolePermission(
                        person_role_id=role_id,
                        permission=permission,
                        is_granted=True,
                        created_at=now,
                    ))
        except SQLAlchemyError as e:
            logger.error(f"[ROLE_STORE] Error updating permissions of role {role_id}: {e}", exc_info=True)
            raise
        return granted

    def grant_default_permissions(self, role_id: str) -> Optional[List[str]]:
        role = self.get_role(role_id)
        if role is None:
            return None
        return self.update_role_permissions(role_id, get_default_permissions(role.role_type))

    def add_advanced_permission(self, role_id: str, data: Mapping[str, Any]) -> Optional[AdvancedPermission]:
        validation = validate_advanced_permission(data)
        if not validation.is_valid:
            raise ValidationError("; ".join(validation.errors))

        filtered = filter_advanced_permission_data(data)
        try:
            with transaction(self.session):
                if self.get_role(role_id) is None:
                    return None
                permission = AdvancedPermission(
                    person_role_id=role_id,
                    resource=filtered["resource"],
                    action=filtered["action"],
                    scope=filtered["scope"],
                    allowed_fields=filtered.get("allowed_fields"),
                    conditions=filtered.get("conditions"),
                    created_at=self.clock(),
                )
                self.session.add(permission)
        except SQLAlchemyError as e:
            logger.error(f"[ROLE_STORE] Error adding advanced permission to role {role_id}: {e}", exc_info=True)
            raise

        self.session.refresh(permission)
        return permission

    def get_advanced_permissions(
        self,
        role_id: str,
        resource: Optional[str] = None,
        action: Optional[str] = None,
    ) -> List[AdvancedPermission]:
        query = select(AdvancedPermission).where(
            AdvancedPermission.person_role_id == role_id,
            not_deleted(AdvancedPermission),
        )
        if resource is not None:
            query = query.where(AdvancedPermission.resource == resource)
        if action is not None:
            query = query.where(AdvancedPermission.action == action)
        return list(self.session.exec(query.order_by(AdvancedPermission.created_at)).all())
