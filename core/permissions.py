"""
Centralized permission catalog.
All permission identifiers should be validated against a PermissionCatalog.

Two historical formats are recognized:
    legacy dotted strings      "users.read", "companies.write"
    enumerated identifiers     "VIEW_USERS", "EDIT_COMPANIES"
"""
from dataclasses import dataclass
from typing import Any, Dict, FrozenSet, Iterable, Iterator, List, Mapping, Optional, Tuple

from core.roles import RoleType


# Legacy (frontend) permissions
LEGACY_PERMISSIONS: Dict[str, str] = {
    "users.read": "View users",
    "users.write": "Create and update users",
    "users.delete": "Delete users",
    "users.manage_roles": "Manage user roles",
    "companies.read": "View companies",
    "companies.write": "Create and update companies",
    "companies.delete": "Delete companies",
    "departments.read": "View departments",
    "departments.write": "Create and update departments",
    "departments.delete": "Delete departments",
    "roles.read": "View roles",
    "roles.write": "Create and update roles",
    "roles.delete": "Delete roles",
    "analytics.read": "View analytics",
    "analytics.write": "Manage analytics",
    "settings.read": "View settings",
    "settings.write": "Update settings",
}

_CRUD = ("VIEW", "CREATE", "EDIT", "DELETE")
_MANAGED = _CRUD + ("MANAGE",)

# Enumerated permissions, by entity
ENTITY_PERMISSIONS: Dict[str, Tuple[str, ...]] = {
    "COMPANIES": _CRUD,
    "EMPLOYEES": _CRUD,
    "TRAINERS": _CRUD,
    "USERS": _CRUD,
    "COURSES": _CRUD,
    "DOCUMENTS": _CRUD + ("DOWNLOAD",),
    "PERSONS": _CRUD,
    "SCHEDULES": _CRUD,
    "QUOTES": _CRUD,
    "INVOICES": _CRUD,
    "ROLES": _CRUD,
    "TENANTS": _CRUD,
    "ADMINISTRATION": _CRUD,
    "GDPR": _CRUD + ("MANAGE",),
    "REPORTS": _CRUD + ("EXPORT",),
    "HIERARCHY": _MANAGED,
    "CMS": _CRUD,
    "FORM_TEMPLATES": _MANAGED,
    "SUBMISSIONS": _MANAGED + ("EXPORT",),
    "FORM_SUBMISSIONS": _MANAGED + ("EXPORT",),
    "PUBLIC_CMS": _MANAGED,
    "TEMPLATES": _MANAGED,
    "NOTIFICATIONS": _MANAGED + ("SEND",),
    "AUDIT_LOGS": _MANAGED + ("EXPORT",),
    "API_KEYS": _MANAGED + ("REGENERATE",),
}

# Enumerated permissions that don't follow the ACTION_ENTITY pattern
STANDALONE_PERMISSIONS: Tuple[str, ...] = (
    "MANAGE_ENROLLMENTS",
    "ADMIN_PANEL",
    "SYSTEM_SETTINGS",
    "USER_MANAGEMENT",
    "ROLE_MANAGEMENT",
    "ROLE_CREATE",
    "ROLE_EDIT",
    "ROLE_DELETE",
    "MANAGE_USERS",
    "ASSIGN_ROLES",
    "REVOKE_ROLES",
    "TENANT_MANAGEMENT",
    "VIEW_GDPR_DATA",
    "EXPORT_GDPR_DATA",
    "DELETE_GDPR_DATA",
    "MANAGE_CONSENTS",
    "HIERARCHY_MANAGEMENT",
    "MANAGE_PUBLIC_CONTENT",
    "READ_PUBLIC_CONTENT",
    "VIEW_ANALYTICS",
)


def _enumerated_permissions() -> List[str]:
    ids = [f"{action}_{entity}" for entity, actions in ENTITY_PERMISSIONS.items() for action in actions]
    ids.extend(STANDALONE_PERMISSIONS)
    return ids


class PermissionCatalog:
    """
    Immutable registry of recognized permission identifiers.
    Built once at start-up and handed to whatever needs to validate.
    """

    __slots__ = ("_legacy", "_enumerated", "_descriptions")

    def __init__(self, legacy: Mapping[str, str], enumerated: Iterable[str]):
        self._legacy: FrozenSet[str] = frozenset(legacy)
        self._enumerated: FrozenSet[str] = frozenset(enumerated)
        descriptions = {pid: pid.replace("_", " ").capitalize() for pid in self._enumerated}
        descriptions.update(legacy)
        self._descriptions: Dict[str, str] = descriptions

    def __setattr__(self, name, value):
        if hasattr(self, "_descriptions"):
            raise AttributeError("PermissionCatalog is immutable")
        object.__setattr__(self, name, value)

    def contains(self, permission_id: Any) -> bool:
        return isinstance(permission_id, str) and (
            permission_id in self._legacy or permission_id in self._enumerated
        )

    __contains__ = contains

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self._legacy | self._enumerated))

    def __len__(self) -> int:
        return len(self._legacy | self._enumerated)

    @property
    def legacy_ids(self) -> FrozenSet[str]:
        return self._legacy

    @property
    def enumerated_ids(self) -> FrozenSet[str]:
        return self._enumerated

    def describe(self, permission_id: str) -> Optional[str]:
        return self._descriptions.get(permission_id)


DEFAULT_CATALOG = PermissionCatalog(LEGACY_PERMISSIONS, _enumerated_permissions())


# ---------------------------------------------------------------------
# Permission references (bare string or {"permissionId": ...} record)
# ---------------------------------------------------------------------
LEGACY_SHAPE = "legacy"
STRUCTURED_SHAPE = "structured"


@dataclass(frozen=True)
class PermissionRef:
    """A permission item normalized to its identifier, remembering its shape."""
    kind: str  # LEGACY_SHAPE | STRUCTURED_SHAPE
    permission_id: str
    item: Any


def normalize_permission(item: Any) -> Optional[PermissionRef]:
    """Return the PermissionRef for `item`, or None when it's malformed."""
    if isinstance(item, str):
        return PermissionRef(LEGACY_SHAPE, item, item)
    if isinstance(item, Mapping):
        permission_id = item.get("permissionId", item.get("permission_id"))
        if isinstance(permission_id, str) and permission_id:
            return PermissionRef(STRUCTURED_SHAPE, permission_id, item)
    return None


def is_valid_permission(permission_id: Any, catalog: PermissionCatalog = DEFAULT_CATALOG) -> bool:
    """True iff `permission_id` is a member of the catalog."""
    return catalog.contains(permission_id)


def normalize_permissions(items: Any, catalog: PermissionCatalog = DEFAULT_CATALOG) -> List[PermissionRef]:
    """Normalize and catalog-check every item, dropping the ones that fail."""
    if isinstance(items, (str, bytes, Mapping)):
        return []
    try:
        iterator = iter(items)
    except TypeError:
        return []

    refs = []
    for item in iterator:
        ref = normalize_permission(item)
        if ref is not None and catalog.contains(ref.permission_id):
            refs.append(ref)
    return refs


def validate_and_filter_permissions(items: Any, catalog: PermissionCatalog = DEFAULT_CATALOG) -> list:
    """
    Keep the items of `items` whose identifier is in the catalog, each in
    its original shape. Malformed or unknown items are dropped silently;
    a non-iterable input is treated as empty.
    """
    return [ref.item for ref in normalize_permissions(items, catalog)]


def permission_ids(items: Any, catalog: PermissionCatalog = DEFAULT_CATALOG) -> List[str]:
    """Catalog-valid identifiers of `items`, de-duplicated, in input order."""
    return merge_permissions([ref.permission_id for ref in normalize_permissions(items, catalog)], [])


def merge_permissions(first: Optional[Iterable[str]], second: Optional[Iterable[str]]) -> List[str]:
    """Order-preserving union of two permission lists."""
    return list(dict.fromkeys([*(first or []), *(second or [])]))


# ---------------------------------------------------------------------
# Default permissions per role type
# ---------------------------------------------------------------------
_CONTENT_ADMIN = (
    "VIEW_FORM_TEMPLATES", "CREATE_FORM_TEMPLATES", "EDIT_FORM_TEMPLATES", "DELETE_FORM_TEMPLATES",
    "VIEW_FORM_SUBMISSIONS", "CREATE_FORM_SUBMISSIONS", "EDIT_FORM_SUBMISSIONS",
    "MANAGE_FORM_SUBMISSIONS", "EXPORT_FORM_SUBMISSIONS",
    "VIEW_PUBLIC_CMS", "CREATE_PUBLIC_CMS", "EDIT_PUBLIC_CMS", "MANAGE_PUBLIC_CMS",
    "VIEW_TEMPLATES", "CREATE_TEMPLATES", "EDIT_TEMPLATES",
    "VIEW_CMS", "EDIT_CMS", "MANAGE_PUBLIC_CONTENT",
    "VIEW_SUBMISSIONS", "CREATE_SUBMISSIONS", "EDIT_SUBMISSIONS", "MANAGE_SUBMISSIONS", "EXPORT_SUBMISSIONS",
)

_ORGANIZATION_ADMIN = (
    "CREATE_USERS", "VIEW_USERS", "EDIT_USERS", "DELETE_USERS", "ROLE_MANAGEMENT",
    "VIEW_COMPANIES", "EDIT_COMPANIES",
    "CREATE_COURSES", "VIEW_COURSES", "EDIT_COURSES", "DELETE_COURSES",
    "VIEW_EMPLOYEES", "CREATE_EMPLOYEES", "EDIT_EMPLOYEES",
    "VIEW_TRAINERS", "CREATE_TRAINERS", "EDIT_TRAINERS",
    "VIEW_SCHEDULES", "CREATE_SCHEDULES", "EDIT_SCHEDULES",
    "VIEW_REPORTS", "EXPORT_REPORTS", "VIEW_ANALYTICS",
) + _CONTENT_ADMIN

_ALL_ENUMERATED = tuple(_enumerated_permissions())

DEFAULT_ROLE_PERMISSIONS: Dict[str, Tuple[str, ...]] = {
    RoleType.SUPER_ADMIN.value: _ALL_ENUMERATED,
    RoleType.ADMIN.value: tuple(
        pid for pid in _ALL_ENUMERATED
        if not pid.endswith("_TENANTS") and pid not in ("TENANT_MANAGEMENT", "SYSTEM_SETTINGS")
    ),
    RoleType.COMPANY_ADMIN.value: _ORGANIZATION_ADMIN,
    RoleType.TENANT_ADMIN.value: _ORGANIZATION_ADMIN,
    RoleType.MANAGER.value: (
        "VIEW_USERS", "EDIT_USERS", "VIEW_COMPANIES", "VIEW_COURSES",
        "VIEW_EMPLOYEES", "EDIT_EMPLOYEES", "VIEW_TRAINERS",
        "VIEW_SCHEDULES", "CREATE_SCHEDULES", "EDIT_SCHEDULES",
        "VIEW_REPORTS", "VIEW_ANALYTICS",
    ),
    RoleType.HR_MANAGER.value: (
        "CREATE_USERS", "VIEW_USERS", "EDIT_USERS", "ROLE_MANAGEMENT",
        "VIEW_COMPANIES", "VIEW_COURSES",
        "VIEW_EMPLOYEES", "CREATE_EMPLOYEES", "EDIT_EMPLOYEES", "VIEW_TRAINERS",
        "VIEW_SCHEDULES", "CREATE_SCHEDULES", "EDIT_SCHEDULES",
        "VIEW_REPORTS", "VIEW_ANALYTICS",
    ),
    RoleType.TRAINER.value: (
        "VIEW_USERS", "VIEW_COURSES", "VIEW_EMPLOYEES", "VIEW_SCHEDULES", "VIEW_REPORTS",
    ),
    RoleType.SENIOR_TRAINER.value: (
        "VIEW_USERS", "VIEW_COURSES", "EDIT_COURSES", "VIEW_EMPLOYEES", "VIEW_TRAINERS",
        "CREATE_SCHEDULES", "VIEW_SCHEDULES", "EDIT_SCHEDULES", "VIEW_REPORTS",
    ),
    RoleType.EMPLOYEE.value: ("VIEW_COURSES", "VIEW_SCHEDULES"),
    RoleType.VIEWER.value: ("VIEW_COURSES", "VIEW_SCHEDULES", "VIEW_REPORTS"),
}


def get_default_permissions(role_type: str) -> List[str]:
    return list(DEFAULT_ROLE_PERMISSIONS.get(role_type, ()))


def role_has_permission(role_type: str, permission_id: str) -> bool:
    return permission_id in DEFAULT_ROLE_PERMISSIONS.get(role_type, ())


def get_roles_with_permission(permission_id: str) -> List[str]:
    return [role.value for role in RoleType if role_has_permission(role.value, permission_id)]
