"""
Scope evaluation for advanced permissions.

Write path: an unknown or missing scope is stored as "tenant".
Evaluate path: an unknown scope never grants access.
"""
from dataclasses import dataclass, fields
from enum import Enum
from typing import Any, Mapping, Optional


class PermissionScope(str, Enum):
    GLOBAL = "global"
    TENANT = "tenant"
    COMPANY = "company"
    DEPARTMENT = "department"
    PERSONAL = "personal"


SCOPE_VALUES = frozenset(scope.value for scope in PermissionScope)
DEFAULT_SCOPE = PermissionScope.TENANT


@dataclass(frozen=True)
class AccessContext:
    """
    Who is asking, or whom a resource belongs to.
    For a resource context `person_id` is the owning person.
    """
    person_id: Optional[str] = None
    tenant_id: Optional[str] = None
    company_id: Optional[str] = None
    department_id: Optional[str] = None

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, Any]]) -> "AccessContext":
        if not data:
            return cls()
        names = {f.name for f in fields(cls)}
        return cls(**{key: value for key, value in data.items() if key in names})

    @classmethod
    def for_person(cls, person) -> "AccessContext":
        return cls(
            person_id=person.id,
            tenant_id=person.tenant_id,
            company_id=person.company_id,
            department_id=getattr(person, "department_id", None),
        )


def normalize_scope(value: Any) -> PermissionScope:
    """Scope to store for `value`; anything unrecognized becomes tenant."""
    if isinstance(value, PermissionScope):
        return value
    if isinstance(value, str) and value in SCOPE_VALUES:
        return PermissionScope(value)
    return DEFAULT_SCOPE


def _same(left: Optional[str], right: Optional[str]) -> bool:
    # Two missing identifiers are not a match
    return left is not None and right is not None and left == right


def check_scope(scope: Any, caller: AccessContext, resource: AccessContext) -> bool:
    """True iff `caller` satisfies `scope` for `resource`. Deny by default."""
    if isinstance(scope, PermissionScope):
        scope = scope.value

    if scope == PermissionScope.GLOBAL.value:
        return True
    if scope == PermissionScope.TENANT.value:
        return _same(caller.tenant_id, resource.tenant_id)
    if scope == PermissionScope.COMPANY.value:
        return _same(caller.company_id, resource.company_id)
    if scope == PermissionScope.DEPARTMENT.value:
        return _same(caller.department_id, resource.department_id)
    if scope == PermissionScope.PERSONAL.value:
        return _same(caller.person_id, resource.person_id)
    return False


def check_conditions(conditions: Any, caller: AccessContext, resource: AccessContext) -> bool:
    """
    Conditions map a context attribute to the value (or list of values)
    the resource must carry, e.g. {"company_id": ["c-1", "c-2"]}.
    The special value "$caller" means "same as the caller".
    """
    if not conditions:
        return True
    if not isinstance(conditions, Mapping):
        return False

    names = {f.name for f in fields(AccessContext)}
    for key, expected in conditions.items():
        if key not in names:
            return False
        actual = getattr(resource, key)
        if expected == "$caller":
            if not _same(getattr(caller, key), actual):
                return False
        elif isinstance(expected, (list, tuple, set, frozenset)):
            if actual not in expected:
                return False
        elif actual != expected:
            return False
    return True
