"""
Canonical role vocabulary and role-name normalization.
"""
import re
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple

from core.exceptions import ValidationError


class RoleType(str, Enum):
    EMPLOYEE = "EMPLOYEE"
    MANAGER = "MANAGER"
    HR_MANAGER = "HR_MANAGER"
    DEPARTMENT_HEAD = "DEPARTMENT_HEAD"
    TRAINER = "TRAINER"
    SENIOR_TRAINER = "SENIOR_TRAINER"
    TRAINER_COORDINATOR = "TRAINER_COORDINATOR"
    EXTERNAL_TRAINER = "EXTERNAL_TRAINER"
    SUPER_ADMIN = "SUPER_ADMIN"
    ADMIN = "ADMIN"
    COMPANY_ADMIN = "COMPANY_ADMIN"
    TENANT_ADMIN = "TENANT_ADMIN"
    VIEWER = "VIEWER"
    OPERATOR = "OPERATOR"
    COORDINATOR = "COORDINATOR"
    SUPERVISOR = "SUPERVISOR"
    GUEST = "GUEST"
    CONSULTANT = "CONSULTANT"
    AUDITOR = "AUDITOR"


CANONICAL_ROLES = frozenset(role.value for role in RoleType)

# Legacy and imported role names -> canonical role type.
# Keys are already canonicalized; no key may be a canonical role itself.
ROLE_ALIASES: Dict[str, str] = {
    "HR": RoleType.HR_MANAGER.value,
    "HR_ADMIN": RoleType.HR_MANAGER.value,
    "SYSTEM_USER": RoleType.OPERATOR.value,
    "SUPERADMIN": RoleType.SUPER_ADMIN.value,
    "SUPER_ADMINISTRATOR": RoleType.SUPER_ADMIN.value,
    "ADMINISTRATOR": RoleType.ADMIN.value,
    "GLOBAL_ADMIN": RoleType.ADMIN.value,
    "COMPANYADMIN": RoleType.COMPANY_ADMIN.value,
    "COMPANY_ADMINISTRATOR": RoleType.COMPANY_ADMIN.value,
    "TENANTADMIN": RoleType.TENANT_ADMIN.value,
    "USER": RoleType.EMPLOYEE.value,
    "STAFF": RoleType.EMPLOYEE.value,
    "INSTRUCTOR": RoleType.TRAINER.value,
    "EXTERNAL_INSTRUCTOR": RoleType.EXTERNAL_TRAINER.value,
    "READONLY": RoleType.VIEWER.value,
    "READ_ONLY": RoleType.VIEWER.value,
    # Labels used by spreadsheet imports
    "DIPENDENTE": RoleType.EMPLOYEE.value,
    "FORMATORE": RoleType.TRAINER.value,
    "FORMATORE_ESTERNO": RoleType.EXTERNAL_TRAINER.value,
    "RESPONSABILE": RoleType.MANAGER.value,
    "AMMINISTRATORE": RoleType.ADMIN.value,
    "CONSULENTE": RoleType.CONSULTANT.value,
}

# Highest first; used to pick a representative role among several
ROLE_PRIORITY: List[str] = [
    RoleType.SUPER_ADMIN.value,
    RoleType.ADMIN.value,
    RoleType.TENANT_ADMIN.value,
    RoleType.COMPANY_ADMIN.value,
    RoleType.HR_MANAGER.value,
    RoleType.MANAGER.value,
    RoleType.DEPARTMENT_HEAD.value,
    RoleType.TRAINER_COORDINATOR.value,
    RoleType.SENIOR_TRAINER.value,
    RoleType.TRAINER.value,
    RoleType.EXTERNAL_TRAINER.value,
    RoleType.SUPERVISOR.value,
    RoleType.COORDINATOR.value,
    RoleType.OPERATOR.value,
    RoleType.EMPLOYEE.value,
    RoleType.CONSULTANT.value,
    RoleType.AUDITOR.value,
    RoleType.VIEWER.value,
    RoleType.GUEST.value,
]

_R = RoleType

# Role types each role may grant to others. Unlisted roles grant nothing.
ASSIGNABLE_ROLES: Dict[str, Tuple[str, ...]] = {
    _R.SUPER_ADMIN.value: tuple(role.value for role in RoleType),
    _R.ADMIN.value: tuple(r.value for r in (
        _R.TENANT_ADMIN, _R.COMPANY_ADMIN, _R.HR_MANAGER, _R.MANAGER, _R.TRAINER, _R.EMPLOYEE,
    )),
    _R.TENANT_ADMIN.value: tuple(r.value for r in (
        _R.COMPANY_ADMIN, _R.HR_MANAGER, _R.MANAGER, _R.TRAINER, _R.EMPLOYEE,
    )),
    _R.COMPANY_ADMIN.value: tuple(r.value for r in (_R.HR_MANAGER, _R.MANAGER, _R.TRAINER, _R.EMPLOYEE)),
    _R.HR_MANAGER.value: tuple(r.value for r in (_R.TRAINER_COORDINATOR, _R.SUPERVISOR, _R.EMPLOYEE)),
    _R.MANAGER.value: tuple(r.value for r in (
        _R.DEPARTMENT_HEAD, _R.HR_MANAGER, _R.TRAINER_COORDINATOR, _R.SUPERVISOR,
    )),
    _R.DEPARTMENT_HEAD.value: tuple(r.value for r in (_R.SUPERVISOR, _R.COORDINATOR, _R.TRAINER)),
    _R.TRAINER_COORDINATOR.value: tuple(r.value for r in (_R.SENIOR_TRAINER, _R.TRAINER, _R.EXTERNAL_TRAINER)),
    _R.SENIOR_TRAINER.value: tuple(r.value for r in (_R.TRAINER, _R.EXTERNAL_TRAINER)),
    _R.TRAINER.value: (_R.EMPLOYEE.value,),
    _R.SUPERVISOR.value: tuple(r.value for r in (_R.COORDINATOR, _R.OPERATOR, _R.EMPLOYEE)),
    _R.COORDINATOR.value: tuple(r.value for r in (_R.OPERATOR, _R.EMPLOYEE)),
    _R.OPERATOR.value: (_R.EMPLOYEE.value,),
    _R.EMPLOYEE.value: (_R.VIEWER.value,),
    _R.VIEWER.value: (_R.GUEST.value,),
}

_WHITESPACE = re.compile(r"\s+")
_SEPARATORS = re.compile(r"[\s\-]+")
_INVALID_CHARS = re.compile(r"[^A-Z0-9_]")


def create_role_type(name: Any) -> str:
    """Turn a free-form role name into a role-type token ("Company Admin" -> "COMPANY_ADMIN")."""
    if not name or not isinstance(name, str):
        raise ValidationError("Role name is required and must be a string")
    return _INVALID_CHARS.sub("", _WHITESPACE.sub("_", name.upper()))


def map_role_type(value: Any) -> str:
    """
    Resolve a legacy or free-form role name to the canonical vocabulary.
    Unknown names pass through canonicalized. Idempotent.
    """
    if isinstance(value, Enum):
        value = value.value
    if not isinstance(value, str) or not value.strip():
        return ""
    token = create_role_type(_SEPARATORS.sub(" ", value.strip()))
    return ROLE_ALIASES.get(token, token)


def is_valid_role(role_type: Any) -> bool:
    return isinstance(role_type, str) and role_type in CANONICAL_ROLES


def get_all_roles() -> List[str]:
    return [role.value for role in RoleType]


def format_role_display_name(role_type: Any) -> str:
    """"COMPANY_ADMIN" -> "Company Admin". Never raises."""
    if not role_type or not isinstance(role_type, str):
        return ""
    return role_type.replace("_", " ").lower().title()


def validate_role_type(value: Any) -> Dict[str, Any]:
    """Validation and canonical value in one call."""
    mapped = map_role_type(value)
    return {
        "is_valid": is_valid_role(mapped),
        "original_role": value,
        "mapped_role": mapped,
        "available_roles": get_all_roles(),
    }


def highest_priority_role(role_types: Iterable[str]) -> Optional[str]:
    present = set(role_types)
    for role_type in ROLE_PRIORITY:
        if role_type in present:
            return role_type
    return next(iter(sorted(present)), None)


def get_assignable_roles(role_type: Any) -> List[str]:
    return list(ASSIGNABLE_ROLES.get(map_role_type(role_type), ()))


def can_assign_role(assigner_role_types: Iterable[str], role_type: Any) -> bool:
    """
    Whether someone holding `assigner_role_types` may grant `role_type`.
    Only the assigner's highest role counts.
    """
    highest = highest_priority_role(map_role_type(rt) for rt in assigner_role_types)
    if highest is None:
        return False
    return map_role_type(role_type) in ASSIGNABLE_ROLES.get(highest, ())
