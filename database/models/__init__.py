from database.models.person import Person
from database.models.role import PersonRole, build_scope_key
from database.models.permission import AdvancedPermission, RolePermission

__all__ = [
    "Person",
    "PersonRole",
    "build_scope_key",
    "AdvancedPermission",
    "RolePermission",
]
