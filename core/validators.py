"""
Validation-only checks. None of these raise: they report.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Mapping

from core.filters import TENANT_ACCESS_VALUES, limit_pagination_params
from core.permissions import DEFAULT_CATALOG, PermissionCatalog, validate_and_filter_permissions


@dataclass
class ValidationResult:
    errors: List[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def to_dict(self) -> Dict[str, Any]:
        return {"is_valid": self.is_valid, "errors": list(self.errors)}


def _non_empty_string(value: Any) -> bool:
    return isinstance(value, str) and bool(value.strip())


def _is_datetime_like(value: Any) -> bool:
    if isinstance(value, datetime):
        return True
    if isinstance(value, str):
        try:
            datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return False
        return True
    return False


def validate_role_data(role_data: Mapping[str, Any]) -> ValidationResult:
    result = ValidationResult()
    if not _non_empty_string(role_data.get("name")):
        result.errors.append("Name is required and must be a non-empty string")
    if not _non_empty_string(role_data.get("description")):
        result.errors.append("Description is required and must be a non-empty string")

    level = role_data.get("level")
    if level is not None:
        try:
            level_value = int(level)
        except (TypeError, ValueError):
            level_value = None
        if isinstance(level, bool) or level_value is None or not 1 <= level_value <= 6:
            result.errors.append("Level must be a number between 1 and 6")

    permissions = role_data.get("permissions")
    if permissions is not None and not isinstance(permissions, list):
        result.errors.append("Permissions must be an array")
    return result


def validate_role_assignment(
    assignment_data: Mapping[str, Any],
    catalog: PermissionCatalog = DEFAULT_CATALOG,
) -> ValidationResult:
    result = ValidationResult()
    if not _non_empty_string(assignment_data.get("person_id")):
        result.errors.append("Person ID is required and must be a string")
    if not _non_empty_string(assignment_data.get("role_type")):
        result.errors.append("Role type is required and must be a string")

    expires_at = assignment_data.get("expires_at")
    if expires_at is not None and not _is_datetime_like(expires_at):
        result.errors.append("Expires at must be a valid date")

    custom_permissions = assignment_data.get("custom_permissions")
    if custom_permissions:
        if not isinstance(custom_permissions, list):
            result.errors.append("Custom permissions must be an array")
        elif len(validate_and_filter_permissions(custom_permissions, catalog)) != len(custom_permissions):
            result.errors.append("Some custom permissions are invalid")
    return result


def validate_advanced_permission(permission_data: Mapping[str, Any]) -> ValidationResult:
    result = ValidationResult()
    if not _non_empty_string(permission_data.get("resource")):
        result.errors.append("Resource is required and must be a string")
    if not _non_empty_string(permission_data.get("action")):
        result.errors.append("Action is required and must be a string")
    if permission_data.get("scope") is not None and not isinstance(permission_data["scope"], str):
        result.errors.append("Scope must be a string")
    if permission_data.get("allowed_fields") is not None and not isinstance(permission_data["allowed_fields"], list):
        result.errors.append("Allowed fields must be an array")
    if permission_data.get("conditions") is not None and not isinstance(permission_data["conditions"], Mapping):
        result.errors.append("Conditions must be an object")
    return result


def validate_custom_role_update(update_data: Mapping[str, Any]) -> ValidationResult:
    result = ValidationResult()
    if "name" in update_data and not _non_empty_string(update_data["name"]):
        result.errors.append("Name must be a non-empty string")
    if "description" in update_data and not isinstance(update_data["description"], str):
        result.errors.append("Description must be a string")
    if "permissions" in update_data and not isinstance(update_data["permissions"], list):
        result.errors.append("Permissions must be an array")
    if "tenant_access" in update_data and update_data["tenant_access"] not in TENANT_ACCESS_VALUES:
        result.errors.append("Tenant access must be one of: ALL, SPECIFIC, NONE")
    if "is_active" in update_data and not isinstance(update_data["is_active"], bool):
        result.errors.append("is_active must be a boolean")
    return result


def validate_id(value: Any, field_name: str = "ID") -> ValidationResult:
    result = ValidationResult()
    if not _non_empty_string(value):
        result.errors.append(f"{field_name} is required and must be a non-empty string")
    return result


def validate_user_filters(filters: Mapping[str, Any]) -> Dict[str, str]:
    """Trimmed string filters; anything else is dropped."""
    return {
        key: filters[key].strip()
        for key in ("role_type", "company_id", "department_id", "status")
        if _non_empty_string(filters.get(key))
    }


def validate_pagination_params(query: Mapping[str, Any]) -> Dict[str, int]:
    return limit_pagination_params(query)
