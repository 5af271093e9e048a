"""
Whitelist projection and input sanitization.

Every "filter X for the API" helper is `sanitize_record` with its own
allow-list plus a few per-field rules; `project` is the plain variant
used once an authorization decision has fixed the field set.
"""
import math
import re
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

from core.scopes import normalize_scope
from utils.clock import Clock, utcnow

MAX_STRING_LENGTH = 1000
MAX_SEARCH_LENGTH = 100
MAX_PAGE = 1000
MAX_PAGE_SIZE = 100
DEFAULT_PAGE_SIZE = 20

TENANT_ACCESS_VALUES = ("ALL", "SPECIFIC", "NONE")
DEFAULT_TENANT_ACCESS = "SPECIFIC"

SENSITIVE_PERSON_FIELDS = ("password", "password_hash", "reset_token", "verification_token")

USER_FIELDS = (
    "id", "first_name", "last_name", "email", "status",
    "created_at", "updated_at", "last_login",
)
ROLE_FIELDS = (
    "id", "type", "role_type", "name", "description", "level", "is_active",
    "is_system_role", "is_custom_role", "permissions", "user_count",
    "tenant_access", "created_at", "updated_at",
)
CUSTOM_ROLE_FIELDS = ("name", "description", "permissions", "tenant_access", "is_active")
ROLE_ASSIGNMENT_FIELDS = (
    "person_id", "role_type", "custom_role_id", "company_id",
    "department_id", "expires_at", "custom_permissions",
)
ADVANCED_PERMISSION_FIELDS = ("resource", "action", "scope", "allowed_fields", "conditions")
QUERY_PARAMS = (
    "page", "limit", "role_type", "company_id", "department_id",
    "status", "search", "sort", "order",
)
SORT_FIELDS = ("name", "created_at", "updated_at", "level", "user_count")
SORT_ORDERS = ("asc", "desc")

_UNSAFE_CHARS = re.compile(r"[<>\"'\x00]")


def project(entity: Optional[Mapping[str, Any]], allowed_fields: Optional[Iterable[str]]) -> Dict[str, Any]:
    """Keys present in both `entity` and `allowed_fields`; nothing is synthesized."""
    if not entity or not allowed_fields:
        return {}
    return {field: entity[field] for field in allowed_fields if field in entity}


def sanitize_string(value: Any) -> str:
    """Trim, drop < > " ' and NUL, cap at MAX_STRING_LENGTH characters."""
    if not isinstance(value, str):
        return ""
    return _UNSAFE_CHARS.sub("", value.strip())[:MAX_STRING_LENGTH]


def _sanitize_value(value: Any) -> Any:
    if isinstance(value, str):
        return sanitize_string(value)
    if isinstance(value, list):
        return [sanitize_string(item) if isinstance(item, str) else item for item in value]
    return value


def sanitize_record(record: Any, allowed_fields: Iterable[str]) -> Dict[str, Any]:
    """`project` followed by string sanitization of the copied values."""
    if not isinstance(record, Mapping):
        return {}
    return {field: _sanitize_value(value) for field, value in project(record, allowed_fields).items()}


def sanitize_user_data(user: Any) -> Optional[Dict[str, Any]]:
    """Copy of a person record without credential fields."""
    if not isinstance(user, Mapping):
        return None
    return {key: value for key, value in user.items() if key not in SENSITIVE_PERSON_FIELDS}


def filter_user_data(user: Any) -> Optional[Dict[str, Any]]:
    if not isinstance(user, Mapping):
        return None
    return sanitize_record(user, USER_FIELDS)


def filter_role_data(role: Any) -> Optional[Dict[str, Any]]:
    if not isinstance(role, Mapping):
        return None
    return sanitize_record(role, ROLE_FIELDS)


def filter_custom_role_data(role_data: Any) -> Dict[str, Any]:
    filtered = sanitize_record(role_data, CUSTOM_ROLE_FIELDS)
    if filtered.get("tenant_access") not in TENANT_ACCESS_VALUES:
        filtered["tenant_access"] = DEFAULT_TENANT_ACCESS
    if "is_active" in filtered and not isinstance(filtered["is_active"], bool):
        filtered["is_active"] = True
    return filtered


def _parse_datetime(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        return value if value.tzinfo is None else _to_naive_utc(value)
    if isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
        return parsed if parsed.tzinfo is None else _to_naive_utc(parsed)
    return None


def _to_naive_utc(value: datetime) -> datetime:
    offset = value.utcoffset()
    return (value - offset).replace(tzinfo=None) if offset else value.replace(tzinfo=None)


def filter_role_assignment_data(assignment_data: Any, clock: Clock = utcnow) -> Dict[str, Any]:
    filtered = sanitize_record(assignment_data, ROLE_ASSIGNMENT_FIELDS)
    if "expires_at" in filtered:
        expires_at = _parse_datetime(filtered["expires_at"])
        if expires_at is None or expires_at <= clock():
            del filtered["expires_at"]
        else:
            filtered["expires_at"] = expires_at
    return filtered


def filter_advanced_permission_data(permission_data: Any) -> Dict[str, Any]:
    filtered = sanitize_record(permission_data, ADVANCED_PERMISSION_FIELDS)
    filtered["scope"] = normalize_scope(filtered.get("scope")).value
    if "allowed_fields" in filtered and not isinstance(filtered["allowed_fields"], list):
        del filtered["allowed_fields"]
    if "conditions" in filtered and not isinstance(filtered["conditions"], Mapping):
        del filtered["conditions"]
    return filtered


def filter_query_params(query: Any) -> Dict[str, Any]:
    if not isinstance(query, Mapping):
        return {}
    filtered = {}
    for param in QUERY_PARAMS:
        if query.get(param) is None:
            continue
        value = query[param]
        if isinstance(value, str):
            filtered[param] = sanitize_string(value)
        elif isinstance(value, (int, float)) and not isinstance(value, bool):
            filtered[param] = max(0, int(value)) if math.isfinite(value) else 0
        else:
            filtered[param] = value
    return filtered


def filter_search_params(search_params: Any) -> Dict[str, Any]:
    if not isinstance(search_params, Mapping):
        return {}
    filtered = {}
    search = search_params.get("search")
    if isinstance(search, str) and search:
        filtered["search"] = sanitize_string(search)[:MAX_SEARCH_LENGTH]
    if search_params.get("sort") in SORT_FIELDS:
        filtered["sort"] = search_params["sort"]
    if search_params.get("order") in SORT_ORDERS:
        filtered["order"] = search_params["order"]
    return filtered


def filter_array_data(items: Any, filter_function: Callable[[Any], Any]) -> List[Any]:
    if not isinstance(items, list):
        return []
    return [result for result in map(filter_function, items) if result is not None]


def _to_int(value: Any, default: int) -> int:
    if value is None or isinstance(value, bool):
        return default
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError):
        return default


def limit_pagination_params(params: Optional[Mapping[str, Any]]) -> Dict[str, int]:
    """Clamp page to 1..MAX_PAGE and limit to 1..MAX_PAGE_SIZE."""
    params = params or {}
    page = _to_int(params.get("page"), 1)
    limit = _to_int(params.get("limit"), DEFAULT_PAGE_SIZE)
    return {
        "page": max(1, min(MAX_PAGE, page)),
        "limit": max(1, min(MAX_PAGE_SIZE, limit)),
    }


def calculate_offset(page: int, limit: int) -> int:
    return (max(1, page) - 1) * max(1, limit)


def create_pagination_response(page: int, limit: int, total: int) -> Dict[str, Any]:
    total_pages = math.ceil(total / limit) if limit > 0 else 0
    return {
        "current_page": page,
        "total_pages": total_pages,
        "total_items": total,
        "items_per_page": limit,
        "has_next_page": page < total_pages,
        "has_previous_page": page > 1,
    }


def group_permissions_by_resource(permissions: Any) -> Dict[str, List[Dict[str, Any]]]:
    """Advanced permissions (mappings) grouped by resource."""
    if not isinstance(permissions, list):
        return {}
    grouped: Dict[str, List[Dict[str, Any]]] = {}
    for permission in permissions:
        grouped.setdefault(permission.get("resource") or "general", []).append({
            "action": permission.get("action"),
            "scope": permission.get("scope"),
            "allowed_fields": permission.get("allowed_fields"),
            "conditions": permission.get("conditions"),
        })
    return grouped
