from contextlib import contextmanager
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.exc import SQLAlchemyError

from api.dependencies import (
    get_authorization_service,
    get_current_person,
    get_role_store,
    get_statistics_service,
    require_permission,
)
from api.roles.schemas import (
    AdvancedPermissionCreate,
    AdvancedPermissionResponse,
    FieldFilterRequest,
    HasRoleResponse,
    PaginationInfo,
    PermissionCheckRequest,
    PermissionCheckResponse,
    PermissionListResponse,
    PermissionsUpdate,
    PersonSummary,
    PersonsWithRolePage,
    PersonWithRole,
    PrimaryRoleUpdate,
    RoleCreate,
    RoleRemovedResponse,
    RoleResponse,
    RoleStatsResponse,
    RoleTransferRequest,
    RoleTransferResponse,
)
from config.settings import EXPIRATION_WINDOW_DAYS
from core.exceptions import ConflictError, ValidationError
from core.filters import (
    DEFAULT_PAGE_SIZE,
    calculate_offset,
    create_pagination_response,
    filter_role_assignment_data,
    limit_pagination_params,
)
from core.roles import RoleType, can_assign_role, map_role_type
from core.scopes import AccessContext
from core.validators import validate_role_assignment
from database.models import Person, PersonRole
from services.roles import AuthorizationService, RoleAssignmentStore, RoleStatisticsService
from utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter()

MANAGE_ROLES = ("ROLE_MANAGEMENT", "ASSIGN_ROLES")
VIEW_ROLES = ("VIEW_ROLES", "ROLE_MANAGEMENT", "roles.read")
VIEW_STATS = ("VIEW_ANALYTICS", "VIEW_REPORTS", "analytics.read")


@contextmanager
def service_errors(operation: str):
    """Translate service failures into HTTP responses."""
    try:
        yield
    except ConflictError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except SQLAlchemyError as e:
        logger.error(f"[ROLES_API] Storage error during {operation}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Internal server error",
        )


def is_super_admin(person: Person, store: RoleAssignmentStore) -> bool:
    return store.has_role(person.id, RoleType.SUPER_ADMIN.value)


def get_target_person(
    person_id: str,
    current_person: Person,
    store: RoleAssignmentStore,
) -> Person:
    """Person the request acts on; other tenants are reserved to super admins."""
    person = store.get_person(person_id)
    if not person:
        raise HTTPException(status_code=404, detail="Person not found")

    if person.tenant_id != current_person.tenant_id and not is_super_admin(current_person, store):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Access denied: Cannot access persons in another tenant",
        )
    return person


def ensure_can_assign(current_person: Person, role_type: str, store: RoleAssignmentStore) -> None:
    """The caller's highest effective role must be allowed to grant `role_type`."""
    caller_roles = [role.role_type for role in store.get_effective_roles(current_person.id)]
    if not can_assign_role(caller_roles, role_type):
        logger.warning(f"[ROLES_API] {current_person.id} may not assign {map_role_type(role_type)}")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Access denied: Cannot assign role {map_role_type(role_type)}",
        )


def get_target_role(
    role_id: str,
    current_person: Person,
    store: RoleAssignmentStore,
) -> PersonRole:
    """
    Assignment whose grants the request changes. It must belong to a person
    the caller may act on, carry a role type the caller may assign, and not
    be one of the caller's own assignments unless the caller is a super admin.
    """
    role = store.get_role(role_id)
    if not role:
        raise HTTPException(status_code=404, detail="Role not found")

    get_target_person(role.person_id, current_person, store)
    if role.person_id == current_person.id and not is_super_admin(current_person, store):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Access denied: Cannot change grants of your own role assignments",
        )
    ensure_can_assign(current_person, role.role_type, store)
    return role


def page_params(page: int, limit: int) -> Dict[str, int]:
    params = limit_pagination_params({"page": page, "limit": limit})
    params["offset"] = calculate_offset(params["page"], params["limit"])
    return params


# ---------------------------------------------------------------------
# Assignments of one person
# ---------------------------------------------------------------------
@router.get("/persons/{person_id}/roles", response_model=List[RoleResponse])
def list_person_roles(
    person_id: str,
    active_only: bool = True,
    include_expired: bool = True,
    page: int = 1,
    limit: int = DEFAULT_PAGE_SIZE,
    current_person: Person = Depends(get_current_person),
    store: RoleAssignmentStore = Depends(get_role_store),
    authorization: AuthorizationService = Depends(get_authorization_service),
):
    """List role assignments. Everyone may read their own."""
    paging = page_params(page, limit)
    with service_errors("list roles"):
        if person_id != current_person.id:
            permissions = authorization.get_person_permissions(current_person.id)
            if not any(p in permissions for p in VIEW_ROLES):
                raise HTTPException(status_code=403, detail="No permission to view roles")
        get_target_person(person_id, current_person, store)
        return store.get_person_roles(
            person_id,
            active_only=active_only,
            include_expired=include_expired,
            offset=paging["offset"],
            limit=paging["limit"],
        )


@router.post("/persons/{person_id}/roles", response_model=RoleResponse, status_code=status.HTTP_201_CREATED)
def add_person_role(
    person_id: str,
    payload: RoleCreate,
    current_person: Person = Depends(require_permission(*MANAGE_ROLES)),
    store: RoleAssignmentStore = Depends(get_role_store),
):
    """Assign a role. The tenant defaults to the person's own tenant."""
    with service_errors("add role"):
        person = get_target_person(person_id, current_person, store)

        assignment = {
            "person_id": person_id,
            "role_type": payload.role_type,
            "company_id": payload.company_id,
            "expires_at": payload.valid_until,
        }
        validation = validate_role_assignment(assignment)
        if not validation.is_valid:
            raise HTTPException(status_code=400, detail="; ".join(validation.errors))

        filtered = filter_role_assignment_data(assignment, clock=store.clock)
        if payload.valid_until is not None and "expires_at" not in filtered:
            raise HTTPException(status_code=400, detail="Expiration date must be in the future")

        ensure_can_assign(current_person, filtered["role_type"], store)
        role = store.add_role(
            person_id,
            filtered["role_type"],
            company_id=filtered.get("company_id"),
            tenant_id=payload.tenant_id or person.tenant_id,
            valid_until=filtered.get("expires_at"),
            assigned_by=current_person.id,
        )
    logger.info(f"[ROLES_API] {current_person.id} assigned {role.role_type} to {person_id}")
    return role


@router.delete("/persons/{person_id}/roles/{role_type}", response_model=RoleRemovedResponse)
def remove_person_role(
    person_id: str,
    role_type: str,
    company_id: Optional[str] = None,
    tenant_id: Optional[str] = None,
    current_person: Person = Depends(require_permission(*MANAGE_ROLES)),
    store: RoleAssignmentStore = Depends(get_role_store),
):
    with service_errors("remove role"):
        person = get_target_person(person_id, current_person, store)
        ensure_can_assign(current_person, role_type, store)
        removed = store.remove_role(person_id, role_type, company_id, tenant_id or person.tenant_id)
    return RoleRemovedResponse(removed=removed)


@router.get("/persons/{person_id}/primary", response_model=RoleResponse)
def get_primary_role(
    person_id: str,
    current_person: Person = Depends(get_current_person),
    store: RoleAssignmentStore = Depends(get_role_store),
):
    with service_errors("get primary role"):
        get_target_person(person_id, current_person, store)
        role = store.get_primary_role(person_id)
    if not role:
        raise HTTPException(status_code=404, detail="Primary role not found")
    return role


@router.put("/persons/{person_id}/primary", response_model=RoleResponse)
def set_primary_role(
    person_id: str,
    payload: PrimaryRoleUpdate,
    current_person: Person = Depends(require_permission(*MANAGE_ROLES)),
    store: RoleAssignmentStore = Depends(get_role_store),
):
    with service_errors("set primary role"):
        get_target_person(person_id, current_person, store)
        role = store.set_primary_role(person_id, payload.role_id)
    if not role:
        raise HTTPException(status_code=404, detail="Role not found")
    return role


@router.get("/persons/{person_id}/has-role", response_model=HasRoleResponse)
def has_role(
    person_id: str,
    role_type: List[str] = Query(...),
    company_id: Optional[str] = None,
    tenant_id: Optional[str] = None,
    current_person: Person = Depends(get_current_person),
    store: RoleAssignmentStore = Depends(get_role_store),
):
    """True when the person holds any of the given role types."""
    with service_errors("check role"):
        get_target_person(person_id, current_person, store)
        return HasRoleResponse(has_role=store.has_role(person_id, role_type, company_id, tenant_id))


@router.get("/persons/{person_id}/permissions", response_model=PermissionListResponse)
def list_person_permissions(
    person_id: str,
    current_person: Person = Depends(get_current_person),
    store: RoleAssignmentStore = Depends(get_role_store),
    authorization: AuthorizationService = Depends(get_authorization_service),
):
    with service_errors("list permissions"):
        get_target_person(person_id, current_person, store)
        return PermissionListResponse(permissions=authorization.get_person_permissions(person_id))


# ---------------------------------------------------------------------
# Grants on one assignment
# ---------------------------------------------------------------------
@router.put("/assignments/{role_id}/permissions", response_model=PermissionListResponse)
def update_role_permissions(
    role_id: str,
    payload: PermissionsUpdate,
    current_person: Person = Depends(require_permission(*MANAGE_ROLES)),
    store: RoleAssignmentStore = Depends(get_role_store),
):
    """Replace the grants of an assignment; unknown identifiers are dropped."""
    with service_errors("update role permissions"):
        get_target_role(role_id, current_person, store)
        granted = store.update_role_permissions(role_id, payload.permissions)
    if granted is None:
        raise HTTPException(status_code=404, detail="Role not found")
    logger.info(f"[ROLES_API] {current_person.id} replaced the grants of role {role_id}")
    return PermissionListResponse(permissions=granted)


@router.post(
    "/assignments/{role_id}/advanced-permissions",
    response_model=AdvancedPermissionResponse,
    status_code=status.HTTP_201_CREATED,
)
def add_advanced_permission(
    role_id: str,
    payload: AdvancedPermissionCreate,
    current_person: Person = Depends(require_permission(*MANAGE_ROLES)),
    store: RoleAssignmentStore = Depends(get_role_store),
):
    with service_errors("add advanced permission"):
        get_target_role(role_id, current_person, store)
        permission = store.add_advanced_permission(role_id, payload.model_dump(exclude_none=True))
    if permission is None:
        raise HTTPException(status_code=404, detail="Role not found")
    return permission


# ---------------------------------------------------------------------
# Cross-person operations
# ---------------------------------------------------------------------
@router.get("/types/{role_type}/persons", response_model=PersonsWithRolePage)
def list_persons_with_role(
    role_type: str,
    company_id: Optional[str] = None,
    page: int = 1,
    limit: int = DEFAULT_PAGE_SIZE,
    current_person: Person = Depends(require_permission(*VIEW_ROLES)),
    store: RoleAssignmentStore = Depends(get_role_store),
):
    """Persons holding a role type inside the caller's tenant, one page at a time."""
    paging = page_params(page, limit)
    filters = {"tenant_id": current_person.tenant_id, "company_id": company_id}
    with service_errors("list persons with role"):
        total = store.count_persons_with_role(role_type, filters)
        rows = store.get_persons_with_role(role_type, filters, offset=paging["offset"], limit=paging["limit"])
    return PersonsWithRolePage(
        items=[
            PersonWithRole(
                role=RoleResponse.model_validate(role),
                person=PersonSummary.model_validate(person),
            )
            for role, person in rows
        ],
        pagination=PaginationInfo(**create_pagination_response(paging["page"], paging["limit"], total)),
    )


@router.post("/transfer", response_model=RoleTransferResponse)
def transfer_roles(
    payload: RoleTransferRequest,
    current_person: Person = Depends(require_permission(*MANAGE_ROLES)),
    store: RoleAssignmentStore = Depends(get_role_store),
):
    """Move every active role of one person to another; the caller must be able to assign each."""
    with service_errors("transfer roles"):
        get_target_person(payload.from_person_id, current_person, store)
        get_target_person(payload.to_person_id, current_person, store)
        for role in store.get_person_roles(payload.from_person_id, active_only=True):
            ensure_can_assign(current_person, role.role_type, store)
        result = store.transfer_roles(payload.from_person_id, payload.to_person_id)
    logger.info(
        f"[ROLES_API] {current_person.id} transferred roles "
        f"from {payload.from_person_id} to {payload.to_person_id}"
    )
    return result


# ---------------------------------------------------------------------
# Statistics
# ---------------------------------------------------------------------
@router.get("/stats", response_model=RoleStatsResponse)
def role_stats(
    company_id: Optional[str] = None,
    current_person: Person = Depends(require_permission(*VIEW_STATS)),
    store: RoleAssignmentStore = Depends(get_role_store),
):
    with service_errors("role stats"):
        return store.get_role_stats({"tenant_id": current_person.tenant_id, "company_id": company_id})


@router.get("/expiring")
def expiring_roles(
    days_ahead: int = Query(EXPIRATION_WINDOW_DAYS, ge=0, le=365),
    current_person: Person = Depends(require_permission(*VIEW_STATS)),
    stats: RoleStatisticsService = Depends(get_statistics_service),
):
    with service_errors("expiring roles"):
        return stats.get_expiration_stats(current_person.tenant_id, days_ahead=days_ahead)


@router.get("/report")
async def role_report(
    current_person: Person = Depends(require_permission(*VIEW_STATS)),
    stats: RoleStatisticsService = Depends(get_statistics_service),
):
    """Complete role report of the caller's tenant."""
    with service_errors("role report"):
        return await stats.get_complete_role_report(current_person.tenant_id)


# ---------------------------------------------------------------------
# Decisions for the caller
# ---------------------------------------------------------------------
def _resource_context(payload: PermissionCheckRequest) -> Optional[AccessContext]:
    if payload.resource_context is None:
        return None
    return AccessContext.from_mapping(payload.resource_context.model_dump())


@router.post("/check", response_model=PermissionCheckResponse)
def check_permission(
    payload: PermissionCheckRequest,
    current_person: Person = Depends(get_current_person),
    authorization: AuthorizationService = Depends(get_authorization_service),
):
    with service_errors("permission check"):
        decision = authorization.evaluate(
            current_person.id, payload.resource, payload.action, _resource_context(payload)
        )
    return PermissionCheckResponse(
        allowed=decision.allowed,
        reason=decision.reason,
        scopes=decision.scopes,
        allowed_fields=decision.allowed_fields,
    )


@router.post("/filter", response_model=Dict[str, Any])
def filter_fields(
    payload: FieldFilterRequest,
    current_person: Person = Depends(get_current_person),
    authorization: AuthorizationService = Depends(get_authorization_service),
):
    """The submitted record reduced to the fields the caller may see."""
    with service_errors("field filter"):
        return authorization.filter_allowed_fields(
            current_person.id, payload.resource, payload.action, payload.data, _resource_context(payload)
        )
