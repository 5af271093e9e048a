from pydantic import BaseModel, Field
from datetime import datetime
from typing import Any, Dict, List, Optional


class RoleResponse(BaseModel):
    id: str
    person_id: str
    role_type: str
    company_id: Optional[str]
    tenant_id: Optional[str]
    is_active: bool
    is_primary: bool
    valid_until: Optional[datetime]
    assigned_by: Optional[str]
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class PersonSummary(BaseModel):
    id: str
    first_name: Optional[str]
    last_name: Optional[str]
    email: Optional[str]
    tenant_id: Optional[str]
    company_id: Optional[str]

    class Config:
        from_attributes = True


class PersonWithRole(BaseModel):
    role: RoleResponse
    person: PersonSummary


class PaginationInfo(BaseModel):
    current_page: int
    total_pages: int
    total_items: int
    items_per_page: int
    has_next_page: bool
    has_previous_page: bool


class PersonsWithRolePage(BaseModel):
    items: List[PersonWithRole]
    pagination: PaginationInfo


class RoleCreate(BaseModel):
    role_type: str
    company_id: Optional[str] = None
    tenant_id: Optional[str] = None
    valid_until: Optional[datetime] = None


class PrimaryRoleUpdate(BaseModel):
    role_id: str


class RoleTransferRequest(BaseModel):
    from_person_id: str
    to_person_id: str


class RoleTransferError(BaseModel):
    role_type: str
    error: str


class RoleTransferResponse(BaseModel):
    transferred: int
    errors: List[RoleTransferError]


class RoleRemovedResponse(BaseModel):
    removed: int


class HasRoleResponse(BaseModel):
    has_role: bool


class RoleStatsResponse(BaseModel):
    by_role: Dict[str, int]
    total_active_roles: int
    available_roles: List[str]
    generated_at: datetime


class PermissionsUpdate(BaseModel):
    # Bare identifiers or {"permissionId": ...} records
    permissions: List[Any]


class PermissionListResponse(BaseModel):
    permissions: List[str]


class AdvancedPermissionCreate(BaseModel):
    resource: str
    action: str
    scope: Optional[str] = None
    allowed_fields: Optional[List[str]] = None
    conditions: Optional[Dict[str, Any]] = None


class AdvancedPermissionResponse(BaseModel):
    id: str
    person_role_id: str
    resource: str
    action: str
    scope: str
    allowed_fields: Optional[List[str]]
    conditions: Optional[Dict[str, Any]]
    created_at: datetime

    class Config:
        from_attributes = True


class ResourceContext(BaseModel):
    person_id: Optional[str] = None
    tenant_id: Optional[str] = None
    company_id: Optional[str] = None
    department_id: Optional[str] = None


class PermissionCheckRequest(BaseModel):
    resource: str
    action: str
    resource_context: Optional[ResourceContext] = None


class PermissionCheckResponse(BaseModel):
    allowed: bool
    reason: str
    scopes: List[str]
    allowed_fields: Optional[List[str]]


class FieldFilterRequest(PermissionCheckRequest):
    data: Dict[str, Any] = Field(default_factory=dict)
