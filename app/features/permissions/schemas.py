"""
Pydantic schemas for permission management.

Request and response models for the permission catalog, role and user
overrides, effective permissions, and audit logs.
"""
from datetime import datetime
from typing import Dict, Any, List, Optional
from pydantic import BaseModel, Field, ConfigDict, field_validator

from app.features.permissions.defaults import Role
from app.features.permissions.registry import PermissionCategory, is_registered
from app.features.permissions.resolver import OverrideState, PermissionSource


def _require_registered(permissions: Dict[str, Optional[bool]]) -> Dict[str, Optional[bool]]:
    unknown = sorted(code for code in permissions if not is_registered(code))
    if unknown:
        raise ValueError(f"Unknown permission codes: {', '.join(unknown)}")
    return permissions


# ============================================================================
# Catalog Schemas
# ============================================================================

class PermissionDefinitionResponse(BaseModel):
    """A registered permission code."""
    code: str
    label: str
    category: PermissionCategory

    model_config = ConfigDict(from_attributes=True)


class PermissionCatalogResponse(BaseModel):
    """Every registered permission plus the compiled-in role defaults."""
    permissions: List[PermissionDefinitionResponse]
    categories: List[PermissionCategory]
    role_defaults: Dict[Role, List[str]]


# ============================================================================
# Override Schemas
# ============================================================================

class RolePermissionResponse(BaseModel):
    """Schema for a stored role override."""
    role: Role
    permission: str
    granted: bool

    model_config = ConfigDict(from_attributes=True)


class UserPermissionResponse(BaseModel):
    """Schema for a stored user override."""
    user_id: str
    permission: str
    granted: bool

    model_config = ConfigDict(from_attributes=True)


class OverridesResponse(BaseModel):
    """All stored overrides, at both layers."""
    role_permissions: List[RolePermissionResponse] = []
    user_permissions: List[UserPermissionResponse] = []


class RolePermissionsUpdate(BaseModel):
    """
    Upsert or clear role overrides.

    ``true``/``false`` stores a grant/denial; ``null`` removes the override.
    """
    role: Role
    permissions: Dict[str, Optional[bool]] = Field(..., description="Permission code -> granted (null to inherit)")

    @field_validator("permissions")
    @classmethod
    def permissions_registered(cls, v: Dict[str, Optional[bool]]) -> Dict[str, Optional[bool]]:
        return _require_registered(v)


class UserPermissionsUpdate(BaseModel):
    """Upsert or clear user overrides; ``null`` reverts a permission to inherit."""
    permissions: Dict[str, Optional[bool]] = Field(..., description="Permission code -> granted (null to inherit)")

    @field_validator("permissions")
    @classmethod
    def permissions_registered(cls, v: Dict[str, Optional[bool]]) -> Dict[str, Optional[bool]]:
        return _require_registered(v)


class OverrideStateResponse(BaseModel):
    """Override state of one user permission after a change."""
    user_id: str
    permission: str
    state: OverrideState
    granted: bool


class OkResponse(BaseModel):
    ok: bool = True


# ============================================================================
# Effective Permission Schemas
# ============================================================================

class EffectivePermissionsResponse(BaseModel):
    """Resolved permission set for a user, in registry order."""
    user_id: str
    role: Role
    permissions: List[str]


class PermissionMatrixRow(BaseModel):
    """How one permission resolves for a user, layer by layer."""
    permission: str
    label: str
    category: PermissionCategory
    role_default: bool
    role_state: OverrideState
    user_state: OverrideState
    granted: bool
    source: PermissionSource


class UserPermissionMatrixResponse(BaseModel):
    user_id: str
    role: Role
    rows: List[PermissionMatrixRow]


class PermissionCheckRequest(BaseModel):
    """Schema for checking whether the current user holds a permission."""
    permission: str = Field(..., min_length=1, max_length=100)


class PermissionCheckResponse(BaseModel):
    permission: str
    granted: bool


# ============================================================================
# Audit Log Schemas
# ============================================================================

class AuditLogResponse(BaseModel):
    """Schema for audit log response."""
    id: str
    user_id: Optional[str]
    action: str
    entity_type: str
    entity_id: Optional[str]
    changes: Optional[Dict[str, Any]]
    ip_address: Optional[str]
    user_agent: Optional[str]
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class AuditLogListResponse(BaseModel):
    """Schema for paginated audit log list."""
    items: List[AuditLogResponse]
    total: int
    page: int
    page_size: int
    pages: int
