"""
Permission management API routes.

Provides endpoints for the permission catalog, role and user overrides,
effective permission sets, and the permission audit trail.
"""
from typing import Annotated, Optional
from fastapi import APIRouter, Depends, HTTPException, status, Request
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.core import config
from app.core.database.engine import get_db
from app.core.rate_limit import limiter
from app.features.users.dependencies import get_current_user
from app.features.users.models import User
from app.features.permissions.defaults import DEFAULT_ROLE_PERMISSIONS
from app.features.permissions.models import AuditLog
from app.features.permissions.registry import (
    ALL_PERMISSIONS,
    PERMISSION_CATEGORIES,
    PERMISSION_CODES,
    PERMISSIONS,
    is_registered,
)
from app.features.permissions.repository import OverrideRepository
from app.features.permissions.resolver import (
    explain_all_permissions,
    index_overrides,
    override_state,
    resolve_permission,
)
from app.features.permissions.schemas import (
    PermissionDefinitionResponse,
    PermissionCatalogResponse,
    RolePermissionResponse,
    UserPermissionResponse,
    OverridesResponse,
    RolePermissionsUpdate,
    UserPermissionsUpdate,
    OverrideStateResponse,
    OkResponse,
    EffectivePermissionsResponse,
    PermissionMatrixRow,
    UserPermissionMatrixResponse,
    PermissionCheckRequest,
    PermissionCheckResponse,
    AuditLogResponse,
    AuditLogListResponse,
)
from app.features.permissions.dependencies import (
    create_audit_log,
    get_effective_permissions,
    get_override_repository,
    has_permission,
    load_user_snapshot,
    require_permission,
)
from app.utils import get_logger


log = get_logger(__name__)
router = APIRouter()

MANAGE_USERS = "can:manage-users"


async def _get_user_or_404(db: AsyncSession, user_id: str) -> User:
    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    return user


# ============================================================================
# Catalog Routes
# ============================================================================

@router.get("", response_model=PermissionCatalogResponse)
async def get_permission_catalog(
    _user: Annotated[User, Depends(get_current_user)]
):
    """List every registered permission with its label, category, and role defaults."""
    return PermissionCatalogResponse(
        permissions=[PermissionDefinitionResponse.model_validate(p) for p in PERMISSIONS],
        categories=list(PERMISSION_CATEGORIES),
        role_defaults={
            role: [code for code in PERMISSION_CODES if code in granted]
            for role, granted in DEFAULT_ROLE_PERMISSIONS.items()
        },
    )


@router.get("/overrides", response_model=OverridesResponse)
async def list_overrides(
    _user: Annotated[User, Depends(get_current_user)],
    repo: Annotated[OverrideRepository, Depends(get_override_repository)]
):
    """List every stored role and user override."""
    role_rows = await repo.list_role_overrides()
    user_rows = await repo.list_user_overrides()
    return OverridesResponse(
        role_permissions=[RolePermissionResponse.model_validate(r) for r in role_rows],
        user_permissions=[UserPermissionResponse.model_validate(u) for u in user_rows],
    )


# ============================================================================
# Role Override Routes
# ============================================================================

@router.put("/roles", response_model=OkResponse)
@limiter.limit(config.WRITE_RATE_LIMIT)
async def update_role_permissions(
    request: Request,
    update: RolePermissionsUpdate,
    db: Annotated[AsyncSession, Depends(get_db)],
    repo: Annotated[OverrideRepository, Depends(get_override_repository)],
    current_user: Annotated[User, Depends(require_permission(MANAGE_USERS))]
):
    """Upsert or clear role-level overrides (requires can:manage-users)."""
    await repo.set_role_overrides(update.role, update.permissions)

    # Permission matrix changes are a compliance-critical event
    await create_audit_log(
        db,
        user_id=current_user.id,
        action="update_role_permissions",
        entity_type="role_permission",
        entity_id=update.role.value,
        changes={"role": update.role.value, "permissions": update.permissions},
        request=request,
    )
    await db.commit()

    log.info(f"User {current_user.id} updated {len(update.permissions)} override(s) for role {update.role.value}")
    return OkResponse()


# ============================================================================
# User Override Routes
# ============================================================================

@router.get("/users/{user_id}", response_model=list[UserPermissionResponse])
async def get_user_overrides(
    user_id: str,
    _user: Annotated[User, Depends(get_current_user)],
    repo: Annotated[OverrideRepository, Depends(get_override_repository)]
):
    """List the stored overrides for one user."""
    rows = await repo.list_user_overrides(user_id)
    return [UserPermissionResponse.model_validate(r) for r in rows]


@router.put("/users/{user_id}", response_model=OkResponse)
@limiter.limit(config.WRITE_RATE_LIMIT)
async def update_user_permissions(
    request: Request,
    user_id: str,
    update: UserPermissionsUpdate,
    db: Annotated[AsyncSession, Depends(get_db)],
    repo: Annotated[OverrideRepository, Depends(get_override_repository)],
    current_user: Annotated[User, Depends(require_permission(MANAGE_USERS))]
):
    """Upsert or clear user-level overrides; null reverts to inherit (requires can:manage-users)."""
    await _get_user_or_404(db, user_id)
    await repo.set_user_overrides(user_id, update.permissions)

    await create_audit_log(
        db,
        user_id=current_user.id,
        action="update_user_permissions",
        entity_type="user_permission",
        entity_id=user_id,
        changes={"permissions": update.permissions},
        request=request,
    )
    await db.commit()

    return OkResponse()


@router.post("/users/{user_id}/cycle/{permission}", response_model=OverrideStateResponse)
@limiter.limit(config.WRITE_RATE_LIMIT)
async def cycle_user_permission(
    request: Request,
    user_id: str,
    permission: str,
    db: Annotated[AsyncSession, Depends(get_db)],
    repo: Annotated[OverrideRepository, Depends(get_override_repository)],
    current_user: Annotated[User, Depends(require_permission(MANAGE_USERS))]
):
    """Advance a user override one step: Inherit -> Grant -> Deny -> Inherit."""
    if not is_registered(permission):
        raise HTTPException(status_code=404, detail="Permission not found")

    target = await _get_user_or_404(db, user_id)
    current = override_state(index_overrides(await repo.get_user_overrides(user_id)), permission)
    new_state = current.next()
    await repo.set_user_overrides(user_id, {permission: new_state.granted})

    await create_audit_log(
        db,
        user_id=current_user.id,
        action="update_user_permissions",
        entity_type="user_permission",
        entity_id=user_id,
        changes={"permissions": {permission: new_state.granted}},
        request=request,
    )
    await db.commit()

    snapshot = await load_user_snapshot(repo, target)
    return OverrideStateResponse(
        user_id=user_id,
        permission=permission,
        state=new_state,
        granted=resolve_permission(permission, target.role, snapshot.role_overrides, snapshot.user_overrides),
    )


# ============================================================================
# Effective Permission Routes
# ============================================================================

@router.get("/me", response_model=EffectivePermissionsResponse)
async def get_my_permissions(
    current_user: Annotated[User, Depends(get_current_user)],
    repo: Annotated[OverrideRepository, Depends(get_override_repository)]
):
    """Get the full set of permissions granted to the current user."""
    granted = await get_effective_permissions(repo, current_user)
    return EffectivePermissionsResponse(
        user_id=current_user.id,
        role=current_user.role,
        permissions=[code for code in PERMISSION_CODES if code in granted],
    )


@router.get("/users/{user_id}/matrix", response_model=UserPermissionMatrixResponse)
async def get_user_permission_matrix(
    user_id: str,
    db: Annotated[AsyncSession, Depends(get_db)],
    repo: Annotated[OverrideRepository, Depends(get_override_repository)],
    current_user: Annotated[User, Depends(get_current_user)]
):
    """Show how each permission resolves for a user, layer by layer."""
    # Can only view own permissions unless allowed to manage users
    if user_id != current_user.id and not await has_permission(repo, current_user, MANAGE_USERS):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not authorized to view other users' permissions"
        )

    target = await _get_user_or_404(db, user_id)
    snapshot = await load_user_snapshot(repo, target)
    decisions = explain_all_permissions(target.role, snapshot.role_overrides, snapshot.user_overrides)

    return UserPermissionMatrixResponse(
        user_id=target.id,
        role=target.role,
        rows=[
            PermissionMatrixRow(
                permission=d.permission,
                label=ALL_PERMISSIONS[d.permission].label,
                category=ALL_PERMISSIONS[d.permission].category,
                role_default=d.role_default,
                role_state=d.role_state,
                user_state=d.user_state,
                granted=d.granted,
                source=d.source,
            )
            for d in decisions
        ],
    )


@router.post("/check", response_model=PermissionCheckResponse)
async def check_permission(
    check_request: PermissionCheckRequest,
    current_user: Annotated[User, Depends(get_current_user)],
    repo: Annotated[OverrideRepository, Depends(get_override_repository)]
):
    """Check if the current user has a specific permission."""
    granted = await has_permission(repo, current_user, check_request.permission)
    return PermissionCheckResponse(permission=check_request.permission, granted=granted)


# ============================================================================
# Audit Log Routes
# ============================================================================

@router.get("/audit-logs", response_model=AuditLogListResponse)
async def list_audit_logs(
    db: Annotated[AsyncSession, Depends(get_db)],
    _user: Annotated[User, Depends(require_permission("page:audit"))],
    skip: int = 0,
    limit: int = 50,
    user_id: Optional[str] = None,
    action: Optional[str] = None,
    entity_type: Optional[str] = None,
):
    """List permission audit logs with optional filtering."""
    stmt = select(AuditLog)

    if user_id:
        stmt = stmt.where(AuditLog.user_id == user_id)
    if action:
        stmt = stmt.where(AuditLog.action == action)
    if entity_type:
        stmt = stmt.where(AuditLog.entity_type == entity_type)

    # Get total count
    count_stmt = select(func.count()).select_from(stmt.subquery())
    total_result = await db.execute(count_stmt)
    total = total_result.scalar() or 0

    # Get paginated results
    stmt = stmt.order_by(AuditLog.created_at.desc(), AuditLog.id.desc()).offset(skip).limit(limit)
    result = await db.execute(stmt)
    logs = result.scalars().all()

    pages = (total + limit - 1) // limit if limit > 0 else 0
    page = (skip // limit) + 1 if limit > 0 else 1

    return AuditLogListResponse(
        items=[AuditLogResponse.model_validate(entry) for entry in logs],
        total=total,
        page=page,
        page_size=limit,
        pages=pages
    )
