"""
Permission checking utilities and dependencies.

Implements:
- Repository injection for the override stores
- Snapshot loading and resolution for the current user
- FastAPI dependencies for route protection
- Audit logging helpers
"""
from typing import Annotated, Dict, Any, Optional, Set
from fastapi import Depends, HTTPException, status, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database.engine import get_db
from app.features.users.dependencies import get_current_user
from app.features.users.models import User
from app.features.permissions.models import AuditLog
from app.features.permissions.repository import (
    OverrideRepository,
    OverrideSnapshot,
    SqlAlchemyOverrideRepository,
)
from app.features.permissions.resolver import (
    has_any_permission,
    resolve_all_permissions,
    resolve_permission,
)
from app.utils import get_logger


log = get_logger(__name__)


def get_override_repository(
    db: Annotated[AsyncSession, Depends(get_db)]
) -> OverrideRepository:
    """Provide the override store bound to the request's session."""
    return SqlAlchemyOverrideRepository(db)


# ============================================================================
# Permission Checking Functions
# ============================================================================

async def load_user_snapshot(repo: OverrideRepository, user: User) -> OverrideSnapshot:
    """Read the user's role overrides and user overrides together."""
    return await repo.load_snapshot(user.role, user.id)


async def has_permission(repo: OverrideRepository, user: User, permission: str) -> bool:
    """
    Check if user holds a permission after applying all override layers.

    Args:
        repo: Override store
        user: User object
        permission: Permission code (e.g., "create:risk")

    Returns:
        True if user has permission, False otherwise
    """
    snapshot = await load_user_snapshot(repo, user)
    granted = resolve_permission(permission, user.role, snapshot.role_overrides, snapshot.user_overrides)
    log.debug(f"User {user.id} ({user.role.value}) {'granted' if granted else 'denied'} {permission}")
    return granted


async def get_effective_permissions(repo: OverrideRepository, user: User) -> Set[str]:
    """Get the full set of permissions granted to a user."""
    snapshot = await load_user_snapshot(repo, user)
    return resolve_all_permissions(user.role, snapshot.role_overrides, snapshot.user_overrides)


# ============================================================================
# FastAPI Dependencies
# ============================================================================

def require_permission(permission: str):
    """
    FastAPI dependency to require a specific permission.

    Usage:
        @router.put("/roles")
        async def update_role_permissions(
            user: User = Depends(require_permission("can:manage-users"))
        ):
            # User may manage permissions
            pass

    Args:
        permission: Permission code

    Returns:
        Dependency function that returns the current user if they have permission

    Raises:
        HTTPException: 403 if user doesn't have permission
    """
    async def permission_dependency(
        current_user: Annotated[User, Depends(get_current_user)],
        repo: Annotated[OverrideRepository, Depends(get_override_repository)]
    ) -> User:
        if not await has_permission(repo, current_user, permission):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Permission denied: {permission}"
            )

        return current_user

    return permission_dependency


def require_any_permission(*permissions: str):
    """
    FastAPI dependency to require ANY of the specified permissions.

    Usage:
        @router.get("/reports")
        async def get_reports(
            user: User = Depends(require_any_permission("page:reports", "page:dashboard"))
        ):
            pass
    """
    async def permission_dependency(
        current_user: Annotated[User, Depends(get_current_user)],
        repo: Annotated[OverrideRepository, Depends(get_override_repository)]
    ) -> User:
        snapshot = await load_user_snapshot(repo, current_user)
        if not has_any_permission(
            permissions, current_user.role, snapshot.role_overrides, snapshot.user_overrides
        ):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Permission denied: requires one of {list(permissions)}"
            )

        return current_user

    return permission_dependency


# ============================================================================
# Audit Logging
# ============================================================================

async def create_audit_log(
    db: AsyncSession,
    user_id: Optional[str],
    action: str,
    entity_type: str,
    entity_id: Optional[str] = None,
    changes: Optional[Dict[str, Any]] = None,
    request: Optional[Request] = None,
) -> AuditLog:
    """
    Create an audit log entry in the caller's transaction.

    Args:
        db: Database session
        user_id: User performing the action
        action: Action performed (e.g., "update_role_permissions")
        entity_type: Type of entity (e.g., "role_permission", "user_permission")
        entity_id: ID of the entity (role name or user id)
        changes: What changed
        request: Incoming request, for client IP and user agent

    Returns:
        Created AuditLog object
    """
    audit_log = AuditLog(
        user_id=user_id,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        changes=changes,
        ip_address=request.client.host if request is not None and request.client else None,
        user_agent=request.headers.get("user-agent") if request is not None else None,
    )

    db.add(audit_log)
    await db.flush()

    log.info(f"Audit: user={user_id} action={action} entity={entity_type}:{entity_id}")

    return audit_log
