"""
Layered permission resolution.

A permission is decided by the first layer holding an opinion on it:

1. user override
2. role override
3. compiled-in role default

Everything here is pure and synchronous. Callers load the override
snapshots (see ``repository.py``) and pass them in. Unregistered codes
always resolve to denied.
"""
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, Optional, Set, Tuple

from app.features.permissions.defaults import is_granted_by_default
from app.features.permissions.registry import PERMISSION_CODES, is_registered
from app.utils import get_logger


log = get_logger(__name__)


class DuplicateOverrideError(ValueError):
    """Raised when an override list holds conflicting entries for one permission."""

    def __init__(self, permission: str):
        self.permission = permission
        super().__init__(f"Conflicting override entries for permission {permission!r}")


class OverrideState(str, Enum):
    """
    Explicit override state for one (subject, permission) pair.

    INHERIT is never stored: it is the absence of an override record.
    """
    INHERIT = "inherit"
    GRANT = "grant"
    DENY = "deny"

    @classmethod
    def from_granted(cls, granted: Optional[bool]) -> "OverrideState":
        if granted is None:
            return cls.INHERIT
        return cls.GRANT if granted else cls.DENY

    @property
    def granted(self) -> Optional[bool]:
        if self is OverrideState.INHERIT:
            return None
        return self is OverrideState.GRANT

    def next(self) -> "OverrideState":
        """Inherit -> Grant -> Deny -> Inherit, as cycled by the permissions matrix."""
        return _CYCLE[self]


_CYCLE = {
    OverrideState.INHERIT: OverrideState.GRANT,
    OverrideState.GRANT: OverrideState.DENY,
    OverrideState.DENY: OverrideState.INHERIT,
}


class PermissionSource(str, Enum):
    """Layer that decided a permission."""
    USER = "user"
    ROLE = "role"
    DEFAULT = "default"
    UNREGISTERED = "unregistered"


@dataclass(frozen=True)
class PermissionDecision:
    """Outcome of one resolution with the layer that decided it."""

    permission: str
    granted: bool
    source: PermissionSource
    user_state: OverrideState
    role_state: OverrideState
    role_default: bool


# ============================================================================
# Override Indexing
# ============================================================================

def _read_entry(entry: Any) -> Optional[Tuple[str, bool]]:
    """Extract (permission, granted) from a mapping or record, or None if malformed."""
    if isinstance(entry, Mapping):
        permission = entry.get("permission")
        granted = entry.get("granted")
    else:
        permission = getattr(entry, "permission", None)
        granted = getattr(entry, "granted", None)

    if not isinstance(permission, str) or not permission or not isinstance(granted, bool):
        return None
    return permission, granted


def index_overrides(entries: Optional[Iterable[Any]]) -> Dict[str, bool]:
    """
    Index an override list by permission code.

    Entries may be dicts or objects with ``permission`` and ``granted``
    attributes (ORM rows, schemas). Malformed entries are skipped. A
    repeated entry that agrees with the first collapses into it.

    Raises:
        DuplicateOverrideError: if two entries disagree for the same permission
    """
    index: Dict[str, bool] = {}
    for entry in entries or ():
        fields = _read_entry(entry)
        if fields is None:
            log.debug("Skipping malformed override entry %r", entry)
            continue
        permission, granted = fields
        if index.get(permission, granted) != granted:
            raise DuplicateOverrideError(permission)
        index[permission] = granted
    return index


def override_state(index: Mapping, permission: str) -> OverrideState:
    return OverrideState.from_granted(index.get(permission))


def _resolve_indexed(
    permission: str,
    role: str,
    role_index: Mapping,
    user_index: Mapping,
) -> bool:
    if not is_registered(permission):
        return False
    if permission in user_index:
        return user_index[permission]
    if permission in role_index:
        return role_index[permission]
    return is_granted_by_default(role, permission)


# ============================================================================
# Resolution
# ============================================================================

def resolve_permission(
    permission: str,
    role: str,
    role_overrides: Optional[Iterable[Any]],
    user_overrides: Optional[Iterable[Any]],
) -> bool:
    """
    Resolve a single permission for a user.

    Priority: user override > role override > role default.

    Args:
        permission: Permission code, e.g. "create:risk"
        role: The user's role
        role_overrides: Override entries for the user's role
        user_overrides: Override entries for the user

    Returns:
        True if granted. Unregistered codes are always denied.
    """
    return _resolve_indexed(
        permission,
        role,
        index_overrides(role_overrides),
        index_overrides(user_overrides),
    )


def resolve_all_permissions(
    role: str,
    role_overrides: Optional[Iterable[Any]],
    user_overrides: Optional[Iterable[Any]],
) -> Set[str]:
    """Resolve every registered permission into the set of granted codes."""
    role_index = index_overrides(role_overrides)
    user_index = index_overrides(user_overrides)
    return {
        code
        for code in PERMISSION_CODES
        if _resolve_indexed(code, role, role_index, user_index)
    }


def has_any_permission(
    permissions: Iterable[str],
    role: str,
    role_overrides: Optional[Iterable[Any]],
    user_overrides: Optional[Iterable[Any]],
) -> bool:
    """True if at least one of the given permissions resolves to granted."""
    role_index = index_overrides(role_overrides)
    user_index = index_overrides(user_overrides)
    return any(
        _resolve_indexed(permission, role, role_index, user_index)
        for permission in permissions
    )


def explain_permission(
    permission: str,
    role: str,
    role_overrides: Optional[Iterable[Any]],
    user_overrides: Optional[Iterable[Any]],
) -> PermissionDecision:
    return _explain_indexed(
        permission,
        role,
        index_overrides(role_overrides),
        index_overrides(user_overrides),
    )


def explain_all_permissions(
    role: str,
    role_overrides: Optional[Iterable[Any]],
    user_overrides: Optional[Iterable[Any]],
) -> Tuple[PermissionDecision, ...]:
    """One decision per registered permission, in registry order."""
    role_index = index_overrides(role_overrides)
    user_index = index_overrides(user_overrides)
    return tuple(
        _explain_indexed(code, role, role_index, user_index)
        for code in PERMISSION_CODES
    )


def _explain_indexed(
    permission: str,
    role: str,
    role_index: Mapping,
    user_index: Mapping,
) -> PermissionDecision:
    user_state = override_state(user_index, permission)
    role_state = override_state(role_index, permission)
    role_default = is_granted_by_default(role, permission)

    if not is_registered(permission):
        source = PermissionSource.UNREGISTERED
    elif user_state is not OverrideState.INHERIT:
        source = PermissionSource.USER
    elif role_state is not OverrideState.INHERIT:
        source = PermissionSource.ROLE
    else:
        source = PermissionSource.DEFAULT

    return PermissionDecision(
        permission=permission,
        granted=_resolve_indexed(permission, role, role_index, user_index),
        source=source,
        user_state=user_state,
        role_state=role_state,
        role_default=role_default,
    )
