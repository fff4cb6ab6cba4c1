"""
Compiled-in default permissions per role.

These grants apply whenever no role or user override exists, so access
keeps working against an empty database.
"""
from enum import Enum
from types import MappingProxyType
from typing import FrozenSet, Mapping, Sequence

from app.features.permissions.registry import (
    PERMISSION_CODES,
    PERMISSIONS,
    PermissionDefinition,
    RegistryError,
    validate_registry,
)


class Role(str, Enum):
    """User classes carrying a baseline set of permissions."""
    CCRO_TEAM = "CCRO_TEAM"  # compliance team, full access
    CEO = "CEO"              # executive, read-mostly
    OWNER = "OWNER"          # risk/action owner
    VIEWER = "VIEWER"        # read-only


FULL_ACCESS_ROLE = Role.CCRO_TEAM

_READ_PAGES = frozenset({
    "page:dashboard",
    "page:risk-register",
    "page:actions",
    "page:controls",
    "page:consumer-duty",
    "page:policies",
    "page:compliance",
    "page:reports",
    "page:risk-acceptances",
})

DEFAULT_ROLE_PERMISSIONS: Mapping[Role, FrozenSet[str]] = MappingProxyType({
    Role.CCRO_TEAM: frozenset(PERMISSION_CODES),
    Role.CEO: _READ_PAGES | {"can:toggle-risk-focus"},
    Role.OWNER: _READ_PAGES | {
        "create:risk",
        "create:action",
        "edit:risk",
        "edit:action",
    },
    Role.VIEWER: _READ_PAGES - {"page:controls"},
})


def default_permissions_for(role: str) -> FrozenSet[str]:
    """Default grants for a role; an unknown role gets nothing."""
    return DEFAULT_ROLE_PERMISSIONS.get(role, frozenset())


def is_granted_by_default(role: str, code: str) -> bool:
    return code in default_permissions_for(role)


def validate_permission_tables(
    definitions: Sequence[PermissionDefinition] = PERMISSIONS,
    table: Mapping[Role, FrozenSet[str]] = DEFAULT_ROLE_PERMISSIONS,
) -> None:
    """
    Validate the registry together with the default grant table.

    Called once at startup. Every role needs an entry, every default grant
    must be a registered code, and the full-access role must hold the whole
    registry.

    Raises:
        RegistryError: on the first violation found
    """
    validate_registry(definitions)
    codes = {definition.code for definition in definitions}

    for role in Role:
        if role not in table:
            raise RegistryError(f"Role {role.value} has no default permissions entry")
        unknown = sorted(code for code in table[role] if code not in codes)
        if unknown:
            raise RegistryError(f"Role {role.value} defaults reference unregistered codes: {unknown}")

    missing = codes - table[FULL_ACCESS_ROLE]
    if missing:
        raise RegistryError(
            f"{FULL_ACCESS_ROLE.value} must hold every permission by default, missing {sorted(missing)}"
        )
