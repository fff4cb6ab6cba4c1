"""
Permission code registry.

Single source of truth for every permission code the application checks.
Each code carries the label and category shown in the permissions matrix.
"""
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, Optional, Tuple


class RegistryError(Exception):
    """Raised when the permission registry or default grant table is inconsistent."""


class PermissionCategory(str, Enum):
    """Fixed grouping used to present permissions."""
    PAGES = "Pages"
    DATA = "Data"
    COMPLIANCE = "Compliance"
    SPECIAL = "Special"
    ADMIN = "Admin"


@dataclass(frozen=True)
class PermissionDefinition:
    """A registered permission code."""

    code: str
    label: str
    category: PermissionCategory


# ============================================================================
# Registered Permissions
# ============================================================================

PERMISSIONS: Tuple[PermissionDefinition, ...] = (
    # Pages
    PermissionDefinition("page:dashboard", "View Dashboard", PermissionCategory.PAGES),
    PermissionDefinition("page:risk-register", "View Risk Register", PermissionCategory.PAGES),
    PermissionDefinition("page:actions", "View Actions", PermissionCategory.PAGES),
    PermissionDefinition("page:controls", "View Controls Testing", PermissionCategory.PAGES),
    PermissionDefinition("page:consumer-duty", "View Consumer Duty", PermissionCategory.PAGES),
    PermissionDefinition("page:policies", "View Policies (legacy)", PermissionCategory.PAGES),
    PermissionDefinition("page:compliance", "View Compliance", PermissionCategory.PAGES),
    PermissionDefinition("page:reports", "View Reports", PermissionCategory.PAGES),
    PermissionDefinition("page:risk-acceptances", "View Risk Acceptances", PermissionCategory.PAGES),
    PermissionDefinition("page:audit", "View Audit Trail", PermissionCategory.PAGES),
    PermissionDefinition("page:settings", "View Settings", PermissionCategory.PAGES),
    PermissionDefinition("page:users", "View Users", PermissionCategory.PAGES),
    PermissionDefinition("page:operational-resilience", "View Operational Resilience", PermissionCategory.PAGES),
    # Data
    PermissionDefinition("create:risk", "Create Risks", PermissionCategory.DATA),
    PermissionDefinition("create:action", "Create Actions", PermissionCategory.DATA),
    PermissionDefinition("create:control", "Create Controls", PermissionCategory.DATA),
    PermissionDefinition("edit:risk", "Edit Risks", PermissionCategory.DATA),
    PermissionDefinition("edit:action", "Edit Actions", PermissionCategory.DATA),
    PermissionDefinition("edit:control", "Edit Controls", PermissionCategory.DATA),
    PermissionDefinition("delete:risk", "Delete Risks", PermissionCategory.DATA),
    PermissionDefinition("delete:action", "Delete Actions", PermissionCategory.DATA),
    PermissionDefinition("delete:control", "Delete Controls", PermissionCategory.DATA),
    # Compliance
    PermissionDefinition("edit:compliance", "Edit Compliance Assessments", PermissionCategory.COMPLIANCE),
    PermissionDefinition("manage:smcr", "Manage SM&CR Data", PermissionCategory.COMPLIANCE),
    PermissionDefinition("manage:regulations", "Manage Regulation Applicability", PermissionCategory.COMPLIANCE),
    # Special
    PermissionDefinition("can:toggle-risk-focus", "Toggle Risk in Focus", PermissionCategory.SPECIAL),
    PermissionDefinition("can:bypass-approval", "Create/Edit Without Approval", PermissionCategory.SPECIAL),
    PermissionDefinition("can:approve-entities", "Approve/Reject Entities", PermissionCategory.SPECIAL),
    # Admin
    PermissionDefinition("can:manage-users", "Manage Users", PermissionCategory.ADMIN),
    PermissionDefinition("can:manage-settings", "Manage Settings", PermissionCategory.ADMIN),
    PermissionDefinition("can:manage-notifications", "Manage Notifications", PermissionCategory.ADMIN),
    PermissionDefinition("can:view-pending", "View Pending Approvals", PermissionCategory.ADMIN),
)

ALL_PERMISSIONS: Mapping[str, PermissionDefinition] = MappingProxyType(
    {definition.code: definition for definition in PERMISSIONS}
)

# Registry order, used wherever codes are listed
PERMISSION_CODES: Tuple[str, ...] = tuple(definition.code for definition in PERMISSIONS)

PERMISSION_CATEGORIES: Tuple[PermissionCategory, ...] = tuple(PermissionCategory)


def is_registered(code: object) -> bool:
    return isinstance(code, str) and code in ALL_PERMISSIONS


def get_definition(code: str) -> Optional[PermissionDefinition]:
    return ALL_PERMISSIONS.get(code)


def permissions_by_category() -> Dict[PermissionCategory, List[PermissionDefinition]]:
    """Group registered permissions by category, in category then registry order."""
    grouped: Dict[PermissionCategory, List[PermissionDefinition]] = {
        category: [] for category in PERMISSION_CATEGORIES
    }
    for definition in PERMISSIONS:
        grouped[definition.category].append(definition)
    return grouped


def validate_registry(definitions: Iterable[PermissionDefinition] = PERMISSIONS) -> None:
    """
    Check the structural invariants of the registry.

    Every code must be a non-empty string, unique, labelled, and filed under
    one of the fixed categories.

    Raises:
        RegistryError: on the first violation found
    """
    seen = set()
    for definition in definitions:
        code = definition.code
        if not isinstance(code, str) or not code.strip():
            raise RegistryError(f"Permission code must be a non-empty string, got {code!r}")
        if code in seen:
            raise RegistryError(f"Duplicate permission code: {code}")
        seen.add(code)
        if not isinstance(definition.label, str) or not definition.label.strip():
            raise RegistryError(f"Permission {code} has no label")
        if not isinstance(definition.category, PermissionCategory):
            raise RegistryError(f"Permission {code} has invalid category {definition.category!r}")
