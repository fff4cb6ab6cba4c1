import pytest

from app.features.permissions.defaults import (
    DEFAULT_ROLE_PERMISSIONS,
    FULL_ACCESS_ROLE,
    Role,
    default_permissions_for,
    validate_permission_tables,
)
from app.features.permissions.registry import (
    ALL_PERMISSIONS,
    PERMISSION_CATEGORIES,
    PERMISSION_CODES,
    PERMISSIONS,
    PermissionCategory,
    PermissionDefinition,
    RegistryError,
    get_definition,
    is_registered,
    permissions_by_category,
    validate_registry,
)


def _category(code: str) -> PermissionCategory:
    return ALL_PERMISSIONS[code].category


# -- registry ---------------------------------------------------------------


def test_registry_is_structurally_valid() -> None:
    validate_registry()
    validate_permission_tables()


def test_every_code_has_label_and_known_category() -> None:
    for definition in PERMISSIONS:
        assert definition.label.strip(), f"label missing for {definition.code}"
        assert definition.category in PERMISSION_CATEGORIES


def test_every_category_is_used() -> None:
    grouped = permissions_by_category()
    assert list(grouped) == list(PERMISSION_CATEGORIES)
    for category, definitions in grouped.items():
        assert definitions, f"category {category.value} not used"


def test_codes_are_unique_and_match_catalog() -> None:
    assert len(set(PERMISSION_CODES)) == len(PERMISSION_CODES) == len(ALL_PERMISSIONS)
    assert set(PERMISSION_CODES) == set(ALL_PERMISSIONS)


def test_lookup_helpers() -> None:
    assert is_registered("create:risk")
    assert not is_registered("create:unicorn")
    assert not is_registered(None)
    assert get_definition("can:manage-users").category is PermissionCategory.ADMIN
    assert get_definition("nope") is None


def test_validate_registry_rejects_duplicates() -> None:
    definitions = (
        PermissionDefinition("page:dashboard", "View Dashboard", PermissionCategory.PAGES),
        PermissionDefinition("page:dashboard", "Again", PermissionCategory.PAGES),
    )
    with pytest.raises(RegistryError, match="Duplicate"):
        validate_registry(definitions)


def test_validate_registry_rejects_missing_label() -> None:
    with pytest.raises(RegistryError, match="no label"):
        validate_registry((PermissionDefinition("page:x", "  ", PermissionCategory.PAGES),))


def test_validate_registry_rejects_unknown_category() -> None:
    with pytest.raises(RegistryError, match="invalid category"):
        validate_registry((PermissionDefinition("page:x", "X", "Misc"),))  # type: ignore[arg-type]


# -- default grant table ----------------------------------------------------


def test_full_access_role_holds_entire_registry() -> None:
    assert DEFAULT_ROLE_PERMISSIONS[FULL_ACCESS_ROLE] == frozenset(PERMISSION_CODES)


def test_every_role_has_defaults() -> None:
    for role in Role:
        assert DEFAULT_ROLE_PERMISSIONS[role], role


def test_viewer_defaults_are_read_only_pages() -> None:
    viewer = DEFAULT_ROLE_PERMISSIONS[Role.VIEWER]
    assert "page:dashboard" in viewer
    assert all(_category(code) is PermissionCategory.PAGES for code in viewer)
    for code in ("page:audit", "page:settings", "page:users", "create:risk", "can:manage-users"):
        assert code not in viewer


def test_owner_defaults_allow_create_and_edit_but_not_delete_or_admin() -> None:
    owner = DEFAULT_ROLE_PERMISSIONS[Role.OWNER]
    assert {"create:risk", "create:action", "edit:risk", "edit:action"} <= owner
    assert not any(code.startswith("delete:") for code in owner)
    assert not any(_category(code) is PermissionCategory.ADMIN for code in owner)
    assert "can:bypass-approval" not in owner


def test_ceo_defaults_are_pages_plus_one_action() -> None:
    ceo = DEFAULT_ROLE_PERMISSIONS[Role.CEO]
    non_pages = {code for code in ceo if _category(code) is not PermissionCategory.PAGES}
    assert non_pages == {"can:toggle-risk-focus"}
    assert "page:risk-register" in ceo
    assert "can:manage-users" not in ceo
    assert "can:manage-settings" not in ceo
    assert "delete:risk" not in ceo


def test_defaults_accept_plain_role_strings() -> None:
    assert default_permissions_for("VIEWER") == DEFAULT_ROLE_PERMISSIONS[Role.VIEWER]
    assert default_permissions_for("INTERN") == frozenset()


def _tables_with(role: Role, grants: frozenset) -> dict:
    table = dict(DEFAULT_ROLE_PERMISSIONS)
    table[role] = grants
    return table


def test_tables_reject_missing_role_entry() -> None:
    table = dict(DEFAULT_ROLE_PERMISSIONS)
    del table[Role.CEO]
    with pytest.raises(RegistryError, match="CEO has no default permissions entry"):
        validate_permission_tables(PERMISSIONS, table)


def test_tables_reject_unregistered_default_code() -> None:
    table = _tables_with(Role.VIEWER, DEFAULT_ROLE_PERMISSIONS[Role.VIEWER] | {"launch:rockets"})
    with pytest.raises(RegistryError, match="launch:rockets"):
        validate_permission_tables(PERMISSIONS, table)


def test_tables_reject_incomplete_full_access_role() -> None:
    table = _tables_with(FULL_ACCESS_ROLE, frozenset(PERMISSION_CODES) - {"can:manage-users"})
    with pytest.raises(RegistryError, match="can:manage-users"):
        validate_permission_tables(PERMISSIONS, table)


def test_tables_are_checked_against_given_registry() -> None:
    # Dropping a code from the registry orphans every default that grants it
    definitions = tuple(d for d in PERMISSIONS if d.code != "page:dashboard")
    with pytest.raises(RegistryError, match="unregistered codes: \\['page:dashboard'\\]"):
        validate_permission_tables(definitions)


def test_tables_run_registry_checks() -> None:
    definitions = PERMISSIONS + (PERMISSIONS[0],)
    with pytest.raises(RegistryError, match="Duplicate"):
        validate_permission_tables(definitions)
