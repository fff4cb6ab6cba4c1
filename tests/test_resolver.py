from types import SimpleNamespace

import pytest

from app.features.permissions.defaults import DEFAULT_ROLE_PERMISSIONS, Role
from app.features.permissions.registry import PERMISSION_CODES
from app.features.permissions.repository import OverrideRecord
from app.features.permissions.schemas import PermissionMatrixRow
from app.features.permissions.resolver import (
    DuplicateOverrideError,
    OverrideState,
    PermissionSource,
    explain_all_permissions,
    explain_permission,
    has_any_permission,
    index_overrides,
    resolve_all_permissions,
    resolve_permission,
)


def grant(code: str) -> dict:
    return {"permission": code, "granted": True}


def deny(code: str) -> dict:
    return {"permission": code, "granted": False}


# -- defaults ---------------------------------------------------------------


@pytest.mark.parametrize("code", PERMISSION_CODES)
def test_full_access_role_is_granted_everything(code: str) -> None:
    assert resolve_permission(code, Role.CCRO_TEAM, [], []) is True


def test_full_access_role_resolves_whole_registry() -> None:
    assert len(resolve_all_permissions(Role.CCRO_TEAM, [], [])) == len(PERMISSION_CODES)


def test_viewer_defaults() -> None:
    assert resolve_permission("page:dashboard", Role.VIEWER, [], []) is True
    assert resolve_permission("create:risk", Role.VIEWER, [], []) is False
    assert resolve_permission("can:manage-users", Role.VIEWER, [], []) is False


def test_ceo_defaults() -> None:
    assert resolve_permission("can:toggle-risk-focus", Role.CEO, [], []) is True
    assert resolve_permission("can:manage-users", Role.CEO, [], []) is False


def test_owner_resolved_set() -> None:
    granted = resolve_all_permissions(Role.OWNER, [], [])
    assert {"create:risk", "edit:risk"} <= granted
    assert "delete:risk" not in granted
    assert "can:manage-users" not in granted


def test_role_accepts_plain_string() -> None:
    assert resolve_permission("can:manage-users", "VIEWER", [], []) is False
    assert resolve_permission("can:manage-users", "CCRO_TEAM", [], []) is True


# -- override precedence ----------------------------------------------------


@pytest.mark.parametrize("role", list(Role))
def test_role_grant_beats_false_default(role: Role) -> None:
    for code in set(PERMISSION_CODES) - DEFAULT_ROLE_PERMISSIONS[role]:
        assert resolve_permission(code, role, [grant(code)], []) is True


@pytest.mark.parametrize("role", list(Role))
def test_role_deny_beats_true_default(role: Role) -> None:
    for code in DEFAULT_ROLE_PERMISSIONS[role]:
        assert resolve_permission(code, role, [deny(code)], []) is False


def test_user_override_outranks_role_override() -> None:
    code = "can:manage-users"
    assert resolve_permission(code, Role.VIEWER, [deny(code)], [grant(code)]) is True
    assert resolve_permission(code, Role.VIEWER, [grant(code)], [deny(code)]) is False


def test_user_deny_beats_full_access_default() -> None:
    assert resolve_permission("page:dashboard", Role.CCRO_TEAM, [], [deny("page:dashboard")]) is False


def test_unrelated_overrides_do_not_leak() -> None:
    role_overrides = [grant("delete:risk"), deny("page:dashboard")]
    user_overrides = [grant("can:manage-users")]
    assert resolve_permission("create:risk", Role.VIEWER, role_overrides, user_overrides) is False
    assert resolve_permission("page:reports", Role.VIEWER, role_overrides, user_overrides) is True


def test_resolution_is_idempotent() -> None:
    role_overrides = [grant("can:manage-users")]
    user_overrides = [deny("page:dashboard")]
    first = resolve_all_permissions(Role.OWNER, role_overrides, user_overrides)
    second = resolve_all_permissions(Role.OWNER, role_overrides, user_overrides)
    assert first == second
    assert resolve_permission("can:manage-users", Role.OWNER, role_overrides, user_overrides) == \
        resolve_permission("can:manage-users", Role.OWNER, role_overrides, user_overrides)


# -- degenerate input -------------------------------------------------------


def test_unknown_permission_is_denied_even_when_overridden() -> None:
    assert resolve_permission("launch:rockets", Role.CCRO_TEAM, [], []) is False
    assert resolve_permission("launch:rockets", Role.CCRO_TEAM, [grant("launch:rockets")], [grant("launch:rockets")]) is False


def test_unknown_role_falls_back_to_overrides_only() -> None:
    assert resolve_permission("page:dashboard", "INTERN", [], []) is False
    assert resolve_permission("page:dashboard", "INTERN", [grant("page:dashboard")], []) is True


def test_malformed_entries_are_skipped() -> None:
    malformed = [
        {"granted": True},
        {"permission": "can:manage-users"},
        {"permission": "can:manage-users", "granted": "yes"},
        {"permission": "", "granted": True},
        None,
        42,
    ]
    assert resolve_permission("can:manage-users", Role.VIEWER, malformed, malformed) is False
    assert resolve_permission("page:dashboard", Role.VIEWER, malformed, malformed) is True


def test_entries_may_be_records() -> None:
    user_overrides = [OverrideRecord("can:manage-users", True)]
    role_overrides = [SimpleNamespace(permission="page:dashboard", granted=False)]
    assert resolve_permission("can:manage-users", Role.VIEWER, role_overrides, user_overrides) is True
    assert resolve_permission("page:dashboard", Role.VIEWER, role_overrides, user_overrides) is False


def test_none_override_lists_mean_no_overrides() -> None:
    assert resolve_permission("page:dashboard", Role.VIEWER, None, None) is True


def test_conflicting_duplicates_are_rejected() -> None:
    with pytest.raises(DuplicateOverrideError) as excinfo:
        index_overrides([grant("edit:risk"), deny("edit:risk")])
    assert excinfo.value.permission == "edit:risk"


def test_agreeing_duplicates_collapse() -> None:
    assert index_overrides([grant("edit:risk"), grant("edit:risk")]) == {"edit:risk": True}


# -- concrete scenarios -----------------------------------------------------


def test_scenarios() -> None:
    assert resolve_permission("can:manage-users", "VIEWER", [], []) is False
    assert resolve_permission("can:manage-users", "VIEWER", [grant("can:manage-users")], []) is True
    assert resolve_permission("page:dashboard", "CCRO_TEAM", [], [deny("page:dashboard")]) is False

    owner = resolve_all_permissions("OWNER", [], [])
    assert "delete:risk" not in owner
    assert "can:manage-users" not in owner

    ccro = resolve_all_permissions("CCRO_TEAM", [], [deny("can:manage-users")])
    assert set(PERMISSION_CODES) - ccro == {"can:manage-users"}


def test_resolve_all_only_returns_registered_codes() -> None:
    granted = resolve_all_permissions(Role.VIEWER, [grant("phantom:code")], [grant("other:phantom")])
    assert granted <= set(PERMISSION_CODES)
    assert "phantom:code" not in granted


def test_has_any_permission() -> None:
    assert has_any_permission(["can:manage-users", "page:dashboard"], Role.VIEWER, [], [])
    assert not has_any_permission(["can:manage-users", "delete:risk"], Role.VIEWER, [], [])
    assert not has_any_permission([], Role.CCRO_TEAM, [], [])


# -- override state ---------------------------------------------------------


def test_override_state_cycles() -> None:
    state = OverrideState.INHERIT
    seen = []
    for _ in range(3):
        state = state.next()
        seen.append(state)
    assert seen == [OverrideState.GRANT, OverrideState.DENY, OverrideState.INHERIT]


def test_override_state_round_trips_granted() -> None:
    for state in OverrideState:
        assert OverrideState.from_granted(state.granted) is state
    assert OverrideState.INHERIT.granted is None


def test_explain_reports_winning_layer() -> None:
    code = "can:manage-users"
    decision = explain_permission(code, Role.VIEWER, [grant(code)], [deny(code)])
    assert decision.granted is False
    assert decision.source is PermissionSource.USER
    assert decision.user_state is OverrideState.DENY
    assert decision.role_state is OverrideState.GRANT
    assert decision.role_default is False

    assert explain_permission(code, Role.VIEWER, [grant(code)], []).source is PermissionSource.ROLE
    assert explain_permission("page:dashboard", Role.VIEWER, [], []).source is PermissionSource.DEFAULT
    assert explain_permission("nope:nope", Role.VIEWER, [], []).source is PermissionSource.UNREGISTERED


def test_explain_all_follows_registry_order() -> None:
    decisions = explain_all_permissions(Role.OWNER, [], [])
    assert tuple(d.permission for d in decisions) == PERMISSION_CODES
    assert {d.permission for d in decisions if d.granted} == resolve_all_permissions(Role.OWNER, [], [])


def test_matrix_row_schema_lists_every_source() -> None:
    schema = PermissionMatrixRow.model_json_schema()
    source_schema = schema["$defs"]["PermissionSource"]
    assert set(source_schema["enum"]) == {"user", "role", "default", "unregistered"}
