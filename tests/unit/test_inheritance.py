"""Unit tests for InheritanceExpander (descendant propagation, tenant scope not expanded)."""

from permsnap.application.dtos.assignment import RoleAssignment
from permsnap.application.dtos.organization import ScopeRef, SubsidiaryRecord, TalentRecord
from permsnap.application.services.inheritance import InheritanceExpander
from permsnap.application.services.organization_tree import build_organization_tree
from permsnap.domain.enums import ScopeType

TENANT = "tenant-1"

SUB_A = ScopeRef(ScopeType.SUBSIDIARY, "A")
SUB_B = ScopeRef(ScopeType.SUBSIDIARY, "B")
TALENT_T = ScopeRef(ScopeType.TALENT, "T")
TALENT_U = ScopeRef(ScopeType.TALENT, "U")


def _expander() -> InheritanceExpander:
    tree = build_organization_tree(
        TENANT,
        [SubsidiaryRecord("A", None), SubsidiaryRecord("B", "A")],
        [TalentRecord("T", "A"), TalentRecord("U", "B"), TalentRecord("X", None)],
    )
    return InheritanceExpander(tree)


def test_inherit_at_subsidiary_reaches_every_descendant() -> None:
    scopes = _expander().expand(
        RoleAssignment("u1", "mgr", ScopeType.SUBSIDIARY, "A", inherit=True)
    )
    assert scopes[0] == SUB_A
    assert set(scopes) == {SUB_A, SUB_B, TALENT_T, TALENT_U}
    assert len(scopes) == 4


def test_without_inherit_only_own_scope() -> None:
    scopes = _expander().expand(RoleAssignment("u1", "mgr", ScopeType.SUBSIDIARY, "A"))
    assert scopes == [SUB_A]


def test_tenant_scope_is_never_expanded() -> None:
    scopes = _expander().expand(RoleAssignment("u1", "viewer", ScopeType.TENANT, inherit=True))
    assert scopes == [ScopeRef.tenant()]


def test_inherit_at_talent_leaf_is_own_scope() -> None:
    scopes = _expander().expand(RoleAssignment("u1", "viewer", ScopeType.TALENT, "T", inherit=True))
    assert scopes == [TALENT_T]


def test_inherit_at_scope_outside_active_tree_contributes_to_own_scope() -> None:
    scopes = _expander().expand(
        RoleAssignment("u1", "mgr", ScopeType.SUBSIDIARY, "inactive", inherit=True)
    )
    assert scopes == [ScopeRef(ScopeType.SUBSIDIARY, "inactive")]


def test_expand_all_groups_roles_per_scope_without_duplicates() -> None:
    by_scope = _expander().expand_all(
        [
            RoleAssignment("u1", "mgr", ScopeType.SUBSIDIARY, "B", inherit=True),
            RoleAssignment("u1", "viewer", ScopeType.TALENT, "U"),
            RoleAssignment("u1", "mgr", ScopeType.TALENT, "U"),
            RoleAssignment("u1", "viewer", ScopeType.TENANT),
        ]
    )
    assert by_scope == {
        SUB_B: ["mgr"],
        TALENT_U: ["mgr", "viewer"],
        ScopeRef.tenant(): ["viewer"],
    }
