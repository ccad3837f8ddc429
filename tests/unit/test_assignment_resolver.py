"""Unit tests for RoleAssignmentResolver (selector precedence, expiry filtering)."""

import logging
from datetime import timedelta
from unittest.mock import AsyncMock

from permsnap.application.dtos.assignment import RoleAssignment
from permsnap.application.services.assignment_resolver import RoleAssignmentResolver
from permsnap.domain.enums import ScopeType, SnapshotEventType
from permsnap.schemas.permission_job import PermissionJobPayload
from permsnap.shared.utils.datetime import utc_now

TENANT = "tenant-1"


def _trigger(event_type: SnapshotEventType, **selectors) -> PermissionJobPayload:
    return PermissionJobPayload(event_type=event_type, tenant_id=TENANT, **selectors)


async def test_full_refresh_selects_every_active_user(source_repo) -> None:
    source_repo.users = ["u2", "u1"]
    resolver = RoleAssignmentResolver(source_repo)
    result = await resolver.resolve_user_ids(
        _trigger(SnapshotEventType.FULL_REFRESH, affected_user_ids=["ignored"])
    )
    assert result == ["u1", "u2"]


async def test_explicit_user_ids_are_used_as_given_without_duplicates(source_repo) -> None:
    """affected_user_ids wins over scope ids; order is kept, duplicates dropped."""
    resolver = RoleAssignmentResolver(source_repo)
    result = await resolver.resolve_user_ids(
        _trigger(
            SnapshotEventType.ROLE_CHANGED,
            affected_user_ids=["u3", "u1", "u3"],
            affected_scope_ids=["A"],
        )
    )
    assert result == ["u3", "u1"]
    assert source_repo.calls == []


async def test_scope_ids_select_users_with_live_assignment_there(source_repo) -> None:
    source_repo.assign("u1", "viewer", ScopeType.SUBSIDIARY, "A")
    source_repo.assign("u2", "viewer", ScopeType.SUBSIDIARY, "B")
    source_repo.assign(
        "u3", "viewer", ScopeType.SUBSIDIARY, "A", expires_at=utc_now() - timedelta(days=1)
    )
    resolver = RoleAssignmentResolver(source_repo)
    result = await resolver.resolve_user_ids(
        _trigger(SnapshotEventType.ORG_STRUCTURE_CHANGED, affected_scope_ids=["A"])
    )
    assert result == ["u1"]


async def test_role_ids_select_role_holders(source_repo) -> None:
    source_repo.assign("u1", "viewer")
    source_repo.assign("u2", "editor", ScopeType.TALENT, "T1")
    resolver = RoleAssignmentResolver(source_repo)
    result = await resolver.resolve_user_ids(
        _trigger(SnapshotEventType.POLICY_CHANGED, affected_role_ids=["editor"])
    )
    assert result == ["u2"]


async def test_no_selector_resolves_to_nobody_with_warning(source_repo, caplog) -> None:
    resolver = RoleAssignmentResolver(source_repo)
    with caplog.at_level(logging.WARNING):
        result = await resolver.resolve_user_ids(_trigger(SnapshotEventType.ROLE_CHANGED))
    assert result == []
    assert source_repo.calls == []
    assert "no user, scope or role selector" in caplog.text


async def test_empty_selector_lists_count_as_missing(source_repo) -> None:
    resolver = RoleAssignmentResolver(source_repo)
    result = await resolver.resolve_user_ids(
        _trigger(SnapshotEventType.ROLE_CHANGED, affected_user_ids=[], affected_scope_ids=[])
    )
    assert result == []


async def test_load_assignments_drops_assignments_expired_since_query() -> None:
    """Assignments expiring between the store query and the computation are filtered."""
    now = utc_now()
    live = RoleAssignment("u1", "viewer", ScopeType.TENANT, expires_at=now + timedelta(hours=1))
    expired = RoleAssignment("u1", "editor", ScopeType.TENANT, expires_at=now - timedelta(seconds=1))
    permanent = RoleAssignment("u1", "auditor", ScopeType.TENANT)
    repo = AsyncMock()
    repo.get_user_assignments = AsyncMock(return_value=[live, expired, permanent])

    resolver = RoleAssignmentResolver(repo)
    result = await resolver.load_assignments(TENANT, "u1")

    assert result == [live, permanent]
    repo.get_user_assignments.assert_awaited_once_with(TENANT, "u1")
