"""Unit tests for PermissionChecker (direct grant, resource admin, global admin)."""

import pytest

from permsnap.application.dtos.snapshot import PermissionSnapshot
from permsnap.domain.enums import ScopeType
from permsnap.infrastructure.services.permission_checker import PermissionChecker
from permsnap.shared.utils.datetime import utc_now

TENANT = "tenant-1"


def _store_with(snapshot_store, user_id: str, permissions: dict, scope_type=ScopeType.TENANT, scope_id=None):
    snapshot_store.put(
        TENANT, PermissionSnapshot(user_id, scope_type, scope_id, permissions, utc_now())
    )
    return PermissionChecker(snapshot_store)


async def test_direct_grant_allows(snapshot_store) -> None:
    checker = _store_with(snapshot_store, "u1", {"customer.profile": ["read"]})
    assert await checker.has_permission(TENANT, "u1", "customer.profile", "read")
    assert not await checker.has_permission(TENANT, "u1", "customer.profile", "write")


async def test_resource_admin_implies_every_action(snapshot_store) -> None:
    checker = _store_with(snapshot_store, "u1", {"customer.profile": ["admin"]})
    assert await checker.has_permission(TENANT, "u1", "customer.profile", "delete")
    assert not await checker.has_permission(TENANT, "u1", "log.change", "read")


async def test_global_admin_implies_everything(snapshot_store) -> None:
    checker = _store_with(snapshot_store, "u1", {"*": ["admin"]})
    assert await checker.has_permission(TENANT, "u1", "anything", "write")


async def test_missing_snapshot_denies(snapshot_store) -> None:
    checker = PermissionChecker(snapshot_store)
    assert not await checker.has_permission(TENANT, "nobody", "doc", "read")


@pytest.mark.parametrize(("scope_id", "expected"), [("T1", True), ("T2", False)])
async def test_checks_are_scoped(snapshot_store, scope_id: str, expected: bool) -> None:
    checker = _store_with(snapshot_store, "u1", {"doc": ["read"]}, ScopeType.TALENT, "T1")
    assert (
        await checker.has_permission(TENANT, "u1", "doc", "read", ScopeType.TALENT, scope_id)
        is expected
    )
    assert not await checker.has_permission(TENANT, "u1", "doc", "read")


async def test_tenant_scope_ignores_scope_id(snapshot_store) -> None:
    checker = _store_with(snapshot_store, "u1", {"doc": ["read"]})
    assert await checker.has_permission(TENANT, "u1", "doc", "read", ScopeType.TENANT, "ignored")
